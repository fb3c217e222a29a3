from sqlalchemy import Column, Integer, String, Boolean, Enum, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from leavedesk.database import Base
import enum

class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"

class RequestApproval(Base):
    """One slot in a request's approval chain."""
    __tablename__ = "request_approvals"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    proxy_approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # set when a proxy acted
    level = Column(Integer, nullable=False)
    sequence = Column(Integer, nullable=False)
    round = Column(Integer, nullable=False, default=1)
    status = Column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False)
    comment = Column(String, nullable=True)
    action_date = Column(DateTime(timezone=True), nullable=True)
    is_required = Column(Boolean, default=True, nullable=False)

    request = relationship("LeaveRequest", back_populates="approvals")

    def __repr__(self):
        return f"<RequestApproval req={self.request_id} approver={self.approver_id} L{self.level}#{self.sequence} {self.status.value}>"
