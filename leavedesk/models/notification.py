from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leavedesk.database import Base
import enum

class NotificationTrigger(str, enum.Enum):
    ON_SUBMIT = "on_submit"
    ON_APPROVE = "on_approve"
    ON_REJECT = "on_reject"
    ON_CANCEL = "on_cancel"
    ON_REVISION_REQUEST = "on_revision_request"

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=True, index=True)
    trigger = Column(Enum(NotificationTrigger), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), default="info")  # e.g., info, success, warning, error
    is_read = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("UserProfile")
