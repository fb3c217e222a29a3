from sqlalchemy import Column, Integer, String, Date, Float, Enum, ForeignKey, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from leavedesk.database import Base
from leavedesk.models.activity_type import TimeTrackingMode
import enum

class RequestStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    REVISION_REQUESTED = "revision_requested"

# Statuses a requester may still edit and (re)submit
EDITABLE_STATUSES = frozenset({RequestStatus.DRAFT, RequestStatus.REVISION_REQUESTED})
# Statuses that no longer hold or consume days for overlap purposes
INACTIVE_STATUSES = frozenset({RequestStatus.CANCELLED, RequestStatus.REJECTED})

class HalfDayPeriod(str, enum.Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"

class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    request_number = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    activity_type_id = Column(Integer, ForeignKey("activity_types.id"), nullable=False, index=True)
    status = Column(Enum(RequestStatus), default=RequestStatus.DRAFT, nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    time_tracking_mode = Column(Enum(TimeTrackingMode), default=TimeTrackingMode.FULL_DAY, nullable=False)
    half_day_period = Column(Enum(HalfDayPeriod), nullable=True)
    total_days = Column(Float, default=0.0, nullable=False)

    reason = Column(String, nullable=True)
    comment = Column(String, nullable=True)

    # Incremented on every submit; approval rows of older rounds are history only
    submission_round = Column(Integer, default=0, nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    requester = relationship("UserProfile", foreign_keys=[user_id])
    activity_type = relationship("ActivityType")
    approvals = relationship(
        "RequestApproval",
        back_populates="request",
        order_by="RequestApproval.id",
    )
    comments = relationship("RequestComment", back_populates="request", order_by="RequestComment.id")

    @property
    def balance_year(self) -> int:
        return self.start_date.year
