from sqlalchemy import Column, Integer, String, Float, Boolean, Enum
from leavedesk.database import Base
import enum


class ApprovalWorkflow(str, enum.Enum):
    AUTO_APPROVE = "auto_approve"
    SINGLE_LEVEL = "single_level"
    MULTI_LEVEL = "multi_level"
    SKIP_LEVEL = "skip_level"


class TimeTrackingMode(str, enum.Enum):
    FULL_DAY = "full_day"
    HALF_DAY = "half_day"
    HOURLY = "hourly"


class ActivityType(Base):
    """
    Policy for one leave category (vacation, sick, WFH, ...).
    Administrators own these rows; the workflow engine only reads them.
    """
    __tablename__ = "activity_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    code = Column(String, index=True, nullable=False)
    company_id = Column(Integer, nullable=True)  # NULL = available to every company
    is_active = Column(Boolean, default=True, nullable=False)

    # Approval
    requires_approval = Column(Boolean, default=True, nullable=False)
    approval_workflow = Column(Enum(ApprovalWorkflow), default=ApprovalWorkflow.SINGLE_LEVEL, nullable=False)
    max_approval_levels = Column(Integer, nullable=True)  # NULL = unlimited

    # Balance
    deducts_from_balance = Column(Boolean, default=True, nullable=False)
    default_annual_balance = Column(Float, nullable=True)
    allow_negative_balance = Column(Boolean, default=False, nullable=False)
    allow_carry_over = Column(Boolean, default=False, nullable=False)
    max_carry_over_days = Column(Float, nullable=True)  # NULL = everything left carries over

    time_tracking_mode = Column(Enum(TimeTrackingMode), default=TimeTrackingMode.FULL_DAY, nullable=False)

    # Notifications
    notify_on_submit = Column(Boolean, default=True, nullable=False)
    notify_on_approve = Column(Boolean, default=True, nullable=False)
    notify_on_reject = Column(Boolean, default=True, nullable=False)
    notify_on_cancel = Column(Boolean, default=False, nullable=False)

    # Request rules
    allow_overlapping = Column(Boolean, default=False, nullable=False)
    allow_cancellation = Column(Boolean, default=True, nullable=False)
    cancellation_deadline_hours = Column(Integer, nullable=True)

    @property
    def needs_approval(self) -> bool:
        return self.requires_approval and self.approval_workflow != ApprovalWorkflow.AUTO_APPROVE
