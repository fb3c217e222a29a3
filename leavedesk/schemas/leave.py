from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from typing import List, Optional

from leavedesk.models.activity_type import TimeTrackingMode
from leavedesk.models.leave_request import HalfDayPeriod, RequestStatus
from leavedesk.models.request_approval import ApprovalStatus


class LeaveRequestBase(BaseModel):
    """Dates and free text shared by create and update."""
    start_date: date
    end_date: date
    half_day_period: Optional[HalfDayPeriod] = None
    reason: Optional[str] = Field(None, max_length=1000)
    comment: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class LeaveRequestCreate(LeaveRequestBase):
    activity_type_id: int


class LeaveRequestUpdate(LeaveRequestBase):
    pass


class ApprovalAction(BaseModel):
    comment: Optional[str] = Field(None, max_length=1000)


class RevisionRequest(BaseModel):
    comment: str = Field(..., min_length=1, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class RequestApprovalResponse(BaseModel):
    id: int
    approver_id: int
    proxy_approver_id: Optional[int] = None
    level: int
    sequence: int
    round: int
    status: ApprovalStatus
    comment: Optional[str] = None
    action_date: Optional[datetime] = None
    is_required: bool

    model_config = ConfigDict(from_attributes=True)


class RequestCommentResponse(BaseModel):
    id: int
    user_id: int
    comment: str
    is_internal: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveRequestResponse(BaseModel):
    id: int
    request_number: str
    user_id: int
    activity_type_id: int
    status: RequestStatus
    start_date: date
    end_date: date
    time_tracking_mode: TimeTrackingMode
    half_day_period: Optional[HalfDayPeriod] = None
    total_days: float
    reason: Optional[str] = None
    comment: Optional[str] = None
    submission_round: int
    submitted_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveRequestDetail(LeaveRequestResponse):
    approvals: List[RequestApprovalResponse] = []
    comments: List[RequestCommentResponse] = []


class DayCountResponse(BaseModel):
    start_date: date
    end_date: date
    activity_type_id: int
    total_days: float
