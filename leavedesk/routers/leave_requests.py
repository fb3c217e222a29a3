import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from leavedesk.core.exceptions import AccessDeniedError, BusinessRuleError, NotFoundError
from leavedesk.core.schemas import ApiResponse
from leavedesk.database import get_db
from leavedesk.models.activity_type import ActivityType
from leavedesk.models.leave_request import RequestStatus
from leavedesk.models.user import UserProfile
from leavedesk.routers.auth_deps import get_current_user
from leavedesk.schemas.leave import (
    ApprovalAction,
    CancelRequest,
    DayCountResponse,
    LeaveRequestCreate,
    LeaveRequestDetail,
    LeaveRequestResponse,
    LeaveRequestUpdate,
    RequestApprovalResponse,
    RevisionRequest,
)
from leavedesk.services.leave_request_service import LeaveRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leave-requests", tags=["leave-requests"])


def get_leave_service(
    db: Session = Depends(get_db),
    current_user: UserProfile = Depends(get_current_user),
) -> LeaveRequestService:
    return LeaveRequestService(db, actor_id=current_user.id)


def _envelope(request, message: str) -> ApiResponse[LeaveRequestResponse]:
    return ApiResponse.ok(LeaveRequestResponse.model_validate(request), message)


@router.post("", response_model=ApiResponse[LeaveRequestResponse], status_code=status.HTTP_201_CREATED)
def create_leave_request(
    payload: LeaveRequestCreate,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    request = service.create(
        user_id=current_user.id,
        activity_type_id=payload.activity_type_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        comment=payload.comment,
        half_day_period=payload.half_day_period,
    )
    return _envelope(request, "Leave request created")


@router.get("", response_model=List[LeaveRequestResponse])
def list_my_requests(
    year: Optional[int] = None,
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    return service.get_user_requests(current_user.id, year, status_filter)


@router.get("/pending-approvals", response_model=List[LeaveRequestResponse])
def list_pending_approvals(
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    """Requests waiting on the caller, directly or as someone's active proxy."""
    return service.get_pending_approvals(current_user.id)


@router.get("/team", response_model=List[LeaveRequestResponse])
def list_team_requests(
    year: Optional[int] = None,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    return service.get_team_requests(current_user.id, year)


@router.get("/calculate-days", response_model=DayCountResponse)
def calculate_days(
    activity_type_id: int,
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    if end_date < start_date:
        raise BusinessRuleError("End date must not be before start date")
    activity_type = db.get(ActivityType, activity_type_id)
    if activity_type is None:
        raise NotFoundError("Activity type", activity_type_id)

    total = service.calculate_days(start_date, end_date, activity_type.time_tracking_mode, current_user.company_id)
    return DayCountResponse(
        start_date=start_date,
        end_date=end_date,
        activity_type_id=activity_type_id,
        total_days=total,
    )


@router.get("/{request_id}", response_model=LeaveRequestDetail)
def get_leave_request(
    request_id: int,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    request = service.get_request(request_id)
    if not service.directory.can_view_request(current_user.id, request):
        raise AccessDeniedError("You cannot view this request")
    return request


@router.put("/{request_id}", response_model=ApiResponse[LeaveRequestResponse])
def update_leave_request(
    request_id: int,
    payload: LeaveRequestUpdate,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    request = service.update(
        request_id,
        current_user.id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        comment=payload.comment,
        half_day_period=payload.half_day_period,
    )
    return _envelope(request, "Leave request updated")


@router.post("/{request_id}/submit", response_model=ApiResponse[LeaveRequestResponse])
def submit_leave_request(
    request_id: int,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    request = service.submit(request_id, current_user.id)
    return _envelope(request, "Leave request submitted")


@router.post("/{request_id}/approve", response_model=ApiResponse[LeaveRequestResponse])
def approve_leave_request(
    request_id: int,
    action: ApprovalAction,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    request = service.approve(request_id, current_user.id, action.comment)
    return _envelope(request, "Approval recorded")


@router.post("/{request_id}/reject", response_model=ApiResponse[LeaveRequestResponse])
def reject_leave_request(
    request_id: int,
    action: ApprovalAction,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    request = service.reject(request_id, current_user.id, action.comment)
    return _envelope(request, "Leave request rejected")


@router.post("/{request_id}/cancel", response_model=ApiResponse[LeaveRequestResponse])
def cancel_leave_request(
    request_id: int,
    payload: CancelRequest,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    request = service.cancel(request_id, current_user.id, payload.reason)
    return _envelope(request, "Leave request cancelled")


@router.post("/{request_id}/request-revision", response_model=ApiResponse[LeaveRequestResponse])
def request_revision(
    request_id: int,
    payload: RevisionRequest,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    request = service.request_revision(request_id, current_user.id, payload.comment)
    return _envelope(request, "Revision requested")


@router.get("/{request_id}/approvals", response_model=List[RequestApprovalResponse])
def list_request_approvals(
    request_id: int,
    current_round_only: bool = False,
    current_user: UserProfile = Depends(get_current_user),
    service: LeaveRequestService = Depends(get_leave_service),
):
    request = service.get_request(request_id)
    if not service.directory.can_view_request(current_user.id, request):
        raise AccessDeniedError("You cannot view this request")
    return service.get_approvals(request_id, current_round_only)
