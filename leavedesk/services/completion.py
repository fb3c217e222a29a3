"""
Approval Completion Evaluator

Pure decisions over a request's approval rows, plus a small service that loads the
rows of the request's current submission round.
"""
from typing import Iterable, List, Optional

from leavedesk.models.leave_request import LeaveRequest
from leavedesk.models.request_approval import ApprovalStatus, RequestApproval
from leavedesk.models.user import ApprovalLogic
from leavedesk.services.base import BaseService

_SETTLED = (ApprovalStatus.APPROVED, ApprovalStatus.SKIPPED)


def has_rejection(approvals: Iterable[RequestApproval]) -> bool:
    return any(a.status == ApprovalStatus.REJECTED for a in approvals)


def is_approval_complete(approvals: Iterable[RequestApproval], logic: ApprovalLogic) -> bool:
    """
    AnyManager: every level present needs at least one Approved row.
    AllManagers: every row must be Approved or Skipped.

    A rejected row never completes; detecting the rejection itself is the
    lifecycle's job. No rows at all means there is nothing to wait for.
    """
    approvals = list(approvals)
    if not approvals:
        return True
    if has_rejection(approvals):
        return False

    if logic == ApprovalLogic.ANY_MANAGER:
        levels = sorted({a.level for a in approvals})
        return all(
            any(a.status == ApprovalStatus.APPROVED for a in approvals if a.level == level)
            for level in levels
        )

    return all(a.status in _SETTLED for a in approvals)


def next_pending_approval(approvals: Iterable[RequestApproval]) -> Optional[RequestApproval]:
    """The Pending row with the lowest (level, sequence). Informational under AnyManager."""
    pending = [a for a in approvals if a.status == ApprovalStatus.PENDING]
    if not pending:
        return None
    return min(pending, key=lambda a: (a.level, a.sequence))


class ApprovalTracker(BaseService):
    def current_round(self, request: LeaveRequest) -> List[RequestApproval]:
        return (
            self.db.query(RequestApproval)
            .filter(
                RequestApproval.request_id == request.id,
                RequestApproval.round == request.submission_round,
            )
            .order_by(RequestApproval.level, RequestApproval.sequence)
            .all()
        )

    def is_complete(self, request: LeaveRequest, logic: ApprovalLogic) -> bool:
        return is_approval_complete(self.current_round(request), logic)

    def next_pending(self, request: LeaveRequest) -> Optional[RequestApproval]:
        return next_pending_approval(self.current_round(request))
