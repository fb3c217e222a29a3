from typing import List, Optional

from leavedesk.models.activity_type import ActivityType
from leavedesk.models.leave_request import LeaveRequest, RequestStatus
from leavedesk.models.notification import Notification, NotificationTrigger
from leavedesk.models.request_approval import RequestApproval
from leavedesk.services.base import BaseService

# Activity-type switch for each trigger; revision requests always notify the requester
_TRIGGER_FLAGS = {
    NotificationTrigger.ON_SUBMIT: "notify_on_submit",
    NotificationTrigger.ON_APPROVE: "notify_on_approve",
    NotificationTrigger.ON_REJECT: "notify_on_reject",
    NotificationTrigger.ON_CANCEL: "notify_on_cancel",
}


class NotificationService(BaseService):
    def notify(self, request: LeaveRequest, trigger: NotificationTrigger) -> List[Notification]:
        """
        Fire-after-commit trigger. Call only once the state transition is committed.
        Best-effort: a failure here is logged and rolled back, never propagated.
        """
        try:
            activity_type = self.db.get(ActivityType, request.activity_type_id)
            flag = _TRIGGER_FLAGS.get(trigger)
            if activity_type is not None and flag and not getattr(activity_type, flag):
                return []

            title, message, kind = self._render(request, trigger, activity_type)
            created = []
            for user_id in self._recipients(request, trigger):
                notification = Notification(
                    user_id=user_id,
                    request_id=request.id,
                    trigger=trigger,
                    title=title,
                    message=message,
                    type=kind,
                )
                self.db.add(notification)
                created.append(notification)
            self.db.commit()
            self._logger.info(
                f"Notification {trigger.value} for {request.request_number} sent to {len(created)} recipient(s)"
            )
            return created
        except Exception as e:
            # Don't fail the request if notification fails
            self.db.rollback()
            self._logger.warning(f"Notification failed for request {request.id} ({trigger.value}): {e}", exc_info=True)
            return []

    def unread_for(self, user_id: int) -> List[Notification]:
        return self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).order_by(Notification.id).all()

    def _recipients(self, request: LeaveRequest, trigger: NotificationTrigger) -> List[int]:
        approver_ids = [
            row[0] for row in self.db.query(RequestApproval.approver_id).filter(
                RequestApproval.request_id == request.id,
                RequestApproval.round == request.submission_round,
            ).order_by(RequestApproval.level, RequestApproval.sequence).all()
        ]

        if trigger == NotificationTrigger.ON_SUBMIT:
            recipients = approver_ids or [request.user_id]
        elif trigger == NotificationTrigger.ON_CANCEL:
            recipients = [request.user_id] + approver_ids
        else:
            recipients = [request.user_id]

        unique = []
        for user_id in recipients:
            if user_id not in unique:
                unique.append(user_id)
        return unique

    @staticmethod
    def _render(request: LeaveRequest, trigger: NotificationTrigger, activity_type: Optional[ActivityType]):
        label = activity_type.name if activity_type else "Leave"
        span = f"{request.start_date.isoformat()} to {request.end_date.isoformat()}"

        if trigger == NotificationTrigger.ON_SUBMIT:
            if request.status == RequestStatus.APPROVED:
                return ("Leave Approved", f"Your {label} request {request.request_number} ({span}) was approved automatically.", "success")
            return ("Leave Approval Needed", f"{label} request {request.request_number} for {request.total_days} day(s), {span}, awaits your approval.", "info")
        if trigger == NotificationTrigger.ON_APPROVE:
            return ("Leave Approved", f"Your {label} request {request.request_number} for {request.total_days} day(s) has been APPROVED.", "success")
        if trigger == NotificationTrigger.ON_REJECT:
            return ("Leave Rejected", f"Your {label} request {request.request_number} has been REJECTED.", "error")
        if trigger == NotificationTrigger.ON_CANCEL:
            reason = f" Reason: {request.cancellation_reason}" if request.cancellation_reason else ""
            return ("Leave Cancelled", f"{label} request {request.request_number} ({span}) was cancelled.{reason}", "warning")
        return ("Revision Requested", f"Your {label} request {request.request_number} needs changes before it can be approved.", "warning")
