"""
Leave Request Lifecycle

Draft -> Pending -> Approved | Rejected | Cancelled | RevisionRequested
RevisionRequested -> Pending (resubmit)

Each transition runs as one transaction: the request row is locked, status, approval
rows and balance ledger change together, the audit trail is written alongside, and
the whole unit commits or rolls back as one. Notifications fire only after commit.

Architecture:
- Router -> LeaveRequestService (this module) -> Ledger / Workflow / Evaluator -> Models
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from leavedesk.core.config import settings
from leavedesk.core.exceptions import AccessDeniedError, BusinessRuleError, NotFoundError
from leavedesk.models.activity_type import ActivityType, TimeTrackingMode
from leavedesk.models.leave_request import (
    EDITABLE_STATUSES,
    INACTIVE_STATUSES,
    HalfDayPeriod,
    LeaveRequest,
    RequestStatus,
)
from leavedesk.models.notification import NotificationTrigger
from leavedesk.models.proxy_approver import ProxyAssignment
from leavedesk.models.request_approval import ApprovalStatus, RequestApproval
from leavedesk.models.request_comment import RequestComment
from leavedesk.models.user import UserProfile
from leavedesk.services.audit import AuditService
from leavedesk.services.balance import BalanceLedger
from leavedesk.services.base import BaseService, utc_today, utcnow
from leavedesk.services.completion import ApprovalTracker
from leavedesk.services.directory import UserDirectory
from leavedesk.services.holiday_calendar import HolidayCalendar
from leavedesk.services.notification import NotificationService
from leavedesk.services.proxy import ProxyResolver
from leavedesk.services.workflow import ApprovalWorkflowGenerator


class LeaveRequestService(BaseService):
    def __init__(
        self,
        db,
        actor_id: Optional[int] = None,
        *,
        audit: Optional[AuditService] = None,
        directory: Optional[UserDirectory] = None,
        proxies: Optional[ProxyResolver] = None,
        calendar: Optional[HolidayCalendar] = None,
        ledger: Optional[BalanceLedger] = None,
        workflow: Optional[ApprovalWorkflowGenerator] = None,
        tracker: Optional[ApprovalTracker] = None,
        notifications: Optional[NotificationService] = None,
    ):
        super().__init__(db)
        self.audit = audit or AuditService(db, actor_id)
        self.directory = directory or UserDirectory(db)
        self.proxies = proxies or ProxyResolver(db)
        self.calendar = calendar or HolidayCalendar(db)
        self.ledger = ledger or BalanceLedger(db, self.audit)
        self.workflow = workflow or ApprovalWorkflowGenerator(db, self.directory, self.proxies)
        self.tracker = tracker or ApprovalTracker(db)
        self.notifications = notifications or NotificationService(db)

    # ------------------------------------------------------------------
    # Draft handling
    # ------------------------------------------------------------------

    def create(
        self,
        user_id: int,
        activity_type_id: int,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
        comment: Optional[str] = None,
        half_day_period: Optional[HalfDayPeriod] = None,
    ) -> LeaveRequest:
        try:
            user = self.directory.require_user(user_id)
            activity_type = self._require_activity_type(activity_type_id)
            if not activity_type.is_active:
                raise BusinessRuleError(f"Activity type '{activity_type.name}' is not active")

            total_days = self._validated_days(user, activity_type, start_date, end_date)

            request = LeaveRequest(
                user_id=user.id,
                activity_type_id=activity_type.id,
                status=RequestStatus.DRAFT,
                start_date=start_date,
                end_date=end_date,
                time_tracking_mode=activity_type.time_tracking_mode,
                half_day_period=half_day_period,
                total_days=total_days,
                reason=reason,
                comment=comment,
                submission_round=0,
            )
            self._insert_numbered(request)
            self.audit.record("LeaveRequest", request.id, "Created", None, self._snapshot(request))
            self.commit()
        except Exception:
            self.rollback()
            raise

        self._logger.info(f"Created {request.request_number} for user {user_id}: {total_days} day(s)")
        return request

    def update(
        self,
        request_id: int,
        user_id: int,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
        comment: Optional[str] = None,
        half_day_period: Optional[HalfDayPeriod] = None,
    ) -> LeaveRequest:
        """
        Edit a Draft or RevisionRequested request. Day count, balance sufficiency and
        overlap are re-evaluated against the new dates, exactly as on create.
        """
        try:
            request = self._locked_request(request_id)
            if request.user_id != user_id:
                raise AccessDeniedError("You can only update your own requests")
            if request.status not in EDITABLE_STATUSES:
                raise BusinessRuleError("Only draft or revision-requested requests can be updated")

            user = self.directory.require_user(request.user_id)
            activity_type = self._require_activity_type(request.activity_type_id)
            before = self._snapshot(request)

            request.total_days = self._validated_days(
                user, activity_type, start_date, end_date,
                exclude_request_id=request.id, mode=request.time_tracking_mode,
            )
            request.start_date = start_date
            request.end_date = end_date
            request.half_day_period = half_day_period
            request.reason = reason
            request.comment = comment
            request.updated_at = utcnow()

            self.db.flush()
            self.audit.record("LeaveRequest", request.id, "Updated", before, self._snapshot(request))
            self.commit()
        except Exception:
            self.rollback()
            raise
        return request

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, request_id: int, user_id: int) -> LeaveRequest:
        try:
            request = self._locked_request(request_id)
            if request.user_id != user_id:
                raise AccessDeniedError("You can only submit your own requests")
            if request.status not in EDITABLE_STATUSES:
                raise BusinessRuleError("Only draft or revision-requested requests can be submitted")

            activity_type = self._require_activity_type(request.activity_type_id)
            requester = self.directory.require_user(request.user_id)

            old_status = request.status
            now = utcnow()
            request.submission_round += 1
            request.submitted_at = now
            request.updated_at = now

            if not activity_type.needs_approval:
                request.status = RequestStatus.APPROVED
                request.processed_at = now
                if activity_type.deducts_from_balance:
                    self.ledger.deduct(request.user_id, request.activity_type_id,
                                       request.balance_year, request.total_days)
            else:
                approvals = self.workflow.generate(request, requester, activity_type)
                self.db.add_all(approvals)
                request.status = RequestStatus.PENDING
                if activity_type.deducts_from_balance:
                    self.ledger.add_pending(request.user_id, request.activity_type_id,
                                            request.balance_year, request.total_days)

            self.db.flush()
            self.audit.record("LeaveRequest", request.id, "Submitted",
                              {"status": old_status}, {"status": request.status, "round": request.submission_round})
            self.commit()
        except Exception:
            self.rollback()
            raise

        self._logger.info(f"Submitted {request.request_number}: now {request.status.value}")
        self.notifications.notify(request, NotificationTrigger.ON_SUBMIT)
        return request

    def approve(self, request_id: int, approver_id: int, comment: Optional[str] = None) -> LeaveRequest:
        completed = False
        waiting_on = None
        try:
            request = self._locked_request(request_id)
            if request.status != RequestStatus.PENDING:
                raise BusinessRuleError("Only pending requests can be approved")

            approval = self._actionable_approval(request, approver_id)
            self._act_on(approval, approver_id, ApprovalStatus.APPROVED, comment)
            self.db.flush()

            requester = self.directory.require_user(request.user_id)
            if self.tracker.is_complete(request, requester.approval_logic):
                activity_type = self._require_activity_type(request.activity_type_id)
                now = utcnow()
                request.status = RequestStatus.APPROVED
                request.processed_at = now
                request.updated_at = now
                self._close_round(request)
                if activity_type.deducts_from_balance:
                    self.ledger.remove_pending(request.user_id, request.activity_type_id,
                                               request.balance_year, request.total_days)
                    self.ledger.deduct(request.user_id, request.activity_type_id,
                                       request.balance_year, request.total_days)
                completed = True
            else:
                next_row = self.tracker.next_pending(request)
                waiting_on = next_row.approver_id if next_row else None

            self.db.flush()
            self.audit.record("RequestApproval", approval.id, "Approved", None,
                              {"status": approval.status, "comment": comment,
                               "proxy_approver_id": approval.proxy_approver_id,
                               "request_status": request.status})
            self.commit()
        except Exception:
            self.rollback()
            raise

        if completed:
            self._logger.info(f"{request.request_number} fully approved")
            self.notifications.notify(request, NotificationTrigger.ON_APPROVE)
        else:
            self._logger.info(f"{request.request_number} approved by {approver_id}, next approver {waiting_on}")
        return request

    def reject(self, request_id: int, approver_id: int, comment: Optional[str] = None) -> LeaveRequest:
        """A single rejection ends the whole request, whatever else is still pending."""
        try:
            request = self._locked_request(request_id)
            if request.status != RequestStatus.PENDING:
                raise BusinessRuleError("Only pending requests can be rejected")

            approval = self._actionable_approval(request, approver_id)
            self._act_on(approval, approver_id, ApprovalStatus.REJECTED, comment)

            activity_type = self._require_activity_type(request.activity_type_id)
            now = utcnow()
            request.status = RequestStatus.REJECTED
            request.processed_at = now
            request.updated_at = now
            self._close_round(request)
            if activity_type.deducts_from_balance:
                self.ledger.remove_pending(request.user_id, request.activity_type_id,
                                           request.balance_year, request.total_days)

            self.db.flush()
            self.audit.record("RequestApproval", approval.id, "Rejected", None,
                              {"status": approval.status, "comment": comment,
                               "proxy_approver_id": approval.proxy_approver_id})
            self.commit()
        except Exception:
            self.rollback()
            raise

        self._logger.info(f"{request.request_number} rejected by {approver_id}")
        self.notifications.notify(request, NotificationTrigger.ON_REJECT)
        return request

    def cancel(self, request_id: int, user_id: int, reason: Optional[str] = None) -> LeaveRequest:
        try:
            request = self._locked_request(request_id)
            actor = self.directory.require_user(user_id)
            if request.user_id != user_id and not actor.is_hr_admin:
                raise AccessDeniedError("You can only cancel your own requests")

            activity_type = self._require_activity_type(request.activity_type_id)
            if not activity_type.allow_cancellation:
                raise BusinessRuleError("This activity type does not allow cancellation")
            if request.status == RequestStatus.CANCELLED:
                raise BusinessRuleError("Request is already cancelled")
            if request.status == RequestStatus.REJECTED:
                raise BusinessRuleError("Rejected requests cannot be cancelled")
            self._check_cancellation_deadline(request, activity_type)

            old_status = request.status
            now = utcnow()
            request.status = RequestStatus.CANCELLED
            request.cancellation_reason = reason
            request.cancelled_at = now
            request.cancelled_by_user_id = user_id
            request.updated_at = now
            self._close_round(request)

            if activity_type.deducts_from_balance:
                if old_status == RequestStatus.PENDING:
                    self.ledger.remove_pending(request.user_id, request.activity_type_id,
                                               request.balance_year, request.total_days)
                elif old_status == RequestStatus.APPROVED:
                    self.ledger.restore(request.user_id, request.activity_type_id,
                                        request.balance_year, request.total_days)

            self.db.flush()
            self.audit.record("LeaveRequest", request.id, "Cancelled",
                              {"status": old_status},
                              {"status": request.status, "cancellation_reason": reason, "cancelled_by": user_id})
            self.commit()
        except Exception:
            self.rollback()
            raise

        self._logger.info(f"{request.request_number} cancelled by {user_id} (was {old_status.value})")
        self.notifications.notify(request, NotificationTrigger.ON_CANCEL)
        return request

    def request_revision(self, request_id: int, approver_id: int, comment: str) -> LeaveRequest:
        if not comment or not comment.strip():
            raise BusinessRuleError("Comment is required for revision request")

        try:
            request = self._locked_request(request_id)
            if request.status != RequestStatus.PENDING:
                raise BusinessRuleError("Only pending requests can be returned for revision")

            approval = self._actionable_approval(request, approver_id)
            approval.comment = comment
            if approver_id != approval.approver_id:
                approval.proxy_approver_id = approver_id

            activity_type = self._require_activity_type(request.activity_type_id)
            request.status = RequestStatus.REVISION_REQUESTED
            request.updated_at = utcnow()
            self._close_round(request)
            self.db.add(RequestComment(
                request_id=request.id,
                user_id=approver_id,
                comment=comment,
                is_internal=False,
            ))
            if activity_type.deducts_from_balance:
                self.ledger.remove_pending(request.user_id, request.activity_type_id,
                                           request.balance_year, request.total_days)

            self.db.flush()
            self.audit.record("LeaveRequest", request.id, "RevisionRequested",
                              {"status": RequestStatus.PENDING},
                              {"status": request.status, "comment": comment, "requested_by": approver_id})
            self.commit()
        except Exception:
            self.rollback()
            raise

        self._logger.info(f"{request.request_number} returned for revision by {approver_id}")
        self.notifications.notify(request, NotificationTrigger.ON_REVISION_REQUEST)
        return request

    # ------------------------------------------------------------------
    # Calculations
    # ------------------------------------------------------------------

    def calculate_days(
        self,
        start_date: date,
        end_date: date,
        mode: TimeTrackingMode,
        company_id: Optional[int],
    ) -> float:
        """Business days in [start, end], skipping weekends and the company's holidays."""
        if mode == TimeTrackingMode.HALF_DAY:
            return 0.5
        if end_date < start_date:
            return 0.0

        holidays = self.calendar.holiday_dates(company_id, start_date, end_date)
        weekend = set(settings.leave.weekend_days)

        total = 0.0
        current = start_date
        while current <= end_date:
            if current.weekday() not in weekend and current not in holidays:
                total += 1
            current += timedelta(days=1)
        return total

    def has_overlapping_request(
        self,
        user_id: int,
        start_date: date,
        end_date: date,
        exclude_request_id: Optional[int] = None,
    ) -> bool:
        query = self.db.query(LeaveRequest.id).filter(
            LeaveRequest.user_id == user_id,
            LeaveRequest.status.notin_(list(INACTIVE_STATUSES)),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        if exclude_request_id is not None:
            query = query.filter(LeaveRequest.id != exclude_request_id)
        return query.first() is not None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: int) -> LeaveRequest:
        request = self.db.get(LeaveRequest, request_id)
        if request is None:
            raise NotFoundError("Leave request", request_id)
        return request

    def get_user_requests(self, user_id: int, year: Optional[int] = None,
                          status: Optional[RequestStatus] = None) -> List[LeaveRequest]:
        year = year or utc_today().year
        query = self.db.query(LeaveRequest).filter(
            LeaveRequest.user_id == user_id,
            LeaveRequest.start_date >= date(year, 1, 1),
            LeaveRequest.start_date <= date(year, 12, 31),
        )
        if status is not None:
            query = query.filter(LeaveRequest.status == status)
        return query.order_by(LeaveRequest.start_date.desc(), LeaveRequest.id.desc()).all()

    def get_team_requests(self, manager_id: int, year: Optional[int] = None) -> List[LeaveRequest]:
        subordinate_ids = self.directory.get_subordinate_ids(manager_id)
        if not subordinate_ids:
            return []
        query = self.db.query(LeaveRequest).filter(
            LeaveRequest.user_id.in_(subordinate_ids),
            LeaveRequest.status != RequestStatus.DRAFT,
        )
        if year is not None:
            query = query.filter(
                LeaveRequest.start_date >= date(year, 1, 1),
                LeaveRequest.start_date <= date(year, 12, 31),
            )
        return query.order_by(LeaveRequest.start_date, LeaveRequest.id).all()

    def get_pending_approvals(self, approver_id: int) -> List[LeaveRequest]:
        """Pending requests the user can act on now, directly or as an active proxy."""
        today = utc_today()
        covered_ids = [
            row[0] for row in self.db.query(ProxyAssignment.original_approver_id).filter(
                ProxyAssignment.proxy_user_id == approver_id,
                ProxyAssignment.is_active == True,
                ProxyAssignment.start_date <= today,
                ProxyAssignment.end_date >= today,
            ).all()
        ]
        # An overlapping, newer assignment may route a covered approver elsewhere
        covered_ids = [a for a in covered_ids if self.proxies.is_acting_proxy(approver_id, a, today)]

        rows = (
            self.db.query(RequestApproval)
            .join(LeaveRequest, LeaveRequest.id == RequestApproval.request_id)
            .filter(
                LeaveRequest.status == RequestStatus.PENDING,
                LeaveRequest.user_id != approver_id,
                RequestApproval.round == LeaveRequest.submission_round,
                RequestApproval.status == ApprovalStatus.PENDING,
                RequestApproval.approver_id.in_([approver_id] + covered_ids),
            )
            .all()
        )
        request_ids = sorted({row.request_id for row in rows})
        if not request_ids:
            return []
        return self.db.query(LeaveRequest).filter(
            LeaveRequest.id.in_(request_ids)
        ).order_by(LeaveRequest.submitted_at, LeaveRequest.id).all()

    def get_approvals(self, request_id: int, current_round_only: bool = False) -> List[RequestApproval]:
        request = self.get_request(request_id)
        if current_round_only:
            return self.tracker.current_round(request)
        return self.db.query(RequestApproval).filter(
            RequestApproval.request_id == request.id
        ).order_by(RequestApproval.round, RequestApproval.level, RequestApproval.sequence).all()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _locked_request(self, request_id: int) -> LeaveRequest:
        request = (
            self.db.query(LeaveRequest)
            .filter(LeaveRequest.id == request_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if request is None:
            raise NotFoundError("Leave request", request_id)
        return request

    def _require_activity_type(self, activity_type_id: int) -> ActivityType:
        activity_type = self.db.get(ActivityType, activity_type_id)
        if activity_type is None:
            raise NotFoundError("Activity type", activity_type_id)
        return activity_type

    def _validated_days(
        self,
        user: UserProfile,
        activity_type: ActivityType,
        start_date: date,
        end_date: date,
        exclude_request_id: Optional[int] = None,
        mode: Optional[TimeTrackingMode] = None,
    ) -> float:
        if end_date < start_date:
            raise BusinessRuleError("End date must not be before start date")

        total_days = self.calculate_days(start_date, end_date, mode or activity_type.time_tracking_mode,
                                         user.company_id)

        if activity_type.deducts_from_balance and not activity_type.allow_negative_balance:
            if not self.ledger.has_sufficient_balance(user.id, activity_type.id, start_date.year, total_days):
                raise BusinessRuleError(
                    "Insufficient balance for this request",
                    details={"requested_days": total_days, "year": start_date.year},
                )

        if not activity_type.allow_overlapping and self.has_overlapping_request(
            user.id, start_date, end_date, exclude_request_id
        ):
            raise BusinessRuleError("You have an overlapping request for this period")

        return total_days

    def _actionable_approval(self, request: LeaveRequest, user_id: int) -> RequestApproval:
        """The pending slot the user owns, else one whose owner the user currently covers for."""
        if user_id == request.user_id:
            raise AccessDeniedError("You cannot act on your own request")

        pending = [a for a in self.tracker.current_round(request) if a.status == ApprovalStatus.PENDING]
        # Own slots first, then the ones held as a stand-in
        pending.sort(key=lambda a: a.approver_id != user_id)

        today = utc_today()
        for approval in pending:
            if self.proxies.can_act_for(user_id, approval.approver_id, today):
                return approval

        raise AccessDeniedError("No pending approval found for this user")

    @staticmethod
    def _act_on(approval: RequestApproval, actor_id: int, status: ApprovalStatus, comment: Optional[str]):
        approval.status = status
        approval.comment = comment
        approval.action_date = utcnow()
        if actor_id != approval.approver_id:
            approval.proxy_approver_id = actor_id

    def _close_round(self, request: LeaveRequest):
        """Mark slots nobody acted on as Skipped once the request leaves Pending."""
        now = utcnow()
        for approval in self.tracker.current_round(request):
            if approval.status == ApprovalStatus.PENDING:
                approval.status = ApprovalStatus.SKIPPED
                approval.action_date = now

    @staticmethod
    def _check_cancellation_deadline(request: LeaveRequest, activity_type: ActivityType):
        # The deadline binds approved leave only
        hours = activity_type.cancellation_deadline_hours
        if hours is None or request.status != RequestStatus.APPROVED:
            return
        starts_at = datetime.combine(request.start_date, time.min, tzinfo=timezone.utc)
        if utcnow() > starts_at - timedelta(hours=hours):
            raise BusinessRuleError(
                f"Cancellation must happen at least {hours} hour(s) before the leave starts"
            )

    def _insert_numbered(self, request: LeaveRequest, attempts: int = 3) -> LeaveRequest:
        """Insert with the next free request number; a concurrent create may take it first."""
        for attempt in range(1, attempts + 1):
            request.request_number = self._next_request_number()
            try:
                with self.db.begin_nested():
                    self.db.add(request)
                return request
            except IntegrityError:
                if attempt == attempts:
                    raise
                self._logger.info(f"Request number {request.request_number} taken concurrently, retrying")

    def _next_request_number(self) -> str:
        year = utc_today().year
        prefix = f"{settings.leave.request_number_prefix}-{year}-"
        count = self.db.query(LeaveRequest.id).filter(
            LeaveRequest.request_number.like(f"{prefix}%")
        ).count()
        return f"{prefix}{count + 1:06d}"

    @staticmethod
    def _snapshot(request: LeaveRequest) -> dict:
        return {
            "status": request.status,
            "start_date": request.start_date,
            "end_date": request.end_date,
            "total_days": request.total_days,
            "reason": request.reason,
        }
