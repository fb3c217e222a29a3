from datetime import date
from typing import Optional

from leavedesk.models.proxy_approver import ProxyAssignment
from leavedesk.models.user import UserProfile
from leavedesk.services.base import BaseService


class ProxyResolver(BaseService):
    """
    Substitutes a delegate for an absent approver.

    If several active assignments for the same approver cover the same day, the most
    recently created one wins (created_at, then id).
    """

    def active_assignment(self, approver_id: int, as_of: date) -> Optional[ProxyAssignment]:
        return (
            self.db.query(ProxyAssignment)
            .join(UserProfile, UserProfile.id == ProxyAssignment.proxy_user_id)
            .filter(
                ProxyAssignment.original_approver_id == approver_id,
                ProxyAssignment.is_active == True,
                ProxyAssignment.start_date <= as_of,
                ProxyAssignment.end_date >= as_of,
                UserProfile.is_active == True,
            )
            .order_by(ProxyAssignment.created_at.desc(), ProxyAssignment.id.desc())
            .first()
        )

    def resolve_approver(self, approver_id: int, as_of: date) -> int:
        assignment = self.active_assignment(approver_id, as_of)
        if assignment is None:
            return approver_id
        self._logger.debug(f"Approver {approver_id} delegated to {assignment.proxy_user_id} on {as_of}")
        return assignment.proxy_user_id

    def is_acting_proxy(self, user_id: int, approver_id: int, as_of: date) -> bool:
        assignment = self.active_assignment(approver_id, as_of)
        return assignment is not None and assignment.proxy_user_id == user_id

    def can_act_for(self, user_id: int, approver_id: int, as_of: date) -> bool:
        """A user may act on an approval slot they own, or one they are covering for."""
        return user_id == approver_id or self.is_acting_proxy(user_id, approver_id, as_of)
