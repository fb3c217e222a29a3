from typing import List, Optional

from leavedesk.core.exceptions import NotFoundError
from leavedesk.models.leave_request import LeaveRequest
from leavedesk.models.request_approval import RequestApproval
from leavedesk.models.user import UserProfile
from leavedesk.models.user_manager import ManagerRelationship
from leavedesk.services.base import BaseService


class UserDirectory(BaseService):
    """Read-only view of users and the reporting hierarchy."""

    def get_user(self, user_id: int) -> Optional[UserProfile]:
        return self.db.get(UserProfile, user_id)

    def require_user(self, user_id: int) -> UserProfile:
        user = self.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def get_manager_relationships(self, user_id: int) -> List[ManagerRelationship]:
        """Active edges to active managers, in hierarchy order (level, primary first, id)."""
        return (
            self.db.query(ManagerRelationship)
            .join(UserProfile, UserProfile.id == ManagerRelationship.manager_id)
            .filter(
                ManagerRelationship.user_id == user_id,
                ManagerRelationship.is_active == True,
                UserProfile.is_active == True,
            )
            .order_by(
                ManagerRelationship.level,
                ManagerRelationship.is_primary.desc(),
                ManagerRelationship.id,
            )
            .all()
        )

    def get_subordinate_relationships(self, manager_id: int) -> List[ManagerRelationship]:
        return (
            self.db.query(ManagerRelationship)
            .join(UserProfile, UserProfile.id == ManagerRelationship.user_id)
            .filter(
                ManagerRelationship.manager_id == manager_id,
                ManagerRelationship.is_active == True,
                UserProfile.is_active == True,
            )
            .order_by(ManagerRelationship.id)
            .all()
        )

    def get_subordinate_ids(self, manager_id: int) -> List[int]:
        seen = []
        for rel in self.get_subordinate_relationships(manager_id):
            if rel.user_id not in seen:
                seen.append(rel.user_id)
        return seen

    def get_hierarchy_tree(self, manager_id: int) -> List[int]:
        """
        All direct and indirect subordinates of a manager.
        The relationship table does not enforce acyclicity; a cycle just ends that branch.
        """
        result: List[int] = []
        visited = set()
        self._collect_subordinates(manager_id, result, visited)
        return result

    def _collect_subordinates(self, manager_id: int, result: List[int], visited: set):
        if manager_id in visited:
            return
        visited.add(manager_id)
        for subordinate_id in self.get_subordinate_ids(manager_id):
            if subordinate_id not in visited:
                result.append(subordinate_id)
                self._collect_subordinates(subordinate_id, result, visited)

    def can_view_request(self, user_id: int, request: LeaveRequest) -> bool:
        if request.user_id == user_id:
            return True

        viewer = self.get_user(user_id)
        if viewer is None:
            return False
        if viewer.is_hr_admin:
            return True

        if request.user_id in self.get_hierarchy_tree(user_id):
            return True

        return self.db.query(RequestApproval.id).filter(
            RequestApproval.request_id == request.id,
            (RequestApproval.approver_id == user_id) | (RequestApproval.proxy_approver_id == user_id),
        ).first() is not None
