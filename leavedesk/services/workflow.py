"""
Approval Workflow Generator

Turns a submitted request into its approval chain. The requester's active managers
are resolved (with proxies substituted for absent managers), then the activity
type's workflow kind picks which of them approve, at which level and in which order.

Each workflow kind maps to one planning function over the resolved approvers.
"""
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional

from leavedesk.core.exceptions import WorkflowConfigurationError
from leavedesk.models.activity_type import ActivityType, ApprovalWorkflow
from leavedesk.models.leave_request import LeaveRequest
from leavedesk.models.request_approval import ApprovalStatus, RequestApproval
from leavedesk.models.user import ApprovalLogic, UserProfile
from leavedesk.services.base import BaseService, utc_today
from leavedesk.services.directory import UserDirectory
from leavedesk.services.proxy import ProxyResolver


@dataclass(frozen=True)
class ResolvedApprover:
    approver_id: int
    level: int          # hierarchy depth of the original manager
    manager_id: int     # equals approver_id unless a proxy stands in


@dataclass(frozen=True)
class ApprovalSlot:
    approver_id: int
    level: int
    sequence: int
    is_required: bool


def plan_auto_approve(approvers: List[ResolvedApprover], is_required: bool,
                      max_levels: Optional[int]) -> List[ApprovalSlot]:
    return []


def plan_single_level(approvers: List[ResolvedApprover], is_required: bool,
                      max_levels: Optional[int]) -> List[ApprovalSlot]:
    direct = [a for a in approvers if a.level == 1]
    if not direct and approvers:
        # Malformed hierarchy (no level-1 edge): the first approver stands in as level 1
        return [ApprovalSlot(approvers[0].approver_id, 1, 1, True)]
    return [
        ApprovalSlot(a.approver_id, 1, sequence, is_required)
        for sequence, a in enumerate(direct, start=1)
    ]


def plan_multi_level(approvers: List[ResolvedApprover], is_required: bool,
                     max_levels: Optional[int]) -> List[ApprovalSlot]:
    by_level: Dict[int, List[ResolvedApprover]] = {}
    for approver in approvers:
        by_level.setdefault(approver.level, []).append(approver)

    levels = sorted(by_level)
    if max_levels is not None:
        levels = levels[:max_levels]

    slots = []
    sequence = 1
    for level in levels:
        for approver in by_level[level]:
            slots.append(ApprovalSlot(approver.approver_id, level, sequence, is_required))
            sequence += 1
    return slots


def plan_skip_level(approvers: List[ResolvedApprover], is_required: bool,
                    max_levels: Optional[int]) -> List[ApprovalSlot]:
    chosen = [a for a in approvers if a.level > 1] or list(approvers)
    return [
        ApprovalSlot(a.approver_id, 1, sequence, is_required)
        for sequence, a in enumerate(chosen, start=1)
    ]


WORKFLOW_PLANNERS: Dict[ApprovalWorkflow, Callable[..., List[ApprovalSlot]]] = {
    ApprovalWorkflow.AUTO_APPROVE: plan_auto_approve,
    ApprovalWorkflow.SINGLE_LEVEL: plan_single_level,
    ApprovalWorkflow.MULTI_LEVEL: plan_multi_level,
    ApprovalWorkflow.SKIP_LEVEL: plan_skip_level,
}

_unplanned = set(ApprovalWorkflow) - set(WORKFLOW_PLANNERS)
if _unplanned:
    raise RuntimeError(f"No approval planner registered for: {sorted(w.value for w in _unplanned)}")


class ApprovalWorkflowGenerator(BaseService):
    def __init__(self, db, directory: UserDirectory, proxies: ProxyResolver):
        super().__init__(db)
        self.directory = directory
        self.proxies = proxies

    def resolve_approvers(self, requester_id: int, as_of: Optional[date] = None) -> List[ResolvedApprover]:
        """Active managers in hierarchy order, each replaced by its proxy if one covers as_of."""
        as_of = as_of or utc_today()
        resolved: List[ResolvedApprover] = []
        seen = set()
        for rel in self.directory.get_manager_relationships(requester_id):
            approver_id = self.proxies.resolve_approver(rel.manager_id, as_of)
            # A requester never lands in their own chain, even as the stand-in
            if approver_id == requester_id:
                approver_id = rel.manager_id
            # Two managers delegating to the same proxy must not produce two slots
            key = (approver_id, rel.level)
            if key in seen:
                continue
            seen.add(key)
            resolved.append(ResolvedApprover(approver_id, rel.level, rel.manager_id))
        return resolved

    def generate(
        self,
        request: LeaveRequest,
        requester: UserProfile,
        activity_type: ActivityType,
        as_of: Optional[date] = None,
    ) -> List[RequestApproval]:
        """
        Build the unsaved approval rows for the request's current submission round.
        Returns an empty list when the activity type does not need approval.
        """
        if not activity_type.needs_approval:
            return []

        approvers = self.resolve_approvers(requester.id, as_of)
        if not approvers:
            self._logger.error(
                f"No approvers resolvable for user {requester.id} (request {request.request_number})"
            )
            raise WorkflowConfigurationError(
                "No approvers found for this request",
                details={"user_id": requester.id, "activity_type_id": activity_type.id},
            )

        planner = WORKFLOW_PLANNERS[activity_type.approval_workflow]
        slots = planner(
            approvers,
            is_required=requester.approval_logic == ApprovalLogic.ALL_MANAGERS,
            max_levels=activity_type.max_approval_levels,
        )
        if not slots:
            raise WorkflowConfigurationError(
                f"Workflow {activity_type.approval_workflow.value} produced an empty approval chain",
                details={"activity_type_id": activity_type.id,
                         "max_approval_levels": activity_type.max_approval_levels},
            )

        return [
            RequestApproval(
                request_id=request.id,
                approver_id=slot.approver_id,
                level=slot.level,
                sequence=slot.sequence,
                round=request.submission_round,
                status=ApprovalStatus.PENDING,
                is_required=slot.is_required,
            )
            for slot in slots
        ]
