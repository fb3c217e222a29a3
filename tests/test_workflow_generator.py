import pytest
from datetime import date, timedelta

from leavedesk.core.exceptions import WorkflowConfigurationError
from leavedesk.models.activity_type import ApprovalWorkflow
from leavedesk.models.leave_request import LeaveRequest
from leavedesk.models.request_approval import ApprovalStatus
from leavedesk.models.user import ApprovalLogic, UserRole
from leavedesk.services.directory import UserDirectory
from leavedesk.services.proxy import ProxyResolver
from leavedesk.services.workflow import (
    WORKFLOW_PLANNERS,
    ApprovalWorkflowGenerator,
    ResolvedApprover,
    plan_multi_level,
    plan_single_level,
    plan_skip_level,
)


@pytest.fixture
def generator(db_session):
    return ApprovalWorkflowGenerator(db_session, UserDirectory(db_session), ProxyResolver(db_session))


def _draft(user, activity_type, round_no=1):
    return LeaveRequest(
        id=1,
        request_number="LR-2030-000001",
        user_id=user.id,
        activity_type_id=activity_type.id,
        start_date=date(2030, 3, 4),
        end_date=date(2030, 3, 5),
        total_days=2,
        submission_round=round_no,
    )


def _chain(rows):
    return [(r.approver_id, r.level, r.sequence) for r in rows]


# --- Planners ---------------------------------------------------------------

def test_every_workflow_kind_has_a_planner():
    assert set(WORKFLOW_PLANNERS) == set(ApprovalWorkflow)


def test_single_level_keeps_direct_managers_only():
    approvers = [ResolvedApprover(10, 1, 10), ResolvedApprover(11, 1, 11), ResolvedApprover(20, 2, 20)]
    slots = plan_single_level(approvers, is_required=False, max_levels=None)

    assert [(s.approver_id, s.level, s.sequence, s.is_required) for s in slots] == [
        (10, 1, 1, False), (11, 1, 2, False),
    ]


def test_single_level_falls_back_to_first_approver():
    approvers = [ResolvedApprover(20, 2, 20), ResolvedApprover(30, 3, 30)]
    slots = plan_single_level(approvers, is_required=False, max_levels=None)

    assert len(slots) == 1
    assert (slots[0].approver_id, slots[0].level, slots[0].sequence) == (20, 1, 1)
    assert slots[0].is_required is True


def test_multi_level_orders_levels_and_numbers_globally():
    approvers = [
        ResolvedApprover(10, 1, 10), ResolvedApprover(11, 1, 11),
        ResolvedApprover(20, 2, 20), ResolvedApprover(30, 3, 30),
    ]
    slots = plan_multi_level(approvers, is_required=True, max_levels=None)

    assert [(s.approver_id, s.level, s.sequence) for s in slots] == [
        (10, 1, 1), (11, 1, 2), (20, 2, 3), (30, 3, 4),
    ]
    assert all(s.is_required for s in slots)


def test_multi_level_respects_max_levels():
    approvers = [ResolvedApprover(10, 1, 10), ResolvedApprover(20, 2, 20), ResolvedApprover(30, 3, 30)]
    slots = plan_multi_level(approvers, is_required=False, max_levels=2)

    assert [s.level for s in slots] == [1, 2]


def test_skip_level_prefers_upper_management():
    approvers = [ResolvedApprover(10, 1, 10), ResolvedApprover(20, 2, 20), ResolvedApprover(30, 3, 30)]
    slots = plan_skip_level(approvers, is_required=False, max_levels=None)

    assert [(s.approver_id, s.level, s.sequence) for s in slots] == [(20, 1, 1), (30, 1, 2)]


def test_skip_level_falls_back_to_everyone():
    approvers = [ResolvedApprover(10, 1, 10)]
    slots = plan_skip_level(approvers, is_required=False, max_levels=None)

    assert [(s.approver_id, s.level) for s in slots] == [(10, 1)]


# --- Generator against the hierarchy ----------------------------------------

def test_auto_approve_generates_nothing(generator, team, make_activity_type):
    auto = make_activity_type("WFH", approval_workflow=ApprovalWorkflow.AUTO_APPROVE)
    employee = team["employee"]

    assert generator.generate(_draft(employee, auto), employee, auto) == []


def test_not_requiring_approval_generates_nothing(generator, team, make_activity_type):
    free = make_activity_type("FREE", requires_approval=False, approval_workflow=ApprovalWorkflow.MULTI_LEVEL)
    employee = team["employee"]

    assert generator.generate(_draft(employee, free), employee, free) == []


def test_single_level_one_row_for_direct_manager(generator, team, make_activity_type):
    single = make_activity_type("VAC", approval_workflow=ApprovalWorkflow.SINGLE_LEVEL)
    employee = team["employee"]

    rows = generator.generate(_draft(employee, single, round_no=3), employee, single)

    assert _chain(rows) == [(team["manager"].id, 1, 1)]
    assert rows[0].status == ApprovalStatus.PENDING
    assert rows[0].round == 3
    assert rows[0].is_required is False


def test_all_managers_logic_marks_rows_required(generator, make_user, link_manager, make_activity_type):
    boss = make_user(UserRole.MANAGER, name="boss")
    strict = make_user(approval_logic=ApprovalLogic.ALL_MANAGERS, name="strict")
    link_manager(strict, boss, level=1)
    multi = make_activity_type("VAC", approval_workflow=ApprovalWorkflow.MULTI_LEVEL)

    rows = generator.generate(_draft(strict, multi), strict, multi)

    assert [r.is_required for r in rows] == [True]


def test_multi_level_follows_hierarchy(generator, team, make_activity_type):
    multi = make_activity_type("VAC", approval_workflow=ApprovalWorkflow.MULTI_LEVEL)
    employee = team["employee"]

    rows = generator.generate(_draft(employee, multi), employee, multi)

    assert _chain(rows) == [(team["manager"].id, 1, 1), (team["director"].id, 2, 2)]


def test_proxy_substitutes_manager_and_keeps_level(generator, team, make_user, make_proxy, make_activity_type):
    deputy = make_user(UserRole.MANAGER, name="deputy")
    make_proxy(team["manager"], deputy)
    multi = make_activity_type("VAC", approval_workflow=ApprovalWorkflow.MULTI_LEVEL)
    employee = team["employee"]

    rows = generator.generate(_draft(employee, multi), employee, multi)

    assert _chain(rows) == [(deputy.id, 1, 1), (team["director"].id, 2, 2)]


def test_requester_as_proxy_keeps_original_manager(generator, team, make_proxy, make_activity_type):
    employee = team["employee"]
    make_proxy(team["manager"], employee)
    multi = make_activity_type("VAC", approval_workflow=ApprovalWorkflow.MULTI_LEVEL)

    rows = generator.generate(_draft(employee, multi), employee, multi)

    assert _chain(rows) == [(team["manager"].id, 1, 1), (team["director"].id, 2, 2)]


def test_expired_or_inactive_proxy_is_ignored(generator, team, make_user, make_proxy, make_activity_type):
    deputy = make_user(UserRole.MANAGER, name="deputy")
    today = date.today()
    make_proxy(team["manager"], deputy, start=today - timedelta(days=10), end=today - timedelta(days=3))
    make_proxy(team["manager"], deputy, is_active=False)
    single = make_activity_type("VAC")
    employee = team["employee"]

    rows = generator.generate(_draft(employee, single), employee, single)

    assert _chain(rows) == [(team["manager"].id, 1, 1)]


def test_inactive_relationships_and_managers_are_skipped(generator, make_user, link_manager, make_activity_type):
    gone = make_user(UserRole.MANAGER, is_active=False, name="gone")
    former = make_user(UserRole.MANAGER, name="former")
    current = make_user(UserRole.MANAGER, name="current")
    worker = make_user(name="worker")
    link_manager(worker, gone, level=1)
    link_manager(worker, former, level=1, is_active=False)
    link_manager(worker, current, level=1)
    single = make_activity_type("VAC")

    rows = generator.generate(_draft(worker, single), worker, single)

    assert _chain(rows) == [(current.id, 1, 1)]


def test_same_proxy_for_two_managers_yields_one_slot(generator, make_user, link_manager, make_proxy,
                                                      make_activity_type):
    first = make_user(UserRole.MANAGER, name="first")
    second = make_user(UserRole.MANAGER, name="second")
    stand_in = make_user(UserRole.MANAGER, name="standin")
    worker = make_user(name="worker")
    link_manager(worker, first, level=1)
    link_manager(worker, second, level=1)
    make_proxy(first, stand_in)
    make_proxy(second, stand_in)
    single = make_activity_type("VAC")

    rows = generator.generate(_draft(worker, single), worker, single)

    assert _chain(rows) == [(stand_in.id, 1, 1)]


def test_no_managers_is_a_configuration_error(generator, make_user, make_activity_type):
    loner = make_user(name="loner")
    single = make_activity_type("VAC")

    with pytest.raises(WorkflowConfigurationError):
        generator.generate(_draft(loner, single), loner, single)


def test_zero_levels_is_a_configuration_error(generator, team, make_activity_type):
    capped = make_activity_type("VAC", approval_workflow=ApprovalWorkflow.MULTI_LEVEL, max_approval_levels=0)
    employee = team["employee"]

    with pytest.raises(WorkflowConfigurationError):
        generator.generate(_draft(employee, capped), employee, capped)
