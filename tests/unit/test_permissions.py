"""Unit tests for permission checks on workflow commands."""

from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest_asyncio

from controltrack.core.clock import ManualClock
from controltrack.core.collaborators import RolePermissionChecker, StaticProviderDirectory
from controltrack.core.config import WorkflowSettings
from controltrack.core.errors import ErrorKind
from controltrack.core.result_types import Err
from controltrack.models import (
    AssignmentStatus,
    AuditAction,
    ControlAssignment,
)
from controltrack.workflow import SYSTEM_ACTOR, AuditLog, ComplianceWorkflow
from tests.fixtures.workflow_data import (
    ASSIGNMENT_DUE,
    AUDIT_LEAD,
    AUDITOR,
    CONTROL_ID,
    CYCLE_ID,
    PROVIDER,
    Q3_CYCLE,
    REVIEWER,
    FlakyAuditStore,
    RecordingNotifier,
    evidence_file,
    make_control,
)


@pytest_asyncio.fixture
async def secured(
    clock: ManualClock,
    notifier: RecordingNotifier,
    audit_store: FlakyAuditStore,
    directory: StaticProviderDirectory,
    settings: WorkflowSettings,
    role_permissions: RolePermissionChecker,
) -> AsyncGenerator[ComplianceWorkflow, None]:
    """Workflow that enforces the role table."""
    wf = ComplianceWorkflow(
        audit_log=AuditLog(audit_store, settings),
        clock=clock,
        permissions=role_permissions,
        notifier=notifier,
        directory=directory,
        settings=settings,
    )
    yield wf
    await wf.drain_side_effects()


@pytest_asyncio.fixture
async def secured_assignment(secured: ComplianceWorkflow) -> ControlAssignment:
    """Assignment set up by the audit lead and started by the auditor."""
    (await secured.cycles.register_control(make_control(), AUDIT_LEAD)).unwrap()
    (await secured.cycles.create_cycle(Q3_CYCLE, AUDIT_LEAD)).unwrap()
    assignment = (
        await secured.cycles.add_control_to_cycle(
            CYCLE_ID, CONTROL_ID, AUDITOR, ASSIGNMENT_DUE, AUDIT_LEAD
        )
    ).unwrap()
    return (
        await secured.assignments.transition(
            assignment.assignment_id, AssignmentStatus.IN_PROGRESS, AUDITOR
        )
    ).unwrap()


class TestDenials:
    """Test denied commands change nothing and leave an audit record."""

    async def test_guest_cannot_create_cycle(self, secured: ComplianceWorkflow) -> None:
        result = await secured.cycles.create_cycle(Q3_CYCLE, "guest")

        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.FORBIDDEN
        assert result.error.attempted == "create"
        assert CYCLE_ID not in secured.store.cycles

        trail = secured.get_audit_trail(CYCLE_ID)
        assert [e.action for e in trail] == [AuditAction.PERMISSION_DENIED]
        assert trail[0].actor == "guest"
        assert trail[0].metadata == {"attempted": "create", "scope": CYCLE_ID}

    async def test_provider_cannot_move_assignment(
        self, secured: ComplianceWorkflow, secured_assignment: ControlAssignment
    ) -> None:
        assignment_id = secured_assignment.assignment_id

        result = await secured.assignments.transition(
            assignment_id, AssignmentStatus.REVIEW, PROVIDER
        )

        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.FORBIDDEN
        assert secured.get_assignment(assignment_id).unwrap().status == (
            AssignmentStatus.IN_PROGRESS
        )
        assert secured.get_audit_trail(assignment_id)[-1].action == AuditAction.PERMISSION_DENIED

    async def test_provider_submits_but_cannot_cancel(
        self, secured: ComplianceWorkflow, secured_assignment: ControlAssignment
    ) -> None:
        requests = secured.evidence.list_requests(secured_assignment.assignment_id)
        request = next(r for r in requests if r.has_mandatory_spec())

        submitted = await secured.evidence.submit_evidence(
            request.request_id, [evidence_file()], PROVIDER
        )
        other = next(r for r in requests if r.request_id != request.request_id)
        cancelled = await secured.evidence.cancel_request(other.request_id, "No", PROVIDER)

        assert submitted.unwrap().request.is_open is False
        assert isinstance(cancelled, Err)
        assert cancelled.error.kind == ErrorKind.FORBIDDEN

    async def test_reviewer_cannot_test(
        self, secured: ComplianceWorkflow, secured_assignment: ControlAssignment
    ) -> None:
        result = await secured.testing.define_methodology(
            secured_assignment.assignment_id, 120, REVIEWER
        )

        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.FORBIDDEN
        assert secured.testing.get_execution(secured_assignment.assignment_id).is_err()


class TestSystemActor:
    """Test automatic follow-ons are not subject to the role table."""

    async def test_sweep_runs_without_grants(
        self,
        secured: ComplianceWorkflow,
        clock: ManualClock,
        secured_assignment: ControlAssignment,
    ) -> None:
        clock.set(ASSIGNMENT_DUE + timedelta(hours=48))

        report = await secured.sweeper.run_once()

        assert report.failures == 0
        assert report.requests_marked_overdue == 2
        assert report.assignments_blocked == 1
        denials = [
            e
            for e in secured.audit_log.query()
            if e.action == AuditAction.PERMISSION_DENIED
        ]
        assert denials == []

    async def test_system_name_is_checked_outside_the_sweep(
        self, secured: ComplianceWorkflow
    ) -> None:
        """Test the reserved name alone grants nothing and the denial is recorded."""
        result = await secured.cycles.create_cycle(Q3_CYCLE, SYSTEM_ACTOR)

        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.FORBIDDEN
        assert CYCLE_ID not in secured.store.cycles
        trail = secured.get_audit_trail(CYCLE_ID)
        assert [(e.action, e.actor) for e in trail] == [
            (AuditAction.PERMISSION_DENIED, SYSTEM_ACTOR)
        ]

    async def test_system_run_scope_is_trusted(
        self, secured: ComplianceWorkflow, secured_assignment: ControlAssignment
    ) -> None:
        assignment_id = secured_assignment.assignment_id

        with secured.ctx.system_run():
            inside = await secured.assignments.block(assignment_id, "Maintenance window")
        outside = await secured.assignments.resolve_block(assignment_id)

        assert inside.unwrap().status == AssignmentStatus.BLOCKED
        assert isinstance(outside, Err)
        assert outside.error.kind == ErrorKind.FORBIDDEN
