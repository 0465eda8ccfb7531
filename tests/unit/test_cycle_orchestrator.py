"""Unit tests for the control catalog, testing cycles and progress."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from controltrack.core.clock import ManualClock
from controltrack.core.errors import ErrorKind
from controltrack.core.result_types import Err
from controltrack.models import (
    AssignmentStatus,
    AuditAction,
    ControlAssignment,
    ControlDefinition,
    CycleCreate,
    CycleStatus,
    TestingCycle,
)
from controltrack.workflow import ComplianceWorkflow
from tests.fixtures.workflow_data import (
    ASSIGNMENT_DUE,
    AUDIT_LEAD,
    AUDITOR,
    CYCLE_ID,
    MANDATORY_EVIDENCE,
    REVIEWER,
    ExecutionRunner,
    make_control,
)


def cycle_spec(cycle_id: str | None = None, month: int = 10) -> CycleCreate:
    return CycleCreate(
        cycle_id=cycle_id,
        name=f"Cycle starting month {month}",
        framework="SOX",
        start_date=datetime(2025, month, 1, tzinfo=timezone.utc),
        end_date=datetime(2025, month, 28, tzinfo=timezone.utc),
    )


async def walk(workflow: ComplianceWorkflow, *targets: CycleStatus) -> TestingCycle:
    """Move the fixture cycle through ``targets`` in order."""
    cycle = workflow.cycles.get_cycle(CYCLE_ID).unwrap()
    for target in targets:
        cycle = (await workflow.cycles.transition_cycle(CYCLE_ID, target, AUDIT_LEAD)).unwrap()
    return cycle


class TestCatalog:
    """Test control registration."""

    async def test_register_and_get(
        self, workflow: ComplianceWorkflow, control_definition: ControlDefinition
    ) -> None:
        (await workflow.cycles.register_control(control_definition, AUDIT_LEAD)).unwrap()

        assert workflow.cycles.get_control(control_definition.control_id).unwrap() == (
            control_definition
        )
        event = workflow.get_audit_trail(control_definition.control_id)[0]
        assert event.action == AuditAction.CONTROL_REGISTERED
        assert control_definition.mandatory_evidence_types() == [MANDATORY_EVIDENCE]

    async def test_duplicate_registration(
        self, workflow: ComplianceWorkflow, control_definition: ControlDefinition
    ) -> None:
        await workflow.cycles.register_control(control_definition, AUDIT_LEAD)
        result = await workflow.cycles.register_control(control_definition, AUDIT_LEAD)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.VALIDATION_ERROR

    def test_duplicate_evidence_requirements_are_invalid(self) -> None:
        """Test a control cannot require the same evidence type twice."""
        control = make_control()
        with pytest.raises(ValidationError):
            make_control(
                evidence_requirements=[
                    control.evidence_requirements[0],
                    control.evidence_requirements[0],
                ]
            )

    async def test_unknown_control(self, workflow: ComplianceWorkflow) -> None:
        result = workflow.cycles.get_control("ITGC-404")
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestCycleLifecycle:
    """Test cycle creation and transitions."""

    async def test_created_in_planning(self, cycle: TestingCycle) -> None:
        assert cycle.status == CycleStatus.PLANNING
        assert cycle.created_by == AUDIT_LEAD
        assert cycle.assignment_ids == []
        assert cycle.archived is False

    async def test_generated_id(self, workflow: ComplianceWorkflow) -> None:
        created = (await workflow.cycles.create_cycle(cycle_spec(), AUDIT_LEAD)).unwrap()
        assert created.cycle_id.startswith("cyc-")

    async def test_duplicate_id(self, workflow: ComplianceWorkflow, cycle: TestingCycle) -> None:
        result = await workflow.cycles.create_cycle(cycle_spec(CYCLE_ID), AUDIT_LEAD)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.VALIDATION_ERROR

    def test_window_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            CycleCreate(
                name="Backwards",
                framework="SOX",
                start_date=datetime(2025, 9, 30, tzinfo=timezone.utc),
                end_date=datetime(2025, 7, 1, tzinfo=timezone.utc),
            )

    async def test_happy_path_transitions(
        self, workflow: ComplianceWorkflow, cycle: TestingCycle
    ) -> None:
        """Test planning -> active -> review -> active -> review -> completed."""
        final = await walk(
            workflow,
            CycleStatus.ACTIVE,
            CycleStatus.REVIEW,
            CycleStatus.ACTIVE,
            CycleStatus.REVIEW,
            CycleStatus.COMPLETED,
        )

        assert final.status == CycleStatus.COMPLETED
        assert final.completed_at is not None
        transitions = [
            e.metadata["to"]
            for e in workflow.get_audit_trail(CYCLE_ID)
            if e.action == AuditAction.CYCLE_TRANSITIONED
        ]
        assert transitions == ["active", "review", "active", "review", "completed"]

    @pytest.mark.parametrize(
        ("path", "target"),
        [
            ((), CycleStatus.REVIEW),
            ((), CycleStatus.COMPLETED),
            ((CycleStatus.ACTIVE,), CycleStatus.PLANNING),
            ((CycleStatus.ACTIVE, CycleStatus.REVIEW), CycleStatus.CANCELLED),
            ((CycleStatus.CANCELLED,), CycleStatus.ACTIVE),
        ],
    )
    async def test_invalid_transitions(
        self,
        workflow: ComplianceWorkflow,
        cycle: TestingCycle,
        path: tuple[CycleStatus, ...],
        target: CycleStatus,
    ) -> None:
        await walk(workflow, *path)
        result = await workflow.cycles.transition_cycle(CYCLE_ID, target, AUDIT_LEAD)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.INVALID_TRANSITION

    async def test_completion_needs_completed_assignments(
        self, workflow: ComplianceWorkflow, assignment: ControlAssignment
    ) -> None:
        await walk(workflow, CycleStatus.ACTIVE, CycleStatus.REVIEW)

        result = await workflow.cycles.transition_cycle(
            CYCLE_ID, CycleStatus.COMPLETED, AUDIT_LEAD
        )

        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.PREREQUISITE_NOT_MET
        assert "1 assignment(s)" in result.error.message


class TestArchive:
    """Test archiving finished cycles."""

    async def test_archive_cancelled_cycle(
        self, workflow: ComplianceWorkflow, cycle: TestingCycle
    ) -> None:
        """Test archived cycles drop out of listings and reject changes."""
        await walk(workflow, CycleStatus.CANCELLED)

        archived = (await workflow.cycles.archive_cycle(CYCLE_ID, AUDIT_LEAD)).unwrap()
        again = await workflow.cycles.archive_cycle(CYCLE_ID, AUDIT_LEAD)

        assert archived.archived is True
        assert isinstance(again, Err)
        assert again.error.kind == ErrorKind.INVALID_TRANSITION
        assert workflow.cycles.list_cycles() == []
        assert [c.cycle_id for c in workflow.cycles.list_cycles(include_archived=True)] == [
            CYCLE_ID
        ]

    async def test_active_cycle_cannot_be_archived(
        self, workflow: ComplianceWorkflow, cycle: TestingCycle
    ) -> None:
        await walk(workflow, CycleStatus.ACTIVE)
        result = await workflow.cycles.archive_cycle(CYCLE_ID, AUDIT_LEAD)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.INVALID_TRANSITION

    async def test_cycles_listed_by_start_date(
        self, workflow: ComplianceWorkflow, cycle: TestingCycle
    ) -> None:
        await workflow.cycles.create_cycle(cycle_spec("2025-Q4", month=10), AUDIT_LEAD)
        await workflow.cycles.create_cycle(cycle_spec("2025-Q2", month=4), AUDIT_LEAD)

        listed = [c.cycle_id for c in workflow.cycles.list_cycles()]

        assert listed == ["2025-Q2", CYCLE_ID, "2025-Q4"]


class TestProgress:
    """Test computed cycle progress."""

    async def test_empty_cycle(self, workflow: ComplianceWorkflow, cycle: TestingCycle) -> None:
        progress = workflow.get_cycle_progress(CYCLE_ID).unwrap()

        assert progress.total_assignments == 0
        assert progress.percent_complete == 0.0
        assert progress.counts_by_status == {status.value: 0 for status in AssignmentStatus}

    async def test_progress_follows_children(
        self,
        workflow: ComplianceWorkflow,
        clock: ManualClock,
        run_test: ExecutionRunner,
        started_assignment: ControlAssignment,
    ) -> None:
        """Test counts, overdue items and findings are derived on read."""
        (await workflow.cycles.register_control(make_control("ITGC-002"), AUDIT_LEAD)).unwrap()
        (await workflow.cycles.register_control(make_control("ITGC-003"), AUDIT_LEAD)).unwrap()
        for control_id in ("ITGC-002", "ITGC-003"):
            await workflow.cycles.add_control_to_cycle(
                CYCLE_ID, control_id, AUDITOR, ASSIGNMENT_DUE, AUDIT_LEAD
            )

        assignment_id = started_assignment.assignment_id
        await run_test(assignment_id, exceptions=3)
        await workflow.testing.approve(assignment_id, REVIEWER)
        await workflow.assignments.transition(assignment_id, AssignmentStatus.REVIEW, AUDITOR)
        await workflow.assignments.transition(
            assignment_id, AssignmentStatus.COMPLETED, AUDIT_LEAD
        )

        before_due = workflow.get_cycle_progress(CYCLE_ID).unwrap()
        assert before_due.counts_by_status["completed"] == 1
        assert before_due.counts_by_status["not_started"] == 2
        assert before_due.percent_complete == pytest.approx(33.33)
        assert before_due.open_findings == 1
        assert before_due.overdue_assignments == 0

        clock.set(ASSIGNMENT_DUE + timedelta(days=1))
        after_due = workflow.get_cycle_progress(CYCLE_ID).unwrap()
        assert after_due.overdue_assignments == 2
        assert after_due.computed_at == clock.now()

    async def test_overdue_requests_counted(
        self,
        workflow: ComplianceWorkflow,
        clock: ManualClock,
        started_assignment: ControlAssignment,
    ) -> None:
        clock.set(ASSIGNMENT_DUE + timedelta(hours=2))
        await workflow.sweeper.run_once()

        progress = workflow.get_cycle_progress(CYCLE_ID).unwrap()

        assert progress.overdue_evidence_requests == 2

    async def test_unknown_cycle(self, workflow: ComplianceWorkflow) -> None:
        result = workflow.get_cycle_progress("2030-Q1")
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.NOT_FOUND
