"""Unit tests for the control assignment lifecycle."""

from datetime import timedelta

import pytest

from controltrack.core.clock import ManualClock
from controltrack.core.errors import ErrorKind
from controltrack.core.result_types import Err, Ok
from controltrack.models import (
    AssignmentCreate,
    AssignmentStatus,
    AuditAction,
    ControlAssignment,
    CycleStatus,
    Priority,
    RequestStatus,
    TestingCycle,
)
from controltrack.workflow import SYSTEM_ACTOR, ComplianceWorkflow
from tests.fixtures.workflow_data import (
    ASSIGNMENT_DUE,
    AUDIT_LEAD,
    AUDITOR,
    CONTROL_ID,
    CYCLE_ID,
    MANDATORY_EVIDENCE,
    REVIEWER,
    ExecutionRunner,
    RecordingNotifier,
    evidence_file,
    make_control,
)


class TestCreate:
    """Test creating assignments."""

    async def test_assignment_joins_cycle(
        self,
        workflow: ComplianceWorkflow,
        notifier: RecordingNotifier,
        assignment: ControlAssignment,
    ) -> None:
        """Test the cycle lists the assignment and both changes are audited."""
        await workflow.drain_side_effects()
        cycle = workflow.cycles.get_cycle(CYCLE_ID).unwrap()

        assert assignment.status == AssignmentStatus.NOT_STARTED
        assert assignment.assigner == AUDIT_LEAD
        assert cycle.assignment_ids == [assignment.assignment_id]
        assert [e.action for e in workflow.get_audit_trail(assignment.assignment_id)] == [
            AuditAction.ASSIGNMENT_CREATED
        ]
        assert workflow.get_audit_trail(CYCLE_ID)[-1].action == AuditAction.CONTROL_ADDED_TO_CYCLE
        assert notifier.recipients_of("assignment_created") == [AUDITOR]

    async def test_duplicate_assignment(
        self, workflow: ComplianceWorkflow, assignment: ControlAssignment
    ) -> None:
        """Test one control is assigned at most once per cycle."""
        result = await workflow.cycles.add_control_to_cycle(
            CYCLE_ID, CONTROL_ID, "auditor-2", ASSIGNMENT_DUE, AUDIT_LEAD
        )

        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.DUPLICATE_ASSIGNMENT
        assert result.error.aggregate_id == assignment.assignment_id
        assert workflow.assignments.list_assignments(CYCLE_ID) == [assignment]

    async def test_create_with_explicit_spec(
        self, workflow: ComplianceWorkflow, cycle: TestingCycle
    ) -> None:
        result = await workflow.assignments.create(
            AssignmentCreate(
                cycle_id=CYCLE_ID,
                control_id=CONTROL_ID,
                assignee=AUDITOR,
                assigner=AUDIT_LEAD,
                due_date=ASSIGNMENT_DUE,
                priority=Priority.CRITICAL,
                instructions="Focus on privileged accounts",
            ),
            AUDIT_LEAD,
        )

        assert isinstance(result, Ok)
        assert result.value.priority == Priority.CRITICAL

    @pytest.mark.parametrize(
        ("cycle_id", "control_id"),
        [("2030-Q1", CONTROL_ID), (CYCLE_ID, "ITGC-999")],
    )
    async def test_unknown_cycle_or_control(
        self, workflow: ComplianceWorkflow, cycle: TestingCycle, cycle_id: str, control_id: str
    ) -> None:
        result = await workflow.cycles.add_control_to_cycle(
            cycle_id, control_id, AUDITOR, ASSIGNMENT_DUE, AUDIT_LEAD
        )
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.NOT_FOUND

    async def test_closed_cycle_rejects_controls(
        self, workflow: ComplianceWorkflow, cycle: TestingCycle
    ) -> None:
        """Test only planning and active cycles accept new assignments."""
        await workflow.cycles.transition_cycle(CYCLE_ID, CycleStatus.CANCELLED, AUDIT_LEAD)

        result = await workflow.cycles.add_control_to_cycle(
            CYCLE_ID, CONTROL_ID, AUDITOR, ASSIGNMENT_DUE, AUDIT_LEAD
        )

        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.PREREQUISITE_NOT_MET


class TestTransitions:
    """Test the assignment transition table."""

    async def test_start_requests_evidence(
        self, workflow: ComplianceWorkflow, started_assignment: ControlAssignment
    ) -> None:
        """Test entering in-progress creates the control's evidence requests."""
        requests = workflow.evidence.list_requests(started_assignment.assignment_id)
        assert started_assignment.status == AssignmentStatus.IN_PROGRESS
        assert len(requests) == 2
        assert {r.status for r in requests} == {RequestStatus.SENT}

    @pytest.mark.parametrize(
        "target",
        [AssignmentStatus.REVIEW, AssignmentStatus.COMPLETED, AssignmentStatus.NOT_STARTED],
    )
    async def test_invalid_from_not_started(
        self, workflow: ComplianceWorkflow, assignment: ControlAssignment, target: AssignmentStatus
    ) -> None:
        result = await workflow.assignments.transition(assignment.assignment_id, target, AUDITOR)

        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.INVALID_TRANSITION
        assert result.error.current_state == "not_started"
        assert result.error.attempted == target.value

    async def test_review_notifies_assigner(
        self,
        workflow: ComplianceWorkflow,
        notifier: RecordingNotifier,
        started_assignment: ControlAssignment,
    ) -> None:
        reviewed = (
            await workflow.assignments.transition(
                started_assignment.assignment_id, AssignmentStatus.REVIEW, AUDITOR
            )
        ).unwrap()
        await workflow.drain_side_effects()

        assert reviewed.status == AssignmentStatus.REVIEW
        assert notifier.recipients_of("assignment_ready_for_review") == [AUDIT_LEAD]

    async def test_send_back_keeps_existing_requests(
        self, workflow: ComplianceWorkflow, started_assignment: ControlAssignment
    ) -> None:
        """Test returning to in-progress does not duplicate open requests."""
        assignment_id = started_assignment.assignment_id
        await workflow.assignments.transition(assignment_id, AssignmentStatus.REVIEW, AUDITOR)

        back = await workflow.assignments.transition(
            assignment_id, AssignmentStatus.IN_PROGRESS, AUDIT_LEAD, "Evidence incomplete"
        )

        assert back.unwrap().status == AssignmentStatus.IN_PROGRESS
        assert len(workflow.evidence.list_requests(assignment_id)) == 2

    async def test_completion_requires_approved_execution(
        self,
        workflow: ComplianceWorkflow,
        run_test: ExecutionRunner,
        started_assignment: ControlAssignment,
    ) -> None:
        """Test an assignment completes only after its test is approved."""
        assignment_id = started_assignment.assignment_id
        await run_test(assignment_id)
        await workflow.assignments.transition(assignment_id, AssignmentStatus.REVIEW, AUDITOR)

        early = await workflow.assignments.transition(
            assignment_id, AssignmentStatus.COMPLETED, AUDIT_LEAD
        )
        assert isinstance(early, Err)
        assert early.error.kind == ErrorKind.PREREQUISITE_NOT_MET
        assert "completed" in early.error.message

        await workflow.testing.approve(assignment_id, REVIEWER)
        done = (
            await workflow.assignments.transition(
                assignment_id, AssignmentStatus.COMPLETED, AUDIT_LEAD
            )
        ).unwrap()

        assert done.status == AssignmentStatus.COMPLETED
        assert done.completed_at is not None

    async def test_completed_is_terminal(
        self,
        workflow: ComplianceWorkflow,
        run_test: ExecutionRunner,
        started_assignment: ControlAssignment,
    ) -> None:
        assignment_id = started_assignment.assignment_id
        await run_test(assignment_id)
        await workflow.testing.approve(assignment_id, REVIEWER)
        await workflow.assignments.transition(assignment_id, AssignmentStatus.REVIEW, AUDITOR)
        await workflow.assignments.transition(assignment_id, AssignmentStatus.COMPLETED, AUDIT_LEAD)

        for target in (AssignmentStatus.IN_PROGRESS, AssignmentStatus.BLOCKED):
            result = await workflow.assignments.transition(assignment_id, target, AUDIT_LEAD)
            assert isinstance(result, Err)
            assert result.error.kind == ErrorKind.INVALID_TRANSITION


class TestBlocking:
    """Test blocking and unblocking."""

    async def test_manual_block_returns_to_prior_status(
        self, workflow: ComplianceWorkflow, started_assignment: ControlAssignment
    ) -> None:
        """Test a blocked assignment only goes back where it came from."""
        assignment_id = started_assignment.assignment_id
        blocked = (
            await workflow.assignments.transition(
                assignment_id, AssignmentStatus.BLOCKED, AUDITOR, "Waiting on HR extract"
            )
        ).unwrap()
        assert blocked.blocked_from == AssignmentStatus.IN_PROGRESS
        assert blocked.blocked_automatically is False

        wrong = await workflow.assignments.transition(
            assignment_id, AssignmentStatus.REVIEW, AUDITOR
        )
        assert isinstance(wrong, Err)
        assert wrong.error.kind == ErrorKind.INVALID_TRANSITION

        resumed = (await workflow.assignments.resolve_block(assignment_id, AUDITOR)).unwrap()
        assert resumed.status == AssignmentStatus.IN_PROGRESS
        assert resumed.blocked_from is None
        actions = [e.action for e in workflow.get_audit_trail(assignment_id)]
        assert actions[-2:] == [AuditAction.ASSIGNMENT_BLOCKED, AuditAction.ASSIGNMENT_UNBLOCKED]

    async def test_system_block_is_automatic(
        self, workflow: ComplianceWorkflow, started_assignment: ControlAssignment
    ) -> None:
        blocked = (
            await workflow.assignments.block(started_assignment.assignment_id, "Evidence overdue")
        ).unwrap()
        event = workflow.get_audit_trail(started_assignment.assignment_id)[-1]

        assert blocked.blocked_automatically is True
        assert event.actor == SYSTEM_ACTOR
        assert event.metadata == {"reason": "Evidence overdue", "automatic": True}

    async def test_cannot_block_twice(
        self, workflow: ComplianceWorkflow, started_assignment: ControlAssignment
    ) -> None:
        await workflow.assignments.block(started_assignment.assignment_id, "first")
        result = await workflow.assignments.block(started_assignment.assignment_id, "second")
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.INVALID_TRANSITION

    async def test_resolve_unblocked_assignment(
        self, workflow: ComplianceWorkflow, started_assignment: ControlAssignment
    ) -> None:
        result = await workflow.assignments.resolve_block(started_assignment.assignment_id)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.INVALID_TRANSITION

    async def test_evidence_completion_releases_automatic_block(
        self,
        workflow: ComplianceWorkflow,
        clock: ManualClock,
        started_assignment: ControlAssignment,
    ) -> None:
        """Test completing the overdue mandatory request unblocks the assignment."""
        assignment_id = started_assignment.assignment_id
        request = next(
            r
            for r in workflow.evidence.list_requests(assignment_id)
            if MANDATORY_EVIDENCE in r.evidence_types()
        )
        clock.set(ASSIGNMENT_DUE + timedelta(hours=1))
        await workflow.evidence.mark_overdue(request.request_id)
        await workflow.assignments.block(assignment_id, "Mandatory evidence overdue")

        await workflow.evidence.submit_evidence(request.request_id, [evidence_file()], "it-ops")

        assignment = workflow.get_assignment(assignment_id).unwrap()
        event = workflow.get_audit_trail(assignment_id)[-1]
        assert assignment.status == AssignmentStatus.IN_PROGRESS
        assert event.action == AuditAction.ASSIGNMENT_UNBLOCKED
        assert event.actor == SYSTEM_ACTOR

    async def test_manual_block_is_not_released_by_evidence(
        self, workflow: ComplianceWorkflow, started_assignment: ControlAssignment
    ) -> None:
        assignment_id = started_assignment.assignment_id
        request = next(
            r
            for r in workflow.evidence.list_requests(assignment_id)
            if MANDATORY_EVIDENCE in r.evidence_types()
        )
        await workflow.assignments.block(assignment_id, "On hold", AUDIT_LEAD, automatic=False)

        await workflow.evidence.submit_evidence(request.request_id, [evidence_file()], "it-ops")

        assert workflow.get_assignment(assignment_id).unwrap().status == AssignmentStatus.BLOCKED


class TestReassign:
    """Test handing assignments to another auditor."""

    async def test_reassign_before_start(
        self,
        workflow: ComplianceWorkflow,
        notifier: RecordingNotifier,
        assignment: ControlAssignment,
    ) -> None:
        updated = (
            await workflow.assignments.reassign(
                assignment.assignment_id, "auditor-2", AUDIT_LEAD, "Workload"
            )
        ).unwrap()
        await workflow.drain_side_effects()

        assert updated.assignee == "auditor-2"
        assert sorted(notifier.recipients_of("assignment_reassigned")) == [AUDITOR, "auditor-2"]
        event = workflow.get_audit_trail(assignment.assignment_id)[-1]
        assert event.metadata["previous_assignee"] == AUDITOR

    async def test_reassign_in_progress_is_rejected(
        self, workflow: ComplianceWorkflow, started_assignment: ControlAssignment
    ) -> None:
        result = await workflow.assignments.reassign(
            started_assignment.assignment_id, "auditor-2", AUDIT_LEAD
        )
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.INVALID_TRANSITION

    async def test_reassign_while_blocked(
        self, workflow: ComplianceWorkflow, started_assignment: ControlAssignment
    ) -> None:
        await workflow.assignments.block(started_assignment.assignment_id, "Auditor on leave")
        result = await workflow.assignments.reassign(
            started_assignment.assignment_id, "auditor-2", AUDIT_LEAD
        )
        assert result.unwrap().assignee == "auditor-2"

    async def test_reassign_to_same_person(
        self, workflow: ComplianceWorkflow, assignment: ControlAssignment
    ) -> None:
        result = await workflow.assignments.reassign(assignment.assignment_id, AUDITOR, AUDIT_LEAD)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.VALIDATION_ERROR


class TestQueries:
    """Test assignment lookups."""

    async def test_list_in_insertion_order(
        self, workflow: ComplianceWorkflow, assignment: ControlAssignment
    ) -> None:
        (await workflow.cycles.register_control(make_control("ITGC-002"), AUDIT_LEAD)).unwrap()
        second = (
            await workflow.cycles.add_control_to_cycle(
                CYCLE_ID, "ITGC-002", AUDITOR, ASSIGNMENT_DUE, AUDIT_LEAD
            )
        ).unwrap()

        listed = workflow.assignments.list_assignments(CYCLE_ID)

        assert [a.assignment_id for a in listed] == [
            assignment.assignment_id,
            second.assignment_id,
        ]
        assert workflow.assignments.list_assignments("2030-Q1") == []

    async def test_get_unknown(self, workflow: ComplianceWorkflow) -> None:
        result = workflow.get_assignment("asg-missing")
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.NOT_FOUND
