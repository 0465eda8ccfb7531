"""Test configuration and fixtures for the control testing workflow.

Every workflow built here runs on a manual clock, records notifications
instead of sending them and retries audit writes without sleeping.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from controltrack.core.clock import ManualClock
from controltrack.core.collaborators import RolePermissionChecker, StaticProviderDirectory
from controltrack.core.config import WorkflowSettings
from controltrack.models import (
    AssignmentStatus,
    ControlAssignment,
    ControlDefinition,
    ItemConclusion,
    SamplingMethod,
    TestExecution,
    TestingCycle,
)
from controltrack.workflow import AuditLog, ComplianceWorkflow
from tests.fixtures.workflow_data import (
    ASSIGNMENT_DUE,
    AUDIT_LEAD,
    AUDITOR,
    CONTROL_ID,
    CYCLE_ID,
    MANAGER,
    PROVIDER,
    Q3_CYCLE,
    REVIEWER,
    START,
    ExecutionRunner,
    FlakyAuditStore,
    RecordingNotifier,
    make_control,
)


@pytest.fixture
def settings() -> WorkflowSettings:
    """Default settings with instant audit retries."""
    return WorkflowSettings(
        audit_retry_base_delay_seconds=0.0,
        audit_retry_max_delay_seconds=0.0,
    )


@pytest.fixture
def clock() -> ManualClock:
    """Clock frozen at the start of the cycle."""
    return ManualClock(START)


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Notifier that records instead of sending."""
    return RecordingNotifier()


@pytest.fixture
def audit_store() -> FlakyAuditStore:
    """Audit store that works until told to fail."""
    return FlakyAuditStore()


@pytest.fixture
def directory() -> StaticProviderDirectory:
    """Evidence for the test control goes to IT operations."""
    return StaticProviderDirectory(
        providers={(CONTROL_ID, "*"): PROVIDER},
        managers={AUDITOR: MANAGER},
    )


@pytest.fixture
def role_permissions() -> RolePermissionChecker:
    """Capability table with a lead, an auditor, a reviewer, a provider and a guest."""
    return RolePermissionChecker(
        grants={
            "audit_lead": {("*", "*")},
            "auditor": {
                ("assignment", "transition"),
                ("evidence_request", "*"),
                ("test_execution", "*"),
                ("finding", "remediate"),
            },
            "reviewer": {
                ("test_execution", "approve"),
                ("test_execution", "override_conclusion"),
            },
            "provider": {
                ("evidence_request", "acknowledge"),
                ("evidence_request", "submit"),
                ("evidence_request", "comment"),
            },
        },
        actor_roles={
            AUDIT_LEAD: {"audit_lead"},
            AUDITOR: {"auditor"},
            REVIEWER: {"reviewer"},
            PROVIDER: {"provider"},
            "guest": set(),
        },
    )


@pytest_asyncio.fixture
async def workflow(
    clock: ManualClock,
    notifier: RecordingNotifier,
    audit_store: FlakyAuditStore,
    directory: StaticProviderDirectory,
    settings: WorkflowSettings,
) -> AsyncGenerator[ComplianceWorkflow, None]:
    """Workflow with every collaborator replaced by a test double."""
    wf = ComplianceWorkflow(
        audit_log=AuditLog(audit_store, settings),
        clock=clock,
        notifier=notifier,
        directory=directory,
        settings=settings,
    )
    yield wf
    await wf.drain_side_effects()


@pytest.fixture
def control_definition() -> ControlDefinition:
    """ITGC-001 with one mandatory and one optional evidence requirement."""
    return make_control()


@pytest_asyncio.fixture
async def cycle(
    workflow: ComplianceWorkflow, control_definition: ControlDefinition
) -> TestingCycle:
    """Registered control and a planning cycle for Q3."""
    (await workflow.cycles.register_control(control_definition, AUDIT_LEAD)).unwrap()
    return (await workflow.cycles.create_cycle(Q3_CYCLE, AUDIT_LEAD)).unwrap()


@pytest_asyncio.fixture
async def assignment(workflow: ComplianceWorkflow, cycle: TestingCycle) -> ControlAssignment:
    """ITGC-001 assigned to the auditor, not started."""
    return (
        await workflow.cycles.add_control_to_cycle(
            CYCLE_ID, CONTROL_ID, AUDITOR, ASSIGNMENT_DUE, AUDIT_LEAD
        )
    ).unwrap()


@pytest_asyncio.fixture
async def started_assignment(
    workflow: ComplianceWorkflow, assignment: ControlAssignment
) -> ControlAssignment:
    """The assignment moved to in-progress, with its evidence requested."""
    return (
        await workflow.assignments.transition(
            assignment.assignment_id, AssignmentStatus.IN_PROGRESS, AUDITOR
        )
    ).unwrap()


@pytest.fixture
def run_test(workflow: ComplianceWorkflow) -> ExecutionRunner:
    """Define, sample and conclude an execution with a given number of exceptions."""

    async def run(
        assignment_id: str,
        *,
        population: int = 247,
        exceptions: int = 0,
        catastrophic: bool = False,
        finalize: bool = True,
        tester: str = AUDITOR,
    ) -> TestExecution:
        (
            await workflow.testing.define_methodology(assignment_id, population, tester, 0.95)
        ).unwrap()
        execution = (
            await workflow.testing.select_sample(assignment_id, SamplingMethod.RANDOM, tester)
        ).unwrap()
        for index, item_id in enumerate(execution.sample):
            failed = index < exceptions
            (
                await workflow.testing.record_item_conclusion(
                    assignment_id,
                    item_id,
                    ItemConclusion.EXCEPTION if failed else ItemConclusion.APPROPRIATE,
                    tester,
                    catastrophic=catastrophic and index == 0,
                )
            ).unwrap()
        if finalize:
            return (await workflow.testing.finalize(assignment_id, tester)).unwrap()
        return workflow.testing.get_execution(assignment_id).unwrap()

    return run
