# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Entry point wiring every workflow component over one shared context."""

import logging

from beartype import beartype

from ..core.config import WorkflowSettings
from ..core.errors import WorkflowError
from ..core.result_types import Result
from ..core.types import (
    Clock,
    FileStorage,
    NotificationDispatcher,
    PermissionChecker,
    ProviderDirectory,
)
from ..models.assignment import ControlAssignment
from ..models.audit import AuditEvent, AuditFilter
from ..models.cycle import CycleProgress
from ..models.finding import Finding, Severity
from .assignment_engine import AssignmentEngine
from .audit_log import AuditLog
from .context import WorkflowContext
from .cycle_orchestrator import CycleOrchestrator
from .evidence_coordinator import EvidenceCoordinator
from .finding_tracker import FindingTracker
from .store import WorkflowStore
from .sweeper import DueDateSweeper
from .test_execution import TestExecutionEngine

logger = logging.getLogger(__name__)


class ComplianceWorkflow:
    """All engines bound to one store, one lock registry and one audit log.

    Commands are issued through the engine attributes (``cycles``,
    ``assignments``, ``evidence``, ``testing``, ``findings``); the most
    common reads are also exposed directly.
    """

    def __init__(
        self,
        *,
        store: WorkflowStore | None = None,
        audit_log: AuditLog | None = None,
        clock: Clock | None = None,
        permissions: PermissionChecker | None = None,
        notifier: NotificationDispatcher | None = None,
        file_storage: FileStorage | None = None,
        directory: ProviderDirectory | None = None,
        settings: WorkflowSettings | None = None,
    ) -> None:
        """Initialize the context and every engine over it."""
        self.ctx = WorkflowContext(
            store=store,
            audit_log=audit_log,
            clock=clock,
            permissions=permissions,
            notifier=notifier,
            file_storage=file_storage,
            directory=directory,
            settings=settings,
        )
        self.evidence = EvidenceCoordinator(self.ctx)
        self.assignments = AssignmentEngine(self.ctx, self.evidence)
        self.findings = FindingTracker(self.ctx)
        self.testing = TestExecutionEngine(self.ctx, self.findings)
        self.cycles = CycleOrchestrator(self.ctx, self.assignments)
        self.sweeper = DueDateSweeper(self.ctx, self.evidence, self.assignments, self.findings)

    @property
    def audit_log(self) -> AuditLog:
        """The shared audit log."""
        return self.ctx.audit_log

    @property
    def store(self) -> WorkflowStore:
        """The shared aggregate store."""
        return self.ctx.store

    @beartype
    def get_assignment(self, assignment_id: str) -> Result[ControlAssignment, WorkflowError]:
        """Current snapshot of an assignment."""
        return self.assignments.get_assignment(assignment_id)

    @beartype
    def get_cycle_progress(self, cycle_id: str) -> Result[CycleProgress, WorkflowError]:
        """Progress computed from the cycle's current children."""
        return self.cycles.compute_progress(cycle_id)

    @beartype
    def get_audit_trail(
        self, entity_id: str, filters: AuditFilter | None = None
    ) -> list[AuditEvent]:
        """Chronological audit events for one entity."""
        return self.audit_log.get_audit_trail(entity_id, filters)

    @beartype
    def get_findings_by_severity(
        self,
        severity: Severity | None = None,
        *,
        cycle_id: str | None = None,
        include_terminal: bool = False,
    ) -> dict[Severity, list[Finding]]:
        """Findings grouped by severity, most severe first."""
        return self.findings.get_findings_by_severity(
            severity, cycle_id=cycle_id, include_terminal=include_terminal
        )

    async def drain_side_effects(self) -> None:
        """Wait for queued notifications and file checks to finish."""
        await self.ctx.outbox.drain()
