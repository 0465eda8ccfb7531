# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Control catalog and testing cycles.

Cycles move ``planning -> active -> review -> completed`` and can be
cancelled while planning or active. Progress is never stored; it is
recomputed from the children on every read.
"""

import logging
from datetime import datetime
from uuid import uuid4

from beartype import beartype
from pydantic import ValidationError

from ..core.errors import (
    WorkflowError,
    from_validation_exception,
    invalid_transition,
    not_found,
    prerequisite_not_met,
    validation_error,
)
from ..core.logging_utils import log_rejection
from ..core.result_types import Err, Ok, Result
from ..models.assignment import AssignmentCreate, AssignmentStatus, ControlAssignment, Priority
from ..models.audit import AuditAction, EntityType
from ..models.control import ControlDefinition
from ..models.cycle import CycleCreate, CycleProgress, CycleStatus, TestingCycle
from .assignment_engine import AssignmentEngine
from .audit_log import change_event
from .context import WorkflowContext
from .transitions import CYCLE_TRANSITIONS

logger = logging.getLogger(__name__)

CYCLE = EntityType.CYCLE.value

ARCHIVABLE_STATUSES = frozenset({CycleStatus.COMPLETED, CycleStatus.CANCELLED})


class CycleOrchestrator:
    """Top-level coordinator of cycles and the assignments within them."""

    def __init__(self, ctx: WorkflowContext, assignments: AssignmentEngine) -> None:
        """Initialize with the shared context and the assignment engine."""
        self._ctx = ctx
        self._assignments = assignments

    @beartype
    async def register_control(
        self, control: ControlDefinition, actor: str
    ) -> Result[ControlDefinition, WorkflowError]:
        """Add a control to the catalog."""
        denied = await self._ctx.authorize(
            actor, EntityType.CONTROL, control.control_id, "register", "*"
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.control(control.control_id):
            if control.control_id in self._ctx.store.controls:
                return Err(
                    validation_error(
                        f"Control {control.control_id} is already registered",
                        aggregate_type=EntityType.CONTROL.value,
                        aggregate_id=control.control_id,
                        attempted="register",
                    )
                )

            draft = change_event(
                EntityType.CONTROL,
                control.control_id,
                actor,
                AuditAction.CONTROL_REGISTERED,
                self._ctx.clock.now(),
                None,
                control,
            )
            committed = await self._ctx.commit([draft], [control])
            if isinstance(committed, Err):
                return committed

        logger.info("Control %s registered (%s)", control.control_id, control.framework)
        return Ok(control)

    @beartype
    def get_control(self, control_id: str) -> Result[ControlDefinition, WorkflowError]:
        """Catalog entry for a control."""
        control = self._ctx.store.controls.get(control_id)
        if control is None:
            return Err(not_found(EntityType.CONTROL.value, control_id))
        return Ok(control)

    @beartype
    async def create_cycle(
        self, spec: CycleCreate, actor: str
    ) -> Result[TestingCycle, WorkflowError]:
        """Open a new cycle in planning."""
        cycle_id = spec.cycle_id or f"cyc-{uuid4().hex[:8]}"
        denied = await self._ctx.authorize(actor, EntityType.CYCLE, cycle_id, "create", cycle_id)
        if denied:
            return Err(denied)

        async with self._ctx.locks.cycle(cycle_id):
            if cycle_id in self._ctx.store.cycles:
                return Err(
                    validation_error(
                        f"Cycle {cycle_id} already exists",
                        aggregate_type=CYCLE,
                        aggregate_id=cycle_id,
                        attempted="create",
                    )
                )

            now = self._ctx.clock.now()
            try:
                cycle = TestingCycle(
                    cycle_id=cycle_id,
                    name=spec.name,
                    framework=spec.framework,
                    description=spec.description,
                    start_date=spec.start_date,
                    end_date=spec.end_date,
                    created_by=actor,
                    created_at=now,
                    updated_at=now,
                )
            except ValidationError as e:
                return Err(from_validation_exception(e, aggregate_type=CYCLE, attempted="create"))

            draft = change_event(
                EntityType.CYCLE, cycle_id, actor, AuditAction.CYCLE_CREATED, now, None, cycle
            )
            committed = await self._ctx.commit([draft], [cycle])
            if isinstance(committed, Err):
                return committed

        logger.info("Cycle %s created: %s (%s)", cycle_id, spec.name, spec.framework)
        return Ok(cycle)

    @beartype
    async def add_control_to_cycle(
        self,
        cycle_id: str,
        control_id: str,
        assignee: str,
        due_date: datetime,
        actor: str,
        *,
        priority: Priority = Priority.MEDIUM,
        instructions: str | None = None,
    ) -> Result[ControlAssignment, WorkflowError]:
        """Put a control in scope by assigning it to an auditor."""
        try:
            spec = AssignmentCreate(
                cycle_id=cycle_id,
                control_id=control_id,
                assignee=assignee,
                assigner=actor,
                due_date=due_date,
                priority=priority,
                instructions=instructions,
            )
        except ValidationError as e:
            return Err(
                from_validation_exception(
                    e, aggregate_type=CYCLE, aggregate_id=cycle_id, attempted="add_control"
                )
            )
        return await self._assignments.create(spec, actor)

    @beartype
    async def transition_cycle(
        self, cycle_id: str, target: CycleStatus, actor: str
    ) -> Result[TestingCycle, WorkflowError]:
        """Move a cycle along its lifecycle. Completion needs every assignment completed."""
        cycle = self._ctx.store.cycles.get(cycle_id)
        if cycle is None:
            return Err(not_found(CYCLE, cycle_id))

        denied = await self._ctx.authorize(
            actor, EntityType.CYCLE, cycle_id, "transition", cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.cycle(cycle_id):
            cycle = self._ctx.store.cycles[cycle_id]
            if cycle.archived or target not in CYCLE_TRANSITIONS[cycle.status]:
                error = invalid_transition(CYCLE, cycle_id, cycle.status.value, target.value)
                log_rejection(logger, "transition_cycle", error)
                return Err(error)

            if target == CycleStatus.COMPLETED:
                unfinished = [
                    a.assignment_id
                    for a in self._ctx.store.assignments_in(cycle_id)
                    if a.status != AssignmentStatus.COMPLETED
                ]
                if unfinished:
                    error = prerequisite_not_met(
                        CYCLE,
                        cycle_id,
                        cycle.status.value,
                        target.value,
                        f"{len(unfinished)} assignment(s) are not completed",
                    )
                    log_rejection(logger, "transition_cycle", error)
                    return Err(error)

            now = self._ctx.clock.now()
            updated = cycle.evolve(
                now,
                status=target,
                completed_at=now if target == CycleStatus.COMPLETED else cycle.completed_at,
            )
            draft = change_event(
                EntityType.CYCLE,
                cycle_id,
                actor,
                AuditAction.CYCLE_TRANSITIONED,
                now,
                cycle,
                updated,
                {"from": cycle.status.value, "to": target.value},
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        logger.info("Cycle %s: %s -> %s", cycle_id, cycle.status.value, target.value)
        return Ok(updated)

    @beartype
    async def archive_cycle(self, cycle_id: str, actor: str) -> Result[TestingCycle, WorkflowError]:
        """Archive a finished cycle. Cycles are never deleted."""
        cycle = self._ctx.store.cycles.get(cycle_id)
        if cycle is None:
            return Err(not_found(CYCLE, cycle_id))

        denied = await self._ctx.authorize(actor, EntityType.CYCLE, cycle_id, "archive", cycle_id)
        if denied:
            return Err(denied)

        async with self._ctx.locks.cycle(cycle_id):
            cycle = self._ctx.store.cycles[cycle_id]
            if cycle.archived or cycle.status not in ARCHIVABLE_STATUSES:
                error = invalid_transition(
                    CYCLE,
                    cycle_id,
                    cycle.status.value,
                    "archive",
                    "Only completed or cancelled cycles can be archived, once",
                )
                log_rejection(logger, "archive_cycle", error)
                return Err(error)

            now = self._ctx.clock.now()
            updated = cycle.evolve(now, archived=True)
            draft = change_event(
                EntityType.CYCLE, cycle_id, actor, AuditAction.CYCLE_ARCHIVED, now, cycle, updated
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        return Ok(updated)

    @beartype
    def get_cycle(self, cycle_id: str) -> Result[TestingCycle, WorkflowError]:
        """Current snapshot of a cycle."""
        cycle = self._ctx.store.cycles.get(cycle_id)
        if cycle is None:
            return Err(not_found(CYCLE, cycle_id))
        return Ok(cycle)

    @beartype
    def compute_progress(self, cycle_id: str) -> Result[CycleProgress, WorkflowError]:
        """Aggregate progress from the current child states."""
        cycle = self._ctx.store.cycles.get(cycle_id)
        if cycle is None:
            return Err(not_found(CYCLE, cycle_id))

        now = self._ctx.clock.now()
        assignments = self._ctx.store.assignments_in(cycle_id)
        counts = {status.value: 0 for status in AssignmentStatus}
        for assignment in assignments:
            counts[assignment.status.value] += 1

        total = len(assignments)
        completed = counts[AssignmentStatus.COMPLETED.value]
        overdue_requests = sum(
            1
            for request in self._ctx.store.requests.values()
            if request.cycle_id == cycle_id and request.is_open and request.is_overdue
        )
        open_findings = sum(
            1
            for finding in self._ctx.store.findings.values()
            if finding.cycle_id == cycle_id and not finding.is_terminal
        )
        return Ok(
            CycleProgress(
                cycle_id=cycle_id,
                cycle_status=cycle.status,
                total_assignments=total,
                counts_by_status=counts,
                percent_complete=round(100.0 * completed / total, 2) if total else 0.0,
                overdue_assignments=sum(1 for a in assignments if a.is_overdue(now)),
                overdue_evidence_requests=overdue_requests,
                open_findings=open_findings,
                computed_at=now,
            )
        )

    @beartype
    def list_cycles(self, include_archived: bool = False) -> list[TestingCycle]:
        """Cycles ordered by start date."""
        cycles = [c for c in self._ctx.store.cycles.values() if include_archived or not c.archived]
        return sorted(cycles, key=lambda c: (c.start_date, c.cycle_id))
