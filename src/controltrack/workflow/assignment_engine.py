# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Control assignment lifecycle.

``not_started -> in_progress -> review -> completed`` with ``review ->
in_progress`` as a send-back. Any status but completed can be blocked, and a
blocked assignment returns only to the status it was blocked from.
"""

import logging
from uuid import uuid4

from beartype import beartype
from pydantic import ValidationError

from ..core.errors import (
    ErrorKind,
    WorkflowError,
    conflict,
    from_validation_exception,
    invalid_transition,
    not_found,
    prerequisite_not_met,
    validation_error,
)
from ..core.logging_utils import log_rejection
from ..core.result_types import Err, Ok, Result
from ..models.assignment import AssignmentCreate, AssignmentStatus, ControlAssignment
from ..models.audit import AuditAction, AuditDraft, EntityType
from ..models.base import BaseModelConfig
from ..models.cycle import CycleStatus
from ..models.testing import ExecutionStatus
from .audit_log import change_event
from .context import SYSTEM_ACTOR, WorkflowContext
from .evidence_coordinator import EvidenceCoordinator
from .transitions import assignment_transition_allowed, blocked, unblocked

logger = logging.getLogger(__name__)

ASSIGNMENT = EntityType.ASSIGNMENT.value

OPEN_CYCLE_STATUSES = frozenset({CycleStatus.PLANNING, CycleStatus.ACTIVE})
REASSIGNABLE_STATUSES = frozenset({AssignmentStatus.NOT_STARTED, AssignmentStatus.BLOCKED})


class AssignmentEngine:
    """Creates assignments and moves them through their lifecycle."""

    def __init__(self, ctx: WorkflowContext, evidence: EvidenceCoordinator) -> None:
        """Initialize with the shared context and the evidence coordinator."""
        self._ctx = ctx
        self._evidence = evidence

    @beartype
    async def create(
        self, spec: AssignmentCreate, actor: str
    ) -> Result[ControlAssignment, WorkflowError]:
        """Assign a control within a cycle. One assignment per (cycle, control)."""
        cycle = self._ctx.store.cycles.get(spec.cycle_id)
        if cycle is None:
            return Err(not_found(EntityType.CYCLE.value, spec.cycle_id))
        if spec.control_id not in self._ctx.store.controls:
            return Err(not_found(EntityType.CONTROL.value, spec.control_id))

        denied = await self._ctx.authorize(
            actor, EntityType.ASSIGNMENT, spec.cycle_id, "create", spec.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.cycle(spec.cycle_id):
            cycle = self._ctx.store.cycles[spec.cycle_id]
            if cycle.status not in OPEN_CYCLE_STATUSES or cycle.archived:
                error = prerequisite_not_met(
                    EntityType.CYCLE.value,
                    cycle.cycle_id,
                    cycle.status.value,
                    "add_control",
                    f"Controls cannot be added to a {cycle.status.value} cycle",
                )
                log_rejection(logger, "create_assignment", error)
                return Err(error)

            existing = self._ctx.store.assignment_for(spec.cycle_id, spec.control_id)
            if existing is not None:
                error = conflict(
                    ErrorKind.DUPLICATE_ASSIGNMENT,
                    ASSIGNMENT,
                    existing.assignment_id,
                    "create",
                    f"Control {spec.control_id} is already assigned in cycle {spec.cycle_id}",
                )
                log_rejection(logger, "create_assignment", error)
                return Err(error)

            now = self._ctx.clock.now()
            try:
                assignment = ControlAssignment(
                    assignment_id=f"asg-{uuid4().hex[:12]}",
                    cycle_id=spec.cycle_id,
                    control_id=spec.control_id,
                    assignee=spec.assignee,
                    assigner=spec.assigner,
                    due_date=spec.due_date,
                    priority=spec.priority,
                    instructions=spec.instructions,
                    created_at=now,
                    updated_at=now,
                )
            except ValidationError as e:
                return Err(
                    from_validation_exception(e, aggregate_type=ASSIGNMENT, attempted="create")
                )

            updated_cycle = cycle.evolve(
                now, assignment_ids=[*cycle.assignment_ids, assignment.assignment_id]
            )
            drafts = [
                change_event(
                    EntityType.ASSIGNMENT,
                    assignment.assignment_id,
                    actor,
                    AuditAction.ASSIGNMENT_CREATED,
                    now,
                    None,
                    assignment,
                ),
                change_event(
                    EntityType.CYCLE,
                    cycle.cycle_id,
                    actor,
                    AuditAction.CONTROL_ADDED_TO_CYCLE,
                    now,
                    cycle,
                    updated_cycle,
                    {"assignment_id": assignment.assignment_id, "control_id": spec.control_id},
                ),
            ]
            committed = await self._ctx.commit(drafts, [assignment, updated_cycle])
            if isinstance(committed, Err):
                return committed

        logger.info(
            "Assignment %s created: %s -> %s",
            assignment.assignment_id,
            spec.control_id,
            spec.assignee,
        )
        self._ctx.outbox.notify(
            assignment.assignee,
            "assignment_created",
            {
                "assignment_id": assignment.assignment_id,
                "control_id": assignment.control_id,
                "due_date": assignment.due_date.isoformat(),
            },
        )
        return Ok(assignment)

    @beartype
    async def transition(
        self,
        assignment_id: str,
        target: AssignmentStatus,
        actor: str,
        reason: str | None = None,
    ) -> Result[ControlAssignment, WorkflowError]:
        """Move an assignment along the transition table.

        Entering in-progress requests the control's evidence. Entering
        completed requires an approved test execution.
        """
        assignment = self._ctx.store.assignments.get(assignment_id)
        if assignment is None:
            return Err(not_found(ASSIGNMENT, assignment_id))

        denied = await self._ctx.authorize(
            actor, EntityType.ASSIGNMENT, assignment_id, "transition", assignment.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(assignment_id):
            assignment = self._ctx.store.assignments[assignment_id]
            if not assignment_transition_allowed(assignment, target):
                error = invalid_transition(
                    ASSIGNMENT, assignment_id, assignment.status.value, target.value
                )
                log_rejection(logger, "transition", error)
                return Err(error)

            if target == AssignmentStatus.COMPLETED:
                execution = self._ctx.store.execution_for(assignment_id)
                if execution is None or execution.status != ExecutionStatus.APPROVED:
                    current = execution.status.value if execution else "undefined"
                    error = prerequisite_not_met(
                        ASSIGNMENT,
                        assignment_id,
                        assignment.status.value,
                        target.value,
                        f"Test execution must be approved before completion (currently {current})",
                    )
                    log_rejection(logger, "transition", error)
                    return Err(error)

            now = self._ctx.clock.now()
            if target == AssignmentStatus.BLOCKED:
                updated = blocked(assignment, reason or "Blocked manually", False, now)
                action = AuditAction.ASSIGNMENT_BLOCKED
            elif assignment.status == AssignmentStatus.BLOCKED:
                updated = unblocked(assignment, now)
                action = AuditAction.ASSIGNMENT_UNBLOCKED
            else:
                changes: dict[str, object] = {"status": target}
                if target == AssignmentStatus.COMPLETED:
                    changes["completed_at"] = now
                updated = assignment.evolve(now, **changes)
                action = AuditAction.ASSIGNMENT_TRANSITIONED

            drafts: list[AuditDraft] = [
                change_event(
                    EntityType.ASSIGNMENT,
                    assignment_id,
                    actor,
                    action,
                    now,
                    assignment,
                    updated,
                    {"from": assignment.status.value, "to": target.value, "reason": reason},
                )
            ]
            aggregates: list[BaseModelConfig] = [updated]

            if target == AssignmentStatus.IN_PROGRESS:
                control = self._ctx.store.controls.get(assignment.control_id)
                if control is not None:
                    try:
                        requests, request_drafts = (
                            await self._evidence.plan_requests_for_assignment(
                                updated, control, now, actor
                            )
                        )
                    except ValidationError as e:
                        return Err(
                            from_validation_exception(
                                e,
                                aggregate_type=ASSIGNMENT,
                                aggregate_id=assignment_id,
                                attempted=target.value,
                            )
                        )
                    drafts.extend(request_drafts)
                    aggregates.extend(requests)

            committed = await self._ctx.commit(drafts, aggregates)
            if isinstance(committed, Err):
                return committed

        logger.info(
            "Assignment %s: %s -> %s by %s",
            assignment_id,
            assignment.status.value,
            updated.status.value,
            actor,
        )
        for request in aggregates[1:]:
            self._ctx.outbox.notify(
                request.requested_from,
                "evidence_requested",
                {"request_number": request.request_number, "title": request.title},
            )
        if target == AssignmentStatus.REVIEW:
            self._ctx.outbox.notify(
                updated.assigner, "assignment_ready_for_review", {"assignment_id": assignment_id}
            )
        return Ok(updated)

    @beartype
    async def reassign(
        self, assignment_id: str, new_assignee: str, actor: str, reason: str | None = None
    ) -> Result[ControlAssignment, WorkflowError]:
        """Hand an assignment to another auditor. Only before work starts or while blocked."""
        assignment = self._ctx.store.assignments.get(assignment_id)
        if assignment is None:
            return Err(not_found(ASSIGNMENT, assignment_id))

        denied = await self._ctx.authorize(
            actor, EntityType.ASSIGNMENT, assignment_id, "reassign", assignment.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(assignment_id):
            assignment = self._ctx.store.assignments[assignment_id]
            if assignment.status not in REASSIGNABLE_STATUSES:
                error = invalid_transition(
                    ASSIGNMENT,
                    assignment_id,
                    assignment.status.value,
                    "reassign",
                    f"Assignment {assignment_id} cannot be reassigned "
                    f"while {assignment.status.value}",
                )
                log_rejection(logger, "reassign", error)
                return Err(error)
            if not new_assignee.strip() or new_assignee == assignment.assignee:
                return Err(
                    validation_error(
                        "New assignee must differ from the current assignee",
                        aggregate_type=ASSIGNMENT,
                        aggregate_id=assignment_id,
                        attempted="reassign",
                    )
                )

            now = self._ctx.clock.now()
            updated = assignment.evolve(now, assignee=new_assignee)
            draft = change_event(
                EntityType.ASSIGNMENT,
                assignment_id,
                actor,
                AuditAction.ASSIGNMENT_REASSIGNED,
                now,
                assignment,
                updated,
                {
                    "previous_assignee": assignment.assignee,
                    "new_assignee": new_assignee,
                    "reason": reason,
                },
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        logger.info(
            "Assignment %s transferred from %s to %s",
            assignment_id,
            assignment.assignee,
            new_assignee,
        )
        self._ctx.outbox.notify_many(
            {assignment.assignee, new_assignee},
            "assignment_reassigned",
            {"assignment_id": assignment_id, "assignee": new_assignee},
        )
        return Ok(updated)

    @beartype
    async def block(
        self,
        assignment_id: str,
        reason: str,
        actor: str = SYSTEM_ACTOR,
        automatic: bool = True,
    ) -> Result[ControlAssignment, WorkflowError]:
        """Block an assignment, remembering the status to return to."""
        assignment = self._ctx.store.assignments.get(assignment_id)
        if assignment is None:
            return Err(not_found(ASSIGNMENT, assignment_id))

        denied = await self._ctx.authorize(
            actor, EntityType.ASSIGNMENT, assignment_id, "block", assignment.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(assignment_id):
            assignment = self._ctx.store.assignments[assignment_id]
            if not assignment_transition_allowed(assignment, AssignmentStatus.BLOCKED):
                error = invalid_transition(
                    ASSIGNMENT,
                    assignment_id,
                    assignment.status.value,
                    AssignmentStatus.BLOCKED.value,
                )
                log_rejection(logger, "block", error)
                return Err(error)

            now = self._ctx.clock.now()
            updated = blocked(assignment, reason, automatic, now)
            draft = change_event(
                EntityType.ASSIGNMENT,
                assignment_id,
                actor,
                AuditAction.ASSIGNMENT_BLOCKED,
                now,
                assignment,
                updated,
                {"reason": reason, "automatic": automatic},
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        logger.warning("Assignment %s blocked: %s", assignment_id, reason)
        self._ctx.outbox.notify_many(
            {updated.assignee, updated.assigner},
            "assignment_blocked",
            {"assignment_id": assignment_id, "reason": reason},
        )
        return Ok(updated)

    @beartype
    async def resolve_block(
        self, assignment_id: str, actor: str = SYSTEM_ACTOR
    ) -> Result[ControlAssignment, WorkflowError]:
        """Return a blocked assignment to the status it was blocked from."""
        assignment = self._ctx.store.assignments.get(assignment_id)
        if assignment is None:
            return Err(not_found(ASSIGNMENT, assignment_id))
        if assignment.blocked_from is None:
            error = invalid_transition(
                ASSIGNMENT,
                assignment_id,
                assignment.status.value,
                "unblock",
                f"Assignment {assignment_id} is not blocked",
            )
            log_rejection(logger, "resolve_block", error)
            return Err(error)
        return await self.transition(assignment_id, assignment.blocked_from, actor)

    # Queries

    @beartype
    def get_assignment(self, assignment_id: str) -> Result[ControlAssignment, WorkflowError]:
        """Current snapshot of an assignment."""
        assignment = self._ctx.store.assignments.get(assignment_id)
        if assignment is None:
            return Err(not_found(ASSIGNMENT, assignment_id))
        return Ok(assignment)

    @beartype
    def list_assignments(self, cycle_id: str) -> list[ControlAssignment]:
        """Assignments of a cycle in the order they were added."""
        return self._ctx.store.assignments_in(cycle_id)
