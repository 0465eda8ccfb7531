# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Evidence request lifecycle.

Requests move ``sent -> acknowledged -> in_progress -> completed`` and may be
cancelled while open. Being overdue is a flag set by the due-date sweep, not
a status. At most one open request may exist per (assignment, evidence type).
"""

import logging
from datetime import datetime, timedelta
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
from ..models.assignment import AssignmentStatus, ControlAssignment
from ..models.audit import AuditAction, AuditDraft, EntityType
from ..models.control import ControlDefinition
from ..models.evidence import (
    EvidenceFileRef,
    EvidenceRequest,
    EvidenceSpec,
    EvidenceSubmission,
    RequestComment,
    RequestStatus,
    SubmissionOutcome,
    SubmissionResult,
)
from .audit_log import change_event
from .context import SYSTEM_ACTOR, WorkflowContext
from .transitions import (
    REQUEST_TRANSITIONS,
    escalation_tier_due,
    should_auto_unblock,
    unblocked,
)

logger = logging.getLogger(__name__)

REQUEST = EntityType.EVIDENCE_REQUEST.value


class EvidenceCoordinator:
    """Creates, routes, tracks and escalates evidence requests."""

    def __init__(self, ctx: WorkflowContext) -> None:
        """Initialize over the shared workflow context."""
        self._ctx = ctx

    # Creation

    @beartype
    async def create_request(
        self,
        assignment_id: str,
        specs: list[EvidenceSpec],
        due_date: datetime,
        actor: str,
        *,
        title: str | None = None,
        instructions: str | None = None,
        requested_from: str | None = None,
    ) -> Result[EvidenceRequest, WorkflowError]:
        """Ask a provider for one or more evidence items on an assignment."""
        assignment = self._ctx.store.assignments.get(assignment_id)
        if assignment is None:
            return Err(not_found(EntityType.ASSIGNMENT.value, assignment_id))

        denied = await self._ctx.authorize(
            actor, EntityType.EVIDENCE_REQUEST, assignment_id, "create", assignment.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(assignment_id):
            assignment = self._ctx.store.assignments[assignment_id]
            now = self._ctx.clock.now()

            error = self._validate_new_request(assignment, specs, due_date, now)
            if error is not None:
                log_rejection(logger, "create_request", error)
                return Err(error)

            try:
                request = await self._build_request(
                    assignment,
                    specs,
                    due_date,
                    requested_by=actor,
                    at=now,
                    title=title,
                    instructions=instructions,
                    requested_from=requested_from,
                )
            except ValidationError as e:
                return Err(
                    from_validation_exception(
                        e, aggregate_type=REQUEST, aggregate_id=assignment_id, attempted="create"
                    )
                )

            draft = change_event(
                EntityType.EVIDENCE_REQUEST,
                request.request_id,
                actor,
                AuditAction.REQUEST_CREATED,
                now,
                None,
                request,
                {"assignment_id": assignment_id, "request_number": request.request_number},
            )
            committed = await self._ctx.commit([draft], [request])
            if isinstance(committed, Err):
                return committed

        logger.info(
            "Evidence request %s created for assignment %s", request.request_number, assignment_id
        )
        self._notify_created(request)
        return Ok(request)

    @beartype
    async def plan_requests_for_assignment(
        self,
        assignment: ControlAssignment,
        control: ControlDefinition,
        at: datetime,
        actor: str,
    ) -> tuple[list[EvidenceRequest], list[AuditDraft]]:
        """Requests an assignment needs on entering in-progress, one per evidence type.

        Evidence types that already have a request that is open or completed
        are skipped. The caller holds the assignment lock and commits.
        """
        covered = {
            evidence_type
            for existing in self._ctx.store.requests_for(assignment.assignment_id)
            if existing.status != RequestStatus.CANCELLED
            for evidence_type in existing.evidence_types()
        }

        requests: list[EvidenceRequest] = []
        drafts: list[AuditDraft] = []
        try:
            for requirement in control.evidence_requirements:
                if requirement.evidence_type in covered:
                    continue
                due_date = (
                    at + timedelta(days=requirement.due_offset_days)
                    if requirement.due_offset_days
                    else assignment.due_date
                )
                spec = EvidenceSpec(
                    evidence_type=requirement.evidence_type,
                    format=requirement.format,
                    due_date=due_date,
                    mandatory=requirement.mandatory,
                    description=requirement.description,
                )
                request = await self._build_request(
                    assignment, [spec], due_date, requested_by=assignment.assignee, at=at
                )
                requests.append(request)
                drafts.append(
                    change_event(
                        EntityType.EVIDENCE_REQUEST,
                        request.request_id,
                        actor,
                        AuditAction.REQUEST_CREATED,
                        at,
                        None,
                        request,
                        {
                            "assignment_id": assignment.assignment_id,
                            "request_number": request.request_number,
                            "automatic": True,
                        },
                    )
                )
        except ValidationError:
            self._ctx.store.release(*requests)
            raise
        return requests, drafts

    def _validate_new_request(
        self,
        assignment: ControlAssignment,
        specs: list[EvidenceSpec],
        due_date: datetime,
        now: datetime,
    ) -> WorkflowError | None:
        if not specs:
            return validation_error(
                "At least one evidence spec is required",
                aggregate_type=REQUEST,
                aggregate_id=assignment.assignment_id,
                attempted="create",
            )
        types = [spec.evidence_type for spec in specs]
        if len(set(types)) != len(types):
            return validation_error(
                "Each evidence type may appear once per request",
                aggregate_type=REQUEST,
                aggregate_id=assignment.assignment_id,
                attempted="create",
            )
        if due_date <= now:
            return validation_error(
                "Due date must be in the future",
                aggregate_type=REQUEST,
                aggregate_id=assignment.assignment_id,
                attempted="create",
            )
        if assignment.status == AssignmentStatus.COMPLETED:
            return prerequisite_not_met(
                EntityType.ASSIGNMENT.value,
                assignment.assignment_id,
                assignment.status.value,
                "create_request",
                "Evidence cannot be requested for a completed assignment",
            )

        conflicting = sorted(
            evidence_type
            for existing in self._ctx.store.requests_for(assignment.assignment_id)
            if existing.is_open
            for evidence_type in existing.evidence_types()
            if evidence_type in types
        )
        if conflicting:
            return conflict(
                ErrorKind.CONFLICTING_REQUEST,
                EntityType.ASSIGNMENT.value,
                assignment.assignment_id,
                "create_request",
                f"Open request already exists for evidence type(s): {', '.join(conflicting)}",
            )
        return None

    async def _build_request(
        self,
        assignment: ControlAssignment,
        specs: list[EvidenceSpec],
        due_date: datetime,
        *,
        requested_by: str,
        at: datetime,
        title: str | None = None,
        instructions: str | None = None,
        requested_from: str | None = None,
    ) -> EvidenceRequest:
        provider = requested_from or await self._route(assignment, specs[0].evidence_type)
        number = self._ctx.store.next_request_number(
            self._ctx.settings.request_number_prefix, at.year
        )
        try:
            return EvidenceRequest(
                request_id=f"req-{uuid4().hex[:12]}",
                request_number=number,
                assignment_id=assignment.assignment_id,
                cycle_id=assignment.cycle_id,
                control_id=assignment.control_id,
                title=title
                or f"{assignment.control_id}: {', '.join(s.evidence_type for s in specs)}",
                instructions=instructions,
                specs=specs,
                requested_from=provider,
                requested_by=requested_by,
                due_date=due_date,
                created_at=at,
                updated_at=at,
            )
        except ValidationError:
            self._ctx.store.release_request_number(number)
            raise

    async def _route(self, assignment: ControlAssignment, evidence_type: str) -> str:
        provider = await self._ctx.directory.evidence_provider_for(
            assignment.control_id, evidence_type
        )
        if provider:
            return provider
        control = self._ctx.store.controls.get(assignment.control_id)
        if control is not None:
            return control.owner
        return assignment.assignee

    # Provider actions

    @beartype
    async def acknowledge(
        self, request_id: str, actor: str
    ) -> Result[EvidenceRequest, WorkflowError]:
        """Provider confirms receipt. Repeating it is a no-op."""
        request = self._ctx.store.requests.get(request_id)
        if request is None:
            return Err(not_found(REQUEST, request_id))

        denied = await self._ctx.authorize(
            actor, EntityType.EVIDENCE_REQUEST, request_id, "acknowledge", request.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(request.assignment_id):
            request = self._ctx.store.requests[request_id]
            if request.status == RequestStatus.ACKNOWLEDGED:
                return Ok(request)
            if request.status != RequestStatus.SENT:
                error = invalid_transition(
                    REQUEST, request_id, request.status.value, RequestStatus.ACKNOWLEDGED.value
                )
                log_rejection(logger, "acknowledge", error)
                return Err(error)

            now = self._ctx.clock.now()
            updated = request.evolve(now, status=RequestStatus.ACKNOWLEDGED)
            draft = change_event(
                EntityType.EVIDENCE_REQUEST,
                request_id,
                actor,
                AuditAction.REQUEST_ACKNOWLEDGED,
                now,
                request,
                updated,
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        self._ctx.outbox.notify(
            updated.requested_by,
            "evidence_request_acknowledged",
            {"request_number": updated.request_number, "by": actor},
        )
        return Ok(updated)

    @beartype
    async def submit_evidence(
        self, request_id: str, files: list[EvidenceFileRef], actor: str
    ) -> Result[SubmissionResult, WorkflowError]:
        """Attach file references to a request.

        A submission that leaves mandatory evidence uncovered is accepted and
        reported as ``incomplete_submission``. Earlier references are never
        replaced; re-submitting a file id supersedes its previous reference.
        """
        request = self._ctx.store.requests.get(request_id)
        if request is None:
            return Err(not_found(REQUEST, request_id))

        denied = await self._ctx.authorize(
            actor, EntityType.EVIDENCE_REQUEST, request_id, "submit", request.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(request.assignment_id):
            request = self._ctx.store.requests[request_id]
            error = self._validate_submission(request, files)
            if error is not None:
                log_rejection(logger, "submit_evidence", error)
                return Err(error)

            now = self._ctx.clock.now()
            previous = {ref.file_id: ref for ref in request.active_files()}
            notices = [
                f"File {ref.file_id} re-submitted with a different content hash "
                f"({previous[ref.file_id].content_hash} -> {ref.content_hash})"
                for ref in files
                if ref.file_id in previous
                and previous[ref.file_id].content_hash != ref.content_hash
            ]
            submission = EvidenceSubmission(
                submission_id=f"sub-{uuid4().hex[:12]}",
                submitted_by=actor,
                submitted_at=now,
                files=files,
                integrity_notices=notices,
            )
            with_files = request.model_copy(
                update={"submissions": [*request.submissions, submission]}
            )
            missing = with_files.missing_mandatory_types()

            if missing:
                outcome = SubmissionOutcome.INCOMPLETE_SUBMISSION
                updated = request.evolve(
                    now, submissions=with_files.submissions, status=RequestStatus.IN_PROGRESS
                )
            else:
                outcome = SubmissionOutcome.COMPLETE
                updated = request.evolve(
                    now,
                    submissions=with_files.submissions,
                    status=RequestStatus.COMPLETED,
                    completed_at=now,
                    is_overdue=False,
                )

            drafts = [
                change_event(
                    EntityType.EVIDENCE_REQUEST,
                    request_id,
                    actor,
                    AuditAction.EVIDENCE_SUBMITTED,
                    now,
                    request,
                    updated,
                    {
                        "submission_id": submission.submission_id,
                        "file_ids": [ref.file_id for ref in files],
                        "outcome": outcome.value,
                        "missing_evidence_types": missing,
                        "integrity_notices": notices,
                    },
                )
            ]
            aggregates: list[EvidenceRequest | ControlAssignment] = [updated]
            released = self._release_assignment(updated, now, drafts)
            if released is not None:
                aggregates.append(released)

            committed = await self._ctx.commit(drafts, aggregates)
            if isinstance(committed, Err):
                return committed

        for notice in notices:
            logger.warning("Integrity notice on %s: %s", updated.request_number, notice)
        logger.info(
            "Evidence submitted on %s by %s (%s)", updated.request_number, actor, outcome.value
        )
        self._ctx.outbox.verify_files(request_id, files)
        if outcome == SubmissionOutcome.COMPLETE:
            self._ctx.outbox.notify(
                updated.requested_by,
                "evidence_request_completed",
                {"request_number": updated.request_number},
            )
        return Ok(
            SubmissionResult(request=updated, outcome=outcome, missing_evidence_types=missing)
        )

    def _validate_submission(
        self, request: EvidenceRequest, files: list[EvidenceFileRef]
    ) -> WorkflowError | None:
        if not request.is_open:
            return invalid_transition(
                REQUEST,
                request.request_id,
                request.status.value,
                "submit_evidence",
                f"Evidence cannot be submitted to a {request.status.value} request",
            )
        if not files:
            return validation_error(
                "At least one file reference is required",
                aggregate_type=REQUEST,
                aggregate_id=request.request_id,
                attempted="submit_evidence",
            )
        requested = set(request.evidence_types())
        unknown = sorted({ref.evidence_type for ref in files} - requested)
        if unknown:
            return validation_error(
                f"Evidence type(s) not requested: {', '.join(unknown)}",
                aggregate_type=REQUEST,
                aggregate_id=request.request_id,
                attempted="submit_evidence",
            )
        return None

    def _release_assignment(
        self, closed_request: EvidenceRequest, at: datetime, drafts: list[AuditDraft]
    ) -> ControlAssignment | None:
        """Unblock the owning assignment when this request was the last overdue one."""
        if closed_request.is_open:
            return None
        assignment = self._ctx.store.assignments[closed_request.assignment_id]
        remaining = [
            closed_request if r.request_id == closed_request.request_id else r
            for r in self._ctx.store.requests_for(assignment.assignment_id)
        ]
        if not should_auto_unblock(assignment, remaining):
            return None

        released = unblocked(assignment, at)
        drafts.append(
            change_event(
                EntityType.ASSIGNMENT,
                assignment.assignment_id,
                SYSTEM_ACTOR,
                AuditAction.ASSIGNMENT_UNBLOCKED,
                at,
                assignment,
                released,
                {"resolved_by_request": closed_request.request_id},
            )
        )
        return released

    # Housekeeping

    @beartype
    async def cancel_request(
        self, request_id: str, reason: str, actor: str
    ) -> Result[EvidenceRequest, WorkflowError]:
        """Withdraw an open request; its evidence type may then be requested again."""
        request = self._ctx.store.requests.get(request_id)
        if request is None:
            return Err(not_found(REQUEST, request_id))

        denied = await self._ctx.authorize(
            actor, EntityType.EVIDENCE_REQUEST, request_id, "cancel", request.cycle_id
        )
        if denied:
            return Err(denied)
        if not reason.strip():
            return Err(
                validation_error(
                    "A cancellation reason is required",
                    aggregate_type=REQUEST,
                    aggregate_id=request_id,
                    attempted="cancel",
                )
            )

        async with self._ctx.locks.assignment(request.assignment_id):
            request = self._ctx.store.requests[request_id]
            if RequestStatus.CANCELLED not in REQUEST_TRANSITIONS[request.status]:
                error = invalid_transition(
                    REQUEST, request_id, request.status.value, RequestStatus.CANCELLED.value
                )
                log_rejection(logger, "cancel_request", error)
                return Err(error)

            now = self._ctx.clock.now()
            updated = request.evolve(
                now, status=RequestStatus.CANCELLED, cancelled_reason=reason, is_overdue=False
            )
            drafts = [
                change_event(
                    EntityType.EVIDENCE_REQUEST,
                    request_id,
                    actor,
                    AuditAction.REQUEST_CANCELLED,
                    now,
                    request,
                    updated,
                    {"reason": reason},
                )
            ]
            aggregates: list[EvidenceRequest | ControlAssignment] = [updated]
            released = self._release_assignment(updated, now, drafts)
            if released is not None:
                aggregates.append(released)

            committed = await self._ctx.commit(drafts, aggregates)
            if isinstance(committed, Err):
                return committed

        self._ctx.outbox.notify(
            updated.requested_from,
            "evidence_request_cancelled",
            {"request_number": updated.request_number, "reason": reason},
        )
        return Ok(updated)

    @beartype
    async def add_comment(
        self, request_id: str, content: str, actor: str
    ) -> Result[EvidenceRequest, WorkflowError]:
        """Append a discussion entry to a request."""
        request = self._ctx.store.requests.get(request_id)
        if request is None:
            return Err(not_found(REQUEST, request_id))

        denied = await self._ctx.authorize(
            actor, EntityType.EVIDENCE_REQUEST, request_id, "comment", request.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(request.assignment_id):
            request = self._ctx.store.requests[request_id]
            now = self._ctx.clock.now()
            try:
                comment = RequestComment(
                    comment_id=f"cmt-{uuid4().hex[:12]}",
                    author=actor,
                    content=content,
                    created_at=now,
                )
            except ValidationError as e:
                return Err(
                    from_validation_exception(
                        e, aggregate_type=REQUEST, aggregate_id=request_id, attempted="comment"
                    )
                )

            updated = request.evolve(now, comments=[*request.comments, comment])
            draft = change_event(
                EntityType.EVIDENCE_REQUEST,
                request_id,
                actor,
                AuditAction.REQUEST_COMMENTED,
                now,
                request,
                updated,
                {"comment_id": comment.comment_id},
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        counterpart = (
            updated.requested_by if actor == updated.requested_from else updated.requested_from
        )
        self._ctx.outbox.notify(
            counterpart,
            "evidence_request_comment",
            {"request_number": updated.request_number, "author": actor},
        )
        return Ok(updated)

    # Deadlines

    @beartype
    async def mark_overdue(self, request_id: str) -> Result[EvidenceRequest, WorkflowError]:
        """Flag an open request whose due date has passed. No-op when already flagged."""
        request = self._ctx.store.requests.get(request_id)
        if request is None:
            return Err(not_found(REQUEST, request_id))

        async with self._ctx.locks.assignment(request.assignment_id):
            request = self._ctx.store.requests[request_id]
            now = self._ctx.clock.now()
            if not request.is_open or request.is_overdue or now <= request.due_date:
                return Ok(request)

            updated = request.evolve(now, is_overdue=True, overdue_since=request.due_date)
            draft = change_event(
                EntityType.EVIDENCE_REQUEST,
                request_id,
                SYSTEM_ACTOR,
                AuditAction.REQUEST_MARKED_OVERDUE,
                now,
                request,
                updated,
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        logger.info("Evidence request %s is overdue", updated.request_number)
        self._ctx.outbox.notify(
            updated.requested_from,
            "evidence_request_overdue",
            {"request_number": updated.request_number, "due_date": updated.due_date.isoformat()},
        )
        return Ok(updated)

    @beartype
    async def escalate(
        self, request_id: str, actor: str = SYSTEM_ACTOR
    ) -> Result[EvidenceRequest, WorkflowError]:
        """Escalate an overdue request to the next tier that has come due.

        At most one escalation is recorded per tier. When no new tier is due
        the request is returned unchanged and nothing is recorded.
        """
        request = self._ctx.store.requests.get(request_id)
        if request is None:
            return Err(not_found(REQUEST, request_id))

        denied = await self._ctx.authorize(
            actor, EntityType.EVIDENCE_REQUEST, request_id, "escalate", request.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(request.assignment_id):
            request = self._ctx.store.requests[request_id]
            if not request.is_open or not request.is_overdue or request.overdue_since is None:
                error = prerequisite_not_met(
                    REQUEST,
                    request_id,
                    request.status.value,
                    "escalate",
                    "Only open, overdue requests can be escalated",
                )
                log_rejection(logger, "escalate", error)
                return Err(error)

            now = self._ctx.clock.now()
            tier = escalation_tier_due(
                request.overdue_since, now, self._ctx.settings.escalation_schedule_hours
            )
            if tier <= request.escalation_tier:
                return Ok(request)

            assignment = self._ctx.store.assignments[request.assignment_id]
            manager = await self._ctx.directory.manager_of(assignment.assignee)
            recipients = {assignment.assigner} | ({manager} if manager else set())

            updated = request.evolve(now, escalation_tier=tier, last_escalated_at=now)
            draft = change_event(
                EntityType.EVIDENCE_REQUEST,
                request_id,
                actor,
                AuditAction.REQUEST_ESCALATED,
                now,
                request,
                updated,
                {
                    "tier": tier,
                    "hours_overdue": round((now - request.overdue_since).total_seconds() / 3600, 2),
                    "recipients": sorted(recipients),
                },
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        logger.warning("Evidence request %s escalated to tier %d", updated.request_number, tier)
        self._ctx.outbox.notify_many(
            recipients,
            "evidence_request_escalated",
            {
                "request_number": updated.request_number,
                "assignment_id": updated.assignment_id,
                "tier": tier,
                "requested_from": updated.requested_from,
            },
        )
        return Ok(updated)

    @beartype
    async def send_reminder(
        self, request_id: str, actor: str = SYSTEM_ACTOR
    ) -> Result[EvidenceRequest, WorkflowError]:
        """Remind the provider about an open request."""
        request = self._ctx.store.requests.get(request_id)
        if request is None:
            return Err(not_found(REQUEST, request_id))

        denied = await self._ctx.authorize(
            actor, EntityType.EVIDENCE_REQUEST, request_id, "remind", request.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(request.assignment_id):
            request = self._ctx.store.requests[request_id]
            if not request.is_open:
                error = invalid_transition(
                    REQUEST,
                    request_id,
                    request.status.value,
                    "send_reminder",
                    f"No reminder for a {request.status.value} request",
                )
                log_rejection(logger, "send_reminder", error)
                return Err(error)

            now = self._ctx.clock.now()
            updated = request.evolve(now, reminder_sent_at=now)
            draft = change_event(
                EntityType.EVIDENCE_REQUEST,
                request_id,
                actor,
                AuditAction.REQUEST_REMINDER_SENT,
                now,
                request,
                updated,
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        self._ctx.outbox.notify(
            updated.requested_from,
            "evidence_request_reminder",
            {"request_number": updated.request_number, "due_date": updated.due_date.isoformat()},
        )
        return Ok(updated)

    # Queries

    @beartype
    def get_request(self, request_id: str) -> Result[EvidenceRequest, WorkflowError]:
        """Current snapshot of a request."""
        request = self._ctx.store.requests.get(request_id)
        if request is None:
            return Err(not_found(REQUEST, request_id))
        return Ok(request)

    @beartype
    def list_requests(self, assignment_id: str) -> list[EvidenceRequest]:
        """All requests of an assignment in creation order."""
        return self._ctx.store.requests_for(assignment_id)

    @beartype
    def get_pending_requests(self, provider: str) -> list[EvidenceRequest]:
        """Open requests waiting on a provider, soonest due first."""
        pending = [
            r
            for r in self._ctx.store.requests.values()
            if r.is_open and r.requested_from == provider
        ]
        return sorted(pending, key=lambda r: (r.due_date, r.request_number))

    def _notify_created(self, request: EvidenceRequest) -> None:
        self._ctx.outbox.notify(
            request.requested_from,
            "evidence_requested",
            {
                "request_number": request.request_number,
                "title": request.title,
                "due_date": request.due_date.isoformat(),
                "evidence_types": request.evidence_types(),
            },
        )
