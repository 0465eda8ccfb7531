# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Periodic due-date sweep.

One pass sends reminders, flags overdue requests and remediation activities,
fires escalation tiers that have come due and blocks assignments whose
mandatory evidence is overdue past the grace period. Each item is handled
through the normal commands, so a pass can be cancelled at any point and the
next pass picks up what was left.
"""

import asyncio
import logging
from datetime import timedelta

from beartype import beartype
from pydantic import Field

from ..core.result_types import Err
from ..models.assignment import AssignmentStatus
from ..models.base import BaseModelConfig
from ..models.evidence import EvidenceRequest
from ..models.finding import ActivityStatus
from .assignment_engine import AssignmentEngine
from .context import WorkflowContext
from .evidence_coordinator import EvidenceCoordinator
from .finding_tracker import FindingTracker

logger = logging.getLogger(__name__)


class SweepReport(BaseModelConfig):
    """What one sweep pass changed."""

    reminders_sent: int = Field(default=0, ge=0)
    requests_marked_overdue: int = Field(default=0, ge=0)
    requests_escalated: int = Field(default=0, ge=0)
    assignments_blocked: int = Field(default=0, ge=0)
    activities_marked_overdue: int = Field(default=0, ge=0)
    activities_escalated: int = Field(default=0, ge=0)
    failures: int = Field(default=0, ge=0)


class DueDateSweeper:
    """Runs the due-date pass once or on a fixed interval."""

    def __init__(
        self,
        ctx: WorkflowContext,
        evidence: EvidenceCoordinator,
        assignments: AssignmentEngine,
        findings: FindingTracker,
    ) -> None:
        """Initialize with the engines whose commands the sweep issues."""
        self._ctx = ctx
        self._evidence = evidence
        self._assignments = assignments
        self._findings = findings
        self._task: asyncio.Task[None] | None = None

    @beartype
    async def run_once(self) -> SweepReport:
        """Perform one idempotent pass over open requests and remediation activities."""
        counts = dict.fromkeys(SweepReport.model_fields, 0)

        with self._ctx.system_run():
            for request_id in list(self._ctx.store.requests):
                await self._sweep_request(request_id, counts)

            for finding_id in list(self._ctx.store.findings):
                await self._sweep_finding(finding_id, counts)

        report = SweepReport(**counts)
        if report != SweepReport():
            logger.info("Due-date sweep: %s", report.model_dump())
        return report

    async def _sweep_request(self, request_id: str, counts: dict[str, int]) -> None:
        request = self._ctx.store.requests[request_id]
        if not request.is_open:
            return

        now = self._ctx.clock.now()
        lead = timedelta(hours=self._ctx.settings.reminder_lead_hours)
        if (
            not request.is_overdue
            and request.reminder_sent_at is None
            and now < request.due_date <= now + lead
        ):
            if self._track(await self._evidence.send_reminder(request_id), counts):
                counts["reminders_sent"] += 1

        if now > request.due_date and not request.is_overdue:
            if self._track(await self._evidence.mark_overdue(request_id), counts):
                counts["requests_marked_overdue"] += 1

        request = self._ctx.store.requests[request_id]
        if not request.is_overdue:
            return

        escalated = await self._evidence.escalate(request_id)
        if (
            self._track(escalated, counts)
            and escalated.value.escalation_tier > request.escalation_tier
        ):
            counts["requests_escalated"] += 1

        if self._blocks_assignment(request):
            assignment = self._ctx.store.assignments[request.assignment_id]
            if assignment.status not in (AssignmentStatus.BLOCKED, AssignmentStatus.COMPLETED):
                reason = f"Mandatory evidence request {request.request_number} is overdue"
                blocked = await self._assignments.block(assignment.assignment_id, reason)
                if self._track(blocked, counts):
                    counts["assignments_blocked"] += 1

    def _blocks_assignment(self, request: EvidenceRequest) -> bool:
        if not request.has_mandatory_spec() or request.overdue_since is None:
            return False
        grace = timedelta(hours=self._ctx.settings.blocking_grace_hours)
        return self._ctx.clock.now() - request.overdue_since >= grace

    async def _sweep_finding(self, finding_id: str, counts: dict[str, int]) -> None:
        finding = self._ctx.store.findings[finding_id]
        if finding.is_terminal:
            return

        now = self._ctx.clock.now()
        for activity in finding.activities:
            if activity.status != ActivityStatus.OPEN:
                continue
            activity_id = activity.activity_id
            if not activity.is_overdue and now > activity.target_date:
                marked = await self._findings.mark_activity_overdue(finding_id, activity_id)
                if self._track(marked, counts):
                    counts["activities_marked_overdue"] += 1

            current = self._ctx.store.findings[finding_id]
            before = next(a for a in current.activities if a.activity_id == activity_id)
            if not before.is_overdue:
                continue
            escalated = await self._findings.escalate_activity(finding_id, activity_id)
            if self._track(escalated, counts):
                after = next(
                    a for a in escalated.value.activities if a.activity_id == activity_id
                )
                if after.escalation_tier > before.escalation_tier:
                    counts["activities_escalated"] += 1

    def _track(self, result: object, counts: dict[str, int]) -> bool:
        if isinstance(result, Err):
            counts["failures"] += 1
            logger.error("Sweep step failed: %s", result.error)
            return False
        return True

    # Scheduling

    @beartype
    async def start(self) -> None:
        """Run the sweep every ``sweep_interval_seconds`` in the background."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())

    @beartype
    async def stop(self) -> None:
        """Cancel the background sweep, waiting for it to unwind."""
        task = self._task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None

    @property
    def running(self) -> bool:
        """Whether the background sweep is scheduled."""
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
                await asyncio.sleep(self._ctx.settings.sweep_interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in due-date sweep: %s", e)
                await asyncio.sleep(self._ctx.settings.sweep_interval_seconds)
