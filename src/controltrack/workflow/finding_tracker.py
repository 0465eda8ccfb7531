# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Findings and their remediation.

A finding is opened automatically when a test execution concludes anything
other than effective. It moves ``open -> in_remediation -> closed``, or
``open -> withdrawn`` when review shows it was raised in error. Closing
always takes an explicit actor, no open remediation activities and, when a
follow-up is required, a passed follow-up result.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
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
from ..models.assignment import ControlAssignment
from ..models.audit import AuditAction, AuditDraft, EntityType
from ..models.finding import (
    ActivityStatus,
    Finding,
    FindingStatus,
    FollowUpResult,
    RemediationActivity,
    RootCauseCategory,
    Severity,
)
from ..models.testing import ExecutionStatus, ItemConclusion, OverallConclusion, TestExecution
from .audit_log import change_event
from .context import SYSTEM_ACTOR, WorkflowContext
from .transitions import FINDING_TRANSITIONS, escalation_tier_due

logger = logging.getLogger(__name__)

FINDING = EntityType.FINDING.value

SEVERITY_ORDER = (
    Severity.MATERIAL_WEAKNESS,
    Severity.SIGNIFICANT_DEFICIENCY,
    Severity.DEFICIENCY,
    Severity.OBSERVATION,
)

Change = Callable[
    [Finding, datetime], Result[tuple[Finding, dict[str, Any]], WorkflowError]
]


class FindingTracker:
    """Owns findings, remediation activities and follow-up testing."""

    def __init__(self, ctx: WorkflowContext) -> None:
        """Initialize over the shared workflow context."""
        self._ctx = ctx

    # Opening

    @beartype
    def plan_finding(
        self,
        execution: TestExecution,
        assignment: ControlAssignment,
        actor: str,
        at: datetime,
    ) -> tuple[Finding, AuditDraft]:
        """Build the finding for a deficient execution. The caller commits it."""
        conclusion = execution.overall_conclusion
        if conclusion is None or conclusion == OverallConclusion.EFFECTIVE:
            raise ValueError("findings are only raised for non-effective conclusions")

        exceptions = sum(
            1 for r in execution.item_results if r.conclusion == ItemConclusion.EXCEPTION
        )
        rate = execution.exception_rate or 0.0
        finding = Finding(
            finding_id=f"fnd-{uuid4().hex[:12]}",
            execution_id=execution.execution_id,
            assignment_id=assignment.assignment_id,
            cycle_id=assignment.cycle_id,
            control_id=assignment.control_id,
            severity=Severity.from_conclusion(conclusion),
            description=(
                f"Testing of {assignment.control_id} concluded {conclusion.value}: "
                f"{exceptions} exception(s) in {len(execution.sample)} item(s) ({rate:.1%})"
            ),
            created_at=at,
            updated_at=at,
        )
        draft = change_event(
            EntityType.FINDING,
            finding.finding_id,
            actor,
            AuditAction.FINDING_OPENED,
            at,
            None,
            finding,
            {"execution_id": execution.execution_id, "conclusion": conclusion.value},
        )
        return finding, draft

    @beartype
    async def open_finding(
        self, assignment_id: str, actor: str
    ) -> Result[Finding, WorkflowError]:
        """Open the finding for a deficient execution that does not have one yet."""
        assignment = self._ctx.store.assignments.get(assignment_id)
        if assignment is None:
            return Err(not_found(EntityType.ASSIGNMENT.value, assignment_id))

        denied = await self._ctx.authorize(
            actor, EntityType.FINDING, assignment_id, "open", assignment.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(assignment_id):
            execution = self._ctx.store.execution_for(assignment_id)
            if (
                execution is None
                or execution.status == ExecutionStatus.IN_PROGRESS
                or execution.overall_conclusion in (None, OverallConclusion.EFFECTIVE)
            ):
                error = prerequisite_not_met(
                    EntityType.TEST_EXECUTION.value,
                    execution.execution_id if execution else assignment_id,
                    execution.status.value if execution else "undefined",
                    "open_finding",
                    "A finding needs a finalized execution with a deficient conclusion",
                )
                log_rejection(logger, "open_finding", error)
                return Err(error)
            if execution.finding_id is not None:
                return Ok(self._ctx.store.findings[execution.finding_id])

            now = self._ctx.clock.now()
            finding, draft = self.plan_finding(execution, assignment, actor, now)
            linked = execution.evolve(now, finding_id=finding.finding_id)
            link_draft = change_event(
                EntityType.TEST_EXECUTION,
                execution.execution_id,
                actor,
                AuditAction.FINDING_OPENED,
                now,
                execution,
                linked,
                {"finding_id": finding.finding_id},
            )
            committed = await self._ctx.commit([draft, link_draft], [finding, linked])
            if isinstance(committed, Err):
                return committed

        self.announce(finding, assignment)
        return Ok(finding)

    @beartype
    def announce(self, finding: Finding, assignment: ControlAssignment) -> None:
        """Post-commit notification for a newly opened finding."""
        logger.warning(
            "Finding %s opened on %s with severity %s",
            finding.finding_id,
            finding.control_id,
            finding.severity.value,
        )
        self._ctx.outbox.notify_many(
            {assignment.assignee, assignment.assigner},
            "finding_opened",
            {
                "finding_id": finding.finding_id,
                "control_id": finding.control_id,
                "severity": finding.severity.value,
            },
        )

    # Remediation

    @beartype
    async def add_remediation_activity(
        self,
        finding_id: str,
        description: str,
        owner: str,
        target_date: datetime,
        actor: str,
    ) -> Result[Finding, WorkflowError]:
        """Plan a corrective action. The first one moves the finding into remediation."""

        def change(finding: Finding, now: datetime):
            if finding.is_terminal:
                return Err(
                    invalid_transition(
                        FINDING,
                        finding_id,
                        finding.status.value,
                        "add_remediation_activity",
                        f"Finding {finding_id} is {finding.status.value}",
                    )
                )
            if target_date <= now:
                return Err(
                    validation_error(
                        "Target date must be in the future",
                        aggregate_type=FINDING,
                        aggregate_id=finding_id,
                        attempted="add_remediation_activity",
                    )
                )
            try:
                activity = RemediationActivity(
                    activity_id=f"act-{uuid4().hex[:12]}",
                    description=description,
                    owner=owner,
                    target_date=target_date,
                )
            except ValidationError as e:
                return Err(
                    from_validation_exception(
                        e,
                        aggregate_type=FINDING,
                        aggregate_id=finding_id,
                        attempted="add_remediation_activity",
                    )
                )
            status = (
                FindingStatus.IN_REMEDIATION
                if finding.status == FindingStatus.OPEN
                else finding.status
            )
            updated = finding.evolve(
                now, activities=[*finding.activities, activity], status=status
            )
            return Ok((updated, {"activity_id": activity.activity_id, "owner": owner}))

        result = await self._apply(
            finding_id, actor, "remediate", AuditAction.REMEDIATION_ADDED, change
        )
        if isinstance(result, Ok):
            self._ctx.outbox.notify(
                owner,
                "remediation_activity_assigned",
                {"finding_id": finding_id, "target_date": target_date.isoformat()},
            )
        return result

    @beartype
    async def complete_remediation_activity(
        self,
        finding_id: str,
        activity_id: str,
        actor: str,
        note: str | None = None,
    ) -> Result[Finding, WorkflowError]:
        """Mark an activity done. The finding stays in remediation until closed explicitly."""

        def change(finding: Finding, now: datetime):
            activity = _find_activity(finding, activity_id)
            if activity is None:
                return Err(not_found("remediation_activity", activity_id))
            if finding.is_terminal or activity.status == ActivityStatus.COMPLETED:
                return Err(
                    invalid_transition(
                        "remediation_activity",
                        activity_id,
                        activity.status.value,
                        ActivityStatus.COMPLETED.value,
                    )
                )
            done = activity.model_copy(
                update={
                    "status": ActivityStatus.COMPLETED,
                    "completion_date": now,
                    "completion_note": note,
                    "is_overdue": False,
                }
            )
            updated = finding.evolve(now, activities=_replace_activity(finding, done))
            return Ok((updated, {"activity_id": activity_id}))

        result = await self._apply(
            finding_id, actor, "remediate", AuditAction.REMEDIATION_COMPLETED, change
        )
        if isinstance(result, Ok) and not result.value.open_activities():
            assignment = self._ctx.store.assignments.get(result.value.assignment_id)
            if assignment is not None:
                self._ctx.outbox.notify(
                    assignment.assigner,
                    "finding_remediation_complete",
                    {"finding_id": finding_id},
                )
        return result

    # Follow-up

    @beartype
    async def schedule_follow_up(
        self,
        finding_id: str,
        actor: str,
        follow_up_date: datetime | None = None,
        required: bool = True,
    ) -> Result[Finding, WorkflowError]:
        """Set (or waive) the follow-up retest. The date defaults to the configured offset."""

        def change(finding: Finding, now: datetime):
            if finding.is_terminal:
                return Err(
                    invalid_transition(
                        FINDING, finding_id, finding.status.value, "schedule_follow_up"
                    )
                )
            if not required:
                updated = finding.evolve(now, follow_up_required=False, follow_up_date=None)
                return Ok((updated, {"required": False}))

            when = follow_up_date or now + timedelta(days=self._ctx.settings.follow_up_days)
            if when <= now:
                return Err(
                    validation_error(
                        "Follow-up date must be in the future",
                        aggregate_type=FINDING,
                        aggregate_id=finding_id,
                        attempted="schedule_follow_up",
                    )
                )
            updated = finding.evolve(now, follow_up_required=True, follow_up_date=when)
            return Ok((updated, {"required": True, "follow_up_date": when.isoformat()}))

        return await self._apply(
            finding_id, actor, "follow_up", AuditAction.FOLLOW_UP_SCHEDULED, change
        )

    @beartype
    async def record_follow_up_result(
        self,
        finding_id: str,
        passed: bool,
        actor: str,
        note: str | None = None,
    ) -> Result[Finding, WorkflowError]:
        """Record the retest outcome once every remediation activity is done."""

        def change(finding: Finding, now: datetime):
            if finding.status != FindingStatus.IN_REMEDIATION:
                return Err(
                    invalid_transition(
                        FINDING,
                        finding_id,
                        finding.status.value,
                        "record_follow_up_result",
                        "Follow-up results are recorded during remediation",
                    )
                )
            if finding.open_activities():
                return Err(
                    prerequisite_not_met(
                        FINDING,
                        finding_id,
                        finding.status.value,
                        "record_follow_up_result",
                        f"{len(finding.open_activities())} remediation activity(ies) still open",
                    )
                )
            outcome = FollowUpResult(passed=passed, note=note, recorded_by=actor, recorded_at=now)
            updated = finding.evolve(now, follow_up_result=outcome)
            return Ok((updated, {"passed": passed}))

        return await self._apply(
            finding_id, actor, "follow_up", AuditAction.FOLLOW_UP_RECORDED, change
        )

    # Terminal states

    @beartype
    async def close(self, finding_id: str, actor: str) -> Result[Finding, WorkflowError]:
        """Close a remediated finding."""

        def change(finding: Finding, now: datetime):
            if FindingStatus.CLOSED not in FINDING_TRANSITIONS[finding.status]:
                return Err(
                    invalid_transition(
                        FINDING, finding_id, finding.status.value, FindingStatus.CLOSED.value
                    )
                )
            if finding.open_activities():
                return Err(
                    prerequisite_not_met(
                        FINDING,
                        finding_id,
                        finding.status.value,
                        FindingStatus.CLOSED.value,
                        f"{len(finding.open_activities())} remediation activity(ies) still open",
                    )
                )
            if not finding.ready_for_closure:
                return Err(
                    prerequisite_not_met(
                        FINDING,
                        finding_id,
                        finding.status.value,
                        FindingStatus.CLOSED.value,
                        "A passed follow-up test result is required before closing",
                    )
                )
            updated = finding.evolve(
                now, status=FindingStatus.CLOSED, closed_by=actor, closed_at=now
            )
            return Ok((updated, {}))

        return await self._apply(finding_id, actor, "close", AuditAction.FINDING_CLOSED, change)

    @beartype
    async def withdraw(
        self, finding_id: str, reason: str, actor: str
    ) -> Result[Finding, WorkflowError]:
        """Withdraw a finding raised in error. Only possible before remediation starts."""

        def change(finding: Finding, now: datetime):
            if FindingStatus.WITHDRAWN not in FINDING_TRANSITIONS[finding.status]:
                return Err(
                    invalid_transition(
                        FINDING, finding_id, finding.status.value, FindingStatus.WITHDRAWN.value
                    )
                )
            if not reason.strip():
                return Err(
                    validation_error(
                        "A reason is required to withdraw a finding",
                        aggregate_type=FINDING,
                        aggregate_id=finding_id,
                        attempted=FindingStatus.WITHDRAWN.value,
                    )
                )
            updated = finding.evolve(
                now, status=FindingStatus.WITHDRAWN, withdrawn_reason=reason, closed_at=now
            )
            return Ok((updated, {"reason": reason}))

        return await self._apply(
            finding_id, actor, "withdraw", AuditAction.FINDING_WITHDRAWN, change
        )

    @beartype
    async def reclassify_severity(
        self,
        finding_id: str,
        severity: Severity,
        note: str,
        actor: str,
        root_cause: RootCauseCategory | None = None,
    ) -> Result[Finding, WorkflowError]:
        """Change severity (and optionally root cause) with an explanatory note."""

        def change(finding: Finding, now: datetime):
            if finding.is_terminal:
                return Err(
                    invalid_transition(
                        FINDING, finding_id, finding.status.value, "reclassify_severity"
                    )
                )
            if not note.strip():
                return Err(
                    validation_error(
                        "Reclassification requires a note",
                        aggregate_type=FINDING,
                        aggregate_id=finding_id,
                        attempted="reclassify_severity",
                    )
                )
            new_root_cause = root_cause or finding.root_cause
            if severity == finding.severity and new_root_cause == finding.root_cause:
                return Ok((finding, {}))
            updated = finding.evolve(now, severity=severity, root_cause=new_root_cause)
            return Ok(
                (
                    updated,
                    {
                        "note": note,
                        "from_severity": finding.severity.value,
                        "to_severity": severity.value,
                    },
                )
            )

        return await self._apply(
            finding_id, actor, "reclassify", AuditAction.FINDING_RECLASSIFIED, change
        )

    # Deadlines

    @beartype
    async def mark_activity_overdue(
        self, finding_id: str, activity_id: str
    ) -> Result[Finding, WorkflowError]:
        """Flag an open activity past its target date. No-op when already flagged."""

        def change(finding: Finding, now: datetime):
            activity = _find_activity(finding, activity_id)
            if activity is None:
                return Err(not_found("remediation_activity", activity_id))
            if (
                finding.is_terminal
                or activity.status != ActivityStatus.OPEN
                or activity.is_overdue
                or now <= activity.target_date
            ):
                return Ok((finding, {}))
            flagged = activity.model_copy(
                update={"is_overdue": True, "overdue_since": activity.target_date}
            )
            updated = finding.evolve(now, activities=_replace_activity(finding, flagged))
            return Ok((updated, {"activity_id": activity_id}))

        return await self._apply(
            finding_id,
            SYSTEM_ACTOR,
            "remediate",
            AuditAction.REMEDIATION_MARKED_OVERDUE,
            change,
        )

    @beartype
    async def escalate_activity(
        self, finding_id: str, activity_id: str, actor: str = SYSTEM_ACTOR
    ) -> Result[Finding, WorkflowError]:
        """Escalate an overdue activity on the same tiered schedule as evidence requests."""
        finding = self._ctx.store.findings.get(finding_id)
        activity = _find_activity(finding, activity_id) if finding else None
        manager = await self._ctx.directory.manager_of(activity.owner) if activity else None
        recipients: set[str] = set()

        def change(finding: Finding, now: datetime):
            activity = _find_activity(finding, activity_id)
            if activity is None:
                return Err(not_found("remediation_activity", activity_id))
            if (
                activity.status != ActivityStatus.OPEN
                or not activity.is_overdue
                or activity.overdue_since is None
            ):
                return Err(
                    prerequisite_not_met(
                        "remediation_activity",
                        activity_id,
                        activity.status.value,
                        "escalate",
                        "Only open, overdue activities can be escalated",
                    )
                )
            tier = escalation_tier_due(
                activity.overdue_since, now, self._ctx.settings.escalation_schedule_hours
            )
            if tier <= activity.escalation_tier:
                return Ok((finding, {}))
            recipients.update({activity.owner} | ({manager} if manager else set()))
            escalated = activity.model_copy(
                update={"escalation_tier": tier, "last_escalated_at": now}
            )
            updated = finding.evolve(now, activities=_replace_activity(finding, escalated))
            metadata = {"activity_id": activity_id, "tier": tier, "recipients": sorted(recipients)}
            return Ok((updated, metadata))

        result = await self._apply(
            finding_id, actor, "escalate", AuditAction.REMEDIATION_ESCALATED, change
        )
        if isinstance(result, Ok) and recipients:
            self._ctx.outbox.notify_many(
                recipients,
                "remediation_activity_escalated",
                {"finding_id": finding_id, "activity_id": activity_id},
            )
        return result

    # Queries

    @beartype
    def get_finding(self, finding_id: str) -> Result[Finding, WorkflowError]:
        """Current snapshot of a finding."""
        finding = self._ctx.store.findings.get(finding_id)
        if finding is None:
            return Err(not_found(FINDING, finding_id))
        return Ok(finding)

    @beartype
    def get_findings_by_severity(
        self,
        severity: Severity | None = None,
        *,
        cycle_id: str | None = None,
        include_terminal: bool = False,
    ) -> dict[Severity, list[Finding]]:
        """Findings grouped by severity, most severe first."""
        grouped: dict[Severity, list[Finding]] = {
            level: [] for level in SEVERITY_ORDER if severity in (None, level)
        }
        for finding in self._ctx.store.findings.values():
            if finding.severity not in grouped:
                continue
            if cycle_id is not None and finding.cycle_id != cycle_id:
                continue
            if finding.is_terminal and not include_terminal:
                continue
            grouped[finding.severity].append(finding)
        for findings in grouped.values():
            findings.sort(key=lambda f: f.created_at)
        return grouped

    async def _apply(
        self,
        finding_id: str,
        actor: str,
        permission: str,
        action: AuditAction,
        change: Change,
    ) -> Result[Finding, WorkflowError]:
        finding = self._ctx.store.findings.get(finding_id)
        if finding is None:
            return Err(not_found(FINDING, finding_id))

        denied = await self._ctx.authorize(
            actor, EntityType.FINDING, finding_id, permission, finding.cycle_id
        )
        if denied:
            return Err(denied)

        async with self._ctx.locks.assignment(finding.assignment_id):
            finding = self._ctx.store.findings[finding_id]
            now = self._ctx.clock.now()
            outcome = change(finding, now)
            if isinstance(outcome, Err):
                log_rejection(logger, action.value, outcome.error)
                return outcome

            updated, metadata = outcome.value
            if updated is finding:
                return Ok(finding)

            draft = change_event(
                EntityType.FINDING, finding_id, actor, action, now, finding, updated, metadata
            )
            committed = await self._ctx.commit([draft], [updated])
            if isinstance(committed, Err):
                return committed

        logger.info("Finding %s: %s by %s", finding_id, action.value, actor)
        return Ok(updated)


def _find_activity(finding: Finding, activity_id: str) -> RemediationActivity | None:
    for activity in finding.activities:
        if activity.activity_id == activity_id:
            return activity
    return None


def _replace_activity(finding: Finding, activity: RemediationActivity) -> list[RemediationActivity]:
    return [activity if a.activity_id == activity.activity_id else a for a in finding.activities]
