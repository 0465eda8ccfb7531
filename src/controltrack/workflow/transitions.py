# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Fixed state-transition tables and pure state-change helpers."""

from datetime import datetime
from typing import Final

from beartype import beartype

from ..models.assignment import AssignmentStatus, ControlAssignment
from ..models.cycle import CycleStatus
from ..models.evidence import EvidenceRequest, RequestStatus
from ..models.finding import FindingStatus

ASSIGNMENT_TRANSITIONS: Final[dict[AssignmentStatus, frozenset[AssignmentStatus]]] = {
    AssignmentStatus.NOT_STARTED: frozenset({AssignmentStatus.IN_PROGRESS}),
    AssignmentStatus.IN_PROGRESS: frozenset({AssignmentStatus.REVIEW}),
    AssignmentStatus.REVIEW: frozenset(
        {AssignmentStatus.COMPLETED, AssignmentStatus.IN_PROGRESS}
    ),
    AssignmentStatus.COMPLETED: frozenset(),
}

REQUEST_TRANSITIONS: Final[dict[RequestStatus, frozenset[RequestStatus]]] = {
    RequestStatus.SENT: frozenset(
        {
            RequestStatus.ACKNOWLEDGED,
            RequestStatus.IN_PROGRESS,
            RequestStatus.COMPLETED,
            RequestStatus.CANCELLED,
        }
    ),
    RequestStatus.ACKNOWLEDGED: frozenset(
        {RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED, RequestStatus.CANCELLED}
    ),
    RequestStatus.IN_PROGRESS: frozenset(
        {RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED, RequestStatus.CANCELLED}
    ),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

CYCLE_TRANSITIONS: Final[dict[CycleStatus, frozenset[CycleStatus]]] = {
    CycleStatus.PLANNING: frozenset({CycleStatus.ACTIVE, CycleStatus.CANCELLED}),
    CycleStatus.ACTIVE: frozenset({CycleStatus.REVIEW, CycleStatus.CANCELLED}),
    CycleStatus.REVIEW: frozenset({CycleStatus.COMPLETED, CycleStatus.ACTIVE}),
    CycleStatus.COMPLETED: frozenset(),
    CycleStatus.CANCELLED: frozenset(),
}

FINDING_TRANSITIONS: Final[dict[FindingStatus, frozenset[FindingStatus]]] = {
    FindingStatus.OPEN: frozenset({FindingStatus.IN_REMEDIATION, FindingStatus.WITHDRAWN}),
    FindingStatus.IN_REMEDIATION: frozenset({FindingStatus.CLOSED}),
    FindingStatus.CLOSED: frozenset(),
    FindingStatus.WITHDRAWN: frozenset(),
}


@beartype
def assignment_transition_allowed(
    assignment: ControlAssignment, target: AssignmentStatus
) -> bool:
    """Whether ``target`` is reachable from the assignment's current status.

    Any status except Completed may be blocked; a blocked assignment may only
    return to the status it was blocked from.
    """
    current = assignment.status
    if target == AssignmentStatus.BLOCKED:
        return current not in (AssignmentStatus.BLOCKED, AssignmentStatus.COMPLETED)
    if current == AssignmentStatus.BLOCKED:
        return target == assignment.blocked_from
    return target in ASSIGNMENT_TRANSITIONS[current]


@beartype
def blocked(
    assignment: ControlAssignment, reason: str, automatic: bool, at: datetime
) -> ControlAssignment:
    """Next snapshot of an assignment entering Blocked."""
    return assignment.evolve(
        at,
        status=AssignmentStatus.BLOCKED,
        blocked_from=assignment.status,
        blocked_reason=reason,
        blocked_automatically=automatic,
    )


@beartype
def unblocked(assignment: ControlAssignment, at: datetime) -> ControlAssignment:
    """Next snapshot of a blocked assignment returning to its prior status."""
    return assignment.evolve(
        at,
        status=assignment.blocked_from,
        blocked_from=None,
        blocked_reason=None,
        blocked_automatically=False,
    )


@beartype
def blocking_requests(requests: list[EvidenceRequest]) -> list[EvidenceRequest]:
    """Open, overdue requests containing mandatory evidence."""
    return [r for r in requests if r.is_open and r.is_overdue and r.has_mandatory_spec()]


@beartype
def should_auto_unblock(
    assignment: ControlAssignment, remaining_requests: list[EvidenceRequest]
) -> bool:
    """An automatically blocked assignment is released once no mandatory request is overdue."""
    return (
        assignment.status == AssignmentStatus.BLOCKED
        and assignment.blocked_automatically
        and not blocking_requests(remaining_requests)
    )


@beartype
def escalation_tier_due(overdue_since: datetime, now: datetime, schedule_hours: list[int]) -> int:
    """Highest escalation tier whose offset has elapsed since going overdue (0 for none)."""
    elapsed_hours = (now - overdue_since).total_seconds() / 3600
    tier = 0
    for position, hours in enumerate(schedule_hours, start=1):
        if elapsed_hours >= hours:
            tier = position
    return tier
