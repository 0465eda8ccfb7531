# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Immutable audit events.

An ``AuditDraft`` describes a change; the audit log seals it into an
``AuditEvent`` by assigning the sequence number and chaining it to the
previous event's hash.
"""

import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any

from beartype import beartype
from pydantic import Field

from .base import BaseModelConfig


class EntityType(str, Enum):
    """Aggregates that appear in the audit trail."""

    CONTROL = "control"
    CYCLE = "cycle"
    ASSIGNMENT = "assignment"
    EVIDENCE_REQUEST = "evidence_request"
    TEST_EXECUTION = "test_execution"
    FINDING = "finding"


class AuditAction(str, Enum):
    """Actions recorded by the workflow engine."""

    # Catalog and cycles
    CONTROL_REGISTERED = "control_registered"
    CYCLE_CREATED = "cycle_created"
    CYCLE_TRANSITIONED = "cycle_transitioned"
    CYCLE_ARCHIVED = "cycle_archived"
    CONTROL_ADDED_TO_CYCLE = "control_added_to_cycle"

    # Assignments
    ASSIGNMENT_CREATED = "assignment_created"
    ASSIGNMENT_TRANSITIONED = "assignment_transitioned"
    ASSIGNMENT_REASSIGNED = "assignment_reassigned"
    ASSIGNMENT_BLOCKED = "assignment_blocked"
    ASSIGNMENT_UNBLOCKED = "assignment_unblocked"

    # Evidence
    REQUEST_CREATED = "evidence_request_created"
    REQUEST_ACKNOWLEDGED = "evidence_request_acknowledged"
    EVIDENCE_SUBMITTED = "evidence_submitted"
    REQUEST_CANCELLED = "evidence_request_cancelled"
    REQUEST_COMMENTED = "evidence_request_commented"
    REQUEST_MARKED_OVERDUE = "evidence_request_marked_overdue"
    REQUEST_ESCALATED = "evidence_request_escalated"
    REQUEST_REMINDER_SENT = "evidence_request_reminder_sent"

    # Testing
    METHODOLOGY_DEFINED = "methodology_defined"
    SAMPLE_SELECTED = "sample_selected"
    ITEM_CONCLUSION_RECORDED = "item_conclusion_recorded"
    EXECUTION_FINALIZED = "execution_finalized"
    EXECUTION_SUBMITTED_FOR_REVIEW = "execution_submitted_for_review"
    EXECUTION_APPROVED = "execution_approved"
    CONCLUSION_OVERRIDDEN = "conclusion_overridden"

    # Findings
    FINDING_OPENED = "finding_opened"
    REMEDIATION_ADDED = "remediation_activity_added"
    REMEDIATION_COMPLETED = "remediation_activity_completed"
    REMEDIATION_MARKED_OVERDUE = "remediation_activity_marked_overdue"
    REMEDIATION_ESCALATED = "remediation_activity_escalated"
    FOLLOW_UP_SCHEDULED = "follow_up_scheduled"
    FOLLOW_UP_RECORDED = "follow_up_recorded"
    FINDING_RECLASSIFIED = "finding_reclassified"
    FINDING_CLOSED = "finding_closed"
    FINDING_WITHDRAWN = "finding_withdrawn"

    # Access control
    PERMISSION_DENIED = "permission_denied"


class AuditDraft(BaseModelConfig):
    """An audit event before it is sealed into the log."""

    entity_type: EntityType = Field(...)
    entity_id: str = Field(..., min_length=1)
    actor: str = Field(..., min_length=1)
    action: AuditAction = Field(...)
    timestamp: datetime = Field(...)
    previous_state: dict[str, Any] | None = Field(default=None)
    new_state: dict[str, Any] | None = Field(default=None)
    metadata: dict[str, Any] = Field(default_factory=dict)


class AuditEvent(AuditDraft):
    """Immutable, hash-chained record of one state change."""

    event_id: str = Field(..., min_length=1)
    sequence: int = Field(..., ge=1)
    previous_hash: str = Field(...)
    event_hash: str = Field(...)

    @beartype
    def body(self) -> dict[str, Any]:
        """Canonical content covered by the event hash."""
        return self.model_dump(mode="json", exclude={"event_hash"})

    @beartype
    def compute_hash(self) -> str:
        """SHA-256 over the canonical JSON body."""
        return compute_event_hash(self.body())


@beartype
def compute_event_hash(body: dict[str, Any]) -> str:
    """Hash a JSON-safe event body deterministically."""
    canonical = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class AuditFilter(BaseModelConfig):
    """Query filters for the audit trail."""

    entity_type: EntityType | None = Field(default=None)
    actor: str | None = Field(default=None)
    actions: list[AuditAction] | None = Field(default=None)
    since: datetime | None = Field(default=None)
    until: datetime | None = Field(default=None)
    limit: int = Field(default=1000, ge=1, le=100000)

    @beartype
    def matches(self, event: AuditEvent) -> bool:
        """Whether an event passes every set filter."""
        if self.entity_type is not None and event.entity_type != self.entity_type:
            return False
        if self.actor is not None and event.actor != self.actor:
            return False
        if self.actions is not None and event.action not in self.actions:
            return False
        if self.since is not None and event.timestamp < self.since:
            return False
        if self.until is not None and event.timestamp > self.until:
            return False
        return True
