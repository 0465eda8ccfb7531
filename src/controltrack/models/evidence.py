# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Evidence request aggregate and external file references.

File content never enters the workflow core. A request keeps an ordered
history of submissions; the active reference for a file id is the latest one
submitted, earlier references with the same id are superseded but retained.
"""

from datetime import datetime
from enum import Enum

from beartype import beartype
from pydantic import Field

from .base import AggregateModel, BaseModelConfig


class RequestStatus(str, Enum):
    """Evidence request lifecycle. Overdue is a separate flag, not a status."""

    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_REQUEST_STATUSES = frozenset(
    {RequestStatus.SENT, RequestStatus.ACKNOWLEDGED, RequestStatus.IN_PROGRESS}
)


class FileRef(BaseModelConfig):
    """Opaque reference returned by the file-storage collaborator."""

    file_id: str = Field(..., min_length=1)
    content_hash: str = Field(..., min_length=1)
    size_bytes: int = Field(..., ge=0)
    uploaded_at: datetime | None = Field(default=None)


class EvidenceFileRef(BaseModelConfig):
    """A stored file submitted against one requested evidence type."""

    evidence_type: str = Field(..., min_length=1)
    file_id: str = Field(..., min_length=1)
    content_hash: str = Field(..., min_length=1)
    size_bytes: int = Field(..., ge=0)
    uploaded_at: datetime | None = Field(default=None)

    @classmethod
    @beartype
    def from_file_ref(cls, evidence_type: str, ref: FileRef) -> "EvidenceFileRef":
        """Attach a storage reference to an evidence type."""
        return cls(
            evidence_type=evidence_type,
            file_id=ref.file_id,
            content_hash=ref.content_hash,
            size_bytes=ref.size_bytes,
            uploaded_at=ref.uploaded_at,
        )


class EvidenceSpec(BaseModelConfig):
    """One requested piece of evidence."""

    evidence_type: str = Field(..., min_length=1, max_length=100)
    format: str = Field(default="any", min_length=1, max_length=50)
    due_date: datetime = Field(...)
    mandatory: bool = Field(default=True)
    description: str | None = Field(default=None, max_length=1000)


class EvidenceSubmission(BaseModelConfig):
    """A batch of file references submitted in one call."""

    submission_id: str = Field(..., min_length=1)
    submitted_by: str = Field(..., min_length=1)
    submitted_at: datetime = Field(...)
    files: list[EvidenceFileRef] = Field(default_factory=list)
    integrity_notices: list[str] = Field(default_factory=list)


class RequestComment(BaseModelConfig):
    """Discussion entry on a request."""

    comment_id: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=5000)
    created_at: datetime = Field(...)


class EvidenceRequest(AggregateModel):
    """A coordinated ask for one or more evidence items tied to one assignment."""

    request_id: str = Field(..., min_length=1)
    request_number: str = Field(..., min_length=1)
    assignment_id: str = Field(..., min_length=1)
    cycle_id: str = Field(..., min_length=1)
    control_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    instructions: str | None = Field(default=None)
    specs: list[EvidenceSpec] = Field(..., min_length=1)
    requested_from: str = Field(..., min_length=1)
    requested_by: str = Field(..., min_length=1)
    due_date: datetime = Field(...)
    status: RequestStatus = Field(default=RequestStatus.SENT)

    # Deadline tracking
    is_overdue: bool = Field(default=False)
    overdue_since: datetime | None = Field(default=None)
    escalation_tier: int = Field(default=0, ge=0)
    last_escalated_at: datetime | None = Field(default=None)
    reminder_sent_at: datetime | None = Field(default=None)

    submissions: list[EvidenceSubmission] = Field(default_factory=list)
    comments: list[RequestComment] = Field(default_factory=list)
    completed_at: datetime | None = Field(default=None)
    cancelled_reason: str | None = Field(default=None)

    @property
    def is_open(self) -> bool:
        """Open means neither completed nor cancelled."""
        return self.status in OPEN_REQUEST_STATUSES

    @beartype
    def evidence_types(self) -> list[str]:
        """Requested evidence types in request order."""
        return [spec.evidence_type for spec in self.specs]

    @beartype
    def has_mandatory_spec(self) -> bool:
        """Whether any requested evidence is mandatory."""
        return any(spec.mandatory for spec in self.specs)

    @beartype
    def active_files(self) -> list[EvidenceFileRef]:
        """Latest reference per file id, in first-submitted order."""
        latest: dict[str, EvidenceFileRef] = {}
        for submission in self.submissions:
            for ref in submission.files:
                latest[ref.file_id] = ref
        return list(latest.values())

    @beartype
    def missing_mandatory_types(self) -> list[str]:
        """Mandatory evidence types with no associated file reference."""
        covered = {ref.evidence_type for ref in self.active_files()}
        return [
            spec.evidence_type
            for spec in self.specs
            if spec.mandatory and spec.evidence_type not in covered
        ]


class SubmissionOutcome(str, Enum):
    """Result of a submission; partial submissions are expected."""

    COMPLETE = "complete"
    INCOMPLETE_SUBMISSION = "incomplete_submission"


class SubmissionResult(BaseModelConfig):
    """Returned from ``submit_evidence``."""

    request: EvidenceRequest = Field(...)
    outcome: SubmissionOutcome = Field(...)
    missing_evidence_types: list[str] = Field(default_factory=list)
