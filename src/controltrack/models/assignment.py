# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Control assignment aggregate."""

from datetime import datetime
from enum import Enum

from beartype import beartype
from pydantic import Field

from .base import AggregateModel, BaseModelConfig


class AssignmentStatus(str, Enum):
    """Lifecycle of a control assignment inside a testing cycle."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class Priority(str, Enum):
    """Assignment priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AssignmentCreate(BaseModelConfig):
    """Input for creating an assignment."""

    cycle_id: str = Field(..., min_length=1)
    control_id: str = Field(..., min_length=1)
    assignee: str = Field(..., min_length=1)
    assigner: str = Field(..., min_length=1)
    due_date: datetime = Field(...)
    priority: Priority = Field(default=Priority.MEDIUM)
    instructions: str | None = Field(default=None, max_length=5000)


class ControlAssignment(AggregateModel):
    """Binds one control to one auditor within one cycle."""

    assignment_id: str = Field(..., min_length=1)
    cycle_id: str = Field(..., min_length=1)
    control_id: str = Field(..., min_length=1)
    assignee: str = Field(..., min_length=1)
    assigner: str = Field(..., min_length=1)
    due_date: datetime = Field(...)
    priority: Priority = Field(default=Priority.MEDIUM)
    status: AssignmentStatus = Field(default=AssignmentStatus.NOT_STARTED)
    instructions: str | None = Field(default=None)

    # Set while blocked
    blocked_from: AssignmentStatus | None = Field(default=None)
    blocked_reason: str | None = Field(default=None)
    blocked_automatically: bool = Field(default=False)

    completed_at: datetime | None = Field(default=None)

    @beartype
    def is_overdue(self, now: datetime) -> bool:
        """Past its due date and not yet completed."""
        return self.status != AssignmentStatus.COMPLETED and now > self.due_date
