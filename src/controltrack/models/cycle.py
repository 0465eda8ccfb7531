# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Testing cycle aggregate and its computed progress view."""

from datetime import datetime
from enum import Enum

from pydantic import Field, ValidationInfo, field_validator

from .base import AggregateModel, BaseModelConfig


class CycleStatus(str, Enum):
    """Testing cycle lifecycle."""

    PLANNING = "planning"
    ACTIVE = "active"
    REVIEW = "review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CycleCreate(BaseModelConfig):
    """Input for creating a testing cycle."""

    cycle_id: str | None = Field(default=None, min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    framework: str = Field(..., min_length=1, max_length=50)
    description: str | None = Field(default=None, max_length=5000)
    start_date: datetime = Field(...)
    end_date: datetime = Field(...)

    @field_validator("end_date")
    @classmethod
    def validate_window(
        cls: type["CycleCreate"], v: datetime, info: ValidationInfo
    ) -> datetime:
        """A cycle must end after it starts."""
        start = info.data.get("start_date")
        if start is not None and v <= start:
            raise ValueError("end_date must be after start_date")
        return v


class TestingCycle(AggregateModel):
    """Scope and time window for a compliance period."""

    __test__ = False

    cycle_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    framework: str = Field(..., min_length=1)
    description: str | None = Field(default=None)
    start_date: datetime = Field(...)
    end_date: datetime = Field(...)
    status: CycleStatus = Field(default=CycleStatus.PLANNING)
    assignment_ids: list[str] = Field(default_factory=list)
    created_by: str = Field(..., min_length=1)
    archived: bool = Field(default=False)
    completed_at: datetime | None = Field(default=None)


class CycleProgress(BaseModelConfig):
    """Pure aggregation over a cycle's assignments, recomputed on every read."""

    cycle_id: str = Field(...)
    cycle_status: CycleStatus = Field(...)
    total_assignments: int = Field(default=0, ge=0)
    counts_by_status: dict[str, int] = Field(default_factory=dict)
    percent_complete: float = Field(default=0.0, ge=0.0, le=100.0)
    overdue_assignments: int = Field(default=0, ge=0)
    overdue_evidence_requests: int = Field(default=0, ge=0)
    open_findings: int = Field(default=0, ge=0)
    computed_at: datetime = Field(...)
