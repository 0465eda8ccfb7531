# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Base Pydantic model configuration for all domain models.

Aggregates are immutable snapshots: a command builds the next snapshot with
``model_copy(update=...)`` and the store swaps it in only after the audit
event describing the change is durable.
"""

from datetime import datetime
from typing import Any

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field


@beartype
class BaseModelConfig(BaseModel):
    """Base model with strict configuration for all domain entities.

    Enforces:
    - Immutability (frozen=True)
    - No extra fields allowed (extra="forbid")
    - Validation on assignment
    - Automatic whitespace stripping
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


@beartype
class AggregateModel(BaseModelConfig):
    """Base for versioned aggregates that appear in the audit trail."""

    created_at: datetime = Field(..., description="Timestamp when the entity was created")
    updated_at: datetime = Field(..., description="Timestamp when the entity was last updated")
    version: int = Field(default=1, ge=1, description="Incremented on every committed change")

    @beartype
    def snapshot(self) -> dict[str, Any]:
        """JSON-safe state used for audit before/after values."""
        return self.model_dump(mode="json")

    @beartype
    def evolve(self, at: datetime, **changes: Any) -> "AggregateModel":
        """Return the next version of this aggregate with ``changes`` applied."""
        return self.model_copy(
            update={**changes, "updated_at": at, "version": self.version + 1}
        )
