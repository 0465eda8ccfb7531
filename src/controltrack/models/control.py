# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Control catalog entries."""

from enum import Enum

from beartype import beartype
from pydantic import Field, field_validator

from .base import BaseModelConfig


class RiskLevel(str, Enum):
    """Inherent risk rating of a control."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EvidenceRequirement(BaseModelConfig):
    """One type of evidence a control test needs."""

    evidence_type: str = Field(..., min_length=1, max_length=100)
    format: str = Field(default="any", min_length=1, max_length=50)
    mandatory: bool = Field(default=True)
    due_offset_days: int | None = Field(
        default=None,
        ge=1,
        le=365,
        description=(
            "Request due this many days after it is sent; defaults to the assignment due date"
        ),
    )
    description: str | None = Field(default=None, max_length=1000)


class ControlDefinition(BaseModelConfig):
    """A defined IT safeguard subject to periodic testing."""

    control_id: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="", max_length=5000)
    framework: str = Field(..., min_length=1, max_length=50)
    risk_level: RiskLevel = Field(default=RiskLevel.MEDIUM)
    owner: str = Field(..., min_length=1, description="Control owner, default evidence provider")
    evidence_requirements: list[EvidenceRequirement] = Field(default_factory=list)
    sample_size_hint: int | None = Field(default=None, ge=1)

    @field_validator("evidence_requirements")
    @classmethod
    def validate_unique_types(
        cls: type["ControlDefinition"], v: list[EvidenceRequirement]
    ) -> list[EvidenceRequirement]:
        """Each evidence type may be required once per control."""
        seen: set[str] = set()
        for requirement in v:
            if requirement.evidence_type in seen:
                raise ValueError(
                    f"Duplicate evidence requirement: {requirement.evidence_type}"
                )
            seen.add(requirement.evidence_type)
        return v

    @beartype
    def mandatory_evidence_types(self) -> list[str]:
        """Evidence types that must be supplied."""
        return [r.evidence_type for r in self.evidence_requirements if r.mandatory]
