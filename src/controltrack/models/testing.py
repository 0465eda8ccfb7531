# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Test execution aggregate: methodology, sample and conclusions."""

from datetime import datetime
from enum import Enum

from beartype import beartype
from pydantic import Field

from .base import AggregateModel, BaseModelConfig


class SamplingMethod(str, Enum):
    """How sample items are drawn from the population."""

    RANDOM = "random"
    SYSTEMATIC = "systematic"
    JUDGMENTAL = "judgmental"


class ItemConclusion(str, Enum):
    """Per-item testing conclusion."""

    APPROPRIATE = "appropriate"
    EXCEPTION = "exception"


class OverallConclusion(str, Enum):
    """Control-level conclusion rolled up from the sample."""

    EFFECTIVE = "effective"
    DEFICIENCY = "deficiency"
    SIGNIFICANT_DEFICIENCY = "significant_deficiency"
    MATERIAL_WEAKNESS = "material_weakness"


class ExecutionStatus(str, Enum):
    """Test execution lifecycle."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"


class Methodology(BaseModelConfig):
    """Sampling design for one execution."""

    population_size: int = Field(..., gt=0)
    confidence_level: float = Field(..., gt=0.0, lt=1.0)
    expected_exception_rate: float = Field(..., ge=0.0, lt=1.0)
    tolerable_exception_rate: float = Field(..., gt=0.0, lt=1.0)
    recommended_sample_size: int = Field(..., ge=1)
    sampling_method: SamplingMethod | None = Field(default=None)
    seed: str | None = Field(default=None, description="Hex seed; reproduces the exact sample")


class SampleItemResult(BaseModelConfig):
    """Recorded conclusion for one sample item."""

    item_id: str = Field(..., min_length=1)
    conclusion: ItemConclusion = Field(...)
    note: str | None = Field(default=None, max_length=5000)
    catastrophic: bool = Field(default=False)
    recorded_by: str = Field(..., min_length=1)
    recorded_at: datetime = Field(...)


class TestExecution(AggregateModel):
    """Testing of one assignment's control."""

    __test__ = False

    execution_id: str = Field(..., min_length=1)
    assignment_id: str = Field(..., min_length=1)
    methodology: Methodology = Field(...)
    population_ids: list[str] | None = Field(default=None)
    sample: list[str] = Field(default_factory=list)
    item_results: list[SampleItemResult] = Field(default_factory=list)
    status: ExecutionStatus = Field(default=ExecutionStatus.IN_PROGRESS)

    exception_rate: float | None = Field(default=None, ge=0.0, le=1.0)
    overall_conclusion: OverallConclusion | None = Field(default=None)
    derived_conclusion: OverallConclusion | None = Field(default=None)
    conclusion_override_note: str | None = Field(default=None)

    tested_by: str | None = Field(default=None)
    reviewed_by: str | None = Field(default=None)
    approved_by: str | None = Field(default=None)
    approved_at: datetime | None = Field(default=None)
    finding_id: str | None = Field(default=None)

    @beartype
    def result_for(self, item_id: str) -> SampleItemResult | None:
        """Recorded result for a sample item, if any."""
        for result in self.item_results:
            if result.item_id == item_id:
                return result
        return None

    @beartype
    def unconcluded_items(self) -> list[str]:
        """Sample items without a recorded conclusion."""
        concluded = {r.item_id for r in self.item_results}
        return [item for item in self.sample if item not in concluded]

    @beartype
    def testers(self) -> set[str]:
        """Everyone who recorded a conclusion or finalized the execution."""
        people = {r.recorded_by for r in self.item_results}
        if self.tested_by:
            people.add(self.tested_by)
        return people
