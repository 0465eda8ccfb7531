# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Finding aggregate and remediation activities."""

from datetime import datetime
from enum import Enum

from beartype import beartype
from pydantic import Field

from .base import AggregateModel, BaseModelConfig
from .testing import OverallConclusion


class FindingStatus(str, Enum):
    """Finding lifecycle."""

    OPEN = "open"
    IN_REMEDIATION = "in_remediation"
    CLOSED = "closed"
    WITHDRAWN = "withdrawn"


class Severity(str, Enum):
    """Finding severity, ordered from least to most severe."""

    OBSERVATION = "observation"
    DEFICIENCY = "deficiency"
    SIGNIFICANT_DEFICIENCY = "significant_deficiency"
    MATERIAL_WEAKNESS = "material_weakness"

    @classmethod
    @beartype
    def from_conclusion(cls, conclusion: OverallConclusion) -> "Severity":
        """Map a non-effective test conclusion onto a finding severity."""
        mapping = {
            OverallConclusion.DEFICIENCY: cls.DEFICIENCY,
            OverallConclusion.SIGNIFICANT_DEFICIENCY: cls.SIGNIFICANT_DEFICIENCY,
            OverallConclusion.MATERIAL_WEAKNESS: cls.MATERIAL_WEAKNESS,
        }
        if conclusion not in mapping:
            raise ValueError(f"No finding severity for conclusion {conclusion.value}")
        return mapping[conclusion]


class RootCauseCategory(str, Enum):
    """Root-cause classification."""

    PEOPLE = "people"
    PROCESS = "process"
    TECHNOLOGY = "technology"
    DESIGN = "design"
    THIRD_PARTY = "third_party"
    UNDETERMINED = "undetermined"


class ActivityStatus(str, Enum):
    """Remediation activity status."""

    OPEN = "open"
    COMPLETED = "completed"


class RemediationActivity(BaseModelConfig):
    """One corrective action for a finding."""

    activity_id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1, max_length=5000)
    owner: str = Field(..., min_length=1)
    target_date: datetime = Field(...)
    status: ActivityStatus = Field(default=ActivityStatus.OPEN)
    completion_date: datetime | None = Field(default=None)
    completion_note: str | None = Field(default=None)

    is_overdue: bool = Field(default=False)
    overdue_since: datetime | None = Field(default=None)
    escalation_tier: int = Field(default=0, ge=0)
    last_escalated_at: datetime | None = Field(default=None)


class FollowUpResult(BaseModelConfig):
    """Outcome of the follow-up retest of a remediated finding."""

    passed: bool = Field(...)
    note: str | None = Field(default=None, max_length=5000)
    recorded_by: str = Field(..., min_length=1)
    recorded_at: datetime = Field(...)


class Finding(AggregateModel):
    """A documented testing exception requiring remediation."""

    finding_id: str = Field(..., min_length=1)
    execution_id: str = Field(..., min_length=1)
    assignment_id: str = Field(..., min_length=1)
    cycle_id: str = Field(..., min_length=1)
    control_id: str = Field(..., min_length=1)
    severity: Severity = Field(...)
    root_cause: RootCauseCategory = Field(default=RootCauseCategory.UNDETERMINED)
    description: str = Field(..., min_length=1)
    status: FindingStatus = Field(default=FindingStatus.OPEN)
    activities: list[RemediationActivity] = Field(default_factory=list)

    follow_up_required: bool = Field(default=True)
    follow_up_date: datetime | None = Field(default=None)
    follow_up_result: FollowUpResult | None = Field(default=None)

    closed_by: str | None = Field(default=None)
    closed_at: datetime | None = Field(default=None)
    withdrawn_reason: str | None = Field(default=None)

    @beartype
    def open_activities(self) -> list[RemediationActivity]:
        """Activities not yet completed."""
        return [a for a in self.activities if a.status == ActivityStatus.OPEN]

    @property
    def ready_for_closure(self) -> bool:
        """Remediation done; closing still needs an explicit actor action."""
        if self.status != FindingStatus.IN_REMEDIATION or self.open_activities():
            return False
        if self.follow_up_required:
            return self.follow_up_result is not None and self.follow_up_result.passed
        return True

    @property
    def is_terminal(self) -> bool:
        """Closed or withdrawn."""
        return self.status in (FindingStatus.CLOSED, FindingStatus.WITHDRAWN)
