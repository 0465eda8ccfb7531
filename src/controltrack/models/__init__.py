# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Domain models for the control testing workflow."""

from .assignment import AssignmentCreate, AssignmentStatus, ControlAssignment, Priority
from .audit import AuditAction, AuditDraft, AuditEvent, AuditFilter, EntityType
from .base import AggregateModel, BaseModelConfig
from .control import ControlDefinition, EvidenceRequirement, RiskLevel
from .cycle import CycleCreate, CycleProgress, CycleStatus, TestingCycle
from .evidence import (
    EvidenceFileRef,
    EvidenceRequest,
    EvidenceSpec,
    EvidenceSubmission,
    FileRef,
    RequestComment,
    RequestStatus,
    SubmissionOutcome,
    SubmissionResult,
)
from .finding import (
    ActivityStatus,
    Finding,
    FindingStatus,
    FollowUpResult,
    RemediationActivity,
    RootCauseCategory,
    Severity,
)
from .testing import (
    ExecutionStatus,
    ItemConclusion,
    Methodology,
    OverallConclusion,
    SampleItemResult,
    SamplingMethod,
    TestExecution,
)

__all__ = [
    "ActivityStatus",
    "AggregateModel",
    "AssignmentCreate",
    "AssignmentStatus",
    "AuditAction",
    "AuditDraft",
    "AuditEvent",
    "AuditFilter",
    "BaseModelConfig",
    "ControlAssignment",
    "ControlDefinition",
    "CycleCreate",
    "CycleProgress",
    "CycleStatus",
    "EntityType",
    "EvidenceFileRef",
    "EvidenceRequest",
    "EvidenceRequirement",
    "EvidenceSpec",
    "EvidenceSubmission",
    "ExecutionStatus",
    "FileRef",
    "Finding",
    "FindingStatus",
    "FollowUpResult",
    "ItemConclusion",
    "Methodology",
    "OverallConclusion",
    "Priority",
    "RemediationActivity",
    "RequestComment",
    "RequestStatus",
    "RiskLevel",
    "RootCauseCategory",
    "SampleItemResult",
    "SamplingMethod",
    "Severity",
    "SubmissionOutcome",
    "SubmissionResult",
    "TestExecution",
    "TestingCycle",
]
