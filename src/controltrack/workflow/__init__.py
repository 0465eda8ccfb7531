# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Workflow engines, the audit log and the due-date sweep."""

from .assignment_engine import AssignmentEngine
from .audit_log import AuditLog, InMemoryAuditStore, change_event
from .context import SYSTEM_ACTOR, WorkflowContext
from .cycle_orchestrator import CycleOrchestrator
from .evidence_coordinator import EvidenceCoordinator
from .finding_tracker import FindingTracker
from .service import ComplianceWorkflow
from .store import AggregateLocks, WorkflowStore
from .sweeper import DueDateSweeper, SweepReport
from .test_execution import TestExecutionEngine

__all__ = [
    "SYSTEM_ACTOR",
    "AggregateLocks",
    "AssignmentEngine",
    "AuditLog",
    "ComplianceWorkflow",
    "CycleOrchestrator",
    "DueDateSweeper",
    "EvidenceCoordinator",
    "FindingTracker",
    "InMemoryAuditStore",
    "SweepReport",
    "TestExecutionEngine",
    "WorkflowContext",
    "WorkflowStore",
    "change_event",
]
