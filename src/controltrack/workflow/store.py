# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Aggregate store and per-aggregate lock registry.

The store holds the latest committed snapshot of every aggregate. Snapshots
are frozen pydantic models, so a reader always sees either the state before
a command or the state after it, never a mix.
"""

import asyncio
from collections import defaultdict

from beartype import beartype

from ..models.assignment import ControlAssignment
from ..models.base import BaseModelConfig
from ..models.control import ControlDefinition
from ..models.cycle import TestingCycle
from ..models.evidence import EvidenceRequest
from ..models.finding import Finding
from ..models.testing import TestExecution


class AggregateLocks:
    """Lazily created ``asyncio.Lock`` per assignment, cycle or catalog control.

    Everything an assignment owns (its evidence requests, its test execution
    and that execution's finding) is serialized behind the assignment's lock.
    Different assignments never contend.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._locks: dict[str, asyncio.Lock] = {}

    @beartype
    def assignment(self, assignment_id: str) -> asyncio.Lock:
        """Lock guarding one assignment and its children."""
        return self._get(f"assignment:{assignment_id}")

    @beartype
    def cycle(self, cycle_id: str) -> asyncio.Lock:
        """Lock guarding one cycle's own fields and its assignment list."""
        return self._get(f"cycle:{cycle_id}")

    @beartype
    def control(self, control_id: str) -> asyncio.Lock:
        """Lock guarding registration of one catalog entry."""
        return self._get(f"control:{control_id}")

    def _get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


class WorkflowStore:
    """In-memory repository of committed aggregate snapshots."""

    def __init__(self) -> None:
        """Initialize empty collections."""
        self.controls: dict[str, ControlDefinition] = {}
        self.cycles: dict[str, TestingCycle] = {}
        self.assignments: dict[str, ControlAssignment] = {}
        self.requests: dict[str, EvidenceRequest] = {}
        self.executions: dict[str, TestExecution] = {}
        self.findings: dict[str, Finding] = {}

        self._assignment_index: dict[tuple[str, str], str] = {}
        self._execution_by_assignment: dict[str, str] = {}
        self._request_sequences: defaultdict[int, int] = defaultdict(int)

    @beartype
    def put(self, *aggregates: BaseModelConfig) -> None:
        """Make new snapshots visible. Called only after the audit append succeeded."""
        for aggregate in aggregates:
            if isinstance(aggregate, ControlAssignment):
                self.assignments[aggregate.assignment_id] = aggregate
                key = (aggregate.cycle_id, aggregate.control_id)
                self._assignment_index[key] = aggregate.assignment_id
            elif isinstance(aggregate, EvidenceRequest):
                self.requests[aggregate.request_id] = aggregate
            elif isinstance(aggregate, TestExecution):
                self.executions[aggregate.execution_id] = aggregate
                self._execution_by_assignment[aggregate.assignment_id] = aggregate.execution_id
            elif isinstance(aggregate, Finding):
                self.findings[aggregate.finding_id] = aggregate
            elif isinstance(aggregate, TestingCycle):
                self.cycles[aggregate.cycle_id] = aggregate
            elif isinstance(aggregate, ControlDefinition):
                self.controls[aggregate.control_id] = aggregate
            else:
                raise TypeError(f"Unsupported aggregate type: {type(aggregate).__name__}")

    @beartype
    def assignment_for(self, cycle_id: str, control_id: str) -> ControlAssignment | None:
        """Assignment of a control within a cycle, if any."""
        assignment_id = self._assignment_index.get((cycle_id, control_id))
        if assignment_id is None:
            return None
        return self.assignments[assignment_id]

    @beartype
    def execution_for(self, assignment_id: str) -> TestExecution | None:
        """The single test execution of an assignment, if defined."""
        execution_id = self._execution_by_assignment.get(assignment_id)
        if execution_id is None:
            return None
        return self.executions[execution_id]

    @beartype
    def requests_for(self, assignment_id: str) -> list[EvidenceRequest]:
        """Evidence requests of an assignment in creation order."""
        return [r for r in self.requests.values() if r.assignment_id == assignment_id]

    @beartype
    def assignments_in(self, cycle_id: str) -> list[ControlAssignment]:
        """Assignments of a cycle in the cycle's order."""
        cycle = self.cycles.get(cycle_id)
        if cycle is None:
            return []
        return [self.assignments[a] for a in cycle.assignment_ids if a in self.assignments]

    @beartype
    def next_request_number(self, prefix: str, year: int) -> str:
        """Allocate the next human-readable request number for a year."""
        self._request_sequences[year] += 1
        return f"{prefix}-{year}-{self._request_sequences[year]:06d}"

    @beartype
    def release_request_number(self, number: str) -> bool:
        """Take back an allocated number whose request was never stored.

        Only a number still at the top of its year's sequence is reclaimed, so
        a number issued in the meantime is never handed out twice.
        """
        year, seq = (int(part) for part in number.rsplit("-", 2)[1:])
        if self._request_sequences[year] != seq:
            return False
        self._request_sequences[year] -= 1
        return True

    @beartype
    def release(self, *aggregates: BaseModelConfig) -> None:
        """Release the numbers of uncommitted requests among ``aggregates``, newest first."""
        unstored = [
            aggregate.request_number
            for aggregate in aggregates
            if isinstance(aggregate, EvidenceRequest) and aggregate.request_id not in self.requests
        ]
        for number in sorted(unstored, reverse=True):
            self.release_request_number(number)
