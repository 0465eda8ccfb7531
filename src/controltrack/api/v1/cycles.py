# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Testing cycle endpoints.

Cycles are created in planning, controls are brought into scope by adding
assignments, and progress is computed on read.
"""

from datetime import datetime
from typing import Union

from beartype import beartype
from fastapi import APIRouter, Response, status
from pydantic import Field

from ...models.assignment import ControlAssignment, Priority
from ...models.base import BaseModelConfig
from ...models.cycle import CycleCreate, CycleProgress, CycleStatus, TestingCycle
from ..dependencies import ActorDep, WorkflowDep
from ..response_patterns import ErrorResponse, handle_result

router = APIRouter()


class CycleTransitionRequest(BaseModelConfig):
    """Target status for a cycle transition."""

    target: CycleStatus = Field(...)


class AddControlRequest(BaseModelConfig):
    """Assign a control within a cycle."""

    control_id: str = Field(..., min_length=1)
    assignee: str = Field(..., min_length=1)
    due_date: datetime = Field(...)
    priority: Priority = Field(default=Priority.MEDIUM)
    instructions: str | None = Field(default=None, max_length=5000)


@router.post("")
@beartype
async def create_cycle(
    spec: CycleCreate,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[TestingCycle, ErrorResponse]:
    """Open a new cycle in planning."""
    result = await workflow.cycles.create_cycle(spec, actor)
    return handle_result(result, response, status.HTTP_201_CREATED)


@router.get("")
@beartype
async def list_cycles(workflow: WorkflowDep, include_archived: bool = False) -> list[TestingCycle]:
    """Cycles ordered by start date."""
    return workflow.cycles.list_cycles(include_archived)


@router.get("/{cycle_id}")
@beartype
async def get_cycle(
    cycle_id: str, response: Response, workflow: WorkflowDep
) -> Union[TestingCycle, ErrorResponse]:
    """Current snapshot of a cycle."""
    return handle_result(workflow.cycles.get_cycle(cycle_id), response)


@router.get("/{cycle_id}/progress")
@beartype
async def get_cycle_progress(
    cycle_id: str, response: Response, workflow: WorkflowDep
) -> Union[CycleProgress, ErrorResponse]:
    """Progress computed from the cycle's assignments, requests and findings."""
    return handle_result(workflow.get_cycle_progress(cycle_id), response)


@router.post("/{cycle_id}/transition")
@beartype
async def transition_cycle(
    cycle_id: str,
    body: CycleTransitionRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[TestingCycle, ErrorResponse]:
    """Move a cycle along its lifecycle."""
    result = await workflow.cycles.transition_cycle(cycle_id, body.target, actor)
    return handle_result(result, response)


@router.post("/{cycle_id}/archive")
@beartype
async def archive_cycle(
    cycle_id: str, response: Response, workflow: WorkflowDep, actor: ActorDep
) -> Union[TestingCycle, ErrorResponse]:
    """Archive a completed or cancelled cycle."""
    result = await workflow.cycles.archive_cycle(cycle_id, actor)
    return handle_result(result, response)


@router.post("/{cycle_id}/assignments")
@beartype
async def add_control_to_cycle(
    cycle_id: str,
    body: AddControlRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[ControlAssignment, ErrorResponse]:
    """Bring a control into scope by assigning it to an auditor."""
    result = await workflow.cycles.add_control_to_cycle(
        cycle_id,
        body.control_id,
        body.assignee,
        body.due_date,
        actor,
        priority=body.priority,
        instructions=body.instructions,
    )
    return handle_result(result, response, status.HTTP_201_CREATED)


@router.get("/{cycle_id}/assignments")
@beartype
async def list_assignments(cycle_id: str, workflow: WorkflowDep) -> list[ControlAssignment]:
    """Assignments of a cycle in the order they were added."""
    return workflow.assignments.list_assignments(cycle_id)
