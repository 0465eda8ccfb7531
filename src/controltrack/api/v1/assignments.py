# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Assignment endpoints and the evidence requests raised under them."""

from datetime import datetime
from typing import Union

from beartype import beartype
from fastapi import APIRouter, Response, status
from pydantic import Field

from ...models.assignment import AssignmentStatus, ControlAssignment
from ...models.base import BaseModelConfig
from ...models.evidence import EvidenceRequest, EvidenceSpec
from ..dependencies import ActorDep, WorkflowDep
from ..response_patterns import ErrorResponse, handle_result

router = APIRouter()


class AssignmentTransitionRequest(BaseModelConfig):
    """Target status for an assignment transition."""

    target: AssignmentStatus = Field(...)
    reason: str | None = Field(default=None, max_length=5000)


class ReassignRequest(BaseModelConfig):
    """New owner of an assignment."""

    assignee: str = Field(..., min_length=1)
    reason: str | None = Field(default=None, max_length=5000)


class BlockRequest(BaseModelConfig):
    """Why an assignment cannot proceed."""

    reason: str = Field(..., min_length=1, max_length=5000)


class EvidenceRequestCreate(BaseModelConfig):
    """Ask a provider for evidence."""

    specs: list[EvidenceSpec] = Field(..., min_length=1)
    due_date: datetime = Field(...)
    title: str | None = Field(default=None, max_length=255)
    instructions: str | None = Field(default=None, max_length=5000)
    requested_from: str | None = Field(default=None, min_length=1)


@router.get("/{assignment_id}")
@beartype
async def get_assignment(
    assignment_id: str, response: Response, workflow: WorkflowDep
) -> Union[ControlAssignment, ErrorResponse]:
    """Current snapshot of an assignment."""
    return handle_result(workflow.get_assignment(assignment_id), response)


@router.post("/{assignment_id}/transition")
@beartype
async def transition_assignment(
    assignment_id: str,
    body: AssignmentTransitionRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[ControlAssignment, ErrorResponse]:
    """Move an assignment to a new status."""
    result = await workflow.assignments.transition(assignment_id, body.target, actor, body.reason)
    return handle_result(result, response)


@router.post("/{assignment_id}/reassign")
@beartype
async def reassign(
    assignment_id: str,
    body: ReassignRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[ControlAssignment, ErrorResponse]:
    """Hand an assignment that has not started, or is blocked, to another auditor."""
    result = await workflow.assignments.reassign(
        assignment_id, body.assignee, actor, body.reason
    )
    return handle_result(result, response)


@router.post("/{assignment_id}/block")
@beartype
async def block(
    assignment_id: str,
    body: BlockRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[ControlAssignment, ErrorResponse]:
    """Block an assignment by hand."""
    result = await workflow.assignments.block(
        assignment_id, body.reason, actor, automatic=False
    )
    return handle_result(result, response)


@router.post("/{assignment_id}/unblock")
@beartype
async def unblock(
    assignment_id: str, response: Response, workflow: WorkflowDep, actor: ActorDep
) -> Union[ControlAssignment, ErrorResponse]:
    """Return a blocked assignment to the status it was blocked from."""
    result = await workflow.assignments.resolve_block(assignment_id, actor)
    return handle_result(result, response)


@router.get("/{assignment_id}/evidence-requests")
@beartype
async def list_evidence_requests(
    assignment_id: str, workflow: WorkflowDep
) -> list[EvidenceRequest]:
    """Evidence requests of an assignment in creation order."""
    return workflow.evidence.list_requests(assignment_id)


@router.post("/{assignment_id}/evidence-requests")
@beartype
async def create_evidence_request(
    assignment_id: str,
    body: EvidenceRequestCreate,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[EvidenceRequest, ErrorResponse]:
    """Raise a new evidence request under an assignment."""
    result = await workflow.evidence.create_request(
        assignment_id,
        body.specs,
        body.due_date,
        actor,
        title=body.title,
        instructions=body.instructions,
        requested_from=body.requested_from,
    )
    return handle_result(result, response, status.HTTP_201_CREATED)
