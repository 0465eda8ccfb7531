# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Evidence request endpoints."""

from typing import Union

from beartype import beartype
from fastapi import APIRouter, Response
from pydantic import Field

from ...models.base import BaseModelConfig
from ...models.evidence import EvidenceFileRef, EvidenceRequest, SubmissionResult
from ..dependencies import ActorDep, WorkflowDep
from ..response_patterns import ErrorResponse, handle_result

router = APIRouter()


class SubmissionRequest(BaseModelConfig):
    """File references uploaded against a request."""

    files: list[EvidenceFileRef] = Field(..., min_length=1)


class CancelRequest(BaseModelConfig):
    """Why a request is no longer needed."""

    reason: str = Field(..., min_length=1, max_length=5000)


class CommentRequest(BaseModelConfig):
    """A comment on a request thread."""

    content: str = Field(..., min_length=1, max_length=5000)


@router.get("/pending")
@beartype
async def get_pending_requests(provider: str, workflow: WorkflowDep) -> list[EvidenceRequest]:
    """Open requests waiting on a provider, soonest due first."""
    return workflow.evidence.get_pending_requests(provider)


@router.get("/{request_id}")
@beartype
async def get_request(
    request_id: str, response: Response, workflow: WorkflowDep
) -> Union[EvidenceRequest, ErrorResponse]:
    """Current snapshot of an evidence request."""
    return handle_result(workflow.evidence.get_request(request_id), response)


@router.post("/{request_id}/acknowledge")
@beartype
async def acknowledge(
    request_id: str, response: Response, workflow: WorkflowDep, actor: ActorDep
) -> Union[EvidenceRequest, ErrorResponse]:
    """Provider confirms receipt of the request."""
    result = await workflow.evidence.acknowledge(request_id, actor)
    return handle_result(result, response)


@router.post("/{request_id}/submissions")
@beartype
async def submit_evidence(
    request_id: str,
    body: SubmissionRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[SubmissionResult, ErrorResponse]:
    """Attach uploaded files; a partial upload reports what is still missing."""
    result = await workflow.evidence.submit_evidence(request_id, body.files, actor)
    return handle_result(result, response)


@router.post("/{request_id}/cancel")
@beartype
async def cancel_request(
    request_id: str,
    body: CancelRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[EvidenceRequest, ErrorResponse]:
    """Cancel an open request."""
    result = await workflow.evidence.cancel_request(request_id, body.reason, actor)
    return handle_result(result, response)


@router.post("/{request_id}/comments")
@beartype
async def add_comment(
    request_id: str,
    body: CommentRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[EvidenceRequest, ErrorResponse]:
    """Add a comment to the request thread."""
    result = await workflow.evidence.add_comment(request_id, body.content, actor)
    return handle_result(result, response)


@router.post("/{request_id}/escalate")
@beartype
async def escalate(
    request_id: str, response: Response, workflow: WorkflowDep, actor: ActorDep
) -> Union[EvidenceRequest, ErrorResponse]:
    """Fire the next escalation tier if one has come due."""
    result = await workflow.evidence.escalate(request_id, actor)
    return handle_result(result, response)
