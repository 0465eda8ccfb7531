# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Test execution endpoints, addressed by assignment."""

from typing import Union

from beartype import beartype
from fastapi import APIRouter, Response, status
from pydantic import Field

from ...models.base import BaseModelConfig
from ...models.testing import ItemConclusion, OverallConclusion, SamplingMethod, TestExecution
from ..dependencies import ActorDep, WorkflowDep
from ..response_patterns import ErrorResponse, handle_result

router = APIRouter()


class MethodologyRequest(BaseModelConfig):
    """Population and sampling parameters."""

    population_size: int = Field(..., description="Number of items in the population")
    confidence_level: float | None = Field(default=None, gt=0.0, lt=1.0)
    expected_exception_rate: float | None = Field(default=None, ge=0.0, lt=1.0)
    tolerable_exception_rate: float | None = Field(default=None, gt=0.0, lt=1.0)
    population_ids: list[str] | None = Field(default=None)


class SampleRequest(BaseModelConfig):
    """How to draw the sample."""

    method: SamplingMethod = Field(...)
    item_ids: list[str] | None = Field(default=None)
    sample_size: int | None = Field(default=None, ge=1)


class ItemConclusionRequest(BaseModelConfig):
    """Result of testing one sampled item."""

    conclusion: ItemConclusion = Field(...)
    note: str | None = Field(default=None, max_length=5000)
    catastrophic: bool = Field(default=False)


class OverrideRequest(BaseModelConfig):
    """Reviewer judgement replacing the derived conclusion."""

    conclusion: OverallConclusion = Field(...)
    note: str = Field(..., min_length=1, max_length=5000)


@router.get("")
@beartype
async def get_execution(
    assignment_id: str, response: Response, workflow: WorkflowDep
) -> Union[TestExecution, ErrorResponse]:
    """The assignment's test execution."""
    return handle_result(workflow.testing.get_execution(assignment_id), response)


@router.post("/methodology")
@beartype
async def define_methodology(
    assignment_id: str,
    body: MethodologyRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[TestExecution, ErrorResponse]:
    """Start the execution with a recommended sample size."""
    result = await workflow.testing.define_methodology(
        assignment_id,
        body.population_size,
        actor,
        body.confidence_level,
        expected_exception_rate=body.expected_exception_rate,
        tolerable_exception_rate=body.tolerable_exception_rate,
        population_ids=body.population_ids,
    )
    return handle_result(result, response, status.HTTP_201_CREATED)


@router.post("/sample")
@beartype
async def select_sample(
    assignment_id: str,
    body: SampleRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[TestExecution, ErrorResponse]:
    """Draw the sample items."""
    result = await workflow.testing.select_sample(
        assignment_id,
        body.method,
        actor,
        item_ids=body.item_ids,
        sample_size=body.sample_size,
    )
    return handle_result(result, response)


@router.put("/items/{item_id}")
@beartype
async def record_item_conclusion(
    assignment_id: str,
    item_id: str,
    body: ItemConclusionRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[TestExecution, ErrorResponse]:
    """Record or replace the conclusion for one sampled item."""
    result = await workflow.testing.record_item_conclusion(
        assignment_id, item_id, body.conclusion, actor, body.note, body.catastrophic
    )
    return handle_result(result, response)


@router.post("/finalize")
@beartype
async def finalize(
    assignment_id: str, response: Response, workflow: WorkflowDep, actor: ActorDep
) -> Union[TestExecution, ErrorResponse]:
    """Derive the overall conclusion once every item is concluded."""
    result = await workflow.testing.finalize(assignment_id, actor)
    return handle_result(result, response)


@router.post("/submit")
@beartype
async def submit_for_review(
    assignment_id: str, response: Response, workflow: WorkflowDep, actor: ActorDep
) -> Union[TestExecution, ErrorResponse]:
    """Hand a finalized execution to review."""
    result = await workflow.testing.submit_for_review(assignment_id, actor)
    return handle_result(result, response)


@router.post("/approve")
@beartype
async def approve(
    assignment_id: str, response: Response, workflow: WorkflowDep, actor: ActorDep
) -> Union[TestExecution, ErrorResponse]:
    """Reviewer sign-off; the reviewer must not have tested any item."""
    result = await workflow.testing.approve(assignment_id, actor)
    return handle_result(result, response)


@router.post("/override")
@beartype
async def override_conclusion(
    assignment_id: str,
    body: OverrideRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[TestExecution, ErrorResponse]:
    """Replace the derived conclusion with a documented judgement."""
    result = await workflow.testing.override_conclusion(
        assignment_id, body.conclusion, body.note, actor
    )
    return handle_result(result, response)
