# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Control catalog endpoints."""

from typing import Union

from beartype import beartype
from fastapi import APIRouter, Response, status

from ...models.control import ControlDefinition
from ..dependencies import ActorDep, WorkflowDep
from ..response_patterns import ErrorResponse, handle_result

router = APIRouter()


@router.post("")
@beartype
async def register_control(
    control: ControlDefinition,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[ControlDefinition, ErrorResponse]:
    """Add a control to the catalog."""
    result = await workflow.cycles.register_control(control, actor)
    return handle_result(result, response, status.HTTP_201_CREATED)


@router.get("/{control_id}")
@beartype
async def get_control(
    control_id: str,
    response: Response,
    workflow: WorkflowDep,
) -> Union[ControlDefinition, ErrorResponse]:
    """Catalog entry for a control."""
    return handle_result(workflow.cycles.get_control(control_id), response)
