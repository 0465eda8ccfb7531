# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""FastAPI dependencies for the acting identity and the workflow instance.

Identity is established upstream; this service only reads the
``X-Actor-Id`` header it is handed.
"""

from typing import Annotated

from beartype import beartype
from fastapi import Depends, Header, HTTPException, Request, status

from ..core.errors import forbidden
from ..workflow.context import SYSTEM_ACTOR
from ..workflow.service import ComplianceWorkflow
from .response_patterns import ErrorResponse


@beartype
def get_workflow(request: Request) -> ComplianceWorkflow:
    """Workflow bound to the running application."""
    workflow: ComplianceWorkflow = request.app.state.workflow
    return workflow


@beartype
async def get_actor(
    x_actor_id: Annotated[str, Header(min_length=1, description="Identity of the caller")],
) -> str:
    """Acting identity for the request.

    The reserved system identity belongs to the due-date sweep and is never
    accepted from a caller.
    """
    actor = x_actor_id.strip()
    if actor.lower() == SYSTEM_ACTOR:
        error = forbidden(actor, "identity", "act as")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=ErrorResponse.from_error(error).model_dump(mode="json"),
        )
    return actor


WorkflowDep = Annotated[ComplianceWorkflow, Depends(get_workflow)]
ActorDep = Annotated[str, Depends(get_actor)]
