# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Read-only audit trail endpoints."""

from datetime import datetime
from typing import Annotated

from beartype import beartype
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import Field

from ...core.result_types import Err
from ...models.audit import AuditAction, AuditEvent, AuditFilter, EntityType
from ...models.base import BaseModelConfig
from ..dependencies import WorkflowDep
from ..response_patterns import ErrorResponse, map_error_to_status

router = APIRouter()

EXPORT_MEDIA_TYPES = {"json": "application/json", "csv": "text/csv"}


class IntegrityReport(BaseModelConfig):
    """Result of recomputing the hash chain."""

    intact: bool = Field(...)
    first_broken_sequence: int | None = Field(default=None)
    event_count: int = Field(..., ge=0)


@beartype
def _filters(
    entity_type: EntityType | None,
    actor: str | None,
    actions: list[AuditAction] | None,
    since: datetime | None,
    until: datetime | None,
    limit: int,
) -> AuditFilter:
    return AuditFilter(
        entity_type=entity_type,
        actor=actor,
        actions=actions or None,
        since=since,
        until=until,
        limit=limit,
    )


@router.get("/entities/{entity_id}")
@beartype
async def get_audit_trail(
    entity_id: str,
    workflow: WorkflowDep,
    entity_type: EntityType | None = None,
    actor: str | None = None,
    actions: Annotated[list[AuditAction] | None, Query()] = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: Annotated[int, Query(ge=1, le=100000)] = 1000,
) -> list[AuditEvent]:
    """Chronological events for one entity."""
    filters = _filters(entity_type, actor, actions, since, until, limit)
    return workflow.get_audit_trail(entity_id, filters)


@router.get("/actors/{actor_id}")
@beartype
async def get_actor_activity(
    actor_id: str,
    workflow: WorkflowDep,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[AuditEvent]:
    """Everything one actor did in a time window."""
    return workflow.audit_log.get_actor_activity(actor_id, since, until)


@router.get("/integrity")
@beartype
async def verify_integrity(workflow: WorkflowDep) -> IntegrityReport:
    """Recompute the hash chain and report the first broken link."""
    broken = workflow.audit_log.verify_integrity()
    return IntegrityReport(
        intact=broken is None,
        first_broken_sequence=broken,
        event_count=workflow.audit_log.size,
    )


@router.get("/export", response_model=None)
@beartype
async def export_audit_log(
    workflow: WorkflowDep,
    fmt: str = "json",
    entity_type: EntityType | None = None,
    actor: str | None = None,
    actions: Annotated[list[AuditAction] | None, Query()] = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: Annotated[int, Query(ge=1, le=100000)] = 100000,
) -> Response:
    """Export matching events as JSON or CSV."""
    filters = _filters(entity_type, actor, actions, since, until, limit)
    result = workflow.audit_log.export(filters, fmt)
    if isinstance(result, Err):
        return JSONResponse(
            status_code=map_error_to_status(result.error),
            content=ErrorResponse.from_error(result.error).model_dump(mode="json"),
        )
    return PlainTextResponse(result.value, media_type=EXPORT_MEDIA_TYPES[fmt])
