# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Finding and remediation endpoints."""

from datetime import datetime
from typing import Union

from beartype import beartype
from fastapi import APIRouter, Response, status
from pydantic import Field

from ...models.base import BaseModelConfig
from ...models.finding import Finding, RootCauseCategory, Severity
from ..dependencies import ActorDep, WorkflowDep
from ..response_patterns import ErrorResponse, handle_result

router = APIRouter()


class OpenFindingRequest(BaseModelConfig):
    """Raise a finding from an assignment's concluded execution."""

    assignment_id: str = Field(..., min_length=1)


class ActivityRequest(BaseModelConfig):
    """A remediation activity to track."""

    description: str = Field(..., min_length=1, max_length=5000)
    owner: str = Field(..., min_length=1)
    target_date: datetime = Field(...)


class CompleteActivityRequest(BaseModelConfig):
    """Closing note for a remediation activity."""

    note: str | None = Field(default=None, max_length=5000)


class FollowUpRequest(BaseModelConfig):
    """When to retest, or that no retest is needed."""

    follow_up_date: datetime | None = Field(default=None)
    required: bool = Field(default=True)


class FollowUpResultRequest(BaseModelConfig):
    """Outcome of the follow-up test."""

    passed: bool = Field(...)
    note: str | None = Field(default=None, max_length=5000)


class WithdrawRequest(BaseModelConfig):
    """Why the finding is withdrawn."""

    reason: str = Field(..., min_length=1, max_length=5000)


class ReclassifyRequest(BaseModelConfig):
    """New severity with its justification."""

    severity: Severity = Field(...)
    note: str = Field(..., min_length=1, max_length=5000)
    root_cause: RootCauseCategory | None = Field(default=None)


@router.get("")
@beartype
async def get_findings_by_severity(
    workflow: WorkflowDep,
    severity: Severity | None = None,
    cycle_id: str | None = None,
    include_terminal: bool = False,
) -> dict[Severity, list[Finding]]:
    """Findings grouped by severity, most severe first."""
    return workflow.get_findings_by_severity(
        severity, cycle_id=cycle_id, include_terminal=include_terminal
    )


@router.post("")
@beartype
async def open_finding(
    body: OpenFindingRequest, response: Response, workflow: WorkflowDep, actor: ActorDep
) -> Union[Finding, ErrorResponse]:
    """Raise a finding for an execution concluded with a deficiency."""
    result = await workflow.findings.open_finding(body.assignment_id, actor)
    return handle_result(result, response, status.HTTP_201_CREATED)


@router.get("/{finding_id}")
@beartype
async def get_finding(
    finding_id: str, response: Response, workflow: WorkflowDep
) -> Union[Finding, ErrorResponse]:
    """Current snapshot of a finding."""
    return handle_result(workflow.findings.get_finding(finding_id), response)


@router.post("/{finding_id}/activities")
@beartype
async def add_remediation_activity(
    finding_id: str,
    body: ActivityRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[Finding, ErrorResponse]:
    """Track a new remediation activity."""
    result = await workflow.findings.add_remediation_activity(
        finding_id, body.description, body.owner, body.target_date, actor
    )
    return handle_result(result, response, status.HTTP_201_CREATED)


@router.post("/{finding_id}/activities/{activity_id}/complete")
@beartype
async def complete_remediation_activity(
    finding_id: str,
    activity_id: str,
    body: CompleteActivityRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[Finding, ErrorResponse]:
    """Mark a remediation activity done."""
    result = await workflow.findings.complete_remediation_activity(
        finding_id, activity_id, actor, body.note
    )
    return handle_result(result, response)


@router.post("/{finding_id}/follow-up")
@beartype
async def schedule_follow_up(
    finding_id: str,
    body: FollowUpRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[Finding, ErrorResponse]:
    """Schedule the retest once remediation is done."""
    result = await workflow.findings.schedule_follow_up(
        finding_id, actor, body.follow_up_date, body.required
    )
    return handle_result(result, response)


@router.post("/{finding_id}/follow-up/result")
@beartype
async def record_follow_up_result(
    finding_id: str,
    body: FollowUpResultRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[Finding, ErrorResponse]:
    """Record whether the retest passed."""
    result = await workflow.findings.record_follow_up_result(
        finding_id, body.passed, actor, body.note
    )
    return handle_result(result, response)


@router.post("/{finding_id}/close")
@beartype
async def close(
    finding_id: str, response: Response, workflow: WorkflowDep, actor: ActorDep
) -> Union[Finding, ErrorResponse]:
    """Close a remediated finding."""
    result = await workflow.findings.close(finding_id, actor)
    return handle_result(result, response)


@router.post("/{finding_id}/withdraw")
@beartype
async def withdraw(
    finding_id: str,
    body: WithdrawRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[Finding, ErrorResponse]:
    """Withdraw a finding raised in error."""
    result = await workflow.findings.withdraw(finding_id, body.reason, actor)
    return handle_result(result, response)


@router.post("/{finding_id}/severity")
@beartype
async def reclassify_severity(
    finding_id: str,
    body: ReclassifyRequest,
    response: Response,
    workflow: WorkflowDep,
    actor: ActorDep,
) -> Union[Finding, ErrorResponse]:
    """Change the severity with a documented reason."""
    result = await workflow.findings.reclassify_severity(
        finding_id, body.severity, body.note, actor, body.root_cause
    )
    return handle_result(result, response)
