# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""API response patterns following Result[T,E] + HTTP semantics."""

from typing import Any, TypeVar, Union

from beartype import beartype
from fastapi import Response
from pydantic import Field

from ..core.errors import ErrorKind, WorkflowError
from ..core.result_types import Err, Result
from ..models.base import BaseModelConfig

T = TypeVar("T")

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE_ASSIGNMENT: 409,
    ErrorKind.CONFLICTING_REQUEST: 409,
    ErrorKind.INVALID_TRANSITION: 422,
    ErrorKind.PREREQUISITE_NOT_MET: 422,
    ErrorKind.SEGREGATION_OF_DUTIES_VIOLATION: 422,
    ErrorKind.PERSISTENCE_ERROR: 503,
}


class ErrorResponse(BaseModelConfig):
    """Standardized error response for rejected workflow commands."""

    success: bool = Field(default=False, description="Always false for error responses")
    error: str = Field(..., description="Human-readable error message")
    error_code: str = Field(..., description="Machine-readable error kind")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Aggregate and state the command was rejected on"
    )

    @classmethod
    @beartype
    def from_error(cls, error: WorkflowError) -> "ErrorResponse":
        """Build the response body from a workflow error."""
        details = {
            "aggregate_type": error.aggregate_type,
            "aggregate_id": error.aggregate_id,
            "current_state": error.current_state,
            "attempted": error.attempted,
        }
        return cls(
            error=error.message,
            error_code=error.kind.value,
            details={k: v for k, v in details.items() if v is not None},
        )


@beartype
def map_error_to_status(error: WorkflowError) -> int:
    """HTTP status code for an error kind."""
    return STATUS_BY_KIND.get(error.kind, 422)


@beartype
def handle_result(
    result: Result[T, WorkflowError],
    response: Response,
    success_status: int = 200,
) -> Union[T, ErrorResponse]:
    """Unwrap a service result, setting the status code for either branch."""
    if isinstance(result, Err):
        response.status_code = map_error_to_status(result.error)
        return ErrorResponse.from_error(result.error)

    response.status_code = success_status
    return result.value
