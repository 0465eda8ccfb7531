# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Typed workflow errors returned inside ``Err``.

Each error carries the aggregate it concerns, the state the aggregate was in
and what the caller attempted, so a caller can explain the rejection to an
end user without another lookup.
"""

from enum import Enum

from beartype import beartype
from pydantic import Field, ValidationError

from ..models.base import BaseModelConfig


class ErrorKind(str, Enum):
    """Error taxonomy for workflow commands."""

    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICTING_REQUEST = "conflicting_request"
    DUPLICATE_ASSIGNMENT = "duplicate_assignment"
    PREREQUISITE_NOT_MET = "prerequisite_not_met"
    SEGREGATION_OF_DUTIES_VIOLATION = "segregation_of_duties_violation"
    FORBIDDEN = "forbidden"
    PERSISTENCE_ERROR = "persistence_error"


class WorkflowError(BaseModelConfig):
    """A rejected or failed workflow command."""

    kind: ErrorKind = Field(...)
    message: str = Field(..., min_length=1)
    aggregate_type: str | None = Field(default=None)
    aggregate_id: str | None = Field(default=None)
    current_state: str | None = Field(default=None)
    attempted: str | None = Field(default=None)

    @property
    @beartype
    def is_fatal(self) -> bool:
        """Only persistence failures abort an operation; the rest are expected outcomes."""
        return self.kind == ErrorKind.PERSISTENCE_ERROR

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class AuditWriteError(Exception):
    """Raised by an audit store when an append could not be made durable."""


@beartype
def validation_error(
    message: str,
    *,
    aggregate_type: str | None = None,
    aggregate_id: str | None = None,
    attempted: str | None = None,
) -> WorkflowError:
    """Build a validation error."""
    return WorkflowError(
        kind=ErrorKind.VALIDATION_ERROR,
        message=message,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        attempted=attempted,
    )


@beartype
def not_found(aggregate_type: str, aggregate_id: str) -> WorkflowError:
    """Build a not-found error."""
    return WorkflowError(
        kind=ErrorKind.NOT_FOUND,
        message=f"{aggregate_type} {aggregate_id} not found",
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
    )


@beartype
def invalid_transition(
    aggregate_type: str,
    aggregate_id: str,
    current_state: str,
    attempted: str,
    message: str | None = None,
) -> WorkflowError:
    """Build an invalid-transition error."""
    return WorkflowError(
        kind=ErrorKind.INVALID_TRANSITION,
        message=message
        or f"{aggregate_type} {aggregate_id} cannot move from {current_state} to {attempted}",
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        current_state=current_state,
        attempted=attempted,
    )


@beartype
def prerequisite_not_met(
    aggregate_type: str,
    aggregate_id: str,
    current_state: str,
    attempted: str,
    message: str,
) -> WorkflowError:
    """Build a prerequisite-not-met error."""
    return WorkflowError(
        kind=ErrorKind.PREREQUISITE_NOT_MET,
        message=message,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        current_state=current_state,
        attempted=attempted,
    )


@beartype
def conflict(
    kind: ErrorKind,
    aggregate_type: str,
    aggregate_id: str,
    attempted: str,
    message: str,
) -> WorkflowError:
    """Build a uniqueness violation (conflicting request or duplicate assignment)."""
    return WorkflowError(
        kind=kind,
        message=message,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        attempted=attempted,
    )


@beartype
def segregation_of_duties_violation(
    aggregate_type: str,
    aggregate_id: str,
    current_state: str,
    attempted: str,
    actor: str,
) -> WorkflowError:
    """Build a segregation-of-duties violation."""
    return WorkflowError(
        kind=ErrorKind.SEGREGATION_OF_DUTIES_VIOLATION,
        message=f"{actor} tested {aggregate_type} {aggregate_id} and cannot also {attempted} it",
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        current_state=current_state,
        attempted=attempted,
    )


@beartype
def forbidden(
    actor: str,
    resource: str,
    action: str,
    aggregate_id: str | None = None,
) -> WorkflowError:
    """Build a permission denial."""
    return WorkflowError(
        kind=ErrorKind.FORBIDDEN,
        message=f"{actor} is not permitted to {action} {resource}",
        aggregate_type=resource,
        aggregate_id=aggregate_id,
        attempted=action,
    )


@beartype
def persistence_error(
    message: str,
    *,
    aggregate_type: str | None = None,
    aggregate_id: str | None = None,
    attempted: str | None = None,
) -> WorkflowError:
    """Build a persistence failure."""
    return WorkflowError(
        kind=ErrorKind.PERSISTENCE_ERROR,
        message=message,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        attempted=attempted,
    )


@beartype
def from_validation_exception(
    exc: ValidationError,
    *,
    aggregate_type: str | None = None,
    aggregate_id: str | None = None,
    attempted: str | None = None,
) -> WorkflowError:
    """Convert a pydantic ``ValidationError`` raised on input into a returned error."""
    details = "; ".join(
        (
            f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
            if item["loc"]
            else item["msg"]
        )
        for item in exc.errors()
    )
    return validation_error(
        details or str(exc),
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        attempted=attempted,
    )
