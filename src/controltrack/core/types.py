# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Collaborator protocols consumed by the workflow core.

These protocols are **runtime_checkable** so beartype ``isinstance`` calls
succeed against production adapters and test doubles alike, as long as the
listed methods exist. They cover only the narrow surface the core needs.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from ..models.audit import AuditEvent
from ..models.evidence import FileRef


@runtime_checkable
class Clock(Protocol):
    """Source of the current time (timezone-aware UTC)."""

    def now(self) -> datetime: ...


@runtime_checkable
class PermissionChecker(Protocol):
    """Capability check consulted before every mutating command."""

    async def has_permission(
        self, actor: str, resource: str, action: str, scope: str
    ) -> bool: ...


@runtime_checkable
class FileStorage(Protocol):
    """Evidence file storage; the core never reads file bytes."""

    async def put(self, content: bytes) -> FileRef: ...

    async def exists(self, file_ref: FileRef) -> bool: ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Best-effort notification transport."""

    async def notify(self, user_id: str, event_type: str, payload: dict[str, Any]) -> None: ...


@runtime_checkable
class ProviderDirectory(Protocol):
    """Identity lookups used for routing requests and escalations."""

    async def evidence_provider_for(self, control_id: str, evidence_type: str) -> str | None: ...

    async def manager_of(self, user_id: str) -> str | None: ...


@runtime_checkable
class AuditStore(Protocol):
    """Durable append-only storage for sealed audit events.

    ``append`` must persist the whole batch or nothing, and raise
    ``AuditWriteError`` when it cannot.
    """

    async def append(self, events: Sequence[AuditEvent]) -> None: ...

    def events(self) -> Sequence[AuditEvent]: ...
