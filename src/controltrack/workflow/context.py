# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Shared runtime for the workflow engines.

Holds the collaborators every engine needs and implements the two steps
every mutating command goes through: the permission check before anything
else, and the write-ahead commit (audit append first, snapshot swap second).
"""

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from contextvars import ContextVar

from beartype import beartype

from ..core.clock import SystemClock
from ..core.collaborators import (
    AllowAllPermissions,
    InMemoryFileStorage,
    LoggingNotifier,
    StaticProviderDirectory,
)
from ..core.config import WorkflowSettings, get_settings
from ..core.errors import WorkflowError, forbidden
from ..core.logging_utils import log_rejection
from ..core.result_types import Err, Ok, Result
from ..core.types import (
    Clock,
    FileStorage,
    NotificationDispatcher,
    PermissionChecker,
    ProviderDirectory,
)
from ..models.audit import AuditAction, AuditDraft, AuditEvent, EntityType
from ..models.base import BaseModelConfig
from .audit_log import AuditLog
from .notifications import SideEffectOutbox
from .store import AggregateLocks, WorkflowStore

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

_system_run: ContextVar[bool] = ContextVar("controltrack_system_run", default=False)


class WorkflowContext:
    """Collaborators and commit pipeline shared by all engines."""

    def __init__(
        self,
        *,
        store: WorkflowStore | None = None,
        audit_log: AuditLog | None = None,
        clock: Clock | None = None,
        permissions: PermissionChecker | None = None,
        notifier: NotificationDispatcher | None = None,
        file_storage: FileStorage | None = None,
        directory: ProviderDirectory | None = None,
        settings: WorkflowSettings | None = None,
    ) -> None:
        """Initialize with injected collaborators, defaulting to in-process ones."""
        self.settings = settings or get_settings()
        self.store = store or WorkflowStore()
        self.audit_log = audit_log or AuditLog(settings=self.settings)
        self.clock = clock or SystemClock()
        self.permissions = permissions or AllowAllPermissions()
        self.file_storage = file_storage or InMemoryFileStorage()
        self.directory = directory or StaticProviderDirectory()
        self.outbox = SideEffectOutbox(notifier or LoggingNotifier(), self.file_storage)
        self.locks = AggregateLocks()

    @contextmanager
    def system_run(self) -> Iterator[None]:
        """Scope in which commands issued as the system actor skip the permission check.

        The flag lives in a context variable, so it covers only the current task.
        """
        token = _system_run.set(True)
        try:
            yield
        finally:
            _system_run.reset(token)

    @beartype
    async def authorize(
        self,
        actor: str,
        entity_type: EntityType,
        entity_id: str,
        action: str,
        scope: str,
    ) -> WorkflowError | None:
        """Consult the permission checker; record and return a denial.

        The system actor is trusted only inside ``system_run()``. Anywhere else
        the name is checked like any other identity.
        """
        if actor == SYSTEM_ACTOR and _system_run.get():
            return None
        if await self.permissions.has_permission(actor, entity_type.value, action, scope):
            return None

        error = forbidden(actor, entity_type.value, action, entity_id)
        denial = AuditDraft(
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            action=AuditAction.PERMISSION_DENIED,
            timestamp=self.clock.now(),
            metadata={"attempted": action, "scope": scope},
        )
        recorded = await self.audit_log.record(denial)
        if isinstance(recorded, Err):
            logger.error("Could not record permission denial for %s: %s", actor, recorded.error)
        log_rejection(logger, action, error)
        return error

    @beartype
    async def commit(
        self,
        drafts: Sequence[AuditDraft],
        aggregates: Sequence[BaseModelConfig],
    ) -> Result[list[AuditEvent], WorkflowError]:
        """Append the audit events, then publish the new snapshots.

        On an audit failure nothing is published, any request numbers the new
        aggregates reserved are released and the error is returned.
        """
        recorded = await self.audit_log.record_batch(drafts)
        if isinstance(recorded, Err):
            self.store.release(*aggregates)
            return recorded
        self.store.put(*aggregates)
        return Ok(recorded.value)
