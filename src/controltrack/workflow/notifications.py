# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Fire-and-forget side effects that run after a command has committed.

A failing notifier or file-storage check is logged and otherwise ignored;
it never reaches the state machine.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

from beartype import beartype

from ..core.types import FileStorage, NotificationDispatcher
from ..models.evidence import EvidenceFileRef, FileRef

logger = logging.getLogger(__name__)


class SideEffectOutbox:
    """Schedules post-commit I/O as background tasks."""

    def __init__(self, notifier: NotificationDispatcher, file_storage: FileStorage) -> None:
        """Initialize with the notification and file-storage collaborators."""
        self._notifier = notifier
        self._file_storage = file_storage
        self._tasks: set[asyncio.Task[None]] = set()

    @beartype
    def notify(self, user_id: str | None, event_type: str, payload: dict[str, Any]) -> None:
        """Dispatch a notification without waiting for it."""
        if not user_id:
            return
        self._spawn(
            self._guard(
                self._notifier.notify(user_id, event_type, payload),
                f"notification {event_type} to {user_id}",
            )
        )

    @beartype
    def notify_many(self, user_ids: set[str], event_type: str, payload: dict[str, Any]) -> None:
        """Dispatch the same notification to several users."""
        for user_id in sorted(user_ids):
            self.notify(user_id, event_type, payload)

    @beartype
    def verify_files(self, request_id: str, refs: list[EvidenceFileRef]) -> None:
        """Check submitted references exist in storage; mismatches are logged."""
        self._spawn(self._guard(self._verify(request_id, refs), f"file check for {request_id}"))

    async def _verify(self, request_id: str, refs: list[EvidenceFileRef]) -> None:
        for ref in refs:
            stored = FileRef(
                file_id=ref.file_id,
                content_hash=ref.content_hash,
                size_bytes=ref.size_bytes,
                uploaded_at=ref.uploaded_at,
            )
            if not await self._file_storage.exists(stored):
                logger.warning(
                    "Evidence file %s on request %s not found in storage", ref.file_id, request_id
                )

    async def _guard(self, operation: Awaitable[None], description: str) -> None:
        try:
            await operation
        except Exception as e:
            logger.warning("Side effect failed (%s): %s", description, e)

    def _spawn(self, coroutine: Any) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coroutine)
        except RuntimeError:
            coroutine.close()
            logger.warning("No running event loop; dropping side effect")
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @beartype
    async def drain(self) -> None:
        """Wait for every scheduled side effect to finish."""
        while self._tasks:
            running = list(self._tasks)
            await asyncio.gather(*running, return_exceptions=True)
            self._tasks.difference_update(running)

    @property
    def pending(self) -> int:
        """Number of side effects still running."""
        return len(self._tasks)
