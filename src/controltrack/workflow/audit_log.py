# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Append-only, hash-chained audit log.

Every mutating command hands its audit drafts to ``AuditLog.record_batch``
before the new aggregate state is stored. The log seals each draft with a
sequence number and the hash of the previous event, so any later edit or
deletion of a stored event breaks the chain and is reported by
``verify_integrity``.

Appends to the backing store are retried with exponential backoff; when the
store keeps failing the caller gets ``Err(persistence_error)`` and must leave
its aggregate untouched.
"""

import asyncio
import csv
import io
import json
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import uuid4

from beartype import beartype

from ..core.config import WorkflowSettings, get_settings
from ..core.errors import AuditWriteError, WorkflowError, persistence_error, validation_error
from ..core.result_types import Err, Ok, Result
from ..core.types import AuditStore
from ..models.audit import (
    AuditAction,
    AuditDraft,
    AuditEvent,
    AuditFilter,
    EntityType,
    compute_event_hash,
)
from ..models.base import AggregateModel, BaseModelConfig

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64

CSV_COLUMNS = (
    "sequence",
    "event_id",
    "timestamp",
    "entity_type",
    "entity_id",
    "actor",
    "action",
    "previous_state",
    "new_state",
    "metadata",
    "previous_hash",
    "event_hash",
)


class InMemoryAuditStore:
    """Audit store backed by a Python list; a batch is appended in one step."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._events: list[AuditEvent] = []

    @beartype
    async def append(self, events: Sequence[AuditEvent]) -> None:
        """Append the whole batch."""
        self._events.extend(events)

    @beartype
    def events(self) -> Sequence[AuditEvent]:
        """All stored events in sequence order."""
        return tuple(self._events)


@beartype
def change_event(
    entity_type: EntityType,
    entity_id: str,
    actor: str,
    action: AuditAction,
    at: datetime,
    before: BaseModelConfig | None,
    after: BaseModelConfig | None,
    metadata: dict[str, Any] | None = None,
) -> AuditDraft:
    """Draft an audit event from the before/after snapshots of an aggregate."""
    return AuditDraft(
        entity_type=entity_type,
        entity_id=entity_id,
        actor=actor,
        action=action,
        timestamp=at,
        previous_state=_snapshot(before),
        new_state=_snapshot(after),
        metadata=metadata or {},
    )


def _snapshot(model: BaseModelConfig | None) -> dict[str, Any] | None:
    if model is None:
        return None
    if isinstance(model, AggregateModel):
        return model.snapshot()
    return model.model_dump(mode="json")


class AuditLog:
    """Tamper-evident audit trail shared by every workflow component."""

    def __init__(
        self,
        store: AuditStore | None = None,
        settings: WorkflowSettings | None = None,
    ) -> None:
        """Initialize the log over a store, resuming the chain from its last event."""
        self._store = store or InMemoryAuditStore()
        self._settings = settings or get_settings()
        # Sealing assigns sequence numbers, so appends are ordered
        self._append_lock = asyncio.Lock()

        existing = self._store.events()
        if existing:
            self._next_sequence = existing[-1].sequence + 1
            self._head_hash = existing[-1].event_hash
        else:
            self._next_sequence = 1
            self._head_hash = GENESIS_HASH

    @beartype
    async def record(self, draft: AuditDraft) -> Result[AuditEvent, WorkflowError]:
        """Seal and durably append a single event."""
        result = await self.record_batch([draft])
        if isinstance(result, Err):
            return result
        return Ok(result.value[0])

    @beartype
    async def record_batch(
        self, drafts: Sequence[AuditDraft]
    ) -> Result[list[AuditEvent], WorkflowError]:
        """Seal and durably append a batch of events atomically.

        Either every draft in the batch becomes part of the chain or none does.
        """
        if not drafts:
            return Ok([])

        async with self._append_lock:
            events = self._seal(drafts)
            attempts = self._settings.audit_write_attempts

            for attempt in range(1, attempts + 1):
                try:
                    await self._store.append(events)
                    break
                except (AuditWriteError, OSError) as e:
                    if attempt == attempts:
                        logger.error(
                            "Audit append failed after %d attempts for %s %s: %s",
                            attempts,
                            drafts[0].entity_type.value,
                            drafts[0].entity_id,
                            e,
                        )
                        return Err(
                            persistence_error(
                                f"Audit log write failed after {attempts} attempts: {e}",
                                aggregate_type=drafts[0].entity_type.value,
                                aggregate_id=drafts[0].entity_id,
                                attempted=drafts[0].action.value,
                            )
                        )
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        "Audit append attempt %d/%d failed (%s); retrying in %.2fs",
                        attempt,
                        attempts,
                        e,
                        delay,
                    )
                    await asyncio.sleep(delay)

            self._next_sequence = events[-1].sequence + 1
            self._head_hash = events[-1].event_hash

        logger.debug(
            "Recorded %d audit event(s) up to sequence %d", len(events), events[-1].sequence
        )
        return Ok(events)

    def _seal(self, drafts: Sequence[AuditDraft]) -> list[AuditEvent]:
        events: list[AuditEvent] = []
        previous_hash = self._head_hash
        sequence = self._next_sequence
        for draft in drafts:
            chain = {
                "event_id": f"evt-{uuid4().hex}",
                "sequence": sequence,
                "previous_hash": previous_hash,
            }
            event_hash = compute_event_hash({**draft.model_dump(mode="json"), **chain})
            events.append(AuditEvent(**draft.model_dump(), **chain, event_hash=event_hash))
            previous_hash = event_hash
            sequence += 1
        return events

    def _backoff_delay(self, attempt: int) -> float:
        base = self._settings.audit_retry_base_delay_seconds
        return min(base * (2 ** (attempt - 1)), self._settings.audit_retry_max_delay_seconds)

    # Queries

    @beartype
    def get_audit_trail(
        self, entity_id: str, filters: AuditFilter | None = None
    ) -> list[AuditEvent]:
        """Chronological events for one entity."""
        filters = filters or AuditFilter()
        matching = [
            event
            for event in self._store.events()
            if event.entity_id == entity_id and filters.matches(event)
        ]
        return matching[: filters.limit]

    @beartype
    def get_actor_activity(
        self,
        actor: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[AuditEvent]:
        """Everything an actor did in a time window, including denied attempts."""
        filters = AuditFilter(actor=actor, since=since, until=until)
        return [event for event in self._store.events() if filters.matches(event)]

    @beartype
    def query(self, filters: AuditFilter | None = None) -> list[AuditEvent]:
        """Events across all entities matching the filters."""
        filters = filters or AuditFilter()
        matching = [event for event in self._store.events() if filters.matches(event)]
        return matching[: filters.limit]

    @beartype
    def verify_integrity(self) -> int | None:
        """Recompute the hash chain.

        Returns the sequence number of the first event that does not verify,
        or ``None`` when the whole chain is intact.
        """
        expected_previous = GENESIS_HASH
        for position, event in enumerate(self._store.events(), start=1):
            if event.sequence != position:
                return position
            if event.previous_hash != expected_previous:
                return event.sequence
            if event.compute_hash() != event.event_hash:
                return event.sequence
            expected_previous = event.event_hash
        return None

    @beartype
    def export(
        self,
        filters: AuditFilter | None = None,
        fmt: str = "json",
    ) -> Result[str, WorkflowError]:
        """Export matching events as JSON or CSV text."""
        events = self.query(filters)
        if fmt == "json":
            return Ok(json.dumps([event.model_dump(mode="json") for event in events], indent=2))
        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
            writer.writeheader()
            for event in events:
                row = event.model_dump(mode="json")
                writer.writerow(
                    {
                        column: (
                            json.dumps(row[column], sort_keys=True)
                            if isinstance(row[column], dict)
                            else row[column]
                        )
                        for column in CSV_COLUMNS
                    }
                )
            return Ok(buffer.getvalue())
        return Err(
            validation_error(
                f"Unsupported export format: {fmt}", aggregate_type="audit_log", attempted="export"
            )
        )

    @property
    def size(self) -> int:
        """Number of durable events."""
        return len(self._store.events())
