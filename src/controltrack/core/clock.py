# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Injectable clocks."""

from datetime import datetime, timedelta, timezone

from beartype import beartype


class SystemClock:
    """Wall-clock time in UTC."""

    @beartype
    def now(self) -> datetime:
        """Current UTC time."""
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to; used for deterministic tests and replays."""

    @beartype
    def __init__(self, start: datetime) -> None:
        """Initialize at ``start`` (must be timezone-aware)."""
        if start.tzinfo is None:
            raise ValueError("ManualClock requires a timezone-aware start time")
        self._now = start

    @beartype
    def now(self) -> datetime:
        """Current simulated time."""
        return self._now

    @beartype
    def advance(
        self,
        *,
        days: int | float = 0,
        hours: int | float = 0,
        minutes: int | float = 0,
        seconds: int | float = 0,
    ) -> datetime:
        """Move time forward and return the new instant."""
        delta = timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
        if delta < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        self._now = self._now + delta
        return self._now

    @beartype
    def set(self, instant: datetime) -> None:
        """Jump to an absolute instant not earlier than the current one."""
        if instant < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = instant
