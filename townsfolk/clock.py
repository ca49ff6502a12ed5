"""Simulated town clock.

Every timestamp the core records (memory creation, plan activation, trigger
windows) comes from this clock so that windows such as "the trailing 6 hours"
or "24 simulated hours since the last evaluation" are measured in game time.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

MINUTES_PER_DAY = 1440
_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")

# Day 1, 00:00 of the simulated calendar.
DEFAULT_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def parse_time(value: str) -> int:
    """Convert ``"H:MM"``/``"HH:MM"`` into minutes since midnight."""

    match = _TIME_PATTERN.match(value)
    if match is None:
        raise ValueError(f"Invalid time of day '{value}' (expected HH:MM)")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time of day '{value}' (expected HH:MM)")
    return hours * 60 + minutes


def format_time(minutes: float) -> str:
    """Format minutes since midnight as ``HH:MM``."""

    total = int(minutes) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


class SimulationClock:
    """Tick-driven game clock.

    The clock starts on day 1 at ``start_time`` and advances a fixed number of
    simulated minutes per tick. ``now()`` maps the simulated time onto a real
    ``datetime`` anchored at ``epoch`` so persisted records stay comparable.
    """

    def __init__(
        self,
        *,
        start_time: str = "06:00",
        minutes_per_tick: float = 1.0,
        epoch: Optional[datetime] = None,
    ) -> None:
        if minutes_per_tick <= 0:
            raise ValueError("minutes_per_tick must be positive")
        self.minutes_per_tick = minutes_per_tick
        self.epoch = epoch or DEFAULT_EPOCH
        self.elapsed_minutes: float = float(parse_time(start_time))
        self.tick = 0

    @property
    def day(self) -> int:
        return int(self.elapsed_minutes // MINUTES_PER_DAY) + 1

    @property
    def minute_of_day(self) -> float:
        return self.elapsed_minutes % MINUTES_PER_DAY

    def time_string(self) -> str:
        return format_time(self.minute_of_day)

    def now(self) -> datetime:
        return self.epoch + timedelta(minutes=self.elapsed_minutes)

    def advance(self, ticks: int = 1) -> bool:
        """Advance the clock; return True when a new day started."""

        previous_day = self.day
        self.tick += ticks
        self.elapsed_minutes += self.minutes_per_tick * ticks
        return self.day != previous_day
