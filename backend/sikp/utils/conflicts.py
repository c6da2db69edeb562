"""Time-window conflict detection for seminar bookings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Protocol

from .dates import format_window


class Booking(Protocol):
    id: str
    start_time: datetime
    end_time: datetime


@dataclass
class ConflictResult:
    has_conflict: bool
    conflicts: list = field(default_factory=list)

    def describe(self) -> str:
        return ", ".join(format_window(c.start_time, c.end_time) for c in self.conflicts)


NO_CONFLICT = ConflictResult(has_conflict=False)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open [start, end) overlap. Touching boundaries do not overlap."""
    return start_a < end_b and end_a > start_b


def find_conflicts(
    bookings: Iterable[Booking],
    start: datetime,
    end: datetime,
    exclude_id: Optional[str] = None,
) -> ConflictResult:
    """Return the bookings whose window overlaps [start, end).

    The booking with id `exclude_id` (the one being edited) is never
    reported against itself.
    """
    conflicts = [
        b for b in bookings
        if b.id != exclude_id and overlaps(b.start_time, b.end_time, start, end)
    ]
    return ConflictResult(has_conflict=bool(conflicts), conflicts=conflicts)
