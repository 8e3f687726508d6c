"""Minute-of-day interval helpers shared by the placer and the suggester."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from takt.models import DEFAULT_EVENT_DURATION, Item, WorkingWindow, clamp_duration


@dataclass(frozen=True)
class Interval:
    """Half-open span [start, end) in minutes since midnight."""

    start: int
    end: int

    @property
    def minutes(self) -> int:
        return self.end - self.start

    def overlaps(self, other: Interval) -> bool:
        return self.start < other.end and other.start < self.end

    def within(self, window: WorkingWindow) -> bool:
        return self.start >= window.start_minute and self.end <= window.end_minute


def parse_hhmm(value: str | None) -> int | None:
    """Parse "HH:MM" (seconds ignored) into minutes since midnight.

    Returns None for anything malformed instead of raising.
    """
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) < 2 or not (parts[0].isdigit() and parts[1].isdigit()):
        return None
    try:
        h, m = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= h < 24 and 0 <= m < 60):
        return None
    return h * 60 + m


def format_hhmm(minute: int) -> str:
    h, m = divmod(minute, 60)
    return f"{h:02d}:{m:02d}"


def parse_event_start(value: str | None) -> datetime | None:
    """Parse a fixed event's ISO start ("2026-03-02T09:00", "...Z", "...+02:00").

    The wall-clock time as written is what occupies the day; any offset is
    not converted. Date-only or malformed values give None.
    """
    if not isinstance(value, str) or "T" not in value:
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        return None


def start_minute_of(item: Item) -> int | None:
    """Minute-of-day an item starts at, or None if it has no usable start."""
    if item.is_fixed:
        start = parse_event_start(item.start_time)
        return start.hour * 60 + start.minute if start else None
    return parse_hhmm(item.scheduled_start)


def interval_of(item: Item, default_duration: int | None = None) -> Interval | None:
    """The occupied interval of a scheduled item, or None if it has none."""
    start = start_minute_of(item)
    if start is None:
        return None
    if default_duration is None:
        default_duration = DEFAULT_EVENT_DURATION if item.is_fixed else clamp_duration(None)
    return Interval(start, start + clamp_duration(item.duration_minutes, default_duration))


def free_gaps(window: WorkingWindow, busy: list[Interval]) -> list[Interval]:
    """Subtract *busy* intervals from the window, returning the free pieces in order."""
    pieces = [Interval(window.start_minute, window.end_minute)]
    for b in sorted(busy, key=lambda iv: iv.start):
        nxt: list[Interval] = []
        for p in pieces:
            if not b.overlaps(p):
                nxt.append(p)
                continue
            if b.start > p.start:
                nxt.append(Interval(p.start, b.start))
            if b.end < p.end:
                nxt.append(Interval(b.end, p.end))
        pieces = [x for x in nxt if x.end > x.start]
    return pieces
