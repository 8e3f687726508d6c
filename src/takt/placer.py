"""Conflict-free placement of flexible items into a day's working window."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, replace

from takt.models import DEFAULT_DURATION, Item, WorkingWindow, clamp_duration
from takt.timeutil import Interval, format_hhmm, free_gaps, interval_of, parse_hhmm, start_minute_of

logger = logging.getLogger("takt.placer")


@dataclass(frozen=True)
class Suggestion:
    """A start/duration proposed for an item, not yet tied to a day."""

    item_id: str
    start: int
    duration_minutes: int

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.start + self.duration_minutes)

    @property
    def start_hhmm(self) -> str:
        return format_hhmm(self.start)


@dataclass(frozen=True)
class Placement(Suggestion):
    """An accepted assignment of a flexible item to a day and start time."""

    day: str = ""


@dataclass(frozen=True)
class Conflict:
    """A placement that was refused; nothing was changed."""

    item_id: str
    reason: str
    blocking_id: str | None = None

    def __str__(self) -> str:
        return self.reason


@dataclass(frozen=True)
class Rejection:
    """An external suggestion that was dropped during re-validation."""

    item_id: str | None
    reason: str
    index: int


def build_day_index(items: Iterable[Item], day: str, window: WorkingWindow | None = None) -> dict[int, list[Item]]:
    """Group the items occupying *day* by their truncated start hour.

    Every hour of the window is present as a key. Items starting outside the
    window, or with no parseable start, are left out.
    """
    window = window or WorkingWindow()
    index: dict[int, list[Item]] = {h: [] for h in window.hours()}
    for item in items:
        if item.day() != day:
            continue
        start = start_minute_of(item)
        if start is None:
            continue
        hour = start // 60
        if hour in index:
            index[hour].append(item)
    return index


def _coerce_suggestion(raw: object) -> Suggestion | None:
    if not isinstance(raw, dict):
        return None
    item_id = raw.get("item_id")
    start = parse_hhmm(raw.get("scheduled_start"))
    duration = raw.get("duration_minutes", DEFAULT_DURATION)
    if not isinstance(item_id, str) or not item_id or start is None:
        return None
    if duration is None:
        duration = DEFAULT_DURATION
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return None
    if isinstance(duration, float) and not math.isfinite(duration):
        return None
    return Suggestion(item_id, start, clamp_duration(duration))


def validate_external_suggestion(
    raw_suggestions: Iterable[object],
    known_item_ids: Iterable[str],
    window: WorkingWindow | None = None,
    busy: Iterable[tuple[str, Interval]] = (),
) -> tuple[list[Suggestion], list[Rejection]]:
    """Re-validate suggestions from an untrusted source.

    Each entry is checked in the order received against the known item pool,
    the working window, the *busy* intervals (fixed items and tasks already
    scheduled) and every suggestion accepted before it. The first of two
    overlapping suggestions is kept.
    """
    window = window or WorkingWindow()
    known = set(known_item_ids)
    busy = list(busy)
    accepted: list[Suggestion] = []
    rejected: list[Rejection] = []

    for i, raw in enumerate(raw_suggestions):
        s = _coerce_suggestion(raw)
        if s is None:
            raw_id = raw.get("item_id") if isinstance(raw, dict) else None
            rejected.append(Rejection(raw_id if isinstance(raw_id, str) else None, "malformed suggestion", i))
            continue
        if s.item_id not in known:
            rejected.append(Rejection(s.item_id, "unknown item", i))
            continue
        if any(a.item_id == s.item_id for a in accepted):
            rejected.append(Rejection(s.item_id, "duplicate item", i))
            continue
        if not s.interval.within(window):
            rejected.append(Rejection(s.item_id, "outside working window", i))
            continue
        hit = next((bid for bid, iv in busy if iv.overlaps(s.interval)), None)
        if hit is not None:
            rejected.append(Rejection(s.item_id, f"conflicts with existing item {hit}", i))
            continue
        prior = next((a for a in accepted if a.interval.overlaps(s.interval)), None)
        if prior is not None:
            rejected.append(Rejection(s.item_id, f"conflicts with suggestion {prior.item_id}", i))
            continue
        accepted.append(s)

    if rejected:
        logger.info("Dropped %d of %d suggestions", len(rejected), len(accepted) + len(rejected))
    return accepted, rejected


class SchedulePlacer:
    """Holds a private copy of the items and enforces non-overlap on every change.

    The caller persists accepted placements; the placer never writes back to
    the store itself.
    """

    def __init__(
        self,
        items: Iterable[Item],
        window: WorkingWindow | None = None,
        default_duration: int = DEFAULT_DURATION,
    ):
        self.window = window or WorkingWindow()
        self.default_duration = default_duration
        self._items: dict[str, Item] = {i.id: replace(i) for i in items}

    def __getitem__(self, item_id: str) -> Item:
        return self._items[item_id]

    @property
    def items(self) -> list[Item]:
        return list(self._items.values())

    def items_on(self, day: str) -> list[Item]:
        return [i for i in self._items.values() if i.day() == day]

    def unscheduled(self) -> list[Item]:
        return [i for i in self._items.values() if not i.is_fixed and not i.completed and not i.is_scheduled]

    def busy(self, day: str, exclude: str | None = None) -> list[tuple[str, Interval]]:
        """(id, interval) for every fixed or placed item on *day*."""
        out: list[tuple[str, Interval]] = []
        for item in self.items_on(day):
            if item.id == exclude:
                continue
            iv = interval_of(item, None if item.is_fixed else self.default_duration)
            if iv is not None:
                out.append((item.id, iv))
        return out

    def placement_of(self, item_id: str) -> Placement | None:
        item = self._items.get(item_id)
        if item is None or item.is_fixed or not item.is_scheduled:
            return None
        iv = interval_of(item, self.default_duration)
        if iv is None:
            return None
        return Placement(item.id, iv.start, iv.minutes, day=item.scheduled_date)

    def check(self, item_id: str, day: str, start_time: str, duration_minutes: int | None = None) -> Placement | Conflict:
        """Validate a placement without applying it."""
        item = self._items.get(item_id)
        if item is None:
            return Conflict(item_id, f"unknown item {item_id}")
        if item.is_fixed:
            return Conflict(item_id, f"{item_id} is a fixed event and cannot be moved")
        start = parse_hhmm(start_time)
        if start is None:
            return Conflict(item_id, f"invalid start time {start_time!r}")
        duration = clamp_duration(
            duration_minutes if duration_minutes is not None else item.duration_minutes,
            self.default_duration,
        )
        placement = Placement(item_id, start, duration, day=day)
        if not placement.interval.within(self.window):
            return Conflict(
                item_id,
                f"{placement.start_hhmm} for {duration} min is outside the working window "
                f"({format_hhmm(self.window.start_minute)}-{format_hhmm(self.window.end_minute)})",
            )
        for other_id, iv in self.busy(day, exclude=item_id):
            if iv.overlaps(placement.interval):
                return Conflict(
                    item_id,
                    f"overlaps {other_id} ({format_hhmm(iv.start)}-{format_hhmm(iv.end)})",
                    blocking_id=other_id,
                )
        return placement

    def place_at(self, item_id: str, day: str, start_time: str, duration_minutes: int | None = None) -> Placement | Conflict:
        """Place a flexible item, or refuse with a Conflict if it would overlap."""
        result = self.check(item_id, day, start_time, duration_minutes)
        if isinstance(result, Conflict):
            logger.debug("Refused placement of %s at %s %s: %s", item_id, day, start_time, result.reason)
            return result
        item = self._items[item_id]
        item.scheduled_date = day
        item.scheduled_start = result.start_hhmm
        item.duration_minutes = result.duration_minutes
        logger.debug("Placed %s at %s %s (%d min)", item_id, day, result.start_hhmm, result.duration_minutes)
        return result

    def unplace(self, item_id: str) -> None:
        item = self._items.get(item_id)
        if item is None or item.is_fixed:
            return
        item.scheduled_date = None
        item.scheduled_start = None

    def day_index(self, day: str) -> dict[int, list[Item]]:
        return build_day_index(self._items.values(), day, self.window)

    def validate_suggestions(self, raw_suggestions: Iterable[object], day: str) -> tuple[list[Suggestion], list[Rejection]]:
        known = [i.id for i in self.unscheduled()]
        return validate_external_suggestion(raw_suggestions, known, self.window, self.busy(day))

    def first_fit(self, day: str) -> tuple[list[Placement], list[str]]:
        """Place every unscheduled item into the earliest gap that fits.

        Items due on or before *day* go first, then by due date, then in pool
        order. Returns (placements, ids that did not fit).
        """
        pool = self.unscheduled()
        order = {item.id: n for n, item in enumerate(pool)}
        pool.sort(key=lambda i: (not i.is_due_by(day), i.due_date or "9999-12-31", order[i.id]))

        placed: list[Placement] = []
        left_over: list[str] = []
        for item in pool:
            duration = clamp_duration(item.duration_minutes, self.default_duration)
            gaps = free_gaps(self.window, [iv for _, iv in self.busy(day)])
            gap = next((g for g in gaps if g.minutes >= duration), None)
            if gap is None:
                left_over.append(item.id)
                continue
            result = self.place_at(item.id, day, format_hhmm(gap.start), duration)
            if isinstance(result, Placement):
                placed.append(result)
            else:
                left_over.append(item.id)
        return placed, left_over
