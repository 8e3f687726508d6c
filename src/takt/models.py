"""Item, dependency and planner config definitions."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date

MIN_DURATION = 15
DEFAULT_DURATION = 30
DEFAULT_EVENT_DURATION = 60


class ItemKind(enum.StrEnum):
    FIXED = "fixed"  # events: immutable start and duration
    FLEXIBLE = "flexible"  # tasks: may be placed anywhere in the window


def clamp_duration(minutes: int | float | None, default: int = DEFAULT_DURATION) -> int:
    """Return a usable duration: *default* when missing, never below MIN_DURATION."""
    if minutes is None:
        minutes = default
    return max(MIN_DURATION, int(minutes))


@dataclass(frozen=True)
class Dependency:
    """Edge meaning *predecessor_id* must complete before *successor_id*."""

    predecessor_id: str
    successor_id: str

    def to_dict(self) -> dict:
        return {"predecessor_id": self.predecessor_id, "successor_id": self.successor_id}

    @classmethod
    def from_dict(cls, d: dict) -> Dependency:
        return cls(predecessor_id=d["predecessor_id"], successor_id=d["successor_id"])


@dataclass
class WorkingWindow:
    """Hours of a day inside which flexible items may be placed."""

    start_hour: int = 6
    end_hour: int = 22

    @property
    def start_minute(self) -> int:
        return self.start_hour * 60

    @property
    def end_minute(self) -> int:
        return self.end_hour * 60

    def hours(self) -> list[int]:
        return list(range(self.start_hour, self.end_hour))


@dataclass
class PlannerConfig:
    """Planner-level settings stored alongside items."""

    day_start_hour: int = 6
    day_end_hour: int = 22
    default_duration: int = DEFAULT_DURATION
    ai_model: str = "anthropic/claude-sonnet-4-20250514"
    ai_temperature: float = 0.3

    @property
    def window(self) -> WorkingWindow:
        return WorkingWindow(self.day_start_hour, self.day_end_hour)

    def to_dict(self) -> dict:
        return {
            "day_start_hour": self.day_start_hour,
            "day_end_hour": self.day_end_hour,
            "default_duration": self.default_duration,
            "ai_model": self.ai_model,
            "ai_temperature": self.ai_temperature,
        }

    @classmethod
    def from_dict(cls, d: dict) -> PlannerConfig:
        return cls(
            day_start_hour=d.get("day_start_hour", 6),
            day_end_hour=d.get("day_end_hour", 22),
            default_duration=d.get("default_duration", DEFAULT_DURATION),
            ai_model=d.get("ai_model", "anthropic/claude-sonnet-4-20250514"),
            ai_temperature=d.get("ai_temperature", 0.3),
        )


@dataclass
class Item:
    """A task or event as seen by the graph and the placer."""

    id: str
    title: str
    kind: ItemKind = ItemKind.FLEXIBLE
    duration_minutes: int | None = None  # None means "needs an estimate"
    due_date: str | None = None
    description: str | None = None
    category: str | None = None
    start_time: str | None = None  # ISO datetime, fixed items
    scheduled_date: str | None = None  # YYYY-MM-DD, flexible items
    scheduled_start: str | None = None  # HH:MM, flexible items
    completed: bool = False

    @property
    def is_fixed(self) -> bool:
        return self.kind == ItemKind.FIXED

    @property
    def is_scheduled(self) -> bool:
        if self.is_fixed:
            return self.start_time is not None
        return self.scheduled_date is not None and self.scheduled_start is not None

    def day(self) -> str | None:
        """The YYYY-MM-DD this item occupies, if any."""
        if self.is_fixed:
            return self.start_time[:10] if self.start_time else None
        return self.scheduled_date if self.scheduled_start else None

    def is_due_by(self, day: str) -> bool:
        """Urgency hint: due on or before *day*."""
        if not self.due_date:
            return False
        try:
            return date.fromisoformat(self.due_date[:10]) <= date.fromisoformat(day)
        except ValueError:
            return False

    def to_dict(self) -> dict:
        d = {
            "title": self.title,
            "kind": self.kind.value,
            "duration_minutes": self.duration_minutes,
            "due_date": self.due_date,
            "start_time": self.start_time,
            "scheduled_date": self.scheduled_date,
            "scheduled_start": self.scheduled_start,
            "completed": self.completed,
        }
        if self.description is not None:
            d["description"] = self.description
        if self.category is not None:
            d["category"] = self.category
        return d

    @classmethod
    def from_dict(cls, item_id: str, d: dict) -> Item:
        return cls(
            id=item_id,
            title=d["title"],
            kind=ItemKind(d.get("kind", "flexible")),
            duration_minutes=d.get("duration_minutes"),
            due_date=d.get("due_date"),
            description=d.get("description"),
            category=d.get("category"),
            start_time=d.get("start_time"),
            scheduled_date=d.get("scheduled_date"),
            scheduled_start=d.get("scheduled_start"),
            completed=d.get("completed", False),
        )
