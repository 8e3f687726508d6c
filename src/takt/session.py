"""Planning session: request, preview and apply an optimized day plan."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from takt.placer import Conflict, Placement, Rejection, SchedulePlacer, Suggestion
from takt.suggest import OptimizationResult, build_request

logger = logging.getLogger("takt.session")


class SessionState(enum.StrEnum):
    IDLE = "idle"
    REQUESTING = "requesting"
    PREVIEW_PENDING = "preview_pending"
    APPLYING = "applying"


class SuggestionSource(Protocol):
    async def suggest(self, request: dict) -> OptimizationResult | None: ...


@dataclass
class Preview:
    """Re-validated suggestions waiting for the user's approval."""

    day: str
    accepted: list[Suggestion]
    rejected: list[Rejection]
    reasoning: str = ""


@dataclass
class ApplyReport:
    applied: list[Placement] = field(default_factory=list)
    failed: Suggestion | None = None
    error: str | None = None
    skipped: list[Suggestion] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed is None


class PlanningSession:
    """One day's optimize/preview/apply cycle over a SchedulePlacer.

    Only one suggestion request may be outstanding. A response that arrives
    after the selected day changed is dropped.
    """

    def __init__(self, placer: SchedulePlacer, day: str):
        self.placer = placer
        self.day = day
        self.state = SessionState.IDLE
        self.preview: Preview | None = None

    def select_day(self, day: str) -> None:
        self.day = day

    async def request(self, source: SuggestionSource) -> Preview | None:
        """Ask *source* for a plan and turn it into a preview.

        Returns None when a request is already in flight or a preview is
        pending, when no suggestion was produced, or when the response is
        stale.
        """
        if self.state != SessionState.IDLE:
            logger.info("Ignoring optimize request while %s", self.state.value)
            return None

        day = self.day
        self.state = SessionState.REQUESTING
        try:
            request = build_request(day, self.placer.items_on(day), self.placer.unscheduled())
            result = await source.suggest(request)
        finally:
            self.state = SessionState.IDLE

        if result is None:
            return None
        if self.day != day:
            logger.info("Dropping suggestions for %s; %s is now selected", day, self.day)
            return None

        accepted, rejected = self.placer.validate_suggestions(result.schedule, day)
        self.preview = Preview(day, accepted, rejected, result.reasoning)
        self.state = SessionState.PREVIEW_PENDING
        return self.preview

    def reject(self) -> None:
        self.preview = None
        self.state = SessionState.IDLE

    def apply(self, commit: Callable[[Placement], object] | None = None) -> ApplyReport:
        """Place the previewed suggestions one at a time, in order.

        *commit* persists each placement as soon as the placer accepts it.
        The first conflict or persistence failure stops the run; everything
        after it is reported as skipped.
        """
        if self.state != SessionState.PREVIEW_PENDING or self.preview is None:
            raise RuntimeError("No preview to apply")

        preview = self.preview
        report = ApplyReport()
        self.state = SessionState.APPLYING
        try:
            for n, s in enumerate(preview.accepted):
                result = self.placer.place_at(s.item_id, preview.day, s.start_hhmm, s.duration_minutes)
                if isinstance(result, Conflict):
                    report.failed, report.error = s, result.reason
                elif commit is not None:
                    try:
                        commit(result)
                    except (KeyError, OSError) as exc:
                        logger.error("Failed to save placement of %s: %s", s.item_id, exc)
                        self.placer.unplace(s.item_id)
                        report.failed, report.error = s, str(exc)
                if report.failed is not None:
                    report.skipped = preview.accepted[n + 1:]
                    break
                report.applied.append(result)
        finally:
            self.preview = None
            self.state = SessionState.IDLE

        logger.info("Applied %d of %d suggestions for %s", len(report.applied), len(preview.accepted), preview.day)
        return report
