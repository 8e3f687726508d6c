"""Schedule suggestions from an external language model.

The model's answer is untrusted: :func:`parse_response` only checks the
envelope, and the placer re-validates every entry before it is shown.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any

from takt.models import Item, PlannerConfig, WorkingWindow
from takt.timeutil import format_hhmm, start_minute_of

logger = logging.getLogger("takt.suggest")

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

SYSTEM_PROMPT = """\
You are a productivity assistant helping optimize a daily schedule for {day}.

Suggest time slots for the unscheduled tasks while respecting fixed events \
and tasks that are already scheduled.

Duration estimation:
- Use the task title and description to estimate a realistic duration.
- If the user gave an estimate, consider it, but use your judgment.
- Quick tasks 15-30 min, focused work 30-60 min, deep work 60-120 min.

Scheduling rules:
- Fixed events cannot be moved.
- Tasks may only be placed between {start} and {end}.
- Tasks due today or overdue go earlier in the day.
- Leave 15-minute buffers between activities where possible.

Respond with JSON only, no markdown:
{{
  "schedule": [
    {{"item_id": "T-1", "scheduled_start": "HH:MM", "duration_minutes": 30}}
  ],
  "reasoning": "Brief explanation of the scheduling decisions"
}}

Schedule every unscheduled task unless there is genuinely no room."""


@dataclass
class OptimizationResult:
    """Raw schedule entries plus display-only reasoning."""

    schedule: list[Any] = field(default_factory=list)
    reasoning: str = ""


def _urgency(item: Item, day: str) -> str | None:
    if not item.due_date:
        return None
    due = item.due_date[:10]
    if due == day:
        return "due today"
    if item.is_due_by(day):
        return "overdue"
    return f"due {due}"


def build_request(day: str, items: list[Item], unscheduled: list[Item]) -> dict:
    """Assemble the collaborator input for *day*.

    *items* are the day's fixed and scheduled items, *unscheduled* the pool
    that needs placing.
    """
    fixed: list[dict] = []
    scheduled: list[dict] = []
    for item in items:
        start = start_minute_of(item)
        if start is None:
            continue
        entry = {"id": item.id, "start": format_hhmm(start)}
        if item.is_fixed:
            entry["durationMinutes"] = item.duration_minutes or 60
            fixed.append(entry)
        else:
            entry["durationMinutes"] = item.duration_minutes or 30
            scheduled.append(entry)

    pool: list[dict] = []
    for item in unscheduled:
        entry: dict[str, Any] = {"id": item.id, "title": item.title}
        if item.description:
            entry["description"] = item.description
        urgency = _urgency(item, day)
        if urgency:
            entry["dueUrgency"] = urgency
        if item.duration_minutes:
            entry["userEstimatedDuration"] = item.duration_minutes
        pool.append(entry)

    return {"day": day, "fixed": fixed, "scheduled": scheduled, "unscheduled": pool}


def build_messages(request: dict, window: WorkingWindow) -> list[dict[str, str]]:
    system = SYSTEM_PROMPT.format(
        day=request["day"],
        start=format_hhmm(window.start_minute),
        end=format_hhmm(window.end_minute),
    )

    def _section(rows: list[dict]) -> str:
        return json.dumps(rows, indent=2) if rows else "None"

    user = (
        f"Existing fixed events (cannot be moved):\n{_section(request['fixed'])}\n\n"
        f"Already scheduled tasks:\n{_section(request['scheduled'])}\n\n"
        f"Unscheduled tasks (need scheduling):\n{_section(request['unscheduled'])}\n\n"
        "Please suggest an optimal schedule for the unscheduled tasks."
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def parse_response(text: str | None) -> OptimizationResult | None:
    """Parse the model's reply, or return None if it is not a usable envelope."""
    if not text or not text.strip():
        logger.warning("Empty suggestion response")
        return None
    body = text.strip()
    m = _FENCE_RE.match(body)
    if m:
        body = m.group(1)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        logger.warning("Suggestion response is not JSON: %s", exc)
        return None
    if not isinstance(data, dict) or not isinstance(data.get("schedule"), list):
        logger.warning("Suggestion response has no 'schedule' list")
        return None
    reasoning = data.get("reasoning")
    return OptimizationResult(
        schedule=data["schedule"],
        reasoning=reasoning if isinstance(reasoning, str) else "",
    )


def _resolve_model(config: PlannerConfig) -> str:
    return os.environ.get("TAKT_MODEL") or config.ai_model


class Suggester:
    """Asks the configured model for a placement plan."""

    def __init__(self, config: PlannerConfig | None = None):
        self.config = config or PlannerConfig()
        self.model = _resolve_model(self.config)

    async def complete(self, messages: list[dict[str, str]]) -> str:
        import litellm

        litellm.drop_params = True
        logger.info("LLM call: model=%s, msgs=%d", self.model, len(messages))
        response = await litellm.acompletion(
            model=self.model,
            messages=messages,
            temperature=self.config.ai_temperature,
        )
        content = response.choices[0].message.content or ""
        logger.info("LLM response: %d chars", len(content))
        return content

    async def suggest(self, request: dict) -> OptimizationResult | None:
        """Return a parsed result, or None when no suggestion could be produced."""
        messages = build_messages(request, self.config.window)
        try:
            text = await self.complete(messages)
        except Exception as exc:
            logger.warning("Suggestion request failed: %s", exc)
            return None
        return parse_response(text)
