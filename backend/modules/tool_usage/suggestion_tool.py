"""
modules/tool_usage/suggestion_tool.py
--------------------------------------
Generative day-plan suggestions and their conversion into a Plan.

The LLM is asked for a JSON array shaped like:

    [{"day": 1, "theme": "...",
      "places": [{"name": "...", "type": "...", "time": "10:00 - 11:30",
                  "reason": "..."}]}]

generate() returns that list, or None on any failure (missing key, network,
unparseable output). plan_from_suggestions() turns it into a Plan; a
missing or malformed "time" becomes 09:00–10:00.
"""

from __future__ import annotations

import json
import logging
import random
import re
from typing import Any, Callable, Optional

from modules.tool_usage.time_tool import split_time_range
from schemas.itinerary import DayPlan, Plan, Stop

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_PROMPT = """
You are planning a {days}-day group trip in {region}.
Travel style: {style}
(variation seed: {seed})

RULES:
- Each day stays inside one compact area; legs between stops under 20 minutes.
- Different days cover different areas.
- Include local specialties at normal meal times.
- Night markets only after 18:00.
- Use real place names that can be found on Google Maps.

OUTPUT:
Return ONLY a JSON array. No markdown. No explanations.
Every place object MUST have exactly these fields:
  "name", "type", "time" (e.g. "10:00 - 11:30"), "reason"

[
  {{"day": 1, "theme": "",
    "places": [{{"name": "", "type": "", "time": "", "reason": ""}}]}}
]
"""


def _default_llm(prompt: str) -> str:
    from llm import call_llm
    return call_llm(prompt)


def parse_suggestion_json(text: Optional[str]) -> Optional[list[dict]]:
    """Strip markdown fences and parse; None unless the result is a non-empty list."""
    if not text:
        return None
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    try:
        data = json.loads(cleaned)
    except ValueError as exc:
        logger.warning("suggestion output is not valid JSON: %s", exc)
        return None
    if not isinstance(data, list) or not data:
        return None
    return [d for d in data if isinstance(d, dict)] or None


class SuggestionTool:
    """Thin adapter around the LLM planner; never raises."""

    def __init__(self, llm_call: Optional[Callable[[str], str]] = None) -> None:
        self._llm_call = llm_call or _default_llm

    def generate(self, region: str, days: int, style: str) -> Optional[list[dict]]:
        prompt = _PROMPT.format(
            region=region,
            days=days,
            style=style or "popular sightseeing",
            seed=random.randint(0, 9999),
        )
        logger.info("requesting %d-day suggestion for %s (%s)", days, region, style)
        try:
            text = self._llm_call(prompt)
        except Exception as exc:  # noqa: BLE001
            logger.error("suggestion source failed: %s", exc)
            return None
        return parse_suggestion_json(text)


def plan_from_suggestions(raw: Optional[list[dict]], id_prefix: str = "ai") -> Plan:
    """Build a Plan from suggestion-source output (stops sorted by start time)."""
    plan = Plan()
    for index, entry in enumerate(raw or []):
        day_number = _as_int(entry.get("day"), index + 1)
        stops: list[Stop] = []
        for p_index, place in enumerate(entry.get("places") or []):
            if not isinstance(place, dict) or not place.get("name"):
                continue
            start, end = split_time_range(place.get("time"))
            place_type = str(place.get("type") or "").strip()
            stops.append(Stop(
                id=f"{id_prefix}-{day_number}-{p_index}",
                name=str(place["name"]).strip(),
                address=str(place.get("reason") or ""),
                category_tags=[place_type] if place_type else [],
                start_time=start,
                end_time=end,
            ))
        stops.sort(key=lambda s: s.start_minutes)
        plan.day_plans.append(DayPlan(day_number=day_number, stops=stops, theme=entry.get("theme")))
    return plan


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
