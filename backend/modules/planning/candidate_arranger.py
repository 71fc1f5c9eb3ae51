"""
modules/planning/candidate_arranger.py
---------------------------------------
Lays out place-catalog candidates as a multi-day Plan when no generative
suggestion is available.

Steps:
  1. De-duplicate by place id; rank by popularity = rating × ln(1 + ratings).
     Records that do not make a valid stop (e.g. no name) are dropped.
  2. Split the ranked list into consecutive chunks of `per_day` stops.
  3. Order each day with the category heuristic.
  4. Lay stops end-to-end from the day start using a per-type stay length,
     then reconcile (warnings + travel buffers).

Catalog records are read-only here; the place dicts are never modified.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Sequence

import config
from modules.planning.ordering import optimize_order
from modules.planning.reconciliation import ReconciliationEngine
from modules.tool_usage.time_tool import format_hhmm, parse_hhmm
from modules.validation import filter_valid, validate_stop
from schemas.itinerary import Coordinate, DayPlan, Plan, Stop

DEFAULT_STAY_MINUTES: int = 60

# First matching tag decides the stay length
_STAY_BY_TAG: tuple[tuple[str, int], ...] = (
    ("museum",        90),
    ("shopping_mall", 80),
    ("cafe",          40),
    ("restaurant",    60),
)


def popularity_score(place: dict) -> float:
    rating = float(place.get("rating") or 0)
    count = float(place.get("user_ratings_total") or place.get("userRatingsTotal") or 0)
    return rating * math.log1p(max(count, 0.0))


def _place_id(place: dict) -> Optional[str]:
    value = place.get("place_id") or place.get("id")
    return str(value) if value else None


def dedupe_by_place_id(places: Sequence[dict]) -> list[dict]:
    """Keep the first record per id; records without an id are dropped."""
    seen: set[str] = set()
    out: list[dict] = []
    for place in places:
        pid = _place_id(place)
        if not pid or pid in seen:
            continue
        seen.add(pid)
        out.append(place)
    return out


def _tags_of(place: dict) -> list[str]:
    return list(place.get("category_tags") or place.get("types") or [])


def stay_minutes_for(tags: Sequence[str]) -> int:
    for tag, minutes in _STAY_BY_TAG:
        if tag in tags:
            return minutes
    return DEFAULT_STAY_MINUTES


def _coordinate_of(place: dict) -> Optional[Coordinate]:
    location = (place.get("geometry") or {}).get("location")
    return Coordinate.from_dict(place.get("coordinate") or location or place)


def stop_from_place(place: dict) -> Stop:
    """Unscheduled Stop for a catalog record (00:00 + stay length)."""
    tags = _tags_of(place)
    return Stop(
        id=_place_id(place) or "",
        name=str(place.get("name") or ""),
        address=str(place.get("address") or place.get("vicinity") or ""),
        category_tags=tags,
        coordinate=_coordinate_of(place),
        start_time="00:00",
        end_time=format_hhmm(stay_minutes_for(tags)),
    )


def arrange_candidates(
    candidates: Sequence[dict[str, Any]],
    days: int,
    per_day: Optional[int] = None,
    day_start: Optional[str] = None,
    engine: Optional[ReconciliationEngine] = None,
) -> Plan:
    per_day = per_day or config.STOPS_PER_DAY
    engine = engine or ReconciliationEngine()
    start_min = parse_hhmm(day_start or config.DAY_START_TIME)

    ranked = sorted(dedupe_by_place_id(candidates), key=popularity_score, reverse=True)
    stops = filter_valid([stop_from_place(p) for p in ranked], validate_stop)

    plan = Plan()
    for d in range(max(0, int(days))):
        ordered = optimize_order(stops[d * per_day:(d + 1) * per_day])
        cursor = start_min
        for stop in ordered:
            stay = stop.duration_minutes
            stop.start_time = format_hhmm(cursor)
            stop.end_time = format_hhmm(cursor + stay)
            cursor += stay + engine.buffer_minutes
        day = DayPlan(day_number=d + 1, stops=ordered)
        plan.day_plans.append(engine.reschedule_day(day))
    return plan
