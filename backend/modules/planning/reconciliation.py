"""
modules/planning/reconciliation.py
-----------------------------------
Time reconciliation for a day's stops.

reschedule() contract:
  1. Stable sort by start time.
  2. With time shift enabled, walk left → right:
       arrival = current.end + buffer
       if arrival > next.start: next moves to arrival, duration preserved.
     buffer is TRAVEL_BUFFER_MINUTES, or live leg minutes +
     TRAVEL_SAFETY_MARGIN_MINUTES when a TravelTimeTool is attached.
  3. Single pass. By default a later manual stop pinned earlier than a
     propagated delay is overwritten: later starts win unless the caller
     turns shifting off (enable_time_shift=False), stops manual entries
     from pushing their successors (manual_triggers_shift=False), or pins
     manual stops (protect_manual_stops=True). Pinned manual stops only
     move to clear an earlier manual stop; other stops flow around them.
  4. Every stop except the last gets its situational warning recomputed
     (advisory text only; times are never touched by a warning):
       - night-market-like stop starting before 17:00
       - breakfast/bakery-like stop starting at or after 14:00
       - non-nightlife stop ending at or after 22:00

Times are minutes from the day's midnight and are not wrapped: a stop
pushed past midnight reads "24:05". The result is ordered by start and a
second call leaves it unchanged. Stops never move earlier than their own
start. Malformed times read as 00:00.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import config
from modules.planning.ordering import is_breakfast_like, is_night_market, is_nightlife
from modules.tool_usage.time_tool import format_hhmm
from modules.tool_usage.travel_time_tool import TravelTimeTool
from schemas.itinerary import DayPlan, Leg, Plan, Stop

logger = logging.getLogger(__name__)

NIGHT_MARKET_OPENS_MIN: int = 17 * 60    # 17:00
BREAKFAST_CLOSES_MIN:   int = 14 * 60    # 14:00
LATE_CLOSING_MIN:       int = 22 * 60    # 22:00

WARN_NIGHT_MARKET_EARLY = "too early for night-market hours"
WARN_LIKELY_CLOSED      = "likely closed"
WARN_CONFIRM_OPEN       = "confirm still open"


def situational_warning(stop: Stop) -> Optional[str]:
    """Advisory text for an implausible placement, or None."""
    warnings: list[str] = []
    if is_night_market(stop) and stop.start_minutes < NIGHT_MARKET_OPENS_MIN:
        warnings.append(WARN_NIGHT_MARKET_EARLY)
    if is_breakfast_like(stop) and stop.start_minutes >= BREAKFAST_CLOSES_MIN:
        warnings.append(WARN_LIKELY_CLOSED)
    if not is_nightlife(stop) and stop.end_minutes >= LATE_CLOSING_MIN:
        warnings.append(WARN_CONFIRM_OPEN)
    return "; ".join(warnings) if warnings else None


class ReconciliationEngine:
    """
    Repairs overlapping / impossible stop times by shifting later stops.

    Args:
        travel_time_tool:  optional live leg estimates; without it the fixed
                           buffer is used between every pair of stops.
        buffer_minutes:    fixed buffer (default config.TRAVEL_BUFFER_MINUTES).
        safety_margin_minutes: added to live leg minutes.
        mode:              travel mode for live legs.
    """

    def __init__(
        self,
        travel_time_tool: Optional[TravelTimeTool] = None,
        buffer_minutes: Optional[int] = None,
        safety_margin_minutes: Optional[int] = None,
        mode: Optional[str] = None,
    ) -> None:
        self.travel_time_tool = travel_time_tool
        self.buffer_minutes = (
            config.TRAVEL_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes
        )
        self.safety_margin_minutes = (
            config.TRAVEL_SAFETY_MARGIN_MINUTES
            if safety_margin_minutes is None else safety_margin_minutes
        )
        self.mode = mode or config.DEFAULT_TRAVEL_MODE

    # ── Public API ────────────────────────────────────────────────────────────

    def reschedule(
        self,
        stops: Sequence[Stop],
        enable_time_shift: bool = True,
        manual_triggers_shift: bool = True,
        protect_manual_stops: bool = False,
    ) -> list[Stop]:
        ordered, _ = self._reconcile(
            stops, enable_time_shift, manual_triggers_shift, protect_manual_stops,
        )
        return ordered

    def reschedule_day(
        self,
        day: DayPlan,
        enable_time_shift: bool = True,
        manual_triggers_shift: bool = True,
        protect_manual_stops: bool = False,
    ) -> DayPlan:
        """Reconcile *day* in place and attach its legs (when a tool is attached)."""
        day.stops, day.legs = self._reconcile(
            day.stops, enable_time_shift, manual_triggers_shift, protect_manual_stops,
        )
        return day

    def reschedule_plan(self, plan: Plan, enable_time_shift: bool = True) -> Plan:
        for day in plan.day_plans:
            self.reschedule_day(day, enable_time_shift=enable_time_shift)
        return plan

    def add_stop(self, day: DayPlan, stop: Stop, enable_time_shift: bool = True) -> DayPlan:
        """Insert a stop (manual entry or accepted candidate) and reconcile."""
        day.stops = [*day.stops, stop]
        return self.reschedule_day(day, enable_time_shift=enable_time_shift)

    def remove_stop(self, day: DayPlan, stop_id: str) -> DayPlan:
        """
        Drop a stop. Remaining times are left as they are (removal never
        creates an overlap); legs are recomputed for the new neighbours.
        """
        day.stops = [s for s in day.stops if s.id != stop_id]
        return self.reschedule_day(day, enable_time_shift=False)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _reconcile(
        self,
        stops: Sequence[Stop],
        enable_time_shift: bool,
        manual_triggers_shift: bool,
        protect_manual_stops: bool,
    ) -> tuple[list[Stop], list[Leg]]:
        ordered = sorted(stops, key=lambda s: s.start_minutes)
        legs = self._live_legs(ordered)
        # keyed by object identity: stop ids are not guaranteed unique
        buffers = {
            (id(ordered[i]), id(ordered[i + 1])): leg.minutes + self.safety_margin_minutes
            for i, leg in enumerate(legs)
        }

        result = ordered
        if enable_time_shift and protect_manual_stops:
            pinned = [s for s in ordered if s.is_manual]
            flexible = [s for s in ordered if not s.is_manual]
            for current, nxt in zip(pinned, pinned[1:]):
                self._push(current, nxt, buffers, manual_triggers_shift)
            result = self._merge_around(pinned, flexible, buffers, manual_triggers_shift)
        elif enable_time_shift:
            for current, nxt in zip(ordered, ordered[1:]):
                self._push(current, nxt, buffers, manual_triggers_shift)

        for stop in result[:-1]:
            stop.warning = situational_warning(stop)

        if legs and [id(s) for s in result] != [id(s) for s in ordered]:
            legs = self._live_legs(result)
        return result, legs

    def _push(
        self,
        current: Stop,
        nxt: Stop,
        buffers: dict[tuple[int, int], int],
        manual_triggers_shift: bool,
    ) -> None:
        """Move *nxt* to current.end + buffer when it starts earlier than that."""
        if current.is_manual and not manual_triggers_shift:
            return
        buffer = buffers.get((id(current), id(nxt)), self.buffer_minutes)
        arrival = current.end_minutes + buffer
        if arrival <= nxt.start_minutes:
            return
        duration = nxt.duration_minutes
        logger.debug(
            "shifting %r from %s to %s (after %r, buffer %d min)",
            nxt.name, nxt.start_time, format_hhmm(arrival), current.name, buffer,
        )
        nxt.start_time = format_hhmm(arrival)
        nxt.end_time = format_hhmm(arrival + duration)

    def _merge_around(
        self,
        pinned: list[Stop],
        flexible: list[Stop],
        buffers: dict[tuple[int, int], int],
        manual_triggers_shift: bool,
    ) -> list[Stop]:
        """
        Lay flexible stops out in order, pushed by whatever precedes them,
        and slot each pinned stop in once a flexible stop would start at or
        after it. Pinned stops are never pushed by a flexible stop.
        """
        result: list[Stop] = []
        p = 0
        for stop in flexible:
            while True:
                if result:
                    self._push(result[-1], stop, buffers, manual_triggers_shift)
                if p < len(pinned) and pinned[p].start_minutes <= stop.start_minutes:
                    result.append(pinned[p])
                    p += 1
                    continue
                break
            result.append(stop)
        result.extend(pinned[p:])
        return result

    def _live_legs(self, ordered: list[Stop]) -> list[Leg]:
        if self.travel_time_tool is None or len(ordered) < 2:
            return []
        legs = self.travel_time_tool.get_leg_times(ordered, self.mode)
        if len(legs) != len(ordered) - 1:
            logger.warning(
                "expected %d legs, got %d; using fixed %d-minute buffer",
                len(ordered) - 1, len(legs), self.buffer_minutes,
            )
            return []
        return legs
