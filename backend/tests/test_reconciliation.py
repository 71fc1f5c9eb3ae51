from unittest.mock import MagicMock

import pytest

from modules.planning.reconciliation import (
    WARN_CONFIRM_OPEN,
    WARN_LIKELY_CLOSED,
    WARN_NIGHT_MARKET_EARLY,
    ReconciliationEngine,
    situational_warning,
)
from schemas.itinerary import DayPlan, Leg, Plan
from tests.conftest import build_stop


def times(stops):
    return [(s.start_time, s.end_time) for s in stops]


@pytest.fixture
def engine():
    return ReconciliationEngine(buffer_minutes=15, safety_margin_minutes=10)


def test_breakfast_then_museum_gets_buffer(engine):
    breakfast = build_stop("b", "Breakfast", "09:00", "10:00")
    museum = build_stop("m", "Museum", "10:00", "11:30", ("museum",))

    result = engine.reschedule([breakfast, museum])

    assert times(result) == [("09:00", "10:00"), ("10:15", "11:45")]


def test_stops_are_sorted_by_start_time(engine):
    late = build_stop("late", "Dinner", "18:00", "19:00")
    early = build_stop("early", "Temple", "08:00", "09:00")
    result = engine.reschedule([late, early])
    assert [s.id for s in result] == ["early", "late"]


def test_delay_propagates_and_durations_are_kept(engine):
    stops = [
        build_stop("a", "A", "09:00", "11:00"),
        build_stop("b", "B", "10:00", "10:45"),
        build_stop("c", "C", "11:00", "12:30"),
        build_stop("d", "D", "16:00", "17:00"),
    ]
    before = {s.id: (s.start_minutes, s.duration_minutes) for s in stops}

    result = engine.reschedule(stops)

    assert times(result) == [
        ("09:00", "11:00"),
        ("11:15", "12:00"),
        ("12:15", "13:45"),
        ("16:00", "17:00"),
    ]
    for stop in result:
        start, duration = before[stop.id]
        assert stop.start_minutes >= start
        assert stop.duration_minutes == duration


def test_reschedule_is_idempotent(engine):
    stops = [
        build_stop("a", "A", "09:00", "10:30"),
        build_stop("b", "B", "10:00", "11:00"),
        build_stop("c", "C", "10:30", "12:00"),
    ]
    once = times(engine.reschedule(stops))
    twice = times(engine.reschedule(stops))
    assert once == twice


def test_shift_disabled_keeps_times_but_sets_warnings(engine):
    stops = [
        build_stop("nm", "Raohe Night Market", "15:00", "16:00"),
        build_stop("m", "Museum", "15:30", "16:30", ("museum",)),
    ]
    result = engine.reschedule(stops, enable_time_shift=False)
    assert times(result) == [("15:00", "16:00"), ("15:30", "16:30")]
    assert result[0].warning == WARN_NIGHT_MARKET_EARLY


def test_manual_stop_pushes_successor_by_default(engine):
    stops = [
        build_stop("mine", "My pick", "09:00", "10:00", manual=True),
        build_stop("next", "Museum", "09:30", "10:30"),
    ]
    result = engine.reschedule(stops)
    assert times(result)[1] == ("10:15", "11:15")


def test_manual_stop_can_opt_out_of_pushing(engine):
    stops = [
        build_stop("mine", "My pick", "09:00", "10:00", manual=True),
        build_stop("next", "Museum", "09:30", "10:30"),
    ]
    result = engine.reschedule(stops, manual_triggers_shift=False)
    assert times(result)[1] == ("09:30", "10:30")


def assert_ordered_without_overlap(stops, buffer=15):
    starts = [s.start_minutes for s in stops]
    assert starts == sorted(starts)
    for current, nxt in zip(stops, stops[1:]):
        assert nxt.start_minutes >= current.end_minutes + buffer


def test_shift_past_midnight_keeps_counting_hours(engine):
    stops = [
        build_stop("a", "Late show", "23:00", "23:50"),
        build_stop("b", "Supper", "23:30", "00:30"),
        build_stop("c", "Dessert", "23:45", "23:55"),
    ]

    once = engine.reschedule(stops)

    assert times(once) == [("23:00", "23:50"), ("24:05", "25:05"), ("25:20", "25:30")]
    assert [s.duration_minutes for s in once] == [50, 60, 10]
    assert_ordered_without_overlap(once)

    twice = engine.reschedule(once)
    assert [s.id for s in twice] == ["a", "b", "c"]
    assert times(twice) == times(once)


def test_malformed_times_read_as_midnight(engine):
    stops = [build_stop("a", "A", "soon", "later"), build_stop("b", "B", "09:00", "10:00")]
    result = engine.reschedule(stops)
    assert [s.id for s in result] == ["a", "b"]
    assert times(result)[1] == ("09:00", "10:00")


# ── Warnings ───────────────────────────────────────────────────────────────────

def test_situational_warnings():
    assert situational_warning(build_stop("a", "Shilin Night Market", "16:00", "18:00")) \
        == WARN_NIGHT_MARKET_EARLY
    assert situational_warning(build_stop("a", "Shilin Night Market", "18:00", "21:00")) is None
    assert situational_warning(build_stop("a", "Bakery", "14:30", "15:00", ("bakery",))) \
        == WARN_LIKELY_CLOSED
    assert situational_warning(build_stop("a", "Museum", "20:00", "22:30", ("museum",))) \
        == WARN_CONFIRM_OPEN
    assert situational_warning(build_stop("a", "Bar", "21:00", "23:30", ("bar",))) is None


def test_several_warnings_are_joined():
    bakery = build_stop("a", "Bakery", "21:30", "22:30", ("bakery",))
    assert situational_warning(bakery) == f"{WARN_LIKELY_CLOSED}; {WARN_CONFIRM_OPEN}"


def test_last_stop_warning_is_left_alone(engine):
    first = build_stop("a", "Museum", "09:00", "10:00", ("museum",))
    first.warning = "stale"
    last = build_stop("b", "Bakery", "15:00", "16:00", ("bakery",))
    last.warning = "kept"
    result = engine.reschedule([first, last])
    assert result[0].warning is None
    assert result[1].warning == "kept"


# ── Live travel times ──────────────────────────────────────────────────────────

def test_live_leg_minutes_plus_margin_replace_fixed_buffer():
    tool = MagicMock()
    tool.get_leg_times.return_value = [Leg(from_index=0, to_index=1, minutes=30, km=12.0)]
    engine = ReconciliationEngine(travel_time_tool=tool, safety_margin_minutes=10, mode="transit")

    day = engine.reschedule_day(DayPlan(stops=[
        build_stop("b", "Breakfast", "09:00", "10:00"),
        build_stop("m", "Museum", "10:00", "11:30"),
    ]))

    assert times(day.stops)[1] == ("10:40", "12:10")
    assert day.legs[0].minutes == 30
    assert tool.get_leg_times.call_args.args[1] == "transit"


def test_leg_count_mismatch_falls_back_to_fixed_buffer():
    tool = MagicMock()
    tool.get_leg_times.return_value = []
    engine = ReconciliationEngine(travel_time_tool=tool, buffer_minutes=15)
    day = engine.reschedule_day(DayPlan(stops=[
        build_stop("b", "Breakfast", "09:00", "10:00"),
        build_stop("m", "Museum", "10:00", "11:30"),
    ]))
    assert times(day.stops)[1] == ("10:15", "11:45")
    assert day.legs == []


# ── Day / plan helpers ─────────────────────────────────────────────────────────

def test_add_stop_reconciles_day(engine):
    day = DayPlan(stops=[build_stop("a", "Temple", "09:00", "10:00")])
    engine.add_stop(day, build_stop("x", "Tea house", "09:30", "10:30", manual=True))
    assert [s.id for s in day.stops] == ["a", "x"]
    assert times(day.stops)[1] == ("10:15", "11:15")


def test_remove_stop_never_moves_remaining_stops(engine):
    day = DayPlan(stops=[
        build_stop("a", "A", "09:00", "10:00"),
        build_stop("b", "B", "10:15", "11:00"),
        build_stop("c", "C", "11:15", "12:00"),
    ])
    engine.remove_stop(day, "b")
    assert [s.id for s in day.stops] == ["a", "c"]
    assert times(day.stops) == [("09:00", "10:00"), ("11:15", "12:00")]


def test_reschedule_plan_handles_every_day(engine):
    plan = Plan(day_plans=[
        DayPlan(day_number=1, stops=[build_stop("a", "A", "09:00", "10:00"),
                                     build_stop("b", "B", "10:00", "11:00")]),
        DayPlan(day_number=2, stops=[build_stop("c", "C", "09:00", "10:00"),
                                     build_stop("d", "D", "09:30", "10:00")]),
    ])
    engine.reschedule_plan(plan)
    assert times(plan.day_plans[0].stops)[1] == ("10:15", "11:15")
    assert times(plan.day_plans[1].stops)[1] == ("10:15", "10:45")


# ── Pinned manual stops ────────────────────────────────────────────────────────

def test_manual_stop_is_overwritten_by_default(engine):
    stops = [
        build_stop("a", "Temple", "09:00", "10:00"),
        build_stop("mine", "My pick", "09:30", "10:30", manual=True),
    ]
    assert times(engine.reschedule(stops))[1] == ("10:15", "11:15")


def test_pinned_manual_stop_keeps_its_time_after_flexible_stop(engine):
    stops = [
        build_stop("a", "Temple", "09:00", "10:00"),
        build_stop("mine", "My pick", "09:30", "10:30", manual=True),
    ]
    result = engine.reschedule(stops, protect_manual_stops=True)
    assert [s.id for s in result] == ["a", "mine"]
    assert times(result) == [("09:00", "10:00"), ("09:30", "10:30")]


def test_pinned_manual_stop_still_clears_earlier_manual_stop(engine):
    stops = [
        build_stop("m1", "Lunch booking", "12:00", "13:00", manual=True),
        build_stop("m2", "Tea booking", "12:30", "13:30", manual=True),
    ]
    result = engine.reschedule(stops, protect_manual_stops=True)
    assert times(result) == [("12:00", "13:00"), ("13:15", "14:15")]


def test_flexible_stop_flows_around_pinned_manual_stop(engine):
    stops = [
        build_stop("a", "Temple", "09:00", "10:00"),
        build_stop("b", "Museum", "09:30", "10:30", ("museum",)),
        build_stop("mine", "My pick", "10:00", "11:00", manual=True),
    ]

    once = engine.reschedule(stops, protect_manual_stops=True)

    assert [s.id for s in once] == ["a", "mine", "b"]
    assert times(once) == [("09:00", "10:00"), ("10:00", "11:00"), ("11:15", "12:15")]
    starts = [s.start_minutes for s in once]
    assert starts == sorted(starts)

    twice = engine.reschedule(once, protect_manual_stops=True)
    assert [s.id for s in twice] == ["a", "mine", "b"]
    assert times(twice) == times(once)


def test_reordered_day_gets_legs_for_final_order():
    tool = MagicMock()
    tool.get_leg_times.side_effect = lambda stops, mode: [
        Leg(from_index=i, to_index=i + 1, minutes=5, km=1.0) for i in range(len(stops) - 1)
    ]
    engine = ReconciliationEngine(travel_time_tool=tool, safety_margin_minutes=10)

    day = engine.reschedule_day(DayPlan(stops=[
        build_stop("a", "Temple", "09:00", "10:00"),
        build_stop("b", "Museum", "09:30", "10:30", ("museum",)),
        build_stop("mine", "My pick", "10:00", "11:00", manual=True),
    ]), protect_manual_stops=True)

    assert [s.id for s in day.stops] == ["a", "mine", "b"]
    assert [s.id for s in tool.get_leg_times.call_args.args[0]] == ["a", "mine", "b"]
    assert len(day.legs) == 2
