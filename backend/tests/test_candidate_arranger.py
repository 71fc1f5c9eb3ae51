import math

import pytest

from modules.planning.candidate_arranger import (
    arrange_candidates,
    dedupe_by_place_id,
    popularity_score,
    stay_minutes_for,
    stop_from_place,
)
from modules.planning.reconciliation import ReconciliationEngine


def place(pid, name, types, rating, count, lat=25.04, lng=121.53):
    return {
        "place_id": pid,
        "name": name,
        "types": list(types),
        "rating": rating,
        "user_ratings_total": count,
        "geometry": {"location": {"lat": lat, "lng": lng}},
    }


CANDIDATES = [
    place("A", "Palace Museum", ["museum"], 4.8, 1000),
    place("B", "Fika Fika", ["cafe"], 4.0, 50),
    place("C", "Din Tai Fung", ["restaurant"], 4.5, 500),
    place("D", "Small Mall", ["shopping_mall"], 3.0, 10),
]


def test_popularity_score():
    assert popularity_score({"rating": 4.5, "user_ratings_total": 100}) == pytest.approx(
        4.5 * math.log1p(100)
    )
    assert popularity_score({}) == 0.0


def test_dedupe_keeps_first_and_drops_missing_ids():
    places = [{"place_id": "x", "name": "first"}, {"place_id": "x", "name": "dup"},
              {"name": "no id"}, {"id": "y", "name": "other"}]
    assert [p["name"] for p in dedupe_by_place_id(places)] == ["first", "other"]


@pytest.mark.parametrize("tags, minutes", [
    (["museum"], 90),
    (["shopping_mall", "store"], 80),
    (["cafe"], 40),
    (["restaurant"], 60),
    (["lodging"], 60),
    ([], 60),
])
def test_stay_minutes_for(tags, minutes):
    assert stay_minutes_for(tags) == minutes


def test_stop_from_place_reads_geometry_and_does_not_modify_input():
    record = place("A", "Palace Museum", ["museum"], 4.8, 1000, lat=25.1024, lng=121.5485)
    snapshot = dict(record)
    stop = stop_from_place(record)
    assert stop.id == "A"
    assert stop.coordinate.latitude == 25.1024
    assert stop.duration_minutes == 90
    assert record == snapshot


def test_arrange_candidates_ranks_splits_orders_and_lays_out():
    plan = arrange_candidates(CANDIDATES, days=2, per_day=2, day_start="09:00",
                              engine=ReconciliationEngine(buffer_minutes=15))

    assert [d.day_number for d in plan.day_plans] == [1, 2]
    day1, day2 = plan.day_plans
    # highest popularity first: A, C on day 1; B, D on day 2; each day by category
    assert [s.id for s in day1.stops] == ["A", "C"]
    assert [(s.start_time, s.end_time) for s in day1.stops] == [("09:00", "10:30"), ("10:45", "11:45")]
    assert [s.id for s in day2.stops] == ["B", "D"]
    assert [(s.start_time, s.end_time) for s in day2.stops] == [("09:00", "09:40"), ("09:55", "11:15")]


def test_arrange_candidates_with_more_days_than_places():
    plan = arrange_candidates(CANDIDATES[:1], days=3, per_day=2)
    assert len(plan.day_plans) == 3
    assert [len(d.stops) for d in plan.day_plans] == [1, 0, 0]


def test_arrange_candidates_drops_records_without_a_name():
    nameless = place("X", "", ["museum"], 5.0, 100000)
    plan = arrange_candidates([nameless, *CANDIDATES], days=1, per_day=2, day_start="09:00",
                              engine=ReconciliationEngine(buffer_minutes=15))
    assert [s.id for s in plan.day_plans[0].stops] == ["A", "C"]
