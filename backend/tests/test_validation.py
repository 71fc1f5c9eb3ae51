from modules.validation import (
    filter_valid,
    validate_coordinate,
    validate_day_number,
    validate_plan,
    validate_stop,
)
from tests.conftest import build_stop


def good_stop(**overrides):
    record = {
        "id": "s1",
        "name": "Taipei 101",
        "start_time": "09:00",
        "end_time": "10:00",
        "category_tags": ["tourist_attraction"],
        "coordinate": {"latitude": 25.034, "longitude": 121.5645},
    }
    record.update(overrides)
    return record


def test_valid_stop_passes():
    result = validate_stop(good_stop())
    assert result.valid
    assert bool(result) is True


def test_stop_rules():
    assert not validate_stop(good_stop(name="  "))
    assert not validate_stop(good_stop(id=None))
    assert not validate_stop(good_stop(start_time="9:00"))
    assert not validate_stop(good_stop(end_time="48:00"))
    assert not validate_stop(good_stop(end_time="09:00"))
    assert not validate_stop(good_stop(category_tags="museum"))
    assert not validate_stop(good_stop(coordinate={"latitude": "north", "longitude": 1}))


def test_overnight_stop_is_valid():
    assert validate_stop(good_stop(start_time="23:00", end_time="01:00")).valid
    assert validate_stop(good_stop(start_time="24:05", end_time="25:05")).valid


def test_unusable_coordinate_does_not_reject_stop():
    assert validate_stop(good_stop(coordinate={"latitude": 0, "longitude": 0})).valid
    assert validate_stop(good_stop(coordinate=None)).valid


def test_coordinate_rules():
    assert validate_coordinate({"lat": 25.0, "lng": 121.5}).valid
    assert not validate_coordinate({"latitude": 0.0, "longitude": 0.0}).valid
    assert not validate_coordinate({"latitude": 95, "longitude": 0}).valid
    assert not validate_coordinate(None).valid


def test_day_number_must_be_positive():
    assert validate_day_number({"day_number": 1}).valid
    assert not validate_day_number({"day_number": 0}).valid
    assert not validate_day_number({"day_number": "first"}).valid


def test_validate_plan_prefixes_errors_with_location():
    plan = {"day_plans": [
        {"day_number": 1, "stops": [good_stop()]},
        {"day_number": 2, "stops": [good_stop(), good_stop(start_time="late")]},
    ]}
    result = validate_plan(plan)
    assert not result.valid
    assert len(result.errors) == 1
    assert result.errors[0].startswith("day_plans[1].stops[1]: start_time=")
    assert not validate_plan({"day_plans": "nope"}).valid


def test_filter_valid_accepts_dataclasses_and_dicts():
    stops = [build_stop("a", "A", "09:00", "10:00"), build_stop("b", "B", "10:00", "10:00")]
    assert [s.id for s in filter_valid(stops, validate_stop)] == ["a"]
    assert len(filter_valid([good_stop(), good_stop(name="")], validate_stop, log=False)) == 1
