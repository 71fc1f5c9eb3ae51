"""Shared fixtures for the backend test-suite (run from the repo root: pytest)."""
from __future__ import annotations

from typing import Optional

import pytest

from schemas.itinerary import Coordinate, Stop

# A handful of real Taipei locations
TAIPEI_101       = Coordinate(25.0340, 121.5645)
MAIN_STATION     = Coordinate(25.0478, 121.5170)
PALACE_MUSEUM    = Coordinate(25.1024, 121.5485)
SHILIN_MARKET    = Coordinate(25.0880, 121.5241)
LONGSHAN_TEMPLE  = Coordinate(25.0372, 121.4999)


def build_stop(
    stop_id: str,
    name: str,
    start: str = "09:00",
    end: str = "10:00",
    tags: tuple[str, ...] = (),
    coordinate: Optional[Coordinate] = None,
    manual: bool = False,
) -> Stop:
    return Stop(
        id=stop_id,
        name=name,
        start_time=start,
        end_time=end,
        category_tags=list(tags),
        coordinate=coordinate,
        is_manual=manual,
    )


@pytest.fixture
def make_stop():
    return build_stop


@pytest.fixture
def taipei_stops() -> list[Stop]:
    return [
        build_stop("s1", "Taipei 101", "09:00", "10:00", ("tourist_attraction",), TAIPEI_101),
        build_stop("s2", "Main Station", "10:30", "11:00", ("transit_station",), MAIN_STATION),
        build_stop("s3", "National Palace Museum", "11:30", "13:00", ("museum",), PALACE_MUSEUM),
        build_stop("s4", "Shilin Night Market", "18:00", "20:00", ("night_market",), SHILIN_MARKET),
        build_stop("s5", "Longshan Temple", "20:30", "21:00", ("place_of_worship",), LONGSHAN_TEMPLE),
    ]
