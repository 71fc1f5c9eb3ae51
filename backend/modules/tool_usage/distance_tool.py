"""
modules/tool_usage/distance_tool.py
-------------------------------------
Offline travel estimates using the Haversine formula with a per-mode speed.
No external HTTP calls are made.

Speeds (km/h, conservative urban assumptions):
  walking 4 · transit 18 · driving 28

A leg touching a missing/invalid coordinate gets a fixed placeholder
(DEFAULT_LEG_MINUTES / DEFAULT_LEG_KM); it is not a measurement.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Optional

from schemas.itinerary import Coordinate

# ---------------------------------------------------------------------------
# Pure maths
# ---------------------------------------------------------------------------

_EARTH_RADIUS_KM = 6371.0

MODE_SPEED_KMH: dict[str, float] = {
    "walking": 4.0,
    "transit": 18.0,
    "driving": 28.0,
}

DEFAULT_LEG_MINUTES: int = 12
DEFAULT_LEG_KM: float = 3.0


@dataclass(frozen=True)
class LegEstimate:
    minutes: int
    km: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points (Haversine formula) in km."""
    r = _EARTH_RADIUS_KM
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lam = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    )
    return 2 * r * math.asin(math.sqrt(a))


def is_valid_coordinate(coord: Optional[Coordinate]) -> bool:
    """
    False for None, non-finite or out-of-range values, and for (0, 0),
    which upstream data uses as a "not set" sentinel.
    """
    if coord is None:
        return False
    lat, lon = coord.latitude, coord.longitude
    if not (isinstance(lat, (int, float)) and isinstance(lon, (int, float))):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return False
    return not (lat == 0.0 and lon == 0.0)


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two coordinates in km."""
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def speed_for_mode(mode: Optional[str]) -> float:
    """Unknown modes are treated as driving."""
    return MODE_SPEED_KMH.get((mode or "driving").lower(), MODE_SPEED_KMH["driving"])


def estimate_leg(
    a: Optional[Coordinate],
    b: Optional[Coordinate],
    mode: Optional[str] = "driving",
) -> LegEstimate:
    """Local minutes/km estimate for one leg; minutes is always ≥ 1."""
    if not (is_valid_coordinate(a) and is_valid_coordinate(b)):
        return LegEstimate(minutes=DEFAULT_LEG_MINUTES, km=DEFAULT_LEG_KM)
    km = round(distance_km(a, b), 2)
    minutes = max(1, round(km / speed_for_mode(mode) * 60))
    return LegEstimate(minutes=minutes, km=km)
