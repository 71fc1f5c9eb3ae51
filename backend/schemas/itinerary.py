"""
schemas/itinerary.py
--------------------
Dataclass definitions for itinerary structures: stops, day plans, plans,
stored versions and the adopted snapshot.

Times are wall-clock "HH:MM" strings; see modules/tool_usage/time_tool.py
for the permissive parser used everywhere a time is read.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional

from modules.tool_usage.time_tool import parse_hhmm, MINUTES_PER_DAY


@dataclass
class Coordinate:
    latitude: float
    longitude: float

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Coordinate"]:
        """
        Accepts {latitude, longitude} or {lat, lng}; returns None when either
        component is absent or not numeric.
        """
        if not isinstance(data, dict):
            return None
        lat = data.get("latitude", data.get("lat"))
        lng = data.get("longitude", data.get("lng"))
        try:
            return cls(float(lat), float(lng))
        except (TypeError, ValueError):
            return None


@dataclass
class Stop:
    """
    One scheduled place visit inside a day.

    duration_minutes is derived from the time window; an end earlier than
    the start is read as rolling past midnight.
    """
    id: str
    name: str
    start_time: str = "09:00"
    end_time: str = "10:00"
    address: str = ""
    category_tags: list[str] = field(default_factory=list)
    coordinate: Optional[Coordinate] = None
    is_manual: bool = False
    warning: Optional[str] = None

    def __post_init__(self) -> None:
        # ordered set semantics
        seen: set[str] = set()
        tags: list[str] = []
        for tag in self.category_tags:
            if tag and tag not in seen:
                seen.add(tag)
                tags.append(tag)
        self.category_tags = tags

    @property
    def start_minutes(self) -> int:
        return parse_hhmm(self.start_time)

    @property
    def end_minutes(self) -> int:
        """End in minutes from the start day's midnight (may exceed 1440)."""
        return self.start_minutes + self.duration_minutes

    @property
    def duration_minutes(self) -> int:
        span = parse_hhmm(self.end_time) - self.start_minutes
        if span < 0:
            span += MINUTES_PER_DAY
        return span

    def to_dict(self) -> dict:
        return {
            "id":               self.id,
            "name":             self.name,
            "address":          self.address,
            "category_tags":    list(self.category_tags),
            "coordinate":       self.coordinate.to_dict() if self.coordinate else None,
            "start_time":       self.start_time,
            "end_time":         self.end_time,
            "duration_minutes": self.duration_minutes,
            "is_manual":        self.is_manual,
            "warning":          self.warning,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Stop":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            address=str(data.get("address") or ""),
            category_tags=list(data.get("category_tags") or data.get("types") or []),
            coordinate=Coordinate.from_dict(data.get("coordinate")),
            start_time=str(data.get("start_time") or "00:00"),
            end_time=str(data.get("end_time") or "00:00"),
            is_manual=bool(data.get("is_manual", False)),
            warning=data.get("warning"),
        )


@dataclass
class Leg:
    """Travel segment between two stops (indices into the day's stop list)."""
    from_index: int
    to_index: int
    minutes: int
    km: float

    def to_dict(self) -> dict:
        return {
            "from_index": self.from_index,
            "to_index":   self.to_index,
            "minutes":    self.minutes,
            "km":         self.km,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Leg":
        return cls(
            from_index=int(data["from_index"]),
            to_index=int(data["to_index"]),
            minutes=int(data["minutes"]),
            km=float(data["km"]),
        )


@dataclass
class DayPlan:
    """One day's scheduled stops."""
    day_number: int = 1
    stops: list[Stop] = field(default_factory=list)
    legs: list[Leg] = field(default_factory=list)
    theme: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "day_number": self.day_number,
            "theme":      self.theme,
            "stops":      [s.to_dict() for s in self.stops],
            "legs":       [leg.to_dict() for leg in self.legs],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DayPlan":
        return cls(
            day_number=int(data.get("day_number", 1)),
            theme=data.get("theme"),
            stops=[Stop.from_dict(s) for s in data.get("stops") or []],
            legs=[Leg.from_dict(leg) for leg in data.get("legs") or []],
        )


@dataclass
class Plan:
    day_plans: list[DayPlan] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"day_plans": [d.to_dict() for d in self.day_plans]}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Plan":
        if not data:
            return cls()
        return cls(day_plans=[DayPlan.from_dict(d) for d in data.get("day_plans") or []])


@dataclass
class PlanMeta:
    """Trip context stored next to every version."""
    region: Optional[str] = None
    days: int = 1
    tags: list[str] = field(default_factory=list)
    adopted_index: int = 0

    def to_dict(self) -> dict:
        return {
            "region":        self.region,
            "days":          self.days,
            "tags":          list(self.tags),
            "adopted_index": self.adopted_index,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "PlanMeta":
        data = data or {}
        return cls(
            region=data.get("region"),
            days=int(data.get("days") or 1),
            tags=list(data.get("tags") or []),
            adopted_index=int(data.get("adopted_index") or 0),
        )


@dataclass(frozen=True)
class PlanVersion:
    """Immutable numbered snapshot of a plan for one trip."""
    trip_id: str
    version: int
    plan: Plan
    meta: PlanMeta
    created_at: str = ""  # ISO-8601 timestamp

    def to_dict(self) -> dict:
        return {
            "trip_id":    self.trip_id,
            "version":    self.version,
            "plan":       self.plan.to_dict(),
            "meta":       self.meta.to_dict(),
            "created_at": self.created_at,
        }


@dataclass
class AdoptedSnapshot:
    """The one version currently treated as the trip's itinerary."""
    trip_id: str
    version: int
    plan: Plan
    meta: PlanMeta
    adopted_at: str = ""

    def to_dict(self) -> dict:
        return {
            "trip_id":    self.trip_id,
            "version":    self.version,
            "plan":       self.plan.to_dict(),
            "meta":       self.meta.to_dict(),
            "adopted_at": self.adopted_at,
        }


@dataclass
class TripRecord:
    """Trip-level bookkeeping kept alongside the version sequence."""
    trip_id: str
    group_name: Optional[str] = None
    region: Optional[str] = None
    days: int = 1
    tags: list[str] = field(default_factory=list)
    last_saved_version: int = 0
    adopted_version: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            "trip_id":            self.trip_id,
            "group_name":         self.group_name,
            "region":             self.region,
            "days":               self.days,
            "tags":               list(self.tags),
            "last_saved_version": self.last_saved_version,
            "adopted_version":    self.adopted_version,
            "created_at":         self.created_at,
            "updated_at":         self.updated_at,
        }
