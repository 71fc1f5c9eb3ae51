"""
modules/validation/ingestion_validator.py
------------------------------------------
Structural guards applied to stops and plans before they reach the
reconciliation engine or the plan store.

  Stop:
    ✓ Non-empty id and name
    ✓ start_time / end_time are "HH:MM" (00:00–47:59; hours past 23 are
      the small hours after a late shift, e.g. "24:05")
    ✓ end_time differs from start_time (an earlier end means past midnight)
    ✓ category_tags is a list of strings
    ✓ coordinate, when present, has numeric latitude/longitude

  Coordinate:
    ✓ Latitude in [-90, 90], longitude in [-180, 180]
    ✓ Not both exactly 0.0 (likely missing)
    Coordinate problems never reject a stop; such legs use the fixed
    placeholder estimate instead.

  Day / plan:
    ✓ day_number > 0
    ✓ every stop valid

Usage:
    from modules.validation import validate_stop, filter_valid

    result = validate_stop(stop.to_dict())
    if not result.valid:
        print(result.errors)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STRICT_HHMM = re.compile(r"^([0-3]\d|4[0-7]):[0-5]\d$")


# ── Result dataclass ───────────────────────────────────────────────────────────

@dataclass
class ValidationResult:
    """
    Outcome of a single validation run.

    Attributes:
        valid:  True iff there are zero errors.
        errors: Human-readable list of failure reasons.
        record: The input record dict (for logging purposes).
    """
    valid: bool
    errors: list[str] = field(default_factory=list)
    record: dict = field(default_factory=dict, repr=False)

    def __bool__(self) -> bool:
        return self.valid


# ── Coordinate validation ─────────────────────────────────────────────────────

def validate_coordinate(record: dict[str, Any] | None) -> ValidationResult:
    errors: list[str] = []
    record = record or {}
    lat = record.get("latitude", record.get("lat"))
    lon = record.get("longitude", record.get("lng"))

    if lat is None or lon is None:
        errors.append(f"latitude/longitude must not be NULL (got lat={lat!r}, lon={lon!r})")
        return ValidationResult(valid=False, errors=errors, record=record)
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        errors.append(f"latitude/longitude must be numeric (got lat={lat!r}, lon={lon!r})")
        return ValidationResult(valid=False, errors=errors, record=record)

    if not (-90.0 <= lat <= 90.0):
        errors.append(f"latitude={lat} is outside valid range [-90, 90]")
    if not (-180.0 <= lon <= 180.0):
        errors.append(f"longitude={lon} is outside valid range [-180, 180]")
    if lat == 0.0 and lon == 0.0:
        errors.append("latitude=0.0 and longitude=0.0: likely a missing/default value")

    return ValidationResult(valid=len(errors) == 0, errors=errors, record=record)


# ── Stop validation ───────────────────────────────────────────────────────────

def validate_stop(record: dict[str, Any]) -> ValidationResult:
    errors: list[str] = []

    for key in ("id", "name"):
        value = record.get(key)
        if value is None or not str(value).strip():
            errors.append(f"{key} must not be empty or NULL")

    start = record.get("start_time")
    end = record.get("end_time")
    for key, value in (("start_time", start), ("end_time", end)):
        if not isinstance(value, str) or not _STRICT_HHMM.match(value):
            errors.append(f"{key}={value!r} must be a 'HH:MM' string")
    if isinstance(start, str) and start == end:
        errors.append(f"end_time must differ from start_time (both {start!r})")

    tags = record.get("category_tags", [])
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        errors.append(f"category_tags={tags!r} must be a list of strings")

    coord = record.get("coordinate")
    if coord is not None:
        if not isinstance(coord, dict):
            errors.append(f"coordinate={coord!r} must be an object")
        else:
            for key in ("latitude", "longitude"):
                try:
                    float(coord.get(key))
                except (TypeError, ValueError):
                    errors.append(f"coordinate.{key}={coord.get(key)!r} must be numeric")
            if not errors and not validate_coordinate(coord).valid:
                logger.info(
                    "stop %r has an unusable coordinate; placeholder leg estimates apply",
                    record.get("name"),
                )

    return ValidationResult(valid=len(errors) == 0, errors=errors, record=record)


# ── Day number validation ──────────────────────────────────────────────────────

def validate_day_number(record: dict[str, Any]) -> ValidationResult:
    """day_number > 0 when present."""
    errors: list[str] = []
    day_num = record.get("day_number")

    if day_num is not None:
        try:
            d = int(day_num)
            if d <= 0:
                errors.append(f"day_number={d} must be > 0")
        except (TypeError, ValueError):
            errors.append(f"day_number={day_num!r} must be a positive integer")

    return ValidationResult(valid=len(errors) == 0, errors=errors, record=record)


# ── Plan validation ───────────────────────────────────────────────────────────

def validate_plan(record: dict[str, Any]) -> ValidationResult:
    """Validate every day and stop in a Plan.to_dict() payload."""
    errors: list[str] = []
    days = record.get("day_plans")
    if not isinstance(days, list):
        return ValidationResult(valid=False, errors=["day_plans must be a list"], record=record)

    for d_index, day in enumerate(days):
        if not isinstance(day, dict):
            errors.append(f"day_plans[{d_index}] must be an object")
            continue
        errors.extend(f"day_plans[{d_index}]: {e}" for e in validate_day_number(day).errors)
        for s_index, stop in enumerate(day.get("stops") or []):
            result = validate_stop(stop if isinstance(stop, dict) else {})
            errors.extend(f"day_plans[{d_index}].stops[{s_index}]: {e}" for e in result.errors)

    return ValidationResult(valid=len(errors) == 0, errors=errors, record=record)


# ── Batch filter helper ────────────────────────────────────────────────────────

def filter_valid(
    items: list[T],
    validator: Callable[[dict], ValidationResult],
    to_dict: Callable[[T], dict] | None = None,
    log: bool = True,
) -> list[T]:
    """
    Apply a validator to every item in a list, return only the valid ones.

    Args:
        items:     List of items (dataclass instances or dicts).
        validator: e.g. validate_stop.
        to_dict:   Optional callable to convert each item to a dict.
                   If None, items must be dicts or expose to_dict().
        log:       If True, log a warning for every rejected record.
    """
    valid_items: list[T] = []
    rejected = 0

    for item in items:
        if to_dict is not None:
            record_dict = to_dict(item)
        elif isinstance(item, dict):
            record_dict = item
        else:
            record_dict = item.to_dict()  # type: ignore[attr-defined]
        result = validator(record_dict)
        if result.valid:
            valid_items.append(item)
        else:
            rejected += 1
            if log:
                logger.warning(
                    "rejected %r: %s", record_dict.get("name", "?"), "; ".join(result.errors)
                )

    if log and rejected:
        logger.warning(
            "%d/%d records rejected; %d passed.", rejected, len(items), len(valid_items)
        )

    return valid_items
