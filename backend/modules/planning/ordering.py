"""
modules/planning/ordering.py
-----------------------------
Category-based same-day visiting order.

Each stop gets a priority tier from its category tags (typical time of day
people visit such a place); stops are then stable-sorted by tier. This is a
time-of-day ordering, not a geographic route.

Tier resolution, first match wins:
  1. Name overrides (_NAME_OVERRIDES), e.g. a "night market" name → 4.5.
  2. The stop's tags, in the stop's own tag order, looked up in _TAG_TIERS.
  3. CategoryTier.DEFAULT (2.5).
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

from schemas.itinerary import Stop


class CategoryTier(float, Enum):
    EARLY             = 1.0   # bakery / café / breakfast
    SIGHTSEEING       = 2.0   # park / museum / attraction
    DEFAULT           = 2.5
    SHOPPING          = 3.0   # retail / mall
    DINING            = 4.0   # restaurant
    NIGHT_MARKET_NAME = 4.5
    NIGHTLIFE         = 5.0   # bar / night club / night market


_TAG_TIERS: dict[str, CategoryTier] = {
    # early
    "bakery":             CategoryTier.EARLY,
    "cafe":               CategoryTier.EARLY,
    "breakfast":          CategoryTier.EARLY,
    "brunch":             CategoryTier.EARLY,
    "dessert":            CategoryTier.EARLY,
    "早餐":               CategoryTier.EARLY,
    "早午餐":             CategoryTier.EARLY,
    "咖啡":               CategoryTier.EARLY,
    # sightseeing
    "park":               CategoryTier.SIGHTSEEING,
    "museum":             CategoryTier.SIGHTSEEING,
    "tourist_attraction": CategoryTier.SIGHTSEEING,
    "attraction":         CategoryTier.SIGHTSEEING,
    "art_gallery":        CategoryTier.SIGHTSEEING,
    "natural_feature":    CategoryTier.SIGHTSEEING,
    "zoo":                CategoryTier.SIGHTSEEING,
    "aquarium":           CategoryTier.SIGHTSEEING,
    "amusement_park":     CategoryTier.SIGHTSEEING,
    "church":             CategoryTier.SIGHTSEEING,
    "hindu_temple":       CategoryTier.SIGHTSEEING,
    "landmark":           CategoryTier.SIGHTSEEING,
    "景點":               CategoryTier.SIGHTSEEING,
    # shopping
    "shopping_mall":      CategoryTier.SHOPPING,
    "department_store":   CategoryTier.SHOPPING,
    "clothing_store":     CategoryTier.SHOPPING,
    "book_store":         CategoryTier.SHOPPING,
    "store":              CategoryTier.SHOPPING,
    "shopping":           CategoryTier.SHOPPING,
    "逛街":               CategoryTier.SHOPPING,
    # dining
    "restaurant":         CategoryTier.DINING,
    "food":               CategoryTier.DINING,
    "meal_takeaway":      CategoryTier.DINING,
    "餐廳":               CategoryTier.DINING,
    # nightlife
    "bar":                CategoryTier.NIGHTLIFE,
    "pub":                CategoryTier.NIGHTLIFE,
    "night_club":         CategoryTier.NIGHTLIFE,
    "night_market":       CategoryTier.NIGHTLIFE,
    "夜市":               CategoryTier.NIGHTLIFE,
}

# (substring, tier), matched case-insensitively against the stop name
_NAME_OVERRIDES: tuple[tuple[str, CategoryTier], ...] = (
    ("night market", CategoryTier.NIGHT_MARKET_NAME),
    ("夜市",         CategoryTier.NIGHT_MARKET_NAME),
    ("breakfast",    CategoryTier.EARLY),
    ("早餐",         CategoryTier.EARLY),
)

_BREAKFAST_TAGS = frozenset({"bakery", "breakfast", "brunch", "早餐", "早午餐"})


def _name_override(name: str) -> Optional[CategoryTier]:
    lowered = (name or "").lower()
    for needle, tier in _NAME_OVERRIDES:
        if needle in lowered:
            return tier
    return None


def _tag_tier(tags: Sequence[str]) -> Optional[CategoryTier]:
    for tag in tags:
        tier = _TAG_TIERS.get((tag or "").strip().lower())
        if tier is not None:
            return tier
    return None


def priority_of(stop: Stop) -> float:
    """Numeric visiting priority (lower = earlier in the day)."""
    tier = _name_override(stop.name) or _tag_tier(stop.category_tags) or CategoryTier.DEFAULT
    return tier.value


def optimize_order(stops: Sequence[Stop]) -> list[Stop]:
    """Stable ascending sort by priority; ties keep their input order."""
    return sorted(stops, key=priority_of)


# ── Category predicates (used by reconciliation warnings) ─────────────────────

def is_night_market(stop: Stop) -> bool:
    lowered = (stop.name or "").lower()
    if "night market" in lowered or "夜市" in lowered:
        return True
    return any(t.strip().lower() in ("night_market", "夜市") for t in stop.category_tags)


def is_nightlife(stop: Stop) -> bool:
    if is_night_market(stop):
        return True
    return any(
        _TAG_TIERS.get(t.strip().lower()) is CategoryTier.NIGHTLIFE
        for t in stop.category_tags
    )


def is_breakfast_like(stop: Stop) -> bool:
    if _name_override(stop.name) is CategoryTier.EARLY:
        return True
    return any(t.strip().lower() in _BREAKFAST_TAGS for t in stop.category_tags)
