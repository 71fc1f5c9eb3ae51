"""
modules/tool_usage/travel_time_tool.py
----------------------------------------
ETA matrix and adjacent-leg travel times between itinerary stops.

Endpoint (Google Distance Matrix):
    GET https://maps.googleapis.com/maps/api/distancematrix/json
    Params: origins=lat,lng|lat,lng  destinations=...  mode=driving|walking|transit  key=...

Response fields used:
    status                              "OK" | "OVER_QUERY_LIMIT" | "REQUEST_DENIED" | ...
    rows[r].elements[c].duration.value  seconds
    rows[r].elements[c].distance.value  meters

Fallback policy:
  - No API key, or fewer than two stops → every cell estimated locally
    (distance_tool.estimate_leg), diagonal 0.
  - Requests are chunked to ≤ batch_limit origins × ≤ batch_limit destinations.
  - A cell without a numeric duration/distance is estimated locally; the rest
    of the matrix keeps its remote values.
  - Any failed request (exception, timeout, non-2xx, denial/quota status,
    empty rows) discards the remote attempt and the WHOLE matrix is
    recomputed locally. No partially-remote matrices.
  - get_leg_times reads the matrix super-diagonal; if that path fails it
    estimates each adjacent leg locally.

Public methods never raise.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import requests

import config
from modules.tool_usage.distance_tool import LegEstimate, estimate_leg, is_valid_coordinate
from modules.tool_usage.fallback import FailureReason, StageResult, first_success
from schemas.itinerary import Coordinate, Leg, Stop

logger = logging.getLogger(__name__)

# Provider statuses that mean "stop asking for now"
_DENIAL_STATUSES = frozenset({
    "OVER_QUERY_LIMIT",
    "OVER_DAILY_LIMIT",
    "REQUEST_DENIED",
    "MAX_ELEMENTS_EXCEEDED",
    "MAX_DIMENSIONS_EXCEEDED",
})

_PROVIDER_MODES = {"walking": "walking", "transit": "transit", "driving": "driving"}


@dataclass
class EtaMatrix:
    """N×N travel minutes (and optionally km); source is remote | cache | local."""
    minutes: list[list[int]]
    km: Optional[list[list[float]]] = None
    source: str = "local"

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"minutes": self.minutes, "source": self.source}
        if self.km is not None:
            out["km"] = self.km
        return out


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _coordinate_of(item: Any) -> Optional[Coordinate]:
    """Accept a Stop, a Coordinate, or a place dict."""
    if isinstance(item, Stop):
        return item.coordinate
    if isinstance(item, Coordinate):
        return item
    if isinstance(item, dict):
        return Coordinate.from_dict(item.get("coordinate") or item)
    return None


def _location_param(item: Any) -> str:
    """"lat,lng" when the coordinate is usable, else the place's name/address text."""
    coord = _coordinate_of(item)
    if is_valid_coordinate(coord):
        return f"{coord.latitude},{coord.longitude}"
    if isinstance(item, Stop):
        return " ".join(p for p in (item.name, item.address) if p)
    if isinstance(item, dict):
        return " ".join(str(item.get(k)) for k in ("name", "address") if item.get(k))
    return ""


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _field_value(element: dict, key: str) -> Any:
    """element[key]["value"]; None when either level is not the expected shape."""
    field = element.get(key)
    return field.get("value") if isinstance(field, dict) else None


def _chunks(n: int, size: int) -> list[range]:
    size = max(1, int(size))
    return [range(start, min(start + size, n)) for start in range(0, n, size)]


def _normalise_mode(mode: Optional[str]) -> str:
    mode = (mode or config.DEFAULT_TRAVEL_MODE).lower()
    return mode if mode in _PROVIDER_MODES else "driving"


# ─────────────────────────────────────────────────────────────────────────────
# TravelTimeTool
# ─────────────────────────────────────────────────────────────────────────────

class TravelTimeTool:
    """
    Travel-time service for ordered stop lists.

    Args:
        api_key:      Distance Matrix key; defaults to config.GOOGLE_MAPS_API_KEY.
        batch_limit:  max origins/destinations per request (provider ceiling 25).
        timeout:      per-request timeout in seconds.
        session:      requests.Session (injectable for tests).
        cache:        EtaCache-like object with get()/set(); defaults to a Redis
                      cache when config.ETA_CACHE_ENABLED.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        batch_limit: Optional[int] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        cache: Any = None,
        url: Optional[str] = None,
    ) -> None:
        self.api_key     = config.GOOGLE_MAPS_API_KEY if api_key is None else api_key
        self.batch_limit = batch_limit or config.DISTANCE_MATRIX_BATCH_LIMIT
        self.timeout     = timeout or config.DISTANCE_MATRIX_TIMEOUT_S
        self.url         = url or config.DISTANCE_MATRIX_URL
        self.session     = session or requests.Session()
        if cache is None and config.ETA_CACHE_ENABLED:
            from db.redis_client import EtaCache
            cache = EtaCache()
        self.cache = cache
        self._warned_no_key = False

    # ── Public API ────────────────────────────────────────────────────────────

    def get_eta_matrix(
        self,
        stops: Optional[Sequence[Any]],
        mode: Optional[str] = None,
        with_distance: bool = False,
    ) -> EtaMatrix:
        """Full N×N minutes matrix (plus km when with_distance)."""
        items = list(stops or [])
        mode = _normalise_mode(mode)
        result = first_success(
            [
                ("remote", lambda: self._remote_matrix(items, mode, with_distance)),
                ("local",  lambda: StageResult.ok(self._local_matrix(items, mode, with_distance))),
            ],
            label="eta_matrix",
        )
        if result.succeeded:
            return result.value
        logger.error("ETA matrix could not be computed (%s); returning zeros", result.detail)
        n = len(items)
        return EtaMatrix(
            minutes=[[0] * n for _ in range(n)],
            km=[[0.0] * n for _ in range(n)] if with_distance else None,
        )

    def get_leg_times(
        self,
        stops: Optional[Sequence[Any]],
        mode: Optional[str] = None,
    ) -> list[Leg]:
        """Minutes/km for each adjacent pair (i, i+1); empty for < 2 stops."""
        items = list(stops or [])
        if len(items) < 2:
            return []
        mode = _normalise_mode(mode)
        result = first_success(
            [
                ("matrix",   lambda: StageResult.ok(self._legs_from_matrix(items, mode))),
                ("pairwise", lambda: StageResult.ok(self._pairwise_legs(items, mode))),
            ],
            label="leg_times",
        )
        return result.value if result.succeeded else []

    # ── Stages ────────────────────────────────────────────────────────────────

    def _remote_matrix(
        self,
        items: list[Any],
        mode: str,
        with_distance: bool,
    ) -> StageResult:
        n = len(items)
        if not self.api_key:
            if not self._warned_no_key:
                logger.warning("no Distance Matrix API key; travel times use local estimates")
                self._warned_no_key = True
            return StageResult.fail(FailureReason.NOT_CONFIGURED, "no Distance Matrix API key")
        if n < 2:
            return StageResult.fail(FailureReason.NOT_CONFIGURED, f"{n} stop(s); nothing to ask")

        locations = [_location_param(item) for item in items]

        cached = self._cache_get(mode, locations, with_distance)
        if cached is not None:
            return StageResult.ok(cached)

        minutes: list[list[Optional[int]]] = [[None] * n for _ in range(n)]
        km: list[list[Optional[float]]] = [[None] * n for _ in range(n)]

        row_chunks = _chunks(n, self.batch_limit)
        col_chunks = _chunks(n, self.batch_limit)
        for rows_idx in row_chunks:
            for cols_idx in col_chunks:
                fetched = self._request_block(
                    [locations[i] for i in rows_idx],
                    [locations[j] for j in cols_idx],
                    mode,
                )
                if not fetched.succeeded:
                    return fetched
                self._fill_block(fetched.value, rows_idx, cols_idx, minutes, km)

        # Per-cell fallback for anything the provider did not measure
        for i in range(n):
            for j in range(n):
                if i == j:
                    minutes[i][j], km[i][j] = 0, 0.0
                    continue
                if minutes[i][j] is None or km[i][j] is None:
                    est = self._estimate(items[i], items[j], mode)
                    if minutes[i][j] is None:
                        minutes[i][j] = est.minutes
                    if km[i][j] is None:
                        km[i][j] = est.km

        matrix = EtaMatrix(minutes=minutes, km=km, source="remote")
        self._cache_set(mode, locations, matrix)
        if not with_distance:
            matrix.km = None
        return StageResult.ok(matrix)

    def _local_matrix(self, items: list[Any], mode: str, with_distance: bool) -> EtaMatrix:
        n = len(items)
        minutes = [[0] * n for _ in range(n)]
        km = [[0.0] * n for _ in range(n)]
        for i in range(n):
            for j in range(n):
                if i == j:
                    continue
                est = self._estimate(items[i], items[j], mode)
                minutes[i][j] = est.minutes
                km[i][j] = est.km
        return EtaMatrix(minutes=minutes, km=km if with_distance else None, source="local")

    def _legs_from_matrix(self, items: list[Any], mode: str) -> list[Leg]:
        matrix = self.get_eta_matrix(items, mode, with_distance=True)
        legs: list[Leg] = []
        for i in range(len(items) - 1):
            minutes = matrix.minutes[i][i + 1]
            km = matrix.km[i][i + 1] if matrix.km else None
            if not (_is_number(minutes) and _is_number(km)):
                est = self._estimate(items[i], items[i + 1], mode)
                minutes = minutes if _is_number(minutes) else est.minutes
                km = km if _is_number(km) else est.km
            legs.append(Leg(from_index=i, to_index=i + 1, minutes=int(minutes), km=float(km)))
        return legs

    def _pairwise_legs(self, items: list[Any], mode: str) -> list[Leg]:
        legs = []
        for i in range(len(items) - 1):
            est = self._estimate(items[i], items[i + 1], mode)
            legs.append(Leg(from_index=i, to_index=i + 1, minutes=est.minutes, km=est.km))
        return legs

    # ── Remote plumbing ───────────────────────────────────────────────────────

    def _request_block(
        self,
        origins: list[str],
        destinations: list[str],
        mode: str,
    ) -> StageResult:
        """One Distance Matrix call; returns the `rows` list on success."""
        params = {
            "origins":      "|".join(origins),
            "destinations": "|".join(destinations),
            "mode":         _PROVIDER_MODES[mode],
            "key":          self.api_key,
        }
        try:
            resp = self.session.get(self.url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            return StageResult.fail(FailureReason.REMOTE_UNAVAILABLE, str(exc))

        if not resp.ok:
            reason = (
                FailureReason.RATE_LIMITED
                if resp.status_code in (403, 429)
                else FailureReason.REMOTE_UNAVAILABLE
            )
            return StageResult.fail(reason, f"HTTP {resp.status_code} {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as exc:
            return StageResult.fail(FailureReason.MALFORMED_RESPONSE, f"invalid JSON: {exc}")
        if not isinstance(data, dict):
            return StageResult.fail(FailureReason.MALFORMED_RESPONSE, "response is not an object")

        status = data.get("status")
        if status in _DENIAL_STATUSES:
            return StageResult.fail(
                FailureReason.RATE_LIMITED,
                f"{status}: {data.get('error_message', '')}".strip(),
            )
        if status not in (None, "OK"):
            return StageResult.fail(FailureReason.REMOTE_UNAVAILABLE, str(status))

        rows = data.get("rows")
        if not isinstance(rows, list) or not rows:
            return StageResult.fail(FailureReason.EMPTY_RESPONSE, "no rows in response")
        return StageResult.ok(rows)

    @staticmethod
    def _fill_block(
        rows: list[Any],
        rows_idx: range,
        cols_idx: range,
        minutes: list[list[Optional[int]]],
        km: list[list[Optional[float]]],
    ) -> None:
        for r_off, row in enumerate(rows[: len(rows_idx)]):
            elements = row.get("elements") if isinstance(row, dict) else None
            if not isinstance(elements, list):
                continue
            gi = rows_idx[r_off]
            for c_off, element in enumerate(elements[: len(cols_idx)]):
                if not isinstance(element, dict):
                    continue
                gj = cols_idx[c_off]
                seconds = _field_value(element, "duration")
                meters = _field_value(element, "distance")
                if _is_number(seconds):
                    minutes[gi][gj] = max(1, round(seconds / 60))
                if _is_number(meters):
                    km[gi][gj] = round(meters / 1000, 2)

    # ── Local estimate + cache ────────────────────────────────────────────────

    @staticmethod
    def _estimate(a: Any, b: Any, mode: str) -> LegEstimate:
        return estimate_leg(_coordinate_of(a), _coordinate_of(b), mode)

    def _cache_get(
        self,
        mode: str,
        locations: list[str],
        with_distance: bool,
    ) -> Optional[EtaMatrix]:
        if self.cache is None:
            return None
        entry = self.cache.get(mode, locations)
        if not entry or not isinstance(entry.get("minutes"), list):
            return None
        n = len(locations)
        if len(entry["minutes"]) != n or (with_distance and not entry.get("km")):
            return None
        return EtaMatrix(
            minutes=entry["minutes"],
            km=entry.get("km") if with_distance else None,
            source="cache",
        )

    def _cache_set(self, mode: str, locations: list[str], matrix: EtaMatrix) -> None:
        if self.cache is not None:
            self.cache.set(mode, locations, matrix.minutes, matrix.km)
