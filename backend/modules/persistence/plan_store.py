"""
modules/persistence/plan_store.py
----------------------------------
Append-only plan versions per trip, plus the single adopted snapshot.

Every save writes version max+1 for the trip; stored versions are never
rewritten. Adoption copies one stored version into the trip's snapshot
slot, which is what readers treat as "the itinerary".

Two backends share one interface:
  InMemoryPlanBackend  — lock-protected dicts (tests, single process)
  PostgresPlanBackend  — psycopg2 via db.connection.get_conn()
                         tables: itineraries, itinerary_versions,
                         itinerary_snapshots (db/schema.sql)

Concurrent writers: the backend rejects a duplicate (trip_id, version)
with VersionConflict; PlanVersionStore re-reads the max and retries up to
config.VERSION_SAVE_RETRIES times before giving up.

Usage:
    from modules.persistence.plan_store import build_plan_store

    store = build_plan_store()
    v = store.save_version("g1", plan, PlanMeta(region="Taipei", days=2))
    store.adopt("g1", v)
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

import psycopg2
import psycopg2.errors

import config
from db.connection import get_conn
from db.repositories import itinerary_repo
from schemas.itinerary import (
    AdoptedSnapshot,
    Plan,
    PlanMeta,
    PlanVersion,
    TripRecord,
)

logger = logging.getLogger(__name__)

EVENT_VERSION_SAVED = "VERSION_SAVED"
EVENT_PLAN_ADOPTED  = "PLAN_ADOPTED"


class PlanStoreError(RuntimeError):
    """Persistence failed; the caller should retry later."""


class VersionConflict(PlanStoreError):
    """(trip_id, version) already exists."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _audit_stream(trip_id: str) -> str:
    return f"trip_{trip_id}"


def _iso(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


# ── Backend interface ──────────────────────────────────────────────────────────

class PlanBackend(ABC):
    """
    Storage primitives. Plans and metas cross this boundary as plain dicts.

    Version rows:  {trip_id, version, plan, meta, created_at}
    Snapshot rows: {trip_id, version, plan, meta, adopted_at}
    """

    @abstractmethod
    def get_max_version(self, trip_id: str) -> int: ...

    @abstractmethod
    def insert_version(
        self,
        trip_id: str,
        version: int,
        plan: dict,
        meta: dict,
        trip_fields: dict[str, Any],
    ) -> str:
        """
        Upsert the trip record, insert the version row and bump
        last_saved_version, atomically. Returns created_at.

        Raises VersionConflict if the version already exists.
        """

    @abstractmethod
    def get_version(self, trip_id: str, version: int) -> Optional[dict]: ...

    @abstractmethod
    def list_versions(self, trip_id: str) -> list[dict]:
        """Newest first."""

    @abstractmethod
    def get_trip(self, trip_id: str) -> Optional[dict]: ...

    @abstractmethod
    def adopt(self, trip_id: str, version: int) -> Optional[dict]:
        """
        Copy a stored version into the snapshot slot and record it on the
        trip. Returns the snapshot row, or None (nothing written) when the
        version does not exist.
        """

    @abstractmethod
    def get_snapshot(self, trip_id: str) -> Optional[dict]: ...


# ── In-memory backend ──────────────────────────────────────────────────────────

class InMemoryPlanBackend(PlanBackend):
    """Process-local storage. Returned rows are deep copies."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._versions: dict[str, dict[int, dict]] = {}
        self._trips: dict[str, dict] = {}
        self._snapshots: dict[str, dict] = {}

    def get_max_version(self, trip_id: str) -> int:
        with self._lock:
            return max(self._versions.get(trip_id, {}), default=0)

    def insert_version(self, trip_id, version, plan, meta, trip_fields):
        with self._lock:
            rows = self._versions.setdefault(trip_id, {})
            if version in rows:
                raise VersionConflict(f"{trip_id} v{version} already exists")

            now = _now_iso()
            trip = self._trips.get(trip_id)
            if trip is None:
                trip = TripRecord(trip_id=trip_id, created_at=now).to_dict()
                self._trips[trip_id] = trip
            for key in ("group_name", "region", "days", "tags"):
                if key in trip_fields:
                    trip[key] = copy.deepcopy(trip_fields[key])
            trip["last_saved_version"] = max(trip["last_saved_version"], version)
            trip["updated_at"] = now

            rows[version] = {
                "trip_id":    trip_id,
                "version":    version,
                "plan":       copy.deepcopy(plan),
                "meta":       copy.deepcopy(meta),
                "created_at": now,
            }
            return now

    def get_version(self, trip_id, version):
        with self._lock:
            row = self._versions.get(trip_id, {}).get(version)
            return copy.deepcopy(row) if row else None

    def list_versions(self, trip_id):
        with self._lock:
            rows = self._versions.get(trip_id, {})
            return [copy.deepcopy(rows[v]) for v in sorted(rows, reverse=True)]

    def get_trip(self, trip_id):
        with self._lock:
            trip = self._trips.get(trip_id)
            return copy.deepcopy(trip) if trip else None

    def adopt(self, trip_id, version):
        with self._lock:
            row = self._versions.get(trip_id, {}).get(version)
            if row is None:
                return None
            now = _now_iso()
            snapshot = {
                "trip_id":    trip_id,
                "version":    version,
                "plan":       copy.deepcopy(row["plan"]),
                "meta":       copy.deepcopy(row["meta"]),
                "adopted_at": now,
            }
            self._snapshots[trip_id] = snapshot
            trip = self._trips[trip_id]
            trip["adopted_version"] = version
            trip["updated_at"] = now
            return copy.deepcopy(snapshot)

    def get_snapshot(self, trip_id):
        with self._lock:
            snapshot = self._snapshots.get(trip_id)
            return copy.deepcopy(snapshot) if snapshot else None


# ── Postgres backend ───────────────────────────────────────────────────────────

class PostgresPlanBackend(PlanBackend):
    """
    psycopg2-backed storage. Each method runs in one get_conn() transaction;
    driver errors surface as PlanStoreError.
    """

    def __init__(self, conn_factory=None) -> None:
        self._conn_factory = conn_factory or get_conn

    def _run(self, fn, *args):
        try:
            with self._conn_factory() as conn:
                return fn(conn, *args)
        except psycopg2.errors.UniqueViolation as exc:
            raise VersionConflict(str(exc).strip()) from exc
        except psycopg2.Error as exc:
            logger.error("plan store query failed: %s", exc)
            raise PlanStoreError(str(exc).strip()) from exc

    def get_max_version(self, trip_id):
        return self._run(itinerary_repo.get_max_version, trip_id)

    def insert_version(self, trip_id, version, plan, meta, trip_fields):
        def _tx(conn):
            itinerary_repo.upsert_itinerary_root(conn, trip_id, trip_fields)
            created_at = itinerary_repo.insert_version(conn, trip_id, version, plan, meta)
            itinerary_repo.set_last_saved_version(conn, trip_id, version)
            return created_at

        return self._run(_tx)

    def get_version(self, trip_id, version):
        row = self._run(itinerary_repo.get_version, trip_id, version)
        if row:
            row["created_at"] = _iso(row.get("created_at"))
        return row

    def list_versions(self, trip_id):
        rows = self._run(itinerary_repo.list_versions, trip_id)
        for row in rows:
            row["created_at"] = _iso(row.get("created_at"))
        return rows

    def get_trip(self, trip_id):
        row = self._run(itinerary_repo.get_itinerary_root, trip_id)
        if row:
            for key in ("created_at", "updated_at", "adopted_at"):
                if key in row:
                    row[key] = _iso(row[key])
        return row

    def adopt(self, trip_id, version):
        def _tx(conn):
            row = itinerary_repo.get_version(conn, trip_id, version)
            if row is None:
                return None
            adopted_at = itinerary_repo.write_snapshot(
                conn, trip_id, version, row["plan"], row["meta"]
            )
            itinerary_repo.set_adopted_version(conn, trip_id, version)
            return {
                "trip_id":    trip_id,
                "version":    version,
                "plan":       row["plan"],
                "meta":       row["meta"],
                "adopted_at": adopted_at,
            }

        return self._run(_tx)

    def get_snapshot(self, trip_id):
        row = self._run(itinerary_repo.get_snapshot, trip_id)
        if row:
            row["adopted_at"] = _iso(row.get("adopted_at"))
        return row


# ── Row → dataclass ────────────────────────────────────────────────────────────

def _version_from_row(row: dict) -> PlanVersion:
    return PlanVersion(
        trip_id=row["trip_id"],
        version=int(row["version"]),
        plan=Plan.from_dict(row.get("plan")),
        meta=PlanMeta.from_dict(row.get("meta")),
        created_at=_iso(row.get("created_at")),
    )


def _snapshot_from_row(row: dict) -> AdoptedSnapshot:
    return AdoptedSnapshot(
        trip_id=row["trip_id"],
        version=int(row["version"]),
        plan=Plan.from_dict(row.get("plan")),
        meta=PlanMeta.from_dict(row.get("meta")),
        adopted_at=_iso(row.get("adopted_at")),
    )


def _trip_from_row(row: dict) -> TripRecord:
    adopted = row.get("adopted_version")
    return TripRecord(
        trip_id=row["trip_id"],
        group_name=row.get("group_name"),
        region=row.get("region"),
        days=int(row.get("days") or 1),
        tags=list(row.get("tags") or []),
        last_saved_version=int(row.get("last_saved_version") or 0),
        adopted_version=int(adopted) if adopted is not None else None,
        created_at=_iso(row.get("created_at")),
        updated_at=_iso(row.get("updated_at")),
    )


# ── Store ──────────────────────────────────────────────────────────────────────

class PlanVersionStore:
    """
    Versioned plan storage for trips.

    Args:
        backend:      PlanBackend (default: InMemoryPlanBackend).
        audit_logger: Optional StructuredLogger; receives VERSION_SAVED and
                      PLAN_ADOPTED records on stream "trip_<trip_id>".
        max_retries:  Extra attempts after a VersionConflict
                      (default: config.VERSION_SAVE_RETRIES).
    """

    def __init__(
        self,
        backend: Optional[PlanBackend] = None,
        audit_logger=None,
        max_retries: Optional[int] = None,
    ) -> None:
        self.backend = backend or InMemoryPlanBackend()
        self.audit_logger = audit_logger
        self.max_retries = (
            config.VERSION_SAVE_RETRIES if max_retries is None else max(0, max_retries)
        )

    # ── writes ────────────────────────────────────────────────────────────

    def save_version(
        self,
        trip_id: str,
        plan: Plan,
        meta: Optional[PlanMeta] = None,
        group_name: Optional[str] = None,
        adopt: bool = True,
    ) -> int:
        """
        Store `plan` as the next version of `trip_id` and, by default,
        adopt it. Returns the new version number.
        """
        meta = meta or self._default_meta(plan)
        fields = self._trip_fields(meta, group_name)
        version = self._insert_next(trip_id, plan, meta, fields)
        if adopt:
            self.adopt(trip_id, version)
        return version

    def save_itinerary_version(
        self,
        trip_id: str,
        plan: Plan,
        meta: Optional[PlanMeta] = None,
        version: Optional[int] = None,
    ) -> int:
        """
        Store a version without adopting it.

        An explicit `version` is written as given; VersionConflict is raised
        if it already exists. Otherwise the next number is assigned.
        """
        meta = meta or self._default_meta(plan)
        fields = self._trip_fields(meta, None)
        if version is None:
            return self._insert_next(trip_id, plan, meta, fields)

        if version < 1:
            raise ValueError(f"version must be >= 1 (got {version})")
        created_at = self.backend.insert_version(
            trip_id, version, plan.to_dict(), meta.to_dict(), fields
        )
        self._audit(trip_id, EVENT_VERSION_SAVED, {"version": version, "created_at": created_at})
        return version

    def adopt(self, trip_id: str, version: int) -> Optional[AdoptedSnapshot]:
        """
        Make `version` the trip's adopted plan.

        A version that was never stored is ignored: a warning is logged, the
        current snapshot stays as it was and None is returned.
        """
        row = self.backend.adopt(trip_id, version)
        if row is None:
            logger.warning("adopt: %s has no version %s; snapshot unchanged", trip_id, version)
            return None
        snapshot = _snapshot_from_row(row)
        logger.info("adopted %s v%d", trip_id, version)
        self._audit(trip_id, EVENT_PLAN_ADOPTED, {"version": version, "adopted_at": snapshot.adopted_at})
        return snapshot

    # ── reads ─────────────────────────────────────────────────────────────

    def get_adopted(self, trip_id: str) -> Optional[AdoptedSnapshot]:
        row = self.backend.get_snapshot(trip_id)
        return _snapshot_from_row(row) if row else None

    def get_version(self, trip_id: str, version: int) -> Optional[PlanVersion]:
        row = self.backend.get_version(trip_id, version)
        return _version_from_row(row) if row else None

    def list_versions(self, trip_id: str) -> list[PlanVersion]:
        """All stored versions, newest first."""
        return [_version_from_row(r) for r in self.backend.list_versions(trip_id)]

    def get_trip(self, trip_id: str) -> Optional[TripRecord]:
        row = self.backend.get_trip(trip_id)
        return _trip_from_row(row) if row else None

    def history(self, trip_id: str) -> list[dict]:
        """Audit records (saves and adoptions) for the trip, oldest first."""
        if self.audit_logger is None:
            return []
        return self.audit_logger.read(_audit_stream(trip_id))

    # ── internals ─────────────────────────────────────────────────────────

    def _insert_next(self, trip_id: str, plan: Plan, meta: PlanMeta, fields: dict) -> int:
        plan_dict = plan.to_dict()
        meta_dict = meta.to_dict()
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            version = self.backend.get_max_version(trip_id) + 1
            try:
                created_at = self.backend.insert_version(
                    trip_id, version, plan_dict, meta_dict, fields
                )
            except VersionConflict:
                if attempt == attempts:
                    raise
                logger.info(
                    "version %d of %s taken by a concurrent writer; retrying (%d/%d)",
                    version, trip_id, attempt, self.max_retries,
                )
                continue
            logger.info("saved %s v%d", trip_id, version)
            self._audit(trip_id, EVENT_VERSION_SAVED, {"version": version, "created_at": created_at})
            return version

        raise VersionConflict(f"could not allocate a version for {trip_id}")

    @staticmethod
    def _default_meta(plan: Plan) -> PlanMeta:
        return PlanMeta(days=max(1, len(plan.day_plans)))

    @staticmethod
    def _trip_fields(meta: PlanMeta, group_name: Optional[str]) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "region": meta.region,
            "days":   meta.days,
            "tags":   list(meta.tags),
        }
        if group_name is not None:
            fields["group_name"] = group_name
        return fields

    def _audit(self, trip_id: str, event_type: str, payload: dict) -> None:
        if self.audit_logger is None:
            return
        self.audit_logger.log(_audit_stream(trip_id), event_type, {"trip_id": trip_id, **payload})


def build_plan_store(audit_logger=None) -> PlanVersionStore:
    """Store wired to the backend named by config.PLAN_STORE_BACKEND."""
    name = (config.PLAN_STORE_BACKEND or "in_memory").strip().lower()
    if name == "postgres":
        backend: PlanBackend = PostgresPlanBackend()
    else:
        if name != "in_memory":
            logger.warning("unknown PLAN_STORE_BACKEND=%r; using in_memory", name)
        backend = InMemoryPlanBackend()
    return PlanVersionStore(backend=backend, audit_logger=audit_logger)
