"""
db/repositories/itinerary_repo.py
-----------------------------------
SQL operations for the `itineraries`, `itinerary_versions` and
`itinerary_snapshots` tables.

Schema: db/schema.sql

All functions accept a psycopg2 connection object.
Commit/rollback is managed by the caller via db.connection.get_conn().
JSON columns are written as serialised strings and cast to jsonb.
"""

from __future__ import annotations

import json
from typing import Any


def _rows_as_dicts(cur) -> list[dict]:
    cols = [d[0] for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


# ── itineraries table ──────────────────────────────────────────────────────────

def upsert_itinerary_root(conn, trip_id: str, fields: dict[str, Any]) -> None:
    """
    Create the trip row if missing; otherwise refresh the given fields.

    Accepted keys: group_name, region, days, tags. Absent keys are left
    unchanged on an existing row.
    """
    row = {
        "trip_id":    trip_id,
        "group_name": fields.get("group_name"),
        "region":     fields.get("region"),
        "days":       fields.get("days", 1),
        "tags":       json.dumps(fields.get("tags", [])),
    }
    assignments = ["updated_at = now()"]
    for key in ("group_name", "region", "days", "tags"):
        if key in fields:
            assignments.append(f"{key} = EXCLUDED.{key}")

    sql = f"""
        INSERT INTO itineraries (trip_id, group_name, region, days, tags)
        VALUES (%(trip_id)s, %(group_name)s, %(region)s, %(days)s, %(tags)s::jsonb)
        ON CONFLICT (trip_id) DO UPDATE SET {", ".join(assignments)}
    """
    with conn.cursor() as cur:
        cur.execute(sql, row)


def get_itinerary_root(conn, trip_id: str) -> dict | None:
    """Return the trip row, or None if not found."""
    sql = "SELECT * FROM itineraries WHERE trip_id = %s"
    with conn.cursor() as cur:
        cur.execute(sql, (trip_id,))
        rows = _rows_as_dicts(cur)
        return rows[0] if rows else None


def set_last_saved_version(conn, trip_id: str, version: int) -> None:
    sql = """
        UPDATE itineraries
        SET last_saved_version = GREATEST(last_saved_version, %s), updated_at = now()
        WHERE trip_id = %s
    """
    with conn.cursor() as cur:
        cur.execute(sql, (version, trip_id))


def set_adopted_version(conn, trip_id: str, version: int) -> None:
    sql = """
        UPDATE itineraries
        SET adopted_version = %s, adopted_at = now(), updated_at = now()
        WHERE trip_id = %s
    """
    with conn.cursor() as cur:
        cur.execute(sql, (version, trip_id))


# ── itinerary_versions table ───────────────────────────────────────────────────

def get_max_version(conn, trip_id: str) -> int:
    """Highest stored version for the trip, 0 when none."""
    sql = "SELECT COALESCE(MAX(version), 0) FROM itinerary_versions WHERE trip_id = %s"
    with conn.cursor() as cur:
        cur.execute(sql, (trip_id,))
        return int(cur.fetchone()[0])


def insert_version(
    conn,
    trip_id: str,
    version: int,
    plan: dict | None,
    meta: dict,
) -> str:
    """
    Insert one version row; returns created_at as ISO-8601.

    Raises psycopg2.errors.UniqueViolation when (trip_id, version) exists.
    """
    sql = """
        INSERT INTO itinerary_versions (trip_id, version, plan, meta)
        VALUES (%s, %s, %s::jsonb, %s::jsonb)
        RETURNING created_at
    """
    with conn.cursor() as cur:
        cur.execute(sql, (
            trip_id,
            version,
            json.dumps(plan) if plan is not None else None,
            json.dumps(meta),
        ))
        return cur.fetchone()[0].isoformat()


def get_version(conn, trip_id: str, version: int) -> dict | None:
    sql = """
        SELECT trip_id, version, plan, meta, created_at
        FROM itinerary_versions
        WHERE trip_id = %s AND version = %s
    """
    with conn.cursor() as cur:
        cur.execute(sql, (trip_id, version))
        rows = _rows_as_dicts(cur)
        return rows[0] if rows else None


def list_versions(conn, trip_id: str) -> list[dict]:
    """All versions for a trip, newest first."""
    sql = """
        SELECT trip_id, version, plan, meta, created_at
        FROM itinerary_versions
        WHERE trip_id = %s
        ORDER BY version DESC
    """
    with conn.cursor() as cur:
        cur.execute(sql, (trip_id,))
        return _rows_as_dicts(cur)


# ── itinerary_snapshots table ──────────────────────────────────────────────────

def write_snapshot(
    conn,
    trip_id: str,
    version: int,
    plan: dict | None,
    meta: dict,
) -> str:
    """Overwrite the trip's single adopted snapshot; returns adopted_at."""
    sql = """
        INSERT INTO itinerary_snapshots (trip_id, version, plan, meta, adopted_at)
        VALUES (%s, %s, %s::jsonb, %s::jsonb, now())
        ON CONFLICT (trip_id) DO UPDATE SET
            version    = EXCLUDED.version,
            plan       = EXCLUDED.plan,
            meta       = EXCLUDED.meta,
            adopted_at = EXCLUDED.adopted_at
        RETURNING adopted_at
    """
    with conn.cursor() as cur:
        cur.execute(sql, (
            trip_id,
            version,
            json.dumps(plan) if plan is not None else None,
            json.dumps(meta),
        ))
        return cur.fetchone()[0].isoformat()


def get_snapshot(conn, trip_id: str) -> dict | None:
    sql = """
        SELECT trip_id, version, plan, meta, adopted_at
        FROM itinerary_snapshots
        WHERE trip_id = %s
    """
    with conn.cursor() as cur:
        cur.execute(sql, (trip_id,))
        rows = _rows_as_dicts(cur)
        return rows[0] if rows else None
