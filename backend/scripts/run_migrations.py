#!/usr/bin/env python
"""
scripts/run_migrations.py
--------------------------
Creates the plan-store tables from db/schema.sql on the configured Postgres.

Usage:
    python scripts/run_migrations.py            # apply (one transaction)
    python scripts/run_migrations.py --dry-run  # list statements only
    python scripts/run_migrations.py --check    # report which tables exist

Every statement is CREATE TABLE IF NOT EXISTS, so re-running is harmless.
Exit code 1 on any connection or SQL error.
"""

from __future__ import annotations

import argparse
import pathlib
import re
import sys

# backend/ on sys.path so config and db are importable when run directly
_BACKEND_DIR = pathlib.Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_BACKEND_DIR))

import psycopg2

import config
from db.connection import close_pool, get_conn

SCHEMA_FILE = _BACKEND_DIR / "db" / "schema.sql"
EXPECTED_TABLES = ("itineraries", "itinerary_versions", "itinerary_snapshots")

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"--[^\n]*")


def load_statements(path: pathlib.Path = SCHEMA_FILE) -> list[str]:
    """Schema file → individual statements, comments removed."""
    sql = path.read_text(encoding="utf-8")
    sql = _LINE_COMMENT.sub("", _BLOCK_COMMENT.sub("", sql))
    return [s.strip() for s in sql.split(";") if s.strip()]


def apply(statements: list[str]) -> None:
    with get_conn() as conn:
        with conn.cursor() as cur:
            for i, stmt in enumerate(statements, 1):
                cur.execute(stmt)
                print(f"  [{i:02d}] {stmt.splitlines()[0]}")


def existing_tables() -> set[str]:
    sql = """
        SELECT table_name FROM information_schema.tables
        WHERE table_schema = current_schema() AND table_name = ANY(%s)
    """
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(sql, (list(EXPECTED_TABLES),))
            return {row[0] for row in cur.fetchall()}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create the itinerary plan-store tables.")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--dry-run", action="store_true", help="Print statements without executing.")
    group.add_argument("--check", action="store_true", help="Report which tables already exist.")
    args = parser.parse_args(argv)

    target = f"{config.POSTGRES_DB} @ {config.POSTGRES_HOST}:{config.POSTGRES_PORT}"
    try:
        if args.check:
            found = existing_tables()
            for table in EXPECTED_TABLES:
                print(f"  {'✓' if table in found else '✗'} {table}")
            return 0 if found == set(EXPECTED_TABLES) else 1

        statements = load_statements()
        print(f"[migrations] {SCHEMA_FILE.name}: {len(statements)} statements → {target}")
        if args.dry_run:
            for stmt in statements:
                print(f"  {stmt.splitlines()[0]} ...")
            return 0

        apply(statements)
        print("[migrations] done.")
        return 0
    except (OSError, psycopg2.Error) as exc:
        print(f"[migrations] ERROR ({target}): {exc}", file=sys.stderr)
        return 1
    finally:
        close_pool()


if __name__ == "__main__":
    sys.exit(main())
