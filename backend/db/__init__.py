"""
db/
----
Database access layer for the itinerary version store.

Storage architecture:
  PostgreSQL (psycopg2) — persistent version history
    tables: itineraries, itinerary_versions, itinerary_snapshots
    schema: db/schema.sql
    apply:  python scripts/run_migrations.py

  Redis (redis-py) — volatile ETA matrix cache
    eta:{mode}:{sha1(locations)}  TTL = ETA_CACHE_TTL  (1 day)

Public exports (import from here for convenience):
    from db import get_conn, get_redis
    from db.repositories import itinerary_repo
"""

from db.connection import get_conn, check_connection, close_pool
from db.redis_client import get_redis

__all__ = ["get_conn", "check_connection", "close_pool", "get_redis"]
