"""
api/routes/health.py
--------------------
Health-check endpoint — used by load balancers, Docker health probes, etc.

Reports which optional backends are wired. With the Postgres plan store a
failed database probe turns the status to "degraded" (still HTTP 200: the
scheduling endpoints keep working without storage).
"""
from __future__ import annotations

from fastapi import APIRouter

import config
from db.connection import check_connection

router = APIRouter()


@router.get("/health", summary="Health check")
def health() -> dict:
    body = {
        "status": "ok",
        "service": "itinerary-backend",
        "plan_store": config.PLAN_STORE_BACKEND,
        "remote_travel_times": bool(config.GOOGLE_MAPS_API_KEY),
        "eta_cache": config.ETA_CACHE_ENABLED,
    }
    if config.PLAN_STORE_BACKEND == "postgres":
        body["database"] = check_connection()
        if not body["database"]:
            body["status"] = "degraded"
    return body
