"""
api/routes/trips.py
--------------------
Version history and adoption for a trip's itinerary.

  POST /v1/trips/{trip_id}/versions            save a plan as the next version
                                               (adopted unless adopt=false;
                                               explicit version implies adopt=false)
  GET  /v1/trips/{trip_id}/versions            all versions, newest first
  GET  /v1/trips/{trip_id}/versions/{version}  one stored version
  POST /v1/trips/{trip_id}/adopt               make a stored version the itinerary
  GET  /v1/trips/{trip_id}/adopted             the adopted snapshot
  GET  /v1/trips/{trip_id}/history             audit trail of saves and adoptions
  GET  /v1/trips/{trip_id}                     trip bookkeeping record

Storage failures map to 503 ("please try again"); the stored state is
unchanged in that case.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import get_plan_store
from modules.persistence.plan_store import PlanStoreError, PlanVersionStore, VersionConflict
from modules.validation import validate_plan
from schemas.itinerary import Plan, PlanMeta

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request schemas ────────────────────────────────────────────────────────────

class MetaIn(BaseModel):
    region: Optional[str] = None
    days: int = Field(1, ge=1)
    tags: list[str] = Field(default_factory=list)
    adopted_index: int = Field(0, ge=0)


class SaveVersionRequest(BaseModel):
    plan: dict[str, Any] = Field(..., description="Plan payload: {day_plans: [...]}")
    meta: Optional[MetaIn] = None
    group_name: Optional[str] = None
    adopt: bool = True
    version: Optional[int] = Field(None, ge=1, description="Explicit version (saved without adopting)")


class AdoptRequest(BaseModel):
    version: int = Field(..., ge=1)


# ── Helpers ────────────────────────────────────────────────────────────────────

def _unavailable(exc: PlanStoreError) -> HTTPException:
    logger.error("plan store unavailable: %s", exc)
    return HTTPException(
        status_code=503,
        detail="Itinerary storage is temporarily unavailable; please try again",
    )


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("/{trip_id}/versions", summary="Save a plan version")
def save_version(
    trip_id: str,
    req: SaveVersionRequest,
    store: PlanVersionStore = Depends(get_plan_store),
) -> dict:
    check = validate_plan(req.plan)
    if not check.valid:
        raise HTTPException(status_code=422, detail=check.errors)

    plan = Plan.from_dict(req.plan)
    meta = PlanMeta.from_dict(req.meta.model_dump()) if req.meta else None

    try:
        if req.version is not None:
            version = store.save_itinerary_version(trip_id, plan, meta, version=req.version)
            adopted = False
        else:
            version = store.save_version(
                trip_id, plan, meta, group_name=req.group_name, adopt=req.adopt,
            )
            adopted = req.adopt
    except VersionConflict as exc:
        if req.version is not None:
            raise HTTPException(
                status_code=409, detail=f"Version {req.version} already exists for {trip_id}",
            ) from exc
        raise _unavailable(exc) from exc
    except PlanStoreError as exc:
        raise _unavailable(exc) from exc

    return {"trip_id": trip_id, "version": version, "adopted": adopted}


@router.get("/{trip_id}/versions", summary="List plan versions (newest first)")
def list_versions(
    trip_id: str,
    store: PlanVersionStore = Depends(get_plan_store),
) -> dict:
    try:
        versions = store.list_versions(trip_id)
    except PlanStoreError as exc:
        raise _unavailable(exc) from exc
    return {"trip_id": trip_id, "versions": [v.to_dict() for v in versions]}


@router.get("/{trip_id}/versions/{version}", summary="Fetch one plan version")
def get_version(
    trip_id: str,
    version: int,
    store: PlanVersionStore = Depends(get_plan_store),
) -> dict:
    try:
        found = store.get_version(trip_id, version)
    except PlanStoreError as exc:
        raise _unavailable(exc) from exc
    if found is None:
        raise HTTPException(status_code=404, detail=f"Version {version} not found for {trip_id}")
    return found.to_dict()


@router.post("/{trip_id}/adopt", summary="Adopt a stored version")
def adopt(
    trip_id: str,
    req: AdoptRequest,
    store: PlanVersionStore = Depends(get_plan_store),
) -> dict:
    try:
        snapshot = store.adopt(trip_id, req.version)
    except PlanStoreError as exc:
        raise _unavailable(exc) from exc
    if snapshot is None:
        raise HTTPException(
            status_code=404, detail=f"Version {req.version} not found for {trip_id}",
        )
    return snapshot.to_dict()


@router.get("/{trip_id}/adopted", summary="Current adopted itinerary")
def get_adopted(
    trip_id: str,
    store: PlanVersionStore = Depends(get_plan_store),
) -> dict:
    try:
        snapshot = store.get_adopted(trip_id)
    except PlanStoreError as exc:
        raise _unavailable(exc) from exc
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No adopted itinerary for {trip_id}")
    return snapshot.to_dict()


@router.get("/{trip_id}/history", summary="Audit trail of saves and adoptions")
def get_history(
    trip_id: str,
    store: PlanVersionStore = Depends(get_plan_store),
) -> dict:
    return {"trip_id": trip_id, "events": store.history(trip_id)}


@router.get("/{trip_id}", summary="Trip record")
def get_trip(
    trip_id: str,
    store: PlanVersionStore = Depends(get_plan_store),
) -> dict:
    try:
        trip = store.get_trip(trip_id)
    except PlanStoreError as exc:
        raise _unavailable(exc) from exc
    if trip is None:
        raise HTTPException(status_code=404, detail=f"Trip {trip_id} not found")
    return trip.to_dict()
