"""
api/routes/itinerary.py
------------------------
Stateless scheduling endpoints.

  POST /v1/itinerary/reschedule   reconcile one day's stops (warnings + shifts)
  POST /v1/itinerary/order        category-based visiting order, times untouched
  POST /v1/itinerary/legs         travel minutes/km for each adjacent pair
  POST /v1/itinerary/matrix       full N×N travel-time matrix
  POST /v1/itinerary/suggest      draft multi-day plan (generative suggestion,
                                  else arranged from supplied catalog places)

Stops are validated with modules.validation.validate_stop before use;
any invalid stop rejects the request with 422 and the per-stop errors.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import get_suggestion_tool, get_travel_time_tool
from modules.planning.candidate_arranger import arrange_candidates
from modules.planning.ordering import optimize_order, priority_of
from modules.planning.reconciliation import ReconciliationEngine
from modules.tool_usage.suggestion_tool import SuggestionTool, plan_from_suggestions
from modules.tool_usage.travel_time_tool import TravelTimeTool
from modules.validation import validate_stop
from schemas.itinerary import DayPlan, Stop

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request schemas ────────────────────────────────────────────────────────────

class CoordinateIn(BaseModel):
    latitude: float
    longitude: float


class StopIn(BaseModel):
    id: str
    name: str
    start_time: str = Field("09:00", description="HH:MM")
    end_time:   str = Field("10:00", description="HH:MM")
    address: str = ""
    category_tags: list[str] = Field(default_factory=list)
    coordinate: Optional[CoordinateIn] = None
    is_manual: bool = False
    warning: Optional[str] = None


class RescheduleRequest(BaseModel):
    stops: list[StopIn]
    enable_time_shift: bool = True
    manual_triggers_shift: bool = True
    protect_manual_stops: bool = Field(
        False, description="Manual stops keep their times unless an earlier manual stop overlaps",
    )
    use_live_travel_times: bool = Field(
        False, description="Use TravelTimeService leg minutes + safety margin as the buffer",
    )
    mode: Optional[str] = Field(None, description="driving | walking | transit")


class OrderRequest(BaseModel):
    stops: list[StopIn]


class LegsRequest(BaseModel):
    stops: list[StopIn]
    mode: Optional[str] = None


class MatrixRequest(BaseModel):
    stops: list[StopIn]
    mode: Optional[str] = None
    with_distance: bool = False


class SuggestRequest(BaseModel):
    region: str
    days: int = Field(1, ge=1, le=14)
    style: str = ""
    candidates: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Place-catalog records used when no suggestion is available",
    )
    per_day: Optional[int] = Field(None, ge=1)


# ── Helpers ────────────────────────────────────────────────────────────────────

def _to_stops(items: list[StopIn]) -> list[Stop]:
    """Validate and convert; raises 422 listing every bad stop."""
    errors: list[str] = []
    stops: list[Stop] = []
    for index, item in enumerate(items):
        record = item.model_dump()
        result = validate_stop(record)
        if not result.valid:
            errors.extend(f"stops[{index}]: {e}" for e in result.errors)
            continue
        stops.append(Stop.from_dict(record))
    if errors:
        raise HTTPException(status_code=422, detail=errors)
    return stops


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("/reschedule", summary="Reconcile stop times for one day")
def reschedule(
    req: RescheduleRequest,
    tool: TravelTimeTool = Depends(get_travel_time_tool),
) -> dict:
    stops = _to_stops(req.stops)
    engine = ReconciliationEngine(
        travel_time_tool=tool if req.use_live_travel_times else None,
        mode=req.mode,
    )
    day = engine.reschedule_day(
        DayPlan(stops=stops),
        enable_time_shift=req.enable_time_shift,
        manual_triggers_shift=req.manual_triggers_shift,
        protect_manual_stops=req.protect_manual_stops,
    )
    return {
        "stops": [s.to_dict() for s in day.stops],
        "legs":  [leg.to_dict() for leg in day.legs],
    }


@router.post("/order", summary="Suggest a same-day visiting order")
def order(req: OrderRequest) -> dict:
    ordered = optimize_order(_to_stops(req.stops))
    return {
        "stops":      [s.to_dict() for s in ordered],
        "priorities": [priority_of(s) for s in ordered],
    }


@router.post("/legs", summary="Travel time for each adjacent pair of stops")
def legs(
    req: LegsRequest,
    tool: TravelTimeTool = Depends(get_travel_time_tool),
) -> dict:
    result = tool.get_leg_times(_to_stops(req.stops), req.mode)
    return {"legs": [leg.to_dict() for leg in result]}


@router.post("/matrix", summary="N×N travel-time matrix")
def matrix(
    req: MatrixRequest,
    tool: TravelTimeTool = Depends(get_travel_time_tool),
) -> dict:
    eta = tool.get_eta_matrix(_to_stops(req.stops), req.mode, with_distance=req.with_distance)
    return eta.to_dict()


@router.post("/suggest", summary="Draft a multi-day plan")
def suggest(
    req: SuggestRequest,
    suggester: SuggestionTool = Depends(get_suggestion_tool),
) -> dict:
    """
    Tries the generative suggestion source first. When it yields nothing,
    the supplied catalog candidates are ranked and arranged instead; with
    neither available the request fails with 503.
    """
    engine = ReconciliationEngine()

    raw = suggester.generate(req.region, req.days, req.style)
    if raw:
        plan = engine.reschedule_plan(plan_from_suggestions(raw))
        return {"source": "suggestion", "plan": plan.to_dict()}

    if req.candidates:
        logger.info("no suggestion for %r; arranging %d catalog candidates",
                    req.region, len(req.candidates))
        plan = arrange_candidates(req.candidates, req.days, per_day=req.per_day, engine=engine)
        return {"source": "catalog", "plan": plan.to_dict()}

    raise HTTPException(
        status_code=503,
        detail="No suggestion available and no candidates supplied; please try again",
    )
