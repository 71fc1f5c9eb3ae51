"""
api/deps.py
-----------
Process-wide service instances shared by the routers.

Each getter builds its object on first use; tests replace them through
``app.dependency_overrides``.
"""
from __future__ import annotations

from typing import Optional

from modules.observability.logger import StructuredLogger
from modules.persistence.plan_store import PlanVersionStore, build_plan_store
from modules.tool_usage.suggestion_tool import SuggestionTool
from modules.tool_usage.travel_time_tool import TravelTimeTool

_store: Optional[PlanVersionStore] = None
_travel_time_tool: Optional[TravelTimeTool] = None
_suggestion_tool: Optional[SuggestionTool] = None


def get_plan_store() -> PlanVersionStore:
    global _store
    if _store is None:
        _store = build_plan_store(audit_logger=StructuredLogger())
    return _store


def get_travel_time_tool() -> TravelTimeTool:
    global _travel_time_tool
    if _travel_time_tool is None:
        _travel_time_tool = TravelTimeTool()
    return _travel_time_tool


def get_suggestion_tool() -> SuggestionTool:
    global _suggestion_tool
    if _suggestion_tool is None:
        _suggestion_tool = SuggestionTool()
    return _suggestion_tool


def close_services() -> None:
    """Release open audit files and HTTP sessions; getters rebuild on next use."""
    global _store, _travel_time_tool, _suggestion_tool
    if _store is not None and _store.audit_logger is not None:
        _store.audit_logger.close()
    if _travel_time_tool is not None:
        _travel_time_tool.session.close()
    _store = _travel_time_tool = _suggestion_tool = None
