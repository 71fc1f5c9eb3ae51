import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from api import deps
from api.server import app
from modules.persistence.plan_store import InMemoryPlanBackend, PlanStoreError, PlanVersionStore
from modules.tool_usage.suggestion_tool import SuggestionTool
from modules.tool_usage.travel_time_tool import TravelTimeTool

SUGGESTION = [{
    "day": 1,
    "theme": "Xinyi",
    "places": [
        {"name": "Taipei 101", "type": "tourist_attraction", "time": "10:00 - 11:30", "reason": "views"},
        {"name": "Din Tai Fung", "type": "restaurant", "time": "11:30 - 12:30", "reason": "lunch"},
    ],
}]


def stop_payload(stop_id, name, start, end, tags=(), **extra):
    return {"id": stop_id, "name": name, "start_time": start, "end_time": end,
            "category_tags": list(tags), **extra}


def plan_payload(label):
    return {"day_plans": [{"day_number": 1, "stops": [stop_payload(label, label, "09:00", "10:00")]}]}


@pytest.fixture
def store():
    return PlanVersionStore(backend=InMemoryPlanBackend())


@pytest.fixture
def llm():
    return MagicMock(return_value=json.dumps(SUGGESTION))


@pytest.fixture
def client(store, llm):
    app.dependency_overrides[deps.get_plan_store] = lambda: store
    app.dependency_overrides[deps.get_travel_time_tool] = (
        lambda: TravelTimeTool(api_key="", session=MagicMock())
    )
    app.dependency_overrides[deps.get_suggestion_tool] = lambda: SuggestionTool(llm_call=llm)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ── Itinerary ──────────────────────────────────────────────────────────────────

def test_reschedule_shifts_museum_after_breakfast(client):
    resp = client.post("/v1/itinerary/reschedule", json={"stops": [
        stop_payload("m", "Museum", "10:00", "11:30", ("museum",)),
        stop_payload("b", "Breakfast", "09:00", "10:00"),
    ]})
    assert resp.status_code == 200
    stops = resp.json()["stops"]
    assert [s["id"] for s in stops] == ["b", "m"]
    assert (stops[1]["start_time"], stops[1]["end_time"]) == ("10:15", "11:45")
    assert stops[1]["duration_minutes"] == 90


def test_reschedule_with_live_travel_times_returns_legs(client):
    resp = client.post("/v1/itinerary/reschedule", json={
        "use_live_travel_times": True,
        "stops": [
            stop_payload("a", "A", "09:00", "10:00", coordinate={"latitude": 25.0340, "longitude": 121.5645}),
            stop_payload("b", "B", "10:00", "11:00", coordinate={"latitude": 25.0478, "longitude": 121.5170}),
        ],
    })
    body = resp.json()
    assert len(body["legs"]) == 1
    leg_minutes = body["legs"][0]["minutes"]
    shifted = 10 * 60 + leg_minutes + 10
    assert body["stops"][1]["start_time"] == f"{shifted // 60:02d}:{shifted % 60:02d}"


def test_reschedule_can_pin_manual_stops(client):
    resp = client.post("/v1/itinerary/reschedule", json={
        "protect_manual_stops": True,
        "stops": [
            stop_payload("a", "Temple", "09:00", "10:00"),
            stop_payload("mine", "My pick", "09:30", "10:30", is_manual=True),
        ],
    })
    assert resp.status_code == 200
    assert resp.json()["stops"][1]["start_time"] == "09:30"


def test_reschedule_past_midnight_returns_extended_hours(client):
    resp = client.post("/v1/itinerary/reschedule", json={"stops": [
        stop_payload("a", "Late show", "23:00", "23:50"),
        stop_payload("b", "Supper", "23:30", "00:30"),
    ]})
    stops = resp.json()["stops"]
    assert (stops[1]["start_time"], stops[1]["end_time"]) == ("24:05", "25:05")


def test_invalid_stop_is_rejected_with_errors(client):
    resp = client.post("/v1/itinerary/reschedule", json={"stops": [
        stop_payload("a", "A", "9am", "10:00"),
    ]})
    assert resp.status_code == 422
    assert resp.json()["detail"][0].startswith("stops[0]: start_time=")


def test_order_endpoint(client):
    resp = client.post("/v1/itinerary/order", json={"stops": [
        stop_payload("bar", "Bar", "09:00", "10:00", ("bar",)),
        stop_payload("cafe", "Cafe", "11:00", "12:00", ("cafe",)),
    ]})
    body = resp.json()
    assert [s["id"] for s in body["stops"]] == ["cafe", "bar"]
    assert body["priorities"] == [1.0, 5.0]


def test_legs_and_matrix_endpoints(client):
    stops = [
        stop_payload("a", "A", "09:00", "10:00", coordinate={"latitude": 25.0340, "longitude": 121.5645}),
        stop_payload("b", "B", "10:30", "11:00", coordinate={"latitude": 25.0478, "longitude": 121.5170}),
        stop_payload("c", "C", "11:30", "12:00"),
    ]
    legs = client.post("/v1/itinerary/legs", json={"stops": stops, "mode": "walking"}).json()["legs"]
    assert [(leg["from_index"], leg["to_index"]) for leg in legs] == [(0, 1), (1, 2)]

    matrix = client.post("/v1/itinerary/matrix", json={"stops": stops, "with_distance": True}).json()
    assert matrix["source"] == "local"
    assert [matrix["minutes"][i][i] for i in range(3)] == [0, 0, 0]
    assert len(matrix["km"]) == 3


def test_suggest_uses_generative_source(client):
    resp = client.post("/v1/itinerary/suggest", json={"region": "Taipei", "days": 1})
    body = resp.json()
    assert body["source"] == "suggestion"
    stops = body["plan"]["day_plans"][0]["stops"]
    assert [s["name"] for s in stops] == ["Taipei 101", "Din Tai Fung"]
    assert stops[1]["start_time"] == "11:45"


def test_suggest_falls_back_to_catalog_candidates(client, llm):
    llm.side_effect = RuntimeError("GEMINI_API_KEY missing")
    resp = client.post("/v1/itinerary/suggest", json={
        "region": "Taipei",
        "days": 1,
        "candidates": [
            {"place_id": "p1", "name": "Palace Museum", "types": ["museum"],
             "rating": 4.7, "user_ratings_total": 900, "lat": 25.1024, "lng": 121.5485},
        ],
    })
    body = resp.json()
    assert body["source"] == "catalog"
    assert body["plan"]["day_plans"][0]["stops"][0]["start_time"] == "09:00"


def test_suggest_without_any_source_is_503(client, llm):
    llm.return_value = "sorry, I can't help"
    resp = client.post("/v1/itinerary/suggest", json={"region": "Taipei", "days": 1})
    assert resp.status_code == 503
    assert "please try again" in resp.json()["detail"]


# ── Trips ──────────────────────────────────────────────────────────────────────

def test_version_lifecycle(client):
    for label in ("v1", "v2", "v3"):
        resp = client.post("/v1/trips/g1/versions", json={
            "plan": plan_payload(label),
            "meta": {"region": "Taipei", "days": 1},
            "group_name": "Lin family",
        })
        assert resp.status_code == 200
    assert resp.json() == {"trip_id": "g1", "version": 3, "adopted": True}

    listed = client.get("/v1/trips/g1/versions").json()["versions"]
    assert [v["version"] for v in listed] == [3, 2, 1]

    adopted = client.post("/v1/trips/g1/adopt", json={"version": 2}).json()
    assert adopted["version"] == 2

    current = client.get("/v1/trips/g1/adopted").json()
    assert current["version"] == 2
    assert current["plan"]["day_plans"][0]["stops"][0]["name"] == "v2"

    trip = client.get("/v1/trips/g1").json()
    assert trip["group_name"] == "Lin family"
    assert trip["last_saved_version"] == 3
    assert trip["adopted_version"] == 2

    one = client.get("/v1/trips/g1/versions/1").json()
    assert one["plan"]["day_plans"][0]["stops"][0]["name"] == "v1"


def test_adopt_missing_version_is_404_and_keeps_snapshot(client):
    client.post("/v1/trips/g1/versions", json={"plan": plan_payload("v1")})
    resp = client.post("/v1/trips/g1/adopt", json={"version": 7})
    assert resp.status_code == 404
    assert client.get("/v1/trips/g1/adopted").json()["version"] == 1


def test_unknown_trip_lookups_are_404(client):
    assert client.get("/v1/trips/nope").status_code == 404
    assert client.get("/v1/trips/nope/adopted").status_code == 404
    assert client.get("/v1/trips/nope/versions/1").status_code == 404


def test_explicit_version_is_saved_without_adopting(client):
    resp = client.post("/v1/trips/g1/versions", json={"plan": plan_payload("x"), "version": 4})
    assert resp.json() == {"trip_id": "g1", "version": 4, "adopted": False}
    assert client.get("/v1/trips/g1/adopted").status_code == 404

    dup = client.post("/v1/trips/g1/versions", json={"plan": plan_payload("y"), "version": 4})
    assert dup.status_code == 409


def test_invalid_plan_payload_is_422(client):
    bad = {"day_plans": [{"day_number": 0, "stops": []}]}
    resp = client.post("/v1/trips/g1/versions", json={"plan": bad})
    assert resp.status_code == 422


def test_storage_failure_is_503(client, store, monkeypatch):
    monkeypatch.setattr(store, "get_adopted", MagicMock(side_effect=PlanStoreError("down")))
    monkeypatch.setattr(store, "save_version", MagicMock(side_effect=PlanStoreError("down")))

    resp = client.get("/v1/trips/g1/adopted")
    assert resp.status_code == 503
    assert "please try again" in resp.json()["detail"]
    assert client.post("/v1/trips/g1/versions", json={"plan": plan_payload("x")}).status_code == 503


def test_health_reports_degraded_database(client, monkeypatch):
    from api.routes import health as health_route

    monkeypatch.setattr(health_route.config, "PLAN_STORE_BACKEND", "postgres")
    monkeypatch.setattr(health_route, "check_connection", lambda: False)
    body = client.get("/v1/health").json()
    assert body["status"] == "degraded"
    assert body["database"] is False


def test_history_lists_audit_events(tmp_path):
    from modules.observability.logger import StructuredLogger

    audited = PlanVersionStore(audit_logger=StructuredLogger(logs_dir=tmp_path))
    app.dependency_overrides[deps.get_plan_store] = lambda: audited
    try:
        client = TestClient(app)
        client.post("/v1/trips/g1/versions", json={"plan": plan_payload("v1")})
        client.post("/v1/trips/g1/versions", json={"plan": plan_payload("v2"), "adopt": False})
        events = client.get("/v1/trips/g1/history").json()["events"]
    finally:
        app.dependency_overrides.clear()

    assert [e["event_type"] for e in events] == ["VERSION_SAVED", "PLAN_ADOPTED", "VERSION_SAVED"]
    assert [e["payload"]["version"] for e in events] == [1, 1, 2]


def test_shutdown_closes_audit_files_and_sessions(monkeypatch):
    audit = MagicMock()
    session = MagicMock()
    monkeypatch.setattr(deps, "_store", PlanVersionStore(backend=InMemoryPlanBackend(), audit_logger=audit))
    monkeypatch.setattr(deps, "_travel_time_tool", TravelTimeTool(api_key="", session=session))

    with TestClient(app):
        pass

    audit.close.assert_called_once_with()
    session.close.assert_called_once_with()
    assert deps._store is None
    assert deps._travel_time_tool is None
