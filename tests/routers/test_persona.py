import asyncio
import inspect

import pytest
import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from services.drive_engine.engine import DriveDerivationEngine
from services.drive_engine.professions import load_profession_catalog_from_file
from src.routers.persona import (
    get_drive_engine,
    get_profession_catalog,
    get_snapshot_store,
    list_professions,
    partner_profile,
    persona_snapshot,
    profession_fit,
    router as persona_router,
)
from src.services.snapshot_store import SnapshotStore

# Create a FastAPI app instance and include the router for testing
app = FastAPI()
app.include_router(persona_router, prefix="/api/v1")

client = TestClient(app)

QUESTION_COUNTS = {"imposed": 21, "surface": 20, "innate": 17}


def _answers(kind, overrides=None):
    answers = {f"q{i}_answer": 3 for i in range(1, QUESTION_COUNTS[kind] + 1)}
    for index, value in (overrides or {}).items():
        answers[f"q{index}_answer"] = value
    return {"answers": answers, "created_at": "2026-01-05T09:00:00Z"}


def _tests(**overrides):
    """Route-producing tests: innate and surface both answer q1 with 5."""
    tests = {
        "imposed": _answers("imposed"),
        "surface": _answers("surface", {1: 5}),
        "innate": _answers("innate", {1: 5}),
    }
    tests.update(overrides)
    return tests


@pytest.fixture(scope="module")
def catalog(engine):
    return load_profession_catalog_from_file("assets/profession_profiles.yml", engine.drives)


@pytest.fixture
def redis_client():
    mock_client = MagicMock(spec=redis.Redis)
    mock_client.get.return_value = None
    return mock_client


@pytest.fixture(autouse=True)
def overrides(engine, catalog, redis_client):
    app.dependency_overrides[get_drive_engine] = lambda: engine
    app.dependency_overrides[get_profession_catalog] = lambda: catalog
    app.dependency_overrides[get_snapshot_store] = lambda: SnapshotStore(client=redis_client)
    yield
    app.dependency_overrides.clear()


# --- Snapshot ---

def test_snapshot_recomputed_and_stored(redis_client):
    """No stored snapshot → computed, upserted and returned."""
    response = client.post("/api/v1/persona/snapshot", json={"user_id": "user-42", **_tests()})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "recomputed"
    assert body["persisted"] is True
    assert body["reasons"] == ["missing_derived"]
    assert body["reports"] is None
    routes = body["snapshot"]["instrumentRoutes"]
    assert [(r["sd"], r["td"]) for r in routes] == [("Exploration", "Achievement")]
    redis_client.set.assert_called_once()
    assert redis_client.set.call_args.args[0] == "persona_snapshot:user-42"


def test_snapshot_with_reports():
    response = client.post(
        "/api/v1/persona/snapshot", json={"user_id": "user-42", "include_reports": True, **_tests()}
    )
    assert response.status_code == 200
    reports = response.json()["reports"]
    assert reports["drain"]["summary"]["significant"] == 1
    assert reports["instrumentation"]["summaryCounts"] == {"suppression": 1, "prioritization": 0}
    assert len(reports["innate_code"]["code"]) == 4


def test_snapshot_not_persisted_still_returned(redis_client):
    redis_client.set.side_effect = redis.exceptions.ConnectionError("Connection refused")
    response = client.post("/api/v1/persona/snapshot", json={"user_id": "user-42", **_tests()})
    assert response.status_code == 200
    body = response.json()
    assert body["persisted"] is False
    assert "upsert_failed" in body["reasons"]
    assert body["error"].endswith("Connection refused")


def test_endpoints_are_sync():
    for endpoint in (persona_snapshot, profession_fit, partner_profile, list_professions):
        assert not inspect.iscoroutinefunction(endpoint)


def test_redis_calls_run_off_the_event_loop(redis_client):
    """The blocking Redis client is only ever called from a worker thread."""
    loops_seen = []

    def _get(key):
        try:
            loops_seen.append(asyncio.get_running_loop())
        except RuntimeError:
            loops_seen.append(None)
        return None

    redis_client.get.side_effect = _get
    response = client.post("/api/v1/persona/snapshot", json={"user_id": "user-42", **_tests()})
    assert response.status_code == 200
    assert loops_seen == [None]


def test_snapshot_missing_test():
    """Missing surface test → 422 Unprocessable Entity"""
    response = client.post("/api/v1/persona/snapshot", json={"user_id": "user-42", **_tests(surface=None)})
    assert response.status_code == 422
    assert "surface" in response.json()["detail"]


def test_snapshot_non_numeric_answer():
    """Non-numeric answer → 400 Bad Request"""
    bad = _answers("innate", {4: "often"})
    response = client.post("/api/v1/persona/snapshot", json={"user_id": "user-42", **_tests(innate=bad)})
    assert response.status_code == 400
    assert "q4_answer" in response.json()["detail"]


def test_snapshot_unexpected_error():
    """Unexpected engine failure → 500 Internal Server Error"""
    mock_engine = MagicMock(spec=DriveDerivationEngine)
    mock_engine.needs_recompute.side_effect = Exception("A critical engine failure occurred")
    app.dependency_overrides[get_drive_engine] = lambda: mock_engine

    response = client.post("/api/v1/persona/snapshot", json={"user_id": "user-42", **_tests()})
    assert response.status_code == 500
    assert response.json()["detail"] == "Internal Server Error"


# --- Profession fit ---

def test_fit_defaults_to_first_subtype():
    response = client.post("/api/v1/persona/profession-fit", json={"major": "Management", **_tests()})
    assert response.status_code == 200
    results = response.json()["results"]
    assert len(results) == 1
    assert results[0]["profession"] == {"major": "Management", "name": "Executive / General Management"}
    assert 0.0 <= results[0]["matchScore"] <= 5.0


def test_fit_unknown_subtype():
    """Unknown profession → 404 Not Found"""
    response = client.post(
        "/api/v1/persona/profession-fit", json={"major": "Management", "subtype": "Court Jester", **_tests()}
    )
    assert response.status_code == 404


def test_fit_custom_job():
    job = {"name": "Lighthouse keeper", "demand": {"Care": 4, "Exploration": 2}}
    response = client.post("/api/v1/persona/profession-fit", json={"custom_job": job, **_tests()})
    assert response.status_code == 200
    result = response.json()["results"][0]
    assert result["profession"]["major"] == "Custom"
    assert result["profDemand"]["Value"] == 0.0


def test_fit_ranks_whole_catalog():
    response = client.post("/api/v1/persona/profession-fit", json={"sort_by": "overall", "top_n": 5, **_tests()})
    assert response.status_code == 200
    body = response.json()
    assert len(body["results"]) == 65
    assert len(body["top"]) == 5
    assert len(body["bottom"]) == 5


@pytest.mark.parametrize("top_n", [0, -1])
def test_fit_rejects_non_positive_top_n(top_n):
    response = client.post("/api/v1/persona/profession-fit", json={"top_n": top_n, **_tests()})
    assert response.status_code == 422


def test_fit_missing_test():
    response = client.post("/api/v1/persona/profession-fit", json={"major": "Management", **_tests(imposed=None)})
    assert response.status_code == 422


# --- Partner profile ---

def test_partner_profile():
    tests = _tests(surface=_answers("surface"), innate=_answers("innate"))
    response = client.post("/api/v1/persona/partner-profile", json=tests)
    assert response.status_code == 200
    body = response.json()
    assert body["partnerIdeal"]["Care"] == pytest.approx(1.8)
    assert body["capsApplied"]["Value"]["isCapped"] is False


def test_partner_profile_missing_test():
    response = client.post("/api/v1/persona/partner-profile", json=_tests(innate=None))
    assert response.status_code == 422


# --- Catalog ---

def test_list_professions():
    response = client.get("/api/v1/professions")
    assert response.status_code == 200
    body = response.json()
    assert len(body["majors"]) == 23
    assert body["majors"][0]["default_subtype"] == "Executive / General Management"
    assert body["matches"] == []


def test_search_professions():
    response = client.get("/api/v1/professions", params={"q": "legal"})
    assert response.status_code == 200
    matches = response.json()["matches"]
    assert matches and all(m["major"] == "Legal" for m in matches)


def test_health():
    from main import app as main_app
    response = TestClient(main_app).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
