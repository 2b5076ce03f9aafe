from datetime import datetime, timezone

import pytest

from services.drive_engine.engine import DriveDerivationEngine, missing_test_kinds
from services.drive_engine.models import IncompleteAssessmentError
from services.drive_engine.snapshot import DerivedPersonaSnapshot, needs_recompute

ENGINE_CONFIG_PATH = "assets/drive_engine.yml"
COMPUTED_AT = datetime(2026, 1, 6, 12, 0, tzinfo=timezone.utc)
LATER = datetime(2026, 2, 1, 8, 30, tzinfo=timezone.utc)


@pytest.fixture
def stored(engine, route_tests):
    """The JSON payload a store would hold for route_tests."""
    snapshot = engine.compute_snapshot(*route_tests, computed_at=COMPUTED_AT)
    return snapshot.model_dump(mode="json", by_alias=True)


def test_engine_loads_config_from_path():
    engine = DriveDerivationEngine(config_path=ENGINE_CONFIG_PATH)
    assert engine.engine_version == "2026-01-05.v1"
    assert engine.drives[0] == "Exploration"
    assert len(engine.drives) == 7


def test_snapshot_carries_version_and_sources(engine, route_tests):
    snapshot = engine.compute_snapshot(*route_tests, computed_at=COMPUTED_AT)
    assert snapshot.engine_version == engine.engine_version
    assert snapshot.computed_at == COMPUTED_AT
    assert snapshot.source_imposed_at == route_tests[0].created_at
    assert set(snapshot.surface_avg) == set(engine.drives)


def test_snapshot_is_deterministic(engine, route_tests):
    first = engine.compute_snapshot(*route_tests, computed_at=COMPUTED_AT)
    second = engine.compute_snapshot(*route_tests, computed_at=COMPUTED_AT)
    for field in ("innate_avg", "surface_avg", "surface_drain", "surface_adjusted_aspired", "td_satisfaction"):
        left, right = getattr(first, field), getattr(second, field)
        assert all(abs(left[d] - right[d]) <= 1e-9 for d in engine.drives)
    assert first.instrument_routes == second.instrument_routes
    assert first.jung_axes == second.jung_axes


def test_compute_snapshot_requires_all_tests(engine, make_record):
    with pytest.raises(IncompleteAssessmentError) as exc_info:
        engine.compute_snapshot(make_record("imposed"), None, None)
    assert exc_info.value.missing_tests == ["surface", "innate"]


def test_derive_reports_missing_tests(engine, make_record):
    outcome = engine.derive(None, make_record("surface"), make_record("innate"))
    assert outcome.status == "missing_tests"
    assert outcome.snapshot is None
    assert outcome.missing_tests == ["imposed"]


def test_derive_ok(engine, neutral_tests):
    outcome = engine.derive(*neutral_tests, computed_at=COMPUTED_AT)
    assert outcome.status == "ok"
    assert outcome.missing_tests == []
    assert outcome.snapshot.instrument_routes == []


def test_missing_test_kinds_keeps_canonical_order(make_record):
    assert missing_test_kinds(None, None, None) == ["imposed", "surface", "innate"]
    assert missing_test_kinds(make_record("imposed"), make_record("surface"), make_record("innate")) == []


def test_snapshot_serializes_camel_case(engine, route_tests):
    payload = engine.compute_snapshot(*route_tests, computed_at=COMPUTED_AT).model_dump(by_alias=True)
    assert "surfaceAdjustedAspired" in payload
    assert "tdSatisfaction" in payload
    assert "pathDrain" in payload["instrumentRoutes"][0]


def test_snapshot_round_trips_through_payload(engine, stored):
    snapshot = DerivedPersonaSnapshot.model_validate(stored)
    assert snapshot.computed_at == COMPUTED_AT
    assert snapshot.instrument_routes[0].sd == "Exploration"


def test_persona_code_from_snapshot(engine, neutral_tests):
    snapshot = engine.compute_snapshot(*neutral_tests)
    assert engine.persona_code(snapshot).code == "XXXX"
    assert engine.persona_code(snapshot, side="surface").code == "IXXX"


def test_partner_profile_from_snapshot(engine, neutral_tests):
    snapshot = engine.compute_snapshot(*neutral_tests)
    result = engine.partner_profile(snapshot.innate_avg, snapshot.surface_avg)
    assert result.partner_ideal["Care"] == pytest.approx(1.8)


# --- Recompute predicate ---

def test_fresh_snapshot_needs_no_update(engine, route_tests, stored):
    decision = engine.needs_recompute(stored, *route_tests)
    assert decision.should_update is False
    assert decision.reasons == []


def test_model_snapshot_is_accepted(engine, route_tests):
    snapshot = engine.compute_snapshot(*route_tests)
    assert engine.needs_recompute(snapshot, *route_tests).should_update is False


def test_missing_snapshot(engine, route_tests):
    decision = engine.needs_recompute(None, *route_tests)
    assert decision.should_update is True
    assert decision.reasons == ["missing_derived"]


def test_forced_recompute(engine, route_tests, stored):
    decision = engine.needs_recompute(stored, *route_tests, force=True)
    assert decision.should_update is True
    assert decision.reasons == ["forced"]


def test_changed_test_is_detected(engine, make_record, stored):
    surface = make_record("surface", {1: 5}, updated_at=LATER)
    decision = engine.needs_recompute(stored, make_record("imposed"), surface, make_record("innate", {1: 5}))
    assert decision.reasons == ["test_changed_surface"]


def test_engine_version_change(engine, route_tests, stored):
    decision = needs_recompute(stored, *route_tests, "2027-01-01.v2", engine.drives)
    assert decision.reasons == ["engine_version_changed"]


def test_missing_fields_are_reported(engine, route_tests, stored):
    del stored["jungAxes"]
    stored["tdSatisfaction"] = {}
    decision = engine.needs_recompute(stored, *route_tests)
    assert decision.should_update is True
    assert decision.reasons == ["missing_td_satisfaction", "missing_jung_axes"]


def test_invalid_vectors_are_reported(engine, route_tests, stored):
    stored["surfaceAvg"] = {"Exploration": 3.0}
    stored["innateAvg"]["Care"] = "high"
    decision = engine.needs_recompute(stored, *route_tests)
    assert decision.reasons == ["invalid_surface_avg", "invalid_innate_avg"]


def test_snake_case_payload_is_understood(engine, route_tests):
    snapshot = engine.compute_snapshot(*route_tests)
    assert engine.needs_recompute(snapshot.model_dump(mode="json"), *route_tests).reasons == []


def test_every_reason_is_collected(engine, make_record, stored):
    stored["engineVersion"] = "old"
    decision = engine.needs_recompute(
        stored,
        make_record("imposed", updated_at=LATER),
        make_record("surface", {1: 5}, updated_at=LATER),
        make_record("innate", {1: 5}),
        force=True,
    )
    assert decision.reasons == [
        "forced", "test_changed_imposed", "test_changed_surface", "engine_version_changed",
    ]
