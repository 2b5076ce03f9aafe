import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import redis

from src.services.snapshot_store import SnapshotStore, ensure_persona_snapshot

COMPUTED_AT = datetime(2026, 1, 6, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_client():
    client = MagicMock(spec=redis.Redis)
    client.get.return_value = None
    return client


@pytest.fixture
def store(mock_client):
    return SnapshotStore(client=mock_client, key_prefix="persona_snapshot", ttl_seconds=3600)


@pytest.fixture
def stored_json(engine, route_tests):
    return engine.compute_snapshot(*route_tests, computed_at=COMPUTED_AT).model_dump_json(by_alias=True)


# --- SnapshotStore ---

def test_key_format(store):
    assert store.key("user-42") == "persona_snapshot:user-42"


def test_get_miss(store, mock_client):
    assert store.get("user-42") is None
    mock_client.get.assert_called_once_with("persona_snapshot:user-42")


def test_get_returns_snapshot(store, mock_client, stored_json):
    mock_client.get.return_value = stored_json
    snapshot = store.get("user-42")
    assert snapshot.computed_at == COMPUTED_AT
    assert snapshot.instrument_routes[0].td == "Achievement"


@pytest.mark.parametrize("raw", ["not json", "[1, 2, 3]"])
def test_get_undecodable_payload(store, mock_client, raw):
    mock_client.get.return_value = raw
    assert store.get_payload("user-42") is None
    assert store.get("user-42") is None


def test_get_payload_that_fails_validation(store, mock_client):
    mock_client.get.return_value = json.dumps({"engineVersion": "2026-01-05.v1"})
    assert store.get_payload("user-42") == {"engineVersion": "2026-01-05.v1"}
    assert store.get("user-42") is None


def test_get_redis_error(store, mock_client):
    mock_client.get.side_effect = redis.exceptions.ConnectionError("Connection refused")
    assert store.get("user-42") is None


def test_put_uses_ttl(store, mock_client, engine, route_tests):
    snapshot = engine.compute_snapshot(*route_tests, computed_at=COMPUTED_AT)
    store.put("user-42", snapshot)
    mock_client.set.assert_called_once_with(
        "persona_snapshot:user-42", snapshot.model_dump_json(by_alias=True), ex=3600
    )


def test_put_redis_error(store, mock_client, engine, route_tests):
    mock_client.set.side_effect = redis.exceptions.RedisError("OOM")
    with pytest.raises(redis.exceptions.RedisError, match="OOM"):
        store.put("user-42", engine.compute_snapshot(*route_tests))


# --- ensure_persona_snapshot ---

def test_ensure_missing_tests(store, mock_client, engine, make_record):
    outcome = ensure_persona_snapshot(store, engine, "user-42", make_record("imposed"), None, make_record("innate"))
    assert outcome.status == "missing_tests"
    assert outcome.missing_tests == ["surface"]
    assert outcome.snapshot is None
    mock_client.get.assert_not_called()
    mock_client.set.assert_not_called()


def test_ensure_returns_cached_snapshot(store, mock_client, engine, route_tests, stored_json):
    mock_client.get.return_value = stored_json
    outcome = ensure_persona_snapshot(store, engine, "user-42", *route_tests)
    assert outcome.status == "cached"
    assert outcome.persisted is True
    assert outcome.reasons == []
    assert outcome.snapshot.computed_at == COMPUTED_AT
    mock_client.set.assert_not_called()


def test_ensure_recomputes_on_miss(store, mock_client, engine, route_tests):
    outcome = ensure_persona_snapshot(store, engine, "user-42", *route_tests)
    assert outcome.status == "recomputed"
    assert outcome.reasons == ["missing_derived"]
    assert outcome.persisted is True
    assert outcome.error is None
    mock_client.set.assert_called_once()


def test_ensure_forced(store, mock_client, engine, route_tests, stored_json):
    mock_client.get.return_value = stored_json
    outcome = ensure_persona_snapshot(store, engine, "user-42", *route_tests, force=True)
    assert outcome.status == "recomputed"
    assert outcome.reasons == ["forced"]


def test_ensure_recomputes_unreadable_payload(store, mock_client, engine, route_tests, stored_json):
    payload = json.loads(stored_json)
    del payload["instrumentRoutes"]
    mock_client.get.return_value = json.dumps(payload)
    outcome = ensure_persona_snapshot(store, engine, "user-42", *route_tests)
    assert outcome.status == "recomputed"
    assert outcome.reasons == ["invalid_payload"]
    assert len(outcome.snapshot.instrument_routes) == 1


def test_ensure_reports_upsert_failure(store, mock_client, engine, route_tests):
    mock_client.set.side_effect = redis.exceptions.ConnectionError("Connection refused")
    outcome = ensure_persona_snapshot(store, engine, "user-42", *route_tests)
    assert outcome.status == "recomputed"
    assert outcome.snapshot is not None
    assert outcome.persisted is False
    assert outcome.reasons == ["missing_derived", "upsert_failed"]
    assert "user-42" in outcome.error
    assert outcome.error.endswith("Connection refused")
