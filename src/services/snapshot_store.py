import json
import logging
from typing import Any, Dict, List, Literal, Optional

import redis
from pydantic import ValidationError

from services.drive_engine.engine import DriveDerivationEngine, missing_test_kinds
from services.drive_engine.models import CamelModel
from services.drive_engine.records import RawAssessmentResponse
from services.drive_engine.snapshot import DerivedPersonaSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    Persists one DerivedPersonaSnapshot per user in Redis as camelCase JSON.

    Reads never raise: a miss, an undecodable payload and a Redis error all
    come back as None. Write failures raise and are reported by
    ensure_persona_snapshot.
    """
    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "persona_snapshot",
        ttl_seconds: Optional[int] = None,
    ):
        self.client = client if client is not None else redis.Redis.from_url(redis_url, decode_responses=True)
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    def key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    def get_payload(self, user_id: str) -> Optional[Dict[str, Any]]:
        key = self.key(user_id)
        try:
            raw = self.client.get(key)
        except redis.exceptions.RedisError as e:
            logger.error(f"Error getting snapshot key '{key}': {e}")
            return None
        if raw is None:
            logger.debug(f"Snapshot miss: key='{key}'")
            return None
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Could not decode snapshot stored at '{key}': {e}")
            return None
        if not isinstance(payload, dict):
            logger.warning(f"Snapshot stored at '{key}' is not a JSON object")
            return None
        return payload

    def get(self, user_id: str) -> Optional[DerivedPersonaSnapshot]:
        payload = self.get_payload(user_id)
        if payload is None:
            return None
        try:
            return DerivedPersonaSnapshot.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Stored snapshot for user '{user_id}' failed validation: {e}")
            return None

    def put(self, user_id: str, snapshot: DerivedPersonaSnapshot) -> None:
        """Upserts the snapshot. Redis errors propagate to the caller."""
        key = self.key(user_id)
        self.client.set(key, snapshot.model_dump_json(by_alias=True), ex=self.ttl_seconds)
        logger.debug(f"Snapshot stored: key='{key}', expiry={self.ttl_seconds}s")


class EnsureOutcome(CamelModel):
    status: Literal["cached", "recomputed", "missing_tests"]
    snapshot: Optional[DerivedPersonaSnapshot] = None
    reasons: List[str] = []
    persisted: bool = False
    error: Optional[str] = None
    missing_tests: List[str] = []


def ensure_persona_snapshot(
    store: SnapshotStore,
    engine: DriveDerivationEngine,
    user_id: str,
    imposed: Optional[RawAssessmentResponse],
    surface: Optional[RawAssessmentResponse],
    innate: Optional[RawAssessmentResponse],
    force: bool = False,
) -> EnsureOutcome:
    """
    Returns the stored snapshot when it is still current, otherwise recomputes
    and upserts it. Two concurrent callers may both recompute; the snapshot is
    deterministic, so whichever write lands last is equally correct.
    """
    missing = missing_test_kinds(imposed, surface, innate)
    if missing:
        logger.info(f"Snapshot for user '{user_id}' not derivable, missing tests: {missing}")
        return EnsureOutcome(status="missing_tests", missing_tests=missing)

    existing = store.get_payload(user_id)
    decision = engine.needs_recompute(existing, imposed, surface, innate, force=force)
    reasons = list(decision.reasons)

    if not decision.should_update:
        try:
            cached = DerivedPersonaSnapshot.model_validate(existing)
            return EnsureOutcome(status="cached", snapshot=cached, persisted=True)
        except ValidationError as e:
            logger.warning(f"Stored snapshot for user '{user_id}' is unreadable, recomputing: {e}")
            reasons.append("invalid_payload")

    logger.info(f"Recomputing snapshot for user '{user_id}': {reasons}")
    snapshot = engine.compute_snapshot(imposed, surface, innate)
    try:
        store.put(user_id, snapshot)
    except redis.exceptions.RedisError as e:
        logger.error(f"Error persisting snapshot for user '{user_id}': {e}")
        return EnsureOutcome(
            status="recomputed",
            snapshot=snapshot,
            reasons=reasons + ["upsert_failed"],
            persisted=False,
            error=f"Could not persist snapshot for user '{user_id}': {e}",
        )
    return EnsureOutcome(status="recomputed", snapshot=snapshot, reasons=reasons, persisted=True)
