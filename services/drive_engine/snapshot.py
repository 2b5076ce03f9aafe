# Derived persona snapshot and the pure "should it be recomputed" predicate.

import math
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from services.drive_engine.jung import JungProfile
from services.drive_engine.models import CamelModel
from services.drive_engine.records import RawAssessmentResponse
from services.drive_engine.routes import InstrumentRoute
from services.drive_engine.vectors import DriveVector

REQUIRED_FIELDS = (
    "surface_avg",
    "innate_avg",
    "env",
    "competence",
    "self_interest",
    "td_satisfaction",
    "jung_axes",
)
VECTOR_FIELDS = ("surface_avg", "innate_avg", "td_satisfaction")

_TIMESTAMP = TypeAdapter(Optional[datetime])


class DerivedPersonaSnapshot(CamelModel):
    innate_avg: DriveVector
    surface_avg: DriveVector
    env: DriveVector
    competence: DriveVector
    self_interest: DriveVector
    td_dissatisfaction: DriveVector
    td_satisfaction: DriveVector
    instrument_routes: List[InstrumentRoute]
    surface_drain: DriveVector
    surface_transfer: DriveVector
    surface_adjusted: DriveVector
    surface_adjusted_aspired: DriveVector
    jung_axes: JungProfile
    engine_version: str
    computed_at: datetime
    source_imposed_at: Optional[datetime] = None
    source_surface_at: Optional[datetime] = None
    source_innate_at: Optional[datetime] = None


class RecomputeDecision(CamelModel):
    should_update: bool
    reasons: List[str]


def _stored(existing: Mapping[str, Any], field: str) -> Any:
    if field in existing:
        return existing[field]
    return existing.get(to_camel(field))


def _same_instant(stored: Any, current: Optional[datetime]) -> bool:
    try:
        parsed = _TIMESTAMP.validate_python(stored)
    except ValidationError:
        return False
    return parsed == current


def is_valid_drive_vector(value: Any, drives: Sequence[str]) -> bool:
    if not isinstance(value, Mapping):
        return False
    for drive in drives:
        entry = value.get(drive)
        if isinstance(entry, bool) or not isinstance(entry, (int, float)) or not math.isfinite(entry):
            return False
    return True


def needs_recompute(
    existing: Optional[Union[DerivedPersonaSnapshot, Mapping[str, Any]]],
    imposed: RawAssessmentResponse,
    surface: RawAssessmentResponse,
    innate: RawAssessmentResponse,
    engine_version: str,
    drives: Sequence[str],
    force: bool = False,
) -> RecomputeDecision:
    """
    Compares a stored snapshot (model or its JSON payload) with the current
    tests and engine version. Every reason found is reported, not just the first.
    """
    reasons: List[str] = []
    if force:
        reasons.append("forced")

    if existing is None:
        reasons.append("missing_derived")
        return RecomputeDecision(should_update=True, reasons=reasons)

    if isinstance(existing, DerivedPersonaSnapshot):
        existing = existing.model_dump(mode="json")

    for kind, record in (("imposed", imposed), ("surface", surface), ("innate", innate)):
        if not _same_instant(_stored(existing, f"source_{kind}_at"), record.source_timestamp):
            reasons.append(f"test_changed_{kind}")

    if _stored(existing, "engine_version") != engine_version:
        reasons.append("engine_version_changed")

    for field in REQUIRED_FIELDS:
        if not _stored(existing, field):
            reasons.append(f"missing_{field}")

    for field in VECTOR_FIELDS:
        value = _stored(existing, field)
        if value and not is_valid_drive_vector(value, drives):
            reasons.append(f"invalid_{field}")

    return RecomputeDecision(should_update=bool(reasons), reasons=reasons)
