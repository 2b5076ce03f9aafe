import math
from datetime import datetime
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from services.drive_engine.models import InvalidSubmissionError

TestKind = Literal["imposed", "surface", "innate"]
TEST_KINDS = ("imposed", "surface", "innate")

ANSWER_MIN = 0
ANSWER_MAX = 5

_TIMESTAMP_FIELDS = ("created_at", "updated_at")


def _coerce_answer(key: str, value: Any) -> int:
    """Turns one stored answer into an int in [0, 5]; None/blank means unanswered."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    if isinstance(value, bool):
        raise InvalidSubmissionError(f"Answer for '{key}' must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidSubmissionError(f"Answer for '{key}' must be numeric, got {value!r}")
    if not math.isfinite(number):
        raise InvalidSubmissionError(f"Answer for '{key}' must be finite, got {value!r}")
    return int(max(ANSWER_MIN, min(ANSWER_MAX, round(number))))


class RawAssessmentResponse(BaseModel):
    """
    One completed persona test: question key -> answer in [0, 5] (0 = unanswered).

    Values are validated once here; everything downstream treats answers as
    clean ints.
    """
    model_config = ConfigDict(frozen=True)

    kind: TestKind
    answers: Dict[str, int]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("answers", mode="before")
    @classmethod
    def _clamp_answers(cls, value):
        if not isinstance(value, Mapping):
            return value
        cleaned = {}
        for key, answer in value.items():
            try:
                cleaned[str(key)] = _coerce_answer(str(key), answer)
            except InvalidSubmissionError as e:
                # Surfaces as a pydantic ValidationError when built via the constructor.
                raise ValueError(str(e))
        return cleaned

    @classmethod
    def from_answers(
        cls,
        kind: TestKind,
        answers: Mapping[str, Any],
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> "RawAssessmentResponse":
        """Builds a record, raising InvalidSubmissionError on non-numeric answers."""
        cleaned = {str(key): _coerce_answer(str(key), value) for key, value in answers.items()}
        return cls(kind=kind, answers=cleaned, created_at=created_at, updated_at=updated_at)

    @classmethod
    def from_row(cls, kind: TestKind, row: Mapping[str, Any], key_suffix: str = "_answer") -> "RawAssessmentResponse":
        """Builds a record from a flat storage row (q1_answer, ..., created_at, updated_at)."""
        answers = {key: value for key, value in row.items() if key.startswith("q") and key.endswith(key_suffix)}
        timestamps = {name: row.get(name) for name in _TIMESTAMP_FIELDS}
        return cls.from_answers(kind, answers, **timestamps)

    @property
    def source_timestamp(self) -> Optional[datetime]:
        return self.updated_at or self.created_at

    def answer(self, key: str) -> int:
        return self.answers.get(key, 0)
