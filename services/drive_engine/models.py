import re
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

_MARKER_PATTERN = re.compile(r"^(6-)?q(\d+)$")

SelfSource = Literal["innate", "surface"]


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class CamelModel(BaseModel):
    """Engine outputs: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PairTable(FrozenModel):
    states: Literal["front", "back"]
    pairs: List[Tuple[str, str]]


class ImposedConfig(FrozenModel):
    block_size: int = Field(3, ge=3)
    dissatisfaction_slope: float = 1.25


class MismatchConfig(FrozenModel):
    weight_mode: Literal["demand", "mixed_max"] = "demand"


class Marker(FrozenModel):
    """One raw answer read by a Jung axis, optionally flipped to 6 - answer."""
    question: int = Field(..., ge=1)
    flipped: bool = False

    @model_validator(mode="before")
    @classmethod
    def _parse_shorthand(cls, value):
        if isinstance(value, str):
            match = _MARKER_PATTERN.match(value.strip())
            if not match:
                raise ValueError(f"Invalid marker '{value}', expected 'qN' or '6-qN'")
            return {"question": int(match.group(2)), "flipped": bool(match.group(1))}
        return value


class EnergySide(FrozenModel):
    introvert: Dict[str, List[Marker]]
    extrovert: Dict[str, List[Marker]]
    # Surface wording: introversion is the default unless extroversion shows.
    introvert_when_not_extrovert: bool = False
    # Either compare drive averages ...
    archetype_drives: Optional[Dict[str, List[str]]] = None
    # ... or marker groups to pick the introvert sub-label.
    introvert_archetype: Optional[Dict[str, List[Marker]]] = None

    @model_validator(mode="after")
    def _check_archetype_basis(self):
        if self.archetype_drives is None and self.introvert_archetype is None:
            raise ValueError("Energy side needs either archetype_drives or introvert_archetype")
        return self


class EnergyMarkers(FrozenModel):
    innate: EnergySide
    surface: EnergySide


class PerceptionSide(FrozenModel):
    sensing: List[Marker]
    intuitive: List[Marker]


class PerceptionMarkers(FrozenModel):
    innate: PerceptionSide
    surface: PerceptionSide


class JudgmentSide(FrozenModel):
    thinking: List[Marker]
    feeling: List[Marker]


class JudgmentMarkers(FrozenModel):
    innate: JudgmentSide
    surface: JudgmentSide


class OrientationSide(FrozenModel):
    achievement: List[Marker]
    value: List[Marker]
    exploration: List[Marker]
    pleasure: List[Marker]


class OrientationMarkers(FrozenModel):
    innate: OrientationSide
    surface: OrientationSide


class JungConfig(FrozenModel):
    average_threshold: float = 3.2
    strong_threshold: float = 3.8
    orientation_threshold: float = 3.0
    energy: EnergyMarkers
    perception: PerceptionMarkers
    judgment: JudgmentMarkers
    orientation: OrientationMarkers


class SelfReference(FrozenModel):
    source: SelfSource
    drive: str


class PartnerNeed(SelfReference):
    partner: str
    complement: bool = False
    minus: Optional[str] = None


class ValueNeed(SelfReference):
    label: str
    complement: bool = False


class PartnerBlock(FrozenModel):
    block: str
    weight: SelfReference
    needs: List[PartnerNeed]
    value_needs: List[ValueNeed] = []


class CapComponentSpec(SelfReference):
    reason_key: str


class CapRule(FrozenModel):
    partner: str
    components: List[CapComponentSpec] = Field(..., min_length=1)


class ScriptSupport(FrozenModel):
    innate_support: List[str] = []
    surface_support: List[str] = []


class PartnerConfig(FrozenModel):
    blocks: List[PartnerBlock]
    caps: List[CapRule] = []
    scripts: Dict[str, ScriptSupport] = {}


class DrainThresholds(FrozenModel):
    drive_drain_min: float = 0.25
    drive_transfer_min: float = 0.25
    path_drain_min: float = 0.1
    path_transfer_min: float = 0.1


class InstrumentationReportConfig(FrozenModel):
    low_satisfaction: float = 3.0
    private_context_drives: List[str] = []
    private_context_questions: List[int] = []
    private_context_threshold: float = 3.0


class ReportsConfig(FrozenModel):
    drain: DrainThresholds = DrainThresholds()
    instrumentation: InstrumentationReportConfig = InstrumentationReportConfig()


class EngineConfig(FrozenModel):
    version: str
    drives: List[str] = Field(..., min_length=1)
    aspirational_drive: str
    question_key_template: str = "q{index}_answer"
    direction_midpoint: float = 3.0
    pair_tables: Dict[Literal["innate", "surface"], PairTable]
    imposed: ImposedConfig = ImposedConfig()
    mismatch: MismatchConfig = MismatchConfig()
    jung: JungConfig
    partner: PartnerConfig
    reports: ReportsConfig = ReportsConfig()

    def question_key(self, index: int) -> str:
        return self.question_key_template.format(index=index)


# Custom Error Classes
class IncompleteAssessmentError(ValueError):
    """Raised when a snapshot is requested while one of the three tests is missing."""

    def __init__(self, missing_tests: List[str]):
        self.missing_tests = list(missing_tests)
        super().__init__(f"Missing persona tests: {', '.join(self.missing_tests)}")


class InvalidSubmissionError(ValueError):
    """Custom exception for invalid submission data (e.g., non-numeric answers)."""
    pass


class UnknownProfessionError(ValueError):
    """Raised when a profession subtype or major is not in the catalog."""
    pass
