# Four-axis typological classification (energy, perception, judgment,
# orientation) read from small marker subsets of the raw innate and surface
# answers.

from typing import Dict, List, Literal, Optional, Sequence

from services.drive_engine.models import (
    CamelModel,
    EngineConfig,
    EnergySide,
    JungConfig,
    Marker,
)
from services.drive_engine.records import RawAssessmentResponse
from services.drive_engine.vectors import COMPLEMENT, DriveVector, average, clamp_score

AMBIVALENT = "Ambivalent"
SideName = Literal["innate", "surface"]

ENERGY_ARCHETYPES = {
    "introvert": {"exploration": "Exploration Introvert", "care": "Care Introvert"},
    "extrovert": {
        "dominance": "Dominant Extrovert",
        "pleasure": "Pleasure Extrovert",
        "affiliation": "Social Extrovert",
    },
}
ENERGY_AMBIVALENT_ARCHETYPE = "Adaptive Navigator"

# pole -> (archetype above the strong threshold, archetype otherwise)
PERCEPTION_ARCHETYPES = {
    "Sensing": ("Detail Specialist", "Pragmatic Realist"),
    "Intuitive": ("Conceptual Visionary", "Insight Explorer"),
}
PERCEPTION_AMBIVALENT_ARCHETYPE = "Perceptive Generalist"

JUDGMENT_ARCHETYPES = {
    "Thinking": ("Analytical Architect", "Principled Strategist"),
    "Feeling": ("Moral Convictionist", "Empathetic Guardian"),
}
JUDGMENT_AMBIVALENT_ARCHETYPE = "Adaptive Mediator"

POLE_LETTERS = {
    "Introvert": "I",
    "Extrovert": "E",
    "Sensing": "S",
    "Intuitive": "N",
    "Thinking": "T",
    "Feeling": "F",
    "Judging": "J",
    "Perspective": "P",
    AMBIVALENT: "X",
}

ARCHETYPE_ANNOTATIONS = {
    "energy": {
        "Exploration Introvert": "I_exploration",
        "Care Introvert": "I_care",
        "Dominant Extrovert": "E_dominance",
        "Pleasure Extrovert": "E_pleasure",
        "Social Extrovert": "E_affiliation",
        "Adaptive Navigator": "X_adaptive",
    },
    "perception": {
        "Detail Specialist": "S_detail",
        "Pragmatic Realist": "S_practical",
        "Conceptual Visionary": "N_vision",
        "Insight Explorer": "N_patterns",
        "Perceptive Generalist": "X_flexible",
    },
    "judgment": {
        "Analytical Architect": "T_logic",
        "Principled Strategist": "T_principles",
        "Empathetic Guardian": "F_care",
        "Moral Convictionist": "F_values",
        "Adaptive Mediator": "X_contextual",
    },
    "orientation": {
        "Goal Judging": "J_goal",
        "Process Judging": "J_process",
        "Curious Perspective": "P_curious",
        "Fun Perspective": "P_fun",
        AMBIVALENT: "X_adaptive",
    },
}

AXES = ("energy", "perception", "judgment", "orientation")


class JungEvidence(CamelModel):
    markers: List[float]
    avg: Optional[float] = None
    flags: Dict[str, bool] = {}


class SideResult(CamelModel):
    pole: str
    archetype_id: str
    evidence: JungEvidence


class AxisResult(CamelModel):
    axis: str
    innate: SideResult
    surface: SideResult
    aligned: bool


class JungProfile(CamelModel):
    energy: AxisResult
    perception: AxisResult
    judgment: AxisResult
    orientation: AxisResult

    def axes(self) -> List[AxisResult]:
        return [getattr(self, axis) for axis in AXES]


class PersonaCode(CamelModel):
    side: SideName
    code: str
    letters: Dict[str, str]
    annotations: Dict[str, str]


def read_markers(record: RawAssessmentResponse, markers: Sequence[Marker], config: EngineConfig) -> List[float]:
    """Marker values with unanswered questions left out."""
    values = []
    for marker in markers:
        raw = record.answer(config.question_key(marker.question))
        if raw == 0:
            continue
        values.append(float(COMPLEMENT - raw if marker.flipped else raw))
    return values


def _avg_above(values: List[float], threshold: float) -> bool:
    return bool(values) and average(values) > threshold


def _all_above(values: List[float], threshold: float) -> bool:
    return bool(values) and all(v > threshold for v in values)


def _first_max(scores: Dict[str, float]) -> str:
    best_key, best = None, None
    for key, score in scores.items():
        if best is None or score > best:
            best_key, best = key, score
    return best_key


def _energy_side(
    record: RawAssessmentResponse,
    side: EnergySide,
    drive_avg: DriveVector,
    config: EngineConfig,
) -> SideResult:
    threshold = config.jung.average_threshold
    intro_groups = {k: read_markers(record, ms, config) for k, ms in side.introvert.items()}
    extro_groups = {k: read_markers(record, ms, config) for k, ms in side.extrovert.items()}

    is_extro = any(_avg_above(g, threshold) for g in extro_groups.values())
    is_intro = any(_avg_above(g, threshold) for g in intro_groups.values())
    if side.introvert_when_not_extrovert:
        is_intro = is_intro or not is_extro

    markers = [v for g in intro_groups.values() for v in g] + [v for g in extro_groups.values() for v in g]
    evidence = JungEvidence(markers=markers, flags={"introvert": is_intro, "extrovert": is_extro})

    if is_intro == is_extro:
        return SideResult(pole=AMBIVALENT, archetype_id=ENERGY_AMBIVALENT_ARCHETYPE, evidence=evidence)

    pole_key = "introvert" if is_intro else "extrovert"
    if side.archetype_drives is not None:
        scores = {d.lower(): clamp_score(drive_avg.get(d, 0.0)) for d in side.archetype_drives[pole_key]}
    elif pole_key == "introvert":
        scores = {k: average(read_markers(record, ms, config)) for k, ms in side.introvert_archetype.items()}
    else:
        scores = {k: average(g) for k, g in extro_groups.items()}

    return SideResult(
        pole=pole_key.capitalize(),
        archetype_id=ENERGY_ARCHETYPES[pole_key][_first_max(scores)],
        evidence=evidence,
    )


def _binary_side(
    pole_a: str,
    values_a: List[float],
    pole_b: str,
    values_b: List[float],
    archetypes: Dict[str, tuple],
    ambivalent_archetype: str,
    jung: JungConfig,
) -> SideResult:
    is_a = _avg_above(values_a, jung.average_threshold)
    is_b = _avg_above(values_b, jung.average_threshold)
    flags = {pole_a.lower(): is_a, pole_b.lower(): is_b}

    if is_a == is_b:
        return SideResult(
            pole=AMBIVALENT,
            archetype_id=ambivalent_archetype,
            evidence=JungEvidence(markers=values_a + values_b, flags=flags),
        )

    pole, values = (pole_a, values_a) if is_a else (pole_b, values_b)
    avg = average(values)
    strong, regular = archetypes[pole]
    return SideResult(
        pole=pole,
        archetype_id=strong if avg > jung.strong_threshold else regular,
        evidence=JungEvidence(markers=values, avg=avg, flags=flags),
    )


def _axis(axis: str, innate: SideResult, surface: SideResult) -> AxisResult:
    return AxisResult(axis=axis, innate=innate, surface=surface, aligned=innate.pole == surface.pole)


def determine_energy(
    innate: RawAssessmentResponse,
    surface: RawAssessmentResponse,
    innate_avg: DriveVector,
    surface_avg: DriveVector,
    config: EngineConfig,
) -> AxisResult:
    markers = config.jung.energy
    return _axis(
        "energy",
        _energy_side(innate, markers.innate, innate_avg, config),
        _energy_side(surface, markers.surface, surface_avg, config),
    )


def determine_perception(innate: RawAssessmentResponse, surface: RawAssessmentResponse, config: EngineConfig) -> AxisResult:
    markers = config.jung.perception

    def side(record, table):
        return _binary_side(
            "Sensing", read_markers(record, table.sensing, config),
            "Intuitive", read_markers(record, table.intuitive, config),
            PERCEPTION_ARCHETYPES, PERCEPTION_AMBIVALENT_ARCHETYPE, config.jung,
        )

    return _axis("perception", side(innate, markers.innate), side(surface, markers.surface))


def determine_judgment(innate: RawAssessmentResponse, surface: RawAssessmentResponse, config: EngineConfig) -> AxisResult:
    markers = config.jung.judgment

    def side(record, table):
        return _binary_side(
            "Thinking", read_markers(record, table.thinking, config),
            "Feeling", read_markers(record, table.feeling, config),
            JUDGMENT_ARCHETYPES, JUDGMENT_AMBIVALENT_ARCHETYPE, config.jung,
        )

    return _axis("judgment", side(innate, markers.innate), side(surface, markers.surface))


def determine_orientation(innate: RawAssessmentResponse, surface: RawAssessmentResponse, config: EngineConfig) -> AxisResult:
    """Judging vs Perspective; a group counts only when every marker exceeds the threshold."""
    markers = config.jung.orientation
    threshold = config.jung.orientation_threshold

    def side(record, table):
        ach = read_markers(record, table.achievement, config)
        val = read_markers(record, table.value, config)
        exp = read_markers(record, table.exploration, config)
        ple = read_markers(record, table.pleasure, config)

        is_j = _all_above(ach, threshold) or _all_above(val, threshold)
        is_p = _all_above(exp, threshold) or _all_above(ple, threshold)
        flags = {"judging": is_j, "perspective": is_p}

        if is_j and not is_p:
            archetype = "Goal Judging" if average(ach) >= average(val) else "Process Judging"
            return SideResult(pole="Judging", archetype_id=archetype,
                              evidence=JungEvidence(markers=ach + val, flags=flags))
        if is_p and not is_j:
            archetype = "Curious Perspective" if average(exp) >= average(ple) else "Fun Perspective"
            return SideResult(pole="Perspective", archetype_id=archetype,
                              evidence=JungEvidence(markers=exp + ple, flags=flags))
        return SideResult(pole=AMBIVALENT, archetype_id=AMBIVALENT,
                          evidence=JungEvidence(markers=ach + val + exp + ple, flags=flags))

    return _axis("orientation", side(innate, markers.innate), side(surface, markers.surface))


def determine_jung_profile(
    innate: RawAssessmentResponse,
    surface: RawAssessmentResponse,
    innate_avg: DriveVector,
    surface_avg: DriveVector,
    config: EngineConfig,
) -> JungProfile:
    return JungProfile(
        energy=determine_energy(innate, surface, innate_avg, surface_avg, config),
        perception=determine_perception(innate, surface, config),
        judgment=determine_judgment(innate, surface, config),
        orientation=determine_orientation(innate, surface, config),
    )


def persona_code(profile: JungProfile, side: SideName) -> PersonaCode:
    """Four-letter code (X where ambivalent) plus per-axis annotation keys."""
    letters, annotations = {}, {}
    for axis in profile.axes():
        result = getattr(axis, side)
        letters[axis.axis] = POLE_LETTERS.get(result.pole, "X")
        annotations[axis.axis] = ARCHETYPE_ANNOTATIONS[axis.axis].get(result.archetype_id, "")
    return PersonaCode(
        side=side,
        code="".join(letters[a] for a in AXES),
        letters=letters,
        annotations=annotations,
    )
