# Drive vectors: per-test averages, imposed environment extraction and
# the satisfaction/dissatisfaction scalars derived from it.

import math
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from services.drive_engine.models import EngineConfig, PairTable
from services.drive_engine.records import RawAssessmentResponse

DriveVector = Dict[str, float]

SCORE_MIN = 0.0
SCORE_MAX = 5.0
COMPLEMENT = 6


def clamp(x: float, lo: float, hi: float) -> float:
    if x is None or not math.isfinite(x):
        return lo
    return max(lo, min(hi, x))


def clamp01(x: float) -> float:
    return clamp(x, 0.0, 1.0)


def clamp_score(x: float) -> float:
    return clamp(x, SCORE_MIN, SCORE_MAX)


def average(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


def front_score(raw: int, table: PairTable) -> float:
    """Score of the pair's front drive over its back drive for one raw answer."""
    return float(raw) if table.states == "front" else float(COMPLEMENT - raw)


def compute_drive_average(record: RawAssessmentResponse, table: PairTable, config: EngineConfig) -> DriveVector:
    """
    Averages every pair answer touching each drive into a 0..5 score.

    The front drive of a pair receives the front score, the back drive its
    complement. Self pairs (private vs public) count once for their drive.
    Unanswered questions (0) are skipped rather than averaged in.
    """
    contributions: Dict[str, List[float]] = {drive: [] for drive in config.drives}
    for index, (front, back) in enumerate(table.pairs, start=1):
        raw = record.answer(config.question_key(index))
        if raw == 0:
            continue
        score = front_score(raw, table)
        contributions[front].append(score)
        if back != front:
            contributions[back].append(COMPLEMENT - score)
    return {drive: clamp_score(average(contributions[drive])) for drive in config.drives}


def compute_innate_avg(record: RawAssessmentResponse, config: EngineConfig) -> DriveVector:
    return compute_drive_average(record, config.pair_tables["innate"], config)


def compute_surface_avg(record: RawAssessmentResponse, config: EngineConfig) -> DriveVector:
    return compute_drive_average(record, config.pair_tables["surface"], config)


def find_pair(table: PairTable, a: str, b: str) -> Optional[Tuple[int, bool]]:
    """Returns (question index, a_is_front) of the first pair joining a and b."""
    for index, (front, back) in enumerate(table.pairs, start=1):
        if front == a and back == b:
            return index, True
        if front == b and back == a:
            return index, False
    return None


def directional_score(
    record: RawAssessmentResponse, table: PairTable, sd: str, td: str, config: EngineConfig
) -> Optional[float]:
    """
    Score of sd over td on the 1..5 scale: above the midpoint means sd is
    preferred. None when the tests never pair the two drives or the
    question was left unanswered.
    """
    if sd == td:
        return None
    located = find_pair(table, sd, td)
    if located is None:
        return None
    index, sd_is_front = located
    raw = record.answer(config.question_key(index))
    if raw == 0:
        return None
    score = front_score(raw, table)
    return score if sd_is_front else COMPLEMENT - score


DirectionalScores = Dict[Tuple[str, str], Optional[float]]


def directional_scores(record: RawAssessmentResponse, table: PairTable, config: EngineConfig) -> DirectionalScores:
    return {
        (sd, td): directional_score(record, table, sd, td, config)
        for sd in config.drives
        for td in config.drives
        if sd != td
    }


class EnvironmentProfile(BaseModel):
    """Imposed-test reading per drive: environment demand, competence, self-interest."""
    env: DriveVector
    competence: DriveVector
    self_interest: DriveVector


def extract_environment(record: RawAssessmentResponse, config: EngineConfig) -> EnvironmentProfile:
    block = config.imposed.block_size
    env, competence, self_interest = {}, {}, {}
    for i, drive in enumerate(config.drives):
        base = i * block
        env[drive] = clamp_score(record.answer(config.question_key(base + 1)))
        competence[drive] = clamp_score(record.answer(config.question_key(base + 2)))
        self_interest[drive] = clamp_score(record.answer(config.question_key(base + 3)))
    return EnvironmentProfile(env=env, competence=competence, self_interest=self_interest)


def compute_dissatisfaction(profile: EnvironmentProfile, config: EngineConfig) -> DriveVector:
    """diss = clamp((selfInterest - 1) * slope * (1 - env * competence / 25), 0, 5)"""
    slope = config.imposed.dissatisfaction_slope
    out = {}
    for drive in config.drives:
        env = clamp_score(profile.env.get(drive, 0.0))
        competence = clamp_score(profile.competence.get(drive, 0.0))
        interest = clamp_score(profile.self_interest.get(drive, 0.0))
        # selfInterest of 0 goes negative here; the clamp floors it.
        out[drive] = clamp_score((interest - 1) * slope * (1 - env * competence / 25))
    return out


def compute_satisfaction(profile: EnvironmentProfile, config: EngineConfig) -> DriveVector:
    """sat = clamp(selfInterest * env * competence / 25, 0, 5)"""
    out = {}
    for drive in config.drives:
        env = clamp_score(profile.env.get(drive, 0.0))
        competence = clamp_score(profile.competence.get(drive, 0.0))
        interest = clamp_score(profile.self_interest.get(drive, 0.0))
        out[drive] = clamp_score(interest * env * competence / 25)
    return out
