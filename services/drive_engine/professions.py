# Profession catalog and profession-fit simulation against a derived snapshot.

import logging
import math
import re
from typing import Dict, List, Literal, Optional, Sequence, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError

from services.drive_engine.loader import ConfigValidationError
from services.drive_engine.mismatch import compute_mismatch, match_score
from services.drive_engine.models import CamelModel, UnknownProfessionError
from services.drive_engine.routes import InstrumentRoute
from services.drive_engine.snapshot import DerivedPersonaSnapshot
from services.drive_engine.vectors import DriveVector, clamp, clamp01, clamp_score

logger = logging.getLogger(__name__)

SortMode = Literal["mismatch", "drain", "overall"]

DEMAND_MIN = 1
DEMAND_MAX = 5
_DEFAULT_SUBTYPE_PATTERN = re.compile(r"general|executive|management|industry|product", re.IGNORECASE)


def _norm(text: str) -> str:
    return " ".join(text.strip().lower().split())


class ProfessionSubtype(BaseModel):
    name: str
    drives: Dict[str, int]


class ProfessionMajor(BaseModel):
    major: str
    subtypes: List[ProfessionSubtype] = Field(..., min_length=1)


class ProfessionCatalog(BaseModel):
    version: str
    majors: List[ProfessionMajor]

    def list_majors(self) -> List[str]:
        return [m.major for m in self.majors]

    def get_major(self, major: str) -> ProfessionMajor:
        key = _norm(major)
        for m in self.majors:
            if _norm(m.major) == key:
                return m
        raise UnknownProfessionError(f"Unknown profession major: {major}")

    def list_subtypes(self, major: str) -> List[ProfessionSubtype]:
        return list(self.get_major(major).subtypes)

    def get_subtype(self, major: str, name: str) -> ProfessionSubtype:
        key = _norm(name)
        for subtype in self.get_major(major).subtypes:
            if _norm(subtype.name) == key:
                return subtype
        raise UnknownProfessionError(f"Unknown profession subtype '{name}' in major '{major}'")

    def search(self, query: str) -> List[Tuple[str, ProfessionSubtype]]:
        q = _norm(query)
        if not q:
            return []
        return [
            (m.major, s)
            for m in self.majors
            for s in m.subtypes
            if q in _norm(s.name) or q in _norm(m.major)
        ]

    def default_subtype(self, major: str) -> ProfessionSubtype:
        subtypes = self.list_subtypes(major)
        for subtype in subtypes:
            if _DEFAULT_SUBTYPE_PATTERN.search(subtype.name):
                return subtype
        return subtypes[0]

    def average_demand(self, major: str, drives: Sequence[str]) -> Dict[str, int]:
        """Rounded mean demand over a major's subtypes, kept within 1..5."""
        subtypes = self.list_subtypes(major)
        out = {}
        for d in drives:
            mean = sum(s.drives.get(d, 0) for s in subtypes) / len(subtypes)
            out[d] = int(min(DEMAND_MAX, max(DEMAND_MIN, math.floor(mean + 0.5))))
        return out

    def all_subtypes(self) -> List[Tuple[str, ProfessionSubtype]]:
        return [(m.major, s) for m in self.majors for s in m.subtypes]


def load_profession_catalog_data(data: Dict, drives: Sequence[str]) -> ProfessionCatalog:
    try:
        catalog = ProfessionCatalog.model_validate(data)
    except ValidationError as e:
        raise e

    known = set(drives)
    for major in catalog.majors:
        names = set()
        for subtype in major.subtypes:
            if _norm(subtype.name) in names:
                raise ConfigValidationError(f"Duplicate subtype '{subtype.name}' in major '{major.major}'")
            names.add(_norm(subtype.name))
            if set(subtype.drives) != known:
                raise ConfigValidationError(
                    f"Subtype '{subtype.name}' must rate exactly the drives {sorted(known)}"
                )
            for drive, score in subtype.drives.items():
                if not DEMAND_MIN <= score <= DEMAND_MAX:
                    raise ConfigValidationError(
                        f"Demand {score} for {drive} in '{subtype.name}' is outside {DEMAND_MIN}..{DEMAND_MAX}"
                    )
    return catalog


def load_profession_catalog_from_file(file_path: str, drives: Sequence[str]) -> ProfessionCatalog:
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigValidationError(f"File not found: {file_path}")
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Error parsing YAML file {file_path}: {e}")

    if data is None:
        raise ConfigValidationError(f"YAML file is empty or invalid: {file_path}")

    catalog = load_profession_catalog_data(data, drives)
    logger.info(f"Loaded {len(catalog.all_subtypes())} profession subtypes from {file_path}")
    return catalog


class ProfessionRef(CamelModel):
    major: str
    name: str


class FitResult(CamelModel):
    profession: ProfessionRef
    prof_demand: DriveVector
    competence: DriveVector
    imposed_sim: DriveVector
    total_drained_energy: float
    surface_adjusted: DriveVector
    surface_adjusted_aspired: DriveVector
    mismatch_raw: DriveVector
    total_mismatch_raw: float
    mismatch_adjusted: DriveVector
    total_mismatch_adjusted: float
    match_score: float

    @property
    def final_mismatch(self) -> float:
        return clamp_score(self.total_mismatch_adjusted)

    @property
    def overall_score(self) -> float:
        return self.final_mismatch + self.total_drained_energy


class ProfessionRanking(CamelModel):
    results: List[FitResult]
    top: List[FitResult]
    bottom: List[FitResult]


def total_drained_energy(routes: Sequence[InstrumentRoute], innate_avg: DriveVector) -> float:
    """Route drain weighted by how strong the source drive is innately."""
    return sum(
        clamp_score(r.path_drain) * clamp01(innate_avg.get(r.sd, 0.0) / 5)
        for r in routes
    )


def simulate_profession_fit(
    snapshot: DerivedPersonaSnapshot,
    major: str,
    name: str,
    demand: Dict[str, float],
    drives: Sequence[str],
) -> FitResult:
    prof_demand = {d: clamp_score(demand.get(d, 0.0)) for d in drives}
    imposed_sim = {
        d: clamp(prof_demand[d] * clamp_score(snapshot.competence.get(d, 0.0)) / 5, 0.0, 5.0)
        for d in drives
    }

    raw = compute_mismatch(snapshot.surface_adjusted, prof_demand, drives, weight_mode="demand")
    adjusted = compute_mismatch(snapshot.surface_adjusted_aspired, prof_demand, drives, weight_mode="mixed_max")

    return FitResult(
        profession=ProfessionRef(major=major, name=name),
        prof_demand=prof_demand,
        competence=dict(snapshot.competence),
        imposed_sim=imposed_sim,
        total_drained_energy=total_drained_energy(snapshot.instrument_routes, snapshot.innate_avg),
        surface_adjusted=dict(snapshot.surface_adjusted),
        surface_adjusted_aspired=dict(snapshot.surface_adjusted_aspired),
        mismatch_raw=raw.per_drive_diff,
        total_mismatch_raw=raw.total_deficit,
        mismatch_adjusted=adjusted.per_drive_diff,
        total_mismatch_adjusted=adjusted.total_deficit,
        match_score=match_score(adjusted.total_deficit),
    )


def simulate_custom_job_fit(
    snapshot: DerivedPersonaSnapshot,
    job_name: str,
    job_demand: Dict[str, float],
    drives: Sequence[str],
    major: str = "Custom",
) -> FitResult:
    """Ad-hoc job inquiry: drives missing from job_demand count as 0."""
    demand = {d: clamp_score(float(job_demand.get(d, 0.0) or 0.0)) for d in drives}
    return simulate_profession_fit(snapshot, major, job_name, demand, drives)


def _sort_key(result: FitResult, mode: SortMode):
    name = result.profession.name
    if mode == "drain":
        return (result.total_drained_energy, result.final_mismatch, name)
    if mode == "overall":
        return (result.overall_score, result.final_mismatch, result.total_drained_energy, name)
    return (result.final_mismatch, result.total_drained_energy, name)


def sort_fit_results(results: Sequence[FitResult], mode: SortMode = "mismatch") -> List[FitResult]:
    return sorted(results, key=lambda r: _sort_key(r, mode))


def rank_profession_subtypes(
    snapshot: DerivedPersonaSnapshot,
    catalog: ProfessionCatalog,
    drives: Sequence[str],
    top_n: int = 3,
) -> ProfessionRanking:
    """Best fits first: adjusted mismatch, then drained energy, then name."""
    results = [
        simulate_profession_fit(snapshot, major, subtype.name, subtype.drives, drives)
        for major, subtype in catalog.all_subtypes()
    ]
    results.sort(key=lambda r: (r.total_mismatch_adjusted, r.total_drained_energy, r.profession.name))
    # results[-0:] would be the whole list.
    n = max(0, top_n)
    return ProfessionRanking(
        results=results,
        top=results[:n],
        bottom=list(reversed(results[-n:])) if n else [],
    )
