# Instrumentation routes: innate source drives whose preference is demoted at
# the surface divert energy into the drives that overtook them.

from collections import defaultdict
from typing import Dict, List, Sequence

from pydantic import ConfigDict

from services.drive_engine.models import CamelModel
from services.drive_engine.vectors import (
    DirectionalScores,
    DriveVector,
    clamp,
    clamp01,
    clamp_score,
)


class InstrumentRoute(CamelModel):
    model_config = ConfigDict(frozen=True)

    sd: str
    td: str
    td_weight: float
    encounter_portion: float
    dr_base: float
    lr: float
    path_drain: float
    path_transfer: float


def find_candidates(
    sd: str,
    drives: Sequence[str],
    innate_scores: DirectionalScores,
    surface_scores: DirectionalScores,
    midpoint: float = 3.0,
) -> List[str]:
    """Targets td where innate prefers sd over td but the surface does not."""
    candidates = []
    for td in drives:
        if td == sd:
            continue
        innate = innate_scores.get((sd, td))
        surface = surface_scores.get((sd, td))
        if innate is None or surface is None:
            continue
        if innate > midpoint and surface <= midpoint:
            candidates.append(td)
    return candidates


def build_instrumentation_routes(
    drives: Sequence[str],
    innate_avg: DriveVector,
    surface_avg: DriveVector,
    dissatisfaction: DriveVector,
    innate_scores: DirectionalScores,
    surface_scores: DirectionalScores,
    midpoint: float = 3.0,
) -> List[InstrumentRoute]:
    """
    Detects every demoted preference sd -> td and splits the diverted
    energy into drain (lost, scaled by the target's dissatisfaction) and
    transfer (retained). Routes are then rescaled per target so that the
    energy arriving at td equals its surface excess over the innate baseline.
    """
    routes: List[InstrumentRoute] = []
    sum_innate_total = sum(innate_avg.get(d, 0.0) for d in drives)

    for sd in drives:
        candidates = find_candidates(sd, drives, innate_scores, surface_scores, midpoint)
        if not candidates:
            continue

        sum_innate = sum(innate_avg.get(td, 0.0) for td in candidates)
        sd_strength = clamp_score(innate_avg.get(sd, 0.0))

        for td in candidates:
            if sum_innate > 0:
                td_weight = clamp01(innate_avg.get(td, 0.0) / sum_innate)
            else:
                td_weight = 1 / len(candidates)

            encounter_portion = clamp01(innate_scores[(sd, td)] / 5)
            dr_base = clamp01(encounter_portion * td_weight)
            lr = dissatisfaction.get(td, 0.0) / 5

            if sum_innate_total > 0:
                innate_weight = clamp01(innate_avg.get(td, 0.0) / sum_innate_total)
            else:
                innate_weight = 1 / len(candidates)

            routes.append(InstrumentRoute(
                sd=sd,
                td=td,
                td_weight=td_weight,
                encounter_portion=encounter_portion,
                dr_base=dr_base,
                lr=lr,
                path_drain=clamp01(dr_base * lr) * sd_strength * innate_weight,
                path_transfer=clamp01(dr_base * (1 - lr)) * sd_strength * innate_weight,
            ))

    return normalize_routes_by_target(routes, drives, innate_avg, surface_avg)


def normalize_routes_by_target(
    routes: List[InstrumentRoute],
    drives: Sequence[str],
    innate_avg: DriveVector,
    surface_avg: DriveVector,
) -> List[InstrumentRoute]:
    """
    Rescales routes so that, for every target td with routes,
    sum(pathDrain + pathTransfer) == clamp(surfaceAvg[td] - innateAvg[td], 0, 5).

    Routes into a td that carry no energy at all get weight 0 and stay at zero.
    """
    by_target: Dict[str, List[int]] = defaultdict(list)
    for position, route in enumerate(routes):
        by_target[route.td].append(position)

    normalized = list(routes)
    for td in drives:
        positions = by_target.get(td)
        if not positions:
            continue
        desired = clamp(surface_avg.get(td, 0.0) - innate_avg.get(td, 0.0), 0.0, 5.0)
        total = sum(routes[p].path_drain + routes[p].path_transfer for p in positions)

        w = desired / total if total > 0 else 0.0
        for p in positions:
            route = routes[p]
            normalized[p] = route.model_copy(update={
                "path_drain": route.path_drain * w,
                "path_transfer": route.path_transfer * w,
            })

    return normalized


def sum_by_target(routes: Sequence[InstrumentRoute], drives: Sequence[str], field: str) -> DriveVector:
    totals = {drive: 0.0 for drive in drives}
    for route in routes:
        totals[route.td] += getattr(route, field)
    return {drive: clamp_score(totals[drive]) for drive in drives}


def compute_surface_drain(routes: Sequence[InstrumentRoute], drives: Sequence[str]) -> DriveVector:
    return sum_by_target(routes, drives, "path_drain")


def compute_surface_transfer(routes: Sequence[InstrumentRoute], drives: Sequence[str]) -> DriveVector:
    return sum_by_target(routes, drives, "path_transfer")


def compute_surface_adjusted(surface_avg: DriveVector, surface_drain: DriveVector, drives: Sequence[str]) -> DriveVector:
    return {
        d: clamp_score(clamp_score(surface_avg.get(d, 0.0)) - clamp_score(surface_drain.get(d, 0.0)))
        for d in drives
    }


def compute_aspiration(routes: Sequence[InstrumentRoute], drives: Sequence[str], aspirational_drive: str) -> DriveVector:
    """Energy the aspirational drive diverts, drain and transfer alike, grouped by target."""
    totals = {drive: 0.0 for drive in drives}
    for route in routes:
        if route.sd == aspirational_drive:
            totals[route.td] += route.path_drain + route.path_transfer
    return {drive: clamp_score(totals[drive]) for drive in drives}


def compute_surface_adjusted_aspired(
    surface_adjusted: DriveVector,
    routes: Sequence[InstrumentRoute],
    drives: Sequence[str],
    aspirational_drive: str,
) -> DriveVector:
    aspiration = compute_aspiration(routes, drives, aspirational_drive)
    return {d: clamp_score(clamp_score(surface_adjusted.get(d, 0.0)) + aspiration[d]) for d in drives}
