from typing import Literal, Sequence

from services.drive_engine.models import CamelModel
from services.drive_engine.vectors import DriveVector, clamp_score

WeightMode = Literal["demand", "mixed_max"]


class MismatchResult(CamelModel):
    per_drive_diff: DriveVector
    weights: DriveVector
    total_deficit: float


def compute_mismatch(
    effective_surface: DriveVector,
    demand: DriveVector,
    drives: Sequence[str],
    weight_mode: WeightMode = "demand",
) -> MismatchResult:
    """
    Weighted absolute distance between an effective surface vector and a demand vector.

    weight_mode "demand" weighs drives by their demand, "mixed_max" by
    max(effective, demand). Equal weights when every raw weight is 0.
    """
    diff, raw_weights = {}, {}
    for d in drives:
        eff = clamp_score(effective_surface.get(d, 0.0))
        need = clamp_score(demand.get(d, 0.0))
        raw_weights[d] = max(eff, need) if weight_mode == "mixed_max" else need
        diff[d] = eff - need

    denom = sum(raw_weights.values())
    if denom > 0:
        weights = {d: raw_weights[d] / denom for d in drives}
    else:
        weights = {d: 1 / len(drives) for d in drives}

    total = sum(abs(diff[d]) * weights[d] for d in drives)
    return MismatchResult(per_drive_diff=diff, weights=weights, total_deficit=total)


def match_score(total_deficit: float) -> float:
    return clamp_score(5 - clamp_score(total_deficit))
