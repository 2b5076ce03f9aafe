# Report models built from a derived snapshot: drain analysis and the
# instrumentation flow.

from typing import Dict, List, Optional, Sequence

from services.drive_engine.models import CamelModel, EngineConfig
from services.drive_engine.narrative import transfer_advice_key
from services.drive_engine.records import RawAssessmentResponse
from services.drive_engine.snapshot import DerivedPersonaSnapshot
from services.drive_engine.vectors import clamp01, clamp_score


class DrainTarget(CamelModel):
    name: str
    dr: float
    lr: float
    drained_energy_path: float
    transferred_energy_path: float
    show_as_drain_path: bool
    show_as_transfer_path: bool


class DrainRow(CamelModel):
    drive: str
    surface_energy: float
    rank: int
    surface_drain_total: float
    surface_transfer_total: float
    energy_diversion_ratio: float
    drain_ratio: float
    targets: List[DrainTarget]
    significant_drain: bool
    significant_transfer: bool


class DrainBar(CamelModel):
    drive: str
    drained_pct_of_energy: float
    significant: bool


class DrainPairRow(CamelModel):
    drive: str
    target: str
    draining_pct: float


class DrainSummary(CamelModel):
    total: float
    significant: int
    top: Optional[DrainRow] = None


class DrainAnalysis(CamelModel):
    rows: List[DrainRow]
    bars: List[DrainBar]
    draining_rows: List[DrainPairRow]
    summary: DrainSummary


def _target_score(target: DrainTarget) -> float:
    if target.show_as_drain_path:
        return target.drained_energy_path
    if target.show_as_transfer_path:
        return target.transferred_energy_path
    return 0.0


def build_drain_analysis(snapshot: DerivedPersonaSnapshot, config: EngineConfig) -> DrainAnalysis:
    """
    One row per target drive, ranked by surface energy. A drive is
    drain- (transfer-) significant when its total drain (transfer) exceeds
    the configured minimum; paths are shown above their own minimum.
    """
    sig = config.reports.drain
    drives = list(config.drives)

    ranked = sorted(drives, key=lambda d: -clamp_score(snapshot.surface_avg.get(d, 0.0)))
    rank_of = {d: i for i, d in enumerate(ranked, start=1)}

    rows: List[DrainRow] = []
    for td in drives:
        targets = []
        for route in snapshot.instrument_routes:
            if route.td != td:
                continue
            drained = clamp_score(route.path_drain)
            transferred = clamp_score(route.path_transfer)
            targets.append(DrainTarget(
                name=route.sd,
                dr=clamp01(route.dr_base),
                lr=clamp01(route.lr),
                drained_energy_path=drained,
                transferred_energy_path=transferred,
                show_as_drain_path=drained > sig.path_drain_min,
                show_as_transfer_path=transferred > sig.path_transfer_min,
            ))
        targets.sort(key=lambda t: -_target_score(t))

        drain_targets = [t for t in targets if t.show_as_drain_path]
        diversion = clamp01(sum(t.dr for t in drain_targets))
        drained_portion = clamp01(sum(clamp01(t.dr * t.lr) for t in drain_targets))

        drain_total = clamp_score(snapshot.surface_drain.get(td, 0.0))
        transfer_total = clamp_score(snapshot.surface_transfer.get(td, 0.0))
        rows.append(DrainRow(
            drive=td,
            surface_energy=clamp_score(snapshot.surface_avg.get(td, 0.0)),
            rank=rank_of[td],
            surface_drain_total=drain_total,
            surface_transfer_total=transfer_total,
            energy_diversion_ratio=diversion,
            drain_ratio=clamp01(drained_portion / diversion) if diversion > 0 else 0.0,
            targets=targets,
            significant_drain=drain_total > sig.drive_drain_min,
            significant_transfer=transfer_total > sig.drive_transfer_min,
        ))
    rows.sort(key=lambda r: r.rank)

    bars = [
        DrainBar(
            drive=r.drive,
            drained_pct_of_energy=clamp01(r.surface_drain_total / r.surface_energy) if r.surface_energy > 0 else 0.0,
            significant=r.significant_drain,
        )
        for r in rows
    ]
    bars.sort(key=lambda b: (not b.significant, -b.drained_pct_of_energy))

    draining_rows = [
        DrainPairRow(drive=r.drive, target=t.name, draining_pct=clamp01(t.dr * t.lr) * 100)
        for r in rows
        if r.significant_drain
        for t in r.targets
        if t.show_as_drain_path
    ]
    draining_rows.sort(key=lambda p: -p.draining_pct)

    significant_rows = [r for r in rows if r.significant_drain]
    candidates = significant_rows or [r for r in rows if r.surface_drain_total > 0]
    top = max(candidates, key=lambda r: r.surface_drain_total) if candidates else None

    return DrainAnalysis(
        rows=rows,
        bars=bars,
        draining_rows=draining_rows,
        summary=DrainSummary(
            total=sum(r.surface_drain_total for r in rows),
            significant=len(significant_rows),
            top=top,
        ),
    )


class Reversal(CamelModel):
    reason: str
    source_drive: str
    target_drive: str
    template_key: str
    advice_key: str


class InstrumentationItem(CamelModel):
    name: str
    rank: int
    score: float
    satisfaction: float
    reversals: List[Reversal]
    private_context: bool
    genuine_passion: bool


class InstrumentationFlow(CamelModel):
    items: List[InstrumentationItem]
    summary_counts: Dict[str, int]


def _prefers_private_context(surface: Optional[RawAssessmentResponse], questions: Sequence[int], threshold: float,
                             config: EngineConfig) -> bool:
    if surface is None:
        return False
    for question in questions:
        raw = surface.answer(config.question_key(question))
        if raw and raw < threshold:
            return True
    return False


def build_instrumentation_flow(
    snapshot: DerivedPersonaSnapshot,
    config: EngineConfig,
    surface: Optional[RawAssessmentResponse] = None,
) -> InstrumentationFlow:
    """
    Drives ranked by innate score with their outgoing routes. A route out of a
    low-satisfaction drive reads as suppression, otherwise as prioritization.
    """
    settings = config.reports.instrumentation
    private = _prefers_private_context(
        surface, settings.private_context_questions, settings.private_context_threshold, config
    )

    # sorted() is stable, so equal innate scores keep drive order.
    ordered = sorted(config.drives, key=lambda d: -snapshot.innate_avg.get(d, 0.0))
    counts = {"suppression": 0, "prioritization": 0}
    items = []
    for rank, drive in enumerate(ordered, start=1):
        satisfaction = snapshot.td_satisfaction.get(drive, 0.0)
        low = satisfaction < settings.low_satisfaction
        reason = "suppression" if low else "prioritization"
        reversals = [
            Reversal(
                reason=reason,
                source_drive=drive,
                target_drive=route.td,
                template_key="suppression_compensation" if low else "prioritization_redirect",
                advice_key=transfer_advice_key(route.td, drive),
            )
            for route in snapshot.instrument_routes
            if route.sd == drive
        ]
        counts[reason] += len(reversals)
        items.append(InstrumentationItem(
            name=drive,
            rank=rank,
            score=snapshot.innate_avg.get(drive, 0.0),
            satisfaction=satisfaction,
            reversals=reversals,
            private_context=private and drive in settings.private_context_drives,
            genuine_passion=low and not reversals,
        ))
    return InstrumentationFlow(items=items, summary_counts=counts)
