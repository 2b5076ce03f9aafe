# Ideal-partner profile: per-block partner demand, MAX-aggregated across
# blocks and then capped by the self profile.

from typing import Dict, List, Optional

from services.drive_engine.models import (
    CamelModel,
    CapRule,
    EngineConfig,
    PartnerBlock,
    SelfReference,
    SelfSource,
)
from services.drive_engine.narrative import partner_link_key, partner_script_key, value_link_key
from services.drive_engine.vectors import DriveVector, clamp, clamp01, clamp_score

CAP_TOLERANCE = 1e-9


class CapComponent(CamelModel):
    basis: SelfSource
    self_drive: str
    self_strength: float
    cap: float
    reason_key: str


class CapInfo(CamelModel):
    partner_drive: str
    cap: float
    uncapped_demand: float
    capped_demand: float
    is_capped: bool
    # Primary explanation: the preferred binding component.
    basis: SelfSource
    self_drive: str
    self_strength: float
    reason_key: str
    cap_components: List[CapComponent]
    binding_components: List[CapComponent]


class SupportLink(CamelModel):
    block: str
    self_drive: str
    self_surface_strength: float
    self_innate_strength: float
    partner_drive: str
    required_amount: float
    narrative_key: str


class ValueSupportLink(CamelModel):
    block: str
    self_drive: str
    label: str
    required_amount: float
    narrative_key: str


class ValueRequirement(CamelModel):
    label: str
    amount: float
    supporting_blocks: List[str]


class PartnerDriveRow(CamelModel):
    drive: str
    rank: int
    raw_demand: float
    ideal_score: float
    display_score: float


class PartnerDriveBar(CamelModel):
    drive: str
    pct: float
    display_score: float
    raw_score: float


class PartnerDriveInsight(CamelModel):
    partner_drive: str
    script_key: str
    innate_support: List[str]
    surface_support: List[str]


class PartnerSummary(CamelModel):
    total_raw_demand: float
    top_drive: Optional[str] = None
    top_ideal_score: float = 0.0
    top_display_score: float = 0.0


class PartnerProfileResult(CamelModel):
    partner_ideal: DriveVector
    caps_applied: Dict[str, CapInfo]

    self_surface: DriveVector
    self_innate: DriveVector
    surface_weight: DriveVector
    innate_weight: DriveVector
    partner_raw_uncapped: DriveVector
    partner_raw: DriveVector
    partner_need_by_block: Dict[str, DriveVector]
    value_need_by_block: Dict[str, Dict[str, float]]
    support_links: List[SupportLink]
    value_support_links: List[ValueSupportLink]
    value_requirements: List[ValueRequirement]
    rows: List[PartnerDriveRow]
    bars: List[PartnerDriveBar]
    summary: PartnerSummary
    insights: List[PartnerDriveInsight]


def _self_strength(ref: SelfReference, vectors: Dict[str, DriveVector]) -> float:
    return clamp_score(vectors[ref.source].get(ref.drive, 0.0))


def _block_demand(
    block: PartnerBlock,
    vectors: Dict[str, DriveVector],
    weights: Dict[str, DriveVector],
    drives: List[str],
):
    weight = weights[block.weight.source].get(block.weight.drive, 0.0)
    need_vector = {d: 0.0 for d in drives}
    links = []
    for need in block.needs:
        strength = _self_strength(need, vectors)
        if need.complement:
            amount = weight * (6 - strength)
        elif need.minus:
            amount = weight * (strength - clamp_score(vectors[need.source].get(need.minus, 0.0)))
        else:
            amount = weight * strength
        need_vector[need.partner] = amount
        links.append(SupportLink(
            block=block.block,
            self_drive=block.weight.drive,
            self_surface_strength=clamp_score(vectors["surface"].get(block.weight.drive, 0.0)),
            self_innate_strength=clamp_score(vectors["innate"].get(block.weight.drive, 0.0)),
            partner_drive=need.partner,
            required_amount=max(0.0, amount),
            narrative_key=partner_link_key(block.block, need.partner),
        ))

    value_needs = {}
    value_links = []
    for value_need in block.value_needs:
        strength = _self_strength(value_need, vectors)
        amount = weight * ((6 - strength) if value_need.complement else strength)
        value_needs[value_need.label] = amount
        value_links.append(ValueSupportLink(
            block=block.block,
            self_drive=block.weight.drive,
            label=value_need.label,
            required_amount=max(0.0, amount),
            narrative_key=value_link_key(block.block),
        ))
    return need_vector, value_needs, links, value_links


def _apply_cap(rule: CapRule, uncapped: float, vectors: Dict[str, DriveVector]) -> CapInfo:
    components = []
    for spec in rule.components:
        strength = _self_strength(spec, vectors)
        components.append(CapComponent(
            basis=spec.source,
            self_drive=spec.drive,
            self_strength=strength,
            cap=clamp(6 - strength, 0.0, 5.0),
            reason_key=spec.reason_key,
        ))
    cap = min(c.cap for c in components)
    binding = [c for c in components if c.cap <= cap + CAP_TOLERANCE]
    # Components are listed in order of preference; the first binding one explains the cap.
    primary = binding[0]
    return CapInfo(
        partner_drive=rule.partner,
        cap=cap,
        uncapped_demand=uncapped,
        capped_demand=min(uncapped, cap),
        is_capped=uncapped > cap + CAP_TOLERANCE,
        basis=primary.basis,
        self_drive=primary.self_drive,
        self_strength=primary.self_strength,
        reason_key=primary.reason_key,
        cap_components=components,
        binding_components=binding,
    )


def compute_partner_profile(innate_avg: DriveVector, surface_avg: DriveVector, config: EngineConfig) -> PartnerProfileResult:
    """
    Builds the ideal-partner demand vector.

    Every block is a closed-form formula over the self vectors scaled by
    a self weight (strength / 5). Blocks are combined with a per-drive MAX,
    floored at 0, then the configured ceilings are applied.
    """
    drives = list(config.drives)
    vectors = {
        "innate": {d: clamp_score(innate_avg.get(d, 0.0)) for d in drives},
        "surface": {d: clamp_score(surface_avg.get(d, 0.0)) for d in drives},
    }
    weights = {source: {d: clamp01(v[d] / 5) for d in drives} for source, v in vectors.items()}

    partner_raw = {d: 0.0 for d in drives}
    need_by_block: Dict[str, DriveVector] = {}
    value_by_block: Dict[str, Dict[str, float]] = {}
    support_links: List[SupportLink] = []
    value_links: List[ValueSupportLink] = []

    for block in config.partner.blocks:
        need_vector, value_needs, links, block_value_links = _block_demand(block, vectors, weights, drives)
        need_by_block[block.block] = need_vector
        value_by_block[block.block] = value_needs
        support_links.extend(links)
        value_links.extend(block_value_links)
        for d in drives:
            partner_raw[d] = max(partner_raw[d], need_vector[d])

    partner_raw = {d: max(0.0, partner_raw[d]) for d in drives}
    partner_raw_uncapped = dict(partner_raw)

    caps_applied: Dict[str, CapInfo] = {}
    for rule in config.partner.caps:
        info = _apply_cap(rule, partner_raw_uncapped[rule.partner], vectors)
        caps_applied[rule.partner] = info
        partner_raw[rule.partner] = info.capped_demand

    partner_ideal = {d: clamp_score(partner_raw[d]) for d in drives}

    rows = _rank_rows(partner_raw, partner_ideal, drives)
    bars = [
        PartnerDriveBar(drive=r.drive, pct=clamp01(r.display_score / 5), display_score=r.display_score, raw_score=r.ideal_score)
        for r in rows
    ]
    top = rows[0] if rows else None
    summary = PartnerSummary(
        total_raw_demand=sum(r.raw_demand for r in rows),
        top_drive=top.drive if top else None,
        top_ideal_score=top.ideal_score if top else 0.0,
        top_display_score=top.display_score if top else 0.0,
    )

    return PartnerProfileResult(
        partner_ideal=partner_ideal,
        caps_applied=caps_applied,
        self_surface=vectors["surface"],
        self_innate=vectors["innate"],
        surface_weight=weights["surface"],
        innate_weight=weights["innate"],
        partner_raw_uncapped=partner_raw_uncapped,
        partner_raw=partner_raw,
        partner_need_by_block=need_by_block,
        value_need_by_block=value_by_block,
        support_links=support_links,
        value_support_links=value_links,
        value_requirements=_value_requirements(value_by_block, value_links),
        rows=rows,
        bars=bars,
        summary=summary,
        insights=_insights(rows, config),
    )


def _rank_rows(partner_raw: DriveVector, partner_ideal: DriveVector, drives: List[str]) -> List[PartnerDriveRow]:
    max_ideal = max([partner_ideal[d] for d in drives] + [0.0])
    unranked = []
    for d in drives:
        display = clamp_score(partner_ideal[d] / max_ideal * 5) if max_ideal > CAP_TOLERANCE else 0.0
        unranked.append((d, partner_raw[d], partner_ideal[d], display))
    # sorted() is stable, so equal scores keep drive order.
    ordered = sorted(unranked, key=lambda r: (-r[3], -r[1]))
    return [
        PartnerDriveRow(drive=d, rank=i, raw_demand=raw, ideal_score=ideal, display_score=display)
        for i, (d, raw, ideal, display) in enumerate(ordered, start=1)
    ]


def _value_requirements(
    value_by_block: Dict[str, Dict[str, float]], value_links: List[ValueSupportLink]
) -> List[ValueRequirement]:
    """MAX of each 'value for X' need across blocks, strongest first."""
    maxima: Dict[str, float] = {}
    for needs in value_by_block.values():
        for label, amount in needs.items():
            maxima[label] = max(maxima.get(label, 0.0), amount)

    requirements = []
    for label, amount in maxima.items():
        supporting = sorted(
            (l for l in value_links if l.label == label and l.required_amount > 0),
            key=lambda l: -l.required_amount,
        )
        requirements.append(ValueRequirement(
            label=label,
            amount=max(0.0, amount),
            supporting_blocks=[l.block for l in supporting],
        ))
    return sorted(requirements, key=lambda r: -r.amount)


def _insights(rows: List[PartnerDriveRow], config: EngineConfig) -> List[PartnerDriveInsight]:
    insights = []
    for row in rows:
        support = config.partner.scripts.get(row.drive)
        insights.append(PartnerDriveInsight(
            partner_drive=row.drive,
            script_key=partner_script_key(row.drive),
            innate_support=list(support.innate_support) if support else [],
            surface_support=list(support.surface_support) if support else [],
        ))
    return insights
