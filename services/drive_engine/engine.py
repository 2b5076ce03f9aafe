from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from services.drive_engine.jung import PersonaCode, SideName, determine_jung_profile, persona_code
from services.drive_engine.loader import load_engine_config_from_file
from services.drive_engine.mismatch import MismatchResult, compute_mismatch
from services.drive_engine.models import CamelModel, EngineConfig, IncompleteAssessmentError
from services.drive_engine.partner import PartnerProfileResult, compute_partner_profile
from services.drive_engine.professions import (
    FitResult,
    ProfessionCatalog,
    ProfessionRanking,
    rank_profession_subtypes,
    simulate_custom_job_fit,
    simulate_profession_fit,
)
from services.drive_engine.records import TEST_KINDS, RawAssessmentResponse
from services.drive_engine.reports import (
    DrainAnalysis,
    InstrumentationFlow,
    build_drain_analysis,
    build_instrumentation_flow,
)
from services.drive_engine.routes import (
    build_instrumentation_routes,
    compute_surface_adjusted,
    compute_surface_adjusted_aspired,
    compute_surface_drain,
    compute_surface_transfer,
)
from services.drive_engine.snapshot import DerivedPersonaSnapshot, RecomputeDecision, needs_recompute
from services.drive_engine.vectors import (
    DriveVector,
    compute_dissatisfaction,
    compute_innate_avg,
    compute_satisfaction,
    compute_surface_avg,
    directional_scores,
    extract_environment,
)


class DerivationOutcome(CamelModel):
    status: Literal["ok", "missing_tests"]
    snapshot: Optional[DerivedPersonaSnapshot] = None
    missing_tests: List[str] = []


def missing_test_kinds(
    imposed: Optional[RawAssessmentResponse],
    surface: Optional[RawAssessmentResponse],
    innate: Optional[RawAssessmentResponse],
) -> List[str]:
    present = {"imposed": imposed, "surface": surface, "innate": innate}
    return [kind for kind in TEST_KINDS if present[kind] is None]


class DriveDerivationEngine:
    """
    Turns the three persona tests into a DerivedPersonaSnapshot and answers
    follow-up questions (profession fit, ideal partner, reports) from it.

    Holds nothing but the immutable EngineConfig, so one instance can serve
    any number of concurrent requests.
    """
    def __init__(self, config: Optional[EngineConfig] = None, config_path: str = "assets/drive_engine.yml"):
        """
        Args:
            config: A pre-loaded configuration. Takes precedence over config_path.
            config_path: Path to the engine YAML tables.
        """
        self.config = config if config is not None else load_engine_config_from_file(config_path)

    @property
    def drives(self) -> List[str]:
        return list(self.config.drives)

    @property
    def engine_version(self) -> str:
        return self.config.version

    # --- Snapshot ---

    def compute_snapshot(
        self,
        imposed: Optional[RawAssessmentResponse],
        surface: Optional[RawAssessmentResponse],
        innate: Optional[RawAssessmentResponse],
        computed_at: Optional[datetime] = None,
    ) -> DerivedPersonaSnapshot:
        """
        Runs the full pipeline. Raises IncompleteAssessmentError when any of
        the three tests is missing; nothing is computed from partial input.
        """
        missing = missing_test_kinds(imposed, surface, innate)
        if missing:
            raise IncompleteAssessmentError(missing)

        config = self.config
        drives = self.drives

        innate_avg = compute_innate_avg(innate, config)
        surface_avg = compute_surface_avg(surface, config)

        profile = extract_environment(imposed, config)
        dissatisfaction = compute_dissatisfaction(profile, config)
        satisfaction = compute_satisfaction(profile, config)

        routes = build_instrumentation_routes(
            drives,
            innate_avg,
            surface_avg,
            dissatisfaction,
            directional_scores(innate, config.pair_tables["innate"], config),
            directional_scores(surface, config.pair_tables["surface"], config),
            midpoint=config.direction_midpoint,
        )
        surface_drain = compute_surface_drain(routes, drives)
        surface_transfer = compute_surface_transfer(routes, drives)
        surface_adjusted = compute_surface_adjusted(surface_avg, surface_drain, drives)
        surface_adjusted_aspired = compute_surface_adjusted_aspired(
            surface_adjusted, routes, drives, config.aspirational_drive
        )

        return DerivedPersonaSnapshot(
            innate_avg=innate_avg,
            surface_avg=surface_avg,
            env=profile.env,
            competence=profile.competence,
            self_interest=profile.self_interest,
            td_dissatisfaction=dissatisfaction,
            td_satisfaction=satisfaction,
            instrument_routes=routes,
            surface_drain=surface_drain,
            surface_transfer=surface_transfer,
            surface_adjusted=surface_adjusted,
            surface_adjusted_aspired=surface_adjusted_aspired,
            jung_axes=determine_jung_profile(innate, surface, innate_avg, surface_avg, config),
            engine_version=self.engine_version,
            computed_at=computed_at or datetime.now(timezone.utc),
            source_imposed_at=imposed.source_timestamp,
            source_surface_at=surface.source_timestamp,
            source_innate_at=innate.source_timestamp,
        )

    def derive(
        self,
        imposed: Optional[RawAssessmentResponse],
        surface: Optional[RawAssessmentResponse],
        innate: Optional[RawAssessmentResponse],
        computed_at: Optional[datetime] = None,
    ) -> DerivationOutcome:
        """Like compute_snapshot, but reports missing tests as an outcome instead of raising."""
        missing = missing_test_kinds(imposed, surface, innate)
        if missing:
            return DerivationOutcome(status="missing_tests", missing_tests=missing)
        snapshot = self.compute_snapshot(imposed, surface, innate, computed_at=computed_at)
        return DerivationOutcome(status="ok", snapshot=snapshot)

    def needs_recompute(
        self,
        existing: Optional[Union[DerivedPersonaSnapshot, Mapping[str, Any]]],
        imposed: RawAssessmentResponse,
        surface: RawAssessmentResponse,
        innate: RawAssessmentResponse,
        force: bool = False,
    ) -> RecomputeDecision:
        return needs_recompute(existing, imposed, surface, innate, self.engine_version, self.drives, force=force)

    # --- Fit and partner ---

    def mismatch(self, effective_surface: DriveVector, demand: DriveVector) -> MismatchResult:
        return compute_mismatch(effective_surface, demand, self.drives, weight_mode=self.config.mismatch.weight_mode)

    def profession_fit(
        self, snapshot: DerivedPersonaSnapshot, catalog: ProfessionCatalog, major: str, subtype: str
    ) -> FitResult:
        found = catalog.get_subtype(major, subtype)
        canonical_major = catalog.get_major(major).major
        return simulate_profession_fit(snapshot, canonical_major, found.name, found.drives, self.drives)

    def custom_job_fit(self, snapshot: DerivedPersonaSnapshot, job_name: str, demand: Dict[str, float]) -> FitResult:
        return simulate_custom_job_fit(snapshot, job_name, demand, self.drives)

    def rank_professions(
        self, snapshot: DerivedPersonaSnapshot, catalog: ProfessionCatalog, top_n: int = 3
    ) -> ProfessionRanking:
        return rank_profession_subtypes(snapshot, catalog, self.drives, top_n=top_n)

    def partner_profile(self, innate_avg: DriveVector, surface_avg: DriveVector) -> PartnerProfileResult:
        return compute_partner_profile(innate_avg, surface_avg, self.config)

    # --- Reports ---

    def drain_report(self, snapshot: DerivedPersonaSnapshot) -> DrainAnalysis:
        return build_drain_analysis(snapshot, self.config)

    def instrumentation_report(
        self, snapshot: DerivedPersonaSnapshot, surface: Optional[RawAssessmentResponse] = None
    ) -> InstrumentationFlow:
        return build_instrumentation_flow(snapshot, self.config, surface=surface)

    def persona_code(self, snapshot: DerivedPersonaSnapshot, side: SideName = "innate") -> PersonaCode:
        return persona_code(snapshot.jung_axes, side)
