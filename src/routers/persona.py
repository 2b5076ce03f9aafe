from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from config.settings import engine_settings
from services.drive_engine.engine import DriveDerivationEngine
from services.drive_engine.models import (
    IncompleteAssessmentError,
    InvalidSubmissionError,
    UnknownProfessionError,
)
from services.drive_engine.partner import PartnerProfileResult
from services.drive_engine.professions import (
    ProfessionCatalog,
    load_profession_catalog_from_file,
    sort_fit_results,
)
from src.schemas.persona import (
    PersonaReports,
    PersonaTests,
    ProfessionCatalogResponse,
    ProfessionFitRequest,
    ProfessionFitResponse,
    ProfessionMajorInfo,
    ProfessionSubtypeInfo,
    SnapshotRequest,
    SnapshotResponse,
)
from src.services.snapshot_store import SnapshotStore, ensure_persona_snapshot

router = APIRouter()
logger = logging.getLogger(__name__)


@lru_cache()
def get_drive_engine() -> DriveDerivationEngine:
    return DriveDerivationEngine(config_path=engine_settings.config_path)


@lru_cache()
def get_profession_catalog() -> ProfessionCatalog:
    return load_profession_catalog_from_file(engine_settings.professions_path, get_drive_engine().drives)


@lru_cache()
def get_snapshot_store() -> SnapshotStore:
    return SnapshotStore(
        redis_url=engine_settings.redis_url,
        key_prefix=engine_settings.snapshot_key_prefix,
        ttl_seconds=engine_settings.snapshot_ttl_seconds,
    )


def _snapshot_from_tests(engine: DriveDerivationEngine, tests: PersonaTests):
    records = tests.records()
    return engine.compute_snapshot(records["imposed"], records["surface"], records["innate"])


# Sync endpoints: the Redis client blocks, so these run in the threadpool.
@router.post("/persona/snapshot", response_model=SnapshotResponse)
def persona_snapshot(
    request: SnapshotRequest,
    engine: DriveDerivationEngine = Depends(get_drive_engine),
    store: SnapshotStore = Depends(get_snapshot_store),
):
    """
    Returns the user's derived snapshot, recomputing and storing it when the
    stored one is missing or stale.
    """
    try:
        records = request.records()
        outcome = ensure_persona_snapshot(
            store, engine, request.user_id,
            records["imposed"], records["surface"], records["innate"],
            force=request.force,
        )
        if outcome.status == "missing_tests":
            raise IncompleteAssessmentError(outcome.missing_tests)
        if not outcome.persisted:
            logger.warning(f"Snapshot for user {request.user_id} computed but not persisted: {outcome.error}")

        reports = None
        if request.include_reports:
            reports = PersonaReports(
                drain=engine.drain_report(outcome.snapshot),
                instrumentation=engine.instrumentation_report(outcome.snapshot, surface=records["surface"]),
                innate_code=engine.persona_code(outcome.snapshot, "innate"),
                surface_code=engine.persona_code(outcome.snapshot, "surface"),
            )

        return SnapshotResponse(
            status=outcome.status,
            snapshot=outcome.snapshot,
            reasons=outcome.reasons,
            persisted=outcome.persisted,
            error=outcome.error,
            reports=reports,
        )
    except IncompleteAssessmentError as e:
        logger.error(f"Incomplete assessment: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidSubmissionError as e:
        logger.error(f"Invalid submission: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error during snapshot derivation: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/persona/profession-fit", response_model=ProfessionFitResponse)
def profession_fit(
    request: ProfessionFitRequest,
    engine: DriveDerivationEngine = Depends(get_drive_engine),
    catalog: ProfessionCatalog = Depends(get_profession_catalog),
):
    """
    One subtype (major + subtype), an ad-hoc job (custom_job), or, when neither
    is given, every subtype in the catalog ranked by fit.
    """
    try:
        snapshot = _snapshot_from_tests(engine, request)

        if request.custom_job is not None:
            result = engine.custom_job_fit(snapshot, request.custom_job.name, request.custom_job.demand)
            return ProfessionFitResponse(results=[result])

        if request.major is not None:
            subtype = request.subtype or catalog.default_subtype(request.major).name
            result = engine.profession_fit(snapshot, catalog, request.major, subtype)
            return ProfessionFitResponse(results=[result])

        ranking = engine.rank_professions(snapshot, catalog, top_n=request.top_n)
        return ProfessionFitResponse(
            results=sort_fit_results(ranking.results, request.sort_by),
            top=ranking.top,
            bottom=ranking.bottom,
        )
    except IncompleteAssessmentError as e:
        logger.error(f"Incomplete assessment: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidSubmissionError as e:
        logger.error(f"Invalid submission: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownProfessionError as e:
        logger.warning(f"Unknown profession: {e}")
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error during profession fit: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/persona/partner-profile", response_model=PartnerProfileResult)
def partner_profile(
    request: PersonaTests,
    engine: DriveDerivationEngine = Depends(get_drive_engine),
):
    try:
        snapshot = _snapshot_from_tests(engine, request)
        return engine.partner_profile(snapshot.innate_avg, snapshot.surface_avg)
    except IncompleteAssessmentError as e:
        logger.error(f"Incomplete assessment: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidSubmissionError as e:
        logger.error(f"Invalid submission: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error during partner profile: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/professions", response_model=ProfessionCatalogResponse)
def list_professions(
    q: Optional[str] = Query(None, description="Case-insensitive search over subtype and major names"),
    catalog: ProfessionCatalog = Depends(get_profession_catalog),
):
    majors = [
        ProfessionMajorInfo(
            major=m.major,
            default_subtype=catalog.default_subtype(m.major).name,
            subtypes=[s.name for s in m.subtypes],
        )
        for m in catalog.majors
    ]
    matches = []
    if q:
        matches = [
            ProfessionSubtypeInfo(major=major, name=s.name, drives=s.drives)
            for major, s in catalog.search(q)
        ]
    return ProfessionCatalogResponse(version=catalog.version, majors=majors, matches=matches)
