from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from services.drive_engine.jung import PersonaCode
from services.drive_engine.professions import FitResult, SortMode
from services.drive_engine.records import RawAssessmentResponse, TestKind
from services.drive_engine.reports import DrainAnalysis, InstrumentationFlow
from services.drive_engine.snapshot import DerivedPersonaSnapshot


class AssessmentSubmission(BaseModel):
    answers: Dict[str, Any]  # question key -> answer (0..5, None/0 = unanswered)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_record(self, kind: TestKind) -> RawAssessmentResponse:
        return RawAssessmentResponse.from_answers(kind, self.answers, self.created_at, self.updated_at)


class PersonaTests(BaseModel):
    imposed: Optional[AssessmentSubmission] = None
    surface: Optional[AssessmentSubmission] = None
    innate: Optional[AssessmentSubmission] = None

    def records(self) -> Dict[str, Optional[RawAssessmentResponse]]:
        return {
            kind: submission.to_record(kind) if submission is not None else None
            for kind, submission in (("imposed", self.imposed), ("surface", self.surface), ("innate", self.innate))
        }


class SnapshotRequest(PersonaTests):
    user_id: str
    force: bool = False
    include_reports: bool = False


class PersonaReports(BaseModel):
    drain: DrainAnalysis
    instrumentation: InstrumentationFlow
    innate_code: PersonaCode
    surface_code: PersonaCode


class SnapshotResponse(BaseModel):
    status: str
    snapshot: DerivedPersonaSnapshot
    reasons: List[str] = []
    persisted: bool
    error: Optional[str] = None
    reports: Optional[PersonaReports] = None


class CustomJob(BaseModel):
    name: str
    demand: Dict[str, float]


class ProfessionFitRequest(PersonaTests):
    major: Optional[str] = None
    subtype: Optional[str] = None
    custom_job: Optional[CustomJob] = None
    sort_by: SortMode = "mismatch"
    top_n: int = Field(3, ge=1)


class ProfessionFitResponse(BaseModel):
    results: List[FitResult]
    top: List[FitResult] = []
    bottom: List[FitResult] = []


class ProfessionSubtypeInfo(BaseModel):
    major: str
    name: str
    drives: Dict[str, int]


class ProfessionMajorInfo(BaseModel):
    major: str
    default_subtype: str
    subtypes: List[str]


class ProfessionCatalogResponse(BaseModel):
    version: str
    majors: List[ProfessionMajorInfo]
    matches: List[ProfessionSubtypeInfo] = []
