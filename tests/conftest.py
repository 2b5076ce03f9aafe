from datetime import datetime, timezone

import pytest

from services.drive_engine.engine import DriveDerivationEngine
from services.drive_engine.loader import load_engine_config_from_file
from services.drive_engine.records import RawAssessmentResponse

ENGINE_CONFIG_PATH = "assets/drive_engine.yml"
PROFESSIONS_PATH = "assets/profession_profiles.yml"

# Number of questions per persona test.
QUESTION_COUNTS = {"imposed": 21, "surface": 20, "innate": 17}

CREATED_AT = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
COMPUTED_AT = datetime(2026, 1, 6, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def engine_config():
    """The real engine tables shipped in assets/."""
    return load_engine_config_from_file(ENGINE_CONFIG_PATH)


@pytest.fixture(scope="session")
def engine(engine_config):
    return DriveDerivationEngine(config=engine_config)


@pytest.fixture
def make_record():
    """
    Factory for persona test records: every question answered with `default`
    unless overridden by {question_number: answer}.
    """
    def _make(kind, overrides=None, default=3, updated_at=None):
        answers = {f"q{i}_answer": default for i in range(1, QUESTION_COUNTS[kind] + 1)}
        for index, value in (overrides or {}).items():
            answers[f"q{index}_answer"] = value
        return RawAssessmentResponse.from_answers(kind, answers, created_at=CREATED_AT, updated_at=updated_at)
    return _make


@pytest.fixture
def neutral_tests(make_record):
    """All three tests answered 3 everywhere."""
    return make_record("imposed"), make_record("surface"), make_record("innate")


@pytest.fixture
def route_tests(make_record):
    """
    Innate prefers Exploration over Achievement (q1 = 5) while the surface
    test states the opposite (q1 = 5 on a back-stated pair): one route,
    Exploration -> Achievement.
    """
    return make_record("imposed"), make_record("surface", {1: 5}), make_record("innate", {1: 5})
