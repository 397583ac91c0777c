"""Shared fixtures for the quickapply test suite.

Every test runs offline: no browser, no network, environment variables
scrubbed and data files redirected to a temp directory.
"""

from __future__ import annotations

import pytest

from quickapply.models import ApplicantProfile, Education, PersonalInfo

_ENV_KEYS = (
    "GROQ_API_KEY", "CANDIDATE_NAME", "LINKEDIN_STORAGE_STATE",
    "QA_MAX_STEPS", "QA_MAX_STEP_RETRIES", "QA_DOM_TIMEOUT_MS",
    "QA_PROGRESS_RETENTION_S", "QA_HEARTBEAT_S", "QA_COVER_LETTER_IDLE_S",
    "QA_FALLBACK", "QA_DEFAULT_ANSWER", "QA_DRY_RUN", "QA_ARTIFACT_DIR", "RUN_HEADLESS",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Clean engine env vars; tracker CSV under tmp_path."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("quickapply.tracker.APPLICATIONS_CSV", tmp_path / "applications.csv")


@pytest.fixture
def profile() -> ApplicantProfile:
    return ApplicantProfile(
        personal=PersonalInfo(
            name="Camille Martin",
            email="camille@example.com",
            phone="612345678",
            phone_prefix="+33",
            city="Paris",
            github="https://github.com/camille",
            linkedin="https://linkedin.com/in/camille",
            title="Software Engineer",
            summary="Backend engineer with four years of Python.",
            skills=("Python", "PostgreSQL"),
        ),
        education=(Education(institution="École Polytechnique", location="Palaiseau, France"),),
    )
