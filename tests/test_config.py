"""Tests for profile loading and env-driven settings."""

from __future__ import annotations

import pytest

from quickapply.config import EngineSettings, load_profile, load_settings
from quickapply.exceptions import ProfileError

PROFILE_YAML = """
profile:
  name: Camille Martin
  email: camille@example.com
  phone: "+33612345678"
  phone_prefix: "+33"
  city: Paris
  skills: [Python, SQL]
  links:
    github: https://github.com/camille
education:
  - institution: École Polytechnique
    location: Palaiseau, France
  - school: Lycée Sainte-Geneviève
"""


class TestLoadProfile:
    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "profile.yaml"
        path.write_text(PROFILE_YAML, encoding="utf-8")
        profile = load_profile(path)
        assert profile.personal.name == "Camille Martin"
        assert profile.personal.github == "https://github.com/camille"
        assert profile.personal.skills == ("Python", "SQL")
        assert [e.institution for e in profile.education] == ["École Polytechnique", "Lycée Sainte-Geneviève"]

    def test_prefixed_phone_is_not_doubled(self, tmp_path):
        path = tmp_path / "profile.yaml"
        path.write_text(PROFILE_YAML, encoding="utf-8")
        personal = load_profile(path).personal
        assert personal.national_phone == "612345678"
        assert personal.formatted_phone == "+33612345678"

    def test_single_school_key(self, tmp_path):
        path = tmp_path / "profile.yaml"
        path.write_text("profile: {name: A}\nschool: HEC Paris\n", encoding="utf-8")
        assert load_profile(path).education[0].institution == "HEC Paris"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ProfileError):
            load_profile(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "profile.yaml"
        path.write_text("profile: [unclosed", encoding="utf-8")
        with pytest.raises(ProfileError):
            load_profile(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "profile.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ProfileError):
            load_profile(path)


class TestSettings:
    def test_defaults(self):
        settings = load_settings()
        defaults = EngineSettings()
        assert settings.max_steps == defaults.max_steps == 15
        assert settings.max_step_retries == 3
        assert settings.fallback == "skip"
        assert settings.dry_run is False

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("QA_MAX_STEP_RETRIES", "1")
        monkeypatch.setenv("QA_FALLBACK", "DEFAULT")
        monkeypatch.setenv("QA_DEFAULT_ANSWER", "Yes")
        monkeypatch.setenv("QA_DRY_RUN", "true")
        monkeypatch.setenv("QA_ARTIFACT_DIR", str(tmp_path))
        settings = load_settings()
        assert settings.max_step_retries == 1
        assert settings.fallback == "default"
        assert settings.default_answer == "Yes"
        assert settings.dry_run is True
        assert settings.artifact_dir == tmp_path

    def test_bad_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("QA_MAX_STEPS", "many")
        monkeypatch.setenv("QA_FALLBACK", "guess")
        settings = load_settings()
        assert settings.max_steps == 15
        assert settings.fallback == "skip"
