"""Load profile and env configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

from quickapply.exceptions import ProfileError
from quickapply.log import get_logger
from quickapply.models import ApplicantProfile

log = get_logger(__name__)

load_dotenv()

CONFIG_DIR: Path = Path(__file__).resolve().parent.parent / "config"
PROFILE_PATH: Path = CONFIG_DIR / "profile.yaml"
DATA_DIR: Path = Path(__file__).resolve().parent.parent / "data"
RESUME_DIR: Path = Path(__file__).resolve().parent.parent / "resume"

FALLBACK_POLICIES = ("skip", "default")


@dataclass(frozen=True)
class EngineSettings:
    max_steps: int = 15
    max_step_retries: int = 3
    dom_timeout_ms: int = 2000
    progress_retention_s: float = 300.0
    heartbeat_s: float = 30.0
    cover_letter_idle_s: float = 600.0
    fallback: str = "skip"
    default_answer: str = ""
    dry_run: bool = False
    headless: bool = True
    artifact_dir: Path = DATA_DIR / "cover_letters"


def load_profile(path: Path | None = None) -> ApplicantProfile:
    path = path or PROFILE_PATH
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ProfileError(f"No profile at {path}") from exc
    except yaml.YAMLError as exc:
        raise ProfileError(f"Invalid profile YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ProfileError(f"Profile {path} must be a mapping")

    # Backward compat: single `school` key → education list
    if "school" in data and "education" not in data:
        data["education"] = [{"institution": data.pop("school")}]

    return ApplicantProfile.from_dict(data)


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _env_int(key: str, default: int) -> int:
    raw = get_env(key)
    try:
        return int(raw) if raw else default
    except ValueError:
        log.warning("Ignoring non-integer %s=%r", key, raw)
        return default


def _env_float(key: str, default: float) -> float:
    raw = get_env(key)
    try:
        return float(raw) if raw else default
    except ValueError:
        log.warning("Ignoring non-numeric %s=%r", key, raw)
        return default


def _env_bool(key: str, default: bool) -> bool:
    raw = get_env(key).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes")


def load_settings() -> EngineSettings:
    fallback = get_env("QA_FALLBACK", "skip").lower()
    if fallback not in FALLBACK_POLICIES:
        log.warning("Unknown QA_FALLBACK=%r, using 'skip'", fallback)
        fallback = "skip"
    artifact_dir = get_env("QA_ARTIFACT_DIR")
    return EngineSettings(
        max_steps=max(1, _env_int("QA_MAX_STEPS", 15)),
        max_step_retries=max(0, _env_int("QA_MAX_STEP_RETRIES", 3)),
        dom_timeout_ms=max(100, _env_int("QA_DOM_TIMEOUT_MS", 2000)),
        progress_retention_s=_env_float("QA_PROGRESS_RETENTION_S", 300.0),
        heartbeat_s=max(1.0, _env_float("QA_HEARTBEAT_S", 30.0)),
        cover_letter_idle_s=_env_float("QA_COVER_LETTER_IDLE_S", 600.0),
        fallback=fallback,
        default_answer=get_env("QA_DEFAULT_ANSWER"),
        dry_run=_env_bool("QA_DRY_RUN", False),
        headless=_env_bool("RUN_HEADLESS", True),
        artifact_dir=Path(artifact_dir) if artifact_dir else DATA_DIR / "cover_letters",
    )


def ensure_dirs() -> None:
    for d in (DATA_DIR, RESUME_DIR):
        d.mkdir(parents=True, exist_ok=True)


def get_resume_path() -> Path | None:
    """First PDF or DOCX in resume folder."""
    if not RESUME_DIR.exists():
        return None
    for ext in (".pdf", ".docx", ".doc"):
        for p in RESUME_DIR.iterdir():
            if p.suffix.lower() == ext and p.is_file():
                return p
    return None
