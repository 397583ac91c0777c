"""Track application outcomes in a structured table (CSV) with file locking."""
from __future__ import annotations

import csv
import fcntl
from datetime import datetime, timezone
from pathlib import Path

from quickapply.config import DATA_DIR
from quickapply.log import get_logger
from quickapply.models import ApplicationResult, Job

log = get_logger(__name__)

APPLICATIONS_CSV: Path = DATA_DIR / "applications.csv"
HEADERS: list[str] = [
    "job_id", "title", "company", "url", "finished_at", "status",
    "steps", "fields_filled", "fields_skipped", "failed_step", "failed_field", "error",
]


def _lock(f, exclusive: bool = True) -> None:
    """Advisory file lock (Unix fcntl)."""
    try:
        op = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        fcntl.flock(f.fileno(), op)
    except (OSError, AttributeError):
        pass


def _unlock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


def ensure_tracker(path: Path | None = None) -> Path:
    path = path or APPLICATIONS_CSV
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        with open(path, "w", newline="", encoding="utf-8") as f:
            _lock(f)
            csv.writer(f).writerow(HEADERS)
            _unlock(f)
        log.info("Created application tracker → %s", path.name)
    return path


def record_result(job: Job, result: ApplicationResult, path: Path | None = None) -> None:
    path = ensure_tracker(path)
    row = {
        "job_id": job.id,
        "title": job.title,
        "company": job.company,
        "url": job.url,
        "finished_at": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M"),
        "status": result.status.value,
        "steps": result.steps_completed,
        "fields_filled": result.fields_filled,
        "fields_skipped": result.fields_skipped,
        "failed_step": "" if result.failed_step is None else result.failed_step,
        "failed_field": result.failed_field,
        "error": result.error[:200],
    }
    with open(path, "a", newline="", encoding="utf-8") as f:
        _lock(f)
        csv.DictWriter(f, fieldnames=HEADERS).writerow(row)
        _unlock(f)
    log.debug("Tracked: %s @ %s [%s]", job.title, job.company, result.status.value)


def get_applications(path: Path | None = None) -> list[dict[str, str]]:
    path = ensure_tracker(path)
    with open(path, "r", encoding="utf-8") as f:
        _lock(f, exclusive=False)
        rows = list(csv.DictReader(f))
        _unlock(f)
    return rows


def get_submitted_job_ids(path: Path | None = None) -> set[str]:
    """Jobs already submitted (or found already applied) in earlier runs."""
    done = {"completed", "already_applied"}
    return {r["job_id"] for r in get_applications(path) if r.get("status") in done}
