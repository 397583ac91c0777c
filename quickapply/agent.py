"""Autofill run: load profile and settings, apply to each job, track outcomes."""
from __future__ import annotations

import re
import threading
from dataclasses import replace
from typing import Any

from quickapply.config import PROFILE_PATH, ensure_dirs, load_profile, load_settings
from quickapply.cover_letter import purge_stale_artifacts
from quickapply.log import get_logger
from quickapply.matcher import AnswerMatcher
from quickapply.models import Job
from quickapply.progress import ProgressEvent, ProgressStore, describe, watch_progress
from quickapply.tracker import ensure_tracker, get_submitted_job_ids, record_result

log = get_logger(__name__)

_JOB_ID = re.compile(r"/jobs/view/(\d+)|currentJobId=(\d+)")


def job_from_url(url: str) -> Job:
    m = _JOB_ID.search(url)
    job_id = (m.group(1) or m.group(2)) if m else re.sub(r"\W+", "_", url)[-40:]
    return Job(id=job_id, title="", company="", location="", url=url)


def _log_event(event: ProgressEvent) -> None:
    if event.kind == "heartbeat":
        log.debug("[%s] heartbeat", event.session_id)
    elif event.state is not None:
        log.info("[%s] %s", event.session_id, describe(event.state))


def run(
    jobs: list[Job],
    *,
    profile_path=None,
    dry_run: bool | None = None,
    headless: bool | None = None,
    cancel: threading.Event | None = None,
    store: ProgressStore | None = None,
) -> dict[str, Any]:
    ensure_dirs()
    ensure_tracker()
    settings = load_settings()
    overrides: dict[str, Any] = {}
    if dry_run is not None:
        overrides["dry_run"] = dry_run
    if headless is not None:
        overrides["headless"] = headless
    if overrides:
        settings = replace(settings, **overrides)

    profile = load_profile(profile_path or PROFILE_PATH)
    matcher = AnswerMatcher(profile)
    owns_store = store is None
    store = store or ProgressStore(retention_s=settings.progress_retention_s)
    purge_stale_artifacts(settings.artifact_dir, settings.cover_letter_idle_s)

    # 1. Skip jobs already submitted
    done = get_submitted_job_ids()
    todo = [j for j in jobs if j.id not in done]
    if len(todo) < len(jobs):
        log.info("Skipping %d job(s) already submitted", len(jobs) - len(todo))
    if not todo:
        return {"attempted": 0, "submitted": 0, "failed": 0, "results": []}

    # 2. Observe progress
    watchers = [watch_progress(store, j.id, _log_event) for j in todo]

    # 3. Apply
    from quickapply.browser_apply import apply_via_browser

    log.info("Applying to %d job(s)%s", len(todo), " (dry run)" if settings.dry_run else "")
    results = apply_via_browser(todo, matcher, settings, store, cancel=cancel)

    # 4. Track
    by_id = {j.id: j for j in todo}
    for result in results:
        record_result(by_id[result.job_id], result)

    for sub, thread in watchers:
        sub.close()
        thread.join(timeout=1)
    if owns_store:
        store.close()

    submitted = sum(1 for r in results if r.ok)
    failed = len(results) - submitted
    log.info("Run complete — attempted=%d, ok=%d, failed=%d", len(results), submitted, failed)
    return {"attempted": len(results), "submitted": submitted, "failed": failed, "results": results}
