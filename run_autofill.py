#!/usr/bin/env python3
"""Entry point to autofill and submit LinkedIn Easy Apply forms."""
from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from quickapply.log import get_logger
from quickapply.config import PROFILE_PATH

log = get_logger(__name__)


def _check_setup(profile: Path) -> bool:
    """Return True if first-run setup is needed."""
    if not profile.exists():
        print()
        print(f"  No profile found at {profile}.")
        print("  Copy config/profile.example.yaml to config/profile.yaml and fill it in.")
        print()
        return True
    return False


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("urls", nargs="+", help="LinkedIn job URLs")
    parser.add_argument("--profile", type=Path, default=PROFILE_PATH, help="profile YAML")
    parser.add_argument("--dry-run", action="store_true", help="stop at the review page")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--headless", dest="headless", action="store_true", default=None)
    mode.add_argument("--headed", dest="headless", action="store_false")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = _parse_args()
    if _check_setup(args.profile):
        sys.exit(1)

    from quickapply.agent import job_from_url, run

    cancel = threading.Event()

    def _on_sigint(signum, frame) -> None:
        log.warning("Interrupt received — finishing the current field, then stopping")
        cancel.set()

    signal.signal(signal.SIGINT, _on_sigint)

    result = run(
        [job_from_url(u) for u in args.urls],
        profile_path=args.profile,
        dry_run=args.dry_run or None,
        headless=args.headless,
        cancel=cancel,
    )
    log.info("Run complete.")
    log.info("  Attempted: %d", result["attempted"])
    log.info("  Submitted / ok: %d", result["submitted"])
    log.info("  Failed: %d", result["failed"])
    for r in result["results"]:
        if not r.ok:
            log.info("  %s: %s", r.job_id, r.error or r.status.value)
    sys.exit(0 if result["failed"] == 0 else 2)
