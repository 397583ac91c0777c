"""Centralized logging configuration — stdlib only."""
from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_DECISIONS = "quickapply.decisions"
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a named logger; configures root handlers on first call."""
    global _configured
    if not _configured:
        _configure()
        _configured = True
    return logging.getLogger(name)


def log_decision(component: str, subject: str, outcome: str, decided_by: str | None) -> None:
    """Audit trail for heuristic decisions (classifier tiers, matcher tiers)."""
    get_logger(_DECISIONS).debug(
        "%s  subject=%r  outcome=%s  decided_by=%s",
        component, subject[:120], outcome, decided_by or "-",
    )


def _configure() -> None:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    if root.handlers:
        return

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FMT))
    root.addHandler(console)

    try:
        _LOG_DIR.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y-%m-%d")
        fh = logging.FileHandler(_LOG_DIR / f"autofill_{today}.log", encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FMT))
        root.addHandler(fh)

        # decisions also get their own daily file
        decisions = logging.FileHandler(_LOG_DIR / f"decisions_{today}.log", encoding="utf-8")
        decisions.setLevel(logging.DEBUG)
        decisions.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FMT))
        logging.getLogger(_DECISIONS).addHandler(decisions)
        logging.getLogger(_DECISIONS).setLevel(logging.DEBUG)
    except OSError:
        pass
