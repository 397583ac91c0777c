"""Exceptions raised across the autofill engine."""
from __future__ import annotations


class AutofillError(Exception):
    """Base class for engine errors."""


class ProfileError(AutofillError):
    """Applicant profile missing or malformed."""


class SubmissionCancelled(AutofillError):
    """The cancel signal was set while an application was in progress."""


class StepFailed(AutofillError):
    """A form step could not be completed."""

    def __init__(self, step: int, reason: str, field: str = "") -> None:
        self.step = step
        self.reason = reason
        self.field = field
        where = f"step {step}" + (f", field {field!r}" if field else "")
        super().__init__(f"{reason} ({where})")
