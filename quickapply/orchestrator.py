"""Drive one Easy Apply form from opening to a terminal state.

States:

    DISCOVERING → FILLING_STEP → SUBMITTING → NEXT_STEP | AWAITING_REVIEW | FAILED | COMPLETED

The orchestrator only talks to the abstract `ApplicationForm` / `FormField`
interface; the Playwright implementation lives in `browser_apply`.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

from quickapply.classifier import classify
from quickapply.config import EngineSettings
from quickapply.cover_letter import CoverLetterSession
from quickapply.exceptions import StepFailed, SubmissionCancelled
from quickapply.log import get_logger, log_decision
from quickapply.matcher import AnswerMatcher, best_option
from quickapply.models import (
    NO_MATCH,
    ApplicationResult,
    ApplicationStatus,
    DocumentKind,
    FieldDescriptor,
    FieldMatchResult,
)
from quickapply.progress import ProgressReporter
from quickapply.text import contains_any, normalize_text

log = get_logger(__name__)

SCHOOL_QUESTION_KEYWORDS = ("school", "university", "college", "institution", "ecole", "universite")
PREFIX_QUESTION_KEYWORDS = ("prefix", "country code", "phone country", "indicatif")
TEXT_CONTROLS = ("text", "typeahead", "textarea")


class ApplyState(str, Enum):
    DISCOVERING = "discovering"
    FILLING_STEP = "filling_step"
    SUBMITTING = "submitting"
    NEXT_STEP = "next_step"
    AWAITING_REVIEW = "awaiting_review"
    FAILED = "failed"
    COMPLETED = "completed"


class OpenResult(str, Enum):
    OPENED = "opened"
    ALREADY_APPLIED = "already_applied"
    UNAVAILABLE = "unavailable"


class StepOutcome(str, Enum):
    NEXT = "next"
    REVIEW = "review"
    SUBMITTED = "submitted"
    READY_TO_SUBMIT = "ready_to_submit"
    VALIDATION_ERROR = "validation_error"
    ERROR = "error"


# ── Form interface ────────────────────────────────────────────────────


class FormField(ABC):
    """One fillable control on the current step."""

    descriptor: FieldDescriptor

    @abstractmethod
    def fill(self, value: str) -> bool:
        """Type a text answer. True on success."""

    @abstractmethod
    def select(self, option: str) -> bool:
        """Choose one of `descriptor.options`."""

    @abstractmethod
    def upload(self, path: Path) -> bool:
        """Attach a file."""


class ApplicationForm(ABC):
    """A multi-step application form."""

    @abstractmethod
    def open(self) -> OpenResult:
        ...

    @abstractmethod
    def discover_fields(self) -> list[FormField]:
        ...

    @abstractmethod
    def advance(self, submit: bool = True) -> StepOutcome:
        """Press the step's primary button and report where that led.

        With `submit=False` a visible submit button is not clicked; the form
        reports READY_TO_SUBMIT instead.
        """

    @abstractmethod
    def validation_errors(self) -> list[str]:
        ...

    @abstractmethod
    def close(self) -> None:
        """Dismiss the form, discarding any draft."""


# ── Orchestrator ──────────────────────────────────────────────────────


class StepOrchestrator:
    def __init__(
        self,
        matcher: AnswerMatcher,
        reporter: ProgressReporter,
        settings: EngineSettings,
        *,
        cover_letters: CoverLetterSession | None = None,
        resume_path: Path | None = None,
        cancel: threading.Event | None = None,
        job_id: str = "",
    ) -> None:
        self.matcher = matcher
        self.reporter = reporter
        self.settings = settings
        self.cover_letters = cover_letters
        self.resume_path = resume_path
        self.cancel = cancel or threading.Event()
        self.job_id = job_id or reporter.session_id
        self.state = ApplyState.DISCOVERING
        self._result = ApplicationResult(job_id=self.job_id, status=ApplicationStatus.FAILED)
        self._step = 0
        self._processed = 0
        self._total = 0
        self._flagged: list[FieldDescriptor] = []

    # ── Public ───────────────────────────────────────────────────────

    def run(self, form: ApplicationForm) -> ApplicationResult:
        result = self._result
        try:
            self._transition(ApplyState.DISCOVERING)
            self.reporter.report("discovering", 0, detail_tags=("opening",))
            opened = form.open()
            if opened is OpenResult.ALREADY_APPLIED:
                result.status = ApplicationStatus.ALREADY_APPLIED
                self._transition(ApplyState.COMPLETED)
                self.reporter.finish("already_applied", ("already-applied",))
            elif opened is not OpenResult.OPENED:
                raise StepFailed(0, "Easy Apply form unavailable")
            else:
                self._run_steps(form)
        except SubmissionCancelled:
            result.status = ApplicationStatus.CANCELLED
            result.error = "cancelled"
            self._transition(ApplyState.FAILED)
            self.reporter.finish("cancelled", ("cancelled",))
            self._safe_close(form)
        except StepFailed as exc:
            result.status = ApplicationStatus.FAILED
            result.failed_step = exc.step
            result.failed_field = exc.field
            result.error = str(exc)
            self._transition(ApplyState.FAILED)
            tags = ("failed", f"step-{exc.step}") + ((exc.field,) if exc.field else ())
            self.reporter.finish("failed", tags)
            self._safe_close(form)
        except Exception as exc:
            result.status = ApplicationStatus.FAILED
            result.failed_step = self._step or None
            result.error = f"{type(exc).__name__}: {str(exc)[:150]}"
            self._transition(ApplyState.FAILED)
            log.error("Application %s crashed at step %d: %s", self.job_id, self._step, exc)
            self.reporter.finish("failed", ("fatal", type(exc).__name__))
            self._safe_close(form)
        finally:
            if self.cover_letters is not None:
                self.cover_letters.release()
            if not self.reporter.finished:
                self.reporter.finish(result.status.value)

        result.steps_completed = max(0, self._step - (0 if result.ok else 1))
        log.info(
            "Application %s → %s (steps=%d, filled=%d, skipped=%d)%s",
            self.job_id, result.status.value, result.steps_completed,
            result.fields_filled, result.fields_skipped,
            f" — {result.error}" if result.error else "",
        )
        return result

    # ── Steps ────────────────────────────────────────────────────────

    def _run_steps(self, form: ApplicationForm) -> None:
        attempts = 0
        while True:
            self._check_cancel()
            if attempts == 0:
                self._step += 1
                if self._step > self.settings.max_steps:
                    raise StepFailed(self._step - 1, f"Exceeded {self.settings.max_steps} steps")

            self._transition(ApplyState.FILLING_STEP)
            if self.cover_letters is not None:
                self.cover_letters.expire_idle()
            fields = form.discover_fields()
            if attempts == 0:
                self._total += len(fields)
            self._flagged = []
            self.reporter.report(
                f"step-{self._step}",
                self._processed,
                self._total,
                detail_tags=tuple(f.descriptor.label for f in fields),
            )
            for f in fields:
                self._check_cancel()
                self._fill_field(f, count=attempts == 0)

            self._check_cancel()
            self._transition(ApplyState.SUBMITTING)
            self.reporter.report(f"step-{self._step}:submitting", self._processed, self._total)
            outcome = form.advance(submit=not self.settings.dry_run)
            log.debug("Step %d → %s", self._step, outcome.value)

            if outcome is StepOutcome.VALIDATION_ERROR:
                attempts += 1
                errors = form.validation_errors()
                if attempts > self.settings.max_step_retries:
                    field = self._flagged[0].label if self._flagged else ""
                    reason = "Validation errors: " + ("; ".join(errors[:3]) or "unknown")
                    raise StepFailed(self._step, reason, field)
                log.warning(
                    "Step %d validation failed (attempt %d/%d): %s",
                    self._step, attempts, self.settings.max_step_retries, "; ".join(errors[:3]),
                )
                continue

            if outcome is StepOutcome.ERROR:
                field = self._flagged[0].label if self._flagged else ""
                raise StepFailed(self._step, "Could not advance the form", field)

            attempts = 0
            if outcome is StepOutcome.SUBMITTED:
                self._transition(ApplyState.COMPLETED)
                self._result.status = ApplicationStatus.COMPLETED
                self.reporter.report("completed", self._total, self._total, ("submitted",), complete=True)
                return

            if outcome is StepOutcome.REVIEW or outcome is StepOutcome.READY_TO_SUBMIT:
                self._transition(ApplyState.AWAITING_REVIEW)
                if self.settings.dry_run or outcome is StepOutcome.READY_TO_SUBMIT:
                    self._result.status = ApplicationStatus.AWAITING_REVIEW
                    self.reporter.report(
                        "awaiting_review", self._processed, self._total, ("dry-run",), complete=True
                    )
                    return
                continue

            self._transition(ApplyState.NEXT_STEP)

    # ── Fields ───────────────────────────────────────────────────────

    def _fill_field(self, f: FormField, *, count: bool) -> None:
        d = f.descriptor
        if d.control == "file":
            ok = self._upload(f)
        else:
            match = self._match(d)
            if match.matched:
                ok = f.select(match.value) if d.control in ("select", "radio") else f.fill(match.value)
                self._result.decisions.append((d.label, match.decided_by or ""))
                if not ok:
                    log.debug("Could not set %r to %r", d.label, match.value)
            else:
                ok = self._fallback(f)

        if ok:
            self._result.fields_filled += 1 if count else 0
        else:
            self._result.fields_skipped += 1 if count else 0
            if d.required and not d.current_value:
                self._flagged.append(d)
                log_decision("orchestrator", d.label, "unmatched-required", None)

        if count:
            self._processed += 1
        self.reporter.report(f"step-{self._step}", self._processed, self._total, detail_tags=(d.label,))

    def _match(self, d: FieldDescriptor) -> FieldMatchResult:
        question = normalize_text(d.question_text or d.aria_label)
        if d.control in ("select", "radio") or (d.control == "typeahead" and d.options):
            options = d.options
            if contains_any(question, SCHOOL_QUESTION_KEYWORDS):
                return self.matcher.match_school_result(options)
            if contains_any(question, PREFIX_QUESTION_KEYWORDS):
                return self.matcher.match_phone_prefix_result(options)
            text_match = self.matcher.match_by_question_text(d.question_text)
            if text_match.matched:
                picked = best_option(options, text_match.value)
                if picked:
                    return FieldMatchResult.of(text_match.field_type, picked, text_match.decided_by)
            return NO_MATCH

        if d.control not in TEXT_CONTROLS:
            return NO_MATCH
        if d.current_value:
            return NO_MATCH
        signals = self.matcher.match_by_element_signals(d)
        if signals.matched:
            return signals
        return self.matcher.match_by_question_text(d.question_text or d.aria_label)

    def _fallback(self, f: FormField) -> bool:
        d = f.descriptor
        if d.current_value:
            return True
        if self.settings.fallback == "default" and self.settings.default_answer:
            if d.control in TEXT_CONTROLS:
                log_decision("orchestrator", d.label, "default-answer", "fallback")
                return f.fill(self.settings.default_answer)
            if d.options:
                picked = best_option(d.options, self.settings.default_answer)
                if picked:
                    log_decision("orchestrator", d.label, "default-answer", "fallback")
                    return f.select(picked)
        log_decision("orchestrator", d.label, "skipped", "fallback")
        return False

    def _upload(self, f: FormField) -> bool:
        """Attach the resume or the cover letter; optional cover-letter slots stay empty."""
        d = f.descriptor
        classification = classify(d)
        self._result.decisions.append((d.label, classification.decided_by))
        if classification.kind is DocumentKind.COVER_LETTER:
            if not d.required:
                log_decision("orchestrator", d.label, "optional-cover-letter-skipped", classification.decided_by)
                return False
            path = self.cover_letters.obtain() if self.cover_letters is not None else None
        else:
            if d.current_value:
                log.debug("Resume already attached (%s)", d.current_value)
                return True
            path = self.resume_path
        if path is None:
            log.info("No %s to attach for %r", classification.kind.value, d.label)
            return False
        return f.upload(path)

    # ── Helpers ──────────────────────────────────────────────────────

    def _check_cancel(self) -> None:
        if self.cancel.is_set():
            log.info("Application %s cancelled at step %d", self.job_id, self._step)
            raise SubmissionCancelled(self.job_id)

    def _transition(self, state: ApplyState) -> None:
        if state is not self.state:
            log.debug("%s: %s → %s", self.job_id, self.state.value, state.value)
        self.state = state

    def _safe_close(self, form: ApplicationForm) -> None:
        try:
            form.close()
        except Exception as exc:
            log.debug("Closing form for %s failed: %s", self.job_id, exc)
