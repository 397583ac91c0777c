"""
Browser automation for LinkedIn Easy Apply.
Uses Playwright to open job URLs, open the Easy Apply modal and expose each
form step to the StepOrchestrator through the ApplicationForm interface.
"""
from __future__ import annotations

import html
import os
import threading
import time
from pathlib import Path

from quickapply import dom
from quickapply.config import EngineSettings, get_env, get_resume_path
from quickapply.cover_letter import CoverLetterSession, write_text_letter
from quickapply.log import get_logger
from quickapply.matcher import AnswerMatcher, best_option
from quickapply.models import ApplicationResult, ApplicationStatus, FieldDescriptor, Job
from quickapply.orchestrator import (
    ApplicationForm,
    FormField,
    OpenResult,
    StepOrchestrator,
    StepOutcome,
)
from quickapply.progress import Heartbeat, ProgressReporter, ProgressStore
from quickapply.retry import retry

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

EASY_APPLY_BUTTONS = [
    '[data-view-name="job-apply-button"]',
    "button.jobs-apply-button",
    'a[aria-label*="Easy Apply"]',
    'a[aria-label*="Candidature simplifiée"]',
    'button[aria-label*="Postuler"]',
    'a[aria-label*="Candidatar"]',
    'button[aria-label*="Bewerben"]',
    ".jobs-s-apply button",
]
ALREADY_APPLIED = [
    ".jobs-details-top-card__apply-status--applied",
    'span:has-text("Application sent")',
    'span:has-text("Candidature envoyée")',
    'span:has-text("Candidatura enviada")',
    'span:has-text("Bewerbung gesendet")',
]
MODAL = "div.jobs-easy-apply-modal, [data-test-modal]"
FORM_SECTIONS = [
    ".jobs-easy-apply-form-section__grouping",
    ".fb-dash-form-element",
    "[data-test-form-element]",
    ".jobs-document-upload",
    ".jobs-resume-picker",
    "[data-test-document-upload]",
]
ERROR_SELECTORS = [
    "[data-test-form-element-error-message]",
    ".artdeco-inline-feedback--error",
    ".fb-form-element__error-text",
    '[role="alert"]',
]
SUBMIT_BUTTONS = [
    'button[aria-label="Submit application"]',
    'button[aria-label="Soumettre la candidature"]',
    'button[aria-label="Enviar solicitud"]',
    'button[aria-label="Bewerbung absenden"]',
]
REVIEW_BUTTONS = [
    "button[data-live-test-easy-apply-review-button]",
    'button[aria-label="Review your application"]',
    'button[aria-label="Vérifier votre candidature"]',
    'button[aria-label="Revisar tu solicitud"]',
]
NEXT_BUTTONS = [
    "button[data-live-test-easy-apply-next-button]",
    "button[data-easy-apply-next-button]",
    'button[aria-label="Continue to next step"]',
    "button[aria-label=\"Passer à l'étape suivante\"]",
    'button[aria-label="Continuar al siguiente paso"]',
]
DISMISS_BUTTONS = ['button[aria-label="Dismiss"]', "button.artdeco-modal__dismiss"]
DISCARD_BUTTONS = ["button[data-test-dialog-primary-btn]", 'button:has-text("Discard")']
SPINNER = ".artdeco-spinner"
LISTBOX_OPTIONS = '[role="listbox"] [role="option"]'


# ---------------------------------------------------------------------------
# Form adapter
# ---------------------------------------------------------------------------


class EasyApplyField(FormField):
    def __init__(self, page, section, control, descriptor: FieldDescriptor, timeout_ms: int) -> None:
        self.page = page
        self.section = section
        self.control = control
        self.descriptor = descriptor
        self.timeout_ms = timeout_ms

    def fill(self, value: str) -> bool:
        try:
            if self.descriptor.control == "typeahead":
                return self._fill_typeahead(value)
            self.control.fill("")
            self.control.fill(value)
            return True
        except Exception as e:
            log.debug("Fill %r failed: %s", self.descriptor.label, str(e)[:80])
            return False

    def _fill_typeahead(self, value: str) -> bool:
        self.control.fill("")
        self.control.press_sequentially(value, delay=40)
        options = self.page.locator(LISTBOX_OPTIONS)
        try:
            options.first.wait_for(state="visible", timeout=3000)
        except Exception:
            # free-text typeahead: keep what was typed
            return True
        texts = [" ".join(t.split()) for t in options.all_text_contents()]
        picked = best_option(texts, value)
        index = texts.index(picked) if picked else 0
        options.nth(index).click()
        return True

    def select(self, option: str) -> bool:
        try:
            kind = self.descriptor.control
            if kind == "select":
                self.control.select_option(label=option, timeout=self.timeout_ms)
            elif kind in ("radio", "checkbox"):
                self.section.locator("label").filter(has_text=option).first.click()
            else:
                return self.fill(option)
            return True
        except Exception as e:
            log.debug("Select %r on %r failed: %s", option, self.descriptor.label, str(e)[:80])
            return False

    def upload(self, path: Path) -> bool:
        try:
            self.control.set_input_files(str(path))
            time.sleep(1)
            return True
        except Exception as e:
            log.debug("Upload to %r failed: %s", self.descriptor.label, str(e)[:80])
            return False


class EasyApplyPage(ApplicationForm):
    """LinkedIn job page with its Easy Apply modal."""

    def __init__(self, page, job: Job, settings: EngineSettings) -> None:
        self.page = page
        self.job = job
        self.timeout_ms = settings.dom_timeout_ms

    @property
    def modal(self):
        return self.page.locator(MODAL).first

    def open(self) -> OpenResult:
        self.page.goto(self.job.url, wait_until="domcontentloaded", timeout=25000)
        time.sleep(2)
        if dom.first_visible(self.page, ALREADY_APPLIED, timeout_ms=self.timeout_ms) is not None:
            return OpenResult.ALREADY_APPLIED
        if not dom.click_first_visible(self.page, EASY_APPLY_BUTTONS):
            log.warning("Easy Apply button not found for %s", self.job.url)
            return OpenResult.UNAVAILABLE
        try:
            self._wait_for_modal()
        except Exception:
            return OpenResult.UNAVAILABLE
        return OpenResult.OPENED

    @retry(max_attempts=3, base_delay=1.0, jitter=False)
    def _wait_for_modal(self) -> None:
        self.modal.wait_for(state="visible", timeout=5000)

    def discover_fields(self) -> list[FormField]:
        fields: list[FormField] = []
        seen: set[tuple[str, str, str]] = set()
        modal = self.modal
        for sel in FORM_SECTIONS:
            try:
                sections = modal.locator(sel).all()
            except Exception:
                continue
            for section in sections:
                if not dom.visible(section, self.timeout_ms):
                    continue
                described = dom.describe(section, self.timeout_ms)
                if described is None:
                    continue
                descriptor, control = described
                key = (descriptor.element_id, descriptor.question_text, descriptor.control)
                if key in seen:
                    continue
                seen.add(key)
                fields.append(EasyApplyField(self.page, section, control, descriptor, self.timeout_ms))
        log.debug("Found %d field(s) on this step", len(fields))
        return fields

    def advance(self, submit: bool = True) -> StepOutcome:
        for buttons, outcome in (
            (SUBMIT_BUTTONS, StepOutcome.SUBMITTED),
            (REVIEW_BUTTONS, StepOutcome.REVIEW),
            (NEXT_BUTTONS, StepOutcome.NEXT),
        ):
            if dom.first_visible(self.modal, buttons, timeout_ms=500) is None:
                continue
            if outcome is StepOutcome.SUBMITTED and not submit:
                log.info("Submit button reached, not clicking (dry run)")
                return StepOutcome.READY_TO_SUBMIT
            if not dom.click_first_visible(self.modal, buttons):
                return StepOutcome.ERROR
            self._wait_idle()
            if outcome is StepOutcome.SUBMITTED:
                return StepOutcome.SUBMITTED if not self.validation_errors() else StepOutcome.VALIDATION_ERROR
            if self.validation_errors():
                return StepOutcome.VALIDATION_ERROR
            return outcome
        return StepOutcome.ERROR

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        for sel in ERROR_SELECTORS:
            try:
                for loc in self.modal.locator(sel).all():
                    if dom.visible(loc, 500):
                        msg = dom.text(loc, self.timeout_ms)
                        if msg and msg not in errors:
                            errors.append(msg)
            except Exception:
                continue
        return errors

    def close(self) -> None:
        if not dom.visible(self.modal, 1000):
            return
        if dom.click_first_visible(self.page, DISMISS_BUTTONS):
            time.sleep(1)
            dom.click_first_visible(self.page, DISCARD_BUTTONS)

    def _wait_idle(self) -> None:
        time.sleep(1)
        try:
            self.page.locator(SPINNER).first.wait_for(state="hidden", timeout=10_000)
        except Exception:
            pass


# ---------------------------------------------------------------------------
# Cover letter rendering
# ---------------------------------------------------------------------------


class PdfLetterWriter:
    """Renders cover-letter text to a Letter-size PDF in a scratch page."""

    def __init__(self, context) -> None:
        self.context = context

    def __call__(self, text: str, directory: Path) -> Path:
        path = directory / "cover_letter.pdf"
        page = self.context.new_page()
        try:
            page.set_content(_letter_html(text))
            page.pdf(
                path=str(path),
                format="Letter",
                margin={"top": "1in", "right": "1in", "bottom": "1in", "left": "1in"},
                print_background=True,
            )
            return path
        except Exception as e:
            # headed Chromium cannot print to PDF
            log.debug("PDF render failed (%s), writing text", str(e)[:80])
            return write_text_letter(text, directory)
        finally:
            page.close()


def _letter_html(text: str) -> str:
    paragraphs = "".join(
        f"<p>{html.escape(p.strip()).replace(chr(10), '<br>')}</p>"
        for p in text.split("\n\n") if p.strip()
    )
    return (
        "<html><head><meta charset='utf-8'><style>"
        "body{font-family:Georgia,serif;font-size:11pt;line-height:1.5;color:#222}"
        "p{margin:0 0 12pt}"
        "</style></head><body>" + paragraphs + "</body></html>"
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def apply_via_browser(
    jobs: list[Job],
    matcher: AnswerMatcher,
    settings: EngineSettings,
    store: ProgressStore,
    *,
    cancel: threading.Event | None = None,
    session_prefix: str = "",
) -> list[ApplicationResult]:
    results: list[ApplicationResult] = []
    cancel = cancel or threading.Event()
    resume_path = get_resume_path()
    storage_state = get_env("LINKEDIN_STORAGE_STATE")

    try:
        from playwright.sync_api import sync_playwright
    except ImportError:
        for job in jobs:
            results.append(ApplicationResult(job.id, ApplicationStatus.FAILED, error="Playwright not installed"))
        return results

    with sync_playwright() as p:
        browser = p.chromium.launch(headless=settings.headless)
        context_args: dict = {
            "viewport": {"width": 1280, "height": 900},
            "user_agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
        }
        if storage_state and os.path.exists(storage_state):
            context_args["storage_state"] = storage_state
        context = browser.new_context(**context_args)
        page = context.new_page()
        page.set_default_timeout(20_000)
        writer = PdfLetterWriter(context)

        for job in jobs:
            if cancel.is_set():
                results.append(ApplicationResult(job.id, ApplicationStatus.CANCELLED, error="cancelled"))
                continue
            if not job.url:
                results.append(ApplicationResult(job.id, ApplicationStatus.FAILED, error="No URL for this job"))
                continue

            session_id = f"{session_prefix}{job.id}"
            log.info("Applying: %s @ %s", job.title or job.id, job.company or "?")
            reporter = ProgressReporter(store, session_id)
            letters = CoverLetterSession(
                job,
                matcher.profile,
                base_dir=settings.artifact_dir,
                writer=writer,
                idle_timeout_s=settings.cover_letter_idle_s,
            )
            orchestrator = StepOrchestrator(
                matcher,
                reporter,
                settings,
                cover_letters=letters,
                resume_path=resume_path,
                cancel=cancel,
                job_id=job.id,
            )
            with Heartbeat(store, session_id, settings.heartbeat_s):
                result = orchestrator.run(EasyApplyPage(page, job, settings))
            results.append(result)
            if result.ok:
                log.info("  ✓ %s", result.status.value)
            else:
                log.warning("  ✗ %s", result.error or result.status.value)

        browser.close()
    return results
