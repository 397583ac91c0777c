"""Safe reads from Playwright locators.

Every helper here swallows Playwright errors and timeouts and returns an
empty signal ("" / False / None) instead, so a slow or stale element never
aborts a form step.
"""
from __future__ import annotations

from quickapply.log import get_logger
from quickapply.models import FieldDescriptor
from quickapply.text import dedupe_repeated, normalize_text

log = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 2000

QUESTION_TITLE_SELECTORS = (
    "legend",
    "label",
    "[data-test-form-builder-radio-button-form-component__title]",
    "[data-test-text-entity-list-form-title]",
    "[data-test-single-typeahead-entity-form-title]",
)

PLACEHOLDER_OPTIONS = (
    "select an option",
    "selectionnez une option",
    "selecciona una opcion",
    "bitte auswahlen",
    "seleziona un'opzione",
)

SELECTED_DOCUMENT = (
    ".jobs-document-upload-redesign-card__container--selected h3, "
    ".jobs-document-upload__filename"
)

_VISIBLE_TEXT_JS = """el => {
  const clone = el.cloneNode(true);
  clone.querySelectorAll('.visually-hidden, .sr-only').forEach(e => e.remove());
  return clone.textContent;
}"""


def visible(locator, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> bool:
    """Safe visibility check that never throws."""
    try:
        return locator.count() > 0 and locator.first.is_visible(timeout=timeout_ms)
    except Exception:
        return False


def first_visible(scope, selectors, *, timeout_ms: int = DEFAULT_TIMEOUT_MS):
    """First visible locator matching any selector, or None."""
    for sel in selectors:
        try:
            loc = scope.locator(sel).first
            if loc.is_visible(timeout=timeout_ms):
                return loc
        except Exception:
            continue
    return None


def click_first_visible(scope, selectors, *, timeout_ms: int = 3000) -> bool:
    """Try clicking the first visible element matching any selector."""
    loc = first_visible(scope, selectors, timeout_ms=timeout_ms)
    if loc is None:
        return False
    try:
        loc.click()
        return True
    except Exception as exc:
        log.debug("Click failed: %s", exc)
        return False


def count(locator) -> int:
    try:
        return locator.count()
    except Exception:
        return 0


def attr(locator, name: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> str:
    try:
        return (locator.get_attribute(name, timeout=timeout_ms) or "").strip()
    except Exception:
        return ""


def text(locator, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> str:
    """Visible text of an element, ignoring screen-reader-only spans."""
    try:
        value = locator.evaluate(_VISIBLE_TEXT_JS, timeout=timeout_ms)
    except Exception:
        try:
            value = locator.text_content(timeout=timeout_ms)
        except Exception:
            return ""
    return " ".join((value or "").split())


def input_value(locator, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> str:
    try:
        return (locator.input_value(timeout=timeout_ms) or "").strip()
    except Exception:
        return ""


def is_required(control, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> bool:
    try:
        return bool(control.evaluate(
            "el => el.required || el.getAttribute('aria-required') === 'true'",
            timeout=timeout_ms,
        ))
    except Exception:
        return False


def question_text(section, control=None, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> str:
    """Prompt for a form section: legend, label, data-test titles, then aria-label."""
    for sel in QUESTION_TITLE_SELECTORS:
        loc = section.locator(sel).first
        if count(loc):
            found = text(loc, timeout_ms)
            if found:
                return dedupe_repeated(found)
    if control is not None:
        for name in ("aria-label", "name"):
            found = attr(control, name, timeout_ms)
            if found:
                return dedupe_repeated(found)
    return ""


def control_kind(section) -> tuple[str, object] | None:
    """Kind of the section's main control and its locator."""
    checks = (
        ("file", 'input[type="file"]'),
        ("select", "select"),
        ("typeahead", '[data-test-single-typeahead-input], [role="combobox"]'),
        ("radio", 'input[type="radio"]'),
        ("checkbox", 'input[type="checkbox"]'),
        ("textarea", "textarea"),
        ("text", 'input:not([type="hidden"]):not([type="file"]):not([type="radio"]):not([type="checkbox"])'),
    )
    for kind, sel in checks:
        loc = section.locator(sel)
        if count(loc):
            return kind, loc.first
    return None


def options(section, kind: str, control, question: str = "", timeout_ms: int = DEFAULT_TIMEOUT_MS) -> tuple[str, ...]:
    """Visible option strings, without the leading placeholder."""
    try:
        if kind == "select":
            raw = control.locator("option").all_text_contents()
        elif kind in ("radio", "checkbox"):
            raw = section.locator("label").all_text_contents()
        else:
            return ()
    except Exception:
        return ()

    values = [" ".join(r.split()) for r in raw]
    values = [v for v in values if v]
    if kind in ("radio", "checkbox") and question:
        q = normalize_text(question)
        values = [v for v in values if normalize_text(v) != q]
    if values and kind == "select" and normalize_text(values[0]) in PLACEHOLDER_OPTIONS:
        values = values[1:]
    return tuple(values)


def describe(section, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> tuple[FieldDescriptor, object] | None:
    """Read one form section into a FieldDescriptor and its control locator."""
    found = control_kind(section)
    if found is None:
        return None
    kind, control = found
    question = question_text(section, control, timeout_ms)
    required = is_required(control, timeout_ms)

    current = ""
    if kind in ("text", "textarea", "typeahead"):
        current = input_value(control, timeout_ms)
    elif kind == "file":
        selected = section.locator(SELECTED_DOCUMENT).first
        current = text(selected, timeout_ms) if count(selected) else ""

    descriptor = FieldDescriptor(
        element_id=attr(control, "id", timeout_ms),
        name=attr(control, "name", timeout_ms),
        aria_label=attr(control, "aria-label", timeout_ms),
        question_text=question,
        control=kind,
        options=options(section, kind, control, question, timeout_ms),
        required=required,
        current_value=current,
    )
    return descriptor, control
