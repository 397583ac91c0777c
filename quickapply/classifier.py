"""Decide whether a file-upload field wants a resume or a cover letter.

Four tiers run in order and the first one that decides wins:

1. identifier-pattern — the site's generated element id
2. attribute          — id / name / aria-label keywords (multilingual)
3. question-text      — the visible prompt next to the upload
4. default            — resume

An upload whose id marks it as the second document slot is a cover
letter even when its prompt reads "Resume".
"""
from __future__ import annotations

import re

from quickapply.log import get_logger, log_decision
from quickapply.models import DocumentClassification, DocumentKind, FieldDescriptor
from quickapply.text import contains_any, normalize_text
from quickapply.tiers import TierPipeline

log = get_logger(__name__)

COVER_LETTER_ID_KEYWORDS: tuple[str, ...] = (
    "cover", "coverletter", "cover-letter",
    "lettre", "motivation",
    "anschreiben", "bewerbung",
    "carta", "presentacion",
    "lettera", "presentazione",
    "carta-apresentacao",
)

COVER_LETTER_TEXT_KEYWORDS: tuple[str, ...] = (
    "cover letter", "coverletter",
    "lettre de motivation", "lettre motivation",
    "anschreiben", "motivationsschreiben",
    "carta de presentacion", "carta presentacion",
    "lettera di presentazione",
    "carta de apresentacao",
)

RESUME_TEXT_KEYWORDS: tuple[str, ...] = ("resume", "cv", "lebenslauf", "curriculum")

_UPLOAD_SLOT = re.compile(r"upload-([a-z-]+)-urn")
_SECOND_DOCUMENT_SLOT = "jobs-document-upload-file-input-urn"


def _by_identifier(d: FieldDescriptor) -> DocumentKind | None:
    element_id = (d.element_id or "").lower()
    if not element_id:
        return None
    m = _UPLOAD_SLOT.search(element_id)
    if m:
        slot = m.group(1)
        if "cover" in slot or "letter" in slot:
            return DocumentKind.COVER_LETTER
        if "resume" in slot or "cv" in slot:
            return DocumentKind.RESUME
    if _SECOND_DOCUMENT_SLOT in element_id and "upload-resume" not in element_id:
        return DocumentKind.COVER_LETTER
    return None


def _by_attributes(d: FieldDescriptor) -> DocumentKind | None:
    attrs = " ".join((d.element_id, d.name, d.aria_label)).lower()
    if contains_any(attrs, COVER_LETTER_ID_KEYWORDS):
        return DocumentKind.COVER_LETTER
    return None


def _by_question_text(d: FieldDescriptor) -> DocumentKind | None:
    text = normalize_text(d.question_text)
    if not text:
        return None
    if contains_any(text, COVER_LETTER_TEXT_KEYWORDS):
        return DocumentKind.COVER_LETTER
    if contains_any(text, RESUME_TEXT_KEYWORDS):
        return DocumentKind.RESUME
    return None


_PIPELINE: TierPipeline[FieldDescriptor, DocumentKind] = TierPipeline(
    "classifier",
    [
        ("identifier-pattern", _by_identifier),
        ("attribute", _by_attributes),
        ("question-text", _by_question_text),
    ],
)


def classify(descriptor: FieldDescriptor) -> DocumentClassification:
    """Classify an upload field. Never raises; defaults to resume."""
    decided = _PIPELINE.first(descriptor)
    if decided is None:
        result = DocumentClassification(DocumentKind.RESUME, "default")
    else:
        tag, kind = decided
        result = DocumentClassification(kind, tag)
    log_decision("classifier", descriptor.label, result.kind.value, result.decided_by)
    return result
