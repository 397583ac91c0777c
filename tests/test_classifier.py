"""Tests for upload-field classification.

Covers each tier of the cascade, the tier order on conflicting signals,
multilingual keywords and the resume default.
"""

from __future__ import annotations

import pytest

from quickapply import classifier
from quickapply.classifier import COVER_LETTER_ID_KEYWORDS, COVER_LETTER_TEXT_KEYWORDS, classify
from quickapply.models import DocumentKind, FieldDescriptor


# ---------------------------------------------------------------------------
# 1. Identifier tokens
# ---------------------------------------------------------------------------


class TestIdentifierPattern:
    def test_cover_letter_slot(self):
        result = classify(FieldDescriptor(element_id="upload-cover-letter-urn-123"))
        assert result.kind is DocumentKind.COVER_LETTER
        assert result.decided_by == "identifier-pattern"

    def test_resume_slot(self):
        result = classify(FieldDescriptor(element_id="jobs-document-upload-file-input-upload-resume-urn-1"))
        assert result.kind is DocumentKind.RESUME
        assert result.decided_by == "identifier-pattern"

    def test_second_document_slot_is_cover_letter(self):
        """Generic second-slot id beats a question that says "Resume"."""
        d = FieldDescriptor(element_id="jobs-document-upload-file-input-urn-9", question_text="Resume")
        result = classify(d)
        assert result.kind is DocumentKind.COVER_LETTER
        assert result.decided_by == "identifier-pattern"


# ---------------------------------------------------------------------------
# 2. Attributes and question text
# ---------------------------------------------------------------------------


class TestAttributeAndText:
    def test_aria_label_keyword(self):
        result = classify(FieldDescriptor(aria_label="Upload Lettre de motivation"))
        assert result.kind is DocumentKind.COVER_LETTER
        assert result.decided_by == "attribute"

    def test_german_question_text(self):
        result = classify(FieldDescriptor(question_text="Bitte Motivationsschreiben hochladen"))
        assert result.kind is DocumentKind.COVER_LETTER
        assert result.decided_by == "question-text"

    def test_accented_spanish_question_text(self):
        result = classify(FieldDescriptor(question_text="Adjunte su carta de presentación"))
        assert result.kind is DocumentKind.COVER_LETTER

    def test_resume_question_text(self):
        result = classify(FieldDescriptor(question_text="Upload your CV"))
        assert result.kind is DocumentKind.RESUME
        assert result.decided_by == "question-text"

    @pytest.mark.parametrize("keyword", COVER_LETTER_ID_KEYWORDS)
    def test_any_id_keyword_any_case(self, keyword):
        d = FieldDescriptor(name=f"doc-{keyword.upper()}")
        assert classify(d).kind is DocumentKind.COVER_LETTER

    @pytest.mark.parametrize("keyword", COVER_LETTER_TEXT_KEYWORDS)
    def test_any_text_keyword_any_case(self, keyword):
        d = FieldDescriptor(question_text=f"Please attach your {keyword.title()}")
        assert classify(d).kind is DocumentKind.COVER_LETTER


# ---------------------------------------------------------------------------
# 3. Default and error handling
# ---------------------------------------------------------------------------


class TestDefault:
    def test_no_signal_defaults_to_resume(self):
        result = classify(FieldDescriptor())
        assert result.kind is DocumentKind.RESUME
        assert result.decided_by == "default"

    def test_unrelated_signals_default_to_resume(self):
        result = classify(FieldDescriptor(element_id="file-1", question_text="Attach a file"))
        assert result.decided_by == "default"

    def test_tier_exception_is_no_signal(self, monkeypatch):
        def boom(_):
            raise RuntimeError("stale element")

        pipeline = classifier._PIPELINE
        monkeypatch.setattr(pipeline, "tiers", (("identifier-pattern", boom),) + pipeline.tiers[1:])
        result = classify(FieldDescriptor(element_id="upload-cover-letter-urn-1", question_text="Resume"))
        assert result.kind is DocumentKind.COVER_LETTER
        assert result.decided_by == "attribute"
