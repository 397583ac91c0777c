"""Match form questions and dropdown options to values from the applicant profile."""
from __future__ import annotations

import re
import threading
from typing import Any, Sequence

from quickapply.log import get_logger, log_decision
from quickapply.models import (
    NO_MATCH,
    ApplicantProfile,
    Education,
    FieldDescriptor,
    FieldMatchResult,
    FieldType,
)
from quickapply.text import contains_any, normalize_text

log = get_logger(__name__)

URL_KEYWORDS: tuple[str, ...] = ("website", "url", "portfolio", "personal site", "github", "linkedin")
PORTFOLIO_KEYWORDS: tuple[str, ...] = ("portfolio", "personal site", "website")
COMMON_PHONE_PREFIXES: tuple[str, ...] = ("+1", "+44", "+33", "+49", "+39", "+34")

# Keys and aliases are compared after normalize_text (accents stripped).
SCHOOL_ALIASES: dict[str, tuple[str, ...]] = {
    "universite psl": ("Paris Sciences et Lettres", "PSL University", "PSL Research University"),
    "psl": ("Paris Sciences et Lettres", "PSL University"),
    "institut polytechnique de paris": ("IP Paris", "Polytechnique Paris"),
    "telecom sudparis": ("Télécom SudParis", "Telecom SudParis", "TSP"),
    "telecom paris": ("Télécom Paris", "ENST"),
    "ecole polytechnique": ("Polytechnique", "X"),
    "hec paris": ("HEC", "HEC School of Management"),
    "sciences po": ("Sciences Po Paris", "Institut d'Études Politiques"),
    "ens": ("École Normale Supérieure", "ENS Paris", "Normale Sup"),
    "centrale": ("CentraleSupélec", "École Centrale"),
    "mines": ("MINES ParisTech", "École des Mines"),
    "sainte-genevieve": ("Ginette", "Sainte Geneviève"),
}

SCHOOL_STOPWORDS: frozenset[str] = frozenset({
    "university", "universite", "universitat", "universidad", "universita",
    "institut", "institute", "ecole", "school", "college", "paris", "france",
})

_WORD_SPLIT = re.compile(r"[\s\-(),/]+")
_SHORT_ALIAS = 3


def _key_in(key: str, text: str) -> bool:
    """Whole-word containment, so the alias key "ens" does not fire inside "mines"."""
    return re.search(rf"(?<![a-z0-9]){re.escape(key)}(?![a-z0-9])", text) is not None


def _prefix_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(re.escape(prefix) + r"(?!\d)")


class AnswerMatcher:
    """Resolves field values against one immutable profile snapshot.

    `update_resume` swaps the snapshot under a lock. Every public method
    reads the reference once on entry, so a call sees either the old or
    the new profile in full, never a mix.
    """

    def __init__(self, profile: ApplicantProfile) -> None:
        self._lock = threading.Lock()
        self._profile = profile

    @property
    def profile(self) -> ApplicantProfile:
        return self._profile

    def update_resume(self, profile: ApplicantProfile | dict[str, Any]) -> ApplicantProfile:
        """Replace the profile snapshot; returns the new reference."""
        if isinstance(profile, dict):
            profile = ApplicantProfile.from_dict(profile)
        with self._lock:
            self._profile = profile
        log.info(
            "Profile snapshot replaced (%d education entr%s)",
            len(profile.education), "y" if len(profile.education) == 1 else "ies",
        )
        return profile

    # ── Element signals ──────────────────────────────────────────────

    def match_by_element_signals(self, descriptor: FieldDescriptor) -> FieldMatchResult:
        personal = self._profile.personal
        element_id = (descriptor.element_id or "").lower()
        name = (descriptor.name or "").lower()
        tag = "element-signals"

        if "geo-location" in element_id or "location-geo" in element_id or "location" in name:
            if personal.city:
                return self._decided(descriptor, FieldMatchResult.of(FieldType.CITY, personal.city, tag))

        if "phonenumber-nationalnumber" in element_id or "phone-national" in element_id:
            if personal.national_phone:
                return self._decided(
                    descriptor, FieldMatchResult.of(FieldType.PHONE_NATIONAL, personal.national_phone, tag)
                )
        elif "phone" in name and personal.formatted_phone:
            return self._decided(descriptor, FieldMatchResult.of(FieldType.PHONE, personal.formatted_phone, tag))

        if ("email" in element_id or "email" in name) and personal.email:
            return self._decided(descriptor, FieldMatchResult.of(FieldType.EMAIL, personal.email, tag))

        return NO_MATCH

    # ── Question text ────────────────────────────────────────────────

    def match_by_question_text(self, question: str) -> FieldMatchResult:
        personal = self._profile.personal
        text = normalize_text(question)
        tag = "question-text"
        if not text:
            return NO_MATCH

        if contains_any(text, URL_KEYWORDS):
            link = ""
            if "github" in text and personal.github:
                link = personal.github
            elif "linkedin" in text and personal.linkedin:
                link = personal.linkedin
            elif contains_any(text, PORTFOLIO_KEYWORDS) and personal.portfolio:
                link = personal.portfolio
            else:
                link = personal.github or personal.linkedin or personal.portfolio
            if link:
                return self._decided_text(question, FieldMatchResult.of(FieldType.URL, link, tag))

        if "phone" in text and "prefix" not in text and personal.formatted_phone:
            return self._decided_text(question, FieldMatchResult.of(FieldType.PHONE, personal.formatted_phone, tag))

        if ("city" in text or "location" in text) and personal.city:
            return self._decided_text(question, FieldMatchResult.of(FieldType.CITY, personal.city, tag))

        return NO_MATCH

    # ── Dropdowns ────────────────────────────────────────────────────

    def match_school(self, options: Sequence[str]) -> str | None:
        return self.match_school_result(options).value

    def match_school_result(self, options: Sequence[str]) -> FieldMatchResult:
        """Pick the option naming one of the applicant's schools.

        Education entries are tried in order; within an entry the tiers are
        exact, alias, partial, then word overlap.
        """
        education = self._profile.education
        candidates = [(o, normalize_text(o)) for o in options if normalize_text(o)]
        if not candidates:
            return NO_MATCH

        for entry in education:
            for tag, tier in (
                ("exact", _school_exact),
                ("alias", _school_alias),
                ("partial", _school_partial),
                ("word-overlap", _school_words),
            ):
                picked = tier(entry, candidates)
                if picked:
                    result = FieldMatchResult.of(FieldType.SCHOOL, picked, tag)
                    log_decision("matcher.school", entry.institution, picked, tag)
                    return result

        log_decision("matcher.school", f"{len(education)} entries", "no-match", None)
        return NO_MATCH

    def match_phone_prefix(self, options: Sequence[str]) -> str | None:
        return self.match_phone_prefix_result(options).value

    def match_phone_prefix_result(self, options: Sequence[str]) -> FieldMatchResult:
        stored = self._profile.personal.phone_prefix.strip()
        if stored:
            pattern = _prefix_pattern(stored)
            for option in options:
                if pattern.search(option):
                    log_decision("matcher.phone-prefix", stored, option, "stored-prefix")
                    return FieldMatchResult.of(FieldType.PHONE_PREFIX, option, "stored-prefix")

        for prefix in COMMON_PHONE_PREFIXES:
            pattern = _prefix_pattern(prefix)
            for option in options:
                if pattern.search(option):
                    log_decision("matcher.phone-prefix", stored or "-", option, "common-prefix")
                    return FieldMatchResult.of(FieldType.PHONE_PREFIX, option, "common-prefix")

        return NO_MATCH

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _decided(descriptor: FieldDescriptor, result: FieldMatchResult) -> FieldMatchResult:
        log_decision("matcher", descriptor.label, result.field_type.value, result.decided_by)
        return result

    @staticmethod
    def _decided_text(question: str, result: FieldMatchResult) -> FieldMatchResult:
        log_decision("matcher", question, result.field_type.value, result.decided_by)
        return result


# ── School tiers ──────────────────────────────────────────────────────


def _school_exact(entry: Education, candidates: list[tuple[str, str]]) -> str | None:
    inst = normalize_text(entry.institution)
    for original, norm in candidates:
        if norm == inst:
            return original
    return None


def _school_alias(entry: Education, candidates: list[tuple[str, str]]) -> str | None:
    inst = normalize_text(entry.institution)
    for key, aliases in SCHOOL_ALIASES.items():
        if not _key_in(key, inst):
            continue
        for alias in aliases:
            alias_norm = normalize_text(alias)
            for original, norm in candidates:
                if len(alias_norm) <= _SHORT_ALIAS or len(norm) <= _SHORT_ALIAS:
                    if norm == alias_norm:
                        return original
                elif alias_norm in norm or norm in alias_norm:
                    return original
    return None


def _school_partial(entry: Education, candidates: list[tuple[str, str]]) -> str | None:
    inst = normalize_text(entry.institution)
    for original, norm in candidates:
        if inst in norm or (len(norm) > _SHORT_ALIAS and norm in inst):
            return original
    return None


def _school_words(entry: Education, candidates: list[tuple[str, str]]) -> str | None:
    excluded = SCHOOL_STOPWORDS | set(_WORD_SPLIT.split(normalize_text(entry.location)))
    words = [
        w for w in _WORD_SPLIT.split(normalize_text(entry.institution))
        if len(w) > 4 and w not in excluded
    ]
    for word in words:
        for original, norm in candidates:
            if word in norm:
                return original
    return None


def best_option(options: Sequence[str], value: str) -> str | None:
    """Option matching `value`: exact after normalisation, then substring either way."""
    target = normalize_text(value)
    if not target:
        return None
    normalized = [(o, normalize_text(o)) for o in options]
    for original, norm in normalized:
        if norm == target:
            return original
    for original, norm in normalized:
        if norm and (target in norm or norm in target):
            return original
    return None
