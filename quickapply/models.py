"""Data models for the applicant profile, form fields and application outcomes."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class Education:
    institution: str
    degree: str = ""
    field_of_study: str = ""
    location: str = ""


@dataclass(frozen=True)
class PersonalInfo:
    name: str = ""
    email: str = ""
    phone: str = ""
    phone_prefix: str = ""
    city: str = ""
    github: str = ""
    linkedin: str = ""
    portfolio: str = ""
    title: str = ""
    summary: str = ""
    skills: tuple[str, ...] = ()

    @property
    def national_phone(self) -> str:
        """Phone number without the country prefix."""
        phone = self.phone.strip()
        if self.phone_prefix and phone.startswith(self.phone_prefix):
            phone = phone[len(self.phone_prefix):].strip()
        return phone

    @property
    def formatted_phone(self) -> str:
        national = self.national_phone
        if not national:
            return ""
        return f"{self.phone_prefix}{national}" if self.phone_prefix else national


@dataclass(frozen=True)
class ApplicantProfile:
    personal: PersonalInfo = field(default_factory=PersonalInfo)
    education: tuple[Education, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApplicantProfile":
        """Build a profile from the config/profile.yaml layout."""
        p = data.get("profile") or {}
        links = p.get("links") or {}
        personal = PersonalInfo(
            name=str(p.get("name") or ""),
            email=str(p.get("email") or ""),
            phone=str(p.get("phone") or ""),
            phone_prefix=str(p.get("phone_prefix") or ""),
            city=str(p.get("city") or ""),
            github=str(links.get("github") or p.get("github") or ""),
            linkedin=str(links.get("linkedin") or p.get("linkedin") or ""),
            portfolio=str(links.get("portfolio") or p.get("portfolio") or ""),
            title=str(p.get("title") or ""),
            summary=str(p.get("summary") or ""),
            skills=tuple(str(s) for s in p.get("skills") or []),
        )
        education = tuple(
            Education(
                institution=str(e.get("institution") or e.get("school") or ""),
                degree=str(e.get("degree") or ""),
                field_of_study=str(e.get("field_of_study") or ""),
                location=str(e.get("location") or ""),
            )
            for e in data.get("education") or []
            if e.get("institution") or e.get("school")
        )
        return cls(personal=personal, education=education)


# ── Form fields ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldDescriptor:
    """Signals read from one form field; holds no browser handles."""
    element_id: str = ""
    name: str = ""
    aria_label: str = ""
    question_text: str = ""
    control: str = "text"
    options: tuple[str, ...] = ()
    required: bool = False
    current_value: str = ""

    @property
    def label(self) -> str:
        return self.question_text or self.aria_label or self.name or self.element_id or "unknown_question"


class DocumentKind(str, Enum):
    RESUME = "resume"
    COVER_LETTER = "cover_letter"
    UNSPECIFIED = "unspecified"


@dataclass(frozen=True)
class DocumentClassification:
    kind: DocumentKind
    decided_by: str


class FieldType(str, Enum):
    CITY = "city"
    PHONE = "phone"
    PHONE_NATIONAL = "phone-national"
    EMAIL = "email"
    URL = "url"
    SCHOOL = "school"
    PHONE_PREFIX = "phone-prefix"


@dataclass(frozen=True)
class FieldMatchResult:
    field_type: FieldType | None = None
    value: str | None = None
    decided_by: str | None = None

    @property
    def matched(self) -> bool:
        return self.field_type is not None and bool(self.value)

    @classmethod
    def of(cls, field_type: FieldType, value: str, decided_by: str) -> "FieldMatchResult":
        if not value:
            return NO_MATCH
        return cls(field_type=field_type, value=value, decided_by=decided_by)


NO_MATCH = FieldMatchResult()


# ── Progress & artifacts ──────────────────────────────────────────────


@dataclass(frozen=True)
class ProgressState:
    step: str
    items_processed: int = 0
    items_total: int = 0
    percent: int = 0
    detail_tags: tuple[str, ...] = ()
    complete: bool = False
    updated_at: float = 0.0


@dataclass
class CoverLetterArtifact:
    file_path: Path
    created_at: float
    last_used_at: float


# ── Jobs & outcomes ───────────────────────────────────────────────────


@dataclass
class Job:
    id: str
    title: str
    company: str
    location: str
    url: str
    description: str = ""


class ApplicationStatus(str, Enum):
    COMPLETED = "completed"
    AWAITING_REVIEW = "awaiting_review"
    ALREADY_APPLIED = "already_applied"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ApplicationResult:
    job_id: str
    status: ApplicationStatus
    steps_completed: int = 0
    fields_filled: int = 0
    fields_skipped: int = 0
    failed_step: int | None = None
    failed_field: str = ""
    error: str = ""
    decisions: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (
            ApplicationStatus.COMPLETED,
            ApplicationStatus.AWAITING_REVIEW,
            ApplicationStatus.ALREADY_APPLIED,
        )
