"""Generate tailored cover letters using Groq (or fallback template) and manage the uploaded artifact."""
from __future__ import annotations

import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable

from quickapply.log import get_logger
from quickapply.models import ApplicantProfile, CoverLetterArtifact, Job
from quickapply.retry import retry

log = get_logger(__name__)

MIN_LETTER_LENGTH = 100
ARTIFACT_PREFIX = "cover_"

# (text, directory) -> path of the written file
Writer = Callable[[str, Path], Path]


def _candidate_name(profile: ApplicantProfile) -> str:
    return (
        os.environ.get("CANDIDATE_NAME", "").strip()
        or profile.personal.name
        or "Candidate"
    )


@retry(max_attempts=2, base_delay=2.0, retryable=(Exception,))
def _call_groq(api_key: str, model: str, prompt: str) -> str:
    from openai import OpenAI

    client = OpenAI(api_key=api_key, base_url="https://api.groq.com/openai/v1")
    r = client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": prompt}],
        max_tokens=400,
    )
    return (r.choices[0].message.content or "").strip()


def generate_cover_letter(job: Job, profile: ApplicantProfile) -> str:
    api_key = os.environ.get("GROQ_API_KEY", "").strip()
    if not api_key:
        log.debug("No GROQ_API_KEY — using template cover letter")
        return _fallback_letter(job, profile)

    model = os.environ.get("GROQ_LLM_MODEL", "llama-3.3-70b-versatile").strip()
    candidate_name = _candidate_name(profile)
    personal = profile.personal
    school = profile.education[0].institution if profile.education else ""

    try:
        prompt = f"""Write a short, professional cover letter (under 200 words) for this role.
Candidate name: {candidate_name}
Candidate title: {personal.title}
Candidate summary: {personal.summary}
Key skills: {', '.join(personal.skills[:8])}
Education: {school}
Job title: {job.title}
Company: {job.company}
Job description (excerpt): {job.description[:1500]}

Match the tone to the company and role. Mention 2–3 relevant skills. End with a clear one-line CTA.
Use "I" and "my" for the candidate. End the letter with "Best regards," followed by the candidate name: {candidate_name}. Do not use placeholders like [Your Name]."""

        result = _call_groq(api_key, model, prompt)
        if len(result) < MIN_LETTER_LENGTH:
            log.warning("Generated cover letter too short (%d chars), using template", len(result))
            return _fallback_letter(job, profile)
        log.info("Cover letter generated for %s @ %s", job.title, job.company)
        return result
    except Exception as exc:
        log.warning("Cover letter generation failed (%s), using template", exc)
        return _fallback_letter(job, profile)


def _fallback_letter(job: Job, profile: ApplicantProfile) -> str:
    personal = profile.personal
    skills = ", ".join(personal.skills[:5]) or "the skills listed in my resume"
    name = _candidate_name(profile)
    summary = personal.summary or f"I am a {personal.title or 'professional'} looking for my next challenge."
    return f"""Dear Hiring Team,

I am writing to apply for the {job.title} position at {job.company}.

{summary}

My experience aligns with your requirements, including: {skills}. I am particularly interested in contributing to your team's success.

I would welcome the opportunity to discuss how my background can contribute to your team.

Best regards,
{name}"""


def write_text_letter(text: str, directory: Path) -> Path:
    path = directory / "cover_letter.txt"
    path.write_text(text, encoding="utf-8")
    return path


class CoverLetterSession:
    """Cover-letter artifact for one application.

    Generated on the first `obtain()`, reused by later uploads in the same
    application, deleted by `release()` or once idle past `idle_timeout_s`.
    Each session writes into its own fresh directory under `base_dir`.
    """

    def __init__(
        self,
        job: Job,
        profile: ApplicantProfile,
        *,
        base_dir: Path | None = None,
        writer: Writer = write_text_letter,
        generate: Callable[[Job, ApplicantProfile], str] = generate_cover_letter,
        idle_timeout_s: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.job = job
        self.profile = profile
        self.base_dir = base_dir
        self.writer = writer
        self.generate = generate
        self.idle_timeout_s = idle_timeout_s
        self._clock = clock
        self._artifact: CoverLetterArtifact | None = None
        self._dir: Path | None = None

    @property
    def artifact(self) -> CoverLetterArtifact | None:
        return self._artifact

    def obtain(self) -> Path | None:
        """Path to the artifact, synthesizing it on first use. None when unavailable."""
        self.expire_idle()
        if self._artifact is not None and self._artifact.file_path.exists():
            self._artifact.last_used_at = self._clock()
            log.debug("Reusing cover letter %s", self._artifact.file_path.name)
            return self._artifact.file_path

        text = self.generate(self.job, self.profile)
        if not text or len(text.strip()) < MIN_LETTER_LENGTH:
            log.warning("Cover letter for %s unavailable (text too short)", self.job.id)
            return None

        if self.base_dir is not None:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self._dir = Path(tempfile.mkdtemp(prefix=f"{ARTIFACT_PREFIX}{_safe(self.job.id)}_", dir=self.base_dir))
        try:
            path = self.writer(text, self._dir)
        except Exception as exc:
            log.warning("Writing cover letter for %s failed: %s", self.job.id, exc)
            self.release()
            return None

        now = self._clock()
        self._artifact = CoverLetterArtifact(file_path=path, created_at=now, last_used_at=now)
        log.info("Cover letter ready for %s @ %s → %s", self.job.title, self.job.company, path.name)
        return path

    def expire_idle(self) -> bool:
        """Release the artifact if unused for longer than the idle timeout."""
        if self._artifact is None:
            return False
        if self._clock() - self._artifact.last_used_at <= self.idle_timeout_s:
            return False
        log.info("Cover letter for %s idle > %.0fs, removing", self.job.id, self.idle_timeout_s)
        self.release()
        return True

    def release(self) -> None:
        if self._dir is not None:
            shutil.rmtree(self._dir, ignore_errors=True)
            log.debug("Removed cover letter dir %s", self._dir.name)
        self._dir = None
        self._artifact = None

    def __enter__(self) -> "CoverLetterSession":
        return self

    def __exit__(self, *exc) -> None:
        self.release()


def purge_stale_artifacts(base_dir: Path, older_than_s: float) -> int:
    """Remove leftover artifact dirs from earlier runs."""
    if not base_dir.exists():
        return 0
    cutoff = time.time() - older_than_s
    removed = 0
    for d in base_dir.glob(f"{ARTIFACT_PREFIX}*"):
        try:
            if d.stat().st_mtime >= cutoff:
                continue
            if d.is_dir():
                shutil.rmtree(d)
            else:
                d.unlink()
            removed += 1
        except OSError:
            pass
    if removed:
        log.debug("Cleaned up %d stale cover letter artifact(s)", removed)
    return removed


def _safe(value: str) -> str:
    return "".join(c if c.isalnum() or c in "-_" else "_" for c in value)[:40]
