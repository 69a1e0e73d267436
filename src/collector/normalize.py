"""Normalization of raw API result strings and job names.

Veeam reports outcomes with inconsistent spelling and casing, sometimes as a
bare string and sometimes nested as ``{"result": ..., "message": ...}``.
Everything is collapsed to :class:`JobResult` here so the alert engine only
ever sees the canonical set.
"""

from __future__ import annotations

from typing import Any

from src.core.types import Job, JobResult, SessionResult

_PLACEHOLDER_VALUES = frozenset({"", "none", "null", "undefined"})

_RESULT_ALIASES: dict[str, JobResult] = {
    "success": JobResult.SUCCESS,
    "successful": JobResult.SUCCESS,
    "completed": JobResult.SUCCESS,
    "warning": JobResult.WARNING,
    "warnings": JobResult.WARNING,
    "failed": JobResult.FAILED,
    "failure": JobResult.FAILED,
    "error": JobResult.FAILED,
    "critical": JobResult.CRITICAL,
    "unknown": JobResult.UNKNOWN,
}

_PLACEHOLDER_JOB_NAMES = frozenset({"unknown job"})


def normalize_result(raw: Any) -> JobResult:
    """Map any raw result value to the canonical :class:`JobResult`.

    Placeholders (empty, ``None``, ``"None"``, ``"null"``, ``"undefined"``)
    and unrecognised strings both become ``Unknown``.
    """
    if isinstance(raw, SessionResult):
        return raw.value
    if isinstance(raw, dict):
        raw = raw.get("result")
    if raw is None:
        return JobResult.UNKNOWN
    text = str(raw).strip().lower()
    if text in _PLACEHOLDER_VALUES:
        return JobResult.UNKNOWN
    return _RESULT_ALIASES.get(text, JobResult.UNKNOWN)


def normalize_session_result(raw: Any) -> SessionResult:
    """Collapse a string or ``{result, message}`` payload into a SessionResult."""
    if isinstance(raw, dict):
        return SessionResult(
            value=normalize_result(raw.get("result")),
            message=str(raw.get("message") or ""),
        )
    return SessionResult(value=normalize_result(raw))


def normalize_job_name(name: Any) -> str | None:
    """Return the trimmed name, or None for blanks and placeholders."""
    if name is None:
        return None
    text = str(name).strip()
    if not text or text.lower() in _PLACEHOLDER_JOB_NAMES:
        return None
    return text


def is_meaningful(result: JobResult) -> bool:
    return result is not JobResult.UNKNOWN


def is_valid_job(job: Job) -> bool:
    """A job is worth alerting on only with an id, a real name and a real result."""
    return bool(job.id) and normalize_job_name(job.name) is not None and is_meaningful(job.last_result)
