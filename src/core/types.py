"""Domain types shared across the collector, health scorer and alert engine."""

from __future__ import annotations

import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime.datetime:
    """Timezone-aware current time in UTC."""
    return datetime.datetime.now(datetime.UTC)


def ensure_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


class Severity(StrEnum):
    """Alert severity."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.INFO: 1,
    Severity.WARNING: 2,
    Severity.CRITICAL: 3,
}


class JobResult(StrEnum):
    """Canonical job / session outcome after normalization."""

    SUCCESS = "Success"
    WARNING = "Warning"
    FAILED = "Failed"
    CRITICAL = "Critical"
    UNKNOWN = "Unknown"


# ── Collector boundary models ────────────────────────────────────


class UtcModel(BaseModel):
    """Base that normalizes every datetime field to aware UTC."""

    @field_validator("*", mode="after")
    @classmethod
    def _utc(cls, value: Any) -> Any:
        if isinstance(value, datetime.datetime):
            return ensure_utc(value)
        return value


class SessionResult(BaseModel):
    """Outcome of a job session — always a value plus a message."""

    value: JobResult = JobResult.UNKNOWN
    message: str = ""


class Session(UtcModel):
    """A single job run."""

    id: str
    job_id: str | None = None
    job_name: str | None = None
    creation_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    result: SessionResult = Field(default_factory=SessionResult)
    state: str = ""
    transferred_bytes: int = 0
    raw: dict[str, Any] = Field(default_factory=dict)


class Job(UtcModel):
    """A backup job with its most recent outcome."""

    id: str
    name: str | None = None
    last_result: JobResult = JobResult.UNKNOWN
    last_run: datetime.datetime | None = None
    message: str = ""
    recent_failed_sessions: list[Session] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)


class Repository(BaseModel):
    """Backup repository capacity state."""

    id: str | None = None
    name: str = ""
    usage_percentage: float = 0.0
    used_space_gb: float = 0.0
    capacity_gb: float = 0.0
    free_gb: float = 0.0
    path: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        """Stable identifier used to correlate alerts (id, falling back to name)."""
        return self.id or self.name


class ManagedServer(BaseModel):
    """Infrastructure server known to the backup server."""

    id: str | None = None
    name: str = ""
    type: str = ""
    status: str = ""


class ApiHealth(UtcModel):
    """Reachability of the upstream REST API."""

    status: str = "unknown"
    message: str = ""
    timestamp: datetime.datetime = Field(default_factory=utcnow)

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


class Snapshot(UtcModel):
    """Everything one collection pass gathered.

    ``None`` means the corresponding fetch failed; an empty list means the
    fetch succeeded with no entries.
    """

    api_health: ApiHealth = Field(default_factory=ApiHealth)
    job_states: list[Job] | None = None
    jobs: list[Job] | None = None
    sessions: list[Session] | None = None
    repository_states: list[Repository] | None = None
    repositories: list[Repository] | None = None
    infrastructure_servers: list[ManagedServer] | None = None
    collection_time: datetime.datetime = Field(default_factory=utcnow)
    error: str | None = None
    error_details: str | None = None


class HealthFactor(BaseModel):
    """One weighted component of the composite health score."""

    name: str
    score: float
    weight: float


class HealthScore(UtcModel):
    """Composite 0-100 health score."""

    score: float
    factors: list[HealthFactor] = Field(default_factory=list)
    timestamp: datetime.datetime = Field(default_factory=utcnow)
