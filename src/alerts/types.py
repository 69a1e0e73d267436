"""Domain types for the alert lifecycle."""

from __future__ import annotations

import datetime
import uuid
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.core.types import Severity, UtcModel, utcnow


class AlertType(StrEnum):
    """Built-in alert categories. Callers may use other strings too."""

    JOB_FAILURE = "job_failure"
    REPOSITORY_USAGE = "repository_usage"
    SYSTEM_HEALTH = "system_health"
    LONG_RUNNING_JOB = "long_running_job"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    SYSLOG_EVENT = "syslog_event"


class AlertState(StrEnum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


def _new_id() -> str:
    return str(uuid.uuid4())


class Alert(UtcModel):
    """A single alert and its notification / acknowledgement history."""

    id: str = Field(default_factory=_new_id)
    type: str
    severity: Severity
    title: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime.datetime = Field(default_factory=utcnow)
    updated_at: datetime.datetime | None = None
    last_notified: datetime.datetime | None = None
    notification_count: int = 0
    acknowledged: bool = False
    acknowledged_at: datetime.datetime | None = None
    acknowledged_by: str | None = None
    resolved: bool = False
    resolved_at: datetime.datetime | None = None
    resolved_by: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _plain_type(cls, value: Any) -> Any:
        return str(value) if isinstance(value, StrEnum) else value

    @property
    def state(self) -> AlertState:
        if self.resolved:
            return AlertState.RESOLVED
        if self.acknowledged:
            return AlertState.ACKNOWLEDGED
        return AlertState.ACTIVE

    def matches(self, alert_type: str, **metadata: Any) -> bool:
        """True if this alert has *alert_type* and every given metadata value."""
        if self.type != alert_type:
            return False
        return all(self.metadata.get(key) == value for key, value in metadata.items())


class AlertStatistics(BaseModel):
    """Aggregate counts over the alert collections."""

    active: int = 0
    acknowledged: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_severity: dict[str, int] = Field(default_factory=dict)
    oldest_active: datetime.datetime | None = None


class AcknowledgeAllResult(BaseModel):
    count: int = 0
    alerts: list[Alert] = Field(default_factory=list)
