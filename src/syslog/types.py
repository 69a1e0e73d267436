"""Types for parsed syslog records and the domain events derived from them."""

from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.core.types import utcnow


class StructuredDataElement(BaseModel):
    """One ``[sdId key="value" ...]`` block."""

    sd_id: str
    params: dict[str, str] = Field(default_factory=dict)


class SyslogRecord(BaseModel):
    """A decoded syslog datagram.

    RFC 5424 records fill the header fields; legacy ``<PRI>content`` records
    have ``version == 0`` and carry everything after the priority in
    ``content``.
    """

    priority: int
    facility: int
    severity: int
    version: int = 0
    timestamp: str | None = None
    hostname: str | None = None
    app_name: str | None = None
    proc_id: str | None = None
    msg_id: str | None = None
    structured_data: list[StructuredDataElement] = Field(default_factory=list)
    msg: str = ""
    content: str | None = None
    raw: str = ""

    @property
    def is_legacy(self) -> bool:
        return self.version == 0

    def param(self, key: str) -> str | None:
        """First structured-data value whose stripped key is *key*, or None."""
        for element in self.structured_data:
            for name, value in element.params.items():
                if name.strip() == key:
                    return value
        return None


class DomainEvent(BaseModel):
    """A syslog record classified as relevant to the backup system."""

    record: SyslogRecord
    fields: dict[str, Any] = Field(default_factory=dict)
    source_host: str = ""
    source_port: int = 0
    received_at: datetime.datetime = Field(default_factory=utcnow)

    @property
    def job_id(self) -> str | None:
        return self.fields.get("JobID")

    @property
    def session_id(self) -> str | None:
        return self.fields.get("JobSessionID")

    @property
    def event_id(self) -> str | None:
        return self.fields.get("EventID")

    @property
    def message(self) -> str:
        return str(self.fields.get("description") or self.fields.get("message") or "")


class SyslogStats(BaseModel):
    """Receiver counters."""

    is_running: bool = False
    host: str = ""
    port: int = 0
    total_messages: int = 0
    domain_messages: int = 0
    parse_failures: int = 0
    dropped_messages: int = 0
    uptime_secs: float = 0.0
