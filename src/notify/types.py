"""Message type handed to notification channels."""

from __future__ import annotations

import time

from pydantic import BaseModel, Field

from src.core.types import Severity


class AlertMessage(BaseModel):
    """A fully rendered notification ready for delivery.

    ``text`` is what text-only transports send verbatim; the structured
    fields are kept for channels and logs that want them.
    """

    severity: Severity
    title: str
    text: str
    fields: dict[str, str] = Field(default_factory=dict)
    alert_id: str = ""
    source_type: str = ""
    timestamp: float = Field(default_factory=time.time)
