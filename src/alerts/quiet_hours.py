"""Quiet-hours window for holding back non-critical notifications."""

from __future__ import annotations

import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from src.alerts.types import Alert
from src.core.config import QuietHoursConfig
from src.core.types import Severity

logger = structlog.get_logger(__name__)


def _parse_clock(value: str) -> datetime.time:
    hours, _, minutes = value.strip().partition(":")
    return datetime.time(int(hours), int(minutes or 0))


class QuietHours:
    """Daily window ``[start, end)`` in a local timezone.

    A window whose end is earlier than its start wraps past midnight.
    ``start == end`` is an empty window.
    """

    def __init__(self, config: QuietHoursConfig | None = None) -> None:
        self._config = config or QuietHoursConfig()
        self._start = _parse_clock(self._config.start)
        self._end = _parse_clock(self._config.end)
        self._tz: datetime.tzinfo
        try:
            self._tz = ZoneInfo(self._config.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("quiet_hours_unknown_timezone", timezone=self._config.timezone)
            self._tz = datetime.UTC

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def is_quiet(self, now: datetime.datetime) -> bool:
        if not self._config.enabled or self._start == self._end:
            return False
        local = now.astimezone(self._tz).time()
        if self._start < self._end:
            return self._start <= local < self._end
        return local >= self._start or local < self._end

    def allows(self, alert: Alert, now: datetime.datetime) -> bool:
        """True if *alert* may be sent at *now*."""
        if not self.is_quiet(now):
            return True
        return self._config.allow_critical and alert.severity == Severity.CRITICAL
