"""Alert lifecycle — store, engine, checks and message formatting."""

from src.alerts.checks import AlertChecks
from src.alerts.engine import AlertEngine
from src.alerts.formatters import format_acknowledgement, format_alert, format_alert_text
from src.alerts.quiet_hours import QuietHours
from src.alerts.store import AlertStore
from src.alerts.types import AcknowledgeAllResult, Alert, AlertState, AlertStatistics, AlertType

__all__ = [
    "AcknowledgeAllResult",
    "Alert",
    "AlertChecks",
    "AlertEngine",
    "AlertState",
    "AlertStatistics",
    "AlertStore",
    "AlertType",
    "QuietHours",
    "format_acknowledgement",
    "format_alert",
    "format_alert_text",
]
