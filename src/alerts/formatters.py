"""Pure functions that render an Alert into an AlertMessage."""

from __future__ import annotations

import datetime
import re
from typing import Any

from src.alerts.types import Alert
from src.core.types import Severity
from src.notify.types import AlertMessage

# ── Severity / metadata mappings ────────────────────────────────

_SEVERITY_ICON: dict[Severity, str] = {
    Severity.INFO: "ℹ️",
    Severity.WARNING: "⚠️",
    Severity.CRITICAL: "🚨",
}

# Metadata rendered on their own lines rather than as extra info.
_HEADLINE_KEYS = ("jobName", "repositoryName")

# Never shown to the recipient.
_HIDDEN_KEYS = frozenset({"raw", "healthFactors"})

_MAX_EXTRA_FIELDS = 3

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def humanize_key(key: str) -> str:
    """``usagePercentage`` -> ``Usage Percentage``."""
    words = _CAMEL_BOUNDARY.sub(" ", key).replace("_", " ").split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


def _visible(value: Any) -> bool:
    return value not in (None, "", [], {})


def _extra_fields(metadata: dict[str, Any]) -> list[tuple[str, Any]]:
    extras = [
        (key, value)
        for key, value in metadata.items()
        if key not in _HEADLINE_KEYS and key not in _HIDDEN_KEYS and _visible(value)
    ]
    return extras[:_MAX_EXTRA_FIELDS]


# ── Formatters ──────────────────────────────────────────────────


def format_alert_text(alert: Alert) -> str:
    """Render the plain-text notification body for *alert*."""
    icon = _SEVERITY_ICON.get(alert.severity, "")
    lines = [
        f"{icon} *{alert.title}*",
        "",
        f"*Type:* {alert.type}",
        f"*Severity:* {alert.severity.value.upper()}",
        f"*Time:* {alert.created_at:%Y-%m-%d %H:%M:%S} UTC",
        "",
        "*Message:*",
        alert.description or alert.title,
    ]

    job_name = alert.metadata.get("jobName")
    repo_name = alert.metadata.get("repositoryName")
    if job_name:
        lines.append(f"*Job:* {job_name}")
    if repo_name:
        lines.append(f"*Repository:* {repo_name}")

    extras = _extra_fields(alert.metadata)
    if extras:
        lines.append("")
        lines.append("*Additional Info:*")
        lines.extend(f"• {humanize_key(key)}: {value}" for key, value in extras)

    if alert.notification_count > 0:
        lines.append("")
        lines.append(f"_Retry #{alert.notification_count + 1}_")

    lines.append("")
    lines.append(f"*Alert ID:* {alert.id}")
    lines.append("")
    lines.append(f"To acknowledge this alert, reply with: /ack {alert.id}")
    return "\n".join(lines)


def format_alert(alert: Alert) -> AlertMessage:
    """Convert an Alert to an AlertMessage."""
    fields = {
        key: str(value)
        for key, value in alert.metadata.items()
        if key not in _HIDDEN_KEYS and _visible(value)
    }
    return AlertMessage(
        severity=alert.severity,
        title=alert.title,
        text=format_alert_text(alert),
        fields=fields,
        alert_id=alert.id,
        source_type=alert.type,
    )


def format_acknowledgement(alert_id: str, by: str, at: datetime.datetime) -> AlertMessage:
    """Confirmation sent back to the channel after an alert is acknowledged."""
    text = "\n".join([
        "✅ *Alert Acknowledged*",
        "",
        f"Alert ID: {alert_id}",
        f"Acknowledged by: {by}",
        f"Time: {at:%Y-%m-%d %H:%M:%S} UTC",
    ])
    return AlertMessage(
        severity=Severity.INFO,
        title="Alert Acknowledged",
        text=text,
        fields={"acknowledgedBy": by},
        alert_id=alert_id,
        source_type="acknowledgement",
    )
