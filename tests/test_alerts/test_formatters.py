"""Tests for alert formatters — text layout, metadata selection, retry counter."""

from __future__ import annotations

import datetime

from src.alerts.formatters import (
    format_acknowledgement,
    format_alert,
    format_alert_text,
    humanize_key,
)
from src.alerts.types import Alert, AlertType
from src.core.types import Severity

T0 = datetime.datetime(2025, 8, 28, 11, 10, 0, tzinfo=datetime.UTC)


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "id": "a-1",
        "type": AlertType.JOB_FAILURE,
        "severity": Severity.CRITICAL,
        "title": "Backup Job Failed: Nightly",
        "description": 'Job "Nightly" failed with result: Failed.',
        "metadata": {"jobId": "j1", "jobName": "Nightly", "result": "Failed"},
        "created_at": T0,
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


class TestFormatAlertText:
    def test_header_lines(self) -> None:
        text = format_alert_text(_alert())
        lines = text.splitlines()
        assert lines[0] == "🚨 *Backup Job Failed: Nightly*"
        assert "*Type:* job_failure" in lines
        assert "*Severity:* CRITICAL" in lines
        assert "*Time:* 2025-08-28 11:10:00 UTC" in lines

    def test_message_and_job_line(self) -> None:
        text = format_alert_text(_alert())
        assert 'Job "Nightly" failed with result: Failed.' in text
        assert "*Job:* Nightly" in text
        assert "*Repository:*" not in text

    def test_repository_line(self) -> None:
        alert = _alert(
            type=AlertType.REPOSITORY_USAGE,
            metadata={"repositoryId": "r1", "repositoryName": "Main", "usagePercentage": 91.5},
        )
        text = format_alert_text(alert)
        assert "*Repository:* Main" in text
        assert "• Usage Percentage: 91.5" in text

    def test_title_used_when_no_description(self) -> None:
        text = format_alert_text(_alert(description=""))
        assert text.splitlines().count("Backup Job Failed: Nightly") == 1

    def test_extra_fields_capped_at_three(self) -> None:
        metadata = {"jobName": "N", "a": 1, "b": 2, "c": 3, "d": 4, "raw": "<134>..."}
        text = format_alert_text(_alert(metadata=metadata))
        assert "• A: 1" in text
        assert "• C: 3" in text
        assert "• D: 4" not in text
        assert "<134>" not in text

    def test_empty_values_skipped(self) -> None:
        text = format_alert_text(_alert(metadata={"jobId": "", "sessionId": None}))
        assert "Additional Info" not in text

    def test_no_retry_line_on_first_send(self) -> None:
        assert "Retry #" not in format_alert_text(_alert())

    def test_retry_counter(self) -> None:
        text = format_alert_text(_alert(notification_count=2))
        assert "_Retry #3_" in text

    def test_ack_hint(self) -> None:
        text = format_alert_text(_alert())
        assert "*Alert ID:* a-1" in text
        assert text.endswith("To acknowledge this alert, reply with: /ack a-1")

    def test_severity_icons(self) -> None:
        assert format_alert_text(_alert(severity=Severity.INFO)).startswith("ℹ️")
        assert format_alert_text(_alert(severity=Severity.WARNING)).startswith("⚠️")


class TestFormatAlert:
    def test_message_fields(self) -> None:
        msg = format_alert(_alert())
        assert msg.severity is Severity.CRITICAL
        assert msg.title == "Backup Job Failed: Nightly"
        assert msg.alert_id == "a-1"
        assert msg.source_type == "job_failure"
        assert msg.fields == {"jobId": "j1", "jobName": "Nightly", "result": "Failed"}
        assert msg.text == format_alert_text(_alert())

    def test_hidden_fields_not_exposed(self) -> None:
        msg = format_alert(_alert(metadata={"raw": "x", "hostname": "vbr"}))
        assert msg.fields == {"hostname": "vbr"}


class TestFormatAcknowledgement:
    def test_layout(self) -> None:
        msg = format_acknowledgement("a-1", "alice", T0)
        assert msg.text.splitlines() == [
            "✅ *Alert Acknowledged*",
            "",
            "Alert ID: a-1",
            "Acknowledged by: alice",
            "Time: 2025-08-28 11:10:00 UTC",
        ]

    def test_message_fields(self) -> None:
        msg = format_acknowledgement("a-1", "alice", T0)
        assert msg.severity is Severity.INFO
        assert msg.title == "Alert Acknowledged"
        assert msg.alert_id == "a-1"
        assert msg.source_type == "acknowledgement"
        assert msg.fields == {"acknowledgedBy": "alice"}


class TestHumanizeKey:
    def test_camel_case(self) -> None:
        assert humanize_key("usagePercentage") == "Usage Percentage"

    def test_snake_case(self) -> None:
        assert humanize_key("failed_sessions") == "Failed Sessions"

    def test_acronym_suffix(self) -> None:
        assert humanize_key("capacityGB") == "Capacity GB"
