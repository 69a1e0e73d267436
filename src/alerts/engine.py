"""AlertEngine — alert lifecycle, retry gating and notification sweeps.

The engine owns no state of its own: every mutation goes through the
:class:`AlertStore`, which serializes them.  Two independent triggers drive
it, the periodic sweep (``run_alert_checks`` + ``send_pending_alerts``) and
the syslog consumer (``consume_syslog_events``).
"""

from __future__ import annotations

import asyncio
import datetime
from collections import Counter
from collections.abc import Callable
from typing import Any

import structlog

from src.alerts.checks import AlertChecks
from src.alerts.formatters import format_acknowledgement, format_alert
from src.alerts.quiet_hours import QuietHours
from src.alerts.store import AlertStore
from src.alerts.types import AcknowledgeAllResult, Alert, AlertStatistics, AlertType
from src.collector.base import DataSource
from src.core.config import AlertingConfig
from src.core.types import Severity, utcnow
from src.health.scorer import HealthScorer
from src.notify.notifier import Notifier
from src.syslog.parser import map_syslog_severity, parse_simple_message
from src.syslog.receiver import SyslogReceiver
from src.syslog.types import DomainEvent

logger = structlog.get_logger(__name__)

AUTO_RESOLVED = "auto-resolved"
AUTO_ACKNOWLEDGED = "auto-acknowledged"


class AlertEngine:
    """Creates, acknowledges, resolves and notifies alerts."""

    def __init__(
        self,
        store: AlertStore,
        notifier: Notifier,
        config: AlertingConfig | None = None,
        collector: DataSource | None = None,
        scorer: HealthScorer | None = None,
        now_fn: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._config = config or AlertingConfig()
        self._now = now_fn
        self._quiet_hours = QuietHours(self._config.quiet_hours)
        self._checks: AlertChecks | None = None
        if collector is not None:
            self._checks = AlertChecks(self, collector, scorer, self._config, now_fn)

    @property
    def store(self) -> AlertStore:
        return self._store

    @property
    def config(self) -> AlertingConfig:
        return self._config

    # ── Lifecycle ───────────────────────────────────────────────

    async def create_alert(
        self,
        alert_type: str,
        severity: Severity,
        title: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Alert:
        """Insert a new active alert. No dedup happens here."""
        alert = self._build(alert_type, severity, title, description, metadata)
        created = await self._store.insert(alert)
        logger.info(
            "alert_created",
            alert_id=created.id,
            type=created.type,
            severity=created.severity.value,
            title=created.title,
        )
        return created

    def _build(
        self,
        alert_type: str,
        severity: Severity,
        title: str,
        description: str,
        metadata: dict[str, Any] | None,
    ) -> Alert:
        return Alert(
            type=str(alert_type),
            severity=severity,
            title=title,
            description=description,
            metadata={k: v for k, v in (metadata or {}).items() if v is not None},
            created_at=self._now(),
        )

    async def update_alert(self, alert_id: str, patch: dict[str, Any]) -> Alert | None:
        updated = await self._store.update(alert_id, patch, self._now())
        if updated is None:
            logger.debug("alert_update_not_active", alert_id=alert_id)
        return updated

    async def acknowledge_alert(self, alert_id: str, by: str = "system") -> Alert | None:
        alert = await self._store.acknowledge(alert_id, by, self._now())
        if alert is None:
            logger.debug("alert_acknowledge_noop", alert_id=alert_id)
            return None
        logger.info("alert_acknowledged", alert_id=alert_id, by=by)
        await self._confirm_acknowledgement(alert)
        return alert

    async def acknowledge_all_alerts(self, by: str = "system") -> AcknowledgeAllResult:
        alerts = await self._store.acknowledge_all(by, self._now())
        if alerts:
            logger.info("alerts_acknowledged_all", count=len(alerts), by=by)
        for alert in alerts:
            await self._confirm_acknowledgement(alert)
        return AcknowledgeAllResult(count=len(alerts), alerts=alerts)

    async def _confirm_acknowledgement(self, alert: Alert) -> None:
        """Tell the channel an alert was acknowledged. Failures are only logged."""
        if not self._config.acknowledgement_confirmations:
            return
        msg = format_acknowledgement(
            alert.id,
            alert.acknowledged_by or "system",
            alert.acknowledged_at or self._now(),
        )
        try:
            delivered = await self._notifier.deliver(msg)
        except Exception:
            logger.exception("acknowledgement_confirmation_error", alert_id=alert.id)
            return
        if not delivered:
            logger.warning("acknowledgement_confirmation_failed", alert_id=alert.id)

    async def resolve_alert(self, alert_id: str, by: str = "system") -> Alert | None:
        alert = await self._store.resolve(alert_id, by, self._now())
        if alert is None:
            logger.debug("alert_resolve_noop", alert_id=alert_id)
            return None
        logger.info("alert_resolved", alert_id=alert_id, by=by)
        return alert

    # ── Dedup helpers used by the checks ────────────────────────

    def find_active_alert(self, alert_type: str, **match: Any) -> Alert | None:
        return self._store.find_active(lambda a: a.matches(alert_type, **match))

    async def ensure_alert(
        self,
        alert_type: str,
        severity: Severity,
        title: str,
        description: str,
        metadata: dict[str, Any],
        match: dict[str, Any],
        escalate: bool = False,
    ) -> Alert | None:
        """Create an alert unless one with the same type and *match* is active.

        With ``escalate`` an existing alert of lower severity is raised in
        place. Returns the new or escalated alert, or None if absorbed.
        """
        alert = self._build(alert_type, severity, title, description, metadata)
        created = await self._store.create_unless_active(
            alert, lambda a: a.matches(str(alert_type), **match)
        )
        if created is not None:
            logger.info(
                "alert_created",
                alert_id=created.id,
                type=created.type,
                severity=created.severity.value,
                title=created.title,
            )
            return created

        if not escalate:
            return None
        existing = self.find_active_alert(str(alert_type), **match)
        if existing is None or severity.rank <= existing.severity.rank:
            return None
        escalated = await self.update_alert(existing.id, {
            "severity": severity,
            "title": title,
            "description": description,
            "metadata": alert.metadata,
        })
        if escalated is not None:
            logger.info(
                "alert_escalated",
                alert_id=existing.id,
                type=existing.type,
                previous=existing.severity.value,
                severity=severity.value,
            )
        return escalated

    async def resolve_matching(
        self, alert_type: str, by: str = AUTO_RESOLVED, **match: Any
    ) -> list[Alert]:
        """Resolve every active alert of *alert_type* whose metadata matches."""
        resolved = await self._store.resolve_where(
            lambda a: a.matches(str(alert_type), **match), by, self._now()
        )
        for alert in resolved:
            logger.info("alert_resolved", alert_id=alert.id, type=alert.type, by=by)
        return resolved

    # ── Notification ────────────────────────────────────────────

    def _is_due(self, alert: Alert) -> bool:
        if alert.acknowledged or alert.resolved:
            return False
        if alert.notification_count >= self._config.max_retries:
            return False
        if alert.last_notified is None:
            return True
        elapsed = self._now() - alert.last_notified
        return elapsed >= datetime.timedelta(minutes=self._config.retry_interval_minutes)

    def should_notify(self, alert: Alert) -> bool:
        """Retry gate, evaluated on the stored state of *alert*.

        Alerts no longer active (acknowledged, resolved or unknown) are never due.
        """
        current = self._store.get(alert.id)
        return current is not None and self._is_due(current)

    async def notify(self, alert: Alert) -> bool:
        """Deliver *alert* if the retry gate allows it. True on delivery."""
        claimed = await self._store.claim_notification(alert.id, self._is_due)
        if claimed is None:
            logger.debug("alert_notification_not_due", alert_id=alert.id)
            return False

        delivered = False
        try:
            delivered = await self._notifier.deliver(format_alert(claimed))
        except Exception:
            logger.exception("alert_notification_error", alert_id=claimed.id)
        finally:
            await self._store.finish_notification(claimed.id, delivered, self._now())

        if not delivered:
            logger.warning(
                "alert_notification_failed",
                alert_id=claimed.id,
                attempts=claimed.notification_count,
            )
            return False

        logger.info(
            "alert_notified",
            alert_id=claimed.id,
            type=claimed.type,
            attempt=claimed.notification_count + 1,
        )
        return True

    send_alert_notification = notify

    async def send_pending_alerts(self) -> int:
        """Notify every due active alert, one at a time. Returns the number sent."""
        if not self._config.enabled:
            return 0

        now = self._now()
        pending = [a for a in self._store.active() if self._is_due(a)]
        due = [a for a in pending if self._quiet_hours.allows(a, now)]
        if len(due) < len(pending):
            logger.info("alerts_held_quiet_hours", held=len(pending) - len(due))

        sent = 0
        for i, alert in enumerate(due):
            if i and self._config.notification_delay_secs > 0:
                await asyncio.sleep(self._config.notification_delay_secs)
            if await self.notify(alert):
                sent += 1

        if due:
            logger.info("pending_alerts_sent", sent=sent, pending=len(due))
        return sent

    # ── Sweeps / retention ──────────────────────────────────────

    async def run_alert_checks(self) -> None:
        if not self._config.enabled:
            logger.debug("alerting_disabled")
            return
        if self._checks is None:
            logger.warning("alert_checks_no_collector")
        else:
            await self._checks.run_all()
        await self.cleanup_old_alerts()

    async def cleanup_old_alerts(self) -> tuple[int, int]:
        """Auto-acknowledge stale active alerts and purge old acknowledged ones.

        Returns ``(auto_acknowledged, purged)``.
        """
        now = self._now()
        auto_ack_before = now - datetime.timedelta(hours=self._config.auto_acknowledge_after_hours)
        purge_before = now - datetime.timedelta(days=self._config.purge_acknowledged_after_days)
        acknowledged, purged = await self._store.cleanup(
            auto_ack_before, purge_before, AUTO_ACKNOWLEDGED, now
        )
        if acknowledged or purged:
            logger.info("alerts_cleaned_up", auto_acknowledged=acknowledged, purged=purged)
        return acknowledged, purged

    # ── Queries ─────────────────────────────────────────────────

    def get_alert(self, alert_id: str) -> Alert | None:
        return self._store.get(alert_id)

    def get_active_alerts(self) -> list[Alert]:
        return self._store.active()

    def get_acknowledged_alerts(self) -> list[Alert]:
        return self._store.acknowledged()

    def get_alert_statistics(self) -> AlertStatistics:
        active = self._store.active()
        return AlertStatistics(
            active=len(active),
            acknowledged=self._store.acknowledged_count,
            by_type=dict(Counter(a.type for a in active)),
            by_severity=dict(Counter(a.severity.value for a in active)),
            oldest_active=min((a.created_at for a in active), default=None),
        )

    # ── Syslog path ─────────────────────────────────────────────

    async def on_syslog_event(self, event: DomainEvent) -> Alert | None:
        """Turn one relevant syslog datagram into a ``syslog_event`` alert."""
        if not self._config.enabled or not self._config.alert_types.syslog_event:
            return None

        record = event.record
        message = event.message or record.msg or record.content or ""
        simple = parse_simple_message(message, record.severity)
        job_name = event.fields.get("JobName") or simple.get("jobName")
        status = simple.get("status")
        source = record.app_name or record.hostname or event.source_host

        if job_name and status:
            title = f"Backup Job {status}: {job_name}"
        elif job_name:
            title = f"Veeam Event: {job_name}"
        else:
            title = f"Veeam Event from {source}"

        return await self.create_alert(
            AlertType.SYSLOG_EVENT,
            map_syslog_severity(record.severity),
            title,
            message,
            {
                "jobId": event.job_id,
                "sessionId": event.session_id or simple.get("sessionId"),
                "jobName": job_name,
                "eventId": event.event_id,
                "hostname": record.hostname or event.source_host,
                "appName": record.app_name,
                "syslogSeverity": record.severity,
                "raw": record.raw,
            },
        )

    async def consume_syslog_events(self, receiver: SyslogReceiver) -> None:
        """Drain *receiver* forever, one event at a time."""
        async for event in receiver.events():
            try:
                await self.on_syslog_event(event)
            except Exception:
                logger.exception(
                    "syslog_event_alert_error",
                    source=event.source_host,
                    job_id=event.job_id,
                )
