"""AlertStore — the two alert collections and their JSON persistence.

Active alerts and acknowledged alerts live in separate ordered maps keyed by
alert id, each mirrored to its own JSON file.  Every mutation holds a single
``asyncio.Lock`` and rewrites both files in full, so readers never see a half
applied change and "check for an existing alert, then create" is atomic.
"""

from __future__ import annotations

import asyncio
import datetime
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from src.alerts.types import Alert

logger = structlog.get_logger(__name__)

AlertPredicate = Callable[[Alert], bool]

# Fields that only the lifecycle operations may change.
_PROTECTED_FIELDS = frozenset({
    "id",
    "created_at",
    "updated_at",
    "last_notified",
    "notification_count",
    "acknowledged",
    "acknowledged_at",
    "acknowledged_by",
    "resolved",
    "resolved_at",
    "resolved_by",
})


class AlertStore:
    """Locked, file-backed container for active and acknowledged alerts."""

    def __init__(self, active_path: str | Path, acknowledged_path: str | Path) -> None:
        self._active_path = Path(active_path)
        self._acknowledged_path = Path(acknowledged_path)
        self._active: dict[str, Alert] = {}
        self._acknowledged: dict[str, Alert] = {}
        # Ids claimed for delivery; memory only.
        self._in_flight: set[str] = set()
        self._lock = asyncio.Lock()

    # ── Loading / persistence ───────────────────────────────────

    def load(self) -> None:
        """Read both collections from disk. Missing files mean empty collections."""
        self._active = self._read(self._active_path)
        self._acknowledged = self._read(self._acknowledged_path)
        logger.info(
            "alert_store_loaded",
            active=len(self._active),
            acknowledged=len(self._acknowledged),
        )

    @staticmethod
    def _read(path: Path) -> dict[str, Alert]:
        if not path.exists():
            return {}
        try:
            raw = json.loads(path.read_text())
        except (OSError, ValueError):
            logger.exception("alert_store_read_error", path=str(path))
            return {}
        if not isinstance(raw, dict):
            logger.warning("alert_store_bad_format", path=str(path))
            return {}

        alerts: dict[str, Alert] = {}
        for alert_id, data in raw.items():
            try:
                alert = Alert.model_validate(data)
            except ValidationError:
                logger.warning("alert_store_invalid_entry", path=str(path), alert_id=alert_id)
                continue
            alerts[alert.id] = alert
        return alerts

    def _persist(self) -> None:
        self._write(self._active_path, self._active)
        self._write(self._acknowledged_path, self._acknowledged)

    @staticmethod
    def _write(path: Path, alerts: dict[str, Alert]) -> None:
        payload = {alert_id: a.model_dump(mode="json") for alert_id, a in alerts.items()}
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2))
            os.replace(tmp, path)
        except OSError:
            # In-memory state stays authoritative.
            logger.exception("alert_store_write_error", path=str(path))

    # ── Reads (copies) ──────────────────────────────────────────

    def active(self) -> list[Alert]:
        return [a.model_copy(deep=True) for a in self._active.values()]

    def acknowledged(self) -> list[Alert]:
        return [a.model_copy(deep=True) for a in self._acknowledged.values()]

    def get(self, alert_id: str) -> Alert | None:
        alert = self._active.get(alert_id) or self._acknowledged.get(alert_id)
        return alert.model_copy(deep=True) if alert else None

    def find_active(self, predicate: AlertPredicate) -> Alert | None:
        for alert in self._active.values():
            if predicate(alert):
                return alert.model_copy(deep=True)
        return None

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def acknowledged_count(self) -> int:
        return len(self._acknowledged)

    # ── Mutations ───────────────────────────────────────────────

    async def insert(self, alert: Alert) -> Alert:
        async with self._lock:
            self._active[alert.id] = alert.model_copy(deep=True)
            self._persist()
        return alert.model_copy(deep=True)

    async def create_unless_active(
        self, alert: Alert, predicate: AlertPredicate
    ) -> Alert | None:
        """Insert *alert* unless an active alert already satisfies *predicate*."""
        async with self._lock:
            if any(predicate(a) for a in self._active.values()):
                return None
            self._active[alert.id] = alert.model_copy(deep=True)
            self._persist()
        return alert.model_copy(deep=True)

    async def update(
        self, alert_id: str, patch: dict[str, Any], at: datetime.datetime
    ) -> Alert | None:
        """Merge *patch* into an active alert. Lifecycle fields are ignored."""
        ignored = sorted(k for k in patch if k in _PROTECTED_FIELDS)
        if ignored:
            logger.warning("alert_update_fields_ignored", alert_id=alert_id, fields=ignored)
        changes = {k: v for k, v in patch.items() if k not in _PROTECTED_FIELDS}

        async with self._lock:
            current = self._active.get(alert_id)
            if current is None:
                return None
            data = current.model_dump()
            data.update(changes)
            data["updated_at"] = at
            updated = Alert.model_validate(data)
            self._active[alert_id] = updated
            self._persist()
        return updated.model_copy(deep=True)

    def _move_to_acknowledged(self, alert_id: str, actor: str, at: datetime.datetime) -> Alert:
        alert = self._active.pop(alert_id)
        alert = alert.model_copy(update={
            "acknowledged": True,
            "acknowledged_at": at,
            "acknowledged_by": actor,
        })
        self._acknowledged[alert_id] = alert
        return alert

    async def acknowledge(
        self, alert_id: str, actor: str, at: datetime.datetime
    ) -> Alert | None:
        async with self._lock:
            if alert_id not in self._active:
                return None
            alert = self._move_to_acknowledged(alert_id, actor, at)
            self._persist()
        return alert.model_copy(deep=True)

    async def acknowledge_all(self, actor: str, at: datetime.datetime) -> list[Alert]:
        async with self._lock:
            if not self._active:
                return []
            moved = [self._move_to_acknowledged(aid, actor, at) for aid in list(self._active)]
            self._persist()
        return [a.model_copy(deep=True) for a in moved]

    def _resolve_locked(self, alert_id: str, actor: str, at: datetime.datetime) -> Alert:
        # Resolved alerts are dropped from both collections.
        alert = self._active.pop(alert_id, None) or self._acknowledged.pop(alert_id)
        return alert.model_copy(update={
            "resolved": True,
            "resolved_at": at,
            "resolved_by": actor,
        })

    async def resolve(
        self, alert_id: str, actor: str, at: datetime.datetime
    ) -> Alert | None:
        async with self._lock:
            if alert_id not in self._active and alert_id not in self._acknowledged:
                return None
            alert = self._resolve_locked(alert_id, actor, at)
            self._persist()
        return alert.model_copy(deep=True)

    async def resolve_where(
        self, predicate: AlertPredicate, actor: str, at: datetime.datetime
    ) -> list[Alert]:
        """Resolve every active alert matching *predicate*."""
        async with self._lock:
            ids = [aid for aid, a in self._active.items() if predicate(a)]
            if not ids:
                return []
            resolved = [self._resolve_locked(aid, actor, at) for aid in ids]
            self._persist()
        return [a.model_copy(deep=True) for a in resolved]

    async def claim_notification(
        self, alert_id: str, due: AlertPredicate
    ) -> Alert | None:
        """Reserve an active alert for delivery if *due* holds for its stored state.

        Returns None when the alert is no longer active, is not due, or is
        already being delivered. Every successful claim must be followed by
        :meth:`finish_notification`.
        """
        async with self._lock:
            current = self._active.get(alert_id)
            if current is None or alert_id in self._in_flight or not due(current):
                return None
            self._in_flight.add(alert_id)
        return current.model_copy(deep=True)

    async def finish_notification(
        self, alert_id: str, delivered: bool, at: datetime.datetime
    ) -> Alert | None:
        """Release a claim; on delivery stamp ``last_notified`` and bump the count.

        The stamp only lands if the alert is still active.
        """
        async with self._lock:
            self._in_flight.discard(alert_id)
            current = self._active.get(alert_id)
            if not delivered or current is None:
                return None
            updated = current.model_copy(update={
                "last_notified": at,
                "notification_count": current.notification_count + 1,
            })
            self._active[alert_id] = updated
            self._persist()
        return updated.model_copy(deep=True)

    async def cleanup(
        self,
        auto_ack_before: datetime.datetime,
        purge_before: datetime.datetime,
        actor: str,
        at: datetime.datetime,
    ) -> tuple[int, int]:
        """Auto-acknowledge stale active alerts and purge old acknowledged ones.

        Returns ``(auto_acknowledged, purged)``.
        """
        async with self._lock:
            stale = [aid for aid, a in self._active.items() if a.created_at < auto_ack_before]
            for aid in stale:
                self._move_to_acknowledged(aid, actor, at)

            expired = [
                aid
                for aid, a in self._acknowledged.items()
                if a.acknowledged_at is not None and a.acknowledged_at < purge_before
            ]
            for aid in expired:
                del self._acknowledged[aid]

            if stale or expired:
                self._persist()
        return len(stale), len(expired)
