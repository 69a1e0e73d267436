"""Notifier — fans a rendered message out to every configured channel."""

from __future__ import annotations

import structlog

from src.notify.channels import NotificationChannel
from src.notify.types import AlertMessage

# Dedicated structured logger for every delivery attempt.
delivery_logger = structlog.get_logger("delivery_log")

logger = structlog.get_logger(__name__)


class Notifier:
    """Dumb transport: delivers whatever it is given.

    ``deliver`` is successful when at least one channel accepted the message.
    Channel exceptions are logged and count as that channel failing; they
    never propagate to the caller.
    """

    def __init__(self, channels: list[NotificationChannel] | None = None) -> None:
        self._channels: list[NotificationChannel] = channels or []

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    async def deliver(self, msg: AlertMessage) -> bool:
        if not self._channels:
            logger.warning("notifier_no_channels", alert_id=msg.alert_id)
            return False

        delivered = False
        for ch in self._channels:
            try:
                ok = await ch.send(msg)
            except Exception:
                logger.exception(
                    "channel_dispatch_error",
                    channel=type(ch).__name__,
                    title=msg.title,
                )
                ok = False
            delivered = delivered or ok

        delivery_logger.info(
            "delivery",
            alert_id=msg.alert_id,
            severity=msg.severity.value,
            title=msg.title,
            source_type=msg.source_type,
            delivered=delivered,
        )
        return delivered

    async def close(self) -> None:
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=type(ch).__name__)
