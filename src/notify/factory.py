"""Convenience factory for wiring the notification stack."""

from __future__ import annotations

import structlog

from src.core.config import NotifierConfig
from src.notify.channels import NotificationChannel, WebhookChannel
from src.notify.notifier import Notifier

logger = structlog.get_logger(__name__)


def create_notifier(config: NotifierConfig) -> Notifier:
    """Build a Notifier with every enabled channel."""
    channels: list[NotificationChannel] = []

    if config.webhook.enabled:
        if config.webhook.url.get_secret_value():
            channels.append(WebhookChannel(config.webhook))
        else:
            logger.warning("webhook_enabled_without_url")

    logger.info("notifier_created", channels=[type(ch).__name__ for ch in channels])
    return Notifier(channels=channels)
