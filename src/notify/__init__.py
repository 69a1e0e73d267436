"""Outbound notification delivery."""

from src.notify.channels import NotificationChannel, WebhookChannel
from src.notify.factory import create_notifier
from src.notify.notifier import Notifier
from src.notify.types import AlertMessage

__all__ = [
    "AlertMessage",
    "NotificationChannel",
    "Notifier",
    "WebhookChannel",
    "create_notifier",
]
