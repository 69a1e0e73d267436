"""Notification channels — outbound messaging webhook delivery."""

from __future__ import annotations

import abc
import asyncio

import aiohttp
import structlog

from src.core.config import WebhookConfig
from src.notify.types import AlertMessage

logger = structlog.get_logger(__name__)


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    @abc.abstractmethod
    async def send(self, msg: AlertMessage) -> bool:
        """Send an alert message. Returns True on success."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class WebhookChannel(NotificationChannel):
    """Posts ``{"id": chat_id, "message": text}`` to a messaging gateway webhook."""

    def __init__(self, config: WebhookConfig) -> None:
        self._url = config.url.get_secret_value()
        self._chat_id = config.chat_id
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_secs)
        self._attempts = max(1, config.retry_attempts)
        self._retry_delay = config.retry_delay_secs
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def send(self, msg: AlertMessage) -> bool:
        payload = {"id": self._chat_id, "message": msg.text}

        for attempt in range(1, self._attempts + 1):
            try:
                session = self._get_session()
                async with session.post(self._url, json=payload) as resp:
                    if resp.status == 200:
                        logger.info(
                            "webhook_sent",
                            alert_id=msg.alert_id,
                            length=len(msg.text),
                            attempt=attempt,
                        )
                        return True
                    body = await resp.text()
                    logger.warning(
                        "webhook_send_failed",
                        status=resp.status,
                        body=body[:200],
                        attempt=attempt,
                    )
            except Exception:
                logger.exception("webhook_send_error", attempt=attempt, max_attempts=self._attempts)

            if attempt < self._attempts:
                await asyncio.sleep(self._retry_delay * attempt)

        return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
