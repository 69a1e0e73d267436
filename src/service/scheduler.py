"""Periodic check-and-notify sweep."""

from __future__ import annotations

import asyncio

import structlog

from src.alerts.engine import AlertEngine

logger = structlog.get_logger(__name__)


class MonitoringScheduler:
    """Background task that runs the alert checks and notification sweep.

    Usage::

        scheduler = MonitoringScheduler(engine, interval_secs=300)
        await scheduler.start()
        # ...
        await scheduler.stop()
    """

    def __init__(self, engine: AlertEngine, interval_secs: float = 300.0) -> None:
        self._engine = engine
        self._interval = interval_secs
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._runs = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def runs(self) -> int:
        return self._runs

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("monitoring_scheduler_started", interval_secs=self._interval)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("monitoring_scheduler_stopped", runs=self._runs)

    async def run_once(self) -> int:
        """One full sweep. Returns the number of notifications sent."""
        await self._engine.run_alert_checks()
        sent = await self._engine.send_pending_alerts()
        self._runs += 1
        stats = self._engine.get_alert_statistics()
        logger.info(
            "monitoring_sweep_completed",
            sent=sent,
            active=stats.active,
            acknowledged=stats.acknowledged,
        )
        return sent

    # ── Internal loop ───────────────────────────────────────────

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                return
            except Exception:
                logger.exception("monitoring_sweep_error")
            await asyncio.sleep(self._interval)
