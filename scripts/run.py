#!/usr/bin/env python3
"""Service entrypoint — wires all components and runs the alert engine.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG

    # Single sweep then exit
    python scripts/run.py --once
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from src.alerts.engine import AlertEngine
from src.alerts.store import AlertStore
from src.collector.client import VeeamApiClient
from src.collector.service import DataCollector
from src.core.config import load_settings
from src.core.logging import setup_logging
from src.health.scorer import HealthScorer
from src.notify.factory import create_notifier
from src.service.scheduler import MonitoringScheduler
from src.syslog.exceptions import SyslogBindError
from src.syslog.receiver import SyslogReceiver

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start all components and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    logger.info(
        "service_starting",
        veeam_url=settings.veeam.base_url,
        syslog=settings.syslog.enabled,
        webhook=settings.notifier.webhook.enabled,
        interval_secs=settings.monitoring.interval_secs,
    )

    # ── Veeam API client + collector ─────────────────────────────
    client = VeeamApiClient(settings.veeam)
    await client.connect()
    collector = DataCollector(client, settings.collector)

    # ── Alert store + engine ─────────────────────────────────────
    store = AlertStore(settings.store.active_path, settings.store.acknowledged_path)
    store.load()

    notifier = create_notifier(settings.notifier)
    engine = AlertEngine(
        store=store,
        notifier=notifier,
        config=settings.alerting,
        collector=collector,
        scorer=HealthScorer(),
    )

    scheduler = MonitoringScheduler(engine, interval_secs=settings.monitoring.interval_secs)

    if args.once:
        sent = await scheduler.run_once()
        await notifier.close()
        await client.close()
        logger.info("single_sweep_done", sent=sent)
        return 0

    # ── Syslog receiver ──────────────────────────────────────────
    receiver: SyslogReceiver | None = None
    consumer: asyncio.Task[None] | None = None
    if settings.syslog.enabled:
        receiver = SyslogReceiver(settings.syslog)
        try:
            await receiver.start()
        except SyslogBindError as exc:
            print(f"Syslog receiver failed to start: {exc}", file=sys.stderr)
            await notifier.close()
            await client.close()
            return 1
        consumer = asyncio.create_task(engine.consume_syslog_events(receiver))

    # ── Start the sweep ──────────────────────────────────────────
    await scheduler.start()

    logger.info(
        "service_running",
        syslog="listening" if receiver else "disabled",
        active_alerts=store.active_count,
    )

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("service_shutting_down")

    await scheduler.stop()

    if consumer is not None:
        consumer.cancel()
        try:
            await consumer
        except asyncio.CancelledError:
            pass

    if receiver is not None:
        await receiver.stop()

    await notifier.close()
    await client.close()

    # ── Final summary ────────────────────────────────────────────
    stats = engine.get_alert_statistics()
    syslog_stats = receiver.get_stats() if receiver else None
    logger.info(
        "service_stopped",
        sweeps=scheduler.runs,
        active_alerts=stats.active,
        acknowledged_alerts=stats.acknowledged,
        syslog_messages=syslog_stats.total_messages if syslog_stats else 0,
        syslog_domain_messages=syslog_stats.domain_messages if syslog_stats else 0,
    )

    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the Veeam backup alert engine.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single check-and-notify sweep and exit",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
