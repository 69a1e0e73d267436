"""UDP syslog receiver — parses datagrams and queues Veeam domain events."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from types import TracebackType

import structlog

from src.core.config import SyslogConfig
from src.syslog.exceptions import SyslogBindError
from src.syslog.parser import extract_domain_fields, is_relevant, parse_syslog
from src.syslog.types import DomainEvent, SyslogStats

logger = structlog.stdlib.get_logger()


class _SyslogProtocol(asyncio.DatagramProtocol):
    def __init__(self, receiver: SyslogReceiver) -> None:
        self._receiver = receiver

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._receiver.handle_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("syslog_socket_error", error=str(exc))


class SyslogReceiver:
    """Listens for syslog datagrams and hands relevant ones to a queue.

    Parsing runs inline in the datagram callback; consumers read events via
    :meth:`events` on their own task, so a slow consumer never blocks the
    socket. When the queue is full new events are dropped and counted.

    Usage::

        receiver = SyslogReceiver(settings.syslog)
        await receiver.start()
        async for event in receiver.events():
            await engine.on_syslog_event(event)
    """

    def __init__(self, config: SyslogConfig | None = None) -> None:
        self._config = config or SyslogConfig()
        self._host = self._config.host
        self._port = self._config.port
        self._queue: asyncio.Queue[DomainEvent] = asyncio.Queue(
            maxsize=self._config.queue_size,
        )
        self._transport: asyncio.DatagramTransport | None = None
        self._running = False
        self._started_at: float | None = None
        self._total_messages = 0
        self._domain_messages = 0
        self._parse_failures = 0
        self._dropped_messages = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def is_listening(self) -> bool:
        return self._running and self._transport is not None and not self._transport.is_closing()

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); the port is the real one when 0 was requested."""
        return self._host, self._port

    async def start(self, host: str | None = None, port: int | None = None) -> None:
        """Bind the UDP socket. Raises SyslogBindError if the bind fails."""
        if self._running:
            return
        bind_host = host if host is not None else self._host
        bind_port = port if port is not None else self._port

        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _SyslogProtocol(self),
                local_addr=(bind_host, bind_port),
            )
        except OSError as exc:
            logger.error("syslog_bind_failed", host=bind_host, port=bind_port, error=str(exc))
            raise SyslogBindError(f"cannot bind {bind_host}:{bind_port}: {exc}") from exc

        self._transport = transport
        sockname = transport.get_extra_info("sockname")
        self._host = bind_host
        self._port = sockname[1] if sockname else bind_port
        self._running = True
        self._started_at = time.monotonic()
        logger.info("syslog_listening", host=self._host, port=self._port)

    async def stop(self) -> None:
        """Close the socket. Queued events stay readable."""
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        if self._running:
            logger.info("syslog_stopped", total=self._total_messages, domain=self._domain_messages)
        self._running = False
        self._started_at = None

    def handle_datagram(self, data: bytes, addr: tuple[str, int]) -> DomainEvent | None:
        """Parse one datagram; queue and return it if it is a domain event."""
        self._total_messages += 1
        source_host, source_port = addr[0], addr[1]

        record = parse_syslog(data)
        if record is None:
            self._parse_failures += 1
            logger.warning(
                "syslog_parse_failed",
                source=source_host,
                raw=data[:200].decode("utf-8", errors="replace"),
            )
            return None

        logger.debug(
            "syslog_received",
            source=source_host,
            hostname=record.hostname,
            app_name=record.app_name,
            severity=record.severity,
        )

        if not is_relevant(record, self._config.marker):
            logger.debug("syslog_ignored", app_name=record.app_name, source=source_host)
            return None

        self._domain_messages += 1
        event = DomainEvent(
            record=record,
            fields=extract_domain_fields(record),
            source_host=source_host,
            source_port=source_port,
        )
        logger.info(
            "veeam_event_received",
            source=record.app_name or source_host,
            event_id=event.event_id,
            job_id=event.job_id,
            session_id=event.session_id,
            severity=record.severity,
        )

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped_messages += 1
            logger.warning("syslog_queue_full", dropped=self._dropped_messages)
        return event

    async def events(self) -> AsyncIterator[DomainEvent]:
        """Yield queued domain events forever."""
        while True:
            event = await self._queue.get()
            try:
                yield event
            finally:
                self._queue.task_done()

    def pending(self) -> int:
        return self._queue.qsize()

    def get_stats(self) -> SyslogStats:
        uptime = 0.0
        if self._running and self._started_at is not None:
            uptime = time.monotonic() - self._started_at
        return SyslogStats(
            is_running=self._running,
            host=self._host,
            port=self._port,
            total_messages=self._total_messages,
            domain_messages=self._domain_messages,
            parse_failures=self._parse_failures,
            dropped_messages=self._dropped_messages,
            uptime_secs=uptime,
        )

    async def __aenter__(self) -> SyslogReceiver:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
