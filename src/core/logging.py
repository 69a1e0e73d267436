"""Structured logging setup using structlog.

Console output goes to stderr in the configured format. When
``logging.log_dir`` is set, JSON lines are also written to rotating
``combined.log`` and ``error.log`` files there.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

import structlog

from src.core.config import LoggingConfig, get_settings

# Chatty third-party loggers capped at WARNING unless DEBUG is requested.
_NOISY_LOGGERS = ("httpx", "httpcore", "aiohttp.access", "asyncio")


def _formatter(renderer: structlog.types.Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def _file_handlers(config: LoggingConfig) -> list[logging.Handler]:
    if not config.log_dir:
        return []
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    json_formatter = _formatter(structlog.processors.JSONRenderer())

    handlers: list[logging.Handler] = []
    for filename, level in (("combined.log", logging.NOTSET), ("error.log", logging.ERROR)):
        handler = logging.handlers.RotatingFileHandler(
            log_dir / filename,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(json_formatter)
        handlers.append(handler)
    return handlers


def setup_logging(
    level: str | None = None,
    fmt: str | None = None,
    config: LoggingConfig | None = None,
) -> None:
    """Configure structlog with JSON or console renderer.

    Args:
        level: Log level override (e.g. "DEBUG"). Uses config if None.
        fmt: Renderer format override ("json" or "console"). Uses config if None.
        config: Logging section to use instead of the cached settings.
    """
    config = config or get_settings().logging
    log_level = getattr(logging, (level or config.level).upper(), logging.INFO)
    log_format = fmt or config.format

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_formatter(renderer))

    root_logger = logging.getLogger()
    for old in root_logger.handlers:
        old.close()
    root_logger.handlers.clear()
    root_logger.addHandler(console)
    for handler in _file_handlers(config):
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    third_party_level = log_level if log_level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
