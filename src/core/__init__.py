"""Core module — config, types, logging."""

from src.core.config import Settings, get_settings, load_settings, reset_settings
from src.core.logging import setup_logging
from src.core.types import (
    ApiHealth,
    HealthFactor,
    HealthScore,
    Job,
    JobResult,
    ManagedServer,
    Repository,
    Session,
    SessionResult,
    Severity,
    Snapshot,
    utcnow,
)

__all__ = [
    "ApiHealth",
    "HealthFactor",
    "HealthScore",
    "Job",
    "JobResult",
    "ManagedServer",
    "Repository",
    "Session",
    "SessionResult",
    "Settings",
    "Severity",
    "Snapshot",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
    "utcnow",
]
