"""Abstract data source consumed by the alert checks."""

from __future__ import annotations

import abc

from src.core.types import Job, Repository, Session, Snapshot


class DataSource(abc.ABC):
    """What the alert engine needs from a collector.

    Every method returns already-normalized models; implementations raise a
    :class:`~src.collector.exceptions.CollectorError` when the upstream is
    unreachable.
    """

    @abc.abstractmethod
    async def get_failed_jobs(self, hours: float = 24) -> list[Job]:
        """Jobs whose last result is neither Success nor Unknown within *hours*."""

    @abc.abstractmethod
    async def get_repository_states(self) -> list[Repository]:
        """Current capacity state of every repository."""

    @abc.abstractmethod
    async def get_running_jobs(self) -> list[Session]:
        """Sessions currently working or starting."""

    @abc.abstractmethod
    async def get_recent_sessions(self, hours: float = 24) -> list[Session]:
        """Sessions created within the last *hours*."""

    @abc.abstractmethod
    async def collect_all_data(self) -> Snapshot:
        """Full snapshot for health scoring; never raises."""
