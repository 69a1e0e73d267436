"""DataCollector — cached, normalized views over the Veeam REST API."""

from __future__ import annotations

import asyncio
import datetime
import time
from collections.abc import Callable
from typing import Any

import structlog

from src.collector.base import DataSource
from src.collector.client import VeeamApiClient
from src.collector.exceptions import ApiResponseError, CollectorError
from src.collector.normalize import (
    is_meaningful,
    is_valid_job,
    normalize_job_name,
    normalize_result,
    normalize_session_result,
)
from src.core.config import CollectorConfig
from src.core.types import (
    ApiHealth,
    Job,
    JobResult,
    ManagedServer,
    Repository,
    Session,
    Snapshot,
    utcnow,
)

logger = structlog.stdlib.get_logger()

_RUNNING_STATES = frozenset({"Working", "Starting"})

_JOB_STATES_PATH = "/api/v1/jobs/states"
_JOBS_PATH = "/api/v1/jobs"
_SESSIONS_PATH = "/api/v1/sessions"
_SESSION_STATES_PATH = "/api/v1/sessions/states"
_REPOSITORY_STATES_PATH = "/api/v1/backupInfrastructure/repositories/states"
_REPOSITORIES_PATH = "/api/v1/backupInfrastructure/repositories"
_MANAGED_SERVERS_PATH = "/api/v1/backupInfrastructure/managedServers"


# ── Payload parsing ─────────────────────────────────────────────


def _items(body: Any) -> list[dict[str, Any]]:
    """Unwrap ``{"data": [...]}`` or a bare list into a list of dicts."""
    if isinstance(body, dict):
        body = body.get("data")
    if not isinstance(body, list):
        return []
    return [item for item in body if isinstance(item, dict)]


def _parse_dt(value: Any) -> datetime.datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=datetime.UTC)
    return parsed


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_job(raw: dict[str, Any]) -> Job:
    return Job(
        id=str(raw.get("id") or ""),
        name=normalize_job_name(raw.get("name")),
        last_result=normalize_result(raw.get("lastResult")),
        last_run=_parse_dt(raw.get("lastRun")),
        message=str(raw.get("message") or raw.get("description") or ""),
        raw=raw,
    )


def _parse_session(raw: dict[str, Any]) -> Session:
    progress = raw.get("progress") if isinstance(raw.get("progress"), dict) else {}
    return Session(
        id=str(raw.get("id") or ""),
        job_id=raw.get("jobId"),
        job_name=normalize_job_name(raw.get("jobName") or raw.get("name")),
        creation_time=_parse_dt(raw.get("creationTime")),
        end_time=_parse_dt(raw.get("endTime")),
        result=normalize_session_result(raw.get("result")),
        state=str(raw.get("state") or ""),
        transferred_bytes=int(_float(raw.get("transferredDataSizeBytes") or progress.get("transferredSize"))),
        raw=raw,
    )


def _parse_repository(raw: dict[str, Any]) -> Repository:
    capacity = _float(raw.get("capacityGB"))
    free = _float(raw.get("freeGB"))
    used = _float(raw.get("usedSpaceGB"))
    if not used and capacity and free:
        used = capacity - free
    usage = (used / capacity) * 100 if capacity and used else 0.0
    return Repository(
        id=raw.get("id"),
        name=str(raw.get("name") or ""),
        usage_percentage=usage,
        used_space_gb=used,
        capacity_gb=capacity,
        free_gb=free,
        path=str(raw.get("path") or ""),
        raw=raw,
    )


def _parse_server(raw: dict[str, Any]) -> ManagedServer:
    return ManagedServer(
        id=raw.get("id"),
        name=str(raw.get("name") or ""),
        type=str(raw.get("type") or ""),
        status=str(raw.get("status") or ""),
    )


# ── Collector ───────────────────────────────────────────────────


class DataCollector(DataSource):
    """Collects job, session and repository state with a TTL cache.

    Raw payloads are normalized here (results, job names, repository usage)
    so downstream consumers only see typed models.
    """

    def __init__(
        self,
        client: VeeamApiClient,
        config: CollectorConfig | None = None,
        now_fn: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._client = client
        self._config = config or CollectorConfig()
        self._now = now_fn
        self._cache: dict[str, tuple[float, Any]] = {}

    # ── Cache ───────────────────────────────────────────────────

    def _cached(self, key: str) -> Any | None:
        if not self._config.enable_caching:
            return None
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if time.monotonic() - stored_at >= self._config.cache_timeout_secs:
            del self._cache[key]
            return None
        return value

    def _remember(self, key: str, value: Any) -> None:
        if not self._config.enable_caching:
            return
        now = time.monotonic()
        expired = [k for k, (stored_at, _) in self._cache.items()
                   if now - stored_at >= self._config.cache_timeout_secs]
        for k in expired:
            del self._cache[k]
        self._cache[key] = (now, value)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("collector_cache_cleared")

    # ── Raw collections ─────────────────────────────────────────

    async def _fetch(self, key: str, path: str, parse: Callable[[dict[str, Any]], Any],
                     params: dict[str, Any] | None = None) -> list[Any]:
        cached = self._cached(key)
        if cached is not None:
            return cached
        try:
            body = await self._client.get(path, params=params)
        except CollectorError:
            logger.exception("collector_fetch_failed", collection=key, path=path)
            raise
        items = [parse(item) for item in _items(body)]
        self._remember(key, items)
        logger.info("collector_fetched", collection=key, count=len(items))
        return items

    async def get_job_states(self) -> list[Job]:
        return await self._fetch("job_states", _JOB_STATES_PATH, _parse_job)

    async def get_jobs(self) -> list[Job]:
        return await self._fetch("jobs", _JOBS_PATH, _parse_job)

    async def get_sessions(
        self,
        filter_expr: str | None = None,
        limit: int | None = None,
        cache_key: str | None = None,
    ) -> list[Session]:
        params: dict[str, Any] = {
            "limit": limit or self._config.session_limit,
            "orderColumn": "CreationTime",
            "orderAsc": "false",
        }
        if filter_expr:
            params["filter"] = filter_expr
        key = cache_key or f"sessions:{filter_expr or ''}:{params['limit']}"
        return await self._fetch(key, _SESSIONS_PATH, _parse_session, params=params)

    async def get_recent_sessions(self, hours: float = 24) -> list[Session]:
        # Keyed on the window, not the moving cutoff, so sweeps reuse one entry.
        since = (self._now() - datetime.timedelta(hours=hours)).replace(second=0, microsecond=0)
        return await self.get_sessions(
            filter_expr=f'creationTime>="{since.isoformat()}"',
            cache_key=f"recent_sessions:{hours:g}",
        )

    async def get_session_states(self) -> list[Session]:
        """Session states, or recent sessions when the endpoint is missing."""
        try:
            return await self._fetch("session_states", _SESSION_STATES_PATH, _parse_session)
        except ApiResponseError as exc:
            if exc.status_code not in (400, 404):
                raise
            logger.warning("session_states_unavailable", status=exc.status_code)
            return await self.get_recent_sessions(24)

    async def get_repository_states(self) -> list[Repository]:
        return await self._fetch("repository_states", _REPOSITORY_STATES_PATH, _parse_repository)

    async def get_repositories(self) -> list[Repository]:
        return await self._fetch("repositories", _REPOSITORIES_PATH, _parse_repository)

    async def get_infrastructure_servers(self) -> list[ManagedServer]:
        return await self._fetch("managed_servers", _MANAGED_SERVERS_PATH, _parse_server)

    # ── Derived views ───────────────────────────────────────────

    async def get_failed_jobs(self, hours: float = 24) -> list[Job]:
        job_states = await self.get_job_states()
        recent = await self.get_recent_sessions(hours)
        cutoff = self._now() - datetime.timedelta(hours=hours)

        failed: list[Job] = []
        for job in job_states:
            if not is_valid_job(job):
                logger.debug("job_skipped_invalid", job_id=job.id, name=job.name)
                continue
            if job.last_result is JobResult.SUCCESS:
                continue
            if job.last_run is None or job.last_run < cutoff:
                logger.debug("job_skipped_outside_window", job_id=job.id, last_run=job.last_run)
                continue
            sessions = [
                s for s in recent
                if s.job_id == job.id
                and is_meaningful(s.result.value)
                and s.result.value is not JobResult.SUCCESS
            ]
            failed.append(job.model_copy(update={"recent_failed_sessions": sessions}))

        logger.info("failed_jobs_found", count=len(failed), hours=hours)
        return failed

    async def get_running_jobs(self) -> list[Session]:
        sessions = await self.get_session_states()
        running = [s for s in sessions if s.state in _RUNNING_STATES]
        logger.info("running_jobs_found", count=len(running))
        return running

    async def collect_all_data(self) -> Snapshot:
        """Gather everything for health scoring. Never raises."""
        try:
            api_health = await self._client.check_api_health()
            if not api_health.healthy:
                logger.error("veeam_api_unavailable", message=api_health.message)
                return Snapshot(
                    api_health=api_health,
                    error="VEEAM_API_UNAVAILABLE",
                    error_details=api_health.message,
                )

            names = (
                "job_states",
                "jobs",
                "sessions",
                "repository_states",
                "repositories",
                "infrastructure_servers",
            )
            results = await asyncio.gather(
                self.get_job_states(),
                self.get_jobs(),
                self.get_recent_sessions(24),
                self.get_repository_states(),
                self.get_repositories(),
                self.get_infrastructure_servers(),
                return_exceptions=True,
            )

            values: dict[str, Any] = {}
            failed: list[str] = []
            for name, result in zip(names, results):
                if isinstance(result, BaseException):
                    failed.append(name)
                    logger.error("collection_part_failed", part=name, error=str(result))
                    values[name] = None
                else:
                    values[name] = result

            snapshot = Snapshot(api_health=api_health, **values)
            if failed:
                snapshot.error = "PARTIAL_DATA_FAILURE"
                snapshot.error_details = f"Failed to collect: {', '.join(failed)}"
            logger.info("collection_completed", failed=failed)
            return snapshot
        except Exception as exc:
            logger.exception("collection_failed")
            return Snapshot(
                api_health=ApiHealth(status="error", message=str(exc)),
                error="COLLECTION_ERROR",
                error_details=str(exc),
            )
