"""Tests for DataCollector — parsing, caching, derived views, snapshot markers."""

from __future__ import annotations

import datetime
from typing import Any
from unittest.mock import AsyncMock

from src.collector.exceptions import ApiConnectionError, ApiResponseError
from src.collector.service import DataCollector
from src.core.config import CollectorConfig
from src.core.types import ApiHealth, JobResult

NOW = datetime.datetime(2025, 8, 28, 12, 0, tzinfo=datetime.UTC)


def _iso(delta: datetime.timedelta) -> str:
    return (NOW - delta).isoformat()


# ── Helpers ─────────────────────────────────────────────────────


def _client(routes: dict[str, Any]) -> AsyncMock:
    """AsyncMock client whose ``get`` answers from *routes* (exceptions are raised)."""
    client = AsyncMock()

    async def _get(path: str, params: dict[str, Any] | None = None) -> Any:
        value = routes.get(path, {"data": []})
        if isinstance(value, Exception):
            raise value
        return value

    client.get = AsyncMock(side_effect=_get)
    client.check_api_health = AsyncMock(return_value=ApiHealth(status="healthy"))
    return client


def _collector(routes: dict[str, Any], **kw: object) -> tuple[DataCollector, AsyncMock]:
    client = _client(routes)
    config = CollectorConfig(**kw)  # type: ignore[arg-type]
    return DataCollector(client, config, now_fn=lambda: NOW), client


JOB_STATES = {
    "data": [
        {"id": "j1", "name": "Nightly", "lastResult": "Failed",
         "lastRun": _iso(datetime.timedelta(minutes=20))},
        {"id": "j2", "name": "Weekly", "lastResult": "Success",
         "lastRun": _iso(datetime.timedelta(minutes=20))},
        {"id": "j3", "name": "Old", "lastResult": "Warning",
         "lastRun": _iso(datetime.timedelta(hours=30))},
        {"id": "j4", "name": "Unknown Job", "lastResult": "Failed",
         "lastRun": _iso(datetime.timedelta(minutes=5))},
        {"id": "j5", "name": "Ghost", "lastResult": "None",
         "lastRun": _iso(datetime.timedelta(minutes=5))},
    ],
}

SESSIONS = {
    "data": [
        {"id": "s1", "jobId": "j1", "name": "Nightly", "state": "Stopped",
         "creationTime": _iso(datetime.timedelta(minutes=30)),
         "endTime": _iso(datetime.timedelta(minutes=20)),
         "result": {"result": "Failed", "message": "disk full"}},
        {"id": "s2", "jobId": "j2", "jobName": "Weekly", "state": "Working",
         "creationTime": _iso(datetime.timedelta(minutes=2)),
         "result": {"result": "None"}},
    ],
}


# ── Parsing ─────────────────────────────────────────────────────


class TestParsing:
    async def test_job_states_normalized(self) -> None:
        collector, _ = _collector({"/api/v1/jobs/states": JOB_STATES})
        jobs = await collector.get_job_states()
        by_id = {j.id: j for j in jobs}
        assert by_id["j1"].last_result is JobResult.FAILED
        assert by_id["j4"].name is None
        assert by_id["j5"].last_result is JobResult.UNKNOWN
        assert by_id["j1"].last_run == NOW - datetime.timedelta(minutes=20)

    async def test_session_result_tagged(self) -> None:
        collector, _ = _collector({"/api/v1/sessions": SESSIONS})
        sessions = await collector.get_sessions()
        assert sessions[0].result.value is JobResult.FAILED
        assert sessions[0].result.message == "disk full"
        assert sessions[0].job_name == "Nightly"
        assert sessions[1].result.value is JobResult.UNKNOWN

    async def test_repository_usage_derived(self) -> None:
        routes = {
            "/api/v1/backupInfrastructure/repositories/states": {
                "data": [{"id": "r1", "name": "Main", "capacityGB": 1000, "freeGB": 100}],
            },
        }
        collector, _ = _collector(routes)
        [repo] = await collector.get_repository_states()
        assert repo.used_space_gb == 900
        assert repo.usage_percentage == 90.0

    async def test_empty_and_malformed_payloads(self) -> None:
        collector, _ = _collector({"/api/v1/jobs": {"unexpected": True}})
        assert await collector.get_jobs() == []


# ── Caching ─────────────────────────────────────────────────────


class TestCache:
    async def test_second_call_served_from_cache(self) -> None:
        collector, client = _collector({"/api/v1/jobs/states": JOB_STATES})
        await collector.get_job_states()
        await collector.get_job_states()
        assert client.get.await_count == 1

    async def test_clear_cache(self) -> None:
        collector, client = _collector({"/api/v1/jobs/states": JOB_STATES})
        await collector.get_job_states()
        collector.clear_cache()
        await collector.get_job_states()
        assert client.get.await_count == 2

    async def test_caching_disabled(self) -> None:
        collector, client = _collector({"/api/v1/jobs/states": JOB_STATES}, enable_caching=False)
        await collector.get_job_states()
        await collector.get_job_states()
        assert client.get.await_count == 2

    async def test_errors_not_cached(self) -> None:
        routes: dict[str, Any] = {"/api/v1/jobs": ApiConnectionError("down")}
        collector, client = _collector(routes)
        try:
            await collector.get_jobs()
        except ApiConnectionError:
            pass
        routes["/api/v1/jobs"] = {"data": [{"id": "j1", "name": "A"}]}
        assert len(await collector.get_jobs()) == 1

    async def test_recent_sessions_share_entry_across_sweeps(self) -> None:
        ticks = iter(NOW + datetime.timedelta(minutes=5 * i) for i in range(10))
        client = _client({"/api/v1/sessions": SESSIONS})
        collector = DataCollector(client, CollectorConfig(), now_fn=lambda: next(ticks))
        for _ in range(3):
            await collector.get_recent_sessions(hours=1)
        assert client.get.await_count == 1
        assert list(collector._cache) == ["recent_sessions:1"]

    async def test_expired_entries_pruned(self) -> None:
        minutes = iter(range(1000))
        client = _client({"/api/v1/sessions": SESSIONS})
        collector = DataCollector(
            client,
            CollectorConfig(cache_timeout_secs=0),
            now_fn=lambda: NOW + datetime.timedelta(minutes=next(minutes)),
        )
        for i in range(50):
            await collector.get_recent_sessions(hours=1)
            await collector.get_recent_sessions(hours=24)
            await collector.get_sessions(filter_expr=f'jobId=="j{i}"')
        assert len(collector._cache) == 1


# ── Derived views ───────────────────────────────────────────────


class TestDerivedViews:
    async def test_failed_jobs_filtered(self) -> None:
        collector, _ = _collector({
            "/api/v1/jobs/states": JOB_STATES,
            "/api/v1/sessions": SESSIONS,
        })
        failed = await collector.get_failed_jobs(hours=1)
        assert [j.id for j in failed] == ["j1"]
        assert [s.id for s in failed[0].recent_failed_sessions] == ["s1"]

    async def test_running_jobs(self) -> None:
        collector, _ = _collector({"/api/v1/sessions/states": SESSIONS})
        running = await collector.get_running_jobs()
        assert [s.id for s in running] == ["s2"]

    async def test_session_states_fallback_on_404(self) -> None:
        collector, client = _collector({
            "/api/v1/sessions/states": ApiResponseError("missing", status_code=404),
            "/api/v1/sessions": SESSIONS,
        })
        running = await collector.get_running_jobs()
        assert [s.id for s in running] == ["s2"]
        paths = [call.args[0] for call in client.get.await_args_list]
        assert "/api/v1/sessions" in paths

    async def test_recent_sessions_filter(self) -> None:
        collector, client = _collector({"/api/v1/sessions": SESSIONS})
        await collector.get_recent_sessions(hours=2)
        params = client.get.await_args.kwargs["params"]
        assert params["filter"] == 'creationTime>="2025-08-28T10:00:00+00:00"'
        assert params["limit"] == 1000


# ── Snapshot ────────────────────────────────────────────────────


class TestCollectAllData:
    async def test_full_snapshot(self) -> None:
        collector, _ = _collector({
            "/api/v1/jobs/states": JOB_STATES,
            "/api/v1/sessions": SESSIONS,
        })
        snapshot = await collector.collect_all_data()
        assert snapshot.error is None
        assert snapshot.job_states is not None and len(snapshot.job_states) == 5
        assert snapshot.repository_states == []

    async def test_partial_failure_marked(self) -> None:
        collector, _ = _collector({
            "/api/v1/backupInfrastructure/managedServers": ApiConnectionError("timeout"),
        })
        snapshot = await collector.collect_all_data()
        assert snapshot.error == "PARTIAL_DATA_FAILURE"
        assert "infrastructure_servers" in (snapshot.error_details or "")
        assert snapshot.infrastructure_servers is None
        assert snapshot.jobs == []

    async def test_api_unavailable(self) -> None:
        collector, client = _collector({})
        client.check_api_health = AsyncMock(
            return_value=ApiHealth(status="unhealthy", message="connection refused"),
        )
        snapshot = await collector.collect_all_data()
        assert snapshot.error == "VEEAM_API_UNAVAILABLE"
        assert snapshot.error_details == "connection refused"
        client.get.assert_not_awaited()

    async def test_unexpected_error(self) -> None:
        collector, client = _collector({})
        client.check_api_health = AsyncMock(side_effect=RuntimeError("boom"))
        snapshot = await collector.collect_all_data()
        assert snapshot.error == "COLLECTION_ERROR"
        assert snapshot.api_health.status == "error"
