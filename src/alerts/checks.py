"""Periodic check routines that turn collected data into alerts.

Each check is independently fault-isolated: it logs and swallows its own
errors so ``run_all`` always lets the others finish.
"""

from __future__ import annotations

import asyncio
import datetime
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from src.alerts.types import AlertType
from src.collector.base import DataSource
from src.collector.normalize import is_meaningful, is_valid_job, normalize_job_name
from src.core.config import AlertingConfig
from src.core.types import JobResult, Repository, Session, Severity, utcnow
from src.health.scorer import HealthScorer

if TYPE_CHECKING:
    from src.alerts.engine import AlertEngine

logger = structlog.get_logger(__name__)

_COMPLETED_SEVERITY: dict[JobResult, Severity] = {
    JobResult.SUCCESS: Severity.INFO,
    JobResult.WARNING: Severity.WARNING,
}

_TB = 1024.0


def _fmt_time(value: datetime.datetime | None) -> str:
    return f"{value:%Y-%m-%d %H:%M:%S}" if value else "unknown"


class AlertChecks:
    """The five threshold / state checks run on every sweep."""

    def __init__(
        self,
        engine: AlertEngine,
        collector: DataSource,
        scorer: HealthScorer | None = None,
        config: AlertingConfig | None = None,
        now_fn: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._collector = collector
        self._scorer = scorer or HealthScorer(now_fn=now_fn)
        self._config = config or AlertingConfig()
        self._now = now_fn

    async def run_all(self) -> None:
        """Run every enabled check concurrently; one failing never blocks the rest."""
        toggles = self._config.alert_types
        checks = {
            "job_failure": (toggles.job_failure, self.check_job_failures),
            "repository_usage": (toggles.repository_usage, self.check_repository_usage),
            "system_health": (toggles.system_health, self.check_system_health),
            "long_running_job": (toggles.long_running_job, self.check_long_running_jobs),
            "job_state_change": (toggles.job_state_change, self.check_job_state_changes),
        }
        names = [name for name, (enabled, _) in checks.items() if enabled]
        results = await asyncio.gather(
            *(checks[name][1]() for name in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("alert_check_failed", check=name, error=str(result))
        logger.info("alert_checks_completed", checks=names)

    # ── Job failures ────────────────────────────────────────────

    async def check_job_failures(self) -> None:
        try:
            jobs = await self._collector.get_failed_jobs(self._config.job_failure_lookback_hours)
            for job in jobs:
                if not is_valid_job(job):
                    logger.debug("job_failure_skipped_invalid", job_id=job.id, name=job.name)
                    continue
                if job.last_result is JobResult.SUCCESS:
                    continue

                name = normalize_job_name(job.name)
                result = job.last_result.value
                severity = Severity.CRITICAL if job.last_result is JobResult.FAILED else Severity.WARNING
                await self._engine.ensure_alert(
                    AlertType.JOB_FAILURE,
                    severity,
                    f"Backup Job Failed: {name}",
                    f'Job "{name}" failed with result: {result}. Last run: {_fmt_time(job.last_run)}',
                    {
                        "jobId": job.id,
                        "jobName": name,
                        "result": result,
                        "lastRun": job.last_run.isoformat() if job.last_run else None,
                        "message": job.message or None,
                        "failedSessions": len(job.recent_failed_sessions),
                    },
                    match={"jobId": job.id},
                )
        except Exception:
            logger.exception("job_failure_check_error")

    # ── Repository usage ────────────────────────────────────────

    async def check_repository_usage(self) -> None:
        thresholds = self._config.thresholds.repository_usage
        try:
            repositories = await self._collector.get_repository_states()
            for repo in repositories:
                usage = repo.usage_percentage
                if usage >= thresholds.critical:
                    await self._raise_repository(repo, Severity.CRITICAL, "Critical")
                elif usage >= thresholds.warning:
                    await self._raise_repository(repo, Severity.WARNING, "Warning")
                else:
                    resolved = await self._engine.resolve_matching(
                        AlertType.REPOSITORY_USAGE, repositoryId=repo.key
                    )
                    if resolved:
                        logger.info("repository_alert_cleared", repository=repo.name, usage=usage)
        except Exception:
            logger.exception("repository_usage_check_error")

    async def _raise_repository(self, repo: Repository, severity: Severity, label: str) -> None:
        title = f"Repository Usage {label}: {repo.name}"
        description = (
            f'Repository "{repo.name}" is at {repo.usage_percentage:.2f}% capacity '
            f"({repo.used_space_gb / _TB:.2f} TB / {repo.capacity_gb / _TB:.2f} TB)"
        )
        metadata = {
            "repositoryId": repo.key,
            "repositoryName": repo.name,
            "usagePercentage": round(repo.usage_percentage, 2),
            "usedSpaceGB": round(repo.used_space_gb, 2),
            "capacityGB": round(repo.capacity_gb, 2),
            "path": repo.path or None,
        }
        await self._engine.ensure_alert(
            AlertType.REPOSITORY_USAGE,
            severity,
            title,
            description,
            metadata,
            match={"repositoryId": repo.key},
            escalate=True,
        )

    # ── System health ───────────────────────────────────────────

    async def check_system_health(self) -> None:
        thresholds = self._config.thresholds.health_score
        try:
            snapshot = await self._collector.collect_all_data()
            health = self._scorer.calculate_health_score(snapshot)
        except Exception:
            logger.exception("system_health_score_error")
            return

        try:
            score = health.score
            if score <= thresholds.critical:
                severity, label = Severity.CRITICAL, "Critical"
            elif score <= thresholds.warning:
                severity, label = Severity.WARNING, "Warning"
            else:
                resolved = await self._engine.resolve_matching(AlertType.SYSTEM_HEALTH)
                if resolved:
                    logger.info("system_health_alert_cleared", score=score)
                return

            await self._engine.ensure_alert(
                AlertType.SYSTEM_HEALTH,
                severity,
                f"System Health {label}",
                f"Overall backup system health score is {score:.1f}/100.",
                {
                    "healthScore": score,
                    "healthFactors": [f.model_dump() for f in health.factors],
                    "collectionError": snapshot.error,
                },
                match={},
                escalate=True,
            )
        except Exception:
            logger.exception("system_health_check_error")

    # ── Long-running jobs ───────────────────────────────────────

    async def check_long_running_jobs(self) -> None:
        threshold = self._config.thresholds.long_running_job_hours
        try:
            sessions = await self._collector.get_running_jobs()
            now = self._now()
            for session in sessions:
                name = normalize_job_name(session.job_name)
                if name is None or session.creation_time is None:
                    logger.debug("long_running_skipped_invalid", session_id=session.id)
                    continue
                hours = (now - session.creation_time).total_seconds() / 3600
                if hours < threshold:
                    continue
                await self._engine.ensure_alert(
                    AlertType.LONG_RUNNING_JOB,
                    Severity.WARNING,
                    f"Long Running Job: {name}",
                    f"Job has been running for {hours:.1f} hours, "
                    f"which exceeds the threshold of {threshold:g} hours.",
                    {
                        "sessionId": session.id,
                        "jobId": session.job_id,
                        "jobName": name,
                        "runningHours": round(hours, 1),
                        "startTime": session.creation_time.isoformat(),
                    },
                    match={"sessionId": session.id},
                )
        except Exception:
            logger.exception("long_running_job_check_error")

    # ── Job state changes ───────────────────────────────────────

    async def check_job_state_changes(self) -> None:
        window = datetime.timedelta(minutes=self._config.state_change_window_minutes)
        try:
            now = self._now()
            for session in await self._collector.get_running_jobs():
                if session.creation_time is None or now - session.creation_time > window:
                    continue
                await self._job_started(session)

            for session in await self._collector.get_recent_sessions(1):
                if session.end_time is None or now - session.end_time > window:
                    continue
                await self._job_completed(session)
        except Exception:
            logger.exception("job_state_change_check_error")

    async def _job_started(self, session: Session) -> None:
        name = normalize_job_name(session.job_name)
        if name is None:
            logger.debug("job_started_skipped_invalid", session_id=session.id)
            return
        await self._engine.ensure_alert(
            AlertType.JOB_STARTED,
            Severity.INFO,
            f"Backup Job Started: {name}",
            f'Job "{name}" started at {_fmt_time(session.creation_time)}',
            {
                "sessionId": session.id,
                "jobId": session.job_id,
                "jobName": name,
                "startTime": session.creation_time.isoformat() if session.creation_time else None,
            },
            match={"sessionId": session.id},
        )

    async def _job_completed(self, session: Session) -> None:
        name = normalize_job_name(session.job_name)
        result = session.result.value
        if name is None or not is_meaningful(result):
            logger.debug(
                "job_completed_skipped_invalid",
                session_id=session.id,
                name=session.job_name,
                result=result.value,
            )
            return

        severity = _COMPLETED_SEVERITY.get(result, Severity.CRITICAL)
        description = f'Job "{name}" completed with result: {result.value}'
        if session.result.message:
            description += f". {session.result.message}"
        await self._engine.ensure_alert(
            AlertType.JOB_COMPLETED,
            severity,
            f"Backup Job {result.value}: {name}",
            description,
            {
                "sessionId": session.id,
                "jobId": session.job_id,
                "jobName": name,
                "result": result.value,
                "endTime": session.end_time.isoformat() if session.end_time else None,
            },
            match={"sessionId": session.id},
        )
