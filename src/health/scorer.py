"""Composite 0-100 health score over a collection snapshot."""

from __future__ import annotations

import datetime
from collections.abc import Callable

import structlog

from src.core.types import HealthFactor, HealthScore, JobResult, Snapshot, utcnow

logger = structlog.stdlib.get_logger()

_JOB_WEIGHT = 40.0
_REPOSITORY_WEIGHT = 30.0
_INFRASTRUCTURE_WEIGHT = 20.0
_FAILURE_WEIGHT = 10.0

# Success rates at or below this floor earn no job points.
_JOB_SUCCESS_FLOOR = 60.0

_REPO_CRITICAL_PCT = 85.0
_REPO_WARNING_PCT = 70.0
_REPO_CRITICAL_PENALTY = 10.0
_REPO_WARNING_PENALTY = 5.0

_FAILURE_PENALTY = 2.0
_FAILURE_WINDOW_HOURS = 24

_HEALTHY_SERVER_STATES = frozenset({"Online", "Available"})

# Score reported when the calculation itself blows up.
_FALLBACK_SCORE = 50.0


class HealthScorer:
    """Weights: job success 40, repositories 30, infrastructure 20, recent failures 10.

    Factors whose data is missing from the snapshot are skipped and cost
    nothing, except recent failures which always contribute.
    """

    def __init__(self, now_fn: Callable[[], datetime.datetime] = utcnow) -> None:
        self._now = now_fn

    def calculate_health_score(self, snapshot: Snapshot) -> HealthScore:
        score = 100.0
        factors: list[HealthFactor] = []

        try:
            if snapshot.job_states is not None:
                jobs = snapshot.job_states
                successes = sum(1 for j in jobs if j.last_result is JobResult.SUCCESS)
                rate = (successes / len(jobs)) * 100 if jobs else 100.0
                job_points = max(0.0, rate - _JOB_SUCCESS_FLOOR) / (100 - _JOB_SUCCESS_FLOOR) * _JOB_WEIGHT
                score -= _JOB_WEIGHT - job_points
                factors.append(HealthFactor(name="Job Success Rate", score=job_points, weight=_JOB_WEIGHT))

            if snapshot.repository_states is not None:
                repo_points = _REPOSITORY_WEIGHT
                for repo in snapshot.repository_states:
                    if repo.usage_percentage > _REPO_CRITICAL_PCT:
                        repo_points -= _REPO_CRITICAL_PENALTY
                    elif repo.usage_percentage > _REPO_WARNING_PCT:
                        repo_points -= _REPO_WARNING_PENALTY
                repo_points = max(0.0, repo_points)
                score -= _REPOSITORY_WEIGHT - repo_points
                factors.append(HealthFactor(name="Repository Health", score=repo_points, weight=_REPOSITORY_WEIGHT))

            if snapshot.infrastructure_servers is not None:
                servers = snapshot.infrastructure_servers
                healthy = sum(1 for s in servers if s.status in _HEALTHY_SERVER_STATES)
                infra_points = (healthy / len(servers)) * _INFRASTRUCTURE_WEIGHT if servers else _INFRASTRUCTURE_WEIGHT
                score -= _INFRASTRUCTURE_WEIGHT - infra_points
                factors.append(
                    HealthFactor(name="Infrastructure Health", score=infra_points, weight=_INFRASTRUCTURE_WEIGHT),
                )

            failures = self.recent_failures(snapshot)
            failure_points = max(0.0, _FAILURE_WEIGHT - failures * _FAILURE_PENALTY)
            score -= _FAILURE_WEIGHT - failure_points
            factors.append(HealthFactor(name="Recent Failures", score=failure_points, weight=_FAILURE_WEIGHT))
        except Exception:
            logger.exception("health_score_error")
            score = _FALLBACK_SCORE

        return HealthScore(
            score=max(0.0, min(100.0, round(score, 1))),
            factors=factors,
            timestamp=self._now(),
        )

    def recent_failures(self, snapshot: Snapshot) -> int:
        """Sessions in the last day with a known, non-Success result."""
        if not snapshot.sessions:
            return 0
        cutoff = self._now() - datetime.timedelta(hours=_FAILURE_WINDOW_HOURS)
        return sum(
            1 for s in snapshot.sessions
            if s.result.value not in (JobResult.SUCCESS, JobResult.UNKNOWN)
            and s.creation_time is not None
            and s.creation_time > cutoff
        )
