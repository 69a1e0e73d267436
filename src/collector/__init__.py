"""Veeam REST API client and normalized data collection."""

from src.collector.base import DataSource
from src.collector.client import VeeamApiClient
from src.collector.exceptions import (
    ApiAuthError,
    ApiConnectionError,
    ApiResponseError,
    CollectorError,
)
from src.collector.normalize import normalize_job_name, normalize_result, normalize_session_result
from src.collector.service import DataCollector

__all__ = [
    "ApiAuthError",
    "ApiConnectionError",
    "ApiResponseError",
    "CollectorError",
    "DataCollector",
    "DataSource",
    "VeeamApiClient",
    "normalize_job_name",
    "normalize_result",
    "normalize_session_result",
]
