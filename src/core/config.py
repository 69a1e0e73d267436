"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class VeeamConfig(BaseModel):
    """Veeam Backup & Replication REST API connection."""

    base_url: str = "https://localhost:9419"
    username: str = ""
    password: SecretStr = SecretStr("")
    api_version: str = "1.1-rev1"
    timeout_secs: float = 30.0
    health_timeout_secs: float = 10.0
    verify_ssl: bool = False
    token_path: str | None = "data/tokens.json"


class CollectorConfig(BaseModel):
    """Data collection cache behaviour."""

    cache_timeout_secs: float = 300.0
    enable_caching: bool = True
    session_limit: int = 1000


class RepositoryUsageThresholds(BaseModel):
    """Repository usage percentages that raise alerts."""

    warning: float = 70.0
    critical: float = 85.0


class HealthScoreThresholds(BaseModel):
    """Health score values at or below which alerts are raised."""

    warning: float = 70.0
    critical: float = 50.0


class ThresholdsConfig(BaseModel):
    """Container for all alert thresholds."""

    repository_usage: RepositoryUsageThresholds = RepositoryUsageThresholds()
    health_score: HealthScoreThresholds = HealthScoreThresholds()
    long_running_job_hours: float = 4.0


class AlertTypesConfig(BaseModel):
    """Per-check enable switches."""

    job_failure: bool = True
    repository_usage: bool = True
    system_health: bool = True
    long_running_job: bool = True
    job_state_change: bool = True
    syslog_event: bool = True


class QuietHoursConfig(BaseModel):
    """Window during which non-critical notifications are held back."""

    enabled: bool = False
    start: str = "22:00"
    end: str = "06:00"
    timezone: str = "UTC"
    allow_critical: bool = True


class AlertingConfig(BaseModel):
    """Alert lifecycle, retry and retention policy."""

    enabled: bool = True
    max_retries: int = 5
    retry_interval_minutes: float = 30.0
    auto_acknowledge_after_hours: float = 24.0
    purge_acknowledged_after_days: float = 7.0
    notification_delay_secs: float = 1.0
    acknowledgement_confirmations: bool = True
    job_failure_lookback_hours: float = 1.0
    state_change_window_minutes: float = 5.0
    thresholds: ThresholdsConfig = ThresholdsConfig()
    alert_types: AlertTypesConfig = AlertTypesConfig()
    quiet_hours: QuietHoursConfig = QuietHoursConfig()


class StoreConfig(BaseModel):
    """Where the alert collections are persisted."""

    data_dir: str = "data"
    active_file: str = "alerts.json"
    acknowledged_file: str = "acknowledged_alerts.json"

    @property
    def active_path(self) -> Path:
        return Path(self.data_dir) / self.active_file

    @property
    def acknowledged_path(self) -> Path:
        return Path(self.data_dir) / self.acknowledged_file


class SyslogConfig(BaseModel):
    """Passive syslog UDP receiver."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 514
    marker: str = "veeam"
    queue_size: int = 1000


class WebhookConfig(BaseModel):
    """Outbound messaging webhook."""

    enabled: bool = False
    url: SecretStr = SecretStr("")
    chat_id: str = ""
    timeout_secs: float = 10.0
    retry_attempts: int = 1
    retry_delay_secs: float = 1.0


class NotifierConfig(BaseModel):
    """Container for notification channels."""

    webhook: WebhookConfig = WebhookConfig()


class MonitoringConfig(BaseModel):
    """Sweep cadence."""

    interval_secs: float = 300.0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    log_dir: str | None = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 10


class Settings(BaseModel):
    """Root settings container."""

    veeam: VeeamConfig = VeeamConfig()
    collector: CollectorConfig = CollectorConfig()
    alerting: AlertingConfig = AlertingConfig()
    store: StoreConfig = StoreConfig()
    syslog: SyslogConfig = SyslogConfig()
    notifier: NotifierConfig = NotifierConfig()
    monitoring: MonitoringConfig = MonitoringConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
