"""Long-running service wiring."""

from src.service.scheduler import MonitoringScheduler

__all__ = ["MonitoringScheduler"]
