"""Composite infrastructure health scoring."""

from src.health.scorer import HealthScorer

__all__ = ["HealthScorer"]
