"""Monitoring package exports and helpers."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig, get_app_config
from .logger import configure_logging, correlation_scope, get_logger
from .metrics import METRICS, MetricsRegistry


def bootstrap_observability(*, config: Optional[AppConfig] = None) -> MetricsRegistry:
    """Configure structured logging and return the process-wide metrics registry."""

    app_config = config or get_app_config()
    configure_logging(app_config.monitoring)
    get_logger(__name__).info(
        "Observability ready",
        extra={"mode": app_config.mode.active.value, "log_level": app_config.monitoring.log_level},
    )
    return METRICS


__all__ = ["METRICS", "bootstrap_observability", "correlation_scope", "get_logger"]
