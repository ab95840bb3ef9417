"""Observability primitives: event sink, listeners, run logging, and metrics."""

from esync_audit.observability.events import EventSink
from esync_audit.observability.listeners import FindingCollector, LoggingListener
from esync_audit.observability.logging import correlation_scope, setup_logging, shutdown_logging
from esync_audit.observability.metrics import MetricsRegistry

__all__ = [
    "EventSink",
    "FindingCollector",
    "LoggingListener",
    "MetricsRegistry",
    "correlation_scope",
    "setup_logging",
    "shutdown_logging",
]
