"""In-process metrics."""

from certreq.metrics.collector import MetricsCollector

__all__ = ["MetricsCollector"]
