"""
Metrics and observability components.
"""

from ws_gateway.components.metrics.collector import MetricsCollector

__all__ = ["MetricsCollector"]
