"""
Escalation Observability Module.

Provides in-process metrics collection for store operations, errors, and
picker outcomes.
"""

from escalation.observability.metrics import MetricsStore, get_metrics_store

__all__ = ["MetricsStore", "get_metrics_store"]
