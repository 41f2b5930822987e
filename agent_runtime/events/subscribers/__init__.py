"""
Event subscribers.

Subscribers react to published events:
- Audit-log critical events (structlog)
- Collect run metrics
"""

from .audit_logger import AuditLogger
from .run_metrics_collector import RunMetricsCollector

__all__ = [
    "AuditLogger",
    "RunMetricsCollector",
]
