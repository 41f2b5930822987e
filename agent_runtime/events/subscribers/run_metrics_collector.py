"""
Metrics collector subscriber that aggregates pipeline run metrics.
"""

import logging
from typing import Any, Dict

from ..base_event import Event
from ..event_bus import EventBus
from ..event_types import EventType

logger = logging.getLogger("agent-runtime.run_metrics")


class RunMetricsCollector:
    """
    Collects metrics from pipeline events.
    
    - Run counts and durations by status
    - Action executions and failures
    - Stage timeouts
    - Evaluator failures
    """
    
    OWNER = "run_metrics_collector"
    
    def __init__(self, event_bus: EventBus):
        self._event_bus = event_bus
        self._metrics: Dict[str, Any] = {
            "runs": {"count": 0, "total_duration_ms": 0.0, "by_status": {}},
            "actions": {},
            "stage_timeouts": {},
            "evaluator_failures": {},
        }
        self._setup_subscriptions()
    
    def _setup_subscriptions(self):
        bus = self._event_bus
        bus.on(EventType.RUN_COMPLETED, self._collect_run_metrics, owner=self.OWNER)
        bus.on(EventType.ACTION_COMPLETED, self._collect_action_metrics, owner=self.OWNER)
        bus.on(EventType.RUN_STAGE_TIMEOUT, self._collect_timeout_metrics, owner=self.OWNER)
        bus.on(EventType.EVALUATOR_FAILED, self._collect_evaluator_metrics, owner=self.OWNER)
        logger.debug("RunMetricsCollector initialized and subscribed to events")
    
    async def _collect_run_metrics(self, event: Event):
        runs = self._metrics["runs"]
        status = event.payload["status"]
        runs["count"] += 1
        runs["total_duration_ms"] += event.payload.get("duration_ms", 0.0)
        runs["by_status"][status] = runs["by_status"].get(status, 0) + 1
        logger.debug(f"Recorded run {event.run_id}: status={status}")
    
    async def _collect_action_metrics(self, event: Event):
        action = event.payload.get("action") or "<none>"
        if action not in self._metrics["actions"]:
            self._metrics["actions"][action] = {"executed": 0, "failed": 0}
        self._metrics["actions"][action]["executed"] += 1
        if not event.payload.get("success", False):
            self._metrics["actions"][action]["failed"] += 1
    
    async def _collect_timeout_metrics(self, event: Event):
        stage = event.payload["stage"]
        self._metrics["stage_timeouts"][stage] = self._metrics["stage_timeouts"].get(stage, 0) + 1
    
    async def _collect_evaluator_metrics(self, event: Event):
        name = event.payload["evaluator"]
        self._metrics["evaluator_failures"][name] = self._metrics["evaluator_failures"].get(name, 0) + 1
    
    def get_metrics(self) -> Dict[str, Any]:
        """Get collected metrics."""
        return self._metrics.copy()
    
    def get_run_count(self, status: str = None) -> int:
        if status is None:
            return self._metrics["runs"]["count"]
        return self._metrics["runs"]["by_status"].get(status, 0)
    
    def get_avg_run_duration(self) -> float:
        runs = self._metrics["runs"]
        if runs["count"] == 0:
            return 0.0
        return runs["total_duration_ms"] / runs["count"]
    
    def get_action_failure_rate(self, action: str) -> float:
        metrics = self._metrics["actions"].get(action)
        if not metrics or metrics["executed"] == 0:
            return 0.0
        return metrics["failed"] / metrics["executed"]
    
    def detach(self) -> None:
        self._event_bus.remove_owner(self.OWNER)
