"""
Audit logger subscriber that logs critical runtime events.
"""

import structlog
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from ..base_event import Event
from ..event_bus import EventBus
from ..event_types import EventType

logger = structlog.get_logger(__name__)


class AuditLogger:
    """
    Logs critical events for audit purposes.
    
    This subscriber listens to events an operator has to be able to
    reconstruct after the fact:
    - Plugin registration and rejection
    - Service start failures
    - Evaluator failures
    - Stage timeouts
    - Run completion
    """
    
    OWNER = "audit_logger"
    
    def __init__(self, event_bus: EventBus, max_entries: int = 1000):
        self._event_bus = event_bus
        self._audit_log: Deque[Dict[str, Any]] = deque(maxlen=max_entries)
        self._setup_subscriptions()
    
    def _setup_subscriptions(self):
        """Subscribe to critical events."""
        bus = self._event_bus
        bus.on(EventType.PLUGIN_REGISTERED, self._log_plugin_registered, owner=self.OWNER)
        bus.on(EventType.PLUGIN_REJECTED, self._log_plugin_rejected, owner=self.OWNER)
        bus.on(EventType.SERVICE_FAILED, self._log_service_failure, owner=self.OWNER)
        bus.on(EventType.EVALUATOR_FAILED, self._log_evaluator_failure, owner=self.OWNER)
        bus.on(EventType.RUN_STAGE_TIMEOUT, self._log_stage_timeout, owner=self.OWNER)
        bus.on(EventType.RUN_COMPLETED, self._log_run_completed, owner=self.OWNER)
        
        logger.info("AuditLogger initialized and subscribed to events")
    
    def _entry(self, event: Event, **fields: Any) -> Dict[str, Any]:
        entry = {
            "timestamp": event.timestamp.isoformat(),
            "event_type": event.topic,
            "event_id": event.event_id,
            "run_id": event.run_id,
            "source": event.source,
        }
        entry.update(fields)
        self._audit_log.append(entry)
        return entry
    
    async def _log_plugin_registered(self, event: Event):
        self._entry(event, plugin=event.payload["plugin"], components=event.payload.get("components"))
        logger.info(
            "plugin_registered",
            plugin=event.payload["plugin"],
            components=event.payload.get("components"),
            event_id=event.event_id
        )
    
    async def _log_plugin_rejected(self, event: Event):
        error = event.payload.get("error") or {}
        self._entry(event, plugin=event.payload["plugin"], error_code=error.get("error_code"))
        logger.warning(
            "plugin_rejected",
            plugin=event.payload["plugin"],
            error_code=error.get("error_code"),
            error_message=error.get("message"),
            event_id=event.event_id
        )
    
    async def _log_service_failure(self, event: Event):
        self._entry(
            event,
            service_type=event.payload["service_type"],
            required=event.payload.get("required", False),
            error_message=event.payload.get("error")
        )
        logger.error(
            "service_start_failed",
            service_type=event.payload["service_type"],
            required=event.payload.get("required", False),
            error_message=event.payload.get("error"),
            event_id=event.event_id
        )
    
    async def _log_evaluator_failure(self, event: Event):
        self._entry(event, evaluator=event.payload["evaluator"], error_message=event.payload.get("error"))
        logger.error(
            "evaluator_failed",
            evaluator=event.payload["evaluator"],
            error_message=event.payload.get("error"),
            run_id=event.run_id,
            event_id=event.event_id
        )
    
    async def _log_stage_timeout(self, event: Event):
        self._entry(event, stage=event.payload["stage"], budget=event.payload.get("budget"))
        logger.warning(
            "stage_timeout",
            stage=event.payload["stage"],
            budget=event.payload.get("budget"),
            run_id=event.run_id,
            event_id=event.event_id
        )
    
    async def _log_run_completed(self, event: Event):
        summary = event.payload
        self._entry(
            event,
            status=summary["status"],
            room_id=summary.get("room_id"),
            action=summary.get("action"),
            duration_ms=summary.get("duration_ms")
        )
        logger.info(
            "run_completed",
            run_id=event.run_id,
            room_id=summary.get("room_id"),
            status=summary["status"],
            action=summary.get("action"),
            used_fallback=summary.get("used_fallback"),
            duration_ms=summary.get("duration_ms"),
            event_id=event.event_id
        )
    
    def get_audit_log(
        self,
        run_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Get audit log entries with optional filtering.
        
        Args:
            run_id: Filter by pipeline run ID
            event_type: Filter by event topic
            limit: Maximum number of entries to return
        
        Returns:
            List of audit log entries
        """
        filtered_log = list(self._audit_log)
        
        if run_id:
            filtered_log = [entry for entry in filtered_log if entry.get("run_id") == run_id]
        
        if event_type:
            filtered_log = [entry for entry in filtered_log if entry.get("event_type") == event_type]
        
        if limit:
            filtered_log = filtered_log[-limit:]
        
        return list(filtered_log)
    
    def clear_audit_log(self):
        """Clear audit log (for testing)."""
        self._audit_log.clear()
        logger.info("Audit log cleared")
    
    def detach(self) -> None:
        self._event_bus.remove_owner(self.OWNER)
