"""
Event bus components for Agent Runtime.

This package provides:
- Event topics
- Base event model
- Event bus for pub/sub with awaitable emission handles
- Event subscribers
"""

from .event_types import EventType, Topic, topic_name
from .base_event import Event
from .event_bus import EmitHandle, EventBus, EventBusStats, EventHandler

__all__ = [
    "EventType",
    "Topic",
    "topic_name",
    "Event",
    "EmitHandle",
    "EventBus",
    "EventBusStats",
    "EventHandler",
]
