"""
Event topics for the runtime lifecycle.
"""

from enum import Enum
from typing import Union


class EventType(str, Enum):
    """Well-known topics emitted by the runtime core."""
    
    # Runtime lifecycle
    RUNTIME_READY = "runtime.ready"
    RUNTIME_SHUTDOWN = "runtime.shutdown"
    
    # Plugin registration
    PLUGIN_REGISTERED = "plugin.registered"
    PLUGIN_REJECTED = "plugin.rejected"
    
    # Services
    SERVICE_STARTED = "service.started"
    SERVICE_STOPPED = "service.stopped"
    SERVICE_FAILED = "service.failed"
    
    # Message pipeline
    MESSAGE_RECEIVED = "message.received"
    MEMORY_CREATED = "memory.created"
    STATE_COMPOSED = "state.composed"
    ACTION_STARTED = "action.started"
    ACTION_COMPLETED = "action.completed"
    EVALUATOR_FAILED = "evaluator.failed"
    RUN_STARTED = "run.started"
    RUN_COMPLETED = "run.completed"
    RUN_STAGE_TIMEOUT = "run.stage.timeout"


Topic = Union[EventType, str]


def topic_name(topic: Topic) -> str:
    """Normalize an EventType or plain string to the topic key."""
    if isinstance(topic, EventType):
        return topic.value
    return str(topic)
