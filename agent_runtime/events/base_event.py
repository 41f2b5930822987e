"""
Event model dispatched by the EventBus.
"""

from datetime import datetime, timezone
from typing import Any, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field


class Event(BaseModel):
    """
    A single emission on a topic.
    
    Handlers receive the whole event; ``payload`` is whatever the
    emitter passed and is not validated here.
    """
    
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)
    
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    topic: str
    payload: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    
    # Context
    source: str = "runtime"
    run_id: Optional[str] = None  # For tracing events of one pipeline run
