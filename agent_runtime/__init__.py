"""
Agent Runtime: plugin-based orchestrator for conversational agents.
"""

from .core.config import AppConfig, RuntimeSettings
from .core.runtime import AgentRuntime, RuntimeStatus
from .domain.entities import (
    Action,
    ActionResult,
    Content,
    Evaluator,
    Message,
    PipelineRun,
    Plugin,
    Provider,
    ProviderResult,
    Route,
    RunStatus,
    ServiceDefinition,
    State,
    StreamChunk,
)
from .domain.ports import MemoryQuery, MemoryRecord, MemoryStore, ModelType
from .events import EventBus, EventType

__version__ = AppConfig.VERSION

__all__ = [
    "AppConfig",
    "RuntimeSettings",
    "AgentRuntime",
    "RuntimeStatus",
    "Action",
    "ActionResult",
    "Content",
    "Evaluator",
    "Message",
    "PipelineRun",
    "Plugin",
    "Provider",
    "ProviderResult",
    "Route",
    "RunStatus",
    "ServiceDefinition",
    "State",
    "StreamChunk",
    "MemoryQuery",
    "MemoryRecord",
    "MemoryStore",
    "ModelType",
    "EventBus",
    "EventType",
]
