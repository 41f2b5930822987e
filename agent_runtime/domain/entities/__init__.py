"""
Доменные сущности runtime.
"""

from .action_result import ActionResult
from .components import (
    Action,
    Evaluator,
    ModelHandlerEntry,
    Provider,
    Route,
    ServiceDefinition,
)
from .message import Content, Message
from .plugin import Plugin
from .run import (
    EvaluationOutcome,
    PipelinePhase,
    PipelineRun,
    RunFailure,
    RunStatus,
    StageOutcome,
    StageStatus,
)
from .state import ProviderResult, State
from .stream import StreamChunk

__all__ = [
    "ActionResult",
    "Action",
    "Evaluator",
    "ModelHandlerEntry",
    "Provider",
    "Route",
    "ServiceDefinition",
    "Content",
    "Message",
    "Plugin",
    "EvaluationOutcome",
    "PipelinePhase",
    "PipelineRun",
    "RunFailure",
    "RunStatus",
    "StageOutcome",
    "StageStatus",
    "ProviderResult",
    "State",
    "StreamChunk",
]
