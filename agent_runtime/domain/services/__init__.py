"""
Доменные сервисы runtime.
"""

from .action_selector import ActionSelector, SelectionOutcome
from .component_registry import ComponentRegistry
from .dependency_resolver import PluginDependencyResolver
from .message_pipeline import MessagePipeline
from .output_channel import OutputChannel
from .plugin_registry import PluginRegistry, PluginRejection, RegistrationReport
from .state_composer import Composition, StateComposer

__all__ = [
    "ActionSelector",
    "SelectionOutcome",
    "ComponentRegistry",
    "PluginDependencyResolver",
    "MessagePipeline",
    "OutputChannel",
    "PluginRegistry",
    "PluginRejection",
    "RegistrationReport",
    "Composition",
    "StateComposer",
]
