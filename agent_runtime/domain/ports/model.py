"""
Model invocation boundary.

The core only selects the handler for a model type; inference itself
happens inside ``handler(runtime, params)``.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Union


class ModelType(str, Enum):
    TEXT_SMALL = "TEXT_SMALL"
    TEXT_LARGE = "TEXT_LARGE"
    TEXT_EMBEDDING = "TEXT_EMBEDDING"
    OBJECT_SMALL = "OBJECT_SMALL"
    OBJECT_LARGE = "OBJECT_LARGE"


ModelTypeName = Union[ModelType, str]

ModelHandler = Callable[[Any, dict], Union[Any, Awaitable[Any]]]


def model_type_name(model_type: ModelTypeName) -> str:
    if isinstance(model_type, ModelType):
        return model_type.value
    return str(model_type)
