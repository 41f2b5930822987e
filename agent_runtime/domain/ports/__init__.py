"""
Ports: границы с внешними системами.
"""

from .memory_store import MemoryQuery, MemoryRecord, MemoryStore
from .model import ModelHandler, ModelType, ModelTypeName, model_type_name

__all__ = [
    "MemoryQuery",
    "MemoryRecord",
    "MemoryStore",
    "ModelHandler",
    "ModelType",
    "ModelTypeName",
    "model_type_name",
]
