"""
Кастомные исключения для Agent Runtime.

Этот модуль содержит иерархию исключений для различных
ошибочных ситуаций в системе.
"""

from .base import (
    AgentRuntimeError,
    DomainError,
    InfrastructureError,
    ApplicationError
)
from .domain_errors import (
    ValidationError,
    InvalidMessageError,
    DuplicateNameError,
    DuplicateComponentError,
    DependencyUnresolvedError,
    RegistrationClosedError,
    AlreadyRunningError,
    ModelNotFoundError,
    ActionSelectionExhausted
)
from .infrastructure_errors import (
    ServiceStartFailure,
    StageTimeoutError,
    RetryableModelError,
    MemoryStoreError,
    RuntimeNotReadyError
)

__all__ = [
    "AgentRuntimeError",
    "DomainError",
    "InfrastructureError",
    "ApplicationError",
    "ValidationError",
    "InvalidMessageError",
    "DuplicateNameError",
    "DuplicateComponentError",
    "DependencyUnresolvedError",
    "RegistrationClosedError",
    "AlreadyRunningError",
    "ModelNotFoundError",
    "ActionSelectionExhausted",
    "ServiceStartFailure",
    "StageTimeoutError",
    "RetryableModelError",
    "MemoryStoreError",
    "RuntimeNotReadyError",
]
