"""
Инфраструктурные исключения.

Ошибки сервисов, хранилища памяти, вызовов моделей и бюджетов времени.
"""

from typing import Optional, Dict, Any

from .base import InfrastructureError, ApplicationError


class ServiceStartFailure(InfrastructureError):
    """
    Исключение: фабрика сервиса выбросила ошибку.
    
    Фатально только для сервисов, помеченных как required.
    """
    
    def __init__(
        self,
        service_type: str,
        reason: str,
        required: bool = False,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"Service '{service_type}' failed to start: {reason}",
            details={
                "service_type": service_type,
                "reason": reason,
                "required": required,
                **(details or {})
            },
            error_code="SERVICE_START_FAILURE"
        )
        self.service_type = service_type
        self.required = required


class StageTimeoutError(InfrastructureError):
    """Исключение: стадия превысила свой бюджет времени."""
    
    def __init__(self, stage: str, budget: float):
        super().__init__(
            message=f"Stage '{stage}' exceeded its budget of {budget:.3f}s",
            details={"stage": stage, "budget": budget},
            error_code="TIMEOUT"
        )
        self.stage = stage
        self.budget = budget


class RetryableModelError(InfrastructureError):
    """
    Обработчик модели просит повторить вызов.
    
    Пример:
        >>> raise RetryableModelError("rate limited", details={"status": 429})
    """
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            details=details,
            error_code="RETRYABLE_MODEL_ERROR"
        )


class MemoryStoreError(InfrastructureError):
    """Исключение: хранилище памяти не смогло выполнить операцию."""
    
    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Memory store {operation} failed: {reason}",
            details={"operation": operation, "reason": reason},
            error_code="MEMORY_STORE_ERROR"
        )


class RuntimeNotReadyError(ApplicationError):
    """Исключение: операция требует runtime в состоянии READY."""
    
    def __init__(self, operation: str, status: str):
        super().__init__(
            message=f"Cannot {operation}: runtime is {status}",
            details={"operation": operation, "status": status},
            error_code="RUNTIME_NOT_READY"
        )
