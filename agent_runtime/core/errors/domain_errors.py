"""
Доменные исключения.

Ошибки регистрации плагинов и компонентов, валидации сообщений
и выбора действий.
"""

from typing import Optional, Dict, Any, Iterable

from .base import DomainError


class ValidationError(DomainError):
    """
    Исключение: плагин не прошёл валидацию.
    
    Отклоняется только этот плагин, остальные продолжают регистрацию.
    
    Пример:
        >>> raise ValidationError(field="name", reason="Plugin name is required")
    """
    
    def __init__(
        self,
        field: str,
        reason: str,
        plugin_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        message = f"Invalid plugin field '{field}': {reason}"
        super().__init__(
            message=message,
            details={
                "field": field,
                "reason": reason,
                "plugin": plugin_name,
                **(details or {})
            },
            error_code="VALIDATION_ERROR"
        )


class InvalidMessageError(DomainError):
    """
    Исключение: входящее сообщение некорректно.
    
    Выбрасывается на стадии Received до каких-либо побочных эффектов.
    """
    
    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Invalid message: {reason}",
            details={"reason": reason, **(details or {})},
            error_code="INVALID_MESSAGE"
        )


class DuplicateNameError(DomainError):
    """Исключение: плагин с таким именем уже зарегистрирован."""
    
    def __init__(self, plugin_name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Plugin '{plugin_name}' is already registered",
            details={"plugin": plugin_name, **(details or {})},
            error_code="DUPLICATE_NAME"
        )


class DuplicateComponentError(DomainError):
    """
    Исключение: компонент с таким именем уже есть в своей категории.
    
    Пропускается только этот компонент; остальные компоненты
    плагина регистрируются дальше.
    """
    
    def __init__(
        self,
        category: str,
        name: str,
        owner: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"{category.capitalize()} '{name}' is already registered",
            details={
                "category": category,
                "name": name,
                "owner": owner,
                **(details or {})
            },
            error_code="DUPLICATE_COMPONENT"
        )
        self.category = category
        self.name = name


class DependencyUnresolvedError(DomainError):
    """Исключение: зависимости плагина так и не были зарегистрированы."""
    
    def __init__(
        self,
        plugin_name: str,
        missing: Iterable[str],
        details: Optional[Dict[str, Any]] = None
    ):
        missing = sorted(missing)
        super().__init__(
            message=(
                f"Plugin '{plugin_name}' has unresolved dependencies: "
                f"{', '.join(missing)}"
            ),
            details={"plugin": plugin_name, "missing": missing, **(details or {})},
            error_code="DEPENDENCY_UNRESOLVED"
        )
        self.missing = missing


class RegistrationClosedError(DomainError):
    """Исключение: регистрация компонентов после сигнала ready."""
    
    def __init__(self, category: str, name: str):
        super().__init__(
            message=(
                f"Cannot register {category} '{name}': registry is sealed "
                f"after the runtime became ready"
            ),
            details={"category": category, "name": name},
            error_code="REGISTRATION_CLOSED"
        )


class AlreadyRunningError(DomainError):
    """Исключение: сервис этого типа уже запущен."""
    
    def __init__(self, service_type: str):
        super().__init__(
            message=f"Service '{service_type}' is already running",
            details={"service_type": service_type},
            error_code="ALREADY_RUNNING"
        )


class ModelNotFoundError(DomainError):
    """Исключение: ни один плагин не зарегистрировал обработчик модели."""
    
    def __init__(self, model_type: str):
        super().__init__(
            message=f"No handler registered for model type '{model_type}'",
            details={"model_type": model_type},
            error_code="MODEL_NOT_FOUND"
        )


class ActionSelectionExhausted(DomainError):
    """
    Все кандидаты не прошли validate() в пределах лимита попыток.
    
    Не выбрасывается из пайплайна: фиксируется в отчёте о запуске,
    после чего выполняется fallback действие.
    """
    
    def __init__(self, attempts: int, rejected: Iterable[str]):
        rejected = list(rejected)
        super().__init__(
            message=f"Action selection exhausted after {attempts} attempts",
            details={"attempts": attempts, "rejected": rejected},
            error_code="ACTION_SELECTION_EXHAUSTED"
        )
