"""
Component descriptors contributed by plugins.

Name-keyed descriptors with a handler reference and capability flags;
all handlers and validators may be plain functions or coroutines.

Signatures:
    Action.validate(runtime, message, state) -> bool
    Action.handler(runtime, message, state, options, emit) -> ActionResult
    Provider.handler(runtime, message, partial_state) -> ProviderResult | dict | None
    Evaluator.validate(runtime, message, state) -> bool
    Evaluator.handler(runtime, message, state, result) -> Any
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

POSITION_MIN = -100
POSITION_MAX = 100

ROUTE_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "STATIC")


def _require_name(kind: str, name: Any) -> None:
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"{kind} name must be a non-empty string")


@dataclass(frozen=True)
class Action:
    name: str
    handler: Callable
    validate: Optional[Callable] = None
    description: str = ""
    similes: Tuple[str, ...] = ()
    examples: Tuple[Any, ...] = ()
    
    def __post_init__(self):
        _require_name("Action", self.name)


@dataclass(frozen=True)
class Provider:
    name: str
    handler: Callable
    description: str = ""
    position: int = 0
    private: bool = False
    dynamic: bool = False
    
    def __post_init__(self):
        _require_name("Provider", self.name)
        if not POSITION_MIN <= self.position <= POSITION_MAX:
            raise ValueError(
                f"Provider '{self.name}' position {self.position} outside "
                f"[{POSITION_MIN}, {POSITION_MAX}]"
            )


@dataclass(frozen=True)
class Evaluator:
    name: str
    handler: Callable
    validate: Optional[Callable] = None
    description: str = ""
    always_run: bool = False
    
    def __post_init__(self):
        _require_name("Evaluator", self.name)


@dataclass(frozen=True)
class Route:
    """HTTP route entry; the runtime only aggregates these for a transport."""
    
    method: str
    path: str
    handler: Callable
    public: bool = False
    name: Optional[str] = None
    
    def __post_init__(self):
        method = self.method.upper()
        if method not in ROUTE_METHODS:
            raise ValueError(f"Unsupported route method '{self.method}'")
        object.__setattr__(self, "method", method)
        if not self.path.startswith("/"):
            object.__setattr__(self, "path", "/" + self.path)
    
    @property
    def key(self) -> Tuple[str, str]:
        return self.method, self.path


@dataclass(frozen=True)
class ServiceDefinition:
    """``factory(runtime)`` builds and starts the instance; ``stop()`` tears it down."""
    
    service_type: str
    factory: Callable
    required: bool = False
    
    def __post_init__(self):
        _require_name("Service", self.service_type)


@dataclass(frozen=True)
class ModelHandlerEntry:
    model_type: str
    handler: Callable
    owner: str
    priority: int = 0
    sequence: int = 0
