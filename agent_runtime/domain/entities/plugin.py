"""
Plugin: a named bundle of components, the unit of extension.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from .components import Action, Evaluator, Provider, Route, ServiceDefinition


@dataclass(frozen=True)
class Plugin:
    """
    Immutable plugin definition.
    
    ``name`` is optional at construction so that a nameless plugin reaches
    the registry and is rejected there with a ValidationError rather than
    failing at import time.
    
    Attributes:
        name: Unique plugin name
        priority: Higher registers first among plugins with satisfied dependencies
        dependencies: Names of plugins that must register first
        config: Setting keys with defaults, resolved through get_setting
        init: ``init(config, runtime)``, sync or async
        adapter: MemoryStore instance or ``factory(runtime)`` returning one
        models: model type -> ``handler(runtime, params)``
        events: topic -> handlers
    """
    
    name: Optional[str] = None
    description: str = ""
    priority: int = 0
    dependencies: Tuple[str, ...] = ()
    config: Mapping[str, Any] = field(default_factory=dict)
    init: Optional[Callable] = None
    adapter: Any = None
    actions: Tuple[Action, ...] = ()
    providers: Tuple[Provider, ...] = ()
    evaluators: Tuple[Evaluator, ...] = ()
    services: Tuple[ServiceDefinition, ...] = ()
    models: Mapping[str, Callable] = field(default_factory=dict)
    routes: Tuple[Route, ...] = ()
    events: Mapping[str, Sequence[Callable]] = field(default_factory=dict)
    
    def __post_init__(self):
        for attr in ("actions", "providers", "evaluators", "services", "routes"):
            object.__setattr__(self, attr, tuple(getattr(self, attr) or ()))
        deps = self.dependencies
        if isinstance(deps, str):
            deps = (deps,)
        object.__setattr__(self, "dependencies", tuple(dict.fromkeys(deps or ())))
        object.__setattr__(self, "config", dict(self.config or {}))
        object.__setattr__(self, "models", {str(getattr(k, "value", k)): v for k, v in (self.models or {}).items()})
        object.__setattr__(
            self,
            "events",
            {str(getattr(k, "value", k)): (v,) if callable(v) else tuple(v) for k, v in (self.events or {}).items()},
        )
    
    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Plugin":
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})
    
    def component_counts(self) -> Dict[str, int]:
        return {
            "actions": len(self.actions),
            "providers": len(self.providers),
            "evaluators": len(self.evaluators),
            "services": len(self.services),
            "models": len(self.models),
            "routes": len(self.routes),
            "events": sum(len(h) for h in self.events.values()),
        }
