"""
Component Registry: live collections of plugin-contributed components.

Holds actions, providers, evaluators, model handlers and routes, keyed by
name within each category, plus the owner of every entry so a plugin's
contributions can be rolled back as a unit.
"""

import logging
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple

from ...core.errors import DuplicateComponentError, RegistrationClosedError
from ..entities.components import (
    Action,
    Evaluator,
    ModelHandlerEntry,
    Provider,
    Route,
)
from ..ports.model import ModelHandler, ModelTypeName, model_type_name

logger = logging.getLogger("agent-runtime.component_registry")


class ComponentRegistry:
    """
    Typed component lookup with per-category name dedupe.
    
    Registration is a bootstrap-phase activity. After ``seal()`` every
    register call raises RegistrationClosedError unless it happens inside
    ``unsealed()``, the re-entrant path used for late plugin registration.
    """
    
    def __init__(self):
        self._actions: Dict[str, Action] = {}
        self._providers: Dict[str, Provider] = {}
        self._evaluators: Dict[str, Evaluator] = {}
        self._models: Dict[str, List[ModelHandlerEntry]] = defaultdict(list)
        self._routes: Dict[Tuple[str, str], Route] = {}
        
        # category -> name -> owner plugin
        self._owners: Dict[str, Dict[object, str]] = defaultdict(dict)
        
        self._model_sequence = 0
        self._sealed = False
        self._reentrant_depth = 0
    
    # ==================== Lifecycle ====================
    
    def seal(self) -> None:
        self._sealed = True
        logger.info(
            f"Component registry sealed: {len(self._actions)} actions, "
            f"{len(self._providers)} providers, {len(self._evaluators)} evaluators, "
            f"{sum(len(v) for v in self._models.values())} model handlers, "
            f"{len(self._routes)} routes"
        )
    
    @property
    def sealed(self) -> bool:
        return self._sealed
    
    @contextmanager
    def unsealed(self):
        """Allow registration after seal() for the duration of the block."""
        self._reentrant_depth += 1
        try:
            yield self
        finally:
            self._reentrant_depth -= 1
    
    def _check_open(self, category: str, name: str) -> None:
        if self._sealed and self._reentrant_depth == 0:
            raise RegistrationClosedError(category, name)
    
    # ==================== Registration ====================
    
    def _register_named(self, category: str, store: Dict, component, owner: str) -> None:
        self._check_open(category, component.name)
        if component.name in store:
            raise DuplicateComponentError(
                category, component.name, owner=self._owners[category].get(component.name)
            )
        store[component.name] = component
        self._owners[category][component.name] = owner
        logger.debug(f"Registered {category} {component.name} from {owner}")
    
    def register_action(self, action: Action, owner: str = "runtime") -> None:
        self._register_named("action", self._actions, action, owner)
    
    def register_provider(self, provider: Provider, owner: str = "runtime") -> None:
        self._register_named("provider", self._providers, provider, owner)
    
    def register_evaluator(self, evaluator: Evaluator, owner: str = "runtime") -> None:
        self._register_named("evaluator", self._evaluators, evaluator, owner)
    
    def register_model(
        self,
        model_type: ModelTypeName,
        handler: ModelHandler,
        owner: str = "runtime",
        priority: int = 0
    ) -> ModelHandlerEntry:
        """Append a handler to the multi-map for ``model_type``."""
        name = model_type_name(model_type)
        self._check_open("model", name)
        self._model_sequence += 1
        entry = ModelHandlerEntry(
            model_type=name,
            handler=handler,
            owner=owner,
            priority=priority,
            sequence=self._model_sequence
        )
        self._models[name].append(entry)
        logger.debug(f"Registered model handler {name} from {owner} (priority={priority})")
        return entry
    
    def register_route(self, route: Route, owner: str = "runtime") -> None:
        label = f"{route.method} {route.path}"
        self._check_open("route", label)
        if route.key in self._routes:
            raise DuplicateComponentError(
                "route", label, owner=self._owners["route"].get(route.key)
            )
        self._routes[route.key] = route
        self._owners["route"][route.key] = owner
    
    # ==================== Rollback ====================
    
    def remove_owner(self, owner: str) -> int:
        """
        Remove every component contributed by ``owner``.
        
        Returns:
            Number of removed entries
        """
        removed = 0
        stores = {
            "action": self._actions,
            "provider": self._providers,
            "evaluator": self._evaluators,
            "route": self._routes,
        }
        for category, store in stores.items():
            owned = [key for key, who in self._owners[category].items() if who == owner]
            for key in owned:
                store.pop(key, None)
                del self._owners[category][key]
            removed += len(owned)
        
        for model_type in list(self._models):
            before = len(self._models[model_type])
            self._models[model_type] = [e for e in self._models[model_type] if e.owner != owner]
            removed += before - len(self._models[model_type])
            if not self._models[model_type]:
                del self._models[model_type]
        
        if removed:
            logger.info(f"Rolled back {removed} components from {owner}")
        return removed
    
    # ==================== Lookup ====================
    
    def get_action(self, name: str) -> Optional[Action]:
        return self._actions.get(name)
    
    def find_action(self, name: str) -> Optional[Action]:
        """Lookup by exact name, then case-insensitive name, then simile."""
        if name in self._actions:
            return self._actions[name]
        wanted = name.strip().lower()
        for action in self._actions.values():
            if action.name.lower() == wanted:
                return action
        for action in self._actions.values():
            if any(simile.lower() == wanted for simile in action.similes):
                return action
        return None
    
    def get_provider(self, name: str) -> Optional[Provider]:
        return self._providers.get(name)
    
    def get_evaluator(self, name: str) -> Optional[Evaluator]:
        return self._evaluators.get(name)
    
    @property
    def actions(self) -> List[Action]:
        return list(self._actions.values())
    
    @property
    def providers(self) -> List[Provider]:
        """Providers in registration order."""
        return list(self._providers.values())
    
    @property
    def evaluators(self) -> List[Evaluator]:
        return list(self._evaluators.values())
    
    @property
    def routes(self) -> List[Route]:
        return list(self._routes.values())
    
    def model_entries(self, model_type: ModelTypeName) -> List[ModelHandlerEntry]:
        return list(self._models.get(model_type_name(model_type), []))
    
    def resolve_model(self, model_type: ModelTypeName) -> Optional[ModelHandlerEntry]:
        """
        Highest-priority handler for ``model_type``; ties go to the most
        recently registered entry. ``None`` when nothing is registered.
        """
        entries = self._models.get(model_type_name(model_type))
        if not entries:
            return None
        return max(entries, key=lambda e: (e.priority, e.sequence))
    
    def owner_of(self, category: str, name: object) -> Optional[str]:
        return self._owners[category].get(name)
    
    def counts(self) -> Dict[str, int]:
        return {
            "actions": len(self._actions),
            "providers": len(self._providers),
            "evaluators": len(self._evaluators),
            "models": sum(len(v) for v in self._models.values()),
            "routes": len(self._routes),
        }
