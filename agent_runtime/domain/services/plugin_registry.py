"""
Plugin Registry: validation, ordering and installation of plugins.

Plugins are submitted with ``register()`` and installed by ``finalize()``
in dependency order. Every failure is local to the plugin (or, for
duplicate components, to the single component) that caused it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from ...core.errors import (
    AlreadyRunningError,
    DependencyUnresolvedError,
    DuplicateComponentError,
    DuplicateNameError,
    ServiceStartFailure,
    ValidationError,
)
from ...events.event_types import EventType
from ..entities.components import Action, Evaluator, Provider, Route, ServiceDefinition
from ..entities.plugin import Plugin
from ..shared import maybe_await
from .dependency_resolver import PluginDependencyResolver

logger = logging.getLogger("agent-runtime.plugin_registry")


@dataclass
class PluginRejection:
    name: Optional[str]
    error: Exception


@dataclass
class RegistrationReport:
    """Outcome of one finalize pass."""
    
    installed: List[str] = field(default_factory=list)
    rejected: List[PluginRejection] = field(default_factory=list)
    skipped_components: List[DuplicateComponentError] = field(default_factory=list)
    skipped_services: List[AlreadyRunningError] = field(default_factory=list)
    failed_services: List[str] = field(default_factory=list)
    
    @property
    def rejected_names(self) -> List[Optional[str]]:
        return [r.name for r in self.rejected]
    
    def error_for(self, name: str) -> Optional[Exception]:
        for rejection in self.rejected:
            if rejection.name == name:
                return rejection.error
        return None


_COMPONENT_TYPES = {
    "actions": Action,
    "providers": Provider,
    "evaluators": Evaluator,
    "services": ServiceDefinition,
    "routes": Route,
}


class PluginRegistry:
    """
    Drives registration of plugin components into the runtime.
    
    Per-plugin sequence: database adapter, actions, evaluators, providers,
    model handlers, routes, event handlers, ``init(config, runtime)``,
    then services (handed to the ServiceSupervisor, which defers them
    until the runtime is ready). A failure anywhere before services rolls
    back what the plugin already registered.
    """
    
    def __init__(self, runtime):
        self._runtime = runtime
        self._resolver = PluginDependencyResolver()
        self._pending: List[Plugin] = []
        self._plugins: Dict[str, Plugin] = {}
        self._report = RegistrationReport()
    
    # ==================== Submission ====================
    
    def register(self, plugin: Union[Plugin, Mapping[str, Any]]) -> Plugin:
        """
        Submit a plugin for the next finalize pass.
        
        Raises:
            ValidationError: Missing name or malformed components
            DuplicateNameError: Name already registered or pending
        """
        try:
            plugin = self._coerce(plugin)
            self._validate(plugin)
            if plugin.name in self._plugins or any(p.name == plugin.name for p in self._pending):
                raise DuplicateNameError(plugin.name)
        except (ValidationError, DuplicateNameError) as e:
            name = getattr(plugin, "name", None) if not isinstance(plugin, Mapping) else plugin.get("name")
            logger.warning(f"Rejected plugin {name!r}: {e.message}")
            self._report.rejected.append(PluginRejection(name, e))
            raise
        
        self._pending.append(plugin)
        logger.debug(f"Plugin {plugin.name} submitted (priority={plugin.priority})")
        return plugin
    
    def register_all(self, plugins) -> List[Plugin]:
        """Submit many plugins; rejections are recorded, not raised."""
        accepted = []
        for plugin in plugins:
            try:
                accepted.append(self.register(plugin))
            except (ValidationError, DuplicateNameError):
                continue
        return accepted
    
    def _coerce(self, plugin) -> Plugin:
        if isinstance(plugin, Plugin):
            return plugin
        if isinstance(plugin, Mapping):
            try:
                return Plugin.from_mapping(plugin)
            except (TypeError, ValueError) as e:
                raise ValidationError("plugin", str(e), plugin_name=plugin.get("name"))
        raise ValidationError("plugin", f"expected Plugin or mapping, got {type(plugin).__name__}")
    
    def _validate(self, plugin: Plugin) -> None:
        name = plugin.name
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name", "Plugin name is required")
        if not isinstance(plugin.priority, int) or isinstance(plugin.priority, bool):
            raise ValidationError("priority", "must be an integer", plugin_name=name)
        for dep in plugin.dependencies:
            if not isinstance(dep, str) or not dep:
                raise ValidationError("dependencies", f"invalid dependency {dep!r}", plugin_name=name)
        for attr, expected in _COMPONENT_TYPES.items():
            for component in getattr(plugin, attr):
                if not isinstance(component, expected):
                    raise ValidationError(
                        attr,
                        f"expected {expected.__name__}, got {type(component).__name__}",
                        plugin_name=name
                    )
        for model_type, handler in plugin.models.items():
            if not callable(handler):
                raise ValidationError("models", f"handler for {model_type} is not callable", plugin_name=name)
        for topic, handlers in plugin.events.items():
            if not all(callable(h) for h in handlers):
                raise ValidationError("events", f"non-callable handler for {topic}", plugin_name=name)
        if plugin.init is not None and not callable(plugin.init):
            raise ValidationError("init", "must be callable", plugin_name=name)
    
    # ==================== Finalize ====================
    
    async def finalize(self) -> RegistrationReport:
        """
        Install every pending plugin in dependency order.
        
        Returns:
            Report covering this pass and any rejections since the last pass
        """
        pending, self._pending = self._pending, []
        report, self._report = self._report, RegistrationReport()
        
        order, unresolved = self._resolver.resolve(pending, registered=self._plugins.keys())
        for plugin in pending:
            if plugin.name in unresolved:
                error = DependencyUnresolvedError(plugin.name, unresolved[plugin.name])
                logger.warning(error.message)
                report.rejected.append(PluginRejection(plugin.name, error))
        
        for plugin in order:
            # Зависимость могла не установиться из-за ошибки init
            missing = [d for d in plugin.dependencies if d not in self._plugins]
            if missing:
                error = DependencyUnresolvedError(plugin.name, missing)
                logger.warning(error.message)
                report.rejected.append(PluginRejection(plugin.name, error))
                continue
            if await self._install(plugin, report):
                report.installed.append(plugin.name)
        
        for rejection in report.rejected:
            self._runtime.event_bus.emit(
                EventType.PLUGIN_REJECTED,
                {"plugin": rejection.name, "error": _describe(rejection.error)},
                source="plugin_registry"
            )
        
        logger.info(
            f"Plugin registration finished: {len(report.installed)} installed, "
            f"{len(report.rejected)} rejected"
        )
        return report
    
    async def register_late(self, plugin: Union[Plugin, Mapping[str, Any]]) -> RegistrationReport:
        """Re-entrant path: register one plugin after the runtime is ready."""
        try:
            self.register(plugin)
        except (ValidationError, DuplicateNameError):
            report, self._report = self._report, RegistrationReport()
            return report
        with self._runtime.components.unsealed(), self._runtime.event_bus.unsealed():
            return await self.finalize()
    
    async def _install(self, plugin: Plugin, report: RegistrationReport) -> bool:
        owner = plugin.name
        components = self._runtime.components
        
        def attempt(register, component):
            try:
                register(component, owner)
            except DuplicateComponentError as e:
                logger.warning(f"Skipping component from {owner}: {e.message}")
                report.skipped_components.append(e)
        
        try:
            if plugin.adapter is not None:
                adapter = plugin.adapter
                if callable(adapter) and not hasattr(adapter, "create_memory"):
                    adapter = await maybe_await(adapter(self._runtime))
                attempt(self._runtime.register_adapter, adapter)
            for action in plugin.actions:
                attempt(components.register_action, action)
            for evaluator in plugin.evaluators:
                attempt(components.register_evaluator, evaluator)
            for provider in plugin.providers:
                attempt(components.register_provider, provider)
            for model_type, handler in plugin.models.items():
                components.register_model(model_type, handler, owner, plugin.priority)
            for route in plugin.routes:
                attempt(components.register_route, route)
            for topic, handlers in plugin.events.items():
                for handler in handlers:
                    self._runtime.event_bus.on(topic, handler, owner=owner)
            
            if plugin.init is not None:
                config = self.resolve_config(plugin)
                await maybe_await(plugin.init(config, self._runtime))
        except Exception as e:
            logger.error(f"Plugin {owner} failed to register: {e}", exc_info=True)
            await self._rollback(owner)
            report.rejected.append(PluginRejection(owner, e))
            return False
        
        self._plugins[owner] = plugin
        try:
            await self._start_services(plugin, report)
        except ServiceStartFailure as e:
            logger.error(f"Plugin {owner} rolled back: {e.message}")
            await self._rollback(owner)
            report.rejected.append(PluginRejection(owner, e))
            return False
        
        logger.info(f"Plugin {owner} registered: {plugin.component_counts()}")
        self._runtime.event_bus.emit(
            EventType.PLUGIN_REGISTERED,
            {"plugin": owner, "components": plugin.component_counts()},
            source="plugin_registry"
        )
        return True
    
    async def _start_services(self, plugin: Plugin, report: RegistrationReport) -> None:
        """
        Hand the plugin's services to the supervisor.
        
        Raises:
            ServiceStartFailure: A required service failed (runtime already ready)
        """
        services = self._runtime.services
        for service in plugin.services:
            try:
                instance = await services.start(
                    service.service_type,
                    service.factory,
                    required=service.required,
                    owner=plugin.name
                )
            except AlreadyRunningError as e:
                logger.warning(f"Skipping service from {plugin.name}: {e.message}")
                report.skipped_services.append(e)
                continue
            if instance is None and services.ready:
                report.failed_services.append(service.service_type)
    
    async def _rollback(self, owner: str) -> None:
        """Remove everything ``owner`` has contributed so far."""
        self._plugins.pop(owner, None)
        self._runtime.components.remove_owner(owner)
        self._runtime.event_bus.remove_owner(owner)
        self._runtime.unregister_adapter(owner)
        await self._runtime.services.stop_owner(owner)
    
    def resolve_config(self, plugin: Plugin) -> Dict[str, Any]:
        """Plugin config keys resolved through get_setting, plugin defaults as fallback."""
        return {
            key: self._runtime.get_setting(key, default)
            for key, default in plugin.config.items()
        }
    
    # ==================== Lookup ====================
    
    def get(self, name: str) -> Optional[Plugin]:
        return self._plugins.get(name)
    
    @property
    def plugins(self) -> List[Plugin]:
        return list(self._plugins.values())
    
    @property
    def names(self) -> List[str]:
        return list(self._plugins)
    
    def __contains__(self, name: str) -> bool:
        return name in self._plugins
    
    def __len__(self) -> int:
        return len(self._plugins)


def _describe(error: Exception) -> Dict[str, Any]:
    if hasattr(error, "to_dict"):
        return error.to_dict()
    return {"error_code": type(error).__name__, "message": str(error), "details": {}}
