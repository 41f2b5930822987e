"""
AgentRuntime: корневой объект, связывающий реестры, шину событий,
супервизор сервисов и пайплайн сообщений.

Жизненный цикл:
    CREATED → INITIALIZING → READY → SHUTTING_DOWN → STOPPED
"""

import logging
import uuid
from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from ..domain.entities import Message, Plugin, PipelineRun, Route, State, StreamChunk
from ..domain.ports import MemoryQuery, MemoryRecord, MemoryStore, ModelTypeName, model_type_name
from ..domain.services.component_registry import ComponentRegistry
from ..domain.services.message_pipeline import MessagePipeline
from ..domain.services.plugin_registry import PluginRegistry, RegistrationReport
from ..domain.services.state_composer import StateComposer
from ..events import EventBus, EventType
from ..events.subscribers import AuditLogger, RunMetricsCollector
from ..infrastructure.concurrency import RoomLockManager
from ..infrastructure.memory import InMemoryMemoryStore
from ..infrastructure.resilience import call_with_retry
from ..plugins import create_bootstrap_plugin
from ..services import ServiceSupervisor
from .config import AppConfig, RuntimeSettings
from .errors import (
    DuplicateComponentError,
    MemoryStoreError,
    ModelNotFoundError,
    RuntimeNotReadyError,
    ServiceStartFailure,
    ValidationError,
)

logger = logging.getLogger("agent-runtime.runtime")

PluginLike = Union[Plugin, Mapping[str, Any]]


class RuntimeStatus(str, Enum):
    CREATED = "created"
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class AgentRuntime:
    """
    Runtime одного агента.

    Владеет всеми реестрами; плагины получают ссылку на runtime в
    ``init`` и в обработчиках компонентов.

    Пример:
        >>> runtime = AgentRuntime(settings={"CHARACTER_BIO": "Helpful"})
        >>> await runtime.initialize([my_plugin])
        >>> run = await runtime.handle_message({"roomId": "r1", "entityId": "u1", "content": "hi"})
        >>> await runtime.shutdown()
    """

    def __init__(
        self,
        settings: Optional[Mapping[str, Any]] = None,
        agent_name: Optional[str] = None,
        include_bootstrap: bool = True,
        memory_store: Optional[MemoryStore] = None,
        required_providers: Optional[List[str]] = None,
        timeouts: Optional[Mapping[str, float]] = None,
        await_lifecycle_events: Optional[bool] = None,
        use_env: bool = True
    ):
        self.settings = RuntimeSettings(settings, use_env=use_env)
        self.agent_id = str(uuid.uuid4())
        self.agent_name = agent_name or self.settings.get_setting("AGENT_NAME", AppConfig.AGENT_NAME)
        self.status = RuntimeStatus.CREATED

        self.event_bus = EventBus()
        self.components = ComponentRegistry()
        self.plugins = PluginRegistry(self)
        self.services = ServiceSupervisor(self)
        self.composer = StateComposer(self)
        self.room_locks = RoomLockManager()
        self.pipeline = MessagePipeline(
            self,
            lock_manager=self.room_locks,
            required_providers=required_providers,
            fallback_action=self.settings.get_setting("FALLBACK_ACTION"),
            selection_model=self.settings.get_setting("ACTION_SELECTION_MODEL"),
            timeouts=timeouts,
            await_lifecycle_events=await_lifecycle_events,
        )
        self.audit_logger = AuditLogger(self.event_bus)
        self.metrics = RunMetricsCollector(self.event_bus)

        self._include_bootstrap = include_bootstrap
        self._memory_store: Optional[MemoryStore] = memory_store
        self._adapter_owner: Optional[str] = "runtime" if memory_store is not None else None

        logger.info(f"AgentRuntime {self.agent_name} ({self.agent_id}) created")

    # ==================== Lifecycle ====================

    @property
    def is_ready(self) -> bool:
        return self.status == RuntimeStatus.READY

    async def initialize(self, plugins: Iterable[PluginLike] = ()) -> RegistrationReport:
        """
        Зарегистрировать плагины, запечатать реестр и запустить
        отложенные сервисы.

        Returns:
            Отчёт о регистрации плагинов

        Raises:
            RuntimeNotReadyError: initialize() уже вызывался
            ServiceStartFailure: Не запустился required-сервис
        """
        if self.status != RuntimeStatus.CREATED:
            raise RuntimeNotReadyError("initialize", self.status.value)
        self.status = RuntimeStatus.INITIALIZING

        if self._include_bootstrap:
            self.plugins.register(create_bootstrap_plugin())
        self.plugins.register_all(plugins)
        report = await self.plugins.finalize()

        if self._memory_store is None:
            logger.warning("No database adapter registered, using in-memory store")
            self._memory_store = InMemoryMemoryStore()
            self._adapter_owner = "runtime"

        self.components.seal()
        self.event_bus.seal()
        self.status = RuntimeStatus.READY

        try:
            await self.services.mark_ready()
        except ServiceStartFailure as e:
            logger.error(f"Required service failed, shutting down: {e.message}")
            await self.shutdown()
            raise

        logger.info(
            f"AgentRuntime {self.agent_name} ready: plugins={self.plugins.names}, "
            f"components={self.components.counts()}"
        )
        self.event_bus.emit(
            EventType.RUNTIME_READY,
            {"agent_id": self.agent_id, "plugins": self.plugins.names},
            source="runtime"
        )
        return report

    async def shutdown(self) -> None:
        """Остановить сервисы (в обратном порядке) и закрыть хранилище. Идемпотентно."""
        if self.status in (RuntimeStatus.SHUTTING_DOWN, RuntimeStatus.STOPPED):
            return
        self.status = RuntimeStatus.SHUTTING_DOWN
        logger.info(f"AgentRuntime {self.agent_name} shutting down")

        await self.services.stop_all()
        if self._memory_store is not None:
            try:
                await self._memory_store.close()
            except Exception as e:
                logger.error(f"Failed to close memory store: {e}", exc_info=True)

        self.event_bus.emit(EventType.RUNTIME_SHUTDOWN, {"agent_id": self.agent_id}, source="runtime")
        await self.event_bus.drain()
        self.room_locks.cleanup_unused_locks(max_locks=0)
        self.status = RuntimeStatus.STOPPED
        logger.info(f"AgentRuntime {self.agent_name} stopped")

    def _require_ready(self, operation: str) -> None:
        if self.status != RuntimeStatus.READY:
            raise RuntimeNotReadyError(operation, self.status.value)

    # ==================== Plugins ====================

    async def register_plugin(self, plugin: PluginLike) -> Optional[RegistrationReport]:
        """
        До initialize() плагин ставится в очередь; после регистрируется
        сразу (повторный вход в реестр).

        Returns:
            None для отложенной регистрации, иначе отчёт
        """
        if self.status == RuntimeStatus.CREATED:
            self.plugins.register(plugin)
            return None
        self._require_ready("register_plugin")
        return await self.plugins.register_late(plugin)

    def register_adapter(self, adapter: Any, owner: str) -> None:
        if self._memory_store is not None:
            raise DuplicateComponentError("adapter", type(adapter).__name__, owner=self._adapter_owner)
        if not all(callable(getattr(adapter, name, None)) for name in ("create_memory", "search_memories")):
            raise ValidationError("adapter", "must implement create_memory and search_memories", plugin_name=owner)
        self._memory_store = adapter
        self._adapter_owner = owner
        logger.info(f"Database adapter {type(adapter).__name__} registered by {owner}")

    def unregister_adapter(self, owner: str) -> None:
        if self._adapter_owner == owner:
            self._memory_store = None
            self._adapter_owner = None

    @property
    def memory_store(self) -> Optional[MemoryStore]:
        return self._memory_store

    @property
    def routes(self) -> List[Route]:
        return self.components.routes

    # ==================== Settings ====================

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self.settings.get_setting(key, default)

    # ==================== Messages ====================

    async def handle_message(
        self,
        message: Union[Message, Mapping[str, Any]],
        on_output: Optional[Callable[[StreamChunk], Any]] = None,
        options: Optional[Mapping[str, Any]] = None
    ) -> PipelineRun:
        """
        Обработать входящее сообщение коннектора.

        Raises:
            RuntimeNotReadyError: Runtime не в состоянии READY
        """
        self._require_ready("handle_message")
        return await self.pipeline.process(message, on_output=on_output, options=options)

    async def compose_state(
        self,
        message: Union[Message, Mapping[str, Any]],
        include: Optional[List[str]] = None,
        only_include: bool = False
    ) -> State:
        msg = self.pipeline.receive(message)
        return await self.composer.compose_state(msg, include=include, only_include=only_include)

    # ==================== Models ====================

    async def use_model(self, model_type: ModelTypeName, params: Optional[Mapping[str, Any]] = None, **kwargs) -> Any:
        """
        Вызвать обработчик модели с наивысшим приоритетом.

        Args:
            model_type: Тип модели (TEXT_SMALL, TEXT_LARGE, ...)
            params: Параметры вызова; kwargs дополняют их

        Raises:
            ModelNotFoundError: Обработчик не зарегистрирован
            RetryableModelError: Все попытки исчерпаны
        """
        entry = self.components.resolve_model(model_type)
        if entry is None:
            raise ModelNotFoundError(model_type_name(model_type))

        call_params = dict(params or {})
        call_params.update(kwargs)
        logger.debug(f"Invoking {entry.model_type} handler from {entry.owner}")
        return await call_with_retry(
            entry.handler,
            self,
            call_params,
            max_attempts=AppConfig.MODEL_MAX_ATTEMPTS,
            min_wait=AppConfig.MODEL_RETRY_MIN_WAIT,
            max_wait=AppConfig.MODEL_RETRY_MAX_WAIT
        )

    # ==================== Memory ====================

    def _store(self, operation: str) -> MemoryStore:
        if self._memory_store is None:
            raise MemoryStoreError(operation, "no database adapter registered")
        return self._memory_store

    async def create_memory(self, record: MemoryRecord) -> str:
        return await self._store("create_memory").create_memory(record)

    async def search_memories(self, query: MemoryQuery, k: int = 10) -> List[MemoryRecord]:
        return await self._store("search_memories").search_memories(query, k)

    # ==================== Services ====================

    def get_service(self, service_type: str) -> Optional[Any]:
        return self.services.get(service_type)

    async def wait_for_service(self, service_type: str, timeout: Optional[float] = None) -> Any:
        return await self.services.wait_for(service_type, timeout)
