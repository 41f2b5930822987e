"""
Service Supervisor: жизненный цикл долгоживущих сервисов.

Сервисы, запрошенные до готовности runtime, ставятся в очередь и
запускаются по одному в порядке FIFO, как только runtime готов.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from ..core.errors import AlreadyRunningError, ServiceStartFailure
from ..domain.shared import maybe_await
from ..events.event_types import EventType

logger = logging.getLogger("agent-runtime.service_supervisor")

ServiceFactory = Callable[[Any], Any]


class ServiceStatus(str, Enum):
    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class ServiceRecord:
    service_type: str
    status: ServiceStatus = ServiceStatus.CREATED
    instance: Any = None
    owner: Optional[str] = None
    required: bool = False
    started_at: Optional[datetime] = None


@dataclass
class _QueuedStart:
    service_type: str
    factory: ServiceFactory
    required: bool = False
    owner: Optional[str] = None
    queued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ServiceSupervisor:
    """
    Запуск, остановка и поиск сервисов по типу.
    
    Инварианты:
        - не более одного запущенного экземпляра на тип
        - запуск до готовности runtime откладывается (FIFO)
        - ошибка фабрики фатальна только для required-сервиса
        - stop() всегда удаляет запись, даже если остановка упала
    """
    
    def __init__(self, runtime):
        self._runtime = runtime
        self._records: Dict[str, ServiceRecord] = {}
        self._queue: Deque[_QueuedStart] = deque()
        self._waiters: Dict[str, asyncio.Event] = {}
        self._ready = False
    
    @property
    def ready(self) -> bool:
        return self._ready
    
    @property
    def queued(self) -> List[str]:
        return [item.service_type for item in self._queue]
    
    @property
    def running(self) -> List[str]:
        return [
            service_type for service_type, record in self._records.items()
            if record.status == ServiceStatus.RUNNING
        ]
    
    async def start(
        self,
        service_type: str,
        factory: ServiceFactory,
        required: bool = False,
        owner: Optional[str] = None
    ) -> Optional[Any]:
        """
        Запустить сервис или поставить его в очередь.
        
        Returns:
            Экземпляр сервиса; None, если запуск отложен или не удался
            
        Raises:
            AlreadyRunningError: Сервис этого типа уже запущен
            ServiceStartFailure: Фабрика required-сервиса упала
        """
        item = _QueuedStart(service_type, factory, required, owner)
        if not self._ready:
            self._queue.append(item)
            logger.debug(f"Service {service_type} queued until runtime is ready")
            return None
        return await self._start_now(item)
    
    async def mark_ready(self) -> None:
        """Drain queued starts sequentially in submission order."""
        if self._ready:
            return
        self._ready = True
        while self._queue:
            item = self._queue.popleft()
            try:
                await self._start_now(item)
            except AlreadyRunningError as e:
                logger.warning(e.message)
    
    async def _start_now(self, item: _QueuedStart) -> Optional[Any]:
        service_type = item.service_type
        existing = self._records.get(service_type)
        if existing is not None and existing.status in (ServiceStatus.STARTING, ServiceStatus.RUNNING):
            raise AlreadyRunningError(service_type)
        
        record = ServiceRecord(service_type, owner=item.owner, required=item.required)
        self._records[service_type] = record
        record.status = ServiceStatus.STARTING
        
        try:
            instance = await maybe_await(item.factory(self._runtime))
        except Exception as e:
            self._records.pop(service_type, None)
            failure = ServiceStartFailure(service_type, str(e), required=item.required)
            logger.error(failure.message, exc_info=True)
            self._runtime.event_bus.emit(
                EventType.SERVICE_FAILED,
                {"service_type": service_type, "required": item.required, "error": str(e)},
                source="service_supervisor"
            )
            if item.required:
                raise failure from e
            return None
        
        record.instance = instance
        record.status = ServiceStatus.RUNNING
        record.started_at = datetime.now(timezone.utc)
        self._waiter(service_type).set()
        
        logger.info(f"Service {service_type} started")
        self._runtime.event_bus.emit(
            EventType.SERVICE_STARTED,
            {"service_type": service_type, "owner": item.owner},
            source="service_supervisor"
        )
        return instance
    
    async def stop(self, service_type: str) -> bool:
        """
        Best-effort остановка: ошибка ``stop()`` логируется, запись удаляется.
        
        Returns:
            False, если сервис этого типа не найден
        """
        record = self._records.get(service_type)
        if record is None:
            return False
        
        record.status = ServiceStatus.STOPPING
        try:
            stop = getattr(record.instance, "stop", None)
            if callable(stop):
                await maybe_await(stop())
        except Exception as e:
            logger.error(f"Service {service_type} failed to stop cleanly: {e}", exc_info=True)
        finally:
            record.status = ServiceStatus.STOPPED
            self._records.pop(service_type, None)
            waiter = self._waiters.get(service_type)
            if waiter is not None:
                waiter.clear()
        
        logger.info(f"Service {service_type} stopped")
        self._runtime.event_bus.emit(
            EventType.SERVICE_STOPPED,
            {"service_type": service_type},
            source="service_supervisor"
        )
        return True
    
    async def stop_owner(self, owner: str) -> int:
        """Stop the services of one plugin (newest first) and drop its queued starts."""
        self._queue = deque(item for item in self._queue if item.owner != owner)
        owned = [t for t, record in self._records.items() if record.owner == owner]
        for service_type in reversed(owned):
            await self.stop(service_type)
        return len(owned)

    async def stop_all(self) -> None:
        """Stop every service, most recently started first; drop queued starts."""
        self._queue.clear()
        for service_type in reversed(list(self._records)):
            await self.stop(service_type)
    
    def get(self, service_type: str) -> Optional[Any]:
        record = self._records.get(service_type)
        if record is None or record.status != ServiceStatus.RUNNING:
            return None
        return record.instance
    
    def status(self, service_type: str) -> Optional[ServiceStatus]:
        record = self._records.get(service_type)
        return record.status if record else None
    
    async def wait_for(self, service_type: str, timeout: Optional[float] = None) -> Optional[Any]:
        """
        Дождаться запуска сервиса.
        
        Returns:
            Экземпляр сервиса; None, если он не запустился за ``timeout`` секунд
        """
        instance = self.get(service_type)
        if instance is not None:
            return instance
        try:
            await asyncio.wait_for(self._waiter(service_type).wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out waiting for service {service_type}")
            return None
        return self.get(service_type)
    
    def _waiter(self, service_type: str) -> asyncio.Event:
        waiter = self._waiters.get(service_type)
        if waiter is None:
            waiter = asyncio.Event()
            self._waiters[service_type] = waiter
        return waiter
