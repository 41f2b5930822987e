"""
Room-level locks для последовательной обработки сообщений одной комнаты.

Запуски пайплайна для одной комнаты выполняются строго по очереди,
запуски для разных комнат идут параллельно.
"""

import asyncio
import logging
from typing import Dict
from contextlib import asynccontextmanager

logger = logging.getLogger("agent-runtime.infrastructure.room_lock")


class RoomLockManager:
    """
    Менеджер блокировок на уровне комнат.
    
    Для каждой комнаты отдельный asyncio.Lock; ожидающие получают
    блокировку в порядке обращения (FIFO), поэтому второе сообщение
    комнаты встаёт в очередь за первым.
    
    Получение/создание блокировки не содержит точек ожидания, поэтому
    порядок захвата совпадает с порядком вызова ``lock()``.

    Блокировка комнаты считается занятой, пока у неё есть держатель или
    ожидающие: ``asyncio.Lock.locked()`` сбрасывается при release() ещё до
    того, как разбуженный ожидающий её захватит.

    Пример:
        >>> lock_manager = RoomLockManager()
        >>> async with lock_manager.lock("room-1"):
        ...     await persist_and_process(message)
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        # room_id -> держатель + ожидающие
        self._users: Dict[str, int] = {}
        logger.info("RoomLockManager initialized")
    
    def _get_lock(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room_id] = lock
            logger.debug(f"Created new lock for room {room_id}")
        return lock
    
    @asynccontextmanager
    async def lock(self, room_id: str):
        """
        Захватить блокировку комнаты на время контекста.
        
        Args:
            room_id: ID комнаты
        """
        lock = self._get_lock(room_id)
        self._users[room_id] = self._users.get(room_id, 0) + 1
        logger.debug(f"Acquiring lock for room {room_id}")
        try:
            async with lock:
                logger.debug(f"Lock acquired for room {room_id}")
                try:
                    yield
                finally:
                    logger.debug(f"Lock released for room {room_id}")
        finally:
            remaining = self._users[room_id] - 1
            if remaining:
                self._users[room_id] = remaining
            else:
                del self._users[room_id]

    def in_use(self, room_id: str) -> bool:
        """Есть ли у блокировки комнаты держатель или ожидающие."""
        return self._users.get(room_id, 0) > 0

    def cleanup_unused_locks(self, max_locks: int = 1000) -> int:
        """
        Очистить неиспользуемые блокировки.
        
        Удаляет старейшие блокировки без держателя и ожидающих, пока их
        не станет не больше ``max_locks``.

        Returns:
            Количество удаленных блокировок
        """
        if len(self._locks) <= max_locks:
            return 0

        unused = [room_id for room_id in self._locks if not self.in_use(room_id)]
        to_remove = min(len(self._locks) - max_locks, len(unused))
        for room_id in unused[:to_remove]:
            del self._locks[room_id]
        
        if to_remove:
            logger.info(f"Cleaned up {to_remove} unused room locks")
        return to_remove
    
    def get_lock_count(self) -> int:
        return len(self._locks)
    
    def is_locked(self, room_id: str) -> bool:
        lock = self._locks.get(room_id)
        return lock.locked() if lock else False
