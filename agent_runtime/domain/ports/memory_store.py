"""
Port для хранилища памяти.

Определяет интерфейс внешнего хранилища, в которое пайплайн записывает
каждое входящее сообщение и из которого провайдеры читают контекст.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, Field

from ..entities.message import Content, Message


class MemoryRecord(BaseModel):
    """
    Запись памяти.
    
    Атрибуты:
        id: ID записи (по умолчанию совпадает с ID сообщения)
        room_id: Комната
        entity_id: Автор
        content: Содержимое
        created_at: Время создания
        similarity: Оценка релевантности, заполняется при поиске
    """
    
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    room_id: str
    entity_id: str
    content: Content
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)
    similarity: Optional[float] = None
    
    @classmethod
    def from_message(cls, message: Message, **metadata: Any) -> "MemoryRecord":
        return cls(
            id=message.id,
            room_id=message.room_id,
            entity_id=message.entity_id,
            content=message.content,
            created_at=message.timestamp,
            metadata=metadata,
        )


class MemoryQuery(BaseModel):
    """Параметры поиска: фильтры по комнате/автору и текст запроса."""
    
    room_id: Optional[str] = None
    entity_id: Optional[str] = None
    text: str = ""


class MemoryStore(ABC):
    """
    Интерфейс хранилища памяти.
    
    Контракт поиска: результаты ранжированы по релевантности; точный
    порядок по времени не гарантируется сверх ранга.
    """
    
    @abstractmethod
    async def create_memory(self, record: MemoryRecord) -> str:
        """
        Сохранить запись.
        
        Returns:
            ID сохранённой записи
        """
        pass
    
    @abstractmethod
    async def search_memories(self, query: MemoryQuery, k: int) -> List[MemoryRecord]:
        """
        Найти до ``k`` записей, ранжированных по релевантности.
        """
        pass
    
    async def close(self) -> None:
        """Освободить ресурсы хранилища."""
        return None
