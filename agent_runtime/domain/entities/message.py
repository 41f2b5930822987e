"""
Доменная сущность Message (Сообщение).

Входящее сообщение от платформенного коннектора. Неизменяемо после
создания; ``id`` и ``timestamp`` назначаются, если не переданы.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Content(BaseModel):
    """
    Содержимое сообщения.
    
    Атрибуты:
        text: Текст сообщения
        source: Платформа-источник (discord, telegram, ...)
        actions: Имена действий, связанных с сообщением
        attachments: Вложения в формате коннектора
        metadata: Дополнительные данные коннектора
    """
    
    model_config = ConfigDict(frozen=True, extra="allow")
    
    text: str = ""
    source: Optional[str] = None
    actions: Tuple[str, ...] = ()
    attachments: Tuple[Any, ...] = ()
    metadata: Dict[str, Any] = Field(default_factory=dict)
    
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.attachments


class Message(BaseModel):
    """
    Доменная сущность входящего сообщения.
    
    Принимает как snake_case, так и camelCase ключи коннекторов
    (``room_id`` / ``roomId``).
    
    Пример:
        >>> msg = Message(room_id="room-1", entity_id="user-1", content="hello")
        >>> msg.content.text
        'hello'
    """
    
    model_config = ConfigDict(frozen=True, populate_by_name=True)
    
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    room_id: str = Field(..., alias="roomId")
    entity_id: str = Field(..., alias="entityId")
    content: Content
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    
    @field_validator("id", mode="before")
    @classmethod
    def default_id(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return str(uuid.uuid4())
        return v
    
    @field_validator("timestamp", mode="before")
    @classmethod
    def default_timestamp(cls, v):
        if v is None:
            return datetime.now(timezone.utc)
        return v
    
    @field_validator("room_id", "entity_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v
    
    @field_validator("content", mode="before")
    @classmethod
    def coerce_content(cls, v):
        if isinstance(v, str):
            return {"text": v}
        return v
    
    @field_validator("content")
    @classmethod
    def content_not_empty(cls, v: Content) -> Content:
        if v.is_empty():
            raise ValueError("must not be empty")
        return v
