"""
In-memory реализация MemoryStore.

Используется, когда ни один плагин не зарегистрировал адаптер базы данных,
и в тестах.
"""

import logging
import re
from typing import List, Set

from ...domain.ports.memory_store import MemoryQuery, MemoryRecord, MemoryStore

logger = logging.getLogger("agent-runtime.infrastructure.in_memory_store")

_TOKEN = re.compile(r"\w+", re.UNICODE)


def _tokens(text: str) -> Set[str]:
    return {t.lower() for t in _TOKEN.findall(text or "")}


class InMemoryMemoryStore(MemoryStore):
    """
    Хранилище записей в списке.
    
    Ранжирование: доля токенов запроса, найденных в записи; при равенстве
    более новые записи идут первыми. Пустой запрос ранжирует только по времени.
    """
    
    def __init__(self):
        self._records: List[MemoryRecord] = []
        logger.info("InMemoryMemoryStore initialized")
    
    async def create_memory(self, record: MemoryRecord) -> str:
        self._records.append(record)
        logger.debug(f"Stored memory {record.id} in room {record.room_id}")
        return record.id
    
    async def search_memories(self, query: MemoryQuery, k: int) -> List[MemoryRecord]:
        if k <= 0:
            return []
        
        query_tokens = _tokens(query.text)
        scored = []
        for index, record in enumerate(self._records):
            if query.room_id is not None and record.room_id != query.room_id:
                continue
            if query.entity_id is not None and record.entity_id != query.entity_id:
                continue
            if query_tokens:
                overlap = len(query_tokens & _tokens(record.content.text))
                score = overlap / len(query_tokens)
            else:
                score = 0.0
            scored.append((score, index, record))
        
        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [
            record.model_copy(update={"similarity": score})
            for score, _, record in scored[:k]
        ]
    
    def __len__(self) -> int:
        return len(self._records)
    
    @property
    def records(self) -> List[MemoryRecord]:
        return list(self._records)
