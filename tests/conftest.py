"""
Pytest configuration and fixtures.
"""
import asyncio
from typing import Any, Dict, List

import pytest
import pytest_asyncio

from agent_runtime import AgentRuntime, Message


@pytest.fixture
def make_message():
    """Фабрика словарей входящих сообщений в формате коннектора."""
    def _make(text: str = "hello", room_id: str = "room-1", entity_id: str = "user-1", **extra: Any) -> Dict[str, Any]:
        data = {"roomId": room_id, "entityId": entity_id, "content": {"text": text}}
        data.update(extra)
        return data
    return _make


@pytest.fixture
def message() -> Message:
    return Message(room_id="room-1", entity_id="user-1", content="hello world")


@pytest.fixture
def scripted_model():
    """
    Обработчик модели, возвращающий ответы по очереди.
    
    Последний ответ повторяется; параметры вызовов сохраняются в ``calls``.
    """
    def _make(*responses: Any):
        calls: List[Dict[str, Any]] = []
        
        async def handler(runtime, params):
            calls.append(params)
            index = min(len(calls), len(responses)) - 1
            return responses[index] if responses else None
        
        handler.calls = calls
        return handler
    return _make


@pytest_asyncio.fixture
async def make_runtime():
    """Создаёт runtime без инициализации; все созданные runtime останавливаются после теста."""
    created: List[AgentRuntime] = []
    
    def _make(**kwargs) -> AgentRuntime:
        kwargs.setdefault("use_env", False)
        runtime = AgentRuntime(**kwargs)
        created.append(runtime)
        return runtime
    
    yield _make
    
    for runtime in created:
        await runtime.shutdown()
    # Даём брошенным стадиям завершиться до закрытия цикла
    await asyncio.sleep(0)


@pytest_asyncio.fixture
async def runtime_factory(make_runtime):
    """Создаёт и инициализирует runtime."""
    async def _factory(plugins=(), **kwargs) -> AgentRuntime:
        runtime = make_runtime(**kwargs)
        await runtime.initialize(plugins)
        return runtime
    return _factory
