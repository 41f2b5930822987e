"""
Bootstrap plugin: базовые провайдеры и действия агента.

Провайдеры:
    CHARACTER       : имя и описание агента
    RECENT_MESSAGES : последние сообщения комнаты из памяти (dynamic)
    TIME            : текущее время UTC (dynamic)
    ACTIONS         : список доступных действий (private)

Действия:
    NONE  : ничего не делать; fallback по умолчанию
    REPLY : ответ через модель ответа с потоковой выдачей
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..core.config import AppConfig
from ..domain.entities import Action, ActionResult, Message, Plugin, Provider, ProviderResult, State
from ..domain.ports import MemoryQuery

logger = logging.getLogger("agent-runtime.plugins.bootstrap")

BOOTSTRAP_PLUGIN_NAME = "bootstrap"


# ==================== Providers ====================

async def character_provider(runtime, message: Message, state: State) -> ProviderResult:
    name = runtime.agent_name
    bio = runtime.get_setting("CHARACTER_BIO", "")
    text = f"# About {name}\n{bio}".strip() if bio else f"# About {name}"
    return ProviderResult(
        text=text,
        values={"agentName": name},
        data={"name": name, "id": runtime.agent_id, "bio": bio},
    )


async def recent_messages_provider(runtime, message: Message, state: State) -> ProviderResult:
    count = int(runtime.get_setting("RECENT_MESSAGES_COUNT", AppConfig.RECENT_MESSAGES_COUNT))
    records = await runtime.search_memories(MemoryQuery(room_id=message.room_id), count + 1)
    records = [r for r in records if r.id != message.id][:count]
    # Хронологический порядок: старые сверху
    records.sort(key=lambda r: r.created_at)
    
    lines = [f"{r.entity_id}: {r.content.text}" for r in records if r.content.text]
    text = "# Recent messages\n" + "\n".join(lines) if lines else ""
    return ProviderResult(
        text=text,
        values={"recentMessages": "\n".join(lines)},
        data={"messages": [r.model_dump(mode="json") for r in records]},
    )


def time_provider(runtime, message: Message, state: State) -> ProviderResult:
    now = datetime.now(timezone.utc)
    return ProviderResult(
        text=f"The current date and time is {now.strftime('%Y-%m-%d %H:%M:%S')} UTC.",
        values={"time": now.isoformat()},
        data={"timestamp": now.timestamp()},
    )


async def actions_provider(runtime, message: Message, state: State) -> ProviderResult:
    available: List[Dict[str, Any]] = []
    for action in runtime.components.actions:
        if await runtime.pipeline.selector.is_valid(action, message, state):
            available.append({"name": action.name, "description": action.description})
    lines = [f"- {a['name']}: {a['description']}" for a in available]
    return ProviderResult(
        text="# Available actions\n" + "\n".join(lines) if lines else "",
        values={"actionNames": ", ".join(a["name"] for a in available)},
        data={"actions": available},
    )


# ==================== Actions ====================

async def none_handler(runtime, message: Message, state: State, options, emit) -> ActionResult:
    return ActionResult(success=True, data={"acknowledged": True})


def reply_validate(runtime, message: Message, state: State) -> bool:
    model_type = runtime.get_setting("RESPONSE_MODEL", AppConfig.RESPONSE_MODEL)
    return runtime.components.resolve_model(model_type) is not None


async def reply_handler(runtime, message: Message, state: State, options, emit) -> ActionResult:
    model_type = runtime.get_setting("RESPONSE_MODEL", AppConfig.RESPONSE_MODEL)
    prompt = "\n\n".join(part for part in (
        state.text if state else "",
        f"{message.entity_id}: {message.content.text}",
        f"Write the next reply as {runtime.agent_name}.",
    ) if part)
    
    response = await runtime.use_model(model_type, {"prompt": prompt, "message": message, "state": state})
    if isinstance(response, dict):
        text = str(response.get("text", ""))
    else:
        text = str(response)

    await emit({"text": text})
    logger.debug(f"REPLY produced {len(text)} chars for {message.id}")
    return ActionResult(success=True, text=text)


def create_bootstrap_plugin() -> Plugin:
    return Plugin(
        name=BOOTSTRAP_PLUGIN_NAME,
        description="Core providers and actions",
        # Низкий приоритет: одноимённые компоненты других плагинов регистрируются раньше
        priority=-100,
        providers=(
            Provider(name="CHARACTER", handler=character_provider, description="Agent identity", position=-50),
            Provider(
                name="RECENT_MESSAGES",
                handler=recent_messages_provider,
                description="Recent messages in the room",
                position=10,
                dynamic=True,
            ),
            Provider(name="TIME", handler=time_provider, description="Current time", position=20, dynamic=True),
            Provider(
                name="ACTIONS",
                handler=actions_provider,
                description="Actions valid for this message",
                position=50,
                private=True,
                dynamic=True,
            ),
        ),
        actions=(
            Action(
                name=AppConfig.FALLBACK_ACTION,
                handler=none_handler,
                description="Take no action",
                similes=("IGNORE", "NO_ACTION"),
            ),
            Action(
                name="REPLY",
                handler=reply_handler,
                validate=reply_validate,
                description="Reply to the message",
                similes=("RESPOND", "RESPONSE"),
            ),
        ),
    )
