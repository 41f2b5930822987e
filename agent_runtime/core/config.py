import logging
import os
from typing import Any, List, Mapping, Optional

from dotenv import load_dotenv

load_dotenv()


def _list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class AppConfig:
    LOG_LEVEL: str = os.getenv("AGENT_RUNTIME__LOG_LEVEL", "INFO")
    VERSION: str = os.getenv("AGENT_RUNTIME__VERSION", "0.1.0")
    AGENT_NAME: str = os.getenv("AGENT_RUNTIME__AGENT_NAME", "agent")

    # Бюджеты времени стадий пайплайна (секунды)
    STAGE_TIMEOUT: float = float(os.getenv("AGENT_RUNTIME__STAGE_TIMEOUT", "30"))
    PERSIST_TIMEOUT: str = os.getenv("AGENT_RUNTIME__PERSIST_TIMEOUT", "")
    COMPOSE_TIMEOUT: str = os.getenv("AGENT_RUNTIME__COMPOSE_TIMEOUT", "")
    SELECT_TIMEOUT: str = os.getenv("AGENT_RUNTIME__SELECT_TIMEOUT", "")
    EXECUTE_TIMEOUT: str = os.getenv("AGENT_RUNTIME__EXECUTE_TIMEOUT", "")
    EVALUATE_TIMEOUT: str = os.getenv("AGENT_RUNTIME__EVALUATE_TIMEOUT", "")

    REQUIRED_PROVIDERS: List[str] = _list(
        os.getenv("AGENT_RUNTIME__REQUIRED_PROVIDERS", "CHARACTER,RECENT_MESSAGES,TIME")
    )
    FALLBACK_ACTION: str = os.getenv("AGENT_RUNTIME__FALLBACK_ACTION", "NONE")
    ACTION_SELECTION_MODEL: str = os.getenv("AGENT_RUNTIME__ACTION_SELECTION_MODEL", "TEXT_SMALL")
    RESPONSE_MODEL: str = os.getenv("AGENT_RUNTIME__RESPONSE_MODEL", "TEXT_LARGE")

    STATE_TEXT_SEPARATOR: str = os.getenv("AGENT_RUNTIME__STATE_TEXT_SEPARATOR", " ")
    STATE_CACHE_SIZE: int = int(os.getenv("AGENT_RUNTIME__STATE_CACHE_SIZE", "256"))
    RECENT_MESSAGES_COUNT: int = int(os.getenv("AGENT_RUNTIME__RECENT_MESSAGES_COUNT", "10"))

    # Повторы вызовов моделей (tenacity)
    MODEL_MAX_ATTEMPTS: int = int(os.getenv("AGENT_RUNTIME__MODEL_MAX_ATTEMPTS", "3"))
    MODEL_RETRY_MIN_WAIT: float = float(os.getenv("AGENT_RUNTIME__MODEL_RETRY_MIN_WAIT", "0.5"))
    MODEL_RETRY_MAX_WAIT: float = float(os.getenv("AGENT_RUNTIME__MODEL_RETRY_MAX_WAIT", "5"))

    AWAIT_LIFECYCLE_EVENTS: bool = os.getenv(
        "AGENT_RUNTIME__AWAIT_LIFECYCLE_EVENTS", "true"
    ).lower() in ("1", "true", "yes", "on")

    @classmethod
    def stage_timeout(cls, stage: str) -> float:
        """
        Бюджет времени для стадии пайплайна.

        Args:
            stage: Имя стадии (persist, compose, select, execute, evaluate)

        Returns:
            Таймаут в секундах; per-stage override или STAGE_TIMEOUT
        """
        override = getattr(cls, f"{stage.upper()}_TIMEOUT", "")
        if isinstance(override, str) and override.strip():
            return float(override)
        return cls.STAGE_TIMEOUT


class RuntimeSettings:
    """
    Resolved key/value settings behind a single ``get_setting`` capability.

    Explicit settings (character settings, secrets) win over the process
    environment; the environment wins over the caller's default. Values are
    returned as given.
    """

    def __init__(self, settings: Optional[Mapping[str, Any]] = None, use_env: bool = True):
        self._settings = dict(settings or {})
        self._use_env = use_env

    def get_setting(self, key: str, default: Any = None) -> Any:
        if key in self._settings and self._settings[key] is not None:
            return self._settings[key]
        if self._use_env:
            value = os.environ.get(key)
            if value is not None:
                return value
        return default

    def get_bool_setting(self, key: str, default: bool = False) -> bool:
        value = self.get_setting(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")

    def set_setting(self, key: str, value: Any) -> None:
        self._settings[key] = value

    def __contains__(self, key: str) -> bool:
        return self.get_setting(key) is not None


logging.basicConfig(level=AppConfig.LOG_LEVEL)
logger = logging.getLogger("agent-runtime")
