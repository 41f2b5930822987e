"""
Бюджеты времени стадий и защита от устаревших завершений.

Таймаут носит рекомендательный характер: стадия, превысившая бюджет,
брошена с точки зрения пайплайна, но сама корутина не отменяется и может
завершиться позже. Её побочные эффекты отбрасываются проверкой StageToken.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional

from ...core.errors import StageTimeoutError

logger = logging.getLogger("agent-runtime.infrastructure.stage_guard")


class RunEpoch:
    """
    Счётчик поколений одного запуска пайплайна.
    
    Каждая стадия получает токен текущего поколения; таймаут стадии или
    завершение запуска сдвигают поколение, и все ранее выданные токены
    становятся устаревшими.
    """
    
    def __init__(self):
        self.epoch = 0
        self.closed = False
    
    def begin(self, stage: str) -> "StageToken":
        self.epoch += 1
        return StageToken(self, self.epoch, stage)
    
    def invalidate(self) -> None:
        self.epoch += 1
    
    def close(self) -> None:
        self.closed = True
        self.epoch += 1


class StageToken:
    """Токен поколения, захваченный в начале стадии."""
    
    def __init__(self, owner: RunEpoch, epoch: int, stage: str):
        self._owner = owner
        self.epoch = epoch
        self.stage = stage
    
    @property
    def is_current(self) -> bool:
        return not self._owner.closed and self._owner.epoch == self.epoch
    
    def __repr__(self) -> str:
        return f"StageToken(stage={self.stage!r}, epoch={self.epoch}, current={self.is_current})"


def _abandoned_callback(stage: str):
    def _done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug(f"Abandoned {stage} stage finished late with error: {exc}")
        else:
            logger.debug(f"Abandoned {stage} stage finished late; result discarded")
    return _done


async def run_with_budget(
    awaitable: Awaitable[Any],
    budget: Optional[float],
    stage: str
) -> Any:
    """
    Дождаться ``awaitable`` не дольше ``budget`` секунд.
    
    Args:
        awaitable: Корутина стадии
        budget: Бюджет в секундах; None или <= 0: без ограничения
        stage: Имя стадии для ошибок и логов
        
    Returns:
        Результат корутины
        
    Raises:
        StageTimeoutError: Бюджет исчерпан; корутина продолжает работу в фоне
    """
    task = asyncio.ensure_future(awaitable)
    if budget is None or budget <= 0:
        return await task
    
    done, _ = await asyncio.wait({task}, timeout=budget)
    if task in done:
        return task.result()
    
    logger.warning(f"Stage {stage} exceeded budget of {budget:.3f}s, abandoning")
    task.add_done_callback(_abandoned_callback(stage))
    raise StageTimeoutError(stage, budget)
