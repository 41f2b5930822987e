"""
Message Pipeline: обработка входящего сообщения.

Стадии выполняются строго последовательно:
    Received → MemoryPersisted → StateComposed → ActionSelected →
    ActionExecuted → Evaluated → Completed

Failed: поглощающее состояние, достижимое из любой стадии. Сообщения
одной комнаты обрабатываются по одному (FIFO), разные комнаты
параллельно.
"""

import logging
from datetime import datetime, timezone
import time
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ...core.config import AppConfig
from ...core.errors import InvalidMessageError, StageTimeoutError
from ...events.event_types import EventType
from ...infrastructure.concurrency import RoomLockManager
from ...infrastructure.resilience import RunEpoch, run_with_budget
from ..entities.action_result import ActionResult
from ..entities.components import Action
from ..entities.message import Message
from ..entities.run import (
    EvaluationOutcome,
    PipelinePhase,
    PipelineRun,
    StageStatus,
)
from ..entities.state import State
from ..entities.stream import StreamChunk
from ..ports.memory_store import MemoryRecord
from ..shared import maybe_await
from .action_selector import ActionSelector, SelectionOutcome
from .output_channel import OutputChannel

logger = logging.getLogger("agent-runtime.message_pipeline")

OutputSink = Callable[[StreamChunk], Any]

_STAGE_KEYS = {
    PipelinePhase.MEMORY_PERSISTED: "persist",
    PipelinePhase.STATE_COMPOSED: "compose",
    PipelinePhase.ACTION_SELECTED: "select",
    PipelinePhase.ACTION_EXECUTED: "execute",
    PipelinePhase.EVALUATED: "evaluate",
}


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


def _coerce_action_result(raw: Any) -> ActionResult:
    if isinstance(raw, ActionResult):
        return raw
    if raw is None:
        return ActionResult(success=False, error="Action returned no result")
    if isinstance(raw, bool):
        return ActionResult(success=raw)
    return ActionResult.model_validate(raw)


class MessagePipeline:
    """
    Оркестратор обработки сообщения.

    Каждая стадия ограничена рекомендательным бюджетом времени: по
    истечении бюджета стадия помечается как TIMEOUT, пайплайн идёт дальше
    с частичным результатом, а поздние результаты брошенной стадии
    отбрасываются через StageToken.

    Пример:
        >>> pipeline = MessagePipeline(runtime)
        >>> run = await pipeline.process({"roomId": "r1", "entityId": "u1", "content": "hi"})
        >>> run.status
        <RunStatus.SUCCESS: 'success'>
    """

    def __init__(
        self,
        runtime,
        lock_manager: Optional[RoomLockManager] = None,
        required_providers: Optional[Sequence[str]] = None,
        fallback_action: Optional[str] = None,
        selection_model: Optional[str] = None,
        timeouts: Optional[Mapping[str, float]] = None,
        await_lifecycle_events: Optional[bool] = None
    ):
        self._runtime = runtime
        self._locks = lock_manager or RoomLockManager()
        self.required_providers = list(
            AppConfig.REQUIRED_PROVIDERS if required_providers is None else required_providers
        )
        self.selector = ActionSelector(runtime, model_type=selection_model, fallback=fallback_action)
        self._timeouts: Dict[str, float] = dict(timeouts or {})
        self._await_lifecycle = (
            AppConfig.AWAIT_LIFECYCLE_EVENTS if await_lifecycle_events is None else await_lifecycle_events
        )

    @property
    def lock_manager(self) -> RoomLockManager:
        return self._locks

    def budget(self, phase: PipelinePhase) -> float:
        key = _STAGE_KEYS[phase]
        if key in self._timeouts:
            return self._timeouts[key]
        return AppConfig.stage_timeout(key)

    # ==================== Entry point ====================

    async def process(
        self,
        message: Union[Message, Mapping[str, Any]],
        on_output: Optional[OutputSink] = None,
        options: Optional[Mapping[str, Any]] = None
    ) -> PipelineRun:
        """
        Провести сообщение через все стадии.

        Args:
            message: Message или словарь коннектора
            on_output: Колбэк для потоковых чанков действия
            options: Опции, передаваемые обработчику действия

        Returns:
            Отчёт о запуске; ошибки стадий в нём, а не в исключениях
        """
        run = PipelineRun()

        try:
            msg = self.receive(message)
        except InvalidMessageError as e:
            logger.warning(f"Rejected inbound message: {e.message}")
            run.record(PipelinePhase.RECEIVED, StageStatus.FAILED, reason=e.message)
            run.fail(PipelinePhase.RECEIVED, e.message)
            self._finish(run, time.monotonic())
            return run

        run.message = msg
        run.record(PipelinePhase.RECEIVED, StageStatus.OK)

        async with self._locks.lock(msg.room_id):
            started = time.monotonic()
            epoch = RunEpoch()
            await self._lifecycle(EventType.RUN_STARTED, run, {
                "message_id": msg.id,
                "room_id": msg.room_id,
            })
            self._emit(EventType.MESSAGE_RECEIVED, run, {"message": msg})

            try:
                if await self._persist(run, epoch):
                    await self._compose(run, epoch)
                    action = await self._select(run, epoch)
                    await self._execute(run, epoch, action, on_output, dict(options or {}))
                    await self._evaluate(run, epoch)
                    run.advance(PipelinePhase.COMPLETED)
            except Exception as e:
                logger.error(f"Run {run.run_id} failed at {run.phase.value}: {e}", exc_info=True)
                run.fail(run.phase, f"{type(e).__name__}: {e}")
            finally:
                epoch.close()
                self._finish(run, started)

            logger.info(
                f"Run {run.run_id} for room {msg.room_id} finished: "
                f"{run.status.value} in {run.duration_ms:.1f}ms"
            )
            await self._lifecycle(EventType.RUN_COMPLETED, run, run.summary())

        self._locks.cleanup_unused_locks()
        return run

    def receive(self, message: Union[Message, Mapping[str, Any]]) -> Message:
        if isinstance(message, Message):
            return message
        if not isinstance(message, Mapping):
            raise InvalidMessageError(f"expected a message mapping, got {type(message).__name__}")
        try:
            return Message.model_validate(message)
        except PydanticValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise InvalidMessageError(f"invalid fields: {fields}") from e

    # ==================== Stages ====================

    async def _persist(self, run: PipelineRun, epoch: RunEpoch) -> bool:
        phase = PipelinePhase.MEMORY_PERSISTED
        record = MemoryRecord.from_message(run.message)
        epoch.begin(phase.value)
        started = time.monotonic()

        try:
            memory_id = await run_with_budget(
                self._runtime.create_memory(record), self.budget(phase), phase.value
            )
        except StageTimeoutError as e:
            epoch.invalidate()
            self._timed_out(run, phase, started, e)
            run.advance(phase)
            return True
        except Exception as e:
            logger.error(f"Failed to persist message {run.message.id}: {e}", exc_info=True)
            run.record(phase, StageStatus.FAILED, _elapsed_ms(started), reason=str(e))
            run.fail(phase, f"Memory write failed: {e}")
            return False

        run.memory_id = memory_id
        run.record(phase, StageStatus.OK, _elapsed_ms(started))
        run.advance(phase)
        self._emit(EventType.MEMORY_CREATED, run, {"memory_id": memory_id, "room_id": record.room_id})
        return True

    async def _compose(self, run: PipelineRun, epoch: RunEpoch) -> None:
        phase = PipelinePhase.STATE_COMPOSED
        token = epoch.begin(phase.value)
        started = time.monotonic()
        composition = self._runtime.composer.begin(
            run.message, include=self.required_providers, token=token
        )

        try:
            state = await run_with_budget(composition.run(), self.budget(phase), phase.value)
        except StageTimeoutError as e:
            epoch.invalidate()
            state = composition.snapshot()
            self._timed_out(run, phase, started, e)
        else:
            if state.failed_providers:
                run.record(
                    phase,
                    StageStatus.DEGRADED,
                    _elapsed_ms(started),
                    reason=f"providers failed: {', '.join(state.failed_providers)}"
                )
            else:
                run.record(phase, StageStatus.OK, _elapsed_ms(started))

        run.state = state
        run.advance(phase)
        self._emit(EventType.STATE_COMPOSED, run, {
            "providers": list(state.providers),
            "failed_providers": list(state.failed_providers),
        })

    async def _select(self, run: PipelineRun, epoch: RunEpoch) -> Optional[Action]:
        phase = PipelinePhase.ACTION_SELECTED
        token = epoch.begin(phase.value)
        started = time.monotonic()

        try:
            outcome: SelectionOutcome = await run_with_budget(
                self.selector.select(run.message, run.state, token=token),
                self.budget(phase),
                phase.value
            )
        except StageTimeoutError as e:
            epoch.invalidate()
            self._timed_out(run, phase, started, e)
            outcome = self.selector.fallback_outcome(0, [], e.message)
        else:
            status = StageStatus.DEGRADED if outcome.degraded else StageStatus.OK
            run.record(phase, status, _elapsed_ms(started), reason=outcome.reason)

        run.action_name = outcome.name
        run.used_fallback = outcome.used_fallback
        run.rejected_actions = list(outcome.rejected)
        run.advance(phase)
        return outcome.action

    async def _execute(
        self,
        run: PipelineRun,
        epoch: RunEpoch,
        action: Optional[Action],
        on_output: Optional[OutputSink],
        options: Dict[str, Any]
    ) -> None:
        phase = PipelinePhase.ACTION_EXECUTED
        token = epoch.begin(phase.value)
        started = time.monotonic()
        channel = OutputChannel(run_id=run.run_id, action=run.action_name, token=token, sink=on_output)

        self._emit(EventType.ACTION_STARTED, run, {"action": run.action_name})
        try:
            result = await run_with_budget(
                self._invoke_action(action, run.message, run.state, options, channel),
                self.budget(phase),
                phase.value
            )
        except StageTimeoutError as e:
            epoch.invalidate()
            self._timed_out(run, phase, started, e)
            result = ActionResult.failure(e.message, timeout=True)
        else:
            if result.success:
                run.record(phase, StageStatus.OK, _elapsed_ms(started))
            else:
                run.record(phase, StageStatus.DEGRADED, _elapsed_ms(started), reason=result.error)

        await channel.close(result)
        run.action_result = result
        run.outputs = channel.chunks
        run.advance(phase)
        self._emit(EventType.ACTION_COMPLETED, run, {
            "action": run.action_name,
            "success": result.success,
            "error": result.error,
        })

    async def _invoke_action(
        self,
        action: Optional[Action],
        message: Message,
        state: State,
        options: Dict[str, Any],
        channel: OutputChannel
    ) -> ActionResult:
        if action is None:
            # Нет ни выбранного действия, ни fallback: простое подтверждение
            return ActionResult(success=True, data={"acknowledged": True})
        try:
            raw = await maybe_await(action.handler(self._runtime, message, state, options, channel.emit))
            return _coerce_action_result(raw)
        except Exception as e:
            logger.error(f"Action {action.name} failed: {e}", exc_info=True)
            return ActionResult.failure(f"{type(e).__name__}: {e}")

    async def _evaluate(self, run: PipelineRun, epoch: RunEpoch) -> None:
        phase = PipelinePhase.EVALUATED
        token = epoch.begin(phase.value)
        started = time.monotonic()

        try:
            await run_with_budget(self._run_evaluators(run, token), self.budget(phase), phase.value)
        except StageTimeoutError as e:
            epoch.invalidate()
            self._timed_out(run, phase, started, e)
        else:
            failed = [o.evaluator for o in run.evaluations if not o.success]
            if failed:
                run.record(
                    phase,
                    StageStatus.DEGRADED,
                    _elapsed_ms(started),
                    reason=f"evaluators failed: {', '.join(failed)}"
                )
            else:
                run.record(phase, StageStatus.OK, _elapsed_ms(started))
        run.advance(phase)

    async def _run_evaluators(self, run: PipelineRun, token) -> None:
        for evaluator in self._runtime.components.evaluators:
            if not token.is_current:
                return
            if not evaluator.always_run and not await self._should_evaluate(evaluator, run):
                continue
            try:
                value = await maybe_await(
                    evaluator.handler(self._runtime, run.message, run.state, run.action_result)
                )
                outcome = EvaluationOutcome(evaluator=evaluator.name, success=True, result=value)
            except Exception as e:
                logger.error(f"Evaluator {evaluator.name} failed: {e}", exc_info=True)
                outcome = EvaluationOutcome(evaluator=evaluator.name, success=False, error=str(e))
                if token.is_current:
                    self._emit(EventType.EVALUATOR_FAILED, run, {
                        "evaluator": evaluator.name,
                        "error": str(e),
                    })
            if token.is_current:
                run.evaluations.append(outcome)

    async def _should_evaluate(self, evaluator, run: PipelineRun) -> bool:
        if evaluator.validate is None:
            return True
        try:
            return bool(await maybe_await(evaluator.validate(self._runtime, run.message, run.state)))
        except Exception as e:
            logger.error(f"Evaluator {evaluator.name} validate() failed: {e}", exc_info=True)
            return False

    # ==================== Helpers ====================

    def _timed_out(self, run: PipelineRun, phase: PipelinePhase, started: float, error: StageTimeoutError) -> None:
        run.record(phase, StageStatus.TIMEOUT, _elapsed_ms(started), reason=error.message)
        self._emit(EventType.RUN_STAGE_TIMEOUT, run, {
            "stage": phase.value,
            "budget": error.details.get("budget"),
        })

    def _finish(self, run: PipelineRun, started: float) -> None:
        run.finished_at = datetime.now(timezone.utc)
        run.duration_ms = _elapsed_ms(started)

    def _emit(self, topic: EventType, run: PipelineRun, payload: Dict[str, Any]):
        return self._runtime.event_bus.emit(topic, payload, source="message_pipeline", run_id=run.run_id)

    async def _lifecycle(self, topic: EventType, run: PipelineRun, payload: Dict[str, Any]) -> None:
        handle = self._emit(topic, run, payload)
        if self._await_lifecycle:
            await handle.wait()
