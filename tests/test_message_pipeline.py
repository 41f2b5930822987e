"""
Tests for the message pipeline.
"""

import asyncio

import pytest

from agent_runtime import Action, ActionResult, Evaluator, Plugin, Provider, ProviderResult, RunStatus
from agent_runtime.core.errors import RuntimeNotReadyError
from agent_runtime.domain.entities import PipelinePhase, StageStatus
from agent_runtime.domain.ports import MemoryQuery, MemoryStore, ModelType

FULL_PATH = [
    PipelinePhase.RECEIVED,
    PipelinePhase.MEMORY_PERSISTED,
    PipelinePhase.STATE_COMPOSED,
    PipelinePhase.ACTION_SELECTED,
    PipelinePhase.ACTION_EXECUTED,
    PipelinePhase.EVALUATED,
    PipelinePhase.COMPLETED,
]


async def none_handler(runtime, message, state, options, emit):
    return ActionResult(success=True, data={"acknowledged": True})


def agent_plugin(*actions, evaluators=(), providers=(), choice="ECHO"):
    async def choose(runtime, params):
        return choice

    return Plugin(
        name="agent",
        actions=(Action(name="NONE", handler=none_handler),) + tuple(actions),
        evaluators=tuple(evaluators),
        providers=tuple(providers),
        models={ModelType.TEXT_SMALL: choose},
    )


class TestMessagePipeline:
    
    @pytest.mark.asyncio
    async def test_happy_path_streams_output(self, runtime_factory, make_message):
        """Полный проход: частичные чанки, затем один финальный."""
        # Arrange
        async def echo(runtime, message, state, options, emit):
            await emit("thinking")
            await emit(message.content.text)
            return ActionResult(success=True, text=message.content.text)
        
        received = []
        runtime = await runtime_factory(
            [agent_plugin(Action(name="ECHO", handler=echo))], include_bootstrap=False
        )
        
        # Act
        run = await runtime.handle_message(make_message("ping"), on_output=received.append)

        # Assert
        assert run.status == RunStatus.SUCCESS
        assert run.transitions == FULL_PATH
        assert run.action_name == "ECHO"
        assert not run.used_fallback
        assert [c.type for c in received] == ["partial", "partial", "final"]
        assert [c.content for c in run.partial_outputs] == ["thinking", "ping"]
        assert run.final_output.content.text == "ping"
        assert run.action_result.success
    
    @pytest.mark.asyncio
    async def test_message_is_persisted_before_processing(self, runtime_factory, make_message):
        seen = {}
        
        async def check_memory(runtime, message, state, options, emit):
            records = await runtime.search_memories(MemoryQuery(room_id=message.room_id), 10)
            seen["ids"] = [r.id for r in records]
            return ActionResult(success=True)
        
        runtime = await runtime_factory(
            [agent_plugin(Action(name="ECHO", handler=check_memory))], include_bootstrap=False
        )
        
        run = await runtime.handle_message(make_message("remember me"))
        
        assert run.memory_id == run.message.id
        assert seen["ids"] == [run.message.id]
    
    @pytest.mark.asyncio
    async def test_lifecycle_events_are_emitted(self, runtime_factory, make_message):
        topics = []
        runtime = await runtime_factory([agent_plugin(choice=None)], include_bootstrap=False)
        runtime.event_bus.on_any(lambda event: topics.append(event.topic))
        
        run = await runtime.handle_message(make_message())
        await runtime.event_bus.drain()
        
        assert topics[0] == "run.started"
        assert topics[-1] == "run.completed"
        for topic in ("message.received", "memory.created", "state.composed",
                      "action.started", "action.completed"):
            assert topic in topics
        assert runtime.metrics.get_run_count(run.status.value) == 1
        audit = runtime.audit_logger.get_audit_log(run_id=run.run_id, event_type="run.completed")
        assert [entry["status"] for entry in audit] == [run.status.value]
    
    @pytest.mark.asyncio
    async def test_same_room_messages_are_serialized_in_order(self, runtime_factory, make_message):
        active = {"now": 0, "max": 0}
        order = []
        
        async def slow(runtime, message, state, options, emit):
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
            order.append(message.content.text)
            await asyncio.sleep(0.02)
            active["now"] -= 1
            return ActionResult(success=True)
        
        runtime = await runtime_factory(
            [agent_plugin(Action(name="ECHO", handler=slow))], include_bootstrap=False
        )
        
        runs = await asyncio.gather(*[
            runtime.handle_message(make_message(f"m{i}", room_id="room-1")) for i in range(3)
        ])
        
        assert active["max"] == 1
        assert order == ["m0", "m1", "m2"]
        assert all(run.status == RunStatus.SUCCESS for run in runs)
    
    @pytest.mark.asyncio
    async def test_different_rooms_run_concurrently(self, runtime_factory, make_message):
        active = {"now": 0, "max": 0}
        
        async def slow(runtime, message, state, options, emit):
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
            await asyncio.sleep(0.05)
            active["now"] -= 1
            return ActionResult(success=True)
        
        runtime = await runtime_factory(
            [agent_plugin(Action(name="ECHO", handler=slow))], include_bootstrap=False
        )
        
        await asyncio.gather(
            runtime.handle_message(make_message("a", room_id="room-a")),
            runtime.handle_message(make_message("b", room_id="room-b")),
        )
        
        assert active["max"] == 2
    
    @pytest.mark.asyncio
    async def test_evaluator_failure_is_isolated(self, runtime_factory, make_message):
        """Упавший evaluator не мешает остальным; запуск доходит до Completed."""
        seen = []
        
        def broken(runtime, message, state, result):
            raise RuntimeError("evaluator bug")
        
        def recorder(runtime, message, state, result):
            seen.append(result.success)
            return "recorded"
        
        runtime = await runtime_factory([agent_plugin(
            Action(name="ECHO", handler=none_handler),
            evaluators=(
                Evaluator(name="BROKEN", handler=broken),
                Evaluator(name="RECORDER", handler=recorder),
            ),
        )], include_bootstrap=False)
        failures = []
        runtime.event_bus.on("evaluator.failed", lambda event: failures.append(event.payload["evaluator"]))
        
        run = await runtime.handle_message(make_message())
        await runtime.event_bus.drain()
        
        assert run.phase == PipelinePhase.COMPLETED
        assert run.status == RunStatus.PARTIAL
        assert [(e.evaluator, e.success) for e in run.evaluations] == [("BROKEN", False), ("RECORDER", True)]
        assert run.evaluations[1].result == "recorded"
        assert seen == [True]
        assert run.stages[PipelinePhase.EVALUATED].status == StageStatus.DEGRADED
        assert failures == ["BROKEN"]
    
    @pytest.mark.asyncio
    async def test_evaluator_validate_gates_execution(self, runtime_factory, make_message):
        calls = []
        
        def never(runtime, message, state):
            return False
        
        runtime = await runtime_factory([agent_plugin(
            Action(name="ECHO", handler=none_handler),
            evaluators=(
                Evaluator(name="SKIPPED", handler=lambda *a: calls.append("skipped"), validate=never),
                Evaluator(
                    name="FORCED",
                    handler=lambda *a: calls.append("forced"),
                    validate=never,
                    always_run=True,
                ),
            ),
        )], include_bootstrap=False)
        
        run = await runtime.handle_message(make_message())
        
        assert calls == ["forced"]
        assert [e.evaluator for e in run.evaluations] == ["FORCED"]
    
    @pytest.mark.asyncio
    async def test_all_invalid_actions_fall_back(self, runtime_factory, make_message):
        def invalid(runtime, message, state):
            return False
        
        runtime = await runtime_factory([agent_plugin(
            Action(name="ECHO", handler=none_handler, validate=invalid),
        )], include_bootstrap=False)
        
        run = await runtime.handle_message(make_message())
        
        assert run.phase == PipelinePhase.COMPLETED
        assert run.used_fallback
        assert run.action_name == "NONE"
        assert "ECHO" in run.rejected_actions
        assert run.action_result.data == {"acknowledged": True}
    
    @pytest.mark.asyncio
    async def test_failing_action_yields_failed_result(self, runtime_factory, make_message):
        async def broken(runtime, message, state, options, emit):
            await emit("partial work")
            raise ValueError("handler bug")
        
        runtime = await runtime_factory(
            [agent_plugin(Action(name="ECHO", handler=broken))], include_bootstrap=False
        )
        
        run = await runtime.handle_message(make_message())
        
        assert run.phase == PipelinePhase.COMPLETED
        assert run.status == RunStatus.PARTIAL
        assert not run.action_result.success
        assert "handler bug" in run.action_result.error
        assert [c.type for c in run.outputs] == ["partial", "final"]
    
    @pytest.mark.asyncio
    async def test_action_returning_none_is_a_failure(self, runtime_factory, make_message):
        async def silent(runtime, message, state, options, emit):
            return None
        
        runtime = await runtime_factory(
            [agent_plugin(Action(name="ECHO", handler=silent))], include_bootstrap=False
        )
        
        run = await runtime.handle_message(make_message())
        
        assert run.action_result.success is False
    
    @pytest.mark.asyncio
    async def test_options_reach_the_action(self, runtime_factory, make_message):
        seen = {}
        
        async def capture(runtime, message, state, options, emit):
            seen.update(options)
            return ActionResult(success=True)
        
        runtime = await runtime_factory(
            [agent_plugin(Action(name="ECHO", handler=capture))], include_bootstrap=False
        )
        
        await runtime.handle_message(make_message(), options={"reply_to": "thread-1"})
        
        assert seen == {"reply_to": "thread-1"}
    
    @pytest.mark.asyncio
    async def test_action_timeout_discards_late_output(self, runtime_factory, make_message):
        received = []
        finished = asyncio.Event()
        
        async def sluggish(runtime, message, state, options, emit):
            await asyncio.sleep(0.2)
            accepted = await emit("too late")
            finished.set()
            return ActionResult(success=True, data={"accepted": accepted})
        
        runtime = await runtime_factory(
            [agent_plugin(Action(name="ECHO", handler=sluggish))],
            include_bootstrap=False,
            timeouts={"execute": 0.05},
        )
        
        run = await runtime.handle_message(make_message(), on_output=received.append)
        await asyncio.wait_for(finished.wait(), timeout=2)
        
        assert run.phase == PipelinePhase.COMPLETED
        assert run.stages[PipelinePhase.ACTION_EXECUTED].status == StageStatus.TIMEOUT
        assert run.status == RunStatus.PARTIAL
        assert not run.action_result.success
        assert [c.type for c in received] == ["final"]
        assert [c.type for c in run.outputs] == ["final"]
    
    @pytest.mark.asyncio
    async def test_compose_timeout_keeps_partial_state(self, runtime_factory, make_message):
        async def slow(runtime, message, state):
            await asyncio.sleep(0.3)
            return ProviderResult(text="slow")
        
        def fast(runtime, message, state):
            return ProviderResult(text="fast")
        
        runtime = await runtime_factory(
            [agent_plugin(
                choice=None,
                providers=(
                    Provider(name="FAST", handler=fast, position=0),
                    Provider(name="SLOW", handler=slow, position=10),
                ),
            )],
            include_bootstrap=False,
            timeouts={"compose": 0.05},
        )
        timeouts = []
        runtime.event_bus.on("run.stage.timeout", lambda event: timeouts.append(event.payload["stage"]))
        
        run = await runtime.handle_message(make_message())
        await asyncio.sleep(0.35)
        
        assert run.phase == PipelinePhase.COMPLETED
        assert run.stages[PipelinePhase.STATE_COMPOSED].status == StageStatus.TIMEOUT
        assert run.state.providers == ("FAST",)
        assert run.state.text == "fast"
        assert timeouts == ["state_composed"]

    @pytest.mark.asyncio
    async def test_required_providers_include_private_ones(self, runtime_factory, make_message):
        """Обязательные провайдеры пайплайна включаются даже с флагом private."""
        def identity(runtime, message, state):
            return ProviderResult(text="I am agent", values={"agentName": "agent"})

        def secret(runtime, message, state):
            return ProviderResult(text="hidden", values={"secret": True})

        runtime = await runtime_factory(
            [agent_plugin(
                choice=None,
                providers=(
                    Provider(name="IDENTITY", handler=identity, private=True),
                    Provider(name="SECRET", handler=secret, private=True, position=5),
                ),
            )],
            include_bootstrap=False,
            required_providers=["IDENTITY"],
        )

        run = await runtime.handle_message(make_message())

        assert run.state.providers == ("IDENTITY",)
        assert run.state.text == "I am agent"
        assert run.state.values == {"agentName": "agent"}
        assert "SECRET" not in run.state.data

    @pytest.mark.asyncio
    async def test_invalid_message_fails_without_side_effects(self, runtime_factory, make_message):
        """Некорректное сообщение: Failed на Received, без записи в память и событий."""
        runtime = await runtime_factory([agent_plugin()], include_bootstrap=False)
        topics = []
        runtime.event_bus.on_any(lambda event: topics.append(event.topic))
        
        run = await runtime.handle_message(make_message(room_id=""))
        await runtime.event_bus.drain()
        
        assert run.status == RunStatus.FAILED
        assert run.phase == PipelinePhase.FAILED
        assert run.failure.stage == PipelinePhase.RECEIVED
        assert len(runtime.memory_store) == 0
        assert topics == []
    
    @pytest.mark.asyncio
    async def test_empty_content_is_invalid(self, runtime_factory, make_message):
        runtime = await runtime_factory([agent_plugin()], include_bootstrap=False)
        
        run = await runtime.handle_message(make_message(text="   "))
        
        assert run.status == RunStatus.FAILED
        assert "content" in run.failure.reason
    
    @pytest.mark.asyncio
    async def test_memory_write_failure_is_terminal(self, runtime_factory, make_message):
        executed = []
        
        class FailingStore(MemoryStore):
            async def create_memory(self, record):
                raise IOError("disk full")
            
            async def search_memories(self, query, k):
                return []
        
        async def track(runtime, message, state, options, emit):
            executed.append(message.id)
            return ActionResult(success=True)
        
        runtime = await runtime_factory(
            [agent_plugin(Action(name="ECHO", handler=track))],
            include_bootstrap=False,
            memory_store=FailingStore(),
        )
        
        run = await runtime.handle_message(make_message())
        
        assert run.status == RunStatus.FAILED
        assert run.failure.stage == PipelinePhase.MEMORY_PERSISTED
        assert "disk full" in run.failure.reason
        assert executed == []
    
    @pytest.mark.asyncio
    async def test_handle_message_requires_ready_runtime(self, make_runtime, make_message):
        runtime = make_runtime(include_bootstrap=False)
        
        with pytest.raises(RuntimeNotReadyError):
            await runtime.handle_message(make_message())
