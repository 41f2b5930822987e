"""
Tests for StateComposer.
"""

import pytest

from agent_runtime import Message, Plugin, Provider, ProviderResult
from agent_runtime.infrastructure.resilience import RunEpoch


def text_provider(name, text, position=0, **flags):
    def handler(runtime, message, state):
        return ProviderResult(text=text)
    return Provider(name=name, handler=handler, position=position, **flags)


class TestStateComposer:
    
    @pytest.mark.asyncio
    async def test_fragments_are_ordered_by_position_then_registration(self, runtime_factory, message):
        runtime = await runtime_factory([Plugin(name="ctx", providers=(
            text_provider("ALPHA", "alpha", position=0),
            text_provider("BETA", "beta", position=0),
            text_provider("FIRST", "first", position=-10),
        ))], include_bootstrap=False)
        
        state = await runtime.compose_state(message)
        
        assert state.providers == ("FIRST", "ALPHA", "BETA")
        assert state.text == "first alpha beta"
    
    @pytest.mark.asyncio
    async def test_private_providers_require_explicit_inclusion(self, runtime_factory, message):
        runtime = await runtime_factory([Plugin(name="ctx", providers=(
            text_provider("PUBLIC", "public"),
            text_provider("SECRET", "secret", private=True),
        ))], include_bootstrap=False)
        
        default_state = await runtime.compose_state(message)
        included_state = await runtime.compose_state(message, include=["SECRET"])
        
        assert default_state.providers == ("PUBLIC",)
        assert included_state.providers == ("PUBLIC", "SECRET")
    
    @pytest.mark.asyncio
    async def test_only_include_restricts_selection(self, runtime_factory, message):
        runtime = await runtime_factory([Plugin(name="ctx", providers=(
            text_provider("A", "a"),
            text_provider("B", "b"),
        ))], include_bootstrap=False)
        
        state = await runtime.compose_state(message, include=["B", "UNKNOWN"], only_include=True)
        
        assert state.providers == ("B",)
        assert state.text == "b"
    
    @pytest.mark.asyncio
    async def test_values_last_writer_wins_and_data_is_namespaced(self, runtime_factory, message):
        def first(runtime, msg, state):
            return {"values": {"mood": "calm", "topic": "weather"}, "data": {"source": "first"}}
        
        def second(runtime, msg, state):
            return {"values": {"mood": "excited"}, "data": {"source": "second"}}
        
        runtime = await runtime_factory([Plugin(name="ctx", providers=(
            Provider(name="FIRST", handler=first, position=0),
            Provider(name="SECOND", handler=second, position=1),
        ))], include_bootstrap=False)
        
        state = await runtime.compose_state(message)
        
        assert state.values == {"mood": "excited", "topic": "weather"}
        assert state.provider_data("FIRST") == {"source": "first"}
        assert state.provider_data("SECOND") == {"source": "second"}
    
    @pytest.mark.asyncio
    async def test_failing_provider_contributes_nothing(self, runtime_factory, message):
        def broken(runtime, msg, state):
            raise RuntimeError("provider down")
        
        runtime = await runtime_factory([Plugin(name="ctx", providers=(
            text_provider("A", "alpha", position=0),
            Provider(name="BROKEN", handler=broken, position=1),
            text_provider("C", "gamma", position=2),
        ))], include_bootstrap=False)
        
        state = await runtime.compose_state(message)
        
        assert state.text == "alpha gamma"
        assert state.providers == ("A", "C")
        assert state.failed_providers == ("BROKEN",)
    
    @pytest.mark.asyncio
    async def test_providers_see_partial_state(self, runtime_factory, message):
        seen = {}
        
        def first(runtime, msg, state):
            return {"values": {"name": "Ada"}}
        
        def second(runtime, msg, state):
            seen["name"] = state.get_value("name")
            return ProviderResult(text=f"Hello {state.get_value('name')}")
        
        runtime = await runtime_factory([Plugin(name="ctx", providers=(
            Provider(name="SECOND", handler=second, position=5),
            Provider(name="FIRST", handler=first, position=-5),
        ))], include_bootstrap=False)
        
        state = await runtime.compose_state(message)
        
        assert seen == {"name": "Ada"}
        assert state.text == "Hello Ada"
    
    @pytest.mark.asyncio
    async def test_static_providers_are_cached_per_message(self, runtime_factory, message):
        """Статические провайдеры вызываются один раз на сообщение, динамические каждый раз."""
        calls = {"static": 0, "dynamic": 0}
        
        def static(runtime, msg, state):
            calls["static"] += 1
            return "static"
        
        def dynamic(runtime, msg, state):
            calls["dynamic"] += 1
            return "dynamic"
        
        runtime = await runtime_factory([Plugin(name="ctx", providers=(
            Provider(name="STATIC", handler=static),
            Provider(name="DYNAMIC", handler=dynamic, dynamic=True),
        ))], include_bootstrap=False)
        
        await runtime.compose_state(message)
        state = await runtime.compose_state(message)
        other = Message(room_id="room-1", entity_id="user-1", content="another")
        await runtime.compose_state(other)
        
        assert calls == {"static": 2, "dynamic": 3}
        assert state.text == "static dynamic"
    
    @pytest.mark.asyncio
    async def test_async_providers_are_awaited(self, runtime_factory, message):
        async def async_provider(runtime, msg, state):
            return ProviderResult(text=f"echo: {msg.content.text}")
        
        runtime = await runtime_factory(
            [Plugin(name="ctx", providers=(Provider(name="ECHO", handler=async_provider),))],
            include_bootstrap=False
        )
        
        state = await runtime.compose_state(message)
        
        assert state.text == "echo: hello world"
    
    @pytest.mark.asyncio
    async def test_stale_token_stops_merging(self, runtime_factory, message):
        epoch = RunEpoch()
        
        def invalidating(runtime, msg, state):
            epoch.invalidate()
            return "late"
        
        runtime = await runtime_factory([Plugin(name="ctx", providers=(
            text_provider("EARLY", "early", position=0),
            Provider(name="INVALIDATING", handler=invalidating, position=1),
            text_provider("NEVER", "never", position=2),
        ))], include_bootstrap=False)
        
        token = epoch.begin("compose")
        state = await runtime.composer.compose_state(message, token=token)
        
        assert state.providers == ("EARLY",)
    
    @pytest.mark.asyncio
    async def test_stale_result_is_not_cached(self, runtime_factory, message):
        """Результат, пришедший после устаревания токена, не попадает в кэш."""
        epoch = RunEpoch()
        
        def late(runtime, msg, state):
            epoch.invalidate()
            return "late"
        
        runtime = await runtime_factory([Plugin(name="ctx", providers=(
            text_provider("EARLY", "early", position=0),
            Provider(name="LATE", handler=late, position=1),
        ))], include_bootstrap=False)
        
        await runtime.composer.compose_state(message, token=epoch.begin("compose"))
        
        assert list(runtime.composer.cached_results(message.id)) == ["EARLY"]
