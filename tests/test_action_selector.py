"""
Tests for model-driven action selection.
"""

import pytest

from agent_runtime import Action, ActionResult, Plugin, State
from agent_runtime.domain.ports import ModelType
from agent_runtime.domain.services.action_selector import parse_choice


async def ok_handler(runtime, message, state, options, emit):
    return ActionResult(success=True)


def make_action(name, valid=True, **kwargs):
    def validate(runtime, message, state):
        return valid
    return Action(name=name, handler=ok_handler, validate=validate, **kwargs)


def selection_plugin(model, *actions):
    return Plugin(
        name="selection",
        actions=(make_action("NONE"),) + tuple(actions),
        models={ModelType.TEXT_SMALL: model},
    )


class TestParseChoice:
    
    def test_plain_string(self):
        assert parse_choice("  REPLY \n") == "REPLY"
    
    def test_mapping(self):
        assert parse_choice({"action": "REPLY", "reason": "greeting"}) == "REPLY"
    
    def test_empty_means_no_action(self):
        assert parse_choice(None) is None
        assert parse_choice("   ") is None
        assert parse_choice({}) is None


class TestActionSelector:
    
    @pytest.mark.asyncio
    async def test_selects_valid_action(self, runtime_factory, scripted_model, message):
        model = scripted_model("GREET")
        runtime = await runtime_factory(
            [selection_plugin(model, make_action("GREET"))], include_bootstrap=False
        )
        
        outcome = await runtime.pipeline.selector.select(message, State())
        
        assert outcome.name == "GREET"
        assert not outcome.used_fallback
        assert outcome.attempts == 1
        assert model.calls[0]["excluded"] == []
        assert "GREET" in model.calls[0]["actions"]
    
    @pytest.mark.asyncio
    async def test_invalid_action_is_excluded_and_model_asked_again(
        self, runtime_factory, scripted_model, message
    ):
        model = scripted_model("BLOCKED", "GREET")
        runtime = await runtime_factory([selection_plugin(
            model, make_action("BLOCKED", valid=False), make_action("GREET")
        )], include_bootstrap=False)
        
        outcome = await runtime.pipeline.selector.select(message, State())
        
        assert outcome.name == "GREET"
        assert outcome.rejected == ["BLOCKED"]
        assert model.calls[1]["excluded"] == ["BLOCKED"]
        assert "BLOCKED" not in model.calls[1]["actions"]
    
    @pytest.mark.asyncio
    async def test_all_candidates_invalid_falls_back(self, runtime_factory, scripted_model, message):
        """Перебор ограничен числом действий, затем fallback."""
        model = scripted_model("A", "B", "A")
        runtime = await runtime_factory([selection_plugin(
            model, make_action("A", valid=False), make_action("B", valid=False)
        )], include_bootstrap=False)
        
        outcome = await runtime.pipeline.selector.select(message, State())
        
        assert outcome.used_fallback
        assert outcome.name == "NONE"
        assert outcome.action is runtime.components.get_action("NONE")
        assert outcome.attempts == 3
        assert outcome.degraded
        assert outcome.rejected == ["A", "B"]
    
    @pytest.mark.asyncio
    async def test_unknown_action_name_is_rejected(self, runtime_factory, scripted_model, message):
        model = scripted_model("DANCE", "greet")
        runtime = await runtime_factory(
            [selection_plugin(model, make_action("GREET"))], include_bootstrap=False
        )
        
        outcome = await runtime.pipeline.selector.select(message, State())
        
        assert outcome.name == "GREET"
        assert outcome.rejected == ["DANCE"]
    
    @pytest.mark.asyncio
    async def test_simile_resolves_to_action(self, runtime_factory, scripted_model, message):
        model = scripted_model({"action": "WAVE"})
        runtime = await runtime_factory(
            [selection_plugin(model, make_action("GREET", similes=("WAVE",)))], include_bootstrap=False
        )
        
        outcome = await runtime.pipeline.selector.select(message, State())
        
        assert outcome.name == "GREET"
    
    @pytest.mark.asyncio
    async def test_no_choice_uses_fallback(self, runtime_factory, scripted_model, message):
        model = scripted_model(None)
        runtime = await runtime_factory(
            [selection_plugin(model, make_action("GREET"))], include_bootstrap=False
        )
        
        outcome = await runtime.pipeline.selector.select(message, State())
        
        assert outcome.used_fallback
        assert not outcome.degraded
    
    @pytest.mark.asyncio
    async def test_missing_model_uses_fallback(self, runtime_factory, message):
        runtime = await runtime_factory(
            [Plugin(name="actions-only", actions=(make_action("NONE"), make_action("GREET")))],
            include_bootstrap=False
        )
        
        outcome = await runtime.pipeline.selector.select(message, State())
        
        assert outcome.used_fallback
        assert outcome.attempts == 0
        assert "TEXT_SMALL" in outcome.reason
    
    @pytest.mark.asyncio
    async def test_model_error_uses_fallback(self, runtime_factory, message):
        async def broken_model(runtime, params):
            raise ConnectionError("provider unavailable")
        
        runtime = await runtime_factory(
            [selection_plugin(broken_model, make_action("GREET"))], include_bootstrap=False
        )
        
        outcome = await runtime.pipeline.selector.select(message, State())
        
        assert outcome.used_fallback
        assert outcome.degraded
        assert "provider unavailable" in outcome.reason
    
    @pytest.mark.asyncio
    async def test_validate_error_counts_as_invalid(self, runtime_factory, scripted_model, message):
        def exploding(runtime, msg, state):
            raise RuntimeError("validator bug")
        
        model = scripted_model("EXPLODING", "GREET")
        runtime = await runtime_factory([selection_plugin(
            model,
            Action(name="EXPLODING", handler=ok_handler, validate=exploding),
            make_action("GREET"),
        )], include_bootstrap=False)
        
        outcome = await runtime.pipeline.selector.select(message, State())
        
        assert outcome.name == "GREET"
        assert outcome.rejected == ["EXPLODING"]
