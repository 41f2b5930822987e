"""
Action Selector: asks the resolved model handler for an action name.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from ...core.config import AppConfig
from ...core.errors import ActionSelectionExhausted
from ..entities.components import Action
from ..entities.message import Message
from ..entities.state import State
from ..shared import maybe_await

logger = logging.getLogger("agent-runtime.action_selector")


@dataclass
class SelectionOutcome:
    action: Optional[Action]
    name: Optional[str]
    used_fallback: bool = False
    attempts: int = 0
    rejected: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    degraded: bool = False


def parse_choice(raw: Any) -> Optional[str]:
    """Extract an action name from a model response; None means 'no action'."""
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        raw = raw.get("action") or raw.get("name")
    elif isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else None
    elif not isinstance(raw, str):
        raw = getattr(raw, "action", None) or getattr(raw, "name", None)
    if not isinstance(raw, str):
        return None
    name = raw.strip()
    return name or None


class ActionSelector:
    """
    Bounded selection loop.
    
    The model picks zero or one action name; an unknown name or one whose
    ``validate()`` is false is excluded and the model is asked again. The
    loop runs at most once per registered action, then falls back to the
    designated fallback action.
    """
    
    def __init__(self, runtime, model_type: Optional[str] = None, fallback: Optional[str] = None):
        self._runtime = runtime
        self.model_type = model_type or AppConfig.ACTION_SELECTION_MODEL
        self.fallback = fallback or AppConfig.FALLBACK_ACTION
    
    def fallback_outcome(self, attempts: int, rejected: List[str], reason: str, degraded: bool = False) -> SelectionOutcome:
        action = self._runtime.components.get_action(self.fallback)
        if action is None:
            logger.warning(f"Fallback action {self.fallback} is not registered")
        return SelectionOutcome(
            action=action,
            name=self.fallback,
            used_fallback=True,
            attempts=attempts,
            rejected=rejected,
            reason=reason,
            degraded=degraded,
        )
    
    async def is_valid(self, action: Action, message: Message, state: State) -> bool:
        if action.validate is None:
            return True
        try:
            return bool(await maybe_await(action.validate(self._runtime, message, state)))
        except Exception as e:
            logger.error(f"Action {action.name} validate() failed: {e}", exc_info=True)
            return False
    
    def build_params(self, message: Message, state: State, actions: List[Action], excluded: List[str]) -> dict:
        lines = [f"- {a.name}: {a.description}".rstrip(": ") for a in actions if a.name not in excluded]
        prompt = "\n\n".join(
            part for part in (
                state.text,
                f"Message: {message.content.text}",
                "Available actions:\n" + "\n".join(lines),
                f"Do not choose: {', '.join(excluded)}" if excluded else "",
                "Reply with the name of one action, or nothing to take no action.",
            ) if part
        )
        return {
            "prompt": prompt,
            "message": message,
            "state": state,
            "actions": [a.name for a in actions if a.name not in excluded],
            "excluded": list(excluded),
        }
    
    async def select(self, message: Message, state: State, token=None) -> SelectionOutcome:
        components = self._runtime.components
        actions = components.actions
        if not actions:
            return self.fallback_outcome(0, [], "no actions registered")
        if components.resolve_model(self.model_type) is None:
            return self.fallback_outcome(0, [], f"no {self.model_type} model handler")
        
        rejected: List[str] = []
        attempts = 0
        for _ in range(len(actions)):
            if token is not None and not token.is_current:
                break
            attempts += 1
            try:
                raw = await self._runtime.use_model(
                    self.model_type, self.build_params(message, state, actions, rejected)
                )
            except Exception as e:
                logger.error(f"Action selection model call failed: {e}", exc_info=True)
                return self.fallback_outcome(attempts, rejected, f"model error: {e}", degraded=True)
            
            name = parse_choice(raw)
            if name is None:
                return self.fallback_outcome(attempts, rejected, "no action chosen")
            
            action = components.find_action(name)
            if action is None:
                logger.warning(f"Model chose unknown action {name!r}")
                rejected.append(name)
                continue
            if action.name in rejected:
                continue
            if await self.is_valid(action, message, state):
                return SelectionOutcome(
                    action=action, name=action.name, attempts=attempts, rejected=rejected
                )
            logger.debug(f"Action {action.name} rejected by validate()")
            rejected.append(action.name)
        
        exhausted = ActionSelectionExhausted(attempts, rejected)
        logger.warning(exhausted.message)
        return self.fallback_outcome(attempts, rejected, exhausted.message, degraded=True)
