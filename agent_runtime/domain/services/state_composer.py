"""
State Composer: aggregates provider outputs into one State per message.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from ...core.config import AppConfig
from ..entities.components import Provider
from ..entities.message import Message
from ..entities.state import ProviderResult, State
from ..shared import maybe_await

logger = logging.getLogger("agent-runtime.state_composer")


def _coerce_result(raw: Any) -> ProviderResult:
    if raw is None:
        return ProviderResult()
    if isinstance(raw, ProviderResult):
        return raw
    if isinstance(raw, str):
        return ProviderResult(text=raw)
    return ProviderResult.model_validate(raw)


class Composition:
    """
    One composition pass over a fixed, sorted provider list.
    
    Providers run sequentially; each receives the state merged so far.
    ``snapshot()`` can be taken at any point, which is how the pipeline
    salvages partial results when the composition stage times out. Once
    the stage token goes stale, later provider results are not merged.
    """
    
    def __init__(self, composer: "StateComposer", message: Message, providers: List[Provider], token=None):
        self._composer = composer
        self._message = message
        self._providers = providers
        self._token = token
        self._results: "OrderedDict[str, ProviderResult]" = OrderedDict()
        self._failed: List[str] = []
        self.done = False
    
    @property
    def providers(self) -> List[str]:
        return [p.name for p in self._providers]
    
    def _current(self) -> bool:
        return self._token is None or self._token.is_current
    
    async def run(self) -> State:
        runtime = self._composer.runtime
        cached = self._composer.cached_results(self._message.id)
        
        for provider in self._providers:
            if not self._current():
                logger.debug(f"Composition for {self._message.id} abandoned before {provider.name}")
                break
            
            if not provider.dynamic and provider.name in cached:
                result = cached[provider.name]
            else:
                try:
                    raw = await maybe_await(provider.handler(runtime, self._message, self.snapshot()))
                    result = _coerce_result(raw)
                except Exception as e:
                    logger.error(
                        f"Provider {provider.name} failed for message {self._message.id}: {e}",
                        exc_info=True
                    )
                    if self._current():
                        self._failed.append(provider.name)
                    continue
                if not self._current():
                    break
                if not provider.dynamic:
                    self._composer.store_result(self._message.id, provider.name, result)

            if not self._current():
                break
            self._results[provider.name] = result
        
        self.done = True
        return self.snapshot()
    
    def snapshot(self) -> State:
        fragments = []
        values: Dict[str, Any] = {}
        data: Dict[str, Dict[str, Any]] = {}
        for name, result in self._results.items():
            if result.text:
                fragments.append(result.text)
            values.update(result.values)
            data[name] = dict(result.data)
        return State(
            fragments=tuple(fragments),
            text=self._composer.separator.join(fragments),
            values=values,
            data=data,
            providers=tuple(self._results),
            failed_providers=tuple(self._failed),
        )


class StateComposer:
    """
    Selects, orders and runs providers, then merges their output.
    
    Selection: every non-private provider, plus any explicitly named
    provider regardless of ``private``; with ``only_include`` just the
    named ones. Order: ``position`` ascending, registration order on ties.
    
    Non-dynamic outputs are cached per message id (LRU over messages);
    dynamic providers are re-invoked on every call.
    """
    
    def __init__(self, runtime, separator: Optional[str] = None, cache_size: Optional[int] = None):
        self.runtime = runtime
        self.separator = AppConfig.STATE_TEXT_SEPARATOR if separator is None else separator
        self._cache_size = AppConfig.STATE_CACHE_SIZE if cache_size is None else cache_size
        self._cache: "OrderedDict[str, Dict[str, ProviderResult]]" = OrderedDict()
    
    def select_providers(
        self,
        include: Optional[Sequence[str]] = None,
        only_include: bool = False
    ) -> List[Provider]:
        components = self.runtime.components
        explicit = set()
        for name in dict.fromkeys(include or ()):
            if components.get_provider(name) is None:
                logger.debug(f"Requested provider {name} is not registered")
            else:
                explicit.add(name)
        
        providers = components.providers
        if only_include:
            selected = [p for p in providers if p.name in explicit]
        else:
            selected = [p for p in providers if not p.private or p.name in explicit]
        return sorted(selected, key=lambda p: p.position)
    
    def begin(
        self,
        message: Message,
        include: Optional[Sequence[str]] = None,
        only_include: bool = False,
        token=None
    ) -> Composition:
        return Composition(self, message, self.select_providers(include, only_include), token)
    
    async def compose_state(
        self,
        message: Message,
        include: Optional[Sequence[str]] = None,
        only_include: bool = False,
        token=None
    ) -> State:
        """
        Compose the state for ``message``.
        
        Args:
            message: Inbound message
            include: Provider names to add (private ones included)
            only_include: Use only the named providers
            token: StageToken; results arriving after it goes stale are dropped
        """
        composition = self.begin(message, include, only_include, token)
        state = await composition.run()
        logger.debug(
            f"Composed state for {message.id} from {list(state.providers)} "
            f"({len(state.failed_providers)} failed)"
        )
        return state
    
    # ==================== Cache ====================
    
    def cached_results(self, message_id: str) -> Dict[str, ProviderResult]:
        results = self._cache.get(message_id)
        if results is None:
            return {}
        self._cache.move_to_end(message_id)
        return dict(results)
    
    def store_result(self, message_id: str, provider: str, result: ProviderResult) -> None:
        if self._cache_size <= 0:
            return
        self._cache.setdefault(message_id, {})[provider] = result
        self._cache.move_to_end(message_id)
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
    
    def clear_cache(self, message_id: Optional[str] = None) -> None:
        if message_id is None:
            self._cache.clear()
        else:
            self._cache.pop(message_id, None)
