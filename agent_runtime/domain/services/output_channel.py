"""
Output channel for streamed action output.
"""

import logging
from typing import Any, Callable, List, Optional

from ..entities.action_result import ActionResult
from ..entities.stream import StreamChunk
from ..shared import maybe_await

logger = logging.getLogger("agent-runtime.output_channel")


class OutputChannel:
    """
    Explicit stream between an action handler and its consumer.
    
    The handler calls ``emit(content)`` zero or more times; each call
    produces a ``partial`` chunk. The pipeline closes the channel with the
    terminal ActionResult as the single ``final`` chunk. Emissions after
    close, or carrying a stale stage token, are discarded.
    
    ``sink`` (the connector callback) receives every accepted chunk; a
    failing sink is logged and does not affect the action.
    """
    
    def __init__(
        self,
        run_id: Optional[str] = None,
        action: Optional[str] = None,
        token=None,
        sink: Optional[Callable[[StreamChunk], Any]] = None
    ):
        self.run_id = run_id
        self.action = action
        self._token = token
        self._sink = sink
        self._chunks: List[StreamChunk] = []
        self._closed = False
    
    @property
    def chunks(self) -> List[StreamChunk]:
        return list(self._chunks)
    
    @property
    def closed(self) -> bool:
        return self._closed
    
    def _accepting(self) -> bool:
        return not self._closed and (self._token is None or self._token.is_current)
    
    async def emit(self, content: Any) -> bool:
        """Push a partial output. Returns False when the emission was discarded."""
        if not self._accepting():
            logger.debug(f"Discarded late output from {self.action} (run {self.run_id})")
            return False
        chunk = StreamChunk(
            type="partial",
            content=content,
            is_final=False,
            action=self.action,
            run_id=self.run_id,
            sequence=len(self._chunks),
        )
        self._chunks.append(chunk)
        await self._deliver(chunk)
        return True
    
    async def close(self, result: ActionResult) -> StreamChunk:
        chunk = StreamChunk(
            type="final",
            content=result,
            is_final=True,
            action=self.action,
            run_id=self.run_id,
            sequence=len(self._chunks),
        )
        self._closed = True
        self._chunks.append(chunk)
        await self._deliver(chunk)
        return chunk
    
    async def _deliver(self, chunk: StreamChunk) -> None:
        if self._sink is None:
            return
        try:
            await maybe_await(self._sink(chunk))
        except Exception as e:
            logger.error(f"Output sink failed for run {self.run_id}: {e}", exc_info=True)
