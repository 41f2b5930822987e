"""
Event Bus implementation for pub/sub event handling.
"""

from typing import Any, Callable, Dict, List, Optional, Set
from collections import defaultdict
from contextlib import contextmanager
import asyncio
import inspect
import logging
from datetime import datetime

from ..core.errors import RegistrationClosedError
from .base_event import Event
from .event_types import Topic, topic_name

logger = logging.getLogger("agent-runtime.event_bus")


class EventHandler:
    """Wrapper for event handler with metadata."""
    
    def __init__(self, handler: Callable, topic: Optional[str] = None, owner: Optional[str] = None):
        self.handler = handler
        self.topic = topic
        self.owner = owner
    
    @property
    def name(self) -> str:
        return getattr(self.handler, "__name__", repr(self.handler))
    
    def __repr__(self):
        return f"EventHandler(handler={self.name}, topic={self.topic})"


class EventBusStats:
    """Statistics for event bus operations."""
    
    def __init__(self):
        self.total_published: int = 0
        self.successful_handlers: int = 0
        self.failed_handlers: int = 0
        self.last_event_time: Optional[datetime] = None


class EmitHandle:
    """
    Aggregate handle for the handler tasks of one emission.
    
    Emission never blocks; awaiting the handle waits for every handler of
    that emission. Awaiting never raises: handler failures are collected
    in ``errors`` and their result slot is ``None``.
    """
    
    def __init__(self, event: Event, tasks: Optional[List[asyncio.Task]] = None):
        self.event = event
        self._tasks = tasks or []
        self.errors: List[BaseException] = []
    
    @property
    def handler_count(self) -> int:
        return len(self._tasks)
    
    def done(self) -> bool:
        return all(task.done() for task in self._tasks)
    
    async def wait(self) -> List[Any]:
        if not self._tasks:
            return []
        return list(await asyncio.gather(*self._tasks))
    
    def __await__(self):
        return self.wait().__await__()


class EventBus:
    """
    Named-topic dispatcher with ordered handler lists per topic.
    
    Features:
    - Handlers run in registration order within a topic
    - Wildcard subscriptions (all topics), run after topic handlers
    - Every handler runs as its own task; a failing handler never
      stops its siblings
    - Emission returns an awaitable handle instead of blocking

    After ``seal()`` plugin-owned subscriptions (``owner`` given) are
    accepted only inside ``unsealed()``; ownerless observers may
    subscribe at any time.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._wildcard_subscribers: List[EventHandler] = []
        self._pending: Set[asyncio.Task] = set()
        self._stats = EventBusStats()
        self._sealed = False
        self._reentrant_depth = 0

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    @contextmanager
    def unsealed(self):
        """Allow plugin-owned subscriptions after seal() for the duration of the block."""
        self._reentrant_depth += 1
        try:
            yield self
        finally:
            self._reentrant_depth -= 1

    def _check_open(self, topic: str, owner: Optional[str]) -> None:
        if owner is not None and self._sealed and self._reentrant_depth == 0:
            raise RegistrationClosedError("event handler", f"{owner}:{topic}")

    def on(self, topic: Topic, handler: Optional[Callable] = None, owner: Optional[str] = None):
        """
        Subscribe to a topic.
        
        Args:
            topic: Topic name or EventType
            handler: Function or coroutine function taking an Event
            owner: Plugin that contributed the handler (for rollback)
        
        Returns:
            Unsubscribe function, or a decorator when handler is omitted

        Raises:
            RegistrationClosedError: Owned handler after seal(), outside unsealed()

        Examples:
            unsubscribe = event_bus.on(EventType.RUN_COMPLETED, my_handler)
            
            @event_bus.on("custom.topic")
            async def my_handler(event):
                pass
        """
        name = topic_name(topic)
        self._check_open(name, owner)
        if handler is None:
            def decorator(func: Callable):
                self._subscribers[name].append(EventHandler(func, name, owner))
                return func
            return decorator
        
        self._subscribers[name].append(EventHandler(handler, name, owner))
        logger.debug(f"Subscribed {getattr(handler, '__name__', handler)} to {name}")
        
        def unsubscribe():
            self.off(name, handler)
        return unsubscribe
    
    def on_any(self, handler: Callable, owner: Optional[str] = None):
        """Subscribe to every topic. Returns an unsubscribe function."""
        self._check_open("*", owner)
        self._wildcard_subscribers.append(EventHandler(handler, None, owner))
        
        def unsubscribe():
            self._wildcard_subscribers = [
                h for h in self._wildcard_subscribers if h.handler != handler
            ]
        return unsubscribe
    
    def off(self, topic: Topic, handler: Callable) -> None:
        """Unsubscribe a handler from a topic."""
        name = topic_name(topic)
        self._subscribers[name] = [
            h for h in self._subscribers[name] if h.handler != handler
        ]
        logger.debug(f"Unsubscribed {getattr(handler, '__name__', handler)} from {name}")
    
    def remove_owner(self, owner: str) -> int:
        """Drop every handler contributed by ``owner``; returns how many."""
        removed = 0
        for name in list(self._subscribers):
            before = len(self._subscribers[name])
            self._subscribers[name] = [h for h in self._subscribers[name] if h.owner != owner]
            removed += before - len(self._subscribers[name])
        before = len(self._wildcard_subscribers)
        self._wildcard_subscribers = [h for h in self._wildcard_subscribers if h.owner != owner]
        return removed + before - len(self._wildcard_subscribers)
    
    def handlers_for(self, topic: Topic) -> List[EventHandler]:
        return list(self._subscribers.get(topic_name(topic), [])) + list(self._wildcard_subscribers)
    
    def emit(
        self,
        topic: Topic,
        payload: Any = None,
        source: str = "runtime",
        run_id: Optional[str] = None
    ) -> EmitHandle:
        """
        Publish a payload to all subscribers of ``topic``.
        
        Handlers are scheduled as independent tasks in registration order
        and the call returns immediately. Emitting a topic nobody listens
        to is a no-op.
        
        Returns:
            EmitHandle the caller may await when completion matters
        """
        event = Event(topic=topic_name(topic), payload=payload, source=source, run_id=run_id)
        self._stats.total_published += 1
        self._stats.last_event_time = event.timestamp
        
        handlers = self.handlers_for(event.topic)
        if not handlers:
            logger.debug(f"No handlers for topic {event.topic}")
            return EmitHandle(event)
        
        logger.debug(f"Publishing {event.topic} to {len(handlers)} handlers")
        
        handle = EmitHandle(event)
        tasks = []
        for handler in handlers:
            task = asyncio.create_task(self._execute_single_handler(event, handler, handle))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        handle._tasks = tasks
        return handle
    
    async def _execute_single_handler(
        self,
        event: Event,
        handler: EventHandler,
        handle: EmitHandle
    ) -> Any:
        """Execute a single handler with error handling."""
        try:
            result = handler.handler(event)
            if inspect.isawaitable(result):
                result = await result
            self._stats.successful_handlers += 1
            return result
        except Exception as e:
            logger.error(
                f"Error in event handler {handler.name} for topic {event.topic}: {e}",
                exc_info=True
            )
            self._stats.failed_handlers += 1
            handle.errors.append(e)
            return None
    
    async def drain(self) -> None:
        """Wait for every handler task still in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
    
    def get_stats(self) -> EventBusStats:
        """Get event bus statistics."""
        return self._stats
    
    def clear(self) -> None:
        """Clear all subscriptions (for testing)."""
        self._subscribers.clear()
        self._wildcard_subscribers.clear()
        logger.debug("Event bus cleared")
