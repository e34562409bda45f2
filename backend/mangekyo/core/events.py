"""Typed in-process event channel.

Components emit events without knowing who listens. Delivery is
fire-and-forget: sync handlers run inline, async handlers are scheduled on
the running loop, and handler failures are logged, never raised to the
emitter.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Set, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    TRANSLATION_COMPLETE = "translation:complete"
    CACHE_INVALIDATED = "cache:invalidated"
    ENGINE_FALLBACK = "engine:fallback"
    LIMIT_APPROACHING = "limit:approaching"


class Event(BaseModel):
    """An emitted event."""

    type: EventType
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


Handler = Callable[[Event], Union[None, Awaitable[None]]]


class EventChannel:
    """Publish/subscribe channel keyed by EventType."""

    def __init__(self):
        self._handlers: Dict[EventType, List[Handler]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, event_type: EventType, handler: Handler) -> Callable[[], None]:
        """Register a handler.

        Returns:
            A function that removes the handler
        """
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def emit(self, event_type: EventType, **payload: Any) -> Event:
        event = Event(type=event_type, payload=payload)
        for handler in list(self._handlers.get(event_type, [])):
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    self._schedule(outcome, event_type)
            except Exception as e:
                logger.error(f"[Events] Handler for {event_type.value} failed: {e}")
        return event

    def _schedule(self, awaitable: Awaitable[None], event_type: EventType) -> None:
        async def run():
            try:
                await awaitable
            except Exception as e:
                logger.error(f"[Events] Async handler for {event_type.value} failed: {e}")

        try:
            task = asyncio.get_running_loop().create_task(run())
        except RuntimeError:
            logger.warning(f"[Events] No running loop, dropping async handler for {event_type.value}")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for scheduled async handlers to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
