"""In-process domain events.

Views (task lists, client lists, dashboards) subscribe here instead of
polling. Handlers may be sync or async; one failing handler never blocks
the others or the operation that emitted the event.
"""

import asyncio
import enum
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)


class DomainEvent(str, enum.Enum):
    PROSPECT_CONVERTED = "prospect-converted"
    FOLLOW_UP_UPDATED = "follow-up-updated"
    COMMUNICATION_UPDATED = "communication-updated"
    STUDENT_CREATED = "student-created"
    ENROLLMENT_UPDATED = "enrollment-updated"


Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """Publish/subscribe fan-out keyed by DomainEvent."""

    def __init__(self):
        self._handlers: dict[DomainEvent, list[Handler]] = defaultdict(list)

    def subscribe(self, event: DomainEvent, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        self._handlers[event].append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(event, handler)

        return _unsubscribe

    def unsubscribe(self, event: DomainEvent, handler: Handler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event: DomainEvent) -> int:
        return len(self._handlers.get(event, []))

    async def emit(self, event: DomainEvent, payload: Any = None) -> int:
        """Deliver ``payload`` to every handler of ``event``.

        Returns:
            Number of handlers that completed without raising
        """
        handlers = list(self._handlers.get(event, []))
        if not handlers:
            return 0

        async def _call_safe(handler: Handler) -> bool:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
                return True
            except Exception as e:
                logger.error(
                    f"Handler {getattr(handler, '__name__', handler)!r} "
                    f"for {event.value} failed: {e}",
                    exc_info=True,
                )
                return False

        results = await asyncio.gather(*(_call_safe(h) for h in handlers))
        delivered = sum(1 for ok in results if ok)
        logger.debug(f"{event.value}: delivered to {delivered}/{len(handlers)} handlers")
        return delivered
