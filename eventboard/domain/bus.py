"""Simple asynchronous in-process event bus."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable


class EventBus:
    """Publish/subscribe bus for domain events.

    Handlers are awaited one after another in registration order.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable[[Any], Awaitable[None]]]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Callable[[Any], Awaitable[None]]) -> None:
        self._subscribers[event_type].append(handler)

    async def publish(self, event: Any) -> None:
        for handler in self._subscribers.get(type(event), []):
            await handler(event)
