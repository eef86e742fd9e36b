from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from collections.abc import AsyncIterator, Callable
from typing import Any

LogSink = Callable[[dict[str, Any]], None]


class EventBus:
    """Per-owner fan-out of log events.

    ``publish`` is synchronous so events reach every subscriber in the order
    they were emitted. A bounded history lets late subscribers and the
    ``/events`` endpoint catch up.
    """

    def __init__(self, history_size: int = 500) -> None:
        self._queues: dict[str, list[asyncio.Queue[dict[str, Any]]]] = defaultdict(list)
        self._history: dict[str, deque[dict[str, Any]]] = defaultdict(lambda: deque(maxlen=history_size))

    def publish(self, owner_id: str, event: dict[str, Any]) -> None:
        self._history[owner_id].append(event)
        for queue in list(self._queues.get(owner_id, [])):
            queue.put_nowait(event)

    def recent(self, owner_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        events = list(self._history.get(owner_id, ()))
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def sink_for(self, owner_id: str) -> LogSink:
        return lambda event: self.publish(owner_id, event)

    async def subscribe(self, owner_id: str) -> AsyncIterator[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._queues[owner_id].append(queue)

        try:
            while True:
                event = await queue.get()
                yield event
        finally:
            if queue in self._queues.get(owner_id, []):
                self._queues[owner_id].remove(queue)
