"""Server-Sent Events broadcast of state records.

Every connected subscriber first receives the current store snapshot,
one event per record, and then every record published through
:meth:`EventStream.emit`.  Replay and live events are not ordered against
each other: a subscriber may see a duplicate or a slightly older record
while it connects.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Final, cast

from aiohttp import web

from halocation.models.state import StateRecord

_logger = logging.getLogger(__name__)

_CLOSED: Final = object()

SSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def format_event(record: StateRecord) -> bytes:
    """Encode *record* as one SSE ``data`` frame."""
    return f"data: {record.to_json()}\n\n".encode()


class Subscriber:
    """One connected client and its pending events.

    Live events beyond ``max_queue`` pending items are dropped for this
    subscriber only.  The connect-time replay is never dropped.
    """

    def __init__(self, max_queue: int) -> None:
        self.max_queue = max_queue
        self.dropped = 0
        self._queue: asyncio.Queue[object] = asyncio.Queue()

    def replay(self, records: Iterable[StateRecord]) -> None:
        for record in records:
            self._queue.put_nowait(record)

    def emit(self, record: StateRecord) -> None:
        if self._queue.qsize() >= self.max_queue:
            self.dropped += 1
            _logger.warning("Subscriber queue full, dropping %s (%d dropped)", record.entity_id, self.dropped)
            return
        self._queue.put_nowait(record)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[StateRecord]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield cast(StateRecord, item)


class EventStream:
    """Fan-out of state records to SSE subscribers.

    Parameters
    ----------
    snapshot
        Returns the records replayed to a new subscriber, typically the
        store's ``list``.
    max_queue : int
        Pending live events kept per subscriber before dropping.

    :meth:`emit` must be called from the event loop thread.
    """

    def __init__(
        self,
        snapshot: Callable[[], Iterable[StateRecord]] | None = None,
        *,
        max_queue: int = 256,
    ) -> None:
        self.snapshot = snapshot
        self.max_queue = max_queue
        self._subscribers: set[Subscriber] = set()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def emit(self, record: StateRecord) -> None:
        """Publish *record* to every connected subscriber."""
        _logger.debug("Emitting state for %s", record.entity_id)
        for subscriber in list(self._subscribers):
            subscriber.emit(record)

    @contextmanager
    def subscribe(self) -> Iterator[Subscriber]:
        """Register a subscriber, replay the snapshot into it, unregister on exit."""
        subscriber = Subscriber(self.max_queue)
        if self._closed:
            subscriber.close()
            yield subscriber
            return

        self._subscribers.add(subscriber)
        try:
            if self.snapshot is not None:
                records = list(self.snapshot())
                _logger.debug("Subscriber connected, replaying %d states", len(records))
                subscriber.replay(records)
            yield subscriber
        finally:
            self._subscribers.discard(subscriber)

    def close(self) -> None:
        """Disconnect every subscriber and refuse new ones."""
        self._closed = True
        for subscriber in list(self._subscribers):
            subscriber.close()

    async def handle(self, request: web.Request) -> web.StreamResponse:
        """aiohttp handler streaming records to one client."""
        response = web.StreamResponse(headers=SSE_HEADERS)
        await response.prepare(request)

        with self.subscribe() as subscriber:
            try:
                async for record in subscriber.events():
                    await response.write(format_event(record))
            except ConnectionResetError:
                _logger.debug("SSE client %s disconnected", request.remote)

        return response
