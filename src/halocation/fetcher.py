"""Polling fetcher.

The fetcher owns the entity list, the polling cadence and the concurrency
ceiling.  Every tick it runs one fetch round: one task per entity, at most
``max_concurrency`` in flight, and the round only ends once every entity
has finished.  Rounds never overlap; ticks that fire while a round is
still running collapse into a single pending tick.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Protocol

from halocation.config import LocationConfig
from halocation.exceptions import LocationConfigError, LocationError
from halocation.models.state import StateRecord
from halocation.state.store import StateStore

_logger = logging.getLogger(__name__)

FetchFunc = Callable[[str], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StateSource(Protocol):
    """What the fetcher needs from the remote side."""

    async def get_state(self, entity_id: str) -> StateRecord: ...

    async def get_state_changes_history(
        self,
        entity_id: str,
        start: datetime,
        end: datetime,
        *,
        significant_changes_only: bool = True,
    ) -> list[list[StateRecord]]: ...


class Ticker:
    """Periodic, edge-triggered tick source.

    A background task marks a tick as pending every *interval* seconds.
    Pending ticks do not accumulate: a consumer that falls behind sees one
    tick and the rest are dropped.
    """

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._pending = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="halocation-ticker")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def wait(self) -> None:
        """Wait for the next tick and consume it."""
        await self._pending.wait()
        self._pending.clear()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self.interval
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            self._pending.set()
            next_at += self.interval
            now = loop.time()
            while next_at <= now:
                next_at += self.interval


class Fetcher:
    """Polls Home Assistant for a fixed set of entities and writes into a store.

    Parameters
    ----------
    client : StateSource
        Remote state source, usually a :class:`~halocation.client.HomeAssistantClient`.
    store : StateStore
        Head of the store chain every fetched record is written to.
    entities : sequence of str
        Entity ids to poll.
    poll_interval : float
        Seconds between rounds.
    max_concurrency : int
        Fetches allowed in flight at once.
    bootstrap : float
        Seconds of history to replay before polling starts (``0`` = off).

    Raises
    ------
    LocationConfigError
        On a concurrency below 1, a non-positive interval or a negative
        bootstrap window.
    """

    def __init__(
        self,
        client: StateSource,
        store: StateStore,
        entities: Sequence[str],
        *,
        poll_interval: float,
        max_concurrency: int = 2,
        bootstrap: float = 0.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_concurrency < 1:
            raise LocationConfigError(f"concurrency must be at least 1, got {max_concurrency}")
        if poll_interval <= 0:
            raise LocationConfigError(f"poll interval must be positive, got {poll_interval}")
        if bootstrap < 0:
            raise LocationConfigError(f"bootstrap window must not be negative, got {bootstrap}")

        self._client = client
        self._store = store
        self._clock = clock
        self.entities: tuple[str, ...] = tuple(entities)
        self.poll_interval = poll_interval
        self.max_concurrency = max_concurrency
        self.bootstrap = bootstrap

    @classmethod
    def from_config(cls, config: LocationConfig, client: StateSource, store: StateStore) -> Fetcher:
        return cls(
            client,
            store,
            config.entities,
            poll_interval=config.poll_interval,
            max_concurrency=config.max_concurrency,
            bootstrap=config.bootstrap,
        )

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Bootstrap (if configured), then run a fetch round on every tick.

        Returns once *stop* is set.  In-flight fetches are cancelled and no
        further round is started.  Cancelling the task running this
        coroutine has the same effect.
        """
        if stop is None:
            stop = asyncio.Event()

        _logger.debug("Polling for entities: %s", ", ".join(self.entities))

        ticker = Ticker(self.poll_interval)
        ticker.start()
        try:
            if self.bootstrap > 0:
                _logger.debug("Bootstrapping entities with %.0fs of history", self.bootstrap)
                if not await self._until_stopped(self.fetch_entity_histories(), stop):
                    return

            while not stop.is_set():
                if not await self._until_stopped(ticker.wait(), stop):
                    return
                if not await self._until_stopped(self.fetch_entities(), stop):
                    return
        finally:
            await ticker.stop()
            _logger.debug("Fetcher stopped")

    @staticmethod
    async def _until_stopped(aw: Awaitable[None], stop: asyncio.Event) -> bool:
        """Await *aw* unless *stop* is set first; return ``False`` if stopped."""
        task = asyncio.ensure_future(aw)
        stopper = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait((task, stopper), return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, stopper):
                if not pending.done():
                    pending.cancel()
            await asyncio.gather(task, stopper, return_exceptions=True)

        if task.cancelled():
            return False
        task.result()
        return True

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    async def fetch_entities(self) -> None:
        """Run one round fetching the current state of every entity."""
        await self._fetch_concurrent(self.fetch_entity)

    async def fetch_entity_histories(self) -> None:
        """Run one round replaying the bootstrap window of every entity."""
        await self._fetch_concurrent(self.fetch_entity_history)

    async def _fetch_concurrent(self, fn: FetchFunc) -> None:
        """Run *fn* for every entity, ``max_concurrency`` at a time, and wait for all."""
        gate = asyncio.Semaphore(self.max_concurrency)
        tasks: list[asyncio.Task[None]] = []
        started = time.monotonic()

        async def _run_one(entity_id: str) -> None:
            try:
                await fn(entity_id)
            except Exception:
                _logger.exception("Unexpected failure fetching %s", entity_id)
            finally:
                gate.release()

        try:
            for entity_id in self.entities:
                await gate.acquire()
                tasks.append(asyncio.create_task(_run_one(entity_id), name=f"fetch:{entity_id}"))
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        _logger.debug("Round over %d entities took %.3fs", len(self.entities), time.monotonic() - started)

    # ------------------------------------------------------------------
    # Per-entity work
    # ------------------------------------------------------------------

    async def fetch_entity(self, entity_id: str) -> None:
        try:
            record = await self._client.get_state(entity_id)
        except LocationError as exc:
            _logger.warning("Failed to get state for %s: %s", entity_id, exc)
            return

        self._store.set(record)

    async def fetch_entity_history(self, entity_id: str) -> None:
        end = self._clock()
        start = end - timedelta(seconds=self.bootstrap)
        try:
            series = await self._client.get_state_changes_history(
                entity_id,
                start,
                end,
                significant_changes_only=True,
            )
        except LocationError as exc:
            _logger.warning("Failed to get state change history for %s: %s", entity_id, exc)
            return

        # A filtered query matches a single entity, so exactly one series is expected.
        if len(series) != 1:
            _logger.warning("Unexpected state change history for %s: %d series returned", entity_id, len(series))
            return

        for record in series[0]:
            self._store.set(record)
