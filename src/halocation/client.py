"""High-level async client for the Home Assistant REST API."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Protocol

import aiohttp

from halocation._api import history as _history_api
from halocation._api import states as _states_api
from halocation._constants import PING_INITIAL_INTERVAL, PING_MAX_INTERVAL, PING_MULTIPLIER, PING_RETRIES
from halocation._transport import RestTransport
from halocation.config import LocationConfig
from halocation.exceptions import LocationError
from halocation.models.state import StateRecord

_logger = logging.getLogger(__name__)


class Pinger(Protocol):
    async def ping(self) -> None: ...


class HomeAssistantClient:
    """Async client for the Home Assistant REST API.

    Usage::

        async with HomeAssistantClient(config) as client:
            await client.ping()
            record = await client.get_state("device_tracker.phone")
    """

    def __init__(
        self,
        config: LocationConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: RestTransport | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> HomeAssistantClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = RestTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    def _require_transport(self) -> RestTransport:
        if self._transport is None:
            raise LocationError("Client not initialized. Use 'async with HomeAssistantClient(...) as client:'")
        return self._transport

    # ------------------------------------------------------------------
    # Read endpoints
    # ------------------------------------------------------------------

    async def ping(self) -> None:
        """Raise unless the Home Assistant API is reachable and accepts the token."""
        await _states_api.ping(self._require_transport())

    async def get_state(self, entity_id: str) -> StateRecord:
        """Fetch the current state of *entity_id*."""
        return await _states_api.fetch_state(self._require_transport(), entity_id)

    async def get_state_changes_history(
        self,
        entity_id: str,
        start: datetime,
        end: datetime,
        *,
        significant_changes_only: bool = True,
    ) -> list[list[StateRecord]]:
        """Fetch the state changes of *entity_id* between *start* and *end*."""
        return await _history_api.fetch_history(
            self._require_transport(),
            entity_id,
            start,
            end,
            significant_changes_only=significant_changes_only,
        )


async def initial_ping(
    pinger: Pinger,
    *,
    retries: int = PING_RETRIES,
    initial_interval: float = PING_INITIAL_INTERVAL,
    multiplier: float = PING_MULTIPLIER,
    max_interval: float = PING_MAX_INTERVAL,
) -> None:
    """Ping Home Assistant, retrying with exponential backoff.

    Parameters
    ----------
    pinger
        Anything with an async ``ping()``.
    retries : int
        Retries after the first attempt.
    initial_interval : float
        Seconds to wait before the first retry.
    multiplier : float
        Growth factor applied to the wait after every retry.
    max_interval : float
        Upper bound for a single wait.

    Raises
    ------
    LocationError
        The error of the last attempt, once all retries are exhausted.
    """
    delay = initial_interval
    for attempt in range(retries + 1):
        _logger.debug("Attempting to ping Home Assistant (attempt %d/%d)", attempt + 1, retries + 1)
        try:
            await pinger.ping()
            return
        except LocationError as exc:
            if attempt >= retries:
                raise
            _logger.info("Ping failed (%s), retrying in %.1fs", exc, delay)
            await asyncio.sleep(delay)
            delay = min(delay * multiplier, max_interval)
