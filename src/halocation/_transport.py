"""HTTP transport for the Home Assistant REST API."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from halocation._constants import USER_AGENT
from halocation._redact import redact_for_log
from halocation.config import LocationConfig
from halocation.exceptions import HomeAssistantAuthenticationError, HomeAssistantTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`RestTransport`) concrete.
    """

    async def get_json(self, endpoint: str, params: Mapping[str, str] | None = None) -> Any: ...


class RestTransport:
    """Bearer-token authenticated JSON transport over aiohttp."""

    def __init__(self, config: LocationConfig, http_session: aiohttp.ClientSession) -> None:
        self._base_url = config.url.rstrip("/")
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)
        self._headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }
        if config.token:
            self._headers["authorization"] = f"Bearer {config.token}"

    async def get_json(self, endpoint: str, params: Mapping[str, str] | None = None) -> Any:
        """GET *endpoint* and return the decoded JSON body.

        Raises
        ------
        HomeAssistantAuthenticationError
            On HTTP 401/403.
        HomeAssistantTransportError
            On network failure, timeout, any other non-2xx status, or a
            body that is not JSON.
        """
        url = f"{self._base_url}{endpoint}"
        _logger.debug("GET %s params=%s headers=%s", url, dict(params or {}), redact_for_log(self._headers))

        try:
            async with self._http.get(url, params=params, headers=self._headers, timeout=self._timeout) as resp:
                text = await resp.text()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise HomeAssistantTransportError(
                f"Request to {endpoint} failed: {exc!r}",
                endpoint=endpoint,
            ) from exc

        if status in (401, 403):
            raise HomeAssistantAuthenticationError(
                f"HTTP {status} from {endpoint}: access token rejected",
                status_code=status,
                endpoint=endpoint,
            )
        if not 200 <= status < 300:
            raise HomeAssistantTransportError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise HomeAssistantTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc
