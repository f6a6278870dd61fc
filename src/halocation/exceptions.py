"""Custom exception hierarchy for halocation."""

from __future__ import annotations


class LocationError(Exception):
    """Base exception for all halocation errors."""


class LocationConfigError(LocationError):
    """Invalid or missing configuration."""


class HomeAssistantTransportError(LocationError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class HomeAssistantAuthenticationError(HomeAssistantTransportError):
    """Home Assistant rejected the access token (HTTP 401/403)."""


class EntityNotFoundError(HomeAssistantTransportError):
    """The requested entity does not exist (HTTP 404 on a state lookup)."""


class HomeAssistantApiError(LocationError):
    """Home Assistant answered, but the payload does not have the expected shape."""

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)
