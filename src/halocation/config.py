"""Service configuration for halocation."""

from __future__ import annotations

import dataclasses
import os
import re
from collections.abc import Iterable
from typing import Any

from halocation.exceptions import LocationConfigError

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def parse_duration(value: str | float | int) -> float:
    """Parse a duration into seconds.

    Accepts bare numbers (seconds) or Go-style duration strings such as
    ``"5s"``, ``"100ms"``, ``"1m30s"`` or ``"2h"``.

    Raises
    ------
    LocationConfigError
        If *value* cannot be parsed.
    """
    if isinstance(value, bool):
        raise LocationConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    if not text:
        raise LocationConfigError("invalid duration: empty string")

    try:
        return float(text)
    except ValueError:
        pass

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise LocationConfigError(f"invalid duration: {value!r}")
    return sign * total


def split_entities(values: Iterable[str]) -> tuple[str, ...]:
    """Flatten repeated and comma separated entity ids, dropping blanks."""
    entities: list[str] = []
    for value in values:
        for part in value.split(","):
            stripped = part.strip()
            if stripped:
                entities.append(stripped)
    return tuple(entities)


def parse_listen(listen: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address; an empty host binds all interfaces."""
    host, sep, port = listen.rpartition(":")
    if not sep:
        raise LocationConfigError(f"invalid listen address: {listen!r}")
    try:
        port_number = int(port)
    except ValueError as exc:
        raise LocationConfigError(f"invalid listen port: {listen!r}") from exc
    return (host.strip("[]") or "0.0.0.0", port_number)


@dataclasses.dataclass(frozen=True)
class LocationConfig:
    """Service configuration.

    Parameters
    ----------
    url : str
        Home Assistant base URL (e.g. ``"http://homeassistant.local:8123"``).
    token : str
        Long-lived Home Assistant access token.
    entities : tuple of str
        Entity ids to poll.
    poll_interval : float
        Seconds between fetch rounds.
    max_concurrency : int
        Maximum number of entity fetches in flight during a round.
    bootstrap : float
        History window in seconds replayed into the store before polling
        starts.  ``0`` disables the bootstrap.
    ring_size : int
        Records kept per entity.  ``0`` keeps only the latest record.
    filter_enabled : bool
        Only keep records carrying valid coordinates in the store.
    listen : str
        ``host:port`` the HTTP server binds to.
    log_level : str
        Log level name (``trace``, ``debug``, ``info``, ``warn``, ``error``).
    request_timeout : float
        Total timeout in seconds for a single Home Assistant request.
    """

    url: str
    token: str = ""
    entities: tuple[str, ...] = ()
    poll_interval: float = 5.0
    max_concurrency: int = 2
    bootstrap: float = 0.0
    ring_size: int = 0
    filter_enabled: bool = False
    listen: str = ":9922"
    log_level: str = "info"
    request_timeout: float = 30.0

    def validate(self) -> None:
        """Raise :class:`LocationConfigError` when the configuration is unusable."""
        if not self.url:
            raise LocationConfigError("Home Assistant URL is required")
        if self.max_concurrency < 1:
            raise LocationConfigError(f"concurrency must be at least 1, got {self.max_concurrency}")
        if self.poll_interval <= 0:
            raise LocationConfigError(f"poll interval must be positive, got {self.poll_interval}")
        if self.bootstrap < 0:
            raise LocationConfigError(f"bootstrap window must not be negative, got {self.bootstrap}")
        if self.ring_size < 0:
            raise LocationConfigError(f"ring size must not be negative, got {self.ring_size}")
        if self.request_timeout <= 0:
            raise LocationConfigError(f"request timeout must be positive, got {self.request_timeout}")
        parse_listen(self.listen)

    @classmethod
    def from_env(cls, **overrides: Any) -> LocationConfig:
        """Create configuration from ``HA_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "HA_URL": "url",
            "HA_TOKEN": "token",
            "HA_LISTEN": "listen",
            "HA_LOG_LEVEL": "log_level",
        }
        config_kwargs: dict[str, Any] = {"url": ""}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        entities_env = env.get("HA_ENTITIES")
        if entities_env is not None and "entities" not in overrides:
            config_kwargs["entities"] = split_entities([entities_env])

        for env_key, field_name in (
            ("HA_POLL_INTERVAL", "poll_interval"),
            ("HA_BOOTSTRAP", "bootstrap"),
            ("HA_REQUEST_TIMEOUT", "request_timeout"),
        ):
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = parse_duration(val)

        for env_key, field_name in (
            ("HA_CONCURRENCY", "max_concurrency"),
            ("HA_RING_SIZE", "ring_size"),
        ):
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = int(val)
                except ValueError as exc:
                    raise LocationConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        if "filter_enabled" not in overrides:
            config_kwargs["filter_enabled"] = _env_bool(env.get("HA_FILTER"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
