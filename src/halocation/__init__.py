"""halocation - Poll Home Assistant entities and stream their state."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("halocation")
except PackageNotFoundError:
    __version__ = "0+local"
from halocation.broadcast import EventStream
from halocation.client import HomeAssistantClient, initial_ping
from halocation.config import LocationConfig
from halocation.exceptions import (
    EntityNotFoundError,
    HomeAssistantApiError,
    HomeAssistantAuthenticationError,
    HomeAssistantTransportError,
    LocationConfigError,
    LocationError,
)
from halocation.fetcher import Fetcher
from halocation.models import StateRecord
from halocation.state import (
    ChangeNotifier,
    LastValueStore,
    RingHistoryStore,
    StateStore,
    ValidityFilter,
    build_store,
)

__all__ = [
    "__version__",
    "ChangeNotifier",
    "EntityNotFoundError",
    "EventStream",
    "Fetcher",
    "HomeAssistantApiError",
    "HomeAssistantAuthenticationError",
    "HomeAssistantClient",
    "HomeAssistantTransportError",
    "LastValueStore",
    "LocationConfig",
    "LocationConfigError",
    "LocationError",
    "RingHistoryStore",
    "StateRecord",
    "StateStore",
    "ValidityFilter",
    "build_store",
    "initial_ping",
]
