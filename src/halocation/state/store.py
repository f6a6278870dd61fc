"""In-memory state stores.

A store accepts :class:`~halocation.models.state.StateRecord` writes and
returns an unordered snapshot.  Stores compose by wrapping: decorators
such as :class:`ChangeNotifier` hold the store they forward to instead of
inheriting from it, so they can be stacked in any order.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol

from halocation.models.state import StateRecord


class StateStore(Protocol):
    """Structural store interface shared by concrete stores and decorators."""

    def set(self, record: StateRecord) -> None: ...

    def list(self) -> list[StateRecord]: ...


class LastValueStore:
    """Keeps the most recent record per entity id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, StateRecord] = {}

    def set(self, record: StateRecord) -> None:
        with self._lock:
            self._records[record.entity_id] = record

    def list(self) -> list[StateRecord]:
        with self._lock:
            return list(self._records.values())


class ChangeNotifier:
    """Forwards writes to a wrapped store, then hands the record to an observer.

    The observer is called for every write, including records the wrapped
    store discards.  Either collaborator may be ``None``; the observer may
    be attached after construction.
    """

    def __init__(
        self,
        store: StateStore | None = None,
        on_state: Callable[[StateRecord], None] | None = None,
    ) -> None:
        self.store = store
        self.on_state = on_state

    def set(self, record: StateRecord) -> None:
        if self.store is not None:
            self.store.set(record)

        if self.on_state is not None:
            self.on_state(record)

    def list(self) -> list[StateRecord]:
        if self.store is None:
            return []
        return self.store.list()
