"""Per-entity ring buffer store."""

from __future__ import annotations

import threading

from halocation.exceptions import LocationConfigError
from halocation.models.state import StateRecord


class _Ring:
    """Fixed-capacity circular buffer; the cursor points at the oldest slot."""

    __slots__ = ("_cursor", "_slots")

    def __init__(self, size: int) -> None:
        self._slots: list[StateRecord | None] = [None] * size
        self._cursor = 0

    def push(self, record: StateRecord) -> None:
        self._slots[self._cursor] = record
        self._cursor = (self._cursor + 1) % len(self._slots)

    def values(self) -> list[StateRecord]:
        ordered = self._slots[self._cursor :] + self._slots[: self._cursor]
        return [record for record in ordered if record is not None]


class RingHistoryStore:
    """Keeps the last ``size`` records per entity id.

    Rings are created on the first write for an entity.  Once a ring is
    full the oldest record is overwritten.

    Raises
    ------
    LocationConfigError
        If *size* is not positive.
    """

    def __init__(self, size: int) -> None:
        if size <= 0:
            raise LocationConfigError(f"ring size must be positive, got {size}")
        self.size = size
        self._lock = threading.Lock()
        self._rings: dict[str, _Ring] = {}

    def set(self, record: StateRecord) -> None:
        with self._lock:
            ring = self._rings.get(record.entity_id)
            if ring is None:
                ring = _Ring(self.size)
                self._rings[record.entity_id] = ring
            ring.push(record)

    def list(self) -> list[StateRecord]:
        """Flatten every ring, oldest first within each entity."""
        with self._lock:
            result: list[StateRecord] = []
            for ring in self._rings.values():
                result.extend(ring.values())
            return result
