"""Validity filter for location records."""

from __future__ import annotations

import logging

from halocation.models.state import StateRecord
from halocation.state.store import StateStore

_logger = logging.getLogger(__name__)


def has_valid_position(record: StateRecord) -> bool:
    """Whether *record* carries usable coordinates.

    Requires numeric ``latitude`` and ``longitude`` attributes and rejects
    records whose ``position`` attribute is explicitly ``False``.  Values
    of the wrong type count as missing.
    """
    if record.number("latitude") is None or record.number("longitude") is None:
        _logger.debug("Missing coordinates for %s", record.entity_id)
        return False

    if record.flag("position") is False:
        _logger.debug("Position is invalid for %s", record.entity_id)
        return False

    return True


class ValidityFilter:
    """Forwards only records with a valid position to the wrapped store."""

    def __init__(self, store: StateStore) -> None:
        self.store = store

    def set(self, record: StateRecord) -> None:
        if has_valid_position(record):
            self.store.set(record)

    def list(self) -> list[StateRecord]:
        return self.store.list()
