"""Store chain assembly."""

from __future__ import annotations

import logging
from collections.abc import Callable

from halocation.models.state import StateRecord
from halocation.state.filter import ValidityFilter
from halocation.state.ring import RingHistoryStore
from halocation.state.store import ChangeNotifier, LastValueStore, StateStore

_logger = logging.getLogger(__name__)


def build_store(
    *,
    ring_size: int = 0,
    filter_enabled: bool = False,
    on_state: Callable[[StateRecord], None] | None = None,
) -> ChangeNotifier:
    """Build ``ChangeNotifier(ValidityFilter(LastValueStore | RingHistoryStore))``.

    ``ring_size == 0`` selects the last-value store.  The filter is only
    inserted when *filter_enabled* is set.  The notifier sits outermost, so
    its observer also sees records the filter rejects.
    """
    inner: StateStore
    if ring_size:
        inner = RingHistoryStore(ring_size)
    else:
        inner = LastValueStore()

    if filter_enabled:
        inner = ValidityFilter(inner)

    _logger.debug(
        "Built state store: %s (ring_size=%d, filter=%s)",
        type(inner).__name__,
        ring_size,
        filter_enabled,
    )
    return ChangeNotifier(inner, on_state)
