"""State/store layer.

Concrete stores (:class:`LastValueStore`, :class:`RingHistoryStore`) own
the data; decorators (:class:`ValidityFilter`, :class:`ChangeNotifier`)
wrap another store and delegate to it.
"""

from halocation.state.chain import build_store
from halocation.state.filter import ValidityFilter, has_valid_position
from halocation.state.ring import RingHistoryStore
from halocation.state.store import ChangeNotifier, LastValueStore, StateStore

__all__ = [
    "ChangeNotifier",
    "LastValueStore",
    "RingHistoryStore",
    "StateStore",
    "ValidityFilter",
    "build_store",
    "has_valid_position",
]
