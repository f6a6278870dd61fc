from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from halocation.exceptions import LocationConfigError
from halocation.models.state import StateRecord
from halocation.state import (
    ChangeNotifier,
    LastValueStore,
    RingHistoryStore,
    ValidityFilter,
    build_store,
    has_valid_position,
)


def _record(
    entity_id: str,
    status: str = "home",
    attributes: dict[str, Any] | None = None,
    *,
    minute: int = 0,
) -> StateRecord:
    when = datetime(2026, 1, 1, tzinfo=UTC) + timedelta(minutes=minute)
    return StateRecord(
        entity_id=entity_id,
        status=status,
        attributes=attributes or {},
        last_changed=when,
        last_updated=when,
    )


def _located(entity_id: str, status: str = "home", **extra: Any) -> StateRecord:
    return _record(entity_id, status, {"latitude": 1.0, "longitude": 2.0, **extra})


# ----------------------------------------------------------------------
# LastValueStore
# ----------------------------------------------------------------------


def test_last_value_store_keeps_latest_per_entity() -> None:
    store = LastValueStore()

    store.set(_record("a", "home", minute=0))
    store.set(_record("b", "away", minute=0))
    store.set(_record("a", "work", minute=1))

    by_id = {record.entity_id: record.status for record in store.list()}
    assert by_id == {"a": "work", "b": "away"}


def test_last_value_store_same_record_twice_does_not_duplicate() -> None:
    store = LastValueStore()
    store.set(_record("a", minute=0))
    store.set(_record("a", minute=5))

    records = store.list()
    assert len(records) == 1
    assert records[0].last_updated == datetime(2026, 1, 1, 0, 5, tzinfo=UTC)


def test_last_value_store_empty_list() -> None:
    assert LastValueStore().list() == []


# ----------------------------------------------------------------------
# RingHistoryStore
# ----------------------------------------------------------------------


def test_ring_store_overwrites_oldest_once_full() -> None:
    store = RingHistoryStore(3)
    for minute, status in enumerate(["a", "b", "c", "d"]):
        store.set(_record("tracker", status, minute=minute))

    assert [record.status for record in store.list()] == ["b", "c", "d"]


def test_ring_store_keeps_last_size_records_after_many_writes() -> None:
    store = RingHistoryStore(4)
    for minute in range(11):
        store.set(_record("tracker", str(minute), minute=minute))

    assert sorted(int(record.status) for record in store.list()) == [7, 8, 9, 10]


def test_ring_store_partial_ring_lists_only_written_records() -> None:
    store = RingHistoryStore(5)
    store.set(_record("a", "one", minute=0))
    store.set(_record("a", "two", minute=1))
    store.set(_record("b", "only", minute=0))

    listed = sorted(store.list(), key=lambda r: (r.entity_id, r.last_updated))
    assert [(r.entity_id, r.status) for r in listed] == [("a", "one"), ("a", "two"), ("b", "only")]


def test_ring_store_rings_are_per_entity() -> None:
    store = RingHistoryStore(1)
    store.set(_record("a", "first"))
    store.set(_record("b", "second"))
    store.set(_record("a", "third"))

    assert sorted((r.entity_id, r.status) for r in store.list()) == [("a", "third"), ("b", "second")]


@pytest.mark.parametrize("size", [0, -1])
def test_ring_store_rejects_non_positive_size(size: int) -> None:
    with pytest.raises(LocationConfigError):
        RingHistoryStore(size)


# ----------------------------------------------------------------------
# ValidityFilter
# ----------------------------------------------------------------------


@pytest.mark.parametrize(
    ("attributes", "accepted"),
    [
        ({"latitude": 1.0, "longitude": 2.0}, True),
        ({"latitude": 1, "longitude": 2}, True),
        ({}, False),
        ({"latitude": 1.0}, False),
        ({"latitude": 1.0, "longitude": 2.0, "position": False}, False),
        ({"latitude": 1.0, "longitude": 2.0, "position": True}, True),
        ({"latitude": "1.0", "longitude": 2.0}, False),
        ({"latitude": None, "longitude": 2.0}, False),
        ({"latitude": True, "longitude": 2.0}, False),
        ({"latitude": 1.0, "longitude": 2.0, "position": "false"}, True),
    ],
)
def test_validity_filter_rules(attributes: dict[str, Any], accepted: bool) -> None:
    inner = LastValueStore()
    store = ValidityFilter(inner)

    store.set(_record("tracker", attributes=attributes))

    assert has_valid_position(_record("tracker", attributes=attributes)) is accepted
    assert len(inner.list()) == (1 if accepted else 0)


def test_validity_filter_list_delegates() -> None:
    inner = LastValueStore()
    inner.set(_record("no-coordinates"))

    assert ValidityFilter(inner).list() == inner.list()


# ----------------------------------------------------------------------
# ChangeNotifier
# ----------------------------------------------------------------------


def test_change_notifier_fires_once_per_set_even_when_filtered() -> None:
    inner = LastValueStore()
    seen: list[StateRecord] = []
    store = ChangeNotifier(ValidityFilter(inner), seen.append)

    valid = _located("a")
    invalid = _record("b")
    store.set(valid)
    store.set(invalid)

    assert seen == [valid, invalid]
    assert [record.entity_id for record in store.list()] == ["a"]


def test_change_notifier_writes_before_notifying() -> None:
    inner = LastValueStore()
    observed: list[int] = []
    store = ChangeNotifier(inner)
    store.on_state = lambda _record: observed.append(len(inner.list()))

    store.set(_record("a"))

    assert observed == [1]


def test_change_notifier_without_collaborators() -> None:
    store = ChangeNotifier()
    store.set(_record("a"))
    assert store.list() == []

    seen: list[StateRecord] = []
    ChangeNotifier(on_state=seen.append).set(_record("b"))
    assert [record.entity_id for record in seen] == ["b"]


# ----------------------------------------------------------------------
# build_store
# ----------------------------------------------------------------------


def test_build_store_last_value_without_filter() -> None:
    store = build_store()
    assert isinstance(store.store, LastValueStore)

    store.set(_record("a"))
    store.set(_record("a", "away"))
    assert [record.status for record in store.list()] == ["away"]


def test_build_store_ring_with_filter() -> None:
    seen: list[StateRecord] = []
    store = build_store(ring_size=2, filter_enabled=True, on_state=seen.append)

    assert isinstance(store.store, ValidityFilter)
    assert isinstance(store.store.store, RingHistoryStore)

    store.set(_located("a", "one"))
    store.set(_record("a", "dropped"))
    store.set(_located("a", "two"))
    store.set(_located("a", "three"))

    assert [record.status for record in store.list()] == ["two", "three"]
    assert [record.status for record in seen] == ["one", "dropped", "two", "three"]


def test_build_store_rejects_negative_ring_size() -> None:
    with pytest.raises(LocationConfigError):
        build_store(ring_size=-3)


# ----------------------------------------------------------------------
# Locking
# ----------------------------------------------------------------------


@pytest.mark.parametrize("store_factory", [LastValueStore, lambda: RingHistoryStore(8)])
def test_concurrent_set_and_list(store_factory) -> None:
    store = store_factory()
    errors: list[BaseException] = []
    done = threading.Event()

    def writer(prefix: str) -> None:
        try:
            for i in range(2000):
                store.set(_record(f"{prefix}.{i % 50}", str(i)))
        except BaseException as exc:  # pragma: no cover
            errors.append(exc)

    def reader() -> None:
        try:
            while not done.is_set():
                store.list()
        except BaseException as exc:  # pragma: no cover
            errors.append(exc)

    writers = [threading.Thread(target=writer, args=(f"w{n}",)) for n in range(4)]
    readers = [threading.Thread(target=reader) for _ in range(2)]
    for thread in readers + writers:
        thread.start()
    for thread in writers:
        thread.join()
    done.set()
    for thread in readers:
        thread.join()

    assert errors == []
    assert {record.entity_id for record in store.list()} == {f"w{n}.{i}" for n in range(4) for i in range(50)}
