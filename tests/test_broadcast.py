from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import UTC, datetime

import pytest
from aiohttp.test_utils import TestClient, TestServer

from halocation.broadcast import EventStream, format_event
from halocation.exceptions import HomeAssistantTransportError
from halocation.models.state import StateRecord
from halocation.server import create_app
from halocation.state import build_store


def _record(entity_id: str, status: str = "home", **attributes: object) -> StateRecord:
    when = datetime(2026, 1, 1, tzinfo=UTC)
    return StateRecord(
        entity_id=entity_id,
        status=status,
        attributes=dict(attributes),
        last_changed=when,
        last_updated=when,
    )


async def _collect(stream: EventStream, expected: int) -> list[StateRecord]:
    received: list[StateRecord] = []
    with stream.subscribe() as subscriber:
        async for record in subscriber.events():
            received.append(record)
            if len(received) == expected:
                break
    return received


@dataclass
class StubPinger:
    error: Exception | None = None

    async def ping(self) -> None:
        if self.error is not None:
            raise self.error


def test_format_event_uses_home_assistant_shape() -> None:
    frame = format_event(_record("device_tracker.phone", latitude=1.5))

    assert frame.startswith(b"data: ")
    assert frame.endswith(b"\n\n")
    payload = json.loads(frame[len(b"data: ") :])
    assert payload["entity_id"] == "device_tracker.phone"
    assert payload["state"] == "home"
    assert payload["attributes"] == {"latitude": 1.5}
    assert "status" not in payload


@pytest.mark.asyncio
async def test_subscriber_gets_snapshot_then_live_updates() -> None:
    store = build_store()
    store.set(_record("a"))
    store.set(_record("b", "away"))
    stream = EventStream(store.list)
    store.on_state = stream.emit

    with stream.subscribe() as subscriber:
        store.set(_record("c", "work"))
        received: list[StateRecord] = []
        async for record in subscriber.events():
            received.append(record)
            if len(received) == 3:
                break

    assert sorted(record.entity_id for record in received[:2]) == ["a", "b"]
    assert received[2].entity_id == "c"
    assert stream.subscriber_count == 0


@pytest.mark.asyncio
async def test_filtered_records_still_reach_subscribers() -> None:
    store = build_store(filter_enabled=True)
    stream = EventStream(store.list)
    store.on_state = stream.emit

    with stream.subscribe() as subscriber:
        store.set(_record("a"))
        received = await asyncio.wait_for(anext(subscriber.events()), 1.0)

    assert received.entity_id == "a"
    assert store.list() == []


@pytest.mark.asyncio
async def test_every_subscriber_receives_live_events() -> None:
    stream = EventStream()
    first_task = asyncio.create_task(_collect(stream, 2))
    second_task = asyncio.create_task(_collect(stream, 2))
    await asyncio.sleep(0)
    assert stream.subscriber_count == 2

    stream.emit(_record("a"))
    stream.emit(_record("b"))

    first, second = await asyncio.wait_for(asyncio.gather(first_task, second_task), 1.0)
    assert [r.entity_id for r in first] == ["a", "b"]
    assert [r.entity_id for r in second] == ["a", "b"]


@pytest.mark.asyncio
async def test_slow_subscriber_drops_live_events_beyond_queue() -> None:
    stream = EventStream(lambda: [_record("snap.1"), _record("snap.2"), _record("snap.3")], max_queue=4)

    with stream.subscribe() as subscriber:
        for i in range(5):
            stream.emit(_record(f"live.{i}"))
        stream.close()
        received = [record.entity_id async for record in subscriber.events()]

    assert received == ["snap.1", "snap.2", "snap.3", "live.0"]
    assert subscriber.dropped == 4


@pytest.mark.asyncio
async def test_close_ends_subscriptions_and_refuses_new_ones() -> None:
    stream = EventStream()
    task = asyncio.create_task(_collect(stream, 10))
    await asyncio.sleep(0)

    stream.close()
    assert await asyncio.wait_for(task, 1.0) == []

    with stream.subscribe() as subscriber:
        assert [record async for record in subscriber.events()] == []
    assert stream.subscriber_count == 0


# ----------------------------------------------------------------------
# HTTP surface
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health_ok() -> None:
    app = create_app(EventStream(), StubPinger())
    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.text() == "ok"
        assert resp.headers["Content-Type"] == "text/plain; charset=utf-8"


@pytest.mark.asyncio
async def test_health_failed_dependency() -> None:
    app = create_app(EventStream(), StubPinger(HomeAssistantTransportError("HTTP 502 from /api/")))
    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/health")
        assert resp.status == 424
        assert await resp.text() == "HTTP 502 from /api/"


@pytest.mark.asyncio
async def test_sse_endpoint_replays_and_streams() -> None:
    store = build_store(ring_size=2)
    store.set(_record("a", "one"))
    stream = EventStream(store.list)
    store.on_state = stream.emit

    async with TestClient(TestServer(create_app(stream, StubPinger()))) as client:
        resp = await client.get("/sse")
        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("text/event-stream")

        first = await asyncio.wait_for(resp.content.readline(), 1.0)
        assert json.loads(first[len(b"data: ") :])["state"] == "one"
        assert await resp.content.readline() == b"\n"

        store.set(_record("a", "two"))
        second = await asyncio.wait_for(resp.content.readline(), 1.0)
        assert json.loads(second[len(b"data: ") :])["state"] == "two"

        stream.close()
        resp.release()
