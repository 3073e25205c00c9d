"""
Tests for the live seat update channel: SSE parsing, ordering and resync.
"""

import asyncio
import json

import httpx
import pytest_asyncio

from cinema_pos.pos.live_channel import LiveUpdateChannel, SeatUpdateEvent, iter_sse_events
from cinema_pos.schemas.seat import SeatEventStatus
from tests.fakes import SHOWTIME_ID, seat_id


async def lines_of(text: str):
    for line in text.split("\n"):
        yield line


def sse_body(*events) -> bytes:
    chunks = [": connected\n\n"]
    for seat_number, status, sequence in events:
        payload = {
            "showtime_id": SHOWTIME_ID,
            "seat_id": seat_id(seat_number),
            "status": status,
            "sequence": sequence,
        }
        chunks.append(f"event: seat-update\nid: {sequence}\ndata: {json.dumps(payload)}\n\n")
    return "".join(chunks).encode()


async def wait_until(condition, timeout: float = 2.0) -> None:
    async def poll():
        while not condition():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


class TestIterSseEvents:
    async def test_parses_events_and_skips_comments(self):
        text = (
            ": keepalive\n"
            "\n"
            "event: seat-update\n"
            "id: 7\n"
            "data: {\"a\": 1}\n"
            "\n"
            "data: first\n"
            "data: second\n"
            "\n"
        )

        events = [event async for event in iter_sse_events(lines_of(text))]

        assert [(event.event, event.id, event.data) for event in events] == [
            ("seat-update", "7", '{"a": 1}'),
            ("message", None, "first\nsecond"),
        ]

    async def test_trailing_event_without_blank_line(self):
        events = [event async for event in iter_sse_events(lines_of("event: x\ndata: tail"))]

        assert [(event.event, event.data) for event in events] == [("x", "tail")]


class TestSeatUpdateEvent:
    def test_from_payload(self):
        event = SeatUpdateEvent.from_payload({
            "showtime_id": SHOWTIME_ID,
            "seat_id": seat_id("A1"),
            "status": "held",
            "expires_at": "2026-10-19T18:10:00Z",
            "sequence": 3,
        })

        assert event.status == SeatEventStatus.HELD
        assert event.expires_at.tzinfo is not None
        assert event.sequence == 3


class StreamServer:
    """Serves one canned SSE body per connection, then refuses connections."""

    def __init__(self, *bodies: bytes):
        self.bodies = list(bodies)
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.bodies:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            content=self.bodies.pop(0),
        )


@pytest_asyncio.fixture
async def make_channel():
    channels = []

    def factory(server: StreamServer) -> LiveUpdateChannel:
        client = httpx.AsyncClient(base_url="http://pos.test", transport=httpx.MockTransport(server.handler))
        channel = LiveUpdateChannel(
            base_url="http://pos.test",
            token="token-1",
            client=client,
            reconnect_delay=0,
            max_reconnect_delay=0,
            max_reconnect_attempts=2,
        )
        channels.append((channel, client))
        return channel

    yield factory
    for channel, client in channels:
        await channel.close()
        await client.aclose()


class TestLiveUpdateChannel:
    async def test_delivers_events_in_order_one_at_a_time(self, make_channel):
        server = StreamServer(sse_body(("A1", "held", 1), ("A2", "held", 2), ("A1", "released", 3)))
        channel = make_channel(server)
        received = []
        active = []

        async def handler(event):
            active.append(event)
            assert len(active) == 1
            # The first event is the slowest; later ones must still wait for it
            await asyncio.sleep(0.05 if event.sequence == 1 else 0)
            received.append(event.sequence)
            active.remove(event)

        await channel.join(SHOWTIME_ID, handler)
        await wait_until(lambda: len(received) == 3)

        assert received == [1, 2, 3]
        assert server.requests[0].url.path == f"/api/v1/showtimes/{SHOWTIME_ID}/seat-events"
        assert server.requests[0].headers["Authorization"] == "Bearer token-1"

    async def test_resync_runs_on_every_connect(self, make_channel):
        server = StreamServer(sse_body(("A1", "held", 1)), sse_body(("A2", "booked", 2)))
        channel = make_channel(server)
        log = []

        async def handler(event):
            log.append(event.seat_id)

        async def resync():
            log.append("resync")

        await channel.join(SHOWTIME_ID, handler, resync)
        await wait_until(lambda: len(log) == 4)

        assert log == ["resync", seat_id("A1"), "resync", seat_id("A2")]

    async def test_sequence_gap_triggers_resync(self, make_channel):
        server = StreamServer(sse_body(("A1", "held", 1), ("A2", "held", 4)))
        channel = make_channel(server)
        log = []

        async def handler(event):
            log.append(event.sequence)

        async def resync():
            log.append("resync")

        await channel.join(SHOWTIME_ID, handler, resync)
        await wait_until(lambda: len(log) == 4)

        assert log == ["resync", 1, "resync", 4]

    async def test_duplicate_sequence_is_delivered_once(self, make_channel):
        server = StreamServer(sse_body(("A1", "held", 1), ("A1", "held", 1), ("A1", "released", 2)))
        channel = make_channel(server)
        received = []

        async def handler(event):
            received.append((event.sequence, event.status))

        await channel.join(SHOWTIME_ID, handler)
        await wait_until(lambda: len(received) == 2)
        await asyncio.sleep(0.05)

        assert received == [(1, SeatEventStatus.HELD), (2, SeatEventStatus.RELEASED)]

    async def test_gives_up_after_max_attempts(self, make_channel):
        server = StreamServer()
        channel = make_channel(server)

        async def handler(event):
            pass

        await channel.join(SHOWTIME_ID, handler)
        await wait_until(lambda: len(server.requests) == 3)
        await asyncio.sleep(0.05)

        assert len(server.requests) == 3
        assert not channel.is_connected(SHOWTIME_ID)

    async def test_malformed_events_are_dropped(self, make_channel):
        body = b"event: seat-update\ndata: not json\n\n" + sse_body(("A3", "held", 1))
        server = StreamServer(body)
        channel = make_channel(server)
        received = []

        async def handler(event):
            received.append(event.seat_id)

        await channel.join(SHOWTIME_ID, handler)
        await wait_until(lambda: received)

        assert received == [seat_id("A3")]

    async def test_handler_errors_do_not_stop_the_consumer(self, make_channel):
        server = StreamServer(sse_body(("A1", "held", 1), ("A2", "held", 2)))
        channel = make_channel(server)
        received = []

        async def handler(event):
            if event.sequence == 1:
                raise RuntimeError("boom")
            received.append(event.sequence)

        await channel.join(SHOWTIME_ID, handler)
        await wait_until(lambda: received)

        assert received == [2]

    async def test_leave_stops_the_subscription(self, make_channel):
        server = StreamServer(sse_body(("A1", "held", 1)))
        channel = make_channel(server)

        async def handler(event):
            pass

        await channel.join(SHOWTIME_ID, handler)
        await channel.join(SHOWTIME_ID, handler)
        assert channel.joined == frozenset({SHOWTIME_ID})

        await channel.leave(SHOWTIME_ID)

        assert channel.joined == frozenset()
        assert not await channel.wait_connected(SHOWTIME_ID, timeout=0)
