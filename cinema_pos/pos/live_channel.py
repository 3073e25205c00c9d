"""
Live seat update channel.

Each joined showtime gets a Server-Sent Events stream from the reservation
service. A reader task parses the stream and queues events; a single consumer
task hands them to the handler one at a time, in arrival order.
"""

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from ..config import get_settings
from ..schemas.seat import SeatEventStatus

logger = logging.getLogger(__name__)

SEAT_UPDATE_EVENT = "seat-update"


@dataclass(frozen=True)
class SeatUpdateEvent:
    """A seat changed state for a showtime."""
    showtime_id: str
    seat_id: str
    status: SeatEventStatus
    expires_at: Optional[datetime] = None
    sequence: Optional[int] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "SeatUpdateEvent":
        expires_at = data.get("expires_at")
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        return cls(
            showtime_id=str(data["showtime_id"]),
            seat_id=str(data["seat_id"]),
            status=SeatEventStatus(data["status"]),
            expires_at=expires_at,
            sequence=data.get("sequence"),
        )


@dataclass
class ServerSentEvent:
    event: str = "message"
    data: str = ""
    id: Optional[str] = None


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Parse an SSE line stream into events. Comment lines (keepalives) are skipped."""
    current = ServerSentEvent()
    data_lines = []

    async for line in lines:
        if not line:
            if data_lines:
                current.data = "\n".join(data_lines)
                yield current
            current = ServerSentEvent()
            data_lines = []
            continue

        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            current.event = value
        elif name == "data":
            data_lines.append(value)
        elif name == "id":
            current.id = value

    if data_lines:
        current.data = "\n".join(data_lines)
        yield current


EventHandler = Callable[[SeatUpdateEvent], Awaitable[None]]
ResyncHandler = Callable[[], Awaitable[None]]

# Queue marker asking the consumer to run the resync callback
_RESYNC = object()


@dataclass
class _Subscription:
    showtime_id: str
    handler: EventHandler
    on_resync: Optional[ResyncHandler]
    queue: "asyncio.Queue[Any]" = field(default_factory=asyncio.Queue)
    reader: Optional[asyncio.Task] = None
    consumer: Optional[asyncio.Task] = None
    connected: asyncio.Event = field(default_factory=asyncio.Event)
    gave_up: bool = False
    last_sequence: Optional[int] = None


class LiveUpdateChannel:
    """
    Showtime-scoped seat update subscriptions.

    The channel is owned by whoever creates it (one per POS session) and must
    be closed by that owner. ``on_resync`` is awaited every time a stream
    (re)connects, so the owner can re-fetch state that events may have missed.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        reconnect_delay: Optional[float] = None,
        max_reconnect_delay: Optional[float] = None,
        max_reconnect_attempts: Optional[int] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.token = token or settings.api_token
        self._owns_client = client is None
        # Streams stay open indefinitely; only connecting is bounded
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(settings.request_timeout_seconds, read=None),
        )
        self.reconnect_delay = reconnect_delay if reconnect_delay is not None else settings.live_reconnect_delay_seconds
        self.max_reconnect_delay = (
            max_reconnect_delay if max_reconnect_delay is not None else settings.live_reconnect_max_delay_seconds
        )
        self.max_reconnect_attempts = (
            max_reconnect_attempts if max_reconnect_attempts is not None else settings.live_reconnect_attempts
        )
        self._subscriptions: Dict[str, _Subscription] = {}

    @property
    def joined(self) -> frozenset:
        return frozenset(self._subscriptions)

    def is_connected(self, showtime_id: str) -> bool:
        subscription = self._subscriptions.get(showtime_id)
        return bool(subscription and subscription.connected.is_set())

    async def wait_connected(self, showtime_id: str, timeout: Optional[float] = None) -> bool:
        subscription = self._subscriptions.get(showtime_id)
        if subscription is None:
            return False
        try:
            await asyncio.wait_for(subscription.connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def join(
        self,
        showtime_id: str,
        handler: EventHandler,
        on_resync: Optional[ResyncHandler] = None,
    ) -> None:
        """Subscribe to seat updates of a showtime. Joining twice is a no-op."""
        if showtime_id in self._subscriptions:
            return

        subscription = _Subscription(showtime_id=showtime_id, handler=handler, on_resync=on_resync)
        subscription.consumer = asyncio.create_task(self._consume(subscription))
        subscription.reader = asyncio.create_task(self._read(subscription))
        self._subscriptions[showtime_id] = subscription
        logger.info("Joined seat updates for showtime %s", showtime_id)

    async def leave(self, showtime_id: str) -> None:
        subscription = self._subscriptions.pop(showtime_id, None)
        if subscription is None:
            return

        for task in (subscription.reader, subscription.consumer):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Left seat updates for showtime %s", showtime_id)

    async def close(self) -> None:
        for showtime_id in list(self._subscriptions):
            await self.leave(showtime_id)
        if self._owns_client:
            await self.client.aclose()

    def _stream_headers(self) -> Dict[str, str]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _read(self, subscription: _Subscription) -> None:
        path = f"/api/v1/showtimes/{subscription.showtime_id}/seat-events"
        failures = 0
        delay = self.reconnect_delay

        while True:
            try:
                async with self.client.stream("GET", path, headers=self._stream_headers()) as response:
                    response.raise_for_status()
                    failures = 0
                    delay = self.reconnect_delay
                    subscription.connected.set()
                    # The resync covers whatever was missed while disconnected
                    subscription.last_sequence = None
                    await subscription.queue.put(_RESYNC)

                    async for sse in iter_sse_events(response.aiter_lines()):
                        if sse.event != SEAT_UPDATE_EVENT:
                            continue
                        try:
                            event = SeatUpdateEvent.from_payload(json.loads(sse.data))
                        except (ValueError, KeyError) as e:
                            logger.warning("Dropping malformed seat event %r: %s", sse.data, e)
                            continue
                        deliver, resync = self._track_sequence(subscription, event)
                        if resync:
                            await subscription.queue.put(_RESYNC)
                        if deliver:
                            await subscription.queue.put(event)

                logger.info("Seat update stream for showtime %s ended", subscription.showtime_id)
            except httpx.HTTPError as e:
                logger.warning("Seat update stream for showtime %s failed: %s", subscription.showtime_id, e)

            subscription.connected.clear()
            failures += 1
            if failures > self.max_reconnect_attempts:
                logger.error(
                    "Giving up on seat updates for showtime %s after %d attempts",
                    subscription.showtime_id, failures - 1
                )
                subscription.gave_up = True
                return

            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_reconnect_delay)

    def _track_sequence(self, subscription: _Subscription, event: SeatUpdateEvent) -> Tuple[bool, bool]:
        """
        Check an event's sequence number against the last one seen on this stream.

        Returns:
            (deliver the event, queue a resync before it)
        """
        sequence, last = event.sequence, subscription.last_sequence
        if sequence is None:
            return True, False
        if sequence == last:
            logger.debug("Dropping duplicate seat event %d for showtime %s", sequence, subscription.showtime_id)
            return False, False

        subscription.last_sequence = sequence
        if last is None or sequence == last + 1:
            return True, False
        if sequence < last:
            logger.warning(
                "Seat event sequence for showtime %s went back from %d to %d",
                subscription.showtime_id, last, sequence
            )
        else:
            logger.warning(
                "Missed %d seat event(s) for showtime %s", sequence - last - 1, subscription.showtime_id
            )
        return True, True

    async def _consume(self, subscription: _Subscription) -> None:
        while True:
            item = await subscription.queue.get()
            try:
                if item is _RESYNC:
                    if subscription.on_resync is not None:
                        await subscription.on_resync()
                else:
                    await subscription.handler(item)
            except Exception:
                logger.exception("Seat update handler failed for showtime %s", subscription.showtime_id)
            finally:
                subscription.queue.task_done()
