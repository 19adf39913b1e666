"""In-process publish/subscribe channel for live run updates."""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
    """Anything that can fan a payload out to subscribers of a channel."""

    def publish(self, channel: str, payload: Mapping[str, Any]) -> None: ...


def run_channel(run_id: str) -> str:
    return f"run:{run_id}"


def progress_channel(run_id: str) -> str:
    return f"progress:{run_id}"


@dataclass(frozen=True)
class Event:
    channel: str
    sequence: int
    timestamp: float
    payload: Mapping[str, Any]

    @property
    def type(self) -> str | None:
        return self.payload.get("type")


class Subscription:
    """A bounded queue of events for one channel.

    Iterate with ``async for``. Iteration ends once the subscription is
    closed and drained.
    """

    _CLOSED = object()

    def __init__(self, hub: "EventChannel", channel: str, maxsize: int):
        self.channel = channel
        self.dropped = 0
        self._hub = hub
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def _offer(self, event: Event) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            # Drop the oldest so subscribers always see the latest state
            self._queue.get_nowait()
            self._queue.put_nowait(event)
            self.dropped += 1

    def pending(self) -> list[Event]:
        """Drain and return everything queued right now."""
        events = []
        closed = False
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is self._CLOSED:
                closed = True
            else:
                events.append(item)
        if closed:
            self._queue.put_nowait(self._CLOSED)
        return events

    async def get(self) -> Event | None:
        item = await self._queue.get()
        return None if item is self._CLOSED else item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._hub._unsubscribe(self)
        try:
            self._queue.put_nowait(self._CLOSED)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventChannel:
    """Fire-and-forget fan-out keyed by channel name.

    Events on a channel get increasing sequence numbers in publish order.
    Delivery is best-effort: a full subscriber queue drops its oldest event.
    """

    def __init__(self):
        self._subscribers: dict[str, list[Subscription]] = {}
        self._sequence = itertools.count(1)

    def subscribe(self, channel: str, maxsize: int = 256) -> Subscription:
        sub = Subscription(self, channel, maxsize)
        self._subscribers.setdefault(channel, []).append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.channel, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscribers.pop(sub.channel, None)

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    def publish(self, channel: str, payload: Mapping[str, Any]) -> None:
        event = Event(channel=channel, sequence=next(self._sequence), timestamp=time.time(), payload=payload)
        for sub in list(self._subscribers.get(channel, [])):
            sub._offer(event)


def safe_publish(broadcaster: Broadcaster | None, channel: str, payload: Mapping[str, Any]) -> bool:
    """Publish without letting transport failures reach the caller."""
    if broadcaster is None:
        return False
    try:
        broadcaster.publish(channel, payload)
        return True
    except Exception as e:
        logger.warning("Broadcast to %s failed: %s", channel, e)
        return False
