import asyncio

from effectiveness_audit.events import EventChannel, progress_channel, run_channel, safe_publish


def test_channel_names():
    assert run_channel("abc") == "run:abc"
    assert progress_channel("abc") == "progress:abc"


def test_events_are_sequenced_per_publish_order():
    hub = EventChannel()
    sub = hub.subscribe("run:1")
    hub.publish("run:1", {"type": "a"})
    hub.publish("run:2", {"type": "ignored"})
    hub.publish("run:1", {"type": "b"})

    events = sub.pending()
    assert [e.type for e in events] == ["a", "b"]
    assert events[0].sequence < events[1].sequence


def test_full_queue_drops_oldest():
    hub = EventChannel()
    sub = hub.subscribe("run:1", maxsize=2)
    for i in range(4):
        hub.publish("run:1", {"type": str(i)})

    assert [e.type for e in sub.pending()] == ["2", "3"]
    assert sub.dropped == 2


def test_async_iteration_ends_after_close():
    async def scenario():
        hub = EventChannel()
        sub = hub.subscribe("progress:1")

        async def producer():
            for i in range(3):
                hub.publish("progress:1", {"type": "progress", "n": i})
                await asyncio.sleep(0)
            sub.close()

        received = []

        async def consumer():
            async for event in sub:
                received.append(event.payload["n"])

        await asyncio.gather(producer(), consumer())
        return received, hub.subscriber_count("progress:1")

    received, remaining = asyncio.run(scenario())
    assert received == [0, 1, 2]
    assert remaining == 0


def test_pending_keeps_close_marker():
    async def scenario():
        hub = EventChannel()
        sub = hub.subscribe("run:1")
        hub.publish("run:1", {"type": "x"})
        sub.close()
        drained = sub.pending()
        return drained, await sub.get()

    drained, after = asyncio.run(scenario())
    assert [e.type for e in drained] == ["x"]
    assert after is None


def test_safe_publish_swallows_transport_errors():
    class Broken:
        def publish(self, channel, payload):
            raise ConnectionError("gone")

    assert safe_publish(Broken(), "run:1", {}) is False
    assert safe_publish(None, "run:1", {}) is False
    assert safe_publish(EventChannel(), "run:1", {}) is True
