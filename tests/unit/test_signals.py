"""Unit tests for SignalChannel."""

import pytest

from meter_console.core.signals import SignalChannel


@pytest.mark.asyncio
async def test_publish_reaches_sync_and_async_handlers():
    channel = SignalChannel("test")
    received = []

    async def async_handler(payload):
        received.append(("async", payload))

    channel.subscribe(lambda payload: received.append(("sync", payload)))
    channel.subscribe(async_handler)

    delivered = await channel.publish(42)

    assert delivered == 2
    assert received == [("sync", 42), ("async", 42)]


@pytest.mark.asyncio
async def test_failing_handler_is_isolated():
    channel = SignalChannel("test")
    received = []

    async def broken(payload):
        raise RuntimeError("handler bug")

    channel.subscribe(broken)
    channel.subscribe(received.append)

    delivered = await channel.publish("x")

    assert delivered == 1
    assert received == ["x"]


@pytest.mark.asyncio
async def test_unsubscribe():
    channel = SignalChannel("test")
    received = []
    unsubscribe = channel.subscribe(received.append)
    assert channel.subscriber_count == 1

    unsubscribe()

    assert channel.subscriber_count == 0
    assert await channel.publish("x") == 0
    assert received == []
