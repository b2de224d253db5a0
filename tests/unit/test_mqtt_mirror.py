"""Unit tests for the MQTT telemetry mirror."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from meter_console.core.config import Settings
from meter_console.core.mqtt_client import MQTTClientManager, TelemetryMirror
from meter_console.schemas import TelemetrySample


def _sample(voltage: float = 230.0) -> TelemetrySample:
    return TelemetrySample(voltage=voltage, timestamp="2024-05-01T10:00:00Z")


@pytest.fixture
def manager():
    mock = MagicMock(spec=MQTTClientManager)
    mock.enabled = True
    mock.publish = AsyncMock()
    return mock


def test_manager_disabled_without_broker_host():
    manager = MQTTClientManager(Settings(MQTT_BROKER_HOST=None))
    assert manager.enabled is False
    assert manager.is_connected is False


@pytest.mark.asyncio
async def test_disabled_manager_start_and_publish_are_noops():
    manager = MQTTClientManager(Settings(MQTT_BROKER_HOST=None))
    await manager.start()
    await manager.publish("telemetry", {"voltage": 1})
    await manager.stop()


@pytest.mark.asyncio
async def test_mirror_publishes_new_samples(telemetry_store, manager):
    mirror = TelemetryMirror(telemetry_store, manager)
    mirror.attach()

    telemetry_store.replace_sample(_sample())
    assert await mirror.drain() == 1

    manager.publish.assert_awaited_once()
    topic, payload = manager.publish.await_args.args
    assert topic == "telemetry"
    assert payload["voltage"] == 230.0
    assert "activePower" in payload


@pytest.mark.asyncio
async def test_mirror_skips_repeats_and_status_changes(telemetry_store, manager):
    mirror = TelemetryMirror(telemetry_store, manager)
    mirror.attach()

    telemetry_store.replace_sample(_sample())
    telemetry_store.update_status(error_message="noise")
    telemetry_store.replace_sample(_sample())
    await mirror.drain()

    assert manager.publish.await_count == 1


@pytest.mark.asyncio
async def test_mirror_idle_when_manager_disabled(telemetry_store, manager):
    manager.enabled = False
    mirror = TelemetryMirror(telemetry_store, manager)
    mirror.attach()

    telemetry_store.replace_sample(_sample())

    assert await mirror.drain() == 0
    manager.publish.assert_not_awaited()
