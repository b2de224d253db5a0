"""Unit tests for TelemetryStore."""

import pytest

from meter_console.schemas import TelemetrySample


def _sample(voltage: float = 230.0) -> TelemetrySample:
    return TelemetrySample(voltage=voltage, timestamp="2024-05-01T10:00:00Z")


def test_initial_state(telemetry_store):
    status = telemetry_store.get_status()
    assert status.connected is False
    assert status.protocol == "Modbus RTU"
    assert status.error_message is None
    assert telemetry_store.get_sample() is None


def test_getters_return_copies(telemetry_store):
    telemetry_store.replace_sample(_sample())

    assert telemetry_store.get_status() is not telemetry_store.get_status()
    assert telemetry_store.get_sample() is not telemetry_store.get_sample()
    assert telemetry_store.get_sample() == _sample()


def test_update_status_merges_and_stamps(telemetry_store):
    before = telemetry_store.get_status().last_update

    telemetry_store.update_status(error_message="Port busy")
    status = telemetry_store.get_status()

    assert status.error_message == "Port busy"
    assert status.protocol == "Modbus RTU"
    assert status.last_update >= before


def test_update_status_rejects_unknown_fields(telemetry_store):
    with pytest.raises(TypeError):
        telemetry_store.update_status(online=True)


def test_disconnect_clears_sample(telemetry_store):
    telemetry_store.update_status(connected=True)
    telemetry_store.replace_sample(_sample())

    telemetry_store.update_status(connected=False)

    assert telemetry_store.get_sample() is None


def test_status_update_while_connected_keeps_sample(telemetry_store):
    telemetry_store.update_status(connected=True)
    telemetry_store.replace_sample(_sample())

    telemetry_store.update_status(error_message=None)

    assert telemetry_store.get_sample() is not None


def test_subscribers_notified_in_order(telemetry_store):
    calls = []
    telemetry_store.subscribe(lambda: calls.append("first"))
    telemetry_store.subscribe(lambda: calls.append("second"))

    telemetry_store.update_status(connected=True)

    assert calls == ["first", "second"]


def test_failing_subscriber_does_not_block_others(telemetry_store):
    calls = []

    def broken():
        raise RuntimeError("listener bug")

    telemetry_store.subscribe(broken)
    telemetry_store.subscribe(lambda: calls.append("ok"))

    telemetry_store.replace_sample(_sample())

    assert calls == ["ok"]


def test_unsubscribe_stops_notifications(telemetry_store):
    calls = []
    unsubscribe = telemetry_store.subscribe(lambda: calls.append(1))

    unsubscribe()
    unsubscribe()
    telemetry_store.update_status(connected=True)

    assert calls == []


def test_same_listener_subscribed_twice_is_removed_independently(telemetry_store):
    calls = []

    def listener():
        calls.append(1)

    first = telemetry_store.subscribe(listener)
    telemetry_store.subscribe(listener)
    first()
    telemetry_store.update_status(connected=True)

    assert calls == [1]


def test_clear_sample_notifies_only_when_present(telemetry_store):
    calls = []
    telemetry_store.subscribe(lambda: calls.append(1))

    telemetry_store.clear_sample()
    assert calls == []

    telemetry_store.replace_sample(_sample())
    telemetry_store.clear_sample()
    assert calls == [1, 1]
    assert telemetry_store.get_sample() is None
