from fastapi.testclient import TestClient

from meter_console.core.remote_binding import RemoteBindingError
from meter_console.database.local_store import CURRENT_SETTINGS_KEY, SAVED_SETTINGS_KEY

# Note: host binding and local store doubles come from conftest.py


def test_health_check(client: TestClient):
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["services"]["mqtt"] == "disabled"
    assert body["details"]["telemetry"]["connected"] is False


def test_read_root_docs(client: TestClient):
    """Test that the documentation endpoint is accessible."""
    response = client.get("/docs")
    assert response.status_code == 200


# --- Device status and telemetry ---


def test_initial_status_is_disconnected(client: TestClient):
    response = client.get("/api/status")
    assert response.status_code == 200
    body = response.json()
    assert body["connected"] is False
    assert body["protocol"] == "Modbus RTU"
    assert body["errorMessage"] is None
    assert "lastUpdate" in body


def test_telemetry_absent_before_acquisition(client: TestClient):
    response = client.get("/api/telemetry")
    assert response.status_code == 200
    assert response.json() == {"sample": None}


def test_telemetry_stats(client: TestClient):
    body = client.get("/api/telemetry/stats").json()
    assert body["state"] == "idle"
    assert body["interval_seconds"] == 1.0
    assert "committed_samples" in body


def test_list_channels(client: TestClient, binding):
    response = client.get("/api/channels")
    assert response.status_code == 200
    assert response.json() == ["COM1", "COM3"]


def test_list_channels_host_error_returns_empty(client: TestClient, binding):
    binding.list_channels.side_effect = RemoteBindingError("GetAvailablePorts", "boom")
    assert client.get("/api/channels").json() == []


# --- Acquisition ---


def test_start_without_port_is_rejected(client: TestClient, binding):
    response = client.post("/api/acquisition/start")
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert body["notice"]["level"] == "error"
    binding.start_acquisition.assert_not_awaited()


def test_start_and_stop_acquisition(client: TestClient, binding):
    client.put("/api/settings/fields/port", json={"value": "COM3"})

    started = client.post("/api/acquisition/start").json()
    assert started["ok"] is True
    assert started["status"]["connected"] is True
    assert client.get("/api/status").json()["connected"] is True

    stopped = client.post("/api/acquisition/stop").json()
    assert stopped["ok"] is True
    assert stopped["status"]["connected"] is False
    binding.stop_acquisition.assert_awaited_once()


# --- Settings ---


def test_get_default_settings(client: TestClient):
    body = client.get("/api/settings").json()
    assert body["settings"] == {
        "port": "",
        "baudRate": 9600,
        "dataBits": 8,
        "stopBits": 1,
        "parity": "None",
        "slaveAddress": 0,
    }
    assert body["slaveAddressText"] == "00"


def test_update_field_pushes_whole_record(client: TestClient, binding, local_store):
    response = client.put("/api/settings/fields/baudRate", json={"value": 19200})
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["settings"]["baudRate"] == 19200

    pushed = binding.update_settings.await_args.args[0]
    assert pushed.baud_rate == 19200
    assert b'"baudRate":19200' in local_store.get(CURRENT_SETTINGS_KEY)


def test_update_field_host_failure_keeps_local_value(client: TestClient, binding):
    binding.update_settings.return_value = False
    body = client.put("/api/settings/fields/parity", json={"value": "Even"}).json()
    assert body["ok"] is False
    assert body["notice"]["level"] == "error"
    assert client.get("/api/settings").json()["settings"]["parity"] == "Even"


def test_update_field_invalid_value(client: TestClient):
    response = client.put("/api/settings/fields/baudRate", json={"value": 1234})
    assert response.status_code == 422


def test_update_field_rejects_host_stop_bit_code(client: TestClient, local_store):
    response = client.put("/api/settings/fields/stopBits", json={"value": 0})
    assert response.status_code == 422
    assert local_store.get(CURRENT_SETTINGS_KEY) is None


def test_update_unknown_field(client: TestClient):
    response = client.put("/api/settings/fields/flowControl", json={"value": "rts"})
    assert response.status_code == 422
    assert "Unknown settings field" in response.json()["detail"]


def test_slave_address_input_and_confirm(client: TestClient, binding):
    typed = client.put("/api/settings/slave-address/input", json={"text": "0c"}).json()
    assert typed["text"] == "0C"
    assert typed["accepted"] is False
    binding.update_settings.assert_not_awaited()

    confirmed = client.post("/api/settings/slave-address/confirm").json()
    assert confirmed["accepted"] is True
    assert confirmed["slaveAddress"] == 12
    assert client.get("/api/settings").json()["settings"]["slaveAddress"] == 12


def test_slave_address_invalid_reverts(client: TestClient, binding, local_store):
    client.put("/api/settings/slave-address/input", json={"text": "GZ"})
    body = client.post("/api/settings/slave-address/confirm").json()
    assert body["accepted"] is False
    assert body["text"] == "00"
    assert body["notice"]["level"] == "error"
    binding.update_settings.assert_not_awaited()
    assert local_store.get(CURRENT_SETTINGS_KEY) is None


def test_slave_address_blank_input_warns(client: TestClient):
    body = client.put("/api/settings/slave-address/input", json={"text": "  "}).json()
    assert body["notice"]["level"] == "warning"


# --- Save / restore ---


def test_enable_save_without_configuration_is_refused(client: TestClient, binding, local_store):
    body = client.put("/api/settings/save", json={"enabled": True}).json()
    assert body["enabled"] is False
    assert body["state"] == "disabled"
    assert body["notice"]["level"] == "warning"
    binding.save_snapshot.assert_not_awaited()
    assert local_store.get(SAVED_SETTINGS_KEY) is None


def test_enable_and_disable_save(client: TestClient, binding, local_store):
    client.put("/api/settings/fields/port", json={"value": "COM3"})

    enabled = client.put("/api/settings/save", json={"enabled": True}).json()
    assert enabled["enabled"] is True
    assert enabled["state"] == "enabled_synced"
    assert local_store.contains(SAVED_SETTINGS_KEY)

    disabled = client.put("/api/settings/save", json={"enabled": False}).json()
    assert disabled["state"] == "disabled"
    binding.clear_snapshot.assert_awaited_once()
    assert not local_store.contains(SAVED_SETTINGS_KEY)


def test_save_state_reflects_host_snapshot(client: TestClient, binding):
    binding.load_snapshot.return_value = {"port": "COM3", "slaveAddress": 1}
    body = client.get("/api/settings/save").json()
    assert body["state"] == "enabled_synced"


def test_restore_without_snapshot(client: TestClient):
    body = client.post("/api/settings/restore").json()
    assert body["pending"] is False
    assert body["notice"]["title"] == "No saved settings"
    assert client.post("/api/settings/restore/cancel").json() == {"cancelled": False}


def test_restore_confirm_applies_snapshot(client: TestClient, binding):
    binding.load_snapshot.return_value = {
        "port": "COM5",
        "baudRate": 19200,
        "dataBits": 8,
        "stopBits": 1,
        "parity": "Odd",
        "slaveAddress": 7,
    }
    proposal = client.post("/api/settings/restore").json()
    assert proposal["pending"] is True
    assert proposal["settings"]["port"] == "COM5"

    result = client.post("/api/settings/restore/confirm").json()
    assert result["restored"] is True

    body = client.get("/api/settings").json()
    assert body["settings"]["port"] == "COM5"
    assert body["settings"]["parity"] == "Odd"
    assert body["slaveAddressText"] == "07"
    assert binding.update_settings.await_args.args[0].port == "COM5"


def test_restore_cancel_writes_nothing(client: TestClient, binding, local_store):
    binding.load_snapshot.return_value = {"port": "COM5", "slaveAddress": 7}
    client.post("/api/settings/restore")
    assert client.post("/api/settings/restore/cancel").json() == {"cancelled": True}
    assert local_store.get(CURRENT_SETTINGS_KEY) is None
    assert client.get("/api/settings").json()["settings"]["port"] == ""


def test_reenable_save_after_disable_keeps_live_port(client: TestClient, binding):
    client.put("/api/settings/fields/port", json={"value": "COM3"})
    client.put("/api/settings/save", json={"enabled": True})
    client.put("/api/settings/save", json={"enabled": False})

    body = client.put("/api/settings/save", json={"enabled": True}).json()

    assert body["state"] == "enabled_synced"
    assert binding.save_snapshot.await_args.args[0].port == "COM3"
