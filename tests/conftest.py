import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from main import app
from meter_console.core.remote_binding import HttpRemoteBinding
from meter_console.core.signals import SETTINGS_RESTORED, SignalChannel
from meter_console.database.local_store import create_local_store
from meter_console.services.telemetry_store import TelemetryStore


@pytest.fixture
def local_store():
    """Fresh in-memory local store per test."""
    store = create_local_store("sqlite://")
    yield store
    store.close()


@pytest.fixture
def binding():
    """Remote binding double; every host call succeeds unless a test says otherwise."""
    mock = AsyncMock(spec=HttpRemoteBinding)
    mock.fetch_telemetry.return_value = None
    mock.list_channels.return_value = ["COM1", "COM3"]
    mock.start_acquisition.return_value = True
    mock.stop_acquisition.return_value = None
    mock.update_settings.return_value = True
    mock.save_snapshot.return_value = None
    mock.load_snapshot.return_value = None
    mock.clear_snapshot.return_value = None
    return mock


@pytest.fixture
def restore_channel():
    return SignalChannel(SETTINGS_RESTORED)


@pytest.fixture
def telemetry_store(binding):
    return TelemetryStore(binding)


@pytest.fixture
def client(binding, local_store):
    """
    Create a TestClient instance.
    The host binding, the local store and MQTT are replaced so no real
    connections are made while the lifespan runs.
    """
    with patch("main.HttpRemoteBinding", return_value=binding), \
         patch("main.create_local_store", return_value=local_store), \
         patch("main.mqtt_manager.start", new_callable=AsyncMock), \
         patch("main.mqtt_manager.stop", new_callable=AsyncMock):
        with TestClient(app) as c:
            yield c
