from __future__ import annotations

import asyncio
from contextlib import suppress, asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from meter_console.api.routes import router as device_router
from meter_console.api.settings_routes import router as settings_router
from meter_console.core.config import settings
from meter_console.core.logging_config import get_logger, setup_logging
from meter_console.core.mqtt_client import TelemetryMirror, mqtt_manager
from meter_console.core.remote_binding import HttpRemoteBinding
from meter_console.core.signals import SETTINGS_RESTORED, SignalChannel
from meter_console.database.local_store import create_local_store
from meter_console.schemas import SerialSettings
from meter_console.services.acquisition import AcquisitionService
from meter_console.services.persistence import PersistenceController
from meter_console.services.settings_controller import SettingsController
from meter_console.services.telemetry_store import TelemetryStore

setup_logging(
    log_level=settings.LOG_LEVEL,
    use_json=settings.LOG_JSON,
    include_caller_info=settings.LOG_INCLUDE_CALLER,
    service=settings.APP_NAME,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for the FastAPI application.
    Builds the console services once and hands them to routes via app.state.
    """
    # --- STARTUP LOGIC ---
    logger.info(
        "console_starting",
        remote_binding=settings.REMOTE_BINDING_URL,
        local_store=settings.LOCAL_STORE_URL,
        message="Starting meter console",
    )

    binding = HttpRemoteBinding(
        settings.REMOTE_BINDING_URL,
        timeout=settings.REMOTE_BINDING_TIMEOUT_SECONDS,
    )
    local_store = create_local_store(settings.LOCAL_STORE_URL, echo=settings.LOCAL_STORE_ECHO)
    restore_channel: SignalChannel[SerialSettings] = SignalChannel(SETTINGS_RESTORED)

    store = TelemetryStore(
        binding,
        protocol=settings.DEVICE_PROTOCOL,
        poll_interval_seconds=settings.TELEMETRY_POLL_INTERVAL_SECONDS,
        discard_stale=settings.TELEMETRY_DISCARD_STALE,
    )
    settings_controller = SettingsController(binding, local_store, restore_channel)

    app.state.remote_binding = binding
    app.state.local_store = local_store
    app.state.restore_channel = restore_channel
    app.state.telemetry_store = store
    app.state.settings_controller = settings_controller
    app.state.persistence_controller = PersistenceController(
        binding,
        local_store,
        restore_channel,
        live_settings=settings_controller.get_settings,
    )
    app.state.acquisition_service = AcquisitionService(binding, store, settings_controller)

    await settings_controller.load_persisted()

    # Start MQTT mirror
    await mqtt_manager.start()
    app.state.mqtt_manager = mqtt_manager
    app.state.telemetry_mirror = TelemetryMirror(store, mqtt_manager)
    app.state.telemetry_mirror.attach()

    app.state.poller_task = asyncio.create_task(store.run_polling(), name="telemetry-poller")

    yield  # Application is running...

    # --- SHUTDOWN LOGIC ---
    logger.info("console_stopping", message="Shutting down meter console")
    poller_task = getattr(app.state, "poller_task", None)
    if poller_task:
        poller_task.cancel()
        with suppress(asyncio.CancelledError):
            await poller_task

    await app.state.telemetry_mirror.drain()
    await mqtt_manager.stop()
    await binding.aclose()
    local_store.close()
    logger.info("console_stopped", message="Services closed")


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(device_router, prefix="/api")
app.include_router(settings_router, prefix="/api")


@app.get("/health", tags=["system"])
async def healthcheck(request: Request) -> dict:
    """Liveness plus a summary of the console services.

    The console stays "ok" while the device is disconnected or MQTT is off;
    those are normal operating states, not faults.
    """
    state = request.app.state
    store: TelemetryStore | None = getattr(state, "telemetry_store", None)
    poller_task = getattr(state, "poller_task", None)

    health = {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "telemetry": "ok",
            "local_store": "ok",
            "mqtt": "disabled",
        },
        "details": {},
    }

    if store is None or poller_task is None or poller_task.done():
        health["services"]["telemetry"] = "error"
        health["status"] = "degraded"
    else:
        health["details"]["telemetry"] = {
            "connected": store.connected,
            "poller_state": store.poller.state.value,
            "has_sample": store.get_sample() is not None,
        }

    local_store = getattr(state, "local_store", None)
    try:
        health["details"]["local_store"] = {"keys": local_store.keys() if local_store else []}
    except Exception as e:
        health["services"]["local_store"] = "error"
        health["details"]["local_store"] = {"error": str(e)}
        health["status"] = "degraded"

    mqtt_mgr = getattr(state, "mqtt_manager", None)
    if mqtt_mgr is not None and mqtt_mgr.enabled:
        health["services"]["mqtt"] = "ok" if mqtt_mgr.is_connected else "disconnected"

    return health
