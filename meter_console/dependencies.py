"""FastAPI dependency helpers for shared services."""

from __future__ import annotations

from fastapi import Request

from meter_console.services.acquisition import AcquisitionService
from meter_console.services.persistence import PersistenceController
from meter_console.services.settings_controller import SettingsController
from meter_console.services.telemetry_store import TelemetryStore


def _service(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise RuntimeError(f"{label} is not initialized")
    return service


def get_telemetry_store(request: Request) -> TelemetryStore:
    return _service(request, "telemetry_store", "Telemetry store")


def get_settings_controller(request: Request) -> SettingsController:
    return _service(request, "settings_controller", "Settings controller")


def get_persistence_controller(request: Request) -> PersistenceController:
    return _service(request, "persistence_controller", "Persistence controller")


def get_acquisition_service(request: Request) -> AcquisitionService:
    return _service(request, "acquisition_service", "Acquisition service")
