"""API routes for device status, telemetry and acquisition control."""

from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends

from meter_console.dependencies import get_acquisition_service, get_telemetry_store
from meter_console.schemas import AcquisitionResult, DeviceStatus, TelemetryResponse
from meter_console.services.acquisition import AcquisitionService
from meter_console.services.telemetry_store import TelemetryStore

router = APIRouter(tags=["device"])


@router.get("/status", response_model=DeviceStatus)
async def get_status(store: TelemetryStore = Depends(get_telemetry_store)) -> DeviceStatus:
    """Current connection status of the device."""
    return store.get_status()


@router.get("/telemetry", response_model=TelemetryResponse)
async def get_telemetry(store: TelemetryStore = Depends(get_telemetry_store)) -> TelemetryResponse:
    """Latest validated telemetry sample; ``sample`` is null when absent."""
    return TelemetryResponse(sample=store.get_sample())


@router.get("/telemetry/stats")
async def get_telemetry_stats(store: TelemetryStore = Depends(get_telemetry_store)) -> Dict:
    """Polling loop counters."""
    return {
        "state": store.poller.state.value,
        "interval_seconds": store.poller.interval_seconds,
        "in_flight": store.poller.in_flight,
        **store.poller.stats.to_dict(),
    }


@router.get("/channels", response_model=List[str])
async def list_channels(
    service: AcquisitionService = Depends(get_acquisition_service),
) -> List[str]:
    """Channels (serial ports) the host can open."""
    return await service.list_channels()


@router.post("/acquisition/start", response_model=AcquisitionResult)
async def start_acquisition(
    service: AcquisitionService = Depends(get_acquisition_service),
) -> AcquisitionResult:
    return await service.start()


@router.post("/acquisition/stop", response_model=AcquisitionResult)
async def stop_acquisition(
    service: AcquisitionService = Depends(get_acquisition_service),
) -> AcquisitionResult:
    return await service.stop()
