"""Start/stop of data acquisition and channel discovery."""

from __future__ import annotations

from typing import List

from meter_console.core.logging_config import get_logger
from meter_console.core.remote_binding import HttpRemoteBinding, RemoteBindingError
from meter_console.schemas import AcquisitionResult, Notice
from meter_console.services.settings_controller import SettingsController
from meter_console.services.telemetry_store import TelemetryStore

logger = get_logger(__name__)


class AcquisitionService:
    def __init__(
        self,
        binding: HttpRemoteBinding,
        store: TelemetryStore,
        settings_controller: SettingsController,
    ) -> None:
        self._binding = binding
        self._store = store
        self._settings = settings_controller

    def _result(self, ok: bool, notice: Notice) -> AcquisitionResult:
        return AcquisitionResult(ok=ok, status=self._store.get_status(), notice=notice)

    async def start(self) -> AcquisitionResult:
        """Mark the device connected and ask the host to start acquiring.

        The status flips optimistically and is reverted if the host refuses.
        """
        live = self._settings.get_settings()
        if not live.port.strip():
            return self._result(False, Notice.error("Configuration error", "Select a serial port first."))

        self._store.update_status(connected=True, error_message=None)
        try:
            started = await self._binding.start_acquisition()
        except RemoteBindingError as exc:
            self._store.update_status(connected=False, error_message=str(exc))
            logger.warning(
                "acquisition_start_error",
                port=live.port,
                error=str(exc),
                message="Host failed to start acquisition",
            )
            return self._result(False, Notice.error("Operation failed", str(exc)))

        if not started:
            self._store.update_status(connected=False, error_message="Start failed")
            logger.warning(
                "acquisition_start_refused",
                port=live.port,
                message="Host refused to start acquisition",
            )
            return self._result(False, Notice.error("Start failed", "Failed to start data acquisition."))

        logger.info("acquisition_started", port=live.port, slave_address=live.slave_address)
        return self._result(True, Notice.success("Acquisition started", "Data acquisition has started."))

    async def stop(self) -> AcquisitionResult:
        """Mark the device disconnected, then stop the host best-effort.

        A fetch already in flight is not cancelled; its result is dropped.
        """
        self._store.update_status(connected=False, error_message=None)
        try:
            await self._binding.stop_acquisition()
        except RemoteBindingError as exc:
            logger.warning(
                "acquisition_stop_failed",
                error=str(exc),
                message="Host stop failed, ignoring",
            )
        logger.info("acquisition_stopped")
        return self._result(True, Notice.success("Acquisition stopped", "Data acquisition has stopped."))

    async def list_channels(self) -> List[str]:
        try:
            return await self._binding.list_channels()
        except RemoteBindingError as exc:
            logger.error(
                "channel_list_failed",
                error=str(exc),
                message="Failed to get available channels",
            )
            return []
