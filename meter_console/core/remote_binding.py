"""Client for the host process's remote device functions."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from meter_console.core.logging_config import get_logger
from meter_console.schemas import SerialSettings

logger = get_logger(__name__)


class RemoteBindingError(Exception):
    """Raised when a remote function call fails or reports an error."""

    def __init__(self, function: str, message: str) -> None:
        self.function = function
        super().__init__(f"{function} failed: {message}")


class HttpRemoteBinding:
    """
    Calls the host's exported functions over HTTP.
    Each function is reached at POST {base_url}/{Function} with a JSON body
    {"args": [...]} and answers {"result": ...} or {"error": "..."}.
    """

    FETCH_TELEMETRY = "GetElectricalData"
    LIST_CHANNELS = "GetAvailablePorts"
    START_ACQUISITION = "StartPolling"
    STOP_ACQUISITION = "StopPolling"
    UPDATE_SETTINGS = "UpdateSerialConfig"
    SAVE_SNAPSHOT = "SaveSavedSerialConfig"
    LOAD_SNAPSHOT = "LoadSavedSerialConfig"
    CLEAR_SNAPSHOT = "ClearSavedSerialConfig"

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _call(self, function: str, *args: Any) -> Any:
        url = f"{self.base_url}/{function}"
        try:
            response = await self._client.post(url, json={"args": list(args)})
        except httpx.HTTPError as exc:
            logger.warning(
                "remote_call_transport_error",
                function=function,
                error=str(exc),
                error_type=type(exc).__name__,
                message="Remote call could not be delivered",
            )
            raise RemoteBindingError(function, str(exc) or type(exc).__name__) from exc

        if response.status_code >= 400:
            logger.warning(
                "remote_call_http_error",
                function=function,
                status_code=response.status_code,
                message="Remote call returned an HTTP error",
            )
            raise RemoteBindingError(function, f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteBindingError(function, "non-JSON reply") from exc

        if not isinstance(body, dict):
            raise RemoteBindingError(function, "unexpected reply shape")
        if body.get("error"):
            raise RemoteBindingError(function, str(body["error"]))

        logger.debug("remote_call_completed", function=function)
        return body.get("result")

    async def fetch_telemetry(self) -> Optional[Dict[str, Any]]:
        """Latest raw telemetry mapping, or None when the host has no data."""
        result = await self._call(self.FETCH_TELEMETRY)
        if not result or not isinstance(result, dict):
            return None
        return result

    async def list_channels(self) -> List[str]:
        result = await self._call(self.LIST_CHANNELS)
        if not isinstance(result, list):
            return []
        return [str(item) for item in result]

    async def start_acquisition(self) -> bool:
        return bool(await self._call(self.START_ACQUISITION))

    async def stop_acquisition(self) -> None:
        await self._call(self.STOP_ACQUISITION)

    async def update_settings(self, settings: SerialSettings) -> bool:
        """Push all six settings fields at once."""
        return bool(await self._call(self.UPDATE_SETTINGS, *settings.binding_args()))

    async def save_snapshot(self, settings: SerialSettings) -> None:
        if await self._call(self.SAVE_SNAPSHOT, *settings.binding_args()) is False:
            raise RemoteBindingError(self.SAVE_SNAPSHOT, "host refused to save snapshot")

    async def load_snapshot(self) -> Any:
        """Saved snapshot as a mapping or JSON string; None or "" when unset."""
        return await self._call(self.LOAD_SNAPSHOT)

    async def clear_snapshot(self) -> None:
        if await self._call(self.CLEAR_SNAPSHOT) is False:
            raise RemoteBindingError(self.CLEAR_SNAPSHOT, "host refused to clear snapshot")

    async def aclose(self) -> None:
        await self._client.aclose()
