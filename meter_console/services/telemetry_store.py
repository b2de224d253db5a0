"""Single source of truth for device status and the latest telemetry sample."""

from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from meter_console.core.logging_config import get_logger
from meter_console.core.remote_binding import HttpRemoteBinding
from meter_console.schemas import DeviceStatus, TelemetrySample
from meter_console.services.poller import TelemetryPoller

logger = get_logger(__name__)

Listener = Callable[[], None]


class TelemetryStore:
    """Holds device status and the latest sample, and notifies subscribers.

    Features:
    - Copy-on-read getters; the stored records are never handed out
    - Synchronous fan-out in registration order, one failing subscriber
      does not stop the others
    - Owns the poller; only ``connected`` suppresses fetching
    """

    def __init__(
        self,
        binding: HttpRemoteBinding,
        protocol: str = "Modbus RTU",
        poll_interval_seconds: float = 1.0,
        discard_stale: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._status = DeviceStatus(connected=False, protocol=protocol)
        self._sample: Optional[TelemetrySample] = None
        self._listeners: Dict[int, Listener] = {}
        self._ids = itertools.count()
        self.poller = TelemetryPoller(
            self,
            binding,
            poll_interval_seconds,
            discard_stale=discard_stale,
            sleep=sleep,
        )

    @property
    def connected(self) -> bool:
        return self._status.connected

    def get_status(self) -> DeviceStatus:
        return self._status.model_copy()

    def get_sample(self) -> Optional[TelemetrySample]:
        return self._sample.model_copy() if self._sample is not None else None

    def update_status(self, **fields: Any) -> None:
        """Merge status fields, stamp last_update and notify subscribers.

        Turning ``connected`` off also drops the stored sample.
        """
        unknown = set(fields) - set(DeviceStatus.model_fields)
        if unknown:
            raise TypeError(f"Unknown status fields: {sorted(unknown)}")

        was_connected = self._status.connected
        self._status = self._status.model_copy(
            update={**fields, "last_update": datetime.now(timezone.utc)}
        )
        if was_connected and not self._status.connected:
            self._sample = None
        logger.debug(
            "device_status_updated",
            connected=self._status.connected,
            error_message=self._status.error_message,
        )
        self._notify()

    def replace_sample(self, sample: Optional[TelemetrySample]) -> None:
        """Swap in a new sample (or explicit absence) and notify. Used by the poller."""
        self._sample = sample
        self._notify()

    def clear_sample(self) -> None:
        """Drop the stored sample, notifying only if one was present."""
        if self._sample is None:
            return
        self._sample = None
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener and return a function removing it."""
        token = next(self._ids)
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners.values()):
            try:
                listener()
            except Exception as exc:
                logger.error(
                    "subscriber_failed",
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    error=str(exc),
                    error_type=type(exc).__name__,
                    message="Store subscriber raised, continuing fan-out",
                    exc_info=True,
                )

    async def run_polling(self) -> None:
        """Drive the poller for the lifetime of the process."""
        await self.poller.run()
