"""Background polling loop that refreshes the telemetry store."""

from __future__ import annotations

import asyncio
import itertools
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Mapping, Optional, Set

from pydantic.alias_generators import to_camel

from meter_console.core.logging_config import get_logger
from meter_console.core.remote_binding import HttpRemoteBinding
from meter_console.schemas import TelemetrySample

if TYPE_CHECKING:
    from meter_console.services.telemetry_store import TelemetryStore

logger = get_logger(__name__)

# Decimal places kept for each committed field
FIELD_PRECISION: Dict[str, int] = {
    "voltage": 1,
    "current": 6,
    "active_power": 3,
    "reactive_power": 3,
    "apparent_power": 3,
    "power_factor": 3,
    "frequency": 2,
    "active_energy": 3,
}

# Any of these above zero means the meter is answering
PRIMARY_CHANNELS = ("voltage", "frequency", "current", "active_power", "active_energy")


class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


@dataclass
class PollerStats:
    """Counters for the polling loop."""

    ticks: int = 0
    idle_ticks: int = 0
    fetch_failures: int = 0
    empty_fetches: int = 0
    invalid_samples: int = 0
    committed_samples: int = 0
    dropped_after_disconnect: int = 0
    stale_discarded: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _number(payload: Mapping[str, Any], field: str) -> float:
    """Read a numeric field by camelCase or snake_case key; 0.0 if unusable."""
    value = payload.get(to_camel(field), payload.get(field))
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def is_valid_sample(payload: Optional[Mapping[str, Any]]) -> bool:
    """True when at least one primary channel reports a live value."""
    if not payload:
        return False
    return any(_number(payload, field) > 0 for field in PRIMARY_CHANNELS)


def format_sample(payload: Mapping[str, Any]) -> TelemetrySample:
    """Round every field to its display precision and stamp the sample."""
    values = {
        field: round(_number(payload, field), digits)
        for field, digits in FIELD_PRECISION.items()
    }
    timestamp = payload.get("timestamp") or datetime.now(timezone.utc).isoformat()
    return TelemetrySample(**values, timestamp=str(timestamp))


class TelemetryPoller:
    """Fetches telemetry on a fixed period while the device is connected.

    Every period spawns a new tick without waiting for the previous one, so
    slow remote calls can overlap. Each fetch carries a sequence number; with
    ``discard_stale`` a completion older than the last committed sample is
    dropped, otherwise the last call to complete wins.
    """

    def __init__(
        self,
        store: "TelemetryStore",
        binding: HttpRemoteBinding,
        interval_seconds: float,
        discard_stale: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if interval_seconds <= 0:
            interval_seconds = 1.0
        self._store = store
        self._binding = binding
        self._interval = interval_seconds
        self._discard_stale = discard_stale
        self._sleep = sleep
        self._sequence = itertools.count(1)
        self._last_committed_seq = 0
        self._in_flight: Set[asyncio.Task] = set()
        self.stats = PollerStats()

    @property
    def state(self) -> PollerState:
        return PollerState.POLLING if self._store.connected else PollerState.IDLE

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def tick(self) -> None:
        """Run one poll cycle."""
        self.stats.ticks += 1

        if not self._store.connected:
            self.stats.idle_ticks += 1
            self._store.clear_sample()
            return

        seq = next(self._sequence)
        try:
            payload = await self._binding.fetch_telemetry()
        except Exception as exc:
            # Keep the last good sample; nothing is surfaced to the operator
            self.stats.fetch_failures += 1
            logger.debug(
                "telemetry_fetch_failed",
                sequence=seq,
                error=str(exc),
                error_type=type(exc).__name__,
                message="Telemetry fetch failed, keeping last sample",
            )
            return

        if not payload:
            self.stats.empty_fetches += 1
            return

        if not self._store.connected:
            self.stats.dropped_after_disconnect += 1
            logger.debug(
                "telemetry_dropped_after_disconnect",
                sequence=seq,
                message="Fetch completed after disconnect, result dropped",
            )
            return

        if self._discard_stale and seq < self._last_committed_seq:
            self.stats.stale_discarded += 1
            logger.info(
                "telemetry_stale_discarded",
                sequence=seq,
                last_committed=self._last_committed_seq,
                message="Out-of-order fetch completion discarded",
            )
            return

        if not is_valid_sample(payload):
            self.stats.invalid_samples += 1
            if self._store.get_sample() is None:
                self._store.replace_sample(None)
            return

        if seq < self._last_committed_seq:
            logger.debug(
                "telemetry_out_of_order_commit",
                sequence=seq,
                last_committed=self._last_committed_seq,
            )
        self._last_committed_seq = max(self._last_committed_seq, seq)
        self.stats.committed_samples += 1
        self._store.replace_sample(format_sample(payload))

    def _on_tick_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "telemetry_tick_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                message="Poll tick raised unexpectedly",
                exc_info=exc,
            )

    async def run(self) -> None:
        """Spawn a tick every interval until cancelled."""
        logger.info(
            "telemetry_polling_started",
            interval_seconds=self._interval,
            discard_stale=self._discard_stale,
            message="Starting telemetry polling",
        )
        try:
            while True:
                task = asyncio.create_task(self.tick(), name="telemetry-tick")
                self._in_flight.add(task)
                task.add_done_callback(self._on_tick_done)
                await self._sleep(self._interval)
        except asyncio.CancelledError:
            logger.info(
                "telemetry_polling_cancelled",
                in_flight=len(self._in_flight),
                message="Polling task cancelled",
            )
            for task in list(self._in_flight):
                task.cancel()
            raise
