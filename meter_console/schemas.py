"""Shared Pydantic models and enums for the console core and API layer."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# Closed enumerations for serial settings
# =============================================================================

VALID_BAUD_RATES: Tuple[int, ...] = (4800, 9600, 19200, 38400, 115200)
VALID_DATA_BITS: Tuple[int, ...] = (7, 8)
VALID_STOP_BITS: Tuple[int, ...] = (1, 2)

# Host-side integer codes (serial library enum order)
_PARITY_CODES = {0: "None", 1: "Odd", 2: "Even"}
_ONE_STOP_BIT_CODE = 0


def _is_code(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _decode_host_codes(data: Dict[str, Any]) -> Dict[str, Any]:
    """Translate the host's integer parity and stop-bit codes in a snapshot.

    Only stored and remote snapshots carry these codes; operator edits must
    use the plain values.
    """
    for key in ("stopBits", "stop_bits"):
        if key in data and _is_code(data[key]) and data[key] == _ONE_STOP_BIT_CODE:
            data[key] = 1
    if "parity" in data and _is_code(data["parity"]):
        data["parity"] = _PARITY_CODES.get(data["parity"], data["parity"])
    return data


class Parity(str, Enum):
    NONE = "None"
    EVEN = "Even"
    ODD = "Odd"


def validate_choice(name: str, value: int, choices: Tuple[int, ...]) -> int:
    """Validate that an integer setting is one of its allowed values.

    Raises:
        ValueError: If value is not in choices
    """
    if value not in choices:
        raise ValueError(f"{name} must be one of {choices}, got {value!r}")
    return value


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Device status and telemetry
# =============================================================================

class DeviceStatus(CamelModel):
    """Connection state of the monitored device."""

    model_config = ConfigDict(frozen=True)

    connected: bool = False
    protocol: str = "Modbus RTU"
    last_update: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error_message: Optional[str] = None


class TelemetrySample(CamelModel):
    """One validated, formatted snapshot of the meter's electrical values."""

    model_config = ConfigDict(frozen=True)

    voltage: float = 0.0
    current: float = 0.0
    active_power: float = 0.0
    reactive_power: float = 0.0
    apparent_power: float = 0.0
    power_factor: float = 0.0
    frequency: float = 0.0
    active_energy: float = 0.0
    timestamp: str


# =============================================================================
# Serial settings
# =============================================================================

class SerialSettings(CamelModel):
    """The six serial fields pushed to the host as one record."""

    model_config = ConfigDict(frozen=True)

    port: str = ""
    baud_rate: int = 9600
    data_bits: int = 8
    stop_bits: int = 1
    parity: Parity = Parity.NONE
    # 0 means "not configured"; operators may only enter 1..255
    slave_address: int = Field(
        default=0,
        ge=0,
        le=255,
        validation_alias=AliasChoices("slaveAddress", "slave_address", "slaveID"),
        serialization_alias="slaveAddress",
    )

    @field_validator("baud_rate")
    @classmethod
    def _check_baud_rate(cls, v: int) -> int:
        return validate_choice("baud_rate", v, VALID_BAUD_RATES)

    @field_validator("data_bits")
    @classmethod
    def _check_data_bits(cls, v: int) -> int:
        return validate_choice("data_bits", v, VALID_DATA_BITS)

    @field_validator("stop_bits")
    @classmethod
    def _check_stop_bits(cls, v: int) -> int:
        return validate_choice("stop_bits", v, VALID_STOP_BITS)

    @field_validator("parity", mode="before")
    @classmethod
    def _normalize_parity(cls, v: Any) -> Any:
        if isinstance(v, str):
            for member in Parity:
                if member.value.lower() == v.strip().lower():
                    return member
        return v

    def is_meaningful(self) -> bool:
        """True when the record names a port or a configured slave address."""
        return bool(self.port.strip()) or self.slave_address > 0

    def binding_args(self) -> List[Any]:
        """Positional arguments for the host's six-field settings functions."""
        return [
            self.port,
            self.baud_rate,
            self.data_bits,
            self.stop_bits,
            self.parity.value,
            self.slave_address,
        ]

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_snapshot(cls, raw: Any) -> Optional["SerialSettings"]:
        """Leniently parse a stored or remote snapshot.

        Accepts a mapping, a JSON string or bytes. Missing or null fields take
        their defaults. Returns None for empty or unreadable input.
        """
        if raw is None:
            return None
        if isinstance(raw, SerialSettings):
            return raw
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                return None
        if isinstance(raw, str):
            if not raw.strip():
                return None
            try:
                raw = json.loads(raw)
            except ValueError:
                return None
        if not isinstance(raw, Mapping):
            return None
        data = _decode_host_codes(
            {key: value for key, value in raw.items() if value is not None}
        )
        try:
            return cls.model_validate(data)
        except ValidationError:
            return None


DEFAULT_SERIAL_SETTINGS = SerialSettings()


# =============================================================================
# Operator notices and operation results
# =============================================================================

class NoticeLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notice(CamelModel):
    """A message an operation wants surfaced to the operator."""

    level: NoticeLevel
    title: str
    description: str = ""

    @classmethod
    def success(cls, title: str, description: str = "") -> "Notice":
        return cls(level=NoticeLevel.SUCCESS, title=title, description=description)

    @classmethod
    def warning(cls, title: str, description: str = "") -> "Notice":
        return cls(level=NoticeLevel.WARNING, title=title, description=description)

    @classmethod
    def error(cls, title: str, description: str = "") -> "Notice":
        return cls(level=NoticeLevel.ERROR, title=title, description=description)


class SaveState(str, Enum):
    """Relationship between the live settings and the saved snapshot."""

    DISABLED = "disabled"
    ENABLED_SYNCED = "enabled_synced"
    ENABLED_LOCAL_ONLY = "enabled_local_only"


class SettingsUpdateResult(CamelModel):
    ok: bool
    settings: SerialSettings
    notice: Optional[Notice] = None


class SlaveAddressResult(CamelModel):
    accepted: bool
    text: str
    slave_address: int
    notice: Optional[Notice] = None


class SaveToggleResult(CamelModel):
    enabled: bool
    state: SaveState
    notice: Optional[Notice] = None


class RestoreResult(CamelModel):
    restored: bool
    settings: Optional[SerialSettings] = None
    notice: Optional[Notice] = None


class RestoreProposal(CamelModel):
    pending: bool
    settings: Optional[SerialSettings] = None
    notice: Optional[Notice] = None


class AcquisitionResult(CamelModel):
    ok: bool
    status: DeviceStatus
    notice: Optional[Notice] = None


# =============================================================================
# API request / response bodies
# =============================================================================

class FieldUpdateRequest(BaseModel):
    value: Any = Field(..., description="New value for the settings field")


class SlaveAddressInputRequest(BaseModel):
    text: str = Field(..., description="Slave address as typed (hexadecimal)")


class SaveToggleRequest(BaseModel):
    enabled: bool


class TelemetryResponse(CamelModel):
    sample: Optional[TelemetrySample] = None


class SettingsResponse(CamelModel):
    settings: SerialSettings
    slave_address_text: str
