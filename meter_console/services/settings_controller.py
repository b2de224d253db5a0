"""Live serial settings kept in lock-step with the host."""

from __future__ import annotations

import string
from typing import Any, Dict, Optional

from meter_console.core.logging_config import get_logger
from meter_console.core.remote_binding import HttpRemoteBinding, RemoteBindingError
from meter_console.core.signals import SignalChannel
from meter_console.database.local_store import CURRENT_SETTINGS_KEY, LocalStore
from meter_console.schemas import (
    DEFAULT_SERIAL_SETTINGS,
    Notice,
    Parity,
    SerialSettings,
    SettingsUpdateResult,
    SlaveAddressResult,
)

logger = get_logger(__name__)

# Accepted spellings of each settings field
FIELD_ALIASES: Dict[str, str] = {
    "port": "port",
    "baudRate": "baud_rate",
    "baud_rate": "baud_rate",
    "dataBits": "data_bits",
    "data_bits": "data_bits",
    "stopBits": "stop_bits",
    "stop_bits": "stop_bits",
    "parity": "parity",
    "slaveAddress": "slave_address",
    "slave_address": "slave_address",
    "slaveID": "slave_address",
}


def resolve_field_name(name: str) -> str:
    """Map a wire or attribute name to the SerialSettings attribute.

    Raises:
        ValueError: If the name is not a settings field
    """
    try:
        return FIELD_ALIASES[name]
    except KeyError:
        raise ValueError(f"Unknown settings field '{name}'") from None


class InvalidSlaveAddressError(ValueError):
    """Raised when slave address text is not a hex number in 1..255."""

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(f"Slave address must be a hexadecimal number 01-FF, got '{text}'")


def parse_slave_address(text: str) -> int:
    """Parse operator text as base-16; accept only 1..255."""
    cleaned = text.strip()
    if cleaned[:2].lower() == "0x":
        cleaned = cleaned[2:]
    if not cleaned or any(ch not in string.hexdigits for ch in cleaned):
        raise InvalidSlaveAddressError(text)
    value = int(cleaned, 16)
    if not 1 <= value <= 255:
        raise InvalidSlaveAddressError(text)
    return value


def format_slave_address(value: int) -> str:
    return f"{value:02X}"


class SlaveAddressInput:
    """Free-text slave address field.

    Keystrokes only change the text. The value is parsed and committed on
    blur; invalid text reverts to the last accepted value.
    """

    def __init__(self, controller: "SettingsController", value: int) -> None:
        self._controller = controller
        self.text = format_slave_address(value)
        self.accepted_text = self.text

    def reset(self, value: int) -> None:
        self.text = format_slave_address(value)
        self.accepted_text = self.text

    def on_input(self, text: str) -> Optional[Notice]:
        self.text = text.upper()
        if not text.strip():
            return Notice.warning(
                "Slave address empty",
                "Enter a slave address before communicating with the device.",
            )
        return None

    async def on_blur(self) -> SlaveAddressResult:
        current = self._controller.get_settings().slave_address
        if not self.text.strip():
            return SlaveAddressResult(
                accepted=False,
                text=self.text,
                slave_address=current,
                notice=Notice.warning("Slave address empty", "Enter a slave address."),
            )
        if self.text == self.accepted_text:
            return SlaveAddressResult(accepted=True, text=self.text, slave_address=current)

        try:
            value = parse_slave_address(self.text)
        except InvalidSlaveAddressError as exc:
            rejected = self.text
            self.text = self.accepted_text
            logger.info(
                "slave_address_rejected",
                text=rejected,
                reverted_to=self.accepted_text,
                message="Invalid slave address input reverted",
            )
            return SlaveAddressResult(
                accepted=False,
                text=self.text,
                slave_address=current,
                notice=Notice.error("Invalid address", str(exc)),
            )

        result = await self._controller.set_slave_address(value)
        return SlaveAddressResult(
            accepted=True,
            text=self.text,
            slave_address=value,
            notice=result.notice,
        )


class SettingsController:
    """Owns the live settings record.

    Every change is merged locally, written to the ``current-settings`` slot
    and then pushed to the host as a whole record. A failed push is reported
    but the local value is kept.
    """

    def __init__(
        self,
        binding: HttpRemoteBinding,
        local_store: LocalStore,
        restore_channel: Optional[SignalChannel[SerialSettings]] = None,
    ) -> None:
        self._binding = binding
        self._store = local_store
        self._live: SerialSettings = DEFAULT_SERIAL_SETTINGS
        self.slave_address_input = SlaveAddressInput(self, self._live.slave_address)
        if restore_channel is not None:
            restore_channel.subscribe(self.apply_restored)

    def get_settings(self) -> SerialSettings:
        return self._live.model_copy()

    async def update_field(self, name: str, value: Any) -> SettingsUpdateResult:
        """Merge one field, persist the live record and push it to the host.

        Raises:
            ValueError: Unknown field or value outside its allowed set
        """
        field = resolve_field_name(name)
        updated = SerialSettings.model_validate({**self._live.model_dump(), field: value})
        self._live = updated
        if field == "slave_address":
            self.slave_address_input.reset(updated.slave_address)
        self._store.set(CURRENT_SETTINGS_KEY, updated.to_json_bytes())
        logger.info(
            "settings_field_updated",
            field=field,
            value=getattr(updated, field),
            message="Live settings updated",
        )
        return await self._push(f"{field} set to {getattr(updated, field)}")

    async def set_port(self, port: str) -> SettingsUpdateResult:
        return await self.update_field("port", port)

    async def set_baud_rate(self, baud_rate: int) -> SettingsUpdateResult:
        return await self.update_field("baud_rate", baud_rate)

    async def set_data_bits(self, data_bits: int) -> SettingsUpdateResult:
        return await self.update_field("data_bits", data_bits)

    async def set_stop_bits(self, stop_bits: int) -> SettingsUpdateResult:
        return await self.update_field("stop_bits", stop_bits)

    async def set_parity(self, parity: Parity | str) -> SettingsUpdateResult:
        return await self.update_field("parity", parity)

    async def set_slave_address(self, slave_address: int) -> SettingsUpdateResult:
        return await self.update_field("slave_address", slave_address)

    async def _push(self, description: str) -> SettingsUpdateResult:
        settings = self._live
        try:
            ok = await self._binding.update_settings(settings)
        except RemoteBindingError as exc:
            logger.warning(
                "settings_push_failed",
                error=str(exc),
                message="Host rejected settings update, keeping local value",
            )
            return SettingsUpdateResult(
                ok=False,
                settings=settings,
                notice=Notice.error("Configuration failed", str(exc)),
            )
        if not ok:
            logger.warning(
                "settings_push_refused",
                message="Host returned failure for settings update, keeping local value",
            )
            return SettingsUpdateResult(
                ok=False,
                settings=settings,
                notice=Notice.error("Configuration failed", "Failed to update settings"),
            )
        return SettingsUpdateResult(
            ok=True,
            settings=settings,
            notice=Notice.success("Configuration updated", description),
        )

    def _adopt(self, settings: SerialSettings) -> None:
        self._live = settings
        self.slave_address_input.reset(settings.slave_address)

    async def load_persisted(self) -> bool:
        """Adopt a meaningful ``current-settings`` record and push it to the host."""
        stored = SerialSettings.from_snapshot(self._store.get(CURRENT_SETTINGS_KEY))
        if stored is None or not stored.is_meaningful():
            logger.info("persisted_settings_absent", message="Starting with default settings")
            return False
        self._adopt(stored)
        result = await self._push("persisted settings loaded")
        logger.info(
            "persisted_settings_loaded",
            port=stored.port,
            slave_address=stored.slave_address,
            pushed=result.ok,
        )
        return result.ok

    async def apply_restored(self, settings: SerialSettings) -> None:
        """Restore-channel handler: re-apply the restored record."""
        self._adopt(settings)
        result = await self._push("settings restored")
        logger.info(
            "restored_settings_applied",
            port=settings.port,
            slave_address=settings.slave_address,
            pushed=result.ok,
        )
