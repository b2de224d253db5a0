"""Save/restore protocol for the serial settings snapshot.

The saved snapshot lives in two tiers: the host's snapshot functions
(authoritative) and the local ``saved-settings-snapshot`` slot (fallback).
The operator-facing toggle is modelled as a small state machine:

    DISABLED --enable--> ENABLED_SYNCED        (host save succeeded)
    DISABLED --enable--> ENABLED_LOCAL_ONLY    (host save failed, local copy only)
    DISABLED --enable--> DISABLED              (nothing meaningful to save)
    ENABLED_* --disable--> DISABLED

Restore reads the host first, then the local slot, and broadcasts the
restored record on the ``settings-restored`` channel.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from meter_console.core.logging_config import get_logger
from meter_console.core.remote_binding import HttpRemoteBinding, RemoteBindingError
from meter_console.core.signals import SignalChannel
from meter_console.database.local_store import (
    CURRENT_SETTINGS_KEY,
    SAVED_SETTINGS_KEY,
    LocalStore,
)
from meter_console.schemas import (
    DEFAULT_SERIAL_SETTINGS,
    Notice,
    RestoreProposal,
    RestoreResult,
    SaveState,
    SaveToggleResult,
    SerialSettings,
)

logger = get_logger(__name__)


def _has_content(value: Any) -> bool:
    if isinstance(value, (str, bytes)):
        return bool(value.strip())
    return bool(value)


class PersistenceController:
    """Operator-controlled save/restore of the serial settings snapshot."""

    def __init__(
        self,
        binding: HttpRemoteBinding,
        local_store: LocalStore,
        restore_channel: SignalChannel[SerialSettings],
        live_settings: Optional[Callable[[], SerialSettings]] = None,
    ) -> None:
        self._binding = binding
        self._live_settings = live_settings
        self._store = local_store
        self._restore_channel = restore_channel
        self._state = SaveState.DISABLED
        self._pending: Optional[Any] = None

    @property
    def state(self) -> SaveState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._state != SaveState.DISABLED

    @property
    def has_pending_restore(self) -> bool:
        return self._pending is not None

    def _transition(self, target: SaveState, reason: str) -> None:
        if target != self._state:
            logger.info(
                "save_state_changed",
                previous=self._state.value,
                state=target.value,
                reason=reason,
            )
        self._state = target

    def _result(self, notice: Optional[Notice] = None) -> SaveToggleResult:
        return SaveToggleResult(enabled=self.enabled, state=self._state, notice=notice)

    def _read_current(self) -> SerialSettings:
        stored = SerialSettings.from_snapshot(self._store.get(CURRENT_SETTINGS_KEY))
        return stored or DEFAULT_SERIAL_SETTINGS

    async def _load_remote(self) -> Any:
        try:
            return await self._binding.load_snapshot()
        except RemoteBindingError as exc:
            logger.warning(
                "snapshot_remote_load_failed",
                error=str(exc),
                message="Host snapshot unavailable, using local store",
            )
            return None

    async def _load_snapshot(self) -> Any:
        """Raw snapshot from the host, else the local slot, else None."""
        remote = await self._load_remote()
        if _has_content(remote):
            return remote
        local = self._store.get(SAVED_SETTINGS_KEY)
        if local:
            return local
        return None

    # ------------------------------------------------------------------
    async def refresh_state(self) -> SaveToggleResult:
        """Derive the toggle state from what the two tiers currently hold."""
        if _has_content(await self._load_remote()):
            target = SaveState.ENABLED_SYNCED
        elif self._store.contains(SAVED_SETTINGS_KEY):
            target = SaveState.ENABLED_LOCAL_ONLY
        else:
            target = SaveState.DISABLED
        self._transition(target, "refresh")
        return self._result()

    async def toggle_save_enabled(self, enabled: bool) -> SaveToggleResult:
        if enabled:
            return await self._enable()
        return await self._disable()

    async def _enable(self) -> SaveToggleResult:
        try:
            current = self._read_current()
        except SQLAlchemyError as exc:
            return self._store_failed("enable", exc)
        if not current.is_meaningful() and self._live_settings is not None:
            # The slot is reset on disable while the running configuration stays
            current = self._live_settings()
        if not current.is_meaningful():
            self._transition(SaveState.DISABLED, "nothing_to_save")
            logger.warning(
                "snapshot_save_refused",
                message="Current settings have no port or slave address, nothing saved",
            )
            return self._result(
                Notice.warning(
                    "Cannot save settings",
                    "There is no serial configuration to save. Select a port and "
                    "set the slave address first.",
                )
            )

        target = SaveState.ENABLED_SYNCED
        try:
            await self._binding.save_snapshot(current)
        except RemoteBindingError as exc:
            target = SaveState.ENABLED_LOCAL_ONLY
            logger.warning(
                "snapshot_remote_save_failed",
                error=str(exc),
                message="Host save failed, snapshot kept in local store only",
            )
        try:
            self._store.set(SAVED_SETTINGS_KEY, current.to_json_bytes())
        except SQLAlchemyError as exc:
            if target == SaveState.ENABLED_LOCAL_ONLY:
                # Neither tier holds the snapshot
                self._transition(SaveState.DISABLED, "save_failed")
            else:
                self._transition(target, "enable")
            return self._store_failed("enable", exc)
        self._transition(target, "enable")
        return self._result()

    async def _disable(self) -> SaveToggleResult:
        try:
            await self._binding.clear_snapshot()
        except RemoteBindingError as exc:
            logger.warning(
                "snapshot_remote_clear_failed",
                error=str(exc),
                message="Host clear failed, ignoring",
            )
        try:
            self._store.remove(SAVED_SETTINGS_KEY)
            # Next launch starts from defaults; the running configuration is untouched
            self._store.set(CURRENT_SETTINGS_KEY, DEFAULT_SERIAL_SETTINGS.to_json_bytes())
        except SQLAlchemyError as exc:
            return self._store_failed("disable", exc)
        self._transition(SaveState.DISABLED, "disable")
        return self._result()

    def _store_failed(self, action: str, exc: SQLAlchemyError) -> SaveToggleResult:
        logger.error(
            "snapshot_local_store_failed",
            action=action,
            error=str(exc),
            error_type=type(exc).__name__,
            message="Local store unavailable while changing save setting",
        )
        return self._result(
            Notice.error("Error", f"Failed to {action} saved serial settings")
        )

    # ------------------------------------------------------------------
    async def restore(self) -> RestoreResult:
        """Load the saved snapshot and apply it immediately."""
        return await self._apply_restore(await self._load_snapshot())

    async def propose_restore(self) -> RestoreProposal:
        """First step of a restore: load the snapshot and hold it for confirmation."""
        raw = await self._load_snapshot()
        if raw is None:
            self._pending = None
            return RestoreProposal(
                pending=False,
                notice=Notice.warning("No saved settings", "There is no saved serial configuration."),
            )
        self._pending = raw
        return RestoreProposal(pending=True, settings=SerialSettings.from_snapshot(raw))

    async def confirm_restore(self) -> RestoreResult:
        """Second step: apply the snapshot held by propose_restore."""
        if self._pending is None:
            return RestoreResult(
                restored=False,
                notice=Notice.warning("Nothing to restore", "Request a restore before confirming it."),
            )
        raw, self._pending = self._pending, None
        return await self._apply_restore(raw)

    def cancel_restore(self) -> bool:
        """Drop a pending restore without writing anything."""
        had_pending = self._pending is not None
        self._pending = None
        return had_pending

    async def _apply_restore(self, raw: Any) -> RestoreResult:
        restored = SerialSettings.from_snapshot(raw)
        try:
            if restored is None or not restored.is_meaningful():
                logger.warning(
                    "restore_cancelled",
                    message="Saved settings have no valid port or slave address",
                )
                self._store.remove(CURRENT_SETTINGS_KEY)
                return RestoreResult(
                    restored=False,
                    notice=Notice.warning(
                        "Restore cancelled",
                        "The saved configuration has no valid port or slave address.",
                    ),
                )
            self._store.set(CURRENT_SETTINGS_KEY, restored.to_json_bytes())
        except SQLAlchemyError as exc:
            logger.error(
                "restore_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                message="Local store write failed during restore",
            )
            return RestoreResult(
                restored=False,
                notice=Notice.error("Error", "Failed to restore serial settings"),
            )

        delivered = await self._restore_channel.publish(restored)
        logger.info(
            "settings_restored",
            port=restored.port,
            slave_address=restored.slave_address,
            handlers=delivered,
        )
        return RestoreResult(
            restored=True,
            settings=restored,
            notice=Notice.success("Restored", "The saved serial settings were restored."),
        )
