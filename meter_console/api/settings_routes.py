"""API routes for serial settings editing, saving and restoring."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from meter_console.dependencies import get_persistence_controller, get_settings_controller
from meter_console.schemas import (
    FieldUpdateRequest,
    RestoreProposal,
    RestoreResult,
    SaveToggleRequest,
    SaveToggleResult,
    SettingsResponse,
    SettingsUpdateResult,
    SlaveAddressInputRequest,
    SlaveAddressResult,
)
from meter_console.services.persistence import PersistenceController
from meter_console.services.settings_controller import SettingsController

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse)
async def get_settings(
    controller: SettingsController = Depends(get_settings_controller),
) -> SettingsResponse:
    """Live settings plus the slave address text as currently typed."""
    return SettingsResponse(
        settings=controller.get_settings(),
        slave_address_text=controller.slave_address_input.text,
    )


@router.put("/fields/{field}", response_model=SettingsUpdateResult)
async def update_field(
    field: str,
    body: FieldUpdateRequest,
    controller: SettingsController = Depends(get_settings_controller),
) -> SettingsUpdateResult:
    """Commit one settings field and push the whole record to the host.

    A host failure is reported in the result; the local value is kept.
    """
    try:
        return await controller.update_field(field, body.value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )


@router.put("/slave-address/input", response_model=SlaveAddressResult)
async def slave_address_input(
    body: SlaveAddressInputRequest,
    controller: SettingsController = Depends(get_settings_controller),
) -> SlaveAddressResult:
    """Keystroke: store the text without converting it."""
    field = controller.slave_address_input
    notice = field.on_input(body.text)
    return SlaveAddressResult(
        accepted=field.text == field.accepted_text,
        text=field.text,
        slave_address=controller.get_settings().slave_address,
        notice=notice,
    )


@router.post("/slave-address/confirm", response_model=SlaveAddressResult)
async def slave_address_confirm(
    controller: SettingsController = Depends(get_settings_controller),
) -> SlaveAddressResult:
    """Focus lost: parse and commit the typed slave address, or revert it."""
    return await controller.slave_address_input.on_blur()


@router.get("/save", response_model=SaveToggleResult)
async def get_save_state(
    controller: PersistenceController = Depends(get_persistence_controller),
) -> SaveToggleResult:
    return await controller.refresh_state()


@router.put("/save", response_model=SaveToggleResult)
async def toggle_save(
    body: SaveToggleRequest,
    controller: PersistenceController = Depends(get_persistence_controller),
) -> SaveToggleResult:
    return await controller.toggle_save_enabled(body.enabled)


@router.post("/restore", response_model=RestoreProposal)
async def propose_restore(
    controller: PersistenceController = Depends(get_persistence_controller),
) -> RestoreProposal:
    """Load the saved snapshot and hold it until the operator confirms."""
    return await controller.propose_restore()


@router.post("/restore/confirm", response_model=RestoreResult)
async def confirm_restore(
    controller: PersistenceController = Depends(get_persistence_controller),
) -> RestoreResult:
    return await controller.confirm_restore()


@router.post("/restore/cancel")
async def cancel_restore(
    controller: PersistenceController = Depends(get_persistence_controller),
) -> dict:
    return {"cancelled": controller.cancel_restore()}
