"""Ledger sync endpoints: manual sweep, status, and on/off switch."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from implant_ledger.api.dependencies import (
    ClientInfo,
    client_info,
    current_dentist,
    get_sync_control,
)
from implant_ledger.api.errors import SERVICE_ERRORS, to_http_exception
from implant_ledger.reconciliation.sync_control import SyncControl
from implant_schemas.sync import SyncResult, SyncStatusView, SyncToggleRequest

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])
logger = logging.getLogger("sync_api")

_sync_control_dep = Depends(get_sync_control)
_dentist_dep = Depends(current_dentist)
_client_dep = Depends(client_info)


@router.post("", response_model=SyncResult, summary="Reconcile every patient against the ledger")
async def run_sync(
    dentist_id: str = _dentist_dep,
    client: ClientInfo = _client_dep,
    control: SyncControl = _sync_control_dep,
) -> SyncResult:
    try:
        result = await control.run_sweep(
            dentist_id=dentist_id,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    logger.info(
        "sync completed: synced=%s patients=%s errors=%s",
        result.synced_records,
        result.patients_processed,
        len(result.errors),
    )
    return result


@router.get("/status", response_model=SyncStatusView, summary="Sync switch state and schedule")
def sync_status(control: SyncControl = _sync_control_dep) -> SyncStatusView:
    return control.status()


@router.post("/toggle", response_model=SyncStatusView, summary="Enable or disable ledger sync")
async def toggle_sync(
    payload: SyncToggleRequest,
    dentist_id: str = _dentist_dep,
    client: ClientInfo = _client_dep,
    control: SyncControl = _sync_control_dep,
) -> SyncStatusView:
    return await control.toggle(
        enabled=payload.enabled,
        dentist_id=dentist_id,
        sync_frequency_hours=payload.sync_frequency_hours,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
