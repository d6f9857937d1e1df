"""Procedure record endpoints: log, correct, and view implant records."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status

from implant_ledger.api.dependencies import (
    ClientInfo,
    client_info,
    current_dentist,
    current_dentist_name,
    get_correction_manager,
    get_record_service,
)
from implant_ledger.api.errors import SERVICE_ERRORS, to_http_exception
from implant_ledger.corrections.service import CorrectionManager
from implant_ledger.records.service import ProcedureRecordService
from implant_schemas.records import (
    CorrectionChainView,
    CorrectionRequest,
    CorrectionResult,
    PatientRecordsResponse,
    ProcedureRecordCreate,
    ProcedureRecordCreated,
    ProviderHistoryResponse,
)

router = APIRouter(prefix="/api/v1", tags=["records"])
logger = logging.getLogger("records_api")

_record_service_dep = Depends(get_record_service)
_correction_manager_dep = Depends(get_correction_manager)
_dentist_dep = Depends(current_dentist)
_dentist_name_dep = Depends(current_dentist_name)
_client_dep = Depends(client_info)


@router.post(
    "/records",
    response_model=ProcedureRecordCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Log an implant placement or removal",
)
async def log_record(
    payload: ProcedureRecordCreate,
    dentist_id: str = _dentist_dep,
    client: ClientInfo = _client_dep,
    service: ProcedureRecordService = _record_service_dep,
) -> ProcedureRecordCreated:
    try:
        return await service.log_record(
            dentist_id=dentist_id,
            request=payload,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
    except SERVICE_ERRORS as exc:
        logger.warning("log_record failed: %s", exc)
        raise to_http_exception(exc) from exc


@router.put(
    "/records/correction",
    response_model=CorrectionResult,
    summary="Supersede a confirmed record with a corrected one",
)
async def correct_record(
    payload: CorrectionRequest,
    dentist_id: str = _dentist_dep,
    dentist_name: str | None = _dentist_name_dep,
    client: ClientInfo = _client_dep,
    manager: CorrectionManager = _correction_manager_dep,
) -> CorrectionResult:
    try:
        return await manager.correct(
            payload,
            dentist_id=dentist_id,
            dentist_name=dentist_name,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
    except SERVICE_ERRORS as exc:
        logger.warning("correct_record failed: %s", exc)
        raise to_http_exception(exc) from exc


@router.get(
    "/records/{tx_hash}/chain",
    response_model=CorrectionChainView,
    summary="Correction lineage from a record to its live successor",
)
async def correction_chain(
    tx_hash: str,
    dentist_id: str = _dentist_dep,
    client: ClientInfo = _client_dep,
    manager: CorrectionManager = _correction_manager_dep,
) -> CorrectionChainView:
    try:
        return await manager.view_chain(
            tx_hash,
            dentist_id=dentist_id,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc


@router.get(
    "/patients/{patient_id}/records",
    response_model=PatientRecordsResponse,
    summary="Confirmed records and recent audit trail for a patient",
)
async def patient_records(
    patient_id: str,
    dentist_id: str = _dentist_dep,
    client: ClientInfo = _client_dep,
    service: ProcedureRecordService = _record_service_dep,
) -> PatientRecordsResponse:
    return await service.patient_records(
        patient_id=patient_id,
        dentist_id=dentist_id,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )


@router.get(
    "/provider/history",
    response_model=ProviderHistoryResponse,
    summary="Confirmed records logged by the calling dentist",
)
async def provider_history(
    limit: int | None = Query(default=None, ge=1, le=500),
    dentist_id: str = _dentist_dep,
    client: ClientInfo = _client_dep,
    service: ProcedureRecordService = _record_service_dep,
) -> ProviderHistoryResponse:
    return await service.provider_history(
        dentist_id=dentist_id,
        limit=limit,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
