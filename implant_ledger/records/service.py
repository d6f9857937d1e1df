"""ProcedureRecordService: write path and read views for implant records.

A write is appended to the ledger first; the local reference is inserted only
after the append returns a transaction hash, so a failed append leaves no
local trace. Confirmation into the cache happens later, through the delayed
check scheduled here or through the next sweep.
"""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import ReconcilerSettings
from implant_ledger.audit.chain import AuditChain
from implant_ledger.common.exceptions import PersistenceError
from implant_ledger.infra.safe_logging import safe_log_payload
from implant_ledger.ledger.ports import LedgerPort, ProcedureRecord
from implant_ledger.reconciliation.reconciler import Reconciler
from implant_ledger.reconciliation.scheduler import DeferredTaskQueue
from implant_ledger.records.validation import validate_procedure_fields
from implant_ledger.store.cache import CacheStore
from implant_ledger.store.models import AuditAction, LedgerCacheEntry
from implant_ledger.store.references import ReferenceStore
from implant_schemas.records import (
    ImplantRecordData,
    PatientRecordsResponse,
    ProcedureRecordCreate,
    ProcedureRecordCreated,
    ProviderHistoryResponse,
    RecordSummary,
    RecordType,
    RecordView,
)
from observability.logging_config import get_logger

logger = get_logger("record_service")


def to_record_view(entry: LedgerCacheEntry) -> RecordView:
    return RecordView(
        tx_hash=entry.tx_hash,
        patient_id=entry.patient_id,
        dentist_id=entry.dentist_id,
        record_type=entry.record_type,
        location=entry.location,
        placement_date=entry.placement_date,
        removal_date=entry.removal_date,
        is_corrected=bool(entry.is_corrected),
        corrected_by_tx_hash=entry.corrected_by_tx_hash,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        details=dict(entry.record_data or {}),
    )


def summarize(views: list[RecordView]) -> RecordSummary:
    """Counts over views ordered newest first."""
    return RecordSummary(
        total_records=len(views),
        placements=sum(1 for v in views if v.record_type == RecordType.PLACEMENT.value),
        removals=sum(1 for v in views if v.record_type == RecordType.REMOVAL.value),
        last_activity=views[0].created_at if views else None,
    )


class ProcedureRecordService:
    def __init__(
        self,
        session: Session,
        ledger: LedgerPort,
        audit: AuditChain,
        settings: ReconcilerSettings,
        *,
        reconciler: Reconciler | None = None,
        scheduler: DeferredTaskQueue | None = None,
    ):
        self._session = session
        self._ledger = ledger
        self._audit = audit
        self._settings = settings
        self._reconciler = reconciler
        self._scheduler = scheduler

    async def log_record(
        self,
        *,
        dentist_id: str,
        request: ProcedureRecordCreate,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ProcedureRecordCreated:
        validate_procedure_fields(request)

        record_type = request.record_type.value
        payload = ImplantRecordData(
            brand=request.brand,
            model=request.model,
            lot=request.lot,
            diameter=request.diameter,
            length=request.length,
            location=request.location,
            placement_date=request.placement_date,
            removal_date=request.removal_date,
            removal_reason=request.removal_reason,
            entry_method=request.entry_method or "manual",
            dentist_id=dentist_id,
        ).to_ledger_dict()

        # LedgerUnavailable / LedgerRejected propagate; nothing local exists yet.
        tx_hash = await self._ledger.append(
            ProcedureRecord(patient_id=request.patient_id, record_type=record_type, record_data=payload)
        )

        try:
            ReferenceStore(self._session).insert(
                patient_id=request.patient_id,
                dentist_id=dentist_id,
                tx_hash=tx_hash,
                record_type=record_type,
            )
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "Reference insert failed after ledger append",
                extra={
                    "patient_id": request.patient_id,
                    "tx_hash": tx_hash,
                    "payload": safe_log_payload(payload),
                    "error": str(exc),
                },
            )
            raise PersistenceError(
                "Failed to store record reference", operation="insert_reference", tx_hash=tx_hash
            ) from exc

        self._schedule_verification(
            patient_id=request.patient_id,
            tx_hash=tx_hash,
            record_type=record_type,
            location=request.location,
            dentist_id=dentist_id,
        )

        await self._audit.record(
            action=AuditAction.for_write(record_type),
            dentist_id=dentist_id,
            patient_id=request.patient_id,
            metadata={"location": request.location, "recordType": record_type, "txHash": tx_hash},
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return ProcedureRecordCreated(
            tx_hash=tx_hash,
            patient_id=request.patient_id,
            record_type=request.record_type,
            location=request.location,
        )

    def _schedule_verification(
        self, *, patient_id: str, tx_hash: str, record_type: str, location: str, dentist_id: str
    ) -> None:
        if self._scheduler is None or self._reconciler is None:
            return
        reconciler = self._reconciler

        async def _verify() -> None:
            await reconciler.verify_written_record(
                patient_id=patient_id,
                tx_hash=tx_hash,
                record_type=record_type,
                location=location,
                dentist_id=dentist_id,
            )

        self._scheduler.schedule(_verify, self._settings.verify_delay_s, name=f"verify:{tx_hash}")

    async def patient_records(
        self,
        *,
        patient_id: str,
        dentist_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> PatientRecordsResponse:
        views = [to_record_view(e) for e in CacheStore(self._session).list_by_patient(patient_id)]
        audit_trail = self._audit.list_for_patient(patient_id, limit=self._settings.audit_trail_limit)

        await self._audit.record(
            action=AuditAction.PATIENT_RECORDS_VIEW,
            dentist_id=dentist_id,
            patient_id=patient_id,
            metadata={"recordCount": len(views)},
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return PatientRecordsResponse(
            patient_id=patient_id,
            records=views,
            audit_trail=audit_trail,
            summary=summarize(views),
        )

    async def provider_history(
        self,
        *,
        dentist_id: str,
        limit: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ProviderHistoryResponse:
        limit = limit or self._settings.provider_history_limit
        views = [to_record_view(e) for e in CacheStore(self._session).list_by_dentist(dentist_id, limit=limit)]

        await self._audit.record(
            action=AuditAction.PROVIDER_HISTORY_VIEW,
            dentist_id=dentist_id,
            patient_id=None,
            metadata={"recordCount": len(views)},
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return ProviderHistoryResponse(
            dentist_id=dentist_id,
            provider_history=views,
            summary=summarize(views),
        )


__all__ = ["ProcedureRecordService", "summarize", "to_record_view"]
