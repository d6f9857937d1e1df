"""CorrectionManager: supersede a confirmed ledger entry with a new one.

The ledger is immutable, so a correction is an ordinary new append whose
payload carries the edit reason and a back-reference to the original hash.
Only after the append succeeds are the original's reference and cache rows
marked corrected and a fresh reference inserted for the new hash, all in one
transaction. The new entry becomes live when the reconciler confirms it.
"""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from implant_ledger.audit.chain import AuditChain
from implant_ledger.common.exceptions import (
    CorrectionChainError,
    PersistenceError,
    RecordNotFound,
    RecordValidationError,
)
from implant_ledger.ledger.ports import LedgerPort, ProcedureRecord
from implant_ledger.store.cache import CacheStore
from implant_ledger.store.models import AuditAction
from implant_ledger.store.references import ReferenceStore
from implant_schemas.records import CorrectionChainView, CorrectionRequest, CorrectionResult, ImplantRecordData
from observability.logging_config import get_logger
from observability.metrics import get_metrics_client

logger = get_logger("corrections")


class CorrectionManager:
    def __init__(self, session: Session, ledger: LedgerPort, audit: AuditChain | None = None):
        self._session = session
        self._ledger = ledger
        self._audit = audit

    async def correct(
        self,
        request: CorrectionRequest,
        *,
        dentist_id: str,
        dentist_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> CorrectionResult:
        if not request.location or not request.edit_reason:
            raise RecordValidationError(
                "Original transaction hash, patient ID, record type, location, and edit reason are required"
            )

        original_tx_hash = request.original_tx_hash
        cache = CacheStore(self._session)
        references = ReferenceStore(self._session)

        original = cache.get_live(original_tx_hash)
        if (
            original is None
            or original.patient_id != request.patient_id
            or (dentist_id and original.dentist_id != dentist_id)
        ):
            raise RecordNotFound("Original record not found or already corrected", tx_hash=original_tx_hash)

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
            entry_method="correction",
            dentist_id=dentist_id,
            dentist_name=dentist_name,
            edit_reason=request.edit_reason,
            original_tx_hash=original_tx_hash,
        ).to_ledger_dict()

        # Append failure aborts with the original still live.
        new_tx_hash = await self._ledger.append(
            ProcedureRecord(patient_id=request.patient_id, record_type=record_type, record_data=payload)
        )

        try:
            superseded = references.mark_corrected(original_tx_hash, new_tx_hash) and cache.mark_corrected(
                original_tx_hash, new_tx_hash
            )
            if superseded:
                references.insert(
                    patient_id=request.patient_id,
                    dentist_id=dentist_id,
                    tx_hash=new_tx_hash,
                    record_type=record_type,
                )
                self._session.commit()
            else:
                self._session.rollback()
                self._record_orphan(request, original_tx_hash, new_tx_hash, dentist_id, record_type)
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "Correction appended to ledger but local update failed",
                extra={
                    "patient_id": request.patient_id,
                    "original_tx_hash": original_tx_hash,
                    "new_tx_hash": new_tx_hash,
                    "error": str(exc),
                },
            )
            raise PersistenceError(
                "Failed to record correction locally", operation="apply_correction", tx_hash=new_tx_hash
            ) from exc

        if not superseded:
            get_metrics_client().incr("corrections.superseded_concurrently", {"record_type": record_type})
            logger.warning(
                "Original was corrected concurrently; appended correction is orphaned",
                extra={
                    "patient_id": request.patient_id,
                    "original_tx_hash": original_tx_hash,
                    "orphaned_tx_hash": new_tx_hash,
                },
            )
            raise RecordNotFound("Original record not found or already corrected", tx_hash=original_tx_hash)

        get_metrics_client().incr("corrections.applied", {"record_type": record_type})
        logger.info(
            "Record corrected",
            extra={
                "patient_id": request.patient_id,
                "original_tx_hash": original_tx_hash,
                "new_tx_hash": new_tx_hash,
            },
        )

        if self._audit is not None:
            await self._audit.record(
                action=AuditAction.for_correction(record_type),
                dentist_id=dentist_id,
                patient_id=request.patient_id,
                metadata={
                    "originalTxHash": original_tx_hash,
                    "newTxHash": new_tx_hash,
                    "editReason": request.edit_reason,
                    "location": request.location,
                    "recordType": record_type,
                },
                ip_address=ip_address,
                user_agent=user_agent,
            )

        return CorrectionResult(original_tx_hash=original_tx_hash, new_tx_hash=new_tx_hash)

    def _record_orphan(
        self,
        request: CorrectionRequest,
        original_tx_hash: str,
        orphan_tx_hash: str,
        dentist_id: str,
        record_type: str,
    ) -> None:
        """Reference a correction that lost the race as already superseded.

        Its ledger entry exists regardless; the reference lets the sweep claim
        that entry (cached as corrected) instead of leaving it unclaimed ahead
        of the patient's later writes.
        """
        winner = ReferenceStore(self._session).get(original_tx_hash)
        ReferenceStore(self._session).insert(
            patient_id=request.patient_id,
            dentist_id=dentist_id,
            tx_hash=orphan_tx_hash,
            record_type=record_type,
            corrected_by_tx_hash=(winner.corrected_by_tx_hash if winner else None) or original_tx_hash,
        )
        self._session.commit()

    def correction_chain(self, tx_hash: str) -> list[str]:
        """Return the lineage from `tx_hash` forward to the live entry, inclusive."""

        references = ReferenceStore(self._session)
        cache = CacheStore(self._session)

        chain: list[str] = []
        seen: set[str] = set()
        current: str | None = tx_hash
        while current is not None:
            if current in seen:
                raise CorrectionChainError(f"Correction chain loops at {current}")
            row = references.get(current) or cache.get(current)
            if row is None:
                if not chain:
                    raise RecordNotFound("Record not found", tx_hash=tx_hash)
                # Successor known only by hash; treat it as the chain head.
                chain.append(current)
                break
            seen.add(current)
            chain.append(current)
            current = row.corrected_by_tx_hash if row.is_corrected else None
        return chain

    async def view_chain(
        self,
        tx_hash: str,
        *,
        dentist_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> CorrectionChainView:
        """Correction lineage for a caller, recorded in the audit trail as a patient read."""
        chain = self.correction_chain(tx_hash)
        row = ReferenceStore(self._session).get(tx_hash) or CacheStore(self._session).get(tx_hash)

        if self._audit is not None:
            await self._audit.record(
                action=AuditAction.CORRECTION_CHAIN_VIEW,
                dentist_id=dentist_id,
                patient_id=row.patient_id,
                metadata={"txHash": tx_hash, "chainLength": len(chain), "liveTxHash": chain[-1]},
                ip_address=ip_address,
                user_agent=user_agent,
            )

        return CorrectionChainView(tx_hash=tx_hash, chain=chain, live_tx_hash=chain[-1])


__all__ = ["CorrectionManager"]
