"""Reference store: writes issued to the ledger, keyed by transaction hash.

Callers own the transaction; these methods only add and flush.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import exists, select, update
from sqlalchemy.orm import Session

from implant_ledger.store.models import ImplantReference, LedgerCacheEntry


class ReferenceStore:
    def __init__(self, session: Session):
        self._session = session

    def insert(
        self,
        *,
        patient_id: str,
        dentist_id: str,
        tx_hash: str,
        record_type: str,
        created_at: datetime | None = None,
        corrected_by_tx_hash: str | None = None,
    ) -> ImplantReference:
        """Record a write. `corrected_by_tx_hash` inserts it already superseded."""
        ref = ImplantReference(
            patient_id=patient_id,
            dentist_id=dentist_id,
            tx_hash=tx_hash,
            record_type=record_type,
            is_corrected=corrected_by_tx_hash is not None,
            corrected_by_tx_hash=corrected_by_tx_hash,
        )
        if created_at is not None:
            ref.created_at = created_at
        self._session.add(ref)
        self._session.flush()
        return ref

    def get(self, tx_hash: str) -> ImplantReference | None:
        stmt = select(ImplantReference).where(ImplantReference.tx_hash == tx_hash)
        return self._session.scalars(stmt).first()

    def list_unconfirmed(self, patient_id: str) -> list[ImplantReference]:
        """References with no cache entry yet, oldest first."""

        confirmed = exists().where(LedgerCacheEntry.tx_hash == ImplantReference.tx_hash)
        stmt = (
            select(ImplantReference)
            .where(ImplantReference.patient_id == patient_id, ~confirmed)
            .order_by(ImplantReference.created_at.asc(), ImplantReference.tx_hash.asc())
        )
        return list(self._session.scalars(stmt))

    def list_patient_ids(self) -> list[str]:
        stmt = select(ImplantReference.patient_id).distinct().order_by(ImplantReference.patient_id)
        return list(self._session.scalars(stmt))

    def mark_corrected(self, tx_hash: str, new_tx_hash: str) -> bool:
        """Supersede `tx_hash` if it is not already corrected. Returns False otherwise.

        A single conditional UPDATE, so of two concurrent corrections only one wins.
        """
        stmt = (
            update(ImplantReference)
            .where(ImplantReference.tx_hash == tx_hash, ImplantReference.is_corrected.is_(False))
            .values(is_corrected=True, corrected_by_tx_hash=new_tx_hash)
            .execution_options(synchronize_session="evaluate")
        )
        return self._session.execute(stmt).rowcount == 1


__all__ = ["ReferenceStore"]
