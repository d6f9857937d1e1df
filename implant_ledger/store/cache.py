"""Cache store: queryable mirror of confirmed ledger entries.

Insertion is idempotent per transaction hash. The delayed single-record check
and the sweep may both try to insert the same entry; the second attempt is a
no-op, whether it loses the existence check or the unique constraint.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from implant_ledger.store.db import utcnow
from implant_ledger.store.models import LedgerCacheEntry

logger = logging.getLogger(__name__)


class CacheStore:
    def __init__(self, session: Session):
        self._session = session

    def insert(
        self,
        *,
        patient_id: str,
        dentist_id: str | None,
        tx_hash: str,
        record_type: str,
        record_data: dict[str, Any],
        ledger_record_id: str | None = None,
        ledger_timestamp: datetime | None = None,
        corrected_by_tx_hash: str | None = None,
    ) -> bool:
        """Insert a confirmed entry. Returns False if `tx_hash` is already cached.

        On a lost insert race the session is rolled back, so call this with no
        other unflushed work pending.

        A reference superseded before it was confirmed is cached already
        corrected, via `corrected_by_tx_hash`.
        """

        if self.get(tx_hash) is not None:
            return False

        entry = LedgerCacheEntry(
            patient_id=patient_id,
            dentist_id=dentist_id,
            tx_hash=tx_hash,
            record_type=record_type,
            record_data=dict(record_data),
            location=record_data.get("location"),
            placement_date=record_data.get("placementDate") if record_type == "PLACEMENT" else None,
            removal_date=record_data.get("removalDate") if record_type == "REMOVAL" else None,
            ledger_record_id=ledger_record_id,
            ledger_timestamp=ledger_timestamp,
            is_corrected=corrected_by_tx_hash is not None,
            corrected_by_tx_hash=corrected_by_tx_hash,
        )
        self._session.add(entry)
        try:
            self._session.flush()
        except IntegrityError:
            self._session.rollback()
            logger.info("Cache entry %s already inserted concurrently", tx_hash)
            return False
        return True

    def get(self, tx_hash: str) -> LedgerCacheEntry | None:
        stmt = select(LedgerCacheEntry).where(LedgerCacheEntry.tx_hash == tx_hash)
        return self._session.scalars(stmt).first()

    def get_live(self, tx_hash: str) -> LedgerCacheEntry | None:
        stmt = select(LedgerCacheEntry).where(
            LedgerCacheEntry.tx_hash == tx_hash,
            LedgerCacheEntry.is_corrected.is_(False),
        )
        return self._session.scalars(stmt).first()

    def list_by_patient(self, patient_id: str, *, include_corrected: bool = False) -> list[LedgerCacheEntry]:
        stmt = select(LedgerCacheEntry).where(LedgerCacheEntry.patient_id == patient_id)
        if not include_corrected:
            stmt = stmt.where(LedgerCacheEntry.is_corrected.is_(False))
        stmt = stmt.order_by(LedgerCacheEntry.created_at.desc())
        return list(self._session.scalars(stmt))

    def claimed_record_ids(self, patient_id: str) -> set[str]:
        """Ledger record ids already attributed to a transaction hash for this patient."""
        stmt = select(LedgerCacheEntry.ledger_record_id).where(
            LedgerCacheEntry.patient_id == patient_id,
            LedgerCacheEntry.ledger_record_id.is_not(None),
        )
        return set(self._session.scalars(stmt))

    def list_by_dentist(self, dentist_id: str, *, limit: int = 100) -> list[LedgerCacheEntry]:
        stmt = (
            select(LedgerCacheEntry)
            .where(
                LedgerCacheEntry.dentist_id == dentist_id,
                LedgerCacheEntry.is_corrected.is_(False),
            )
            .order_by(LedgerCacheEntry.created_at.desc())
            .limit(limit)
        )
        return list(self._session.scalars(stmt))

    def mark_corrected(self, tx_hash: str, new_tx_hash: str) -> bool:
        """Conditional on the entry still being live; False if it is missing or already corrected."""
        stmt = (
            update(LedgerCacheEntry)
            .where(LedgerCacheEntry.tx_hash == tx_hash, LedgerCacheEntry.is_corrected.is_(False))
            .values(is_corrected=True, corrected_by_tx_hash=new_tx_hash, updated_at=utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        return self._session.execute(stmt).rowcount == 1


__all__ = ["CacheStore"]
