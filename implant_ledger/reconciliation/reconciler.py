"""Reconciler: promotes confirmed ledger entries into the cache.

The ledger's append call returns only a transaction hash, never the record id
it assigns, so the only correlation between "what we appended" and "what is
now readable" is arrival order within a patient's entries. The sweep pairs the
patient's unclaimed ledger entries with its unconfirmed references by position
and inserts a cache entry only when the record types agree. A disagreement is a
mismatch: the pair is skipped, the reference stays unconfirmed, and the
mismatch is reported in the sweep result. Nothing is ever attributed on a guess.

Ledger entries whose record id is already attributed in the cache are excluded
before pairing, so earlier confirmations do not shift later positions.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from implant_ledger.common.exceptions import MatchMismatch
from implant_ledger.ledger.ports import LedgerEntry, LedgerPort
from implant_ledger.store.cache import CacheStore
from implant_ledger.store.references import ReferenceStore
from implant_schemas.sync import MismatchReport, SyncResult
from observability.logging_config import get_logger
from observability.metrics import get_metrics_client

logger = get_logger("reconciler")


@dataclass(frozen=True)
class _PendingRef:
    tx_hash: str
    record_type: str
    dentist_id: str
    corrected_by: str | None = None


def _unclaimed(entries: list[LedgerEntry], claimed: set[str]) -> list[LedgerEntry]:
    return [e for e in entries if not e.record_id or e.record_id not in claimed]


def _check_pair(patient_id: str, index: int, entry: LedgerEntry, ref: _PendingRef) -> None:
    if entry.record_type != ref.record_type:
        raise MatchMismatch(patient_id, index, entry.record_type, ref.record_type, ref.tx_hash)


class Reconciler:
    def __init__(self, ledger: LedgerPort, session_factory: sessionmaker[Session]):
        self._ledger = ledger
        self._session_factory = session_factory

    def _patient_ids(self) -> list[str]:
        with self._session_factory() as session:
            return ReferenceStore(session).list_patient_ids()

    async def reconcile_all(self) -> SyncResult:
        """Sweep every patient known to the reference store.

        A failure for one patient (ledger or store) is recorded in
        ``errors`` and the sweep moves on to the next patient.
        """
        result = SyncResult()
        metrics = get_metrics_client()

        for patient_id in self._patient_ids():
            try:
                result.merge(await self.reconcile_patient(patient_id))
            except Exception as exc:  # noqa: BLE001
                metrics.incr("reconcile.patient_error")
                logger.error(
                    "Reconciliation failed for patient",
                    extra={"patient_id": patient_id, "error": str(exc), "error_type": type(exc).__name__},
                )
                result.errors.append(f"Error processing patient {patient_id}: {exc}")

        logger.info(
            "Reconciliation sweep finished",
            extra={
                "synced_records": result.synced_records,
                "patients_processed": result.patients_processed,
                "errors": len(result.errors),
                "mismatches": len(result.mismatches),
            },
        )
        return result

    async def reconcile_patient(self, patient_id: str) -> SyncResult:
        """Reconcile a single patient. Ledger and store errors propagate."""
        metrics = get_metrics_client()
        result = SyncResult(patients_processed=1)

        # No session is held across the ledger round-trip.
        entries = await self._ledger.read_all(patient_id)

        with self._session_factory() as session:
            references = ReferenceStore(session)
            cache = CacheStore(session)

            pending = [
                _PendingRef(
                    ref.tx_hash,
                    ref.record_type,
                    ref.dentist_id,
                    ref.corrected_by_tx_hash if ref.is_corrected else None,
                )
                for ref in references.list_unconfirmed(patient_id)
            ]
            if not pending:
                return result
            candidates = _unclaimed(entries, cache.claimed_record_ids(patient_id))

            for index in range(min(len(candidates), len(pending))):
                entry, ref = candidates[index], pending[index]
                try:
                    _check_pair(patient_id, index, entry, ref)
                except MatchMismatch as mismatch:
                    metrics.incr("reconcile.mismatch")
                    logger.warning(
                        "Ledger entry and reference disagree; skipping",
                        extra={
                            "patient_id": patient_id,
                            "index": index,
                            "ledger_record_type": mismatch.ledger_type,
                            "reference_record_type": mismatch.reference_type,
                            "tx_hash": mismatch.tx_hash,
                        },
                    )
                    result.mismatches.append(
                        MismatchReport(
                            patient_id=patient_id,
                            index=index,
                            ledger_record_type=mismatch.ledger_type,
                            reference_record_type=mismatch.reference_type,
                            tx_hash=mismatch.tx_hash,
                        )
                    )
                    result.errors.append(f"Patient {patient_id}: {mismatch}")
                    continue

                inserted = cache.insert(
                    patient_id=patient_id,
                    dentist_id=ref.dentist_id,
                    tx_hash=ref.tx_hash,
                    record_type=entry.record_type,
                    record_data=entry.record_data,
                    ledger_record_id=entry.record_id or None,
                    ledger_timestamp=entry.appended_at,
                    corrected_by_tx_hash=ref.corrected_by,
                )
                if inserted:
                    session.commit()
                    result.synced_records += 1
                    metrics.incr("reconcile.synced", {"path": "sweep"})

        return result

    async def verify_written_record(
        self,
        *,
        patient_id: str,
        tx_hash: str,
        record_type: str,
        location: str | None,
        dentist_id: str,
    ) -> bool:
        """Delayed check for one just-written record. Never raises.

        Requires a reference for `tx_hash` of the same record type, then looks
        for an unclaimed ledger entry with that type and location and caches it
        under `tx_hash`. Returns True if this call inserted the entry.
        """
        log = logger.bind(patient_id=patient_id, tx_hash=tx_hash)
        try:
            entries = await self._ledger.read_all(patient_id)
        except Exception as exc:  # noqa: BLE001
            log.warning("Delayed check could not read ledger", extra={"error": str(exc)})
            return False

        try:
            with self._session_factory() as session:
                cache = CacheStore(session)
                if cache.get(tx_hash) is not None:
                    return False

                ref = ReferenceStore(session).get(tx_hash)
                if ref is None or ref.record_type != record_type:
                    log.warning(
                        "No matching reference for delayed check; not caching",
                        extra={"record_type": record_type, "reference_record_type": ref.record_type if ref else None},
                    )
                    return False

                claimed = cache.claimed_record_ids(patient_id)
                match = next(
                    (
                        e
                        for e in _unclaimed(entries, claimed)
                        if e.record_type == record_type and e.location == location
                    ),
                    None,
                )
                if match is None:
                    log.info("Record not yet visible on ledger; leaving it for the sweep")
                    return False

                inserted = cache.insert(
                    patient_id=patient_id,
                    dentist_id=dentist_id,
                    tx_hash=tx_hash,
                    record_type=match.record_type,
                    record_data=match.record_data,
                    ledger_record_id=match.record_id or None,
                    ledger_timestamp=match.appended_at,
                    corrected_by_tx_hash=ref.corrected_by_tx_hash if ref.is_corrected else None,
                )
                if inserted:
                    session.commit()
                    get_metrics_client().incr("reconcile.synced", {"path": "delayed_check"})
                    log.info("Record confirmed by delayed check")
                return inserted
        except Exception as exc:  # noqa: BLE001
            log.error("Delayed check failed", extra={"error": str(exc), "error_type": type(exc).__name__})
            return False


__all__ = ["Reconciler"]
