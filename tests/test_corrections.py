"""Correction chains: supersede, re-confirm, and walk the lineage."""

from __future__ import annotations

import asyncio

import pytest
from conftest import placement
from sqlalchemy import select

from implant_ledger.common.exceptions import (
    CorrectionChainError,
    LedgerUnavailable,
    RecordNotFound,
    RecordValidationError,
)
from implant_ledger.corrections.service import CorrectionManager
from implant_ledger.ledger.memory import InMemoryLedger
from implant_ledger.reconciliation.reconciler import Reconciler
from implant_ledger.records.service import ProcedureRecordService
from implant_ledger.store.cache import CacheStore
from implant_ledger.store.models import AuditAction, AuditLogEntry
from implant_ledger.store.references import ReferenceStore
from implant_schemas.records import CorrectionRequest, CorrectionResult, RecordType


class _YieldingLedger(InMemoryLedger):
    """Suspends inside append so concurrent callers interleave."""

    async def append(self, record):
        await asyncio.sleep(0.01)
        return await super().append(record)


def _confirmed_placement(session, ledger, audit_chain, settings, reconciler, **overrides) -> str:
    service = ProcedureRecordService(session, ledger, audit_chain, settings)
    created = asyncio.run(service.log_record(dentist_id="D-1", request=placement(**overrides)))
    asyncio.run(reconciler.reconcile_all())
    return created.tx_hash


def _correction(original_tx_hash: str, **overrides) -> CorrectionRequest:
    fields = {
        "original_tx_hash": original_tx_hash,
        "patient_id": "P-100",
        "record_type": RecordType.PLACEMENT,
        "brand": "Straumann",
        "model": "BLT",
        "lot": "LOT-8",
        "location": "15",
        "placement_date": "2024-03-01",
        "edit_reason": "wrong tooth",
    }
    fields.update(overrides)
    return CorrectionRequest(**fields)


class TestCorrect:
    def test_correction_supersedes_and_is_confirmed_by_next_sweep(
        self, session, ledger, audit_chain, settings, reconciler, metrics
    ):
        tx1 = _confirmed_placement(session, ledger, audit_chain, settings, reconciler)
        manager = CorrectionManager(session, ledger, audit_chain)

        result = asyncio.run(manager.correct(_correction(tx1), dentist_id="D-1", dentist_name="Dr. Lee"))
        tx2 = result.new_tx_hash

        assert result.original_tx_hash == tx1
        cache = CacheStore(session)
        assert cache.get_live(tx1) is None
        assert cache.get(tx1).corrected_by_tx_hash == tx2
        assert ReferenceStore(session).get(tx1).is_corrected is True
        assert ReferenceStore(session).get(tx2) is not None
        assert metrics.counter_value("corrections.applied", {"record_type": "PLACEMENT"}) == 1

        sweep = asyncio.run(reconciler.reconcile_all())

        assert sweep.synced_records == 1
        assert sweep.mismatches == []
        live = cache.get_live(tx2)
        assert live.location == "15"
        assert live.record_data["editReason"] == "wrong tooth"
        assert live.record_data["originalTxHash"] == tx1
        assert live.record_data["entryMethod"] == "correction"
        assert live.record_data["dentistName"] == "Dr. Lee"
        assert [e.tx_hash for e in cache.list_by_patient("P-100")] == [tx2]

    def test_corrected_record_cannot_be_corrected_again(self, session, ledger, audit_chain, settings, reconciler):
        tx1 = _confirmed_placement(session, ledger, audit_chain, settings, reconciler)
        manager = CorrectionManager(session, ledger)
        asyncio.run(manager.correct(_correction(tx1), dentist_id="D-1"))

        with pytest.raises(RecordNotFound):
            asyncio.run(manager.correct(_correction(tx1), dentist_id="D-1"))

    def test_unconfirmed_record_cannot_be_corrected(self, session, ledger, audit_chain, settings):
        service = ProcedureRecordService(session, ledger, audit_chain, settings)
        created = asyncio.run(service.log_record(dentist_id="D-1", request=placement()))

        with pytest.raises(RecordNotFound):
            asyncio.run(CorrectionManager(session, ledger).correct(_correction(created.tx_hash), dentist_id="D-1"))

    def test_other_dentist_or_patient_is_not_found(self, session, ledger, audit_chain, settings, reconciler):
        tx1 = _confirmed_placement(session, ledger, audit_chain, settings, reconciler)
        manager = CorrectionManager(session, ledger)
        appends_before = ledger.append_calls

        with pytest.raises(RecordNotFound):
            asyncio.run(manager.correct(_correction(tx1), dentist_id="D-2"))
        with pytest.raises(RecordNotFound):
            asyncio.run(manager.correct(_correction(tx1, patient_id="P-999"), dentist_id="D-1"))

        assert ledger.append_calls == appends_before

    @pytest.mark.parametrize("overrides", [{"edit_reason": ""}, {"location": ""}])
    def test_missing_reason_or_location_is_rejected(self, session, ledger, overrides):
        with pytest.raises(RecordValidationError):
            asyncio.run(CorrectionManager(session, ledger).correct(_correction("0xA", **overrides), dentist_id="D-1"))
        assert ledger.append_calls == 0

    def test_ledger_failure_leaves_original_live(self, session, ledger, audit_chain, settings, reconciler):
        tx1 = _confirmed_placement(session, ledger, audit_chain, settings, reconciler)
        ledger.go_down()

        with pytest.raises(LedgerUnavailable):
            asyncio.run(CorrectionManager(session, ledger).correct(_correction(tx1), dentist_id="D-1"))

        assert CacheStore(session).get_live(tx1) is not None
        assert ReferenceStore(session).get(tx1).is_corrected is False
        assert len(ReferenceStore(session).list_unconfirmed("P-100")) == 0

    def test_concurrent_corrections_leave_one_live_entry(
        self, session, session_factory, audit_chain, settings, metrics
    ):
        ledger = _YieldingLedger()
        reconciler = Reconciler(ledger, session_factory)
        tx1 = _confirmed_placement(session, ledger, audit_chain, settings, reconciler)

        async def race():
            with session_factory() as first, session_factory() as second:
                return await asyncio.gather(
                    CorrectionManager(first, ledger).correct(_correction(tx1), dentist_id="D-1"),
                    CorrectionManager(second, ledger).correct(_correction(tx1, lot="LOT-9"), dentist_id="D-1"),
                    return_exceptions=True,
                )

        outcomes = asyncio.run(race())
        session.expire_all()

        winners = [o for o in outcomes if isinstance(o, CorrectionResult)]
        losers = [o for o in outcomes if isinstance(o, RecordNotFound)]
        assert len(winners) == 1 and len(losers) == 1
        winner = winners[0].new_tx_hash
        orphan = next(h for h in ledger.tx_hashes[1:] if h != winner)
        assert ReferenceStore(session).get(orphan).corrected_by_tx_hash == winner
        assert metrics.counter_value("corrections.superseded_concurrently", {"record_type": "PLACEMENT"}) == 1

        asyncio.run(reconciler.reconcile_all())

        cache = CacheStore(session)
        assert [e.tx_hash for e in cache.list_by_patient("P-100")] == [winner]
        assert cache.get(orphan).is_corrected is True
        assert CorrectionManager(session, ledger).correction_chain(tx1) == [tx1, winner]

        # A later write still pairs with its own ledger entry.
        service = ProcedureRecordService(session, ledger, audit_chain, settings)
        later = asyncio.run(service.log_record(dentist_id="D-1", request=placement(location="36")))
        sweep = asyncio.run(reconciler.reconcile_all())

        assert sweep.mismatches == []
        assert cache.get_live(later.tx_hash).location == "36"
        assert len(cache.list_by_patient("P-100")) == 2

    def test_correction_is_audited(self, session, session_factory, ledger, audit_chain, settings, reconciler):
        tx1 = _confirmed_placement(session, ledger, audit_chain, settings, reconciler)

        result = asyncio.run(
            CorrectionManager(session, ledger, audit_chain).correct(_correction(tx1), dentist_id="D-1")
        )

        _, event = ledger.audit_events[-1]
        assert event.action == AuditAction.IMPLANT_PLACEMENT_CORRECTION.value
        assert event.metadata["originalTxHash"] == tx1
        assert event.metadata["newTxHash"] == result.new_tx_hash
        assert event.metadata["editReason"] == "wrong tooth"
        with session_factory() as check:
            actions = {row.action for row in check.scalars(select(AuditLogEntry))}
        assert AuditAction.IMPLANT_PLACEMENT_CORRECTION in actions


class TestCorrectionChain:
    def test_chain_walks_to_the_live_entry(self, session, ledger, audit_chain, settings, reconciler):
        tx1 = _confirmed_placement(session, ledger, audit_chain, settings, reconciler)
        manager = CorrectionManager(session, ledger)
        tx2 = asyncio.run(manager.correct(_correction(tx1), dentist_id="D-1")).new_tx_hash
        asyncio.run(reconciler.reconcile_all())
        tx3 = asyncio.run(manager.correct(_correction(tx2, location="16"), dentist_id="D-1")).new_tx_hash

        assert manager.correction_chain(tx1) == [tx1, tx2, tx3]
        assert manager.correction_chain(tx2) == [tx2, tx3]
        assert manager.correction_chain(tx3) == [tx3]

    def test_unknown_start_is_not_found(self, session, ledger):
        with pytest.raises(RecordNotFound):
            CorrectionManager(session, ledger).correction_chain("0xnothing")

    def test_loop_is_reported(self, session, ledger):
        refs = ReferenceStore(session)
        refs.insert(patient_id="P-1", dentist_id="D-1", tx_hash="0xA", record_type="PLACEMENT")
        refs.insert(patient_id="P-1", dentist_id="D-1", tx_hash="0xB", record_type="PLACEMENT")
        refs.mark_corrected("0xA", "0xB")
        refs.mark_corrected("0xB", "0xA")
        session.commit()

        with pytest.raises(CorrectionChainError):
            CorrectionManager(session, ledger).correction_chain("0xA")

    def test_view_chain_is_audited(self, session, session_factory, ledger, audit_chain, settings, reconciler):
        tx1 = _confirmed_placement(session, ledger, audit_chain, settings, reconciler)
        manager = CorrectionManager(session, ledger, audit_chain)
        tx2 = asyncio.run(manager.correct(_correction(tx1), dentist_id="D-1")).new_tx_hash

        view = asyncio.run(manager.view_chain(tx1, dentist_id="D-2", ip_address="10.0.0.9", user_agent="pytest"))

        assert (view.chain, view.live_tx_hash) == ([tx1, tx2], tx2)
        with session_factory() as check:
            row = check.scalars(
                select(AuditLogEntry).where(AuditLogEntry.action == AuditAction.CORRECTION_CHAIN_VIEW)
            ).one()
        assert (row.dentist_id, row.patient_id, row.ip_address) == ("D-2", "P-100", "10.0.0.9")

    def test_view_chain_of_unknown_hash_writes_no_audit(self, session, ledger, audit_chain):
        with pytest.raises(RecordNotFound):
            asyncio.run(CorrectionManager(session, ledger, audit_chain).view_chain("0xnothing", dentist_id="D-1"))

        assert ledger.audit_events == []
