"""ProcedureRecordService write path, delayed check, and read views."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from conftest import placement, removal
from sqlalchemy.exc import OperationalError

from implant_ledger.common.exceptions import (
    LedgerRejected,
    LedgerUnavailable,
    PersistenceError,
    RecordValidationError,
)
from implant_ledger.ledger.memory import InMemoryLedger
from implant_ledger.reconciliation.reconciler import Reconciler
from implant_ledger.records.service import ProcedureRecordService
from implant_ledger.store.cache import CacheStore
from implant_ledger.store.references import ReferenceStore


@pytest.fixture
def service(session, ledger, audit_chain, settings, reconciler, task_queue):
    return ProcedureRecordService(
        session, ledger, audit_chain, settings, reconciler=reconciler, scheduler=task_queue
    )


def _log(service, request, dentist_id="D-1"):
    return asyncio.run(service.log_record(dentist_id=dentist_id, request=request, ip_address="10.0.0.1"))


class TestValidation:
    @pytest.mark.parametrize(
        "request_",
        [
            placement(location=""),
            placement(location="   "),
            placement(placement_date=None),
            removal(removal_reason=None),
            removal(removal_date=""),
        ],
    )
    def test_invalid_records_never_reach_the_ledger(self, service, ledger, session, request_):
        with pytest.raises(RecordValidationError):
            _log(service, request_)

        assert ledger.append_calls == 0
        assert ReferenceStore(session).list_patient_ids() == []


class TestLogRecord:
    def test_write_then_sweep_confirms(self, service, ledger, reconciler, session):
        created = _log(service, placement())

        assert created.tx_hash == ledger.tx_hashes[0]
        assert [r.tx_hash for r in ReferenceStore(session).list_unconfirmed("P-100")] == [created.tx_hash]
        assert CacheStore(session).get(created.tx_hash) is None

        result = asyncio.run(reconciler.reconcile_all())

        assert result.synced_records == 1
        entry = CacheStore(session).get_live(created.tx_hash)
        assert entry.dentist_id == "D-1"
        assert entry.placement_date == "2024-03-01"
        assert entry.record_data["entryMethod"] == "manual"
        assert entry.record_data["lot"] == "LOT-7"

    @pytest.mark.parametrize("failure", [LedgerUnavailable("timeout"), LedgerRejected("bad payload")])
    def test_failed_append_leaves_no_reference(self, service, ledger, session, task_queue, failure):
        ledger.fail_appends = failure

        with pytest.raises(type(failure)):
            _log(service, placement())

        assert ReferenceStore(session).list_patient_ids() == []
        assert task_queue.pending == 0
        assert ledger.audit_events == []

    def test_reference_failure_is_reported_with_the_hash(self, service, ledger):
        with patch.object(ReferenceStore, "insert", side_effect=OperationalError("INSERT", {}, Exception("disk full"))):
            with pytest.raises(PersistenceError) as excinfo:
                _log(service, placement())

        assert excinfo.value.operation == "insert_reference"
        assert excinfo.value.tx_hash == ledger.tx_hashes[0]

    def test_write_is_audited(self, service, ledger):
        created = _log(service, removal())

        _, event = ledger.audit_events[-1]
        assert event.action == "IMPLANT_REMOVAL"
        assert event.metadata == {"location": "14", "recordType": "REMOVAL", "txHash": created.tx_hash}


class TestDelayedCheck:
    def test_confirms_after_the_delay(self, service, ledger, session, clock, task_queue):
        created = _log(service, placement())
        assert task_queue.pending == 1

        clock.advance(119)
        assert asyncio.run(task_queue.run_due()) == 0
        assert CacheStore(session).get(created.tx_hash) is None

        clock.advance(1)
        assert asyncio.run(task_queue.run_due()) == 1
        assert CacheStore(session).get(created.tx_hash) is not None

    def test_not_yet_visible_is_left_for_the_sweep(
        self, session, audit_chain, settings, task_queue, clock, session_factory
    ):
        lagging = InMemoryLedger(visible_immediately=False)
        lagging_reconciler = Reconciler(lagging, session_factory)
        service = ProcedureRecordService(
            session, lagging, audit_chain, settings, reconciler=lagging_reconciler, scheduler=task_queue
        )
        created = _log(service, placement())

        clock.advance(120)
        asyncio.run(task_queue.run_due())
        assert CacheStore(session).get(created.tx_hash) is None

        lagging.publish()
        result = asyncio.run(lagging_reconciler.reconcile_all())
        assert result.synced_records == 1
        assert CacheStore(session).get(created.tx_hash) is not None

    def test_same_site_writes_are_attributed_in_order(self, service, session, clock, task_queue):
        first = _log(service, placement(location="14", lot="LOT-A"))
        second = _log(service, placement(location="14", lot="LOT-B"))

        clock.advance(120)
        asyncio.run(task_queue.run_due())

        cache = CacheStore(session)
        assert cache.get(first.tx_hash).record_data["lot"] == "LOT-A"
        assert cache.get(second.tx_hash).record_data["lot"] == "LOT-B"


class TestViews:
    def test_patient_records_lists_live_entries_and_audits_the_view(self, service, ledger, reconciler):
        _log(service, placement(location="14"))
        _log(service, removal(location="14"))
        _log(service, placement(patient_id="P-200"))
        asyncio.run(reconciler.reconcile_all())

        response = asyncio.run(service.patient_records(patient_id="P-100", dentist_id="D-1"))

        assert response.summary.total_records == 2
        assert (response.summary.placements, response.summary.removals) == (1, 1)
        assert response.summary.last_activity is not None
        assert {item.action for item in response.audit_trail} == {"IMPLANT_PLACEMENT", "IMPLANT_REMOVAL"}
        _, event = ledger.audit_events[-1]
        assert event.action == "PATIENT_RECORDS_VIEW"
        assert event.metadata == {"recordCount": 2}

    def test_provider_history_is_scoped_to_the_dentist(self, service, ledger, reconciler):
        _log(service, placement(patient_id="P-1"), dentist_id="D-1")
        _log(service, placement(patient_id="P-2"), dentist_id="D-1")
        _log(service, placement(patient_id="P-3"), dentist_id="D-2")
        asyncio.run(reconciler.reconcile_all())

        response = asyncio.run(service.provider_history(dentist_id="D-1"))
        limited = asyncio.run(service.provider_history(dentist_id="D-1", limit=1))

        assert response.dentist_id == "D-1"
        assert {v.patient_id for v in response.provider_history} == {"P-1", "P-2"}
        assert response.summary.placements == 2
        assert len(limited.provider_history) == 1
        _, event = ledger.audit_events[-1]
        assert (event.action, event.patient_id) == ("PROVIDER_HISTORY_VIEW", "")
