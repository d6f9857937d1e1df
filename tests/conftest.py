"""Shared fixtures: file-backed SQLite store, in-memory ledger, manual clock."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from config.settings import ReconcilerSettings, StoreSettings
from implant_ledger.audit.chain import AuditChain
from implant_ledger.ledger.memory import InMemoryLedger
from implant_ledger.ledger.ports import LedgerEntry
from implant_ledger.reconciliation.reconciler import Reconciler
from implant_ledger.reconciliation.scheduler import DeferredTaskQueue, ManualClock
from implant_ledger.store.dependencies import build_engine, build_session_factory, create_schema
from implant_ledger.store.references import ReferenceStore
from implant_schemas.records import ProcedureRecordCreate, RecordType
from observability.metrics import RegistryMetricsClient, reset_metrics_client, set_metrics_client

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(StoreSettings(database_url=f"sqlite:///{tmp_path / 'implant_ledger.db'}"))
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def settings():
    return ReconcilerSettings(verify_delay_s=120.0, sync_idle_poll_s=5.0, default_sync_frequency_hours=1)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def task_queue(clock):
    return DeferredTaskQueue(clock=clock, poll_interval_s=0.01)


@pytest.fixture
def audit_chain(ledger, session_factory):
    return AuditChain(ledger, session_factory)


@pytest.fixture
def reconciler(ledger, session_factory):
    return Reconciler(ledger, session_factory)


@pytest.fixture(autouse=True)
def metrics():
    client = RegistryMetricsClient()
    set_metrics_client(client)
    yield client
    reset_metrics_client()


def placement(patient_id: str = "P-100", location: str = "14", **overrides) -> ProcedureRecordCreate:
    fields = {
        "patient_id": patient_id,
        "record_type": RecordType.PLACEMENT,
        "brand": "Straumann",
        "model": "BLT",
        "lot": "LOT-7",
        "diameter": "4.1",
        "length": "10",
        "location": location,
        "placement_date": "2024-03-01",
    }
    fields.update(overrides)
    return ProcedureRecordCreate(**fields)


def removal(patient_id: str = "P-100", location: str = "14", **overrides) -> ProcedureRecordCreate:
    fields = {
        "patient_id": patient_id,
        "record_type": RecordType.REMOVAL,
        "location": location,
        "removal_date": "2024-06-01",
        "removal_reason": "peri-implantitis",
    }
    fields.update(overrides)
    return ProcedureRecordCreate(**fields)


def ledger_entry(record_id: str, patient_id: str, record_type: str, location: str = "14", **data) -> LedgerEntry:
    payload = {"location": location, "dentistId": "D-1", **data}
    return LedgerEntry(
        record_id=record_id,
        patient_id=patient_id,
        record_type=record_type,
        record_data=payload,
        appended_at=BASE_TIME,
    )


def add_references(session, patient_id: str, items: list[tuple[str, str]], dentist_id: str = "D-1") -> None:
    """Insert (tx_hash, record_type) references with strictly increasing created_at."""
    store = ReferenceStore(session)
    for offset, (tx_hash, record_type) in enumerate(items):
        store.insert(
            patient_id=patient_id,
            dentist_id=dentist_id,
            tx_hash=tx_hash,
            record_type=record_type,
            created_at=BASE_TIME + timedelta(seconds=offset),
        )
    session.commit()
