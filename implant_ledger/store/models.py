"""Reference, cache, audit-mirror and sync-status tables.

- `ImplantReference`: one row per write this service issued to the ledger.
- `LedgerCacheEntry`: queryable mirror of a confirmed ledger entry, created once
  per transaction hash by the reconciler.
- `AuditLogEntry`: local mirror of audit events appended to the ledger.
- `SyncStatus`: single-row switch for the reconciliation sweep.

Rows in the first two tables are never deleted; corrections only flip
`is_corrected` and set `corrected_by_tx_hash`.
"""

from __future__ import annotations

import uuid
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Integer,
    String,
    Text,
)

from implant_ledger.store.db import Base, JSONType, UUIDType, utcnow


class AuditAction(PyEnum):
    IMPLANT_PLACEMENT = "IMPLANT_PLACEMENT"
    IMPLANT_REMOVAL = "IMPLANT_REMOVAL"
    IMPLANT_PLACEMENT_CORRECTION = "IMPLANT_PLACEMENT_CORRECTION"
    IMPLANT_REMOVAL_CORRECTION = "IMPLANT_REMOVAL_CORRECTION"
    PATIENT_RECORDS_VIEW = "PATIENT_RECORDS_VIEW"
    PROVIDER_HISTORY_VIEW = "PROVIDER_HISTORY_VIEW"
    CORRECTION_CHAIN_VIEW = "CORRECTION_CHAIN_VIEW"
    BLOCKCHAIN_SYNC = "BLOCKCHAIN_SYNC"
    SYNC_TOGGLE = "SYNC_TOGGLE"

    @classmethod
    def for_write(cls, record_type: str) -> "AuditAction":
        return cls(f"IMPLANT_{record_type}")

    @classmethod
    def for_correction(cls, record_type: str) -> "AuditAction":
        return cls(f"IMPLANT_{record_type}_CORRECTION")


class ImplantReference(Base):
    """A ledger write issued by this service, pending or past confirmation."""

    __tablename__ = "implant_references"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    patient_id = Column(String(255), nullable=False, index=True)
    dentist_id = Column(String(255), nullable=False, index=True)
    tx_hash = Column(String(255), nullable=False, unique=True)
    record_type = Column(String(32), nullable=False)

    is_corrected = Column(Boolean, nullable=False, default=False)
    corrected_by_tx_hash = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class LedgerCacheEntry(Base):
    """Confirmed ledger entry, attributed to the reference that issued it."""

    __tablename__ = "ledger_cache"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    patient_id = Column(String(255), nullable=False, index=True)
    dentist_id = Column(String(255), nullable=True, index=True)
    tx_hash = Column(String(255), nullable=False, unique=True)
    record_type = Column(String(32), nullable=False)

    # Ledger payload exactly as read back (camelCase keys).
    record_data = Column(JSONType, nullable=False, default=dict)
    location = Column(String(64), nullable=True)
    placement_date = Column(String(32), nullable=True)
    removal_date = Column(String(32), nullable=True)
    ledger_record_id = Column(String(78), nullable=True)
    ledger_timestamp = Column(DateTime(timezone=True), nullable=True)

    is_corrected = Column(Boolean, nullable=False, default=False, index=True)
    corrected_by_tx_hash = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuditLogEntry(Base):
    """Local mirror of an audit event; `audit_tx_hash` links it to the ledger."""

    __tablename__ = "audit_logs"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    dentist_id = Column(String(255), nullable=True, index=True)
    patient_id = Column(String(255), nullable=True, index=True)

    action = Column(Enum(AuditAction, name="auditaction"), nullable=False)
    metadata_json = Column("metadata", JSONType, nullable=True, default=dict)
    audit_tx_hash = Column(String(255), nullable=True)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class SyncStatus(Base):
    __tablename__ = "sync_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_enabled = Column(Boolean, nullable=False, default=True)
    last_sync = Column(DateTime(timezone=True), nullable=True)
    sync_frequency_hours = Column(Integer, nullable=False, default=1)


__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "ImplantReference",
    "LedgerCacheEntry",
    "SyncStatus",
]
