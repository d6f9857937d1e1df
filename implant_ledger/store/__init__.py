"""Local relational store: pending references, confirmed cache, audit mirror."""

from implant_ledger.store.audit_log import AuditLogStore
from implant_ledger.store.cache import CacheStore
from implant_ledger.store.db import Base
from implant_ledger.store.references import ReferenceStore
from implant_ledger.store.sync_status import SyncStatusStore

__all__ = ["AuditLogStore", "Base", "CacheStore", "ReferenceStore", "SyncStatusStore"]
