"""Ledger port and adapters."""

from implant_ledger.ledger.client import StabilityLedgerClient
from implant_ledger.ledger.memory import InMemoryLedger
from implant_ledger.ledger.ports import AuditEvent, LedgerEntry, LedgerPort, ProcedureRecord

__all__ = [
    "AuditEvent",
    "InMemoryLedger",
    "LedgerEntry",
    "LedgerPort",
    "ProcedureRecord",
    "StabilityLedgerClient",
]
