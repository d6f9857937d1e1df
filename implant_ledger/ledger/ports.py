"""Port for the external append-only ledger.

The ledger is consumed as an opaque, append-only, patient-indexed store.
Entries become readable some time after `append` returns, so callers must not
read back synchronously.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class ProcedureRecord:
    """A procedure record as submitted for append."""

    patient_id: str
    record_type: str
    record_data: dict[str, Any]


@dataclass(frozen=True)
class AuditEvent:
    dentist_id: str
    patient_id: str
    action: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerEntry:
    """A procedure record as read back from the ledger.

    `record_id` is the contract-assigned id, which the append call does not
    return; it cannot be used to correlate a write with its entry.
    """

    record_id: str
    patient_id: str
    record_type: str
    record_data: dict[str, Any]
    appended_at: datetime | None = None

    @property
    def location(self) -> Any:
        return self.record_data.get("location")


@runtime_checkable
class LedgerPort(Protocol):
    """Abstraction over the ledger transport."""

    async def append(self, record: ProcedureRecord) -> str:
        """Append a procedure record and return its transaction hash.

        Raises LedgerUnavailable (retryable) or LedgerRejected (not retryable).
        """

    async def read_all(self, patient_id: str) -> list[LedgerEntry]:
        """Return the patient's entries in ledger append order, oldest first."""

    async def append_audit(self, event: AuditEvent) -> str:
        """Append an audit event and return its transaction hash."""


__all__ = ["AuditEvent", "LedgerEntry", "LedgerPort", "ProcedureRecord"]
