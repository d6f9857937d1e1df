"""In-process ledger adapter for local development and tests.

With ``visible_immediately=False`` appended entries stay invisible to
`read_all` until `publish()` is called, which mimics the confirmation delay of
the real ledger.
"""

from __future__ import annotations

import hashlib
import itertools
import json
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from implant_ledger.common.exceptions import LedgerRejected, LedgerUnavailable
from implant_ledger.ledger.ports import AuditEvent, LedgerEntry, ProcedureRecord


class InMemoryLedger:
    """LedgerPort backed by dicts; supports visibility lag and failure injection."""

    def __init__(self, *, visible_immediately: bool = True):
        self.visible_immediately = visible_immediately
        self._ids = itertools.count(1)
        self._visible: dict[str, list[LedgerEntry]] = defaultdict(list)
        self._pending: list[LedgerEntry] = []
        self.tx_hashes: list[str] = []
        self.audit_events: list[tuple[str, AuditEvent]] = []
        self.append_calls = 0
        self.read_calls = 0
        self.fail_appends: Exception | None = None
        self.fail_audit: Exception | None = None
        self.fail_reads_for: dict[str, Exception] = {}

    def _tx_hash(self, kind: str, payload: dict[str, Any], seq: int) -> str:
        raw = json.dumps({"kind": kind, "seq": seq, "payload": payload}, sort_keys=True, default=str)
        return "0x" + hashlib.sha256(raw.encode("utf-8")).hexdigest()

    async def append(self, record: ProcedureRecord) -> str:
        self.append_calls += 1
        if self.fail_appends is not None:
            raise self.fail_appends
        if not record.patient_id or not record.record_type:
            raise LedgerRejected("patientId and recordType are required", method="addImplantRecord")

        seq = next(self._ids)
        entry = LedgerEntry(
            record_id=str(seq),
            patient_id=record.patient_id,
            record_type=record.record_type,
            record_data=dict(record.record_data),
            appended_at=datetime.now(timezone.utc),
        )
        if self.visible_immediately:
            self._visible[record.patient_id].append(entry)
        else:
            self._pending.append(entry)
        tx_hash = self._tx_hash("record", {"patient_id": record.patient_id, **record.record_data}, seq)
        self.tx_hashes.append(tx_hash)
        return tx_hash

    async def append_audit(self, event: AuditEvent) -> str:
        if self.fail_audit is not None:
            raise self.fail_audit
        seq = next(self._ids)
        tx_hash = self._tx_hash("audit", {"action": event.action, "patient_id": event.patient_id}, seq)
        self.audit_events.append((tx_hash, event))
        return tx_hash

    async def read_all(self, patient_id: str) -> list[LedgerEntry]:
        self.read_calls += 1
        failure = self.fail_reads_for.get(patient_id)
        if failure is not None:
            raise failure
        return list(self._visible.get(patient_id, []))

    def publish(self) -> int:
        """Make every pending append readable, in append order."""
        published = len(self._pending)
        for entry in self._pending:
            self._visible[entry.patient_id].append(entry)
        self._pending.clear()
        return published

    def inject_entry(self, entry: LedgerEntry) -> None:
        """Place an entry on the ledger that this process never wrote."""
        self._visible[entry.patient_id].append(entry)

    def go_down(self) -> None:
        self.fail_appends = LedgerUnavailable("ledger offline", method="addImplantRecord")
        self.fail_audit = LedgerUnavailable("ledger offline", method="addAuditLog")

    def come_up(self) -> None:
        self.fail_appends = None
        self.fail_audit = None


__all__ = ["InMemoryLedger"]
