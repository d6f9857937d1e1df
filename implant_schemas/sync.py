from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field


class MismatchReport(BaseModel):
    patient_id: str
    index: int
    ledger_record_type: str
    reference_record_type: str
    tx_hash: str


class SyncResult(BaseModel):
    synced_records: int = 0
    patients_processed: int = 0
    errors: list[str] = Field(default_factory=list)
    mismatches: list[MismatchReport] = Field(default_factory=list)

    @computed_field
    @property
    def mismatched_patients(self) -> list[str]:
        return sorted({m.patient_id for m in self.mismatches})

    def merge(self, other: "SyncResult") -> None:
        self.synced_records += other.synced_records
        self.patients_processed += other.patients_processed
        self.errors.extend(other.errors)
        self.mismatches.extend(other.mismatches)


class SyncStatusView(BaseModel):
    sync_enabled: bool
    last_sync: Optional[datetime] = None
    sync_frequency_hours: int
    next_sync: Optional[datetime] = None


class SyncToggleRequest(BaseModel):
    enabled: bool
    sync_frequency_hours: Optional[int] = Field(None, ge=1)
