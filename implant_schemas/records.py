"""Procedure record payloads exchanged with the ledger and the API.

Ledger payloads are stored as camelCase JSON (``placementDate``, ``dentistId``)
so entries written by earlier clients of the same contract parse unchanged.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RecordType(str, Enum):
    PLACEMENT = "PLACEMENT"
    REMOVAL = "REMOVAL"


class ImplantRecordData(BaseModel):
    """Payload appended to the ledger for one procedure record.

    Unknown keys are preserved so the payload round-trips as opaque data.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    brand: Optional[str] = None
    model: Optional[str] = None
    lot: Optional[str] = None
    diameter: Optional[str] = None
    length: Optional[str] = None
    location: str
    placement_date: Optional[str] = None
    removal_date: Optional[str] = None
    removal_reason: Optional[str] = None
    entry_method: str = "manual"
    dentist_id: str

    # Corrections only
    dentist_name: Optional[str] = None
    edit_reason: Optional[str] = None
    original_tx_hash: Optional[str] = None

    def to_ledger_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ProcedureFields(BaseModel):
    """Clinical fields shared by new records and corrections."""

    patient_id: str = Field(..., min_length=1)
    record_type: RecordType
    brand: Optional[str] = None
    model: Optional[str] = None
    lot: Optional[str] = None
    diameter: Optional[str] = None
    length: Optional[str] = None
    location: str = ""
    placement_date: Optional[str] = None
    removal_date: Optional[str] = None
    removal_reason: Optional[str] = None


class ProcedureRecordCreate(ProcedureFields):
    entry_method: Optional[str] = None


class ProcedureRecordCreated(BaseModel):
    tx_hash: str
    patient_id: str
    record_type: RecordType
    location: str


class CorrectionRequest(ProcedureFields):
    original_tx_hash: str = Field(..., min_length=1)
    edit_reason: str = ""


class CorrectionResult(BaseModel):
    original_tx_hash: str
    new_tx_hash: str


class RecordView(BaseModel):
    """A confirmed cache entry as rendered to dentist/patient views."""

    tx_hash: str
    patient_id: str
    dentist_id: Optional[str] = None
    record_type: str
    location: Optional[str] = None
    placement_date: Optional[str] = None
    removal_date: Optional[str] = None
    is_corrected: bool = False
    corrected_by_tx_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    details: dict[str, Any] = Field(default_factory=dict)


class AuditTrailItem(BaseModel):
    action: str
    dentist_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    audit_tx_hash: Optional[str] = None
    created_at: Optional[datetime] = None


class RecordSummary(BaseModel):
    total_records: int
    placements: int
    removals: int
    last_activity: Optional[datetime] = None


class PatientRecordsResponse(BaseModel):
    patient_id: str
    records: list[RecordView]
    audit_trail: list[AuditTrailItem]
    summary: RecordSummary


class ProviderHistoryResponse(BaseModel):
    dentist_id: str
    provider_history: list[RecordView]
    summary: RecordSummary


class CorrectionChainView(BaseModel):
    tx_hash: str
    chain: list[str]
    live_tx_hash: str
