from .records import (
    AuditTrailItem,
    CorrectionChainView,
    CorrectionRequest,
    CorrectionResult,
    ImplantRecordData,
    PatientRecordsResponse,
    ProcedureRecordCreate,
    ProcedureRecordCreated,
    ProviderHistoryResponse,
    RecordSummary,
    RecordType,
    RecordView,
)
from .sync import MismatchReport, SyncResult, SyncStatusView, SyncToggleRequest

__all__ = [
    "AuditTrailItem",
    "CorrectionChainView",
    "CorrectionRequest",
    "CorrectionResult",
    "ImplantRecordData",
    "MismatchReport",
    "PatientRecordsResponse",
    "ProcedureRecordCreate",
    "ProcedureRecordCreated",
    "ProviderHistoryResponse",
    "RecordSummary",
    "RecordType",
    "RecordView",
    "SyncResult",
    "SyncStatusView",
    "SyncToggleRequest",
]
