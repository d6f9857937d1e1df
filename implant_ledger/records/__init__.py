from implant_ledger.records.service import ProcedureRecordService
from implant_ledger.records.validation import validate_procedure_fields

__all__ = ["ProcedureRecordService", "validate_procedure_fields"]
