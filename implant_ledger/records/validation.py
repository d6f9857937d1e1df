"""Required-field rules for procedure records."""

from __future__ import annotations

from implant_ledger.common.exceptions import RecordValidationError
from implant_schemas.records import ProcedureFields, RecordType


def validate_procedure_fields(fields: ProcedureFields) -> None:
    if not fields.location or not fields.location.strip():
        raise RecordValidationError("Patient ID, record type, and location are required")
    if fields.record_type == RecordType.PLACEMENT and not fields.placement_date:
        raise RecordValidationError("Placement date is required for placement records")
    if fields.record_type == RecordType.REMOVAL and (not fields.removal_date or not fields.removal_reason):
        raise RecordValidationError("Removal date and reason are required for removal records")


__all__ = ["validate_procedure_fields"]
