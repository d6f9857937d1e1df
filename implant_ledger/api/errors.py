"""Map service exceptions onto HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException, status

from implant_ledger.common.exceptions import (
    CorrectionChainError,
    LedgerConfigurationError,
    LedgerRejected,
    LedgerUnavailable,
    PersistenceError,
    RecordNotFound,
    RecordValidationError,
    SyncDisabled,
)


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, RecordValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, RecordNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, SyncDisabled):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, LedgerUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, LedgerRejected):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, CorrectionChainError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (LedgerConfigurationError, PersistenceError)):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error")


SERVICE_ERRORS = (
    CorrectionChainError,
    LedgerConfigurationError,
    LedgerRejected,
    LedgerUnavailable,
    PersistenceError,
    RecordNotFound,
    RecordValidationError,
    SyncDisabled,
)

__all__ = ["SERVICE_ERRORS", "to_http_exception"]
