"""Exception hierarchy for the implant ledger engine."""

from __future__ import annotations


class LedgerError(Exception):
    """Base error for calls against the external ledger."""

    def __init__(self, message: str, method: str | None = None, status_code: int | None = None):
        self.method = method
        self.status_code = status_code
        super().__init__(message)


class LedgerUnavailable(LedgerError):
    """Ledger could not be reached or timed out. Safe to retry the whole write."""

    def __init__(
        self,
        message: str,
        method: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, method=method, status_code=status_code)


class LedgerRejected(LedgerError):
    """Ledger refused the entry (malformed per its schema). Not retryable."""

    pass


class LedgerConfigurationError(LedgerError):
    """Endpoint or contract address is missing."""

    pass


class RecordNotFound(Exception):
    """Correction target is unknown, already corrected, or not owned by the caller."""

    def __init__(self, message: str, tx_hash: str | None = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class RecordValidationError(ValueError):
    """A procedure record write is missing required fields."""

    pass


class MatchMismatch(Exception):
    """Ledger entry and pending reference disagree on record type at one position.

    Raised and caught inside the reconciler only; sweep callers see it as data.
    """

    def __init__(self, patient_id: str, index: int, ledger_type: str, reference_type: str, tx_hash: str):
        self.patient_id = patient_id
        self.index = index
        self.ledger_type = ledger_type
        self.reference_type = reference_type
        self.tx_hash = tx_hash
        super().__init__(
            f"Record type mismatch at position {index}: ledger has {ledger_type}, "
            f"reference {tx_hash} has {reference_type}"
        )


class CorrectionChainError(Exception):
    """A correction chain loops back on itself."""

    pass


class SyncDisabled(Exception):
    """Ledger sync has been switched off."""

    pass


class PersistenceError(Exception):
    """Database or storage persistence error."""

    def __init__(self, message: str, operation: str | None = None, tx_hash: str | None = None):
        self.operation = operation
        self.tx_hash = tx_hash
        super().__init__(message)
