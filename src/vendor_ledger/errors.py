"""Exception taxonomy for the vendor ledger engine."""

from typing import Any


class LedgerError(Exception):
    """Base exception for ledger errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ExtractionError(LedgerError):
    """The invoice extraction provider failed or returned unusable output."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message, details)
        self.status_code = status_code


class ValidationError(LedgerError):
    """Input failed validation (CSV columns, month formats, batch parameters)."""

    pass


class MergeConflict(LedgerError):
    """A merge request cannot be applied."""

    pass


class NotFoundError(LedgerError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id
