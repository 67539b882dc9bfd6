# Overview: Error taxonomy shared by the sync, numbering, reconciliation and import services.

from __future__ import annotations

from typing import Any, Iterable


class StockSyncError(Exception):
    """
    Base class for every error the core surfaces to its callers.

    Each error carries a machine-readable kind, the HTTP status the API
    layer should answer with, and optional structured details (row errors,
    unsatisfied lines). Callers branch on the class, never on the message.
    """
    kind = "error"
    http_status = 400

    def __init__(self, message: str, *, details: Iterable[Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = list(details) if details is not None else []

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class OfflineRejection(StockSyncError):
    """Raised when a mutating operation is attempted while offline."""
    kind = "offline"
    http_status = 409


class ValidationError(StockSyncError, ValueError):
    """400-level input problem (field, row or line scoped)."""
    kind = "validation"
    http_status = 400


class UniquenessConflict(StockSyncError, ValueError):
    """409-level collision against currently loaded data (e.g., duplicate SKU)."""
    kind = "conflict"
    http_status = 409


class CounterTransactionFailure(StockSyncError):
    """The atomic counter read-modify-write could not complete. Safe to retry."""
    kind = "counter_failure"
    http_status = 503


class SubscriptionError(StockSyncError):
    """A live collection listener failed. Not retried automatically."""
    kind = "subscription"
    http_status = 502


class PartialFinalizeRejection(ValidationError):
    """Reconciliation finalize preconditions unmet; nothing was committed."""
    kind = "unsatisfied_lines"
    http_status = 422


class DocumentNotFoundError(StockSyncError, LookupError):
    """Raised when a document does not exist in its collection."""
    kind = "not_found"
    http_status = 404


class DocumentStateError(StockSyncError):
    """Raised when an operation is invalid for the document's current status."""
    kind = "invalid_state"
    http_status = 409
