# Overview: Typed error taxonomy shared by services, routes and the CLI.

"""
Error taxonomy

- Validation rejections: detected before any mutating write. The caller gets
  enough context (details) to display a specific message.
- Ledger / partial-write failures: a write failed, possibly after earlier
  writes succeeded. Data is not lost, only possibly inconsistent, so the
  caller is told to retry or contact support.
- State divergence: cached clock status disagrees with the time log history.
  Never repaired inside a normal operation; the caller is sent to the healer.
"""

from __future__ import annotations

RETRY_MESSAGE = "Please retry or contact support"
OUT_OF_SYNC_MESSAGE = "Session out of sync, please re-authenticate"


class CoreError(Exception):
    """Base class for every expected failure the core reports to callers."""
    code = "error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationRejection(CoreError):
    code = "rejected"
    http_status = 400


class InvalidRequest(ValidationRejection):
    code = "invalid_request"


class RecordNotFound(ValidationRejection):
    code = "not_found"
    http_status = 404


class ProductNotFound(RecordNotFound):
    code = "product_not_found"


class InventoryRejection(ValidationRejection):
    """Raised when a sale line cannot be fulfilled from stock or keg volume."""
    code = "insufficient_inventory"
    http_status = 409


class InvalidTransition(ValidationRejection):
    code = "invalid_transition"
    http_status = 409


class WriteOffConfirmationRequired(ValidationRejection):
    code = "write_off_confirmation_required"
    http_status = 409


class PermissionDenied(ValidationRejection):
    code = "permission_denied"
    http_status = 403


class LedgerError(CoreError):
    code = "ledger_unavailable"
    http_status = 503

    def __init__(self, message: str = RETRY_MESSAGE, details: dict | None = None):
        super().__init__(message, details)


class LedgerReadError(LedgerError):
    code = "ledger_read_failed"


class LedgerWriteError(LedgerError):
    code = "ledger_write_failed"


class LedgerConflict(LedgerWriteError):
    """A write was refused by a database constraint, usually a concurrent write that got there first."""
    code = "ledger_conflict"
    http_status = 409


class PartialWriteError(LedgerError):
    """A later step of a multi-step write failed after earlier steps committed."""
    code = "partial_write"


class StateDivergence(CoreError):
    code = "state_divergence"
    http_status = 409

    def __init__(self, message: str = OUT_OF_SYNC_MESSAGE, details: dict | None = None):
        super().__init__(message, details)
