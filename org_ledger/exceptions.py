"""
Ledger Errors

Typed error taxonomy shared by the core and the HTTP layer. Every error is a
terminal caller-input failure: nothing here is retried internally.
"""

from typing import Optional


class LedgerError(ValueError):
    """Base class for all ledger failures"""

    status_code = 400
    default_code = "LEDGER_ERROR"

    def __init__(self, reason: str, code: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.code = code or self.default_code


class NotFoundError(LedgerError):
    """Record absent, or owned by another organization"""

    status_code = 404
    default_code = "NOT_FOUND"


class InvalidInputError(LedgerError):
    """Malformed transaction intent (amount or endpoint shape)"""

    status_code = 400
    default_code = "INVALID_INPUT"


class PreconditionFailedError(LedgerError):
    """Inactive account, or account still referenced by transactions"""

    status_code = 412
    default_code = "PRECONDITION_FAILED"

    def __init__(self, reason: str, code: Optional[str] = None, account_id: Optional[str] = None):
        super().__init__(reason, code)
        self.account_id = account_id


class ConflictError(LedgerError):
    """Uniqueness violation (e.g. duplicate account name)"""

    status_code = 409
    default_code = "CONFLICT"


class AccessDeniedError(LedgerError):
    """Caller may not act within the requested organization"""

    status_code = 403
    default_code = "ACCESS_DENIED"
