# mlm_system/errors.py
"""
Ledger core exceptions.

Raised inside services, caught at the service boundary and converted to
{"success": False, "message": ...} results.
"""


class LedgerError(Exception):
    """Base ledger exception."""
    pass


class ValidationError(LedgerError):
    pass


class InsufficientBalanceError(LedgerError):
    pass


class InvalidStateError(LedgerError):
    pass


class NotFoundError(LedgerError):
    pass


def error_code(error: LedgerError) -> str:
    """Short machine-readable code for a failed result."""
    if isinstance(error, NotFoundError):
        return "not_found"
    if isinstance(error, InsufficientBalanceError):
        return "insufficient_balance"
    if isinstance(error, InvalidStateError):
        return "invalid_state"
    return "validation"
