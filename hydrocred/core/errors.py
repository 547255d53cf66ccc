"""
Ledger error taxonomy.

Every rejection is synchronous and raised before any state changes.
Retry policy, if any, belongs to the caller.
"""


class LedgerError(Exception):
    """Base exception for ledger errors."""
    pass


class PermissionDenied(LedgerError):
    """Raised when the acting role lacks the capability for an operation."""
    pass


class InvalidAmount(LedgerError):
    """Raised when an issuance amount is not an integer in range."""
    pass


class InvalidAddress(LedgerError):
    """Raised when an address is not a 0x-prefixed 40-hex-digit string."""
    pass


class NotFound(LedgerError):
    """Raised when a token or identity does not exist."""
    pass


class NotOwner(LedgerError):
    """Raised when the acting address does not own the token."""
    pass


class AlreadyRetired(LedgerError):
    """Raised when a retired token is transferred or retired again."""
    pass


class TransactionCancelled(LedgerError):
    """Raised when waiting on a pending transaction that was cancelled."""
    pass
