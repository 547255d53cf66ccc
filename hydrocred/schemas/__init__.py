# Canonical Schemas for the HydroCred mock credit ledger

from .identity import Identity, Role, is_valid_address, normalize_address
from .token import Token, TokenStatus, format_token_id
from .transaction import (
    Receipt,
    TransactionRecord,
    TransactionType,
    TX_STATUS_SUCCESS,
)
from .state import LedgerState

__all__ = [
    # Identity
    "Identity",
    "Role",
    "is_valid_address",
    "normalize_address",
    # Token
    "Token",
    "TokenStatus",
    "format_token_id",
    # Transactions
    "Receipt",
    "TransactionRecord",
    "TransactionType",
    "TX_STATUS_SUCCESS",
    # State
    "LedgerState",
]
