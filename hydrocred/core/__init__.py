# Core ledger services
from .errors import (
    LedgerError,
    PermissionDenied,
    InvalidAmount,
    InvalidAddress,
    NotFound,
    NotOwner,
    AlreadyRetired,
    TransactionCancelled,
)
from .hasher import Hasher, CanonicalSerializationError
from .identity import DEMO_IDENTITIES, IdentityRegistry
from .capabilities import (
    Capability,
    ROLE_CAPABILITIES,
    can,
    capabilities_for,
    require_capability,
)
from .transaction_log import TransactionLog, build_record, verify_records
from .ledger import LedgerService, MAX_ISSUE_AMOUNT, MIN_ISSUE_AMOUNT
from .confirmation import ConfirmationSimulator, PendingState, PendingTransaction
from .seed import SEED_FIRST_BLOCK, build_seed_state

__all__ = [
    "LedgerError",
    "PermissionDenied",
    "InvalidAmount",
    "InvalidAddress",
    "NotFound",
    "NotOwner",
    "AlreadyRetired",
    "TransactionCancelled",
    "Hasher",
    "CanonicalSerializationError",
    "DEMO_IDENTITIES",
    "IdentityRegistry",
    "Capability",
    "ROLE_CAPABILITIES",
    "can",
    "capabilities_for",
    "require_capability",
    "TransactionLog",
    "build_record",
    "verify_records",
    "LedgerService",
    "MAX_ISSUE_AMOUNT",
    "MIN_ISSUE_AMOUNT",
    "ConfirmationSimulator",
    "PendingState",
    "PendingTransaction",
    "SEED_FIRST_BLOCK",
    "build_seed_state",
]
