"""
Canonical Transaction Schema

The transaction log is append-only.
Nothing is "edited". Things happen.

Each record:
- Describes exactly one successful mutation
- Carries a ledger-local block number (canonical order)
- Is hashed and chained to its predecessor
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


TX_STATUS_SUCCESS = 1


class TransactionType(str, Enum):
    """
    All possible transaction types.
    You can add more later, never remove.
    """
    ISSUE = "issue"
    TRANSFER = "transfer"
    RETIRE = "retire"


class TransactionRecord(BaseModel):
    """
    One entry of the transaction log.

    Field usage by type:
    - issue:    from_address (certifier), to_address, from_id, to_id, amount
    - transfer: from_address, to_address, token_id
    - retire:   from_address (retiring owner), token_id
    """
    hash: str = Field(
        ...,
        description="0x-prefixed SHA-256 of the chained record payload"
    )

    type: TransactionType

    from_address: str = Field(
        ...,
        description="Acting address"
    )

    to_address: Optional[str] = None

    token_id: Optional[int] = Field(default=None, ge=1)

    from_id: Optional[int] = Field(default=None, ge=1)
    to_id: Optional[int] = Field(default=None, ge=1)
    amount: Optional[int] = Field(default=None, ge=1)

    timestamp: datetime

    block_number: int = Field(
        ...,
        ge=0,
        description="Ledger-local monotonically increasing counter"
    )

    status: int = TX_STATUS_SUCCESS

    model_config = {"frozen": True}

    def hash_payload(self) -> dict[str, Any]:
        """
        The fields covered by the record hash.

        Everything except the hash itself.
        """
        return self.model_dump(mode="python", exclude={"hash"})


class Receipt(BaseModel):
    """Confirmation handed back to the caller once a transaction settles."""
    status: int
    hash: str
    block_number: int

    model_config = {"frozen": True}

    @classmethod
    def for_record(cls, record: TransactionRecord) -> "Receipt":
        return cls(
            status=record.status,
            hash=record.hash,
            block_number=record.block_number,
        )
