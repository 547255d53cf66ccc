"""
Ledger State Snapshot

The whole ledger is one serializable aggregate.
It is loaded on start and overwritten after every mutation.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .token import Token
from .transaction import TransactionRecord


class LedgerState(BaseModel):
    """
    Persisted snapshot of the mock credit ledger.

    INVARIANTS (checked by LedgerState.check_invariants):
    - token ids are exactly 1..next_token_id-1, in order
    - block numbers are strictly increasing and below next_block_number
    """
    tokens: list[Token] = Field(default_factory=list)
    transactions: list[TransactionRecord] = Field(default_factory=list)
    next_token_id: int = Field(default=1, ge=1)
    next_block_number: int = Field(default=0, ge=0)
    current_identity: Optional[str] = Field(
        default=None,
        description="Address of the identity that acts next"
    )

    def check_invariants(self) -> list[str]:
        """
        Return a list of violated snapshot invariants (empty if sound).
        """
        problems = []

        expected_ids = list(range(1, self.next_token_id))
        actual_ids = [t.token_id for t in self.tokens]
        if actual_ids != expected_ids:
            problems.append(
                f"token ids are not sequential from 1 to {self.next_token_id - 1}"
            )

        last_block = None
        for record in self.transactions:
            if last_block is not None and record.block_number <= last_block:
                problems.append(
                    f"block number {record.block_number} does not increase "
                    f"after {last_block}"
                )
            last_block = record.block_number

        if last_block is not None and last_block >= self.next_block_number:
            problems.append(
                f"next_block_number {self.next_block_number} is not past "
                f"last block {last_block}"
            )

        for token in self.tokens:
            if token.retired and (token.retired_by is None or token.retired_at is None):
                problems.append(f"retired token {token.token_id} lacks retirement data")

        return problems
