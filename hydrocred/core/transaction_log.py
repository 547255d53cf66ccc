"""
Transaction Log

Append-only record of every successful mutation, ordered by block number.

The log is a read view over the ledger's current state; records are only
ever added by LedgerService. Queries are recomputed per call, so the
result of list() is a finite, restartable sequence, not a subscription.
"""

from datetime import datetime
from typing import Callable, Iterator, Optional, Sequence

from ..schemas import TransactionRecord, TransactionType
from .hasher import Hasher


def build_record(
    previous: Optional[TransactionRecord],
    *,
    tx_type: TransactionType,
    from_address: str,
    timestamp: datetime,
    block_number: int,
    to_address: Optional[str] = None,
    token_id: Optional[int] = None,
    from_id: Optional[int] = None,
    to_id: Optional[int] = None,
    amount: Optional[int] = None,
) -> TransactionRecord:
    """
    Create the next record, hashed and chained to `previous`.
    """
    fields = dict(
        type=tx_type,
        from_address=from_address,
        to_address=to_address,
        token_id=token_id,
        from_id=from_id,
        to_id=to_id,
        amount=amount,
        timestamp=timestamp,
        block_number=block_number,
    )
    unsigned = TransactionRecord(hash="", **fields)
    tx_hash = Hasher.hash_record(
        unsigned.hash_payload(),
        previous.hash if previous is not None else None,
    )
    return unsigned.model_copy(update={"hash": tx_hash})


def verify_records(records: Sequence[TransactionRecord]) -> bool:
    """
    Verify hash chain and block ordering of a sequence of records.

    Records must be in ascending (append) order.
    """
    previous: Optional[TransactionRecord] = None

    for record in records:
        if previous is not None and record.block_number <= previous.block_number:
            return False

        expected_prev = previous.hash if previous is not None else None
        if not Hasher.verify_record(record.hash_payload(), record.hash, expected_prev):
            return False

        previous = record

    return True


class TransactionLog:
    """
    Query surface over the append-only transaction history.
    """

    def __init__(self, records: Callable[[], Sequence[TransactionRecord]]):
        self._records = records

    def list(self, from_block_number: int = 0) -> list[TransactionRecord]:
        """
        All records with block_number >= from_block_number, newest first.
        """
        return sorted(
            (r for r in self._records() if r.block_number >= from_block_number),
            key=lambda r: r.block_number,
            reverse=True,
        )

    def get(self, tx_hash: str) -> Optional[TransactionRecord]:
        """Look up a record by its hash (case-insensitive)."""
        wanted = tx_hash.lower()
        for record in self._records():
            if record.hash.lower() == wanted:
                return record
        return None

    def latest(self) -> Optional[TransactionRecord]:
        records = self._records()
        return records[-1] if records else None

    def verify_chain(self) -> bool:
        """
        Verify the entire record chain is intact.

        This should be run periodically as a health check.
        """
        return verify_records(list(self._records()))

    def __len__(self) -> int:
        return len(self._records())

    def __iter__(self) -> Iterator[TransactionRecord]:
        return iter(list(self._records()))
