"""
Confirmation Simulator

Models the gap between "submitted" and "confirmed" that a real chain has.

Submission and confirmation are separate steps:

    pending = simulator.submit_transfer(producer, buyer, 2)   # validated, nothing written
    receipt = await pending                                   # delay, then commit

- submit_* runs every precondition immediately. Domain errors raise
  right here, synchronously, and nothing is staged.
- Staged mutations commit in submission order. Awaiting a handle first
  confirms every earlier handle from the same simulator, each after its
  own delay, then its own. The delay never reorders mutations.
- Preconditions are checked again at commit; if another mutation got
  there first, the domain error is raised from the await.
- cancel() before confirmation drops the staged mutation.
- drain() confirms everything still outstanding.

States:
    SUBMITTED --wait--> CONFIRMED
    SUBMITTED --wait--> FAILED     (precondition broke while pending)
    SUBMITTED --cancel-> CANCELLED
"""

import asyncio
import random
import time
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, Optional, Union
from uuid import uuid4

from ..db.store import SnapshotStoreError
from ..observability import get_logger
from ..schemas import Receipt, TransactionRecord, TransactionType
from .errors import LedgerError, TransactionCancelled
from .ledger import LedgerService

logger = get_logger(__name__)


Sleep = Callable[[float], Awaitable[None]]


class PendingState(str, Enum):
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PendingTransaction:
    """
    Handle for a validated, not yet committed mutation.

    Awaiting the handle (or calling wait()) resolves to a Receipt.
    Repeated waits return the same receipt.
    """

    def __init__(
        self,
        tx_type: TransactionType,
        commit: Callable[[], TransactionRecord],
        delay: float,
        confirm: Callable[["PendingTransaction"], Awaitable[None]],
        on_confirmed: Optional[Callable[[float], None]] = None,
    ):
        self.submission_id = uuid4().hex
        self.tx_type = tx_type
        self.delay = delay
        self._commit = commit
        self._confirm = confirm
        self._on_confirmed = on_confirmed
        self._state = PendingState.SUBMITTED
        self._record: Optional[TransactionRecord] = None
        self._error: Optional[Union[LedgerError, SnapshotStoreError]] = None
        self._submitted_at = time.perf_counter()

    @property
    def state(self) -> PendingState:
        return self._state

    @property
    def done(self) -> bool:
        return self._state != PendingState.SUBMITTED

    @property
    def record(self) -> Optional[TransactionRecord]:
        """The committed transaction record, once confirmed."""
        return self._record

    @property
    def hash(self) -> Optional[str]:
        return self._record.hash if self._record else None

    def cancel(self) -> bool:
        """
        Drop the staged mutation.

        Returns False if the transaction already settled.
        """
        if self._state != PendingState.SUBMITTED:
            return False
        self._state = PendingState.CANCELLED
        logger.info(
            "Pending transaction cancelled",
            submission_id=self.submission_id,
            tx_type=self.tx_type.value,
        )
        return True

    async def wait(self) -> Receipt:
        if self._state == PendingState.SUBMITTED:
            await self._confirm(self)
        return self._outcome()

    def __await__(self):
        return self.wait().__await__()

    def _settle(self) -> None:
        # cancel() may have run while we slept
        if self._state != PendingState.SUBMITTED:
            return
        try:
            self._record = self._commit()
        except (LedgerError, SnapshotStoreError) as e:
            self._state = PendingState.FAILED
            self._error = e
            logger.info(
                "Pending transaction failed at confirmation",
                submission_id=self.submission_id,
                tx_type=self.tx_type.value,
                error_type=type(e).__name__,
            )
            return

        self._state = PendingState.CONFIRMED
        latency_ms = (time.perf_counter() - self._submitted_at) * 1000
        if self._on_confirmed is not None:
            self._on_confirmed(latency_ms)
        logger.debug(
            "Transaction confirmed",
            submission_id=self.submission_id,
            tx_hash=self._record.hash,
            block_number=self._record.block_number,
        )

    def _outcome(self) -> Receipt:
        if self._state == PendingState.CONFIRMED:
            return Receipt.for_record(self._record)
        if self._state == PendingState.FAILED:
            raise self._error
        raise TransactionCancelled(
            f"Transaction {self.submission_id} was cancelled before confirmation"
        )


class ConfirmationSimulator:
    """
    Wraps ledger mutations in submitted -> confirmed handles.

    Delay is drawn uniformly from [min_delay, max_delay] per submission.
    The random source and sleep function are injectable for tests.
    """

    def __init__(
        self,
        ledger: LedgerService,
        min_delay: float = 0.5,
        max_delay: float = 1.5,
        rng: Optional[random.Random] = None,
        sleep: Optional[Sleep] = None,
    ):
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError(
                f"Invalid confirmation delay range [{min_delay}, {max_delay}]"
            )
        self._ledger = ledger
        self.min_delay = min_delay
        self.max_delay = max_delay
        self._rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep
        self._queue: deque[PendingTransaction] = deque()
        self._queue_lock: Optional[asyncio.Lock] = None
        self._queue_loop: Optional[asyncio.AbstractEventLoop] = None

    def next_delay(self) -> float:
        if self.min_delay == self.max_delay:
            return self.min_delay
        return self._rng.uniform(self.min_delay, self.max_delay)

    @property
    def outstanding(self) -> int:
        """Submissions neither confirmed, failed nor cancelled."""
        return sum(1 for p in self._queue if p.state == PendingState.SUBMITTED)

    def _lock(self) -> asyncio.Lock:
        # asyncio.Lock binds to one event loop; each asyncio.run gets its own
        loop = asyncio.get_running_loop()
        if self._queue_lock is None or self._queue_loop is not loop:
            self._queue_lock = asyncio.Lock()
            self._queue_loop = loop
        return self._queue_lock

    async def _confirm_through(self, pending: PendingTransaction) -> None:
        """Settle queued submissions, oldest first, until `pending` settles."""
        async with self._lock():
            while pending.state == PendingState.SUBMITTED and self._queue:
                head = self._queue.popleft()
                if head.state != PendingState.SUBMITTED:
                    continue
                await self._sleep(head.delay)
                head._settle()

    async def drain(self) -> None:
        """Confirm every outstanding submission in submission order."""
        async with self._lock():
            while self._queue:
                head = self._queue.popleft()
                if head.state != PendingState.SUBMITTED:
                    continue
                await self._sleep(head.delay)
                head._settle()

    def _pending(
        self,
        tx_type: TransactionType,
        commit: Callable[[], TransactionRecord],
    ) -> PendingTransaction:
        pending = PendingTransaction(
            tx_type,
            commit,
            delay=self.next_delay(),
            confirm=self._confirm_through,
            on_confirmed=self._ledger.metrics.record_confirmation,
        )
        self._queue.append(pending)
        logger.debug(
            "Transaction submitted",
            submission_id=pending.submission_id,
            tx_type=tx_type.value,
            delay_s=round(pending.delay, 3),
            queued=len(self._queue),
        )
        return pending

    def submit_issue(self, to_address: str, amount: int) -> PendingTransaction:
        """
        Validate an issuance by the active identity now; commit it on
        confirmation.

        The issuer is fixed at submission, so switching identity while
        the transaction is pending does not change who minted.
        """
        issuer = self._ledger.check_issue(to_address, amount)
        return self._pending(
            TransactionType.ISSUE,
            lambda: self._ledger._issue(to_address, amount, issuer=issuer),
        )

    def submit_transfer(
        self,
        from_address: str,
        to_address: str,
        token_id: int,
    ) -> PendingTransaction:
        self._ledger.check_transfer(from_address, to_address, token_id)
        return self._pending(
            TransactionType.TRANSFER,
            lambda: self._ledger.transfer(from_address, to_address, token_id),
        )

    def submit_retire(self, token_id: int) -> PendingTransaction:
        caller = self._ledger.require_active()
        self._ledger.check_retire(token_id)
        return self._pending(
            TransactionType.RETIRE,
            lambda: self._ledger._retire(token_id, caller=caller),
        )
