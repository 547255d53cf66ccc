"""
Seed snapshot.

The demo ledger starts from a fixed history that is replayed through
LedgerService itself, so the seed obeys the same invariants as every
later state and its record hashes are identical on every build.

Resulting holdings:
    producer1: #1, #2 active; #3 retired
    producer2: #4, #5 active
    buyer1:    #6 active; #7 retired
    buyer2:    #8 active
"""

from datetime import datetime, timedelta, timezone

from ..db.store import InMemorySnapshotStore
from ..schemas import LedgerState
from .identity import DEMO_IDENTITIES, IdentityRegistry


SEED_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)
SEED_FIRST_BLOCK = 18_000_001
SEED_STEP = timedelta(hours=6)


class _SteppingClock:
    """Returns SEED_EPOCH, then advances by SEED_STEP on every call."""

    def __init__(self, start: datetime = SEED_EPOCH, step: timedelta = SEED_STEP):
        self._next = start
        self._step = step

    def __call__(self) -> datetime:
        now = self._next
        self._next = now + self._step
        return now


def _address(key: str) -> str:
    for identity in DEMO_IDENTITIES:
        if identity.key == key:
            return identity.address
    raise KeyError(key)


def build_seed_state() -> LedgerState:
    """Build the deterministic initial snapshot."""
    # Import here to avoid circular imports
    from .ledger import LedgerService

    ledger = LedgerService(
        LedgerState(next_token_id=1, next_block_number=SEED_FIRST_BLOCK),
        InMemorySnapshotStore(),
        registry=IdentityRegistry(DEMO_IDENTITIES),
        clock=_SteppingClock(),
    )

    producer1 = _address("producer1")
    producer2 = _address("producer2")
    buyer1 = _address("buyer1")
    buyer2 = _address("buyer2")

    ledger.switch_identity("certifier")
    ledger.issue(producer1, 3)   # 1-3
    ledger.issue(producer2, 2)   # 4-5
    ledger.issue(producer1, 1)   # 6
    ledger.issue(producer2, 1)   # 7
    ledger.issue(buyer2, 1)      # 8

    ledger.transfer(producer1, buyer1, 6)
    ledger.transfer(producer2, buyer1, 7)

    ledger.switch_identity("producer1")
    ledger.retire(3)
    ledger.switch_identity("buyer1")
    ledger.retire(7)

    ledger.switch_identity("certifier")
    return ledger.snapshot()
