"""
Ledger Service - The Heart of the Mock Chain

A persisted simulation of the HydroCred credit token contract.

The ledger:
- Accepts issue / transfer / retire requests
- Validates every precondition before touching state
- Builds the next LedgerState
- Persists it through a SnapshotStore
- Only then makes it the current state

Rules (enforced in code):
- Only identities with the issue capability may mint
- Issuance amount is an integer in [1, 1000]
- Token ids are assigned sequentially and never reused
- Only the current owner may transfer or retire a token
- Retirement is terminal: a retired token never changes again
- Every successful mutation appends exactly one transaction record
- Failed operations leave no trace in state or log

ARCHITECTURE NOTE:
- LedgerService: business rules, token state machine
- SnapshotStore: durability of the whole state
- TransactionLog: read view over the append-only history
- ConfirmationSimulator: submitted -> confirmed latency for the UI
"""

from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Optional

from ..observability import MetricsCollector, acting_as, get_logger
from ..schemas import (
    Identity,
    LedgerState,
    Role,
    Token,
    TransactionRecord,
    TransactionType,
    format_token_id,
    is_valid_address,
    normalize_address,
)
from ..db.store import LoadResult, LoadStatus, SnapshotStore, SnapshotStoreError
from .capabilities import Capability, require_capability
from .errors import (
    AlreadyRetired,
    InvalidAddress,
    InvalidAmount,
    LedgerError,
    NotFound,
    NotOwner,
    PermissionDenied,
)
from .identity import IdentityRegistry, IdentitySelector
from .transaction_log import TransactionLog, build_record

logger = get_logger(__name__)


MIN_ISSUE_AMOUNT = 1
MAX_ISSUE_AMOUNT = 1000

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LedgerService:
    """
    The mock credit ledger.

    Holds the current LedgerState and is the only writer of it.

    ATOMICITY GUARANTEES:
    - Preconditions are checked before any new state is built
    - The new state is saved before it replaces the current one
    - If the save fails, the current state is untouched

    CONCURRENCY:
    - One writer: mutations are serialized by an in-process lock
    - No cross-process coordination (two processes on one snapshot file
      can overwrite each other)
    """

    def __init__(
        self,
        state: LedgerState,
        store: SnapshotStore,
        registry: Optional[IdentityRegistry] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._state = state
        self._store = store
        self._registry = registry or IdentityRegistry()
        self._clock = clock or utc_now
        self._metrics = metrics or MetricsCollector()
        self._lock = RLock()
        self._log = TransactionLog(lambda: self._state.transactions)
        self.load_result: Optional[LoadResult] = None

        self._sync_active_identity()

    # ================================================================
    # LIFECYCLE
    # ================================================================

    @classmethod
    def open(
        cls,
        store: SnapshotStore,
        registry: Optional[IdentityRegistry] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "LedgerService":
        """
        Load the ledger from a store, seeding it on first run.

        A missing snapshot is a fresh start. A corrupted snapshot is
        logged and replaced with the seed; the LoadResult stays
        available as `load_result`.
        """
        # Import here to avoid circular imports
        from .seed import build_seed_state

        result = store.load()
        metrics = metrics or MetricsCollector()

        if result.ok:
            state = result.state
            logger.info(
                "Ledger snapshot loaded",
                store=store.description,
                tokens=len(state.tokens),
                transactions=len(state.transactions),
            )
        else:
            if result.status == LoadStatus.CORRUPTED:
                metrics.snapshot_fallbacks += 1
                logger.warning(
                    "Ledger snapshot unreadable, falling back to seed",
                    store=store.description,
                    error=result.error,
                )
            else:
                logger.info("No ledger snapshot found, seeding", store=store.description)
            state = build_seed_state()
            try:
                store.save(state)
            except SnapshotStoreError as e:
                # The next successful mutation writes the full state again
                logger.warning(
                    "Could not persist seed snapshot",
                    store=store.description,
                    error=str(e),
                )

        ledger = cls(state, store, registry=registry, clock=clock, metrics=metrics)
        ledger.load_result = result
        return ledger

    def reset(self) -> LedgerState:
        """
        Overwrite the ledger with the seed snapshot.

        This is a full replacement, not an incremental undo.
        """
        from .seed import build_seed_state

        with self._lock:
            seed = build_seed_state()
            self._commit(seed)
            self._sync_active_identity()
            self._metrics.resets += 1

        logger.info(
            "Ledger reset to seed",
            tokens=len(seed.tokens),
            transactions=len(seed.transactions),
        )
        return self.snapshot()

    def _sync_active_identity(self) -> None:
        current = self._state.current_identity
        if current is None:
            self._registry.clear_active()
            return
        try:
            self._registry.switch_active(current)
        except NotFound:
            logger.warning(
                "Snapshot names an identity outside the catalog",
                address=current,
            )
            self._registry.clear_active()

    # ================================================================
    # PROPERTIES
    # ================================================================

    @property
    def state(self) -> LedgerState:
        """The current state. Treat as read-only; use snapshot() for a copy."""
        return self._state

    def snapshot(self) -> LedgerState:
        return self._state.model_copy(deep=True)

    @property
    def store(self) -> SnapshotStore:
        return self._store

    @property
    def registry(self) -> IdentityRegistry:
        return self._registry

    @property
    def log(self) -> TransactionLog:
        return self._log

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def next_token_id(self) -> int:
        return self._state.next_token_id

    @property
    def next_block_number(self) -> int:
        return self._state.next_block_number

    # ================================================================
    # IDENTITY
    # ================================================================

    @property
    def active_identity(self) -> Optional[Identity]:
        return self._registry.get_active()

    def switch_identity(self, selector: IdentitySelector) -> Identity:
        """
        Change who acts next.

        Only the pointer in the snapshot changes; tokens and log do not.
        """
        with self._lock:
            identity = self._registry.resolve(selector)
            new_state = self._state.model_copy(update={"current_identity": identity.address})
            self._commit(new_state)
            self._registry.switch_active(identity.address)

        logger.info(
            "Active identity switched",
            identity=identity.key,
            role=identity.role.value,
            address=identity.address,
        )
        return identity

    # ================================================================
    # VALIDATION
    # Every check runs before any state is built
    # ================================================================

    def require_active(self) -> Identity:
        """The active identity; PermissionDenied when none is selected."""
        identity = self._registry.get_active()
        if identity is None:
            raise PermissionDenied("No active identity. Switch to an identity first.")
        return identity

    @staticmethod
    def _require_address(address: object, label: str) -> str:
        if not is_valid_address(address):
            raise InvalidAddress(
                f"{label} must be 0x followed by 40 hex characters, got {address!r}"
            )
        return address.strip()

    def _get_token(self, token_id: object) -> Token:
        if isinstance(token_id, bool) or not isinstance(token_id, int):
            raise NotFound(f"Token {token_id!r} does not exist")
        if token_id < 1 or token_id >= self._state.next_token_id:
            raise NotFound(f"Token {format_token_id(token_id)} does not exist")
        return self._state.tokens[token_id - 1]

    def check_issue(self, to_address: str, amount: int) -> Identity:
        """
        Validate an issuance by the active identity without performing it.

        Returns the issuing identity.
        """
        issuer = self.require_active()
        self._check_issue_by(issuer, to_address, amount)
        return issuer

    def _check_issue_by(self, issuer: Identity, to_address: str, amount: int) -> None:
        require_capability(issuer, Capability.ISSUE)

        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount(f"Amount must be an integer, got {amount!r}")
        if not MIN_ISSUE_AMOUNT <= amount <= MAX_ISSUE_AMOUNT:
            raise InvalidAmount(
                f"Amount must be between {MIN_ISSUE_AMOUNT} and "
                f"{MAX_ISSUE_AMOUNT}, got {amount}"
            )

        self._require_address(to_address, "Recipient address")

    def check_transfer(self, from_address: str, to_address: str, token_id: int) -> Token:
        """
        Validate a transfer without performing it.

        Check order: existence, retirement, ownership, capability.
        """
        self._require_address(from_address, "Sender address")
        token = self._get_token(token_id)

        if token.retired:
            raise AlreadyRetired(
                f"Token {format_token_id(token.token_id)} is retired and cannot be transferred"
            )

        if normalize_address(token.owner) != normalize_address(from_address):
            raise NotOwner(
                f"{from_address} does not own token {format_token_id(token.token_id)}"
            )

        require_capability(
            self._registry.find(from_address),
            Capability.TRANSFER,
            address=from_address,
        )
        self._require_address(to_address, "Recipient address")
        return token

    def check_retire(self, token_id: int) -> Token:
        """
        Validate a retirement by the active identity without performing it.

        Check order: existence, retirement, ownership, capability.
        """
        return self._check_retire_by(self.require_active(), token_id)

    def _check_retire_by(self, caller: Identity, token_id: int) -> Token:
        token = self._get_token(token_id)

        if token.retired:
            raise AlreadyRetired(
                f"Token {format_token_id(token.token_id)} is already retired"
            )

        if normalize_address(token.owner) != normalize_address(caller.address):
            raise NotOwner(
                f"{caller.display_name} does not own token {format_token_id(token.token_id)}"
            )

        require_capability(caller, Capability.RETIRE)
        return token

    # ================================================================
    # MUTATIONS
    # ================================================================

    def _commit(self, new_state: LedgerState) -> None:
        """Persist, then swap in. A failed save leaves the current state."""
        self._store.save(new_state)
        self._state = new_state

    def _next_record(self, **fields) -> TransactionRecord:
        return build_record(
            self._log.latest(),
            block_number=self._state.next_block_number,
            **fields,
        )

    def _acting_address(self, pinned: Optional[Identity]) -> Optional[str]:
        identity = pinned or self._registry.get_active()
        return identity.address if identity is not None else None

    def _rejected(self, operation: str, error: LedgerError) -> None:
        self._metrics.record_rejection(error)
        logger.info(
            f"{operation} rejected",
            operation=operation,
            error_type=type(error).__name__,
            error=str(error),
        )

    def issue(self, to_address: str, amount: int) -> TransactionRecord:
        """
        Mint `amount` new tokens to `to_address` as the active identity.

        Token ids are contiguous, starting at next_token_id.
        One transaction record covers the whole batch.
        """
        return self._issue(to_address, amount)

    def _issue(
        self,
        to_address: str,
        amount: int,
        issuer: Optional[Identity] = None,
    ) -> TransactionRecord:
        # `issuer` is pinned by ConfirmationSimulator at submit time
        with self._lock, acting_as(self._acting_address(issuer)):
            try:
                issuer = issuer or self.require_active()
                self._check_issue_by(issuer, to_address, amount)
            except LedgerError as e:
                self._rejected("issue", e)
                raise

            now = self._clock()
            first_id = self._state.next_token_id
            last_id = first_id + amount - 1
            recipient = to_address.strip()

            minted = [
                Token(
                    token_id=token_id,
                    owner=recipient,
                    retired=False,
                    issued_at=now,
                    issued_by=issuer.address,
                )
                for token_id in range(first_id, last_id + 1)
            ]

            record = self._next_record(
                tx_type=TransactionType.ISSUE,
                from_address=issuer.address,
                to_address=recipient,
                from_id=first_id,
                to_id=last_id,
                amount=amount,
                timestamp=now,
            )

            self._commit(self._state.model_copy(update={
                "tokens": [*self._state.tokens, *minted],
                "transactions": [*self._state.transactions, record],
                "next_token_id": last_id + 1,
                "next_block_number": record.block_number + 1,
            }))
            self._metrics.record_mutation(TransactionType.ISSUE.value, minted=amount)

            logger.info(
                "Credits issued",
                to=recipient,
                amount=amount,
                from_id=first_id,
                to_id=last_id,
                block_number=record.block_number,
            )
            return record

    def transfer(self, from_address: str, to_address: str, token_id: int) -> TransactionRecord:
        """Move an active token from its owner to `to_address`."""
        with self._lock, acting_as(from_address if isinstance(from_address, str) else None):
            try:
                token = self.check_transfer(from_address, to_address, token_id)
            except LedgerError as e:
                self._rejected("transfer", e)
                raise

            now = self._clock()
            recipient = to_address.strip()
            moved = token.model_copy(update={"owner": recipient})

            record = self._next_record(
                tx_type=TransactionType.TRANSFER,
                from_address=token.owner,
                to_address=recipient,
                token_id=token.token_id,
                timestamp=now,
            )

            self._commit(self._state.model_copy(update={
                "tokens": self._replace_token(moved),
                "transactions": [*self._state.transactions, record],
                "next_block_number": record.block_number + 1,
            }))
            self._metrics.record_mutation(TransactionType.TRANSFER.value)

            logger.info(
                "Credit transferred",
                token_id=token.token_id,
                sender=token.owner,
                to=recipient,
                block_number=record.block_number,
            )
            return record

    def retire(self, token_id: int) -> TransactionRecord:
        """
        Permanently retire a token owned by the active identity.

        There is no un-retire.
        """
        return self._retire(token_id)

    def _retire(self, token_id: int, caller: Optional[Identity] = None) -> TransactionRecord:
        with self._lock, acting_as(self._acting_address(caller)):
            try:
                caller = caller or self.require_active()
                token = self._check_retire_by(caller, token_id)
            except LedgerError as e:
                self._rejected("retire", e)
                raise

            now = self._clock()
            retired = token.model_copy(update={
                "retired": True,
                "retired_by": caller.address,
                "retired_at": now,
            })

            record = self._next_record(
                tx_type=TransactionType.RETIRE,
                from_address=caller.address,
                token_id=token.token_id,
                timestamp=now,
            )

            self._commit(self._state.model_copy(update={
                "tokens": self._replace_token(retired),
                "transactions": [*self._state.transactions, record],
                "next_block_number": record.block_number + 1,
            }))
            self._metrics.record_mutation(TransactionType.RETIRE.value)

            logger.info(
                "Credit retired",
                token_id=token.token_id,
                block_number=record.block_number,
            )
            return record

    def _replace_token(self, token: Token) -> list[Token]:
        tokens = list(self._state.tokens)
        tokens[token.token_id - 1] = token
        return tokens

    # ================================================================
    # QUERIES
    # ================================================================

    def get_token(self, token_id: int) -> Token:
        """Raises NotFound for ids never issued."""
        return self._get_token(token_id)

    def tokens(self) -> list[Token]:
        return list(self._state.tokens)

    def owned_tokens(self, address: str, include_retired: bool = True) -> list[Token]:
        wanted = normalize_address(address)
        return [
            t for t in self._state.tokens
            if normalize_address(t.owner) == wanted
            and (include_retired or not t.retired)
        ]

    def token_owner(self, token_id: int) -> str:
        return self._get_token(token_id).owner

    def is_retired(self, token_id: int) -> bool:
        return self._get_token(token_id).retired

    def balance(self, address: str) -> int:
        """Number of unretired tokens held by `address`."""
        return len(self.owned_tokens(address, include_retired=False))

    def has_role(self, role: Role, address: str) -> bool:
        return self._registry.has_role(role, address)

    def is_certifier(self, address: str) -> bool:
        return self._registry.is_certifier(address)

    def stats(self) -> dict[str, int]:
        retired = sum(1 for t in self._state.tokens if t.retired)
        return {
            "total_tokens": len(self._state.tokens),
            "active_tokens": len(self._state.tokens) - retired,
            "retired_tokens": retired,
            "transactions": len(self._state.transactions),
            "next_token_id": self._state.next_token_id,
            "next_block_number": self._state.next_block_number,
        }
