"""
Ledger Context

Owner-held bundle of everything the mock chain needs:
configuration, snapshot store, ledger, transaction log and
confirmation simulator.

There is no module-level ledger. Whoever needs one creates a context
and passes it (or its parts) along:

    ctx = LedgerContext.init()
    ctx.ledger.switch_identity("certifier")
    receipt = await ctx.confirmations.submit_issue(producer, 3)
    ctx.reset()
"""

from dataclasses import dataclass
from typing import Optional

from .core import ConfirmationSimulator, LedgerService, TransactionLog
from .db.config import LedgerConfig, StoreDriver
from .db.store import InMemorySnapshotStore, JsonFileSnapshotStore, SnapshotStore
from .observability import MetricsCollector, get_logger
from .schemas import LedgerState

logger = get_logger(__name__)


def create_store(config: LedgerConfig) -> SnapshotStore:
    """
    Create the appropriate SnapshotStore based on configuration.
    """
    if config.driver == StoreDriver.FILE:
        if config.snapshot_path is None:
            raise ValueError("File store selected but no snapshot path configured")
        logger.info("Using JSON file snapshot store", path=str(config.snapshot_path))
        return JsonFileSnapshotStore(config.snapshot_path)

    logger.info("Using in-memory snapshot store (no persistence)")
    return InMemorySnapshotStore()


@dataclass
class LedgerContext:
    config: LedgerConfig
    store: SnapshotStore
    ledger: LedgerService
    confirmations: ConfirmationSimulator
    metrics: MetricsCollector

    @classmethod
    def init(
        cls,
        config: Optional[LedgerConfig] = None,
        store: Optional[SnapshotStore] = None,
        **ledger_kwargs,
    ) -> "LedgerContext":
        """
        Build a context: load (or seed) the ledger and wire its collaborators.

        Args:
            config: Defaults to LedgerConfig.from_env()
            store: Overrides the store the config would create
            ledger_kwargs: Passed to LedgerService.open (registry, clock)
        """
        config = config or LedgerConfig.from_env()
        store = store or create_store(config)
        metrics = MetricsCollector()

        ledger = LedgerService.open(store, metrics=metrics, **ledger_kwargs)
        confirmations = ConfirmationSimulator(
            ledger,
            min_delay=config.confirm_min_delay,
            max_delay=config.confirm_max_delay,
        )

        return cls(
            config=config,
            store=store,
            ledger=ledger,
            confirmations=confirmations,
            metrics=metrics,
        )

    @property
    def log(self) -> TransactionLog:
        return self.ledger.log

    def reset(self) -> LedgerState:
        """Overwrite the persisted ledger with the seed snapshot."""
        return self.ledger.reset()
