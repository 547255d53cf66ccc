"""
Ledger Configuration

Handles storage and confirmation settings from the environment.

Environment Variables:
    HYDROCRED_STORE_DRIVER: Which snapshot store to use
        - "memory" (default if no snapshot path is configured)
        - "file"   (default if HYDROCRED_SNAPSHOT_PATH is set)
    HYDROCRED_SNAPSHOT_PATH: Snapshot file location
        (default ~/.hydrocred/ledger.json when driver is "file")
    HYDROCRED_CONFIRM_MIN_DELAY: Minimum simulated confirmation delay, seconds (default 0.5)
    HYDROCRED_CONFIRM_MAX_DELAY: Maximum simulated confirmation delay, seconds (default 1.5)
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


DEFAULT_SNAPSHOT_PATH = Path.home() / ".hydrocred" / "ledger.json"


class StoreDriver(str, Enum):
    """Supported SnapshotStore drivers."""
    MEMORY = "memory"
    FILE = "file"


@dataclass
class LedgerConfig:
    """Mock ledger configuration."""
    driver: StoreDriver = StoreDriver.MEMORY
    snapshot_path: Optional[Path] = None

    # Simulated confirmation latency
    confirm_min_delay: float = 0.5  # seconds
    confirm_max_delay: float = 1.5  # seconds

    def __post_init__(self):
        if self.confirm_min_delay < 0 or self.confirm_max_delay < 0:
            raise ValueError("Confirmation delays must not be negative")
        if self.confirm_min_delay > self.confirm_max_delay:
            raise ValueError(
                f"HYDROCRED_CONFIRM_MIN_DELAY ({self.confirm_min_delay}) exceeds "
                f"HYDROCRED_CONFIRM_MAX_DELAY ({self.confirm_max_delay})"
            )

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - HYDROCRED_STORE_DRIVER
        - HYDROCRED_SNAPSHOT_PATH
        - HYDROCRED_CONFIRM_MIN_DELAY
        - HYDROCRED_CONFIRM_MAX_DELAY
        """
        driver = get_store_driver()
        path = get_snapshot_path()
        if driver == StoreDriver.FILE and path is None:
            path = DEFAULT_SNAPSHOT_PATH

        return cls(
            driver=driver,
            snapshot_path=path,
            confirm_min_delay=float(os.getenv("HYDROCRED_CONFIRM_MIN_DELAY", "0.5")),
            confirm_max_delay=float(os.getenv("HYDROCRED_CONFIRM_MAX_DELAY", "1.5")),
        )

    @classmethod
    def in_memory(cls, confirm_delay: float = 0.0) -> "LedgerConfig":
        """Configuration for tests and scripts: no persistence, fixed delay."""
        return cls(
            driver=StoreDriver.MEMORY,
            confirm_min_delay=confirm_delay,
            confirm_max_delay=confirm_delay,
        )


def get_snapshot_path() -> Optional[Path]:
    """
    Get the snapshot path from environment.

    Returns None if no path is configured.
    """
    path = os.getenv("HYDROCRED_SNAPSHOT_PATH")
    if path:
        return Path(path).expanduser()
    return None


def get_store_driver() -> StoreDriver:
    """
    Get the SnapshotStore driver to use.

    Checks HYDROCRED_STORE_DRIVER, then falls back to:
    - file if HYDROCRED_SNAPSHOT_PATH is set
    - memory otherwise
    """
    explicit = os.getenv("HYDROCRED_STORE_DRIVER", "").lower()

    if explicit:
        if explicit == "memory":
            return StoreDriver.MEMORY
        elif explicit == "file":
            return StoreDriver.FILE
        else:
            raise ValueError(
                f"Unknown HYDROCRED_STORE_DRIVER: {explicit}. "
                f"Valid values: memory, file"
            )

    if get_snapshot_path() is not None:
        return StoreDriver.FILE

    return StoreDriver.MEMORY
