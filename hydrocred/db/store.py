"""
Snapshot Store Abstraction

This module defines the SnapshotStore interface and provides two implementations:
- InMemorySnapshotStore: For development and testing
- JsonFileSnapshotStore: Survives restarts; one JSON document on disk

The SnapshotStore is responsible for:
- Holding exactly one LedgerState snapshot
- Reporting on load whether the snapshot was found, missing or unreadable
- Overwriting the snapshot wholesale on save

The LedgerService retains responsibility for:
- Business rule validation
- Token state machine enforcement
- Building the next state before it is saved

LOAD CONTRACT:
load() never raises for a missing or malformed snapshot. It returns a
LoadResult so callers can tell a fresh start from corrupted data:

    result = store.load()
    if result.ok:
        state = result.state
    elif result.status == LoadStatus.CORRUPTED:
        logger.warning("...", error=result.error)

SAVE CONTRACT:
save() raises SnapshotStoreError on failure. Callers swap in the new
state only after save() returns.
"""

import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..observability import get_logger
from ..schemas import LedgerState

logger = get_logger(__name__)


# ============================================================
# EXCEPTIONS
# ============================================================

class SnapshotStoreError(Exception):
    """Raised when a snapshot cannot be written."""
    pass


# ============================================================
# DATA STRUCTURES
# ============================================================

class LoadStatus(str, Enum):
    LOADED = "loaded"
    MISSING = "missing"
    CORRUPTED = "corrupted"


@dataclass(frozen=True)
class LoadResult:
    """
    Outcome of reading the persisted snapshot.

    Exactly one of:
    - LOADED:    state is set, error is None
    - MISSING:   nothing persisted yet (fresh start)
    - CORRUPTED: something was there but could not be read; error says why
    """
    status: LoadStatus
    state: Optional[LedgerState] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == LoadStatus.LOADED

    @classmethod
    def loaded(cls, state: LedgerState) -> "LoadResult":
        return cls(status=LoadStatus.LOADED, state=state)

    @classmethod
    def missing(cls) -> "LoadResult":
        return cls(status=LoadStatus.MISSING)

    @classmethod
    def corrupted(cls, error: str) -> "LoadResult":
        return cls(status=LoadStatus.CORRUPTED, error=error)


def parse_snapshot(raw: Union[str, bytes]) -> LoadResult:
    """Parse a JSON snapshot document into a LoadResult."""
    if not raw or not raw.strip():
        return LoadResult.corrupted("snapshot is empty")

    try:
        state = LedgerState.model_validate_json(raw)
    except PydanticValidationError as e:
        return LoadResult.corrupted(f"snapshot failed validation: {e.error_count()} error(s)")

    problems = state.check_invariants()
    if problems:
        return LoadResult.corrupted("; ".join(problems))

    # Import here to avoid circular imports
    from ..core.transaction_log import verify_records

    # New records chain onto the last hash
    if not verify_records(state.transactions):
        return LoadResult.corrupted("transaction hash chain does not verify")

    return LoadResult.loaded(state)


# ============================================================
# ABSTRACT BASE CLASS
# ============================================================

class SnapshotStore(ABC):
    """
    Abstract base class for snapshot storage.

    Implementations hold one snapshot, versionless, and overwrite it
    in full on every save.
    """

    @abstractmethod
    def load(self) -> LoadResult:
        """Read the persisted snapshot."""
        pass

    @abstractmethod
    def save(self, state: LedgerState) -> None:
        """
        Overwrite the persisted snapshot.

        Raises:
            SnapshotStoreError: If the snapshot could not be written
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove the persisted snapshot."""
        pass

    @property
    def description(self) -> str:
        return type(self).__name__


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemorySnapshotStore(SnapshotStore):
    """
    In-memory implementation of SnapshotStore.

    Keeps the serialized JSON rather than the model so that loads go
    through the same parsing path as the file store.
    """

    def __init__(self, raw: Optional[str] = None):
        self._raw = raw
        self._lock = Lock()

    def load(self) -> LoadResult:
        with self._lock:
            raw = self._raw
        if raw is None:
            return LoadResult.missing()
        return parse_snapshot(raw)

    def save(self, state: LedgerState) -> None:
        try:
            raw = state.model_dump_json()
        except (ValueError, TypeError) as e:
            raise SnapshotStoreError(f"Could not serialize snapshot: {e}") from e
        with self._lock:
            self._raw = raw

    def clear(self) -> None:
        with self._lock:
            self._raw = None

    @property
    def raw(self) -> Optional[str]:
        """The stored JSON document (for inspection in tests)."""
        return self._raw


# ============================================================
# JSON FILE IMPLEMENTATION
# ============================================================

class JsonFileSnapshotStore(SnapshotStore):
    """
    Snapshot persisted as a single JSON file.

    Writes go to a temporary file in the same directory and are moved
    into place with os.replace, so a crash never leaves half a snapshot.

    There is no cross-process lock: two processes sharing the file
    can overwrite each other's changes.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def description(self) -> str:
        return f"{type(self).__name__}({self._path})"

    def load(self) -> LoadResult:
        with self._lock:
            try:
                raw = self._path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return LoadResult.missing()
            except (OSError, UnicodeDecodeError) as e:
                return LoadResult.corrupted(f"could not read {self._path}: {e}")
        return parse_snapshot(raw)

    def save(self, state: LedgerState) -> None:
        try:
            raw = state.model_dump_json(indent=2)
        except (ValueError, TypeError) as e:
            raise SnapshotStoreError(f"Could not serialize snapshot: {e}") from e

        with self._lock:
            tmp_name = None
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{self._path.name}.",
                    suffix=".tmp",
                    dir=str(self._path.parent),
                )
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(raw)
                os.replace(tmp_name, self._path)
                tmp_name = None
            except OSError as e:
                raise SnapshotStoreError(
                    f"Could not write snapshot to {self._path}: {e}"
                ) from e
            finally:
                if tmp_name is not None:
                    try:
                        os.unlink(tmp_name)
                    except OSError:
                        logger.debug("Could not remove temp snapshot", path=tmp_name)

        logger.debug(
            "Snapshot written",
            path=str(self._path),
            tokens=len(state.tokens),
            transactions=len(state.transactions),
        )

    def clear(self) -> None:
        with self._lock:
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise SnapshotStoreError(f"Could not remove {self._path}: {e}") from e
