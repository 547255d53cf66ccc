"""
Transaction Hashing

Deterministic serialization and SHA-256 hashing of transaction records.
Same record -> same hash. A reset therefore reproduces the seed log
byte for byte.

CANONICAL SERIALIZATION RULES:
1. Dictionary keys: sorted recursively
2. Nulls: omitted entirely
3. Datetimes: ISO 8601 with microseconds, forced to UTC, Z suffix
4. Enums: string value (not name)
5. Floats: BANNED - amounts and ids are integers
6. JSON output: no extra whitespace, ASCII only
7. Top-level: must be dict/object

Record hashes are chained:
- First record: SHA256(canonical_payload)
- Later records: SHA256(previous_hash + ":" + canonical_payload)
"""

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


HASH_PREFIX = "0x"


class CanonicalSerializationError(Exception):
    """Raised when data cannot be canonically serialized."""
    pass


class Hasher:
    """
    Canonical serialization and hashing.

    If serialization rules change, the seed hashes change with them.
    """

    @classmethod
    def _serialize_value(cls, value: Any, path: str = "") -> Any:
        if value is None:
            return None

        if isinstance(value, datetime):
            return cls._serialize_datetime(value, path)

        if isinstance(value, Enum):
            return value.value

        if isinstance(value, bool):
            return value

        if isinstance(value, int):
            return value

        if isinstance(value, float):
            raise CanonicalSerializationError(
                f"Cannot serialize float at {path}. "
                "Floats are banned in canonical payloads."
            )

        if isinstance(value, str):
            return value

        if isinstance(value, (list, tuple)):
            return [
                cls._serialize_value(v, f"{path}[{i}]")
                for i, v in enumerate(value)
            ]

        if isinstance(value, dict):
            return cls._to_canonical_dict(value, path)

        if hasattr(value, "model_dump"):
            return cls._to_canonical_dict(value.model_dump(mode="python"), path)

        raise CanonicalSerializationError(
            f"Cannot serialize {type(value).__name__} at {path}. "
            "Only JSON-compatible types are allowed."
        )

    @classmethod
    def _serialize_datetime(cls, dt: datetime, path: str) -> str:
        """Format: YYYY-MM-DDTHH:MM:SS.ffffffZ"""
        if dt.tzinfo is None:
            raise CanonicalSerializationError(
                f"Datetime at {path} is timezone-naive. "
                "All datetimes must be timezone-aware."
            )
        utc_dt = dt.astimezone(timezone.utc)
        return utc_dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_dt.microsecond:06d}Z"

    @classmethod
    def _to_canonical_dict(cls, data: dict[str, Any], path: str = "") -> dict[str, Any]:
        result = {}
        for key in sorted(data.keys()):
            if not isinstance(key, str):
                raise CanonicalSerializationError(
                    f"Dictionary key at {path} must be string, "
                    f"got {type(key).__name__}"
                )
            key_path = f"{path}.{key}" if path else key
            serialized = cls._serialize_value(data[key], key_path)
            if serialized is not None:
                result[key] = serialized
        return result

    @classmethod
    def canonicalize(cls, data: dict[str, Any] | Any) -> str:
        """
        Convert data to canonical JSON string.

        Raises:
            CanonicalSerializationError: If data cannot be deterministically serialized
        """
        if hasattr(data, "model_dump"):
            data = data.model_dump(mode="python")

        if not isinstance(data, dict):
            raise CanonicalSerializationError(
                f"Top-level canonicalization requires a dict/object, "
                f"got {type(data).__name__}."
            )

        return json.dumps(
            cls._to_canonical_dict(data),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=True,
            allow_nan=False,
        )

    @classmethod
    def hash_record(
        cls,
        payload: dict[str, Any],
        previous_hash: Optional[str] = None,
    ) -> str:
        """
        Hash a transaction payload with chain linkage.

        Args:
            payload: Record fields excluding the hash
            previous_hash: 0x-prefixed hash of the previous record (None for the first)

        Returns:
            0x-prefixed lowercase hex SHA-256 (66 characters)
        """
        canonical_payload = cls.canonicalize(payload)

        if previous_hash is None:
            chain_input = canonical_payload
        else:
            chain_input = f"{cls._strip_prefix(previous_hash)}:{canonical_payload}"

        return HASH_PREFIX + hashlib.sha256(chain_input.encode("utf-8")).hexdigest()

    @classmethod
    def verify_record(
        cls,
        payload: dict[str, Any],
        expected_hash: str,
        previous_hash: Optional[str] = None,
    ) -> bool:
        """Verify that a payload matches its expected chained hash."""
        try:
            return cls.hash_record(payload, previous_hash) == expected_hash.lower()
        except CanonicalSerializationError:
            return False

    @staticmethod
    def _strip_prefix(value: str) -> str:
        digest = value.lower()
        if digest.startswith(HASH_PREFIX):
            digest = digest[len(HASH_PREFIX):]
        if len(digest) != 64 or not all(c in "0123456789abcdef" for c in digest):
            raise CanonicalSerializationError(
                f"Invalid previous_hash format: {value}. "
                "Must be 0x followed by 64 hex characters."
            )
        return digest
