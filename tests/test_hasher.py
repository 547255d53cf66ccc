"""
Tests for canonical hashing of transaction records.
"""

import json
import pytest
from datetime import datetime, timedelta, timezone

from hydrocred.core import CanonicalSerializationError, Hasher
from hydrocred.core.transaction_log import build_record, verify_records
from hydrocred.schemas import TransactionType


PRODUCER = "0x2345678901234567890123456789012345678901"
BUYER = "0x4567890123456789012345678901234567890123"


class TestHasher:
    """Test canonical hashing."""

    def test_deterministic_hash(self):
        """Same input always produces same hash."""
        data = {"type": "issue", "amount": 3}
        assert Hasher.hash_record(data) == Hasher.hash_record(data)

    def test_hash_format(self):
        digest = Hasher.hash_record({"a": 1})
        assert digest.startswith("0x")
        assert len(digest) == 66
        assert digest == digest.lower()

    def test_sorted_keys(self):
        """Key order doesn't affect hash."""
        assert Hasher.hash_record({"b": 2, "a": 1}) == Hasher.hash_record({"a": 1, "b": 2})

    def test_null_handling(self):
        """Nulls are omitted from canonical form."""
        assert Hasher.canonicalize({"a": 1, "token_id": None}) == Hasher.canonicalize({"a": 1})

    def test_enum_uses_value(self):
        canonical = Hasher.canonicalize({"type": TransactionType.RETIRE})
        assert canonical == '{"type":"retire"}'

    def test_datetime_normalized_to_utc(self):
        """Same moment in different timezones hashes the same."""
        utc_time = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        plus5 = datetime(2024, 1, 1, 17, 0, 0, tzinfo=timezone(timedelta(hours=5)))
        assert Hasher.hash_record({"t": utc_time}) == Hasher.hash_record({"t": plus5})

    def test_datetime_format(self):
        canonical = Hasher.canonicalize(
            {"t": datetime(2024, 1, 15, 12, 30, 45, 123456, tzinfo=timezone.utc)}
        )
        assert canonical == '{"t":"2024-01-15T12:30:45.123456Z"}'

    def test_datetime_requires_timezone(self):
        with pytest.raises(CanonicalSerializationError, match="timezone-naive"):
            Hasher.canonicalize({"t": datetime(2024, 1, 1)})

    def test_floats_banned(self):
        with pytest.raises(CanonicalSerializationError, match="Floats are banned"):
            Hasher.canonicalize({"amount": 1.5})

    def test_top_level_must_be_dict(self):
        with pytest.raises(CanonicalSerializationError, match="requires a dict"):
            Hasher.canonicalize([1, 2, 3])

    def test_no_whitespace_in_output(self):
        canonical = Hasher.canonicalize({"a": 1, "b": {"c": [1, 2]}})
        assert " " not in canonical
        assert json.loads(canonical) == {"a": 1, "b": {"c": [1, 2]}}

    def test_chain_hash(self):
        """Record hash depends on the previous hash."""
        payload = {"type": "transfer", "token_id": 2}
        previous = "0x" + "a" * 64

        assert Hasher.hash_record(payload, previous) != Hasher.hash_record(payload)

    def test_previous_hash_prefix_optional(self):
        payload = {"a": 1}
        assert Hasher.hash_record(payload, "0x" + "b" * 64) == Hasher.hash_record(payload, "b" * 64)

    @pytest.mark.parametrize("previous", ["abc123", "0x" + "g" * 64, "0x" + "a" * 63])
    def test_chain_hash_validates_previous_hash_format(self, previous):
        with pytest.raises(CanonicalSerializationError, match="Invalid previous_hash"):
            Hasher.hash_record({"a": 1}, previous)

    def test_verify_record(self):
        payload = {"a": 1}
        digest = Hasher.hash_record(payload)

        assert Hasher.verify_record(payload, digest)
        assert Hasher.verify_record(payload, digest.upper().replace("0X", "0x"))
        assert not Hasher.verify_record({"a": 2}, digest)
        assert not Hasher.verify_record(payload, digest, previous_hash="not-a-hash")


class TestRecordChain:
    """Records are hashed and linked to their predecessor."""

    @pytest.fixture
    def records(self):
        t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
        first = build_record(
            None,
            tx_type=TransactionType.ISSUE,
            from_address="0x1234567890123456789012345678901234567890",
            to_address=PRODUCER,
            from_id=1,
            to_id=2,
            amount=2,
            timestamp=t0,
            block_number=10,
        )
        second = build_record(
            first,
            tx_type=TransactionType.TRANSFER,
            from_address=PRODUCER,
            to_address=BUYER,
            token_id=1,
            timestamp=t0 + timedelta(hours=1),
            block_number=11,
        )
        return [first, second]

    def test_record_hash_matches_payload(self, records):
        first, second = records
        assert first.hash == Hasher.hash_record(first.hash_payload())
        assert second.hash == Hasher.hash_record(second.hash_payload(), first.hash)

    def test_chain_verifies(self, records):
        assert verify_records(records)

    def test_tampered_record_detected(self, records):
        first, second = records
        tampered = second.model_copy(update={"to_address": PRODUCER})
        assert not verify_records([first, tampered])

    def test_reordered_records_detected(self, records):
        assert not verify_records(list(reversed(records)))

    def test_dropped_record_detected(self, records):
        assert not verify_records(records[1:])

    def test_empty_chain_is_valid(self):
        assert verify_records([])
