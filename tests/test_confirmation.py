"""
Tests for the submitted -> confirmed transaction flow.
"""

import asyncio
import random
import pytest

from hydrocred.core import (
    AlreadyRetired,
    ConfirmationSimulator,
    InvalidAmount,
    LedgerService,
    NotOwner,
    PendingState,
    PermissionDenied,
    TransactionCancelled,
)
from hydrocred.db import InMemorySnapshotStore, SnapshotStoreError
from hydrocred.schemas import LedgerState


PRODUCER_A = "0x2345678901234567890123456789012345678901"
BUYER_A = "0x4567890123456789012345678901234567890123"
BUYER_B = "0x5678901234567890123456789012345678901234"


class RecordingSleep:
    """Sleep stand-in that records requested delays and returns at once."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def ledger():
    ledger = LedgerService(LedgerState(next_block_number=1), InMemorySnapshotStore())
    ledger.switch_identity("certifier")
    return ledger


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def simulator(ledger, sleep):
    return ConfirmationSimulator(ledger, min_delay=0.5, max_delay=1.5, rng=random.Random(7), sleep=sleep)


class TestSubmit:
    """Submission validates but does not commit."""

    def test_submit_does_not_commit(self, ledger, simulator):
        pending = simulator.submit_issue(PRODUCER_A, 3)

        assert pending.state == PendingState.SUBMITTED
        assert not pending.done
        assert pending.record is None
        assert ledger.tokens() == []
        assert len(ledger.log) == 0

    def test_invalid_submission_raises_immediately(self, simulator):
        with pytest.raises(InvalidAmount):
            simulator.submit_issue(PRODUCER_A, 0)

    def test_permission_checked_at_submit(self, ledger, simulator):
        ledger.switch_identity("buyer1")
        with pytest.raises(PermissionDenied):
            simulator.submit_issue(PRODUCER_A, 1)

    def test_transfer_preconditions_at_submit(self, ledger, simulator):
        ledger.issue(PRODUCER_A, 1)
        with pytest.raises(NotOwner):
            simulator.submit_transfer(BUYER_A, BUYER_B, 1)


class TestConfirm:
    """Awaiting the handle commits and returns a receipt."""

    def test_confirm_issue(self, ledger, simulator, sleep):
        pending = simulator.submit_issue(PRODUCER_A, 3)
        receipt = asyncio.run(pending.wait())

        assert pending.state == PendingState.CONFIRMED
        assert receipt.status == 1
        assert receipt.hash == pending.hash == ledger.log.latest().hash
        assert receipt.block_number == 1
        assert ledger.balance(PRODUCER_A) == 3
        assert sleep.delays == [pending.delay]

    def test_await_handle_directly(self, ledger, simulator):
        async def run():
            return await simulator.submit_issue(PRODUCER_A, 1)

        receipt = asyncio.run(run())
        assert receipt.block_number == ledger.log.latest().block_number

    def test_repeated_wait_returns_same_receipt(self, ledger, simulator, sleep):
        pending = simulator.submit_issue(PRODUCER_A, 1)

        async def run():
            return await pending.wait(), await pending.wait()

        first, second = asyncio.run(run())
        assert first == second
        assert len(ledger.log) == 1
        assert len(sleep.delays) == 1

    def test_concurrent_waits_commit_once(self, ledger, simulator):
        pending = simulator.submit_issue(PRODUCER_A, 2)

        async def run():
            return await asyncio.gather(pending.wait(), pending.wait())

        first, second = asyncio.run(run())
        assert first == second
        assert ledger.next_token_id == 3

    def test_delay_within_bounds(self, simulator):
        for _ in range(50):
            assert 0.5 <= simulator.next_delay() <= 1.5

    def test_fixed_delay(self, ledger):
        simulator = ConfirmationSimulator(ledger, min_delay=0.0, max_delay=0.0)
        assert simulator.next_delay() == 0.0

    def test_invalid_delay_range(self, ledger):
        with pytest.raises(ValueError):
            ConfirmationSimulator(ledger, min_delay=2.0, max_delay=1.0)

    def test_issuer_fixed_at_submission(self, ledger, simulator):
        pending = simulator.submit_issue(PRODUCER_A, 1)
        ledger.switch_identity("buyer1")

        asyncio.run(pending.wait())
        assert ledger.log.latest().from_address == "0x1234567890123456789012345678901234567890"

    def test_retire_caller_fixed_at_submission(self, ledger, simulator):
        ledger.issue(PRODUCER_A, 1)
        ledger.switch_identity("producer1")
        pending = simulator.submit_retire(1)
        ledger.switch_identity("buyer2")

        asyncio.run(pending.wait())
        assert ledger.get_token(1).retired_by == PRODUCER_A

    def test_confirmation_latency_recorded(self, ledger, simulator):
        asyncio.run(simulator.submit_issue(PRODUCER_A, 1).wait())
        assert len(ledger.metrics.confirmation_latencies_ms) == 1


class TestPendingFailures:
    """A precondition can break while a transaction is pending."""

    def test_conflicting_mutation_fails_at_confirmation(self, ledger, simulator):
        ledger.issue(PRODUCER_A, 1)
        first = simulator.submit_transfer(PRODUCER_A, BUYER_A, 1)
        second = simulator.submit_transfer(PRODUCER_A, BUYER_B, 1)

        asyncio.run(first.wait())
        with pytest.raises(NotOwner):
            asyncio.run(second.wait())

        assert second.state == PendingState.FAILED
        assert ledger.token_owner(1) == BUYER_A
        assert len(ledger.log) == 2

    def test_retired_while_pending(self, ledger, simulator):
        ledger.issue(PRODUCER_A, 1)
        pending = simulator.submit_transfer(PRODUCER_A, BUYER_A, 1)
        ledger.switch_identity("producer1")
        ledger.retire(1)

        with pytest.raises(AlreadyRetired):
            asyncio.run(pending.wait())

    def test_cancel_before_confirmation(self, ledger, simulator):
        pending = simulator.submit_issue(PRODUCER_A, 3)

        assert pending.cancel()
        assert pending.state == PendingState.CANCELLED
        with pytest.raises(TransactionCancelled):
            asyncio.run(pending.wait())
        assert ledger.tokens() == []

    def test_cancel_during_delay(self, ledger):
        async def sleep_then_cancel(delay):
            pending.cancel()

        simulator = ConfirmationSimulator(ledger, sleep=sleep_then_cancel)
        pending = simulator.submit_issue(PRODUCER_A, 1)

        with pytest.raises(TransactionCancelled):
            asyncio.run(pending.wait())
        assert len(ledger.log) == 0

    def test_cannot_cancel_after_confirmation(self, simulator):
        pending = simulator.submit_issue(PRODUCER_A, 1)
        asyncio.run(pending.wait())

        assert not pending.cancel()
        assert pending.state == PendingState.CONFIRMED

    def test_failed_save_fails_confirmation(self, ledger, simulator, monkeypatch):
        pending = simulator.submit_issue(PRODUCER_A, 1)

        def refuse(state):
            raise SnapshotStoreError("disk full")

        monkeypatch.setattr(ledger.store, "save", refuse)
        with pytest.raises(SnapshotStoreError):
            asyncio.run(pending.wait())

        assert pending.state == PendingState.FAILED
        assert ledger.tokens() == []


class ScriptedRandom:
    """Random stand-in that hands out a fixed list of delays."""

    def __init__(self, *delays):
        self.delays = list(delays)

    def uniform(self, low, high):
        return self.delays.pop(0)


async def short_sleep(delay):
    await asyncio.sleep(delay / 100)


class TestSubmissionOrder:
    """Staged mutations commit in the order they were submitted."""

    @pytest.fixture
    def simulator(self, ledger):
        # The second submission has the shorter delay
        return ConfirmationSimulator(
            ledger, min_delay=0.5, max_delay=1.5, rng=ScriptedRandom(1.5, 0.5), sleep=short_sleep
        )

    @pytest.mark.parametrize("second_first", [False, True])
    def test_overlapping_issues_keep_submission_order(self, ledger, simulator, second_first):
        first = simulator.submit_issue(PRODUCER_A, 2)
        second = simulator.submit_issue(BUYER_A, 3)

        async def run():
            if second_first:
                await asyncio.gather(second.wait(), first.wait())
            else:
                await asyncio.gather(first.wait(), second.wait())

        asyncio.run(run())

        assert (first.record.from_id, first.record.to_id) == (1, 2)
        assert (second.record.from_id, second.record.to_id) == (3, 5)
        assert first.record.block_number < second.record.block_number
        assert [t.owner for t in ledger.tokens()] == [PRODUCER_A] * 2 + [BUYER_A] * 3

    def test_waiting_on_later_handle_confirms_earlier(self, ledger, simulator):
        first = simulator.submit_issue(PRODUCER_A, 2)
        second = simulator.submit_issue(BUYER_A, 3)

        asyncio.run(second.wait())

        assert first.state == PendingState.CONFIRMED
        assert ledger.owned_tokens(PRODUCER_A)[0].token_id == 1
        assert asyncio.run(first.wait()).block_number == 1

    def test_cancelled_handle_is_skipped(self, ledger, simulator):
        first = simulator.submit_issue(PRODUCER_A, 2)
        second = simulator.submit_issue(BUYER_A, 3)
        first.cancel()

        asyncio.run(second.wait())

        assert second.record.from_id == 1
        assert ledger.balance(PRODUCER_A) == 0

    def test_drain_confirms_unawaited_handles(self, ledger, simulator):
        simulator.submit_issue(PRODUCER_A, 2)
        simulator.submit_issue(BUYER_A, 3)
        assert simulator.outstanding == 2

        asyncio.run(simulator.drain())

        assert simulator.outstanding == 0
        assert ledger.next_token_id == 6
        assert [r.to_address for r in ledger.log] == [PRODUCER_A, BUYER_A]
