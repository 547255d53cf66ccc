"""
Demonstration: Complete Credit Lifecycle

Walks one batch of green-hydrogen credits from issuance to retirement
on an in-memory ledger, with simulated confirmation delays.

Run with: python -m examples.demo_lifecycle
"""

import asyncio

from hydrocred.context import LedgerContext
from hydrocred.core import AlreadyRetired, PermissionDenied
from hydrocred.db import LedgerConfig
from hydrocred.schemas import format_token_id


PRODUCER = "0x3456789012345678901234567890123456789012"   # Producer 2
BUYER = "0x5678901234567890123456789012345678901234"      # Buyer 2


def banner(title):
    print("=" * 60)
    print(title)
    print("=" * 60)


async def run(ctx: LedgerContext):
    ledger = ctx.ledger
    confirmations = ctx.confirmations

    print(f"Seed ledger: {ledger.stats()['total_tokens']} tokens, "
          f"{len(ctx.log)} transactions")
    print()

    # ================================================================
    # STEP 1: CERTIFIER ISSUES CREDITS
    # ================================================================
    banner("STEP 1: CREDITS ISSUED")

    ledger.switch_identity("certifier")
    pending = confirmations.submit_issue(PRODUCER, 3)
    print(f"   Submitted: {pending.submission_id[:12]}... ({pending.state.value})")
    receipt = await pending

    record = pending.record
    print(f"[OK] Issued {format_token_id(record.from_id)}-{format_token_id(record.to_id)} to Producer 2")
    print(f"   Block: {receipt.block_number}")
    print(f"   Tx Hash: {receipt.hash[:18]}...")
    print()

    # ================================================================
    # STEP 2: PRODUCER SELLS ONE CREDIT
    # ================================================================
    banner("STEP 2: CREDIT TRANSFERRED")

    token_id = record.from_id
    ledger.switch_identity("producer2")
    receipt = await confirmations.submit_transfer(PRODUCER, BUYER, token_id)

    print(f"[OK] {format_token_id(token_id)} transferred to Buyer 2")
    print(f"   Block: {receipt.block_number}")
    print(f"   Producer 2 balance: {ledger.balance(PRODUCER)}")
    print(f"   Buyer 2 balance: {ledger.balance(BUYER)}")
    print()

    # ================================================================
    # STEP 3: BUYER RETIRES IT
    # ================================================================
    banner("STEP 3: CREDIT RETIRED")

    ledger.switch_identity("buyer2")
    receipt = await confirmations.submit_retire(token_id)

    print(f"[OK] {format_token_id(token_id)} retired")
    print(f"   Block: {receipt.block_number}")
    print(f"   Retired at: {ledger.get_token(token_id).retired_at.isoformat()}")
    print()

    # ================================================================
    # STEP 4: REJECTIONS
    # ================================================================
    banner("STEP 4: REJECTED OPERATIONS")

    try:
        confirmations.submit_transfer(BUYER, PRODUCER, token_id)
    except AlreadyRetired as e:
        print(f"[REJECTED] Transfer after retirement: {e}")

    ledger.switch_identity("regulator")
    try:
        confirmations.submit_issue(BUYER, 10)
    except PermissionDenied as e:
        print(f"[REJECTED] Issue by regulator: {e}")

    pending = confirmations.submit_transfer(PRODUCER, BUYER, token_id + 1)
    pending.cancel()
    print(f"[CANCELLED] Transfer of {format_token_id(token_id + 1)} ({pending.state.value})")
    print()


def main():
    banner("HydroCred - Credit Lifecycle Demonstration")
    print()

    ctx = LedgerContext.init(LedgerConfig.in_memory(confirm_delay=0.2))
    asyncio.run(run(ctx))

    # ================================================================
    # TRANSACTION HISTORY
    # ================================================================
    banner("TRANSACTION HISTORY (newest first)")

    for record in ctx.log.list()[:5]:
        print(f"  #{record.block_number} | {record.timestamp.strftime('%Y-%m-%d %H:%M')} | {record.type.value}")

    print()
    print(f"Chain verified: {'[YES]' if ctx.log.verify_chain() else '[NO]'}")
    print(f"Metrics: {ctx.metrics.get_summary()}")


if __name__ == "__main__":
    main()
