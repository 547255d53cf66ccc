#!/usr/bin/env python3
"""
HydroCred Mock Ledger Management CLI

Commands for driving the demo ledger from a terminal:
- identities: List demo identities and the active one
- switch: Change the active identity
- issue: Mint credits (certifier only)
- transfer: Move a credit between addresses
- retire: Retire a credit owned by the active identity
- tokens: List tokens, optionally for one owner
- history: Show the transaction log, newest first
- stats: Token and transaction counts
- verify-chain: Verify transaction log integrity
- reset: Overwrite the ledger with the seed snapshot
- export-snapshot: Write the current snapshot as JSON
- health-check: Run health checks

Usage:
    python -m tools.manage [--snapshot PATH] <command> [options]

Examples:
    python -m tools.manage --snapshot demo.json switch certifier
    python -m tools.manage --snapshot demo.json issue 0x2345678901234567890123456789012345678901 3
    python -m tools.manage --snapshot demo.json history --from-block 18000005
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from hydrocred.context import LedgerContext
from hydrocred.core import LedgerError
from hydrocred.db.config import LedgerConfig, StoreDriver
from hydrocred.db.store import SnapshotStoreError
from hydrocred.observability import check_health, setup_logging
from hydrocred.schemas import format_token_id


def _build_context(args) -> LedgerContext:
    if args.snapshot:
        config = LedgerConfig(driver=StoreDriver.FILE, snapshot_path=Path(args.snapshot))
    else:
        config = LedgerConfig.from_env()
    if args.instant:
        config.confirm_min_delay = 0.0
        config.confirm_max_delay = 0.0
    return LedgerContext.init(config)


def _print_record(record) -> None:
    line = f"  #{record.block_number} {record.type.value:8} {record.hash[:18]}..."
    if record.type.value == "issue":
        line += (
            f" {record.amount} to {record.to_address} "
            f"({format_token_id(record.from_id)}-{format_token_id(record.to_id)})"
        )
    elif record.type.value == "transfer":
        line += (
            f" {format_token_id(record.token_id)} "
            f"{record.from_address} -> {record.to_address}"
        )
    else:
        line += f" {format_token_id(record.token_id)} by {record.from_address}"
    print(line)


def cmd_identities(ctx, args):
    """List the demo identities."""
    active = ctx.ledger.active_identity
    for index, identity in enumerate(ctx.ledger.registry.list_identities()):
        marker = "*" if active is not None and identity.address == active.address else " "
        print(
            f"{marker} [{index}] {identity.key:10} {identity.role.value:10} "
            f"{identity.address}  {identity.display_name}"
        )


def cmd_switch(ctx, args):
    """Change the active identity."""
    selector = int(args.identity) if args.identity.isdigit() else args.identity
    identity = ctx.ledger.switch_identity(selector)
    print(f"[OK] Active identity: {identity.display_name} ({identity.address})")


def cmd_issue(ctx, args):
    """Issue credits as the active identity."""
    pending = ctx.confirmations.submit_issue(args.to, args.amount)
    print(f"Submitted issuance of {args.amount} credit(s), waiting for confirmation...")
    receipt = asyncio.run(pending.wait())
    record = pending.record
    print(
        f"[OK] Issued {format_token_id(record.from_id)}-{format_token_id(record.to_id)} "
        f"in block {receipt.block_number}"
    )
    print(f"  Transaction: {receipt.hash}")


def cmd_transfer(ctx, args):
    """Transfer a credit."""
    sender = args.sender or (ctx.ledger.active_identity.address if ctx.ledger.active_identity else "")
    pending = ctx.confirmations.submit_transfer(sender, args.to, args.token_id)
    print(f"Submitted transfer of {format_token_id(args.token_id)}, waiting for confirmation...")
    receipt = asyncio.run(pending.wait())
    print(f"[OK] Transferred in block {receipt.block_number}")
    print(f"  Transaction: {receipt.hash}")


def cmd_retire(ctx, args):
    """Retire a credit owned by the active identity."""
    pending = ctx.confirmations.submit_retire(args.token_id)
    print(f"Submitted retirement of {format_token_id(args.token_id)}, waiting for confirmation...")
    receipt = asyncio.run(pending.wait())
    print(f"[OK] Retired in block {receipt.block_number}")
    print(f"  Transaction: {receipt.hash}")


def cmd_tokens(ctx, args):
    """List tokens."""
    if args.owner:
        tokens = ctx.ledger.owned_tokens(args.owner, include_retired=not args.active_only)
    else:
        tokens = [t for t in ctx.ledger.tokens() if not (args.active_only and t.retired)]

    if not tokens:
        print("No tokens.")
        return

    for token in tokens:
        print(f"  {format_token_id(token.token_id)} {token.status.value:8} {token.owner}")


def cmd_history(ctx, args):
    """Show transactions, newest first."""
    records = ctx.ledger.log.list(args.from_block)
    if not records:
        print("No transactions.")
        return
    for record in records:
        _print_record(record)


def cmd_stats(ctx, args):
    """Show ledger statistics."""
    for key, value in ctx.ledger.stats().items():
        print(f"  {key}: {value}")


def cmd_verify_chain(ctx, args):
    """Verify the integrity of the transaction log."""
    print(f"Ledger loaded: {len(ctx.ledger.log)} transactions")

    if ctx.ledger.log.verify_chain():
        print("[OK] Transaction chain verified OK")
        latest = ctx.ledger.log.latest()
        if latest:
            print(f"  Chain head: {latest.hash[:18]}... (block {latest.block_number})")
        return 0
    else:
        print("[FAIL] Transaction chain verification FAILED!")
        return 1


def cmd_reset(ctx, args):
    """Reset the ledger to the seed snapshot."""
    state = ctx.reset()
    print(
        f"[OK] Ledger reset: {len(state.tokens)} tokens, "
        f"{len(state.transactions)} transactions"
    )


def cmd_export_snapshot(ctx, args):
    """Export the current snapshot to JSON."""
    output = args.output or "ledger_snapshot.json"
    Path(output).write_text(ctx.ledger.state.model_dump_json(indent=2), encoding="utf-8")
    print(f"[OK] Snapshot written to {output}")


def cmd_health_check(ctx, args):
    """Run health checks."""
    status = check_health(ledger=ctx.ledger, store=ctx.store)
    print(json.dumps(
        {"healthy": status.healthy, "checks": status.checks, "duration_ms": status.duration_ms},
        indent=2,
    ))
    return 0 if status.healthy else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="HydroCred mock ledger management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--snapshot", help="Snapshot file (enables the file store)")
    parser.add_argument(
        "--instant",
        action="store_true",
        help="Skip the simulated confirmation delay",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("identities", help="List demo identities")

    p_switch = subparsers.add_parser("switch", help="Change the active identity")
    p_switch.add_argument("identity", help="Catalog index, key or address")

    p_issue = subparsers.add_parser("issue", help="Issue credits (certifier only)")
    p_issue.add_argument("to", help="Recipient address")
    p_issue.add_argument("amount", type=int, help="Number of credits (1-1000)")

    p_transfer = subparsers.add_parser("transfer", help="Transfer a credit")
    p_transfer.add_argument("to", help="Recipient address")
    p_transfer.add_argument("token_id", type=int, help="Token id")
    p_transfer.add_argument("--from", dest="sender", help="Sender address (default: active identity)")

    p_retire = subparsers.add_parser("retire", help="Retire a credit")
    p_retire.add_argument("token_id", type=int, help="Token id")

    p_tokens = subparsers.add_parser("tokens", help="List tokens")
    p_tokens.add_argument("--owner", help="Only tokens held by this address")
    p_tokens.add_argument("--active-only", action="store_true", help="Hide retired tokens")

    p_history = subparsers.add_parser("history", help="Show the transaction log")
    p_history.add_argument("--from-block", type=int, default=0, help="Lowest block number")

    subparsers.add_parser("stats", help="Token and transaction counts")
    subparsers.add_parser("verify-chain", help="Verify transaction log integrity")
    subparsers.add_parser("reset", help="Reset the ledger to the seed snapshot")

    p_export = subparsers.add_parser("export-snapshot", help="Export the snapshot to JSON")
    p_export.add_argument("--output", "-o", help="Output file (default: ledger_snapshot.json)")

    subparsers.add_parser("health-check", help="Run health checks")

    return parser


COMMANDS = {
    "identities": cmd_identities,
    "switch": cmd_switch,
    "issue": cmd_issue,
    "transfer": cmd_transfer,
    "retire": cmd_retire,
    "tokens": cmd_tokens,
    "history": cmd_history,
    "stats": cmd_stats,
    "verify-chain": cmd_verify_chain,
    "reset": cmd_reset,
    "export-snapshot": cmd_export_snapshot,
    "health-check": cmd_health_check,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging()

    try:
        ctx = _build_context(args)
        return COMMANDS[args.command](ctx, args) or 0
    except (LedgerError, SnapshotStoreError) as e:
        print(f"[FAIL] {type(e).__name__}: {e}")
        return 1
    except ValueError as e:
        print(f"[FAIL] Configuration error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
