#!/usr/bin/env python3
"""
Spraay Batch — CLI for batch payments.

Usage:
    spraay-batch transfer --wallet <name> --file <path> [--network <net>] [--dry-run]
    spraay-batch validate --file <path> [--network <net>] [--asset <symbol>]
    spraay-batch generate-template --output <path> [--format csv|json] [--count <n>]

Examples:
    # Batch transfer TAO to recipients from a CSV file (testnet)
    spraay-batch transfer --wallet my_wallet --file recipients.csv --network test

    # Check balance and approval requirements without sending anything
    spraay-batch transfer --wallet my_wallet --file recipients.csv --dry-run

    # Validate a recipient list for USDC on Celo Sepolia
    spraay-batch validate --file recipients.csv --network celo-sepolia --asset USDC

    # Generate a template CSV file
    spraay-batch generate-template --output recipients.csv --count 5
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import bittensor as bt

from spraay_batch import __version__
from spraay_batch.addresses import address_validator_for
from spraay_batch.amounts import format_amount
from spraay_batch.config import PRESETS, BatchConfig, load_config
from spraay_batch.errors import BatchTransferError, ValidationError
from spraay_batch.importers import RecipientFile, write_recipients_csv
from spraay_batch.ledger import Notification, Severity
from spraay_batch.logging_config import configure_logging
from spraay_batch.recipients import RecipientList, validate_recipients
from spraay_batch.subtensor import SubtensorLedger
from spraay_batch.workflow import BatchWorkflow, WorkflowStep


BANNER = r"""
   ___                           ___       _      _
  / __|_ __ _ _ __ _ __ _ _  _  | _ ) __ _| |_ __| |_
  \__ \ '_ \ '_/ _` / _` | || | | _ \/ _` |  _/ _| ' \
  |___/ .__/_| \__,_\__,_|\_, | |___/\__,_|\__\__|_||_|
      |_|                 |__/
  Batch Payments — by Spraay
"""


def print_notification(notification: Notification) -> None:
    mark = "✗" if notification.severity is Severity.ERROR else "✓"
    print(f"  {mark} {notification.message}")


def print_issues(error: BatchTransferError) -> None:
    if not isinstance(error, ValidationError):
        return
    for issue in error.issues:
        where = f"Row {issue.index + 1}: " if issue.index is not None else ""
        print(f"    {where}{issue.message}")


def resolve_config(args: argparse.Namespace) -> BatchConfig:
    if getattr(args, "config", None):
        return load_config(args.config)
    try:
        return PRESETS[args.network]
    except KeyError:
        raise BatchTransferError(
            f"Unknown network '{args.network}'. Use one of "
            f"{', '.join(PRESETS)} or pass --config."
        ) from None


async def run_transfer(
    args: argparse.Namespace,
    config: BatchConfig,
    source: RecipientFile,
    ledger: Any,
    sender_address: str,
    network_id: Any,
) -> int:
    """Drive one batch through review and submission against ``ledger``."""
    workflow = BatchWorkflow(
        config, ledger, ledger, notify=print_notification, asset_symbol=args.asset,
    )
    workflow.connect(sender_address, network_id)

    if not workflow.import_recipients(source):
        return 1
    if not workflow.review():
        print_issues(workflow.last_error)
        return 1

    snapshot = await workflow.refresh()
    if snapshot is None:
        return 1

    batch = workflow.batch
    asset = workflow.asset
    print(f"Network: {config.network.name} ({network_id})")
    print(f"Wallet: {args.wallet} ({sender_address})")
    print(f"Total to transfer: {batch.display_total()} across {batch.recipient_count} recipients")
    print(f"Your balance: {format_amount(snapshot.balance, asset.decimals, 4)} {asset.symbol}")

    if args.dry_run:
        print("\n[DRY RUN] Checking submission preconditions without sending...")
        try:
            await workflow.transfers.preflight(batch, workflow.sender)
        except BatchTransferError as e:
            print(f"  ✗ {e}")
            return 1
        print("  ✓ Batch can be submitted")
        return 0

    if not args.yes:
        response = input(f"\nProceed with transfer of {batch.display_total()}? [y/N]: ")
        if response.lower() not in ("y", "yes"):
            print("Aborted.")
            return 0

    if workflow.approval_state is not None and workflow.approval_state.required:
        print("\nApproving token spending...")
        if await workflow.approve() is None:
            return 1

    print("\nExecuting batch transfer...")
    await workflow.submit()

    if workflow.step is not WorkflowStep.COMPLETE:
        return 1

    print()
    print(workflow.completion.summary())
    if args.receipt:
        path = write_recipients_csv(args.receipt, workflow.export_csv())
        print(f"Receipt written to {path}")
    return 0


async def run_bittensor_transfer(
    args: argparse.Namespace, config: BatchConfig, source: RecipientFile
) -> int:
    wallet = bt.Wallet(name=args.wallet)

    async with bt.AsyncSubtensor(network=str(config.network.network_id)) as subtensor:
        ledger = SubtensorLedger(
            config,
            subtensor,
            wallet,
            keep_alive=not args.allow_death,
            wait_for_finalization=args.finalize,
        )
        return await run_transfer(
            args, config, source, ledger, ledger.sender_address, ledger.network_id,
        )


def cmd_transfer(args: argparse.Namespace) -> int:
    """Execute a batch transfer."""
    print(BANNER)

    try:
        config = resolve_config(args)
        if args.asset:
            config.asset(args.asset)
    except BatchTransferError as e:
        print(f"Error: {e}")
        return 1

    if config.network.address_format != "ss58":
        print(f"Error: transfers are only supported on Bittensor networks, "
              f"not {config.network.name}. Use 'validate' to check the list.")
        return 1

    if not Path(args.file).is_file():
        print(f"Error: recipient file not found: {args.file}")
        return 1

    try:
        source = RecipientFile(args.file)
    except BatchTransferError as e:
        print(f"Error: {e}")
        return 1

    print(f"Loading recipients from {args.file}")
    return asyncio.run(run_bittensor_transfer(args, config, source))


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a recipient list."""
    print(BANNER)

    try:
        config = resolve_config(args)
        asset = config.asset(args.asset) if args.asset else config.default_asset
        recipients = RecipientList()
        recipients.replace_from(RecipientFile(args.file))
    except (BatchTransferError, OSError) as e:
        print(f"Error: {e}")
        return 1

    print(f"Loaded {len(recipients)} recipients from {args.file}")

    try:
        batch = validate_recipients(
            recipients.snapshot(), asset, address_validator_for(config), config.max_recipients,
        )
    except ValidationError as e:
        print(f"\n✗ {e}")
        print_issues(e)
        return 1

    smallest = min(batch.amounts)
    largest = max(batch.amounts)
    print(f"\n✓ All {batch.recipient_count} recipients are valid")
    print(f"  Total amount: {batch.display_total()}")
    print(f"  Min: {format_amount(smallest, asset.decimals)} {asset.symbol}")
    print(f"  Max: {format_amount(largest, asset.decimals)} {asset.symbol}")

    print("\nPreview (first 5):")
    for address, amount in batch.rows()[:5]:
        print(f"  {address[:16]}...{address[-8:]} → {amount} {asset.symbol}")
    if batch.recipient_count > 5:
        print(f"  ... and {batch.recipient_count - 5} more")
    return 0


def cmd_generate_template(args: argparse.Namespace) -> int:
    """Generate a template recipient file."""
    print(BANNER)

    count = args.count
    output = Path(args.output)

    if args.network == "celo-sepolia":
        sample_addresses = [f"0x{str(i) * 40}" for i in range(1, 6)]
    else:
        # Well-known Substrate development accounts
        sample_addresses = [
            "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY",  # Alice
            "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty",  # Bob
            "5FLSigC9HGRKVhB9FiEo4Y3koPsNmBmLJbpXg2mp1hXcS59Y",  # Charlie
            "5DAAnrj7VHTznn2AWBemMuyBwZWs6FNFjdyVXUeYum3PTXFy",  # Dave
            "5HGjWAeFDfFCWPsjFQdVV2Msvz2XtMktvgocEZcCj68kUMaw",  # Eve
        ]

    rows = []
    for i in range(count):
        # 1, 1.5, 2, ... built from integers so the text is exact
        halves = 2 + i
        amount = f"{halves // 2}.5" if halves % 2 else str(halves // 2)
        rows.append({"address": sample_addresses[i % len(sample_addresses)], "amount": amount})

    if args.format == "json":
        with open(output, "w") as f:
            json.dump(rows, f, indent=2)
    else:
        with open(output, "w", newline="") as f:
            f.write("Address,Amount\n")
            for r in rows:
                f.write(f"{r['address']},{r['amount']}\n")

    print(f"Generated template with {count} recipients: {output}")
    print(f"Format: {args.format.upper()}")
    print("\nEdit the file with your actual recipient addresses and amounts,")
    print(f"then run: spraay-batch validate --file {output}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="spraay-batch",
        description="Spraay Batch — pay many recipients in one transaction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Built by Spraay (spraay.app) | GitHub: plagtech",
    )
    parser.add_argument(
        "--version", action="version", version=f"spraay-batch {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log orchestration details to stderr"
    )
    parser.add_argument(
        "--log-json", action="store_true", help="Emit logs as one JSON object per line"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Transfer command
    transfer_parser = subparsers.add_parser(
        "transfer", help="Execute a batch transfer"
    )
    transfer_parser.add_argument(
        "--wallet", "-w", required=True, help="Bittensor wallet name"
    )
    transfer_parser.add_argument(
        "--file", "-f", required=True, help="Path to recipient list (CSV or JSON)"
    )
    transfer_parser.add_argument(
        "--network", "-n", default="finney",
        help="Bittensor network (finney, test). Default: finney"
    )
    transfer_parser.add_argument(
        "--config", help="JSON network/asset configuration (overrides the preset)"
    )
    transfer_parser.add_argument(
        "--asset", "-a", help="Asset symbol. Default: the network's first asset"
    )
    transfer_parser.add_argument(
        "--dry-run", action="store_true",
        help="Check balance and preconditions without sending"
    )
    transfer_parser.add_argument(
        "--yes", "-y", action="store_true",
        help="Skip confirmation prompt"
    )
    transfer_parser.add_argument(
        "--allow-death", action="store_true",
        help="Allow transfers that may reduce accounts below existential deposit"
    )
    transfer_parser.add_argument(
        "--finalize", action="store_true",
        help="Wait for transaction finalization (slower but more certain)"
    )
    transfer_parser.add_argument(
        "--receipt", help="Write the confirmed batch as Address,Amount CSV"
    )

    # Validate command
    validate_parser = subparsers.add_parser(
        "validate", help="Validate a recipient list"
    )
    validate_parser.add_argument(
        "--file", "-f", required=True, help="Path to recipient list"
    )
    validate_parser.add_argument(
        "--network", "-n", default="finney",
        help=f"Network preset ({', '.join(PRESETS)}). Default: finney"
    )
    validate_parser.add_argument("--config", help="JSON network/asset configuration")
    validate_parser.add_argument("--asset", "-a", help="Asset symbol")

    # Generate template command
    template_parser = subparsers.add_parser(
        "generate-template", help="Generate a template recipient file"
    )
    template_parser.add_argument(
        "--output", "-o", default="recipients.csv", help="Output file path"
    )
    template_parser.add_argument(
        "--format", choices=["csv", "json"], default="csv", help="File format"
    )
    template_parser.add_argument(
        "--count", "-c", type=int, default=5, help="Number of sample recipients"
    )
    template_parser.add_argument(
        "--network", "-n", default="finney", help="Address style of the samples"
    )

    args = parser.parse_args()

    if args.verbose or args.log_json:
        configure_logging(
            level=logging.DEBUG if args.verbose else logging.INFO,
            json_format=args.log_json,
        )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "transfer": cmd_transfer,
        "validate": cmd_validate,
        "generate-template": cmd_generate_template,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
