#!/usr/bin/env python3
"""
List every NFT in a wallet on the Decentraland marketplace.

This script discovers the wallet's NFTs on Polygon through the collections
subgraph, approves the marketplace on every collection that still needs
it, prices each NFT 10% below its market reference price, and creates one
sell order per priced NFT. A CSV report of the submitted listings is
written at the end.
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from typing import List, Optional

from scripts.lib.approvals import authorize_contracts, find_unauthorized_contracts
from scripts.lib.chain import ChainClient, ChainError, load_account
from scripts.lib.config import ConfigError, ListingSettings, RuntimeConfig, load_runtime_config
from scripts.lib.formatters import format_price, write_report
from scripts.lib.inventory import distinct_contracts, fetch_inventory
from scripts.lib.listings import list_assets, plan_listings
from scripts.lib.pricing import resolve_prices
from scripts.lib.subgraph_client import SubgraphAPIError, SubgraphClient
from scripts.lib.transactions import TransactionError


def log(stage: str, message: str) -> None:
    """Log a message with stage prefix."""
    print(f"[{stage}] {message}", file=sys.stderr)


async def run(
    config: RuntimeConfig,
    settings: ListingSettings,
    dry_run: bool = False,
    output: Optional[str] = None,
) -> None:
    """
    Run the discover, approve, price and list stages in order.

    Raises:
        SubgraphAPIError, ChainError, TransactionError: On any stage failure
    """
    account = load_account(mnemonic=config.mnemonic, private_key=config.private_key)
    chain = ChainClient(config.rpc_url, account, config.multicall_address)
    log("wallet", f"Using wallet {chain.address}")

    async with SubgraphClient(config.subgraph_url) as index:
        await run_stages(chain, index, config, settings, dry_run=dry_run, output=output)


async def run_stages(
    chain: ChainClient,
    index: SubgraphClient,
    config: RuntimeConfig,
    settings: ListingSettings,
    dry_run: bool = False,
    output: Optional[str] = None,
) -> None:
    """Run every stage against an open chain client and index client."""
    log("inventory", "Fetching NFTs...")
    inventory = await fetch_inventory(index, chain.address)
    log("inventory", f"Found {len(inventory)} NFTs")
    if not inventory:
        log("inventory", "Nothing to list")
        return

    contracts = distinct_contracts(inventory.values())
    log("approvals", f"Checking marketplace approval on {len(contracts)} collections...")
    unauthorized = await find_unauthorized_contracts(chain, contracts, config.marketplace_address)
    log("approvals", f"{len(unauthorized)} collections need approval")

    if unauthorized and not dry_run:
        log("approvals", "Authorizing collections...")
        handles = await authorize_contracts(
            chain, unauthorized, config.marketplace_address, settings
        )
        log(
            "approvals",
            f"{len(handles)} approvals confirmed "
            f"({settings.approval_confirmations} blocks deep)",
        )

    log("pricing", "Fetching prices...")
    prices = await resolve_prices(index, inventory.values(), settings)
    log("pricing", f"Priced {len(prices)} of {len(inventory)} NFTs")

    if dry_run:
        planned, skipped = plan_listings(inventory, prices)
        for contract in unauthorized:
            log("dry-run", f"Would approve {contract}")
        for asset, price in planned:
            log(
                "dry-run",
                f"Would list {asset.name or asset.asset_id} "
                f"({asset.contract_address}:{asset.token_id}) for {format_price(price)} MANA",
            )
        log("dry-run", f"{len(planned)} listings planned, {len(skipped)} skipped")
        return

    log("listings", "Selling NFTs...")
    records = await list_assets(
        chain, inventory, prices, config.marketplace_address, settings
    )
    log("listings", f"{len(records)} listings mined")

    report_file = write_report(records, output)
    if report_file:
        print(f"\nReport written to: {report_file}", file=sys.stderr)


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        description="List every NFT owned by a wallet on the Decentraland marketplace.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment (or .env file):
  RPC_URL               Polygon JSON-RPC endpoint (required)
  MNEMONIC/PRIVATE_KEY  Wallet credentials (exactly one required)
  SUBGRAPH_URL          Collections subgraph endpoint
  MARKETPLACE_ADDRESS   Marketplace contract address

Examples:
  # Show what would be approved and listed
  %(prog)s --dry-run

  # Approve, list, and save the report
  %(prog)s --env-file wallet.env --output listings.csv
        """,
    )

    parser.add_argument(
        "--env-file",
        help="Path to a .env file (default: ./.env)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Check approvals and prices without submitting transactions",
    )
    parser.add_argument(
        "--output",
        help="Report file path (timestamp auto-appended). If not specified, outputs to stdout.",
    )
    parser.add_argument(
        "--confirmation-timeout",
        type=float,
        default=ListingSettings.confirmation_timeout,
        help="Seconds to wait for each transaction to confirm (default: %(default)s)",
    )
    parser.add_argument(
        "--price-concurrency",
        type=int,
        default=ListingSettings.price_concurrency,
        help="Maximum simultaneous price queries (default: %(default)s)",
    )

    parsed_args = parser.parse_args(args)

    try:
        config = load_runtime_config(parsed_args.env_file)
        settings = replace(
            ListingSettings(),
            confirmation_timeout=parsed_args.confirmation_timeout,
            price_concurrency=parsed_args.price_concurrency,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        asyncio.run(run(config, settings, dry_run=parsed_args.dry_run, output=parsed_args.output))
    except (SubgraphAPIError, ChainError, TransactionError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def cli() -> None:
    """Console script entry point; exits with the status from main()."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
