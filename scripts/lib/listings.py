"""
Marketplace listing: create one sell order per priced asset, all sharing
the same expiration, and wait for the orders to be mined.
"""

import sys
from typing import Dict, List, Tuple

from .chain import ChainClient, gwei_to_wei
from .config import ListingSettings
from .models import Asset, ListingRecord
from .transactions import TransactionBatch


def compute_expiration(block_timestamp: int, settings: ListingSettings) -> int:
    """Expiration shared by every order of the batch, in unix seconds."""
    return block_timestamp + settings.expiration_seconds


def plan_listings(
    inventory: Dict[str, Asset],
    prices: Dict[str, int],
) -> Tuple[List[Tuple[Asset, int]], List[str]]:
    """
    Pair each priced asset id with its Asset.

    Prices and inventory come from separate index snapshots, so a priced
    id can be missing from the inventory; such ids are skipped with a
    warning.

    Returns:
        Tuple of ([(asset, price), ...] in price order, [skipped asset ids])
    """
    planned: List[Tuple[Asset, int]] = []
    skipped: List[str] = []

    for asset_id, price in prices.items():
        asset = inventory.get(asset_id)
        if asset is None:
            print(f"[listings] WARNING: NFT not found in inventory: {asset_id}", file=sys.stderr)
            skipped.append(asset_id)
            continue
        planned.append((asset, price))

    return planned, skipped


async def list_assets(
    chain: ChainClient,
    inventory: Dict[str, Asset],
    prices: Dict[str, int],
    marketplace: str,
    settings: ListingSettings,
) -> List[ListingRecord]:
    """
    Create marketplace orders for every priced asset in the inventory.

    Args:
        chain: ChainClient bound to the wallet
        inventory: Owned assets keyed by id
        prices: Listing prices in wei keyed by asset id
        marketplace: Marketplace contract address
        settings: Listing settings (fee, expiration, confirmations)

    Returns:
        One ListingRecord per submitted order

    Raises:
        ChainQueryError: If the latest block or nonce could not be read
        ChainSubmissionError: If the node rejected a submission
        BatchConfirmationError: If any order failed to be mined
    """
    planned, _ = plan_listings(inventory, prices)
    if not planned:
        return []

    expires_at = compute_expiration(await chain.get_block_timestamp(), settings)
    gas_price = gwei_to_wei(settings.gas_price_gwei)
    records: List[ListingRecord] = []

    async with TransactionBatch(chain, "listings") as batch:
        for asset, price in planned:
            handle = await batch.submit(
                lambda nonce, asset=asset, price=price: chain.send_create_order(
                    marketplace,
                    asset.contract_address,
                    int(asset.token_id),
                    price,
                    expires_at,
                    nonce=nonce,
                    gas_price=gas_price,
                )
            )
            records.append(
                ListingRecord(
                    asset=asset,
                    price=price,
                    expires_at=expires_at,
                    nonce=handle.nonce,
                    tx_hash=handle.tx_hash,
                )
            )
        await batch.wait(
            settings.listing_confirmations,
            timeout=settings.confirmation_timeout,
            poll_interval=settings.poll_interval,
        )

    return records
