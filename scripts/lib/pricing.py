"""
Listing price resolution.

Each asset is priced from its cheapest open sell order and its catalog
price, then discounted. Index queries run concurrently under a limit to
stay within the index's rate limits.
"""

import asyncio
from typing import Dict, Iterable, Optional, Tuple

from .config import ListingSettings
from .models import Asset, PriceSignals
from .subgraph_client import SubgraphClient


def select_price(order_price: int, item_price: int) -> int:
    """
    Pick the reference price of an item.

    Examples:
        select_price(0, 5) -> 5
        select_price(5, 0) -> 5
        select_price(3, 5) -> 3
    """
    if order_price == 0:
        return item_price
    if item_price == 0:
        return order_price
    return min(order_price, item_price)


def apply_discount(price: int, numerator: int, denominator: int) -> int:
    """
    Scale a wei amount by numerator/denominator, truncating.

    Examples:
        apply_discount(1_100_000, 1_000_000, 1_100_000) -> 1_000_000
    """
    return (price * numerator) // denominator


def listing_price(signals: PriceSignals, settings: ListingSettings) -> int:
    """Discounted listing price for an item's price signals."""
    return apply_discount(
        select_price(signals.order_price, signals.item_price),
        settings.discount_numerator,
        settings.discount_denominator,
    )


async def resolve_price(
    client: SubgraphClient,
    asset: Asset,
    settings: ListingSettings,
    limiter: Optional[asyncio.Semaphore] = None,
) -> Tuple[str, int]:
    """
    Query the price signals of one asset and compute its listing price.

    Returns:
        (asset id, listing price in wei)
    """
    limiter = limiter or asyncio.Semaphore(settings.price_concurrency)
    async with limiter:
        signals = await client.get_price_signals(asset.catalog_id)
    return asset.asset_id, listing_price(signals, settings)


async def resolve_prices(
    client: SubgraphClient,
    assets: Iterable[Asset],
    settings: ListingSettings,
) -> Dict[str, int]:
    """
    Resolve listing prices for all assets.

    At most `settings.price_concurrency` index queries are in flight at
    once. Any failed query fails the whole resolution.

    Returns:
        Mapping of asset id to listing price, for positive prices only
    """
    limiter = asyncio.Semaphore(settings.price_concurrency)
    results = await asyncio.gather(
        *(resolve_price(client, asset, settings, limiter) for asset in assets)
    )
    return {asset_id: price for asset_id, price in results if price > 0}
