"""
Asset inventory helpers.
"""

from typing import Dict, Iterable, List

from .models import Asset
from .subgraph_client import SubgraphClient


def index_assets(assets: Iterable[Asset]) -> Dict[str, Asset]:
    """Key assets by id, keeping the first row for a repeated id."""
    inventory: Dict[str, Asset] = {}
    for asset in assets:
        inventory.setdefault(asset.asset_id, asset)
    return inventory


async def fetch_inventory(client: SubgraphClient, owner: str) -> Dict[str, Asset]:
    """
    Fetch every NFT owned by a wallet, keyed by asset id.

    Args:
        client: SubgraphClient instance
        owner: Wallet address

    Returns:
        Mapping of asset id to Asset (possibly empty)
    """
    return index_assets(await client.get_nfts_for_owner(owner))


def distinct_contracts(assets: Iterable[Asset]) -> List[str]:
    """
    List the issuing contracts of the given assets, once each.

    Contracts are compared case-insensitively and returned in the order
    they were first seen.
    """
    seen = set()
    contracts: List[str] = []
    for asset in assets:
        key = asset.contract_address.lower()
        if key not in seen:
            seen.add(key)
            contracts.append(asset.contract_address)
    return contracts
