"""
Collections subgraph client for ownership and pricing data.

This module provides a centralized client for all queries against the
collections index: the NFTs owned by a wallet and the two market prices
(lowest open order, catalog item price) of a catalog item.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from .models import Asset, PriceSignals


DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_PAGE_SIZE = 1000  # The Graph caps `first` at 1000

NFTS_BY_OWNER_QUERY = """
query NftsByOwner($owner: String!, $first: Int!, $lastId: ID!) {
  nfts(first: $first, where: { owner: $owner, id_gt: $lastId }, orderBy: id, orderDirection: asc) {
    id
    contractAddress
    tokenId
    item {
      blockchainId
    }
    metadata {
      wearable {
        name
      }
      emote {
        name
      }
    }
  }
}
"""

PRICES_BY_ITEM_QUERY = """
query PricesByItem($item: String!) {
  orders(first: 1, where: { item: $item, status: open }, orderBy: price, orderDirection: asc) {
    price
  }
  items(first: 1, where: { id: $item }) {
    price
  }
}
"""


class SubgraphAPIError(Exception):
    """Exception raised for collections index query failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _parse_amount(rows: List[Dict[str, Any]]) -> int:
    """Return the price of the first row as an int, or 0 if there is none."""
    if not rows:
        return 0
    price = rows[0].get("price")
    return int(price) if price else 0


def parse_nft(row: Dict[str, Any]) -> Asset:
    """
    Convert one `nfts` row from the index into an Asset.

    Args:
        row: GraphQL row with id, contractAddress, tokenId, item and metadata

    Returns:
        Asset with its wearable or emote name, if any
    """
    metadata = row.get("metadata") or {}
    name: Optional[str] = None
    category: Optional[str] = None
    for kind in ("wearable", "emote"):
        payload = metadata.get(kind)
        if payload:
            name = payload.get("name")
            category = kind
            break

    return Asset(
        asset_id=row["id"],
        contract_address=row["contractAddress"],
        token_id=str(row["tokenId"]),
        item_blockchain_id=str((row.get("item") or {}).get("blockchainId", "")),
        name=name,
        category=category,
    )


class SubgraphClient:
    """
    Async GraphQL client for the collections subgraph.

    Every query is a single POST; failures are raised, never retried.
    Use as an async context manager so the HTTP session is closed:

        async with SubgraphClient(url) as index:
            assets = await index.get_nfts_for_owner(wallet)
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """
        Initialize the subgraph client.

        Args:
            url: GraphQL endpoint of the collections subgraph
            timeout: Request timeout in seconds
            page_size: Number of rows requested per page of owned NFTs
        """
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.page_size = page_size
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "SubgraphClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        # Created lazily so the session binds to the running event loop
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute a GraphQL query and return its `data` field.

        Raises:
            SubgraphAPIError: On transport errors, HTTP errors or GraphQL errors
        """
        session = self._get_session()
        try:
            async with session.post(
                self.url, json={"query": query, "variables": variables}
            ) as response:
                if response.status >= 400:
                    raise SubgraphAPIError(
                        f"HTTP error: {response.status}",
                        status_code=response.status,
                    )
                try:
                    payload = await response.json(content_type=None)
                except ValueError as e:
                    raise SubgraphAPIError("Response is not valid JSON") from e
        except aiohttp.ClientError as e:
            raise SubgraphAPIError(f"Request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise SubgraphAPIError("Request timed out") from e

        if not isinstance(payload, dict):
            raise SubgraphAPIError("Response is not a JSON object")

        if payload.get("errors"):
            messages = "; ".join(
                str(error.get("message", error)) for error in payload["errors"]
            )
            raise SubgraphAPIError(f"GraphQL error: {messages}")

        data = payload.get("data")
        if data is None:
            raise SubgraphAPIError("Response has no data")
        return data

    async def get_nfts_for_owner(self, owner: str) -> List[Asset]:
        """
        Get all NFTs owned by a wallet.

        Automatically paginates through all results.

        Args:
            owner: Wallet address (any case)

        Returns:
            List of Asset objects in index order
        """
        all_assets: List[Asset] = []
        last_id = ""

        while True:
            data = await self._query(
                NFTS_BY_OWNER_QUERY,
                {"owner": owner.lower(), "first": self.page_size, "lastId": last_id},
            )
            rows = data.get("nfts") or []
            all_assets.extend(parse_nft(row) for row in rows)

            if len(rows) < self.page_size:
                break
            last_id = rows[-1]["id"]

        return all_assets

    async def get_price_signals(self, catalog_id: str) -> PriceSignals:
        """
        Get the lowest open sell order price and the catalog price of an item.

        Args:
            catalog_id: "<contract address>-<item blockchain id>"

        Returns:
            PriceSignals with 0 for any price the index does not have
        """
        data = await self._query(PRICES_BY_ITEM_QUERY, {"item": catalog_id})
        return PriceSignals(
            order_price=_parse_amount(data.get("orders") or []),
            item_price=_parse_amount(data.get("items") or []),
        )
