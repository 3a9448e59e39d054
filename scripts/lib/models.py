"""
Data models for wallet NFT listing.

This module defines the Asset model built from indexed ownership data,
the request/result pairs used by the aggregated on-chain reader, and the
ListingRecord written to the CSV report.
"""

from dataclasses import dataclass
from typing import List, Optional


# CSV column order for the listing report
REPORT_COLUMNS = [
    "asset_id",
    "name",
    "category",
    "contract_address",
    "token_id",
    "price",
    "expires_at",
    "nonce",
    "tx_hash",
]


@dataclass(frozen=True)
class Asset:
    """
    An NFT owned by the wallet, as reported by the collections index.

    Wearables and emotes are mutually exclusive: at most one of them gives
    the asset its human-readable name.
    """

    asset_id: str
    contract_address: str
    token_id: str
    item_blockchain_id: str
    name: Optional[str] = None
    category: Optional[str] = None  # "wearable", "emote" or None

    @property
    def catalog_id(self) -> str:
        """Identifier of the catalog item this token was minted from."""
        return f"{self.contract_address}-{self.item_blockchain_id}"


@dataclass(frozen=True)
class ContractCall:
    """A read-only call to be batched into one aggregated request."""

    address: str
    data: bytes


@dataclass(frozen=True)
class CallResult:
    """Outcome of one ContractCall, tagged with the address it was sent to."""

    address: str
    success: bool
    return_data: bytes


@dataclass(frozen=True)
class PriceSignals:
    """The two market prices known for a catalog item, in wei (0 if absent)."""

    order_price: int = 0
    item_price: int = 0


@dataclass
class ListingRecord:
    """A submitted listing, one row of the listing report."""

    asset: Asset
    price: int  # wei
    expires_at: int  # unix seconds
    nonce: int
    tx_hash: str

    def to_csv_row(self, formatted_price: str) -> List[str]:
        """Convert the record to a CSV row (list of strings)."""
        return [
            self.asset.asset_id,
            self.asset.name or "",
            self.asset.category or "",
            self.asset.contract_address,
            self.asset.token_id,
            formatted_price,
            str(self.expires_at),
            str(self.nonce),
            self.tx_hash,
        ]
