"""
Pytest configuration and shared fixtures for wallet-nft-lister tests.

FakeChain and FakeIndex stand in for the node and the collections
subgraph so the async stages can be driven without network access.
"""

import asyncio
import threading
from typing import Dict, List, Optional

import pytest
from eth_abi import encode

from scripts.lib.chain import ChainSubmissionError
from scripts.lib.models import Asset, CallResult, ContractCall, PriceSignals


WALLET = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
MARKETPLACE = "0x480a0f4e360E8964e68858Dd231c2922f1df45Ef"
CONTRACT_X = "0x1111111111111111111111111111111111111111"
CONTRACT_Y = "0x2222222222222222222222222222222222222222"
CONTRACT_Z = "0x3333333333333333333333333333333333333333"


class FakeHandle:
    """Transaction handle whose wait succeeds or raises a preset error."""

    def __init__(self, tx_hash: str, nonce: int, label: str, error: Optional[Exception] = None):
        self.tx_hash = tx_hash
        self.nonce = nonce
        self.label = label
        self.error = error
        self.waited_with: Optional[int] = None
        self.finished = False

    async def wait(self, confirmations=1, timeout=None, poll_interval=2.0):
        self.waited_with = confirmations
        await asyncio.sleep(0)
        self.finished = True
        if self.error is not None:
            raise self.error
        return {"status": 1}


class FakeChain:
    """
    In-memory chain bound to one wallet.

    The pending nonce advances with every accepted submission, like a node's
    pending transaction count.
    """

    def __init__(
        self,
        nonce: int = 7,
        approvals: Optional[Dict[str, bool]] = None,
        timestamp: int = 1_700_000_000,
        wait_errors: Optional[Dict[int, Exception]] = None,
        reject_at: Optional[int] = None,
    ):
        self.address = WALLET
        self.base_nonce = nonce
        self.approvals = approvals or {}
        self.timestamp = timestamp
        self.wait_errors = wait_errors or {}
        self.reject_at = reject_at
        self.nonce_lock = asyncio.Lock()
        self.sent: List[dict] = []
        self.handles: List[FakeHandle] = []
        self.aggregate_requests: List[List[ContractCall]] = []
        self.nonce_reads = 0
        self.timestamp_reads = 0
        self.reorder = None

    async def get_nonce(self) -> int:
        self.nonce_reads += 1
        return self.base_nonce + len(self.sent)

    async def get_block_timestamp(self) -> int:
        self.timestamp_reads += 1
        return self.timestamp

    def encode_approval_query(self, contract: str, operator: str) -> ContractCall:
        return ContractCall(address=contract, data=b"isApprovedForAll")

    async def aggregate(self, calls: List[ContractCall]) -> List[CallResult]:
        self.aggregate_requests.append(list(calls))
        results = [
            CallResult(
                address=call.address,
                success=True,
                return_data=encode(["bool"], [self.approvals.get(call.address, False)]),
            )
            for call in calls
        ]
        if self.reorder is not None:
            results = self.reorder(results)
        return results

    def _record(self, kind: str, nonce: int, **fields) -> FakeHandle:
        index = len(self.sent)
        if self.reject_at is not None and index == self.reject_at:
            raise ChainSubmissionError(f"nonce too low: {nonce}", nonce=nonce)
        self.sent.append({"kind": kind, "nonce": nonce, **fields})
        handle = FakeHandle(
            tx_hash=f"0x{index:064x}",
            nonce=nonce,
            label=kind,
            error=self.wait_errors.get(index),
        )
        self.handles.append(handle)
        return handle

    async def send_set_approval_for_all(self, contract, operator, nonce, gas_price):
        return self._record(
            "approval", nonce, contract=contract, operator=operator, gas_price=gas_price
        )

    async def send_create_order(
        self, marketplace, contract, token_id, price, expires_at, nonce, gas_price
    ):
        return self._record(
            "order",
            nonce,
            marketplace=marketplace,
            contract=contract,
            token_id=token_id,
            price=price,
            expires_at=expires_at,
            gas_price=gas_price,
        )


class FakeIndex:
    """
    Collections index double answering price queries from a dict.

    Records the thread each query ran on and the peak number of queries
    in flight at once.
    """

    def __init__(self, prices: Optional[Dict[str, PriceSignals]] = None, delay: float = 0.0):
        self.prices = prices or {}
        self.delay = delay
        self.queried: List[str] = []
        self.query_threads: List[int] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def get_price_signals(self, catalog_id: str) -> PriceSignals:
        self.queried.append(catalog_id)
        self.query_threads.append(threading.get_ident())
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            return self.prices.get(catalog_id, PriceSignals())
        finally:
            self.in_flight -= 1


def make_asset(asset_id: str, contract: str, token_id: str = "1", item_id: str = "0", name=None):
    """Build an Asset with sensible defaults."""
    return Asset(
        asset_id=asset_id,
        contract_address=contract,
        token_id=token_id,
        item_blockchain_id=item_id,
        name=name,
        category="wearable" if name else None,
    )


@pytest.fixture
def sample_wallet_address():
    """Wallet address of the first default-path account of the test mnemonic."""
    return WALLET


@pytest.fixture
def sample_subgraph_url():
    """Collections subgraph URL used for HTTP stubs."""
    return "https://subgraph.example.com/collections"


@pytest.fixture
def sample_inventory():
    """Three NFTs: A and B from collection X, C from collection Y."""
    return {
        "A": make_asset("A", CONTRACT_X, token_id="10", item_id="0", name="Hat"),
        "B": make_asset("B", CONTRACT_X, token_id="11", item_id="1", name="Shirt"),
        "C": make_asset("C", CONTRACT_Y, token_id="12", item_id="0"),
    }
