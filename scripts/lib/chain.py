"""
Async Polygon client for the wallet's on-chain reads and writes.

This module wraps AsyncWeb3 with the contracts the listing workflow
touches: Multicall3 for aggregated reads, ERC-721 collections for
operator approval, and the marketplace for order creation. Transactions
are signed locally with the wallet's key and returned as handles that can
be awaited to a confirmation depth.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, List, Optional

import aiohttp
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from .models import CallResult, ContractCall
from .transactions import TransactionNetworkError, TransactionReverted, TransactionTimeout


MULTICALL3_ABI = [
    {
        "inputs": [
            {"internalType": "bool", "name": "requireSuccess", "type": "bool"},
            {
                "components": [
                    {"internalType": "address", "name": "target", "type": "address"},
                    {"internalType": "bytes", "name": "callData", "type": "bytes"},
                ],
                "internalType": "struct Multicall3.Call[]",
                "name": "calls",
                "type": "tuple[]",
            },
        ],
        "name": "tryAggregate",
        "outputs": [
            {
                "components": [
                    {"internalType": "bool", "name": "success", "type": "bool"},
                    {"internalType": "bytes", "name": "returnData", "type": "bytes"},
                ],
                "internalType": "struct Multicall3.Result[]",
                "name": "returnData",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "payable",
        "type": "function",
    }
]

COLLECTION_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "address", "name": "operator", "type": "address"},
        ],
        "name": "isApprovedForAll",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "operator", "type": "address"},
            {"internalType": "bool", "name": "approved", "type": "bool"},
        ],
        "name": "setApprovalForAll",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

MARKETPLACE_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "nftAddress", "type": "address"},
            {"internalType": "uint256", "name": "assetId", "type": "uint256"},
            {"internalType": "uint256", "name": "priceInWei", "type": "uint256"},
            {"internalType": "uint256", "name": "expiresAt", "type": "uint256"},
        ],
        "name": "createOrder",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]

# Errors raised by the node or the HTTP transport
NODE_ERRORS = (Web3Exception, aiohttp.ClientError, OSError, ValueError)


class ChainError(Exception):
    """Base exception for failed node interactions."""

    pass


class ChainQueryError(ChainError):
    """A read from the chain failed or returned unusable data."""

    pass


class ChainSubmissionError(ChainError):
    """The node rejected a transaction at submission time."""

    def __init__(self, message: str, nonce: Optional[int] = None):
        super().__init__(message)
        self.nonce = nonce


def load_account(mnemonic: Optional[str] = None, private_key: Optional[str] = None) -> LocalAccount:
    """
    Load the signing account from a mnemonic (first default-path account) or a private key.
    """
    if mnemonic:
        Account.enable_unaudited_hdwallet_features()
        return Account.from_mnemonic(mnemonic)
    if private_key:
        return Account.from_key(private_key)
    raise ValueError("A mnemonic or a private key is required")


def gwei_to_wei(amount: str) -> int:
    """Convert a decimal gwei amount such as "79.7" to wei."""
    return Web3.to_wei(amount, "gwei")


@dataclass
class TransactionHandle:
    """A submitted transaction that can be awaited to a confirmation depth."""

    tx_hash: str
    nonce: int
    label: str
    w3: Any = field(repr=False)

    async def wait(
        self,
        confirmations: int = 1,
        timeout: Optional[float] = None,
        poll_interval: float = 2.0,
    ) -> Any:
        """
        Wait until the transaction is mined at least `confirmations` blocks deep.

        Returns:
            The transaction receipt

        Raises:
            TransactionTimeout: If the depth is not reached within `timeout` seconds
            TransactionReverted: If the transaction was mined with status 0
            TransactionNetworkError: If the node could not be queried
        """
        try:
            return await asyncio.wait_for(
                self._poll(confirmations, poll_interval), timeout=timeout
            )
        except asyncio.TimeoutError:
            raise TransactionTimeout(
                f"{self.label} {self.tx_hash} not {confirmations} block(s) deep "
                f"after {timeout}s",
                tx_hash=self.tx_hash,
                nonce=self.nonce,
            ) from None

    async def _poll(self, confirmations: int, poll_interval: float) -> Any:
        while True:
            try:
                try:
                    receipt = await self.w3.eth.get_transaction_receipt(self.tx_hash)
                except TransactionNotFound:
                    receipt = None

                if receipt is not None:
                    if receipt["status"] == 0:
                        raise TransactionReverted(
                            f"{self.label} {self.tx_hash} reverted in block "
                            f"{receipt['blockNumber']}",
                            tx_hash=self.tx_hash,
                            nonce=self.nonce,
                        )
                    head = await self.w3.eth.block_number
                    if head - receipt["blockNumber"] + 1 >= confirmations:
                        return receipt
            except NODE_ERRORS as e:
                raise TransactionNetworkError(
                    f"{self.label} {self.tx_hash}: {e}",
                    tx_hash=self.tx_hash,
                    nonce=self.nonce,
                ) from e

            await asyncio.sleep(poll_interval)


class ChainClient:
    """
    Wallet-bound client for Polygon reads and signed writes.

    Holds the nonce lock that TransactionBatch borrows for the duration of
    a batch.
    """

    def __init__(
        self,
        rpc_url: str,
        account: LocalAccount,
        multicall_address: str,
        w3: Optional[AsyncWeb3] = None,
    ):
        """
        Initialize the chain client.

        Args:
            rpc_url: JSON-RPC endpoint of a Polygon node
            account: Signing account of the wallet
            multicall_address: Multicall3 deployment address
            w3: Preconfigured AsyncWeb3 instance (built from rpc_url if omitted)
        """
        if w3 is None:
            w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self.w3 = w3
        self.account = account
        self.multicall = w3.eth.contract(
            address=Web3.to_checksum_address(multicall_address), abi=MULTICALL3_ABI
        )
        self.nonce_lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self.account.address

    def _collection(self, address: str) -> Any:
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=COLLECTION_ABI)

    def _marketplace(self, address: str) -> Any:
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=MARKETPLACE_ABI)

    async def get_nonce(self) -> int:
        """Next unused nonce of the wallet, counting pending transactions."""
        try:
            return await self.w3.eth.get_transaction_count(self.address, "pending")
        except NODE_ERRORS as e:
            raise ChainQueryError(f"Could not read nonce: {e}") from e

    async def get_block_timestamp(self) -> int:
        """Timestamp of the latest block, in unix seconds."""
        try:
            block = await self.w3.eth.get_block("latest")
        except NODE_ERRORS as e:
            raise ChainQueryError(f"Could not read latest block: {e}") from e
        return int(block["timestamp"])

    def encode_approval_query(self, contract: str, operator: str) -> ContractCall:
        """Build an isApprovedForAll(wallet, operator) call against a collection."""
        data = self._collection(contract).encode_abi(
            "isApprovedForAll",
            args=[self.address, Web3.to_checksum_address(operator)],
        )
        return ContractCall(address=contract, data=Web3.to_bytes(hexstr=data))

    async def aggregate(self, calls: List[ContractCall]) -> List[CallResult]:
        """
        Execute read-only calls in one Multicall3 request.

        The request reverts as a whole if any call fails, so either every
        call has a result or the method raises.

        Returns:
            One CallResult per call, carrying the address of its call

        Raises:
            ChainQueryError: If the request failed or returned the wrong number of results
        """
        if not calls:
            return []

        payload = [(Web3.to_checksum_address(call.address), call.data) for call in calls]
        try:
            raw_results = await self.multicall.functions.tryAggregate(True, payload).call()
        except NODE_ERRORS as e:
            raise ChainQueryError(f"Multicall failed: {e}") from e

        if len(raw_results) != len(calls):
            raise ChainQueryError(
                f"Multicall returned {len(raw_results)} results for {len(calls)} calls"
            )

        return [
            CallResult(address=call.address, success=bool(success), return_data=bytes(data))
            for call, (success, data) in zip(calls, raw_results)
        ]

    async def _send(self, function: Any, nonce: int, gas_price: int, label: str) -> TransactionHandle:
        try:
            tx = await function.build_transaction(
                {"from": self.address, "nonce": nonce, "gasPrice": gas_price}
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except NODE_ERRORS as e:
            raise ChainSubmissionError(f"{label} with nonce {nonce} rejected: {e}", nonce=nonce) from e

        return TransactionHandle(tx_hash=Web3.to_hex(tx_hash), nonce=nonce, label=label, w3=self.w3)

    async def send_set_approval_for_all(
        self, contract: str, operator: str, nonce: int, gas_price: int
    ) -> TransactionHandle:
        """Submit setApprovalForAll(operator, true) on a collection."""
        function = self._collection(contract).functions.setApprovalForAll(
            Web3.to_checksum_address(operator), True
        )
        return await self._send(function, nonce, gas_price, f"approval of {contract}")

    async def send_create_order(
        self,
        marketplace: str,
        contract: str,
        token_id: int,
        price: int,
        expires_at: int,
        nonce: int,
        gas_price: int,
    ) -> TransactionHandle:
        """Submit createOrder(contract, token_id, price, expires_at) on the marketplace."""
        function = self._marketplace(marketplace).functions.createOrder(
            Web3.to_checksum_address(contract), token_id, price, expires_at
        )
        return await self._send(function, nonce, gas_price, f"listing of {contract}:{token_id}")
