"""
Nonce allocation and batched transaction submission.

A TransactionBatch reads the wallet's next nonce once, hands out
contiguous nonces to sequential submissions, and waits for the whole
batch to reach a confirmation depth with all waits running together.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional


class TransactionError(Exception):
    """Base exception for submitted transactions that did not confirm."""

    kind = "error"

    def __init__(self, message: str, tx_hash: Optional[str] = None, nonce: Optional[int] = None):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.nonce = nonce


class TransactionTimeout(TransactionError):
    """The transaction did not reach the required depth in time."""

    kind = "timeout"


class TransactionReverted(TransactionError):
    """The transaction was mined with a failed status."""

    kind = "reverted"


class TransactionNetworkError(TransactionError):
    """The node could not be queried while waiting for the transaction."""

    kind = "network"


class BatchConfirmationError(TransactionError):
    """One or more transactions of a batch failed to confirm."""

    kind = "batch"

    def __init__(self, label: str, failures: List[TransactionError], confirmed: int):
        first = failures[0]
        super().__init__(
            f"{label}: {len(failures)} of {len(failures) + confirmed} transaction(s) "
            f"failed to confirm; first failure ({first.kind}): {first}",
            tx_hash=first.tx_hash,
            nonce=first.nonce,
        )
        self.failures = failures
        self.confirmed = confirmed


class NonceAllocator:
    """
    Hands out contiguous nonces starting from a base read from the chain.

    Only valid for the batch that read the base; a later batch must read a
    fresh one.
    """

    def __init__(self, base: int):
        self.base = base
        self._next = base

    def allocate(self) -> int:
        nonce = self._next
        self._next += 1
        return nonce

    @property
    def issued(self) -> range:
        """Every nonce allocated so far."""
        return range(self.base, self._next)


class TransactionBatch:
    """
    Async context manager for one batch of transactions from the wallet.

    Entering the batch takes the chain's nonce lock and reads the base
    nonce; submissions are awaited one at a time so the node sees nonces
    in order. Usage:

        async with TransactionBatch(chain, "approvals") as batch:
            for contract in contracts:
                await batch.submit(lambda nonce: chain.send_...(contract, nonce=nonce))
            await batch.wait(confirmations=20, timeout=600)
    """

    def __init__(self, chain: Any, label: str):
        """
        Args:
            chain: ChainClient (or compatible) with nonce_lock and get_nonce()
            label: Name used in error messages
        """
        self.chain = chain
        self.label = label
        self.handles: List[Any] = []
        self.allocator: Optional[NonceAllocator] = None

    async def __aenter__(self) -> "TransactionBatch":
        await self.chain.nonce_lock.acquire()
        try:
            self.allocator = NonceAllocator(await self.chain.get_nonce())
        except BaseException:
            self.chain.nonce_lock.release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.chain.nonce_lock.release()

    async def submit(self, send: Callable[[int], Awaitable[Any]]) -> Any:
        """
        Submit one transaction with the next nonce.

        Args:
            send: Coroutine function taking the nonce and returning a handle

        Returns:
            The transaction handle returned by `send`
        """
        if self.allocator is None:
            raise RuntimeError("TransactionBatch must be entered before submitting")
        handle = await send(self.allocator.allocate())
        self.handles.append(handle)
        return handle

    async def wait(
        self,
        confirmations: int = 1,
        timeout: Optional[float] = None,
        poll_interval: float = 2.0,
    ) -> None:
        """
        Wait for every submitted transaction to reach a confirmation depth.

        All waits are started together and all of them are joined before
        returning, even when some fail.

        Raises:
            BatchConfirmationError: If any transaction failed to confirm
        """
        results = await asyncio.gather(
            *(
                handle.wait(confirmations, timeout=timeout, poll_interval=poll_interval)
                for handle in self.handles
            ),
            return_exceptions=True,
        )

        failures: List[TransactionError] = []
        for result in results:
            if isinstance(result, TransactionError):
                failures.append(result)
            elif isinstance(result, BaseException):
                raise result

        if failures:
            raise BatchConfirmationError(
                self.label, failures, confirmed=len(results) - len(failures)
            ) from failures[0]
