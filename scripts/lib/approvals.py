"""
Marketplace approval: find collections the marketplace cannot yet
transfer from, and grant it operator rights on them in one batch.
"""

from typing import Iterable, List

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from .chain import ChainClient, ChainQueryError, TransactionHandle, gwei_to_wei
from .config import ListingSettings
from .transactions import TransactionBatch


def decode_approval(return_data: bytes) -> bool:
    """Decode the ABI-encoded bool returned by isApprovedForAll."""
    return bool(decode(["bool"], return_data)[0])


async def find_unauthorized_contracts(
    chain: ChainClient,
    contracts: Iterable[str],
    operator: str,
) -> List[str]:
    """
    List the collections on which `operator` is not approved for the wallet.

    All approval queries go out in a single aggregated call; if it fails
    nothing is returned.

    Results are paired with contracts by the address each one carries.
    ChainClient.aggregate builds those addresses from the calls and rejects
    a result count that differs from the call count, so against a real node
    the count check there is what keeps results aligned; the address
    comparison here only catches a chain client that reorders or drops
    results on its own.

    Args:
        chain: ChainClient bound to the wallet
        contracts: Collection addresses (duplicates are queried once)
        operator: Marketplace address

    Returns:
        Addresses lacking approval, in input order

    Raises:
        ChainQueryError: If the aggregated call failed, a result could not
            be decoded, or the results do not line up with the requested
            addresses
    """
    addresses: List[str] = []
    for contract in contracts:
        if contract not in addresses:
            addresses.append(contract)

    calls = [chain.encode_approval_query(address, operator) for address in addresses]
    results = await chain.aggregate(calls)

    returned = [result.address for result in results]
    if returned != addresses:
        raise ChainQueryError(
            f"Approval results do not match the queried contracts: "
            f"expected {addresses}, got {returned}"
        )

    unauthorized: List[str] = []
    for result in results:
        if not result.success:
            raise ChainQueryError(f"isApprovedForAll failed on {result.address}")
        try:
            approved = decode_approval(result.return_data)
        except DecodingError as e:
            raise ChainQueryError(
                f"Undecodable isApprovedForAll result from {result.address}"
            ) from e
        if not approved:
            unauthorized.append(result.address)
    return unauthorized


async def authorize_contracts(
    chain: ChainClient,
    contracts: List[str],
    operator: str,
    settings: ListingSettings,
) -> List[TransactionHandle]:
    """
    Approve `operator` on every contract and wait for the approvals to settle.

    Transactions are submitted back to back with contiguous nonces, then
    awaited together until `settings.approval_confirmations` deep.

    Returns:
        Handles of the submitted approval transactions

    Raises:
        ChainSubmissionError: If the node rejected a submission
        BatchConfirmationError: If any approval failed to confirm
    """
    if not contracts:
        return []

    gas_price = gwei_to_wei(settings.gas_price_gwei)

    async with TransactionBatch(chain, "approvals") as batch:
        for contract in contracts:
            await batch.submit(
                lambda nonce, contract=contract: chain.send_set_approval_for_all(
                    contract, operator, nonce=nonce, gas_price=gas_price
                )
            )
        await batch.wait(
            settings.approval_confirmations,
            timeout=settings.confirmation_timeout,
            poll_interval=settings.poll_interval,
        )

    return batch.handles
