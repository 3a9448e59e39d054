"""
Configuration for the listing run.

ListingSettings holds the tuned constants of the workflow (discount, fee,
confirmation depths, expiration, concurrency). RuntimeConfig holds the
externally supplied endpoints and wallet credentials, loaded from the
environment and an optional .env file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values


DEFAULT_SUBGRAPH_URL = (
    "https://api.thegraph.com/subgraphs/name/decentraland/collections-matic-mainnet"
)
DEFAULT_MARKETPLACE_ADDRESS = "0x480a0f4e360E8964e68858Dd231c2922f1df45Ef"
DEFAULT_MULTICALL_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"

SECONDS_PER_JULIAN_YEAR = 31_557_600  # 365.25 days


class ConfigError(Exception):
    """Exception raised when required configuration is missing or invalid."""

    pass


@dataclass(frozen=True)
class ListingSettings:
    """Tunable constants of the approve-price-list workflow."""

    # Listing price = selected price * numerator // denominator (10% below market)
    discount_numerator: int = 1_000_000
    discount_denominator: int = 1_100_000
    gas_price_gwei: str = "79.7"
    approval_confirmations: int = 20
    listing_confirmations: int = 1
    expiration_seconds: int = SECONDS_PER_JULIAN_YEAR
    price_concurrency: int = 5
    confirmation_timeout: float = 600.0  # seconds, per transaction
    poll_interval: float = 2.0  # seconds

    def __post_init__(self) -> None:
        if self.discount_denominator <= 0:
            raise ConfigError("discount_denominator must be positive")
        if self.discount_numerator < 0:
            raise ConfigError("discount_numerator must not be negative")
        if self.price_concurrency < 1:
            raise ConfigError("price_concurrency must be at least 1")
        if self.approval_confirmations < 1 or self.listing_confirmations < 1:
            raise ConfigError("confirmation depths must be at least 1")
        if self.confirmation_timeout <= 0:
            raise ConfigError("confirmation_timeout must be positive")


@dataclass(frozen=True)
class RuntimeConfig:
    """Endpoints and wallet credentials, fixed for the run."""

    rpc_url: str
    subgraph_url: str = DEFAULT_SUBGRAPH_URL
    marketplace_address: str = DEFAULT_MARKETPLACE_ADDRESS
    multicall_address: str = DEFAULT_MULTICALL_ADDRESS
    mnemonic: Optional[str] = field(default=None, repr=False)
    private_key: Optional[str] = field(default=None, repr=False)


def load_runtime_config(
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RuntimeConfig:
    """
    Build a RuntimeConfig from a .env file and the process environment.

    Values in the process environment take precedence over the .env file.

    Args:
        env_file: Path to a .env file (defaults to ".env" in the working directory)
        environ: Environment mapping to read (defaults to os.environ)

    Returns:
        RuntimeConfig with defaults applied

    Raises:
        ConfigError: If env_file does not exist, or RPC_URL or wallet
            credentials are missing
    """
    if env_file is not None and not Path(env_file).is_file():
        raise ConfigError(f"Env file not found: {env_file}")

    values = {
        key: value
        for key, value in dotenv_values(env_file or ".env").items()
        if value is not None
    }
    values.update(os.environ if environ is None else environ)

    def get(name: str) -> Optional[str]:
        value = values.get(name, "").strip()
        return value or None

    rpc_url = get("RPC_URL")
    if not rpc_url:
        raise ConfigError("RPC_URL is not set")

    mnemonic = get("MNEMONIC")
    private_key = get("PRIVATE_KEY")
    if not mnemonic and not private_key:
        raise ConfigError("Set either MNEMONIC or PRIVATE_KEY")
    if mnemonic and private_key:
        raise ConfigError("Set only one of MNEMONIC or PRIVATE_KEY")

    return RuntimeConfig(
        rpc_url=rpc_url,
        subgraph_url=get("SUBGRAPH_URL") or DEFAULT_SUBGRAPH_URL,
        marketplace_address=get("MARKETPLACE_ADDRESS") or DEFAULT_MARKETPLACE_ADDRESS,
        multicall_address=get("MULTICALL_ADDRESS") or DEFAULT_MULTICALL_ADDRESS,
        mnemonic=mnemonic,
        private_key=private_key,
    )
