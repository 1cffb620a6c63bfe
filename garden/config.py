"""
Process configuration for garden SDK.

All settings are supplied once at startup and passed explicitly to each
component; nothing reads the environment after `GardenConfig.from_env()`.
"""

import os
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from .core import ConfigurationError, trim0x

# Public Garden endpoints
ORDERBOOK_URLS = {
    "testnet": "https://orderbook.garden.finance",
    "mainnet": "https://orderbook.garden.finance",
}
QUOTE_URLS = {
    "testnet": "https://price.garden.finance",
    "mainnet": "https://price.garden.finance",
}
BITCOIN_PROVIDER_URLS = {
    "testnet": "https://mempool.space/testnet4/api",
    "mainnet": "https://mempool.space/api",
}
EVM_RPC_URLS = {
    "testnet": "https://rpc.sepolia.org",
    "mainnet": "https://eth.llamarpc.com",
}
EVM_CHAIN_IDS = {
    "testnet": 11155111,  # Sepolia
    "mainnet": 1,
}

_PRIVATE_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class GardenConfig:
    """Garden SDK configuration."""
    evm_private_key: str
    network: str = "testnet"

    # Service endpoints
    orderbook_url: str = ORDERBOOK_URLS["testnet"]
    quote_url: str = QUOTE_URLS["testnet"]
    bitcoin_provider_url: str = BITCOIN_PROVIDER_URLS["testnet"]
    evm_rpc_url: str = EVM_RPC_URLS["testnet"]
    evm_chain_id: int = EVM_CHAIN_IDS["testnet"]

    # Execution loop
    poll_interval: float = 5.0          # seconds between cycles
    action_retry_interval: float = 300  # resubmit unconfirmed redeem/refund after (s)

    # Service calls
    request_timeout: float = 15.0
    retry_attempts: int = 3
    retry_backoff: float = 1.0

    # Waiting for a counterparty after order creation
    match_attempts: int = 30
    match_interval: float = 2.0

    # Quote selection: "first", "best" or "strategy:<id>"
    quote_policy: str = "first"

    # Minimum native EVM balance for gas (wei)
    min_native_balance: int = 20_000_000_000_000_000  # 0.02 ETH

    @property
    def private_key_hex(self) -> str:
        """Private key with 0x prefix."""
        return "0x" + trim0x(self.evm_private_key)

    def validate(self) -> "GardenConfig":
        """Check every field; raises ConfigurationError on the first problem."""
        if not self.evm_private_key:
            raise ConfigurationError("ETHEREUM_PRIVATE_KEY is not set")
        if not _PRIVATE_KEY_RE.match(trim0x(self.evm_private_key)):
            raise ConfigurationError("EVM private key must be 32 bytes of hex")

        if self.network not in ("testnet", "mainnet"):
            raise ConfigurationError(f"Unknown network: {self.network}")

        for name in ("orderbook_url", "quote_url", "bitcoin_provider_url", "evm_rpc_url"):
            url = getattr(self, name)
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ConfigurationError(f"{name} is not an http(s) URL: {url!r}")

        for name in ("poll_interval", "action_retry_interval", "request_timeout",
                     "match_interval"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")

        if self.retry_attempts < 1 or self.match_attempts < 1:
            raise ConfigurationError("retry_attempts and match_attempts must be >= 1")

        policy = self.quote_policy
        if policy not in ("first", "best") and not (
            policy.startswith("strategy:") and len(policy) > len("strategy:")
        ):
            raise ConfigurationError(f"Unknown quote policy: {policy!r}")

        return self

    @classmethod
    def from_env(cls, environ=None) -> "GardenConfig":
        """
        Build and validate configuration from environment variables.

        Required:
            ETHEREUM_PRIVATE_KEY
        Optional:
            GARDEN_NETWORK, GARDEN_ORDERBOOK_URL, GARDEN_QUOTE_URL,
            GARDEN_BITCOIN_PROVIDER_URL, GARDEN_EVM_RPC_URL,
            GARDEN_POLL_INTERVAL, GARDEN_QUOTE_POLICY
        """
        env = os.environ if environ is None else environ
        network = env.get("GARDEN_NETWORK", "testnet")

        try:
            poll_interval = float(env.get("GARDEN_POLL_INTERVAL", "5"))
        except ValueError:
            raise ConfigurationError("GARDEN_POLL_INTERVAL must be a number")

        config = cls(
            evm_private_key=env.get("ETHEREUM_PRIVATE_KEY", ""),
            network=network,
            orderbook_url=env.get("GARDEN_ORDERBOOK_URL", ORDERBOOK_URLS.get(network, "")),
            quote_url=env.get("GARDEN_QUOTE_URL", QUOTE_URLS.get(network, "")),
            bitcoin_provider_url=env.get(
                "GARDEN_BITCOIN_PROVIDER_URL", BITCOIN_PROVIDER_URLS.get(network, "")
            ),
            evm_rpc_url=env.get("GARDEN_EVM_RPC_URL", EVM_RPC_URLS.get(network, "")),
            evm_chain_id=EVM_CHAIN_IDS.get(network, 0),
            poll_interval=poll_interval,
            quote_policy=env.get("GARDEN_QUOTE_POLICY", "first"),
        )
        return config.validate()
