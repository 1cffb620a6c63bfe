"""
Assets and order pairs.

An asset is identified by its chain and the atomic swap (HTLC) contract that
holds it. Native Bitcoin has no contract and uses the "primary" marker.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .core import Result, ErrorKind

PRIMARY = "primary"


class Chain(str, Enum):
    """Chains the orderbook routes between."""
    ETHEREUM_SEPOLIA = "ethereum_sepolia"
    ARBITRUM_SEPOLIA = "arbitrum_sepolia"
    BITCOIN_TESTNET = "bitcoin_testnet"
    ETHEREUM = "ethereum"
    ARBITRUM = "arbitrum"
    BITCOIN = "bitcoin"


BITCOIN_CHAINS = {Chain.BITCOIN.value, Chain.BITCOIN_TESTNET.value}
EVM_CHAINS = {
    Chain.ETHEREUM_SEPOLIA.value,
    Chain.ARBITRUM_SEPOLIA.value,
    Chain.ETHEREUM.value,
    Chain.ARBITRUM.value,
}

EVM_CHAIN_IDS = {
    Chain.ETHEREUM_SEPOLIA.value: 11155111,
    Chain.ARBITRUM_SEPOLIA.value: 421614,
    Chain.ETHEREUM.value: 1,
    Chain.ARBITRUM.value: 42161,
}


def is_bitcoin(chain: str) -> bool:
    return chain in BITCOIN_CHAINS


def is_evm(chain: str) -> bool:
    return chain in EVM_CHAINS


def chain_family(chain: str) -> Optional[str]:
    """Wallet family that can act on a chain ("evm" / "bitcoin")."""
    if is_evm(chain):
        return "evm"
    if is_bitcoin(chain):
        return "bitcoin"
    return None


@dataclass(frozen=True)
class Asset:
    """A tradable unit: chain + atomic swap contract."""
    name: str
    symbol: str
    decimals: int
    chain: str
    atomic_swap_address: str
    token_address: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.chain}_{self.atomic_swap_address}"

    @property
    def is_native_btc(self) -> bool:
        return is_bitcoin(self.chain) and self.atomic_swap_address == PRIMARY


def _index(*assets: Asset) -> Dict[str, Asset]:
    return {a.key: a for a in assets}


WBTC_SEPOLIA = Asset(
    name="Wrapped Bitcoin",
    symbol="WBTC",
    decimals=8,
    chain=Chain.ETHEREUM_SEPOLIA.value,
    atomic_swap_address="0x3c6a17b8cd92976d1d91e491c93c98cd81998265",
)

BTC_TESTNET = Asset(
    name="Bitcoin",
    symbol="BTC",
    decimals=8,
    chain=Chain.BITCOIN_TESTNET.value,
    atomic_swap_address=PRIMARY,
)

BTC_MAINNET = Asset(
    name="Bitcoin",
    symbol="BTC",
    decimals=8,
    chain=Chain.BITCOIN.value,
    atomic_swap_address=PRIMARY,
)


class _AssetTable:
    """Attribute access over a key -> Asset mapping."""

    def __init__(self, assets: Dict[str, Asset], aliases: Dict[str, str]):
        self._assets = dict(assets)
        for alias, key in aliases.items():
            self._assets[alias] = assets[key]

    def __getattr__(self, name: str) -> Asset:
        try:
            return self._assets[name]
        except KeyError:
            raise AttributeError(name) from None

    def get(self, key: str) -> Optional[Asset]:
        return self._assets.get(key)

    def all(self) -> Dict[str, Asset]:
        return dict(self._assets)


class SupportedAssets:
    """Static asset configuration per network."""
    testnet = _AssetTable(
        _index(WBTC_SEPOLIA, BTC_TESTNET),
        {"bitcoin_testnet_primary": BTC_TESTNET.key},
    )
    mainnet = _AssetTable(
        _index(BTC_MAINNET),
        {"bitcoin_primary": BTC_MAINNET.key},
    )

    @classmethod
    def for_network(cls, network: str) -> _AssetTable:
        return cls.mainnet if network == "mainnet" else cls.testnet


def construct_order_pair(from_asset: Asset, to_asset: Asset) -> str:
    """Routing key for a directed swap: chain:contract::chain:contract."""
    return (
        f"{from_asset.chain}:{from_asset.atomic_swap_address}"
        f"::{to_asset.chain}:{to_asset.atomic_swap_address}"
    )


def parse_order_pair(order_pair: str) -> Result[Tuple[Tuple[str, str], Tuple[str, str]]]:
    """
    Split an order pair into ((from_chain, from_contract), (to_chain, to_contract)).
    """
    legs = order_pair.split("::")
    if len(legs) != 2:
        return Result.err(ErrorKind.VALIDATION, f"Malformed order pair: {order_pair}")

    parsed = []
    for leg in legs:
        chain, sep, contract = leg.partition(":")
        if not sep or not chain or not contract:
            return Result.err(ErrorKind.VALIDATION, f"Malformed order pair: {order_pair}")
        parsed.append((chain, contract))

    return Result.ok((parsed[0], parsed[1]))
