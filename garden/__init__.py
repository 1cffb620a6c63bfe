"""
garden - cross-chain atomic swaps between EVM chains and Bitcoin.

Orders are matched by the Garden orderbook; this SDK derives the swap
secrets, submits orders and redeems/refunds the HTLCs.
"""

from .core import Result, GardenError, ErrorKind, ConfigurationError, SwapAction
from .config import GardenConfig
from .assets import Asset, Chain, SupportedAssets, construct_order_pair, parse_order_pair
from .secret_manager import SecretManager, OrderSecret
from .quote import QuoteClient, Quote
from .auth import Siwe
from .orderbook import Orderbook, MatchedOrder
from .relay import EvmRelay
from .swap import Garden, SwapParams, SwapEvent, OrderStatus
from .wallets import ChainWallet, EVMWallet, BitcoinWallet
from .chains import BitcoinProvider, EVMClient

__version__ = "0.1.0"

__all__ = [
    "Result",
    "GardenError",
    "ErrorKind",
    "ConfigurationError",
    "SwapAction",
    "GardenConfig",
    "Asset",
    "Chain",
    "SupportedAssets",
    "construct_order_pair",
    "parse_order_pair",
    "SecretManager",
    "OrderSecret",
    "QuoteClient",
    "Quote",
    "Siwe",
    "Orderbook",
    "MatchedOrder",
    "EvmRelay",
    "Garden",
    "SwapParams",
    "SwapEvent",
    "OrderStatus",
    "ChainWallet",
    "EVMWallet",
    "BitcoinWallet",
    "BitcoinProvider",
    "EVMClient",
]
