"""
Chain wallets for garden SDK.

Each wallet signs and broadcasts redeem/refund transactions for one chain
family ("evm", "bitcoin").
"""

from .base import ChainWallet
from .evm import EVMWallet
from .btc import BitcoinWallet

__all__ = ["ChainWallet", "EVMWallet", "BitcoinWallet"]
