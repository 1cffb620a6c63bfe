"""
Chain clients for garden SDK.

- BitcoinProvider: Esplora REST (UTXOs, fees, broadcast)
- EVMClient: web3 JSON-RPC reads
"""

from .btc import BitcoinProvider, Utxo
from .evm import EVMClient

__all__ = ["BitcoinProvider", "Utxo", "EVMClient"]
