"""
EVM RPC client for garden SDK.

Read-side access to an Ethereum-compatible chain through web3. Calls are
blocking; async callers wrap them in asyncio.to_thread.
"""

import logging
from typing import Optional

from web3 import Web3

from ..htlc.evm import get_token_balance

log = logging.getLogger(__name__)


class EVMClient:
    """web3 HTTP client for one chain."""

    def __init__(self, rpc_url: str, chain_id: int, w3: Optional[Web3] = None):
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url))

    # =========================================================================
    # Basic Operations
    # =========================================================================

    def get_block_number(self) -> int:
        return self.w3.eth.block_number

    # =========================================================================
    # Balance Operations
    # =========================================================================

    def get_native_balance(self, address: str) -> int:
        """Native balance in wei."""
        return self.w3.eth.get_balance(Web3.to_checksum_address(address))

    def get_token_balance(self, token_address: str, wallet_address: str) -> int:
        """ERC20 balance in base units."""
        return get_token_balance(self.w3, token_address, wallet_address)

