"""
HTLC (Hash Time-Locked Contract) encodings for each chain.

HTLCs enable trustless atomic swaps by ensuring:
1. Funds can only be claimed with knowledge of a secret (preimage)
2. Funds can be refunded after a timeout if not claimed

- BTC: Native Bitcoin Script (P2WSH)
- EVM: Garden atomic swap contract
"""

from .btc import HTLCUtxo, create_htlc_script, script_to_p2wsh_address
from .evm import HTLC_ABI, ERC20_ABI, initiate_typed_data

__all__ = [
    "HTLCUtxo",
    "create_htlc_script",
    "script_to_p2wsh_address",
    "HTLC_ABI",
    "ERC20_ABI",
    "initiate_typed_data",
]
