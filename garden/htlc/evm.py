"""
EVM HTLC calls for garden SDK.

Interacts with the Garden atomic swap contract (one contract per ERC20 token).
Orders are identified on-chain by their swap id (bytes32).

All functions here are blocking web3 calls; async callers run them in a
worker thread (see garden.wallets.evm).
"""

import logging
from typing import Any, Dict

from web3 import Web3
from web3.contract.contract import ContractFunction
from eth_account.signers.local import LocalAccount

from ..core import MAX_UINT256, trim0x

log = logging.getLogger(__name__)

# Contract ABI (minimal - only functions we use)
HTLC_ABI = [
    {
        "name": "redeem",
        "type": "function",
        "inputs": [
            {"name": "orderID", "type": "bytes32"},
            {"name": "secret", "type": "bytes"}
        ],
        "outputs": []
    },
    {
        "name": "refund",
        "type": "function",
        "inputs": [{"name": "orderID", "type": "bytes32"}],
        "outputs": []
    },
    {
        "name": "token",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}]
    },
]

ERC20_ABI = [
    {
        "name": "approve",
        "type": "function",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "outputs": [{"name": "", "type": "bool"}]
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"}
        ],
        "outputs": [{"name": "", "type": "uint256"}]
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}]
    },
]

# Revert reasons meaning the HTLC is already settled
ALREADY_SETTLED_REASONS = (
    "already fulfilled",
    "order fulfilled",
    "already redeemed",
    "already refunded",
    "order not initiated",
)

REDEEM_GAS = 150000
REFUND_GAS = 100000
APPROVE_GAS = 80000


def is_already_settled(error: str) -> bool:
    message = error.lower()
    return any(reason in message for reason in ALREADY_SETTLED_REASONS)


def htlc_contract(w3: Web3, address: str):
    return w3.eth.contract(address=Web3.to_checksum_address(address), abi=HTLC_ABI)


def erc20_contract(w3: Web3, address: str):
    return w3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)


def swap_id_bytes(swap_id: str) -> bytes:
    raw = bytes.fromhex(trim0x(swap_id))
    if len(raw) != 32:
        raise ValueError(f"swap id must be 32 bytes: {swap_id}")
    return raw


# =============================================================================
# Views
# =============================================================================

def get_token(w3: Web3, htlc: str) -> str:
    """ERC20 locked by an HTLC contract."""
    return htlc_contract(w3, htlc).functions.token().call()


def get_allowance(w3: Web3, token: str, owner: str, spender: str) -> int:
    return erc20_contract(w3, token).functions.allowance(
        Web3.to_checksum_address(owner),
        Web3.to_checksum_address(spender),
    ).call()


def get_token_balance(w3: Web3, token: str, owner: str) -> int:
    return erc20_contract(w3, token).functions.balanceOf(
        Web3.to_checksum_address(owner)
    ).call()


# =============================================================================
# Transactions
# =============================================================================

def send_transaction(w3: Web3, account: LocalAccount, fn: ContractFunction,
                     chain_id: int, gas: int, wait: bool = False,
                     timeout: int = 120) -> str:
    """
    Build, sign and broadcast a contract call.

    Returns:
        Transaction hash (0x hex). Raises on rejection or, with wait=True,
        on a reverted receipt.
    """
    nonce = w3.eth.get_transaction_count(account.address, 'pending')
    gas_price = int(w3.eth.gas_price * 1.1)

    tx = fn.build_transaction({
        'from': account.address,
        'nonce': nonce,
        'gas': gas,
        'gasPrice': gas_price,
        'chainId': chain_id,
    })
    signed = account.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    tx_hex = Web3.to_hex(tx_hash)
    log.info(f"TX sent: {tx_hex}")

    if wait:
        receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        if receipt['status'] != 1:
            raise RuntimeError(f"Transaction reverted: {tx_hex}")
    return tx_hex


def redeem_htlc(w3: Web3, account: LocalAccount, htlc: str, swap_id: str,
                secret: bytes, chain_id: int) -> str:
    fn = htlc_contract(w3, htlc).functions.redeem(swap_id_bytes(swap_id), secret)
    # Simulate first so a settled HTLC surfaces its revert reason without gas spent
    fn.call({'from': account.address})
    return send_transaction(w3, account, fn, chain_id, REDEEM_GAS)


def refund_htlc(w3: Web3, account: LocalAccount, htlc: str, swap_id: str,
                chain_id: int) -> str:
    fn = htlc_contract(w3, htlc).functions.refund(swap_id_bytes(swap_id))
    fn.call({'from': account.address})
    return send_transaction(w3, account, fn, chain_id, REFUND_GAS)


def approve_max(w3: Web3, account: LocalAccount, token: str, spender: str,
                chain_id: int) -> str:
    """Unlimited approval; waits for the receipt."""
    fn = erc20_contract(w3, token).functions.approve(
        Web3.to_checksum_address(spender), MAX_UINT256
    )
    return send_transaction(w3, account, fn, chain_id, APPROVE_GAS, wait=True)


# =============================================================================
# Typed data
# =============================================================================

def initiate_typed_data(htlc: str, chain_id: int, redeemer: str, timelock: int,
                        amount: int, secret_hash: str) -> Dict[str, Any]:
    """EIP-712 payload authorizing the relay to initiate on the owner's behalf."""
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "Initiate": [
                {"name": "redeemer", "type": "address"},
                {"name": "timelock", "type": "uint256"},
                {"name": "amount", "type": "uint256"},
                {"name": "secretHash", "type": "bytes32"},
            ],
        },
        "primaryType": "Initiate",
        "domain": {
            "name": "HTLC",
            "version": "1",
            "chainId": chain_id,
            "verifyingContract": Web3.to_checksum_address(htlc),
        },
        "message": {
            "redeemer": Web3.to_checksum_address(redeemer),
            "timelock": timelock,
            "amount": amount,
            "secretHash": bytes.fromhex(trim0x(secret_hash)),
        },
    }
