"""
EVM wallet for garden SDK.

Holds the EVM account key: signs SIWE messages and typed data, reads
balances and allowances, and redeems/refunds Garden HTLCs.

web3 is synchronous; every chain call runs in a worker thread so the
execute loop keeps polling other orders meanwhile.
"""

import asyncio
import logging
from typing import Any, Callable, Dict

from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from web3.exceptions import ContractLogicError, Web3Exception

from ..assets import Asset, EVM_CHAIN_IDS
from ..chains.evm import EVMClient
from ..core import Result, ErrorKind, with0x
from ..htlc import evm as htlc
from ..orderbook.models import MatchedOrder
from .base import ChainWallet

log = logging.getLogger(__name__)


class EVMWallet(ChainWallet):
    """
    EVM signing capability.

    Usage:
        wallet = EVMWallet(config.private_key_hex, EVMClient(rpc_url, chain_id))
        sig = await wallet.sign_message("hello")
    """

    chain_family = "evm"

    def __init__(self, private_key: str, client: EVMClient):
        self.account = Account.from_key(with0x(private_key))
        self.client = client

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def chain_id(self) -> int:
        return self.client.chain_id

    def get_address(self) -> str:
        return self.account.address

    # =========================================================================
    # Signing
    # =========================================================================

    async def sign_message(self, message: str) -> bytes:
        """personal_sign (EIP-191)."""
        signed = self.account.sign_message(encode_defunct(text=message))
        return bytes(signed.signature)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        """EIP-712 signature over a full typed-data payload."""
        signed = self.account.sign_message(encode_typed_data(full_message=typed_data))
        return bytes(signed.signature)

    # =========================================================================
    # Reads
    # =========================================================================

    async def _run(self, fn: Callable, *args, what: str,
                   error_kind: ErrorKind = ErrorKind.TRANSIENT) -> Result:
        try:
            return Result.ok(await asyncio.to_thread(fn, *args))
        except (Web3Exception, OSError, ValueError) as e:
            log.warning(f"{what} failed: {e}")
            return Result.err(error_kind, f"{what} failed: {e}")

    async def get_block_number(self, chain: str) -> Result[int]:
        expected = EVM_CHAIN_IDS.get(chain)
        if expected is not None and expected != self.chain_id:
            return Result.err(
                ErrorKind.CONFIGURATION,
                f"Wallet is connected to chain id {self.chain_id}, not {chain}",
            )
        return await self._run(self.client.get_block_number, what="Block number")

    async def get_native_balance(self) -> Result[int]:
        """Gas balance in wei."""
        return await self._run(
            self.client.get_native_balance, self.address, what="Native balance"
        )

    async def get_token(self, htlc_address: str) -> Result[str]:
        return await self._run(htlc.get_token, self.client.w3, htlc_address, what="HTLC token")

    async def get_balance(self, asset: Asset) -> Result[int]:
        token = asset.token_address
        if not token:
            res = await self.get_token(asset.atomic_swap_address)
            if res.error:
                return res
            token = res.val
        return await self._run(
            self.client.get_token_balance, token, self.address, what="Token balance"
        )

    async def get_allowance(self, token: str, spender: str) -> Result[int]:
        return await self._run(
            htlc.get_allowance, self.client.w3, token, self.address, spender, what="Allowance"
        )

    # =========================================================================
    # Transactions
    # =========================================================================

    async def _broadcast(self, fn: Callable, *args, what: str) -> Result[str]:
        try:
            tx_hash = await asyncio.to_thread(fn, self.client.w3, self.account, *args)
        except ContractLogicError as e:
            reason = str(e)
            if htlc.is_already_settled(reason):
                log.warning(f"{what} skipped, HTLC already settled: {reason}")
                return Result.err(ErrorKind.ALREADY_SETTLED, reason)
            log.error(f"{what} reverted: {reason}")
            return Result.err(ErrorKind.CHAIN_ACTION, f"{what} reverted: {reason}")
        except (Web3Exception, OSError, ValueError, RuntimeError) as e:
            log.exception(f"{what} failed")
            return Result.err(ErrorKind.CHAIN_ACTION, f"{what} failed: {e}")
        return Result.ok(tx_hash)

    async def approve(self, token: str, spender: str) -> Result[str]:
        """Unlimited ERC20 approval, confirmed before returning."""
        return await self._broadcast(
            htlc.approve_max, token, spender, self.chain_id, what="Approve"
        )

    async def redeem(self, order: MatchedOrder, secret: bytes) -> Result[str]:
        swap = order.destination_swap
        return await self._broadcast(
            htlc.redeem_htlc, swap.asset, swap.swap_id, secret, self.chain_id,
            what=f"Redeem {swap.swap_id[:16]}",
        )

    async def refund(self, order: MatchedOrder) -> Result[str]:
        swap = order.source_swap
        return await self._broadcast(
            htlc.refund_htlc, swap.asset, swap.swap_id, self.chain_id,
            what=f"Refund {swap.swap_id[:16]}",
        )
