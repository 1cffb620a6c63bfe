"""
Gasless initiation through the Garden relayer.

The owner approves the HTLC contract once (the only transaction paying gas)
and then signs an EIP-712 Initiate message per order; the relayer submits
the initiating transaction on their behalf.
"""

import logging
from typing import Optional

import httpx

from .api import ApiClient
from .assets import EVM_CHAIN_IDS, is_evm
from .auth import Siwe
from .core import Result, ErrorKind
from .htlc.evm import initiate_typed_data
from .orderbook.models import MatchedOrder
from .wallets.evm import EVMWallet

log = logging.getLogger(__name__)


class EvmRelay:
    """
    Relay initiation for one order's EVM source leg.

    Usage:
        relay = EvmRelay(order, config.orderbook_url, auth)
        res = await relay.init(evm_wallet)
    """

    def __init__(self, order: MatchedOrder, orderbook_url: str, auth: Siwe,
                 timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.order = order
        self.auth = auth
        self.api = ApiClient(orderbook_url, timeout=timeout, transport=transport)

    async def init(self, wallet: EVMWallet) -> Result[str]:
        """Approve if needed, sign the initiate message, hand it to the relayer."""
        src = self.order.source_swap
        if not is_evm(src.chain):
            return Result.err(ErrorKind.VALIDATION, f"Relay initiation needs an EVM source, got {src.chain}")
        if src.initiated:
            return Result.err(ErrorKind.VALIDATION, f"Order {self.order.create_id} already initiated")

        expected_chain_id = EVM_CHAIN_IDS.get(src.chain)
        if expected_chain_id is not None and expected_chain_id != wallet.chain_id:
            return Result.err(
                ErrorKind.CONFIGURATION,
                f"Wallet is on chain id {wallet.chain_id}, order source is {src.chain}",
            )

        approved = await self._ensure_allowance(wallet, src.asset, int(src.amount))
        if approved.error:
            return Result.fail(approved.error)

        typed_data = initiate_typed_data(
            htlc=src.asset,
            chain_id=wallet.chain_id,
            redeemer=src.redeemer,
            timelock=src.timelock,
            amount=int(src.amount),
            secret_hash=src.secret_hash,
        )
        try:
            signature = await wallet.sign_typed_data(typed_data)
        except (ValueError, TypeError) as e:
            return Result.err(ErrorKind.AUTH, f"Initiate signing failed: {e}")

        return await self._submit(signature)

    async def _ensure_allowance(self, wallet: EVMWallet, htlc: str, amount: int) -> Result[None]:
        token = await wallet.get_token(htlc)
        if token.error:
            return Result.fail(token.error)

        allowance = await wallet.get_allowance(token.val, htlc)
        if allowance.error:
            return Result.fail(allowance.error)
        if allowance.val >= amount:
            return Result.ok()

        log.info(f"Approving {htlc} to spend {token.val} for {wallet.address}")
        approve = await wallet.approve(token.val, htlc)
        if approve.error:
            native = await wallet.get_native_balance()
            balance = native.val if native.val is not None else "unknown"
            return Result.err(
                ErrorKind.CHAIN_ACTION,
                f"Approval failed for {wallet.address} (balance {balance} wei): {approve.error.message}",
            )
        log.info(f"Approval confirmed: {approve.val}")
        return Result.ok()

    async def _submit(self, signature: bytes) -> Result[str]:
        body = {
            "order_id": self.order.create_id,
            "signature": "0x" + bytes(signature).hex(),
            "perform_on": "Source",
        }

        res = None
        for _ in range(2):
            headers = await self.auth.auth_headers()
            if headers.error:
                return Result.fail(headers.error)
            res = await self.api.post("relayer/initiate", json=body, headers=headers.val)
            if not (res.error and res.error.kind == ErrorKind.AUTH):
                break
            self.auth.invalidate()

        if res.error:
            log.warning(f"Relay initiate rejected for {self.order.create_id}: {res.error.message}")
            return Result.fail(res.error)

        log.info(f"Relay accepted initiate for {self.order.create_id}: {res.val}")
        return Result.ok(str(res.val))

    async def close(self):
        await self.api.close()
