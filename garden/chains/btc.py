"""
Bitcoin explorer client for garden SDK.

Talks to an Esplora-compatible REST API (mempool.space, blockstream.info):
UTXOs, tip height, fee estimates, transaction status and broadcast.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from ..api import ApiClient
from ..core import Result, ErrorKind

log = logging.getLogger(__name__)

# Node rejections meaning the HTLC outputs are already spent or the
# same spend is already waiting in the mempool
ALREADY_SPENT_REASONS = (
    "bad-txns-inputs-missingorspent",
    "txn-mempool-conflict",
    "txn-already-in-mempool",
    "txn-already-known",
    "already in block chain",
    "transaction already in block chain",
)


@dataclass
class Utxo:
    txid: str
    vout: int
    value: int                          # sats
    confirmed: bool = False
    block_height: Optional[int] = None


class BitcoinProvider:
    """
    Esplora REST client.

    Endpoints:
        GET  /address/{address}/utxo
        GET  /blocks/tip/height
        GET  /v1/fees/recommended     (mempool.space extension)
        GET  /tx/{txid}/status
        POST /tx                      raw hex body -> txid
    """

    def __init__(self, base_url: str, timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api = ApiClient(base_url, timeout=timeout, transport=transport)

    async def close(self):
        await self.api.close()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_utxos(self, address: str) -> Result[List[Utxo]]:
        res = await self.api.get(f"address/{address}/utxo")
        if res.error:
            return res
        utxos = []
        for item in res.val or []:
            status = item.get("status") or {}
            utxos.append(Utxo(
                txid=item["txid"],
                vout=int(item["vout"]),
                value=int(item["value"]),
                confirmed=bool(status.get("confirmed")),
                block_height=status.get("block_height"),
            ))
        return Result.ok(utxos)

    async def get_balance(self, address: str) -> Result[int]:
        """Confirmed + unconfirmed balance in sats."""
        res = await self.get_utxos(address)
        if res.error:
            return Result.fail(res.error)
        return Result.ok(sum(u.value for u in res.val))

    async def get_block_height(self) -> Result[int]:
        res = await self.api.get("blocks/tip/height", raw=True)
        if res.error:
            return res
        try:
            return Result.ok(int(res.val))
        except ValueError:
            return Result.err(ErrorKind.TRANSIENT, f"Malformed tip height: {res.val!r}")

    async def get_fee_rate(self, target: str = "halfHourFee") -> Result[int]:
        """Recommended fee rate in sat/vB."""
        res = await self.api.get("v1/fees/recommended")
        if res.error:
            return res
        try:
            return Result.ok(max(1, int(res.val[target])))
        except (KeyError, TypeError, ValueError):
            return Result.err(ErrorKind.TRANSIENT, f"Malformed fee estimate: {res.val!r}")

    async def get_tx_status(self, txid: str) -> Result[dict]:
        """{"confirmed": bool, "block_height": int|None}"""
        return await self.api.get(f"tx/{txid}/status")

    # =========================================================================
    # Broadcast
    # =========================================================================

    async def broadcast(self, raw_tx: str) -> Result[str]:
        """
        Submit a raw transaction.

        Rejections for already-spent inputs come back as ALREADY_SETTLED.
        """
        res = await self.api.post("tx", content=raw_tx, raw=True)
        if res.error:
            message = res.error.message
            if any(reason in message for reason in ALREADY_SPENT_REASONS):
                log.warning(f"Broadcast rejected, inputs already spent: {message}")
                return Result.err(ErrorKind.ALREADY_SETTLED, message)
            if res.error.kind == ErrorKind.VALIDATION:
                return Result.err(ErrorKind.CHAIN_ACTION, f"Broadcast rejected: {message}")
            return res

        log.info(f"BTC TX broadcast: {res.val}")
        return res
