"""
Bitcoin wallet for garden SDK.

Single-key P2WPKH wallet that redeems and refunds P2WSH HTLCs. The key is
usually the SecretManager's master key, so the Bitcoin identity is derived
from the EVM wallet and needs no separate backup.
"""

import logging
from typing import Callable, List

import base58

from ..assets import Asset
from ..chains.btc import BitcoinProvider
from ..core import Result, ErrorKind, trim0x
from ..htlc import btc as htlc
from ..orderbook.models import MatchedOrder, Swap
from .base import ChainWallet

log = logging.getLogger(__name__)

WIF_PREFIX = {
    "mainnet": 0x80,
    "testnet": 0xef,
}


class BitcoinWallet(ChainWallet):
    """
    P2WPKH key plus an Esplora provider.

    Usage:
        wallet = BitcoinWallet.from_private_key(secrets.get_master_priv_key(), provider)
        wallet.get_address()   # tb1q...
    """

    chain_family = "bitcoin"

    def __init__(self, private_key: bytes, provider: BitcoinProvider,
                 network: str = "testnet"):
        if len(private_key) != 32:
            raise ValueError("Bitcoin private key must be 32 bytes")
        self._private_key = private_key
        self.provider = provider
        self.network = network
        self.public_key = htlc.privkey_to_pubkey(private_key)
        self.address = htlc.p2wpkh_address(self.public_key, network)

    @classmethod
    def from_private_key(cls, private_key_hex: str, provider: BitcoinProvider,
                         network: str = "testnet") -> "BitcoinWallet":
        return cls(bytes.fromhex(trim0x(private_key_hex)), provider, network)

    @classmethod
    def from_wif(cls, wif: str, provider: BitcoinProvider) -> "BitcoinWallet":
        decoded = base58.b58decode_check(wif)
        network = "mainnet" if decoded[0] == WIF_PREFIX["mainnet"] else "testnet"
        return cls(decoded[1:33], provider, network)

    def to_wif(self) -> str:
        """Compressed-key WIF, for importing into other wallets."""
        payload = bytes([WIF_PREFIX.get(self.network, 0xef)]) + self._private_key + b'\x01'
        return base58.b58encode_check(payload).decode()

    def get_address(self) -> str:
        return self.address

    def get_public_key(self) -> str:
        return self.public_key.hex()

    def get_htlc_identity(self) -> str:
        # HTLC scripts commit to public keys, not addresses
        return self.public_key.hex()

    def __repr__(self) -> str:
        return f"BitcoinWallet({self.address})"

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_block_number(self, chain: str) -> Result[int]:
        return await self.provider.get_block_height()

    async def get_balance(self, asset: Asset) -> Result[int]:
        return await self.provider.get_balance(self.address)

    # =========================================================================
    # HTLC
    # =========================================================================

    def htlc_script(self, swap: Swap) -> bytes:
        return htlc.create_htlc_script(
            secret_hash=swap.secret_hash,
            redeemer_pubkey=trim0x(swap.redeemer),
            initiator_pubkey=trim0x(swap.initiator),
            timelock=swap.timelock,
        )

    def htlc_address(self, swap: Swap) -> str:
        return htlc.script_to_p2wsh_address(self.htlc_script(swap), self.network)

    async def _spend(self, swap: Swap, what: str, redeem: bool,
                     build: Callable[[List[htlc.HTLCUtxo], bytes, int], tuple]) -> Result[str]:
        try:
            script = self.htlc_script(swap)
        except ValueError as e:
            return Result.err(ErrorKind.CHAIN_ACTION, f"{what}: cannot build HTLC script: {e}")
        address = htlc.script_to_p2wsh_address(script, self.network)

        utxos_res = await self.provider.get_utxos(address)
        if utxos_res.error:
            return Result.fail(utxos_res.error)
        if not utxos_res.val:
            log.warning(f"{what}: no UTXOs at HTLC address {address}")
            return Result.err(ErrorKind.ALREADY_SETTLED, f"no UTXOs at HTLC address {address}")
        utxos = [htlc.HTLCUtxo(u.txid, u.vout, u.value) for u in utxos_res.val]

        fee_res = await self.provider.get_fee_rate()
        if fee_res.error:
            return Result.fail(fee_res.error)
        fee = fee_res.val * htlc.estimate_vsize(len(utxos), len(script), redeem=redeem)

        try:
            txid, raw_tx = build(utxos, script, fee)
        except ValueError as e:
            log.error(f"{what}: {e}")
            return Result.err(ErrorKind.CHAIN_ACTION, f"{what}: {e}")

        log.info(f"{what}: spending {len(utxos)} output(s) from {address}, fee {fee} sats")
        res = await self.provider.broadcast(raw_tx)
        if res.error:
            return res
        return Result.ok(res.val or txid)

    async def redeem(self, order: MatchedOrder, secret: bytes) -> Result[str]:
        swap = order.destination_swap
        recipient = order.create_order.additional_data.bitcoin_optional_recipient or self.address

        def build(utxos, script, fee):
            return htlc.build_redeem_tx(
                utxos, script, secret, self._private_key, recipient, fee, self.network
            )

        return await self._spend(swap, f"Redeem {swap.swap_id[:16]}", True, build)

    async def refund(self, order: MatchedOrder) -> Result[str]:
        swap = order.source_swap

        def build(utxos, script, fee):
            return htlc.build_refund_tx(
                utxos, script, swap.timelock, self._private_key, self.address, fee, self.network
            )

        return await self._spend(swap, f"Refund {swap.swap_id[:16]}", False, build)
