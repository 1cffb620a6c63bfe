"""
Bitcoin HTLC implementation for garden SDK.

P2WSH HTLC with a relative timelock (BIP-112):

    OP_IF
        OP_SHA256 <secret_hash> OP_EQUALVERIFY
        <redeemer_pubkey> OP_CHECKSIG
    OP_ELSE
        <timelock> OP_CHECKSEQUENCEVERIFY OP_DROP
        <initiator_pubkey> OP_CHECKSIG
    OP_ENDIF

To redeem (with secret):
    <signature> <secret> OP_TRUE <witnessScript>

To refund (after timelock blocks since funding):
    <signature> <> <witnessScript>      nSequence = timelock
"""

import hashlib
import struct
import logging
from dataclasses import dataclass
from typing import List, Tuple

import bech32
from bitcoin.core import (
    CMutableTransaction, CMutableTxIn, CMutableTxOut, COutPoint,
    CTxInWitness, CTxWitness, lx, b2x, b2lx,
)
from bitcoin.core.script import (
    CScript, CScriptWitness, SignatureHash, SIGHASH_ALL, SIGVERSION_WITNESS_V0,
)
from bitcoin.core.serialize import Hash160
from ecdsa import SigningKey, SECP256k1
from ecdsa.util import sigencode_der_canonize

from ..core import BTC_DUST_LIMIT, sha256

log = logging.getLogger(__name__)


# Bitcoin Script opcodes
OP_0 = 0x00
OP_FALSE = 0x00
OP_TRUE = 0x51
OP_IF = 0x63
OP_ELSE = 0x67
OP_ENDIF = 0x68
OP_DROP = 0x75
OP_EQUALVERIFY = 0x88
OP_SHA256 = 0xa8
OP_CHECKSIG = 0xac
OP_CHECKSEQUENCEVERIFY = 0xb2

HRP = {
    "mainnet": "bc",
    "testnet": "tb",
    "signet": "tb",
    "regtest": "bcrt",
}


@dataclass
class HTLCUtxo:
    """Funding output locked in the HTLC."""
    txid: str
    vout: int
    value: int   # sats


def push_data(data: bytes) -> bytes:
    """Create push data opcode for Bitcoin script."""
    length = len(data)
    if length < 0x4c:
        return bytes([length]) + data
    elif length <= 0xff:
        return bytes([0x4c, length]) + data
    elif length <= 0xffff:
        return bytes([0x4d]) + struct.pack('<H', length) + data
    else:
        return bytes([0x4e]) + struct.pack('<I', length) + data


def push_int(n: int) -> bytes:
    """Push a non-negative integer (minimal script number encoding)."""
    if n == 0:
        return bytes([OP_0])
    elif 1 <= n <= 16:
        return bytes([0x50 + n])  # OP_1 through OP_16
    result = []
    while n:
        result.append(n & 0xff)
        n >>= 8
    if result[-1] & 0x80:
        result.append(0x00)
    return push_data(bytes(result))


def hash160(data: bytes) -> bytes:
    """HASH160 = RIPEMD160(SHA256(data))."""
    return Hash160(data)


# =============================================================================
# Keys
# =============================================================================

def privkey_to_pubkey(privkey: bytes) -> bytes:
    """Compressed secp256k1 public key (02/03 + x)."""
    sk = SigningKey.from_string(privkey, curve=SECP256k1)
    point = sk.get_verifying_key().pubkey.point
    prefix = b'\x02' if point.y() % 2 == 0 else b'\x03'
    return prefix + point.x().to_bytes(32, 'big')


def sign_hash(privkey: bytes, sighash: bytes) -> bytes:
    """DER signature (low-S) over a 32-byte sighash."""
    sk = SigningKey.from_string(privkey, curve=SECP256k1)
    return sk.sign_digest_deterministic(
        sighash, hashfunc=hashlib.sha256, sigencode=sigencode_der_canonize
    )


# =============================================================================
# Addresses
# =============================================================================

def segwit_address(program: bytes, network: str = "testnet", version: int = 0) -> str:
    address = bech32.encode(HRP.get(network, "tb"), version, list(program))
    if address is None:
        raise ValueError("Could not encode segwit address")
    return address


def p2wpkh_address(pubkey: bytes, network: str = "testnet") -> str:
    return segwit_address(hash160(pubkey), network)


def script_to_p2wsh_address(script: bytes, network: str = "testnet") -> str:
    """Witness program = SHA256(script)."""
    return segwit_address(sha256(script), network)


def address_to_script_pubkey(address: str, network: str = "testnet") -> bytes:
    """scriptPubKey for a segwit (bech32) address."""
    version, program = bech32.decode(HRP.get(network, "tb"), address)
    if version is None:
        raise ValueError(f"Not a segwit address for {network}: {address}")
    op = OP_0 if version == 0 else 0x50 + version
    return bytes([op, len(program)]) + bytes(program)


# =============================================================================
# Script
# =============================================================================

def create_htlc_script(secret_hash: str, redeemer_pubkey: str,
                       initiator_pubkey: str, timelock: int) -> bytes:
    """
    Create HTLC witness script.

    Args:
        secret_hash: SHA256 hash (hex, 0x optional)
        redeemer_pubkey: Compressed pubkey for the secret path (hex)
        initiator_pubkey: Compressed pubkey for the refund path (hex)
        timelock: Relative lock in blocks

    Returns:
        Witness script bytes
    """
    hash_bytes = bytes.fromhex(secret_hash.removeprefix("0x"))
    if len(hash_bytes) != 32:
        raise ValueError("secret hash must be 32 bytes")

    script = bytes([OP_IF])
    script += bytes([OP_SHA256])
    script += push_data(hash_bytes)
    script += bytes([OP_EQUALVERIFY])
    script += push_data(bytes.fromhex(redeemer_pubkey))
    script += bytes([OP_CHECKSIG])
    script += bytes([OP_ELSE])
    script += push_int(timelock)
    script += bytes([OP_CHECKSEQUENCEVERIFY, OP_DROP])
    script += push_data(bytes.fromhex(initiator_pubkey))
    script += bytes([OP_CHECKSIG])
    script += bytes([OP_ENDIF])
    return script


def script_secret_hash(script: bytes) -> bytes:
    """Hashlock committed in the script: OP_IF OP_SHA256 PUSH32 <hash 32> ..."""
    if len(script) < 35 or script[0] != OP_IF or script[1] != OP_SHA256 or script[2] != 0x20:
        raise ValueError("Invalid HTLC script")
    return script[3:35]


# =============================================================================
# Transactions
# =============================================================================

def estimate_vsize(n_inputs: int, script_len: int, redeem: bool = True) -> int:
    """
    Rough vsize of an HTLC spend with one P2WPKH/P2WSH output.

    Witness per input: sig(73) + secret(33)|empty(1) + branch(2) + script.
    """
    witness = 73 + (33 if redeem else 1) + 2 + script_len + 4
    return 11 + 43 + n_inputs * (41 + (witness + 3) // 4)


def _build_spend(utxos: List[HTLCUtxo], script: bytes, privkey: bytes,
                 destination: str, fee: int, network: str,
                 witness_items: List[bytes], sequence: int) -> Tuple[str, str]:
    if not utxos:
        raise ValueError("No HTLC outputs to spend")

    total = sum(u.value for u in utxos)
    output_value = total - fee
    if output_value <= BTC_DUST_LIMIT:
        raise ValueError(f"Output amount {output_value} below dust threshold")

    vin = [
        CMutableTxIn(COutPoint(lx(u.txid), u.vout), nSequence=sequence)
        for u in utxos
    ]
    vout = [CMutableTxOut(output_value, CScript(address_to_script_pubkey(destination, network)))]
    tx = CMutableTransaction(vin, vout, nLockTime=0, nVersion=2)

    witness_script = CScript(script)
    witnesses = []
    for i, utxo in enumerate(utxos):
        sighash = SignatureHash(
            script=witness_script,
            txTo=tx,
            inIdx=i,
            hashtype=SIGHASH_ALL,
            amount=utxo.value,
            sigversion=SIGVERSION_WITNESS_V0,
        )
        sig = sign_hash(privkey, sighash) + bytes([SIGHASH_ALL])
        witnesses.append(CTxInWitness(CScriptWitness([sig] + witness_items + [script])))

    tx.wit = CTxWitness(witnesses)
    return b2lx(tx.GetTxid()), b2x(tx.serialize())


def build_redeem_tx(utxos: List[HTLCUtxo], script: bytes, secret: bytes,
                    privkey: bytes, destination: str, fee: int,
                    network: str = "testnet") -> Tuple[str, str]:
    """
    Spend HTLC outputs through the secret path.

    Returns:
        (txid, raw_tx_hex)
    """
    if sha256(secret) != script_secret_hash(script):
        raise ValueError("Secret does not match hashlock")
    return _build_spend(
        utxos, script, privkey, destination, fee, network,
        witness_items=[secret, b'\x01'],
        sequence=0xFFFFFFFF,
    )


def build_refund_tx(utxos: List[HTLCUtxo], script: bytes, timelock: int,
                    privkey: bytes, destination: str, fee: int,
                    network: str = "testnet") -> Tuple[str, str]:
    """
    Spend HTLC outputs through the timelock path.

    Returns:
        (txid, raw_tx_hex)
    """
    return _build_spend(
        utxos, script, privkey, destination, fee, network,
        witness_items=[b''],
        sequence=timelock,
    )
