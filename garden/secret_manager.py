"""
Secret management for garden SDK.

One wallet signature over a fixed typed-data challenge yields the master
secret. Every order secret is then derived locally from the master secret and
the order's nonce, so a restarted process reproduces the same secret for the
same order without storing anything.

    master       = SHA256(sign(challenge))
    secret(n)    = HMAC-SHA256(master, "garden-order-secret:" || n)
    secret_hash  = SHA256(secret(n))
"""

import hmac
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Protocol, Union

from .core import (
    Result, ErrorKind, sha256,
    MASTER_SECRET_DOMAIN, MASTER_SECRET_MESSAGE, MASTER_SECRET_VERSION,
    ORDER_SECRET_PREFIX,
)

log = logging.getLogger(__name__)


class TypedDataSigner(Protocol):
    """Anything that can sign EIP-712 typed data (see EVMWallet)."""

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        ...


@dataclass(frozen=True)
class OrderSecret:
    """Per-order secret and its SHA256 commitment."""
    secret: bytes = field(repr=False)
    secret_hash: bytes

    @property
    def secret_hex(self) -> str:
        return self.secret.hex()

    @property
    def secret_hash_hex(self) -> str:
        return self.secret_hash.hex()


def master_challenge(chain_id: int) -> Dict[str, Any]:
    """Typed data signed once to derive the master secret."""
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
            ],
            "Data": [
                {"name": "Message", "type": "string"},
                {"name": "Version", "type": "string"},
                {"name": "Nonce", "type": "uint256"},
            ],
        },
        "primaryType": "Data",
        "domain": {
            "name": MASTER_SECRET_DOMAIN,
            "version": "1",
            "chainId": chain_id,
        },
        "message": {
            "Message": MASTER_SECRET_MESSAGE,
            "Version": MASTER_SECRET_VERSION,
            "Nonce": 1,
        },
    }


def derive_order_secret(master: bytes, nonce: Union[int, str]) -> OrderSecret:
    """Pure derivation: identical (master, nonce) always gives identical output."""
    secret = hmac.new(master, ORDER_SECRET_PREFIX + str(nonce).encode(), hashlib.sha256).digest()
    return OrderSecret(secret=secret, secret_hash=sha256(secret))


class SecretManager:
    """
    Holds the master secret for the process lifetime.

    Usage:
        res = await SecretManager.from_signer(evm_wallet, chain_id=11155111)
        if res.error:
            ...
        secrets = res.val
        order_secret = secrets.derive_order_secret(nonce)
    """

    def __init__(self, master: bytes):
        if len(master) != 32:
            raise ValueError("master secret must be 32 bytes")
        self._master = master

    @classmethod
    async def from_signer(cls, signer: TypedDataSigner, chain_id: int) -> Result["SecretManager"]:
        """Run the signing challenge once and derive the master secret."""
        try:
            signature = await signer.sign_typed_data(master_challenge(chain_id))
        except Exception as e:
            log.error(f"Master secret challenge rejected: {e}")
            return Result.err(ErrorKind.AUTH, f"Failed to sign secret challenge: {e}")

        if not signature:
            return Result.err(ErrorKind.AUTH, "Signer returned an empty signature")

        log.info("Master secret initialized")
        return Result.ok(cls(sha256(bytes(signature))))

    def derive_order_secret(self, nonce: Union[int, str]) -> OrderSecret:
        return derive_order_secret(self._master, nonce)

    def get_master_priv_key(self) -> str:
        """
        Master secret as a hex secp256k1 private key.

        This is the one place key material leaves the manager; it seeds the
        Bitcoin wallet.
        """
        return self._master.hex()

    def __repr__(self) -> str:
        return "SecretManager(<master hidden>)"
