"""
Sign-in-with-Ethereum session for the orderbook.

Flow:
1. GET  /auth/nonce           -> server nonce
2. sign EIP-4361 message with the EVM wallet (personal_sign)
3. POST /auth/verify          -> bearer token

The token is cached in memory for the process lifetime and attached to every
orderbook and relay call.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol
from urllib.parse import urlparse

import httpx

from .api import ApiClient
from .core import Result, ErrorKind

log = logging.getLogger(__name__)

SIWE_STATEMENT = "Garden.fi"


class MessageSigner(Protocol):
    """EVM account able to personal_sign (see EVMWallet)."""
    address: str

    async def sign_message(self, message: str) -> bytes:
        ...


def build_siwe_message(domain: str, address: str, uri: str, chain_id: int,
                       nonce: str, issued_at: Optional[datetime] = None,
                       statement: str = SIWE_STATEMENT) -> str:
    """Format an EIP-4361 message."""
    issued_at = issued_at or datetime.now(timezone.utc)
    return (
        f"{domain} wants you to sign in with your Ethereum account:\n"
        f"{address}\n"
        f"\n"
        f"{statement}\n"
        f"\n"
        f"URI: {uri}\n"
        f"Version: 1\n"
        f"Chain ID: {chain_id}\n"
        f"Nonce: {nonce}\n"
        f"Issued At: {issued_at.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3]}Z"
    )


class Siwe:
    """Session credential provider for the orderbook and relay."""

    def __init__(self, orderbook_url: str, signer: MessageSigner, chain_id: int,
                 timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api = ApiClient(orderbook_url, timeout=timeout, transport=transport)
        self.signer = signer
        self.chain_id = chain_id
        self.domain = urlparse(orderbook_url).netloc or orderbook_url
        self._token: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def has_token(self) -> bool:
        return self._token is not None

    async def get_token(self) -> Result[str]:
        """Cached token, or run the handshake once."""
        if self._token:
            return Result.ok(self._token)

        async with self._lock:
            if self._token:
                return Result.ok(self._token)
            res = await self._sign_in()
            if res.val:
                self._token = res.val
            return res

    async def auth_headers(self) -> Result[Dict[str, str]]:
        res = await self.get_token()
        if res.error:
            return Result.fail(res.error)
        return Result.ok({"Authorization": f"Bearer {res.val}"})

    def invalidate(self):
        """Drop the cached token; the next call signs in again."""
        if self._token:
            log.info("Session token invalidated")
        self._token = None

    async def _sign_in(self) -> Result[str]:
        nonce_res = await self.api.get("auth/nonce")
        if nonce_res.error:
            return self._auth_error("Failed to fetch nonce", nonce_res)

        nonce = str(nonce_res.val)
        message = build_siwe_message(
            domain=self.domain,
            address=self.signer.address,
            uri=self.api.base_url,
            chain_id=self.chain_id,
            nonce=nonce,
        )

        try:
            signature = await self.signer.sign_message(message)
        except Exception as e:
            log.error(f"SIWE signing rejected: {e}")
            return Result.err(ErrorKind.AUTH, f"Signing rejected: {e}")

        verify_res = await self.api.post("auth/verify", json={
            "message": message,
            "signature": "0x" + bytes(signature).hex(),
            "nonce": nonce,
        })
        if verify_res.error:
            return self._auth_error("Session exchange failed", verify_res)

        token = verify_res.val
        if not isinstance(token, str) or not token:
            return Result.err(ErrorKind.AUTH, "Session exchange returned no token")

        log.info(f"Signed in to orderbook as {self.signer.address}")
        return Result.ok(token)

    @staticmethod
    def _auth_error(context: str, res: Result) -> Result[str]:
        # Transient failures stay transient so callers can retry the handshake
        kind = ErrorKind.TRANSIENT if res.error.retryable else ErrorKind.AUTH
        log.warning(f"{context}: {res.error.message}")
        return Result.err(kind, f"{context}: {res.error.message}")

    async def close(self):
        await self.api.close()
