"""
Core types and interfaces for garden SDK.
"""

import hashlib
from enum import Enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    """Failure classes callers decide on: propagate, retry or abort."""
    CONFIGURATION = "configuration"     # Missing/malformed credential, unsupported asset
    AUTH = "auth"                       # Signing rejected, session exchange failed
    TRANSIENT = "transient"             # Timeouts, 5xx - retry with backoff
    VALIDATION = "validation"           # Bad params, no quote/match - do not retry as-is
    CHAIN_ACTION = "chain_action"       # Redeem/refund broadcast rejected
    ALREADY_SETTLED = "already_settled" # HTLC already redeemed/refunded - benign


@dataclass(frozen=True)
class GardenError:
    """Error half of a Result."""
    kind: ErrorKind
    message: str

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    @property
    def benign(self) -> bool:
        return self.kind == ErrorKind.ALREADY_SETTLED

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass
class Result(Generic[T]):
    """
    Explicit success/error outcome of a fallible operation.

    Usage:
        res = await quote.get_quote(pair, 1000000)
        if res.error:
            ...
        quotes = res.val
    """
    val: Optional[T] = None
    error: Optional[GardenError] = None

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, val: T = None) -> "Result[T]":
        return cls(val=val)

    @classmethod
    def err(cls, kind: ErrorKind, message: str) -> "Result[T]":
        return cls(error=GardenError(kind, message))

    @classmethod
    def fail(cls, error: GardenError) -> "Result[T]":
        """Propagate an error from another Result."""
        return cls(error=error)

    def __repr__(self) -> str:
        if self.error:
            return f"Result(error={self.error})"
        return f"Result(val={self.val!r})"


class ConfigurationError(ValueError):
    """Raised at startup for missing or malformed configuration."""


class SwapAction(Enum):
    """Next chain transaction the engine must produce for an order."""
    INITIATE = "initiate"
    REDEEM = "redeem"
    REFUND = "refund"
    NO_ACTION = "no_action"


# =============================================================================
# Hash Utilities
# =============================================================================

def sha256(data: bytes) -> bytes:
    """SHA256 hash."""
    return hashlib.sha256(data).digest()


def trim0x(value: str) -> str:
    """Strip a leading 0x from a hex string."""
    return value[2:] if value.startswith("0x") else value


def with0x(value: str) -> str:
    """Ensure a hex string carries a 0x prefix."""
    return value if value.startswith("0x") else "0x" + value


def verify_secret(secret_hex: str, secret_hash_hex: str) -> bool:
    """
    Verify that SHA256(secret) == secret_hash.

    Args:
        secret_hex: 32-byte secret as hex string (0x optional)
        secret_hash_hex: Expected SHA256 hash as hex string (0x optional)

    Returns:
        True if valid
    """
    try:
        secret = bytes.fromhex(trim0x(secret_hex))
        expected = bytes.fromhex(trim0x(secret_hash_hex))
        return sha256(secret) == expected
    except (ValueError, TypeError):
        return False


# =============================================================================
# Constants
# =============================================================================

MAX_UINT256 = 2**256 - 1

# Bitcoin outputs below this are non-standard
BTC_DUST_LIMIT = 546

# Typed-data challenge signed once per wallet to derive the master secret
MASTER_SECRET_DOMAIN = "GARDEN FINANCE"
MASTER_SECRET_MESSAGE = "Initialize your Garden wallet"
MASTER_SECRET_VERSION = "1.0.0"

# Domain separator for per-order secret derivation
ORDER_SECRET_PREFIX = b"garden-order-secret:"
