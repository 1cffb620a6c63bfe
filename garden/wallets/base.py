"""
Chain wallet capability.

The swap engine never builds chain transactions itself; it asks the wallet
of the right chain family to redeem or refund one leg of an order.
"""

from abc import ABC, abstractmethod

from ..assets import Asset
from ..core import Result
from ..orderbook.models import MatchedOrder


class ChainWallet(ABC):
    """
    Per-chain signing and broadcast.

    redeem() acts on the order's destination leg, refund() on its source leg.
    Both return the broadcast transaction hash; an HTLC that is already
    settled comes back as an ALREADY_SETTLED error.
    """

    chain_family: str = ""

    @abstractmethod
    def get_address(self) -> str:
        """Identity of this wallet on its chain."""

    def get_htlc_identity(self) -> str:
        """Key the counterparty locks funds to (address unless overridden)."""
        return self.get_address()

    @abstractmethod
    async def get_block_number(self, chain: str) -> Result[int]:
        """Current tip height of chain."""

    @abstractmethod
    async def get_balance(self, asset: Asset) -> Result[int]:
        """Spendable balance of asset, in base units."""

    @abstractmethod
    async def redeem(self, order: MatchedOrder, secret: bytes) -> Result[str]:
        """Claim the destination HTLC by revealing secret."""

    @abstractmethod
    async def refund(self, order: MatchedOrder) -> Result[str]:
        """Reclaim the expired source HTLC."""
