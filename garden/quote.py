"""
Quote client for garden SDK.

Fetches executable rates from the pricing service. Which strategy to accept
is the caller's decision; the selection policies below make it explicit.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

import httpx

from .api import ApiClient
from .core import Result, ErrorKind

log = logging.getLogger(__name__)


@dataclass
class Quote:
    """Receive amounts per strategy for one order pair and send amount."""
    order_pair: str
    amount: int
    quotes: Dict[str, str] = field(default_factory=dict)  # strategy_id -> receive amount
    input_token_price: Optional[float] = None
    output_token_price: Optional[float] = None

    def __len__(self) -> int:
        return len(self.quotes)


# (strategy_id, receive_amount)
QuoteSelection = Tuple[str, str]
QuotePolicy = Callable[[Quote], Optional[QuoteSelection]]


def select_first(quote: Quote) -> Optional[QuoteSelection]:
    """First strategy in the order the service returned them."""
    for strategy_id, amount in quote.quotes.items():
        return strategy_id, amount
    return None


def select_best(quote: Quote) -> Optional[QuoteSelection]:
    """Strategy with the highest receive amount."""
    if not quote.quotes:
        return None
    strategy_id = max(quote.quotes, key=lambda s: int(quote.quotes[s]))
    return strategy_id, quote.quotes[strategy_id]


def select_strategy(strategy_id: str) -> QuotePolicy:
    """Policy accepting only one named strategy."""
    def _select(quote: Quote) -> Optional[QuoteSelection]:
        if strategy_id in quote.quotes:
            return strategy_id, quote.quotes[strategy_id]
        return None
    return _select


def policy_from_string(policy: str) -> QuotePolicy:
    """Map a config value ("first", "best", "strategy:<id>") to a policy."""
    if policy == "first":
        return select_first
    if policy == "best":
        return select_best
    if policy.startswith("strategy:"):
        return select_strategy(policy.split(":", 1)[1])
    raise ValueError(f"Unknown quote policy: {policy}")


class QuoteClient:
    """
    Price service client.

    No retries beyond what the caller wraps around it; failures come back as
    Result errors.
    """

    def __init__(self, quote_url: str, timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api = ApiClient(quote_url, timeout=timeout, transport=transport)

    async def get_quote(self, order_pair: str, amount: int,
                        exact_out: bool = False) -> Result[Quote]:
        """
        Get quotes for an order pair.

        Args:
            order_pair: chain:contract::chain:contract
            amount: Send amount in smallest units (receive amount if exact_out)
            exact_out: Quote for a fixed receive amount

        Returns:
            Result with Quote (strategy_id -> receive amount)
        """
        try:
            amount = int(amount)
        except (TypeError, ValueError):
            return Result.err(ErrorKind.VALIDATION, f"Invalid amount: {amount!r}")
        if amount <= 0:
            return Result.err(ErrorKind.VALIDATION, f"Amount must be positive, got {amount}")

        res = await self.api.get("quote", params={
            "order_pair": order_pair,
            "amount": str(amount),
            "exact_out": "true" if exact_out else "false",
        })
        if res.error:
            log.warning(f"Quote failed for {order_pair}: {res.error}")
            return Result.fail(res.error)

        data = res.val or {}
        if not isinstance(data, dict) or not isinstance(data.get("quotes"), dict):
            return Result.err(ErrorKind.TRANSIENT, f"Malformed quote response: {data!r}")

        quotes = {str(k): str(v) for k, v in data["quotes"].items()}
        if not quotes:
            return Result.err(ErrorKind.VALIDATION, f"No quotes available for {order_pair}")

        log.info(f"Quote {order_pair} amount={amount}: {len(quotes)} strategies")
        return Result.ok(Quote(
            order_pair=order_pair,
            amount=int(amount),
            quotes=quotes,
            input_token_price=data.get("input_token_price"),
            output_token_price=data.get("output_token_price"),
        ))

    async def close(self):
        await self.api.close()
