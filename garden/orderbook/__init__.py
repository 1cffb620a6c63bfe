"""
Orderbook access for garden SDK.

Orders are created and matched by the external orderbook service; this
package submits them and reads their state.
"""

from .models import Swap, AdditionalData, CreateOrder, MatchedOrder, CreateOrderRequest
from .client import Orderbook, settled

__all__ = [
    "Swap",
    "AdditionalData",
    "CreateOrder",
    "MatchedOrder",
    "CreateOrderRequest",
    "Orderbook",
    "settled",
]
