"""
Swap coordination for garden SDK.

Creates orders and drives them to completion through redeem/refund.
"""

from .actions import OrderStatus, TERMINAL_STATUSES, parse_status, parse_action
from .events import EventChannel, SwapEvent
from .executor import Garden, SwapParams

__all__ = [
    "Garden",
    "SwapParams",
    "OrderStatus",
    "TERMINAL_STATUSES",
    "parse_status",
    "parse_action",
    "EventChannel",
    "SwapEvent",
]
