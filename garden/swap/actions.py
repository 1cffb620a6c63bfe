"""
Order status and next action.

Status is derived locally from the matched order (as reported by the
orderbook) plus the current block height of each chain. The engine acts
as the initiator: it redeems the destination leg and refunds the source leg.
"""

import time
from enum import Enum
from typing import Optional

from ..core import SwapAction
from ..orderbook.models import MatchedOrder, Swap


class OrderStatus(Enum):
    CREATED = "created"
    INITIATE_DETECTED = "initiate_detected"
    INITIATED = "initiated"
    COUNTERPARTY_INITIATE_DETECTED = "counterparty_initiate_detected"
    COUNTERPARTY_INITIATED = "counterparty_initiated"          # redeemable
    REDEEM_DETECTED = "redeem_detected"
    REDEEMED = "redeemed"
    COUNTERPARTY_REDEEMED = "counterparty_redeemed"
    COMPLETED = "completed"
    COUNTERPARTY_SWAP_EXPIRED = "counterparty_swap_expired"
    EXPIRED = "expired"                                        # refundable
    REFUND_DETECTED = "refund_detected"
    REFUNDED = "refunded"
    DEADLINE_EXCEEDED = "deadline_exceeded"


TERMINAL_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.REFUNDED,
    OrderStatus.DEADLINE_EXCEEDED,
})


def is_expired(swap: Swap, current_block: Optional[int]) -> bool:
    """Refund path open: current block >= initiation block + timelock."""
    expires_at = swap.expires_at()
    if expires_at is None or current_block is None:
        return False
    return current_block >= expires_at


def _counterparty_confirmed(order: MatchedOrder) -> bool:
    dst = order.destination_swap
    required = max(dst.required_confirmations, order.create_order.min_destination_confirmations)
    return dst.initiated and dst.current_confirmations >= required


def parse_status(order: MatchedOrder, source_block: Optional[int],
                 destination_block: Optional[int],
                 now: Optional[float] = None) -> OrderStatus:
    """
    Derive the order's status.

    Args:
        order: Matched order from the orderbook
        source_block: Current height of the source chain (None if unknown)
        destination_block: Current height of the destination chain
        now: Unix time, for the initiation deadline (defaults to time.time())
    """
    src, dst = order.source_swap, order.destination_swap

    if src.redeemed and dst.redeemed:
        return OrderStatus.COMPLETED
    if src.refunded:
        return OrderStatus.REFUNDED if src.refund_block_number else OrderStatus.REFUND_DETECTED
    if dst.redeemed:
        return OrderStatus.REDEEMED if dst.redeem_block_number else OrderStatus.REDEEM_DETECTED
    if src.redeemed:
        return OrderStatus.COUNTERPARTY_REDEEMED

    if not src.initiated:
        deadline = order.create_order.additional_data.deadline
        now = time.time() if now is None else now
        if deadline and now > deadline:
            return OrderStatus.DEADLINE_EXCEEDED
        return OrderStatus.CREATED

    if is_expired(src, source_block):
        return OrderStatus.EXPIRED

    if dst.initiated:
        if dst.refunded or is_expired(dst, destination_block):
            return OrderStatus.COUNTERPARTY_SWAP_EXPIRED
        if _counterparty_confirmed(order):
            return OrderStatus.COUNTERPARTY_INITIATED
        return OrderStatus.COUNTERPARTY_INITIATE_DETECTED

    return OrderStatus.INITIATED if src.initiate_block_number else OrderStatus.INITIATE_DETECTED


def parse_action(status: OrderStatus) -> SwapAction:
    """
    Next transaction the initiator must produce for a status.

    A redeem or refund the orderbook has seen but no block has confirmed maps
    to the same action again; the executor resubmits it once
    action_retry_interval has passed.
    """
    if status == OrderStatus.CREATED:
        return SwapAction.INITIATE
    # COUNTERPARTY_REDEEMED: the secret is public, claim before it expires
    if status in (OrderStatus.COUNTERPARTY_INITIATED, OrderStatus.COUNTERPARTY_REDEEMED,
                  OrderStatus.REDEEM_DETECTED):
        return SwapAction.REDEEM
    if status in (OrderStatus.EXPIRED, OrderStatus.REFUND_DETECTED):
        return SwapAction.REFUND
    return SwapAction.NO_ACTION


def action_tx_hash(order: MatchedOrder, action: SwapAction) -> str:
    """Tx the orderbook has observed for an action, "" if none yet."""
    if action == SwapAction.REDEEM:
        return order.destination_swap.redeem_tx_hash
    if action == SwapAction.REFUND:
        return order.source_swap.refund_tx_hash
    if action == SwapAction.INITIATE:
        return order.source_swap.initiate_tx_hash
    return ""
