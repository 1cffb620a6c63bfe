"""
Orderbook wire models.

Orders are owned by the orderbook service; the SDK only reads them and
submits chain transactions against them.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Swap(_Model):
    """One HTLC leg of a matched order."""
    created_at: Optional[datetime] = None
    swap_id: str
    chain: str
    asset: str                      # HTLC contract address, or "primary" for BTC
    initiator: str                  # EVM address or BTC pubkey (hex)
    redeemer: str
    timelock: int                   # Relative, in blocks from initiation
    filled_amount: int = 0
    amount: int
    secret_hash: str
    secret: str = ""
    initiate_tx_hash: str = ""
    redeem_tx_hash: str = ""
    refund_tx_hash: str = ""
    initiate_block_number: Optional[int] = None
    redeem_block_number: Optional[int] = None
    refund_block_number: Optional[int] = None
    required_confirmations: int = 0
    current_confirmations: int = 0

    @field_validator(
        "secret", "initiate_tx_hash", "redeem_tx_hash", "refund_tx_hash", mode="before"
    )
    @classmethod
    def _none_to_empty(cls, v):
        return v or ""

    @property
    def initiated(self) -> bool:
        return bool(self.initiate_tx_hash)

    @property
    def redeemed(self) -> bool:
        return bool(self.redeem_tx_hash)

    @property
    def refunded(self) -> bool:
        return bool(self.refund_tx_hash)

    def expires_at(self) -> Optional[int]:
        """Block height at which the refund path opens."""
        if not self.initiate_block_number:
            return None
        return self.initiate_block_number + self.timelock


class AdditionalData(_Model):
    strategy_id: str
    bitcoin_optional_recipient: Optional[str] = None
    deadline: Optional[int] = None   # Unix seconds; source must be initiated before


class CreateOrder(_Model):
    """The order as submitted by the initiator."""
    create_id: str
    block_number: Optional[int] = None
    source_chain: str
    destination_chain: str
    source_asset: str
    destination_asset: str
    initiator_source_address: str
    initiator_destination_address: str
    source_amount: int
    destination_amount: int
    fee: int = 0
    nonce: int
    min_destination_confirmations: int = 0
    timelock: int = 0
    secret_hash: str
    additional_data: AdditionalData


class MatchedOrder(_Model):
    """Order plus both HTLC legs, as matched by the orderbook."""
    created_at: Optional[datetime] = None
    source_swap: Swap
    destination_swap: Swap
    create_order: CreateOrder

    @property
    def create_id(self) -> str:
        return self.create_order.create_id

    def fingerprint(self) -> tuple:
        """Fields whose change means the order progressed."""
        return tuple(
            (s.initiate_tx_hash, s.redeem_tx_hash, s.refund_tx_hash, s.current_confirmations)
            for s in (self.source_swap, self.destination_swap)
        )


class CreateOrderRequest(_Model):
    """Body of POST /orders."""
    source_chain: str
    destination_chain: str
    source_asset: str
    destination_asset: str
    initiator_source_address: str
    initiator_destination_address: str
    source_amount: str
    destination_amount: str
    fee: str = "1"
    nonce: str
    timelock: int
    secret_hash: str
    min_destination_confirmations: int = 0
    additional_data: AdditionalData = Field(...)
