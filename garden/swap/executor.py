"""
Swap orchestrator for garden SDK.

Creates orders and drives them to completion.

Swap Flow (WBTC on Sepolia -> BTC example):
1. Caller fetches a quote and picks a strategy
2. swap(): derive the order secret, submit the order with only its hash,
   wait for a counterparty match
3. Caller initiates the source HTLC (directly, or gasless via EvmRelay)
4. execute(): counterparty locks BTC -> redeem it, revealing the secret
5. Counterparty redeems the source HTLC with the revealed secret

If the counterparty never locks, the source HTLC is refunded once its
timelock has passed.

Nothing is persisted locally. On restart the tracked orders are rebuilt
from the orderbook and secrets are re-derived from each order's nonce.
"""

import asyncio
import time
import logging
from typing import Callable, Dict, List, Optional, Set
from dataclasses import dataclass, field

from ..api import retry_transient
from ..assets import Asset, chain_family, construct_order_pair, is_bitcoin
from ..auth import Siwe
from ..config import GardenConfig
from ..core import Result, ErrorKind, SwapAction, trim0x
from ..orderbook import Orderbook, MatchedOrder, CreateOrderRequest, AdditionalData
from ..quote import QuoteClient, QuoteSelection, policy_from_string
from ..secret_manager import SecretManager
from ..wallets.base import ChainWallet
from .actions import (
    OrderStatus, TERMINAL_STATUSES, parse_status, parse_action, action_tx_hash,
)
from .events import EventChannel, SwapEvent, SUCCESS, ERROR

log = logging.getLogger(__name__)

# Source HTLC timelocks (blocks) when SwapParams gives none
DEFAULT_TIMELOCKS = {
    "evm": 7200,       # ~24h at 12s blocks
    "bitcoin": 144,    # ~24h
}


@dataclass
class SwapParams:
    """What to swap; immutable once submitted."""
    from_asset: Asset
    to_asset: Asset
    send_amount: str
    receive_amount: str
    additional_data: Dict[str, str] = field(default_factory=dict)  # strategy_id, btc_address
    min_destination_confirmations: int = 0
    timelock: Optional[int] = None

    @property
    def strategy_id(self) -> str:
        return self.additional_data.get("strategy_id", "")

    @property
    def btc_address(self) -> str:
        return self.additional_data.get("btc_address", "")


@dataclass
class ActionAttempt:
    """Last chain action broadcast for an order (memory only)."""
    action: SwapAction
    tx_hash: str
    at: float


def _positive_int(value: str) -> bool:
    try:
        return int(value) > 0
    except (TypeError, ValueError):
        return False


class Garden:
    """
    Creates swaps and runs the redeem/refund loop.

    Usage:
        garden = Garden(config, secrets, quote, orderbook, auth,
                        wallets={"evm": evm_wallet, "bitcoin": btc_wallet})
        garden.on("success", lambda e: print(e.tx_hash))
        res = await garden.swap(params)
        await garden.execute(stop_event)
    """

    def __init__(self, config: GardenConfig, secret_manager: SecretManager,
                 quote: QuoteClient, orderbook, auth: Siwe,
                 wallets: Dict[str, ChainWallet],
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.secret_manager = secret_manager
        self.quote = quote
        self.auth = auth
        if isinstance(orderbook, str):
            orderbook = Orderbook(orderbook, auth, timeout=config.request_timeout)
        self.orderbook: Orderbook = orderbook
        self.wallets = dict(wallets)
        self.events = EventChannel()
        self._clock = clock

        # create_id -> last matched snapshot (None until matched)
        self._tracked: Dict[str, Optional[MatchedOrder]] = {}
        self._attempts: Dict[str, ActionAttempt] = {}
        self._in_flight: Set[str] = set()
        self._used_nonces: Set[int] = set()
        self._finished: Set[str] = set()
        self._swap_lock = asyncio.Lock()

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, kind: str, handler: Callable):
        """Register "success" / "error" handler; receives a SwapEvent."""
        self.events.on(kind, handler)

    def off(self, kind: str, handler: Callable):
        self.events.off(kind, handler)

    # =========================================================================
    # Tracking
    # =========================================================================

    def wallet_for(self, chain: str) -> Optional[ChainWallet]:
        family = chain_family(chain)
        return self.wallets.get(family) if family else None

    def track(self, create_id: str):
        """Monitor an order in execute() until it is terminal."""
        if create_id not in self._tracked:
            self._tracked[create_id] = None
            log.info(f"Tracking order {create_id}")

    @property
    def tracked_ids(self) -> List[str]:
        return list(self._tracked)

    def _identities(self) -> List[str]:
        """Addresses whose orders this process owns."""
        seen = []
        for wallet in self.wallets.values():
            address = wallet.get_address()
            if address and address not in seen:
                seen.append(address)
        return seen

    # =========================================================================
    # Quote
    # =========================================================================

    async def select_quote(self, from_asset: Asset, to_asset: Asset,
                           amount: int) -> Result[QuoteSelection]:
        """Fetch a quote and apply the configured policy -> (strategy_id, receive_amount)."""
        res = await self.quote.get_quote(construct_order_pair(from_asset, to_asset), amount)
        if res.error:
            return Result.fail(res.error)

        selection = policy_from_string(self.config.quote_policy)(res.val)
        if selection is None:
            return Result.err(
                ErrorKind.VALIDATION,
                f"No quote matches policy {self.config.quote_policy!r}",
            )
        return Result.ok(selection)

    # =========================================================================
    # Swap
    # =========================================================================

    def _validate(self, params: SwapParams) -> Result[None]:
        if not _positive_int(params.send_amount):
            return Result.err(ErrorKind.VALIDATION, f"Invalid send amount: {params.send_amount!r}")
        if not _positive_int(params.receive_amount):
            return Result.err(ErrorKind.VALIDATION, f"Invalid receive amount: {params.receive_amount!r}")

        for asset in (params.from_asset, params.to_asset):
            if chain_family(asset.chain) is None:
                return Result.err(ErrorKind.VALIDATION, f"Unsupported chain: {asset.chain}")
            if self.wallet_for(asset.chain) is None:
                return Result.err(ErrorKind.VALIDATION, f"No wallet for chain {asset.chain}")

        if params.from_asset.chain == params.to_asset.chain:
            return Result.err(ErrorKind.VALIDATION, "Source and destination chains must differ")
        if not params.strategy_id:
            return Result.err(ErrorKind.VALIDATION, "strategy_id is required")
        if is_bitcoin(params.to_asset.chain) and not params.btc_address:
            return Result.err(ErrorKind.VALIDATION, "btc_address is required for Bitcoin destinations")
        return Result.ok()

    async def _next_nonce(self) -> Result[int]:
        """
        Orders created so far by this process's identities, plus one.

        Nonces used by this process and nonces whose secret hash is already
        committed to a listed order are skipped; the count can lag behind
        orders created just before a restart.
        """
        total = 0
        committed: Set[str] = set()
        for address in self._identities():
            count = await retry_transient(
                lambda: self.orderbook.get_orders_count(address),
                attempts=self.config.retry_attempts,
                backoff=self.config.retry_backoff,
            )
            if count.error:
                return Result.fail(count.error)
            total += count.val

            listed = await retry_transient(
                lambda: self.orderbook.get_orders(address, pending=False),
                attempts=self.config.retry_attempts,
                backoff=self.config.retry_backoff,
            )
            if listed.error:
                return Result.fail(listed.error)
            committed.update(trim0x(o.create_order.secret_hash).lower() for o in listed.val)

        nonce = total + 1
        while (nonce in self._used_nonces
               or self.secret_manager.derive_order_secret(nonce).secret_hash_hex in committed):
            log.warning(f"Nonce {nonce} already used, skipping")
            nonce += 1
        return Result.ok(nonce)

    async def swap(self, params: SwapParams) -> Result[MatchedOrder]:
        """
        Create an order and wait for its counterparty.

        The created order is tracked even when matching times out, so
        execute() keeps monitoring it.
        """
        valid = self._validate(params)
        if valid.error:
            return Result.fail(valid.error)

        source_wallet = self.wallet_for(params.from_asset.chain)
        destination_wallet = self.wallet_for(params.to_asset.chain)

        balance = await source_wallet.get_balance(params.from_asset)
        if balance.error:
            return Result.fail(balance.error)
        if balance.val < int(params.send_amount):
            return Result.err(
                ErrorKind.VALIDATION,
                f"Insufficient balance: have {balance.val}, need {params.send_amount}",
            )

        async with self._swap_lock:
            nonce_res = await self._next_nonce()
            if nonce_res.error:
                return Result.fail(nonce_res.error)
            nonce = nonce_res.val

            order_secret = self.secret_manager.derive_order_secret(nonce)
            timelock = params.timelock or DEFAULT_TIMELOCKS[source_wallet.chain_family]

            request = CreateOrderRequest(
                source_chain=params.from_asset.chain,
                destination_chain=params.to_asset.chain,
                source_asset=params.from_asset.atomic_swap_address,
                destination_asset=params.to_asset.atomic_swap_address,
                initiator_source_address=source_wallet.get_htlc_identity(),
                initiator_destination_address=destination_wallet.get_htlc_identity(),
                source_amount=str(int(params.send_amount)),
                destination_amount=str(int(params.receive_amount)),
                nonce=str(nonce),
                timelock=timelock,
                secret_hash=order_secret.secret_hash_hex,
                min_destination_confirmations=params.min_destination_confirmations,
                additional_data=AdditionalData(
                    strategy_id=params.strategy_id,
                    bitcoin_optional_recipient=params.btc_address or None,
                ),
            )

            created = await self.orderbook.create_order(request)
            if created.error:
                return Result.fail(created.error)
            self._used_nonces.add(nonce)

        create_id = created.val
        self.track(create_id)

        matched = await self.orderbook.wait_for_match(
            create_id,
            attempts=self.config.match_attempts,
            interval=self.config.match_interval,
        )
        if matched.error:
            return Result.fail(matched.error)

        self._tracked[create_id] = matched.val
        return matched

    # =========================================================================
    # Execute loop
    # =========================================================================

    async def execute(self, stop: Optional[asyncio.Event] = None):
        """
        Poll tracked orders and redeem/refund until stop is set.

        stop is checked between cycles only; a broadcast in progress always
        completes.
        """
        stop = stop or asyncio.Event()
        log.info(f"Execute loop started (poll every {self.config.poll_interval}s)")

        while not stop.is_set():
            try:
                await self.run_cycle()
            except Exception as e:
                log.exception(f"Execute cycle failed: {e}")

            try:
                await asyncio.wait_for(stop.wait(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                pass

        log.info("Execute loop stopped")

    async def run_cycle(self) -> Dict[str, OrderStatus]:
        """One poll over every known order. Returns create_id -> status."""
        orders = await self._refresh_orders()
        if not orders:
            return {}

        heights = await self._block_heights(orders)
        results = await asyncio.gather(
            *(self._process(order, heights) for order in orders),
            return_exceptions=True,
        )

        statuses = {}
        for order, result in zip(orders, results):
            if isinstance(result, Exception):
                log.error(f"Processing {order.create_id} failed: {result}")
                continue
            statuses[order.create_id] = result
        return statuses

    async def _refresh_orders(self) -> List[MatchedOrder]:
        fresh: Dict[str, MatchedOrder] = {}

        for address in self._identities():
            res = await retry_transient(
                lambda: self.orderbook.get_orders(address, pending=True),
                attempts=self.config.retry_attempts,
                backoff=self.config.retry_backoff,
            )
            if res.error:
                log.warning(f"Listing pending orders for {address} failed: {res.error}")
                continue
            for order in res.val:
                if order.create_id not in self._finished:
                    fresh[order.create_id] = order

        for create_id, order in fresh.items():
            if create_id not in self._tracked:
                log.info(f"Resuming order {create_id}")
            self._tracked[create_id] = order

        # Tracked orders the pending listing did not return
        for create_id in list(self._tracked):
            if create_id in fresh:
                continue
            res = await self.orderbook.get_order(create_id)
            if res.error:
                log.debug(f"Order {create_id} not refreshed: {res.error}")
                continue
            self._tracked[create_id] = res.val
            fresh[create_id] = res.val

        return list(fresh.values())

    async def _block_heights(self, orders: List[MatchedOrder]) -> Dict[str, Optional[int]]:
        """Tip height of every chain involved, fetched once per cycle."""
        chains = set()
        for order in orders:
            chains.add(order.source_swap.chain)
            chains.add(order.destination_swap.chain)

        async def height(chain: str) -> Optional[int]:
            wallet = self.wallet_for(chain)
            if wallet is None:
                return None
            res = await wallet.get_block_number(chain)
            if res.error:
                log.warning(f"Block height for {chain} unavailable: {res.error}")
                return None
            return res.val

        chains = sorted(chains)
        values = await asyncio.gather(*(height(c) for c in chains))
        return dict(zip(chains, values))

    async def _process(self, order: MatchedOrder,
                       heights: Dict[str, Optional[int]]) -> OrderStatus:
        create_id = order.create_id
        status = parse_status(
            order,
            heights.get(order.source_swap.chain),
            heights.get(order.destination_swap.chain),
        )

        if status in TERMINAL_STATUSES:
            self._tracked.pop(create_id, None)
            self._attempts.pop(create_id, None)
            self._finished.add(create_id)
            log.info(f"Order {create_id} finished: {status.value}")
            return status

        action = parse_action(status)
        if action == SwapAction.NO_ACTION:
            return status
        if action == SwapAction.INITIATE:
            log.debug(f"Order {create_id} awaiting source initiation")
            return status

        if create_id in self._in_flight:
            return status
        if not self._should_broadcast(order, action):
            return status

        self._in_flight.add(create_id)
        # Shielded: cancelling the loop must not abort a broadcast midway
        await asyncio.shield(self._act(order, action))
        return status

    def _should_broadcast(self, order: MatchedOrder, action: SwapAction) -> bool:
        attempt = self._attempts.get(order.create_id)
        if attempt is None or attempt.action != action:
            seen = action_tx_hash(order, action)
            if not seen:
                return True
            # Broadcast before this process saw the order: wait for it to confirm
            log.info(f"{action.value} {seen[:16]} for {order.create_id} pending confirmation")
            self._attempts[order.create_id] = ActionAttempt(action, seen, self._clock())
            return False

        elapsed = self._clock() - attempt.at
        if elapsed < self.config.action_retry_interval:
            return False

        log.warning(
            f"{action.value} {attempt.tx_hash[:16]} for {order.create_id} "
            f"unconfirmed after {elapsed:.0f}s, resubmitting"
        )
        return True

    async def _act(self, order: MatchedOrder, action: SwapAction):
        create_id = order.create_id
        try:
            res = await self._dispatch(order, action)

            if res.error is None:
                self._attempts[create_id] = ActionAttempt(action, res.val, self._clock())
                log.info(f"{action.value} broadcast for {create_id}: {res.val}")
                await self.events.publish(SwapEvent(SUCCESS, order, action, tx_hash=res.val))
                return

            self._attempts.pop(create_id, None)
            if res.error.benign:
                # Settled by an earlier broadcast; the next poll shows it
                log.warning(f"{action.value} for {create_id} already settled: {res.error.message}")
                return

            log.error(f"{action.value} for {create_id} failed: {res.error}")
            await self.events.publish(SwapEvent(ERROR, order, action, error=res.error))
        finally:
            self._in_flight.discard(create_id)

    async def _dispatch(self, order: MatchedOrder, action: SwapAction) -> Result[str]:
        if action == SwapAction.REDEEM:
            return await self._redeem(order)
        if action == SwapAction.REFUND:
            return await self._refund(order)
        return Result.err(ErrorKind.VALIDATION, f"Unsupported action {action.value}")

    async def _redeem(self, order: MatchedOrder) -> Result[str]:
        dst = order.destination_swap
        wallet = self.wallet_for(dst.chain)
        if wallet is None:
            return Result.err(ErrorKind.CONFIGURATION, f"No wallet for chain {dst.chain}")
        if not dst.initiated:
            return Result.err(ErrorKind.VALIDATION, "Destination HTLC not initiated")

        order_secret = self.secret_manager.derive_order_secret(order.create_order.nonce)
        derived = order_secret.secret_hash_hex
        committed = trim0x(dst.secret_hash).lower()
        ordered = trim0x(order.create_order.secret_hash).lower()
        if not (derived == committed == ordered):
            log.error(f"Secret hash mismatch for {order.create_id}, not redeeming")
            return Result.err(
                ErrorKind.VALIDATION,
                f"Secret hash mismatch: derived {derived[:16]}, on-chain {committed[:16]}",
            )

        return await wallet.redeem(order, order_secret.secret)

    async def _refund(self, order: MatchedOrder) -> Result[str]:
        src = order.source_swap
        wallet = self.wallet_for(src.chain)
        if wallet is None:
            return Result.err(ErrorKind.CONFIGURATION, f"No wallet for chain {src.chain}")
        return await wallet.refund(order)
