"""
Orderbook client for garden SDK.

Submits orders and reads their matched state. Every call is authenticated
with the Siwe session; an expired session (HTTP 401) is refreshed once.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, List, Optional

import httpx
from pydantic import ValidationError

from ..api import ApiClient
from ..auth import Siwe
from ..core import Result, ErrorKind
from .models import CreateOrderRequest, MatchedOrder

log = logging.getLogger(__name__)


def settled(order: MatchedOrder) -> bool:
    """Both legs redeemed, or the source refunded."""
    src, dst = order.source_swap, order.destination_swap
    return (src.redeemed and dst.redeemed) or src.refunded


class Orderbook:
    """
    Orderbook service client.

    Endpoints:
        POST /orders                          create order -> create_id
        GET  /orders/id/matched/{id}          matched order
        GET  /orders/user/{address}?pending=  orders of an identity
        GET  /orders/user/{address}/count     number of orders (nonce source)
    """

    def __init__(self, orderbook_url: str, auth: Siwe, timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api = ApiClient(orderbook_url, timeout=timeout, transport=transport)
        self.auth = auth

    async def _authed(self, method: str, path: str, **kwargs) -> Result:
        headers = await self.auth.auth_headers()
        if headers.error:
            return Result.fail(headers.error)

        res = await self.api.request(method, path, headers=headers.val, **kwargs)
        if res.error and res.error.kind == ErrorKind.AUTH:
            # Session may have expired server-side
            self.auth.invalidate()
            headers = await self.auth.auth_headers()
            if headers.error:
                return Result.fail(headers.error)
            res = await self.api.request(method, path, headers=headers.val, **kwargs)
        return res

    async def create_order(self, request: CreateOrderRequest) -> Result[str]:
        """
        Submit an order. Only the secret hash is sent; the secret stays local.

        Not retried here: the caller decides whether a transient failure is
        safe to resubmit.
        """
        res = await self._authed("POST", "orders", json=request.model_dump(mode="json"))
        if res.error:
            log.warning(f"Create order failed: {res.error}")
            return Result.fail(res.error)

        create_id = res.val
        if isinstance(create_id, dict):
            create_id = create_id.get("create_id") or create_id.get("id")
        if not create_id:
            return Result.err(ErrorKind.TRANSIENT, f"Create order returned no id: {res.val!r}")

        log.info(f"Order created: {create_id}")
        return Result.ok(str(create_id))

    async def get_order(self, create_id: str) -> Result[MatchedOrder]:
        res = await self._authed("GET", f"orders/id/matched/{create_id}")
        if res.error:
            return Result.fail(res.error)
        if not res.val:
            return Result.err(ErrorKind.VALIDATION, f"Order {create_id} not matched")
        return self._parse_order(res.val)

    async def get_orders(self, address: str, pending: bool = True) -> Result[List[MatchedOrder]]:
        """Orders created by an identity; pending=True limits to in-flight ones."""
        res = await self._authed(
            "GET", f"orders/user/{address}",
            params={"pending": "true" if pending else "false"},
        )
        if res.error:
            return Result.fail(res.error)

        items = res.val or []
        if isinstance(items, dict):
            items = items.get("data") or []

        orders = []
        for item in items:
            parsed = self._parse_order(item)
            if parsed.error:
                # One malformed record must not hide the others
                log.warning(f"Skipping malformed order for {address}: {parsed.error.message}")
                continue
            orders.append(parsed.val)
        return Result.ok(orders)

    async def get_orders_count(self, address: str) -> Result[int]:
        res = await self._authed("GET", f"orders/user/{address}/count")
        if res.error:
            return Result.fail(res.error)
        try:
            return Result.ok(int(res.val))
        except (TypeError, ValueError):
            return Result.err(ErrorKind.TRANSIENT, f"Malformed order count: {res.val!r}")

    async def wait_for_match(self, create_id: str, attempts: int = 30,
                             interval: float = 2.0) -> Result[MatchedOrder]:
        """Poll until a counterparty matched the order."""
        if attempts < 1:
            return Result.err(ErrorKind.VALIDATION, f"attempts must be >= 1, got {attempts}")

        last = None
        for attempt in range(attempts):
            last = await self.get_order(create_id)
            if last.val:
                log.info(f"Order {create_id} matched")
                return last
            if last.error.kind not in (ErrorKind.VALIDATION, ErrorKind.TRANSIENT):
                return last
            if attempt < attempts - 1:
                await asyncio.sleep(interval)

        log.warning(f"Order {create_id} not matched after {attempts} attempts")
        return Result.err(
            ErrorKind.VALIDATION,
            f"No counterparty match for order {create_id}: {last.error.message}",
        )

    async def poll_order(self, create_id: str, interval: float = 5.0,
                         stop_when: Callable[[MatchedOrder], bool] = settled
                         ) -> AsyncIterator[Result[MatchedOrder]]:
        """
        Stream an order's progress.

        Yields a Result whenever the order changes or a call fails; ends once
        stop_when(order) holds or a non-transient error occurs.
        """
        seen = None
        while True:
            res = await self.get_order(create_id)
            if res.error:
                yield res
                if not res.error.retryable and res.error.kind != ErrorKind.VALIDATION:
                    return
            else:
                fingerprint = res.val.fingerprint()
                if fingerprint != seen:
                    seen = fingerprint
                    yield res
                if stop_when(res.val):
                    return
            await asyncio.sleep(interval)

    @staticmethod
    def _parse_order(data) -> Result[MatchedOrder]:
        try:
            return Result.ok(MatchedOrder.model_validate(data))
        except ValidationError as e:
            return Result.err(ErrorKind.VALIDATION, f"Malformed order: {e.error_count()} errors")

    async def close(self):
        await self.api.close()
