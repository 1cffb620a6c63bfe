#!/usr/bin/env python3
"""
Orderbook client tests against an in-process mock service.
"""

import os
import sys
import json
import unittest

import httpx

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from garden.auth import Siwe
from garden.core import ErrorKind
from garden.orderbook import Orderbook, CreateOrderRequest, AdditionalData, settled
from tests.fakes import FakeSigner, make_order, EVM_ADDRESS, INITIATED_SRC, INITIATED_DST


def ok(result) -> httpx.Response:
    return httpx.Response(200, json={"status": "Ok", "result": result})


class OrderbookServer:
    """Serves auth plus whatever routes the test registers."""

    def __init__(self):
        self.routes = {}
        self.requests = []
        self.tokens_issued = 0
        self.expire_next = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/auth/nonce":
            return ok("n")
        if path == "/auth/verify":
            self.tokens_issued += 1
            return ok(f"token-{self.tokens_issued}")

        self.requests.append(request)
        if self.expire_next:
            self.expire_next -= 1
            return httpx.Response(401, text="token expired")
        handler = self.routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"error": "not found"})
        return handler(request)


def order_json(**kwargs) -> dict:
    return make_order(**kwargs).model_dump(mode="json")


class TestOrderbook(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.server = OrderbookServer()
        transport = httpx.MockTransport(self.server)
        auth = Siwe("https://orderbook.test", FakeSigner(), 11155111, transport=transport)
        self.orderbook = Orderbook("https://orderbook.test", auth, transport=transport)

    async def asyncTearDown(self):
        await self.orderbook.close()

    def request_body(self) -> CreateOrderRequest:
        return CreateOrderRequest(
            source_chain="ethereum_sepolia",
            destination_chain="bitcoin_testnet",
            source_asset="0x3c6a17b8cd92976d1d91e491c93c98cd81998265",
            destination_asset="primary",
            initiator_source_address=EVM_ADDRESS,
            initiator_destination_address="02" + "ab" * 32,
            source_amount="1000000",
            destination_amount="990000",
            nonce="1",
            timelock=7200,
            secret_hash="cd" * 32,
            additional_data=AdditionalData(strategy_id="s1", bitcoin_optional_recipient="tb1qxyz"),
        )

    async def test_create_order(self):
        self.server.routes[("POST", "/orders")] = lambda r: ok("create-1")
        res = await self.orderbook.create_order(self.request_body())

        self.assertEqual(res.val, "create-1")
        request = self.server.requests[0]
        self.assertEqual(request.headers["Authorization"], "Bearer token-1")
        body = json.loads(request.content)
        self.assertEqual(body["secret_hash"], "cd" * 32)
        self.assertEqual(body["source_amount"], "1000000")
        self.assertEqual(body["additional_data"]["strategy_id"], "s1")
        self.assertNotIn("secret", body)

    async def test_create_order_insufficient_balance_verbatim(self):
        self.server.routes[("POST", "/orders")] = lambda r: httpx.Response(
            400, json={"status": "Error", "error": "insufficient balance"}
        )
        res = await self.orderbook.create_order(self.request_body())
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)
        self.assertEqual(res.error.message, "insufficient balance")

    async def test_expired_session_refreshed_once(self):
        self.server.routes[("GET", "/orders/user/%s/count" % EVM_ADDRESS)] = lambda r: ok(4)
        self.server.expire_next = 1

        res = await self.orderbook.get_orders_count(EVM_ADDRESS)

        self.assertEqual(res.val, 4)
        self.assertEqual(self.server.tokens_issued, 2)
        self.assertEqual(self.server.requests[-1].headers["Authorization"], "Bearer token-2")

    async def test_persistent_auth_failure(self):
        self.server.routes[("GET", "/orders/user/%s/count" % EVM_ADDRESS)] = lambda r: ok(4)
        self.server.expire_next = 5
        res = await self.orderbook.get_orders_count(EVM_ADDRESS)
        self.assertEqual(res.error.kind, ErrorKind.AUTH)

    async def test_get_order(self):
        self.server.routes[("GET", "/orders/id/matched/order-1")] = lambda r: ok(order_json())
        res = await self.orderbook.get_order("order-1")
        self.assertEqual(res.val.create_id, "order-1")
        self.assertEqual(res.val.destination_swap.chain, "bitcoin_testnet")

    async def test_unmatched_order(self):
        self.server.routes[("GET", "/orders/id/matched/order-1")] = lambda r: ok(None)
        res = await self.orderbook.get_order("order-1")
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)

    async def test_get_orders_skips_malformed(self):
        good = order_json(create_id="good")
        self.server.routes[("GET", "/orders/user/%s" % EVM_ADDRESS)] = lambda r: ok(
            {"data": [good, {"create_order": {"create_id": "broken"}}]}
        )
        res = await self.orderbook.get_orders(EVM_ADDRESS)
        self.assertEqual([o.create_id for o in res.val], ["good"])
        self.assertEqual(self.server.requests[0].url.params["pending"], "true")

    async def test_wait_for_match_gives_up(self):
        self.server.routes[("GET", "/orders/id/matched/order-1")] = lambda r: ok(None)
        res = await self.orderbook.wait_for_match("order-1", attempts=3, interval=0)
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)
        self.assertIn("No counterparty match", res.error.message)
        self.assertEqual(len(self.server.requests), 3)

    async def test_wait_for_match_without_attempts(self):
        res = await self.orderbook.wait_for_match("order-1", attempts=0, interval=0)
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)
        self.assertEqual(self.server.requests, [])

    async def test_wait_for_match_succeeds_later(self):
        responses = [ok(None), ok(order_json())]
        self.server.routes[("GET", "/orders/id/matched/order-1")] = lambda r: responses.pop(0)
        res = await self.orderbook.wait_for_match("order-1", attempts=5, interval=0)
        self.assertEqual(res.val.create_id, "order-1")

    async def test_poll_order_stops_when_settled(self):
        done = order_json(
            src=dict(INITIATED_SRC, redeem_tx_hash="0xr"),
            dst=dict(INITIATED_DST, redeem_tx_hash="btcr"),
        )
        responses = [ok(order_json()), ok(order_json()), ok(done)]
        self.server.routes[("GET", "/orders/id/matched/order-1")] = lambda r: responses.pop(0)

        seen = [res async for res in self.orderbook.poll_order("order-1", interval=0)]

        # Unchanged second snapshot is not yielded again
        self.assertEqual(len(seen), 2)
        self.assertTrue(settled(seen[-1].val))


if __name__ == "__main__":
    unittest.main(verbosity=2)
