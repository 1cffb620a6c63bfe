#!/usr/bin/env python3
"""
Order creation tests for Garden.swap().

1. Quote selection feeds receive amount and strategy into the order
2. Only the secret hash leaves the process
3. Insufficient balance never reaches the orderbook
4. Parameter validation
5. Created orders stay tracked even without a match
"""

import os
import sys
import unittest
from unittest.mock import AsyncMock, MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from garden.assets import SupportedAssets
from garden.core import Result, ErrorKind
from garden.quote import Quote
from garden.swap import Garden, SwapParams
from tests.fakes import (
    FakeOrderbook, FakeWallet, make_config, make_order, make_secret_manager,
    EVM_ADDRESS, BTC_PUBKEY,
)

WBTC = SupportedAssets.testnet.ethereum_sepolia_0x3c6a17b8cd92976d1d91e491c93c98cd81998265
BTC = SupportedAssets.testnet.bitcoin_testnet_primary
BTC_ADDRESS = "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"


class GardenSwapTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.secrets = make_secret_manager()
        self.orderbook = FakeOrderbook(count=4)
        self.orderbook.match_on_create = lambda create_id, request: make_order(
            create_id=create_id, nonce=int(request.nonce), secret_hash=request.secret_hash,
        )
        self.evm = FakeWallet("evm", EVM_ADDRESS)
        self.btc = FakeWallet("bitcoin", BTC_ADDRESS, identity=BTC_PUBKEY)
        self.quote = MagicMock()
        self.quote.get_quote = AsyncMock(return_value=Result.ok(
            Quote("pair", 1000000, {"s1": "990000"})
        ))
        self.garden = Garden(
            make_config(), self.secrets, self.quote, self.orderbook, MagicMock(),
            wallets={"evm": self.evm, "bitcoin": self.btc},
        )

    def params(self, **overrides) -> SwapParams:
        values = dict(
            from_asset=WBTC,
            to_asset=BTC,
            send_amount="1000000",
            receive_amount="990000",
            additional_data={"strategy_id": "s1", "btc_address": BTC_ADDRESS},
        )
        values.update(overrides)
        return SwapParams(**values)


class TestSwapCreation(GardenSwapTestCase):

    async def test_quote_to_order(self):
        selection = await self.garden.select_quote(WBTC, BTC, 1000000)
        self.assertEqual(selection.val, ("s1", "990000"))
        strategy_id, receive_amount = selection.val

        res = await self.garden.swap(self.params(
            receive_amount=receive_amount,
            additional_data={"strategy_id": strategy_id, "btc_address": BTC_ADDRESS},
        ))

        self.assertIsNone(res.error)
        self.assertEqual(len(self.orderbook.created), 1)
        request = self.orderbook.created[0]
        self.assertEqual(request.destination_amount, "990000")
        self.assertEqual(request.source_amount, "1000000")
        self.assertEqual(request.additional_data.strategy_id, "s1")
        self.assertEqual(request.additional_data.bitcoin_optional_recipient, BTC_ADDRESS)
        self.assertEqual(request.initiator_source_address, EVM_ADDRESS)
        self.assertEqual(request.initiator_destination_address, BTC_PUBKEY)
        self.assertEqual(request.source_chain, "ethereum_sepolia")
        self.assertEqual(request.destination_asset, "primary")

    async def test_nonce_is_order_count_plus_one(self):
        await self.garden.swap(self.params())
        request = self.orderbook.created[0]
        self.assertEqual(request.nonce, "5")
        self.assertEqual(request.secret_hash, self.secrets.derive_order_secret(5).secret_hash_hex)

    async def test_consecutive_swaps_use_distinct_secrets(self):
        await self.garden.swap(self.params())
        await self.garden.swap(self.params())
        first, second = self.orderbook.created
        self.assertEqual((first.nonce, second.nonce), ("5", "6"))
        self.assertNotEqual(first.secret_hash, second.secret_hash)

    async def test_nonce_skips_secret_already_committed(self):
        # Count lags behind an order created before a restart
        self.orderbook.put(make_order(create_id="earlier", nonce=5))
        await self.garden.swap(self.params())
        request = self.orderbook.created[0]
        self.assertEqual(request.nonce, "6")
        self.assertEqual(request.secret_hash, self.secrets.derive_order_secret(6).secret_hash_hex)

    async def test_transient_count_failure_is_retried(self):
        self.orderbook.count_failures = [Result.err(ErrorKind.TRANSIENT, "orderbook 503")]
        garden = Garden(
            make_config(retry_attempts=3), self.secrets, self.quote, self.orderbook, MagicMock(),
            wallets={"evm": self.evm, "bitcoin": self.btc},
        )
        res = await garden.swap(self.params())
        self.assertIsNone(res.error)
        self.assertEqual(self.orderbook.created[0].nonce, "5")

    async def test_transient_count_failure_surfaces_after_attempts(self):
        self.orderbook.count_failures = [Result.err(ErrorKind.TRANSIENT, "orderbook 503")] * 2
        garden = Garden(
            make_config(retry_attempts=2), self.secrets, self.quote, self.orderbook, MagicMock(),
            wallets={"evm": self.evm, "bitcoin": self.btc},
        )
        res = await garden.swap(self.params())
        self.assertEqual(res.error.kind, ErrorKind.TRANSIENT)
        self.assertEqual(self.orderbook.created, [])

    async def test_secret_not_sent(self):
        await self.garden.swap(self.params())
        secret = self.secrets.derive_order_secret(5).secret_hex
        payload = self.orderbook.created[0].model_dump_json()
        self.assertNotIn(secret, payload)

    async def test_returns_matched_order_and_tracks_it(self):
        res = await self.garden.swap(self.params())
        self.assertEqual(res.val.create_id, "order-1")
        self.assertEqual(self.garden.tracked_ids, ["order-1"])

    async def test_default_timelock_from_source_chain(self):
        await self.garden.swap(self.params())
        self.assertEqual(self.orderbook.created[0].timelock, 7200)
        await self.garden.swap(self.params(timelock=100))
        self.assertEqual(self.orderbook.created[1].timelock, 100)


class TestSwapFailures(GardenSwapTestCase):

    async def test_insufficient_balance(self):
        self.evm.balance = 999999
        res = await self.garden.swap(self.params())
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)
        self.assertIn("Insufficient balance", res.error.message)
        self.assertEqual(self.orderbook.created, [])
        self.assertEqual(self.garden.tracked_ids, [])

    async def test_invalid_amounts(self):
        for amount in ("0", "-5", "abc", ""):
            res = await self.garden.swap(self.params(send_amount=amount))
            self.assertEqual(res.error.kind, ErrorKind.VALIDATION, amount)
        res = await self.garden.swap(self.params(receive_amount="0"))
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)
        self.assertEqual(self.evm.balance_calls, 0)

    async def test_missing_strategy(self):
        res = await self.garden.swap(self.params(additional_data={"btc_address": BTC_ADDRESS}))
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)

    async def test_missing_btc_destination(self):
        res = await self.garden.swap(self.params(additional_data={"strategy_id": "s1"}))
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)

    async def test_missing_wallet(self):
        garden = Garden(
            make_config(), self.secrets, self.quote, self.orderbook, MagicMock(),
            wallets={"evm": self.evm},
        )
        res = await garden.swap(self.params())
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)
        self.assertEqual(self.orderbook.created, [])

    async def test_orderbook_rejection_verbatim(self):
        self.orderbook.create_error = Result.err(ErrorKind.VALIDATION, "insufficient balance")
        res = await self.garden.swap(self.params())
        self.assertEqual(res.error.message, "insufficient balance")
        self.assertEqual(self.garden.tracked_ids, [])

    async def test_no_match_keeps_tracking(self):
        self.orderbook.match_on_create = None
        res = await self.garden.swap(self.params())
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)
        self.assertIn("No counterparty match", res.error.message)
        self.assertEqual(self.garden.tracked_ids, ["order-1"])

    async def test_quote_policy_without_match(self):
        garden = Garden(
            make_config(quote_policy="strategy:s9"), self.secrets, self.quote,
            self.orderbook, MagicMock(), wallets={"evm": self.evm, "bitcoin": self.btc},
        )
        res = await garden.select_quote(WBTC, BTC, 1000000)
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)


if __name__ == "__main__":
    unittest.main(verbosity=2)
