#!/usr/bin/env python3
"""
EVM wallet tests: signatures recover to the wallet address, revert
reasons are classified, chain mismatches are configuration errors.

No RPC is contacted; the client is mocked.
"""

import os
import sys
import unittest
from unittest.mock import MagicMock, patch

from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from web3.exceptions import ContractLogicError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from garden.core import ErrorKind
from garden.htlc import evm as evm_htlc
from garden.wallets.evm import EVMWallet
from tests.fakes import TEST_KEY, SOLVER_EVM, WBTC_HTLC, make_order


def make_wallet(chain_id: int = 11155111, block: int = 5000) -> EVMWallet:
    client = MagicMock()
    client.chain_id = chain_id
    client.get_block_number.return_value = block
    return EVMWallet(TEST_KEY, client)


class TestSigning(unittest.IsolatedAsyncioTestCase):

    async def test_sign_message(self):
        wallet = make_wallet()
        sig = await wallet.sign_message("hello garden")
        self.assertEqual(len(sig), 65)
        recovered = Account.recover_message(encode_defunct(text="hello garden"), signature=sig)
        self.assertEqual(recovered, wallet.address)

    async def test_sign_initiate_typed_data(self):
        wallet = make_wallet()
        typed_data = evm_htlc.initiate_typed_data(
            htlc=WBTC_HTLC, chain_id=11155111, redeemer=SOLVER_EVM,
            timelock=7200, amount=1000000, secret_hash="ab" * 32,
        )
        sig = await wallet.sign_typed_data(typed_data)
        recovered = Account.recover_message(encode_typed_data(full_message=typed_data), signature=sig)
        self.assertEqual(recovered, wallet.address)

    def test_address_from_key(self):
        self.assertEqual(make_wallet().get_address(), Account.from_key("0x" + TEST_KEY).address)


class TestChainCalls(unittest.IsolatedAsyncioTestCase):

    async def test_block_number(self):
        res = await make_wallet(block=6123).get_block_number("ethereum_sepolia")
        self.assertEqual(res.val, 6123)

    async def test_block_number_wrong_chain(self):
        res = await make_wallet(chain_id=1).get_block_number("ethereum_sepolia")
        self.assertEqual(res.error.kind, ErrorKind.CONFIGURATION)

    async def test_rpc_failure_is_transient(self):
        wallet = make_wallet()
        wallet.client.get_block_number.side_effect = OSError("connection refused")
        res = await wallet.get_block_number("ethereum_sepolia")
        self.assertEqual(res.error.kind, ErrorKind.TRANSIENT)

    async def test_redeem_already_settled(self):
        wallet = make_wallet()
        revert = ContractLogicError("execution reverted: HTLC: order fulfilled")
        with patch.object(evm_htlc, "redeem_htlc", side_effect=revert):
            res = await wallet.redeem(make_order(), b"\x01" * 32)
        self.assertEqual(res.error.kind, ErrorKind.ALREADY_SETTLED)

    async def test_refund_reverted(self):
        wallet = make_wallet()
        revert = ContractLogicError("execution reverted: HTLC: order not expired")
        with patch.object(evm_htlc, "refund_htlc", side_effect=revert):
            res = await wallet.refund(make_order())
        self.assertEqual(res.error.kind, ErrorKind.CHAIN_ACTION)
        self.assertIn("order not expired", res.error.message)

    async def test_redeem_targets_destination_htlc(self):
        wallet = make_wallet()
        order = make_order(source_chain="bitcoin_testnet", destination_chain="ethereum_sepolia",
                           dst={"asset": WBTC_HTLC, "swap_id": "cc" * 32})
        with patch.object(evm_htlc, "redeem_htlc", return_value="0xredeem") as redeem:
            res = await wallet.redeem(order, b"\x01" * 32)

        self.assertEqual(res.val, "0xredeem")
        args = redeem.call_args[0]
        self.assertEqual(args[2:], (WBTC_HTLC, "cc" * 32, b"\x01" * 32, 11155111))

    def test_already_settled_reasons(self):
        self.assertTrue(evm_htlc.is_already_settled("HTLC: Order Fulfilled"))
        self.assertTrue(evm_htlc.is_already_settled("execution reverted: already refunded"))
        self.assertFalse(evm_htlc.is_already_settled("execution reverted: order not expired"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
