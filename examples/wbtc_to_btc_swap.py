#!/usr/bin/env python3
"""
Example: WBTC (Sepolia) -> BTC (testnet) atomic swap

1. Fetch a quote and pick a strategy
2. Create the order (only the secret hash is sent) and wait for a match
3. Initiate the WBTC HTLC, gasless through the relayer (--relay)
4. Run the execute loop: redeem the BTC once the counterparty locks it,
   or refund the WBTC if they never do

Usage:
    export ETHEREUM_PRIVATE_KEY=...
    python examples/wbtc_to_btc_swap.py --amount 100000 --btc-address tb1q... --relay
"""

import sys
import signal
import asyncio
import argparse
import logging
from pathlib import Path

# Add SDK to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from garden import (
    GardenConfig, ConfigurationError, SupportedAssets, SecretManager, QuoteClient,
    Siwe, Orderbook, EvmRelay, Garden, SwapParams, EVMWallet, BitcoinWallet,
    BitcoinProvider, EVMClient,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
log = logging.getLogger(__name__)


async def run(args) -> int:
    try:
        config = GardenConfig.from_env()
    except ConfigurationError as e:
        log.error(f"Configuration error: {e}")
        return 2

    # =================================================================
    # 1. Wallets and services
    # =================================================================
    evm_wallet = EVMWallet(config.private_key_hex, EVMClient(config.evm_rpc_url, config.evm_chain_id))
    gas = await evm_wallet.get_native_balance()
    if gas.error:
        log.error(f"Cannot read gas balance: {gas.error}")
        return 1
    if gas.val < config.min_native_balance:
        log.error(f"{evm_wallet.address} has {gas.val} wei, need {config.min_native_balance} for gas")
        return 1

    auth = Siwe(config.orderbook_url, evm_wallet, config.evm_chain_id, timeout=config.request_timeout)
    quote = QuoteClient(config.quote_url, timeout=config.request_timeout)
    orderbook = Orderbook(config.orderbook_url, auth, timeout=config.request_timeout)

    secrets = await SecretManager.from_signer(evm_wallet, config.evm_chain_id)
    if secrets.error:
        log.error(f"Secret derivation failed: {secrets.error}")
        return 1
    secret_manager = secrets.val

    provider = BitcoinProvider(config.bitcoin_provider_url, timeout=config.request_timeout)
    btc_wallet = BitcoinWallet.from_private_key(
        secret_manager.get_master_priv_key(), provider, network=config.network
    )
    log.info(f"EVM wallet: {evm_wallet.address}")
    log.info(f"BTC wallet: {btc_wallet.address}")

    garden = Garden(
        config, secret_manager, quote, orderbook, auth,
        wallets={"evm": evm_wallet, "bitcoin": btc_wallet},
    )
    garden.on("success", lambda e: log.info(f"[{e.create_id}] {e.action.value}: {e.tx_hash}"))
    garden.on("error", lambda e: log.error(f"[{e.create_id}] {e.action.value} failed: {e.error}"))

    # =================================================================
    # 2. Quote + order
    # =================================================================
    assets = SupportedAssets.for_network(config.network)
    from_asset = assets.ethereum_sepolia_0x3c6a17b8cd92976d1d91e491c93c98cd81998265
    to_asset = assets.bitcoin_testnet_primary

    selection = await garden.select_quote(from_asset, to_asset, args.amount)
    if selection.error:
        log.error(f"Quote failed: {selection.error}")
        return 1
    strategy_id, receive_amount = selection.val
    log.info(f"Quote: {args.amount} -> {receive_amount} sats (strategy {strategy_id})")

    res = await garden.swap(SwapParams(
        from_asset=from_asset,
        to_asset=to_asset,
        send_amount=str(args.amount),
        receive_amount=receive_amount,
        additional_data={
            "strategy_id": strategy_id,
            "btc_address": args.btc_address or btc_wallet.address,
        },
    ))
    if res.error:
        log.error(f"Swap failed: {res.error}")
        return 1
    order = res.val
    print(f"Order: {config.orderbook_url}/orders/id/matched/{order.create_id}")

    # =================================================================
    # 3. Initiate
    # =================================================================
    if args.relay:
        relay = EvmRelay(order, config.orderbook_url, auth, timeout=config.request_timeout)
        init = await relay.init(evm_wallet)
        await relay.close()
        if init.error:
            log.error(f"Relay initiate failed: {init.error}")
            return 1
        log.info(f"Initiated via relayer: {init.val}")
    else:
        log.info("Initiate the source HTLC yourself; the loop below picks it up")

    # =================================================================
    # 4. Execute until Ctrl+C
    # =================================================================
    stop = asyncio.Event()
    asyncio.get_running_loop().add_signal_handler(signal.SIGINT, stop.set)
    await garden.execute(stop)

    for client in (orderbook, quote, auth, provider):
        await client.close()
    return 0


def main():
    parser = argparse.ArgumentParser(description="Swap WBTC on Sepolia for testnet BTC")
    parser.add_argument("--amount", type=int, default=100000, help="WBTC amount in sats")
    parser.add_argument("--btc-address", default="", help="BTC payout address (default: derived wallet)")
    parser.add_argument("--relay", action="store_true", help="Initiate gasless through the relayer")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
