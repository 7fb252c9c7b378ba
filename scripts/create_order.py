#!/usr/bin/env python3
"""
Maker: create and sign a cross-chain order.

Writes orders/order.json ({order, signature, extraData}) for the resolver
and secrets/secret.json ({secret, hashlock}), which stays with the maker.

Environment: RPC_URL, CHAIN_ID, LIMIT_ORDER_ADDRESS, ESCROW_FACTORY_ADDRESS,
PRIVATE_KEY (source ledger).
"""
import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xswap.config import LedgerConfig, SwapConfig
from xswap.core import SwapError, ZERO_ADDRESS, to_hex
from xswap.chains.evm import EVMGateway, LocalKeySigner
from xswap.order.order import OrderDomain
from xswap.swap.maker import create_order_bundle, write_bundle


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--maker-asset", required=True)
    parser.add_argument("--taker-asset", required=True)
    parser.add_argument("--making-amount", type=int, required=True)
    parser.add_argument("--taking-amount", type=int, required=True)
    parser.add_argument("--dst-chain-id", type=int, required=True)
    parser.add_argument("--dst-token", required=True)
    parser.add_argument("--receiver", default=ZERO_ADDRESS)
    parser.add_argument("--deposits", type=int, default=0)
    parser.add_argument("--orders-dir", default="orders")
    parser.add_argument("--secrets-dir", default="secrets")
    parser.add_argument("--no-approve", action="store_true",
                        help="Skip approving the escrow factory for the maker asset")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    ledger = LedgerConfig.from_env()
    swap_config = SwapConfig(orders_dir=args.orders_dir, secrets_dir=args.secrets_dir)

    try:
        ledger.validate(require_key=True)
        signer = LocalKeySigner(ledger.private_key)
        domain = OrderDomain(ledger.chain_id, ledger.limit_order_address,
                             swap_config.protocol_name, swap_config.protocol_version)

        if not args.no_approve and ledger.escrow_factory_address:
            gateway = EVMGateway(ledger, signer=signer)
            result = gateway.ensure_allowance(args.maker_asset, args.making_amount)
            if not result.success:
                print(f"Approval failed: {result.error}")
                sys.exit(1)

        bundle = create_order_bundle(
            domain, signer,
            maker_asset=args.maker_asset,
            taker_asset=args.taker_asset,
            making_amount=args.making_amount,
            taking_amount=args.taking_amount,
            dst_chain_id=args.dst_chain_id,
            dst_token=args.dst_token,
            receiver=args.receiver,
            deposits=args.deposits,
            config=swap_config,
        )
    except SwapError as e:
        print(f"Error: {e}")
        sys.exit(1)

    paths = write_bundle(bundle, swap_config)
    print(f"Order hash: {to_hex(bundle.order_hash)}")
    print(f"Hashlock:   {to_hex(bundle.commitment.hashlock)}")
    print(f"Order:      {paths['order']}")
    print(f"Secret:     {paths['secret']} (keep private until the destination escrow is funded)")


if __name__ == "__main__":
    main()
