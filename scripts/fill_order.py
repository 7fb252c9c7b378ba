#!/usr/bin/env python3
"""
Resolver: fill a maker's order and record the deployed escrow.

Reads orders/order.json and deploys this leg's escrow (fillOrder on the
source leg, createDstEscrow on the destination leg), then writes
orders/escrow.json for withdraw.py / cancel.py.

Environment: RPC_URL, CHAIN_ID, LIMIT_ORDER_ADDRESS, ESCROW_FACTORY_ADDRESS,
PRIVATE_KEY (resolver key), plus SRC_CHAIN_ID and SRC_LIMIT_ORDER_ADDRESS
for --side destination.
"""
import argparse
import json
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xswap.core import SwapError, EscrowSide
from xswap.order.artifacts import ORDER_FILE, ESCROW_FILE, load_order_artifact, save_artifact
from xswap.swap.resolver import resolver_from_env


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--order", default=os.path.join("orders", ORDER_FILE))
    parser.add_argument("--escrow-out", default=os.path.join("orders", ESCROW_FILE))
    parser.add_argument("--side", choices=[s.value for s in EscrowSide], default="source")
    parser.add_argument("--src-cancellation", type=int, default=0,
                        help="Source escrow cancellation time (required for --side destination)")
    args = parser.parse_args()
    if args.side == EscrowSide.DESTINATION.value and args.src_cancellation <= 0:
        parser.error("--src-cancellation is required for --side destination")

    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    try:
        resolver = resolver_from_env(EscrowSide(args.side))
        swap = resolver.accept(load_order_artifact(args.order))
        swap = resolver.fill(swap.order_hash, src_cancellation=args.src_cancellation)
        save_artifact(resolver.escrow_record(swap.order_hash), args.escrow_out)
    except SwapError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(json.dumps(swap.to_dict(), indent=2))


if __name__ == "__main__":
    main()
