#!/usr/bin/env python3
"""
Withdraw from a filled escrow with the revealed secret.

Environment: RPC_URL, CHAIN_ID, LIMIT_ORDER_ADDRESS, ESCROW_FACTORY_ADDRESS,
PRIVATE_KEY (escrow taker, or anyone during public withdrawal).
"""
import argparse
import json
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xswap.core import SwapError, TransitionRejected, EscrowSide
from xswap.order.artifacts import (
    ORDER_FILE, ESCROW_FILE, SECRET_FILE,
    load_order_artifact, load_escrow_artifact, load_secret_artifact,
)
from xswap.swap.resolver import resolver_from_env


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--order", default=os.path.join("orders", ORDER_FILE))
    parser.add_argument("--escrow", default=os.path.join("orders", ESCROW_FILE))
    parser.add_argument("--secret-file", default=os.path.join("secrets", SECRET_FILE))
    parser.add_argument("--secret", help="0x-hex secret (overrides --secret-file)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    try:
        record = load_escrow_artifact(args.escrow)
        secret = args.secret or load_secret_artifact(args.secret_file).secret
        resolver = resolver_from_env(EscrowSide(record.side))
        swap = resolver.restore(load_order_artifact(args.order), record)
        swap = resolver.withdraw(swap.order_hash, secret)
    except TransitionRejected as e:
        print(json.dumps(e.to_dict(), indent=2))
        sys.exit(2 if e.retriable else 1)
    except SwapError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(json.dumps(swap.to_dict(), indent=2))


if __name__ == "__main__":
    main()
