"""
Shared keys, addresses and builders for the xswap tests.

Keys are fixed test values; never fund them.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xswap.chains.evm import LocalKeySigner
from xswap.config import SwapConfig
from xswap.core import DEFAULT_SRC_OFFSETS, ZERO_ADDRESS
from xswap.htlc.secret import SecretCommitment, hashlock_for
from xswap.htlc.timelocks import Timelocks
from xswap.order.order import Order, OrderDomain, sign_order
from xswap.order.params import CrossChainParams

MAKER_KEY = "0x" + "11" * 32
RESOLVER_KEY = "0x" + "22" * 32
STRANGER_KEY = "0x" + "33" * 32

MAKER = LocalKeySigner(MAKER_KEY)
RESOLVER = LocalKeySigner(RESOLVER_KEY)
STRANGER = LocalKeySigner(STRANGER_KEY)

LIMIT_ORDER = "0x" + "10" * 20
ESCROW_FACTORY = "0x" + "20" * 20
TOKEN_A = "0x" + "aa" * 20
TOKEN_B = "0x" + "bb" * 20
DST_TOKEN = "0x" + "cc" * 20

SRC_CHAIN_ID = 1
DST_CHAIN_ID = 56

# Fixed test secret
SECRET = bytes.fromhex("42" * 32)


def make_domain(chain_id: int = SRC_CHAIN_ID) -> OrderDomain:
    return OrderDomain(chain_id=chain_id, verifying_contract=LIMIT_ORDER)


def make_order(salt: int = 1, **overrides) -> Order:
    fields = dict(
        salt=salt,
        maker=MAKER.address,
        receiver=ZERO_ADDRESS,
        maker_asset=TOKEN_A,
        taker_asset=TOKEN_B,
        making_amount=100_000_000,
        taking_amount=99_000_000,
    )
    fields.update(overrides)
    return Order(**fields)


def make_params(hashlock: bytes, offsets=DEFAULT_SRC_OFFSETS) -> CrossChainParams:
    return CrossChainParams(
        hashlock=hashlock,
        dst_chain_id=DST_CHAIN_ID,
        dst_token=DST_TOKEN,
        deposits=0,
        timelocks=Timelocks.from_offsets(offsets),
    )


def commitment(secret: bytes = SECRET) -> SecretCommitment:
    return SecretCommitment(secret=secret, hashlock=hashlock_for(secret))


def signed_order(domain: OrderDomain = None, salt: int = 1, secret: bytes = SECRET,
                 offsets=DEFAULT_SRC_OFFSETS, **overrides):
    """(order, signature, params) signed by MAKER."""
    domain = domain or make_domain()
    order = make_order(salt=salt, **overrides)
    params = make_params(commitment(secret).hashlock, offsets)
    return order, sign_order(order, domain, MAKER), params


def swap_config(**overrides) -> SwapConfig:
    return SwapConfig(**overrides)
