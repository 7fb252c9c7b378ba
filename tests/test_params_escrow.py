#!/usr/bin/env python3
"""
Cross-chain params (extraData) and escrow immutables tests
"""

import sys
import os
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from eth_abi import decode, encode

from xswap.core import EscrowSide, DEFAULT_DST_OFFSETS, keccak256
from xswap.htlc.escrow import EscrowImmutables, IMMUTABLES_TYPES
from xswap.htlc.timelocks import Timelocks, TimelockStage
from xswap.order.order import order_hash
from xswap.order.params import CrossChainParams
from fixtures import (
    MAKER, RESOLVER, STRANGER, TOKEN_A, DST_TOKEN, DST_CHAIN_ID,
    commitment, make_domain, make_order, make_params,
)


class TestCrossChainParams(unittest.TestCase):

    def setUp(self):
        self.params = make_params(commitment().hashlock)

    def test_abi_layout(self):
        """(bytes32, uint256, address, uint256, uint256) as one tuple."""
        encoded = self.params.encode()
        self.assertEqual(len(encoded), 5 * 32)
        (values,) = decode(["(bytes32,uint256,address,uint256,uint256)"], encoded)
        self.assertEqual(values[0], commitment().hashlock)
        self.assertEqual(values[1], DST_CHAIN_ID)
        self.assertEqual(values[2].lower(), DST_TOKEN.lower())
        self.assertEqual(values[4], self.params.timelocks.pack())

    def test_decode_inverts_encode(self):
        self.assertEqual(CrossChainParams.decode(self.params.to_hex()), self.params)

    def test_params_hash(self):
        self.assertEqual(self.params.params_hash(), keccak256(self.params.encode()))
        other = make_params(commitment(b"\x01" * 32).hashlock)
        self.assertNotEqual(self.params.params_hash(), other.params_hash())

    def test_to_dict_uses_decimal_strings(self):
        data = self.params.to_dict()
        self.assertEqual(data["dst_chain_id"], str(DST_CHAIN_ID))
        self.assertEqual(data["timelocks"], str(self.params.timelocks.pack()))

    def test_invalid_dst_token(self):
        with self.assertRaises(ValueError):
            CrossChainParams(commitment().hashlock, 1, "nope", 0, Timelocks(1, 2, 3, 4))


class TestEscrowImmutables(unittest.TestCase):

    def setUp(self):
        self.domain = make_domain()
        self.order = make_order(receiver=STRANGER.address)
        self.oh = order_hash(self.order, self.domain)
        self.params = make_params(commitment().hashlock)

    def test_source_leg(self):
        imm = EscrowImmutables.for_source(self.order, self.oh, self.params, RESOLVER.address, 5000)
        self.assertEqual(imm.maker, MAKER.address)
        self.assertEqual(imm.taker, RESOLVER.address)
        self.assertEqual(imm.token.lower(), TOKEN_A.lower())
        self.assertEqual(imm.amount, self.order.making_amount)
        self.assertEqual(imm.timelocks.deployed_at, 5000)
        self.assertEqual(imm.timelocks.deadline(TimelockStage.WITHDRAWAL),
                         5000 + self.params.timelocks.withdrawal)

    def test_destination_leg_pays_receiver(self):
        dst = Timelocks.from_offsets(DEFAULT_DST_OFFSETS)
        imm = EscrowImmutables.derive(EscrowSide.DESTINATION, self.order, self.oh, self.params,
                                      RESOLVER.address, 7000, timelocks=dst)
        self.assertEqual(imm.maker, STRANGER.address)
        self.assertEqual(imm.token.lower(), DST_TOKEN.lower())
        self.assertEqual(imm.amount, self.order.taking_amount)
        self.assertEqual(imm.timelocks.offsets, DEFAULT_DST_OFFSETS)

    def test_derivation_is_deterministic(self):
        a = EscrowImmutables.derive(EscrowSide.SOURCE, self.order, self.oh, self.params,
                                    RESOLVER.address, 5000)
        b = EscrowImmutables.derive(EscrowSide.SOURCE, self.order, self.oh, self.params,
                                    RESOLVER.address.lower(), 5000)
        self.assertEqual(a, b)
        self.assertEqual(a.hash(), b.hash())

    def test_hash_covers_deployed_at(self):
        a = EscrowImmutables.for_source(self.order, self.oh, self.params, RESOLVER.address, 5000)
        b = EscrowImmutables.for_source(self.order, self.oh, self.params, RESOLVER.address, 5001)
        self.assertNotEqual(a.hash(), b.hash())

    def test_abi_tuple_encodes(self):
        imm = EscrowImmutables.for_source(self.order, self.oh, self.params, RESOLVER.address, 5000)
        self.assertEqual(len(encode(IMMUTABLES_TYPES, [imm.to_abi_tuple()])), 7 * 32)

    def test_dict_round_trip(self):
        imm = EscrowImmutables.for_source(self.order, self.oh, self.params, RESOLVER.address, 5000)
        data = imm.to_dict()
        self.assertEqual(data["amount"], str(self.order.making_amount))
        self.assertEqual(EscrowImmutables.from_dict(data), imm)


if __name__ == "__main__":
    unittest.main(verbosity=2)
