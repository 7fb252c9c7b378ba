#!/usr/bin/env python3
"""
Timelock packing tests

1. Lane layout and deployed_at in the top 32 bits
2. Lane overflow rejection
3. Window ordering and cross-leg ordering
"""

import sys
import os
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xswap.core import InvalidOffset, InvalidTimelocks, DEFAULT_SRC_OFFSETS, DEFAULT_DST_OFFSETS
from xswap.htlc.timelocks import (
    TimelockStage, Timelocks, pack_timelocks, unpack_timelocks, deadline_for,
    validate_leg_ordering,
)


class TestPacking(unittest.TestCase):
    """Bit layout of the packed word."""

    def test_uniform_offsets_scenario(self):
        """Offsets [3600]*4 deployed at 1_000_000."""
        packed = pack_timelocks([3600, 3600, 3600, 3600], 1_000_000)
        self.assertEqual(packed >> 224, 1_000_000)
        self.assertEqual(packed & 0xFFFFFFFF, 3600)
        self.assertEqual(deadline_for(0, packed), 1_003_600)

    def test_lane_positions(self):
        packed = pack_timelocks([1, 2, 3, 4], 5)
        self.assertEqual(packed, 1 | (2 << 32) | (3 << 64) | (4 << 96) | (5 << 224))

    def test_unpack_inverts_pack(self):
        cases = [
            ([0, 0, 0, 0], 0),
            ([600, 3600, 14400, 18000], 1_700_000_000),
            ([2**32 - 1] * 4, 2**32 - 1),
        ]
        for offsets, deployed_at in cases:
            packed = pack_timelocks(offsets, deployed_at)
            self.assertEqual(unpack_timelocks(packed), (tuple(offsets), deployed_at))

    def test_offsets_are_independent_of_each_other(self):
        """Each deadline is deployed_at + its own lane, not a running sum."""
        packed = pack_timelocks([100, 200, 300, 400], 1000)
        self.assertEqual(deadline_for(TimelockStage.PUBLIC_WITHDRAWAL, packed), 1200)
        self.assertEqual(deadline_for(TimelockStage.PUBLIC_CANCELLATION, packed), 1400)

    def test_overflow_rejected(self):
        with self.assertRaises(InvalidOffset):
            pack_timelocks([2**32, 0, 0, 0])
        with self.assertRaises(InvalidOffset):
            pack_timelocks([0, 0, 0, 0], 2**32)
        with self.assertRaises(InvalidOffset):
            pack_timelocks([-1, 0, 0, 0])

    def test_wrong_lane_count_rejected(self):
        with self.assertRaises(InvalidOffset):
            pack_timelocks([1, 2, 3])

    def test_invalid_offset_is_value_error(self):
        with self.assertRaises(ValueError):
            Timelocks(2**32, 0, 0, 0)


class TestTimelocks(unittest.TestCase):
    """Timelocks value object."""

    def test_from_packed_round_trip(self):
        t = Timelocks.from_offsets(DEFAULT_SRC_OFFSETS, deployed_at=1234)
        self.assertEqual(Timelocks.from_packed(t.pack()), t)

    def test_with_deployed_at(self):
        plan = Timelocks.from_offsets([10, 20, 30, 40])
        deployed = plan.with_deployed_at(1000)
        self.assertEqual(plan.deployed_at, 0)
        self.assertEqual(deployed.deadline(TimelockStage.CANCELLATION), 1030)
        self.assertEqual(deployed.offsets, plan.offsets)

    def test_stage_at(self):
        t = Timelocks.from_offsets([10, 20, 30, 40], deployed_at=1000)
        self.assertIsNone(t.stage_at(1009))
        self.assertEqual(t.stage_at(1010), TimelockStage.WITHDRAWAL)
        self.assertEqual(t.stage_at(1025), TimelockStage.PUBLIC_WITHDRAWAL)
        self.assertEqual(t.stage_at(1040), TimelockStage.PUBLIC_CANCELLATION)


class TestOrdering(unittest.TestCase):
    """Window ordering checks."""

    def test_defaults_are_ordered(self):
        Timelocks.from_offsets(DEFAULT_SRC_OFFSETS).validate_ordering()
        Timelocks.from_offsets(DEFAULT_DST_OFFSETS).validate_ordering()

    def test_out_of_order_rejected(self):
        with self.assertRaises(InvalidTimelocks):
            Timelocks.from_offsets([100, 50, 200, 300]).validate_ordering()

    def test_empty_withdraw_window_rejected(self):
        with self.assertRaises(InvalidTimelocks):
            Timelocks.from_offsets([100, 100, 100, 200]).validate_ordering()

    def test_default_legs_satisfy_cross_ordering(self):
        dst = Timelocks.from_offsets(DEFAULT_DST_OFFSETS)
        src = Timelocks.from_offsets(DEFAULT_SRC_OFFSETS)
        self.assertTrue(validate_leg_ordering(dst, src))

    def test_first_leg_cancelling_before_second_withdraw_rejected(self):
        first = Timelocks.from_offsets([10, 20, 30, 40])
        second = Timelocks.from_offsets([100, 200, 3000, 4000])
        with self.assertRaises(InvalidTimelocks):
            validate_leg_ordering(first, second, min_gap=0)

    def test_insufficient_cancel_gap_rejected(self):
        first = Timelocks.from_offsets([300, 1800, 7200, 10800])
        second = Timelocks.from_offsets([600, 3600, 7500, 18000])
        with self.assertRaises(InvalidTimelocks):
            validate_leg_ordering(first, second, min_gap=1800)

    def test_swapped_legs_rejected(self):
        dst = Timelocks.from_offsets(DEFAULT_DST_OFFSETS)
        src = Timelocks.from_offsets(DEFAULT_SRC_OFFSETS)
        with self.assertRaises(InvalidTimelocks):
            validate_leg_ordering(src, dst)


if __name__ == "__main__":
    unittest.main(verbosity=2)
