#!/usr/bin/env python3
"""
Maker -> resolver handoff tests

1. Maker bundle: secret, timelocks, params, signature
2. Artifact files: decimal strings, hex binaries, round trip
3. Resolver: accept / fill / withdraw / cancel over a mocked gateway
"""

import sys
import os
import json
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xswap.chains.base import EscrowTxResult
from xswap.config import SwapConfig
from xswap.core import (
    SwapPhase, EscrowSide, InvalidOrder, InvalidTimelocks, AlreadyFilled,
    UnauthorizedCaller, LedgerCallFailed, SignatureInvalid, DEFAULT_SRC_OFFSETS, DEFAULT_DST_OFFSETS,
    ZERO_ADDRESS, to_hex,
)
from xswap.htlc.timelocks import TimelockStage, Timelocks
from xswap.order.artifacts import (
    artifact_to_bundle, load_order_artifact, load_secret_artifact,
    parse_order_artifact, save_artifact, SecretArtifact,
)
from xswap.order.order import order_hash, verify_order_signature
from xswap.swap.maker import create_order_bundle, write_bundle
from xswap.swap.resolver import Resolver
from xswap.swap.reveal import RevealBoard
from xswap.swap.state_machine import SwapStateMachine
from fixtures import (
    MAKER, RESOLVER, STRANGER, SECRET, TOKEN_A, TOKEN_B, DST_TOKEN, DST_CHAIN_ID,
    commitment, make_domain, make_params,
)

T0 = 1_700_000_000
ESCROW = "0x" + "ee" * 20


def make_bundle(domain, config=None, salt=1, **overrides):
    fields = dict(
        maker_asset=TOKEN_A,
        taker_asset=TOKEN_B,
        making_amount=100_000_000,
        taking_amount=99_000_000,
        dst_chain_id=DST_CHAIN_ID,
        dst_token=DST_TOKEN,
    )
    fields.update(overrides)
    return create_order_bundle(domain, MAKER, config=config, commitment=commitment(),
                               salt=salt, **fields)


def ok(**kwargs):
    fields = dict(success=True, tx_hash="0x" + "01" * 32, block_timestamp=T0)
    fields.update(kwargs)
    return EscrowTxResult(**fields)


def mock_gateway(now=T0, domain=None):
    domain = domain or make_domain()
    gateway = MagicMock()
    gateway.get_current_time.return_value = now
    gateway.hash_order.side_effect = lambda order: order_hash(order, domain)
    gateway.ensure_allowance.return_value = ok(block_timestamp=None)
    gateway.fill_order.return_value = ok()
    gateway.create_dst_escrow.return_value = ok()
    gateway.escrow_address.return_value = ESCROW
    gateway.withdraw.return_value = ok(block_timestamp=None)
    gateway.public_withdraw.return_value = ok(block_timestamp=None)
    gateway.cancel.return_value = ok(block_timestamp=None)
    gateway.public_cancel.return_value = ok(block_timestamp=None)
    return gateway


class TestMakerBundle(unittest.TestCase):

    def setUp(self):
        self.domain = make_domain()

    def test_bundle_is_signed_and_committed(self):
        bundle = make_bundle(self.domain)
        self.assertEqual(bundle.order.maker, MAKER.address)
        self.assertTrue(verify_order_signature(bundle.order, self.domain, bundle.signature))
        self.assertEqual(bundle.params.hashlock, bundle.commitment.hashlock)
        self.assertEqual(bundle.params.timelocks.offsets, DEFAULT_SRC_OFFSETS)
        self.assertEqual(bundle.params.timelocks.deployed_at, 0)

    def test_fresh_secret_by_default(self):
        a = create_order_bundle(self.domain, MAKER, TOKEN_A, TOKEN_B, 10, 9, DST_CHAIN_ID, DST_TOKEN)
        b = create_order_bundle(self.domain, MAKER, TOKEN_A, TOKEN_B, 10, 9, DST_CHAIN_ID, DST_TOKEN)
        self.assertNotEqual(a.commitment.secret, b.commitment.secret)
        self.assertNotEqual(a.order.salt, b.order.salt)

    def test_unsafe_leg_ordering_refused(self):
        config = SwapConfig(dst_offsets=(300, 1800, 14000, 18000))
        with self.assertRaises(InvalidTimelocks):
            make_bundle(self.domain, config=config)

    def test_unordered_windows_refused(self):
        config = SwapConfig(src_offsets=(3600, 600, 14400, 18000))
        with self.assertRaises(InvalidTimelocks):
            make_bundle(self.domain, config=config)

    def test_zero_amount_refused(self):
        with self.assertRaises(InvalidOrder):
            create_order_bundle(self.domain, MAKER, TOKEN_A, TOKEN_B, 0, 9, DST_CHAIN_ID, DST_TOKEN)


class TestArtifacts(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.config = SwapConfig(orders_dir=os.path.join(self.tmp, "orders"),
                                 secrets_dir=os.path.join(self.tmp, "secrets"))
        self.domain = make_domain()
        self.bundle = make_bundle(self.domain)

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def test_write_and_load(self):
        paths = write_bundle(self.bundle, self.config)

        with open(paths["order"]) as f:
            raw = json.load(f)
        self.assertEqual(set(raw), {"order", "signature", "extraData"})
        self.assertIsInstance(raw["order"]["makingAmount"], str)
        self.assertEqual(raw["order"]["makingAmount"], "100000000")
        self.assertTrue(raw["signature"].startswith("0x"))
        self.assertTrue(raw["extraData"].startswith("0x"))

        order, signature, params = artifact_to_bundle(load_order_artifact(paths["order"]))
        self.assertEqual(order, self.bundle.order)
        self.assertEqual(signature, self.bundle.signature)
        self.assertEqual(params, self.bundle.params)

        secret = load_secret_artifact(paths["secret"])
        self.assertEqual(secret.secret, SECRET)

    def test_mismatched_secret_file_refused(self):
        path = os.path.join(self.tmp, "bad.json")
        save_artifact(SecretArtifact(secret=to_hex(b"\x01" * 32),
                                     hashlock=to_hex(self.bundle.commitment.hashlock)), path)
        with self.assertRaises(InvalidOrder):
            load_secret_artifact(path)

    def test_malformed_artifact_refused(self):
        with self.assertRaises(InvalidOrder):
            parse_order_artifact('{"order": {}, "signature": "0x", "extraData": "0x"}')

    def test_bad_extra_data_refused(self):
        artifact = self.bundle.order_artifact().model_copy(update={"extraData": "0x1234"})
        with self.assertRaises(InvalidOrder):
            artifact_to_bundle(artifact)


class TestResolver(unittest.TestCase):

    def setUp(self):
        self.domain = make_domain()
        self.bundle = make_bundle(self.domain)
        self.gateway = mock_gateway()
        self.sm = SwapStateMachine(self.domain, reveals=RevealBoard(), ledger_name="src")
        self.resolver = Resolver(self.sm, self.gateway, caller=RESOLVER.address)

    def accept_and_fill(self):
        swap = self.resolver.accept(self.bundle.order_artifact())
        return self.resolver.fill(swap.order_hash)

    def test_accept_registers(self):
        swap = self.resolver.accept(self.bundle.order_artifact())
        self.assertEqual(swap.phase, SwapPhase.CREATED)
        self.assertEqual(swap.order_hash, self.bundle.order_hash)

    def test_extra_data_is_pinned(self):
        self.resolver.accept(self.bundle.order_artifact())
        other = make_params(self.bundle.params.hashlock, offsets=(601, 3600, 14400, 18000))
        tampered = self.bundle.order_artifact().model_copy(update={"extraData": other.to_hex()})
        with self.assertRaises(AlreadyFilled):
            self.resolver.accept(tampered)

    def test_fill_uses_block_timestamp(self):
        swap = self.accept_and_fill()
        self.assertEqual(swap.phase, SwapPhase.FILLED)
        self.assertEqual(swap.deployed_at, T0)
        self.assertEqual(swap.escrow, ESCROW)
        args = self.gateway.fill_order.call_args[0]
        self.assertEqual(args[0], self.bundle.order)
        self.assertEqual(args[2], self.bundle.params.encode())

    def test_failed_fill_leaves_order_created(self):
        self.gateway.fill_order.return_value = EscrowTxResult(success=False, error="reverted")
        swap = self.resolver.accept(self.bundle.order_artifact())
        with self.assertRaises(LedgerCallFailed):
            self.resolver.fill(swap.order_hash)
        self.assertEqual(self.sm.get(swap.order_hash).phase, SwapPhase.CREATED)

    def test_withdraw_in_private_window(self):
        swap = self.accept_and_fill()
        now = swap.deadline(TimelockStage.WITHDRAWAL)
        swap = self.resolver.withdraw(swap.order_hash, SECRET, now=now)
        self.assertEqual(swap.phase, SwapPhase.WITHDRAWN)
        self.gateway.withdraw.assert_called_once()
        self.gateway.public_withdraw.assert_not_called()
        self.assertEqual(self.gateway.withdraw.call_args[0][0], ESCROW)

    def test_failed_withdraw_keeps_filled(self):
        swap = self.accept_and_fill()
        self.gateway.withdraw.return_value = EscrowTxResult(success=False, error="out of gas")
        with self.assertRaises(LedgerCallFailed):
            self.resolver.withdraw(swap.order_hash, SECRET, now=swap.deadline(TimelockStage.WITHDRAWAL))
        self.assertEqual(swap.phase, SwapPhase.FILLED)

    def test_stranger_uses_public_withdraw(self):
        swap = self.accept_and_fill()
        other = Resolver(self.sm, self.gateway, caller=STRANGER.address)
        other.withdraw(swap.order_hash, SECRET, now=swap.deadline(TimelockStage.PUBLIC_WITHDRAWAL))
        self.gateway.public_withdraw.assert_called_once()

    def test_resolver_cancels_source_only_publicly(self):
        swap = self.accept_and_fill()
        with self.assertRaises(UnauthorizedCaller):
            self.resolver.cancel(swap.order_hash, now=swap.deadline(TimelockStage.CANCELLATION))
        self.gateway.cancel.assert_not_called()

        swap = self.resolver.cancel(swap.order_hash,
                                    now=swap.deadline(TimelockStage.PUBLIC_CANCELLATION))
        self.assertEqual(swap.phase, SwapPhase.CANCELLED)
        self.gateway.public_cancel.assert_called_once()

    def test_escrow_record_restores_same_immutables(self):
        swap = self.accept_and_fill()
        record = self.resolver.escrow_record(swap.order_hash)
        self.assertEqual(record.deployedAt, str(T0))

        fresh = Resolver(SwapStateMachine(self.domain), mock_gateway(), caller=RESOLVER.address)
        restored = fresh.restore(self.bundle.order_artifact(), record)
        self.assertEqual(restored.phase, SwapPhase.FILLED)
        self.assertEqual(restored.immutables.hash(), swap.immutables.hash())
        self.assertEqual(restored.escrow, ESCROW)

    def test_restore_refuses_other_leg(self):
        swap = self.accept_and_fill()
        record = self.resolver.escrow_record(swap.order_hash).model_copy(update={"side": "destination"})
        fresh = Resolver(SwapStateMachine(self.domain), mock_gateway(), caller=RESOLVER.address)
        with self.assertRaises(InvalidOrder):
            fresh.restore(self.bundle.order_artifact(), record)

    def test_fill_checks_ledger_order_hash_first(self):
        self.accept_and_fill()
        self.gateway.hash_order.assert_called_once_with(self.bundle.order)

    def test_ledger_hash_mismatch_sends_nothing(self):
        self.gateway.hash_order.side_effect = None
        self.gateway.hash_order.return_value = b"\x99" * 32
        swap = self.resolver.accept(self.bundle.order_artifact())
        with self.assertRaises(SignatureInvalid) as ctx:
            self.resolver.fill(swap.order_hash)
        self.assertEqual(ctx.exception.order_hash, to_hex(swap.order_hash))
        self.gateway.fill_order.assert_not_called()
        self.assertEqual(swap.phase, SwapPhase.CREATED)

    def test_hash_order_call_failure(self):
        self.gateway.hash_order.side_effect = Exception("connection refused")
        swap = self.resolver.accept(self.bundle.order_artifact())
        with self.assertRaises(LedgerCallFailed):
            self.resolver.fill(swap.order_hash)
        self.gateway.fill_order.assert_not_called()

    def test_restore_refuses_other_source_timelocks(self):
        swap = self.accept_and_fill()
        other = Timelocks.from_offsets((601, 3600, 14400, 18000), deployed_at=T0)
        record = self.resolver.escrow_record(swap.order_hash).model_copy(
            update={"timelocks": str(other.pack())})
        fresh = Resolver(SwapStateMachine(self.domain), mock_gateway(), caller=RESOLVER.address)
        with self.assertRaises(InvalidTimelocks):
            fresh.restore(self.bundle.order_artifact(), record)


class TestDestinationResolver(unittest.TestCase):
    """
    Destination leg: createDstEscrow funded by the resolver, deployed no
    later than the source leg allows.
    """

    SRC_CANCEL = T0 + DEFAULT_SRC_OFFSETS[2]    # Source escrow deployed at T0

    def setUp(self):
        self.domain = make_domain()
        self.gateway = mock_gateway()
        self.sm = SwapStateMachine(self.domain, side=EscrowSide.DESTINATION, ledger_name="dst")
        self.resolver = Resolver(self.sm, self.gateway, caller=RESOLVER.address)

    def fill(self, bundle, src_cancellation=SRC_CANCEL):
        swap = self.resolver.accept(bundle.order_artifact())
        return self.resolver.fill(swap.order_hash, src_cancellation=src_cancellation)

    def test_erc20_fill_approves_factory(self):
        bundle = make_bundle(self.domain, deposits=5)
        swap = self.fill(bundle)

        self.gateway.fill_order.assert_not_called()
        self.gateway.hash_order.assert_not_called()
        (plan, src_cancellation), kwargs = self.gateway.create_dst_escrow.call_args
        self.assertEqual(src_cancellation, self.SRC_CANCEL)
        self.assertEqual(kwargs["value"], 5)
        self.assertEqual(plan.maker, MAKER.address)
        self.assertEqual(plan.taker, RESOLVER.address)
        self.assertEqual(plan.timelocks.deployed_at, 0)

        token, amount = self.gateway.ensure_allowance.call_args[0]
        self.assertEqual(token, plan.token)
        self.assertEqual(amount, 99_000_000)

        self.assertEqual(swap.phase, SwapPhase.FILLED)
        self.assertEqual(swap.immutables.timelocks.deployed_at, T0)
        self.assertEqual(swap.src_cancellation, self.SRC_CANCEL)

    def test_native_fill_sends_amount_and_deposit(self):
        bundle = make_bundle(self.domain, dst_token=ZERO_ADDRESS, deposits=5, taking_amount=99)
        self.fill(bundle)

        self.gateway.ensure_allowance.assert_not_called()
        self.assertEqual(self.gateway.create_dst_escrow.call_args[1]["value"], 104)

    def test_failed_approval_sends_nothing(self):
        self.gateway.ensure_allowance.return_value = EscrowTxResult(success=False, error="No signing key")
        bundle = make_bundle(self.domain)
        with self.assertRaises(LedgerCallFailed):
            self.fill(bundle)
        self.gateway.create_dst_escrow.assert_not_called()
        self.assertEqual(self.sm.get(bundle.order_hash).phase, SwapPhase.CREATED)

    def test_source_cancellation_required(self):
        bundle = make_bundle(self.domain)
        with self.assertRaises(InvalidTimelocks):
            self.fill(bundle, src_cancellation=0)
        self.gateway.create_dst_escrow.assert_not_called()
        self.gateway.ensure_allowance.assert_not_called()

    def test_late_deployment_refused_before_sending(self):
        self.gateway.get_current_time.return_value = T0 + 7000
        bundle = make_bundle(self.domain)
        with self.assertRaises(InvalidTimelocks):
            self.fill(bundle)
        self.gateway.create_dst_escrow.assert_not_called()
        self.assertEqual(self.sm.get(bundle.order_hash).phase, SwapPhase.CREATED)

    def test_late_confirmation_not_committed(self):
        # Safe when sent, mined 7000s after the source escrow
        self.gateway.create_dst_escrow.return_value = ok(block_timestamp=T0 + 7000)
        bundle = make_bundle(self.domain)
        with self.assertRaises(InvalidTimelocks):
            self.fill(bundle)
        swap = self.sm.get(bundle.order_hash)
        self.assertEqual(swap.phase, SwapPhase.CREATED)
        self.assertIsNone(swap.immutables)

    def test_record_keeps_deployed_timelocks(self):
        bundle = make_bundle(self.domain)
        swap = self.fill(bundle)
        record = self.resolver.escrow_record(swap.order_hash)
        self.assertEqual(record.timelocks, str(swap.immutables.timelocks.pack()))
        self.assertEqual(record.srcCancellation, str(self.SRC_CANCEL))

        # Offsets reconfigured between fill and withdraw
        config = SwapConfig(dst_offsets=(60, 120, 600, 900))
        fresh = Resolver(SwapStateMachine(self.domain, side=EscrowSide.DESTINATION, config=config),
                         mock_gateway(), caller=RESOLVER.address)
        restored = fresh.restore(bundle.order_artifact(), record)

        self.assertEqual(restored.immutables.hash(), swap.immutables.hash())
        self.assertEqual(restored.immutables.timelocks.offsets, DEFAULT_DST_OFFSETS)
        self.assertEqual(restored.deadline(TimelockStage.CANCELLATION), T0 + DEFAULT_DST_OFFSETS[2])

    def test_restore_refuses_inconsistent_record(self):
        bundle = make_bundle(self.domain)
        swap = self.fill(bundle)
        record = self.resolver.escrow_record(swap.order_hash).model_copy(
            update={"deployedAt": str(T0 + 1)})
        fresh = Resolver(SwapStateMachine(self.domain, side=EscrowSide.DESTINATION),
                         mock_gateway(), caller=RESOLVER.address)
        with self.assertRaises(InvalidOrder):
            fresh.restore(bundle.order_artifact(), record)


if __name__ == "__main__":
    unittest.main(verbosity=2)
