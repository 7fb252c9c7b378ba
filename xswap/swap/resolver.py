"""
Resolver flow: accept a maker's artifact, fill it, settle the escrow.

Each call first asks the state machine whether the transition is allowed
at current ledger time (dry run), then sends the escrow transaction, and
only commits the transition once the gateway reports it confirmed. A
rejected or failed call leaves the swap record unchanged.
"""

import logging
from typing import Optional

from ..config import LedgerConfig, SwapConfig
from ..core import (
    LedgerCallFailed, AlreadyFilled, NotFilled, InvalidOrder, ConfigError,
    SignatureInvalid, InvalidTimelocks,
    BytesLike, SwapPhase, EscrowSide, ZERO_ADDRESS,
    hex_to_bytes, to_hex, same_address,
)
from ..chains.base import EscrowLedgerGateway, EscrowTxResult
from ..chains.evm import EVMGateway
from ..htlc.escrow import EscrowImmutables
from ..htlc.timelocks import TimelockStage, Timelocks
from ..order.artifacts import OrderArtifact, EscrowArtifact, artifact_to_bundle
from ..order.order import OrderDomain, order_hash as compute_order_hash
from .reveal import RevealBoard
from .state_machine import SwapStateMachine, SwapInstance

log = logging.getLogger(__name__)


class Resolver:
    """
    Drives one leg's escrow through its gateway.

    Args:
        machine: State machine for this leg
        gateway: Ledger gateway for this leg
        caller: Address transactions are sent from (the escrow taker)
    """

    def __init__(self, machine: SwapStateMachine, gateway: EscrowLedgerGateway, caller: str):
        self.machine = machine
        self.gateway = gateway
        self.caller = caller

    @property
    def ledger_name(self) -> str:
        return self.machine.ledger_name

    # =========================================================================
    # Accept
    # =========================================================================

    def accept(self, artifact: OrderArtifact) -> SwapInstance:
        """
        Decode, register and pre-check a maker's order artifact.

        The first accepted extraData is pinned: a later artifact for the
        same order with different extraData is refused.

        Raises:
            InvalidOrder, AlreadyFilled, DuplicateHashlock,
            SignatureInvalid, InvalidTimelocks
        """
        order, signature, params = artifact_to_bundle(artifact)

        existing = self.machine.find(compute_order_hash(order, self.machine.domain))
        if existing is not None and existing.params_hash != params.params_hash():
            raise AlreadyFilled(
                f"extraData hash {to_hex(params.params_hash())[:18]}... does not match "
                f"registered {to_hex(existing.params_hash)[:18]}...",
                order_hash=to_hex(existing.order_hash),
            )

        swap = self.machine.register(order, signature, params)
        if swap.phase == SwapPhase.CREATED:
            self.machine.check_fill(swap.order_hash)
        return swap

    # =========================================================================
    # Fill
    # =========================================================================

    def fill(self, order_hash: BytesLike, src_cancellation: int = 0) -> SwapInstance:
        """
        Deploy this leg's escrow and commit CREATED -> FILLED using the block
        timestamp of the deployment as deployed_at.

        Source leg: the ledger's hashOrder must match the local EIP-712
        digest, then fillOrder on the limit order contract.
        Destination leg: createDstEscrow on the factory, funded by the caller
        with the safety deposit plus, for a native token, the amount (an
        ERC20 amount is approved to the factory instead). `src_cancellation`
        is the source escrow's cancellation deadline and is required; the
        escrow must become cancellable leg_cancel_min_gap seconds before it.

        Raises:
            TransitionRejected: state machine refused the fill
            LedgerCallFailed: deployment transaction failed
        """
        swap = self.machine.check_fill(order_hash)
        oh = to_hex(swap.order_hash)

        log.info(f"[{self.ledger_name}] Filling {oh[:18]}... ({self.machine.side.value} leg)")
        if self.machine.side == EscrowSide.SOURCE:
            self._check_ledger_hash(swap)
            result = self.gateway.fill_order(swap.order, swap.signature, swap.params.encode())
        else:
            self.machine.check_leg_window(swap, self.gateway.get_current_time(), src_cancellation)
            result = self._create_dst_escrow(swap, src_cancellation)
        self._require_success(result, "fill")

        deployed_at = result.block_timestamp
        if deployed_at is None:
            deployed_at = self.gateway.get_current_time()

        try:
            swap = self.machine.fill(swap.order_hash, self.caller, deployed_at,
                                     src_cancellation=src_cancellation or None)
        except InvalidTimelocks:
            log.error(f"[{self.ledger_name}] Escrow for {oh[:18]}... deployed in {result.tx_hash} "
                      f"at {deployed_at} is outside the safe window; cancel it once it expires")
            raise
        swap.fill_tx = result.tx_hash
        swap.escrow = self.gateway.escrow_address(swap.immutables, self.machine.side)
        log.info(f"[{self.ledger_name}] Escrow for {oh[:18]}... at {swap.escrow}")
        return swap

    def escrow_record(self, order_hash: BytesLike) -> EscrowArtifact:
        """Fill record for a filled swap (see restore())."""
        swap = self.machine.get(order_hash)
        if swap.immutables is None:
            raise NotFilled("Order not filled yet", order_hash=to_hex(swap.order_hash))
        return EscrowArtifact(
            orderHash=to_hex(swap.order_hash),
            side=swap.side.value,
            escrow=swap.escrow or "",
            taker=swap.immutables.taker,
            deployedAt=str(swap.deployed_at),
            timelocks=str(swap.immutables.timelocks.pack()),
            srcCancellation=str(swap.src_cancellation) if swap.src_cancellation else None,
            fillTx=swap.fill_tx,
        )

    def restore(self, artifact: OrderArtifact, record: EscrowArtifact) -> SwapInstance:
        """
        Rebuild a filled swap from its order artifact and fill record.
        The windows come from the record's packed timelocks, so the result
        matches the deployed escrow even if the configured offsets changed
        since the fill.

        Raises:
            InvalidOrder: record belongs to another order or leg, or is
                internally inconsistent
            InvalidTimelocks: recorded windows are unusable for this leg
        """
        swap = self.accept(artifact)
        if hex_to_bytes(record.orderHash, 32) != swap.order_hash:
            raise InvalidOrder(f"Escrow record is for order {record.orderHash}, "
                               f"not {to_hex(swap.order_hash)}")
        if record.side != self.machine.side.value:
            raise InvalidOrder(f"Escrow record is for the {record.side} leg")

        timelocks = Timelocks.from_packed(int(record.timelocks))
        deployed_at = int(record.deployedAt)
        if timelocks.deployed_at != deployed_at:
            raise InvalidOrder(f"Escrow record timelocks deployed at {timelocks.deployed_at}, "
                               f"record says {deployed_at}")
        src_cancellation = int(record.srcCancellation) if record.srcCancellation else None

        swap = self.machine.fill(swap.order_hash, record.taker, deployed_at,
                                 src_cancellation=src_cancellation, timelocks=timelocks)
        swap.escrow = record.escrow or self.gateway.escrow_address(swap.immutables, self.machine.side)
        swap.fill_tx = record.fillTx
        return swap

    # =========================================================================
    # Settle
    # =========================================================================

    def withdraw(self, order_hash: BytesLike, secret: BytesLike,
                 now: Optional[int] = None) -> SwapInstance:
        """
        Withdraw with the secret, using publicWithdraw when the caller is
        not the escrow taker.

        Raises:
            TransitionRejected, LedgerCallFailed
        """
        now = self.gateway.get_current_time() if now is None else now
        swap = self.machine.check_withdraw(order_hash, secret, self.caller, now)

        if self._is_public(swap, TimelockStage.PUBLIC_WITHDRAWAL, swap.immutables.taker, now):
            result = self.gateway.public_withdraw(swap.escrow, secret, swap.immutables)
        else:
            result = self.gateway.withdraw(swap.escrow, secret, swap.immutables)
        self._require_success(result, "withdraw")

        at = result.block_timestamp if result.block_timestamp is not None else now
        return self.machine.withdraw(swap.order_hash, secret, self.caller, at, tx_hash=result.tx_hash)

    def cancel(self, order_hash: BytesLike, now: Optional[int] = None) -> SwapInstance:
        """
        Cancel and refund the depositor, using publicCancel when the caller
        is not the depositor.

        Raises:
            TransitionRejected, LedgerCallFailed
        """
        now = self.gateway.get_current_time() if now is None else now
        swap = self.machine.check_cancel(order_hash, self.caller, now)

        if self._is_public(swap, TimelockStage.PUBLIC_CANCELLATION, swap.depositor, now):
            result = self.gateway.public_cancel(swap.escrow, swap.immutables)
        else:
            result = self.gateway.cancel(swap.escrow, swap.immutables)
        self._require_success(result, "cancel")

        at = result.block_timestamp if result.block_timestamp is not None else now
        return self.machine.cancel(swap.order_hash, self.caller, at)

    # =========================================================================
    # Internal
    # =========================================================================

    def _check_ledger_hash(self, swap: SwapInstance) -> None:
        oh = to_hex(swap.order_hash)
        try:
            onchain = self.gateway.hash_order(swap.order)
        except Exception as e:
            log.error(f"[{self.ledger_name}] hashOrder failed: {e}")
            raise LedgerCallFailed(f"hashOrder failed: {e}") from e
        if hex_to_bytes(onchain, 32) != swap.order_hash:
            raise SignatureInvalid(
                f"Ledger hashes the order to {to_hex(onchain)}, local digest is {oh}; "
                f"check the EIP-712 domain",
                order_hash=oh,
            )

    def _create_dst_escrow(self, swap: SwapInstance, src_cancellation: int) -> EscrowTxResult:
        plan = EscrowImmutables.derive(
            self.machine.side, swap.order, swap.order_hash, swap.params, self.caller, 0,
            timelocks=self.machine.leg_timelocks(swap),
        )
        value = swap.params.deposits
        if same_address(plan.token, ZERO_ADDRESS):
            value += plan.amount
        else:
            approval = self.gateway.ensure_allowance(plan.token, plan.amount)
            self._require_success(approval, "approve")
        log.info(f"[{self.ledger_name}] createDstEscrow amount={plan.amount} value={value} "
                 f"src_cancellation={src_cancellation}")
        return self.gateway.create_dst_escrow(plan, src_cancellation, value=value)

    def _is_public(self, swap: SwapInstance, stage: TimelockStage,
                   private_party: str, now: int) -> bool:
        return now >= swap.deadline(stage) and not same_address(self.caller, private_party)

    def _require_success(self, result: EscrowTxResult, action: str) -> None:
        if not result.success:
            log.error(f"[{self.ledger_name}] {action} failed: {result.error}")
            raise LedgerCallFailed(f"{action} failed: {result.error}", tx_hash=result.tx_hash)


def order_domain_for(ledger: LedgerConfig, swap_config: SwapConfig = None) -> OrderDomain:
    """EIP-712 domain of the limit order contract on `ledger`."""
    swap_config = swap_config or SwapConfig()
    return OrderDomain(
        chain_id=ledger.chain_id,
        verifying_contract=ledger.limit_order_address,
        name=swap_config.protocol_name,
        version=swap_config.protocol_version,
    )


def build_resolver(ledger: LedgerConfig, swap_config: SwapConfig = None,
                   side: EscrowSide = EscrowSide.SOURCE,
                   reveals: Optional[RevealBoard] = None,
                   domain: Optional[OrderDomain] = None) -> Resolver:
    """
    Wire config -> gateway -> state machine -> resolver.

    `domain` is the order's signing domain. It defaults to this ledger's
    limit order contract, which is right for the source leg; the
    destination leg must pass the source ledger's domain.
    """
    swap_config = swap_config or SwapConfig()
    ledger.validate(require_key=True)
    gateway = EVMGateway(ledger)
    domain = domain or order_domain_for(ledger, swap_config)
    machine = SwapStateMachine(domain, side=side, config=swap_config,
                               reveals=reveals, ledger_name=ledger.name)
    return Resolver(machine, gateway, caller=gateway.signer.address)


def resolver_from_env(side: EscrowSide = EscrowSide.SOURCE, swap_config: SwapConfig = None,
                      reveals: Optional[RevealBoard] = None) -> Resolver:
    """
    Entry-point helper: this leg from RPC_URL / CHAIN_ID / ... and, for the
    destination leg, the order domain from SRC_CHAIN_ID / SRC_LIMIT_ORDER_ADDRESS.
    """
    swap_config = swap_config or SwapConfig()
    domain = None
    if side == EscrowSide.DESTINATION:
        src = LedgerConfig.from_env("SRC_")
        if not src.chain_id or not src.limit_order_address:
            raise ConfigError("Destination leg needs SRC_CHAIN_ID and SRC_LIMIT_ORDER_ADDRESS")
        domain = order_domain_for(src, swap_config)
    return build_resolver(LedgerConfig.from_env(), swap_config, side, reveals, domain)
