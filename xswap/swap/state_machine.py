"""
Swap state machine for one escrow leg.

Each ledger hosting an escrow runs its own instance; the two are linked
only by the secret, which becomes public when the first leg is withdrawn.

    CREATED --fill--> FILLED --withdraw--> WITHDRAWN
                             `--cancel---> CANCELLED

WITHDRAWN and CANCELLED are terminal. Every rejection is a pure decision:
the instance is left unchanged and the raised TransitionRejected names the
failed precondition.

Window rules (deadlines from the escrow's packed timelocks):

    withdraw   [WITHDRAWAL, CANCELLATION)          secret required
               [WITHDRAWAL, PUBLIC_WITHDRAWAL)     taker only
    cancel     [CANCELLATION, ...)                 no prior withdraw
               [CANCELLATION, PUBLIC_CANCELLATION) depositor only

A destination escrow must also cancel at least leg_cancel_min_gap seconds
before the source escrow (see check_leg_window).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, List

from ..config import SwapConfig
from ..core import (
    SwapPhase, EscrowSide, TERMINAL_PHASES,
    SwapNotFound, DuplicateHashlock,
    SignatureInvalid, AlreadyFilled, AlreadyTerminal, NotFilled,
    WindowNotOpen, WindowClosed, UnauthorizedCaller, HashlockMismatch, InvalidTimelocks,
    BytesLike, hex_to_bytes, to_hex, same_address,
)
from ..htlc.escrow import EscrowImmutables
from ..htlc.secret import verify_secret
from ..htlc.timelocks import TimelockStage, Timelocks
from ..order.order import Order, OrderDomain, order_hash as compute_order_hash, verify_order_signature
from ..order.params import CrossChainParams
from .reveal import RevealBoard, PendingReveal, RevealSource

log = logging.getLogger(__name__)


@dataclass
class TransitionRecord:
    """One committed transition."""
    from_phase: SwapPhase
    to_phase: SwapPhase
    at: int
    caller: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "from": self.from_phase.value,
            "to": self.to_phase.value,
            "at": self.at,
            "caller": self.caller,
        }


@dataclass
class SwapInstance:
    """Per-leg swap record. Terminal records stay queryable."""
    order: Order
    signature: bytes
    params: CrossChainParams
    side: EscrowSide
    order_hash: bytes
    params_hash: bytes
    phase: SwapPhase = SwapPhase.CREATED

    immutables: Optional[EscrowImmutables] = None
    deployed_at: Optional[int] = None
    escrow: Optional[str] = None          # Escrow contract address on this ledger
    fill_tx: Optional[str] = None
    src_cancellation: Optional[int] = None  # Source escrow cancel deadline (destination leg)

    revealed_secret: Optional[bytes] = None
    recipient: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[int] = None

    history: List[TransitionRecord] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def hashlock(self) -> bytes:
        return self.params.hashlock

    @property
    def depositor(self) -> Optional[str]:
        """Who funded the escrow and gets it back on cancel."""
        if self.immutables is None:
            return None
        if self.side == EscrowSide.SOURCE:
            return self.immutables.maker
        return self.immutables.taker

    @property
    def beneficiary(self) -> Optional[str]:
        """Who receives the escrowed funds on withdraw."""
        if self.immutables is None:
            return None
        if self.side == EscrowSide.SOURCE:
            return self.immutables.taker
        return self.immutables.maker

    def deadline(self, stage: TimelockStage) -> Optional[int]:
        if self.immutables is None:
            return None
        return self.immutables.timelocks.deadline(stage)

    def to_dict(self) -> Dict:
        return {
            "order_hash": to_hex(self.order_hash),
            "side": self.side.value,
            "phase": self.phase.value,
            "maker": self.order.maker,
            "hashlock": to_hex(self.hashlock),
            "params_hash": to_hex(self.params_hash),
            "deployed_at": self.deployed_at,
            "escrow": self.escrow,
            "fill_tx": self.fill_tx,
            "src_cancellation": self.src_cancellation,
            "immutables": self.immutables.to_dict() if self.immutables else None,
            "deadlines": {
                stage.name.lower(): self.deadline(stage) for stage in TimelockStage
            } if self.immutables else None,
            "revealed_secret": to_hex(self.revealed_secret) if self.revealed_secret else None,
            "recipient": self.recipient,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at,
            "history": [h.to_dict() for h in self.history],
        }


class SwapStateMachine:
    """
    Tracks swap instances for one escrow leg on one ledger.

    Instances are keyed by order hash and are independent of one another.
    Replay protection here mirrors the ledger's own: the ledger's transaction
    ordering decides which of two concurrent fills wins, this class only
    refuses to fill an order it has already seen filled.
    """

    def __init__(
        self,
        domain: OrderDomain,
        side: EscrowSide = EscrowSide.SOURCE,
        config: SwapConfig = None,
        reveals: RevealBoard = None,
        ledger_name: str = "",
    ):
        self.domain = domain
        self.side = side
        self.config = config or SwapConfig()
        self.reveals = reveals
        self.ledger_name = ledger_name or side.value

        self._swaps: Dict[bytes, SwapInstance] = {}
        self._hashlocks: Dict[bytes, bytes] = {}  # hashlock -> order hash

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, order_hash: BytesLike) -> SwapInstance:
        key = hex_to_bytes(order_hash, 32)
        swap = self._swaps.get(key)
        if swap is None:
            raise SwapNotFound(f"No swap for order {to_hex(key)}")
        return swap

    def find(self, order_hash: BytesLike) -> Optional[SwapInstance]:
        try:
            return self.get(order_hash)
        except (SwapNotFound, ValueError):
            return None

    def find_by_hashlock(self, hashlock: BytesLike) -> Optional[SwapInstance]:
        key = self._hashlocks.get(hex_to_bytes(hashlock, 32))
        return self._swaps.get(key) if key else None

    def all_swaps(self) -> List[SwapInstance]:
        return list(self._swaps.values())

    def active_swaps(self) -> List[SwapInstance]:
        """Swaps not yet withdrawn or cancelled."""
        return [s for s in self._swaps.values() if not s.is_terminal]

    def leg_timelocks(self, swap: SwapInstance) -> Timelocks:
        """
        Window offsets for this leg. The source leg uses the set carried in
        extraData; the destination leg uses the configured dst offsets.
        """
        if self.side == EscrowSide.SOURCE:
            return swap.params.timelocks
        return Timelocks.from_offsets(self.config.dst_offsets)

    # =========================================================================
    # Created
    # =========================================================================

    def register(self, order: Order, signature: BytesLike,
                 params: CrossChainParams) -> SwapInstance:
        """
        Record a signed order (CREATED).

        Re-registering the same order with the same extraData returns the
        existing instance.

        Raises:
            InvalidOrder: order fields fail validation
            AlreadyFilled: order was already filled, or extraData differs
            DuplicateHashlock: another order already uses this hashlock
        """
        order.validate(reject_self_swap=self.config.reject_self_swap)
        oh = compute_order_hash(order, self.domain)
        ph = params.params_hash()

        existing = self._swaps.get(oh)
        if existing is not None:
            if existing.params_hash != ph:
                raise AlreadyFilled(
                    "Order already registered with different extraData",
                    order_hash=to_hex(oh),
                )
            if existing.phase != SwapPhase.CREATED:
                raise AlreadyFilled(
                    f"Order already {existing.phase.value}", order_hash=to_hex(oh)
                )
            return existing

        other = self._hashlocks.get(params.hashlock)
        if other is not None and other != oh:
            raise DuplicateHashlock(
                f"Hashlock {to_hex(params.hashlock)[:18]}... already used by order {to_hex(other)}"
            )

        swap = SwapInstance(
            order=order,
            signature=hex_to_bytes(signature, 65),
            params=params,
            side=self.side,
            order_hash=oh,
            params_hash=ph,
        )
        self._swaps[oh] = swap
        self._hashlocks[params.hashlock] = oh
        log.info(f"[{self.ledger_name}] Registered order {to_hex(oh)[:18]}... "
                 f"maker={order.maker} making={order.making_amount} taking={order.taking_amount}")
        return swap

    # =========================================================================
    # CREATED -> FILLED
    # =========================================================================

    def check_fill(self, order_hash: BytesLike) -> SwapInstance:
        """Dry-run of fill(); raises the rejection fill() would raise."""
        swap = self.get(order_hash)
        oh = to_hex(swap.order_hash)

        if swap.phase != SwapPhase.CREATED:
            raise AlreadyFilled(f"Order already {swap.phase.value}", order_hash=oh)

        if not verify_order_signature(swap.order, self.domain, swap.signature):
            raise SignatureInvalid(
                f"Signature does not recover to maker {swap.order.maker}", order_hash=oh
            )

        try:
            self.leg_timelocks(swap).validate_ordering()
        except InvalidTimelocks as e:
            e.order_hash = oh
            raise
        return swap

    def check_leg_window(self, swap: SwapInstance, deployed_at: int,
                         src_cancellation: Optional[int],
                         timelocks: Optional[Timelocks] = None) -> None:
        """
        Destination leg only: an escrow deployed at `deployed_at` must become
        cancellable at least leg_cancel_min_gap seconds before the source
        escrow does.

        Raises:
            InvalidTimelocks: src_cancellation missing or the gap too small
        """
        if self.side != EscrowSide.DESTINATION:
            return
        oh = to_hex(swap.order_hash)
        if not src_cancellation or src_cancellation <= 0:
            raise InvalidTimelocks(
                "Destination fill needs the source escrow's cancellation deadline", order_hash=oh
            )

        leg = timelocks or self.leg_timelocks(swap)
        dst_cancel = deployed_at + leg.cancellation
        latest = src_cancellation - self.config.leg_cancel_min_gap
        if dst_cancel > latest:
            raise InvalidTimelocks(
                f"Destination escrow deployed at {deployed_at} cancels at {dst_cancel}, "
                f"after {latest} ({self.config.leg_cancel_min_gap}s before source "
                f"cancellation {src_cancellation})",
                order_hash=oh,
            )

    def fill(self, order_hash: BytesLike, taker: str, now: int,
             src_cancellation: Optional[int] = None,
             timelocks: Optional[Timelocks] = None) -> SwapInstance:
        """
        Resolver filled the order and the escrow is deployed at ledger time
        `now`. Fixes deployed_at and derives the escrow immutables.

        Args:
            order_hash: Order to fill
            taker: Resolver address that deployed the escrow
            now: Block timestamp of the deployment
            src_cancellation: Source escrow cancellation deadline; required
                on the destination leg
            timelocks: Window offsets the escrow was deployed with, when
                restoring from a fill record. The source leg only accepts
                the extraData offsets.

        Raises:
            SwapNotFound, AlreadyFilled, SignatureInvalid, InvalidTimelocks
        """
        swap = self.check_fill(order_hash)
        leg = self._fill_timelocks(swap, timelocks)
        self.check_leg_window(swap, now, src_cancellation, leg)

        immutables = EscrowImmutables.derive(
            self.side, swap.order, swap.order_hash, swap.params, taker, now,
            timelocks=leg,
        )
        swap.immutables = immutables
        swap.deployed_at = now
        if self.side == EscrowSide.DESTINATION:
            swap.src_cancellation = src_cancellation
        self._commit(swap, SwapPhase.FILLED, now, taker)

        log.info(f"[{self.ledger_name}] Filled {to_hex(swap.order_hash)[:18]}... "
                 f"taker={taker} deployed_at={now} "
                 f"withdraw>={swap.deadline(TimelockStage.WITHDRAWAL)} "
                 f"cancel>={swap.deadline(TimelockStage.CANCELLATION)}")
        return swap

    def _fill_timelocks(self, swap: SwapInstance, timelocks: Optional[Timelocks]) -> Timelocks:
        leg = self.leg_timelocks(swap)
        if timelocks is None:
            return leg
        oh = to_hex(swap.order_hash)
        if self.side == EscrowSide.SOURCE and timelocks.offsets != leg.offsets:
            raise InvalidTimelocks(
                f"Timelocks {timelocks.offsets} differ from extraData {leg.offsets}", order_hash=oh
            )
        try:
            timelocks.validate_ordering()
        except InvalidTimelocks as e:
            e.order_hash = oh
            raise
        return timelocks.with_deployed_at(0)

    # =========================================================================
    # FILLED -> WITHDRAWN
    # =========================================================================

    def _require_filled(self, swap: SwapInstance, action: str) -> None:
        oh = to_hex(swap.order_hash)
        if swap.is_terminal:
            raise AlreadyTerminal(
                f"Cannot {action}: swap already {swap.phase.value}", order_hash=oh
            )
        if swap.phase != SwapPhase.FILLED:
            raise NotFilled(f"Cannot {action}: order not filled yet", order_hash=oh)

    def check_withdraw(self, order_hash: BytesLike, secret: BytesLike,
                       caller: str, now: int) -> SwapInstance:
        """Dry-run of withdraw(); raises the rejection withdraw() would raise."""
        swap = self.get(order_hash)
        self._require_filled(swap, "withdraw")
        oh = to_hex(swap.order_hash)

        opens = swap.deadline(TimelockStage.WITHDRAWAL)
        public_opens = swap.deadline(TimelockStage.PUBLIC_WITHDRAWAL)
        closes = swap.deadline(TimelockStage.CANCELLATION)

        if now < opens:
            raise WindowNotOpen(
                f"Withdraw window opens at {opens} ({opens - now}s from now)", order_hash=oh
            )
        if now >= closes:
            raise WindowClosed(
                f"Withdraw window closed at {closes}; only cancel remains", order_hash=oh
            )
        if now < public_opens and not same_address(caller, swap.immutables.taker):
            raise UnauthorizedCaller(
                f"Only taker {swap.immutables.taker} may withdraw before {public_opens}",
                order_hash=oh,
            )
        if not verify_secret(secret, swap.immutables.hashlock):
            raise HashlockMismatch("Secret does not match hashlock", order_hash=oh)
        return swap

    def withdraw(self, order_hash: BytesLike, secret: BytesLike,
                 caller: str, now: int, tx_hash: Optional[str] = None) -> SwapInstance:
        """
        Release funds to the beneficiary and publish the secret.

        Raises:
            SwapNotFound, AlreadyTerminal, NotFilled, WindowNotOpen,
            WindowClosed, UnauthorizedCaller, HashlockMismatch
        """
        swap = self.check_withdraw(order_hash, secret, caller, now)

        swap.revealed_secret = hex_to_bytes(secret, 32)
        swap.recipient = swap.beneficiary
        swap.resolved_by = caller
        swap.resolved_at = now
        self._commit(swap, SwapPhase.WITHDRAWN, now, caller)

        log.info(f"[{self.ledger_name}] Withdrawn {to_hex(swap.order_hash)[:18]}... "
                 f"to {swap.recipient} by {caller}")

        if self.reveals is not None:
            self.reveals.publish(PendingReveal(
                hashlock=swap.immutables.hashlock,
                secret=swap.revealed_secret,
                order_hash=swap.order_hash,
                source=RevealSource.LEDGER_WITHDRAW,
                ledger=self.ledger_name,
                tx_hash=tx_hash,
                revealed_at=now,
            ))
        return swap

    # =========================================================================
    # FILLED -> CANCELLED
    # =========================================================================

    def check_cancel(self, order_hash: BytesLike, caller: str, now: int) -> SwapInstance:
        """Dry-run of cancel(); raises the rejection cancel() would raise."""
        swap = self.get(order_hash)
        self._require_filled(swap, "cancel")
        oh = to_hex(swap.order_hash)

        opens = swap.deadline(TimelockStage.CANCELLATION)
        public_opens = swap.deadline(TimelockStage.PUBLIC_CANCELLATION)

        if now < opens:
            raise WindowNotOpen(
                f"Cancel window opens at {opens} ({opens - now}s from now)", order_hash=oh
            )
        if now < public_opens and not same_address(caller, swap.depositor):
            raise UnauthorizedCaller(
                f"Only depositor {swap.depositor} may cancel before {public_opens}",
                order_hash=oh,
            )
        return swap

    def cancel(self, order_hash: BytesLike, caller: str, now: int) -> SwapInstance:
        """
        Return funds to the depositor.

        Raises:
            SwapNotFound, AlreadyTerminal, NotFilled, WindowNotOpen,
            UnauthorizedCaller
        """
        swap = self.check_cancel(order_hash, caller, now)

        swap.recipient = swap.depositor
        swap.resolved_by = caller
        swap.resolved_at = now
        self._commit(swap, SwapPhase.CANCELLED, now, caller)

        log.info(f"[{self.ledger_name}] Cancelled {to_hex(swap.order_hash)[:18]}... "
                 f"refund to {swap.recipient} by {caller}")
        return swap

    # =========================================================================
    # Internal
    # =========================================================================

    def _commit(self, swap: SwapInstance, to_phase: SwapPhase, at: int,
                caller: Optional[str]) -> None:
        swap.history.append(TransitionRecord(swap.phase, to_phase, at, caller))
        swap.phase = to_phase
