"""
Counterpart watcher.

Monitors filled swaps on one leg and:
1. Withdraws once the secret has been revealed on the other ledger
2. Cancels once the cancel window opens with no reveal in sight

Only reveals observed on a ledger are acted on. A secret handed over
off-chain never drives a withdrawal here.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, List, Callable

from ..config import SwapConfig
from ..core import (
    SwapPhase, TransitionRejected, LedgerCallFailed, to_hex,
)
from ..htlc.timelocks import TimelockStage
from .resolver import Resolver
from .reveal import RevealBoard
from .state_machine import SwapInstance

log = logging.getLogger(__name__)


@dataclass
class WatcherAction:
    """One transition the watcher committed."""
    order_hash: str
    action: str                  # "withdraw" | "cancel"
    phase: SwapPhase


class CounterpartWatcher:
    """
    Background loop settling one leg from reveals on the other.

    Args:
        resolver: Resolver bound to this leg's state machine and gateway
        reveals: Board the other leg publishes its reveals to
        config: poll_interval and auto_cancel
        on_action: Optional callback per committed action
    """

    def __init__(
        self,
        resolver: Resolver,
        reveals: RevealBoard,
        config: SwapConfig = None,
        on_action: Optional[Callable[[WatcherAction], None]] = None,
    ):
        self.resolver = resolver
        self.reveals = reveals
        self.config = config or SwapConfig()
        self.on_action = on_action

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def machine(self):
        return self.resolver.machine

    def start(self):
        """Start watcher in background thread."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(target=self._watch_loop, daemon=True)
        self._thread.start()
        log.info(f"[{self.resolver.ledger_name}] Counterpart watcher started")

    def stop(self):
        """Stop watcher."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=5)
        log.info(f"[{self.resolver.ledger_name}] Counterpart watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _watch_loop(self):
        last_check = 0.0
        while self._running:
            if time.time() - last_check >= self.config.poll_interval:
                try:
                    self.poll_once()
                except Exception as e:
                    log.error(f"Watcher error: {e}")
                last_check = time.time()
            time.sleep(1)

    # =========================================================================
    # One pass
    # =========================================================================

    def poll_once(self, now: Optional[int] = None) -> List[WatcherAction]:
        """
        Check every filled swap on this leg once.

        Returns:
            Actions committed during this pass
        """
        with self._lock:
            if now is None:
                now = self.resolver.gateway.get_current_time()

            actions = []
            for swap in self.machine.active_swaps():
                if swap.phase != SwapPhase.FILLED:
                    continue
                action = self._settle(swap, now)
                if action is not None:
                    actions.append(action)
                    if self.on_action:
                        self.on_action(action)
            return actions

    def _settle(self, swap: SwapInstance, now: int) -> Optional[WatcherAction]:
        oh = to_hex(swap.order_hash)
        reveal = self.reveals.get(swap.hashlock)

        if reveal is not None and not reveal.source.is_onchain:
            log.debug(f"Ignoring {reveal.source.value} reveal for {oh[:18]}...")
            reveal = None

        if reveal is not None and not reveal.consumed:
            if now < swap.deadline(TimelockStage.WITHDRAWAL):
                return None
            if now < swap.deadline(TimelockStage.CANCELLATION):
                return self._try(swap, "withdraw",
                                 lambda: self.resolver.withdraw(swap.order_hash, reveal.secret, now),
                                 on_success=lambda: self.reveals.mark_consumed(swap.hashlock))
            log.warning(f"Reveal for {oh[:18]}... arrived after the withdraw window closed")

        if self.config.auto_cancel and now >= swap.deadline(TimelockStage.CANCELLATION):
            return self._try(swap, "cancel", lambda: self.resolver.cancel(swap.order_hash, now))
        return None

    def _try(self, swap: SwapInstance, action: str, call,
             on_success: Optional[Callable[[], None]] = None) -> Optional[WatcherAction]:
        oh = to_hex(swap.order_hash)
        try:
            updated = call()
        except TransitionRejected as e:
            level = logging.DEBUG if e.retriable else logging.WARNING
            log.log(level, f"{action} for {oh[:18]}... rejected: {e}")
            return None
        except LedgerCallFailed as e:
            log.warning(f"{action} for {oh[:18]}... not confirmed: {e}")
            return None

        if on_success:
            on_success()
        log.info(f"[{self.resolver.ledger_name}] Watcher {action} committed for {oh[:18]}...")
        return WatcherAction(order_hash=oh, action=action, phase=updated.phase)
