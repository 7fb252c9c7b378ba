"""
Pending-reveal channel between the two legs of a swap.

When a withdraw succeeds on one ledger the secret becomes public there.
That fact is recorded as a PendingReveal on a RevealBoard; the observer of
the other leg polls the board (or subscribes) and uses the secret to
withdraw on its own ledger.

RULE: a counterpart withdrawal may only be driven by a secret observed on a
ledger. A secret read from a local file would let the second leg settle
before the first, which breaks atomicity.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, List, Callable

from ..core import BytesLike, hex_to_bytes, to_hex
from ..htlc.secret import verify_secret

log = logging.getLogger(__name__)


class RevealSource(Enum):
    """Where a secret was observed."""
    LEDGER_WITHDRAW = "ledger_withdraw"   # Committed withdraw on an escrow
    LEDGER_EVENT = "ledger_event"         # Withdrawal event read from chain logs
    MAKER = "maker"                       # Maker handed it over off-chain

    @property
    def is_onchain(self) -> bool:
        return self in (RevealSource.LEDGER_WITHDRAW, RevealSource.LEDGER_EVENT)


@dataclass
class PendingReveal:
    """A revealed secret waiting to be consumed on the counterpart leg."""
    hashlock: bytes
    secret: bytes
    order_hash: bytes
    source: RevealSource
    ledger: str = ""
    tx_hash: Optional[str] = None
    revealed_at: int = field(default_factory=lambda: int(time.time()))
    consumed: bool = False

    def __post_init__(self):
        self.hashlock = hex_to_bytes(self.hashlock, 32)
        self.secret = hex_to_bytes(self.secret, 32)
        self.order_hash = hex_to_bytes(self.order_hash, 32)

    def is_valid(self) -> bool:
        return verify_secret(self.secret, self.hashlock)

    def to_dict(self) -> Dict:
        return {
            "hashlock": to_hex(self.hashlock),
            "secret": to_hex(self.secret),
            "order_hash": to_hex(self.order_hash),
            "source": self.source.value,
            "ledger": self.ledger,
            "tx_hash": self.tx_hash,
            "revealed_at": self.revealed_at,
            "consumed": self.consumed,
        }


class RevealBoard:
    """
    In-process registry of revealed secrets, keyed by hashlock.

    Thread-safe; subscribers are called outside the lock.
    """

    def __init__(self):
        self._reveals: Dict[bytes, PendingReveal] = {}
        self._subscribers: List[Callable[[PendingReveal], None]] = []
        self._lock = threading.Lock()

    def publish(self, reveal: PendingReveal) -> bool:
        """
        Record a reveal. Returns False if the secret does not open the
        hashlock or the hashlock is already on the board.
        """
        if not reveal.is_valid():
            log.warning(f"Rejected reveal for {to_hex(reveal.hashlock)[:18]}...: secret mismatch")
            return False

        with self._lock:
            if reveal.hashlock in self._reveals:
                return False
            self._reveals[reveal.hashlock] = reveal
            subscribers = list(self._subscribers)

        log.info(f"Secret revealed for {to_hex(reveal.hashlock)[:18]}... "
                 f"via {reveal.source.value} on {reveal.ledger or 'unknown ledger'}")

        for callback in subscribers:
            try:
                callback(reveal)
            except Exception as e:
                log.error(f"Reveal subscriber failed: {e}")
        return True

    def get(self, hashlock: BytesLike) -> Optional[PendingReveal]:
        key = hex_to_bytes(hashlock, 32)
        with self._lock:
            return self._reveals.get(key)

    def mark_consumed(self, hashlock: BytesLike) -> None:
        key = hex_to_bytes(hashlock, 32)
        with self._lock:
            if key in self._reveals:
                self._reveals[key].consumed = True

    def pending(self) -> List[PendingReveal]:
        """Reveals not yet consumed on their counterpart leg."""
        with self._lock:
            return [r for r in self._reveals.values() if not r.consumed]

    def subscribe(self, callback: Callable[[PendingReveal], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)
