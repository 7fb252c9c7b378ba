"""
Core types, errors and helpers for xswap.
"""

from enum import Enum
from typing import Optional, Dict, Any, Union

from Crypto.Hash import keccak


class SwapPhase(Enum):
    """Escrow leg lifecycle states."""
    CREATED = "created"       # Order signed, not yet filled
    FILLED = "filled"         # Escrow deployed, immutables fixed
    WITHDRAWN = "withdrawn"   # Secret revealed, funds released
    CANCELLED = "cancelled"   # Window expired, funds returned


TERMINAL_PHASES = (SwapPhase.WITHDRAWN, SwapPhase.CANCELLED)


class EscrowSide(Enum):
    """Which leg of the swap an escrow belongs to."""
    SOURCE = "source"             # Holds maker's funds, released to taker
    DESTINATION = "destination"   # Holds resolver's funds, released to maker


class Precondition(Enum):
    """Which precondition a rejected transition failed."""
    TIME = "time"
    SIGNATURE = "signature"
    SECRET = "secret"
    STATE = "state"
    CALLER = "caller"
    TIMELOCKS = "timelocks"


# =============================================================================
# Errors
# =============================================================================

class SwapError(Exception):
    """Base class for xswap errors."""


class EntropyUnavailable(SwapError, RuntimeError):
    """Secure random source could not be read."""


class InvalidOffset(SwapError, ValueError):
    """Timelock lane value does not fit in 32 bits."""


class InvalidOrder(SwapError, ValueError):
    """Order fields violate basic validity rules."""


class DuplicateHashlock(SwapError, ValueError):
    """Hashlock already committed by another order."""


class ConfigError(SwapError, ValueError):
    """Required configuration is missing or malformed."""


class SwapNotFound(SwapError, LookupError):
    """No swap instance registered under that order hash."""


class LedgerCallFailed(SwapError, RuntimeError):
    """A gateway transaction was not confirmed; local state is unchanged."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class TransitionRejected(SwapError):
    """
    A state transition request was refused.

    Rejections have no side effects. `precondition` names what failed and
    `retriable` tells the caller whether trying again later can succeed.
    """
    precondition = Precondition.STATE
    retriable = False

    def __init__(self, message: str, order_hash: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.order_hash = order_hash

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "precondition": self.precondition.value,
            "retriable": self.retriable,
            "message": self.message,
            "order_hash": self.order_hash,
        }


class SignatureInvalid(TransitionRejected):
    precondition = Precondition.SIGNATURE


class AlreadyFilled(TransitionRejected):
    precondition = Precondition.STATE


class AlreadyTerminal(TransitionRejected):
    precondition = Precondition.STATE


class NotFilled(TransitionRejected):
    """Withdraw or cancel requested before the escrow exists."""
    precondition = Precondition.STATE
    retriable = True


class WindowNotOpen(TransitionRejected):
    precondition = Precondition.TIME
    retriable = True


class WindowClosed(TransitionRejected):
    precondition = Precondition.TIME


class UnauthorizedCaller(TransitionRejected):
    """Private sub-window is restricted; the public one opens later."""
    precondition = Precondition.CALLER
    retriable = True


class HashlockMismatch(TransitionRejected):
    precondition = Precondition.SECRET
    retriable = True


class InvalidTimelocks(TransitionRejected, ValueError):
    """Timelock windows are out of order or unsafe across legs."""
    precondition = Precondition.TIMELOCKS


# =============================================================================
# Helpers
# =============================================================================

ZERO_ADDRESS = "0x" + "0" * 40
UINT32_MAX = 2**32 - 1
UINT256_MAX = 2**256 - 1

BytesLike = Union[bytes, bytearray, str]


def keccak256(data: bytes) -> bytes:
    """Keccak-256 digest (the EVM flavour, not NIST SHA3)."""
    k = keccak.new(digest_bits=256)
    k.update(bytes(data))
    return k.digest()


def to_hex(data: bytes) -> str:
    """Bytes -> 0x-prefixed lowercase hex."""
    return "0x" + bytes(data).hex()


def hex_to_bytes(value: BytesLike, length: Optional[int] = None) -> bytes:
    """
    Accept bytes or hex (with or without 0x) and return bytes.

    Raises ValueError if the value is not hex or has the wrong length.
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        h = value[2:] if value.startswith(("0x", "0X")) else value
        raw = bytes.fromhex(h)
    else:
        raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")

    if length is not None and len(raw) != length:
        raise ValueError(f"Expected {length} bytes, got {len(raw)}")
    return raw


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive address comparison."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


# =============================================================================
# Protocol defaults
# =============================================================================

# EIP-712 domain of the limit order contract that consumes the orders
DEFAULT_PROTOCOL_NAME = "1inch Limit Order Protocol"
DEFAULT_PROTOCOL_VERSION = "4"

# Default per-leg window offsets (seconds after deployment)
# Destination leg is revealed first, so it closes first.
DEFAULT_DST_OFFSETS = (300, 1800, 7200, 10800)
DEFAULT_SRC_OFFSETS = (600, 3600, 14400, 18000)

# Minimum gap between first-leg and second-leg cancellation deadlines
LEG_CANCEL_MIN_GAP_SECONDS = 1800
