"""
HTLC building blocks.

- secret: 32-byte secret and its keccak256 hashlock
- timelocks: four window offsets plus deployment time in one uint256
- escrow: immutables of a deployed escrow
"""

from .secret import SecretCommitment, generate_secret, hashlock_for, verify_secret
from .timelocks import TimelockStage, Timelocks, pack_timelocks, unpack_timelocks, deadline_for
from .escrow import EscrowImmutables

__all__ = [
    "SecretCommitment",
    "generate_secret",
    "hashlock_for",
    "verify_secret",
    "TimelockStage",
    "Timelocks",
    "pack_timelocks",
    "unpack_timelocks",
    "deadline_for",
    "EscrowImmutables",
]
