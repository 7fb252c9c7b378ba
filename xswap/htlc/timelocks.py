"""
Timelock packing for escrow legs.

Four window offsets and the deployment timestamp share one uint256:

    bits [  0,  32)  WITHDRAWAL           taker may withdraw with the secret
    bits [ 32,  64)  PUBLIC_WITHDRAWAL    anyone may withdraw with the secret
    bits [ 64,  96)  CANCELLATION         depositor may cancel
    bits [ 96, 128)  PUBLIC_CANCELLATION  anyone may cancel
    bits [224, 256)  deployed_at          ledger time of the fill

Each offset is relative to deployed_at on its own (not cumulative), so
deadline(stage) = deployed_at + offset[stage].

    ---- deployed --/-- finality --/-- WITHDRAWAL --/-- PUBLIC WITHDRAWAL --/--
         CANCELLATION --/-- PUBLIC CANCELLATION ----
"""

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Iterable, Optional, Sequence, Tuple

from ..core import InvalidOffset, InvalidTimelocks, UINT32_MAX, LEG_CANCEL_MIN_GAP_SECONDS

LANE_BITS = 32
LANE_MASK = UINT32_MAX
DEPLOYED_AT_SHIFT = 224


class TimelockStage(IntEnum):
    """Window kinds, valued by their lane index."""
    WITHDRAWAL = 0
    PUBLIC_WITHDRAWAL = 1
    CANCELLATION = 2
    PUBLIC_CANCELLATION = 3


STAGE_COUNT = len(TimelockStage)


def _check_lane(name: str, value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidOffset(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > LANE_MASK:
        raise InvalidOffset(f"{name}={value} does not fit in 32 bits")
    return value


def pack_timelocks(offsets: Sequence[int], deployed_at: int = 0) -> int:
    """
    Pack four window offsets and the deployment timestamp.

    Raises:
        InvalidOffset: wrong lane count or a value outside [0, 2^32)
    """
    offsets = list(offsets)
    if len(offsets) != STAGE_COUNT:
        raise InvalidOffset(f"Expected {STAGE_COUNT} offsets, got {len(offsets)}")

    value = 0
    for stage in TimelockStage:
        offset = _check_lane(stage.name, offsets[stage])
        value |= offset << (LANE_BITS * stage)
    value |= _check_lane("deployed_at", deployed_at) << DEPLOYED_AT_SHIFT
    return value


def unpack_timelocks(value: int) -> Tuple[Tuple[int, ...], int]:
    """Inverse of pack_timelocks: (offsets, deployed_at)."""
    if value < 0 or value >> 256:
        raise InvalidOffset(f"Packed timelocks out of uint256 range: {value}")
    offsets = tuple(
        (value >> (LANE_BITS * stage)) & LANE_MASK for stage in TimelockStage
    )
    deployed_at = (value >> DEPLOYED_AT_SHIFT) & LANE_MASK
    return offsets, deployed_at


def deadline_for(stage: int, value: int) -> int:
    """Absolute ledger time at which `stage` opens."""
    offsets, deployed_at = unpack_timelocks(value)
    return deployed_at + offsets[TimelockStage(stage)]


@dataclass(frozen=True)
class Timelocks:
    """Unpacked view of a timelock word."""
    withdrawal: int
    public_withdrawal: int
    cancellation: int
    public_cancellation: int
    deployed_at: int = 0

    def __post_init__(self):
        for stage, offset in zip(TimelockStage, self.offsets):
            _check_lane(stage.name, offset)
        _check_lane("deployed_at", self.deployed_at)

    @classmethod
    def from_offsets(cls, offsets: Iterable[int], deployed_at: int = 0) -> "Timelocks":
        offsets = list(offsets)
        if len(offsets) != STAGE_COUNT:
            raise InvalidOffset(f"Expected {STAGE_COUNT} offsets, got {len(offsets)}")
        return cls(*offsets, deployed_at=deployed_at)

    @classmethod
    def from_packed(cls, value: int) -> "Timelocks":
        offsets, deployed_at = unpack_timelocks(value)
        return cls(*offsets, deployed_at=deployed_at)

    @property
    def offsets(self) -> Tuple[int, int, int, int]:
        return (self.withdrawal, self.public_withdrawal,
                self.cancellation, self.public_cancellation)

    def pack(self) -> int:
        return pack_timelocks(self.offsets, self.deployed_at)

    def offset(self, stage: TimelockStage) -> int:
        return self.offsets[TimelockStage(stage)]

    def deadline(self, stage: TimelockStage) -> int:
        return self.deployed_at + self.offset(stage)

    def with_deployed_at(self, deployed_at: int) -> "Timelocks":
        """Copy with the deployment lane set (done once, at fill time)."""
        return replace(self, deployed_at=deployed_at)

    def stage_at(self, now: int) -> Optional[TimelockStage]:
        """Latest window open at `now`, or None before WITHDRAWAL."""
        current = None
        for stage in TimelockStage:
            if now >= self.deadline(stage):
                current = stage
        return current

    def validate_ordering(self) -> None:
        """
        Windows must open in lane order and leave a non-empty withdraw window.

        Raises:
            InvalidTimelocks
        """
        offsets = self.offsets
        for earlier, later in zip(TimelockStage, list(TimelockStage)[1:]):
            if offsets[earlier] > offsets[later]:
                raise InvalidTimelocks(
                    f"{earlier.name} ({offsets[earlier]}s) opens after "
                    f"{later.name} ({offsets[later]}s)"
                )
        if self.withdrawal >= self.cancellation:
            raise InvalidTimelocks(
                f"Empty withdraw window: WITHDRAWAL={self.withdrawal}s, "
                f"CANCELLATION={self.cancellation}s"
            )


def validate_leg_ordering(
    first: Timelocks,
    second: Timelocks,
    min_gap: int = LEG_CANCEL_MIN_GAP_SECONDS,
) -> bool:
    """
    Check the cross-ledger precondition for atomicity.

    `first` is the leg where the secret is revealed first (the destination
    escrow), `second` the leg that consumes the revealed secret (the source
    escrow). Deadlines are compared as absolute times, so both sets should
    carry their deployment timestamps (or both 0 for a plan).

    Invariants:
        first.CANCELLATION > second.WITHDRAWAL
            (the secret can appear while the second leg is withdrawable)
        first.CANCELLATION + min_gap <= second.CANCELLATION
            (after the last possible reveal the consumer still has min_gap)

    Returns True if valid, raises InvalidTimelocks if not.
    """
    first.validate_ordering()
    second.validate_ordering()

    first_cancel = first.deadline(TimelockStage.CANCELLATION)
    second_withdraw = second.deadline(TimelockStage.WITHDRAWAL)
    second_cancel = second.deadline(TimelockStage.CANCELLATION)

    if not first_cancel > second_withdraw:
        raise InvalidTimelocks(
            f"First leg cancels at {first_cancel} before second leg "
            f"withdraw opens at {second_withdraw}"
        )
    if second_cancel - first_cancel < min_gap:
        raise InvalidTimelocks(
            f"Insufficient gap between leg cancellations: "
            f"{second_cancel - first_cancel}s (min {min_gap}s)"
        )
    return True
