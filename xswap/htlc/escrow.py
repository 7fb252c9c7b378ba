"""
Escrow immutables: the fixed parameter set of one deployed escrow.

Derived deterministically from the order, its cross-chain params, the
taker and the ledger time of the fill, so any observer can recompute and
check what the resolver deployed.
"""

from dataclasses import dataclass
from typing import Dict, Any

from eth_abi import encode
from eth_utils import to_checksum_address

from ..core import EscrowSide, keccak256, hex_to_bytes, to_hex
from .timelocks import Timelocks

IMMUTABLES_TYPES = ["(bytes32,bytes32,address,address,address,uint256,uint256)"]


@dataclass(frozen=True)
class EscrowImmutables:
    """Parameters of a deployed escrow (read-only once deployed)."""
    order_hash: bytes
    hashlock: bytes
    maker: str
    taker: str
    token: str
    amount: int
    timelocks: Timelocks

    def __post_init__(self):
        object.__setattr__(self, "order_hash", hex_to_bytes(self.order_hash, 32))
        object.__setattr__(self, "hashlock", hex_to_bytes(self.hashlock, 32))
        for name in ("maker", "taker", "token"):
            object.__setattr__(self, name, to_checksum_address(getattr(self, name)))

    @classmethod
    def for_source(cls, order, order_hash: bytes, params, taker: str,
                   deployed_at: int, timelocks: Timelocks = None) -> "EscrowImmutables":
        """Source escrow: maker's asset, released to the taker."""
        return cls(
            order_hash=order_hash,
            hashlock=params.hashlock,
            maker=order.maker,
            taker=taker,
            token=order.maker_asset,
            amount=order.making_amount,
            timelocks=(timelocks or params.timelocks).with_deployed_at(deployed_at),
        )

    @classmethod
    def for_destination(cls, order, order_hash: bytes, params, taker: str,
                        deployed_at: int, timelocks: Timelocks = None) -> "EscrowImmutables":
        """Destination escrow: resolver's dst_token, released to the maker side."""
        return cls(
            order_hash=order_hash,
            hashlock=params.hashlock,
            maker=order.recipient,
            taker=taker,
            token=params.dst_token,
            amount=order.taking_amount,
            timelocks=(timelocks or params.timelocks).with_deployed_at(deployed_at),
        )

    @classmethod
    def derive(cls, side: EscrowSide, order, order_hash: bytes, params,
               taker: str, deployed_at: int, timelocks: Timelocks = None) -> "EscrowImmutables":
        """Immutables for one leg; `timelocks` overrides the params' set."""
        if side == EscrowSide.SOURCE:
            return cls.for_source(order, order_hash, params, taker, deployed_at, timelocks)
        return cls.for_destination(order, order_hash, params, taker, deployed_at, timelocks)

    def to_abi_tuple(self) -> tuple:
        return (
            self.order_hash,
            self.hashlock,
            self.maker,
            self.taker,
            self.token,
            self.amount,
            self.timelocks.pack(),
        )

    def hash(self) -> bytes:
        return keccak256(encode(IMMUTABLES_TYPES, [self.to_abi_tuple()]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderHash": to_hex(self.order_hash),
            "hashlock": to_hex(self.hashlock),
            "maker": self.maker,
            "taker": self.taker,
            "token": self.token,
            "amount": str(self.amount),
            "timelocks": str(self.timelocks.pack()),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EscrowImmutables":
        return cls(
            order_hash=data["orderHash"],
            hashlock=data["hashlock"],
            maker=data["maker"],
            taker=data["taker"],
            token=data["token"],
            amount=int(data["amount"]),
            timelocks=Timelocks.from_packed(int(data["timelocks"])),
        )
