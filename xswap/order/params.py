"""
Cross-chain parameters carried as the order's extraData.

ABI layout (a single tuple):

    (bytes32 hashlock, uint256 dstChainId, address dstToken,
     uint256 deposits, uint256 timelocks)

extraData travels next to the signed order but is not part of the EIP-712
payload; the resolver pins its hash when it first accepts the order.
"""

from dataclasses import dataclass
from typing import Dict, Any

from eth_abi import encode, decode
from eth_utils import is_address, to_checksum_address

from ..core import BytesLike, UINT256_MAX, keccak256, hex_to_bytes, to_hex
from ..htlc.timelocks import Timelocks

EXTRA_DATA_TYPES = ["(bytes32,uint256,address,uint256,uint256)"]


@dataclass(frozen=True)
class CrossChainParams:
    """Auxiliary swap parameters for the resolver."""
    hashlock: bytes
    dst_chain_id: int
    dst_token: str
    deposits: int
    timelocks: Timelocks

    def __post_init__(self):
        object.__setattr__(self, "hashlock", hex_to_bytes(self.hashlock, 32))
        if not is_address(self.dst_token):
            raise ValueError(f"dst_token is not a valid address: {self.dst_token!r}")
        object.__setattr__(self, "dst_token", to_checksum_address(self.dst_token))
        for name in ("dst_chain_id", "deposits"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0 or value > UINT256_MAX:
                raise ValueError(f"{name} out of uint256 range: {value!r}")

    def to_abi_tuple(self) -> tuple:
        return (
            self.hashlock,
            self.dst_chain_id,
            self.dst_token,
            self.deposits,
            self.timelocks.pack(),
        )

    def encode(self) -> bytes:
        return encode(EXTRA_DATA_TYPES, [self.to_abi_tuple()])

    def to_hex(self) -> str:
        return to_hex(self.encode())

    @classmethod
    def decode(cls, data: BytesLike) -> "CrossChainParams":
        (values,) = decode(EXTRA_DATA_TYPES, hex_to_bytes(data))
        hashlock, dst_chain_id, dst_token, deposits, packed = values
        return cls(
            hashlock=hashlock,
            dst_chain_id=dst_chain_id,
            dst_token=dst_token,
            deposits=deposits,
            timelocks=Timelocks.from_packed(packed),
        )

    def params_hash(self) -> bytes:
        return keccak256(self.encode())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hashlock": to_hex(self.hashlock),
            "dst_chain_id": str(self.dst_chain_id),
            "dst_token": self.dst_token,
            "deposits": str(self.deposits),
            "timelocks": str(self.timelocks.pack()),
        }
