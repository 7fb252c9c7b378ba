"""
Limit order model and EIP-712 signing.

The maker signs a typed-data payload binding the order to a domain
(protocol name/version, chain id, verifying contract) so the signature
cannot be replayed against another contract or chain.
"""

import logging
import secrets
import time
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import is_address, to_checksum_address

from ..core import (
    InvalidOrder, BytesLike, UINT256_MAX, ZERO_ADDRESS,
    DEFAULT_PROTOCOL_NAME, DEFAULT_PROTOCOL_VERSION,
    keccak256, hex_to_bytes, to_hex, same_address,
)

log = logging.getLogger(__name__)

ORDER_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Order": [
        {"name": "salt", "type": "uint256"},
        {"name": "maker", "type": "address"},
        {"name": "receiver", "type": "address"},
        {"name": "makerAsset", "type": "address"},
        {"name": "takerAsset", "type": "address"},
        {"name": "makingAmount", "type": "uint256"},
        {"name": "takingAmount", "type": "uint256"},
    ],
}

# Python field name -> typed-data field name
_MESSAGE_FIELDS = {
    "salt": "salt",
    "maker": "maker",
    "receiver": "receiver",
    "maker_asset": "makerAsset",
    "taker_asset": "takerAsset",
    "making_amount": "makingAmount",
    "taking_amount": "takingAmount",
}

_ADDRESS_FIELDS = ("maker", "receiver", "maker_asset", "taker_asset")


def _checksum(name: str, value: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise InvalidOrder(f"{name} is not a valid address: {value!r}")
    return to_checksum_address(value)


@dataclass(frozen=True)
class OrderDomain:
    """EIP-712 domain of the order-consuming contract."""
    chain_id: int
    verifying_contract: str
    name: str = DEFAULT_PROTOCOL_NAME
    version: str = DEFAULT_PROTOCOL_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": to_checksum_address(self.verifying_contract),
        }


@dataclass(frozen=True)
class Order:
    """
    Maker's signed intent: give `making_amount` of `maker_asset` for
    `taking_amount` of `taker_asset`.

    Immutable once signed. Addresses are normalized to checksum form.
    """
    salt: int
    maker: str
    receiver: str
    maker_asset: str
    taker_asset: str
    making_amount: int
    taking_amount: int

    def __post_init__(self):
        for name in _ADDRESS_FIELDS:
            object.__setattr__(self, name, _checksum(name, getattr(self, name)))
        for name in ("salt", "making_amount", "taking_amount"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidOrder(f"{name} must be an integer, got {type(value).__name__}")
            if value < 0 or value > UINT256_MAX:
                raise InvalidOrder(f"{name} out of uint256 range: {value}")

    @staticmethod
    def new_salt() -> int:
        """Millisecond timestamp in the high bits, 32 random bits below."""
        return (int(time.time() * 1000) << 32) | secrets.randbits(32)

    def validate(self, reject_self_swap: bool = True) -> None:
        """
        Raises:
            InvalidOrder: non-positive amounts, zero maker, or a self-swap
        """
        if self.making_amount <= 0:
            raise InvalidOrder(f"making_amount must be > 0, got {self.making_amount}")
        if self.taking_amount <= 0:
            raise InvalidOrder(f"taking_amount must be > 0, got {self.taking_amount}")
        if same_address(self.maker, ZERO_ADDRESS):
            raise InvalidOrder("maker cannot be the zero address")
        if reject_self_swap and same_address(self.maker_asset, self.taker_asset):
            raise InvalidOrder(f"maker_asset and taker_asset are both {self.maker_asset}")

    @property
    def recipient(self) -> str:
        """Where the taker's asset goes: receiver, or the maker if unset."""
        if same_address(self.receiver, ZERO_ADDRESS):
            return self.maker
        return self.receiver

    def to_message(self) -> Dict[str, Any]:
        """Typed-data message (camelCase keys, int amounts)."""
        data = asdict(self)
        return {_MESSAGE_FIELDS[k]: v for k, v in data.items()}

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "Order":
        """Build from camelCase keys; integer fields may be decimal strings."""
        try:
            return cls(
                salt=int(message["salt"]),
                maker=message["maker"],
                receiver=message.get("receiver") or ZERO_ADDRESS,
                maker_asset=message["makerAsset"],
                taker_asset=message["takerAsset"],
                making_amount=int(message["makingAmount"]),
                taking_amount=int(message["takingAmount"]),
            )
        except InvalidOrder:
            raise
        except KeyError as e:
            raise InvalidOrder(f"Missing order field: {e}") from e
        except (TypeError, ValueError) as e:
            raise InvalidOrder(f"Malformed order field: {e}") from e


def build_typed_data(order: Order, domain: OrderDomain) -> Dict[str, Any]:
    """Full EIP-712 payload for eth_account.encode_typed_data."""
    return {
        "types": ORDER_TYPES,
        "primaryType": "Order",
        "domain": domain.to_dict(),
        "message": order.to_message(),
    }


def _signable(order: Order, domain: OrderDomain):
    return encode_typed_data(full_message=build_typed_data(order, domain))


def order_hash(order: Order, domain: OrderDomain) -> bytes:
    """EIP-712 digest: keccak256(0x19 0x01 || domainSeparator || structHash)."""
    signable = _signable(order, domain)
    return keccak256(b"\x19" + signable.version + signable.header + signable.body)


def sign_order(order: Order, domain: OrderDomain, signer) -> bytes:
    """
    Sign the order's EIP-712 digest.

    Args:
        order: Order to sign
        domain: Domain of the verifying contract
        signer: Key custody object with sign_digest(digest) -> bytes

    Returns:
        65-byte r||s||v signature
    """
    digest = order_hash(order, domain)
    signature = signer.sign_digest(digest)
    log.info(f"Signed order {to_hex(digest)[:18]}... maker={order.maker}")
    return bytes(signature)


def recover_order_signer(order: Order, domain: OrderDomain, signature: BytesLike) -> Optional[str]:
    """Address that produced `signature`, or None if it cannot be recovered."""
    try:
        sig = hex_to_bytes(signature, 65)
        return Account.recover_message(_signable(order, domain), signature=sig)
    except Exception as e:
        log.debug(f"Signature recovery failed: {e}")
        return None


def verify_order_signature(
    order: Order,
    domain: OrderDomain,
    signature: BytesLike,
    expected_signer: Optional[str] = None,
) -> bool:
    """True if the signature recovers to expected_signer (default: the maker)."""
    recovered = recover_order_signer(order, domain, signature)
    return same_address(recovered, expected_signer or order.maker)
