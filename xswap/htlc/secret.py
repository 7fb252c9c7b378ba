"""
Secret / hashlock commitment.

The maker draws a 32-byte secret and publishes only its hashlock:

    hashlock = keccak256(abi.encode(bytes32 secret))

The secret stays private until the maker (or the resolver on its behalf)
withdraws from the first escrow, at which point it becomes public and
unlocks the second one.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Dict, Tuple

from eth_abi import encode

from ..core import EntropyUnavailable, BytesLike, keccak256, hex_to_bytes, to_hex

log = logging.getLogger(__name__)

SECRET_SIZE = 32


def hashlock_for(secret: BytesLike) -> bytes:
    """Derive the hashlock of a 32-byte secret."""
    raw = hex_to_bytes(secret, SECRET_SIZE)
    return keccak256(encode(["bytes32"], [raw]))


def generate_secret() -> Tuple[bytes, bytes]:
    """
    Generate a random secret and its hashlock.

    Returns:
        (secret, hashlock) as raw bytes

    Raises:
        EntropyUnavailable: the OS random source could not be read
    """
    try:
        secret = secrets.token_bytes(SECRET_SIZE)
    except (OSError, NotImplementedError) as e:
        raise EntropyUnavailable(f"Secure random source unavailable: {e}") from e
    return secret, hashlock_for(secret)


def verify_secret(secret: BytesLike, hashlock: BytesLike) -> bool:
    """
    Check that hashlock == H(secret).

    Malformed input verifies as False.
    """
    try:
        expected = hex_to_bytes(hashlock, 32)
        actual = hashlock_for(secret)
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(actual, expected)


@dataclass(frozen=True)
class SecretCommitment:
    """A secret together with its public hashlock."""
    secret: bytes
    hashlock: bytes

    @classmethod
    def generate(cls) -> "SecretCommitment":
        secret, hashlock = generate_secret()
        log.debug(f"Generated hashlock {to_hex(hashlock)[:18]}...")
        return cls(secret=secret, hashlock=hashlock)

    def verify(self, secret: BytesLike) -> bool:
        return verify_secret(secret, self.hashlock)

    def to_dict(self) -> Dict[str, str]:
        return {
            "secret": to_hex(self.secret),
            "hashlock": to_hex(self.hashlock),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "SecretCommitment":
        commitment = cls(
            secret=hex_to_bytes(data["secret"], SECRET_SIZE),
            hashlock=hex_to_bytes(data["hashlock"], 32),
        )
        if not commitment.verify(commitment.secret):
            raise ValueError("Secret does not match hashlock")
        return commitment
