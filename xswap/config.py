"""
Configuration for xswap components.

Config objects are plain dataclasses handed to each component's
constructor. Only entry points (server, scripts) read the environment.
"""

import os
from dataclasses import dataclass
from typing import Tuple

from eth_utils import is_address

from .core import (
    ConfigError,
    DEFAULT_PROTOCOL_NAME, DEFAULT_PROTOCOL_VERSION,
    DEFAULT_SRC_OFFSETS, DEFAULT_DST_OFFSETS, LEG_CANCEL_MIN_GAP_SECONDS,
)


@dataclass
class LedgerConfig:
    """One ledger's endpoint, contracts and signing key."""
    rpc_url: str = ""
    chain_id: int = 0
    limit_order_address: str = ""     # Order-consuming contract (EIP-712 verifier)
    escrow_factory_address: str = ""  # Spender for maker asset approvals
    private_key: str = ""             # Optional; read-only use without it
    name: str = "evm"

    # Fixed gas limits per call
    fill_gas: int = 1_000_000
    withdraw_gas: int = 500_000
    cancel_gas: int = 300_000
    approve_gas: int = 100_000
    receipt_timeout: int = 120
    gas_price_multiplier: float = 1.1

    @classmethod
    def from_env(cls, prefix: str = "", **overrides) -> "LedgerConfig":
        """
        Read RPC_URL, CHAIN_ID, LIMIT_ORDER_ADDRESS, ESCROW_FACTORY_ADDRESS
        and PRIVATE_KEY, each optionally prefixed (e.g. prefix="DST_").
        """
        env = os.environ
        chain_id = env.get(f"{prefix}CHAIN_ID", "0")
        try:
            chain_id = int(chain_id)
        except ValueError:
            raise ConfigError(f"{prefix}CHAIN_ID is not an integer: {chain_id!r}")

        values = dict(
            rpc_url=env.get(f"{prefix}RPC_URL", ""),
            chain_id=chain_id,
            limit_order_address=env.get(f"{prefix}LIMIT_ORDER_ADDRESS", ""),
            escrow_factory_address=env.get(f"{prefix}ESCROW_FACTORY_ADDRESS", ""),
            private_key=env.get(f"{prefix}PRIVATE_KEY", ""),
            name=prefix.rstrip("_").lower() or "evm",
        )
        values.update(overrides)
        return cls(**values)

    def validate(self, require_key: bool = False) -> None:
        """Raises ConfigError naming every missing or malformed field."""
        problems = []
        if not self.rpc_url:
            problems.append("rpc_url is required")
        if self.chain_id <= 0:
            problems.append("chain_id must be > 0")
        if not is_address(self.limit_order_address):
            problems.append("limit_order_address is not a valid address")
        if self.escrow_factory_address and not is_address(self.escrow_factory_address):
            problems.append("escrow_factory_address is not a valid address")
        if require_key and not self.private_key:
            problems.append("private_key is required")
        if problems:
            raise ConfigError(f"Invalid {self.name} config: " + "; ".join(problems))


@dataclass
class SwapConfig:
    """Protocol-level settings shared by maker, resolver and state machine."""
    protocol_name: str = DEFAULT_PROTOCOL_NAME
    protocol_version: str = DEFAULT_PROTOCOL_VERSION

    src_offsets: Tuple[int, int, int, int] = DEFAULT_SRC_OFFSETS
    dst_offsets: Tuple[int, int, int, int] = DEFAULT_DST_OFFSETS
    leg_cancel_min_gap: int = LEG_CANCEL_MIN_GAP_SECONDS

    reject_self_swap: bool = True

    # Artifact locations (maker -> resolver handoff)
    orders_dir: str = "orders"
    secrets_dir: str = "secrets"

    # Watcher
    poll_interval: int = 10
    auto_cancel: bool = True
