"""
xswap - HTLC Cross-Chain Swap Library

Atomic swaps between two EVM ledgers: a maker signs an EIP-712 limit order
carrying a hashlock and packed timelocks, a resolver fills it and deploys
escrows, and each leg settles by secret reveal or refunds after expiry.

Usage:
    from xswap import LedgerConfig, OrderDomain, LocalKeySigner
    from xswap import create_order_bundle, SwapStateMachine, Resolver

    signer = LocalKeySigner(private_key)
    domain = OrderDomain(chain_id=1, verifying_contract=limit_order_address)

    # Maker
    bundle = create_order_bundle(domain, signer, usdc, dai, 100, 99,
                                 dst_chain_id=56, dst_token=dst_usdc)

    # Resolver
    machine = SwapStateMachine(domain)
    resolver = Resolver(machine, EVMGateway(config), caller=resolver_address)
    swap = resolver.accept(bundle.order_artifact())
    resolver.fill(swap.order_hash)
"""

from .core import (
    SwapPhase,
    EscrowSide,
    Precondition,
    SwapError,
    EntropyUnavailable,
    InvalidOffset,
    InvalidOrder,
    DuplicateHashlock,
    ConfigError,
    SwapNotFound,
    LedgerCallFailed,
    TransitionRejected,
    SignatureInvalid,
    AlreadyFilled,
    AlreadyTerminal,
    NotFilled,
    WindowNotOpen,
    WindowClosed,
    UnauthorizedCaller,
    HashlockMismatch,
    InvalidTimelocks,
    keccak256,
)
from .config import LedgerConfig, SwapConfig

from .htlc.secret import SecretCommitment, generate_secret, hashlock_for, verify_secret
from .htlc.timelocks import (
    TimelockStage,
    Timelocks,
    pack_timelocks,
    unpack_timelocks,
    deadline_for,
    validate_leg_ordering,
)
from .htlc.escrow import EscrowImmutables

from .order.order import (
    Order,
    OrderDomain,
    build_typed_data,
    order_hash,
    sign_order,
    recover_order_signer,
    verify_order_signature,
)
from .order.params import CrossChainParams
from .order.artifacts import OrderArtifact, SecretArtifact

from .chains.base import EscrowLedgerGateway, EscrowTxResult
from .chains.evm import EVMGateway, LocalKeySigner

from .swap.state_machine import SwapStateMachine, SwapInstance
from .swap.reveal import RevealBoard, PendingReveal, RevealSource
from .swap.maker import create_order_bundle, write_bundle, OrderBundle
from .swap.resolver import Resolver
from .swap.watcher import CounterpartWatcher

__version__ = "0.1.0"
__all__ = [
    # Core types
    "SwapPhase",
    "EscrowSide",
    "Precondition",
    # Errors
    "SwapError",
    "EntropyUnavailable",
    "InvalidOffset",
    "InvalidOrder",
    "DuplicateHashlock",
    "ConfigError",
    "SwapNotFound",
    "LedgerCallFailed",
    "TransitionRejected",
    "SignatureInvalid",
    "AlreadyFilled",
    "AlreadyTerminal",
    "NotFilled",
    "WindowNotOpen",
    "WindowClosed",
    "UnauthorizedCaller",
    "HashlockMismatch",
    "InvalidTimelocks",
    # Config
    "LedgerConfig",
    "SwapConfig",
    # Secret / timelocks
    "SecretCommitment",
    "generate_secret",
    "hashlock_for",
    "verify_secret",
    "keccak256",
    "TimelockStage",
    "Timelocks",
    "pack_timelocks",
    "unpack_timelocks",
    "deadline_for",
    "validate_leg_ordering",
    "EscrowImmutables",
    # Orders
    "Order",
    "OrderDomain",
    "build_typed_data",
    "order_hash",
    "sign_order",
    "recover_order_signer",
    "verify_order_signature",
    "CrossChainParams",
    "OrderArtifact",
    "SecretArtifact",
    # Ledgers
    "EscrowLedgerGateway",
    "EscrowTxResult",
    "EVMGateway",
    "LocalKeySigner",
    # Swap flow
    "SwapStateMachine",
    "SwapInstance",
    "RevealBoard",
    "PendingReveal",
    "RevealSource",
    "create_order_bundle",
    "write_bundle",
    "OrderBundle",
    "Resolver",
    "CounterpartWatcher",
]
