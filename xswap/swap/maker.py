"""
Maker flow: commit to a secret, fix the windows, sign the order.

    1. Generate secret + hashlock
    2. Build source/destination timelocks and check their cross-leg ordering
    3. Encode CrossChainParams (extraData)
    4. Sign the order over the EIP-712 domain
    5. Hand {order, signature, extraData} to the resolver; keep the secret
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Dict

from ..config import SwapConfig
from ..core import ZERO_ADDRESS, to_hex
from ..htlc.secret import SecretCommitment
from ..htlc.timelocks import Timelocks, validate_leg_ordering
from ..order.artifacts import (
    OrderArtifact, SecretArtifact, ORDER_FILE, SECRET_FILE,
    order_to_artifact, secret_to_artifact, save_artifact,
)
from ..order.order import Order, OrderDomain, order_hash, sign_order
from ..order.params import CrossChainParams

log = logging.getLogger(__name__)


@dataclass
class OrderBundle:
    """Everything the maker produced for one swap."""
    order: Order
    signature: bytes
    params: CrossChainParams
    commitment: SecretCommitment
    order_hash: bytes
    dst_timelocks: Timelocks

    def order_artifact(self) -> OrderArtifact:
        return order_to_artifact(self.order, self.signature, self.params)

    def secret_artifact(self) -> SecretArtifact:
        return secret_to_artifact(self.commitment)

    def to_dict(self) -> Dict:
        return {
            "order_hash": to_hex(self.order_hash),
            "order": self.order_artifact().model_dump(),
            "hashlock": to_hex(self.commitment.hashlock),
        }


def create_order_bundle(
    domain: OrderDomain,
    signer,
    maker_asset: str,
    taker_asset: str,
    making_amount: int,
    taking_amount: int,
    dst_chain_id: int,
    dst_token: str,
    receiver: str = ZERO_ADDRESS,
    deposits: int = 0,
    config: SwapConfig = None,
    commitment: Optional[SecretCommitment] = None,
    salt: Optional[int] = None,
) -> OrderBundle:
    """
    Build and sign a cross-chain order.

    Args:
        domain: EIP-712 domain of the source ledger's limit order contract
        signer: Key custody object (address, sign_digest)
        maker_asset: Token the maker locks on the source ledger
        taker_asset: Token the maker receives
        making_amount: Amount locked in the source escrow
        taking_amount: Amount expected in the destination escrow
        dst_chain_id: Chain id of the destination ledger
        dst_token: Token address on the destination ledger
        receiver: Payout address (zero address = maker)
        deposits: Safety deposit carried in extraData
        config: Offsets and policy (default SwapConfig())
        commitment: Pre-generated secret (default: fresh one)
        salt: Fixed salt (default: time-ordered random salt)

    Returns:
        OrderBundle with the signed order and the secret commitment

    Raises:
        InvalidOrder, InvalidOffset, InvalidTimelocks, EntropyUnavailable
    """
    config = config or SwapConfig()

    src_timelocks = Timelocks.from_offsets(config.src_offsets)
    dst_timelocks = Timelocks.from_offsets(config.dst_offsets)
    # Destination is revealed first; source consumes the secret
    validate_leg_ordering(dst_timelocks, src_timelocks, config.leg_cancel_min_gap)

    order = Order(
        salt=salt if salt is not None else Order.new_salt(),
        maker=signer.address,
        receiver=receiver,
        maker_asset=maker_asset,
        taker_asset=taker_asset,
        making_amount=making_amount,
        taking_amount=taking_amount,
    )
    order.validate(reject_self_swap=config.reject_self_swap)

    commitment = commitment or SecretCommitment.generate()
    params = CrossChainParams(
        hashlock=commitment.hashlock,
        dst_chain_id=dst_chain_id,
        dst_token=dst_token,
        deposits=deposits,
        timelocks=src_timelocks,
    )

    signature = sign_order(order, domain, signer)
    digest = order_hash(order, domain)

    log.info(f"Created order {to_hex(digest)[:18]}... hashlock={to_hex(commitment.hashlock)[:18]}... "
             f"{making_amount} {maker_asset} -> {taking_amount} {taker_asset} (chain {dst_chain_id})")

    return OrderBundle(
        order=order,
        signature=signature,
        params=params,
        commitment=commitment,
        order_hash=digest,
        dst_timelocks=dst_timelocks,
    )


def write_bundle(bundle: OrderBundle, config: SwapConfig = None) -> Dict[str, str]:
    """
    Persist the order artifact and the secret file.

    Returns:
        {"order": path, "secret": path}
    """
    config = config or SwapConfig()
    order_path = save_artifact(bundle.order_artifact(), os.path.join(config.orders_dir, ORDER_FILE))
    secret_path = save_artifact(bundle.secret_artifact(), os.path.join(config.secrets_dir, SECRET_FILE))
    return {"order": order_path, "secret": secret_path}
