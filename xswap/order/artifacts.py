"""
Maker -> resolver interchange records.

The maker writes two JSON files:

    orders/order.json     {order, signature, extraData}
    secrets/secret.json   {secret, hashlock}

Integers are decimal strings (uint256 does not fit a JSON number),
binary values are 0x-prefixed hex. The secret file stays with the maker
until the destination leg is funded.
"""

import json
import logging
import os
from typing import Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

from ..core import InvalidOrder, hex_to_bytes, to_hex
from ..htlc.secret import SecretCommitment
from .order import Order
from .params import CrossChainParams

log = logging.getLogger(__name__)

ORDER_FILE = "order.json"
SECRET_FILE = "secret.json"
ESCROW_FILE = "escrow.json"


class OrderPayload(BaseModel):
    salt: str
    maker: str
    receiver: str
    makerAsset: str
    takerAsset: str
    makingAmount: str
    takingAmount: str


class OrderArtifact(BaseModel):
    order: OrderPayload
    signature: str = Field(..., min_length=132, max_length=132, description="0x-hex r||s||v")
    extraData: str = Field(..., description="0x-hex ABI-encoded cross-chain params")


class SecretArtifact(BaseModel):
    secret: str = Field(..., min_length=66, max_length=66)
    hashlock: str = Field(..., min_length=66, max_length=66)


class EscrowArtifact(BaseModel):
    """Fill record; with the order artifact it reproduces the immutables."""
    orderHash: str
    side: str
    escrow: str
    taker: str
    deployedAt: str
    timelocks: str                          # Packed timelocks the escrow was deployed with
    srcCancellation: Optional[str] = None   # Destination leg: source escrow cancel deadline
    fillTx: Optional[str] = None


def order_to_artifact(order: Order, signature: bytes, params: CrossChainParams) -> OrderArtifact:
    message = order.to_message()
    return OrderArtifact(
        order=OrderPayload(**{k: str(v) for k, v in message.items()}),
        signature=to_hex(signature),
        extraData=params.to_hex(),
    )


def artifact_to_bundle(artifact: OrderArtifact) -> Tuple[Order, bytes, CrossChainParams]:
    """
    Decode an artifact into (order, signature, params).

    Raises:
        InvalidOrder: any field fails to parse
    """
    order = Order.from_message(artifact.order.model_dump())
    try:
        signature = hex_to_bytes(artifact.signature, 65)
        params = CrossChainParams.decode(artifact.extraData)
    except InvalidOrder:
        raise
    except Exception as e:
        raise InvalidOrder(f"Malformed order artifact: {e}") from e
    return order, signature, params


def secret_to_artifact(commitment: SecretCommitment) -> SecretArtifact:
    return SecretArtifact(**commitment.to_dict())


# =============================================================================
# File persistence
# =============================================================================

def save_artifact(artifact: BaseModel, path: str) -> str:
    """Write an artifact as indented JSON, creating parent dirs."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w") as f:
        json.dump(artifact.model_dump(), f, indent=2)
    log.info(f"Saved {type(artifact).__name__} to {path}")
    return path


def _load(model, path: str):
    with open(path) as f:
        raw = f.read()
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise InvalidOrder(f"Invalid {model.__name__} in {path}: {e}") from e


def load_order_artifact(path: str) -> OrderArtifact:
    return _load(OrderArtifact, path)


def load_escrow_artifact(path: str) -> EscrowArtifact:
    return _load(EscrowArtifact, path)


def load_secret_artifact(path: str) -> SecretCommitment:
    """Load and check that the secret opens its hashlock."""
    artifact = _load(SecretArtifact, path)
    try:
        return SecretCommitment.from_dict(artifact.model_dump())
    except ValueError as e:
        raise InvalidOrder(f"Invalid secret file {path}: {e}") from e


def parse_order_artifact(data: Union[str, dict]) -> OrderArtifact:
    """Validate an artifact from a JSON string or an already-decoded dict."""
    try:
        if isinstance(data, str):
            return OrderArtifact.model_validate_json(data)
        return OrderArtifact.model_validate(data)
    except ValidationError as e:
        raise InvalidOrder(f"Invalid order artifact: {e}") from e
