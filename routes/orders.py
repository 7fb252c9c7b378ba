"""
Order and escrow endpoints over the resolver's state machine.

Rejected transitions return 409 with the rejection details so a client
can tell whether to retry (see "retriable" and "precondition").
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from xswap.core import (
    SwapError, SwapNotFound, InvalidOrder, DuplicateHashlock,
    TransitionRejected, LedgerCallFailed, EscrowSide, hex_to_bytes,
)
from xswap.order.artifacts import OrderArtifact
from xswap.swap.resolver import Resolver
from xswap.swap.reveal import RevealBoard

log = logging.getLogger(__name__)

router = APIRouter()

# ---------------------------------------------------------------------------
# Set by server.py at startup
# ---------------------------------------------------------------------------

_resolver: Optional[Resolver] = None
_reveals: Optional[RevealBoard] = None


def configure(resolver: Optional[Resolver], reveals: Optional[RevealBoard] = None):
    """Bind the router to a resolver. Called once at startup by server.py."""
    global _resolver, _reveals
    _resolver = resolver
    _reveals = reveals


def _require_resolver() -> Resolver:
    if _resolver is None:
        raise HTTPException(503, "Ledger not configured")
    return _resolver


def _parse_hash(value: str, name: str) -> bytes:
    try:
        return hex_to_bytes(value, 32)
    except (ValueError, TypeError):
        raise HTTPException(400, f"{name} must be 32 bytes of hex")


def _rejected(e: SwapError) -> JSONResponse:
    if isinstance(e, TransitionRejected):
        return JSONResponse(status_code=409, content=e.to_dict())
    return JSONResponse(status_code=409, content={"error": type(e).__name__, "message": str(e)})


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class WithdrawRequest(BaseModel):
    secret: str = Field(..., min_length=64, max_length=66, description="32-byte secret hex")


class FillRequest(BaseModel):
    src_cancellation: int = Field(
        0, ge=0, description="Source escrow cancellation deadline (required on the destination leg)"
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/api/status")
def status():
    resolver = _resolver
    if resolver is None:
        return {"status": "unconfigured"}
    machine = resolver.machine
    return {
        "status": "ok",
        "ledger": machine.ledger_name,
        "side": machine.side.value,
        "chain_id": machine.domain.chain_id,
        "verifying_contract": machine.domain.verifying_contract,
        "caller": resolver.caller,
        "swaps": len(machine.all_swaps()),
        "active_swaps": len(machine.active_swaps()),
    }


@router.post("/api/orders")
def submit_order(artifact: OrderArtifact):
    """Accept a maker's {order, signature, extraData} artifact."""
    resolver = _require_resolver()
    try:
        swap = resolver.accept(artifact)
    except InvalidOrder as e:
        raise HTTPException(400, str(e))
    except (TransitionRejected, DuplicateHashlock) as e:
        return _rejected(e)
    return swap.to_dict()


@router.get("/api/orders/{order_hash}")
def get_order(order_hash: str):
    resolver = _require_resolver()
    key = _parse_hash(order_hash, "order_hash")
    try:
        return resolver.machine.get(key).to_dict()
    except SwapNotFound as e:
        raise HTTPException(404, str(e))


@router.post("/api/orders/{order_hash}/fill")
def fill_order(order_hash: str, req: Optional[FillRequest] = None):
    resolver = _require_resolver()
    key = _parse_hash(order_hash, "order_hash")
    src_cancellation = req.src_cancellation if req is not None else 0
    if resolver.machine.side == EscrowSide.DESTINATION and src_cancellation <= 0:
        raise HTTPException(400, "src_cancellation is required on the destination leg")
    try:
        return resolver.fill(key, src_cancellation=src_cancellation).to_dict()
    except SwapNotFound as e:
        raise HTTPException(404, str(e))
    except TransitionRejected as e:
        return _rejected(e)
    except LedgerCallFailed as e:
        raise HTTPException(502, str(e))


@router.post("/api/orders/{order_hash}/withdraw")
def withdraw_order(order_hash: str, req: WithdrawRequest):
    resolver = _require_resolver()
    key = _parse_hash(order_hash, "order_hash")
    secret = _parse_hash(req.secret, "secret")
    try:
        return resolver.withdraw(key, secret).to_dict()
    except SwapNotFound as e:
        raise HTTPException(404, str(e))
    except TransitionRejected as e:
        return _rejected(e)
    except LedgerCallFailed as e:
        raise HTTPException(502, str(e))


@router.post("/api/orders/{order_hash}/cancel")
def cancel_order(order_hash: str):
    resolver = _require_resolver()
    key = _parse_hash(order_hash, "order_hash")
    try:
        return resolver.cancel(key).to_dict()
    except SwapNotFound as e:
        raise HTTPException(404, str(e))
    except TransitionRejected as e:
        return _rejected(e)
    except LedgerCallFailed as e:
        raise HTTPException(502, str(e))


@router.get("/api/reveals/{hashlock}")
def get_reveal(hashlock: str):
    """Secret revealed on a ledger for this hashlock, if any."""
    key = _parse_hash(hashlock, "hashlock")
    reveal = _reveals.get(key) if _reveals is not None else None
    if reveal is None:
        raise HTTPException(404, "No reveal for hashlock")
    return reveal.to_dict()
