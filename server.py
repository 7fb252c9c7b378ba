#!/usr/bin/env python3
"""
xswap resolver server
HTTP front for one escrow leg: accept signed orders, fill them, settle.

Endpoints:
  GET  /api/status                       - Health check
  POST /api/orders                       - Submit {order, signature, extraData}
  GET  /api/orders/{order_hash}          - Swap state
  POST /api/orders/{order_hash}/fill     - Fill on the ledger
  POST /api/orders/{order_hash}/withdraw - Withdraw with secret
  POST /api/orders/{order_hash}/cancel   - Cancel after expiry
  GET  /api/reveals/{hashlock}           - Secret revealed on a ledger

Environment:
  RPC_URL, CHAIN_ID, LIMIT_ORDER_ADDRESS, ESCROW_FACTORY_ADDRESS, PRIVATE_KEY
  XSWAP_SIDE      source | destination (default source)
  SRC_CHAIN_ID, SRC_LIMIT_ORDER_ADDRESS   order domain for the destination leg
  XSWAP_WATCHER   1 to run the counterpart watcher
  PORT            (default 8080)
"""

import os
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from xswap.config import SwapConfig
from xswap.core import ConfigError, EscrowSide
from xswap.swap.resolver import resolver_from_env
from xswap.swap.reveal import RevealBoard
from xswap.swap.watcher import CounterpartWatcher
from routes import orders

# =============================================================================
# LOGGING
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
log = logging.getLogger(__name__)

# =============================================================================
# APP
# =============================================================================

app = FastAPI(
    title="xswap",
    description="HTLC cross-chain swap resolver API",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orders.router)

_reveals = RevealBoard()
_watcher: Optional[CounterpartWatcher] = None


# =============================================================================
# FASTAPI STARTUP/SHUTDOWN EVENTS
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize resolver from environment."""
    global _watcher

    swap_config = SwapConfig()
    try:
        side = EscrowSide(os.environ.get("XSWAP_SIDE", "source").lower())
        resolver = resolver_from_env(side, swap_config, _reveals)
    except (ConfigError, ValueError) as e:
        log.warning(f"Ledger NOT configured - order endpoints disabled: {e}")
        orders.configure(None, _reveals)
        return

    orders.configure(resolver, _reveals)
    log.info(f"Resolver ready on {resolver.ledger_name} ({side.value} leg) as {resolver.caller}")

    if os.environ.get("XSWAP_WATCHER", "0") == "1":
        _watcher = CounterpartWatcher(resolver, _reveals, swap_config)
        _watcher.start()


@app.on_event("shutdown")
async def shutdown_event():
    if _watcher is not None:
        _watcher.stop()
    log.info("Resolver stopped")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8080))
    log.info(f"Starting xswap on port {port}")
    log.info(f"Docs: http://0.0.0.0:{port}/docs")
    uvicorn.run(app, host="0.0.0.0", port=port)
