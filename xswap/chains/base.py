"""
Ledger gateway interface.

The swap core never talks to a ledger directly. It consumes this narrow
surface: ledger time, transaction submission and confirmation, token
reads, and the three escrow entry points (fill, withdraw, cancel).
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass
class EscrowTxResult:
    """Result from a ledger operation."""
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    block_number: Optional[int] = None
    block_timestamp: Optional[int] = None
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tx_hash": self.tx_hash,
            "error": self.error,
            "block_number": self.block_number,
            "block_timestamp": self.block_timestamp,
            "data": self.data,
        }


class EscrowLedgerGateway:
    """
    Base class for one ledger's escrow surface.

    Implementations return EscrowTxResult for transactions instead of
    raising, so callers can decide whether to retry.
    """

    name = "ledger"

    # =========================================================================
    # Transport
    # =========================================================================

    def get_current_time(self) -> int:
        """Ledger time (latest block timestamp)."""
        raise NotImplementedError

    def submit_transaction(self, tx: Dict[str, Any]) -> str:
        """Sign and broadcast; returns the transaction hash."""
        raise NotImplementedError

    def wait_for_confirmation(self, tx_hash: str, timeout: Optional[int] = None) -> Dict[str, Any]:
        """Block until mined; returns the receipt."""
        raise NotImplementedError

    # =========================================================================
    # Token reads
    # =========================================================================

    def read_allowance(self, token: str, owner: str, spender: str) -> int:
        raise NotImplementedError

    def read_balance(self, token: str, owner: str) -> int:
        raise NotImplementedError

    def ensure_allowance(self, token: str, amount: int, spender: str = None) -> EscrowTxResult:
        """Approve `spender` for at least `amount` of `token`."""
        raise NotImplementedError

    # =========================================================================
    # Escrow calls
    # =========================================================================

    def hash_order(self, order) -> bytes:
        """EIP-712 digest of `order` as the limit order contract computes it."""
        raise NotImplementedError

    def escrow_address(self, immutables, side) -> str:
        """Address of the escrow holding `immutables` on this ledger."""
        raise NotImplementedError

    def fill_order(self, order, signature: bytes, extra_data: bytes) -> EscrowTxResult:
        """Fill a signed order; data["order_hash"] holds the returned digest."""
        raise NotImplementedError

    def create_dst_escrow(self, immutables, src_cancellation: int = 0, value: int = 0) -> EscrowTxResult:
        """Deploy and fund the destination escrow."""
        raise NotImplementedError

    def withdraw(self, escrow: str, secret: bytes, immutables) -> EscrowTxResult:
        raise NotImplementedError

    def public_withdraw(self, escrow: str, secret: bytes, immutables) -> EscrowTxResult:
        raise NotImplementedError

    def cancel(self, escrow: str, immutables) -> EscrowTxResult:
        raise NotImplementedError

    def public_cancel(self, escrow: str, immutables) -> EscrowTxResult:
        raise NotImplementedError
