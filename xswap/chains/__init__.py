"""Ledger gateways."""

from .base import EscrowLedgerGateway, EscrowTxResult
from .evm import EVMGateway, LocalKeySigner

__all__ = ["EscrowLedgerGateway", "EscrowTxResult", "EVMGateway", "LocalKeySigner"]
