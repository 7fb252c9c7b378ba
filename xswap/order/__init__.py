"""Signed limit orders, their extraData and the maker -> resolver files."""

from .order import Order, OrderDomain, order_hash, sign_order, verify_order_signature
from .params import CrossChainParams

__all__ = [
    "Order",
    "OrderDomain",
    "order_hash",
    "sign_order",
    "verify_order_signature",
    "CrossChainParams",
]
