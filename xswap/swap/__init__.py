"""
Swap orchestration: per-leg state machine, reveal channel, maker and
resolver flows, and the counterpart watcher.
"""

from .state_machine import SwapStateMachine, SwapInstance
from .reveal import RevealBoard, PendingReveal, RevealSource
from .maker import create_order_bundle, write_bundle, OrderBundle
from .resolver import Resolver, build_resolver, resolver_from_env
from .watcher import CounterpartWatcher, WatcherAction

__all__ = [
    "SwapStateMachine",
    "SwapInstance",
    "RevealBoard",
    "PendingReveal",
    "RevealSource",
    "create_order_bundle",
    "write_bundle",
    "OrderBundle",
    "Resolver",
    "build_resolver",
    "resolver_from_env",
    "CounterpartWatcher",
    "WatcherAction",
]
