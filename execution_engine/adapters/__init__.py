"""
Execution Engine - Broker Adapters.
"""

from .base import BrokerAdapter, map_order_status
from .mock import MockBrokerAdapter, MockConfig


__all__ = [
    "BrokerAdapter",
    "MockBrokerAdapter",
    "MockConfig",
    "map_order_status",
]
