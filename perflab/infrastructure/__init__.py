"""
Infrastructure package for the Mongo performance lab.

Centralizes document-store connectivity (client lifecycle, the store access
capability). Keep this layer focused on I/O and resource management, decoupled
from strategy/orchestrator logic.
"""

from perflab.infrastructure.store import (
    MongoStore,
    StoreAccess,
    StoreConnectionError,
    StoreContext,
)

__all__ = [
    "MongoStore",
    "StoreAccess",
    "StoreConnectionError",
    "StoreContext",
]
