"""
Core Layer - Snapshot resolution for the layout engine

Modules:
- fingerprint: Order-independent content key of a snapshot
- layout_cache: Two-tier fingerprint -> position map store
- coordinator: Versioned worker requests, drag integration, subscriptions
- graph_session: Projection inputs driving a coordinator
"""

from .fingerprint import (
    fingerprint,
    fingerprint_snapshot,
    canonical_form,
    rolling_hash,
)
from .layout_cache import (
    LayoutCacheStore,
    DurableLayoutStore,
    FileLayoutStore,
    CacheStats,
    create_layout_cache,
    filter_to_snapshot,
)
from .coordinator import (
    LayoutCoordinator,
    LayoutDiagnostic,
    create_coordinator,
)
from .graph_session import GraphSession

__all__ = [
    "fingerprint",
    "fingerprint_snapshot",
    "canonical_form",
    "rolling_hash",
    "LayoutCacheStore",
    "DurableLayoutStore",
    "FileLayoutStore",
    "CacheStats",
    "create_layout_cache",
    "filter_to_snapshot",
    "LayoutCoordinator",
    "LayoutDiagnostic",
    "create_coordinator",
    "GraphSession",
]
