"""Layout module for automatic graph positioning.

This module provides:
- The hybrid tree/grid layout algorithm (tree_layout, packer)
- Worker backends that run it off the calling thread (workers)
- The worker process entry point (worker_main)
"""

from graphlayout.layout.packer import pack_nodes
from graphlayout.layout.tree_layout import (
    LayoutContext,
    compute_fallback_layout,
    compute_layout,
)

__all__ = [
    "LayoutContext",
    "compute_layout",
    "compute_fallback_layout",
    "pack_nodes",
]
