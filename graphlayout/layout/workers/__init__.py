"""Layout worker backends registry.

Available backends:
- subprocess: persistent Python worker processes (default)
- thread: private thread pool in the calling process
"""

from typing import Optional

from graphlayout.config.settings import LayoutSettings, load_settings
from graphlayout.layout.workers.base import (
    LayoutWorker,
    LayoutWorkerError,
    WorkerTimeoutError,
)
from graphlayout.layout.workers.subprocess_pool import SubprocessLayoutWorker
from graphlayout.layout.workers.thread import ThreadLayoutWorker

# Backend registry
WORKERS = {
    "subprocess": SubprocessLayoutWorker,
    "thread": ThreadLayoutWorker,
}


def get_worker_class(name: str) -> type:
    """Get layout worker class by name.

    Raises:
        ValueError: If backend not found
    """
    if name not in WORKERS:
        raise ValueError(f"Unknown layout worker backend: {name}. Available: {list(WORKERS.keys())}")
    return WORKERS[name]


def create_worker(settings: Optional[LayoutSettings] = None) -> LayoutWorker:
    """Build the configured worker backend (default: GRAPH_LAYOUT_* environment variables)."""
    settings = settings or load_settings()
    worker_class = get_worker_class(settings.worker_backend)
    return worker_class(worker_count=settings.worker_count, timeout=settings.worker_timeout)


__all__ = [
    "LayoutWorker",
    "LayoutWorkerError",
    "WorkerTimeoutError",
    "SubprocessLayoutWorker",
    "ThreadLayoutWorker",
    "WORKERS",
    "get_worker_class",
    "create_worker",
]
