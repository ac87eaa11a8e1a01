"""Layout Cache Module - Two-tier fingerprint -> position map store.

This module provides:
- A bounded in-memory tier, consulted first, evicting oldest-written entries
- A durable tier surviving restarts (JSON files, one per fingerprint)
- Fire-and-forget durable writes on a private I/O thread
- filter_to_snapshot(), which makes a cached map safe to apply to a snapshot

Architecture Decision:
    - Memory tier size is an enforced bound, not an optimization
    - Durable tier failures are cache misses: logged, never raised to callers
    - Reads and writes to the durable tier share one I/O thread, so a read
      issued after a put observes it
    - File format: {cache_dir}/{fingerprint}.layout.json, sorted keys

Usage:
    from graphlayout.core.layout_cache import LayoutCacheStore, FileLayoutStore

    cache = LayoutCacheStore(max_entries=64, durable=FileLayoutStore("/tmp/layouts"))
    cache.put(fingerprint, positions)
    positions = cache.get(fingerprint)
    compatible = filter_to_snapshot(positions, snapshot)
"""

import asyncio
import json
import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set, Union

from pydantic import ValidationError

from graphlayout.models.graph_snapshot import GraphSnapshot
from graphlayout.models.layout_metadata import (
    NodePosition,
    PositionMap,
    positions_from_dict,
    positions_to_dict,
)

logger = logging.getLogger(__name__)

_FINGERPRINT_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def filter_to_snapshot(
    positions: Optional[Mapping[str, NodePosition]],
    snapshot: GraphSnapshot,
) -> Optional[PositionMap]:
    """Restrict a cached position map to a snapshot.

    Drops positions for node ids not in the snapshot and positions with a
    non-finite coordinate.

    Returns:
        The filtered map, or None if nothing is left
    """
    if not positions:
        return None
    node_ids = snapshot.node_ids()
    filtered = {
        node_id: pos
        for node_id, pos in positions.items()
        if node_id in node_ids and pos.is_finite
    }
    return filtered or None


# =========================================================================
# Durable tier
# =========================================================================


class DurableLayoutStore(ABC):
    """Key-value store for position maps that survives process restarts.

    Implementations may block; LayoutCacheStore calls them off the caller's thread.
    """

    @abstractmethod
    def read(self, fingerprint: str) -> Optional[PositionMap]:
        """Return the stored map, or None if absent."""
        ...

    @abstractmethod
    def write(self, fingerprint: str, positions: Mapping[str, NodePosition]) -> None:
        """Store a map, replacing any previous one."""
        ...

    @abstractmethod
    def delete(self, fingerprint: str) -> bool:
        """Remove a map. Returns True if one was removed."""
        ...

    @abstractmethod
    def clear(self) -> int:
        """Remove every map. Returns the number removed."""
        ...


class FileLayoutStore(DurableLayoutStore):
    """Durable tier storing one JSON file per fingerprint.

    Files are written atomically (temp file + rename) with sorted keys, so a
    crash mid-write never leaves a truncated entry behind.
    """

    SUFFIX = ".layout.json"

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory).expanduser()

    def _path(self, fingerprint: str) -> Path:
        if not _FINGERPRINT_RE.match(fingerprint):
            raise ValueError(f"Invalid fingerprint for file store: {fingerprint!r}")
        return self.directory / f"{fingerprint}{self.SUFFIX}"

    def read(self, fingerprint: str) -> Optional[PositionMap]:
        file_path = self._path(fingerprint)
        if not file_path.exists():
            return None

        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict) or not isinstance(data.get("positions"), dict):
            logger.warning(f"Ignoring malformed layout cache file {file_path}")
            return None
        return positions_from_dict(data["positions"])

    def write(self, fingerprint: str, positions: Mapping[str, NodePosition]) -> None:
        file_path = self._path(fingerprint)
        self.directory.mkdir(parents=True, exist_ok=True)

        data = {
            "fingerprint": fingerprint,
            "positions": positions_to_dict(positions),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_name, file_path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

        logger.debug(f"Saved layout {fingerprint} to {file_path}")

    def delete(self, fingerprint: str) -> bool:
        file_path = self._path(fingerprint)
        try:
            file_path.unlink()
        except FileNotFoundError:
            return False
        return True

    def clear(self) -> int:
        if not self.directory.exists():
            return 0
        count = 0
        for file_path in self.directory.glob(f"*{self.SUFFIX}"):
            try:
                file_path.unlink()
                count += 1
            except OSError as e:
                logger.warning(f"Could not remove {file_path}: {e}")
        return count

    def fingerprints(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(
            p.name[: -len(self.SUFFIX)] for p in self.directory.glob(f"*{self.SUFFIX}")
        )


# =========================================================================
# Two-tier store
# =========================================================================


@dataclass
class CacheStats:
    """Counters of a LayoutCacheStore."""

    memory_hits: int = 0
    durable_hits: int = 0
    misses: int = 0
    writes: int = 0
    evictions: int = 0
    durable_failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# Errors that turn a durable read into a miss
_DURABLE_READ_ERRORS = (OSError, ValueError, ValidationError)


class LayoutCacheStore:
    """Thread-safe two-tier layout cache keyed by snapshot fingerprint.

    Example:
        cache = LayoutCacheStore(max_entries=64, durable=FileLayoutStore(path))

        cache.put("9f3a01bc", positions)        # memory now, disk in background
        hit = cache.get_memory("9f3a01bc")      # never touches disk
        hit = await cache.get_async("9f3a01bc") # memory, then disk off-thread
    """

    def __init__(
        self,
        max_entries: int = 64,
        durable: Optional[DurableLayoutStore] = None,
    ):
        """Initialize the cache.

        Args:
            max_entries: Memory tier soft limit; oldest-written entries are evicted
            durable: Durable tier, or None for a memory-only cache
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._max_entries = max_entries
        self._memory: "OrderedDict[str, PositionMap]" = OrderedDict()
        self._lock = threading.RLock()
        self._durable = durable
        self._io_executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        self.stats = CacheStats()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def durable(self) -> Optional[DurableLayoutStore]:
        return self._durable

    def _get_io_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._io_executor is None:
                self._io_executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="layout-cache-io"
                )
            return self._io_executor

    # ---------------------------------------------------------------------
    # Memory tier
    # ---------------------------------------------------------------------

    def _remember(self, fingerprint: str, positions: PositionMap) -> None:
        """Write into the memory tier and enforce the bound."""
        with self._lock:
            self._memory[fingerprint] = positions
            self._memory.move_to_end(fingerprint)
            while len(self._memory) > self._max_entries:
                evicted, _ = self._memory.popitem(last=False)
                self.stats.evictions += 1
                logger.debug(f"Evicted layout {evicted} from memory tier")

    def get_memory(self, fingerprint: str) -> Optional[PositionMap]:
        """Memory tier lookup only."""
        with self._lock:
            positions = self._memory.get(fingerprint)
            if positions is None:
                return None
            self.stats.memory_hits += 1
            return dict(positions)

    # ---------------------------------------------------------------------
    # Lookups
    # ---------------------------------------------------------------------

    def _read_durable(self, fingerprint: str) -> Optional[PositionMap]:
        if self._durable is None:
            return None
        try:
            return self._durable.read(fingerprint)
        except _DURABLE_READ_ERRORS as e:
            with self._lock:
                self.stats.durable_failures += 1
            logger.warning(f"Durable layout cache read failed for {fingerprint}: {e}")
            return None

    def _finish_lookup(self, fingerprint: str, positions: Optional[PositionMap]) -> Optional[PositionMap]:
        with self._lock:
            if not positions:
                self.stats.misses += 1
                logger.debug(f"Layout cache miss for {fingerprint}")
                return None
            self.stats.durable_hits += 1
            self._remember(fingerprint, dict(positions))
            logger.debug(f"Layout cache durable hit for {fingerprint}, promoted")
            return dict(positions)

    def get(self, fingerprint: str) -> Optional[PositionMap]:
        """Check the memory tier, then the durable tier (blocking).

        A durable hit is promoted into the memory tier.
        """
        positions = self.get_memory(fingerprint)
        if positions is not None:
            return positions
        if self._durable is None:
            return self._finish_lookup(fingerprint, None)
        future = self._get_io_executor().submit(self._read_durable, fingerprint)
        return self._finish_lookup(fingerprint, future.result())

    async def get_async(self, fingerprint: str) -> Optional[PositionMap]:
        """Like get(), but the durable read runs off the event loop."""
        positions = self.get_memory(fingerprint)
        if positions is not None:
            return positions
        if self._durable is None:
            return self._finish_lookup(fingerprint, None)
        loop = asyncio.get_running_loop()
        durable = await loop.run_in_executor(
            self._get_io_executor(), self._read_durable, fingerprint
        )
        return self._finish_lookup(fingerprint, durable)

    # ---------------------------------------------------------------------
    # Writes
    # ---------------------------------------------------------------------

    def put(self, fingerprint: str, positions: Mapping[str, NodePosition]) -> None:
        """Write to both tiers.

        The memory tier is updated before returning. The durable write is
        queued and its failure is only logged.
        """
        stored = {node_id: pos for node_id, pos in positions.items() if pos.is_finite}
        if not stored:
            logger.debug(f"Not caching empty layout for {fingerprint}")
            return

        with self._lock:
            self._remember(fingerprint, stored)
            self.stats.writes += 1

        if self._durable is None:
            return

        future = self._get_io_executor().submit(self._durable.write, fingerprint, dict(stored))
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(lambda f, fp=fingerprint: self._on_durable_write_done(fp, f))

    def _on_durable_write_done(self, fingerprint: str, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            with self._lock:
                self.stats.durable_failures += 1
            logger.warning(f"Durable layout cache write failed for {fingerprint}: {error}")

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued durable writes and their callbacks.

        Returns:
            True if everything queued before the call has finished
        """
        with self._lock:
            executor = self._io_executor
        if executor is None:
            return True
        # One I/O thread: once this no-op has run, earlier writes and their
        # done-callbacks have too
        barrier = executor.submit(lambda: None)
        try:
            barrier.result(timeout=timeout)
        except FuturesTimeoutError:
            return False
        return True

    @property
    def pending_writes(self) -> int:
        with self._lock:
            return len(self._pending)

    def invalidate(self, fingerprint: str) -> None:
        """Drop an entry from both tiers."""
        with self._lock:
            self._memory.pop(fingerprint, None)
        if self._durable is not None:
            self.flush()
            try:
                self._durable.delete(fingerprint)
            except (OSError, ValueError) as e:
                logger.warning(f"Durable layout cache delete failed for {fingerprint}: {e}")

    def clear_memory(self) -> int:
        """Drop the memory tier. Returns the number of entries removed."""
        with self._lock:
            count = len(self._memory)
            self._memory.clear()
            logger.debug(f"Cleared {count} layouts from memory tier")
            return count

    def close(self) -> None:
        """Flush pending writes and stop the I/O thread."""
        self.flush()
        with self._lock:
            executor = self._io_executor
            self._io_executor = None
        if executor is not None:
            executor.shutdown(wait=True)

    def memory_fingerprints(self) -> List[str]:
        """Memory tier keys, oldest write first."""
        with self._lock:
            return list(self._memory.keys())

    def __contains__(self, fingerprint: str) -> bool:
        """Memory tier membership (does not touch disk)."""
        with self._lock:
            return fingerprint in self._memory

    def __len__(self) -> int:
        """Number of entries in the memory tier."""
        with self._lock:
            return len(self._memory)


def create_layout_cache(
    max_entries: int = 64,
    cache_dir: Optional[Union[str, Path]] = None,
) -> LayoutCacheStore:
    """Create a layout cache, file-backed if ``cache_dir`` is given."""
    durable = FileLayoutStore(cache_dir) if cache_dir is not None else None
    return LayoutCacheStore(max_entries=max_entries, durable=durable)


__all__ = [
    "filter_to_snapshot",
    "DurableLayoutStore",
    "FileLayoutStore",
    "CacheStats",
    "LayoutCacheStore",
    "create_layout_cache",
]
