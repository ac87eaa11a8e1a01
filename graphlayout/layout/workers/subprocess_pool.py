"""Layout worker pool of persistent Python subprocesses.

Each unit is a long-running ``python -m graphlayout.layout.worker_main``
process speaking the stdin/stdout JSON line protocol. Requests are spread
round-robin over the units; a unit serves one request at a time.

Architecture Decision:
    - Persistent worker processes (not per-call spawn)
    - stdin/stdout JSON protocol with request IDs
    - Blocking pipe I/O runs on a private thread pool so the event loop never waits
    - A unit that times out or breaks its pipe is killed and restarted lazily
"""

import asyncio
import atexit
import itertools
import logging
import subprocess
import sys
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from graphlayout.layout.workers.base import (
    LayoutWorker,
    LayoutWorkerError,
    WorkerTimeoutError,
    decode_response,
    encode_request,
)
from graphlayout.models.layout_metadata import LayoutRequest, LayoutResponse

logger = logging.getLogger(__name__)

WORKER_MODULE = "graphlayout.layout.worker_main"

# Directory containing the graphlayout package, so ``-m`` resolves from a checkout
_PACKAGE_PARENT = Path(__file__).resolve().parents[3]


class WorkerProcess:
    """Manages one persistent layout worker process.

    Provides thread-safe access to a long-running Python process that handles
    layout requests via the stdin/stdout JSON protocol.
    """

    def __init__(
        self,
        index: int,
        python_path: str,
        module: str = WORKER_MODULE,
    ):
        """Initialize worker process manager.

        Args:
            index: Unit number, for logging
            python_path: Python interpreter to run
            module: Module implementing the line protocol
        """
        self.index = index
        self._python_path = python_path
        self._module = module
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()
        self._io_lock = threading.Lock()

    def _start_worker(self) -> None:
        """Start the worker process if not already running."""
        with self._lock:
            if self._process is not None and self._process.poll() is None:
                return  # Already running

            logger.debug(f"Starting layout worker {self.index}")
            try:
                self._process = subprocess.Popen(
                    [self._python_path, "-m", self._module],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    text=True,
                    bufsize=1,  # Line buffered
                    cwd=_PACKAGE_PARENT,
                )
            except OSError as e:
                self._process = None
                raise LayoutWorkerError(
                    f"Layout worker {self.index} could not be started: {e}"
                ) from e
            logger.info(f"Layout worker {self.index} started (PID: {self._process.pid})")

    def _ensure_worker(self) -> subprocess.Popen:
        """Ensure worker is running and return it."""
        self._start_worker()
        process = self._process
        if process is None or process.poll() is not None:
            raise LayoutWorkerError(f"Layout worker {self.index} failed to start")
        return process

    def exchange(self, line: str) -> str:
        """Send one request line and block for the reply line.

        Raises:
            LayoutWorkerError: If the worker cannot be reached or closes
        """
        with self._io_lock:
            process = self._ensure_worker()
            try:
                process.stdin.write(line + "\n")
                process.stdin.flush()
            except (BrokenPipeError, OSError) as e:
                # Worker died, try to restart
                logger.warning(f"Layout worker {self.index} pipe broken: {e}, restarting")
                self.shutdown()
                process = self._ensure_worker()
                try:
                    process.stdin.write(line + "\n")
                    process.stdin.flush()
                except (BrokenPipeError, OSError) as retry_error:
                    raise LayoutWorkerError(
                        f"Layout worker {self.index} unavailable: {retry_error}"
                    ) from retry_error

            try:
                response_line = process.stdout.readline()
            except (OSError, ValueError) as e:
                raise LayoutWorkerError(f"Layout worker {self.index} read failed: {e}") from e
            if not response_line:
                raise LayoutWorkerError(f"Layout worker {self.index} closed unexpectedly")
            return response_line

    def shutdown(self) -> None:
        """Shutdown the worker process."""
        with self._lock:
            process = self._process
            self._process = None
        if process is None:
            return

        logger.debug(f"Shutting down layout worker {self.index}")
        try:
            if process.stdin is not None:
                process.stdin.close()
            process.terminate()
            process.wait(timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Error shutting down layout worker {self.index}: {e}")
            try:
                process.kill()
            except OSError:
                pass

    @property
    def is_running(self) -> bool:
        """Check if worker is currently running."""
        with self._lock:
            return self._process is not None and self._process.poll() is None


# Live pools, shut down at interpreter exit
_live_pools: "weakref.WeakSet[SubprocessLayoutWorker]" = weakref.WeakSet()


def _cleanup_pools() -> None:
    """Cleanup worker processes on process exit."""
    for pool in list(_live_pools):
        pool.shutdown()


atexit.register(_cleanup_pools)


class SubprocessLayoutWorker(LayoutWorker):
    """Layout worker backend over persistent Python subprocesses."""

    def __init__(
        self,
        worker_count: int = 1,
        timeout: float = 30.0,
        python_path: Optional[str] = None,
        module: str = WORKER_MODULE,
    ):
        """Initialize the worker pool.

        Args:
            worker_count: Number of worker processes
            timeout: Seconds to wait for a response before restarting the unit
            python_path: Interpreter for the units (default: current one)
            module: Module implementing the line protocol
        """
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        self._timeout = timeout
        self._units: List[WorkerProcess] = [
            WorkerProcess(index, python_path or sys.executable, module)
            for index in range(worker_count)
        ]
        self._next_unit = itertools.cycle(self._units)
        self._executor: Optional[ThreadPoolExecutor] = None
        _live_pools.add(self)

    @property
    def name(self) -> str:
        return "subprocess"

    @property
    def unit_count(self) -> int:
        return len(self._units)

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=len(self._units), thread_name_prefix="layout-io"
            )
        return self._executor

    async def compute(self, request: LayoutRequest) -> LayoutResponse:
        """Send a request to the next unit and await its response.

        Raises:
            WorkerTimeoutError: If the unit does not answer in time (it is restarted)
            LayoutWorkerError: If the unit fails or answers with an error
        """
        unit = next(self._next_unit)
        loop = asyncio.get_running_loop()
        try:
            reply = await asyncio.wait_for(
                loop.run_in_executor(self._get_executor(), unit.exchange, encode_request(request)),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Layout request {request.request_id} timed out after {self._timeout}s"
            )
            # Kill the unit; the blocked reader sees EOF and the next call restarts it.
            # The unit's pool thread is still blocked on the read
            await loop.run_in_executor(None, unit.shutdown)
            raise WorkerTimeoutError(request.request_id, self._timeout)

        try:
            return decode_response(reply, request.request_id)
        except LayoutWorkerError:
            # Out of step with the protocol; start clean next time
            await loop.run_in_executor(None, unit.shutdown)
            raise

    async def is_available(self) -> bool:
        """Check that a unit can be started."""
        loop = asyncio.get_running_loop()
        unit = self._units[0]
        try:
            await loop.run_in_executor(self._get_executor(), unit._ensure_worker)
        except (LayoutWorkerError, OSError) as e:
            logger.warning(f"Layout worker availability check failed: {e}")
            return False
        return unit.is_running

    def shutdown(self) -> None:
        """Shutdown all worker processes."""
        for unit in self._units:
            unit.shutdown()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    @property
    def running_units(self) -> int:
        return sum(1 for unit in self._units if unit.is_running)


__all__ = ["WORKER_MODULE", "WorkerProcess", "SubprocessLayoutWorker"]
