"""In-process layout worker backed by a thread pool.

Uses the same line protocol as the subprocess backend, so requests and
responses are serialized copies and no object is shared with the caller.
Suited to embedding and tests; CPU-bound layouts still contend for the GIL.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from graphlayout.layout.worker_main import handle_message
from graphlayout.layout.workers.base import (
    LayoutWorker,
    LayoutWorkerError,
    WorkerTimeoutError,
    decode_response,
    encode_request,
)
from graphlayout.models.layout_metadata import LayoutRequest, LayoutResponse

logger = logging.getLogger(__name__)


class ThreadLayoutWorker(LayoutWorker):
    """Runs layout passes on a private thread pool."""

    def __init__(self, worker_count: int = 1, timeout: float = 30.0):
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        self._worker_count = worker_count
        self._timeout = timeout
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def name(self) -> str:
        return "thread"

    @property
    def unit_count(self) -> int:
        return self._worker_count

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._worker_count, thread_name_prefix="layout-worker"
            )
        return self._executor

    async def compute(self, request: LayoutRequest) -> LayoutResponse:
        loop = asyncio.get_running_loop()
        line = encode_request(request)
        try:
            reply = await asyncio.wait_for(
                loop.run_in_executor(self._get_executor(), handle_message, line),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise WorkerTimeoutError(request.request_id, self._timeout)
        except RuntimeError as e:
            # executor already shut down
            raise LayoutWorkerError(str(e)) from e
        return decode_response(reply, request.request_id)

    async def is_available(self) -> bool:
        return True

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
