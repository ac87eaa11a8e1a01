"""Layout workers for tests: inline, manually resolved, and always failing."""

import asyncio
from typing import Dict, List, Optional

from graphlayout.layout.tree_layout import compute_layout
from graphlayout.layout.workers.base import LayoutWorker, LayoutWorkerError
from graphlayout.models.layout_metadata import LayoutRequest, LayoutResponse, NodePosition


class CountingWorker(LayoutWorker):
    """Computes layouts inline and records every request."""

    def __init__(self):
        self.requests: List[LayoutRequest] = []

    @property
    def name(self) -> str:
        return "counting"

    @property
    def unit_count(self) -> int:
        return 1

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def compute(self, request: LayoutRequest) -> LayoutResponse:
        self.requests.append(request)
        return compute_layout(request)

    async def is_available(self) -> bool:
        return True

    def shutdown(self) -> None:
        pass


class ManualWorker(CountingWorker):
    """Holds every request until the test resolves it, in any order."""

    def __init__(self):
        super().__init__()
        self._futures: Dict[int, asyncio.Future] = {}

    @property
    def name(self) -> str:
        return "manual"

    async def compute(self, request: LayoutRequest) -> LayoutResponse:
        self.requests.append(request)
        future = asyncio.get_running_loop().create_future()
        self._futures[request.request_id] = future
        return await future

    def request(self, request_id: int) -> LayoutRequest:
        for request in self.requests:
            if request.request_id == request_id:
                return request
        raise KeyError(request_id)

    def resolve(self, request_id: int, positions: Optional[Dict[str, NodePosition]] = None) -> None:
        """Answer a held request with the real layout or the given positions."""
        request = self.request(request_id)
        if positions is None:
            response = compute_layout(request)
        else:
            response = LayoutResponse(
                request_id=request_id,
                fingerprint=request.fingerprint,
                positions=positions,
            )
        self._futures[request_id].set_result(response)

    def fail(self, request_id: int, message: str = "worker crashed") -> None:
        self._futures[request_id].set_exception(LayoutWorkerError(message))

    def shutdown(self) -> None:
        for future in self._futures.values():
            if not future.done():
                future.cancel()


class FailingWorker(CountingWorker):
    """Every request fails like a crashed unit."""

    @property
    def name(self) -> str:
        return "failing"

    async def compute(self, request: LayoutRequest) -> LayoutResponse:
        self.requests.append(request)
        raise LayoutWorkerError("worker process exited")


async def wait_for_requests(worker: CountingWorker, count: int) -> None:
    """Let scheduled tasks run until the worker has seen ``count`` requests."""
    for _ in range(100):
        if worker.calls >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"Worker saw {worker.calls} requests, expected {count}")


class FlakyWorker(CountingWorker):
    """Fails the first ``failures`` requests, then computes inline."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures

    @property
    def name(self) -> str:
        return "flaky"

    async def compute(self, request: LayoutRequest) -> LayoutResponse:
        self.requests.append(request)
        if self.calls <= self.failures:
            raise LayoutWorkerError("worker process exited")
        return compute_layout(request)
