"""Base layout worker protocol.

Defines the interface that all layout worker backends must implement, and the
errors they raise. Workers exchange immutable messages only: a LayoutRequest
goes in, a LayoutResponse comes out.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict

from graphlayout.models.layout_metadata import LayoutRequest, LayoutResponse


class LayoutWorkerError(RuntimeError):
    """Raised when a worker unit fails, dies, or answers with an error."""


class WorkerTimeoutError(LayoutWorkerError):
    """Raised when a worker unit does not answer in time."""

    def __init__(self, request_id: int, timeout: float):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Layout request {request_id} timed out after {timeout}s")


class LayoutWorker(ABC):
    """Abstract base class for layout worker backends.

    Backends run the layout algorithm away from the calling thread, so the
    event loop stays responsive while a layout is computed.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name (e.g., 'subprocess', 'thread')."""
        ...

    @property
    @abstractmethod
    def unit_count(self) -> int:
        """Number of isolated units requests are spread over."""
        ...

    @abstractmethod
    async def compute(self, request: LayoutRequest) -> LayoutResponse:
        """Compute positions for a request.

        Raises:
            LayoutWorkerError: If the backend cannot produce a response
        """
        ...

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if the backend can serve requests."""
        ...

    @abstractmethod
    def shutdown(self) -> None:
        """Release units. The backend may be restarted by the next compute()."""
        ...


def encode_request(request: LayoutRequest) -> str:
    """Protocol line for a request (without trailing newline)."""
    return json.dumps({"id": request.request_id, "request": request.model_dump(mode="json")})


def decode_response(line: str, request_id: int) -> LayoutResponse:
    """Parse a protocol line answering ``request_id``.

    Raises:
        LayoutWorkerError: On error envelopes, garbage, or an id mismatch
    """
    try:
        message: Dict[str, Any] = json.loads(line)
    except ValueError as e:
        raise LayoutWorkerError(f"Unreadable worker response: {e}") from e

    if not isinstance(message, dict):
        raise LayoutWorkerError("Worker response is not a JSON object")
    if "error" in message:
        raise LayoutWorkerError(f"Layout failed: {message['error']}")
    if message.get("id") != request_id:
        raise LayoutWorkerError(
            f"Response ID mismatch: expected {request_id}, got {message.get('id')}"
        )

    try:
        return LayoutResponse.model_validate(message.get("result", {}))
    except ValueError as e:
        raise LayoutWorkerError(f"Invalid worker response: {e}") from e


__all__ = [
    "LayoutWorker",
    "LayoutWorkerError",
    "WorkerTimeoutError",
    "encode_request",
    "decode_response",
]
