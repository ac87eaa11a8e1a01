"""Layout worker process entry point.

Run as ``python -m graphlayout.layout.worker_main``. Reads one JSON request per
line on stdin and writes one JSON response per line on stdout:

    -> {"id": 7, "request": {...LayoutRequest...}}
    <- {"id": 7, "result": {...LayoutResponse...}}
    <- {"id": 7, "error": "ValidationError: ..."}

The process holds no state between requests.
"""

import json
import logging
import sys
from typing import Any, Dict, Optional, TextIO

from graphlayout.layout.tree_layout import compute_layout
from graphlayout.models.layout_metadata import LayoutRequest

logger = logging.getLogger(__name__)


def handle_message(line: str) -> str:
    """Answer one protocol line. Errors become an error envelope, never an exception."""
    request_id: Optional[Any] = None
    try:
        message = json.loads(line)
        if not isinstance(message, dict):
            raise ValueError("Message must be a JSON object")
        request_id = message.get("id")
        request = LayoutRequest.model_validate(message["request"])
        response = compute_layout(request)
        reply: Dict[str, Any] = {"id": request_id, "result": response.model_dump(mode="json")}
    except Exception as e:
        logger.warning(f"Rejected layout message {request_id!r}: {e}")
        reply = {"id": request_id, "error": f"{type(e).__name__}: {e}"}
    return json.dumps(reply)


def serve(stdin: TextIO, stdout: TextIO) -> int:
    """Answer requests until stdin closes."""
    for line in stdin:
        line = line.strip()
        if not line:
            continue
        stdout.write(handle_message(line) + "\n")
        stdout.flush()
    return 0


def main() -> None:
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr)
    sys.exit(serve(sys.stdin, sys.stdout))


if __name__ == "__main__":
    main()
