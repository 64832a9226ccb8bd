"""Line-delimited JSON-RPC envelopes shared by the orchestrator and worker."""

import json
import logging
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class ChannelError(RuntimeError):
    """Base error for the worker request channel."""


class RequestTimeout(ChannelError):
    """Raised when no response arrives before a request's deadline."""


class WorkerExited(ChannelError):
    """Raised for requests still pending when the worker goes away."""


class WorkerStartError(ChannelError):
    """Raised when the worker cannot be started or refuses the handshake."""


class RemoteError(ChannelError):
    """Error reported by the worker in a response envelope."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


def make_request(request_id: int, method: str, params: Optional[dict] = None) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}}


def make_result(request_id: Any, result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def make_error(request_id: Any, message: str, code: int = INTERNAL_ERROR) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def encode(message: dict) -> bytes:
    """Serialize one envelope as a single newline-terminated line."""
    return (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")


def decode(line: str) -> Optional[dict]:
    """Parse a line into an envelope, or None if it is not a JSON object."""
    line = line.strip()
    if not line:
        return None
    try:
        message = json.loads(line)
    except json.JSONDecodeError:
        logger.debug(f"Discarding non-JSON line: {line[:80]}")
        return None
    if not isinstance(message, dict):
        return None
    return message


def text_content(payload: Any) -> dict:
    """Wrap a structured result as tool content with embedded JSON text."""
    return {"content": [{"type": "text", "text": json.dumps(payload, ensure_ascii=False, indent=2)}]}


def read_text_content(result: dict) -> Any:
    """Extract and parse the embedded JSON text of a tool result."""
    try:
        text = result["content"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise ChannelError("Tool result has no text content")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ChannelError(f"Tool result is not JSON: {e}")


class LineBuffer:
    """Accumulates byte chunks and yields complete lines.

    A trailing fragment without a newline stays buffered until a later
    chunk completes it.
    """

    def __init__(self):
        self._pending = b""

    @property
    def pending(self) -> bytes:
        return self._pending

    def feed(self, chunk: bytes) -> List[str]:
        data = self._pending + chunk
        *lines, self._pending = data.split(b"\n")
        return [line.decode("utf-8", errors="replace") for line in lines]
