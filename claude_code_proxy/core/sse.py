"""SSE (Server-Sent Events) stream utilities and error detection."""

import codecs
import json
from typing import Any, Optional

DONE_SENTINEL = "[DONE]"


class SSELineBuffer:
    """Reassembles ``data:`` payloads from arbitrarily split byte chunks.

    A chunk may end in the middle of a line, or in the middle of a multi-byte
    UTF-8 character. The unterminated tail is kept until the next chunk
    completes it; it is never parsed on its own.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._residual = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk and return the ``data:`` payloads of every completed line."""
        self._residual += self._decoder.decode(chunk)
        lines = self._residual.split("\n")
        self._residual = lines.pop()
        return [payload for payload in map(_data_payload, lines) if payload is not None]

    def flush(self) -> list[str]:
        """Drain whatever is left once the byte stream has ended."""
        tail = self._residual + self._decoder.decode(b"", final=True)
        self._residual = ""
        payload = _data_payload(tail)
        return [payload] if payload is not None else []


def _data_payload(line: str) -> Optional[str]:
    line = line.strip()
    if not line.startswith("data:"):
        return None
    payload = line[5:].strip()
    return payload or None


def format_sse_event(event_type: str, data: dict[str, Any]) -> bytes:
    """Format one named SSE event."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")


def detect_frame_error(frame: Any) -> Optional[Any]:
    """Return the error object carried by a parsed stream frame, if any.

    Detects patterns like:
    - data: {"type":"error","error":{...}}
    - data: {"error":{...}}
    """
    if not isinstance(frame, dict):
        return None
    if frame.get("type") == "error":
        return frame.get("error") or "unknown error"
    return frame.get("error") or None
