"""JSON-RPC frame helpers for the Replicator command socket.

Requests go out as one compact JSON object followed by a newline. Responses
are not reliably newline-terminated, so incoming bytes are split on JSON
object boundaries instead of on a delimiter or a fixed read size.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, TypeAlias

from .errors import ReplicatorProtocolError

JSONRPC_VERSION = "2.0"

# The device ignores the id; every request uses the same one.
REQUEST_ID = -1

RpcResponse: TypeAlias = dict[str, Any]

_WHITESPACE = b" \t\r\n"


@dataclass(frozen=True, slots=True)
class RpcRequest:
    """A single JSON-RPC call."""

    method: str
    params: dict[str, Any] | None = None
    id: int = REQUEST_ID

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form; params is always present, even when None."""
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "method": self.method.strip(),
            "params": self.params,
        }

    def encode(self) -> bytes:
        """Serialize to a newline-terminated compact UTF-8 frame."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode() + b"\n"


def is_method_echo(response: RpcResponse) -> bool:
    """Return True when the device signals the call is still processing."""
    return "method" in response


def is_final_response(response: RpcResponse) -> bool:
    return not is_method_echo(response)


class FrameDecoder:
    """Incrementally split a byte stream into top-level JSON objects.

    Braces are counted outside of string literals. UTF-8 continuation bytes
    never collide with the ASCII structural characters, so the scan runs on
    raw bytes.
    """

    def __init__(self, *, max_frame_size: int = 1024 * 1024) -> None:
        self._buffer = bytearray()
        self._max_frame_size = max_frame_size
        self._scan_pos = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet returned as a frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> None:
        self._buffer.extend(data)

    def next_frame(self) -> RpcResponse | None:
        """Return the next complete object, or None if more bytes are needed.

        Raises:
            ReplicatorProtocolError: On non-object documents, invalid JSON or
                frames larger than max_frame_size
        """
        if self._depth == 0 and not self._in_string:
            self._skip_whitespace()
            if not self._buffer:
                return None
            if self._buffer[0] != ord("{"):
                raise ReplicatorProtocolError(
                    f"Expected a JSON object, got {bytes(self._buffer[:32])!r}"
                )

        buf = self._buffer
        pos = self._scan_pos
        while pos < len(buf):
            byte = buf[pos]
            pos += 1
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif byte == 0x5C:  # backslash
                    self._escaped = True
                elif byte == 0x22:  # quote
                    self._in_string = False
            elif byte == 0x22:
                self._in_string = True
            elif byte in (0x7B, 0x5B):  # { [
                self._depth += 1
            elif byte in (0x7D, 0x5D):  # } ]
                self._depth -= 1
                if self._depth == 0:
                    return self._take(pos)

        self._scan_pos = pos
        if len(buf) > self._max_frame_size:
            raise ReplicatorProtocolError(
                f"Response exceeds {self._max_frame_size} bytes"
            )
        return None

    def _skip_whitespace(self) -> None:
        start = 0
        while start < len(self._buffer) and self._buffer[start] in _WHITESPACE:
            start += 1
        if start:
            del self._buffer[:start]

    def _take(self, end: int) -> RpcResponse:
        raw = bytes(self._buffer[:end])
        del self._buffer[:end]
        self._scan_pos = 0
        self._in_string = False
        self._escaped = False

        if end > self._max_frame_size:
            raise ReplicatorProtocolError(
                f"Response exceeds {self._max_frame_size} bytes"
            )
        try:
            decoded = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as err:
            raise ReplicatorProtocolError("Malformed JSON-RPC response") from err
        if not isinstance(decoded, dict):
            raise ReplicatorProtocolError("JSON-RPC response is not an object")
        return decoded
