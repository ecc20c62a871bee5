"""JSON-RPC socket client for the Replicator command port."""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Any

from ..errors import (
    ReplicatorConnectionError,
    ReplicatorProtocolError,
    ReplicatorTimeout,
)
from ..protocol import FrameDecoder, RpcRequest, RpcResponse
from .tcp import connect_socket

_LOGGER = logging.getLogger(__name__)


class ReplicatorRpcClient:
    """One half-duplex JSON-RPC connection: one request in flight at a time."""

    def __init__(
        self,
        *,
        read_size: int = 2048,
        read_timeout: float | None = 30.0,
        max_frame_size: int = 1024 * 1024,
    ) -> None:
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_size = read_size
        self._read_timeout = read_timeout
        self._decoder = FrameDecoder(max_frame_size=max_frame_size)
        self._peer = ""

    @property
    def is_connected(self) -> bool:
        return self._writer is not None

    async def connect(self, host: str, port: int, *, timeout: float = 10.0) -> None:
        """Connect to the device socket."""
        self._reader, self._writer = await connect_socket(host, port, timeout=timeout)
        self._peer = f"{host}:{port}"
        _LOGGER.debug("[%s] Socket connected", self._peer)

    async def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return

        writer.close()
        try:
            await writer.wait_closed()
        except OSError as err:
            _LOGGER.debug("[%s] Error while closing socket: %s", self._peer, err)
        _LOGGER.debug("[%s] Socket closed", self._peer)

    async def __aenter__(self) -> ReplicatorRpcClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def request(
        self, method: str, params: dict[str, Any] | None = None
    ) -> RpcResponse:
        """Send one call and wait for the complete response object.

        Raises:
            ReplicatorConnectionError: If the socket is not open or fails
            ReplicatorTimeout: If a read exceeds the read timeout
            ReplicatorProtocolError: If the response is incomplete or malformed
        """
        if self._writer is None or self._reader is None:
            raise ReplicatorConnectionError("JSON-RPC socket is not connected")

        frame = RpcRequest(method, params).encode()
        _LOGGER.debug("[%s] → %s", self._peer, method.strip())
        try:
            self._writer.write(frame)
            await self._writer.drain()
        except OSError as err:
            raise ReplicatorConnectionError(f"Sending {method} failed") from err

        response = await self._read_response(self._reader, method)
        _LOGGER.debug("[%s] ← %s: %s", self._peer, method.strip(), sorted(response))
        return response

    async def _read_response(
        self, reader: asyncio.StreamReader, method: str
    ) -> RpcResponse:
        while True:
            response = self._decoder.next_frame()
            if response is not None:
                return response

            try:
                chunk = await asyncio.wait_for(
                    reader.read(self._read_size), timeout=self._read_timeout
                )
            except TimeoutError as err:
                raise ReplicatorTimeout(f"Response to {method} timed out") from err
            except OSError as err:
                raise ReplicatorConnectionError(
                    f"Reading response to {method} failed"
                ) from err

            if not chunk:
                raise ReplicatorProtocolError(
                    f"Connection closed before the response to {method} was complete"
                    f" ({self._decoder.pending} bytes buffered)"
                )
            self._decoder.feed(chunk)
