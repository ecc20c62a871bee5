"""Pytest configuration and fixtures for replicator_rpc tests."""

from __future__ import annotations

import asyncio
import itertools
import json
from collections.abc import AsyncIterator, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from replicator_rpc.auth import TokenAuthority
from replicator_rpc.config import SessionConfig
from replicator_rpc.http import ReplicatorHttpClient
from replicator_rpc.retry import RetryPolicy

OK_RESPONSE: dict[str, Any] = {"jsonrpc": "2.0", "id": -1, "result": None}


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


def create_mock_response(
    status: int = 200,
    json_data: Any = None,
    text_data: str | None = None,
    read_data: bytes | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Data to return from json() call
        text_data: Data to return from text() call
        read_data: Data to return from read() call

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status

    if json_data is not None:
        response.json.return_value = json_data
    if text_data is not None:
        response.text.return_value = text_data
    if read_data is not None:
        response.read.return_value = read_data

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response


def token_responses() -> Callable[..., Any]:
    """Side effect for request_access_token issuing a new token every call."""
    counter = itertools.count(1)

    async def _issue(auth_code: str, context: Any) -> dict[str, Any]:
        return {"status": "success", "access_token": f"token-{next(counter)}"}

    return _issue


@pytest.fixture
def mock_http() -> MagicMock:
    """ReplicatorHttpClient double minting a fresh token per request."""
    http = MagicMock(spec=ReplicatorHttpClient)
    http.host = "192.168.1.20"
    http.request_access_token = AsyncMock(side_effect=token_responses())
    http.request_pairing_code = AsyncMock()
    http.query_answer = AsyncMock()
    http.probe = AsyncMock()
    http.fetch_file = AsyncMock()
    return http


@pytest.fixture
def authority(mock_http: MagicMock) -> TokenAuthority:
    return TokenAuthority(
        mock_http,
        username="MakerBot API",
        acceptance_policy=RetryPolicy(attempts=5, delay=1.0),
    )


@pytest.fixture
def fast_config() -> SessionConfig:
    return SessionConfig(
        host="192.168.1.20",
        echo_policy=RetryPolicy(attempts=10, delay=0),
        acceptance_policy=RetryPolicy(attempts=5, delay=0),
    )


class FakeRpcClient:
    """Transport double answering from the owning FakeDevice's script."""

    def __init__(self, device: FakeDevice) -> None:
        self._device = device
        self.requests: list[tuple[str, dict[str, Any] | None]] = []
        self.connected = False

    async def connect(self, host: str, port: int, *, timeout: float = 10.0) -> None:
        self._device.opens += 1
        if self._device.connect_error is not None:
            raise self._device.connect_error
        self.connected = True

    async def request(
        self, method: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        self.requests.append((method, params))
        self._device.requests.append((method, params))
        script = self._device.responses.get(method)
        if script:
            response = script.pop(0)
        else:
            response = dict(OK_RESPONSE)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self._device.closes += 1
        self.connected = False


class FakeDevice:
    """Scripted device shared by every connection a session opens.

    responses maps a method name to the queue of replies it returns; once a
    queue is empty the method answers with a plain result.
    """

    def __init__(self) -> None:
        self.responses: dict[str, list[Any]] = {}
        self.requests: list[tuple[str, dict[str, Any] | None]] = []
        self.clients: list[FakeRpcClient] = []
        self.opens = 0
        self.closes = 0
        self.connect_error: BaseException | None = None

    def script(self, method: str, *responses: Any) -> None:
        self.responses.setdefault(method, []).extend(responses)

    def factory(self) -> FakeRpcClient:
        client = FakeRpcClient(self)
        self.clients.append(client)
        return client

    def methods(self) -> list[str]:
        return [method for method, _ in self.requests]


@pytest.fixture
def fake_device() -> FakeDevice:
    return FakeDevice()


class Hangup(bytes):
    """Stub reply: write these bytes, then drop the connection."""


class StubDevice:
    """Loopback TCP server speaking the Replicator JSON-RPC dialect.

    Each request line is recorded; replies are popped from the script of the
    requested method and written without a trailing newline, optionally in
    several chunks. A None reply drops the connection, ... sends nothing.
    """

    def __init__(self) -> None:
        self.responses: dict[str, list[Any]] = {}
        self.received: list[dict[str, Any]] = []
        self.connections = 0
        self.chunk_size: int | None = None
        self.server: asyncio.AbstractServer | None = None
        self.port = 0

    def script(self, method: str, *responses: Any) -> None:
        self.responses.setdefault(method, []).extend(responses)

    async def start(self) -> None:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.connections += 1
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                request = json.loads(line)
                self.received.append(request)
                script = self.responses.get(request["method"])
                reply = script.pop(0) if script else dict(OK_RESPONSE)
                if reply is None:
                    break
                if reply is ...:
                    continue
                if isinstance(reply, Hangup):
                    writer.write(reply)
                    await writer.drain()
                    break
                payload = reply if isinstance(reply, bytes) else json.dumps(reply).encode()
                step = self.chunk_size or len(payload)
                for start in range(0, len(payload), step):
                    writer.write(payload[start : start + step])
                    await writer.drain()
                    await asyncio.sleep(0)
        finally:
            writer.close()

    def methods(self) -> list[str]:
        return [request["method"] for request in self.received]


@pytest.fixture
async def stub_device() -> AsyncIterator[StubDevice]:
    device = StubDevice()
    await device.start()
    yield device
    await device.stop()
