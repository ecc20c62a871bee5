"""Per-operation session template for Replicator JSON-RPC calls.

Every operation runs on its own connection:
- open a new socket
- mint a fresh jsonrpc access token and authenticate the socket with it
- issue the call(s), optionally re-issuing while the device echoes the method
- close the socket, whatever happened

Connections and tokens are never reused across operations; the device
accepts one token per connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from .auth import TokenAuthority
from .config import SessionConfig
from .errors import (
    ReplicatorAuthenticationFailed,
    ReplicatorAuthError,
    ReplicatorMethodEchoTimeout,
    ReplicatorRetryExhausted,
)
from .models import AuthorizationCode, AuthorizationState, TokenContext
from .protocol import RpcResponse, is_final_response
from .retry import poll_until
from .transport import ReplicatorRpcClient

_LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[], ReplicatorRpcClient]


class ReplicatorSession:
    """Opens, authenticates and tears down one connection per operation.

    Usage:
        session = ReplicatorSession(config, authority, authorization_code=code)
        info = await session.call("get_system_information", poll_echo=True)

        async with session.connection() as rpc:
            await rpc.request("process_method", {"method": "load_filament"})
            await rpc.request("load_filament", {"tool_index": 0})
    """

    def __init__(
        self,
        config: SessionConfig,
        authority: TokenAuthority,
        *,
        authorization_code: AuthorizationCode | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.config = config
        self._authority = authority
        self._authorization_code: AuthorizationCode | None = None
        self._transport_factory = transport_factory or self._default_transport
        self._operation_lock = asyncio.Lock()
        if authorization_code is not None:
            self.set_authorization_code(authorization_code)

    def _default_transport(self) -> ReplicatorRpcClient:
        return ReplicatorRpcClient(
            read_size=self.config.read_size,
            read_timeout=self.config.read_timeout,
            max_frame_size=self.config.max_frame_size,
        )

    @property
    def authorization_code(self) -> AuthorizationCode | None:
        return self._authorization_code

    def set_authorization_code(self, code: AuthorizationCode) -> None:
        """Replace the code used to mint tokens for later operations."""
        self._authorization_code = code
        self._authority.mark_authorized()

    def clear_authorization_code(self) -> None:
        """Drop the code; operations fail until a new one is set."""
        self._authorization_code = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def connection(self) -> AsyncIterator[ReplicatorRpcClient]:
        """Yield a freshly opened and authenticated connection.

        The connection is closed when the block exits, including on errors
        and task cancellation.

        Raises:
            ReplicatorAuthError: If no authorization code is set or the
                authority is not authorized
            ReplicatorAuthenticationFailed: If the socket could not be authenticated
        """
        code = self._authorization_code
        if code is None:
            raise ReplicatorAuthError("No authorization code; pair with the device first")
        if self._authority.state is not AuthorizationState.AUTHORIZED:
            raise ReplicatorAuthError(
                f"Authorization is {self._authority.state.value}; pair with the device first"
            )

        if self.config.serialize_operations:
            async with self._operation_lock:
                async with self._open(code) as rpc:
                    yield rpc
        else:
            async with self._open(code) as rpc:
                yield rpc

    async def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        prepare: str | None = None,
        poll_echo: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> RpcResponse:
        """Run one operation on a new connection and return its final response.

        Args:
            method: RPC method to invoke
            params: RPC parameters, sent as null when None
            prepare: If set, a process_method call for this name is sent first
            poll_echo: Re-issue the call while the device echoes the method back
            cancel: Optional event checked between echo polls

        Raises:
            ReplicatorMethodEchoTimeout: If the echo poll bound was reached
        """
        async with self.connection() as rpc:
            if prepare is not None:
                await rpc.request("process_method", {"method": prepare})

            if not poll_echo:
                return await rpc.request(method, params)

            return await self._poll_echo(rpc, method, params, cancel)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _open(self, code: AuthorizationCode) -> AsyncIterator[ReplicatorRpcClient]:
        rpc = self._transport_factory()
        try:
            await rpc.connect(
                self.config.host,
                self.config.rpc_port,
                timeout=self.config.connect_timeout,
            )
            await self._authenticate(rpc, code)
            yield rpc
        finally:
            await rpc.close()

    async def _authenticate(
        self, rpc: ReplicatorRpcClient, code: AuthorizationCode
    ) -> None:
        try:
            token = await self._authority.mint_access_token(code, TokenContext.JSONRPC)
        except ReplicatorAuthError as err:
            raise ReplicatorAuthenticationFailed(
                "Could not obtain an access token for the connection"
            ) from err

        response = await rpc.request("authenticate", {"access_token": token.value})
        if "error" in response:
            raise ReplicatorAuthenticationFailed(
                f"Device rejected the access token: {response['error']}"
            )
        _LOGGER.debug("[%s] Connection authenticated", self.config.host)

    async def _poll_echo(
        self,
        rpc: ReplicatorRpcClient,
        method: str,
        params: dict[str, Any] | None,
        cancel: asyncio.Event | None,
    ) -> RpcResponse:
        try:
            return await poll_until(
                lambda: rpc.request(method, params),
                is_final_response,
                self.config.echo_policy,
                cancel=cancel,
                description=f"{method} echo poll",
            )
        except ReplicatorRetryExhausted as err:
            raise ReplicatorMethodEchoTimeout(
                f"Device still processing {method} after {err.attempts} attempts",
                attempts=err.attempts,
                last=err.last,
            ) from err
