"""High-level client for MakerBot Replicator printers.

Wraps the pairing flow and exposes the printer's JSON-RPC operations. Each
operation is a single ReplicatorSession.call; see session.py for the
connection template they share.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import logging
from dataclasses import dataclass
from collections.abc import AsyncIterator
from types import TracebackType
from typing import Any

import aiohttp

from .auth import TokenAuthority
from .config import RecoveryTimings, SessionConfig
from .errors import (
    ReplicatorAuthError,
    ReplicatorCancelled,
    ReplicatorClientError,
    ReplicatorProtocolError,
)
from .http import CAMERA_FRAME_PATH, ReplicatorHttpClient
from .models import AuthorizationCode, AuthorizationState, TokenContext
from .protocol import RpcResponse
from .session import ReplicatorSession, TransportFactory

_LOGGER = logging.getLogger(__name__)

CAMERA_OUTPUT_FILE = "/home/settings/frame.png"


@dataclass(frozen=True)
class CameraFrame:
    """A captured camera image and the capture_image response that produced it."""

    url: str
    image: bytes
    response: RpcResponse

    @property
    def base64(self) -> str:
        return base64.b64encode(self.image).decode("ascii")


class ReplicatorClient:
    """Client for one Replicator printer.

    Usage:
        async with ReplicatorClient(SessionConfig(host="192.168.1.20")) as printer:
            code = await printer.authorize()   # press the knob on the printer
            await printer.preheat(200)

    A previously obtained code can be supplied instead of pairing again.
    """

    def __init__(
        self,
        config: SessionConfig,
        *,
        http_session: aiohttp.ClientSession | None = None,
        authorization_code: AuthorizationCode | str | None = None,
        timings: RecoveryTimings | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.config = config
        self.timings = timings or RecoveryTimings()
        self._http_session = http_session
        self._owns_http_session = http_session is None
        self._transport_factory = transport_factory
        self._auth_lock = asyncio.Lock()
        self._http: ReplicatorHttpClient | None = None
        self._authority: TokenAuthority | None = None
        self._session: ReplicatorSession | None = None

        if isinstance(authorization_code, str):
            authorization_code = AuthorizationCode(authorization_code)
        self._initial_code = authorization_code

        if http_session is not None:
            self._build(http_session)

    def _build(self, http_session: aiohttp.ClientSession) -> None:
        self._http = ReplicatorHttpClient(
            http_session,
            self.config.host,
            self.config.http_port,
            identity=self.config.identity,
            timeout=self.config.http_timeout,
        )
        self._authority = TokenAuthority(
            self._http,
            username=self.config.username,
            acceptance_policy=self.config.acceptance_policy,
        )
        self._session = ReplicatorSession(
            self.config,
            self._authority,
            authorization_code=self._initial_code,
            transport_factory=self._transport_factory,
        )

    async def __aenter__(self) -> ReplicatorClient:
        if self._session is None:
            self._http_session = aiohttp.ClientSession()
            self._build(self._http_session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_http_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._http = None
            self._authority = None
            self._session = None

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    @property
    def http(self) -> ReplicatorHttpClient:
        if self._http is None:
            raise ReplicatorClientError("Client is not open; use 'async with'")
        return self._http

    @property
    def authority(self) -> TokenAuthority:
        if self._authority is None:
            raise ReplicatorClientError("Client is not open; use 'async with'")
        return self._authority

    @property
    def session(self) -> ReplicatorSession:
        if self._session is None:
            raise ReplicatorClientError("Client is not open; use 'async with'")
        return self._session

    @property
    def authorization_code(self) -> AuthorizationCode | None:
        if self._session is None:
            return self._initial_code
        return self._session.authorization_code

    @property
    def authorization_state(self) -> AuthorizationState:
        return self.authority.state

    # -------------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------------

    async def validate_ip(self) -> bool:
        """Return True if the host answers like a Replicator."""
        try:
            data = await self.http.probe()
        except ReplicatorClientError as err:
            _LOGGER.debug("[%s] Probe failed: %s", self.config.host, err)
            return False
        return "status" in data

    async def authorize(self, *, cancel: asyncio.Event | None = None) -> AuthorizationCode:
        """Pair with the printer; blocks until the user accepts on the device.

        The previous code is dropped as soon as pairing starts, so a failed or
        cancelled pairing leaves the client unauthorized.
        """
        async with self._auth_lock:
            self.session.clear_authorization_code()
            code = await self.authority.authorize(cancel=cancel)
            self.session.set_authorization_code(code)
        return code

    async def set_authorization_code(
        self, code: AuthorizationCode | str, *, verify: bool = False
    ) -> None:
        """Use a known authorization code for later operations.

        With verify, one connection is opened and authenticated to prove the
        code works. If that fails the previous code and state are restored.
        """
        if isinstance(code, str):
            code = AuthorizationCode(code)
        async with self._auth_lock:
            previous = self.session.authorization_code
            previous_state = self.authority.state
            self.session.set_authorization_code(code)
            if not verify:
                return
            try:
                async with self.session.connection():
                    pass
            except ReplicatorClientError:
                if previous is None:
                    self.session.clear_authorization_code()
                    self.authority.reset(previous_state)
                else:
                    self.session.set_authorization_code(previous)
                raise

    async def get_access_token(
        self, context: TokenContext = TokenContext.JSONRPC
    ) -> str:
        """Mint a one-time access token for the given context."""
        code = self.authorization_code
        if code is None:
            raise ReplicatorAuthError("No authorization code; pair with the device first")
        token = await self.authority.mint_access_token(code, context)
        return token.value

    async def is_authenticated(self) -> bool:
        """Return True if the current code can still mint tokens."""
        try:
            await self.get_access_token()
        except ReplicatorAuthError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Filament
    # -------------------------------------------------------------------------

    async def load_filament(self, tool_index: int = 0) -> RpcResponse:
        return await self.session.call(
            "load_filament", {"tool_index": tool_index}, prepare="load_filament"
        )

    async def unload_filament(self, tool_index: int = 0) -> RpcResponse:
        return await self.session.call(
            "unload_filament", {"tool_index": tool_index}, prepare="unload_filament"
        )

    async def stop_filament(self) -> RpcResponse:
        return await self.session.call("process_method", {"method": "stop_filament"})

    # -------------------------------------------------------------------------
    # Process control
    # -------------------------------------------------------------------------

    async def cancel(self) -> RpcResponse:
        """Cancel the current process."""
        return await self.session.call("cancel")

    async def pause(self) -> RpcResponse:
        return await self.session.call("process_method", {"method": "suspend"})

    async def unpause(self) -> RpcResponse:
        return await self.session.call("process_method", {"method": "resume"})

    async def acknowledge_error(self, error_id: int = -1) -> RpcResponse:
        """Dismiss an error shown on the printer."""
        return await self.session.call(
            "acknowledged", {"error_id": error_id}, prepare="acknowledge_error"
        )

    async def print_file(
        self, file_url: str, *, ensure_build_plate_clear: bool = True
    ) -> RpcResponse:
        """Start printing a file the printer downloads from file_url."""
        return await self.session.call(
            "external_print",
            {"url": file_url, "ensure_build_plate_clear": ensure_build_plate_clear},
        )

    async def print_again(self) -> RpcResponse:
        return await self.session.call("print_again")

    # -------------------------------------------------------------------------
    # Extruder and temperature
    # -------------------------------------------------------------------------

    async def attach_extruder(
        self, index: int = 0, *, cancel: asyncio.Event | None = None
    ) -> RpcResponse:
        return await self.session.call(
            "load_print_tool", {"index": index}, poll_echo=True, cancel=cancel
        )

    async def get_extruder_information(
        self, *, cancel: asyncio.Event | None = None
    ) -> RpcResponse:
        return await self.session.call(
            "get_tool_usage_stats", poll_echo=True, cancel=cancel
        )

    async def get_information(
        self, *, cancel: asyncio.Event | None = None
    ) -> RpcResponse:
        """Return the printer's system information."""
        return await self.session.call(
            "get_system_information", poll_echo=True, cancel=cancel
        )

    async def get_temperature(self, index: int = 0) -> RpcResponse:
        return await self.session.call(
            "machine_query_command",
            {"machine_func": "get_temperature", "params": {"index": index}},
        )

    async def preheat(
        self, temperature: int = 180, *, cancel: asyncio.Event | None = None
    ) -> RpcResponse:
        """Heat the extruder to temperature (°C)."""
        return await self.session.call(
            "preheat",
            {"temperature_settings": [temperature]},
            poll_echo=True,
            cancel=cancel,
        )

    async def cool(
        self, *, ignore_tool_errors: bool = False, cancel: asyncio.Event | None = None
    ) -> RpcResponse:
        return await self.session.call(
            "cool",
            {"ignore_tool_errors": ignore_tool_errors},
            poll_echo=True,
            cancel=cancel,
        )

    # -------------------------------------------------------------------------
    # Camera
    # -------------------------------------------------------------------------

    async def get_camera_frame(self) -> CameraFrame:
        """Capture a camera frame and download it.

        The returned response has its params replaced with the image url and
        its base64 encoding.

        Raises:
            ReplicatorProtocolError: If the printer served an empty image
        """
        response = await self.session.call(
            "capture_image", {"output_file": CAMERA_OUTPUT_FILE}
        )
        image = await self.http.fetch_file(CAMERA_FRAME_PATH)
        if not image:
            raise ReplicatorProtocolError("Printer served an empty camera frame")

        url = self.http.url(CAMERA_FRAME_PATH)
        frame = CameraFrame(url=url, image=image, response=response)
        response["params"] = {"url": url, "base64": frame.base64}
        return frame

    # -------------------------------------------------------------------------
    # Recovery sequences
    # -------------------------------------------------------------------------

    async def recover_filament_slip(
        self, *, cancel: asyncio.Event | None = None
    ) -> RpcResponse:
        """Pause, reload filament and resume after a filament slip.

        If cancel fires during a wait the print is resumed before
        ReplicatorCancelled propagates. Any other failure leaves the print
        paused.
        """
        _LOGGER.info("[%s] Recovering from filament slip", self.config.host)
        await self.pause()
        async with self._resume_on_cancel():
            await self._wait(self.timings.slip_pause_wait, cancel)
            await self.load_filament()
            await self._wait(self.timings.slip_load_wait, cancel)
            await self.stop_filament()
            await self._wait(self.timings.slip_stop_wait, cancel)
        return await self.unpause()

    async def recover_temperature_sag(
        self, *, cancel: asyncio.Event | None = None
    ) -> RpcResponse:
        """Pause long enough for the extruder to reheat, then resume.

        Cancelling the wait resumes the print immediately.
        """
        _LOGGER.info("[%s] Recovering from temperature sag", self.config.host)
        await self.pause()
        async with self._resume_on_cancel():
            await self._wait(self.timings.sag_pause_wait, cancel)
        return await self.unpause()

    @contextlib.asynccontextmanager
    async def _resume_on_cancel(self) -> AsyncIterator[None]:
        try:
            yield
        except ReplicatorCancelled:
            _LOGGER.info("[%s] Recovery cancelled, resuming print", self.config.host)
            await self.unpause()
            raise

    async def _wait(self, seconds: float, cancel: asyncio.Event | None) -> None:
        if cancel is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel.wait(), timeout=seconds)
        except TimeoutError:
            return
        raise ReplicatorCancelled("Recovery cancelled by caller")

    async def call(
        self, method: str, params: dict[str, Any] | None = None, **kwargs: Any
    ) -> RpcResponse:
        """Invoke an arbitrary RPC method through the session template."""
        return await self.session.call(method, params, **kwargs)
