"""HTTP client for MakerBot Replicator device endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp

from .errors import (
    ReplicatorConnectionError,
    ReplicatorProtocolError,
    ReplicatorResponseError,
    ReplicatorTimeout,
)
from .models import ClientIdentity, TokenContext

_LOGGER = logging.getLogger(__name__)

AUTH_PATH = "/auth"
CAMERA_FRAME_PATH = "/settings/frame.png"


class ReplicatorHttpClient:
    """HTTP client wrapper for the Replicator /auth endpoint and static files."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        host: str,
        port: int = 80,
        *,
        identity: ClientIdentity,
        timeout: float = 5.0,
    ) -> None:
        self._session = session
        self._host = host
        self._port = port
        self._identity = identity
        self._timeout = timeout

    @property
    def host(self) -> str:
        return self._host

    def url(self, path: str) -> str:
        return f"http://{self._host}:{self._port}/{path.lstrip('/')}"

    def _client_params(self, response_type: str) -> dict[str, str]:
        return {
            "response_type": response_type,
            "client_id": self._identity.client_id,
            "client_secret": self._identity.client_secret,
        }

    async def _get_json(
        self, path: str, params: dict[str, str] | None, *, label: str
    ) -> dict[str, Any]:
        url = self.url(path)
        try:
            async with self._session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status != 200:
                    raise ReplicatorResponseError(
                        resp.status, f"{label} failed with HTTP {resp.status}"
                    )
                # The device serves JSON as text/html
                data = await resp.json(content_type=None)
        except TimeoutError as err:
            raise ReplicatorTimeout(f"{label} timed out") from err
        except (aiohttp.ContentTypeError, json.JSONDecodeError) as err:
            raise ReplicatorProtocolError(f"{label} returned invalid JSON") from err
        except aiohttp.ClientError as err:
            raise ReplicatorConnectionError(f"{label} failed") from err

        if not isinstance(data, dict):
            raise ReplicatorProtocolError(f"{label} returned a non-object body")
        return data

    async def request_pairing_code(self, username: str) -> dict[str, Any]:
        """Open a pairing request; the device then asks the user to confirm."""
        params = self._client_params("code")
        params["username"] = username
        return await self._get_json(AUTH_PATH, params, label="Pairing request")

    async def query_answer(self, answer_code: str) -> dict[str, Any]:
        """Ask whether the user has accepted the pairing request yet."""
        params = self._client_params("answer")
        params["answer_code"] = answer_code
        return await self._get_json(AUTH_PATH, params, label="Pairing answer query")

    async def request_access_token(
        self, auth_code: str, context: TokenContext
    ) -> dict[str, Any]:
        """Request a one-time access token for the given context."""
        params = self._client_params("token")
        params["context"] = context.value
        params["auth_code"] = auth_code
        return await self._get_json(AUTH_PATH, params, label="Access token request")

    async def probe(self) -> dict[str, Any]:
        """Hit /auth without parameters; a Replicator answers with a status."""
        return await self._get_json(AUTH_PATH, None, label="Device probe")

    async def fetch_file(self, path: str) -> bytes:
        """Fetch a static file served by the device."""
        url = self.url(path)
        try:
            async with self._session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status != 200:
                    raise ReplicatorResponseError(
                        resp.status, f"Fetching {path} failed with HTTP {resp.status}"
                    )
                data = await resp.read()
        except TimeoutError as err:
            raise ReplicatorTimeout(f"Fetching {path} timed out") from err
        except aiohttp.ClientError as err:
            raise ReplicatorConnectionError(f"Fetching {path} failed") from err

        _LOGGER.debug("[%s] Fetched %s (%d bytes)", self._host, path, len(data))
        return data
