"""Device authorization flow and access token minting."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .errors import (
    ReplicatorAuthError,
    ReplicatorAuthorizationTimeout,
    ReplicatorProtocolError,
    ReplicatorResponseError,
    ReplicatorRetryExhausted,
    ReplicatorTimeout,
)
from .http import ReplicatorHttpClient
from .models import (
    AccessToken,
    AuthorizationCode,
    AuthorizationState,
    PairingHandle,
    TokenContext,
)
from .retry import RetryPolicy, poll_until

_LOGGER = logging.getLogger(__name__)

ACCEPTED = "accepted"


class TokenAuthority:
    """Runs the pairing handshake and mints per-connection access tokens.

    Pairing:
        1. begin_authorization() opens a pairing request on the device
        2. poll_for_acceptance() waits until the user confirms on the device
           and yields the long-lived authorization code

    Tokens minted from that code are single-use and are never cached here.
    """

    def __init__(
        self,
        http: ReplicatorHttpClient,
        *,
        username: str,
        acceptance_policy: RetryPolicy,
    ) -> None:
        self._http = http
        self._username = username
        self._acceptance_policy = acceptance_policy
        self._state = AuthorizationState.UNAUTHENTICATED

    @property
    def state(self) -> AuthorizationState:
        return self._state

    def _set_state(self, state: AuthorizationState) -> None:
        if self._state != state:
            _LOGGER.debug(
                "[%s] Authorization: %s → %s",
                self._http.host,
                self._state.value,
                state.value,
            )
            self._state = state

    def mark_authorized(self) -> None:
        """Record that a code was obtained outside of the pairing flow."""
        self._set_state(AuthorizationState.AUTHORIZED)

    def reset(
        self, state: AuthorizationState = AuthorizationState.UNAUTHENTICATED
    ) -> None:
        """Forget any previous authorization, optionally landing on TIMED_OUT."""
        if state is AuthorizationState.AUTHORIZED:
            raise ValueError("Use mark_authorized() to record an authorization")
        self._set_state(state)

    async def begin_authorization(self) -> PairingHandle:
        """Open a pairing request on the device.

        Starting a new pairing invalidates any earlier authorization.

        Raises:
            ReplicatorProtocolError: If the device did not return an answer code
        """
        self.reset()
        data = await self._http.request_pairing_code(self._username)
        answer_code = data.get("answer_code")
        if not answer_code:
            raise ReplicatorProtocolError("Pairing response carried no answer_code")

        self._set_state(AuthorizationState.PAIRING_REQUESTED)
        _LOGGER.info(
            "[%s] Pairing requested, confirm on the device", self._http.host
        )
        return PairingHandle(code=data.get("code"), answer_code=str(answer_code))

    async def _query_answer(self, handle: PairingHandle) -> dict[str, Any]:
        try:
            return await self._http.query_answer(handle.answer_code)
        except (ReplicatorTimeout, ReplicatorProtocolError, ReplicatorResponseError) as err:
            _LOGGER.warning(
                "[%s] Pairing answer query failed (%s), polling again",
                self._http.host,
                err,
            )
            return {}

    async def poll_for_acceptance(
        self,
        handle: PairingHandle,
        *,
        cancel: asyncio.Event | None = None,
    ) -> AuthorizationCode:
        """Wait for the user to accept the pairing request.

        Unreadable or non-200 answers count as still pending. Any other
        failure resets the state to UNAUTHENTICATED.

        Raises:
            ReplicatorAuthorizationTimeout: If the acceptance policy ran out
            ReplicatorCancelled: If cancel was set while waiting
            ReplicatorProtocolError: If an accepted answer carried no code
        """
        self._set_state(AuthorizationState.AWAITING_USER_ACCEPTANCE)

        try:
            answer = await poll_until(
                lambda: self._query_answer(handle),
                lambda data: data.get("answer") == ACCEPTED,
                self._acceptance_policy,
                cancel=cancel,
                description="Pairing acceptance",
            )
            code = answer.get("code")
            if not code:
                raise ReplicatorProtocolError("Accepted pairing answer carried no code")
        except ReplicatorRetryExhausted as err:
            self._set_state(AuthorizationState.TIMED_OUT)
            raise ReplicatorAuthorizationTimeout(
                "Pairing was not accepted on the device",
                attempts=err.attempts,
                last=err.last,
            ) from err
        except BaseException:
            self.reset()
            raise

        self._set_state(AuthorizationState.AUTHORIZED)
        _LOGGER.info("[%s] Pairing accepted", self._http.host)
        return AuthorizationCode(str(code))

    async def authorize(
        self, *, cancel: asyncio.Event | None = None
    ) -> AuthorizationCode:
        """Run the full pairing handshake and return the authorization code."""
        handle = await self.begin_authorization()
        return await self.poll_for_acceptance(handle, cancel=cancel)

    async def mint_access_token(
        self,
        code: AuthorizationCode,
        context: TokenContext = TokenContext.JSONRPC,
    ) -> AccessToken:
        """Mint a fresh single-use access token.

        Raises:
            ReplicatorAuthError: If not authorized, or the device did not
                report success
        """
        if self._state is not AuthorizationState.AUTHORIZED:
            raise ReplicatorAuthError(
                f"Cannot mint a {context.value} access token while {self._state.value}"
            )

        data = await self._http.request_access_token(code.value, context)
        token = data.get("access_token")
        if data.get("status") != "success" or not token:
            raise ReplicatorAuthError(
                f"Device refused a {context.value} access token"
                f" (status={data.get('status')!r})"
            )
        return AccessToken(value=str(token), context=context)
