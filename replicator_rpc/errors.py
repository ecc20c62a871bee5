"""Client error types for MakerBot Replicator device interactions."""

from __future__ import annotations

from typing import Any


class ReplicatorClientError(Exception):
    """Base error for Replicator client failures."""


class ReplicatorTimeout(ReplicatorClientError):
    """Timeout while communicating with the device."""


class ReplicatorConnectionError(ReplicatorClientError):
    """Network connection to the device failed."""


class ReplicatorResponseError(ReplicatorClientError):
    """HTTP response error from the device."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


class ReplicatorProtocolError(ReplicatorClientError):
    """Device sent a response that could not be parsed."""


class ReplicatorAuthError(ReplicatorClientError):
    """No usable access token could be obtained."""


class ReplicatorAuthenticationFailed(ReplicatorAuthError):
    """The JSON-RPC connection could not be authenticated."""


class ReplicatorRetryExhausted(ReplicatorClientError):
    """A bounded poll ran out of attempts."""

    def __init__(self, message: str, *, attempts: int, last: Any = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last = last


class ReplicatorAuthorizationTimeout(ReplicatorRetryExhausted):
    """The pairing request was not accepted on the device in time."""


class ReplicatorMethodEchoTimeout(ReplicatorRetryExhausted):
    """The device kept reporting that a call is still processing."""


class ReplicatorCancelled(ReplicatorClientError):
    """The caller requested the operation to stop."""
