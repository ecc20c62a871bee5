"""Asyncio client for MakerBot Replicator printers (HTTP pairing + JSON-RPC socket)."""

__version__ = "0.1.0"

from .auth import TokenAuthority
from .client import CameraFrame, ReplicatorClient
from .config import RecoveryTimings, SessionConfig
from .errors import (
    ReplicatorAuthenticationFailed,
    ReplicatorAuthError,
    ReplicatorAuthorizationTimeout,
    ReplicatorCancelled,
    ReplicatorClientError,
    ReplicatorConnectionError,
    ReplicatorMethodEchoTimeout,
    ReplicatorProtocolError,
    ReplicatorResponseError,
    ReplicatorRetryExhausted,
    ReplicatorTimeout,
)
from .http import ReplicatorHttpClient
from .models import (
    DEFAULT_IDENTITY,
    AccessToken,
    AuthorizationCode,
    AuthorizationState,
    ClientIdentity,
    PairingHandle,
    TokenContext,
)
from .protocol import FrameDecoder, RpcRequest, RpcResponse, is_method_echo
from .retry import RetryPolicy, poll_until
from .session import ReplicatorSession
from .transport import ReplicatorRpcClient, connect_socket

__all__ = [
    "DEFAULT_IDENTITY",
    "AccessToken",
    "AuthorizationCode",
    "AuthorizationState",
    "CameraFrame",
    "ClientIdentity",
    "FrameDecoder",
    "PairingHandle",
    "RecoveryTimings",
    "ReplicatorAuthError",
    "ReplicatorAuthenticationFailed",
    "ReplicatorAuthorizationTimeout",
    "ReplicatorCancelled",
    "ReplicatorClient",
    "ReplicatorClientError",
    "ReplicatorConnectionError",
    "ReplicatorHttpClient",
    "ReplicatorMethodEchoTimeout",
    "ReplicatorProtocolError",
    "ReplicatorResponseError",
    "ReplicatorRetryExhausted",
    "ReplicatorRpcClient",
    "ReplicatorSession",
    "ReplicatorTimeout",
    "RetryPolicy",
    "RpcRequest",
    "RpcResponse",
    "SessionConfig",
    "TokenAuthority",
    "TokenContext",
    "__version__",
    "connect_socket",
    "is_method_echo",
    "poll_until",
]
