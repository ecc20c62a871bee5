"""Configuration for Replicator client sessions."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import DEFAULT_IDENTITY, ClientIdentity
from .retry import RetryPolicy

DEFAULT_HTTP_PORT = 80
DEFAULT_RPC_PORT = 9999
DEFAULT_USERNAME = "MakerBot API"
DEFAULT_READ_SIZE = 2048
DEFAULT_MAX_FRAME_SIZE = 1024 * 1024

# One poll per second for up to 200 seconds while the user presses the knob.
DEFAULT_ACCEPTANCE_POLICY = RetryPolicy(attempts=200, delay=1.0)
DEFAULT_ECHO_POLICY = RetryPolicy(attempts=240, delay=0.25)


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Connection settings for a single device.

    Attributes:
        host: Device hostname or IPv4 address
        http_port: Port of the HTTP authorization endpoint
        rpc_port: Port of the JSON-RPC socket
        identity: Client id and secret presented during authorization
        username: Name shown on the device when pairing is requested
        http_timeout: Total timeout for each HTTP request (seconds)
        connect_timeout: Timeout for opening the JSON-RPC socket (seconds)
        read_timeout: Timeout for each socket read (seconds)
        read_size: Bytes requested per socket read
        max_frame_size: Largest response accepted on the socket (bytes)
        acceptance_policy: Poll bound while waiting for pairing acceptance
        echo_policy: Poll bound while the device echoes the method back
        serialize_operations: Run at most one operation at a time per session
    """

    host: str
    http_port: int = DEFAULT_HTTP_PORT
    rpc_port: int = DEFAULT_RPC_PORT
    identity: ClientIdentity = DEFAULT_IDENTITY
    username: str = DEFAULT_USERNAME
    http_timeout: float = 5.0
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    read_size: int = DEFAULT_READ_SIZE
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    acceptance_policy: RetryPolicy = field(default=DEFAULT_ACCEPTANCE_POLICY)
    echo_policy: RetryPolicy = field(default=DEFAULT_ECHO_POLICY)
    serialize_operations: bool = True


@dataclass(frozen=True, slots=True)
class RecoveryTimings:
    """Settling times used by the composite recovery operations (seconds)."""

    slip_pause_wait: float = 7.0
    slip_load_wait: float = 7.0
    slip_stop_wait: float = 2.0
    sag_pause_wait: float = 10.0
