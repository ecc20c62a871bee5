"""Transport layer for the Replicator JSON-RPC socket.

Components:
- tcp: IPv4 stream connection management
- rpc_client: request/response exchange over one connection
"""

from .rpc_client import ReplicatorRpcClient
from .tcp import connect_socket

__all__ = [
    "ReplicatorRpcClient",
    "connect_socket",
]
