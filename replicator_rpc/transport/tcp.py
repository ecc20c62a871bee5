"""TCP helpers for the Replicator JSON-RPC socket."""

from __future__ import annotations

import asyncio
import socket

from ..errors import ReplicatorConnectionError, ReplicatorTimeout


async def connect_socket(
    host: str,
    port: int,
    *,
    timeout: float = 10.0,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open an IPv4 TCP stream to the device command port.

    Args:
        host: Target host
        port: Target port
        timeout: Connection timeout

    Returns:
        Reader and writer for the stream

    Raises:
        ReplicatorTimeout: If the connection could not be opened in time
        ReplicatorConnectionError: If the connection was refused or failed
    """
    try:
        return await asyncio.wait_for(
            asyncio.open_connection(host, port, family=socket.AF_INET),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise ReplicatorTimeout(f"Connecting to {host}:{port} timed out") from err
    except OSError as err:
        raise ReplicatorConnectionError(f"Connecting to {host}:{port} failed") from err
