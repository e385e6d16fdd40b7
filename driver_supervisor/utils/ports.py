"""
Port Allocation Utilities

Turns a requested port into a usable one:
- a specific port is returned verbatim (callers choose known-free ports)
- an absent, falsy, "0" or "any" request yields an OS-assigned ephemeral port

No lock is held on the port once it is returned.
"""

import asyncio
import socket
from typing import Optional, Union

from loguru import logger

from ..exceptions import PortAllocationError
from ..settings import get_settings

ANY_PORT = "0"
DEFAULT_HOST = "127.0.0.1"

_ANY_SENTINELS = {"", "0", "any"}

PortRequest = Optional[Union[str, int]]


def is_any_port(requested: PortRequest) -> bool:
    """True when the request means "any free port" rather than a specific one"""
    if not requested:
        return True
    return str(requested).strip().lower() in _ANY_SENTINELS


def is_port_in_use(port: Union[str, int], host: str = DEFAULT_HOST) -> bool:
    """
    Check if something is listening on a port

    Args:
        port: Port number to check
        host: Interface to probe

    Returns:
        True if a connection to the port succeeds
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(0.5)
        return sock.connect_ex((host, int(port))) == 0


def _bind_ephemeral(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


async def get_new_port(
    requested: PortRequest = None,
    host: Optional[str] = None,
    max_attempts: Optional[int] = None,
) -> str:
    """
    Resolve a requested port to a usable one

    Args:
        requested: Port number or text; None/""/0/"0"/"any" asks for any port
        host: Interface to bind the ephemeral socket on (settings default)
        max_attempts: Bind retries on the ephemeral path (settings default)

    Returns:
        Port number as text

    Raises:
        PortAllocationError: If every ephemeral bind attempt failed
    """
    if not is_any_port(requested):
        port = str(requested).strip()
        loop = asyncio.get_running_loop()
        try:
            busy = await loop.run_in_executor(None, is_port_in_use, port, host or DEFAULT_HOST)
        except (ValueError, OverflowError, OSError):
            # Not a valid port number
            busy = False
        if busy:
            logger.debug(f"Requested port {port} is in use, returning it unchanged")
        return port

    if host is None or max_attempts is None:
        settings = get_settings()
        host = host or settings.host
        max_attempts = max_attempts or settings.port_bind_attempts

    delay = 0.05
    last_error: Optional[OSError] = None
    for attempt in range(1, max_attempts + 1):
        try:
            port = _bind_ephemeral(host)
            logger.debug(f"🔌 Allocated ephemeral port {port} on {host}")
            return str(port)
        except OSError as e:
            last_error = e
            logger.warning(f"Ephemeral bind on {host} failed (attempt {attempt}/{max_attempts}): {e}")
            await asyncio.sleep(delay)
            delay = min(delay * 2, 1.0)

    raise PortAllocationError(
        f"Could not allocate an ephemeral port on {host} after {max_attempts} attempts: {last_error}"
    )
