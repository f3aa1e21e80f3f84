"""Server lifetime management.

Provides ephemeral port discovery and the self-termination deadline. When
the deadline fires the process exits with status 0, without waiting for
in-flight requests.
"""

import logging
import os
import socket
import threading
from typing import Callable, Optional

from fafserver.config import format_duration

logger = logging.getLogger(__name__)


def rand_port(host: str = "localhost") -> int:
    """Find a free TCP port.

    Binds port 0, reads back the port the OS assigned and closes the socket
    again, leaving the port for the real listener.

    Returns:
        Port number

    Raises:
        OSError: If the discovery socket cannot be bound or closed
    """
    try:
        sock = socket.create_server((host, 0))
    except OSError as e:
        raise OSError(f"could not listen to find random port: {e}") from e
    try:
        port: int = sock.getsockname()[1]
    finally:
        try:
            sock.close()
        except OSError as e:
            raise OSError(f"could not close random listener: {e}") from e
    return port


def _expire(die: float):
    """Deadline callback: log and exit right away."""
    logger.info("Server lifetime of %s is over, calling it quits now.", format_duration(die))
    os._exit(0)


def start_deadline(
    die: float,
    on_expire: Optional[Callable[[], None]] = None,
) -> threading.Timer:
    """Start the self-termination timer.

    Args:
        die: Lifetime in seconds
        on_expire: Callback when the lifetime is over (default: exit the
            process with status 0)

    Returns:
        The started timer; cancel() it when shutting down on another path
    """
    callback = on_expire if on_expire is not None else (lambda: _expire(die))
    timer = threading.Timer(die, callback)
    timer.daemon = True
    timer.start()
    logger.debug("Deadline set for %s from now", format_duration(die))
    return timer
