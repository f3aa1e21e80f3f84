"""Request path resolution.

Maps a '/'-separated URL path onto the served root without ever leaving it.
"""

import os
import posixpath
from typing import Dict, Optional, Tuple


class ServeError(Exception):
    """Client error raised while serving a request."""

    def __init__(self, http_status: int, message: str, headers: Optional[Dict[str, str]] = None):
        self.http_status = http_status
        self.message = message
        self.headers = headers or {}
        super().__init__(f"{http_status}: {message}")


class PathError(ServeError):
    """Request path cannot be mapped inside the root."""

    def __init__(self, message: str = "404 page not found"):
        super().__init__(404, message)


def clean_url_path(url_path: str) -> str:
    """Canonicalize a URL path.

    Collapses repeated slashes and resolves '.' and '..' segments as if the
    path were rooted, so the result always starts with '/' and never climbs
    above it.
    """
    if "\x00" in url_path:
        raise PathError()
    cleaned = posixpath.normpath("/" + url_path)
    # normpath keeps a leading '//' as-is (POSIX implementation-defined root)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def resolve_path(root: str, url_path: str) -> Tuple[str, str]:
    """Resolve a URL path against root.

    Args:
        root: Absolute filesystem path of the served directory
        url_path: Percent-decoded request path (e.g., "/docs/a.txt")

    Returns:
        Tuple of (directory, filename). Joined back together they name a
        path equal to root or below it.

    Raises:
        PathError: If the path would resolve outside root
    """
    root = os.path.abspath(root)
    relative = clean_url_path(url_path).lstrip("/")
    parts = [p for p in relative.split("/") if p]
    full_path = os.path.normpath(os.path.join(root, *parts))

    if os.path.commonpath([root, full_path]) != root:
        raise PathError()

    directory, filename = os.path.split(full_path)
    return directory, filename
