"""Static content serving.

Resolves a request path, substitutes a directory's index file when there is
one, and otherwise answers with a sorted listing. Files are sent with
Content-Type detection, conditional GET and byte-range support.
"""

import logging
import mimetypes
import os
import secrets
import stat
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from http import HTTPStatus
from typing import BinaryIO, Iterator, List, Optional, Tuple

from fafserver.conditional import check_last_modified, if_range_allows, last_modified_header
from fafserver.listing import LISTING_CONTENT_TYPE, read_entries, render_listing
from fafserver.paths import PathError, ServeError, resolve_path

logger = logging.getLogger(__name__)

DEFAULT_INDEX_NAME = "index.html"
CHUNK_SIZE = 64 * 1024
SNIFF_LEN = 512

# Bytes that never show up in plain text (WHATWG MIME Sniffing binary data bytes)
_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)

_HTML_PREFIXES = (
    b"<!doctype html", b"<html", b"<head", b"<body", b"<script", b"<iframe",
    b"<h1", b"<div", b"<font", b"<table", b"<a", b"<style", b"<title",
    b"<b", b"<br", b"<p", b"<!--",
)

_MAGIC_TYPES = (
    (b"%PDF-", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
)


@dataclass
class Resource:
    """A file or directory opened for the duration of one request."""

    path: str
    name: str
    is_dir: bool
    mtime: float
    size: int
    handle: Optional[BinaryIO] = None


@contextmanager
def open_resource(path: str) -> Iterator[Resource]:
    """Open a file or directory for serving.

    Regular files are opened for reading and closed on exit; directories
    carry no handle.

    Raises:
        PathError: If the path cannot be opened or stat'ed. The OS error is
            logged, never surfaced to the client.
    """
    name = os.path.basename(path)
    try:
        st = os.stat(path)
    except (OSError, ValueError) as e:
        logger.debug("Cannot stat %s: %s", path, e)
        raise PathError() from e

    if stat.S_ISDIR(st.st_mode):
        yield Resource(path=path, name=name, is_dir=True, mtime=st.st_mtime, size=st.st_size)
        return

    try:
        f = open(path, "rb")
    except OSError as e:
        logger.debug("Cannot open %s: %s", path, e)
        raise PathError() from e

    with f:
        try:
            st = os.fstat(f.fileno())
        except OSError as e:
            logger.debug("Cannot stat %s: %s", path, e)
            raise PathError() from e
        yield Resource(
            path=path,
            name=name,
            is_dir=False,
            mtime=st.st_mtime,
            size=st.st_size,
            handle=f,
        )


@dataclass(frozen=True)
class ByteRange:
    """A satisfiable byte range of a resource."""

    start: int
    length: int

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.start + self.length - 1}/{size}"


class RangeError(ServeError):
    """Range header cannot be satisfied."""

    def __init__(self, message: str, size: int):
        super().__init__(
            HTTPStatus.REQUESTED_RANGE_NOT_SATISFIABLE,
            message,
            headers={"Content-Range": f"bytes */{size}"},
        )


def _parse_int(value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise ValueError(value)
    return int(value)


def parse_range(header: str, size: int) -> List[ByteRange]:
    """Parse a Range header against a resource size.

    Supports "a-b", "a-" and "-n" parts separated by commas. Parts starting
    past the end of the resource are dropped.

    Args:
        header: Raw Range header value (e.g., "bytes=0-99,-50")
        size: Resource size in bytes

    Returns:
        Satisfiable ranges, in request order (empty if the header lists none)

    Raises:
        RangeError: If the header is malformed or no range overlaps the resource
    """
    if not header.startswith("bytes="):
        raise RangeError("invalid range", size)

    ranges = []
    no_overlap = False
    for part in header[len("bytes="):].split(","):
        part = part.strip()
        if not part:
            continue
        if "-" not in part:
            raise RangeError("invalid range", size)
        start_str, end_str = (s.strip() for s in part.split("-", 1))
        try:
            if not start_str:
                # Suffix range: last n bytes
                suffix = _parse_int(end_str)
                if suffix == 0:
                    no_overlap = True
                    continue
                suffix = min(suffix, size)
                ranges.append(ByteRange(size - suffix, suffix))
                continue

            start = _parse_int(start_str)
            if start >= size:
                no_overlap = True
                continue
            if not end_str:
                ranges.append(ByteRange(start, size - start))
                continue
            end = _parse_int(end_str)
        except ValueError:
            raise RangeError("invalid range", size) from None

        if start > end:
            raise RangeError("invalid range", size)
        end = min(end, size - 1)
        ranges.append(ByteRange(start, end - start + 1))

    if no_overlap and not ranges:
        raise RangeError("invalid range: failed to overlap", size)
    return ranges


def sniff_content_type(data: bytes) -> str:
    """Guess a content type from the first bytes of a resource."""
    for magic, content_type in _MAGIC_TYPES:
        if data.startswith(magic):
            return content_type

    stripped = data.lstrip(b"\t\n\x0c\r ").lower()
    for prefix in _HTML_PREFIXES:
        if stripped.startswith(prefix):
            tail = stripped[len(prefix):len(prefix) + 1]
            if tail in (b" ", b">"):
                return "text/html; charset=utf-8"

    if any(b in _BINARY_BYTES for b in data):
        return "application/octet-stream"
    return "text/plain; charset=utf-8"


def guess_content_type(name: str, handle: Optional[BinaryIO] = None) -> str:
    """Content-Type by file extension, falling back to content sniffing.

    The handle, if read, is rewound to the start.
    """
    content_type, _ = mimetypes.guess_type(name)
    if content_type:
        if content_type.startswith("text/"):
            content_type += "; charset=utf-8"
        return content_type
    if handle is None:
        return "application/octet-stream"
    data = handle.read(SNIFF_LEN)
    handle.seek(0)
    return sniff_content_type(data)


def _wants_body(handler) -> bool:
    return handler.command != "HEAD"


def _copy_range(handler, f: BinaryIO, start: int, length: int):
    f.seek(start)
    remaining = length
    while remaining > 0:
        chunk = f.read(min(CHUNK_SIZE, remaining))
        if not chunk:
            break
        handler.wfile.write(chunk)
        remaining -= len(chunk)


def _multipart_parts(
    ranges: List[ByteRange], size: int, content_type: str, boundary: str
) -> Tuple[List[Tuple[bytes, ByteRange]], bytes, int]:
    """Lay out a multipart/byteranges body.

    Returns:
        Tuple of ([(part_header, range), ...], closing_delimiter, total_length)
    """
    parts = []
    total = 0
    for i, r in enumerate(ranges):
        delimiter = f"--{boundary}\r\n" if i == 0 else f"\r\n--{boundary}\r\n"
        part_header = (
            f"{delimiter}"
            f"Content-Range: {r.content_range(size)}\r\n"
            f"Content-Type: {content_type}\r\n"
            f"\r\n"
        ).encode("ascii")
        parts.append((part_header, r))
        total += len(part_header) + r.length
    closing = f"\r\n--{boundary}--\r\n".encode("ascii")
    total += len(closing)
    return parts, closing, total


def send_file(handler, resource: Resource):
    """Send a regular file, honoring If-Modified-Since and Range.

    Args:
        handler: Request handler (BaseHTTPRequestHandler interface)
        resource: Open file resource

    Raises:
        RangeError: If the Range header cannot be satisfied
    """
    if check_last_modified(handler, resource.mtime):
        return

    f = resource.handle
    size = resource.size
    content_type = guess_content_type(resource.name, f)

    ranges: List[ByteRange] = []
    range_header = handler.headers.get("Range")
    if range_header and if_range_allows(handler.headers.get("If-Range"), resource.mtime):
        ranges = parse_range(range_header, size)
        if sum(r.length for r in ranges) > size:
            # Asking for more than the whole file; just send it
            ranges = []

    last_modified = last_modified_header(resource.mtime)

    def send_common_headers():
        handler.send_header("Accept-Ranges", "bytes")
        if last_modified:
            handler.send_header("Last-Modified", last_modified)

    if len(ranges) == 1:
        r = ranges[0]
        handler.send_response(HTTPStatus.PARTIAL_CONTENT)
        send_common_headers()
        handler.send_header("Content-Type", content_type)
        handler.send_header("Content-Range", r.content_range(size))
        handler.send_header("Content-Length", str(r.length))
        handler.end_headers()
        if _wants_body(handler):
            _copy_range(handler, f, r.start, r.length)
        return

    if len(ranges) > 1:
        boundary = secrets.token_hex(30)
        parts, closing, total = _multipart_parts(ranges, size, content_type, boundary)
        handler.send_response(HTTPStatus.PARTIAL_CONTENT)
        send_common_headers()
        handler.send_header("Content-Type", f"multipart/byteranges; boundary={boundary}")
        handler.send_header("Content-Length", str(total))
        handler.end_headers()
        if _wants_body(handler):
            for part_header, r in parts:
                handler.wfile.write(part_header)
                _copy_range(handler, f, r.start, r.length)
            handler.wfile.write(closing)
        return

    handler.send_response(HTTPStatus.OK)
    send_common_headers()
    handler.send_header("Content-Type", content_type)
    handler.send_header("Content-Length", str(size))
    handler.end_headers()
    if _wants_body(handler):
        _copy_range(handler, f, 0, size)


def send_listing(handler, resource: Resource):
    """Send the sorted listing of a directory resource."""
    try:
        entries = read_entries(resource.path)
    except OSError as e:
        logger.debug("Cannot list %s: %s", resource.path, e)
        raise PathError() from e

    body = render_listing(entries)
    handler.send_response(HTTPStatus.OK)
    last_modified = last_modified_header(resource.mtime)
    if last_modified:
        handler.send_header("Last-Modified", last_modified)
    handler.send_header("Content-Type", LISTING_CONTENT_TYPE)
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    if _wants_body(handler):
        handler.wfile.write(body)


class ContentServer:
    """Serves files and directory listings below a root directory."""

    def __init__(self, root: str, index_name: str = DEFAULT_INDEX_NAME):
        """Initialize content server.

        Args:
            root: Directory to serve
            index_name: File served in place of a directory listing when present
        """
        self.root = os.path.abspath(root)
        self.index_name = index_name

    def serve(self, handler, url_path: str):
        """Serve one request.

        Args:
            handler: Request handler (BaseHTTPRequestHandler interface)
            url_path: Percent-decoded URL path

        Raises:
            ServeError: For not found (404) and unsatisfiable ranges (416)
        """
        directory, name = resolve_path(self.root, url_path)
        path = os.path.join(directory, name)

        with ExitStack() as stack:
            resource = stack.enter_context(open_resource(path))

            # Use the index file for a directory, if present
            if resource.is_dir:
                index = self._open_index(stack, resource.path)
                if index is not None:
                    resource = index

            # Still a directory? (no index file)
            if resource.is_dir:
                if check_last_modified(handler, resource.mtime):
                    return
                send_listing(handler, resource)
                return

            send_file(handler, resource)

    def _open_index(self, stack: ExitStack, directory: str) -> Optional[Resource]:
        """Open the index file of a directory, registering it on stack.

        Returns:
            The index resource, or None if absent or not a regular file
        """
        index_path = os.path.join(directory, self.index_name)
        try:
            index = stack.enter_context(open_resource(index_path))
        except PathError:
            return None
        if index.is_dir:
            return None
        logger.debug("Serving %s for %s", index_path, directory)
        return index
