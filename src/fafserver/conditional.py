"""Conditional GET support (If-Modified-Since, If-Range)."""

import email.utils
import logging
import re
from datetime import timezone
from http import HTTPStatus
from typing import Optional

logger = logging.getLogger(__name__)

_IMF_FIXDATE_RE = re.compile(
    r"(Mon|Tue|Wed|Thu|Fri|Sat|Sun), \d{2} "
    r"(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec) \d{4} "
    r"\d{2}:\d{2}:\d{2} GMT",
    re.ASCII,
)


def parse_http_date(value: Optional[str]) -> Optional[float]:
    """Parse an HTTP-date header value.

    Only IMF-fixdate in GMT is accepted ("Mon, 02 Jan 2006 15:04:05 GMT");
    numeric offsets and the obsolete RFC 850 and asctime forms are not.

    Returns:
        POSIX timestamp, or None if the value is missing or malformed
    """
    if not value or not _IMF_FIXDATE_RE.fullmatch(value):
        return None
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def format_http_date(mtime: float) -> str:
    """Format a timestamp as an IMF-fixdate (always GMT)."""
    return email.utils.formatdate(mtime, usegmt=True)


def has_mtime(mtime: Optional[float]) -> bool:
    """Whether mtime carries a meaningful modification time.

    Unset and Unix-epoch times count as unknown.
    """
    return bool(mtime)


def is_not_modified(if_modified_since: Optional[str], mtime: Optional[float]) -> bool:
    """Decide whether a resource is unchanged since the client's copy.

    HTTP-dates drop sub-second precision, so the check is
    mtime < since + 1s rather than mtime <= since.

    Args:
        if_modified_since: Raw If-Modified-Since header value (may be None)
        mtime: Resource modification time as a POSIX timestamp

    Returns:
        True if the client copy is fresh and no body should be sent
    """
    if not has_mtime(mtime):
        return False
    since = parse_http_date(if_modified_since)
    if since is None:
        return False
    return mtime < since + 1


def if_range_allows(if_range: Optional[str], mtime: Optional[float]) -> bool:
    """Whether a Range header may be honored given If-Range.

    Only date validators are understood; entity tags never match since no
    ETag is ever sent.
    """
    if not if_range:
        return True
    if not has_mtime(mtime):
        return False
    since = parse_http_date(if_range)
    if since is None:
        return False
    return int(mtime) == int(since)


def check_last_modified(handler, mtime: Optional[float]) -> bool:
    """Answer with 304 if the client's copy is still fresh.

    Args:
        handler: Request handler (BaseHTTPRequestHandler interface)
        mtime: Modification time of the resource about to be served

    Returns:
        True if a 304 was sent and the request is complete. False means
        the caller serves full content and should emit Last-Modified.
    """
    if not is_not_modified(handler.headers.get("If-Modified-Since"), mtime):
        return False
    logger.debug("Not modified since %s", format_http_date(mtime))
    handler.send_response(HTTPStatus.NOT_MODIFIED)
    handler.end_headers()
    return True


def last_modified_header(mtime: Optional[float]) -> Optional[str]:
    """Last-Modified value for mtime, or None when mtime is unknown."""
    if not has_mtime(mtime):
        return None
    return format_http_date(mtime)
