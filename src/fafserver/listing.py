"""Sorted directory listings."""

import html
import os
from dataclasses import dataclass
from typing import Iterable, List
from urllib.parse import quote

LISTING_CONTENT_TYPE = "text/html; charset=utf-8"


@dataclass(frozen=True)
class DirectoryEntry:
    """One entry of a directory listing."""

    name: str
    is_dir: bool = False

    @property
    def display_name(self) -> str:
        """Entry name, with a trailing slash for directories."""
        return self.name + "/" if self.is_dir else self.name


def _entry_is_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False


def sort_entries(entries: Iterable[DirectoryEntry]) -> List[DirectoryEntry]:
    """Sort entries by case-insensitive name.

    Ties (names equal once lowercased) fall back to the raw name so the
    order never depends on what the filesystem returned first.
    """
    return sorted(entries, key=lambda e: (e.name.lower(), e.name))


def read_entries(path: str) -> List[DirectoryEntry]:
    """Read every entry of a directory, sorted.

    Args:
        path: Directory to enumerate

    Returns:
        All entries, sorted by case-insensitive name

    Raises:
        OSError: If the directory cannot be read
    """
    with os.scandir(path) as it:
        entries = [DirectoryEntry(e.name, _entry_is_dir(e)) for e in it]
    return sort_entries(entries)


def render_listing(entries: Iterable[DirectoryEntry]) -> bytes:
    """Render entries as a preformatted HTML block of relative links."""
    lines = ["<pre>\n"]
    for entry in entries:
        name = entry.display_name
        href = html.escape(quote(name, errors="surrogateescape"), quote=True)
        lines.append(f'<a href="{href}">{html.escape(name)}</a>\n')
    lines.append("</pre>\n")
    return "".join(lines).encode("utf-8", "surrogateescape")
