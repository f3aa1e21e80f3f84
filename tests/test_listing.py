"""Tests for fafserver/listing.py - sorted directory listings."""

import random
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fafserver.listing import (
    DirectoryEntry,
    LISTING_CONTENT_TYPE,
    read_entries,
    render_listing,
    sort_entries,
)


class TestDirectoryEntry:
    """Tests for DirectoryEntry dataclass."""

    def test_file_display_name(self):
        """Files display as their name."""
        assert DirectoryEntry("a.txt").display_name == "a.txt"

    def test_dir_display_name(self):
        """Directories get a trailing slash."""
        assert DirectoryEntry("c", is_dir=True).display_name == "c/"

    def test_immutable(self):
        """Entries are frozen."""
        entry = DirectoryEntry("a.txt")
        with pytest.raises(AttributeError):
            entry.name = "b.txt"


class TestSortEntries:
    """Tests for sort_entries function."""

    def test_case_insensitive_order(self):
        """Sorting ignores case."""
        entries = [DirectoryEntry("c", True), DirectoryEntry("B.txt"), DirectoryEntry("a.txt")]
        assert [e.display_name for e in sort_entries(entries)] == ["a.txt", "B.txt", "c/"]

    def test_input_order_does_not_leak(self):
        """Any input permutation gives the same output."""
        names = ["Zeta", "alpha", "Beta", "beta", "ALPHA", "gamma", "_x", "10", "9"]
        expected = sort_entries(DirectoryEntry(n) for n in names)
        rng = random.Random(42)
        for _ in range(20):
            shuffled = names[:]
            rng.shuffle(shuffled)
            assert sort_entries(DirectoryEntry(n) for n in shuffled) == expected

    def test_adjacent_pairs_ordered(self):
        """lower(name[i]) <= lower(name[i+1]) for every adjacent pair."""
        names = ["b", "A", "a", "C", "B", "c", "Ä", "ä"]
        result = [e.name for e in sort_entries(DirectoryEntry(n) for n in names)]
        for first, second in zip(result, result[1:]):
            assert first.lower() <= second.lower()

    def test_tie_broken_by_raw_name(self):
        """Names equal when lowercased are ordered by raw name."""
        result = sort_entries([DirectoryEntry("readme"), DirectoryEntry("README")])
        assert [e.name for e in result] == ["README", "readme"]


class TestReadEntries:
    """Tests for read_entries function."""

    def test_reads_and_sorts(self, served_root):
        """Entries come back sorted, directories flagged."""
        entries = read_entries(str(served_root))
        assert entries == [
            DirectoryEntry("a.txt", False),
            DirectoryEntry("B.txt", False),
            DirectoryEntry("c", True),
        ]

    def test_reads_every_entry(self, tmp_path):
        """Large directories are listed in full."""
        for i in range(250):
            (tmp_path / f"file{i:03d}").touch()
        entries = read_entries(str(tmp_path))
        assert len(entries) == 250
        assert entries[0].name == "file000"
        assert entries[-1].name == "file249"

    def test_empty_directory(self, tmp_path):
        """Empty directory gives an empty list."""
        assert read_entries(str(tmp_path)) == []

    def test_missing_directory(self, tmp_path):
        """Missing directory raises OSError."""
        with pytest.raises(OSError):
            read_entries(str(tmp_path / "nope"))


class TestRenderListing:
    """Tests for render_listing function."""

    def test_layout(self):
        """Listing is a <pre> block with one link per line."""
        body = render_listing([
            DirectoryEntry("a.txt"),
            DirectoryEntry("B.txt"),
            DirectoryEntry("c", is_dir=True),
        ])
        assert body == (
            b"<pre>\n"
            b'<a href="a.txt">a.txt</a>\n'
            b'<a href="B.txt">B.txt</a>\n'
            b'<a href="c/">c/</a>\n'
            b"</pre>\n"
        )

    def test_empty(self):
        """No entries renders an empty block."""
        assert render_listing([]) == b"<pre>\n</pre>\n"

    def test_escapes_markup_in_names(self):
        """Markup characters cannot inject HTML."""
        body = render_listing([DirectoryEntry('<script>alert("x")</script>')]).decode()
        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert 'href="%3Cscript%3Ealert%28%22x%22%29%3C/script%3E"' in body

    def test_quotes_special_characters_in_href(self):
        """Spaces, '#', '?' and ':' are percent-encoded in links."""
        body = render_listing([DirectoryEntry("a b#c?d:e")]).decode()
        assert 'href="a%20b%23c%3Fd%3Ae"' in body
        assert ">a b#c?d:e</a>" in body

    def test_ampersand(self):
        """Ampersands are escaped in the text."""
        body = render_listing([DirectoryEntry("a&b")]).decode()
        assert 'href="a%26b"' in body
        assert ">a&amp;b</a>" in body

    def test_content_type(self):
        """Listing content type is UTF-8 HTML."""
        assert LISTING_CONTENT_TYPE == "text/html; charset=utf-8"
