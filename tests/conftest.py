"""Shared pytest fixtures for fafserver tests."""

import io
import os
import subprocess
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from fafserver.auth import Credential  # noqa: E402
from fafserver.tls import TLSConfig  # noqa: E402

# Fixed mtime for served files: Mon, 02 Jan 2006 15:04:05 GMT
FIXED_MTIME = 1136214245


class RecordingHandler:
    """Stand-in for BaseHTTPRequestHandler that records the response."""

    def __init__(self, headers=None, command="GET"):
        self.headers = headers or {}
        self.command = command
        self.status = None
        self.response_headers = {}
        self.headers_ended = False
        self.wfile = io.BytesIO()

    def send_response(self, code, message=None):
        self.status = int(code)

    def send_header(self, keyword, value):
        self.response_headers[keyword] = value

    def end_headers(self):
        self.headers_ended = True

    @property
    def body(self) -> bytes:
        return self.wfile.getvalue()


@pytest.fixture
def make_handler():
    """Factory for RecordingHandler instances."""
    return RecordingHandler


@pytest.fixture
def served_root(tmp_path):
    """Create a directory to serve.

    Layout:
    - a.txt ("hello world\\n")
    - B.txt ("second file\\n")
    - c/ (empty directory, no index)
    """
    root = tmp_path / "root"
    root.mkdir()
    (root / "a.txt").write_text("hello world\n")
    (root / "B.txt").write_text("second file\n")
    (root / "c").mkdir()
    for path in (root / "a.txt", root / "B.txt", root / "c"):
        os.utime(path, (FIXED_MTIME, FIXED_MTIME))
    return root


@pytest.fixture
def keys_dir(tmp_path):
    """Generate a throwaway self-signed cert.pem/key.pem pair.

    Returns the keys directory (laid out like $HOME/keys).
    """
    keys = tmp_path / "home" / "keys"
    keys.mkdir(parents=True)
    subprocess.run(
        [
            "openssl", "req",
            "-x509", "-nodes",
            "-newkey", "rsa:2048",
            "-keyout", str(keys / "key.pem"),
            "-out", str(keys / "cert.pem"),
            "-days", "1",
            "-subj", "/CN=localhost",
        ],
        check=True,
        capture_output=True,
    )
    return keys


@pytest.fixture
def tls_config(keys_dir):
    """TLSConfig for the generated certificate."""
    return TLSConfig.from_keys_dir(keys_dir)


@pytest.fixture
def credential():
    """Fixed credential so tests can authenticate."""
    return Credential(username="test-user", password="test-password")
