"""Tests for fafserver/lifecycle.py - port discovery and deadline."""

import logging
import socket
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fafserver.lifecycle import _expire, rand_port, start_deadline


class TestRandPort:
    """Tests for rand_port function."""

    def test_returns_usable_port(self):
        """Discovered port is free to bind again."""
        port = rand_port()
        assert 0 < port < 65536
        with socket.create_server(("localhost", port)):
            pass

    def test_bind_failure(self):
        """Bind failure raises OSError with context."""
        with patch("fafserver.lifecycle.socket.create_server", side_effect=OSError("denied")):
            with pytest.raises(OSError) as exc_info:
                rand_port()
        assert "could not listen to find random port" in str(exc_info.value)


class TestStartDeadline:
    """Tests for start_deadline function."""

    def test_fires_callback(self):
        """Callback runs once the lifetime is over."""
        fired = threading.Event()
        timer = start_deadline(0.05, on_expire=fired.set)
        assert fired.wait(timeout=5)
        timer.join(timeout=5)

    def test_cancel(self):
        """Cancelled timer never fires."""
        fired = threading.Event()
        timer = start_deadline(0.2, on_expire=fired.set)
        timer.cancel()
        assert not fired.wait(timeout=0.5)

    def test_daemon_thread(self):
        """Timer does not keep the interpreter alive."""
        timer = start_deadline(60, on_expire=lambda: None)
        try:
            assert timer.daemon is True
        finally:
            timer.cancel()

    def test_default_callback_exits(self):
        """Without a callback the process exits with status 0."""
        exited = threading.Event()
        with patch("fafserver.lifecycle.os._exit", side_effect=lambda code: exited.set()) as mock_exit:
            timer = start_deadline(0.05)
            assert exited.wait(timeout=5)
            timer.join(timeout=5)
        mock_exit.assert_called_once_with(0)


class TestExpire:
    """Tests for the deadline callback."""

    def test_logs_and_exits_zero(self, caplog):
        """Expiry logs the lifetime at INFO and exits 0."""
        with patch("fafserver.lifecycle.os._exit") as mock_exit:
            with caplog.at_level(logging.INFO, logger="fafserver.lifecycle"):
                _expire(2.0)
        mock_exit.assert_called_once_with(0)
        assert "Server lifetime of 2s is over" in caplog.text
