"""TLS material for the server.

The certificate and key are expected in $HOME/keys (cert.pem, key.pem).
Their SHA256 fingerprint is printed at startup for TOFU (trust-on-first-use)
verification by the client.
"""

import hashlib
import logging
import os
import re
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CERT_FILENAME = "cert.pem"
KEY_FILENAME = "key.pem"

_PEM_CERT_RE = re.compile(
    r"-----BEGIN CERTIFICATE-----.+?-----END CERTIFICATE-----", re.DOTALL
)


def default_keys_dir() -> Path:
    """Directory holding cert.pem and key.pem ($HOME/keys)."""
    home = os.environ.get("HOME") or str(Path.home())
    return Path(home) / "keys"


@dataclass(frozen=True)
class TLSConfig:
    """TLS configuration for the server."""

    cert_path: Path
    key_path: Path
    fingerprint: str

    @classmethod
    def from_paths(cls, cert_path: Path, key_path: Path) -> "TLSConfig":
        """Create config from existing certificate files.

        Args:
            cert_path: Path to certificate file
            key_path: Path to key file

        Returns:
            TLSConfig with computed fingerprint

        Raises:
            FileNotFoundError: If files don't exist
            ValueError: If the certificate file holds no PEM certificate
        """
        if not cert_path.exists():
            raise FileNotFoundError(f"Certificate not found: {cert_path}")
        if not key_path.exists():
            raise FileNotFoundError(f"Key not found: {key_path}")

        fingerprint = get_cert_fingerprint(cert_path)
        return cls(cert_path=cert_path, key_path=key_path, fingerprint=fingerprint)

    @classmethod
    def from_keys_dir(cls, keys_dir: Optional[Path] = None) -> "TLSConfig":
        """Create config from cert.pem and key.pem in keys_dir.

        Args:
            keys_dir: Directory to look in (default: $HOME/keys)
        """
        keys_dir = keys_dir or default_keys_dir()
        return cls.from_paths(keys_dir / CERT_FILENAME, keys_dir / KEY_FILENAME)


def get_cert_fingerprint(cert_path: Path) -> str:
    """Get SHA256 fingerprint of a certificate.

    Only the first certificate of a chain file is fingerprinted.

    Args:
        cert_path: Path to PEM certificate file

    Returns:
        SHA256 fingerprint as hex string with colons (e.g., "AB:CD:EF:...")

    Raises:
        ValueError: If no PEM certificate is found
    """
    match = _PEM_CERT_RE.search(Path(cert_path).read_text())
    if not match:
        raise ValueError(f"No PEM certificate in {cert_path}")
    der = ssl.PEM_cert_to_DER_cert(match.group(0))
    digest = hashlib.sha256(der).hexdigest().upper()
    return ":".join(digest[i:i + 2] for i in range(0, len(digest), 2))


def create_server_context(tls_config: TLSConfig) -> ssl.SSLContext:
    """Build the server-side SSL context.

    Raises:
        ssl.SSLError: If the certificate and key don't load or don't match
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(
        certfile=str(tls_config.cert_path),
        keyfile=str(tls_config.key_path),
    )
    logger.debug("Loaded certificate %s", tls_config.cert_path)
    return context
