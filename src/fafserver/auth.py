"""One-time HTTP Basic credentials for the server.

Provides:
- Random username/password generation (one pair per process)
- Basic auth header validation with a uniform rejection
"""

import base64
import binascii
import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Bytes of randomness per token (hex-encoded to twice as many characters)
TOKEN_SIZE = 20

DEFAULT_REALM = "fafserver"


class AuthError(Exception):
    """Authentication error with error code and HTTP status."""

    def __init__(self, code: str, message: str, http_status: int):
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(f"{code}: {message}")


class CredentialError(Exception):
    """Credentials could not be generated."""


def rand_token(size: int = TOKEN_SIZE) -> str:
    """Generate a hex token from size bytes of secure randomness.

    Args:
        size: Number of random bytes

    Returns:
        Hex string of 2*size characters

    Raises:
        CredentialError: If the randomness source fails or comes up short
    """
    try:
        buf = secrets.token_bytes(size)
    except (OSError, NotImplementedError) as e:
        raise CredentialError(f"failed to get some randomness: {e}") from e
    if len(buf) != size:
        raise CredentialError(
            f"failed to get some randomness: got {len(buf)} of {size} bytes"
        )
    return buf.hex()


@dataclass(frozen=True)
class Credential:
    """The single username/password pair accepted by the server."""

    username: str
    password: str

    @classmethod
    def generate(cls, size: int = TOKEN_SIZE) -> "Credential":
        """Create a credential from two independent random tokens.

        Raises:
            CredentialError: If randomness is unavailable
        """
        return cls(username=rand_token(size), password=rand_token(size))

    @property
    def userpass(self) -> str:
        """The "username:password" string carried by Basic auth."""
        return f"{self.username}:{self.password}"

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, password='***')"


def extract_basic_credentials(auth_header: Optional[str]) -> Optional[str]:
    """Decode the user:password part of a Basic Authorization header.

    Args:
        auth_header: Authorization header value

    Returns:
        Decoded "user:password" string, or None if the header is not a
        well-formed Basic header
    """
    if not auth_header:
        return None
    scheme, _, encoded = auth_header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError):
        return None
    try:
        return decoded.decode("utf-8")
    except UnicodeDecodeError:
        return None


def validate_basic_auth(
    auth_header: Optional[str],
    credential: Credential,
) -> Optional[AuthError]:
    """Validate a request's Basic credentials.

    Missing headers, other schemes, malformed encodings, wrong usernames and
    wrong passwords all produce the same error.

    Args:
        auth_header: Authorization header from request
        credential: The server's credential

    Returns:
        None if auth is valid, or AuthError on failure
    """
    supplied = extract_basic_credentials(auth_header)
    if supplied is not None and hmac.compare_digest(
        supplied.encode("utf-8"), credential.userpass.encode("utf-8")
    ):
        return None
    return AuthError("E401", "Unauthorized", 401)


def challenge_header(realm: str = DEFAULT_REALM) -> str:
    """WWW-Authenticate value for a 401 response."""
    escaped = realm.replace("\\", "\\\\").replace('"', '\\"')
    return f'Basic realm="{escaped}"'
