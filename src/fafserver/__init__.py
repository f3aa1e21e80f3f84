"""fafserver: fire-and-forget HTTPS file server.

Serves the current directory over HTTPS on a random port, behind a randomly
generated Basic auth username and password, and exits after a set lifetime.
"""

__version__ = "0.1.0"

from fafserver.auth import (
    AuthError,
    Credential,
    CredentialError,
    validate_basic_auth,
)
from fafserver.config import (
    ConfigError,
    ServerConfig,
    format_duration,
    parse_duration,
)
from fafserver.content import ContentServer
from fafserver.httpd import (
    Server,
    create_server,
)
from fafserver.lifecycle import (
    rand_port,
    start_deadline,
)
from fafserver.paths import (
    PathError,
    ServeError,
    resolve_path,
)
from fafserver.tls import TLSConfig

__all__ = [
    "__version__",
    # Server
    "Server",
    "create_server",
    "ContentServer",
    "resolve_path",
    "ServeError",
    "PathError",
    # Config
    "ServerConfig",
    "ConfigError",
    "parse_duration",
    "format_duration",
    # TLS
    "TLSConfig",
    # Auth
    "AuthError",
    "Credential",
    "CredentialError",
    "validate_basic_auth",
    # Lifetime
    "rand_port",
    "start_deadline",
]
