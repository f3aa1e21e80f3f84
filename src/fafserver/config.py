"""Server configuration.

Settings come from three layers, highest precedence first:
1. Command-line flags (--host, --die)
2. Optional YAML config file (--config), keys: host, die, index, realm, keys_dir
3. Built-in defaults

The resolved settings, together with the session credential and the
discovered port, form an immutable ServerConfig shared by every request.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from fafserver.auth import DEFAULT_REALM, Credential
from fafserver.content import DEFAULT_INDEX_NAME

DEFAULT_HOST = ""
DEFAULT_DIE = 24 * 60 * 60.0  # 24h

CONFIG_KEYS = ("host", "die", "index", "realm", "keys_dir")

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class ConfigError(Exception):
    """Configuration error."""


def parse_duration(value: str) -> float:
    """Parse a duration string such as "24h", "2s" or "1h30m".

    Args:
        value: Sequence of decimal numbers with unit suffixes
            (ns, us, ms, s, m, h). A bare "0" is allowed.

    Returns:
        Duration in seconds

    Raises:
        ConfigError: If the string is malformed or negative
    """
    text = value.strip()
    if text.startswith("+"):
        text = text[1:]
    if text.startswith("-"):
        raise ConfigError(f"Negative duration not allowed: {value}")
    if text == "0":
        return 0.0
    if not text:
        raise ConfigError(f"Invalid duration: {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART_RE.match(text, pos)
        if not match:
            raise ConfigError(f"Invalid duration: {value!r}")
        number, unit = match.groups()
        total += float(number) * _UNIT_SECONDS[unit]
        pos = match.end()
    return total


def _trim_number(value: float) -> str:
    return f"{round(value, 9):.9f}".rstrip("0").rstrip(".")


def format_duration(seconds: float) -> str:
    """Format seconds the way parse_duration reads them.

    Examples: 86400 -> "24h0m0s", 90 -> "1m30s", 2 -> "2s", 0.5 -> "500ms".
    """
    if seconds == 0:
        return "0s"
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)

    if seconds < 1:
        for unit, scale in (("ms", 1e3), ("µs", 1e6), ("ns", 1e9)):
            scaled = seconds * scale
            if scaled >= 1 or unit == "ns":
                return f"{sign}{_trim_number(scaled)}{unit}"

    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    out = sign
    if hours:
        out += f"{int(hours)}h"
    if hours or minutes:
        out += f"{int(minutes)}m"
    return f"{out}{_trim_number(secs)}s"


def _coerce_duration(value) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigError(f"Negative duration not allowed: {value}")
        return float(value)
    if isinstance(value, str):
        return parse_duration(value)
    raise ConfigError(f"Invalid duration: {value!r}")


def _require_str(key: str, value) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def load_config_file(path: Path) -> dict:
    """Load and validate a YAML config file.

    Args:
        path: Path to the YAML file

    Returns:
        Dict with a subset of CONFIG_KEYS; "die" in seconds, "keys_dir"
        as a Path

    Raises:
        ConfigError: If the file cannot be read or holds invalid settings
    """
    try:
        raw = yaml.safe_load(Path(path).read_text())
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    unknown = sorted(str(k) for k in raw if k not in CONFIG_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")

    settings: dict = {}
    if "host" in raw:
        settings["host"] = _require_str("host", raw["host"] if raw["host"] is not None else "")
    if "die" in raw:
        settings["die"] = _coerce_duration(raw["die"])
    if "index" in raw:
        index = _require_str("index", raw["index"])
        if not index or "/" in index or index in (".", ".."):
            raise ConfigError(f"'index' must be a plain file name, got {index!r}")
        settings["index"] = index
    if "realm" in raw:
        settings["realm"] = _require_str("realm", raw["realm"])
    if "keys_dir" in raw:
        settings["keys_dir"] = Path(_require_str("keys_dir", raw["keys_dir"])).expanduser()
    return settings


@dataclass(frozen=True)
class ServerConfig:
    """Process-wide server settings, fixed at startup."""

    root: Path
    port: int
    credential: Credential
    cert_path: Path
    key_path: Path
    host: str = DEFAULT_HOST
    die: float = DEFAULT_DIE
    index_name: str = DEFAULT_INDEX_NAME
    realm: str = DEFAULT_REALM

    @property
    def url(self) -> str:
        """Listening URL shown to the operator."""
        return f"https://{self.host}:{self.port}"


def merge_settings(
    file_settings: Optional[dict] = None,
    host: Optional[str] = None,
    die: Optional[float] = None,
) -> dict:
    """Combine flag values, config file values and defaults.

    Flags left as None fall through to the file, then to the defaults.
    """
    file_settings = file_settings or {}
    return {
        "host": host if host is not None else file_settings.get("host", DEFAULT_HOST),
        "die": die if die is not None else file_settings.get("die", DEFAULT_DIE),
        "index_name": file_settings.get("index", DEFAULT_INDEX_NAME),
        "realm": file_settings.get("realm", DEFAULT_REALM),
        "keys_dir": file_settings.get("keys_dir"),
    }
