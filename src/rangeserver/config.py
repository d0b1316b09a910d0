"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized, read-only configuration for the server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m rangeserver --port 3000                         │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── RANGESERVER_PORT=3000 python -m rangeserver               │
    │                                                                      │
    │   3. Configuration file (properties format)                         │
    │      └── rangeserver.cfg                                           │
    │                                                                      │
    │   4. Defaults in ServerConfig                                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONFIG FILE FORMAT
=============================================================================

A flat "key=value" properties file; blank lines and lines starting with
"#" or ";" are comments:

    # rangeserver.cfg
    appName=Living Room Media
    version=1.2
    port=8080
    baseDir=/srv/media
    m3uRemoteUrl=https://example.com/iptv/all.m3u
    playlistGroups=NFL,MLB
    logLevel=INFO

=============================================================================
WHY FROZEN?
=============================================================================

One ServerConfig is shared by every connection thread. Because nothing
can mutate it after startup, threads read it without locks. Overrides
produce a NEW config (dataclasses.replace), they never patch the shared
one.

=============================================================================
"""

import configparser
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union


class ConfigError(ValueError):
    """Configuration file or value is invalid."""


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the range server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    IDENTITY
    - app_name, version, server_name

    NETWORK
    - host, port, backlog

    CONTENT
    - base_dir, index_file, chunk_size

    SPECIAL COMMANDS
    - playlist_url, playlist_groups, playlist_timeout

    TIMEOUTS / LIMITS
    - timeout, keep_alive_timeout, keep_alive_max
    - max_line_length, max_headers

    LOGGING
    - log_level, log_format, debug

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    app_name: str = "rangeserver"
    version: str = "1.0"
    server_name: str = "rangeserver/1.0"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to. Media clients (TVs, phones) live on the
    LAN, so the default listens on all interfaces.
    """

    port: int = 8080
    """Port to listen on. 0 lets the OS pick a free one (tests)."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    base_dir: str = "."
    """Directory files are served from. Nothing outside it is reachable."""

    index_file: str = "index.html"
    """Served instead of a directory listing."""

    chunk_size: int = 8192
    """Bytes per read/send while streaming a file."""

    # ─────────────────────────────────────────────────────────────────────
    # SPECIAL COMMANDS
    # ─────────────────────────────────────────────────────────────────────

    playlist_url: Optional[str] = None
    """Remote extended M3U playlist filtered by /channels.m3u."""

    playlist_groups: Tuple[str, ...] = ("NFL", "MLB")
    """group-title values kept when filtering the playlist."""

    playlist_timeout: float = 10.0
    """Connect/read timeout for the playlist fetch, in seconds."""

    # ─────────────────────────────────────────────────────────────────────
    # TIMEOUTS / LIMITS
    # ─────────────────────────────────────────────────────────────────────

    timeout: float = 5.0
    """
    How long a new connection may take to deliver its request head.
    After this the connection is closed without a response.
    """

    keep_alive_timeout: float = 5.0
    """Idle time allowed between requests on a kept-alive (206) connection."""

    keep_alive_max: int = 100
    """Most requests served on one connection."""

    max_line_length: int = 8192
    max_headers: int = 100

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR."""

    log_format: str = "text"
    """Access log format: 'text' (Apache-like) or 'json'."""

    debug: bool = False
    """Verbose per-connection logging (forces DEBUG level)."""

    # =========================================================================
    # PATHS
    # =========================================================================

    @property
    def base_path(self) -> Path:
        """Absolute, symlink-resolved base directory."""
        return Path(self.base_dir).resolve()

    # =========================================================================
    # ALTERNATE CONSTRUCTORS
    # =========================================================================

    # Properties-file key → dataclass field
    FILE_KEYS = {
        "appName": "app_name",
        "version": "version",
        "host": "host",
        "port": "port",
        "baseDir": "base_dir",
        "indexFile": "index_file",
        "m3uRemoteUrl": "playlist_url",
        "playlistGroups": "playlist_groups",
        "timeout": "timeout",
        "logLevel": "log_level",
        "logFormat": "log_format",
        "debug": "debug",
    }

    ENV_KEYS = {
        "RANGESERVER_HOST": "host",
        "RANGESERVER_PORT": "port",
        "RANGESERVER_BASE_DIR": "base_dir",
        "RANGESERVER_PLAYLIST_URL": "playlist_url",
        "RANGESERVER_LOG_LEVEL": "log_level",
    }

    @classmethod
    def from_file(cls, path: Union[str, Path], base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Load configuration from a properties file.

        Unknown keys are ignored, missing keys keep their defaults (or the
        values of base, if given).

        Raises:
            FileNotFoundError: path does not exist.
            ConfigError: A value can't be converted (e.g. port=abc).
        """
        path = Path(path)
        # configparser needs a section header; properties files don't have one
        text = "[rangeserver]\n" + path.read_text(encoding="utf-8")

        # No interpolation: URLs routinely contain "%"
        parser = configparser.ConfigParser(interpolation=None)
        parser.optionxform = str  # keep key case (baseDir, not basedir)
        try:
            parser.read_string(text, source=str(path))
        except configparser.Error as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e

        raw = {
            cls.FILE_KEYS[key]: value
            for key, value in parser["rangeserver"].items()
            if key in cls.FILE_KEYS
        }
        return (base or cls()).with_overrides(**raw)

    @classmethod
    def from_env(cls, base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Apply RANGESERVER_* environment variables on top of base.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        RANGESERVER_HOST          Bind address
        RANGESERVER_PORT          Listening port
        RANGESERVER_BASE_DIR      Directory to serve
        RANGESERVER_PLAYLIST_URL  Remote M3U for /channels.m3u
        RANGESERVER_LOG_LEVEL     Logging level

        =====================================================================
        """
        raw = {
            name: os.environ[env]
            for env, name in cls.ENV_KEYS.items()
            if os.environ.get(env)
        }
        return (base or cls()).with_overrides(**raw)

    def with_overrides(self, **values: Any) -> "ServerConfig":
        """
        Return a copy with the given fields replaced.

        String values are converted to the field's type, so raw values
        from files, the environment, and argparse all go through here.
        None values are skipped (argparse defaults).
        """
        known = {f.name: f for f in fields(self)}
        converted: Dict[str, Any] = {}
        for name, value in values.items():
            if value is None:
                continue
            if name not in known:
                raise ConfigError(f"Unknown configuration field: {name}")
            converted[name] = _convert(name, value, type(getattr(self, name)))
        return replace(self, **converted)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self) -> None:
        """
        Validate configuration values.

        We validate at startup, not at first use, so a typo in the config
        file stops the server immediately instead of failing the first
        request hours later.

        Raises:
            ConfigError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")

        if not Path(self.base_dir).is_dir():
            raise ConfigError(f"Base directory does not exist: {self.base_dir}")

        if self.timeout <= 0 or self.keep_alive_timeout <= 0:
            raise ConfigError("timeouts must be > 0")

        if self.chunk_size < 1:
            raise ConfigError("chunk_size must be >= 1")

        if self.keep_alive_max < 1:
            raise ConfigError("keep_alive_max must be >= 1")

        if self.log_format not in ("text", "json"):
            raise ConfigError(f"log_format must be 'text' or 'json', not {self.log_format!r}")

        if "/" in self.index_file or self.index_file in ("", ".", ".."):
            raise ConfigError(f"index_file must be a plain file name: {self.index_file!r}")


def _convert(name: str, value: Any, target: type) -> Any:
    """Convert a raw (usually string) value to the type of a field."""
    if not isinstance(value, str):
        return tuple(value) if target is tuple else value

    try:
        if target is bool:
            lowered = value.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off", ""):
                return False
            raise ValueError(value)
        if target is int:
            return int(value.strip())
        if target is float:
            return float(value.strip())
        if target is tuple:
            return tuple(part.strip() for part in value.split(",") if part.strip())
    except ValueError as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e

    # str and Optional[str] fields (type(None) when unset)
    return value.strip()
