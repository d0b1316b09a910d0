"""
=============================================================================
RANGESERVER CLI ENTRY POINT
=============================================================================

    # Serve the current directory on port 8080
    python -m rangeserver

    # Serve a media folder on another port
    python -m rangeserver --base-dir /srv/media --port 9000

    # Everything from a properties file, one value overridden
    python -m rangeserver --config rangeserver.cfg --log-level DEBUG

=============================================================================
PRECEDENCE
=============================================================================

    defaults < --config file < RANGESERVER_* env vars < CLI flags

Every flag defaults to None so that only flags the user actually typed
override the lower layers.

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ConfigError, ServerConfig
from .server import RangeServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rangeserver",
        description="Static file server with byte-range streaming for media clients",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m rangeserver                              # Serve . on :8080
  python -m rangeserver --base-dir /srv/media        # Serve a media folder
  python -m rangeserver --config rangeserver.cfg     # Load a properties file
  python -m rangeserver --playlist-url URL           # Enable /channels.m3u
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONFIG FILE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Properties file (appName, version, port, baseDir, m3uRemoteUrl, ...)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK / CONTENT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080)",
    )

    parser.add_argument(
        "--base-dir", "-d",
        default=None,
        help="Directory to serve (default: current directory)",
    )

    parser.add_argument(
        "--playlist-url",
        default=None,
        help="Remote extended M3U playlist served filtered at /channels.m3u",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Access log format (default: text)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Verbose per-connection logging",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"rangeserver {__version__}",
    )

    return parser


def load_config(args: argparse.Namespace) -> ServerConfig:
    """
    Layer file, environment and CLI values into one ServerConfig.

    Raises:
        ConfigError: A value is invalid.
        FileNotFoundError: --config points to a missing file.
    """
    config = ServerConfig()
    if args.config:
        config = ServerConfig.from_file(args.config, base=config)
    config = ServerConfig.from_env(base=config)
    return config.with_overrides(
        host=args.host,
        port=args.port,
        base_dir=args.base_dir,
        playlist_url=args.playlist_url,
        log_level=args.log_level,
        log_format=args.log_format,
        debug=args.debug,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        server = RangeServer(config)
    except (ConfigError, OSError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
