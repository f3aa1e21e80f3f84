"""CLI entry point for fafserver.

Starts an HTTPS server for the current directory on a random port,
protected by a random username and password, which exits after --die.
The certificate and key are read from $HOME/keys/cert.pem and key.pem.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from fafserver.auth import Credential, CredentialError
from fafserver.config import (
    ConfigError,
    ServerConfig,
    format_duration,
    load_config_file,
    merge_settings,
    parse_duration,
)
from fafserver.httpd import create_server
from fafserver.lifecycle import rand_port, start_deadline
from fafserver.tls import TLSConfig

logger = logging.getLogger(__name__)

# Exit codes
EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2


def _duration_arg(value: str) -> float:
    """argparse type for durations like 24h or 2s."""
    try:
        return parse_duration(value)
    except ConfigError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="fafserver",
        description="Fire-and-forget HTTPS file server for the current directory",
        add_help=False,
    )
    parser.add_argument(
        "--host",
        help="Optional hostname to listen on. The port will still be random. "
             "(default: all interfaces)",
    )
    parser.add_argument(
        "--die",
        type=_duration_arg,
        help="Die after the specified time, e.g. 90m or 2s (default: 24h)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML file with defaults for host, die, index, realm and keys_dir",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-h", "--help",
        action="store_true",
        help="show this help",
    )
    return parser


def _usage(parser: argparse.ArgumentParser) -> int:
    parser.print_help(sys.stderr)
    return EXIT_USAGE


def main(argv=None) -> int:
    """CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code: 0 after a clean stop, 1 on startup or listener failure,
        2 on usage errors (argparse exits with 2 by itself on bad flags).
        Reaching the --die deadline exits the process with 0 directly.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.help:
        return _usage(parser)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_settings = {}
    if args.config:
        try:
            file_settings = load_config_file(args.config)
        except ConfigError as e:
            logger.error("%s", e)
            return EXIT_FATAL
    settings = merge_settings(file_settings, host=args.host, die=args.die)

    try:
        credential = Credential.generate()
    except CredentialError as e:
        logger.error("%s", e)
        return EXIT_FATAL
    print(f"user: {credential.username}", flush=True)
    print(f"password: {credential.password}", flush=True)

    try:
        tls_config = TLSConfig.from_keys_dir(settings["keys_dir"])
    except (OSError, ValueError) as e:
        logger.error("TLS material not usable: %s", e)
        return EXIT_FATAL

    try:
        port = rand_port()
    except OSError as e:
        logger.error("%s", e)
        return EXIT_FATAL

    config = ServerConfig(
        root=Path(os.getcwd()),
        port=port,
        credential=credential,
        cert_path=tls_config.cert_path,
        key_path=tls_config.key_path,
        host=settings["host"],
        die=settings["die"],
        index_name=settings["index_name"],
        realm=settings["realm"],
    )
    server = create_server(config, tls_config)

    timer = start_deadline(config.die)
    print(f"Starting to listen on: {config.url}", flush=True)
    print(f"Server will die in {format_duration(config.die)}", flush=True)
    print(f"Certificate fingerprint: {tls_config.fingerprint}", flush=True)

    try:
        server.start()
    except RuntimeError as e:
        timer.cancel()
        logger.error("Failed to start server: %s", e)
        return EXIT_FATAL

    server.serve_forever()
    timer.cancel()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
