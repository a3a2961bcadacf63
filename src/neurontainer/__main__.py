"""
neurontainer - Entry Point

Runs the backend: loads config, connects to Neuro and serves the
control surface.
"""

import asyncio
import argparse
import logging

from .config import load_config
from .logging_setup import configure_logging
from .server import run_daemon

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="neurontainer",
        description="Let Neuro manage Docker containers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve on localhost:8080 and connect to the configured Neuro server
  python -m neurontainer

  # Inside the extension VM
  python -m neurontainer --socket /run/guest-services/backend.sock

  # Point at a different Neuro server and enable debug logging
  python -m neurontainer --neuro-url ws://192.168.1.20:8000 --debug
"""
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to neurontainer.yaml (default: search working directory)'
    )

    parser.add_argument(
        '--host',
        help='Control server host (default: 127.0.0.1)'
    )

    parser.add_argument(
        '--port', '-p',
        type=int,
        help='Control server port (default: 8080)'
    )

    parser.add_argument(
        '--socket', '-s',
        help='Serve the control surface on this unix socket instead of TCP'
    )

    parser.add_argument(
        '--neuro-url',
        help='Neuro API WebSocket URL (default: $NEURO_SERVER_URL or ws://host.docker.internal:8000)'
    )

    parser.add_argument(
        '--no-connect',
        action='store_true',
        help='Do not connect to Neuro at startup (use /api/reconnect/neuro later)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    return parser


def apply_cli_overrides(config, args):
    """CLI flags win over file and environment"""
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.socket:
        config.server.socket_path = args.socket
    if args.neuro_url:
        config.neuro.websocket_url = args.neuro_url
    if args.no_connect:
        config.neuro.auto_connect = False
    if args.debug:
        config.logging.level = "DEBUG"
    return config


async def main(argv=None):
    args = build_parser().parse_args(argv)

    config = apply_cli_overrides(load_config(args.config), args)
    log_files = configure_logging(
        level=config.logging.level,
        file_logs=config.logging.file_logs,
        log_dir=config.paths.log_dir,
    )
    for path in log_files:
        logger.info(f"Logging to {path}")

    await run_daemon(config)


def run():
    """Entry point for console script"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == '__main__':
    run()
