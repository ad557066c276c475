"""Command-line interface for serverpanel.

Provides the main entry point for running the control panel and for
driving a running panel remotely (status, version, start, stop).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import AsyncIterator

logger = logging.getLogger(__name__)

# --option -> start-server request field
START_OPTIONS = {
    "port": "port",
    "latency_ms": "latencyMS",
    "autosave_interval": "autosaveInterval",
    "autosave_slots": "autosaveSlots",
}
START_FLAGS = {
    "disallow_commands": "disallowCommands",
    "peer_to_peer": "peerToPeer",
    "no_auto_pause": "noAutoPause",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="serverpanel",
        description="Remote control panel for a managed game server",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/serverpanel.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("serve", help="Run the HTTP control panel")

    for name, help_text in (
        ("status", "Show the managed server status of a running panel"),
        ("version", "Print the game server version via a running panel"),
        ("start", "Start the managed server and follow its output"),
        ("stop", "Stop the managed server and print its shutdown output"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--url", type=str, default=None,
            help="Panel base URL (default: http://localhost:<panel.port>)",
        )
        if name in ("start", "stop"):
            sub.add_argument(
                "--password", type=str, default=None,
                help="Admin password (default: auth.admin_password from config)",
            )
        if name == "start":
            sub.add_argument("save_name", help="Save to host")
            sub.add_argument("--port", type=str, default=None)
            sub.add_argument("--latency-ms", type=str, default=None)
            sub.add_argument("--autosave-interval", type=str, default=None)
            sub.add_argument("--autosave-slots", type=str, default=None)
            for flag in START_FLAGS:
                sub.add_argument("--" + flag.replace("_", "-"), action="store_true")

    return parser.parse_args(argv)


def start_params(args: argparse.Namespace) -> dict[str, object]:
    """Build the start-server request body from parsed ``start`` arguments."""
    params: dict[str, object] = {"saveName": args.save_name}
    for option, field in START_OPTIONS.items():
        value = getattr(args, option)
        if value:
            params[field] = value
    for flag, field in START_FLAGS.items():
        if getattr(args, flag):
            params[field] = True
    return params


def _serve(settings) -> None:
    import uvicorn
    from serverpanel.endpoint.server import create_app

    app = create_app(settings)
    uvicorn.run(app, host=settings.panel.host, port=settings.panel.port, log_config=None)


async def _print_stream(chunks: AsyncIterator[bytes]) -> None:
    async for chunk in chunks:
        sys.stdout.write(chunk.decode("utf-8", errors="replace"))
        sys.stdout.flush()


async def _remote(settings, args) -> int:
    from serverpanel.client import PanelClient, PanelClientError

    url = args.url or f"http://localhost:{settings.panel.port}"
    password = getattr(args, "password", None)
    if password is None and args.command in ("start", "stop"):
        password = settings.auth.admin_password.get_secret_value()

    try:
        async with PanelClient(base_url=url, password=password) as client:
            if args.command == "status":
                status = await client.status()
                if not status.running:
                    print("Server is not running")
                else:
                    print(f"Server is running (pid {status.pid})")
                    print(f"  Port:    {status.port}")
                    print(f"  Started: {status.started_at:%Y-%m-%d %H:%M:%S}")
                    print(f"  Uptime:  {status.uptime_seconds:.0f}s")
                    print(f"  Command: {' '.join(status.argv)}")
            elif args.command == "version":
                await _print_stream(client.version())
            elif args.command == "start":
                await _print_stream(client.start_server(**start_params(args)))
            elif args.command == "stop":
                await _print_stream(client.stop_server())
    except PanelClientError as e:
        logger.error("%s", e)
        return 1
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the serverpanel CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from serverpanel.config.settings import load_settings
    from serverpanel.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting control panel on %s:%d", settings.panel.host, settings.panel.port)
        _serve(settings)
    else:
        sys.exit(asyncio.run(_remote(settings, args)))


if __name__ == "__main__":
    main()
