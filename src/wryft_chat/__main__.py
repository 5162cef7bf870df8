"""Command line entry point for ``wryft-chat``.

Loads the YAML configuration, configures logging, parses the channel to
open and runs the terminal client until the user quits or input ends.

Exit codes: 0 on a clean exit, 1 when configuration or startup fails,
2 when no channel was given.
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

import structlog

from wryft_chat._version import __version__

log = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

DEFAULT_CONFIG_PATH = Path("config/config.yaml")


def setup_logging(debug: bool = False, log_format: str | None = None) -> None:
    """Bootstrap logging before the configuration file has been read."""
    from wryft_chat.utils.logging import LogFormat, LogLevel, configure_logging

    configure_logging(
        level=LogLevel.DEBUG if debug else LogLevel.INFO,
        log_format=log_format or LogFormat.CONSOLE,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wryft-chat",
        description="Wryft chat - real-time terminal chat client",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path(os.environ.get("WRYFT_CONFIG", DEFAULT_CONFIG_PATH)),
        help=f"Path to configuration file (default: $WRYFT_CONFIG or {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--channel",
        default=None,
        help="Channel to open: 'guild/channel' or 'dm:<id>'",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging regardless of the configured level",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the configuration and channel, then exit",
    )
    parser.add_argument(
        "--format",
        choices=["json", "console"],
        default=None,
        help="Log output format (default: the configured logging.format)",
    )
    return parser.parse_args(argv)


async def run_client(
    config_path: Path,
    channel: str | None = None,
    dry_run: bool = False,
    debug: bool = False,
    log_format: str | None = None,
) -> int:
    """Load configuration and run the client for one channel.

    Args:
        config_path: YAML configuration file.
        channel: Channel key text; required unless ``dry_run`` is set.
        dry_run: Stop after validating the configuration and channel.
        debug: Keep debug logging regardless of the configured level.
        log_format: Overrides ``logging.format`` from the file when given.

    Returns:
        Process exit code.
    """
    from wryft_chat.config.loader import load_config
    from wryft_chat.models.channel import parse_channel_key
    from wryft_chat.utils.logging import (
        bind_context,
        clear_context,
        configure_from_config,
        register_secret,
    )

    log.info("starting_wryft_chat", version=__version__, config_path=str(config_path))

    try:
        config = load_config(config_path)
        configure_from_config(config.logging, debug=debug, log_format=log_format)
        register_secret(config.api.token)
        bind_context(user=config.user.identity)
        log.info("configuration_loaded")

        channel_key = parse_channel_key(channel) if channel else None
    except FileNotFoundError as e:
        log.error("configuration_file_not_found", path=str(config_path), error=str(e))
        return EXIT_FAILURE
    except ValueError as e:
        # pydantic.ValidationError is a ValueError too
        log.error("configuration_invalid", error=str(e))
        return EXIT_FAILURE

    if dry_run:
        log.info("dry_run_mode_config_valid", channel=str(channel_key) if channel_key else None)
        return EXIT_OK

    if channel_key is None:
        log.error("channel_required", hint="pass --channel guild/channel or --channel dm:<id>")
        return EXIT_USAGE

    from wryft_chat.core.client import StartupError, create_client

    bind_context(channel=str(channel_key))
    client = await create_client(config, channel_key)
    try:
        await client.start()
    except StartupError as e:
        log.error("client_start_failed", error=str(e))
        return EXIT_FAILURE
    finally:
        log.info("wryft_chat_stopped")
        clear_context()

    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(debug=args.debug, log_format=args.format)

    try:
        return asyncio.run(
            run_client(args.config, args.channel, args.dry_run, args.debug, args.format)
        )
    except KeyboardInterrupt:
        log.info("shutting_down_gracefully")
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
