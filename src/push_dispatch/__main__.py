"""Application entry point and CLI for push-dispatch.

This module implements the command-line entry point: argument parsing,
configuration loading, logging setup, batch file loading, dispatch with
graceful cancellation on SIGINT/SIGTERM, and JSON output of outcomes.

Output:
- One JSON object per batch entry on stdout, in input order
- Logs on stderr (and syslog when enabled)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

from push_dispatch.core.config import (
    ConfigurationError,
    EnvironmentVariableError,
    load_main_config,
    load_yaml_document,
)
from push_dispatch.core.errors import BatchInputError, CredentialUnavailableError
from push_dispatch.core.service import PushService
from push_dispatch.utils.logging import configure_logging

if TYPE_CHECKING:
    from push_dispatch.core.dispatcher import BatchItem
    from push_dispatch.core.outcomes import BatchResult

__all__ = ["main"]

# Default configuration path
DEFAULT_CONFIG_PATH: Path = Path("config/push-dispatch.yaml")

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 1
EXIT_UNDELIVERED = 2

# Batch entry field carrying the recipient token; the rest forms the payload
RECIPIENT_FIELD = "token"


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for push-dispatch.

    Returns:
        Parsed arguments namespace

    CLI Arguments:
        --config, -c: Path to main configuration file
        --batch, -b: Path to YAML or JSON batch file
        --dry-run: Enable dry-run mode (log messages without sending)
        --log-level: Override log level from config
        --no-syslog: Disable syslog integration
        --timeout: Stop starting new sends after this many seconds
    """
    parser = argparse.ArgumentParser(
        prog="push-dispatch",
        description="Send a batch of push notifications and report one outcome per message",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Batch file format (YAML or JSON):
  - token: <device registration token>
    title: Hello
    body: World
    data: {order_id: "42"}

Examples:
  push-dispatch --batch messages.yaml
  push-dispatch --config /path/to/config.yaml --batch messages.json --timeout 30
  push-dispatch --batch messages.yaml --dry-run --log-level DEBUG

Exit codes: 0 all delivered, 1 configuration or runtime error, 2 some messages not delivered
        """,
    )

    _ = parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to main configuration file (default: {DEFAULT_CONFIG_PATH})",
        metavar="PATH",
    )

    _ = parser.add_argument(
        "--batch",
        "-b",
        type=Path,
        required=True,
        help="Path to the YAML or JSON batch file",
        metavar="PATH",
    )

    _ = parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Dry-run mode: log messages without sending (overrides config)",
    )

    _ = parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from configuration",
        metavar="LEVEL",
    )

    _ = parser.add_argument(
        "--no-syslog",
        action="store_true",
        help="Disable syslog integration (useful for development)",
    )

    _ = parser.add_argument(
        "--timeout",
        type=float,
        help="Batch timeout in seconds (overrides config)",
        metavar="SECONDS",
    )

    return parser.parse_args(argv)


def load_batch(batch_path: Path) -> list[BatchItem]:
    """Load (recipient, payload) pairs from a YAML or JSON batch file.

    Each entry is a mapping; its ``token`` field is the recipient and the
    remaining fields form the payload. Entry-level problems (missing token,
    unknown payload fields) are reported per entry by the dispatcher.

    Raises:
        ConfigurationError: If the file cannot be read or is not a list of mappings
    """
    raw_data = load_yaml_document(batch_path, description="batch")

    if not isinstance(raw_data, list):
        msg = (
            f"Invalid batch file format: {batch_path}\n"
            f"Expected a list of messages at root level, got: {type(raw_data).__name__}"
        )
        raise ConfigurationError(msg)

    items: list[BatchItem] = []
    for index, entry in enumerate(raw_data):  # pyright: ignore[reportUnknownVariableType, reportUnknownArgumentType]  # YAML boundary
        if not isinstance(entry, dict):
            msg = f"Batch entry {index} in {batch_path} must be a mapping, got: {type(entry).__name__}"  # pyright: ignore[reportUnknownArgumentType]
            raise ConfigurationError(msg)
        payload: dict[str, object] = {str(key): value for key, value in entry.items()}  # pyright: ignore[reportUnknownVariableType, reportUnknownArgumentType]
        recipient = payload.pop(RECIPIENT_FIELD, None)
        items.append((recipient, payload))
    return items


async def async_main(
    *,
    config_path: Path,
    batch_path: Path,
    dry_run: bool = False,
    log_level: str | None = None,
    enable_syslog: bool = True,
    timeout: float | None = None,
) -> BatchResult:
    """Async main function: load config and batch, dispatch, return the result.

    Raises:
        ConfigurationError: If configuration or batch file is invalid
        EnvironmentVariableError: If a required environment variable is missing
        CredentialUnavailableError: If no credential is available before sending
        BatchInputError: If the batch is empty
    """
    logger = logging.getLogger(__name__)
    logger.info("Loading configuration", extra={"config_path": str(config_path)})

    config = load_main_config(config_path)

    # Apply CLI overrides to configuration
    if dry_run:
        config.application.dry_run = True
        logger.info("Dry-run mode enabled via CLI override")

    if log_level is not None:
        config.application.log_level = log_level
        logger.info("Log level overridden via CLI", extra={"log_level": log_level})

    configure_logging(
        log_level=config.application.log_level,
        enable_syslog=enable_syslog and config.application.syslog_enabled,
        enable_console=True,
    )

    logger = logging.getLogger(__name__)
    batch = load_batch(batch_path)
    logger.info("Loaded batch", extra={"batch_path": str(batch_path), "batch_size": len(batch)})

    cancel = asyncio.Event()

    def request_cancel() -> None:
        """Stop starting new sends; in-flight sends complete."""
        if not cancel.is_set():
            logger.info("Shutdown signal received, cancelling remaining sends")
            cancel.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_cancel)

    try:
        async with PushService(config) as service:
            return await service.dispatch(batch, cancel=cancel, timeout=timeout)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            _ = loop.remove_signal_handler(sig)
        logger.info("Push-dispatch run complete")


def write_result(result: BatchResult) -> None:
    """Print one JSON line per outcome to stdout."""
    for entry in result.to_dicts():
        print(json.dumps({"batch_id": result.batch_id, **entry}, sort_keys=True))


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for push-dispatch.

    Exit Codes:
        0: Every message delivered
        1: Configuration error or runtime error
        2: At least one message not delivered
    """
    args = parse_arguments(argv)

    # Extract args with type annotations to avoid reportAny at argparse boundary
    config_path_arg: Path = args.config  # pyright: ignore[reportAny]  # argparse boundary
    batch_path_arg: Path = args.batch  # pyright: ignore[reportAny]  # argparse boundary
    dry_run_arg: bool = args.dry_run  # pyright: ignore[reportAny]  # argparse boundary
    log_level_arg: str | None = args.log_level  # pyright: ignore[reportAny]  # argparse boundary
    no_syslog_arg: bool = args.no_syslog  # pyright: ignore[reportAny]  # argparse boundary
    timeout_arg: float | None = args.timeout  # pyright: ignore[reportAny]  # argparse boundary

    try:
        result = asyncio.run(
            async_main(
                config_path=config_path_arg,
                batch_path=batch_path_arg,
                dry_run=dry_run_arg,
                log_level=log_level_arg,
                enable_syslog=not no_syslog_arg,
                timeout=timeout_arg,
            )
        )

    except ConfigurationError as exc:
        print(f"Configuration error:\n{exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    except EnvironmentVariableError as exc:
        print(f"Environment variable error:\n{exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    except BatchInputError as exc:
        print(f"Batch error: {exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    except CredentialUnavailableError as exc:
        print(f"Credential error: {exc}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)

    except RuntimeError as exc:
        print(f"Runtime error: {exc}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)

    except Exception as exc:
        print(f"Unexpected error: {exc}", file=sys.stderr)
        logging.exception("Unexpected error during application execution")
        sys.exit(EXIT_RUNTIME_ERROR)

    write_result(result)
    sys.exit(EXIT_SUCCESS if result.all_delivered else EXIT_UNDELIVERED)


if __name__ == "__main__":
    main()
