"""CLI entry point for DirStore."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from dirstore.config import DirStoreConfig, load_config
from dirstore.logging_config import configure_logging
from dirstore.server import create_app

DEFAULT_CONFIG_PATH = Path("dirstore.yaml")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="dirstore",
        description="DirStore - S3-compatible object storage on a local directory",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to YAML configuration file (default: {DEFAULT_CONFIG_PATH}, if present)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (overrides config)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (overrides config)",
    )
    parser.add_argument(
        "--socket",
        type=str,
        default=None,
        help="Unix domain socket path to listen on instead of host/port",
    )
    parser.add_argument(
        "--root",
        type=str,
        default=None,
        help="Directory holding the buckets (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=int,
        default=None,
        help="Graceful shutdown timeout in seconds (default: 30)",
    )
    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace) -> DirStoreConfig:
    """Load the configuration file and apply CLI overrides.

    A missing file at the default location means built-in defaults; a
    missing file that was named explicitly raises FileNotFoundError.
    """
    if args.config is not None:
        config = load_config(args.config)
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config(DEFAULT_CONFIG_PATH)
    else:
        config = DirStoreConfig()

    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.socket is not None:
        config.server.socket = args.socket
    if args.root is not None:
        config.storage.root_dir = args.root
    if args.log_level is not None:
        config.server.log_level = args.log_level
    if args.log_format is not None:
        config.server.log_format = args.log_format
    if args.shutdown_timeout is not None:
        config.server.shutdown_timeout = args.shutdown_timeout
    return config


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the DirStore CLI.

    Loads configuration, applies CLI overrides, and starts the server
    using uvicorn on TCP or, when configured, a unix domain socket.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("dirstore")

    try:
        config = resolve_config(args)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    configure_logging(
        level=config.server.log_level,
        fmt=config.server.log_format,
    )

    app = create_app(config)

    # The request middleware already logs one line per request.
    run_kwargs = {
        "log_level": config.server.log_level.lower(),
        "timeout_graceful_shutdown": config.server.shutdown_timeout,
        "timeout_keep_alive": 5,
        "access_log": False,
    }

    if config.server.socket:
        logger.info(
            "Starting DirStore on unix:%s (root=%s)",
            config.server.socket,
            config.storage.root_dir,
        )
        uvicorn.run(app, uds=config.server.socket, **run_kwargs)
    else:
        logger.info(
            "Starting DirStore on %s:%d (root=%s)",
            config.server.host,
            config.server.port,
            config.storage.root_dir,
        )
        uvicorn.run(app, host=config.server.host, port=config.server.port, **run_kwargs)


if __name__ == "__main__":
    main()
