"""Main entry point for the TWELITE HTTP bridge."""

import argparse
import logging
import signal
import sys
from pathlib import Path

import serial

from .config import Config, load_config
from .delivery import create_sink
from .pipeline import Pipeline
from .serial_handler import SerialHandler

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Forward TWELITE status notify frames from serial to HTTP"
    )
    parser.add_argument(
        "serial_port",
        nargs="?",
        help="Serial port of the parent device [env: SERIAL_PORT]",
    )
    parser.add_argument(
        "url",
        nargs="?",
        help="Backend URL; dry-run mode when omitted [env: URL]",
    )
    parser.add_argument(
        "--baudrate",
        type=int,
        help="Serial baud rate (default: 115200) [env: BAUDRATE]",
    )
    parser.add_argument(
        "-u",
        "--username",
        help="HTTP basic auth username [env: USERNAME]",
    )
    parser.add_argument(
        "-p",
        "--password",
        help="HTTP basic auth password [env: PASSWORD]",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        help="Optional YAML configuration file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for twelite-bridge command."""
    args = build_parser().parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {
        "serial": {"port": args.serial_port, "baud": args.baudrate},
        "backend": {
            "url": args.url,
            "username": args.username,
            "password": args.password,
        },
    }

    try:
        config = load_config(args.config, overrides=overrides)
    except FileNotFoundError:
        logger.error("Configuration file not found: %s", args.config)
        sys.exit(1)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    run(config)


def run(config: Config) -> None:
    """Run the bridge with loaded configuration."""
    serial_handler = SerialHandler(config.serial)

    try:
        serial_handler.open()
    except serial.SerialException as e:
        logger.error("Failed to open serial port: %s", e)
        sys.exit(1)

    sink = create_sink(config.backend)
    pipeline = Pipeline(sink)

    # Graceful shutdown
    def handle_signal(signum, frame):
        logger.info("Shutdown requested")
        serial_handler.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    logger.info("Bridge running on %s", config.serial.port)

    try:
        pipeline.run(serial_handler.lines())
    finally:
        serial_handler.close()
        sink.close()
        logger.info(
            "Bridge stopped: %d accepted, %d decode errors, %d invalid",
            pipeline.frames_accepted,
            pipeline.decode_errors,
            pipeline.validate_errors,
        )


if __name__ == "__main__":
    main()
