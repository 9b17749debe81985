#!/usr/bin/env python3
"""Entry point for the Validator Ejector service.

This module parses startup arguments, configures logging, loads the
configuration from the environment and runs the ejector until it is
stopped.
"""

import argparse
import asyncio
import logging
import signal
import sys

from .app import Ejector
from .config import EjectorConfig
from .errors import EjectorError
from .logging_setup import setup_logging

# Get logger for this module
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Validator Ejector - Dispatch validator exits for on-chain exit requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  EXECUTION_NODE                 - Execution layer JSON-RPC endpoint
  CONSENSUS_NODE                 - Consensus layer Beacon API endpoint
  LOCATOR_ADDRESS                - Locator contract address
  MESSAGES_LOCATION              - Directory with pre-signed exit messages
  VALIDATOR_WEBHOOK_NODE         - Webhook node URL (enables webhook mode)
  BLOCKS_PRELOAD / BLOCKS_LOOP   - Block window sizes (default: 50000 / 900)
  JOB_INTERVAL                   - Milliseconds between passes (default: 384000)
  DRY_RUN                        - Evaluate requests without exiting validators
  LOGGER_LEVEL                   - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: LOGGER_LEVEL, or INFO)"
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Validator Ejector.

    Raises:
        SystemExit: On configuration or startup errors
    """
    args = parse_args(argv)
    setup_logging(args.log_level or "INFO")
    logger.info("Loading configuration from environment...")

    try:
        config: EjectorConfig = EjectorConfig.from_env()
    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - EXECUTION_NODE, CONSENSUS_NODE, LOCATOR_ADDRESS")
        logger.error("  - MESSAGES_LOCATION or VALIDATOR_WEBHOOK_NODE")
        sys.exit(1)

    # Re-apply logging now that the configured level and secrets are known
    setup_logging(args.log_level or config.logger_level, config.secrets)

    ejector = Ejector(config)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, ejector.stop)
    except NotImplementedError:
        pass  # Not available on Windows event loops

    try:
        await ejector.run()

    except EjectorError as e:
        logger.error(f"Startup Error: {e}", exc_info=True)
        sys.exit(1)

    except asyncio.CancelledError:
        logger.info("Received interrupt signal, shutting down gracefully...")

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)

    finally:
        await ejector.shutdown()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Validator Ejector stopped")


if __name__ == "__main__":
    run()
