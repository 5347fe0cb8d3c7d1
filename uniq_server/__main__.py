"""
Uniq Server Entry Point

Allows running the service directly via `python -m uniq_server`.
Configures logging to stderr, reads the environment and runs the service
until SIGINT/SIGTERM.
"""

import asyncio
import logging
import os
import signal
import sys

from .core.config import ServiceConfig, ConfigError
from .core.uniq_service import UniqService, ServiceStartupError


def setup_logging():
    """Configure logging to stderr"""
    level = os.environ.get("UNIQ_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr
    )


async def main():
    """Main entry point"""
    setup_logging()
    logger = logging.getLogger("main")

    try:
        config = ServiceConfig.from_env()
    except ConfigError as e:
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(1)

    service = UniqService(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_stop)
        except NotImplementedError:
            # Windows: KeyboardInterrupt still ends asyncio.run()
            pass

    try:
        logger.info("Starting UNIQUER...")
        await service.run()
    except ServiceStartupError as e:
        logger.critical(f"Startup failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    logger.info("Bye")


def run():
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    run()
