"""Main entry point for the switchyard server."""

import asyncio
import logging
import sys

from switchyard.core.application import build_application
from switchyard.core.config import load_config
from switchyard.core.logging import initialize_logging
from switchyard.core.server import HTTPServer


async def main() -> None:
    """Main entry point."""
    logger = logging.getLogger("switchyard.main")
    try:
        # Load configuration
        config = load_config()

        # Setup logging
        structured_logger = initialize_logging(config.logging)
        logger.info(f"Starting switchyard in {config.environment} environment")

        app = build_application(config, structured_logger)
        server = HTTPServer(app, config)
        await server.start()

        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Shutdown signal received")
        finally:
            await server.stop()

    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
