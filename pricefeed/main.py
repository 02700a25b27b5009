"""
Main application entry point.
Configures logging and serves the price feed gateway.
"""
import logging
import sys

import uvicorn

from pricefeed.api.routes import create_app
from pricefeed.config.settings import settings

# Configure logging for stdout/stderr collectors
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True,
)

logger = logging.getLogger(__name__)


def main():
    """Run the application."""
    logger.info(
        "Configuration loaded",
        extra={
            "host": settings.host,
            "port": settings.port,
            "log_level": settings.log_level,
            "candle_interval": settings.candle_interval,
            "default_poll_interval_ms": settings.default_poll_interval_ms,
            "ws_reconnect_max_attempts": settings.ws_reconnect_max_attempts,
        },
    )

    uvicorn.run(
        create_app(),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        lifespan="on",
        access_log=True,
    )


if __name__ == "__main__":
    main()
