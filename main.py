"""
LocalDirectory - Main Entry Point

Runs the import and sync API with the background review sync scheduler.
"""

import structlog
import uvicorn

from localdirectory.config import get_settings
from localdirectory.core.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def main():
    """Main entry point for running the application."""
    settings = get_settings()
    configure_logging(settings.log_level, json_output=not settings.is_development)

    logger.info(
        "starting_server",
        host=settings.api_host,
        port=settings.api_port,
        environment=settings.app_env,
    )

    uvicorn.run(
        "localdirectory.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
