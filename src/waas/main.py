"""Main entry point - validates configuration and serves the API."""

import logging
import sys

import uvicorn

from waas.api.app import create_app
from waas.config import get_settings

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main() -> None:
    """Refuse to start without required configuration, then run uvicorn."""
    settings = get_settings()
    configure_logging(settings.debug)

    missing = settings.missing_required()
    if missing:
        for name in missing:
            logger.error(f"Missing required env var: {name}")
        sys.exit(1)

    logger.info("Starting WaaS API...")
    logger.info(f"Config: {settings.get_safe_dict()}")
    if not settings.aa_configured:
        logger.warning("Bundler/paymaster not configured - AA endpoints disabled")

    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
