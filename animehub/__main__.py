"""Run the AnimeHub server with ``python -m animehub`` or the ``animehub`` script."""

from __future__ import annotations

import logging

import uvicorn

from app.config import get_settings

logger = logging.getLogger("animehub")


def main() -> None:
    """Validate the configuration, then serve the app factory with uvicorn."""

    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    development = settings.environment == "development"
    logger.info(
        "Starting %s on %s:%s (%s)",
        settings.site_name,
        settings.server_host,
        settings.server_port,
        settings.environment,
    )
    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
        reload=development,
        proxy_headers=not development,
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
