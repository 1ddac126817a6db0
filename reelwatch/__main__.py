"""Module executed when running ``python -m reelwatch``."""

from __future__ import annotations

import logging

import uvicorn

from app.config import settings

logger = logging.getLogger("reelwatch")


def main() -> None:
    """Serve the backend with uvicorn using the configured host and port."""

    if not settings.jwt_secret:
        logger.warning("JWT_SECRET is empty; accounts and watchlists are disabled")
    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
        log_level="info" if settings.environment == "development" else "warning",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
