"""Server entry point: ``python -m marutham.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

import uvicorn

from marutham.core.config.settings import get_settings
from marutham.core.server.app import create_http_app


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Serve the dashboard routes and the Streamable HTTP MCP endpoint."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.marutham_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger = logging.getLogger(__name__)
    if not settings.marutham_allow_insecure_bind and not _is_loopback_host(settings.marutham_host):
        raise RuntimeError(
            "Refusing to bind the dashboard server to a non-loopback host. "
            "Set MARUTHAM_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting Marutham Care server on %s:%d",
        settings.marutham_host,
        settings.marutham_port,
    )

    uvicorn.run(
        create_http_app(settings=settings),
        host=settings.marutham_host,
        port=settings.marutham_port,
        log_level=settings.marutham_log_level.lower(),
    )


if __name__ == "__main__":
    run()
