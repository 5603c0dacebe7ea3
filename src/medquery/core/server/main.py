"""MedQuery server entry point: ``python -m medquery.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from medquery.core.config.settings import get_settings
from medquery.core.query.service import QueryService, create_query_service
from medquery.core.server.app import create_app, load_platform_config

logger = logging.getLogger(__name__)


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def describe_privacy(query_service: QueryService) -> str:
    """One-line summary of the scheme and noise a server will answer with."""
    service = query_service.encryption_service
    scheme = type(service).__name__ if service is not None else "plaintext only"
    if service is not None and not service.is_homomorphic():
        scheme += " (per-record decryption)"
    noise = query_service.noise
    dp = f"laplace epsilon={noise.epsilon:g}" if noise is not None else "off"
    return f"encryption: {scheme}; differential privacy: {dp}"


def run() -> None:
    """Start the MedQuery MCP server with Streamable HTTP transport.

    The platform config and query service are built before binding so a bad
    scheme or epsilon fails at startup.
    """
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.medquery_log_level.upper(), logging.INFO))

    if not settings.medquery_allow_insecure_bind and not _is_loopback_host(settings.medquery_host):
        raise RuntimeError(
            "Refusing to bind MedQuery server to a non-loopback host without an auth layer. "
            "Set MEDQUERY_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )

    platform_config = load_platform_config(settings)
    query_service = create_query_service(platform_config, settings)
    logger.info(
        "Starting MedQuery server on %s:%d (%s)",
        settings.medquery_host,
        settings.medquery_port,
        describe_privacy(query_service),
    )

    mcp = create_app(
        settings_override=settings,
        platform_config_override=platform_config,
        query_service_override=query_service,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.medquery_host,
        port=settings.medquery_port,
    )


if __name__ == "__main__":
    run()
