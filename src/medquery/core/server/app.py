"""MedQuery MCP server application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from medquery.core.config.platform import PlatformConfig
from medquery.core.config.settings import Settings, get_settings
from medquery.core.query.service import QueryService, create_query_service
from medquery.domains.devicedata.connectors import DeviceDataSource
from medquery.domains.devicedata.connectors.json_file import JsonFileDeviceDataSource
from medquery.domains.devicedata.connectors.memory import InMemoryDeviceDataSource
from medquery.domains.devicedata.tools.query_tools import register_query_tools

logger = logging.getLogger(__name__)


def load_platform_config(settings: Settings) -> PlatformConfig:
    """Platform config from PLATFORM_CONFIG_PATH, or the built-in defaults."""
    if settings.platform_config_path:
        return PlatformConfig.from_yaml(settings.platform_config_path)
    logger.info("No PLATFORM_CONFIG_PATH configured; using built-in platform defaults")
    return PlatformConfig.defaults()


def create_app(
    *,
    settings_override: Settings | None = None,
    platform_config_override: PlatformConfig | None = None,
    query_service_override: QueryService | None = None,
    data_source_override: DeviceDataSource | None = None,
) -> FastMCP:
    """Create and configure the MedQuery MCP server.

    This is the main application factory. It:
    1. Loads the platform config table (YAML or built-in defaults)
    2. Builds the query service with its encryption scheme and noise
    3. Selects the device data source
    4. Registers all tools

    Raises:
        ConfigurationError: The platform config selects an unknown scheme,
            an unknown noise mechanism or an unparseable epsilon.
    """
    settings = settings_override or get_settings()

    server = FastMCP(
        "MedQuery",
        instructions=(
            "Privacy-preserving analytics over medical-device telemetry. "
            "Runs aggregate queries over plaintext and homomorphically "
            "encrypted records, with optional differential privacy noise."
        ),
    )

    # --- Platform config ---
    if platform_config_override is not None:
        platform_config = platform_config_override
    else:
        platform_config = load_platform_config(settings)

    # --- Query service (validated eagerly) ---
    query_service = query_service_override or create_query_service(platform_config, settings)
    scheme = type(query_service.encryption_service).__name__ if query_service.encryption_service else "none"

    # --- Device data source ---
    if data_source_override is not None:
        data_source = data_source_override
    elif settings.device_data_path:
        data_source = JsonFileDeviceDataSource(settings.device_data_path)
        logger.info("Reading device records from %s", settings.device_data_path)
    else:
        data_source = InMemoryDeviceDataSource()
        logger.info("No DEVICE_DATA_PATH configured; starting with an empty record set")

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "MedQuery",
            "version": "0.1.0",
            "encryption_scheme": scheme,
            "differential_privacy": query_service.noise is not None,
            "data_source": data_source.data_source,
        }

    register_query_tools(server, query_service, data_source)
    logger.info("Query tools registered (scheme: %s)", scheme)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
