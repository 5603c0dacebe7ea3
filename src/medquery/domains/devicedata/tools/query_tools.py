"""MCP tools for running aggregate queries over device telemetry."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from medquery.core.errors import (
    ConfigurationError,
    CryptoBackendError,
    QueryValidationError,
    UnsupportedOperationError,
)
from medquery.core.query.filters import FilterService
from medquery.core.query.models import Query, QueryType, result_to_dict

if TYPE_CHECKING:
    from medquery.core.query.service import QueryService
    from medquery.domains.devicedata.connectors import DeviceDataSource

logger = logging.getLogger(__name__)


def register_query_tools(
    mcp: FastMCP,
    query_service: QueryService,
    data_source: DeviceDataSource,
) -> None:
    """Register query tools on the MCP server."""
    filter_service = FilterService(query_service.encryption_service)

    @mcp.tool
    async def list_query_fields(ctx: Context) -> str:
        """List the fields each query type may target."""
        config = query_service.platform_config
        return json.dumps({
            query_type.value: config.allowed_fields(query_type) for query_type in QueryType
        })

    @mcp.tool
    async def run_query(
        ctx: Context,
        query_type: str,
        target_field: str,
        filters: list[dict[str, Any]] | None = None,
        bin_size: int = 0,
    ) -> str:
        """Run an aggregate query over the device telemetry records.

        Args:
            query_type: One of COUNT, SUM, AVERAGE, GROUPED_COUNT, UNIQUE_COUNT,
                HISTOGRAM, STD, LINEAR_REGRESSION.
            target_field: Field to aggregate (the dependent variable for
                LINEAR_REGRESSION).
            filters: Optional list of ``{"field", "type", "operator", "value"}``
                objects; ``type`` is string, integer, timestamp, bool or enum.
            bin_size: Histogram bin width (days for timestamp fields).
        """
        start_time = time.monotonic()
        try:
            query = Query.from_dict({
                "query_type": query_type,
                "target_field": target_field,
                "filters": filters or [],
                "bin_size": bin_size,
            })
        except (TypeError, ValueError) as exc:
            return json.dumps(QueryValidationError(str(exc)).as_dict())

        rejection = query_service.validate_query(query)
        if rejection is not None:
            return json.dumps(rejection.as_dict())

        try:
            assets = await data_source.get_assets()
            selected = filter_service.apply_filters(assets, query.filters)
            result = query_service.run(query, selected)
        except ConfigurationError as exc:
            logger.error("Query failed on configuration: %s", exc)
            return json.dumps({"status": "error", "error": "configuration_error", "details": str(exc)})
        except UnsupportedOperationError as exc:
            return json.dumps({"status": "error", "error": "unsupported_operation", "details": str(exc)})
        except CryptoBackendError as exc:
            logger.error("Encryption backend failure: %s", exc)
            return json.dumps({
                "status": "error",
                "error": "backend_error",
                "details": str(exc),
                "field": exc.field,
                "version": exc.version,
                "retryable": exc.retryable,
            })

        elapsed_ms = (time.monotonic() - start_time) * 1000
        return json.dumps({
            "status": "ok",
            "query_type": query.query_type.value,
            "target_field": query.target_field,
            "data_source": data_source.data_source,
            "result": result_to_dict(result),
            "duration_ms": round(elapsed_ms, 1),
        })
