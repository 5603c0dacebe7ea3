"""Device data sources: abstraction over where telemetry records come from."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from medquery.domains.devicedata.models import DeviceDataAsset


@runtime_checkable
class DeviceDataSource(Protocol):
    """Read-only supplier of the records a query runs over.

    Tools call these methods without knowing whether records come from the
    ledger, a JSON export or an in-memory fixture.
    """

    async def get_assets(self) -> list[DeviceDataAsset]:
        """All records currently visible to queries."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the active data source: 'memory' or 'json_file'."""
        ...
