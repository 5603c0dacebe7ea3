"""Record source backed by a JSON export of device telemetry.

The file holds a list of records in the shape accepted by
``DeviceDataAsset.from_dict``::

    [
      {
        "timestamp": "2024-03-01T12:00:00Z",
        "key_version": "v1",
        "device_data": {
          "hospital": {"plain": "Erasmus MC"},
          "usage_hours": {"encrypted": "8412..."}
        }
      }
    ]
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from medquery.domains.devicedata.models import DeviceDataAsset

logger = logging.getLogger(__name__)


class JsonFileDeviceDataSource:
    """Loads records from a JSON file on every call, so edits are picked up."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    async def get_assets(self) -> list[DeviceDataAsset]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("Device data file %s not found; no records available", self._path)
            return []
        if not isinstance(raw, list):
            raise ValueError(f"Device data file {self._path} must contain a JSON list")
        assets = [DeviceDataAsset.from_dict(entry) for entry in raw]
        logger.debug("Loaded %d records from %s", len(assets), self._path)
        return assets

    @property
    def data_source(self) -> str:
        return "json_file"
