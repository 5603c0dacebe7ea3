"""In-memory record source."""

from __future__ import annotations

from typing import Iterable

from medquery.domains.devicedata.models import DeviceDataAsset


class InMemoryDeviceDataSource:
    """Holds a fixed list of records; used when no record file is configured."""

    def __init__(self, assets: Iterable[DeviceDataAsset] = ()) -> None:
        self._assets = list(assets)

    async def get_assets(self) -> list[DeviceDataAsset]:
        return list(self._assets)

    def add(self, asset: DeviceDataAsset) -> None:
        self._assets.append(asset)

    @property
    def data_source(self) -> str:
        return "memory"
