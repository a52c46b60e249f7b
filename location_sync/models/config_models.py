from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

"""Config dataclasses for the CSV -> remote catalog sync tool.

These are the typed configuration values passed explicitly into the
connectivity checker and batch sync engine constructors (no module-level
constants), so that tests can swap base URL / token / collection freely.
The YAML + env loader lives in location_sync/config/loader.py.
"""

__all__ = [
    "RemoteConfig",
    "ColumnMapping",
    "PayloadFields",
    "SyncSettings",
    "SyncConfig",
]


@dataclass(frozen=True)
class RemoteConfig:
    """Remote catalog connection settings.

    Environment variables (CATALOG_BASE_URL / CATALOG_TOKEN / CATALOG_COLLECTION)
    take precedence over the YAML values.
    """
    base_url: str
    token: str
    collection: str = "Shops"
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class ColumnMapping:
    """CSV header names for each logical field."""
    id: str = "id"
    display_name: str = "shop_name"
    grouping: str = "shop_malls"
    geometry_type: str = "shop_location.type"
    coordinates: str = "shop_location.coordinates"
    address: str = "shop_location"  # 任意列 (無くてもよい)

    @property
    def required_headers(self) -> set[str]:
        """Headers that must be present in the CSV header row."""
        return {self.id, self.display_name, self.grouping, self.geometry_type, self.coordinates}


@dataclass(frozen=True)
class PayloadFields:
    """Remote field names written by the PATCH payload."""
    refreshed_flag: str = "location_updated"
    display_name: str = "shop_name"
    geometry: str = "shop_location"
    address: str = "shop_address"


@dataclass(frozen=True)
class SyncSettings:
    throttle_seconds: float = 0.1  # 連続送信間の固定待機


@dataclass(frozen=True)
class SyncConfig:
    """Root configuration object for one import run."""
    remote: RemoteConfig
    sync: SyncSettings = field(default_factory=SyncSettings)
    columns: ColumnMapping = field(default_factory=ColumnMapping)
    payload: PayloadFields = field(default_factory=PayloadFields)
    logs_dir: Path = Path("./logs")
