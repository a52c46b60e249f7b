from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import ColumnMapping, PayloadFields, RemoteConfig, SyncConfig, SyncSettings

"""Config loader.

Responsibilities:
- Load YAML config (default config/sync.yml)
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults (collection=Shops, throttle 0.1s, timeout 10s)
- Environment overrides: CATALOG_BASE_URL / CATALOG_TOKEN / CATALOG_COLLECTION
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/sync.yml")

ENV_BASE_URL = "CATALOG_BASE_URL"
ENV_TOKEN = "CATALOG_TOKEN"
ENV_COLLECTION = "CATALOG_COLLECTION"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates it.
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _build_remote(raw: dict[str, Any]) -> RemoteConfig:
    # 環境変数 > YAML
    base_url = os.getenv(ENV_BASE_URL) or raw.get("base_url")
    token = os.getenv(ENV_TOKEN) or raw.get("token")
    collection = os.getenv(ENV_COLLECTION) or raw.get("collection") or "Shops"
    if not base_url:
        raise ConfigError(f"remote.base_url is not set (config or {ENV_BASE_URL})")
    if not token:
        raise ConfigError(f"remote.token is not set (config or {ENV_TOKEN})")
    return RemoteConfig(
        base_url=base_url.rstrip("/"),
        token=token,
        collection=collection,
        timeout_seconds=float(raw.get("timeout_seconds", 10.0)),
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> SyncConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    remote = _build_remote(data.get("remote") or {})
    sync_raw = data.get("sync") or {}
    return SyncConfig(
        remote=remote,
        sync=SyncSettings(throttle_seconds=float(sync_raw.get("throttle_seconds", 0.1))),
        columns=ColumnMapping(**(data.get("columns") or {})),
        payload=PayloadFields(**(data.get("payload") or {})),
        logs_dir=Path(data.get("logs_dir", "./logs")),
    )
