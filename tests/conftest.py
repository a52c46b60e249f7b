# Shared pytest fixtures
from __future__ import annotations

import json
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from location_sync.logging.init import reset_logging
from location_sync.models.config_models import RemoteConfig, SyncConfig, SyncSettings
from location_sync.remote.client import CatalogClient

BASE_URL = "https://catalog.test"

SAMPLE_CSV = (
    "id,shop_name,shop_malls,shop_location.type,shop_location.coordinates\n"
    'A1,"Store One","[]",Point,"[57.5,-20.1]"\n'
    ',"Store Two","[]",Point,"[57.6,-20.2]"\n'
)


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        for var in ("CATALOG_BASE_URL", "CATALOG_TOKEN", "CATALOG_COLLECTION"):
            monkeypatch.delenv(var, raising=False)
        yield p


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return f"""remote:
  base_url: {BASE_URL}
  token: secret-token
  collection: Shops
  timeout_seconds: 5
sync:
  throttle_seconds: 0
logs_dir: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "sync.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def sample_csv(temp_workdir: Path) -> Path:
    f = temp_workdir / "data" / "shops.csv"
    f.write_text(SAMPLE_CSV, encoding="utf-8")
    return f


@pytest.fixture()
def sync_config(tmp_path: Path) -> SyncConfig:
    return SyncConfig(
        remote=RemoteConfig(base_url=BASE_URL, token="secret-token", collection="Shops"),
        sync=SyncSettings(throttle_seconds=0.1),
        logs_dir=tmp_path / "logs",
    )


class FakeCatalog:
    """httpx.MockTransport handler emulating the remote catalog.

    - probe endpoints answer with ``probe_status`` (per path) or 200
    - PATCH answers from ``patch_responses`` (id -> (status, body)) or echoes the
      payload back as ``{"data": {...}}``
    - ``patch_errors`` maps id -> exception raised by the transport
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.probe_status: dict[str, int] = {}
        self.patch_responses: dict[str, tuple[int, Any]] = {}
        self.patch_errors: dict[str, Exception] = {}
        self.probe_error: Exception | None = None

    @property
    def patches(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "PATCH"]

    def patched_ids(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.patches]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET":
            if self.probe_error is not None:
                raise self.probe_error
            status = self.probe_status.get(path, 200)
            return httpx.Response(status, json={"data": {"path": path}})

        item_id = path.rsplit("/", 1)[-1]
        if item_id in self.patch_errors:
            raise self.patch_errors[item_id]
        if item_id in self.patch_responses:
            status, body = self.patch_responses[item_id]
            if body is None:
                return httpx.Response(status)
            return httpx.Response(status, json=body)
        payload = json.loads(request.content)
        return httpx.Response(200, json={"data": {"id": item_id, **payload}})


@pytest.fixture()
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture()
def make_client() -> Callable[..., CatalogClient]:
    clients: list[CatalogClient] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response], config: RemoteConfig | None = None) -> CatalogClient:
        cfg = config or RemoteConfig(base_url=BASE_URL, token="secret-token", collection="Shops")
        client = CatalogClient(cfg, transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.close()
