from __future__ import annotations

from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx

from ..models.config_models import RemoteConfig

"""Thin HTTP client for the remote catalog service (JSON over HTTP, bearer token).

Endpoints:
- GET   /server/info                     liveness
- GET   /users/me                        identity
- GET   /items/<collection>?limit=1      collection access
- PATCH /items/<collection>/<id>         partial update

Responses are returned as-is; status interpretation belongs to the
connectivity checker and the sync engine. httpx.HTTPError propagates.
"""

__all__ = [
    "CatalogClient",
    "response_json",
    "response_error_message",
]


class CatalogClient:
    def __init__(self, config: RemoteConfig, transport: httpx.BaseTransport | None = None) -> None:
        self.config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            headers={
                "Authorization": f"Bearer {config.token}",
                "Content-Type": "application/json",
            },
            timeout=config.timeout_seconds,
            transport=transport,
        )

    def server_info(self) -> httpx.Response:
        return self._client.get("/server/info")

    def current_user(self) -> httpx.Response:
        return self._client.get("/users/me")

    def list_items(self, collection: str | None = None, limit: int = 1) -> httpx.Response:
        return self._client.get(f"/items/{collection or self.config.collection}", params={"limit": limit})

    def patch_item(
        self, item_id: str, payload: dict[str, Any], collection: str | None = None
    ) -> httpx.Response:
        return self._client.patch(
            f"/items/{collection or self.config.collection}/{quote(item_id, safe='')}", json=payload
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> CatalogClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


def response_json(response: httpx.Response) -> Any:
    """Decoded body, or None when the body is empty or not JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def response_error_message(response: httpx.Response) -> str:
    """Best-effort error text from an error response body."""
    body = response_json(response)
    if isinstance(body, dict):
        if isinstance(body.get("message"), str) and body["message"]:
            return body["message"]
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            msg = errors[0].get("message")
            if isinstance(msg, str) and msg:
                return msg
    return f"HTTP error! status: {response.status_code}"
