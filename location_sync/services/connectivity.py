from __future__ import annotations

import logging

import httpx

from ..models.config_models import RemoteConfig
from ..models.connection_health import ConnectionHealth, ConnectivityFailureKind
from ..remote.client import CatalogClient, response_json

"""Connectivity checker for the remote catalog.

Three sequential read-only probes, short-circuiting on the first failure:
1. GET /server/info            -> server_reachable
2. GET /users/me               -> authorized
3. GET /items/<coll>?limit=1   -> target_collection_accessible (403 = permission)

Transport errors (timeout, DNS, connection refused) are reported as
server_reachable=False, never raised.
"""

__all__ = [
    "ConnectivityFailure",
    "ConnectivityChecker",
]

logger = logging.getLogger(__name__)


class ConnectivityFailure(Exception):
    """The remote catalog is not ready; fatal to starting a batch."""

    def __init__(self, health: ConnectionHealth) -> None:
        super().__init__(health.diagnostic or "remote catalog not ready")
        self.health = health

    @property
    def kind(self) -> ConnectivityFailureKind | None:
        return self.health.failure_kind


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


class ConnectivityChecker:
    """Probe reachability, authorization and collection access."""

    def __init__(self, config: RemoteConfig, client: CatalogClient | None = None) -> None:
        self.config = config
        self._client = client or CatalogClient(config)

    def check(self) -> tuple[bool, ConnectionHealth]:
        health = self._probe()
        if health.ready:
            logger.info("remote catalog ready: %s collection=%s", self.config.base_url, self.config.collection)
        else:
            logger.error("remote catalog not ready: %s", health.diagnostic)
        return health.ready, health

    def require_ready(self, health: ConnectionHealth | None = None) -> ConnectionHealth:
        """Raise ConnectivityFailure unless the catalog is ready.

        Probes via check() unless an already taken ``health`` snapshot is given.
        """
        if health is None:
            _, health = self.check()
        if not health.ready:
            raise ConnectivityFailure(health)
        return health

    def _probe(self) -> ConnectionHealth:
        collection = self.config.collection
        try:
            server = self._client.server_info()
            if not _is_success(server):
                return ConnectionHealth(
                    server_reachable=False,
                    authorized=False,
                    target_collection_accessible=False,
                    diagnostic=f"Server connection failed: {server.status_code}",
                    failure_kind=ConnectivityFailureKind.REACHABILITY,
                    status_code=server.status_code,
                )
            server_info = response_json(server)

            me = self._client.current_user()
            if not _is_success(me):
                return ConnectionHealth(
                    server_reachable=True,
                    authorized=False,
                    target_collection_accessible=False,
                    diagnostic=f"Authentication failed: {me.status_code}",
                    failure_kind=ConnectivityFailureKind.AUTH,
                    status_code=me.status_code,
                    server_info=server_info,
                )
            user_info = response_json(me)

            items = self._client.list_items(collection, limit=1)
            if not _is_success(items):
                if items.status_code == 403:
                    kind = ConnectivityFailureKind.PERMISSION
                    diagnostic = (
                        f"Permission denied: user does not have access to the {collection} collection (403)"
                    )
                else:
                    kind = ConnectivityFailureKind.COLLECTION
                    diagnostic = f"{collection} collection access failed: {items.status_code}"
                return ConnectionHealth(
                    server_reachable=True,
                    authorized=True,
                    target_collection_accessible=False,
                    diagnostic=diagnostic,
                    failure_kind=kind,
                    status_code=items.status_code,
                    server_info=server_info,
                    user_info=user_info,
                )
        except httpx.HTTPError as e:
            return ConnectionHealth(
                server_reachable=False,
                authorized=False,
                target_collection_accessible=False,
                diagnostic=f"Failed to connect to remote catalog: {e}",
                failure_kind=ConnectivityFailureKind.REACHABILITY,
            )

        return ConnectionHealth(
            server_reachable=True,
            authorized=True,
            target_collection_accessible=True,
            server_info=server_info,
            user_info=user_info,
        )
