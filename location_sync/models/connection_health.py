from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

"""ConnectionHealth snapshot returned by the connectivity checker.

Recomputed on every check and never persisted.
"""

__all__ = [
    "ConnectivityFailureKind",
    "ConnectionHealth",
]


class ConnectivityFailureKind(Enum):
    REACHABILITY = "reachability"
    AUTH = "auth"
    PERMISSION = "permission"
    COLLECTION = "collection"  # 403 以外のコレクション取得失敗


@dataclass(frozen=True)
class ConnectionHealth:
    server_reachable: bool
    authorized: bool
    target_collection_accessible: bool
    diagnostic: str | None = None
    failure_kind: ConnectivityFailureKind | None = None
    status_code: int | None = None  # 失敗したプローブの HTTP ステータス
    server_info: Any = None
    user_info: Any = None

    @property
    def ready(self) -> bool:
        return self.server_reachable and self.authorized and self.target_collection_accessible
