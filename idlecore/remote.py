"""Client-side contract for a remote save store keyed by user id."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from idlecore.offline import OfflineProgress
    from idlecore.save import SaveSnapshot


class RemoteSaveError(Exception):
    """A remote call failed. Never retried automatically."""


@dataclass
class RemoteSave:
    id: str
    user_id: str
    version: str
    data: dict[str, Any]
    checksum: str
    created_at: float
    updated_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "version": self.version,
            "data": self.data,
            "checksum": self.checksum,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class SyncResult:
    """Server answer to a sync request.

    With ``conflict`` set the server kept its own copy, returned as
    ``server_save``, and ``save`` echoes what the client sent.
    """

    save: RemoteSave
    offline_progress: OfflineProgress | None = None
    conflict: bool = False
    server_save: RemoteSave | None = None


class RemoteSaveClient(ABC):
    @abstractmethod
    async def save_game(self, version: str, data: dict[str, Any], checksum: str) -> RemoteSave:
        """Overwrite the remote save unconditionally."""

    @abstractmethod
    async def load_game(self) -> RemoteSave | None:
        ...

    @abstractmethod
    async def sync_game(
        self, local: SaveSnapshot, last_synced_at: float | None
    ) -> SyncResult:
        """Push *local*; the server may add offline progress or report a conflict."""
