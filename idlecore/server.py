"""In-process save server and the client that talks to it.

:class:`SaveServer` keeps one save per user and runs on its own clock. On
sync it recomputes offline progress from the client's ``last_played_at``
itself rather than trusting the client, and refuses to overwrite a copy
that is newer than what the client sent.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any

from idlecore._types import Clock, wall_clock_ms
from idlecore.definition import GameDefinition, TimingConfig
from idlecore.offline import MIN_OFFLINE_MS, apply_offline_progress, calculate_offline_progress
from idlecore.remote import RemoteSave, RemoteSaveClient, RemoteSaveError, SyncResult
from idlecore.save import SaveSnapshot, compute_checksum
from idlecore.state import GameState

logger = logging.getLogger(__name__)


class SaveServer:
    def __init__(
        self,
        definition: GameDefinition,
        clock: Clock = wall_clock_ms,
        timing: TimingConfig | None = None,
    ) -> None:
        self.definition = definition
        self.clock = clock
        self.timing = timing if timing is not None else definition.config.timing
        self.saves: dict[str, RemoteSave] = {}

    def save_game(
        self, user_id: str, version: str, data: dict[str, Any], checksum: str
    ) -> RemoteSave:
        _check(data, checksum)
        return self._store(user_id, version, data, checksum)

    def load_game(self, user_id: str) -> RemoteSave | None:
        return self.saves.get(user_id)

    def sync_game(
        self, user_id: str, local: SaveSnapshot, last_synced_at: float | None = None
    ) -> SyncResult:
        _check(local.data, local.checksum)
        now = self.clock()
        existing = self.saves.get(user_id)
        conflict = existing is not None and existing.updated_at > local.timestamp

        data = local.data
        progress = None
        last_played_at = float(data.get("last_played_at") or 0.0)
        if last_played_at and now - last_played_at > MIN_OFFLINE_MS:
            progress = calculate_offline_progress(
                self.definition, data, last_played_at, now, self.timing
            )
            if progress is not None:
                state = GameState.from_dict(data)
                apply_offline_progress(state, progress, now)
                data = state.to_dict()

        checksum = compute_checksum(data)
        if conflict:
            logger.info(
                "Sync conflict for %s: server %.0f newer than client %.0f",
                user_id,
                existing.updated_at,
                local.timestamp,
            )
            echoed = RemoteSave(
                id=existing.id,
                user_id=user_id,
                version=local.version,
                data=data,
                checksum=checksum,
                created_at=existing.created_at,
                updated_at=now,
            )
            return SyncResult(echoed, progress, conflict=True, server_save=existing)

        saved = self._store(user_id, local.version, data, checksum)
        return SyncResult(saved, progress)

    def _store(
        self, user_id: str, version: str, data: dict[str, Any], checksum: str
    ) -> RemoteSave:
        now = self.clock()
        existing = self.saves.get(user_id)
        save = RemoteSave(
            id=existing.id if existing is not None else uuid.uuid4().hex,
            user_id=user_id,
            version=version,
            data=copy.deepcopy(data),
            checksum=checksum,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
        )
        self.saves[user_id] = save
        return save


def _check(data: dict[str, Any], checksum: str) -> None:
    if not isinstance(data, dict) or not checksum:
        raise RemoteSaveError("Missing required fields: data, checksum")
    if compute_checksum(data) != checksum:
        raise RemoteSaveError("Checksum does not match save data")


class LocalRemoteClient(RemoteSaveClient):
    """:class:`RemoteSaveClient` backed by a :class:`SaveServer` in this process.

    Set ``online`` to ``False`` to make every call fail like a dropped
    connection.
    """

    def __init__(self, server: SaveServer, user_id: str) -> None:
        self.server = server
        self.user_id = user_id
        self.online = True

    def _require_online(self) -> None:
        if not self.online:
            raise RemoteSaveError("Remote save store unreachable")

    async def save_game(self, version: str, data: dict[str, Any], checksum: str) -> RemoteSave:
        self._require_online()
        return self.server.save_game(self.user_id, version, data, checksum)

    async def load_game(self) -> RemoteSave | None:
        self._require_online()
        return self.server.load_game(self.user_id)

    async def sync_game(
        self, local: SaveSnapshot, last_synced_at: float | None
    ) -> SyncResult:
        self._require_online()
        return self.server.sync_game(self.user_id, local, last_synced_at)
