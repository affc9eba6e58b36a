"""Local persistence with rotating backups, plus cloud sync.

A save is a JSON :class:`SaveSnapshot` whose checksum covers the canonical
JSON of its ``data``. Loading falls back through the backups newest first
when the main slot is missing its checksum or does not parse; when nothing
validates, :meth:`SaveSystem.load` returns ``False`` and the caller starts a
fresh game.
"""

from __future__ import annotations

import base64
import binascii
import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from idlecore import events
from idlecore._types import Clock, wall_clock_ms
from idlecore.definition import SaveConfig
from idlecore.remote import RemoteSave, RemoteSaveClient, RemoteSaveError
from idlecore.state_manager import StateManager

logger = logging.getLogger(__name__)

SCORE_PER_BUILDING = 1000.0
SCORE_PER_UPGRADE = 5000.0


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def compute_checksum(data: Any) -> str:
    """``"<length>:<sum of code points>"`` over the canonical JSON of *data*."""
    text = canonical_json(data)
    return f"{len(text)}:{sum(map(ord, text))}"


@dataclass
class SaveSnapshot:
    version: str
    timestamp: float
    data: dict[str, Any]
    checksum: str

    @classmethod
    def create(cls, version: str, timestamp: float, data: dict[str, Any]) -> SaveSnapshot:
        return cls(version, timestamp, data, compute_checksum(data))

    def is_valid(self) -> bool:
        return self.checksum == compute_checksum(self.data)

    def to_json(self) -> str:
        return json.dumps(
            {
                "version": self.version,
                "timestamp": self.timestamp,
                "data": self.data,
                "checksum": self.checksum,
            }
        )

    @classmethod
    def from_json(cls, text: str) -> SaveSnapshot:
        """Parse a stored snapshot. Raises ``ValueError`` on a malformed one."""
        raw = json.loads(text)
        if not isinstance(raw, dict):
            raise ValueError("Save is not a JSON object")
        version = raw.get("version")
        timestamp = raw.get("timestamp")
        data = raw.get("data")
        checksum = raw.get("checksum")
        if not isinstance(version, str) or not version:
            raise ValueError("Save has no version")
        if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
            raise ValueError("Save has no timestamp")
        if not isinstance(data, dict):
            raise ValueError("Save has no data")
        if not isinstance(checksum, str):
            raise ValueError("Save has no checksum")
        return cls(version, float(timestamp), data, checksum)


# ── Key-value stores ─────────────────────────────────────────────────


class KeyValueStore(ABC):
    """Scoped string storage for the main save and its backups."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class MemoryStore(KeyValueStore):
    def __init__(self) -> None:
        self.items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.items.get(key)

    def set(self, key: str, value: str) -> None:
        self.items[key] = value

    def delete(self, key: str) -> None:
        self.items.pop(key, None)


class FileStore(KeyValueStore):
    """One ``<key>.json`` file per key inside *directory*."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return f.read()

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(value)
        os.replace(tmp, path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


# ── Merge policy ─────────────────────────────────────────────────────


def progress_score(data: Mapping[str, Any]) -> float:
    """Lifetime resources, plus 1000 per owned building and 5000 per upgrade."""
    score = 0.0
    for resource in (data.get("resources") or {}).values():
        score += float(resource.get("lifetime", 0.0) or 0.0)
    for building in (data.get("buildings") or {}).values():
        score += float(building.get("owned", 0) or 0) * SCORE_PER_BUILDING
    for upgrade in (data.get("upgrades") or {}).values():
        if upgrade.get("purchased"):
            score += SCORE_PER_UPGRADE
    return score


def merge_saves(
    local: Mapping[str, Any], cloud: Mapping[str, Any], now: float
) -> dict[str, Any]:
    """Keep the save with more progress and raise its resources to the other's.

    Ties keep *local*. ``current`` and ``lifetime`` are merged per resource by
    maximum, bounded by the winning save's capacity.
    """
    if progress_score(local) >= progress_score(cloud):
        base, other = local, cloud
    else:
        base, other = cloud, local
    merged = copy.deepcopy(dict(base))
    resources = merged.setdefault("resources", {})
    for resource_id, theirs in (other.get("resources") or {}).items():
        ours = resources.get(resource_id)
        if ours is None:
            resources[resource_id] = copy.deepcopy(theirs)
            continue
        current = max(ours.get("current", 0.0) or 0.0, theirs.get("current", 0.0) or 0.0)
        cap = ours.get("max_capacity")
        if cap is not None:
            current = min(current, cap)
        ours["current"] = current
        ours["lifetime"] = max(
            ours.get("lifetime", 0.0) or 0.0, theirs.get("lifetime", 0.0) or 0.0
        )
    merged["last_played_at"] = now
    return merged


def _same_progress(a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
    """Equal apart from the ``last_played_at`` stamp."""
    a = {k: v for k, v in a.items() if k != "last_played_at"}
    b = {k: v for k, v in b.items() if k != "last_played_at"}
    return canonical_json(a) == canonical_json(b)


# ── Save system ──────────────────────────────────────────────────────


class SyncStatus(Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass
class SaveConflict:
    local: SaveSnapshot
    cloud: RemoteSave

    @property
    def local_timestamp(self) -> float:
        return self.local.timestamp

    @property
    def cloud_timestamp(self) -> float:
        return self.cloud.updated_at


RESOLUTIONS = ("local", "cloud", "merge")


class SaveSystem:
    def __init__(
        self,
        state_manager: StateManager,
        store: KeyValueStore | None = None,
        config: SaveConfig | None = None,
        clock: Clock = wall_clock_ms,
        remote: RemoteSaveClient | None = None,
        auto_save_interval_ms: float = 30000.0,
    ) -> None:
        self.state_manager = state_manager
        self.store = store if store is not None else MemoryStore()
        self.config = config if config is not None else SaveConfig()
        self.clock = clock
        self.remote = remote
        self.auto_save_interval_ms = auto_save_interval_ms
        self.bus = state_manager.bus

        self.is_dirty = False
        self.last_save_time = clock()
        self.last_synced_at: float | None = None
        self.sync_status = SyncStatus.IDLE
        self.conflict: SaveConflict | None = None

        self._unsubscribers = [
            self.bus.on(event, self._mark_dirty)
            for event in (
                events.RESOURCE_CHANGED,
                events.BUILDING_PURCHASED,
                events.UPGRADE_PURCHASED,
                events.ERA_UNLOCKED,
            )
        ]

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    @property
    def key(self) -> str:
        return self.config.save_key

    def backup_key(self, index: int) -> str:
        return f"{self.config.save_key}_backup_{index}"

    # ── Local ────────────────────────────────────────────────────────

    def save(self) -> bool:
        now = self.clock()
        try:
            self.state_manager.state.statistics.last_save_time = now
            snapshot = SaveSnapshot.create(
                self.config.version, now, self.state_manager.get_serializable_state()
            )
            self._rotate_backups()
            self.store.set(self.key, snapshot.to_json())
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to save game")
            self.bus.emit(events.GAME_SAVE, {"success": False})
            return False
        self.is_dirty = False
        self.last_save_time = now
        self.bus.emit(events.GAME_SAVE, {"success": True})
        return True

    def load(self) -> bool:
        """Restore the main save, else the newest valid backup."""
        raw = self._read(self.key)
        if raw is None:
            logger.info("No save found under %r, trying backups", self.key)
            return self._load_from_backup()
        snapshot = self._parse(raw, self.key)
        if snapshot is None or not self._restore(snapshot.data, self.key):
            logger.warning("Save %r is corrupt, trying backups", self.key)
            return self._load_from_backup()
        self.is_dirty = False
        return True

    def has_save(self) -> bool:
        return self._read(self.key) is not None

    def delete_save(self) -> None:
        self.store.delete(self.key)
        for i in range(self.config.max_backups):
            self.store.delete(self.backup_key(i))

    def export_save(self) -> str:
        """The stored main save as base64 text, or ``""`` without one."""
        raw = self._read(self.key)
        if raw is None:
            return ""
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def import_save(self, encoded: str) -> bool:
        """Validate and load an exported save. The previous save becomes a backup."""
        try:
            raw = base64.b64decode(encoded.encode("ascii"), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError):
            logger.warning("Import rejected: not base64 text")
            return False
        snapshot = self._parse(raw, "import")
        if snapshot is None or not self._restore(snapshot.data, "import"):
            return False
        try:
            self._rotate_backups()
            self.store.set(self.key, raw)
        except OSError:
            logger.exception("Failed to store imported save")
            return False
        self.is_dirty = False
        return True

    def get_time_since_last_save(self, now: float | None = None) -> float:
        snapshot = self._read_main()
        if snapshot is None:
            return 0.0
        return (self.clock() if now is None else now) - snapshot.timestamp

    def mark_dirty(self) -> None:
        self.is_dirty = True

    def maybe_autosave(self, now: float | None = None) -> bool:
        """Save if dirty and the autosave interval has elapsed."""
        if not self.is_dirty:
            return False
        if now is None:
            now = self.clock()
        if now - self.last_save_time < self.auto_save_interval_ms:
            return False
        return self.save()

    # ── Cloud ────────────────────────────────────────────────────────

    async def sync_to_cloud(self) -> bool:
        if self.remote is None:
            logger.debug("No remote configured, skipping cloud sync")
            return False
        if self.conflict is not None:
            logger.warning("Cloud sync skipped: unresolved save conflict")
            return False
        if not self.save():
            return False
        local = self._read_main()
        if local is None:
            return False

        self.sync_status = SyncStatus.SYNCING
        self.bus.emit(events.CLOUD_SYNC_START, {})
        try:
            result = await self.remote.sync_game(local, self.last_synced_at)
        except RemoteSaveError as exc:
            return self._fail(events.CLOUD_SYNC_ERROR, "Cloud sync failed", exc)

        if result.conflict and result.server_save is not None:
            self._enter_conflict(local, result.server_save)
            return False

        if result.offline_progress is not None:
            self.bus.emit(
                events.CLOUD_OFFLINE_PROGRESS,
                {
                    "resources_gained": dict(result.offline_progress.resources_gained),
                    "offline_time_ms": result.offline_progress.offline_time_ms,
                    "efficiency_applied": result.offline_progress.efficiency_applied,
                },
            )
            try:
                self.state_manager.load_state(result.save.data)
            except (ValueError, TypeError) as exc:
                return self._fail(events.CLOUD_SYNC_ERROR, "Synced save is unusable", exc)
            self.save()

        self.last_synced_at = self.clock()
        self.sync_status = SyncStatus.SYNCED
        self.bus.emit(events.CLOUD_SYNC_SUCCESS, {"save": result.save})
        return True

    async def load_from_cloud(self) -> bool:
        """Adopt the cloud save unless the local one should win or they conflict.

        A local save strictly newer than the cloud copy is pushed instead. A
        divergent cloud copy that is as new or newer enters the conflict state.
        """
        if self.remote is None:
            return False
        self.sync_status = SyncStatus.SYNCING
        self.bus.emit(events.CLOUD_LOAD_START, {})
        try:
            cloud = await self.remote.load_game()
        except RemoteSaveError as exc:
            return self._fail(events.CLOUD_LOAD_ERROR, "Cloud load failed", exc)

        if cloud is None:
            logger.info("No cloud save found")
            self.sync_status = SyncStatus.IDLE
            self.bus.emit(events.CLOUD_LOAD_EMPTY, {})
            if self.has_save():
                return await self.sync_to_cloud()
            return False

        local = self._read_main()
        if local is not None and not _same_progress(local.data, cloud.data):
            if local.timestamp > cloud.updated_at:
                self.sync_status = SyncStatus.IDLE
                return await self.sync_to_cloud()
            self._enter_conflict(local, cloud)
            return False

        if not self._adopt_cloud(cloud):
            return False
        self.bus.emit(events.CLOUD_LOAD_SUCCESS, {"save": cloud})
        return True

    async def resolve_conflict(self, resolution: str) -> bool:
        """Leave the conflict state keeping ``"local"``, ``"cloud"`` or a ``"merge"``."""
        if resolution not in RESOLUTIONS:
            raise ValueError(f"Unknown resolution {resolution!r}. Expected one of {RESOLUTIONS}")
        conflict = self.conflict
        if conflict is None:
            return False

        if resolution == "cloud":
            if not self._adopt_cloud(conflict.cloud):
                self.sync_status = SyncStatus.CONFLICT
                return False
            ok = True
        else:
            if resolution == "merge":
                merged = merge_saves(
                    self.state_manager.get_serializable_state(),
                    conflict.cloud.data,
                    self.clock(),
                )
                self.state_manager.load_state(merged)
            self.conflict = None
            ok = await self.force_upload()
            if not ok:
                self.conflict = conflict
                self.sync_status = SyncStatus.CONFLICT
                return False

        self.conflict = None
        logger.info("Save conflict resolved with %r", resolution)
        self.bus.emit(events.CLOUD_CONFLICT_RESOLVED, {"resolution": resolution})
        return ok

    async def force_upload(self) -> bool:
        """Overwrite the cloud copy with the current local state."""
        if self.remote is None or not self.save():
            return False
        local = self._read_main()
        if local is None:
            return False
        self.sync_status = SyncStatus.SYNCING
        try:
            saved = await self.remote.save_game(local.version, local.data, local.checksum)
        except RemoteSaveError as exc:
            return self._fail(events.CLOUD_SYNC_ERROR, "Force upload failed", exc)
        self.last_synced_at = self.clock()
        self.sync_status = SyncStatus.SYNCED
        self.bus.emit(events.CLOUD_SYNC_SUCCESS, {"save": saved})
        return True

    async def force_download(self) -> bool:
        """Replace local state with the cloud copy, whatever its age."""
        if self.remote is None:
            return False
        try:
            cloud = await self.remote.load_game()
        except RemoteSaveError as exc:
            return self._fail(events.CLOUD_LOAD_ERROR, "Force download failed", exc)
        if cloud is None:
            self.bus.emit(events.CLOUD_LOAD_EMPTY, {})
            return False
        if not self._adopt_cloud(cloud):
            return False
        self.conflict = None
        self.bus.emit(events.CLOUD_LOAD_SUCCESS, {"save": cloud})
        return True

    # ── Internals ────────────────────────────────────────────────────

    def _mark_dirty(self, payload: dict) -> None:
        self.is_dirty = True

    def _read(self, key: str) -> str | None:
        try:
            return self.store.get(key)
        except OSError:
            logger.exception("Failed to read %r", key)
            return None

    def _parse(self, raw: str, label: str) -> SaveSnapshot | None:
        try:
            snapshot = SaveSnapshot.from_json(raw)
        except ValueError as exc:
            logger.warning("Save %r is malformed: %s", label, exc)
            return None
        if not snapshot.is_valid():
            logger.warning("Save %r failed its checksum", label)
            return None
        return snapshot

    def _read_main(self) -> SaveSnapshot | None:
        raw = self._read(self.key)
        return self._parse(raw, self.key) if raw is not None else None

    def _rotate_backups(self) -> None:
        for i in range(self.config.max_backups - 1, 0, -1):
            older = self.store.get(self.backup_key(i - 1))
            if older is not None:
                self.store.set(self.backup_key(i), older)
        current = self.store.get(self.key)
        if current is not None and self.config.max_backups > 0:
            self.store.set(self.backup_key(0), current)

    def _load_from_backup(self) -> bool:
        found = False
        for i in range(self.config.max_backups):
            key = self.backup_key(i)
            raw = self._read(key)
            if raw is None:
                continue
            found = True
            snapshot = self._parse(raw, key)
            if snapshot is None or not self._restore(snapshot.data, key):
                continue
            logger.info("Recovered save from backup %d", i)
            self.store.set(self.key, raw)
            self.is_dirty = False
            return True
        if found:
            logger.warning("No valid backup found, starting fresh")
        return False

    def _restore(self, data: Mapping[str, Any], label: str) -> bool:
        try:
            self.state_manager.load_state(data)
        except (ValueError, TypeError) as exc:
            logger.warning("Save %r holds unusable state: %s", label, exc)
            return False
        return True

    def _adopt_cloud(self, cloud: RemoteSave) -> bool:
        try:
            self.state_manager.load_state(cloud.data)
        except (ValueError, TypeError) as exc:
            return self._fail(events.CLOUD_LOAD_ERROR, "Cloud save is unusable", exc)
        snapshot = SaveSnapshot.create(cloud.version, cloud.updated_at, cloud.data)
        self.store.set(self.key, snapshot.to_json())
        self.last_synced_at = self.clock()
        self.is_dirty = False
        self.sync_status = SyncStatus.SYNCED
        return True

    def _enter_conflict(self, local: SaveSnapshot, cloud: RemoteSave) -> None:
        self.conflict = SaveConflict(local, cloud)
        self.sync_status = SyncStatus.CONFLICT
        logger.warning(
            "Save conflict: local %.0f, cloud %.0f", local.timestamp, cloud.updated_at
        )
        self.bus.emit(
            events.CLOUD_SYNC_CONFLICT,
            {"local_timestamp": local.timestamp, "cloud_timestamp": cloud.updated_at},
        )

    def _fail(self, event: str, message: str, exc: Exception) -> bool:
        logger.warning("%s: %s", message, exc)
        self.sync_status = SyncStatus.ERROR
        self.bus.emit(event, {"error": str(exc)})
        return False
