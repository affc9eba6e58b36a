from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, TypeVar

from idlecore.building import BuildingState
from idlecore.resource import ResourceState
from idlecore.upgrade import UpgradeState

if TYPE_CHECKING:
    from idlecore.definition import GameDefinition

STATE_VERSION = "1.0.0"
DEFAULT_FEATURES = frozenset({"manual_harvest", "basic_buildings"})

_T = TypeVar("_T")


@dataclass
class Statistics:
    total_play_time_ms: float = 0.0
    total_clicks: int = 0
    total_click_harvested: float = 0.0
    total_buildings_purchased: int = 0
    total_upgrades_purchased: int = 0
    total_buildings_lost: int = 0
    session_start_time: float = 0.0
    last_save_time: float = 0.0


@dataclass
class PrestigeState:
    total_earned: float = 0.0
    current: float = 0.0
    prestige_count: int = 0


@dataclass
class GameState:
    """Complete persistent state of one game."""

    version: str = STATE_VERSION
    current_era: int = 1
    resources: dict[str, ResourceState] = field(default_factory=dict)
    buildings: dict[str, BuildingState] = field(default_factory=dict)
    upgrades: dict[str, UpgradeState] = field(default_factory=dict)
    prestige: PrestigeState = field(default_factory=PrestigeState)
    statistics: Statistics = field(default_factory=Statistics)
    unlocked_features: set[str] = field(default_factory=lambda: set(DEFAULT_FEATURES))
    active_events: set[str] = field(default_factory=set)
    last_played_at: float = 0.0
    is_new_game: bool = True

    @classmethod
    def initial(cls, definition: GameDefinition, now: float = 0.0) -> GameState:
        """Fresh state with defaults for every configured entity."""
        state = cls(
            unlocked_features=set(definition.config.starting_features),
            last_played_at=now,
        )
        state.statistics.session_start_time = now
        for rdef in definition.resources:
            state.resources[rdef.id] = ResourceState.initial(rdef)
        for bdef in definition.buildings:
            state.buildings[bdef.id] = BuildingState(unlocked=bdef.unlocked)
        for udef in definition.upgrades:
            state.upgrades[udef.id] = UpgradeState()
        return state

    # ── Lookups ──────────────────────────────────────────────────────

    def resource_amount(self, id: str) -> float:
        rs = self.resources.get(id)
        return rs.current if rs else 0.0

    def lifetime(self, id: str) -> float:
        rs = self.resources.get(id)
        return rs.lifetime if rs else 0.0

    def building_count(self, id: str) -> int:
        bs = self.buildings.get(id)
        return bs.owned if bs else 0

    def is_upgrade_purchased(self, id: str) -> bool:
        us = self.upgrades.get(id)
        return us.purchased if us else False

    @property
    def purchased_upgrades(self) -> frozenset[str]:
        return frozenset(uid for uid, us in self.upgrades.items() if us.purchased)

    # ── Copies and serialization ─────────────────────────────────────

    def clone(self) -> GameState:
        """Structural copy: new containers and entries, same scalar values."""
        return GameState(
            version=self.version,
            current_era=self.current_era,
            resources={k: dataclasses.replace(v) for k, v in self.resources.items()},
            buildings={k: dataclasses.replace(v) for k, v in self.buildings.items()},
            upgrades={k: dataclasses.replace(v) for k, v in self.upgrades.items()},
            prestige=dataclasses.replace(self.prestige),
            statistics=dataclasses.replace(self.statistics),
            unlocked_features=set(self.unlocked_features),
            active_events=set(self.active_events),
            last_played_at=self.last_played_at,
            is_new_game=self.is_new_game,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation."""
        return {
            "version": self.version,
            "current_era": self.current_era,
            "resources": {k: dataclasses.asdict(v) for k, v in self.resources.items()},
            "buildings": {k: dataclasses.asdict(v) for k, v in self.buildings.items()},
            "upgrades": {k: dataclasses.asdict(v) for k, v in self.upgrades.items()},
            "prestige": dataclasses.asdict(self.prestige),
            "statistics": dataclasses.asdict(self.statistics),
            "unlocked_features": sorted(self.unlocked_features),
            "active_events": sorted(self.active_events),
            "last_played_at": self.last_played_at,
            "is_new_game": self.is_new_game,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GameState:
        """Parse serialized state, ignoring unknown keys and filling gaps with defaults."""
        return cls(
            version=str(data.get("version", STATE_VERSION)),
            current_era=int(data.get("current_era", 1)),
            resources={
                k: _load(ResourceState, v) for k, v in _mapping(data, "resources").items()
            },
            buildings={
                k: _load(BuildingState, v) for k, v in _mapping(data, "buildings").items()
            },
            upgrades={
                k: _load(UpgradeState, v) for k, v in _mapping(data, "upgrades").items()
            },
            prestige=_load(PrestigeState, data.get("prestige") or {}),
            statistics=_load(Statistics, data.get("statistics") or {}),
            unlocked_features=set(data.get("unlocked_features", DEFAULT_FEATURES)),
            active_events=set(data.get("active_events", ())),
            last_played_at=float(data.get("last_played_at", 0.0)),
            is_new_game=bool(data.get("is_new_game", False)),
        )


def _mapping(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    return value if isinstance(value, Mapping) else {}


def _load(cls: type[_T], data: Any) -> _T:
    if not isinstance(data, Mapping):
        return cls()
    names = {f.name for f in dataclasses.fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})
