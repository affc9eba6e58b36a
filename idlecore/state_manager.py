"""Owner of the canonical :class:`GameState`.

All mutation goes through the narrow methods below. Each one enforces the
resource invariants (``0 <= current <= max_capacity``, ``lifetime`` never
shrinks), emits an event on the bus and notifies subscribers with a structural
clone of the state.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, Mapping

from idlecore import events
from idlecore._types import Clock, ResourceAmounts, wall_clock_ms
from idlecore.building import BuildingState
from idlecore.condition import ConditionContext
from idlecore.definition import GameDefinition
from idlecore.events import EventBus
from idlecore.resource import ResourceState
from idlecore.state import GameState
from idlecore.upgrade import UpgradeState

logger = logging.getLogger(__name__)

Subscriber = Callable[[GameState], None]


class StateManager:
    def __init__(
        self,
        definition: GameDefinition,
        bus: EventBus | None = None,
        clock: Clock = wall_clock_ms,
        state: GameState | None = None,
    ) -> None:
        self.definition = definition
        self.bus = bus if bus is not None else EventBus()
        self.clock = clock
        self.state = state if state is not None else GameState.initial(definition, clock())
        self._subscribers: dict[int, Subscriber] = {}
        self._next_sub = 1
        self._batch_depth = 0
        self._pending_notify = False
        self.ensure_state_integrity()

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        sub_id = self._next_sub
        self._next_sub += 1
        self._subscribers[sub_id] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(sub_id, None)

        return unsubscribe

    def snapshot(self) -> GameState:
        return self.state.clone()

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Defer subscriber notification until the outermost block exits."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending_notify:
                self.notify_subscribers()

    def notify_subscribers(self) -> None:
        if self._batch_depth > 0:
            self._pending_notify = True
            return
        self._pending_notify = False
        if not self._subscribers:
            return
        snapshot = self.state.clone()
        for callback in list(self._subscribers.values()):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Error in state subscriber")

    # ── Resources ────────────────────────────────────────────────────

    def get_resource(self, resource_id: str) -> ResourceState | None:
        return self.state.resources.get(resource_id)

    def update_resource(self, resource_id: str, delta: float, source: str = "") -> float:
        """Apply *delta*, clamped to ``[0, max_capacity]``. Returns the applied change."""
        resource = self.state.resources.get(resource_id)
        if resource is None:
            logger.warning("Unknown resource %r", resource_id)
            return 0.0
        if delta == 0:
            return 0.0

        old = resource.current
        new = old + delta
        if resource.max_capacity is not None:
            new = min(new, resource.max_capacity)
        new = max(0.0, new)
        resource.current = new

        if delta > 0:
            resource.lifetime += delta
            self.bus.emit(
                events.RESOURCE_GAINED,
                {"resource_id": resource_id, "amount": delta, "source": source},
            )
        else:
            self.bus.emit(
                events.RESOURCE_SPENT,
                {"resource_id": resource_id, "amount": -delta, "target": source},
            )
        self.bus.emit(
            events.RESOURCE_CHANGED,
            {"resource_id": resource_id, "old_value": old, "new_value": new},
        )
        if resource.max_capacity is not None and new >= resource.max_capacity:
            self.bus.emit(events.RESOURCE_MAXED, {"resource_id": resource_id})

        self.notify_subscribers()
        return new - old

    def set_resource(self, resource_id: str, value: float) -> None:
        resource = self.state.resources.get(resource_id)
        if resource is None:
            return
        self.update_resource(resource_id, value - resource.current, "set")

    def set_capacity(self, resource_id: str, capacity: float | None) -> None:
        resource = self.state.resources.get(resource_id)
        if resource is None:
            return
        resource.max_capacity = capacity
        if capacity is not None and resource.current > capacity:
            resource.current = capacity
        self.notify_subscribers()

    def can_afford(self, costs: Mapping[str, float]) -> bool:
        for resource_id, amount in costs.items():
            resource = self.state.resources.get(resource_id)
            if resource is None or resource.current < amount:
                return False
        return True

    def deduct_costs(self, costs: Mapping[str, float], target: str = "") -> bool:
        """Spend every cost or nothing at all."""
        if not self.can_afford(costs):
            return False
        with self.batch():
            for resource_id, amount in costs.items():
                self.update_resource(resource_id, -amount, target)
        return True

    def unlock_resource(self, resource_id: str) -> None:
        resource = self.state.resources.get(resource_id)
        if resource is None or resource.unlocked:
            return
        resource.unlocked = True
        self.bus.emit(events.RESOURCE_UNLOCKED, {"resource_id": resource_id})
        self.notify_subscribers()

    # ── Buildings ────────────────────────────────────────────────────

    def get_building(self, building_id: str) -> BuildingState | None:
        return self.state.buildings.get(building_id)

    def update_building(self, building_id: str, delta: int) -> None:
        """Add purchased units; a negative delta removes units instead."""
        building = self.state.buildings.get(building_id)
        if building is None:
            logger.warning("Unknown building %r", building_id)
            return
        if delta < 0:
            self.remove_building(building_id, -delta)
            return
        if delta == 0:
            return
        building.owned += delta
        building.total_purchased += delta
        self.state.statistics.total_buildings_purchased += delta
        bdef = self.definition.get_building(building_id)
        if bdef is not None and bdef.consumption is not None and building.health is None:
            building.health = bdef.consumption.max_health
            building.max_health = bdef.consumption.max_health
        self.bus.emit(
            events.BUILDING_PURCHASED,
            {"building_id": building_id, "count": delta, "total_owned": building.owned},
        )
        self.notify_subscribers()

    def remove_building(self, building_id: str, count: int = 1) -> int:
        """Remove up to *count* units. Returns how many were removed."""
        building = self.state.buildings.get(building_id)
        if building is None or building.owned <= 0 or count <= 0:
            return 0
        removed = min(count, building.owned)
        building.owned -= removed
        self.state.statistics.total_buildings_lost += removed
        if building.owned == 0:
            building.health = None
            building.max_health = None
        self.bus.emit(
            events.BUILDING_REMOVED,
            {"building_id": building_id, "count": removed, "remaining": building.owned},
        )
        self.notify_subscribers()
        return removed

    def set_building_health(self, building_id: str, health: float) -> None:
        building = self.state.buildings.get(building_id)
        if building is None:
            return
        cap = building.max_health if building.max_health is not None else health
        building.health = min(max(0.0, health), cap)
        self.notify_subscribers()

    def set_building_disabled(self, building_id: str, disabled: bool) -> None:
        building = self.state.buildings.get(building_id)
        if building is None or building.disabled == disabled:
            return
        building.disabled = disabled
        if disabled:
            self.bus.emit(events.BUILDING_DISABLED, {"building_id": building_id})
        self.notify_subscribers()

    def set_resource_limit(self, building_id: str, limit: float) -> None:
        building = self.state.buildings.get(building_id)
        if building is None:
            return
        building.resource_limit = min(1.0, max(0.0, limit))
        self.notify_subscribers()

    def set_production_rate(self, building_id: str, rate: float) -> None:
        building = self.state.buildings.get(building_id)
        if building is not None:
            building.production_rate = rate

    def unlock_building(self, building_id: str) -> None:
        building = self.state.buildings.get(building_id)
        if building is None or building.unlocked:
            return
        building.unlocked = True
        self.bus.emit(events.BUILDING_UNLOCKED, {"building_id": building_id})
        self.notify_subscribers()

    # ── Upgrades ─────────────────────────────────────────────────────

    def purchase_upgrade(self, upgrade_id: str) -> None:
        upgrade = self.state.upgrades.get(upgrade_id)
        if upgrade is None:
            logger.warning("Unknown upgrade %r", upgrade_id)
            return
        upgrade.purchased = True
        upgrade.purchase_count += 1
        self.state.statistics.total_upgrades_purchased += 1
        self.bus.emit(events.UPGRADE_PURCHASED, {"upgrade_id": upgrade_id})
        self.notify_subscribers()

    def is_upgrade_purchased(self, upgrade_id: str) -> bool:
        return self.state.is_upgrade_purchased(upgrade_id)

    # ── Progress and misc ────────────────────────────────────────────

    def record_click(self, amount: float) -> None:
        stats = self.state.statistics
        stats.total_clicks += 1
        stats.total_click_harvested += amount

    def update_play_time(self, delta_ms: float) -> None:
        self.state.statistics.total_play_time_ms += delta_ms

    def set_era(self, era: int) -> None:
        if era == self.state.current_era:
            return
        self.state.current_era = era
        self.bus.emit(events.ERA_UNLOCKED, {"era": era})
        self.notify_subscribers()

    def set_prestige_level(self, level: int) -> None:
        self.state.prestige.prestige_count = level
        self.notify_subscribers()

    def unlock_feature(self, feature_id: str) -> None:
        if feature_id in self.state.unlocked_features:
            return
        self.state.unlocked_features.add(feature_id)
        self.bus.emit(events.FEATURE_UNLOCKED, {"feature_id": feature_id})
        self.notify_subscribers()

    def has_feature(self, feature_id: str) -> bool:
        return feature_id in self.state.unlocked_features

    def activate_event(self, event_id: str) -> None:
        self.state.active_events.add(event_id)
        self.notify_subscribers()

    def deactivate_event(self, event_id: str) -> None:
        self.state.active_events.discard(event_id)
        self.notify_subscribers()

    def condition_context(self, hour: int | None = None) -> ConditionContext:
        """Context for multiplier conditions. *hour* defaults to the local clock hour."""
        if hour is None:
            hour = datetime.fromtimestamp(self.clock() / 1000.0).hour
        state = self.state
        return ConditionContext(
            resources={k: r.current for k, r in state.resources.items()},
            buildings={k: b.owned for k, b in state.buildings.items()},
            upgrades=state.purchased_upgrades,
            era=state.current_era,
            prestige_level=state.prestige.prestige_count,
            active_events=frozenset(state.active_events),
            current_hour=hour,
        )

    def resource_totals(self) -> ResourceAmounts:
        return {k: r.current for k, r in self.state.resources.items()}

    # ── Persistence ──────────────────────────────────────────────────

    def get_serializable_state(self) -> dict[str, Any]:
        """Serialized state stamped with the current time as ``last_played_at``."""
        self.state.last_played_at = self.clock()
        return self.state.to_dict()

    def load_state(self, data: Mapping[str, Any] | GameState) -> None:
        """Replace the state with *data*, repaired against the definition.

        Raises ``ValueError`` or ``TypeError`` when a field cannot be coerced;
        the current state is left untouched in that case.
        """
        loaded = data.clone() if isinstance(data, GameState) else GameState.from_dict(data)
        loaded.is_new_game = False
        self.ensure_state_integrity(loaded)
        self.state = loaded
        self.bus.emit(events.STATE_LOADED, {"last_played_at": loaded.last_played_at})
        self.bus.emit(events.GAME_LOAD, {"success": True})
        self.notify_subscribers()

    def ensure_state_integrity(self, state: GameState | None = None) -> None:
        """Add defaults for configured entities the state lacks; drop unknown ones.

        Loaded values are clamped back into range: ``current`` to
        ``[0, max_capacity]``, ``owned`` to at least 0 and ``resource_limit``
        to ``[0, 1]``.
        """
        if state is None:
            state = self.state
        era = state.current_era
        for rdef in self.definition.resources:
            if rdef.id not in state.resources:
                rs = ResourceState.initial(rdef)
                rs.unlocked = rdef.unlocked or rdef.era <= era
                state.resources[rdef.id] = rs
        for bdef in self.definition.buildings:
            if bdef.id not in state.buildings:
                state.buildings[bdef.id] = BuildingState(unlocked=bdef.unlocked)
            bs = state.buildings[bdef.id]
            if bdef.consumption is not None and bs.owned > 0 and bs.health is None:
                bs.health = bdef.consumption.max_health
                bs.max_health = bdef.consumption.max_health
        for udef in self.definition.upgrades:
            if udef.id not in state.upgrades:
                state.upgrades[udef.id] = UpgradeState()

        known_r = {r.id for r in self.definition.resources}
        known_b = {b.id for b in self.definition.buildings}
        known_u = {u.id for u in self.definition.upgrades}
        state.resources = {k: v for k, v in state.resources.items() if k in known_r}
        state.buildings = {k: v for k, v in state.buildings.items() if k in known_b}
        state.upgrades = {k: v for k, v in state.upgrades.items() if k in known_u}

        for rs in state.resources.values():
            cap = None if rs.max_capacity is None else max(0.0, float(rs.max_capacity))
            current = max(0.0, float(rs.current))
            rs.max_capacity = cap
            rs.current = current if cap is None else min(current, cap)
            rs.lifetime = max(float(rs.lifetime), 0.0)
        for bs in state.buildings.values():
            bs.owned = max(0, int(bs.owned))
            bs.total_purchased = max(0, int(bs.total_purchased))
            bs.resource_limit = min(1.0, max(0.0, float(bs.resource_limit)))
            if bs.health is not None:
                bs.health = max(0.0, float(bs.health))

    def reset(self) -> None:
        self.state = GameState.initial(self.definition, self.clock())
        self.bus.emit(events.GAME_RESET, {})
        self.notify_subscribers()

    def get_offline_time(self, now: float | None = None) -> float:
        """Milliseconds elapsed since the state was last played."""
        if now is None:
            now = self.clock()
        return max(0.0, now - self.state.last_played_at)
