from __future__ import annotations

import logging
import random
from typing import Callable

from idlecore import events
from idlecore._types import Clock, wall_clock_ms
from idlecore.building import BuildingInfo
from idlecore.building_system import BuildingSystem
from idlecore.context import SimulationContext
from idlecore.definition import GameDefinition
from idlecore.events import EventBus, Handler
from idlecore.loop import GameLoop
from idlecore.multiplier import MultiplierSystem
from idlecore.offline import OfflineProgress, calculate_offline_progress
from idlecore.production import ProductionProcessor
from idlecore.remote import RemoteSaveClient
from idlecore.save import KeyValueStore, SaveConflict, SaveSystem, SyncStatus
from idlecore.state import GameState
from idlecore.state_manager import StateManager, Subscriber
from idlecore.upgrade import UpgradeInfo
from idlecore.upgrade_system import UpgradeSystem

logger = logging.getLogger(__name__)

CLICK_POWER = "click_power"


class GameRuntime:
    """Authoritative game orchestrator.

    Owns one :class:`SimulationContext` and drives it in a fixed order every
    tick: play time, production, upkeep, multiplier expiry, condition
    refresh, unlocks, autosave, then a single subscriber notification.
    """

    def __init__(
        self,
        definition: GameDefinition,
        store: KeyValueStore | None = None,
        remote: RemoteSaveClient | None = None,
        clock: Clock = wall_clock_ms,
        seed: int | None = None,
    ) -> None:
        errors = definition.validate()
        if errors:
            if definition.config.dev_mode.strict:
                raise ValueError(
                    "Invalid GameDefinition:\n" + "\n".join(f"  - {e}" for e in errors)
                )
            for error in errors:
                logger.warning("Invalid GameDefinition: %s", error)

        self.definition = definition
        self.clock = clock
        self.rng = random.Random(seed)
        self.ctx = SimulationContext.build(definition, rng=self.rng, clock=clock)
        timing = definition.config.timing
        self.saves = SaveSystem(
            self.ctx.state_manager,
            store,
            definition.config.save,
            clock,
            remote,
            timing.auto_save_interval_ms,
        )
        self.loop = GameLoop(
            timing,
            self.process_tick,
            dev_mode=definition.config.dev_mode,
            bus=self.bus,
            on_error_limit=self._emergency_save,
        )
        self.last_offline_progress: OfflineProgress | None = None
        self._rates_dirty = False

        self.bus.on(events.MULTIPLIER_CHANGED, self._mark_rates_dirty)
        self.bus.on(events.BUILDING_REMOVED, self._mark_rates_dirty)
        self.bus.on(events.BUILDING_DISABLED, self._mark_rates_dirty)
        self.bus.on(events.STATE_LOADED, self._on_state_replaced)
        self.bus.on(events.GAME_RESET, self._on_state_replaced)
        self.check_unlocks()

    # ── Collaborators ────────────────────────────────────────────────

    @property
    def bus(self) -> EventBus:
        return self.ctx.bus

    @property
    def state_manager(self) -> StateManager:
        return self.ctx.state_manager

    @property
    def state(self) -> GameState:
        return self.ctx.state

    @property
    def multipliers(self) -> MultiplierSystem:
        return self.ctx.multipliers

    @property
    def production(self) -> ProductionProcessor:
        return self.ctx.production

    @property
    def buildings(self) -> BuildingSystem:
        return self.ctx.buildings

    @property
    def upgrades(self) -> UpgradeSystem:
        return self.ctx.upgrades

    # ── Core loop ────────────────────────────────────────────────────

    def process_tick(self, delta_ms: float) -> None:
        """Advance the simulation by *delta_ms* of simulated time."""
        sm = self.state_manager
        with sm.batch():
            sm.update_play_time(delta_ms)
            self.ctx.production.process_all(delta_ms / 1000.0)
            self.ctx.consumption.process_all()
            now = self.clock()
            self.ctx.multipliers.process_expired_multipliers(now)
            self.ctx.refresh_conditions()
            if self._rates_dirty:
                self._rates_dirty = False
                self.ctx.buildings.recalculate_all_production()
            self.check_unlocks()
            self.saves.maybe_autosave(now)
            sm.notify_subscribers()

    def advance(self, total_ms: float, step_ms: float | None = None) -> int:
        """Run fixed-size ticks through the loop's error boundary.

        Returns the number of ticks dispatched.
        """
        if step_ms is None:
            step_ms = self.definition.config.timing.base_tick_ms
        ticks = 0
        remaining = total_ms
        while remaining > 1e-9 and not self.loop.is_paused:
            step = min(step_ms, remaining)
            self.loop.process_tick(step)
            remaining -= step
            ticks += 1
        return ticks

    async def start(self) -> None:
        await self.loop.start()

    async def stop(self) -> None:
        await self.loop.stop()
        self.saves.save()

    def pause(self) -> None:
        self.loop.pause()

    def resume(self) -> None:
        self.loop.resume()

    def set_visible(self, visible: bool) -> None:
        self.loop.set_visible(visible)
        if not visible and self.saves.is_dirty:
            self.saves.save()

    def set_time_multiplier(self, multiplier: float) -> None:
        self.loop.set_time_multiplier(multiplier)

    # ── Player actions ───────────────────────────────────────────────

    def purchase_building(self, building_id: str, count: int = 1) -> bool:
        if not self.ctx.buildings.purchase(building_id, count):
            return False
        self.ctx.refresh_conditions()
        self.check_unlocks()
        return True

    def purchase_upgrade(self, upgrade_id: str) -> bool:
        if not self.ctx.upgrades.purchase(upgrade_id):
            return False
        self.ctx.refresh_conditions()
        self.ctx.buildings.recalculate_all_production()
        self.check_unlocks()
        return True

    def process_click(self, resource_id: str) -> float:
        """Manual harvest. Returns the amount actually added."""
        target = self.definition.get_click_target(resource_id)
        if target is None:
            return 0.0
        value = target.base_value * self.ctx.multipliers.get_value(CLICK_POWER)
        applied = self.state_manager.update_resource(resource_id, value, "click")
        self.state_manager.record_click(applied)
        self.bus.emit(events.CLICK_HARVEST, {"resource_id": resource_id, "amount": applied})
        self.check_unlocks()
        return applied

    def set_resource_limit(self, building_id: str, limit: float) -> None:
        self.ctx.buildings.set_resource_limit(building_id, limit)

    def check_unlocks(self) -> list[str]:
        """Unlock what the current state allows. Returns new building and upgrade ids."""
        return self.ctx.buildings.check_unlocks() + self.ctx.upgrades.check_unlocks()

    # ── Queries ──────────────────────────────────────────────────────

    def get_available_buildings(self) -> list[BuildingInfo]:
        return self.ctx.buildings.get_available_buildings()

    def get_available_upgrades(self) -> list[UpgradeInfo]:
        return self.ctx.upgrades.get_available_upgrades()

    def get_building_info(self, building_id: str) -> BuildingInfo | None:
        return self.ctx.buildings.get_building_info(building_id)

    def resource_amount(self, resource_id: str) -> float:
        return self.state.resource_amount(resource_id)

    def net_rates(self) -> dict[str, float]:
        """Projected per-second change of every resource, upkeep included."""
        ticks_per_second = 1000.0 / self.definition.config.timing.base_tick_ms
        return self.ctx.buildings.net_rates(ticks_per_second)

    def compute_time_to_afford(self, building_id: str) -> float | None:
        """Seconds until the next unit is affordable at current rates. None if never."""
        cost = self.ctx.buildings.calculate_cost(building_id, 1)
        if not cost:
            return None
        rates = self.net_rates()
        max_time = 0.0
        for resource_id, amount in cost.items():
            current = self.resource_amount(resource_id)
            if current >= amount:
                continue
            rate = rates.get(resource_id, 0.0)
            if rate <= 0:
                return None
            max_time = max(max_time, (amount - current) / rate)
        return max_time

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.state_manager.subscribe(callback)

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        return self.bus.on(event, handler)

    # ── Persistence ──────────────────────────────────────────────────

    def save(self) -> bool:
        return self.saves.save()

    def load(self) -> bool:
        """Load the local save and grant offline progress since it was written."""
        if not self.saves.load():
            return False
        self._catch_up()
        return True

    def reset(self) -> None:
        self.saves.delete_save()
        self.state_manager.reset()
        self.last_offline_progress = None

    def export_save(self) -> str:
        self.saves.save()
        return self.saves.export_save()

    def import_save(self, encoded: str) -> bool:
        if not self.saves.import_save(encoded):
            return False
        self._catch_up()
        return True

    # ── Cloud ────────────────────────────────────────────────────────

    @property
    def sync_status(self) -> SyncStatus:
        return self.saves.sync_status

    @property
    def conflict(self) -> SaveConflict | None:
        return self.saves.conflict

    async def sync_to_cloud(self) -> bool:
        return await self.saves.sync_to_cloud()

    async def load_from_cloud(self) -> bool:
        if not await self.saves.load_from_cloud():
            return False
        self._catch_up()
        return True

    async def resolve_conflict(self, resolution: str) -> bool:
        return await self.saves.resolve_conflict(resolution)

    async def force_upload(self) -> bool:
        return await self.saves.force_upload()

    async def force_download(self) -> bool:
        if not await self.saves.force_download():
            return False
        self._catch_up()
        return True

    # ── Internals ────────────────────────────────────────────────────

    def _catch_up(self) -> None:
        state = self.state
        now = self.clock()
        progress = calculate_offline_progress(self.definition, state, state.last_played_at, now)
        self.last_offline_progress = progress
        if progress is not None:
            logger.info(
                "Offline for %.0f s, granting %s",
                progress.offline_time_ms / 1000.0,
                progress.resources_gained,
            )
            with self.state_manager.batch():
                for resource_id, amount in progress.resources_gained.items():
                    self.state_manager.update_resource(resource_id, amount, "offline")
        state.last_played_at = now
        self.ctx.refresh_conditions()
        self.ctx.buildings.recalculate_all_production()
        self.check_unlocks()

    def _mark_rates_dirty(self, payload: dict) -> None:
        self._rates_dirty = True

    def _on_state_replaced(self, payload: dict) -> None:
        self.ctx.production.reset()
        self.ctx.refresh_conditions()
        self.ctx.buildings.recalculate_all_production()

    def _emergency_save(self) -> None:
        logger.error("Writing emergency save after repeated tick failures")
        saved = self.saves.save()
        self.bus.emit(
            events.UI_NOTIFICATION,
            {
                "level": "error",
                "message": "The game was paused after repeated errors.",
                "saved": saved,
            },
        )
