"""Building purchase economics, unlocks and aggregate production rates."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from idlecore import events
from idlecore.building import BuildingDef, BuildingInfo
from idlecore.consumption import ConsumptionProcessor
from idlecore.curve import CurveEvaluator
from idlecore.multiplier import MultiplierSystem
from idlecore.production import ProductionProcessor
from idlecore.requirement import UnlockEvaluator
from idlecore.state_manager import StateManager

logger = logging.getLogger(__name__)

BUILDING_COST = "building_cost"
MAX_AFFORDABLE_ITERATIONS = 1000


@dataclass
class ProductionRate:
    """Aggregate production of one resource across every building."""

    per_second: float = 0.0
    sources: list[tuple[str, float]] = field(default_factory=list)


class BuildingSystem:
    def __init__(
        self,
        state_manager: StateManager,
        multipliers: MultiplierSystem,
        curves: CurveEvaluator,
        production: ProductionProcessor,
        consumption: ConsumptionProcessor | None = None,
    ) -> None:
        self.state_manager = state_manager
        self.definition = state_manager.definition
        self.multipliers = multipliers
        self.curves = curves
        self.production = production
        self.consumption = consumption
        self.production_rates: dict[str, ProductionRate] = {}

    # ── Pricing ──────────────────────────────────────────────────────

    def calculate_cost(self, building_id: str, count: int = 1) -> dict[str, float]:
        """Total price of the next *count* units, rounded up per resource."""
        bdef = self.definition.get_building(building_id)
        if bdef is None or count <= 0:
            return {}
        owned = self._owned(building_id)
        reduction = self.multipliers.get_value(BUILDING_COST)

        totals: dict[str, float] = {}
        for i in range(count):
            index = owned + i
            if bdef.subsequent_cost and index > 0:
                # subsequent units are indexed from zero after the first
                scale = self.curves.evaluate(bdef.cost_curve, {"owned": index - 1})
                prices = bdef.subsequent_cost
            elif bdef.subsequent_cost:
                scale = 1.0
                prices = bdef.base_cost
            else:
                scale = self.curves.evaluate(bdef.cost_curve, {"owned": index})
                prices = bdef.base_cost
            for resource_id, amount in prices.items():
                totals[resource_id] = totals.get(resource_id, 0.0) + amount * scale * reduction

        return {resource_id: float(math.ceil(total)) for resource_id, total in totals.items()}

    def calculate_max_affordable(
        self, building_id: str, limit: int = MAX_AFFORDABLE_ITERATIONS
    ) -> int:
        bdef = self.definition.get_building(building_id)
        if bdef is None:
            return 0
        if bdef.max_owned is not None:
            limit = min(limit, bdef.max_owned - self._owned(building_id))
        count = 0
        while count < limit:
            if not self.state_manager.can_afford(self.calculate_cost(building_id, count + 1)):
                break
            count += 1
        return count

    # ── Purchase ─────────────────────────────────────────────────────

    def purchase(self, building_id: str, count: int = 1) -> bool:
        """Buy *count* units or nothing at all."""
        bdef = self.definition.get_building(building_id)
        if bdef is None or count <= 0:
            return False
        bs = self.state_manager.get_building(building_id)
        if bs is None or not bs.unlocked:
            return False

        if bdef.max_owned is not None:
            count = min(count, bdef.max_owned - bs.owned)
            if count <= 0:
                self.state_manager.bus.emit(events.BUILDING_MAXED, {"building_id": building_id})
                return False

        costs = self.calculate_cost(building_id, count)
        if not self.state_manager.deduct_costs(costs, f"building:{building_id}"):
            return False

        self.state_manager.update_building(building_id, count)
        logger.debug("Purchased %d x %s for %s", count, building_id, costs)
        self.recalculate_all_production()
        return True

    # ── Production rates ─────────────────────────────────────────────

    def calculate_production_per_second(self, building_id: str) -> dict[str, float]:
        bdef = self.definition.get_building(building_id)
        if bdef is None or bdef.production is None:
            return {}
        bs = self.state_manager.get_building(building_id)
        if bs is None or bs.disabled:
            return {}
        return self.production.calculate_production_per_second(bdef.production, bs.owned)

    def recalculate_all_production(self) -> dict[str, ProductionRate]:
        """Sum every building's projected output into ``resource -> rate``."""
        totals: dict[str, ProductionRate] = {}
        for bdef in self.definition.buildings:
            rates = self.calculate_production_per_second(bdef.id)
            self.state_manager.set_production_rate(bdef.id, sum(rates.values()))
            for resource_id, rate in rates.items():
                entry = totals.setdefault(resource_id, ProductionRate())
                entry.per_second += rate
                entry.sources.append((bdef.display_name, rate))
        self.production_rates = totals
        return totals

    def net_rates(self, ticks_per_second: float) -> dict[str, float]:
        """Projected production minus upkeep, per second."""
        net = {rid: rate.per_second for rid, rate in self.production_rates.items()}
        if self.consumption is not None:
            for rdef in self.definition.resources:
                upkeep = self.consumption.total_consumption(rdef.id)
                if upkeep:
                    net[rdef.id] = net.get(rdef.id, 0.0) - upkeep * ticks_per_second
        return net

    def set_resource_limit(self, building_id: str, limit: float) -> None:
        self.state_manager.set_resource_limit(building_id, limit)

    # ── Unlocks ──────────────────────────────────────────────────────

    def check_unlocks(self) -> list[str]:
        """Unlock every building whose era and requirements are met.

        Returns the ids unlocked by this call. Unlocking never reverts.
        """
        state = self.state_manager.state
        unlocked = []
        for bdef in self.definition.buildings:
            bs = state.buildings.get(bdef.id)
            if bs is None or bs.unlocked:
                continue
            if bdef.era > state.current_era:
                continue
            if UnlockEvaluator.all_met(bdef.requirements, state):
                self.state_manager.unlock_building(bdef.id)
                unlocked.append(bdef.id)
        for rdef in self.definition.resources:
            rs = state.resources.get(rdef.id)
            if rs is not None and not rs.unlocked and rdef.era <= state.current_era:
                self.state_manager.unlock_resource(rdef.id)
        return unlocked

    # ── Display ──────────────────────────────────────────────────────

    def get_building_info(self, building_id: str) -> BuildingInfo | None:
        bdef = self.definition.get_building(building_id)
        bs = self.state_manager.get_building(building_id)
        if bdef is None or bs is None:
            return None
        cost = self.calculate_cost(building_id, 1)
        health = None
        upkeep: dict[str, float] = {}
        if self.consumption is not None and bdef.consumption is not None and bs.owned > 0:
            health = self.consumption.health_info(building_id)
            upkeep = self.consumption.consumption_per_tick(building_id)
        progress = None
        if bdef.production is not None and bdef.production.batch:
            progress = self.production.batch_progress(building_id)
        return BuildingInfo(
            id=bdef.id,
            display_name=bdef.display_name,
            category=bdef.category,
            era=bdef.era,
            owned=bs.owned,
            unlocked=bs.unlocked,
            can_afford=self.state_manager.can_afford(cost),
            current_cost=cost,
            production_per_second=self.calculate_production_per_second(building_id),
            max_owned=bdef.max_owned,
            health=health,
            consumption_per_tick=upkeep,
            disabled=bs.disabled,
            resource_limit=bs.resource_limit,
            batch_progress=progress,
        )

    def get_available_buildings(self) -> list[BuildingInfo]:
        """Info for every building of the current era or earlier."""
        era = self.state_manager.state.current_era
        infos = []
        for bdef in self.definition.buildings:
            if bdef.era > era or not self._is_listed(bdef):
                continue
            info = self.get_building_info(bdef.id)
            if info is not None:
                infos.append(info)
        return infos

    # ── Internals ────────────────────────────────────────────────────

    def _owned(self, building_id: str) -> int:
        bs = self.state_manager.get_building(building_id)
        return bs.owned if bs is not None else 0

    def _is_listed(self, bdef: BuildingDef) -> bool:
        bs = self.state_manager.get_building(bdef.id)
        return bdef.visible_before_unlock or (bs is not None and bs.unlocked)
