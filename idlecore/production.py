"""Per-tick resource production.

Continuous buildings produce ``base_amount * owned * dt / interval`` per
output, throttled by input availability for converters and routed through a
:class:`ProductionAccumulator`. Batch buildings accrue time and fire whole
cycles, adding their outputs directly.
"""

from __future__ import annotations

import logging
import random

from idlecore import events
from idlecore.accumulator import ProductionAccumulator
from idlecore.building import BuildingDef, ProductionConfig
from idlecore.curve import CurveEvaluator
from idlecore.multiplier import MultiplierSystem
from idlecore.state_manager import StateManager

logger = logging.getLogger(__name__)

ALL_PRODUCTION = "all_production"


class ProductionProcessor:
    def __init__(
        self,
        state_manager: StateManager,
        multipliers: MultiplierSystem,
        curves: CurveEvaluator,
        rng: random.Random | None = None,
        threshold: float = 0.01,
    ) -> None:
        self.state_manager = state_manager
        self.multipliers = multipliers
        self.curves = curves
        self.rng = rng if rng is not None else random.Random()
        self.accumulator = ProductionAccumulator(self._deposit, threshold)
        self._batch_timers: dict[str, float] = {}

    # ── Tick entry points ────────────────────────────────────────────

    def process_all(self, delta_seconds: float, offline: bool = False) -> None:
        """Run every owned, enabled producer for one tick of *delta_seconds*."""
        if delta_seconds <= 0:
            return
        for bdef in self.state_manager.definition.buildings:
            self.process_building(bdef, delta_seconds, offline=offline)

    def process_building(
        self, bdef: BuildingDef, delta_seconds: float, offline: bool = False
    ) -> None:
        """The only code path that credits production to the ledger.

        With *offline* set, chance outputs pay their expected value instead of
        rolling, and outputs are scaled by the building's ``idle_efficiency``.
        """
        prod = bdef.production
        if prod is None:
            return
        bs = self.state_manager.get_building(bdef.id)
        if bs is None or bs.owned <= 0 or bs.disabled:
            return
        interval = self._interval_seconds(prod)
        if interval <= 0:
            return

        if prod.batch:
            self._process_batch(bdef, bs.owned, bs.resource_limit, delta_seconds * 1000.0, offline)
            return

        efficiency = 1.0
        if prod.inputs:
            efficiency = self._input_efficiency(prod, bs.owned, delta_seconds, interval)
            if efficiency <= 0:
                return
            for inp in prod.inputs:
                needed = self._input_amount(inp.amount, bs.owned) * bs.owned * delta_seconds / interval
                if needed > 0:
                    self.state_manager.update_resource(
                        inp.resource_id, -needed * efficiency, f"production:{bdef.id}"
                    )

        multiplier = self._output_multiplier(prod)
        for out in prod.outputs:
            amount = out.base_amount * bs.owned * delta_seconds / interval * efficiency
            chance_factor = self._chance_factor(out.chance, offline)
            if chance_factor == 0.0:
                continue
            amount *= chance_factor * multiplier
            if offline:
                amount *= prod.idle_efficiency
            self.accumulator.add_and_flush(bdef.id, out.resource_id, amount)

    def flush_all(self) -> None:
        """Credit every buffered fraction to the ledger."""
        self.accumulator.flush_all()

    def reset(self) -> None:
        self.accumulator.clear()
        self._batch_timers.clear()

    # ── Projections ──────────────────────────────────────────────────

    def calculate_production_per_second(
        self, prod: ProductionConfig, owned: int
    ) -> dict[str, float]:
        """Expected output per second, ignoring input availability and upkeep."""
        if owned <= 0:
            return {}
        interval = self._interval_seconds(prod)
        if interval <= 0:
            return {}
        multiplier = self._output_multiplier(prod)
        rates: dict[str, float] = {}
        for out in prod.outputs:
            rate = out.base_amount * owned * out.chance * multiplier / interval
            rates[out.resource_id] = rates.get(out.resource_id, 0.0) + rate
        return rates

    def batch_progress(self, building_id: str) -> float:
        bdef = self.state_manager.definition.get_building(building_id)
        if bdef is None or bdef.production is None or not bdef.production.batch:
            return 0.0
        interval_ms = self._interval_seconds(bdef.production) * 1000.0
        if interval_ms <= 0:
            return 0.0
        return min(1.0, self._batch_timers.get(building_id, 0.0) / interval_ms)

    # ── Internals ────────────────────────────────────────────────────

    def _deposit(self, building_id: str, resource_id: str, amount: float) -> None:
        self.state_manager.update_resource(resource_id, amount, f"building:{building_id}")

    def _interval_seconds(self, prod: ProductionConfig) -> float:
        interval = prod.interval_seconds
        if prod.speed_stack_id and interval > 0:
            speed = self.multipliers.get_value(prod.speed_stack_id)
            if speed <= 0:
                return 0.0
            interval /= speed
        return interval

    def _output_multiplier(self, prod: ProductionConfig) -> float:
        value = self.multipliers.get_value(ALL_PRODUCTION)
        if prod.amount_stack_id:
            value *= self.multipliers.get_value(prod.amount_stack_id)
        return value

    def _chance_factor(self, chance: float, offline: bool) -> float:
        if chance >= 1.0:
            return 1.0
        if offline:
            return chance
        return 1.0 if self.rng.random() <= chance else 0.0

    def _input_amount(self, amount, owned: int) -> float:
        return self.curves.evaluate(amount, {"owned": owned}, neutral=0.0)

    def _input_efficiency(
        self, prod: ProductionConfig, owned: int, delta_seconds: float, interval: float
    ) -> float:
        efficiency = 1.0
        for inp in prod.inputs:
            needed = self._input_amount(inp.amount, owned) * owned * delta_seconds / interval
            if needed > 0:
                available = self.state_manager.state.resource_amount(inp.resource_id)
                efficiency = min(efficiency, min(1.0, available / needed))
        return max(0.0, efficiency)

    def _affordable_fraction(self, prod: ProductionConfig, owned: int, limit: float) -> float:
        fraction = limit
        for inp in prod.inputs:
            needed = self._input_amount(inp.amount, owned) * owned
            if needed > 0:
                available = self.state_manager.state.resource_amount(inp.resource_id)
                fraction = min(fraction, available / needed)
        return max(0.0, fraction)

    def _process_batch(
        self, bdef: BuildingDef, owned: int, limit: float, delta_ms: float, offline: bool
    ) -> None:
        prod = bdef.production
        interval_ms = self._interval_seconds(prod) * 1000.0
        accrued = self._batch_timers.get(bdef.id, 0.0) + delta_ms
        multiplier = self._output_multiplier(prod)

        while accrued >= interval_ms:
            fraction = 1.0
            if prod.inputs:
                fraction = self._affordable_fraction(prod, owned, limit)
                if fraction <= 0:
                    # stalled: keep the accrued time for a later retry
                    break
                for inp in prod.inputs:
                    spend = self._input_amount(inp.amount, owned) * owned * fraction
                    if spend > 0:
                        self.state_manager.update_resource(
                            inp.resource_id, -spend, f"batch:{bdef.id}"
                        )
            outputs: dict[str, float] = {}
            for out in prod.outputs:
                chance_factor = self._chance_factor(out.chance, offline)
                if chance_factor == 0.0:
                    continue
                amount = out.base_amount * owned * fraction * chance_factor * multiplier
                if offline:
                    amount *= prod.idle_efficiency
                self.state_manager.update_resource(out.resource_id, amount, f"batch:{bdef.id}")
                outputs[out.resource_id] = outputs.get(out.resource_id, 0.0) + amount
            accrued -= interval_ms
            self.state_manager.bus.emit(
                events.BUILDING_BATCH_COMPLETE,
                {"building_id": bdef.id, "fraction": fraction, "outputs": outputs},
            )

        self._batch_timers[bdef.id] = accrued
