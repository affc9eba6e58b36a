"""Explicit wiring of one isolated simulation.

Every collaborator gets its dependencies passed in; nothing is global, so
any number of contexts can run side by side.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Mapping

from idlecore._types import Clock, wall_clock_ms
from idlecore.building_system import BuildingSystem
from idlecore.consumption import ConsumptionProcessor
from idlecore.curve import CurveEvaluator
from idlecore.definition import GameDefinition
from idlecore.events import EventBus
from idlecore.multiplier import MultiplierSystem
from idlecore.production import ProductionProcessor
from idlecore.state import GameState
from idlecore.state_manager import StateManager
from idlecore.synergy import SynergyProcessor
from idlecore.upgrade_system import UpgradeSystem


@dataclass
class SimulationContext:
    definition: GameDefinition
    bus: EventBus
    curves: CurveEvaluator
    multipliers: MultiplierSystem
    state_manager: StateManager
    production: ProductionProcessor
    consumption: ConsumptionProcessor
    synergy: SynergyProcessor
    buildings: BuildingSystem
    upgrades: UpgradeSystem

    @classmethod
    def build(
        cls,
        definition: GameDefinition,
        state: GameState | Mapping[str, Any] | None = None,
        rng: random.Random | None = None,
        clock: Clock = wall_clock_ms,
    ) -> SimulationContext:
        """Wire a fresh context around *state* (a copy of it) or a new game."""
        bus = EventBus()
        curves = definition.curve_evaluator()
        multipliers = MultiplierSystem(definition.stacks, bus)
        if isinstance(state, GameState):
            state = state.clone()
        elif state is not None:
            state = GameState.from_dict(state)
        state_manager = StateManager(definition, bus, clock, state)
        production = ProductionProcessor(
            state_manager,
            multipliers,
            curves,
            rng=rng,
            threshold=definition.config.accumulator_threshold,
        )
        consumption = ConsumptionProcessor(state_manager)
        synergy = SynergyProcessor(definition, state_manager, multipliers, bus)
        upgrades = UpgradeSystem(state_manager, multipliers)
        buildings = BuildingSystem(state_manager, multipliers, curves, production, consumption)
        ctx = cls(
            definition=definition,
            bus=bus,
            curves=curves,
            multipliers=multipliers,
            state_manager=state_manager,
            production=production,
            consumption=consumption,
            synergy=synergy,
            buildings=buildings,
            upgrades=upgrades,
        )
        ctx.refresh_conditions()
        buildings.recalculate_all_production()
        return ctx

    @property
    def state(self) -> GameState:
        return self.state_manager.state

    def refresh_conditions(self, hour: int | None = None) -> None:
        self.multipliers.update_condition_context(self.state_manager.condition_context(hour))

    def close(self) -> None:
        self.synergy.close()
        self.upgrades.close()
