from __future__ import annotations

import logging
import math

from idlecore.definition import GameDefinition
from idlecore.metrics import MetricsCollector
from idlecore.report import SimulationReport, build_report
from idlecore.runtime import GameRuntime
from idlecore.strategy import BUILDING, UPGRADE, Candidate, Strategy

logger = logging.getLogger(__name__)

MAX_TICKS = 10_000_000
MAX_PURCHASES_PER_TICK = 100


class SimulatedClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


def affordable_candidates(runtime: GameRuntime) -> list[Candidate]:
    """Buildings and upgrades the player could buy right now."""
    found: list[Candidate] = []
    for info in runtime.get_available_buildings():
        if not info.unlocked or not info.can_afford or not info.current_cost:
            continue
        if info.max_owned is not None and info.owned >= info.max_owned:
            continue
        found.append(Candidate(BUILDING, info.id, info.current_cost))
    for info in runtime.get_available_upgrades():
        if info.unlocked and info.can_afford and not info.purchased:
            found.append(Candidate(UPGRADE, info.id, info.cost))
    return found


class Simulation:
    """Headless run of a game definition on simulated time.

    Every tick goes through the runtime's error boundary with a fixed delta,
    so a run with the same definition, strategy and seed is reproducible.
    """

    def __init__(
        self,
        definition: GameDefinition,
        strategy: Strategy,
        duration: float = 3600.0,
        tick_ms: float | None = None,
        seed: int | None = None,
        snapshot_interval: float = 1.0,
        start_buildings: dict[str, int] | None = None,
        start_ms: float = 0.0,
    ) -> None:
        self.definition = definition
        self.strategy = strategy
        self.duration = duration
        self.tick_ms = tick_ms if tick_ms is not None else definition.config.timing.base_tick_ms
        self.seed = seed
        self.elapsed = 0.0

        self.clock = SimulatedClock(start_ms)
        self.runtime = GameRuntime(definition, clock=self.clock, seed=seed)
        self.collector = MetricsCollector(snapshot_interval=snapshot_interval)
        self.collector.attach(self.runtime.bus, lambda: self.elapsed)

        if start_buildings:
            self._grant_buildings(start_buildings)

    def run(self) -> SimulationReport:
        sm = self.runtime.state_manager
        outcome = "Duration reached"
        tick_count = 0
        self.collector.record_tick(0.0, sm.state, self.runtime.net_rates())

        while self.elapsed < self.duration - 1e-9:
            tick_count += 1
            if tick_count > MAX_TICKS:
                outcome = "Max ticks reached"
                break

            # 1. Advance time
            step_ms = min(self.tick_ms, (self.duration - self.elapsed) * 1000.0)
            self.elapsed += step_ms / 1000.0
            self.clock.advance(step_ms)
            self.runtime.loop.process_tick(step_ms)
            if self.runtime.loop.is_paused:
                outcome = "Aborted: repeated tick errors"
                break

            # 2. Process clicks
            clicks = self.strategy.get_clicks(sm.state, step_ms / 1000.0)
            for target, count in clicks.items():
                for _ in range(count):
                    self.runtime.process_click(target)

            # 3. Evaluate purchases
            self._make_purchases()

            # 4. Record metrics
            rates = self.runtime.net_rates()
            self.collector.record_tick(self.elapsed, sm.state, rates)

            # Safety: NaN/Inf detection
            for rs in sm.state.resources.values():
                if math.isnan(rs.current) or math.isinf(rs.current):
                    return self._build_report("Aborted: NaN/Inf detected")

            if self._is_stalled(rates, clicks):
                self.collector.record_stall(self.elapsed, self.duration - self.elapsed)
                outcome = "Stall detected"
                break

        return self._build_report(outcome)

    def _make_purchases(self) -> None:
        state = self.runtime.state
        for _ in range(MAX_PURCHASES_PER_TICK):
            choices = self.strategy.decide_purchases(state, affordable_candidates(self.runtime))
            if not any(self._purchase(c) for c in choices):
                return

    def _purchase(self, candidate: Candidate) -> bool:
        if candidate.kind == BUILDING:
            ok = self.runtime.purchase_building(candidate.id)
        else:
            ok = self.runtime.purchase_upgrade(candidate.id)
        if ok:
            self.collector.record_purchase(
                self.elapsed, self.runtime.state, candidate.kind, candidate.id, candidate.cost
            )
        return ok

    def _is_stalled(self, rates: dict[str, float], clicks: dict[str, int]) -> bool:
        """Nothing is produced, nothing is clicked and nothing can be bought."""
        if clicks or any(rate > 0 for rate in rates.values()):
            return False
        if self.strategy.click_profile and self.strategy.click_profile.targets:
            return False
        return not affordable_candidates(self.runtime)

    def _grant_buildings(self, counts: dict[str, int]) -> None:
        sm = self.runtime.state_manager
        with sm.batch():
            for building_id, count in counts.items():
                if self.definition.get_building(building_id) is None:
                    logger.warning("Cannot grant unknown building %r", building_id)
                    continue
                sm.unlock_building(building_id)
                sm.update_building(building_id, count)
        self.runtime.buildings.recalculate_all_production()

    def _build_report(self, outcome: str) -> SimulationReport:
        self.collector.detach()
        return build_report(
            collector=self.collector,
            strategy_description=self.strategy.describe(),
            outcome=outcome,
            total_time=self.elapsed,
            final_state=self.runtime.state,
            seed=self.seed,
        )
