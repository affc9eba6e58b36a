from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from idlecore.metrics import (
    BuildingSnapshot,
    LossEvent,
    MetricsCollector,
    PurchaseEvent,
    ResourceSnapshot,
    StallEvent,
)

if TYPE_CHECKING:
    from idlecore.state import GameState


@dataclass
class SimulationReport:
    """Container for simulation results and derived metrics."""

    strategy_description: str = ""
    outcome: str = ""
    total_time: float = 0.0
    seed: int | None = None

    # Raw metrics
    resource_snapshots: list[ResourceSnapshot] = field(default_factory=list)
    building_snapshots: list[BuildingSnapshot] = field(default_factory=list)
    purchases: list[PurchaseEvent] = field(default_factory=list)
    losses: list[LossEvent] = field(default_factory=list)
    stalls: list[StallEvent] = field(default_factory=list)

    # Final state
    final_resources: dict[str, float] = field(default_factory=dict)
    final_lifetime: dict[str, float] = field(default_factory=dict)
    final_buildings: dict[str, int] = field(default_factory=dict)
    upgrades_purchased: list[str] = field(default_factory=list)

    # Derived metrics
    purchase_gaps: list[float] = field(default_factory=list)
    max_purchase_gap: float = 0.0
    mean_purchase_gap: float = 0.0
    purchases_per_minute: float = 0.0

    def first_purchase_time(self, item_id: str) -> float | None:
        for p in self.purchases:
            if p.item_id == item_id:
                return p.time
        return None

    def resource_series(self, resource_id: str) -> list[tuple[float, float]]:
        """Return (time, value) series for a resource."""
        return [
            (s.time, s.value)
            for s in self.resource_snapshots
            if s.resource_id == resource_id
        ]

    def rate_series(self, resource_id: str) -> list[tuple[float, float]]:
        """Return (time, net rate) series for a resource."""
        return [
            (s.time, s.rate)
            for s in self.resource_snapshots
            if s.resource_id == resource_id
        ]

    def building_series(self, building_id: str) -> list[tuple[float, int]]:
        return [
            (s.time, s.owned)
            for s in self.building_snapshots
            if s.building_id == building_id
        ]


def build_report(
    collector: MetricsCollector,
    strategy_description: str,
    outcome: str,
    total_time: float,
    final_state: GameState,
    seed: int | None = None,
) -> SimulationReport:
    """Build a SimulationReport from collected metrics and the final state."""
    purchase_gaps: list[float] = []
    purchase_times = sorted(p.time for p in collector.purchases)
    if purchase_times:
        purchase_gaps.append(purchase_times[0])  # gap from t=0 to first purchase
        for i in range(1, len(purchase_times)):
            purchase_gaps.append(purchase_times[i] - purchase_times[i - 1])

    max_gap = max(purchase_gaps) if purchase_gaps else 0.0
    mean_gap = (sum(purchase_gaps) / len(purchase_gaps)) if purchase_gaps else 0.0
    ppm = (len(collector.purchases) / total_time * 60.0) if total_time > 0 else 0.0

    return SimulationReport(
        strategy_description=strategy_description,
        outcome=outcome,
        total_time=total_time,
        seed=seed,
        resource_snapshots=collector.resource_snapshots,
        building_snapshots=collector.building_snapshots,
        purchases=collector.purchases,
        losses=collector.losses,
        stalls=collector.stalls,
        final_resources={rid: rs.current for rid, rs in final_state.resources.items()},
        final_lifetime={rid: rs.lifetime for rid, rs in final_state.resources.items()},
        final_buildings={bid: bs.owned for bid, bs in final_state.buildings.items()},
        upgrades_purchased=sorted(final_state.purchased_upgrades),
        purchase_gaps=purchase_gaps,
        max_purchase_gap=max_gap,
        mean_purchase_gap=mean_gap,
        purchases_per_minute=ppm,
    )
