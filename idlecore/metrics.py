from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from idlecore import events

if TYPE_CHECKING:
    from idlecore.events import EventBus
    from idlecore.state import GameState


@dataclass
class ResourceSnapshot:
    time: float
    resource_id: str
    value: float
    rate: float
    lifetime: float


@dataclass
class BuildingSnapshot:
    time: float
    building_id: str
    owned: int
    health: float | None = None


@dataclass
class PurchaseEvent:
    time: float
    kind: str
    item_id: str
    cost_paid: dict[str, float]
    resources_after: dict[str, float] = field(default_factory=dict)


@dataclass
class LossEvent:
    time: float
    building_id: str
    remaining: int
    cause: str = "starvation"


@dataclass
class StallEvent:
    time: float
    duration: float = 0.0


class MetricsCollector:
    """Collects simulation metrics at configurable intervals.

    Times are simulated seconds since the run began.
    """

    def __init__(self, snapshot_interval: float = 1.0) -> None:
        self.snapshot_interval = snapshot_interval
        self._last_snapshot_time: float | None = None
        self._unsubscribers: list[Callable[[], None]] = []

        self.resource_snapshots: list[ResourceSnapshot] = []
        self.building_snapshots: list[BuildingSnapshot] = []
        self.purchases: list[PurchaseEvent] = []
        self.losses: list[LossEvent] = []
        self.stalls: list[StallEvent] = []

    def attach(self, bus: EventBus, now: Callable[[], float]) -> None:
        """Record building deaths from *bus*, stamped with ``now()`` seconds."""

        def on_died(payload: dict) -> None:
            self.record_loss(
                now(),
                payload["building_id"],
                int(payload.get("remaining", 0)),
                payload.get("cause", "starvation"),
            )

        self._unsubscribers.append(bus.on(events.BUILDING_DIED, on_died))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def record_tick(self, time: float, state: GameState, rates: dict[str, float]) -> None:
        """Record a snapshot if enough time has passed."""
        last = self._last_snapshot_time
        if last is None or time - last >= self.snapshot_interval:
            self._take_snapshot(time, state, rates)
            self._last_snapshot_time = time

    def record_purchase(
        self,
        time: float,
        state: GameState,
        kind: str,
        item_id: str,
        cost_paid: dict[str, float],
    ) -> None:
        resources_after = {rid: rs.current for rid, rs in state.resources.items()}
        self.purchases.append(
            PurchaseEvent(
                time=time,
                kind=kind,
                item_id=item_id,
                cost_paid=dict(cost_paid),
                resources_after=resources_after,
            )
        )

    def record_loss(
        self, time: float, building_id: str, remaining: int, cause: str = "starvation"
    ) -> None:
        self.losses.append(LossEvent(time, building_id, remaining, cause))

    def record_stall(self, time: float, duration: float = 0.0) -> None:
        self.stalls.append(StallEvent(time=time, duration=duration))

    def _take_snapshot(self, time: float, state: GameState, rates: dict[str, float]) -> None:
        for rid, rs in state.resources.items():
            if not rs.unlocked:
                continue
            self.resource_snapshots.append(
                ResourceSnapshot(
                    time=time,
                    resource_id=rid,
                    value=rs.current,
                    rate=rates.get(rid, 0.0),
                    lifetime=rs.lifetime,
                )
            )
        for bid, bs in state.buildings.items():
            self.building_snapshots.append(
                BuildingSnapshot(time=time, building_id=bid, owned=bs.owned, health=bs.health)
            )
