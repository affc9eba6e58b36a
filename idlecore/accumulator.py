from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

Sink = Callable[[str, str, float], None]


@dataclass(frozen=True)
class FlushResult:
    building_id: str
    resource_id: str
    amount: float


class ProductionAccumulator:
    """Buffers fractional production per (building, resource).

    Amounts pass to *sink* only once the buffered total reaches ``threshold``,
    so tiny per-tick increments do not churn the ledger. Nothing is lost: the
    buffer carries over and :meth:`flush_all` drains whatever remains.
    """

    def __init__(self, sink: Sink, threshold: float = 0.01) -> None:
        if threshold < 0:
            raise ValueError(f"threshold must be >= 0, got {threshold}")
        self.sink = sink
        self.threshold = threshold
        self._buffers: dict[tuple[str, str], float] = {}

    def add(self, building_id: str, resource_id: str, amount: float) -> None:
        key = (building_id, resource_id)
        self._buffers[key] = self._buffers.get(key, 0.0) + amount

    def peek(self, building_id: str, resource_id: str) -> float:
        return self._buffers.get((building_id, resource_id), 0.0)

    def should_flush(self, building_id: str, resource_id: str) -> bool:
        return self.peek(building_id, resource_id) >= self.threshold

    def flush(self, building_id: str, resource_id: str) -> FlushResult | None:
        key = (building_id, resource_id)
        amount = self._buffers.get(key, 0.0)
        if amount <= 0:
            return None
        self._buffers[key] = 0.0
        self.sink(building_id, resource_id, amount)
        return FlushResult(building_id, resource_id, amount)

    def add_and_flush(
        self, building_id: str, resource_id: str, amount: float
    ) -> FlushResult | None:
        self.add(building_id, resource_id, amount)
        if self.should_flush(building_id, resource_id):
            return self.flush(building_id, resource_id)
        return None

    def flush_all(self) -> list[FlushResult]:
        results = []
        for building_id, resource_id in list(self._buffers):
            result = self.flush(building_id, resource_id)
            if result is not None:
                results.append(result)
        return results

    def pending(self) -> dict[tuple[str, str], float]:
        return {k: v for k, v in self._buffers.items() if v > 0}

    def clear(self) -> None:
        self._buffers.clear()
