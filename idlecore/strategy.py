from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from idlecore.requirement import Requirement

if TYPE_CHECKING:
    from idlecore.state import GameState

BUILDING = "building"
UPGRADE = "upgrade"


@dataclass(frozen=True)
class Candidate:
    """Something the player could buy right now."""

    kind: str
    id: str
    cost: dict[str, float] = field(default_factory=dict)


@dataclass
class ClickProfile:
    """Configures click behavior for strategies."""

    targets: dict[str, float] = field(default_factory=dict)  # resource -> CPS
    active_until: Requirement | None = None

    def get_clicks(self, state: GameState, duration: float) -> dict[str, int]:
        """Return number of clicks per target for the given duration."""
        if self.active_until is not None and self.active_until.evaluate(state):
            return {}
        result: dict[str, int] = {}
        for resource_id, cps in self.targets.items():
            clicks = int(cps * duration)
            if clicks > 0:
                result[resource_id] = clicks
        return result


class Strategy(ABC):
    """Base class for simulation strategies."""

    def __init__(self, click_profile: ClickProfile | None = None) -> None:
        self.click_profile = click_profile

    @abstractmethod
    def decide_purchases(
        self, state: GameState, affordable: list[Candidate]
    ) -> list[Candidate]:
        """Return the candidates to buy, in order."""
        ...

    def get_clicks(self, state: GameState, duration: float) -> dict[str, int]:
        if self.click_profile:
            return self.click_profile.get_clicks(state, duration)
        return {}

    @abstractmethod
    def describe(self) -> str: ...

    def _click_suffix(self) -> str:
        if self.click_profile and self.click_profile.targets:
            cps = ", ".join(f"{k}:{v}" for k, v in self.click_profile.targets.items())
            return f" ({cps} CPS)"
        return ""


class Idle(Strategy):
    """Never buys anything. Useful to measure raw production."""

    def decide_purchases(
        self, state: GameState, affordable: list[Candidate]
    ) -> list[Candidate]:
        return []

    def describe(self) -> str:
        return "Idle" + self._click_suffix()


class GreedyCheapest(Strategy):
    """Buy the cheapest affordable building or upgrade first."""

    def __init__(
        self,
        click_profile: ClickProfile | None = None,
        cost_weights: dict[str, float] | None = None,
        include_upgrades: bool = True,
    ) -> None:
        super().__init__(click_profile)
        self.cost_weights = cost_weights or {}
        self.include_upgrades = include_upgrades

    def _weighted_cost(self, cost: dict[str, float]) -> float:
        return sum(amount * self.cost_weights.get(rid, 1.0) for rid, amount in cost.items())

    def decide_purchases(
        self, state: GameState, affordable: list[Candidate]
    ) -> list[Candidate]:
        choices = [
            c for c in affordable if self.include_upgrades or c.kind == BUILDING
        ]
        return sorted(choices, key=lambda c: self._weighted_cost(c.cost))

    def describe(self) -> str:
        return "GreedyCheapest" + self._click_suffix()


class PriorityList(Strategy):
    """Follow a designer-specified building order, then defer to a fallback."""

    def __init__(
        self,
        priorities: list[tuple[str, int]],
        fallback: Strategy | None = None,
        click_profile: ClickProfile | None = None,
    ) -> None:
        super().__init__(click_profile)
        self.priorities = priorities  # (building_id, target_count)
        self.fallback = fallback

    def decide_purchases(
        self, state: GameState, affordable: list[Candidate]
    ) -> list[Candidate]:
        by_id = {c.id: c for c in affordable if c.kind == BUILDING}
        for building_id, target_count in self.priorities:
            if state.building_count(building_id) >= target_count:
                continue
            # wait for the next priority instead of spending elsewhere
            if building_id in by_id:
                return [by_id[building_id]]
            return []
        if self.fallback:
            return self.fallback.decide_purchases(state, affordable)
        return []

    def describe(self) -> str:
        items = ", ".join(f"{bid}x{count}" for bid, count in self.priorities)
        return f"PriorityList([{items}])" + self._click_suffix()


STRATEGY_REGISTRY: dict[str, type[Strategy]] = {
    "greedy_cheapest": GreedyCheapest,
    "idle": Idle,
    "priority_list": PriorityList,
}
