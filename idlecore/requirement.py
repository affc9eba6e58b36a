from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable

from idlecore._types import check_operator, compare

if TYPE_CHECKING:
    from idlecore.state import GameState


class Requirement(ABC):
    """Base class for unlock requirements: boolean predicates on game state."""

    description: str = ""

    @abstractmethod
    def evaluate(self, state: GameState) -> bool: ...

    def __and__(self, other: Requirement) -> Requirement:
        return _AllRequirement([self, other])

    def __or__(self, other: Requirement) -> Requirement:
        return _AnyRequirement([self, other])


# ── Private implementations ──────────────────────────────────────────


class _ResourceRequirement(Requirement):
    def __init__(self, resource_id: str, op: str, threshold: float) -> None:
        check_operator(op)
        self.resource_id = resource_id
        self.op = op
        self.threshold = threshold
        self.description = f"{resource_id} {op} {threshold:g}"

    def evaluate(self, state: GameState) -> bool:
        return compare(state.resource_amount(self.resource_id), self.op, self.threshold)


class _LifetimeRequirement(Requirement):
    def __init__(self, resource_id: str, op: str, threshold: float) -> None:
        check_operator(op)
        self.resource_id = resource_id
        self.op = op
        self.threshold = threshold
        self.description = f"lifetime {resource_id} {op} {threshold:g}"

    def evaluate(self, state: GameState) -> bool:
        return compare(state.lifetime(self.resource_id), self.op, self.threshold)


class _OwnsRequirement(Requirement):
    def __init__(self, building_id: str, count: int) -> None:
        self.building_id = building_id
        self.count = count
        self.description = f"own {count} {building_id}"

    def evaluate(self, state: GameState) -> bool:
        return state.building_count(self.building_id) >= self.count


class _UpgradeRequirement(Requirement):
    def __init__(self, upgrade_id: str) -> None:
        self.upgrade_id = upgrade_id
        self.description = f"upgrade {upgrade_id}"

    def evaluate(self, state: GameState) -> bool:
        return state.is_upgrade_purchased(self.upgrade_id)


class _EraRequirement(Requirement):
    def __init__(self, era: int) -> None:
        self.era = era
        self.description = f"era {era}"

    def evaluate(self, state: GameState) -> bool:
        return state.current_era >= self.era


class _ClicksRequirement(Requirement):
    def __init__(self, clicks: int) -> None:
        self.clicks = clicks
        self.description = f"{clicks} clicks"

    def evaluate(self, state: GameState) -> bool:
        return state.statistics.total_clicks >= self.clicks


class _PlayTimeRequirement(Requirement):
    def __init__(self, ms: float) -> None:
        self.ms = ms
        self.description = f"played {ms / 1000:g}s"

    def evaluate(self, state: GameState) -> bool:
        return state.statistics.total_play_time_ms >= self.ms


class _PrestigeRequirement(Requirement):
    def __init__(self, level: int) -> None:
        self.level = level
        self.description = f"prestige {level}"

    def evaluate(self, state: GameState) -> bool:
        return state.prestige.prestige_count >= self.level


class _AllRequirement(Requirement):
    def __init__(self, reqs: list[Requirement]) -> None:
        self.reqs = reqs
        self.description = " and ".join(r.description for r in reqs)

    def evaluate(self, state: GameState) -> bool:
        return all(r.evaluate(state) for r in self.reqs)


class _AnyRequirement(Requirement):
    def __init__(self, reqs: list[Requirement]) -> None:
        self.reqs = reqs
        self.description = " or ".join(r.description for r in reqs)

    def evaluate(self, state: GameState) -> bool:
        return any(r.evaluate(state) for r in self.reqs)


# ── Public factory ───────────────────────────────────────────────────


class Req:
    """Factory for built-in requirement types."""

    @staticmethod
    def resource(resource_id: str, threshold: float, op: str = ">=") -> Requirement:
        return _ResourceRequirement(resource_id, op, threshold)

    @staticmethod
    def lifetime(resource_id: str, threshold: float, op: str = ">=") -> Requirement:
        return _LifetimeRequirement(resource_id, op, threshold)

    @staticmethod
    def owns(building_id: str, count: int = 1) -> Requirement:
        return _OwnsRequirement(building_id, count)

    @staticmethod
    def upgrade(upgrade_id: str) -> Requirement:
        return _UpgradeRequirement(upgrade_id)

    @staticmethod
    def era(era: int) -> Requirement:
        return _EraRequirement(era)

    @staticmethod
    def clicks(clicks: int) -> Requirement:
        return _ClicksRequirement(clicks)

    @staticmethod
    def play_time(ms: float) -> Requirement:
        return _PlayTimeRequirement(ms)

    @staticmethod
    def prestige(level: int) -> Requirement:
        return _PrestigeRequirement(level)

    @staticmethod
    def all(*reqs: Requirement) -> Requirement:
        return _AllRequirement(list(reqs))

    @staticmethod
    def any(*reqs: Requirement) -> Requirement:
        return _AnyRequirement(list(reqs))


class UnlockEvaluator:
    """Pure predicate over the current state; holds no state of its own."""

    @staticmethod
    def all_met(requirements: Iterable[Requirement], state: GameState) -> bool:
        return all(r.evaluate(state) for r in requirements)

    @staticmethod
    def unmet(requirements: Iterable[Requirement], state: GameState) -> list[str]:
        """Descriptions of the requirements that are not yet satisfied."""
        return [r.description for r in requirements if not r.evaluate(state)]
