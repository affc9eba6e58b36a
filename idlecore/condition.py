"""Activation conditions for multiplier sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping


@dataclass(frozen=True)
class ConditionContext:
    """Read-only view of the state that conditions are evaluated against."""

    resources: Mapping[str, float] = field(default_factory=dict)
    buildings: Mapping[str, int] = field(default_factory=dict)
    upgrades: frozenset[str] = frozenset()
    era: int = 1
    prestige_level: int = 0
    active_events: frozenset[str] = frozenset()
    current_hour: int = 0


class Condition(ABC):
    """A boolean test over a :class:`ConditionContext`."""

    @abstractmethod
    def evaluate(self, ctx: ConditionContext) -> bool: ...

    def __and__(self, other: Condition) -> Condition:
        return AllOf((self, other))

    def __or__(self, other: Condition) -> Condition:
        return AnyOf((self, other))

    def __invert__(self) -> Condition:
        return Not(self)


def _require_id(value: str, what: str) -> None:
    if not value:
        raise ValueError(f"{what} must not be empty")


@dataclass(frozen=True)
class ResourceAtLeast(Condition):
    resource_id: str
    amount: float = 0.0

    def __post_init__(self) -> None:
        _require_id(self.resource_id, "resource_id")

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.resources.get(self.resource_id, 0.0) >= self.amount


@dataclass(frozen=True)
class ResourceAtMost(Condition):
    resource_id: str
    amount: float = 0.0

    def __post_init__(self) -> None:
        _require_id(self.resource_id, "resource_id")

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.resources.get(self.resource_id, 0.0) <= self.amount


@dataclass(frozen=True)
class BuildingOwned(Condition):
    building_id: str
    count: int = 1

    def __post_init__(self) -> None:
        _require_id(self.building_id, "building_id")
        if self.count < 0:
            raise ValueError(f"count must be non-negative, got {self.count}")

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.buildings.get(self.building_id, 0) >= self.count


@dataclass(frozen=True)
class UpgradePurchased(Condition):
    upgrade_id: str

    def __post_init__(self) -> None:
        _require_id(self.upgrade_id, "upgrade_id")

    def evaluate(self, ctx: ConditionContext) -> bool:
        return self.upgrade_id in ctx.upgrades


@dataclass(frozen=True)
class EraAtLeast(Condition):
    era: int = 1

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.era >= self.era


@dataclass(frozen=True)
class EraEquals(Condition):
    era: int = 1

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.era == self.era


@dataclass(frozen=True)
class TimeOfDay(Condition):
    """True between ``start_hour`` (inclusive) and ``end_hour`` (exclusive).

    A window with ``start_hour > end_hour`` wraps past midnight, so
    ``TimeOfDay(22, 6)`` holds from 22:00 until 06:00.
    """

    start_hour: int = 0
    end_hour: int = 24

    def __post_init__(self) -> None:
        for hour in (self.start_hour, self.end_hour):
            if not 0 <= hour <= 24:
                raise ValueError(f"Hour out of range 0-24: {hour}")

    def evaluate(self, ctx: ConditionContext) -> bool:
        hour = ctx.current_hour
        if self.start_hour <= self.end_hour:
            return self.start_hour <= hour < self.end_hour
        return hour >= self.start_hour or hour < self.end_hour


@dataclass(frozen=True)
class EventActive(Condition):
    event_id: str

    def __post_init__(self) -> None:
        _require_id(self.event_id, "event_id")

    def evaluate(self, ctx: ConditionContext) -> bool:
        return self.event_id in ctx.active_events


@dataclass(frozen=True)
class PrestigeAtLeast(Condition):
    level: int = 0

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.prestige_level >= self.level


@dataclass(frozen=True)
class AllOf(Condition):
    conditions: tuple[Condition, ...] = ()

    def __post_init__(self) -> None:
        _check_children(self.conditions)

    def evaluate(self, ctx: ConditionContext) -> bool:
        return all(c.evaluate(ctx) for c in self.conditions)


@dataclass(frozen=True)
class AnyOf(Condition):
    conditions: tuple[Condition, ...] = ()

    def __post_init__(self) -> None:
        _check_children(self.conditions)

    def evaluate(self, ctx: ConditionContext) -> bool:
        return any(c.evaluate(ctx) for c in self.conditions)


@dataclass(frozen=True)
class Not(Condition):
    condition: Condition

    def __post_init__(self) -> None:
        _check_children((self.condition,))

    def evaluate(self, ctx: ConditionContext) -> bool:
        return not self.condition.evaluate(ctx)


def _check_children(children: tuple[Condition, ...]) -> None:
    for child in children:
        if not isinstance(child, Condition):
            raise TypeError(f"Expected a Condition, got {type(child).__name__}")


# ── Public factory ───────────────────────────────────────────────────


class Cond:
    """Factory for built-in condition types."""

    @staticmethod
    def resource_at_least(resource_id: str, amount: float) -> Condition:
        return ResourceAtLeast(resource_id, amount)

    @staticmethod
    def resource_at_most(resource_id: str, amount: float) -> Condition:
        return ResourceAtMost(resource_id, amount)

    @staticmethod
    def owns(building_id: str, count: int = 1) -> Condition:
        return BuildingOwned(building_id, count)

    @staticmethod
    def upgrade(upgrade_id: str) -> Condition:
        return UpgradePurchased(upgrade_id)

    @staticmethod
    def era_at_least(era: int) -> Condition:
        return EraAtLeast(era)

    @staticmethod
    def era_is(era: int) -> Condition:
        return EraEquals(era)

    @staticmethod
    def hours(start_hour: int, end_hour: int) -> Condition:
        return TimeOfDay(start_hour, end_hour)

    @staticmethod
    def event(event_id: str) -> Condition:
        return EventActive(event_id)

    @staticmethod
    def prestige(level: int) -> Condition:
        return PrestigeAtLeast(level)

    @staticmethod
    def all(*conditions: Condition) -> Condition:
        return AllOf(tuple(conditions))

    @staticmethod
    def any(*conditions: Condition) -> Condition:
        return AnyOf(tuple(conditions))

    @staticmethod
    def negate(condition: Condition) -> Condition:
        return Not(condition)
