from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from idlecore.curve import CurveRef
from idlecore.requirement import Requirement


@dataclass(frozen=True)
class ProductionOutput:
    """Resource produced per unit every ``base_interval_ms``."""

    resource_id: str
    base_amount: float
    chance: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 < self.chance <= 1.0:
            raise ValueError(f"chance must be in (0, 1], got {self.chance}")
        if self.base_amount < 0:
            raise ValueError(f"base_amount must be >= 0, got {self.base_amount}")


@dataclass(frozen=True)
class ProductionInput:
    """Resource consumed per unit every interval. ``amount`` may be a curve of ``owned``."""

    resource_id: str
    amount: CurveRef = 0.0


@dataclass
class ProductionConfig:
    outputs: list[ProductionOutput] = field(default_factory=list)
    inputs: list[ProductionInput] = field(default_factory=list)
    base_interval_ms: float = 1000.0
    amount_stack_id: str | None = None
    speed_stack_id: str | None = None
    batch: bool = False
    idle_efficiency: float = 1.0

    @property
    def interval_seconds(self) -> float:
        return self.base_interval_ms / 1000.0

    @property
    def is_converter(self) -> bool:
        return bool(self.inputs)


class DeathPolicy(Enum):
    REMOVE = "remove"
    DISABLE = "disable"


@dataclass(frozen=True)
class ConsumedResource:
    resource_id: str
    amount_per_tick: float
    health_loss_per_missing: float = 1.0


@dataclass
class ConsumptionConfig:
    """Upkeep a building needs every tick to stay healthy."""

    resources: list[ConsumedResource] = field(default_factory=list)
    max_health: float = 100.0
    on_death: DeathPolicy = DeathPolicy.REMOVE

    def __post_init__(self) -> None:
        if self.max_health <= 0:
            raise ValueError(f"max_health must be positive, got {self.max_health}")


@dataclass(frozen=True)
class Synergy:
    """Each owned unit adds ``bonus_per_unit`` to the target building's production."""

    target_building: str
    bonus_per_unit: float


@dataclass(frozen=True)
class BuildingEffect:
    """A multiplier pushed into ``stack_id`` while the building is owned.

    With ``per_unit`` set the value is ``1 + owned * per_unit``; otherwise it
    is the fixed ``1 + value``.
    """

    stack_id: str
    value: float = 0.0
    per_unit: float | None = None

    def resolve(self, owned: int) -> float:
        if self.per_unit is not None:
            return 1.0 + owned * self.per_unit
        return 1.0 + self.value


@dataclass
class BuildingDef:
    """Static definition of a building."""

    id: str
    display_name: str = ""
    description: str = ""
    category: str = "production"
    era: int = 1
    base_cost: dict[str, float] = field(default_factory=dict)
    cost_curve: CurveRef = "cost_standard"
    subsequent_cost: dict[str, float] | None = None
    max_owned: int | None = None
    requirements: list[Requirement] = field(default_factory=list)
    production: ProductionConfig | None = None
    consumption: ConsumptionConfig | None = None
    synergies: list[Synergy] = field(default_factory=list)
    effects: list[BuildingEffect] = field(default_factory=list)
    unlocked: bool = False
    visible_before_unlock: bool = True

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.id
        if self.max_owned is not None and self.max_owned < 0:
            raise ValueError(f"Building {self.id!r}: max_owned must be >= 0")


@dataclass
class BuildingState:
    """Mutable runtime state for a building."""

    owned: int = 0
    total_purchased: int = 0
    unlocked: bool = False
    production_rate: float = 0.0
    health: float | None = None
    max_health: float | None = None
    resource_limit: float = 1.0
    disabled: bool = False


@dataclass(frozen=True)
class HealthInfo:
    current: float
    max: float
    percentage: float
    is_critical: bool


@dataclass(frozen=True)
class BuildingInfo:
    """Read-only, display-ready snapshot of one building."""

    id: str
    display_name: str
    category: str
    era: int
    owned: int
    unlocked: bool
    can_afford: bool
    current_cost: dict[str, float]
    production_per_second: dict[str, float]
    max_owned: int | None = None
    health: HealthInfo | None = None
    consumption_per_tick: dict[str, float] = field(default_factory=dict)
    disabled: bool = False
    resource_limit: float = 1.0
    batch_progress: float | None = None
