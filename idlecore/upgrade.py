from __future__ import annotations

from dataclasses import dataclass, field

from idlecore.requirement import Requirement


@dataclass(frozen=True)
class UpgradeEffect:
    """Multiplier source pushed into ``stack_id`` once purchased."""

    stack_id: str
    value: float


# ── Special effects ──────────────────────────────────────────────────


class SpecialEffect:
    """Marker base for one-off upgrade side effects."""


@dataclass(frozen=True)
class UnlockBuilding(SpecialEffect):
    building_id: str


@dataclass(frozen=True)
class UnlockResource(SpecialEffect):
    resource_id: str


@dataclass(frozen=True)
class UnlockFeature(SpecialEffect):
    feature_id: str


@dataclass(frozen=True)
class GrantResources(SpecialEffect):
    grants: dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for resource_id, amount in self.grants.items():
            if amount < 0:
                raise ValueError(f"Grant of {resource_id!r} must be >= 0, got {amount}")


@dataclass(frozen=True)
class UnlockEra(SpecialEffect):
    era: int


@dataclass
class UpgradeDef:
    """Static definition of a one-time upgrade."""

    id: str
    display_name: str = ""
    description: str = ""
    category: str = "production"
    era: int = 1
    cost: dict[str, float] = field(default_factory=dict)
    effects: list[UpgradeEffect] = field(default_factory=list)
    special_effects: list[SpecialEffect] = field(default_factory=list)
    prerequisites: list[str] = field(default_factory=list)
    requirements: list[Requirement] = field(default_factory=list)
    visible_before_unlock: bool = False
    resets_on_prestige: bool = True

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.id
        for effect in self.special_effects:
            if not isinstance(effect, SpecialEffect):
                raise TypeError(
                    f"Upgrade {self.id!r}: unsupported special effect {effect!r}"
                )


@dataclass
class UpgradeState:
    purchased: bool = False
    tier: int = 0
    purchase_count: int = 0


@dataclass(frozen=True)
class UpgradeInfo:
    """Read-only, display-ready snapshot of one upgrade."""

    id: str
    display_name: str
    description: str
    category: str
    purchased: bool
    unlocked: bool
    visible: bool
    can_afford: bool
    cost: dict[str, float]
    effects: list[UpgradeEffect] = field(default_factory=list)
