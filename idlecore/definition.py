from __future__ import annotations

import warnings
from dataclasses import dataclass, field

from idlecore.building import BuildingDef
from idlecore.curve import Curve, CurveEvaluator
from idlecore.multiplier import MultiplierStack
from idlecore.resource import ResourceDef
from idlecore.state import DEFAULT_FEATURES
from idlecore.upgrade import (
    GrantResources,
    UnlockBuilding,
    UnlockResource,
    UpgradeDef,
)


@dataclass
class TimingConfig:
    """Tick cadence and offline catch-up limits."""

    base_tick_ms: float = 100.0
    idle_tick_ms: float = 1000.0
    max_offline_seconds: float = 86400.0
    offline_efficiency: float = 0.5
    auto_save_interval_ms: float = 30000.0
    max_consecutive_errors: int = 5

    def __post_init__(self) -> None:
        if self.base_tick_ms <= 0 or self.idle_tick_ms <= 0:
            raise ValueError("Tick intervals must be positive")
        if not 0.0 <= self.offline_efficiency <= 1.0:
            raise ValueError(
                f"offline_efficiency must be in [0, 1], got {self.offline_efficiency}"
            )


@dataclass
class DevModeConfig:
    enabled: bool = False
    time_multiplier: float = 1.0
    strict: bool = False


@dataclass
class SaveConfig:
    save_key: str = "idlecore_save"
    max_backups: int = 3
    version: str = "1.0.0"


@dataclass
class GameConfig:
    """Top-level game configuration."""

    name: str = "Untitled"
    timing: TimingConfig = field(default_factory=TimingConfig)
    dev_mode: DevModeConfig = field(default_factory=DevModeConfig)
    save: SaveConfig = field(default_factory=SaveConfig)
    accumulator_threshold: float = 0.01
    starting_features: frozenset[str] = DEFAULT_FEATURES


@dataclass
class ClickTarget:
    """Manual harvest: each click yields ``base_value`` times the click_power stack."""

    resource: str = ""
    base_value: float = 1.0


# Stacks every game gets unless it defines its own
CORE_STACKS = (
    MultiplierStack("all_production", "All Production", "production"),
    MultiplierStack("building_cost", "Building Cost", "cost", min_value=0.01),
    MultiplierStack("upgrade_cost", "Upgrade Cost", "cost", min_value=0.01),
    MultiplierStack("click_power", "Click Power", "click"),
)


@dataclass
class GameDefinition:
    """Complete static content of an idle game."""

    config: GameConfig = field(default_factory=GameConfig)
    resources: list[ResourceDef] = field(default_factory=list)
    buildings: list[BuildingDef] = field(default_factory=list)
    upgrades: list[UpgradeDef] = field(default_factory=list)
    stacks: list[MultiplierStack] = field(default_factory=list)
    curves: dict[str, Curve] = field(default_factory=dict)
    click_targets: list[ClickTarget] = field(default_factory=list)

    # Lookup dicts built in __post_init__
    _resources_by_id: dict[str, ResourceDef] = field(
        default_factory=dict, init=False, repr=False
    )
    _buildings_by_id: dict[str, BuildingDef] = field(
        default_factory=dict, init=False, repr=False
    )
    _upgrades_by_id: dict[str, UpgradeDef] = field(
        default_factory=dict, init=False, repr=False
    )
    _click_targets_by_resource: dict[str, ClickTarget] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self) -> None:
        declared = {s.id for s in self.stacks}
        self.stacks = list(self.stacks) + [s for s in CORE_STACKS if s.id not in declared]
        self._resources_by_id = {r.id: r for r in self.resources}
        self._buildings_by_id = {b.id: b for b in self.buildings}
        self._upgrades_by_id = {u.id: u for u in self.upgrades}
        self._click_targets_by_resource = {ct.resource: ct for ct in self.click_targets}

    def get_resource(self, id: str) -> ResourceDef | None:
        return self._resources_by_id.get(id)

    def get_building(self, id: str) -> BuildingDef | None:
        return self._buildings_by_id.get(id)

    def get_upgrade(self, id: str) -> UpgradeDef | None:
        return self._upgrades_by_id.get(id)

    def get_click_target(self, resource: str) -> ClickTarget | None:
        return self._click_targets_by_resource.get(resource)

    def curve_evaluator(self) -> CurveEvaluator:
        return CurveEvaluator(self.curves, strict=self.config.dev_mode.strict)

    def validate(self) -> list[str]:
        """Check referential integrity. Returns list of error messages."""
        errors: list[str] = []
        resource_ids = {r.id for r in self.resources}
        building_ids = {b.id for b in self.buildings}
        upgrade_ids = {u.id for u in self.upgrades}
        stack_ids = {s.id for s in self.stacks}
        curves = CurveEvaluator(self.curves)

        # Check for duplicate IDs
        for kind, ids in (
            ("resource", [r.id for r in self.resources]),
            ("building", [b.id for b in self.buildings]),
            ("upgrade", [u.id for u in self.upgrades]),
            ("stack", [s.id for s in self.stacks]),
        ):
            seen: set[str] = set()
            for id in ids:
                if id in seen:
                    errors.append(f"Duplicate {kind} ID: {id!r}")
                seen.add(id)

        for curve_id in self.curves:
            errors.extend(curves.validate_ref(curve_id))

        for b in self.buildings:
            for cost_name, cost in (
                ("base_cost", b.base_cost),
                ("subsequent_cost", b.subsequent_cost or {}),
            ):
                for res_id in cost:
                    if res_id not in resource_ids:
                        errors.append(
                            f"Building {b.id!r} references unknown resource {res_id!r} in {cost_name}"
                        )
            for err in curves.validate_ref(b.cost_curve):
                errors.append(f"Building {b.id!r} cost_curve: {err}")

            prod = b.production
            if prod is not None:
                for out in prod.outputs:
                    if out.resource_id not in resource_ids:
                        errors.append(
                            f"Building {b.id!r} produces unknown resource {out.resource_id!r}"
                        )
                for inp in prod.inputs:
                    if inp.resource_id not in resource_ids:
                        errors.append(
                            f"Building {b.id!r} consumes unknown resource {inp.resource_id!r}"
                        )
                    for err in curves.validate_ref(inp.amount):
                        errors.append(f"Building {b.id!r} input {inp.resource_id!r}: {err}")
                for attr in ("amount_stack_id", "speed_stack_id"):
                    stack_id = getattr(prod, attr)
                    if stack_id is not None and stack_id not in stack_ids:
                        errors.append(
                            f"Building {b.id!r} {attr} references unknown stack {stack_id!r}"
                        )

            if b.consumption is not None:
                for cr in b.consumption.resources:
                    if cr.resource_id not in resource_ids:
                        errors.append(
                            f"Building {b.id!r} upkeep uses unknown resource {cr.resource_id!r}"
                        )

            for syn in b.synergies:
                target = self.get_building(syn.target_building)
                if target is None:
                    errors.append(
                        f"Building {b.id!r} has synergy with unknown building {syn.target_building!r}"
                    )
                elif target.production is None or target.production.amount_stack_id is None:
                    errors.append(
                        f"Building {b.id!r} synergy target {syn.target_building!r} has no amount_stack_id"
                    )
                elif syn.target_building == b.id:
                    warnings.warn(
                        f"Building {b.id!r} has a synergy with itself; its production "
                        f"will grow quadratically with the owned count.",
                        stacklevel=2,
                    )

            for eff in b.effects:
                if eff.stack_id not in stack_ids:
                    errors.append(
                        f"Building {b.id!r} has effect on unknown stack {eff.stack_id!r}"
                    )

        for u in self.upgrades:
            for res_id in u.cost:
                if res_id not in resource_ids:
                    errors.append(
                        f"Upgrade {u.id!r} references unknown resource {res_id!r} in cost"
                    )
            for eff in u.effects:
                if eff.stack_id not in stack_ids:
                    errors.append(f"Upgrade {u.id!r} has effect on unknown stack {eff.stack_id!r}")
            for pre in u.prerequisites:
                if pre not in upgrade_ids:
                    errors.append(f"Upgrade {u.id!r} requires unknown upgrade {pre!r}")
            for special in u.special_effects:
                if isinstance(special, UnlockBuilding) and special.building_id not in building_ids:
                    errors.append(
                        f"Upgrade {u.id!r} unlocks unknown building {special.building_id!r}"
                    )
                elif isinstance(special, UnlockResource) and special.resource_id not in resource_ids:
                    errors.append(
                        f"Upgrade {u.id!r} unlocks unknown resource {special.resource_id!r}"
                    )
                elif isinstance(special, GrantResources):
                    for res_id in special.grants:
                        if res_id not in resource_ids:
                            errors.append(f"Upgrade {u.id!r} grants unknown resource {res_id!r}")

        # Check click targets reference known resources
        for ct in self.click_targets:
            if ct.resource not in resource_ids:
                errors.append(f"ClickTarget references unknown resource {ct.resource!r}")

        return errors
