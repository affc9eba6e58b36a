"""Tests for upgrade_system module."""
import pytest

from idlecore import events
from idlecore.building import BuildingDef, ProductionConfig, ProductionOutput
from idlecore.context import SimulationContext
from idlecore.definition import GameDefinition
from idlecore.multiplier import MultiplierSource, MultiplierStack
from idlecore.requirement import Req
from idlecore.resource import ResourceDef
from idlecore.upgrade import (
    GrantResources,
    UnlockBuilding,
    UnlockEra,
    UnlockFeature,
    UnlockResource,
    UpgradeDef,
    UpgradeEffect,
)


def _make_definition() -> GameDefinition:
    return GameDefinition(
        resources=[
            ResourceDef("gold", initial_amount=1000),
            ResourceDef("gems", era=2, unlocked=False),
        ],
        stacks=[MultiplierStack("mine_yield")],
        buildings=[
            BuildingDef(
                "mine",
                production=ProductionConfig(
                    outputs=[ProductionOutput("gold", 1.0)],
                    amount_stack_id="mine_yield",
                ),
                unlocked=True,
            ),
            BuildingDef("cave"),
        ],
        upgrades=[
            UpgradeDef("pick", cost={"gold": 100}, effects=[UpgradeEffect("mine_yield", 2.0)]),
            UpgradeDef("cart", cost={"gold": 200}, prerequisites=["pick"]),
            UpgradeDef(
                "deep",
                cost={"gold": 300},
                requirements=[Req.owns("mine", 5)],
                special_effects=[UnlockBuilding("cave")],
                visible_before_unlock=True,
            ),
            UpgradeDef(
                "charter",
                cost={"gold": 50},
                special_effects=[
                    UnlockEra(2),
                    UnlockResource("gems"),
                    UnlockFeature("trade"),
                    GrantResources({"gems": 5}),
                ],
            ),
            UpgradeDef("future", era=2, cost={"gold": 10}),
        ],
    )


def _make_context() -> SimulationContext:
    return SimulationContext.build(_make_definition(), clock=lambda: 0.0)


def test_cost_scaled_by_upgrade_cost_stack():
    ctx = _make_context()
    assert ctx.upgrades.calculate_cost("pick") == {"gold": 100.0}
    ctx.multipliers.add_multiplier(MultiplierSource("haggle", "upgrade_cost", 0.5))
    assert ctx.upgrades.calculate_cost("pick") == {"gold": 50.0}
    assert ctx.upgrades.calculate_cost("nope") == {}


def test_unlock_gates():
    ctx = _make_context()
    assert ctx.upgrades.is_unlocked("pick")
    assert not ctx.upgrades.is_unlocked("cart")
    assert not ctx.upgrades.is_unlocked("deep")
    assert not ctx.upgrades.is_unlocked("future")
    assert not ctx.upgrades.is_unlocked("nope")
    ctx.upgrades.purchase("pick")
    assert ctx.upgrades.is_unlocked("cart")


def test_visibility():
    ctx = _make_context()
    assert ctx.upgrades.is_visible("pick")
    assert not ctx.upgrades.is_visible("cart")
    assert ctx.upgrades.is_visible("deep")
    assert not ctx.upgrades.is_visible("future")
    ids = [info.id for info in ctx.upgrades.get_available_upgrades()]
    assert ids == ["pick", "deep", "charter"]


def test_purchase_applies_multiplier_once():
    ctx = _make_context()
    assert ctx.upgrades.purchase("pick")
    assert ctx.state.resource_amount("gold") == pytest.approx(900.0)
    assert ctx.multipliers.get_value("mine_yield") == pytest.approx(2.0)
    assert not ctx.upgrades.purchase("pick")
    assert ctx.state.resource_amount("gold") == pytest.approx(900.0)
    source = ctx.multipliers.sources("mine_yield")[0]
    assert source.id == "upgrade:pick:mine_yield:0"


def test_effects_on_the_same_stack_all_apply():
    defn = GameDefinition(
        resources=[ResourceDef("gold", initial_amount=100)],
        stacks=[MultiplierStack("mine_yield")],
        upgrades=[
            UpgradeDef(
                "drill",
                cost={"gold": 10},
                effects=[UpgradeEffect("mine_yield", 2.0), UpgradeEffect("mine_yield", 1.5)],
            ),
        ],
    )
    ctx = SimulationContext.build(defn, clock=lambda: 0.0)
    assert ctx.upgrades.purchase("drill")
    assert ctx.multipliers.get_value("mine_yield") == pytest.approx(3.0)
    assert [s.id for s in ctx.multipliers.sources("mine_yield")] == [
        "upgrade:drill:mine_yield:0",
        "upgrade:drill:mine_yield:1",
    ]
    ctx.state_manager.load_state({})
    assert ctx.multipliers.get_value("mine_yield") == pytest.approx(1.0)


def test_locked_or_unaffordable_upgrade_is_refused():
    ctx = _make_context()
    assert not ctx.upgrades.purchase("deep")
    ctx.state_manager.set_resource("gold", 50)
    assert not ctx.upgrades.purchase("pick")
    assert ctx.state.resource_amount("gold") == 50
    assert not ctx.upgrades.purchase("nope")


def test_unlock_building_effect():
    ctx = _make_context()
    ctx.state_manager.update_building("mine", 5)
    assert ctx.upgrades.purchase("deep")
    assert ctx.state.buildings["cave"].unlocked


def test_special_effects():
    ctx = _make_context()
    assert ctx.upgrades.purchase("charter")
    assert ctx.state.current_era == 2
    assert ctx.state.resources["gems"].unlocked
    assert ctx.state_manager.has_feature("trade")
    assert ctx.state.resource_amount("gems") == pytest.approx(5.0)
    assert ctx.upgrades.is_unlocked("future")


def test_check_unlocks_reports_each_upgrade_once():
    ctx = _make_context()
    seen = []
    ctx.bus.on(events.UPGRADE_UNLOCKED, lambda p: seen.append(p["upgrade_id"]))
    assert ctx.upgrades.check_unlocks() == ["pick", "charter"]
    assert ctx.upgrades.check_unlocks() == []
    ctx.upgrades.purchase("pick")
    assert ctx.upgrades.check_unlocks() == ["cart"]
    assert seen == ["pick", "charter", "cart"]


def test_effects_restored_from_saved_state():
    ctx = _make_context()
    ctx.upgrades.purchase("pick")
    restored = SimulationContext.build(
        _make_definition(), ctx.state_manager.get_serializable_state(), clock=lambda: 0.0
    )
    assert restored.multipliers.get_value("mine_yield") == pytest.approx(2.0)


def test_effects_follow_loaded_state():
    ctx = _make_context()
    fresh = ctx.state_manager.get_serializable_state()
    ctx.upgrades.purchase("pick")
    ctx.state_manager.load_state(fresh)
    assert ctx.multipliers.get_value("mine_yield") == 1.0
    ctx.upgrades.purchase("pick")
    ctx.state_manager.reset()
    assert ctx.multipliers.get_value("mine_yield") == 1.0


def test_reset_for_prestige_drops_multipliers():
    ctx = _make_context()
    ctx.upgrades.purchase("pick")
    ctx.upgrades.reset_for_prestige()
    assert ctx.multipliers.get_value("mine_yield") == 1.0


def test_upgrade_info():
    ctx = _make_context()
    info = ctx.upgrades.get_upgrade_info("pick")
    assert info.can_afford and not info.purchased
    assert info.effects == [UpgradeEffect("mine_yield", 2.0)]
    ctx.upgrades.purchase("pick")
    info = ctx.upgrades.get_upgrade_info("pick")
    assert info.purchased and not info.can_afford
    assert ctx.upgrades.get_upgrade_info("nope") is None
