"""Tests for building_system module."""
import pytest

from idlecore import events
from idlecore.building import (
    BuildingDef,
    ConsumedResource,
    ConsumptionConfig,
    ProductionConfig,
    ProductionOutput,
)
from idlecore.context import SimulationContext
from idlecore.definition import GameDefinition
from idlecore.multiplier import MultiplierSource
from idlecore.requirement import Req
from idlecore.resource import ResourceDef


def _make_definition() -> GameDefinition:
    return GameDefinition(
        resources=[
            ResourceDef("gold", initial_amount=1000),
            ResourceDef("ore", era=2, unlocked=False),
        ],
        buildings=[
            BuildingDef(
                "mine",
                display_name="Gold Mine",
                base_cost={"gold": 100},
                production=ProductionConfig(outputs=[ProductionOutput("gold", 1.0)]),
                unlocked=True,
            ),
            BuildingDef(
                "worker",
                base_cost={"gold": 25},
                subsequent_cost={"gold": 100},
                unlocked=True,
            ),
            BuildingDef("statue", base_cost={"gold": 10}, max_owned=2, unlocked=True),
            BuildingDef("smelter", base_cost={"gold": 50}, requirements=[Req.owns("mine", 2)]),
            BuildingDef("harbor", era=2, base_cost={"gold": 10}),
            BuildingDef(
                "vault",
                base_cost={"gold": 10},
                requirements=[Req.resource("gold", 5000)],
                visible_before_unlock=False,
            ),
            BuildingDef(
                "donkey",
                base_cost={"gold": 10},
                consumption=ConsumptionConfig(resources=[ConsumedResource("gold", 0.1)]),
                unlocked=True,
            ),
        ],
    )


def _make_context() -> SimulationContext:
    return SimulationContext.build(_make_definition(), clock=lambda: 0.0)


def _gold(ctx: SimulationContext) -> float:
    return ctx.state.resource_amount("gold")


# ── Pricing ─────────────────────────────────────────────────────────


def test_first_unit_uses_base_cost():
    ctx = _make_context()
    assert ctx.buildings.calculate_cost("mine") == {"gold": 100.0}


def test_bulk_cost_sums_each_unit():
    ctx = _make_context()
    assert ctx.buildings.calculate_cost("mine", 2) == {"gold": 215.0}
    ctx.state_manager.update_building("mine", 1)
    assert ctx.buildings.calculate_cost("mine") == {"gold": 115.0}


def test_subsequent_cost_after_first_unit():
    ctx = _make_context()
    assert ctx.buildings.calculate_cost("worker") == {"gold": 25.0}
    assert ctx.buildings.calculate_cost("worker", 3) == {"gold": 240.0}
    ctx.state_manager.update_building("worker", 1)
    assert ctx.buildings.calculate_cost("worker") == {"gold": 100.0}
    ctx.state_manager.update_building("worker", 1)
    assert ctx.buildings.calculate_cost("worker") == {"gold": 115.0}


def test_building_cost_stack_discounts_price():
    ctx = _make_context()
    ctx.multipliers.add_multiplier(MultiplierSource("guild", "building_cost", 0.5))
    assert ctx.buildings.calculate_cost("mine") == {"gold": 50.0}


def test_unknown_building_or_bad_count_costs_nothing():
    ctx = _make_context()
    assert ctx.buildings.calculate_cost("nope") == {}
    assert ctx.buildings.calculate_cost("mine", 0) == {}


def test_max_affordable():
    ctx = _make_context()
    assert ctx.buildings.calculate_max_affordable("mine") == 6
    assert ctx.buildings.calculate_max_affordable("statue") == 2
    assert ctx.buildings.calculate_max_affordable("nope") == 0


# ── Purchase ────────────────────────────────────────────────────────


def test_purchase_deducts_and_adds_units():
    ctx = _make_context()
    purchased = []
    ctx.bus.on(events.BUILDING_PURCHASED, purchased.append)
    assert ctx.buildings.purchase("mine", 2)
    assert _gold(ctx) == pytest.approx(785.0)
    assert ctx.state.buildings["mine"].owned == 2
    assert purchased[0]["building_id"] == "mine"


def test_purchase_is_all_or_nothing():
    ctx = _make_context()
    ctx.state_manager.set_resource("gold", 150)
    assert not ctx.buildings.purchase("mine", 2)
    assert _gold(ctx) == 150
    assert ctx.state.buildings["mine"].owned == 0


def test_locked_building_cannot_be_bought():
    ctx = _make_context()
    assert not ctx.buildings.purchase("smelter")
    assert _gold(ctx) == 1000


def test_purchase_clamps_to_max_owned():
    ctx = _make_context()
    maxed = []
    ctx.bus.on(events.BUILDING_MAXED, maxed.append)
    assert ctx.buildings.purchase("statue", 5)
    assert ctx.state.buildings["statue"].owned == 2
    assert _gold(ctx) == pytest.approx(1000 - 22)
    assert not ctx.buildings.purchase("statue")
    assert maxed == [{"building_id": "statue"}]


def test_purchase_refreshes_production_rates():
    ctx = _make_context()
    ctx.buildings.purchase("mine", 2)
    rates = ctx.buildings.production_rates
    assert rates["gold"].per_second == pytest.approx(2.0)
    assert rates["gold"].sources == [("Gold Mine", pytest.approx(2.0))]
    assert ctx.state.buildings["mine"].production_rate == pytest.approx(2.0)


def test_net_rates_subtract_upkeep():
    ctx = _make_context()
    ctx.state_manager.update_building("mine", 2)
    ctx.state_manager.update_building("donkey", 1)
    ctx.buildings.recalculate_all_production()
    net = ctx.buildings.net_rates(ticks_per_second=10)
    assert net["gold"] == pytest.approx(1.0)


# ── Unlocks ─────────────────────────────────────────────────────────


def test_check_unlocks_returns_new_ids():
    ctx = _make_context()
    assert ctx.buildings.check_unlocks() == []
    ctx.state_manager.update_building("mine", 2)
    assert ctx.buildings.check_unlocks() == ["smelter"]
    assert ctx.buildings.check_unlocks() == []


def test_unlock_never_reverts():
    ctx = _make_context()
    ctx.state_manager.update_building("mine", 2)
    ctx.buildings.check_unlocks()
    ctx.state_manager.remove_building("mine", 2)
    ctx.buildings.check_unlocks()
    assert ctx.state.buildings["smelter"].unlocked


def test_later_era_unlocks_buildings_and_resources():
    ctx = _make_context()
    ctx.buildings.check_unlocks()
    assert not ctx.state.buildings["harbor"].unlocked
    ctx.state_manager.set_era(2)
    assert "harbor" in ctx.buildings.check_unlocks()
    assert ctx.state.resources["ore"].unlocked


# ── Display ─────────────────────────────────────────────────────────


def test_available_buildings_hide_future_and_secret_entries():
    ctx = _make_context()
    ids = [info.id for info in ctx.buildings.get_available_buildings()]
    assert ids == ["mine", "worker", "statue", "smelter", "donkey"]


def test_building_info():
    ctx = _make_context()
    ctx.state_manager.update_building("mine", 1)
    info = ctx.buildings.get_building_info("mine")
    assert info.owned == 1
    assert info.current_cost == {"gold": 115.0}
    assert info.can_afford
    assert info.production_per_second == {"gold": pytest.approx(1.0)}
    assert info.health is None
    assert ctx.buildings.get_building_info("nope") is None


def test_building_info_reports_upkeep():
    ctx = _make_context()
    ctx.state_manager.update_building("donkey", 3)
    info = ctx.buildings.get_building_info("donkey")
    assert info.consumption_per_tick == {"gold": pytest.approx(0.3)}
    assert info.health.current == 100
