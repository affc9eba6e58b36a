"""Tests for consumption module."""
import pytest

from idlecore import events
from idlecore.building import (
    BuildingDef,
    ConsumedResource,
    ConsumptionConfig,
    DeathPolicy,
    ProductionConfig,
    ProductionOutput,
)
from idlecore.context import SimulationContext
from idlecore.definition import GameDefinition
from idlecore.resource import ResourceDef


def _make_definition() -> GameDefinition:
    return GameDefinition(
        resources=[ResourceDef("water"), ResourceDef("milk")],
        buildings=[
            BuildingDef(
                "ox",
                display_name="Ox",
                consumption=ConsumptionConfig(
                    resources=[ConsumedResource("water", 3.0)],
                    max_health=100,
                    on_death=DeathPolicy.REMOVE,
                ),
            ),
            BuildingDef(
                "goat",
                production=ProductionConfig(outputs=[ProductionOutput("milk", 1.0)]),
                consumption=ConsumptionConfig(
                    resources=[ConsumedResource("water", 1.0, health_loss_per_missing=10.0)],
                    max_health=100,
                    on_death=DeathPolicy.DISABLE,
                ),
            ),
        ],
    )


def _make_context(**owned: int) -> SimulationContext:
    ctx = SimulationContext.build(_make_definition(), clock=lambda: 0.0)
    for building_id, count in owned.items():
        ctx.state_manager.update_building(building_id, count)
    return ctx


def _tick(ctx: SimulationContext, n: int = 1) -> None:
    for _ in range(n):
        ctx.consumption.process_all()


def _health(ctx: SimulationContext, building_id: str):
    return ctx.state_manager.get_building(building_id).health


def test_supplied_upkeep_is_paid():
    ctx = _make_context(ox=2)
    ctx.state_manager.set_resource("water", 100)
    _tick(ctx)
    assert ctx.state.resource_amount("water") == 94
    assert _health(ctx, "ox") == 100


def test_missing_upkeep_deals_damage():
    ctx = _make_context(ox=1)
    shortages = []
    ctx.bus.on(events.CONSUMPTION_SHORTAGE, shortages.append)
    _tick(ctx)
    assert _health(ctx, "ox") == 97
    assert shortages[0]["missing"] == 3
    assert shortages[0]["required"] == 3


def test_partial_supply_is_consumed():
    ctx = _make_context(ox=1)
    ctx.state_manager.set_resource("water", 1)
    _tick(ctx)
    assert ctx.state.resource_amount("water") == 0
    assert _health(ctx, "ox") == 98


def test_starved_building_is_removed():
    ctx = _make_context(ox=1)
    died = []
    ctx.bus.on(events.BUILDING_DIED, died.append)
    _tick(ctx, 33)
    assert _health(ctx, "ox") == 1
    assert died == []
    _tick(ctx)
    assert ctx.state.building_count("ox") == 0
    assert _health(ctx, "ox") is None
    assert ctx.state.statistics.total_buildings_lost == 1
    assert died == [
        {"building_id": "ox", "building_name": "Ox", "remaining": 0, "cause": "starvation"}
    ]


def test_one_unit_dies_and_survivors_reset_to_full_health():
    ctx = _make_context(ox=2)
    died = []
    ctx.bus.on(events.BUILDING_DIED, died.append)
    _tick(ctx, 17)
    assert ctx.state.building_count("ox") == 1
    assert _health(ctx, "ox") == 100
    assert [d["remaining"] for d in died] == [1]


def test_supplied_tick_regenerates():
    ctx = _make_context(ox=1)
    regen = []
    ctx.bus.on(events.BUILDING_HEALTH_REGEN, regen.append)
    _tick(ctx, 3)
    assert _health(ctx, "ox") == 91
    ctx.state_manager.set_resource("water", 100)
    _tick(ctx)
    assert _health(ctx, "ox") == 94
    assert regen[0]["healed"] == 3
    _tick(ctx, 5)
    assert _health(ctx, "ox") == 100


def test_disable_policy_keeps_the_building():
    ctx = _make_context(goat=1)
    disabled = []
    ctx.bus.on(events.BUILDING_DISABLED, disabled.append)
    _tick(ctx, 10)
    bs = ctx.state_manager.get_building("goat")
    assert bs.owned == 1
    assert bs.health == 0
    assert bs.disabled
    assert disabled == [{"building_id": "goat"}]

    ctx.production.process_all(1.0)
    assert ctx.state.resource_amount("milk") == 0


def test_disabled_building_recovers_at_full_health():
    ctx = _make_context(goat=1)
    _tick(ctx, 10)
    ctx.state_manager.set_resource("water", 1000)
    _tick(ctx, 9)
    bs = ctx.state_manager.get_building("goat")
    assert bs.health == 90
    assert bs.disabled
    _tick(ctx)
    assert bs.health == 100
    assert not bs.disabled
    ctx.production.process_all(1.0)
    assert ctx.state.resource_amount("milk") == pytest.approx(1.0)


def test_repeated_damage_at_zero_does_not_disable_twice():
    ctx = _make_context(goat=1)
    disabled = []
    ctx.bus.on(events.BUILDING_DISABLED, disabled.append)
    _tick(ctx, 15)
    assert len(disabled) == 1


def test_unowned_buildings_are_skipped():
    ctx = _make_context()
    ctx.state_manager.set_resource("water", 10)
    _tick(ctx)
    assert ctx.state.resource_amount("water") == 10


def test_health_info_and_upkeep():
    ctx = _make_context(ox=2)
    info = ctx.consumption.health_info("ox")
    assert info.percentage == 100
    assert not info.is_critical
    ctx.state_manager.set_building_health("ox", 25)
    assert ctx.consumption.health_info("ox").is_critical
    assert ctx.consumption.consumption_per_tick("ox") == {"water": 6}
    assert ctx.consumption.total_consumption("water") == 6
    assert ctx.consumption.health_info("milk") is None
