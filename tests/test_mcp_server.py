"""Tests for MCP server tool functions."""

import pytest

from idlecore.building import (
    BuildingDef,
    ConsumedResource,
    ConsumptionConfig,
    ProductionConfig,
    ProductionOutput,
)
from idlecore.definition import ClickTarget, GameConfig, GameDefinition
from idlecore.requirement import Req
from idlecore.resource import ResourceDef
from idlecore.upgrade import UpgradeDef, UpgradeEffect

from idlecore.mcp.server import (
    _GameHolder,
    _new_holder,
    _tool_click,
    _tool_export_save,
    _tool_get_available_buildings,
    _tool_get_available_upgrades,
    _tool_get_building_info,
    _tool_get_game_info,
    _tool_get_game_state,
    _tool_go_offline,
    _tool_import_save,
    _tool_new_game,
    _tool_purchase_building,
    _tool_purchase_upgrade,
    _tool_wait,
    create_server,
)


def _make_test_definition() -> GameDefinition:
    """A small but complete game definition for testing."""
    return GameDefinition(
        config=GameConfig(name="Test Game"),
        resources=[
            ResourceDef("gold", display_name="Gold", initial_amount=100),
            ResourceDef("water", display_name="Water"),
        ],
        buildings=[
            BuildingDef(
                id="miner",
                display_name="Miner",
                description="Produces gold",
                base_cost={"gold": 10},
                cost_curve="flat",
                production=ProductionConfig(outputs=[ProductionOutput("gold", 1.0)]),
                unlocked=True,
            ),
            BuildingDef(
                id="rare_gem",
                display_name="Rare Gem",
                base_cost={"gold": 500},
                max_owned=1,
                requirements=[Req.owns("miner", 5)],
            ),
            BuildingDef("statue", base_cost={"gold": 1}, max_owned=1, unlocked=True),
            BuildingDef(
                "ox",
                base_cost={"gold": 1},
                consumption=ConsumptionConfig(
                    resources=[ConsumedResource("water", 1.0, health_loss_per_missing=100.0)]
                ),
                unlocked=True,
            ),
        ],
        upgrades=[
            UpgradeDef(
                "pick",
                display_name="Pick",
                description="Miners dig twice as fast.",
                cost={"gold": 50},
                effects=[UpgradeEffect("all_production", 2.0)],
            ),
        ],
        click_targets=[ClickTarget("gold", base_value=1.0)],
    )


def _make_holder() -> _GameHolder:
    return _new_holder(_make_test_definition(), seed=42)


# ── Info tools ──────────────────────────────────────────────────────


def test_get_game_info():
    info = _tool_get_game_info(_make_holder())
    assert info["name"] == "Test Game"
    assert [r["id"] for r in info["resources"]] == ["gold", "water"]
    assert [b["id"] for b in info["buildings"]] == ["miner", "rare_gem", "statue", "ox"]
    assert info["upgrades"] == [{"id": "pick", "display_name": "Pick", "era": 1}]
    assert info["click_targets"] == [{"resource": "gold", "base_value": 1.0}]


def test_get_game_state():
    state = _tool_get_game_state(_make_holder())
    assert state["resources"]["gold"]["current"] == 100
    assert state["resources"]["gold"]["display_name"] == "Gold"
    assert state["buildings"]["miner"] == {"display_name": "Miner", "owned": 0, "unlocked": True}
    assert state["era"] == 1
    assert state["upgrades_purchased"] == []


def test_get_available_buildings():
    holder = _make_holder()
    buildings = {b["id"]: b for b in _tool_get_available_buildings(holder)["buildings"]}
    assert buildings["miner"]["time_to_afford"] == 0.0
    assert buildings["miner"]["current_cost"] == {"gold": 10.0}
    assert "time_to_afford" not in buildings["rare_gem"]
    assert not buildings["rare_gem"]["unlocked"]
    assert buildings["statue"]["max_owned"] == 1


def test_get_available_upgrades():
    upgrades = _tool_get_available_upgrades(_make_holder())["upgrades"]
    assert upgrades[0]["id"] == "pick"
    assert upgrades[0]["effects"] == [{"stack": "all_production", "value": 2.0}]
    assert upgrades[0]["can_afford"]


def test_get_building_info():
    holder = _make_holder()
    _tool_purchase_building(holder, "ox")
    info = _tool_get_building_info(holder, "ox")
    assert info["health"] == {"current": 100.0, "max": 100.0, "critical": False}
    assert info["consumption_per_tick"] == {"water": 1.0}
    miner = _tool_get_building_info(holder, "miner")
    assert miner["description"] == "Produces gold"
    assert "health" not in miner
    assert _tool_get_building_info(holder, "nope") == {"error": "Unknown building: 'nope'"}


# ── Purchases ───────────────────────────────────────────────────────


def test_purchase_building():
    holder = _make_holder()
    result = _tool_purchase_building(holder, "miner", 2)
    assert result == {"success": True, "building_id": "miner", "owned": 2}
    assert holder.runtime.resource_amount("gold") == pytest.approx(80.0)


def test_purchase_building_failures():
    holder = _make_holder()
    assert _tool_purchase_building(holder, "nope") == {"error": "Unknown building: 'nope'"}
    assert "error" in _tool_purchase_building(holder, "miner", 0)
    assert _tool_purchase_building(holder, "rare_gem")["reason"] == (
        "Not unlocked (requirements not met)"
    )
    assert _tool_purchase_building(holder, "statue")["success"]
    assert _tool_purchase_building(holder, "statue")["reason"] == "Already at max owned"
    holder.runtime.state_manager.set_resource("gold", 0)
    assert _tool_purchase_building(holder, "miner")["reason"] == "Cannot afford"


def test_purchase_upgrade():
    holder = _make_holder()
    assert _tool_purchase_upgrade(holder, "pick") == {"success": True, "upgrade_id": "pick"}
    assert _tool_purchase_upgrade(holder, "pick")["reason"] == "Already purchased"
    assert "error" in _tool_purchase_upgrade(holder, "nope")
    assert holder.runtime.multipliers.get_value("all_production") == pytest.approx(2.0)


# ── Time ────────────────────────────────────────────────────────────


def test_click():
    holder = _make_holder()
    result = _tool_click(holder, "gold", 3)
    assert result == {"target": "gold", "clicks": 3, "total_earned": 3.0, "new_balance": 103.0}
    assert "error" in _tool_click(holder, "gold", 0)
    assert "error" in _tool_click(holder, "gold", 1001)
    assert "error" in _tool_click(holder, "water")


def test_wait_runs_live_ticks():
    holder = _make_holder()
    _tool_purchase_building(holder, "miner")
    result = _tool_wait(holder, 10)
    assert result["waited"] == 10
    assert result["play_time_seconds"] == 10.0
    assert result["resources"]["gold"]["current"] == pytest.approx(100.0)
    assert result["resources"]["gold"]["rate"] == pytest.approx(1.0)
    assert holder.clock() == pytest.approx(10_000.0)
    assert "buildings_lost" not in result


def test_wait_reports_losses():
    holder = _make_holder()
    _tool_purchase_building(holder, "ox")
    result = _tool_wait(holder, 1)
    assert result["buildings_lost"] == [{"building_id": "ox", "remaining": 0}]


def test_wait_limits():
    holder = _make_holder()
    assert "error" in _tool_wait(holder, 0)
    assert "error" in _tool_wait(holder, 3601)


def test_go_offline():
    holder = _make_holder()
    _tool_purchase_building(holder, "miner")
    result = _tool_go_offline(holder, 100)
    assert result["success"]
    assert result["offline_progress"] == {
        "offline_seconds": 100.0,
        "efficiency": 0.5,
        "resources_gained": {"gold": 50.0},
    }
    assert result["resources"]["gold"]["current"] == pytest.approx(140.0)


def test_go_offline_too_short_for_progress():
    holder = _make_holder()
    assert _tool_go_offline(holder, 0.5) == {"success": True, "offline_progress": None}
    assert "error" in _tool_go_offline(holder, -1)


# ── Saves ───────────────────────────────────────────────────────────


def test_export_import_round_trip():
    holder = _make_holder()
    _tool_purchase_building(holder, "miner")
    exported = _tool_export_save(holder)["save"]
    _tool_purchase_building(holder, "miner", 3)
    assert _tool_import_save(holder, exported) == {"success": True}
    assert holder.runtime.state.building_count("miner") == 1
    assert _tool_import_save(holder, "garbage")["reason"] == (
        "Save is corrupt or failed its checksum"
    )


def test_new_game():
    holder = _make_holder()
    _tool_purchase_building(holder, "miner")
    result = _tool_new_game(holder)
    assert result["success"]
    assert holder.runtime.state.building_count("miner") == 0
    assert holder.runtime.resource_amount("gold") == 100


def test_create_server():
    server = create_server(_make_test_definition(), seed=1)
    assert server.name == "idlecore: Test Game"
