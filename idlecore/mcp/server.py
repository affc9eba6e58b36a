"""MCP server wrapping GameRuntime for interactive playtesting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from mcp.server.fastmcp import FastMCP

from idlecore import events
from idlecore.definition import GameDefinition
from idlecore.runtime import GameRuntime
from idlecore.save import MemoryStore
from idlecore.simulation import SimulatedClock

# Maximum seconds per wait() call (1 hour of live ticks)
_MAX_WAIT = 3600
# Maximum seconds per go_offline() call (7 days)
_MAX_OFFLINE = 7 * 86400
# Maximum clicks per click() call
_MAX_CLICKS = 1000


@dataclass
class _GameHolder:
    """Holds the active game definition, its runtime and the simulated clock."""

    definition: GameDefinition
    clock: SimulatedClock
    runtime: GameRuntime


def _new_holder(definition: GameDefinition, seed: int | None = None) -> _GameHolder:
    clock = SimulatedClock()
    runtime = GameRuntime(definition, store=MemoryStore(), clock=clock, seed=seed)
    return _GameHolder(definition=definition, clock=clock, runtime=runtime)


def _round_amounts(amounts: dict[str, float]) -> dict[str, float]:
    return {k: round(v, 2) for k, v in amounts.items()}


def _resource_summary(holder: _GameHolder) -> dict[str, Any]:
    state = holder.runtime.state
    rates = holder.runtime.net_rates()
    resources = {}
    for rdef in holder.definition.resources:
        rs = state.resources[rdef.id]
        if not rs.unlocked:
            continue
        resources[rdef.id] = {
            "current": round(rs.current, 2),
            "rate": round(rates.get(rdef.id, 0.0), 4),
        }
    return resources


# ── Tool logic functions (testable without MCP protocol) ────────────


def _tool_get_game_info(holder: _GameHolder) -> dict[str, Any]:
    defn = holder.definition
    return {
        "name": defn.config.name,
        "resources": [
            {"id": r.id, "display_name": r.display_name, "era": r.era}
            for r in defn.resources
        ],
        "buildings": [
            {"id": b.id, "display_name": b.display_name, "category": b.category, "era": b.era}
            for b in defn.buildings
        ],
        "upgrades": [
            {"id": u.id, "display_name": u.display_name, "era": u.era}
            for u in defn.upgrades
        ],
        "click_targets": [
            {"resource": ct.resource, "base_value": ct.base_value}
            for ct in defn.click_targets
        ],
    }


def _tool_get_game_state(holder: _GameHolder) -> dict[str, Any]:
    state = holder.runtime.state
    resources = {}
    rates = holder.runtime.net_rates()
    for rdef in holder.definition.resources:
        rs = state.resources[rdef.id]
        resources[rdef.id] = {
            "display_name": rdef.display_name,
            "current": round(rs.current, 2),
            "lifetime": round(rs.lifetime, 2),
            "max_capacity": rs.max_capacity,
            "unlocked": rs.unlocked,
            "rate": round(rates.get(rdef.id, 0.0), 4),
        }
    buildings = {}
    for bdef in holder.definition.buildings:
        bs = state.buildings[bdef.id]
        entry: dict[str, Any] = {
            "display_name": bdef.display_name,
            "owned": bs.owned,
            "unlocked": bs.unlocked,
        }
        if bs.health is not None:
            entry["health"] = round(bs.health, 2)
        if bs.disabled:
            entry["disabled"] = True
        buildings[bdef.id] = entry
    return {
        "play_time_seconds": round(state.statistics.total_play_time_ms / 1000.0, 2),
        "era": state.current_era,
        "resources": resources,
        "buildings": buildings,
        "upgrades_purchased": sorted(state.purchased_upgrades),
        "features": sorted(state.unlocked_features),
    }


def _tool_get_available_buildings(holder: _GameHolder) -> dict[str, Any]:
    result = []
    for info in holder.runtime.get_available_buildings():
        entry: dict[str, Any] = {
            "id": info.id,
            "display_name": info.display_name,
            "owned": info.owned,
            "unlocked": info.unlocked,
            "can_afford": info.can_afford,
            "current_cost": _round_amounts(info.current_cost),
            "production_per_second": _round_amounts(info.production_per_second),
        }
        if info.max_owned is not None:
            entry["max_owned"] = info.max_owned
        if info.unlocked:
            time_to_afford = holder.runtime.compute_time_to_afford(info.id)
            entry["time_to_afford"] = (
                round(time_to_afford, 2) if time_to_afford is not None else None
            )
        result.append(entry)
    return {"buildings": result}


def _tool_get_available_upgrades(holder: _GameHolder) -> dict[str, Any]:
    return {
        "upgrades": [
            {
                "id": info.id,
                "display_name": info.display_name,
                "description": info.description,
                "purchased": info.purchased,
                "unlocked": info.unlocked,
                "can_afford": info.can_afford,
                "cost": _round_amounts(info.cost),
                "effects": [{"stack": e.stack_id, "value": e.value} for e in info.effects],
            }
            for info in holder.runtime.get_available_upgrades()
        ]
    }


def _tool_get_building_info(holder: _GameHolder, building_id: str) -> dict[str, Any]:
    bdef = holder.definition.get_building(building_id)
    info = holder.runtime.get_building_info(building_id)
    if bdef is None or info is None:
        return {"error": f"Unknown building: {building_id!r}"}

    result: dict[str, Any] = {
        "id": info.id,
        "display_name": info.display_name,
        "description": bdef.description,
        "category": info.category,
        "era": info.era,
        "owned": info.owned,
        "unlocked": info.unlocked,
        "can_afford": info.can_afford,
        "current_cost": _round_amounts(info.current_cost),
        "production_per_second": _round_amounts(info.production_per_second),
        "resource_limit": info.resource_limit,
        "disabled": info.disabled,
    }
    if info.max_owned is not None:
        result["max_owned"] = info.max_owned
    if info.health is not None:
        result["health"] = {
            "current": round(info.health.current, 2),
            "max": info.health.max,
            "critical": info.health.is_critical,
        }
        result["consumption_per_tick"] = _round_amounts(info.consumption_per_tick)
    if info.batch_progress is not None:
        result["batch_progress"] = round(info.batch_progress, 3)
    if bdef.production is not None and bdef.production.inputs:
        result["inputs"] = [inp.resource_id for inp in bdef.production.inputs]
    return result


def _tool_purchase_building(
    holder: _GameHolder, building_id: str, count: int = 1
) -> dict[str, Any]:
    info = holder.runtime.get_building_info(building_id)
    if info is None:
        return {"error": f"Unknown building: {building_id!r}"}
    if count < 1:
        return {"error": "Count must be at least 1"}
    if not info.unlocked:
        return {"success": False, "reason": "Not unlocked (requirements not met)"}
    if info.max_owned is not None and info.owned >= info.max_owned:
        return {"success": False, "reason": "Already at max owned"}

    if holder.runtime.purchase_building(building_id, count):
        return {
            "success": True,
            "building_id": building_id,
            "owned": holder.runtime.state.building_count(building_id),
        }
    return {"success": False, "reason": "Cannot afford"}


def _tool_purchase_upgrade(holder: _GameHolder, upgrade_id: str) -> dict[str, Any]:
    if holder.definition.get_upgrade(upgrade_id) is None:
        return {"error": f"Unknown upgrade: {upgrade_id!r}"}
    if holder.runtime.state.is_upgrade_purchased(upgrade_id):
        return {"success": False, "reason": "Already purchased"}
    if not holder.runtime.upgrades.is_unlocked(upgrade_id):
        return {"success": False, "reason": "Not unlocked (requirements not met)"}
    if holder.runtime.purchase_upgrade(upgrade_id):
        return {"success": True, "upgrade_id": upgrade_id}
    return {"success": False, "reason": "Cannot afford"}


def _tool_click(
    holder: _GameHolder, target: str, count: int = 1
) -> dict[str, Any]:
    if count < 1:
        return {"error": "Count must be at least 1"}
    if count > _MAX_CLICKS:
        return {"error": f"Count cannot exceed {_MAX_CLICKS}"}

    ct = holder.definition.get_click_target(target)
    if ct is None:
        return {"error": f"Unknown click target: {target!r}"}

    total = 0.0
    for _ in range(count):
        total += holder.runtime.process_click(target)
    return {
        "target": target,
        "clicks": count,
        "total_earned": round(total, 2),
        "new_balance": round(holder.runtime.resource_amount(target), 2),
    }


def _tool_wait(holder: _GameHolder, seconds: float) -> dict[str, Any]:
    if seconds <= 0:
        return {"error": "Seconds must be positive"}
    if seconds > _MAX_WAIT:
        return {"error": f"Cannot wait more than {_MAX_WAIT} seconds per call; use go_offline"}

    deaths: list[dict[str, Any]] = []
    unsubscribe = holder.runtime.on(events.BUILDING_DIED, deaths.append)
    step_ms = holder.definition.config.timing.base_tick_ms
    remaining = seconds * 1000.0
    try:
        while remaining > 1e-9 and not holder.runtime.loop.is_paused:
            dt = min(step_ms, remaining)
            holder.clock.advance(dt)
            holder.runtime.loop.process_tick(dt)
            remaining -= dt
    finally:
        unsubscribe()

    result: dict[str, Any] = {
        "waited": seconds,
        "play_time_seconds": round(
            holder.runtime.state.statistics.total_play_time_ms / 1000.0, 2
        ),
        "resources": _resource_summary(holder),
    }
    if deaths:
        result["buildings_lost"] = [
            {"building_id": d["building_id"], "remaining": d["remaining"]} for d in deaths
        ]
    if holder.runtime.loop.is_paused:
        result["paused"] = True
    return result


def _tool_go_offline(holder: _GameHolder, seconds: float) -> dict[str, Any]:
    """Save, let *seconds* pass with the game closed, then load and catch up."""
    if seconds <= 0:
        return {"error": "Seconds must be positive"}
    if seconds > _MAX_OFFLINE:
        return {"error": f"Cannot go offline for more than {_MAX_OFFLINE} seconds per call"}
    if not holder.runtime.save():
        return {"success": False, "reason": "Save failed"}
    holder.clock.advance(seconds * 1000.0)
    holder.runtime.load()
    progress = holder.runtime.last_offline_progress
    if progress is None:
        return {"success": True, "offline_progress": None}
    return {
        "success": True,
        "offline_progress": {
            "offline_seconds": round(progress.offline_time_ms / 1000.0, 2),
            "efficiency": progress.efficiency_applied,
            "resources_gained": _round_amounts(progress.resources_gained),
        },
        "resources": _resource_summary(holder),
    }


def _tool_export_save(holder: _GameHolder) -> dict[str, Any]:
    return {"save": holder.runtime.export_save()}


def _tool_import_save(holder: _GameHolder, save: str) -> dict[str, Any]:
    if holder.runtime.import_save(save):
        return {"success": True}
    return {"success": False, "reason": "Save is corrupt or failed its checksum"}


def _tool_new_game(holder: _GameHolder) -> dict[str, Any]:
    holder.runtime.reset()
    return {"success": True, "message": "Game reset to initial state"}


# ── Server factory ──────────────────────────────────────────────────


def create_server(definition: GameDefinition, seed: int | None = None) -> FastMCP:
    """Create an MCP server wrapping a GameRuntime for the given definition."""
    holder = _new_holder(definition, seed)

    mcp = FastMCP(
        name=f"idlecore: {definition.config.name}",
    )

    @mcp.tool()
    def get_game_info() -> dict[str, Any]:
        """Get static game overview: resources, buildings, upgrades and click targets."""
        return _tool_get_game_info(holder)

    @mcp.tool()
    def get_game_state() -> dict[str, Any]:
        """Get current game state: resource amounts and net rates, buildings, upgrades, era."""
        return _tool_get_game_state(holder)

    @mcp.tool()
    def get_available_buildings() -> dict[str, Any]:
        """Get buildings of the current era with cost, production and time-to-afford."""
        return _tool_get_available_buildings(holder)

    @mcp.tool()
    def get_available_upgrades() -> dict[str, Any]:
        """Get visible upgrades with cost and effects."""
        return _tool_get_available_upgrades(holder)

    @mcp.tool()
    def get_building_info(building_id: str) -> dict[str, Any]:
        """Get detailed info for one building: cost, production, health and upkeep."""
        return _tool_get_building_info(holder, building_id)

    @mcp.tool()
    def purchase_building(building_id: str, count: int = 1) -> dict[str, Any]:
        """Buy buildings. All or nothing; returns success/failure with reason."""
        return _tool_purchase_building(holder, building_id, count)

    @mcp.tool()
    def purchase_upgrade(upgrade_id: str) -> dict[str, Any]:
        """Buy a one-time upgrade. Returns success/failure with reason."""
        return _tool_purchase_upgrade(holder, upgrade_id)

    @mcp.tool()
    def click(target: str, count: int = 1) -> dict[str, Any]:
        """Manually harvest a resource N times (max 1000). Returns total earned."""
        return _tool_click(holder, target, count)

    @mcp.tool()
    def wait(seconds: float) -> dict[str, Any]:
        """Advance live game time by the given seconds (max 3600), tick by tick."""
        return _tool_wait(holder, seconds)

    @mcp.tool()
    def go_offline(seconds: float) -> dict[str, Any]:
        """Close the game for the given seconds and collect offline progress on return."""
        return _tool_go_offline(holder, seconds)

    @mcp.tool()
    def export_save() -> dict[str, Any]:
        """Export the current game as portable base64 text."""
        return _tool_export_save(holder)

    @mcp.tool()
    def import_save(save: str) -> dict[str, Any]:
        """Import a previously exported save."""
        return _tool_import_save(holder, save)

    @mcp.tool()
    def new_game() -> dict[str, Any]:
        """Reset the game to initial state."""
        return _tool_new_game(holder)

    return mcp
