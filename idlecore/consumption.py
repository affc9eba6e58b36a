from __future__ import annotations

import logging

from idlecore import events
from idlecore.building import BuildingDef, ConsumptionConfig, DeathPolicy, HealthInfo
from idlecore.state_manager import StateManager

logger = logging.getLogger(__name__)

CRITICAL_HEALTH_PCT = 25.0


class ConsumptionProcessor:
    """Per-tick upkeep, starvation damage and regeneration.

    Health is shared by all owned units of a building type. Missing upkeep
    deals ``missing * health_loss_per_missing`` damage; a fully supplied tick
    heals by the amount a fully starved tick would have dealt.
    """

    def __init__(self, state_manager: StateManager) -> None:
        self.state_manager = state_manager

    def process_all(self) -> None:
        for bdef in self.state_manager.definition.buildings:
            if bdef.consumption is None:
                continue
            bs = self.state_manager.get_building(bdef.id)
            if bs is None or bs.owned <= 0:
                continue
            self.process_building(bdef)

    def process_building(self, bdef: BuildingDef) -> None:
        cfg = bdef.consumption
        sm = self.state_manager
        owned = sm.get_building(bdef.id).owned
        damage = 0.0

        for cr in cfg.resources:
            required = cr.amount_per_tick * owned
            available = sm.state.resource_amount(cr.resource_id)
            consumed = min(required, available)
            missing = required - consumed
            if consumed > 0:
                sm.update_resource(cr.resource_id, -consumed, f"consumption:{bdef.id}")
            if missing > 0:
                damage += missing * cr.health_loss_per_missing
                sm.bus.emit(
                    events.CONSUMPTION_SHORTAGE,
                    {
                        "building_id": bdef.id,
                        "resource_id": cr.resource_id,
                        "required": required,
                        "available": available,
                        "missing": missing,
                    },
                )

        if damage > 0:
            self._apply_damage(bdef, cfg, damage)
        else:
            regen = sum(
                cr.amount_per_tick * cr.health_loss_per_missing * owned for cr in cfg.resources
            )
            self._apply_regen(bdef, cfg, regen)

    def health_info(self, building_id: str) -> HealthInfo | None:
        bdef = self.state_manager.definition.get_building(building_id)
        bs = self.state_manager.get_building(building_id)
        if bdef is None or bdef.consumption is None or bs is None:
            return None
        max_health = bs.max_health if bs.max_health is not None else bdef.consumption.max_health
        current = bs.health if bs.health is not None else max_health
        pct = current / max_health * 100.0 if max_health > 0 else 0.0
        return HealthInfo(
            current=current,
            max=max_health,
            percentage=pct,
            is_critical=pct <= CRITICAL_HEALTH_PCT,
        )

    def consumption_per_tick(self, building_id: str) -> dict[str, float]:
        bdef = self.state_manager.definition.get_building(building_id)
        bs = self.state_manager.get_building(building_id)
        if bdef is None or bdef.consumption is None or bs is None:
            return {}
        return {cr.resource_id: cr.amount_per_tick * bs.owned for cr in bdef.consumption.resources}

    def total_consumption(self, resource_id: str) -> float:
        total = 0.0
        for bdef in self.state_manager.definition.buildings:
            total += self.consumption_per_tick(bdef.id).get(resource_id, 0.0)
        return total

    # ── Internals ────────────────────────────────────────────────────

    def _apply_damage(self, bdef: BuildingDef, cfg: ConsumptionConfig, damage: float) -> None:
        sm = self.state_manager
        bs = sm.get_building(bdef.id)
        old = bs.health if bs.health is not None else cfg.max_health
        new = max(0.0, old - damage)
        sm.set_building_health(bdef.id, new)
        sm.bus.emit(
            events.BUILDING_HEALTH_CHANGED,
            {
                "building_id": bdef.id,
                "old_health": old,
                "new_health": new,
                "damage": damage,
                "max_health": cfg.max_health,
            },
        )
        if new <= 0 and (cfg.on_death is DeathPolicy.REMOVE or old > 0):
            self._handle_death(bdef, cfg)

    def _apply_regen(self, bdef: BuildingDef, cfg: ConsumptionConfig, amount: float) -> None:
        sm = self.state_manager
        bs = sm.get_building(bdef.id)
        old = bs.health if bs.health is not None else cfg.max_health
        if old >= cfg.max_health or amount <= 0:
            return
        new = min(cfg.max_health, old + amount)
        sm.set_building_health(bdef.id, new)
        sm.bus.emit(
            events.BUILDING_HEALTH_REGEN,
            {
                "building_id": bdef.id,
                "old_health": old,
                "new_health": new,
                "healed": amount,
                "max_health": cfg.max_health,
            },
        )
        if bs.disabled and new >= cfg.max_health:
            sm.set_building_disabled(bdef.id, False)

    def _handle_death(self, bdef: BuildingDef, cfg: ConsumptionConfig) -> None:
        sm = self.state_manager
        if cfg.on_death is DeathPolicy.REMOVE:
            sm.remove_building(bdef.id, 1)
            remaining = sm.get_building(bdef.id).owned
            if remaining > 0:
                sm.set_building_health(bdef.id, cfg.max_health)
            logger.info("%s starved; %d remaining", bdef.id, remaining)
            sm.bus.emit(
                events.BUILDING_DIED,
                {
                    "building_id": bdef.id,
                    "building_name": bdef.display_name,
                    "remaining": remaining,
                    "cause": "starvation",
                },
            )
        else:
            sm.set_building_disabled(bdef.id, True)
            logger.info("%s starved and was disabled", bdef.id)
