from __future__ import annotations

import logging
import math

from idlecore import events
from idlecore.multiplier import MultiplierSource, MultiplierSystem
from idlecore.requirement import UnlockEvaluator
from idlecore.state_manager import StateManager
from idlecore.upgrade import (
    GrantResources,
    UnlockBuilding,
    UnlockEra,
    UnlockFeature,
    UnlockResource,
    UpgradeDef,
    UpgradeInfo,
)

logger = logging.getLogger(__name__)

UPGRADE_COST = "upgrade_cost"


def effect_id(upgrade_id: str, stack_id: str, index: int = 0) -> str:
    return f"upgrade:{upgrade_id}:{stack_id}:{index}"


class UpgradeSystem:
    """One-time upgrades: pricing, gating, and the multipliers they grant.

    Upgrade multipliers are not persisted. :meth:`reapply_purchased_effects`
    restores them from the purchased flags after a load.
    """

    def __init__(self, state_manager: StateManager, multipliers: MultiplierSystem) -> None:
        self.state_manager = state_manager
        self.definition = state_manager.definition
        self.multipliers = multipliers
        self._applied: set[str] = set()
        self._seen_unlocked: set[str] = set()
        self._unsubscribers = [
            state_manager.bus.on(events.STATE_LOADED, self._on_state_replaced),
            state_manager.bus.on(events.GAME_RESET, self._on_state_replaced),
        ]
        self.reapply_purchased_effects()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # ── Queries ──────────────────────────────────────────────────────

    def calculate_cost(self, upgrade_id: str) -> dict[str, float]:
        udef = self.definition.get_upgrade(upgrade_id)
        if udef is None:
            return {}
        scale = self.multipliers.get_value(UPGRADE_COST)
        return {rid: float(math.ceil(amount * scale)) for rid, amount in udef.cost.items()}

    def is_unlocked(self, upgrade_id: str) -> bool:
        udef = self.definition.get_upgrade(upgrade_id)
        if udef is None:
            return False
        state = self.state_manager.state
        if udef.era > state.current_era:
            return False
        if not all(state.is_upgrade_purchased(p) for p in udef.prerequisites):
            return False
        return UnlockEvaluator.all_met(udef.requirements, state)

    def is_visible(self, upgrade_id: str) -> bool:
        udef = self.definition.get_upgrade(upgrade_id)
        if udef is None:
            return False
        if self.state_manager.is_upgrade_purchased(upgrade_id):
            return True
        if udef.era > self.state_manager.state.current_era:
            return False
        return udef.visible_before_unlock or self.is_unlocked(upgrade_id)

    def get_upgrade_info(self, upgrade_id: str) -> UpgradeInfo | None:
        udef = self.definition.get_upgrade(upgrade_id)
        if udef is None:
            return None
        purchased = self.state_manager.is_upgrade_purchased(upgrade_id)
        cost = self.calculate_cost(upgrade_id)
        return UpgradeInfo(
            id=udef.id,
            display_name=udef.display_name,
            description=udef.description,
            category=udef.category,
            purchased=purchased,
            unlocked=self.is_unlocked(upgrade_id),
            visible=self.is_visible(upgrade_id),
            can_afford=not purchased and self.state_manager.can_afford(cost),
            cost=cost,
            effects=list(udef.effects),
        )

    def get_available_upgrades(self) -> list[UpgradeInfo]:
        """Visible upgrades of the current era or earlier."""
        era = self.state_manager.state.current_era
        infos = []
        for udef in self.definition.upgrades:
            if udef.era > era:
                continue
            info = self.get_upgrade_info(udef.id)
            if info is not None and info.visible:
                infos.append(info)
        return infos

    def check_unlocks(self) -> list[str]:
        """Ids of upgrades that became purchasable since the last call."""
        newly = []
        for udef in self.definition.upgrades:
            if udef.id in self._seen_unlocked or self.state_manager.is_upgrade_purchased(udef.id):
                continue
            if self.is_unlocked(udef.id):
                self._seen_unlocked.add(udef.id)
                newly.append(udef.id)
                self.state_manager.bus.emit(events.UPGRADE_UNLOCKED, {"upgrade_id": udef.id})
        return newly

    # ── Purchase ─────────────────────────────────────────────────────

    def purchase(self, upgrade_id: str) -> bool:
        udef = self.definition.get_upgrade(upgrade_id)
        if udef is None or self.state_manager.is_upgrade_purchased(upgrade_id):
            return False
        if not self.is_unlocked(upgrade_id):
            return False
        if not self.state_manager.deduct_costs(
            self.calculate_cost(upgrade_id), f"upgrade:{upgrade_id}"
        ):
            return False

        with self.state_manager.batch():
            self.state_manager.purchase_upgrade(upgrade_id)
            self._apply_effects(udef)
            self._apply_special_effects(udef)
        logger.debug("Purchased upgrade %s", upgrade_id)
        return True

    def reapply_purchased_effects(self) -> None:
        self._applied.clear()
        for udef in self.definition.upgrades:
            if self.state_manager.is_upgrade_purchased(udef.id):
                self._apply_effects(udef)

    def reset_for_prestige(self) -> None:
        """Drop the multipliers of every purchased upgrade that resets on prestige."""
        for udef in self.definition.upgrades:
            if not udef.resets_on_prestige or udef.id not in self._applied:
                continue
            for i, eff in enumerate(udef.effects):
                self.multipliers.remove_multiplier(eff.stack_id, effect_id(udef.id, eff.stack_id, i))
            self._applied.discard(udef.id)
            self._seen_unlocked.discard(udef.id)

    # ── Internals ────────────────────────────────────────────────────

    def _apply_effects(self, udef: UpgradeDef) -> None:
        if udef.id in self._applied:
            return
        for i, eff in enumerate(udef.effects):
            self.multipliers.add_multiplier(
                MultiplierSource(
                    id=effect_id(udef.id, eff.stack_id, i),
                    stack_id=eff.stack_id,
                    value=eff.value,
                    source_type="upgrade",
                    source_id=udef.id,
                    source_name=udef.display_name,
                )
            )
        self._applied.add(udef.id)

    def _apply_special_effects(self, udef: UpgradeDef) -> None:
        sm = self.state_manager
        for special in udef.special_effects:
            if isinstance(special, UnlockBuilding):
                sm.unlock_building(special.building_id)
            elif isinstance(special, UnlockResource):
                sm.unlock_resource(special.resource_id)
            elif isinstance(special, UnlockFeature):
                sm.unlock_feature(special.feature_id)
            elif isinstance(special, GrantResources):
                for resource_id, amount in special.grants.items():
                    sm.update_resource(resource_id, amount, f"upgrade:{udef.id}")
            elif isinstance(special, UnlockEra):
                if special.era > sm.state.current_era:
                    sm.set_era(special.era)
            else:
                logger.warning("Upgrade %r has unsupported special effect %r", udef.id, special)

    def _on_state_replaced(self, payload: dict) -> None:
        for udef in self.definition.upgrades:
            for i, eff in enumerate(udef.effects):
                self.multipliers.remove_multiplier(eff.stack_id, effect_id(udef.id, eff.stack_id, i))
        self._seen_unlocked.clear()
        self.reapply_purchased_effects()
