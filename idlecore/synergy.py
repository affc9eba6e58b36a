"""Owned-count driven multipliers.

Two kinds of building-sourced bonuses are pushed into the
:class:`MultiplierSystem` here:

* synergies, where each unit of one building raises another building's
  production stack by ``bonus_per_unit``;
* building effects, where a building pushes a value into an arbitrary stack
  while it is owned, either scaling with the owned count or fixed.

Neither is persisted; both are re-derived from building counts on
construction, after a load and after a reset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from idlecore import events
from idlecore.building import BuildingEffect
from idlecore.definition import GameDefinition
from idlecore.events import EventBus
from idlecore.multiplier import MultiplierSource, MultiplierSystem
from idlecore.state_manager import StateManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedSynergy:
    source_building: str
    source_name: str
    target_building: str
    target_stack: str
    bonus_per_unit: float

    @property
    def multiplier_id(self) -> str:
        return f"synergy:{self.source_building}:{self.target_building}"


@dataclass(frozen=True)
class ResolvedEffect:
    building_id: str
    building_name: str
    effect: BuildingEffect

    @property
    def multiplier_id(self) -> str:
        return f"building:{self.building_id}:{self.effect.stack_id}"


class SynergyProcessor:
    def __init__(
        self,
        definition: GameDefinition,
        state_manager: StateManager,
        multipliers: MultiplierSystem,
        bus: EventBus | None = None,
    ) -> None:
        self.definition = definition
        self.state_manager = state_manager
        self.multipliers = multipliers
        self.bus = bus if bus is not None else state_manager.bus
        self.synergies = self._resolve_synergies()
        self.effects = self._resolve_effects()
        self._unsubscribers: list[Callable[[], None]] = [
            self.bus.on(events.BUILDING_PURCHASED, self._on_building_changed),
            self.bus.on(events.BUILDING_REMOVED, self._on_building_changed),
            self.bus.on(events.STATE_LOADED, self._on_state_replaced),
            self.bus.on(events.GAME_RESET, self._on_state_replaced),
        ]
        self.recalculate_all()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # ── Recalculation ────────────────────────────────────────────────

    def recalculate_all(self) -> None:
        for building_id in {s.source_building for s in self.synergies} | {
            e.building_id for e in self.effects
        }:
            self.update_for_building(building_id)

    def update_for_building(self, building_id: str) -> None:
        """Re-push every bonus sourced from *building_id*."""
        owned = self._owned(building_id)
        for syn in self.synergies:
            if syn.source_building != building_id:
                continue
            if owned <= 0:
                self.multipliers.remove_multiplier(syn.target_stack, syn.multiplier_id)
                continue
            self.multipliers.add_multiplier(
                MultiplierSource(
                    id=syn.multiplier_id,
                    stack_id=syn.target_stack,
                    value=1.0 + owned * syn.bonus_per_unit,
                    source_type="synergy",
                    source_id=syn.source_building,
                    source_name=syn.source_name,
                )
            )
        for res in self.effects:
            if res.building_id != building_id:
                continue
            if owned <= 0:
                self.multipliers.remove_multiplier(res.effect.stack_id, res.multiplier_id)
                continue
            self.multipliers.add_multiplier(
                MultiplierSource(
                    id=res.multiplier_id,
                    stack_id=res.effect.stack_id,
                    value=res.effect.resolve(owned),
                    source_type="building",
                    source_id=res.building_id,
                    source_name=res.building_name,
                )
            )

    # ── Display helpers ──────────────────────────────────────────────

    def synergy_bonuses(self, building_id: str) -> list[tuple[str, float]]:
        """``(source name, bonus)`` pairs currently boosting *building_id*."""
        bonuses = []
        for syn in self.synergies:
            if syn.target_building != building_id:
                continue
            owned = self._owned(syn.source_building)
            if owned > 0:
                bonuses.append((syn.source_name, owned * syn.bonus_per_unit))
        return bonuses

    def building_effect_bonuses(self, building_id: str) -> list[tuple[str, float]]:
        """``(stack id, multiplier)`` pairs *building_id* currently provides."""
        owned = self._owned(building_id)
        if owned <= 0:
            return []
        return [
            (res.effect.stack_id, res.effect.resolve(owned))
            for res in self.effects
            if res.building_id == building_id
        ]

    # ── Internals ────────────────────────────────────────────────────

    def _owned(self, building_id: str) -> int:
        bs = self.state_manager.get_building(building_id)
        return bs.owned if bs is not None else 0

    def _on_building_changed(self, payload: dict) -> None:
        self.update_for_building(payload["building_id"])

    def _on_state_replaced(self, payload: dict) -> None:
        self.recalculate_all()

    def _resolve_synergies(self) -> list[ResolvedSynergy]:
        resolved = []
        for bdef in self.definition.buildings:
            for syn in bdef.synergies:
                target = self.definition.get_building(syn.target_building)
                if target is None:
                    logger.warning(
                        "Synergy from %r targets unknown building %r",
                        bdef.id,
                        syn.target_building,
                    )
                    continue
                stack_id = target.production.amount_stack_id if target.production else None
                if stack_id is None:
                    logger.warning(
                        "Synergy target %r of %r has no amount_stack_id",
                        syn.target_building,
                        bdef.id,
                    )
                    continue
                resolved.append(
                    ResolvedSynergy(
                        source_building=bdef.id,
                        source_name=bdef.display_name,
                        target_building=target.id,
                        target_stack=stack_id,
                        bonus_per_unit=syn.bonus_per_unit,
                    )
                )
        if resolved:
            logger.debug("Resolved %d synergies", len(resolved))
        return resolved

    def _resolve_effects(self) -> list[ResolvedEffect]:
        resolved = []
        for bdef in self.definition.buildings:
            for eff in bdef.effects:
                if not self.multipliers.has_stack(eff.stack_id):
                    logger.warning(
                        "Building %r has effect on unknown stack %r", bdef.id, eff.stack_id
                    )
                    continue
                resolved.append(ResolvedEffect(bdef.id, bdef.display_name, eff))
        return resolved
