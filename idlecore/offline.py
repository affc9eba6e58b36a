"""Offline catch-up computed through the live production code.

Time away is capped at ``max_offline_seconds``, scaled by
``offline_efficiency`` and integrated as one large production pass over a
scratch copy of the state. Synergies and upgrade multipliers are re-derived
for that copy exactly as they are after a load, so the result matches what
the tick loop would have produced over the same simulated time. Upkeep is
not charged while away.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from idlecore.context import SimulationContext
from idlecore.definition import GameDefinition, TimingConfig
from idlecore.state import GameState

logger = logging.getLogger(__name__)

MIN_OFFLINE_MS = 1000.0


@dataclass
class OfflineProgress:
    resources_gained: dict[str, float] = field(default_factory=dict)
    offline_time_ms: float = 0.0
    efficiency_applied: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "resources_gained": dict(self.resources_gained),
            "offline_time_ms": self.offline_time_ms,
            "efficiency_applied": self.efficiency_applied,
        }


def calculate_offline_progress(
    definition: GameDefinition,
    state: GameState | Mapping[str, Any],
    last_played_at: float,
    now: float,
    timing: TimingConfig | None = None,
) -> OfflineProgress | None:
    """Per-resource change earned between *last_played_at* and *now*.

    Returns ``None`` when less than a second has passed. Converters report
    the inputs they used up as negative changes.
    """
    elapsed = now - last_played_at
    if elapsed < MIN_OFFLINE_MS:
        return None
    if timing is None:
        timing = definition.config.timing

    actual_ms = min(elapsed, timing.max_offline_seconds * 1000.0)
    effective_ms = actual_ms * timing.offline_efficiency

    ctx = SimulationContext.build(definition, state, clock=lambda: now)
    try:
        before = ctx.state_manager.resource_totals()
        ctx.production.process_all(effective_ms / 1000.0, offline=True)
        ctx.production.flush_all()
        after = ctx.state_manager.resource_totals()
    finally:
        ctx.close()

    gained = {rid: after[rid] - before.get(rid, 0.0) for rid in after}
    gained = {rid: delta for rid, delta in gained.items() if delta != 0}
    logger.debug(
        "Offline %.0f ms (%.0f effective): %s", actual_ms, effective_ms, gained
    )
    return OfflineProgress(
        resources_gained=gained,
        offline_time_ms=actual_ms,
        efficiency_applied=timing.offline_efficiency,
    )


def apply_offline_progress(state: GameState, progress: OfflineProgress, now: float) -> None:
    """Credit *progress* to *state* in place and stamp it as played at *now*."""
    for resource_id, amount in progress.resources_gained.items():
        rs = state.resources.get(resource_id)
        if rs is None:
            continue
        value = rs.current + amount
        if rs.max_capacity is not None:
            value = min(value, rs.max_capacity)
        rs.current = max(0.0, value)
        if amount > 0:
            rs.lifetime += amount
    state.last_played_at = now
