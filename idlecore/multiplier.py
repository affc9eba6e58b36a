"""Named multiplier stacks and the sources that feed them."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum, auto

from idlecore import events
from idlecore.condition import Condition, ConditionContext
from idlecore.events import EventBus

logger = logging.getLogger(__name__)


class StackType(Enum):
    ADDITIVE = auto()
    MULTIPLICATIVE = auto()
    DIMINISHING = auto()


@dataclass(frozen=True)
class MultiplierStack:
    """Aggregation point combining sources under one arithmetic rule."""

    id: str
    name: str = ""
    category: str = ""
    stack_type: StackType = StackType.MULTIPLICATIVE
    base_value: float = 1.0
    min_value: float | None = None
    max_value: float | None = None

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", self.id)
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError(f"Stack {self.id!r}: min_value exceeds max_value")

    def clamp(self, value: float) -> float:
        if self.min_value is not None:
            value = max(self.min_value, value)
        if self.max_value is not None:
            value = min(self.max_value, value)
        return value


@dataclass(frozen=True)
class MultiplierSource:
    """One contribution to a stack, with provenance."""

    id: str
    stack_id: str
    value: float
    source_type: str = "custom"
    source_id: str = ""
    source_name: str = ""
    temporary: bool = False
    expires_at: float | None = None
    condition: Condition | None = None

    @classmethod
    def timed(
        cls,
        id: str,
        stack_id: str,
        value: float,
        duration_ms: float,
        now: float,
        **kwargs,
    ) -> MultiplierSource:
        """A temporary source expiring ``duration_ms`` after *now*."""
        return cls(
            id=id,
            stack_id=stack_id,
            value=value,
            temporary=True,
            expires_at=now + duration_ms,
            **kwargs,
        )

    def is_expired(self, now: float) -> bool:
        return self.temporary and self.expires_at is not None and self.expires_at <= now


@dataclass(frozen=True)
class StackBreakdown:
    base: float
    sources: list[tuple[str, float]] = field(default_factory=list)
    value: float = 1.0


def combine(stack: MultiplierStack, values: list[float]) -> float:
    """Combine active source values under the stack's rule, then clamp."""
    if not values:
        return stack.clamp(stack.base_value)
    if stack.stack_type is StackType.ADDITIVE:
        result = stack.base_value + math.fsum(values)
    elif stack.stack_type is StackType.MULTIPLICATIVE:
        result = stack.base_value * math.prod(values)
    else:
        result = 1.0 - math.prod(1.0 - v for v in values)
    return stack.clamp(result)


class MultiplierSystem:
    """Owns every stack and resolves their effective values.

    Values are cached per stack and recomputed when a source changes or the
    condition context moves. Any change of a resolved value emits
    ``multiplier:changed`` on the bus.
    """

    def __init__(
        self,
        stacks: list[MultiplierStack] | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.bus = bus if bus is not None else EventBus()
        self._stacks: dict[str, MultiplierStack] = {}
        self._sources: dict[str, dict[str, MultiplierSource]] = {}
        self._cache: dict[str, float] = {}
        self._context = ConditionContext()
        for stack in stacks or []:
            self.register_stack(stack)

    # ── Stacks ───────────────────────────────────────────────────────

    def register_stack(self, stack: MultiplierStack) -> None:
        self._stacks[stack.id] = stack
        self._sources.setdefault(stack.id, {})
        self._cache.pop(stack.id, None)

    def has_stack(self, stack_id: str) -> bool:
        return stack_id in self._stacks

    def get_stack(self, stack_id: str) -> MultiplierStack | None:
        return self._stacks.get(stack_id)

    @property
    def stack_ids(self) -> list[str]:
        return list(self._stacks)

    # ── Sources ──────────────────────────────────────────────────────

    def add_multiplier(self, source: MultiplierSource) -> None:
        """Insert or replace a source (keyed by source id)."""
        if source.stack_id not in self._stacks:
            logger.warning(
                "Unknown multiplier stack %r for source %r", source.stack_id, source.id
            )
            return
        old = self.get_value(source.stack_id)
        self._sources[source.stack_id][source.id] = source
        self.bus.emit(
            events.MULTIPLIER_ADDED,
            {"stack_id": source.stack_id, "source_id": source.id, "value": source.value},
        )
        self._refresh(source.stack_id, old)

    def remove_multiplier(self, stack_id: str, source_id: str) -> bool:
        sources = self._sources.get(stack_id)
        if not sources or source_id not in sources:
            return False
        old = self.get_value(stack_id)
        del sources[source_id]
        self.bus.emit(
            events.MULTIPLIER_REMOVED, {"stack_id": stack_id, "source_id": source_id}
        )
        self._refresh(stack_id, old)
        return True

    def remove_by_source(self, source_type: str, source_id: str) -> int:
        """Remove every source with the given provenance. Returns the count."""
        removed = 0
        for stack_id, sources in self._sources.items():
            matching = [
                s.id
                for s in sources.values()
                if s.source_type == source_type and s.source_id == source_id
            ]
            for sid in matching:
                self.remove_multiplier(stack_id, sid)
                removed += 1
        return removed

    def get_source(self, stack_id: str, source_id: str) -> MultiplierSource | None:
        return self._sources.get(stack_id, {}).get(source_id)

    def sources(self, stack_id: str) -> list[MultiplierSource]:
        return list(self._sources.get(stack_id, {}).values())

    def clear_sources(self) -> None:
        """Drop every source; stacks return to their base values."""
        for stack_id in self._stacks:
            old = self.get_value(stack_id)
            self._sources[stack_id] = {}
            self._refresh(stack_id, old)

    # ── Values ───────────────────────────────────────────────────────

    def get_value(self, stack_id: str) -> float:
        """Effective value of a stack; 1 for stacks that do not exist."""
        cached = self._cache.get(stack_id)
        if cached is not None:
            return cached
        stack = self._stacks.get(stack_id)
        if stack is None:
            logger.warning("Unknown multiplier stack %r, using 1", stack_id)
            return 1.0
        value = combine(stack, [s.value for s in self._active(stack_id)])
        self._cache[stack_id] = value
        return value

    def get_all_values(self) -> dict[str, float]:
        return {stack_id: self.get_value(stack_id) for stack_id in self._stacks}

    def get_stack_breakdown(self, stack_id: str) -> StackBreakdown:
        stack = self._stacks.get(stack_id)
        if stack is None:
            return StackBreakdown(base=1.0, sources=[], value=1.0)
        active = self._active(stack_id)
        return StackBreakdown(
            base=stack.base_value,
            sources=[(s.source_name or s.id, s.value) for s in active],
            value=self.get_value(stack_id),
        )

    # ── Conditions and expiry ────────────────────────────────────────

    @property
    def condition_context(self) -> ConditionContext:
        return self._context

    def update_condition_context(self, ctx: ConditionContext) -> None:
        """Replace the context and re-resolve stacks holding conditional sources."""
        if ctx == self._context:
            return
        self._context = ctx
        for stack_id, sources in self._sources.items():
            if any(s.condition is not None for s in sources.values()):
                old = self.get_value(stack_id)
                self._refresh(stack_id, old)

    def process_expired_multipliers(self, now: float) -> list[str]:
        """Remove temporary sources whose expiry has passed. Returns their ids."""
        expired: list[tuple[str, str]] = []
        for stack_id, sources in self._sources.items():
            for source in sources.values():
                if source.is_expired(now):
                    expired.append((stack_id, source.id))
        for stack_id, source_id in expired:
            self.remove_multiplier(stack_id, source_id)
        return [source_id for _, source_id in expired]

    # ── Internals ────────────────────────────────────────────────────

    def _active(self, stack_id: str) -> list[MultiplierSource]:
        return [
            s
            for s in self._sources.get(stack_id, {}).values()
            if s.condition is None or s.condition.evaluate(self._context)
        ]

    def _refresh(self, stack_id: str, old: float) -> None:
        self._cache.pop(stack_id, None)
        new = self.get_value(stack_id)
        if new != old:
            self.bus.emit(
                events.MULTIPLIER_CHANGED,
                {"stack_id": stack_id, "old_value": old, "new_value": new},
            )
