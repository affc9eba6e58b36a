"""Declarative scaling curves and the evaluator that resolves them.

A curve maps a :data:`CurveContext` (``{"owned": 3, "tier": 1}``) to a number.
Curves are immutable values; evaluating one has no side effects, so identical
inputs always produce identical outputs.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Union

from idlecore._types import CurveContext
from idlecore.expression import Expression

logger = logging.getLogger(__name__)

CurveRef = Union["Curve", str, int, float]


class CurveError(ValueError):
    """Raised by a strict evaluator for unknown ids or unusable curves."""


class CompoundOp(Enum):
    ADD = "add"
    MULTIPLY = "multiply"
    MIN = "min"
    MAX = "max"
    SUBTRACT = "subtract"
    DIVIDE = "divide"


class Curve(ABC):
    """Base class for every curve variant."""

    @abstractmethod
    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float: ...

    def references(self) -> list[CurveRef]:
        """Child references that must resolve for this curve to evaluate."""
        return []

    # ── Factories ────────────────────────────────────────────────────

    @staticmethod
    def exponential(
        rate: float, base: float = 1.0, count_var: str = "owned", offset: float = 0.0
    ) -> ExponentialCurve:
        return ExponentialCurve(base=base, rate=rate, count_var=count_var, offset=offset)

    @staticmethod
    def linear(rate: float, base: float = 0.0, count_var: str = "owned") -> LinearCurve:
        return LinearCurve(base=base, rate=rate, count_var=count_var)

    @staticmethod
    def polynomial(
        power: float, coefficient: float = 1.0, value_var: str = "owned"
    ) -> PolynomialCurve:
        return PolynomialCurve(coefficient=coefficient, power=power, value_var=value_var)

    @staticmethod
    def logarithmic(
        coefficient: float = 1.0,
        log_base: float = math.e,
        offset: float = 1.0,
        value_var: str = "owned",
    ) -> LogarithmicCurve:
        return LogarithmicCurve(
            coefficient=coefficient, log_base=log_base, offset=offset, value_var=value_var
        )

    @staticmethod
    def sigmoid(
        max_value: float, steepness: float, midpoint: float, value_var: str = "owned"
    ) -> SigmoidCurve:
        return SigmoidCurve(
            max_value=max_value, steepness=steepness, midpoint=midpoint, value_var=value_var
        )

    @staticmethod
    def step(steps: Mapping[float, float], input_var: str = "owned") -> StepCurve:
        """Build a step curve from a ``{threshold: value}`` mapping."""
        return StepCurve(steps=tuple(sorted(steps.items())), input_var=input_var)

    @staticmethod
    def constant(value: float) -> ConstantCurve:
        return ConstantCurve(value=value)

    @staticmethod
    def formula(expression: str) -> FormulaCurve:
        return FormulaCurve(expression=expression)

    @staticmethod
    def compound(operation: str | CompoundOp, *curves: CurveRef) -> CompoundCurve:
        return CompoundCurve(operation=CompoundOp(operation), curves=tuple(curves))


# ── Variants ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExponentialCurve(Curve):
    base: float = 1.0
    rate: float = 1.15
    count_var: str = "owned"
    offset: float = 0.0

    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float:
        count = evaluator.context_value(ctx, self.count_var)
        return self.base * math.pow(self.rate, count + self.offset)


@dataclass(frozen=True)
class LinearCurve(Curve):
    base: float = 0.0
    rate: float = 1.0
    count_var: str = "owned"

    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float:
        return self.base + self.rate * evaluator.context_value(ctx, self.count_var)


@dataclass(frozen=True)
class PolynomialCurve(Curve):
    coefficient: float = 1.0
    power: float = 1.0
    value_var: str = "owned"

    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float:
        value = evaluator.context_value(ctx, self.value_var)
        return self.coefficient * math.pow(value, self.power)


@dataclass(frozen=True)
class LogarithmicCurve(Curve):
    coefficient: float = 1.0
    log_base: float = math.e
    offset: float = 1.0
    value_var: str = "owned"

    def __post_init__(self) -> None:
        if self.log_base <= 0 or self.log_base == 1:
            raise ValueError(f"log_base must be positive and not 1, got {self.log_base}")

    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float:
        value = evaluator.context_value(ctx, self.value_var) + self.offset
        if value <= 0:
            return 0.0
        return self.coefficient * math.log(value) / math.log(self.log_base)


@dataclass(frozen=True)
class SigmoidCurve(Curve):
    max_value: float = 1.0
    steepness: float = 1.0
    midpoint: float = 0.0
    value_var: str = "owned"

    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float:
        value = evaluator.context_value(ctx, self.value_var)
        exponent = -self.steepness * (value - self.midpoint)
        if exponent > 700:
            return 0.0
        return self.max_value / (1.0 + math.exp(exponent))


@dataclass(frozen=True)
class StepCurve(Curve):
    """Value of the highest threshold not above the input; 0 below the first."""

    steps: tuple[tuple[float, float], ...] = ()
    input_var: str = "owned"

    def __post_init__(self) -> None:
        thresholds = [t for t, _ in self.steps]
        if thresholds != sorted(thresholds):
            raise ValueError("Step thresholds must be in ascending order")

    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float:
        value = evaluator.context_value(ctx, self.input_var)
        result = 0.0
        for threshold, step_value in self.steps:
            if value < threshold:
                break
            result = step_value
        return result


@dataclass(frozen=True)
class ConstantCurve(Curve):
    value: float = 1.0

    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float:
        return self.value


@dataclass(frozen=True)
class FormulaCurve(Curve):
    expression: str = "1"
    _parsed: Expression = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_parsed", Expression.parse(self.expression))

    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float:
        return self._parsed.evaluate(ctx)


@dataclass(frozen=True)
class CompoundCurve(Curve):
    operation: CompoundOp = CompoundOp.MULTIPLY
    curves: tuple[CurveRef, ...] = ()

    def references(self) -> list[CurveRef]:
        return list(self.curves)

    def compute(self, ctx: CurveContext, evaluator: CurveEvaluator) -> float:
        values = [evaluator.compute(child, ctx) for child in self.curves]
        if not values:
            return 0.0
        op = self.operation
        if op is CompoundOp.ADD:
            return math.fsum(values)
        if op is CompoundOp.MULTIPLY:
            return math.prod(values)
        if op is CompoundOp.MIN:
            return min(values)
        if op is CompoundOp.MAX:
            return max(values)
        if op is CompoundOp.SUBTRACT:
            return values[0] - math.fsum(values[1:])
        divisor = math.prod(values[1:])
        return 0.0 if divisor == 0 else values[0] / divisor


# ── Evaluator ────────────────────────────────────────────────────────


DEFAULT_CURVES: dict[str, Curve] = {
    "cost_standard": Curve.exponential(1.15),
    "cost_aggressive": Curve.exponential(1.25),
    "cost_gentle": Curve.exponential(1.08),
    "cost_tiered": Curve.compound(
        CompoundOp.MULTIPLY,
        Curve.exponential(1.15),
        Curve.step({0: 1.0, 10: 1.5, 25: 2.0, 50: 3.0, 100: 5.0}),
    ),
    "cost_dingy_5x": Curve.exponential(5.0),
    "production_linear": Curve.linear(1.0),
    "production_synergy": Curve.formula("owned * (1 + (owned - 1) * 0.01)"),
    "flat": Curve.constant(1.0),
}


class CurveEvaluator:
    """Resolves curve references (inline curves, preset ids or numbers).

    In strict mode any configuration problem raises :class:`CurveError`.
    Otherwise the problem is logged and ``neutral`` is returned, so a broken
    curve never interrupts a running tick.
    """

    def __init__(
        self, presets: Mapping[str, Curve] | None = None, strict: bool = False
    ) -> None:
        self.strict = strict
        self._presets: dict[str, Curve] = dict(DEFAULT_CURVES)
        if presets:
            self._presets.update(presets)

    def register(self, curve_id: str, curve: Curve) -> None:
        self._presets[curve_id] = curve

    def has(self, curve_id: str) -> bool:
        return curve_id in self._presets

    @property
    def preset_ids(self) -> list[str]:
        return sorted(self._presets)

    def resolve(self, ref: CurveRef) -> Curve:
        """Turn a reference into a curve. Raises CurveError for unknown ids."""
        if isinstance(ref, Curve):
            return ref
        if isinstance(ref, bool):
            raise CurveError(f"Invalid curve reference: {ref!r}")
        if isinstance(ref, (int, float)):
            return ConstantCurve(float(ref))
        curve = self._presets.get(ref)
        if curve is None:
            raise CurveError(f"Unknown curve preset {ref!r}")
        return curve

    def evaluate(self, ref: CurveRef, ctx: CurveContext, neutral: float = 1.0) -> float:
        """Evaluate *ref* against *ctx*, falling back to *neutral* on failure."""
        try:
            return self.compute(ref, ctx)
        except (ValueError, ArithmeticError) as exc:
            if self.strict:
                raise CurveError(str(exc)) from exc
            logger.warning("Curve %r failed (%s); using %s", ref, exc, neutral)
            return neutral

    def compute(self, ref: CurveRef, ctx: CurveContext) -> float:
        """Evaluate without fallback; failures propagate to the caller."""
        if isinstance(ref, (int, float)) and not isinstance(ref, bool):
            return float(ref)
        value = self.resolve(ref).compute(ctx, self)
        if not math.isfinite(value):
            raise CurveError(f"Curve {ref!r} produced non-finite value {value}")
        return value

    def context_value(self, ctx: CurveContext, name: str) -> float:
        if name in ctx:
            return float(ctx[name])
        if self.strict:
            raise CurveError(f"Variable {name!r} not found in curve context")
        logger.warning("Variable %r not found in curve context, using 0", name)
        return 0.0

    def validate_ref(self, ref: CurveRef, _seen: frozenset[str] = frozenset()) -> list[str]:
        """Return errors for references that would not resolve."""
        if isinstance(ref, str):
            if ref in _seen:
                return [f"Curve {ref!r} refers to itself"]
            if ref not in self._presets:
                return [f"Unknown curve preset {ref!r}"]
            _seen = _seen | {ref}
        try:
            curve = self.resolve(ref)
        except CurveError as exc:
            return [str(exc)]
        errors: list[str] = []
        for child in curve.references():
            errors.extend(self.validate_ref(child, _seen))
        return errors
