from __future__ import annotations

import operator
import time
from typing import Callable, Mapping

CurveContext = Mapping[str, float]
ResourceAmounts = dict[str, float]
Clock = Callable[[], float]
EventHandler = Callable[[dict], None]

_OPS: dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}


def wall_clock_ms() -> float:
    """Current epoch time in milliseconds."""
    return time.time() * 1000.0


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


def compare(left: float, op: str, right: float) -> bool:
    """Compare two values using a string operator."""
    fn = _OPS.get(op)
    if fn is None:
        raise ValueError(f"Unknown operator: {op!r}. Expected one of {list(_OPS)}")
    return fn(left, right)


def check_operator(op: str) -> None:
    if op not in _OPS:
        raise ValueError(f"Unknown operator: {op!r}. Expected one of {list(_OPS)}")
