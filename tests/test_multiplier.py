"""Tests for multiplier module."""
import itertools

import pytest

from idlecore import events
from idlecore.condition import Cond, ConditionContext
from idlecore.events import EventBus
from idlecore.multiplier import MultiplierSource, MultiplierStack, MultiplierSystem, StackType


def _make_system(*stacks: MultiplierStack) -> MultiplierSystem:
    return MultiplierSystem(list(stacks), EventBus())


def _source(id: str, value: float, stack_id: str = "s", **kwargs) -> MultiplierSource:
    return MultiplierSource(id=id, stack_id=stack_id, value=value, **kwargs)


def test_empty_stack_is_base_value():
    system = _make_system(
        MultiplierStack("s"), MultiplierStack("a", stack_type=StackType.ADDITIVE, base_value=2.0)
    )
    assert system.get_value("s") == 1.0
    assert system.get_value("a") == 2.0


def test_multiplicative():
    system = _make_system(MultiplierStack("s"))
    system.add_multiplier(_source("a", 2.0))
    system.add_multiplier(_source("b", 1.5))
    assert system.get_value("s") == pytest.approx(3.0)


def test_additive():
    system = _make_system(MultiplierStack("s", stack_type=StackType.ADDITIVE))
    system.add_multiplier(_source("a", 0.5))
    system.add_multiplier(_source("b", 0.25))
    assert system.get_value("s") == pytest.approx(1.75)


def test_diminishing():
    system = _make_system(MultiplierStack("s", stack_type=StackType.DIMINISHING))
    system.add_multiplier(_source("a", 0.5))
    system.add_multiplier(_source("b", 0.5))
    assert system.get_value("s") == pytest.approx(0.75)


def test_clamping():
    system = _make_system(
        MultiplierStack("cap", max_value=2.0), MultiplierStack("floor", min_value=0.01)
    )
    system.add_multiplier(_source("big", 5.0, "cap"))
    system.add_multiplier(_source("zero", 0.0, "floor"))
    assert system.get_value("cap") == 2.0
    assert system.get_value("floor") == 0.01


def test_min_above_max_rejected():
    with pytest.raises(ValueError, match="min_value"):
        MultiplierStack("s", min_value=2.0, max_value=1.0)


def test_multiplicative_value_independent_of_insertion_order():
    values = [2.0, 3.0, 0.5, 1.25]
    results = set()
    for order in itertools.permutations(values):
        system = _make_system(MultiplierStack("s"))
        for i, value in enumerate(order):
            system.add_multiplier(_source(f"m{i}", value))
        results.add(round(system.get_value("s"), 12))
    assert results == {3.75}


def test_same_id_replaces():
    system = _make_system(MultiplierStack("s"))
    system.add_multiplier(_source("a", 2.0))
    system.add_multiplier(_source("a", 3.0))
    assert system.get_value("s") == 3.0
    assert len(system.sources("s")) == 1


def test_remove():
    system = _make_system(MultiplierStack("s"))
    system.add_multiplier(_source("a", 2.0))
    assert system.remove_multiplier("s", "a")
    assert not system.remove_multiplier("s", "a")
    assert system.get_value("s") == 1.0


def test_remove_by_source():
    system = _make_system(MultiplierStack("s"), MultiplierStack("t"))
    system.add_multiplier(_source("a", 2.0, "s", source_type="upgrade", source_id="sickle"))
    system.add_multiplier(_source("b", 2.0, "t", source_type="upgrade", source_id="sickle"))
    system.add_multiplier(_source("c", 2.0, "t", source_type="upgrade", source_id="yokes"))
    assert system.remove_by_source("upgrade", "sickle") == 2
    assert system.get_value("s") == 1.0
    assert system.get_value("t") == 2.0


def test_unknown_stack():
    system = _make_system(MultiplierStack("s"))
    assert system.get_value("nope") == 1.0
    system.add_multiplier(_source("a", 2.0, "nope"))
    assert system.sources("nope") == []
    assert not system.has_stack("nope")


def test_change_event_only_when_value_moves():
    system = _make_system(MultiplierStack("s"))
    changes = []
    system.bus.on(events.MULTIPLIER_CHANGED, changes.append)
    system.add_multiplier(_source("neutral", 1.0))
    assert changes == []
    system.add_multiplier(_source("a", 2.0))
    assert changes == [{"stack_id": "s", "old_value": 1.0, "new_value": 2.0}]


def test_timed_source_expires():
    system = _make_system(MultiplierStack("s"))
    system.add_multiplier(MultiplierSource.timed("boost", "s", 2.0, duration_ms=1000, now=0))
    assert system.process_expired_multipliers(999) == []
    assert system.get_value("s") == 2.0
    assert system.process_expired_multipliers(1000) == ["boost"]
    assert system.get_value("s") == 1.0


def test_conditional_source_follows_context():
    system = _make_system(MultiplierStack("s"))
    system.add_multiplier(_source("festival", 2.0, condition=Cond.event("festival")))
    assert system.get_value("s") == 1.0

    changes = []
    system.bus.on(events.MULTIPLIER_CHANGED, changes.append)
    system.update_condition_context(ConditionContext(active_events=frozenset({"festival"})))
    assert system.get_value("s") == 2.0
    assert len(changes) == 1

    system.update_condition_context(ConditionContext())
    assert system.get_value("s") == 1.0


def test_breakdown():
    system = _make_system(MultiplierStack("s"))
    system.add_multiplier(_source("a", 2.0, source_name="Iron Sickle"))
    system.add_multiplier(_source("b", 3.0))
    breakdown = system.get_stack_breakdown("s")
    assert breakdown.base == 1.0
    assert breakdown.sources == [("Iron Sickle", 2.0), ("b", 3.0)]
    assert breakdown.value == 6.0


def test_clear_sources():
    system = _make_system(MultiplierStack("s"), MultiplierStack("t"))
    system.add_multiplier(_source("a", 2.0, "s"))
    system.add_multiplier(_source("b", 4.0, "t"))
    system.clear_sources()
    assert system.get_all_values() == {"s": 1.0, "t": 1.0}
