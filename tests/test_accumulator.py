"""Tests for accumulator module."""
import pytest

from idlecore.accumulator import ProductionAccumulator


def _make_accumulator(threshold: float = 0.01):
    deposits = []
    acc = ProductionAccumulator(lambda b, r, amount: deposits.append((b, r, amount)), threshold)
    return acc, deposits


def test_small_amounts_are_buffered():
    acc, deposits = _make_accumulator()
    assert acc.add_and_flush("paddy_field", "rice", 0.004) is None
    assert acc.add_and_flush("paddy_field", "rice", 0.004) is None
    assert deposits == []
    assert acc.peek("paddy_field", "rice") == pytest.approx(0.008)


def test_flush_once_threshold_reached():
    acc, deposits = _make_accumulator()
    for _ in range(2):
        acc.add_and_flush("paddy_field", "rice", 0.004)
    result = acc.add_and_flush("paddy_field", "rice", 0.004)
    assert result is not None
    assert result.amount == pytest.approx(0.012)
    assert len(deposits) == 1
    assert deposits[0][2] == pytest.approx(0.012)
    assert acc.peek("paddy_field", "rice") == 0.0


def test_keys_are_independent():
    acc, deposits = _make_accumulator()
    acc.add_and_flush("paddy_field", "rice", 0.005)
    acc.add_and_flush("village_well", "water", 0.005)
    assert acc.pending() == {
        ("paddy_field", "rice"): 0.005,
        ("village_well", "water"): 0.005,
    }
    assert deposits == []


def test_flush_all_drains_remainders():
    acc, deposits = _make_accumulator()
    acc.add("paddy_field", "rice", 0.005)
    acc.add("village_well", "water", 0.002)
    results = acc.flush_all()
    assert len(results) == 2
    assert sum(amount for _, _, amount in deposits) == pytest.approx(0.007)
    assert acc.pending() == {}


def test_flush_of_empty_buffer():
    acc, deposits = _make_accumulator()
    assert acc.flush("paddy_field", "rice") is None
    assert deposits == []


def test_zero_threshold_passes_everything_through():
    acc, deposits = _make_accumulator(threshold=0.0)
    acc.add_and_flush("paddy_field", "rice", 0.0001)
    assert len(deposits) == 1


def test_negative_threshold_rejected():
    with pytest.raises(ValueError):
        ProductionAccumulator(lambda b, r, a: None, threshold=-1)


def test_clear():
    acc, _ = _make_accumulator()
    acc.add("paddy_field", "rice", 0.005)
    acc.clear()
    assert acc.pending() == {}
