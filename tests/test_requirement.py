"""Tests for requirement module."""
import pytest

from idlecore.building import BuildingDef
from idlecore.definition import GameDefinition
from idlecore.requirement import Req, UnlockEvaluator
from idlecore.resource import ResourceDef
from idlecore.state import GameState
from idlecore.upgrade import UpgradeDef


def _make_state() -> GameState:
    defn = GameDefinition(
        resources=[ResourceDef("rice", initial_amount=100), ResourceDef("water")],
        buildings=[BuildingDef("paddy_field"), BuildingDef("buffalo")],
        upgrades=[UpgradeDef("iron_sickle"), UpgradeDef("better_yokes")],
    )
    state = GameState.initial(defn)
    state.resources["rice"].lifetime = 500
    state.buildings["paddy_field"].owned = 5
    state.buildings["buffalo"].owned = 2
    state.upgrades["iron_sickle"].purchased = True
    state.current_era = 2
    state.statistics.total_clicks = 10
    state.statistics.total_play_time_ms = 60_000
    return state


def test_resource_requirement():
    state = _make_state()
    assert Req.resource("rice", 100).evaluate(state)
    assert not Req.resource("rice", 101).evaluate(state)
    assert Req.resource("rice", 200, op="<").evaluate(state)
    assert not Req.resource("water", 1).evaluate(state)


def test_lifetime_requirement():
    state = _make_state()
    assert Req.lifetime("rice", 500).evaluate(state)
    assert not Req.lifetime("rice", 501).evaluate(state)


def test_owns_requirement():
    state = _make_state()
    assert Req.owns("paddy_field").evaluate(state)
    assert Req.owns("paddy_field", 5).evaluate(state)
    assert not Req.owns("paddy_field", 6).evaluate(state)
    assert not Req.owns("rice_mill").evaluate(state)


def test_upgrade_requirement():
    state = _make_state()
    assert Req.upgrade("iron_sickle").evaluate(state)
    assert not Req.upgrade("better_yokes").evaluate(state)


def test_progress_requirements():
    state = _make_state()
    assert Req.era(2).evaluate(state)
    assert not Req.era(3).evaluate(state)
    assert Req.clicks(10).evaluate(state)
    assert not Req.clicks(11).evaluate(state)
    assert Req.play_time(60_000).evaluate(state)
    assert not Req.play_time(60_001).evaluate(state)
    assert Req.prestige(0).evaluate(state)
    assert not Req.prestige(1).evaluate(state)


def test_composite():
    state = _make_state()
    r = Req.all(Req.owns("paddy_field", 5), Req.upgrade("iron_sickle"))
    assert r.evaluate(state)

    r2 = Req.any(Req.owns("rice_mill"), Req.owns("buffalo", 2))
    assert r2.evaluate(state)

    r3 = Req.all(Req.owns("paddy_field"), Req.upgrade("better_yokes"))
    assert not r3.evaluate(state)


def test_operators():
    state = _make_state()
    r = Req.owns("paddy_field") & Req.owns("buffalo")
    assert r.evaluate(state)

    r2 = Req.owns("rice_mill") | Req.owns("buffalo")
    assert r2.evaluate(state)


def test_unlock_evaluator():
    state = _make_state()
    reqs = [Req.owns("paddy_field", 5), Req.owns("buffalo", 3)]
    assert not UnlockEvaluator.all_met(reqs, state)
    assert UnlockEvaluator.all_met([], state)
    unmet = UnlockEvaluator.unmet(reqs, state)
    assert len(unmet) == 1
    assert "buffalo" in unmet[0]


def test_bad_operator_rejected():
    with pytest.raises(ValueError, match="Unknown operator"):
        Req.resource("rice", 1, op="=>")
