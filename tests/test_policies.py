import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from policies import RandomPolicy, RbcAction, RbcDecision, ScriptedPolicy
from simulation import (
    Authority,
    GuardViolation,
    Parameters,
    TrainState,
    authority_update_preserves_controllability,
    control,
    rbc_update,
)

PARAMS = Parameters(b=2.0, A=1.0, ep=1.0)


def test_rbc_decision_variants_carry_only_update_values():
    assert RbcDecision.keep() == RbcDecision(RbcAction.KEEP)
    emergency = RbcDecision.emergency()
    assert emergency.action is RbcAction.EMERGENCY and emergency.m is None
    update = RbcDecision.update(10, 3, vdes=5)
    assert (update.action, update.m, update.d, update.vdes) == (RbcAction.UPDATE, 10.0, 3.0, 5.0)
    assert RbcDecision.update(10, 3).vdes is None


def test_random_policy_choices_stay_inside_guards():
    rng = np.random.default_rng(17)
    policy = RandomPolicy(rng, p_emergency=0.0, p_update=0.5, p_extreme=0.5)
    authority = Authority(m=500.0, vdes=10.0, d=3.0)
    state = TrainState(z=0.0, v=12.0)
    seen_bounds = set()
    for _ in range(2000):
        lo, hi = -PARAMS.b, 0.0
        accel = policy.acceleration(state, authority, PARAMS, lo, hi)
        assert lo <= accel <= hi
        if accel in (lo, hi):
            seen_bounds.add(accel)

        decision = policy.rbc(state, authority, PARAMS)
        if decision.action is RbcAction.UPDATE:
            assert decision.d > 0.0 and decision.vdes >= 0.0
            assert authority_update_preserves_controllability(
                authority.d, decision.d, authority.m, decision.m, PARAMS, tol=1e-9
            )
            rbc_update(authority, decision, PARAMS)
    assert seen_bounds == {-PARAMS.b, 0.0}


def test_random_policy_without_updates_only_keeps_or_raises_emergency():
    policy = RandomPolicy(np.random.default_rng(0), p_emergency=0.3, p_update=0.7, allow_updates=False)
    actions = {policy.rbc(TrainState(), Authority(m=10.0), PARAMS).action for _ in range(500)}
    assert actions == {RbcAction.KEEP, RbcAction.EMERGENCY}


def test_scripted_policy_clips_repeats_and_resets():
    policy = ScriptedPolicy([3.0, -0.5], rbc_decisions=[RbcDecision.emergency()])
    state, authority = TrainState(v=1.0), Authority(m=100.0, vdes=5.0)
    assert policy.acceleration(state, authority, PARAMS, -2.0, 1.0) == 1.0
    assert policy.acceleration(state, authority, PARAMS, -2.0, 1.0) == -0.5
    assert policy.acceleration(state, authority, PARAMS, -2.0, 1.0) == -0.5
    assert policy.rbc(state, authority, PARAMS).action is RbcAction.EMERGENCY
    assert policy.rbc(state, authority, PARAMS).action is RbcAction.KEEP

    policy.reset()
    assert policy.acceleration(state, authority, PARAMS, -2.0, 1.0) == 1.0
    assert policy.rbc(state, authority, PARAMS).action is RbcAction.EMERGENCY

    with pytest.raises(ValueError):
        ScriptedPolicy([])


def test_strict_scripted_policy_surfaces_guard_violation():
    state, authority = TrainState(v=1.0), Authority(m=100.0, vdes=5.0)
    with pytest.raises(GuardViolation):
        control(state, authority, PARAMS, ScriptedPolicy([-2.5], strict=True))
