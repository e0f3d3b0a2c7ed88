import sys
from pathlib import Path

import numpy as np
import pandas as pd

sys.path.append(str(Path(__file__).resolve().parents[1]))

from inspector_utils import get_trajectory, get_violation_cycle
from policies import ScriptedPolicy
from simulation import Authority, Parameters, TrainState, run_trajectory


def test_violation_cycle_present_and_missing():
    assert get_violation_cycle(pd.Series({"violation": True, "violation_cycle": 3.0})) == 3
    assert get_violation_cycle(pd.Series({"violation": False, "violation_cycle": 3.0})) is None
    assert get_violation_cycle(pd.Series({"violation": True, "violation_cycle": np.nan})) is None
    assert get_violation_cycle(pd.Series({"violation": True, "violation_cycle": None})) is None
    assert get_violation_cycle(pd.Series({"run": 1})) is None


def test_trajectory_from_batch_record():
    params = Parameters(b=2.0, A=1.0, ep=1.0)
    record = run_trajectory(
        TrainState(z=0.0, v=4.0),
        Authority(m=40.0, vdes=10.0),
        params,
        ScriptedPolicy([1.0]),
        cycles=15,
    )
    row = pd.Series(record)
    history = get_trajectory(row)
    assert history is not None
    assert history["times"].size == 16
    assert np.isclose(history["z"][-1], record["z_final_m"])
    assert get_violation_cycle(row) is None

    assert get_trajectory(pd.Series({"run": 1})) is None
    assert get_trajectory(pd.Series({"trajectory": "garbage"})) is None
