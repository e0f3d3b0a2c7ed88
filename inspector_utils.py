"""Utilities for the Streamlit run inspector."""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np
import pandas as pd

from simulation import decode_trajectory


def get_violation_cycle(row: pd.Series) -> Optional[int]:
    """Return the cycle at which a batch run broke the loop invariant.

    Parameters
    ----------
    row:
        A pandas Series representing a run from the Monte Carlo batch.

    Returns
    -------
    Optional[int]
        The failing cycle index when the run recorded a counterexample.
        Returns ``None`` when the column is absent, the run held the
        invariant throughout, or the value is missing.
    """

    if "violation_cycle" not in row.index:
        return None
    if "violation" in row.index and not bool(row["violation"]):
        return None

    value = row["violation_cycle"]
    if value is None or pd.isna(value):
        return None

    return int(value)


def get_trajectory(row: pd.Series) -> Optional[Dict[str, np.ndarray]]:
    """Decode the stored trajectory for a batch row, if there is one."""

    if "trajectory" not in row.index:
        return None
    return decode_trajectory(row["trajectory"])
