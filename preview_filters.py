"""Preview filtering utilities for the batch results table."""
from __future__ import annotations

import pandas as pd

TIGHTEST_MARGIN_WINDOW_M = 5.0


def build_preview_dataframe(
    df: pd.DataFrame,
    *,
    counterexamples_only: bool = False,
    tightest_margin_only: bool = False,
    window_m: float = TIGHTEST_MARGIN_WINDOW_M,
) -> pd.DataFrame:
    """Return a filtered preview DataFrame respecting the configured options."""

    if df is None:
        return pd.DataFrame()
    if df.empty:
        return df.iloc[0:0]

    preview_df = df
    if counterexamples_only:
        if "violation" not in df.columns:
            preview_df = preview_df.iloc[0:0]
        else:
            preview_df = preview_df.loc[preview_df["violation"].fillna(False).astype(bool)]

    if tightest_margin_only:
        if "min_margin_m" not in df.columns:
            preview_df = preview_df.iloc[0:0]
        else:
            min_margin = df["min_margin_m"].min()
            if pd.isna(min_margin):
                preview_df = preview_df.iloc[0:0]
            else:
                threshold = float(min_margin) + float(window_m)
                preview_df = preview_df.loc[preview_df["min_margin_m"] <= threshold]
                preview_df = preview_df.sort_values("min_margin_m", ascending=True)

    return preview_df.copy()
