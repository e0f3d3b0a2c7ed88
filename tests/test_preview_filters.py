import pandas as pd
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from preview_filters import TIGHTEST_MARGIN_WINDOW_M, build_preview_dataframe


def make_df():
    return pd.DataFrame(
        {
            "run": [1, 2, 3, 4],
            "violation": [False, True, False, True],
            "min_margin_m": [12.0, -0.5, 40.0, 1.5],
        }
    )


def test_counterexample_filter_only():
    df = make_df()
    result = build_preview_dataframe(df, counterexamples_only=True)
    assert list(result["run"]) == [2, 4]


def test_tightest_margin_window_filters_and_sorts():
    df = make_df()
    result = build_preview_dataframe(df, tightest_margin_only=True)
    threshold = df["min_margin_m"].min() + TIGHTEST_MARGIN_WINDOW_M
    assert result["min_margin_m"].max() <= threshold
    assert list(result["min_margin_m"]) == sorted(result["min_margin_m"])  # ascending order
    assert list(result["run"]) == [2, 4]


def test_combined_filters_apply_in_sequence():
    df = make_df()
    result = build_preview_dataframe(df, counterexamples_only=True, tightest_margin_only=True, window_m=100.0)
    assert list(result["run"]) == [2, 4]  # sorted by margin ascending
    assert result["violation"].all()


def test_missing_columns_yield_empty_preview():
    df = pd.DataFrame({"run": [1, 2]})
    assert build_preview_dataframe(df, counterexamples_only=True).empty
    assert build_preview_dataframe(df, tightest_margin_only=True).empty


def test_handles_empty_input():
    df = pd.DataFrame(columns=["run", "violation", "min_margin_m"])
    result = build_preview_dataframe(df, counterexamples_only=True, tightest_margin_only=True)
    assert result.empty
    assert build_preview_dataframe(None).empty
