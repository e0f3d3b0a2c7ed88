import sys
from pathlib import Path

import pandas as pd
from reportlab.platypus import Table

sys.path.append(str(Path(__file__).resolve().parents[1]))

from generate_report_pdf import REPORT_TABLE_ROWS, build_report_flowables, build_report_pdf
from simulation import LoopInvariant, Parameters, run_batch

PARAMS = Parameters(b=2.0, A=1.0, ep=1.0)


def test_report_table_lists_counterexamples_first():
    df = pd.DataFrame(
        {
            "run": [1, 2, 3],
            "violation": [False, True, False],
            "violation_cycle": [None, 4, None],
            "cycles_completed": [10, 4, 10],
            "min_margin_m": [0.5, -1.0, 3.0],
        }
    )
    flowables = build_report_flowables(df, PARAMS, LoopInvariant.ESSENTIALS)
    tables = [f for f in flowables if isinstance(f, Table)]
    assert len(tables) == 1
    rows = tables[0]._cellvalues
    assert rows[0][0] == "Run"
    assert [r[0] for r in rows[1:]] == ["2", "1", "3"]


def test_report_without_runs_has_no_table():
    flowables = build_report_flowables(pd.DataFrame(), PARAMS, LoopInvariant.BASIC)
    assert not any(isinstance(f, Table) for f in flowables)


def test_report_pdf_bytes_and_file(tmp_path):
    df = run_batch(runs=REPORT_TABLE_ROWS + 5, seed=3, params=PARAMS, cycles=20)
    data = build_report_pdf(df, PARAMS, LoopInvariant.ESSENTIALS)
    assert isinstance(data, bytes)
    assert data.startswith(b"%PDF")

    out = build_report_pdf(df, PARAMS, LoopInvariant.ESSENTIALS, tmp_path / "report.pdf")
    assert out == tmp_path / "report.pdf"
    assert out.read_bytes().startswith(b"%PDF")
