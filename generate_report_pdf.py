"""Render a batch stress-test summary to PDF using ReportLab.

The report lists the configuration of the batch, headline counts and a table
of the runs with the tightest authority margins (counterexamples first).
Run as a script to execute a default batch and write ``BATCH_REPORT.pdf``.
"""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

import numpy as np
import pandas as pd
from reportlab.lib import colors, pagesizes
from reportlab.lib.styles import ParagraphStyle, StyleSheet1, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from preview_filters import build_preview_dataframe
from simulation import LoopInvariant, Parameters, run_batch

PROJECT_ROOT = Path(__file__).parent
OUTPUT_PDF_PATH = PROJECT_ROOT / "BATCH_REPORT.pdf"

REPORT_TABLE_ROWS = 25
REPORT_COLUMNS = [
    ("run", "Run"),
    ("violation", "Violation"),
    ("violation_cycle", "Cycle"),
    ("v0_mps", "v0 (m/s)"),
    ("m0_m", "m0 (m)"),
    ("min_margin_m", "Min margin (m)"),
    ("atp_interventions", "ATP"),
    ("rbc_updates", "RBC"),
]


def load_styles() -> StyleSheet1:
    """Return a stylesheet configured for the report title, headings and body."""

    styles = getSampleStyleSheet()

    styles.add(
        ParagraphStyle(
            name="ReportTitle",
            parent=styles["Heading1"],
            fontSize=20,
            leading=24,
            spaceAfter=12,
            alignment=0,
        )
    )
    styles.add(
        ParagraphStyle(
            name="ReportHeading",
            parent=styles["Heading2"],
            fontSize=14,
            leading=18,
            spaceAfter=8,
            spaceBefore=14,
            alignment=0,
        )
    )
    styles.add(
        ParagraphStyle(
            name="Body", parent=styles["BodyText"], spaceAfter=6, leading=15
        )
    )

    return styles


INTEGER_COLUMNS = {"run", "violation_cycle", "atp_interventions", "rbc_updates"}


def _format_cell(key: str, value: object) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return "–"
    if key in INTEGER_COLUMNS:
        return str(int(value))
    if isinstance(value, (bool, np.bool_)):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:,.3f}"
    return str(value)


def build_report_flowables(
    df: pd.DataFrame,
    params: Parameters,
    variant: LoopInvariant,
    styles: Optional[StyleSheet1] = None,
) -> List:
    """Convert a batch result frame to a list of ReportLab flowables."""

    if styles is None:
        styles = load_styles()

    flowables: List = [
        Paragraph("<b>ETCS Protection Batch Report</b>", styles["ReportTitle"]),
        Paragraph(
            f"Loop invariant: <b>{variant.value}</b> &nbsp; "
            f"b = {params.b:g} m/s², A = {params.A:g} m/s², ep = {params.ep:g} s",
            styles["Body"],
        ),
    ]

    n_runs = int(len(df))
    n_bad = int(df["violation"].sum()) if n_runs and "violation" in df.columns else 0
    flowables.append(Paragraph("Summary", styles["ReportHeading"]))
    flowables.append(Paragraph(f"Trajectories: {n_runs:,}", styles["Body"]))
    flowables.append(Paragraph(f"Counterexamples: {n_bad:,}", styles["Body"]))
    if n_runs:
        cycles = int(df["cycles_completed"].sum())
        flowables.append(Paragraph(f"Cycles checked: {cycles:,}", styles["Body"]))
        flowables.append(
            Paragraph(f"Smallest authority margin: {float(df['min_margin_m'].min()):.4f} m", styles["Body"])
        )

    flowables.append(Paragraph("Tightest runs", styles["ReportHeading"]))
    if n_runs == 0:
        flowables.append(Paragraph("No runs were recorded.", styles["Body"]))
        return flowables

    ordered = pd.concat(
        [
            build_preview_dataframe(df, counterexamples_only=True),
            build_preview_dataframe(df, tightest_margin_only=True, window_m=float("inf")),
        ]
    ).drop_duplicates(subset="run")
    ordered = ordered.head(REPORT_TABLE_ROWS)

    columns = [(key, label) for key, label in REPORT_COLUMNS if key in ordered.columns]
    rows = [[label for _, label in columns]]
    for _, row in ordered.iterrows():
        rows.append([_format_cell(key, row[key]) for key, _ in columns])

    table = Table(rows, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
            ]
        )
    )
    flowables.append(Spacer(1, 6))
    flowables.append(table)
    return flowables


def build_report_pdf(
    df: pd.DataFrame,
    params: Parameters,
    variant: LoopInvariant,
    output: Union[str, Path, BinaryIO, None] = None,
) -> Union[Path, bytes]:
    """Create the PDF; returns the bytes when ``output`` is ``None``."""

    buffer = BytesIO() if output is None else None
    target = buffer if buffer is not None else output
    if isinstance(target, Path):
        target = str(target)

    doc = SimpleDocTemplate(
        target,
        pagesize=pagesizes.A4,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
    )
    doc.build(build_report_flowables(df, params, variant))

    if buffer is not None:
        return buffer.getvalue()
    return Path(output) if isinstance(output, (str, Path)) else output


def main() -> None:
    params = Parameters()
    variant = LoopInvariant.ESSENTIALS
    df = run_batch(runs=200, params=params, variant=variant)
    build_report_pdf(df, params, variant, OUTPUT_PDF_PATH)


if __name__ == "__main__":
    main()
