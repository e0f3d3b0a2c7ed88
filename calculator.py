#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ETCS Protection Analyser - Streamlit app
 A) Single run: one trajectory under a constant or random supervision policy,
    with the ATP braking curve and authority boundary plotted against it
 B) Batch Monte Carlo: many randomized trajectories per loop-invariant variant,
    counterexample table, run inspector, CSV and PDF downloads
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import streamlit as st

from generate_report_pdf import build_report_pdf
from inspector_utils import get_trajectory, get_violation_cycle
from policies import RandomPolicy, ScriptedPolicy
from preview_filters import TIGHTEST_MARGIN_WINDOW_M, build_preview_dataframe
from simulation import (
    DEFAULT_BRAKING_MPS2,
    DEFAULT_CYCLE_S,
    DEFAULT_MAX_ACCEL_MPS2,
    SCENARIO_VARIANTS,
    Authority,
    ConfigurationError,
    Emergency,
    InvariantViolation,
    Parameters,
    TrainState,
    advance,
    encode_trajectory,
    decode_trajectory,
    run,
    run_batch,
    stopping_distance,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

POLICY_CHOICES = ["Always accelerate", "Coast", "Random (adversarial)"]


def sanitize_parameters(b: float, A: float, ep: float) -> Tuple[Optional[Parameters], Optional[str]]:
    """Return validated parameters, or an error message for the sidebar."""

    try:
        return Parameters(b=float(b), A=float(A), ep=float(ep)), None
    except ConfigurationError as exc:
        return None, str(exc)


def braking_curve(m: float, d: float, b: float, z_min: float, n: int = 200) -> Tuple[np.ndarray, np.ndarray]:
    """Speeds from which full braking just reaches ``d`` at ``m``."""

    z = np.linspace(min(z_min, m), m, n)
    v = np.sqrt(np.maximum(d * d + 2.0 * b * (m - z), 0.0))
    return z, v


# ------------------------------- Streamlit UI -------------------------------

st.set_page_config(page_title="ETCS Protection Analyser", layout="wide")
st.title("ETCS Protection Analyser")

with st.sidebar:
    st.header("Simulation Controls")

    with st.expander("Train Parameters", expanded=True):
        b_in = st.number_input(
            "Braking force b (m/s²)",
            value=DEFAULT_BRAKING_MPS2,
            step=0.1,
            help="Guaranteed service-brake deceleration used by ATP and the controllability check.",
        )
        A_in = st.number_input(
            "Max acceleration A (m/s²)",
            value=DEFAULT_MAX_ACCEL_MPS2,
            step=0.1,
            help="Upper bound on traction the speed supervision may command.",
        )
        ep_in = st.number_input(
            "Control cycle ep (s)",
            value=DEFAULT_CYCLE_S,
            step=0.1,
            help="Longest time the train drives before the controller runs again.",
        )

    with st.expander("Scenario", expanded=True):
        scenario = st.selectbox(
            "Loop invariant",
            list(SCENARIO_VARIANTS),
            help="Essentials checks controllability; the stop-form variants require d = 0 and no RBC updates.",
        )
        seed = st.number_input(
            "Random seed",
            value=26,
            step=1,
            help="Use a fixed seed to reproduce a batch exactly.",
        )

params, params_error = sanitize_parameters(b_in, A_in, ep_in)
variant = SCENARIO_VARIANTS[scenario]
if params is None:
    st.error(f"Invalid parameters: {params_error}")
    st.stop()

tabs = st.tabs(["Single‑run demo", "Batch Monte Carlo"])

with tabs[0]:
    c1, c2, c3, c4 = st.columns(4)
    with c1:
        m_in = st.number_input("Authority m (m)", value=20.0, step=1.0,
                               help="End of movement authority.")
    with c2:
        v_in = st.number_input("Initial speed v (m/s)", value=4.0, min_value=0.0, step=0.5)
    with c3:
        d_in = st.number_input("Supervised speed d (m/s)", value=0.0, min_value=0.0, step=0.5,
                               help="Speed allowed at the boundary; stop-form scenarios need 0.")
    with c4:
        vdes_in = st.number_input("Desired speed vdes (m/s)", value=30.0, min_value=0.0, step=1.0)

    policy_label = st.selectbox("Supervision policy", POLICY_CHOICES, index=0)
    n_cycles = st.number_input("Cycles", value=30, min_value=1, max_value=5000, step=5)

    if st.button("Run single case"):
        state0 = TrainState(z=0.0, v=float(v_in))
        authority0 = Authority(m=float(m_in), vdes=float(vdes_in), em=Emergency.OFF, d=float(d_in))
        if policy_label == "Always accelerate":
            policy = ScriptedPolicy([params.A])
        elif policy_label == "Coast":
            policy = ScriptedPolicy([0.0])
        else:
            policy = RandomPolicy(np.random.default_rng(int(seed)), allow_updates=not variant.stop_form)

        snapshots = []
        failure: Optional[InvariantViolation] = None
        try:
            for snap in run(state0, authority0, params, policy, int(n_cycles), variant):
                snapshots.append(snap)
        except ConfigurationError as exc:
            st.error(f"Initial state rejected: {exc}")
            st.stop()
        except InvariantViolation as exc:
            failure = exc
            if exc.snapshot is not None:
                snapshots.append(exc.snapshot)

        history = decode_trajectory(encode_trajectory(state0, authority0, snapshots))
        final = snapshots[-1] if snapshots else None

        c_metric1, c_metric2, c_metric3, c_metric4 = st.columns(4)
        c_metric1.metric("Stopping distance at start", f"{stopping_distance(state0.v, params.b):.2f} m")
        c_metric2.metric("Final position", f"{final.state.z:.2f} m" if final else "–")
        c_metric3.metric("ATP interventions", f"{sum(s.atp_braking for s in snapshots)}")
        c_metric4.metric("Smallest margin", f"{min((s.margin_m for s in snapshots), default=0.0):.3f} m")
        if failure is not None:
            st.error(f"Counterexample: {failure}")
        else:
            st.success("Loop invariant held on every cycle.")

        fig, (ax_v, ax_z) = plt.subplots(1, 2, figsize=(11, 4))
        # Fill in each constant-acceleration segment so the plot shows the true parabola
        seg_z, seg_v = [], []
        times = history["times"]
        for i in range(times.size - 1):
            ts = np.linspace(0.0, times[i + 1] - times[i], 8)
            zs, vs = advance(history["z"][i], history["v"][i], history["a"][i + 1], ts)
            seg_z.append(zs)
            seg_v.append(vs)
        if seg_z:
            ax_v.plot(np.concatenate(seg_z), np.concatenate(seg_v), label="Train")
        curve_z, curve_v = braking_curve(history["m"][-1], history["d"][-1], params.b, float(history["z"].min()))
        ax_v.plot(curve_z, curve_v, ls="--", label="Braking curve")
        ax_v.axvline(history["m"][-1], color="red", lw=1, label="Authority m")
        ax_v.set_xlabel("Position z (m)")
        ax_v.set_ylabel("Speed v (m/s)")
        ax_v.legend()
        ax_v.grid(True, alpha=0.3)

        ax_z.plot(times, history["z"], label="Position z")
        ax_z.step(times, history["m"], where="post", label="Authority m")
        atp_idx = np.flatnonzero(history["atp"])
        if atp_idx.size:
            ax_z.scatter(times[atp_idx], history["z"][atp_idx], s=12, color="orange", label="ATP braking")
        ax_z.set_xlabel("Time (s)")
        ax_z.set_ylabel("Position (m)")
        ax_z.legend()
        ax_z.grid(True, alpha=0.3)
        st.pyplot(fig)
        st.caption("Left: speed against position with the braking curve to the current authority.")

with tabs[1]:
    n_runs = st.number_input(
        "Number of runs",
        min_value=10,
        max_value=200000,
        value=500,
        step=100,
        help="Independent randomized trajectories; each starts from a valid initial state.",
    )
    cycles = st.number_input("Cycles per run", min_value=1, max_value=100000, value=200, step=50)
    c1, c2, c3 = st.columns(3)
    with c1:
        p_update = st.number_input("P(RBC update) per cycle", value=0.2, min_value=0.0, max_value=1.0,
                                   step=0.05, format="%.3f")
    with c2:
        p_emergency = st.number_input("P(emergency) per cycle", value=0.002, min_value=0.0, max_value=1.0,
                                      step=0.001, format="%.3f")
    with c3:
        p_extreme = st.number_input("P(boundary choice)", value=0.5, min_value=0.0, max_value=1.0,
                                    step=0.05, format="%.2f",
                                    help="Share of choices pinned to a guard boundary.")
    workers = st.number_input("Worker processes", min_value=1, max_value=32, value=1, step=1)

    if st.button("Run batch"):
        st.session_state["batch_df"] = run_batch(
            runs=int(n_runs),
            seed=int(seed),
            params=params,
            variant=variant,
            cycles=int(cycles),
            p_emergency=float(p_emergency),
            p_update=float(p_update),
            p_extreme=float(p_extreme),
            workers=int(workers),
        )

    df: Optional[pd.DataFrame] = st.session_state.get("batch_df")
    if df is not None and not df.empty:
        n_bad = int(df["violation"].sum())
        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Runs", f"{len(df):,}")
        m2.metric("Cycles checked", f"{int(df['cycles_completed'].sum()):,}")
        m3.metric("Counterexamples", f"{n_bad:,}")
        m4.metric("Smallest margin", f"{float(df['min_margin_m'].min()):.4f} m")

        f1, f2 = st.columns(2)
        with f1:
            counterexamples_only = st.checkbox("Counterexamples only", value=False)
        with f2:
            tightest_only = st.checkbox(
                f"Tightest margins (within {TIGHTEST_MARGIN_WINDOW_M:.0f} m)", value=False
            )
        preview = build_preview_dataframe(
            df, counterexamples_only=counterexamples_only, tightest_margin_only=tightest_only
        )
        st.dataframe(preview.drop(columns=["trajectory"], errors="ignore"), use_container_width=True)

        fig, ax = plt.subplots(figsize=(8, 3.5))
        ax.hist(df["min_margin_m"], bins=50)
        ax.set_xlabel("Smallest authority margin per run (m)")
        ax.set_ylabel("Runs")
        ax.grid(True, alpha=0.3)
        st.pyplot(fig)

        run_options = sorted(int(r) for r in df["run"])
        run_id = st.selectbox("Inspect run", run_options)
        row = df.loc[df["run"] == run_id].iloc[0]
        history = get_trajectory(row)
        bad_cycle = get_violation_cycle(row)
        if history is not None:
            fig2, ax2 = plt.subplots(figsize=(8, 3.5))
            ax2.plot(history["times"], history["v"], label="Speed v")
            ax2.step(history["times"], history["d"], where="post", label="Supervised speed d")
            if bad_cycle is not None:
                ax2.axvline(history["times"][bad_cycle + 1], color="red", ls="--", label="Violation")
            ax2.set_xlabel("Time (s)")
            ax2.set_ylabel("m/s")
            ax2.legend()
            ax2.grid(True, alpha=0.3)
            st.pyplot(fig2)

        st.download_button(
            "Download CSV",
            df.to_csv(index=False).encode("utf-8"),
            file_name="etcs_batch.csv",
            mime="text/csv",
        )
        st.download_button(
            "Download PDF report",
            build_report_pdf(df, params, variant),
            file_name="etcs_batch_report.pdf",
            mime="application/pdf",
        )
