"""Core ETCS train protection primitives.

The controller is modelled as a hybrid automaton: once per control cycle the
radio block centre (RBC) may refresh the movement authority, speed
supervision and automatic train protection (ATP) commit an acceleration, and
the train then drives for at most one cycle under that constant
acceleration.  The loop invariant (controllability of the train with respect
to its authority) is checked after the discrete and the continuous part of
every cycle.

Motion is piecewise-constant acceleration, so everything here uses the
closed-form kinematic solution.  Functions are free of any Streamlit
imports so that the logic can be reused from scripts and unit tests.
"""

from __future__ import annotations

import json
import logging
import math
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from policies import Policy, RandomPolicy, RbcAction, RbcDecision

logger = logging.getLogger(__name__)

# ---------------------------- Constants ----------------------------

DEFAULT_BRAKING_MPS2 = 2.0     # b, service brake deceleration
DEFAULT_MAX_ACCEL_MPS2 = 1.0   # A
DEFAULT_CYCLE_S = 1.0          # ep, control cycle upper bound

# Relative tolerance for the monitor; tight states are valid in exact arithmetic
INVARIANT_REL_TOL = 1e-9
# Absolute slack allowed when validating policy choices against their guards
GUARD_TOL = 1e-9

# Initial-condition sampling
SAMPLE_V_MAX_MPS = 40.0
SAMPLE_D_MAX_MPS = 20.0
SAMPLE_SLACK_MEAN_M = 50.0
SAMPLE_TIGHT_PROB = 0.25

DEFAULT_CYCLES = 200


class ConfigurationError(ValueError):
    """Raised for malformed parameters or an illegal initial configuration."""


class InitialStateError(ConfigurationError):
    """Raised when the initial state does not satisfy the loop invariant."""


class GuardViolation(ValueError):
    """Raised when a policy returns a choice outside its guard's legal range."""


class InvariantViolation(RuntimeError):
    """Raised when the loop invariant fails after a step."""

    def __init__(
        self,
        message: str,
        *,
        cycle: Optional[int] = None,
        state: Optional["TrainState"] = None,
        authority: Optional["Authority"] = None,
        variant: Optional["LoopInvariant"] = None,
        snapshot: Optional["CycleSnapshot"] = None,
    ) -> None:
        super().__init__(message)
        self.cycle = cycle
        self.state = state
        self.authority = authority
        self.variant = variant
        self.snapshot = snapshot


class Emergency(Enum):
    OFF = "off"
    ON = "on"


class LoopInvariant(Enum):
    """Selectable loop invariant, one per reference scenario."""

    ESSENTIALS = "essentials"
    BASIC = "basic"
    ALGEBRAIC = "algebraic"

    @property
    def stop_form(self) -> bool:
        """True for the variants that require the train to stand still at ``m``."""

        return self is not LoopInvariant.ESSENTIALS


SCENARIO_VARIANTS: Dict[str, LoopInvariant] = {
    "Essentials": LoopInvariant.ESSENTIALS,
    "Unconditional Train Protection": LoopInvariant.BASIC,
    "Proposition 5": LoopInvariant.ALGEBRAIC,
}


def _finite(value: float, name: str) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {value!r}")
    return value


@dataclass(frozen=True)
class Parameters:
    """Braking force ``b``, maximum acceleration ``A`` and cycle bound ``ep``."""

    b: float = DEFAULT_BRAKING_MPS2
    A: float = DEFAULT_MAX_ACCEL_MPS2
    ep: float = DEFAULT_CYCLE_S

    def __post_init__(self) -> None:
        b = _finite(self.b, "b")
        A = _finite(self.A, "A")
        ep = _finite(self.ep, "ep")
        if b <= 0.0:
            raise ConfigurationError(f"braking force b must be > 0, got {b}")
        if A < 0.0:
            raise ConfigurationError(f"max acceleration A must be >= 0, got {A}")
        if ep < 0.0:
            raise ConfigurationError(f"control cycle bound ep must be >= 0, got {ep}")
        object.__setattr__(self, "b", b)
        object.__setattr__(self, "A", A)
        object.__setattr__(self, "ep", ep)

    @classmethod
    def from_mapping(cls, config: Mapping[str, object]) -> "Parameters":
        """Build parameters from a dict using short or descriptive key names."""

        def pick(default: float, *names: str) -> float:
            for name in names:
                value = config.get(name)
                if value is not None:
                    try:
                        return float(value)  # type: ignore[arg-type]
                    except (TypeError, ValueError) as exc:
                        raise ConfigurationError(f"{name} must be numeric, got {value!r}") from exc
            return default

        return cls(
            b=pick(DEFAULT_BRAKING_MPS2, "b", "braking", "braking_mps2"),
            A=pick(DEFAULT_MAX_ACCEL_MPS2, "A", "max_accel", "max_accel_mps2"),
            ep=pick(DEFAULT_CYCLE_S, "ep", "cycle", "cycle_s"),
        )


@dataclass(frozen=True)
class TrainState:
    z: float = 0.0
    v: float = 0.0
    a: float = 0.0
    t: float = 0.0


@dataclass(frozen=True)
class Authority:
    m: float
    vdes: float = 0.0
    em: Emergency = Emergency.OFF
    d: float = 0.0


@dataclass(frozen=True)
class CycleSnapshot:
    """State of one trajectory after a full control cycle."""

    cycle: int
    state: TrainState
    authority: Authority
    rbc_action: RbcAction
    supervised_accel: float
    accel: float
    atp_braking: bool
    invariant_held: bool
    margin_m: float

    @property
    def segment_s(self) -> float:
        return self.state.t


# ----------------------------- Kinematics -----------------------------


def stopping_distance(v: float, b: float) -> float:
    """Distance to come to rest from speed ``v`` under braking force ``b``."""

    if b <= 0.0:
        raise ConfigurationError(f"stopping distance needs b > 0, got {b}")
    return v * v / (2.0 * b)


def acceleration_compensation(v: float, params: Parameters) -> float:
    """Extra distance consumed by accelerating at ``A`` for one more cycle."""

    A, b, ep = params.A, params.b, params.ep
    return (A / b + 1.0) * (A / 2.0 * ep * ep + ep * v)


def safe_braking_distance(v: float, d: float, params: Parameters) -> float:
    """Authority margin required before the controller may keep accelerating."""

    return (v * v - d * d) / (2.0 * params.b) + acceleration_compensation(v, params)


def advance(z: float, v: float, accel: float, dt: float) -> Tuple[float, float]:
    """Closed-form position/velocity after ``dt`` at constant ``accel``."""

    return z + v * dt + 0.5 * accel * dt * dt, v + accel * dt


# ------------------------ Controllability oracle ------------------------


def controllable(
    m: float,
    z: float,
    v: float,
    d: float,
    params: Parameters,
    tol: float = 0.0,
) -> bool:
    """True when braking now brings the train to speed <= ``d`` by ``m``."""

    if v < 0.0 or d < 0.0:
        return False
    lhs = v * v - d * d
    rhs = 2.0 * params.b * (m - z)
    return lhs <= rhs + tol * max(1.0, abs(lhs), abs(rhs))


def authority_update_preserves_controllability(
    d: float,
    d_new: float,
    m: float,
    m_new: float,
    params: Parameters,
    tol: float = 0.0,
) -> bool:
    """RBC contract: every train controllable for ``(m, d)`` stays so for the update."""

    if d < 0.0 or d_new < 0.0:
        return False
    return d * d - d_new * d_new <= 2.0 * params.b * (m_new - m) + tol


def authority_margin(state: TrainState, authority: Authority, params: Parameters) -> float:
    """Distance to spare beyond what braking from the current speed needs."""

    return (authority.m - state.z) - (state.v ** 2 - authority.d ** 2) / (2.0 * params.b)


# ----------------------------- Controller -----------------------------


def supervision_range(state: TrainState, authority: Authority, params: Parameters) -> Tuple[float, float]:
    """Legal acceleration interval for speed supervision."""

    if state.v <= authority.vdes:
        return -params.b, params.A
    return -params.b, 0.0


def supervise_speed(
    state: TrainState,
    authority: Authority,
    params: Parameters,
    policy: Policy,
) -> float:
    lo, hi = supervision_range(state, authority, params)
    accel = float(policy.acceleration(state, authority, params, lo, hi))
    if not math.isfinite(accel) or accel < lo - GUARD_TOL or accel > hi + GUARD_TOL:
        raise GuardViolation(
            f"policy acceleration {accel!r} outside supervision range [{lo}, {hi}]"
        )
    return float(np.clip(accel, lo, hi))


def atp_must_brake(state: TrainState, authority: Authority, params: Parameters) -> bool:
    """ATP trigger: close to the authority boundary or under emergency."""

    if authority.em is Emergency.ON:
        return True
    sb = safe_braking_distance(state.v, authority.d, params)
    return authority.m - state.z <= sb


def protect(
    state: TrainState,
    authority: Authority,
    params: Parameters,
    accel: float,
) -> Tuple[float, bool]:
    """Apply the ATP override; returns the committed acceleration and whether it fired."""

    if atp_must_brake(state, authority, params):
        return -params.b, True
    return accel, False


def rbc_update(
    authority: Authority,
    decision: RbcDecision,
    params: Parameters,
    variant: LoopInvariant = LoopInvariant.ESSENTIALS,
) -> Authority:
    """Apply a radio block centre decision after checking its guard."""

    if decision.action is RbcAction.KEEP:
        return authority
    if decision.action is RbcAction.EMERGENCY:
        if authority.em is not Emergency.ON:
            logger.debug("RBC raised emergency at m=%.3f", authority.m)
        return replace(authority, em=Emergency.ON)

    if variant.stop_form:
        raise GuardViolation(f"{variant.value} scenario does not accept authority updates")
    if decision.m is None or decision.d is None:
        raise GuardViolation("authority update requires both m and d")
    m_new = float(decision.m)
    d_new = float(decision.d)
    vdes_new = authority.vdes if decision.vdes is None else float(decision.vdes)
    if not (math.isfinite(m_new) and math.isfinite(d_new) and math.isfinite(vdes_new)):
        raise GuardViolation("authority update values must be finite")
    if d_new <= 0.0:
        raise GuardViolation(f"RBC supervised speed must be > 0, got {d_new}")
    if vdes_new < 0.0:
        raise GuardViolation(f"desired speed must be >= 0, got {vdes_new}")
    if not authority_update_preserves_controllability(
        authority.d, d_new, authority.m, m_new, params, tol=GUARD_TOL
    ):
        raise GuardViolation(
            f"authority update (m={m_new}, d={d_new}) would reduce controllability "
            f"relative to (m={authority.m}, d={authority.d})"
        )
    # Snap into the guard so the slack never accumulates across updates
    m_new = max(m_new, authority.m + (authority.d ** 2 - d_new ** 2) / (2.0 * params.b))
    logger.debug("RBC update m: %.3f -> %.3f, d: %.3f -> %.3f", authority.m, m_new, authority.d, d_new)
    # em is irrevocable, so the update never touches it
    return replace(authority, m=m_new, d=d_new, vdes=vdes_new)


def control(
    state: TrainState,
    authority: Authority,
    params: Parameters,
    policy: Policy,
) -> Tuple[TrainState, float, bool]:
    """Speed supervision then ATP; returns the state carrying the committed acceleration."""

    supervised = supervise_speed(state, authority, params, policy)
    accel, braking = protect(state, authority, params, supervised)
    if braking and supervised != accel:
        logger.debug("ATP override at z=%.3f v=%.3f (m=%.3f)", state.z, state.v, authority.m)
    return replace(state, a=accel), supervised, braking


# ---------------------------- Drive executor ----------------------------


def drive(state: TrainState, params: Parameters) -> TrainState:
    """Integrate one control cycle at ``state.a`` while ``v >= 0`` holds."""

    accel = state.a
    duration = params.ep
    if accel < 0.0:
        t_stop = state.v / -accel
        if t_stop <= duration:
            # Exact rest point; avoids a rounding residue below zero.
            return TrainState(
                z=state.z + state.v * state.v / (-2.0 * accel),
                v=0.0,
                a=accel,
                t=t_stop,
            )
    z_new, v_new = advance(state.z, state.v, accel, duration)
    return TrainState(z=z_new, v=max(0.0, v_new), a=accel, t=duration)


# --------------------------- Invariant monitor ---------------------------


def loop_invariant_holds(
    state: TrainState,
    authority: Authority,
    params: Parameters,
    variant: LoopInvariant = LoopInvariant.ESSENTIALS,
    tol: float = INVARIANT_REL_TOL,
) -> bool:
    if state.v < 0.0:
        return False
    if variant is LoopInvariant.ESSENTIALS:
        return controllable(authority.m, state.z, state.v, authority.d, params, tol=tol)

    if variant is LoopInvariant.BASIC:
        lhs = stopping_distance(state.v, params.b)
        rhs = authority.m - state.z
    else:
        lhs = state.v * state.v
        rhs = 2.0 * params.b * (authority.m - state.z)
    return lhs <= rhs + tol * max(1.0, abs(lhs), abs(rhs))


def _violation(
    state: TrainState,
    authority: Authority,
    variant: LoopInvariant,
    cycle: Optional[int],
    snapshot: Optional[CycleSnapshot] = None,
) -> InvariantViolation:
    return InvariantViolation(
        f"{variant.value} loop invariant violated at cycle {cycle}: "
        f"z={state.z:.6f} v={state.v:.6f} m={authority.m:.6f} d={authority.d:.6f}",
        cycle=cycle,
        state=state,
        authority=authority,
        variant=variant,
        snapshot=snapshot,
    )


def enforce_invariant(
    state: TrainState,
    authority: Authority,
    params: Parameters,
    variant: LoopInvariant = LoopInvariant.ESSENTIALS,
    cycle: Optional[int] = None,
) -> None:
    if not loop_invariant_holds(state, authority, params, variant):
        raise _violation(state, authority, variant, cycle)


def validate_initial(
    state: TrainState,
    authority: Authority,
    params: Parameters,
    variant: LoopInvariant = LoopInvariant.ESSENTIALS,
) -> None:
    """Reject initial configurations the loop must never be started from."""

    if state.v < 0.0:
        raise InitialStateError(f"initial speed must be >= 0, got {state.v}")
    if authority.d < 0.0:
        raise ConfigurationError(f"supervised speed d must be >= 0, got {authority.d}")
    if authority.vdes < 0.0:
        raise ConfigurationError(f"desired speed must be >= 0, got {authority.vdes}")
    if variant.stop_form and authority.d != 0.0:
        raise ConfigurationError(f"{variant.value} scenario requires d == 0, got {authority.d}")
    if not loop_invariant_holds(state, authority, params, variant):
        raise InitialStateError(
            f"initial state cannot stop safely: m - z = {authority.m - state.z:.3f}, "
            f"needs {(state.v ** 2 - authority.d ** 2) / (2.0 * params.b):.3f}"
        )


# ------------------------------ Stepping ------------------------------


def _cycle(
    state: TrainState,
    authority: Authority,
    params: Parameters,
    policy: Policy,
    variant: LoopInvariant,
) -> Tuple[TrainState, Authority, RbcAction, float, float, bool, bool]:
    state = replace(state, t=0.0)
    decision = policy.rbc(state, authority, params)
    authority = rbc_update(authority, decision, params, variant)
    held = loop_invariant_holds(state, authority, params, variant)

    committed, supervised, braking = control(state, authority, params, policy)
    state = drive(committed, params)
    held = held and loop_invariant_holds(state, authority, params, variant)
    return state, authority, decision.action, supervised, committed.a, braking, held


def step(
    state: TrainState,
    authority: Authority,
    params: Parameters,
    policy: Policy,
    variant: LoopInvariant = LoopInvariant.ESSENTIALS,
) -> Tuple[TrainState, Authority, bool]:
    """Run one control cycle and report whether the loop invariant held."""

    new_state, new_authority, _, _, _, _, held = _cycle(state, authority, params, policy, variant)
    return new_state, new_authority, held


def run(
    initial_state: TrainState,
    initial_authority: Authority,
    params: Parameters,
    policy: Policy,
    cycles: Optional[int] = None,
    variant: LoopInvariant = LoopInvariant.ESSENTIALS,
) -> Iterator[CycleSnapshot]:
    """Lazily yield one snapshot per cycle; ``cycles=None`` streams forever.

    Raises ``InvariantViolation`` (carrying the failing snapshot) as soon as a
    cycle breaks the loop invariant.
    """

    validate_initial(initial_state, initial_authority, params, variant)
    state, authority = initial_state, initial_authority
    cycle = 0
    while cycles is None or cycle < cycles:
        state, authority, action, supervised, accel, braking, held = _cycle(
            state, authority, params, policy, variant
        )
        snapshot = CycleSnapshot(
            cycle=cycle,
            state=state,
            authority=authority,
            rbc_action=action,
            supervised_accel=supervised,
            accel=accel,
            atp_braking=braking,
            invariant_held=held,
            margin_m=authority_margin(state, authority, params),
        )
        if not held:
            raise _violation(state, authority, variant, cycle, snapshot)
        yield snapshot
        cycle += 1


# ------------------------- Trajectory encoding -------------------------


def encode_trajectory(
    initial_state: TrainState,
    initial_authority: Authority,
    snapshots: List[CycleSnapshot],
) -> str:
    """Serialise a trajectory history for storage in batch outputs."""

    times = [0.0]
    for snap in snapshots:
        times.append(times[-1] + snap.segment_s)
    payload = {
        "times": [float(x) for x in times],
        "z": [float(initial_state.z)] + [float(s.state.z) for s in snapshots],
        "v": [float(initial_state.v)] + [float(s.state.v) for s in snapshots],
        "a": [float(initial_state.a)] + [float(s.accel) for s in snapshots],
        "m": [float(initial_authority.m)] + [float(s.authority.m) for s in snapshots],
        "d": [float(initial_authority.d)] + [float(s.authority.d) for s in snapshots],
        "atp": [False] + [bool(s.atp_braking) for s in snapshots],
    }
    return json.dumps(payload, separators=(",", ":"))


def decode_trajectory(value: object) -> Optional[Dict[str, np.ndarray]]:
    """Return numpy arrays from an encoded trajectory, or ``None`` if unusable."""

    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, dict):
        payload = value
    else:
        try:
            payload = json.loads(str(value))
        except (TypeError, ValueError):
            return None
    if not isinstance(payload, dict):
        return None

    keys = ("times", "z", "v", "a", "m", "d")
    try:
        arrays = {key: np.asarray(payload[key], dtype=float) for key in keys}
    except (KeyError, TypeError, ValueError):
        return None
    arrays["atp"] = np.asarray(payload.get("atp", [False] * arrays["times"].size), dtype=bool)

    length = arrays["times"].size
    if any(arr.size != length for arr in arrays.values()):
        return None
    return arrays


# ------------------------------- Batch Runner -------------------------------


def sample_initial_condition(
    rng: np.random.Generator,
    params: Parameters,
    variant: LoopInvariant = LoopInvariant.ESSENTIALS,
    v_max: float = SAMPLE_V_MAX_MPS,
    d_max: float = SAMPLE_D_MAX_MPS,
    slack_mean_m: float = SAMPLE_SLACK_MEAN_M,
    tight_prob: float = SAMPLE_TIGHT_PROB,
) -> Tuple[TrainState, Authority]:
    """Draw a valid initial state; some draws start exactly on the boundary."""

    v0 = float(rng.uniform(0.0, v_max))
    d0 = 0.0 if variant.stop_form else float(rng.uniform(0.0, d_max))
    vdes = float(rng.uniform(0.0, v_max))
    needed = max(0.0, (v0 * v0 - d0 * d0) / (2.0 * params.b))
    slack = 0.0 if rng.uniform() < tight_prob else float(rng.exponential(slack_mean_m))
    state = TrainState(z=0.0, v=v0, a=0.0, t=0.0)
    authority = Authority(m=needed + slack, vdes=vdes, em=Emergency.OFF, d=d0)
    return state, authority


def run_trajectory(
    initial_state: TrainState,
    initial_authority: Authority,
    params: Parameters,
    policy: Policy,
    cycles: int = DEFAULT_CYCLES,
    variant: LoopInvariant = LoopInvariant.ESSENTIALS,
) -> Dict[str, object]:
    """Drive one trajectory; a counterexample is recorded, not propagated."""

    snapshots: List[CycleSnapshot] = []
    violation: Optional[InvariantViolation] = None
    try:
        for snap in run(initial_state, initial_authority, params, policy, cycles, variant):
            snapshots.append(snap)
    except InvariantViolation as exc:
        violation = exc
        if exc.snapshot is not None:
            snapshots.append(exc.snapshot)
        logger.warning("Counterexample recorded: %s", exc)

    margins = [authority_margin(initial_state, initial_authority, params)]
    margins.extend(s.margin_m for s in snapshots)
    final_state = snapshots[-1].state if snapshots else initial_state
    final_authority = snapshots[-1].authority if snapshots else initial_authority

    return dict(
        cycles_completed=len(snapshots) - (1 if violation is not None else 0),
        violation=violation is not None,
        violation_cycle=None if violation is None else violation.cycle,
        violation_message=None if violation is None else str(violation),
        z0_m=float(initial_state.z),
        v0_mps=float(initial_state.v),
        m0_m=float(initial_authority.m),
        d0_mps=float(initial_authority.d),
        z_final_m=float(final_state.z),
        v_final_mps=float(final_state.v),
        m_final_m=float(final_authority.m),
        d_final_mps=float(final_authority.d),
        emergency=final_authority.em is Emergency.ON,
        atp_interventions=int(sum(1 for s in snapshots if s.atp_braking)),
        rbc_updates=int(sum(1 for s in snapshots if s.rbc_action is RbcAction.UPDATE)),
        min_margin_m=float(min(margins)),
        overrun=bool(final_state.z > final_authority.m and final_state.v > final_authority.d),
        trajectory=encode_trajectory(initial_state, initial_authority, snapshots),
    )


def _batch_worker(
    job: Tuple[int, np.random.SeedSequence, Parameters, LoopInvariant, int, Dict[str, float]]
) -> Dict[str, object]:
    run_idx, seed_seq, params, variant, cycles, policy_kwargs = job
    rng = np.random.default_rng(seed_seq)
    state0, authority0 = sample_initial_condition(rng, params, variant)
    policy = RandomPolicy(rng, allow_updates=not variant.stop_form, **policy_kwargs)
    record = run_trajectory(state0, authority0, params, policy, cycles, variant)
    record["run"] = run_idx + 1
    return record


def run_batch(
    runs: int = 1000,
    seed: int = 26,
    params: Optional[Parameters] = None,
    variant: LoopInvariant = LoopInvariant.ESSENTIALS,
    cycles: int = DEFAULT_CYCLES,
    p_emergency: float = 0.002,
    p_update: float = 0.2,
    p_extreme: float = 0.5,
    workers: int = 1,
    stop_on_violation: bool = False,
) -> pd.DataFrame:
    """Stress the loop invariant over independent randomized trajectories."""

    if params is None:
        params = Parameters()
    if int(runs) < 0:
        raise ValueError("runs must be non-negative")

    policy_kwargs = dict(
        p_emergency=float(p_emergency),
        p_update=float(p_update),
        p_extreme=float(p_extreme),
    )
    seeds = np.random.SeedSequence(int(seed)).spawn(int(runs))
    jobs = [(k, seeds[k], params, variant, int(cycles), policy_kwargs) for k in range(int(runs))]

    logger.info(
        "Running %d trajectories x %d cycles (%s, b=%.3f A=%.3f ep=%.3f)",
        len(jobs), int(cycles), variant.value, params.b, params.A, params.ep,
    )

    data: List[Dict] = []
    if int(workers) > 1 and len(jobs) > 1:
        pool = ProcessPoolExecutor(max_workers=int(workers))
        try:
            futures = [pool.submit(_batch_worker, job) for job in jobs]
            for future in futures:
                record = future.result()
                data.append(record)
                if stop_on_violation and record["violation"]:
                    break
        finally:
            pool.shutdown(wait=True, cancel_futures=True)
    else:
        for job in jobs:
            record = _batch_worker(job)
            data.append(record)
            if stop_on_violation and record["violation"]:
                break

    df = pd.DataFrame(data)
    if not df.empty:
        df.insert(0, "run", df.pop("run"))
        df["variant"] = variant.value

    n_bad = int(df["violation"].sum()) if not df.empty else 0
    if stop_on_violation and n_bad:
        bad = df.loc[df["violation"]].iloc[0]
        logger.error("Aborting batch after counterexample in run %d", int(bad["run"]))
        raise InvariantViolation(
            f"batch aborted: run {int(bad['run'])} violated the loop invariant: {bad['violation_message']}",
            cycle=None if pd.isna(bad["violation_cycle"]) else int(bad["violation_cycle"]),
            variant=variant,
        )

    logger.info("Batch finished: %d runs, %d counterexamples", len(df), n_bad)
    return df
