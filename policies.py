"""Policies resolving the controller's nondeterministic choices.

Each control cycle asks the policy two questions: what the radio block centre
does (one of a closed set of tagged decisions) and which acceleration speed
supervision picks from the legal interval.  The controller checks every
answer against its guard, so a policy can be as adversarial as it likes as
long as it stays inside the guards.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional, Protocol, Sequence

import numpy as np

if TYPE_CHECKING:
    from simulation import Authority, Parameters, TrainState


class RbcAction(Enum):
    KEEP = "keep"
    EMERGENCY = "emergency"
    UPDATE = "update"


@dataclass(frozen=True)
class RbcDecision:
    """Tagged radio block centre decision; only ``UPDATE`` carries values."""

    action: RbcAction = RbcAction.KEEP
    m: Optional[float] = None
    d: Optional[float] = None
    vdes: Optional[float] = None

    @classmethod
    def keep(cls) -> "RbcDecision":
        return cls(RbcAction.KEEP)

    @classmethod
    def emergency(cls) -> "RbcDecision":
        return cls(RbcAction.EMERGENCY)

    @classmethod
    def update(cls, m: float, d: float, vdes: Optional[float] = None) -> "RbcDecision":
        return cls(RbcAction.UPDATE, m=float(m), d=float(d), vdes=None if vdes is None else float(vdes))


class Policy(Protocol):
    def rbc(self, state: "TrainState", authority: "Authority", params: "Parameters") -> RbcDecision:
        ...

    def acceleration(
        self,
        state: "TrainState",
        authority: "Authority",
        params: "Parameters",
        lo: float,
        hi: float,
    ) -> float:
        ...


class RandomPolicy:
    """Bounded random choices that always satisfy the controller's guards.

    With probability ``p_extreme`` the acceleration is pinned to one end of the
    legal interval and authority updates are placed exactly on the
    controllability boundary, which is where a wrong controller breaks first.
    """

    def __init__(
        self,
        rng: np.random.Generator,
        p_emergency: float = 0.002,
        p_update: float = 0.2,
        p_extreme: float = 0.5,
        allow_updates: bool = True,
        d_max: float = 20.0,
        vdes_max: float = 40.0,
        extension_mean_m: float = 100.0,
    ) -> None:
        self.rng = rng
        self.p_emergency = float(np.clip(p_emergency, 0.0, 1.0))
        self.p_update = float(np.clip(p_update, 0.0, 1.0))
        self.p_extreme = float(np.clip(p_extreme, 0.0, 1.0))
        self.allow_updates = bool(allow_updates)
        self.d_max = float(d_max)
        self.vdes_max = float(vdes_max)
        self.extension_mean_m = float(extension_mean_m)

    def rbc(self, state: "TrainState", authority: "Authority", params: "Parameters") -> RbcDecision:
        u = float(self.rng.uniform())
        if u < self.p_emergency:
            return RbcDecision.emergency()
        if not self.allow_updates or u >= self.p_emergency + self.p_update:
            return RbcDecision.keep()

        d_new = float(self.rng.uniform(0.0, self.d_max))
        if d_new <= 0.0:
            d_new = self.d_max
        # Smallest authority that keeps every controllable train controllable
        m_min = authority.m + (authority.d ** 2 - d_new ** 2) / (2.0 * params.b)
        if self.rng.uniform() < self.p_extreme:
            m_new = m_min
        else:
            m_new = m_min + float(self.rng.exponential(self.extension_mean_m))
        vdes_new = float(self.rng.uniform(0.0, self.vdes_max))
        return RbcDecision.update(m_new, d_new, vdes_new)

    def acceleration(
        self,
        state: "TrainState",
        authority: "Authority",
        params: "Parameters",
        lo: float,
        hi: float,
    ) -> float:
        if self.rng.uniform() < self.p_extreme:
            return hi if self.rng.uniform() < 0.5 else lo
        return float(self.rng.uniform(lo, hi))


class ScriptedPolicy:
    """Replays fixed decisions; useful for demos and hand-written scenarios.

    Accelerations are clipped into the legal interval unless ``strict`` is set,
    in which case they are returned unchanged so that the controller's guard
    rejects illegal values.  Once a script is exhausted its last entry repeats
    (or ``RbcDecision.keep()`` for the RBC script).
    """

    def __init__(
        self,
        accelerations: Sequence[float],
        rbc_decisions: Optional[Iterable[RbcDecision]] = None,
        strict: bool = False,
    ) -> None:
        if len(accelerations) == 0:
            raise ValueError("ScriptedPolicy needs at least one acceleration")
        self.accelerations = [float(a) for a in accelerations]
        self.rbc_decisions = list(rbc_decisions) if rbc_decisions is not None else []
        self.strict = bool(strict)
        self._accel_idx = 0
        self._rbc_idx = 0

    def reset(self) -> None:
        self._accel_idx = 0
        self._rbc_idx = 0

    def rbc(self, state: "TrainState", authority: "Authority", params: "Parameters") -> RbcDecision:
        if self._rbc_idx >= len(self.rbc_decisions):
            return RbcDecision.keep()
        decision = self.rbc_decisions[self._rbc_idx]
        self._rbc_idx += 1
        return decision

    def acceleration(
        self,
        state: "TrainState",
        authority: "Authority",
        params: "Parameters",
        lo: float,
        hi: float,
    ) -> float:
        idx = min(self._accel_idx, len(self.accelerations) - 1)
        self._accel_idx += 1
        accel = self.accelerations[idx]
        if self.strict:
            return accel
        return float(np.clip(accel, lo, hi))
