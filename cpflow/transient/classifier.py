"""
Classification of transient trajectories into divergent, decaying and
bounded oscillatory behavior, from the envelope of the post-perturbation
response and/or the eigenvalues at the equilibrium.
"""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, NamedTuple, Optional

import numpy as np
from scipy.signal import find_peaks

from .simulation import TransientResult, Trajectory
if TYPE_CHECKING:
    from cpflow.analysis.small_signal import StabilityReport


class TrajectoryBehavior(Enum):
    DIVERGENT = "divergent"
    DECAYING = "decaying"
    BOUNDED_OSCILLATORY = "bounded-oscillatory"


class TrajectoryClassification(NamedTuple):
    behavior: TrajectoryBehavior
    #: ratio of the envelope in the last window to the envelope in the first window
    growth_ratio: Optional[float] = None
    #: the peak-to-peak envelope of every window
    envelope: Optional[np.ndarray] = None
    #: estimated oscillation period from the spacing of the peaks
    period: Optional[float] = None
    #: was the classification derived from the eigenvalues only?
    from_eigenvalues: bool = False
    #: short explanation
    reason: str = ""
    #: the behavior expected from the eigenvalues, if a stability report was given
    eigenvalue_behavior: Optional[TrajectoryBehavior] = None
    #: does the trajectory label match the eigenvalue label? None without a stability report
    agrees_with_eigenvalues: Optional[bool] = None


class TrajectoryClassifier:
    """
    Labels a trajectory by the growth of its peak-to-peak envelope over equally
    long windows after the perturbation:
    - divergent, if the envelope grows by more than the tolerance band, if the run
      ended before its horizon or if the trajectory is not finite
    - decaying, if the envelope shrinks by more than the tolerance band, or if the
      response stays below the amplitude floor
    - bounded oscillatory, otherwise
    Without a trajectory, the eigenvalues of a StabilityReport are used instead.
    The classification is informational, it does not replace the eigenvalue analysis.
    """

    def __init__(self) -> None:
        #: band factor for the envelope growth ratio: > band is growth, < 1/band is decay
        self.growth_tolerance = 2.0
        #: number of windows the post-perturbation response is split into
        self.nwindows = 5
        #: peak-to-peak amplitudes below this floor count as decayed
        self.amplitude_floor = 1e-7
        #: eigenvalues with |Re| below this tolerance count as critical (on the imaginary axis)
        self.zero_tolerance = 1e-9

    def classify(self, trajectory: Optional[Trajectory] = None,
                 report: Optional[StabilityReport] = None,
                 result: Optional[TransientResult] = None) -> TrajectoryClassification:
        """
        Classify a trajectory. If the TransientResult it belongs to is given, the
        perturbation time and the termination status of the run are taken into account.
        If a StabilityReport is given as well, the eigenvalue label is attached to the
        classification for comparison. Near a subcritical Hopf bifurcation both may differ.
        """
        if trajectory is None:
            if report is None:
                raise ValueError("Either a trajectory or a stability report is required")
            return self.classify_eigenvalues(report)
        classification = self._classify_trajectory(trajectory, result)
        if report is None:
            return classification
        expected = self.classify_eigenvalues(report).behavior
        return classification._replace(eigenvalue_behavior=expected,
                                       agrees_with_eigenvalues=expected == classification.behavior)

    def _classify_trajectory(self, trajectory: Trajectory,
                             result: Optional[TransientResult]) -> TrajectoryClassification:
        t, v = trajectory.t, trajectory.values
        t_start = t[0] if len(t) > 0 else 0.0
        if result is not None and result.perturbation is not None:
            t_start = result.perturbation.time
        mask = t >= t_start
        t, v = t[mask], v[mask]
        if not np.all(np.isfinite(v)):
            return TrajectoryClassification(TrajectoryBehavior.DIVERGENT,
                                            reason="the trajectory is not finite")
        if result is not None and result.ended_early and result.status != "cancelled":
            return TrajectoryClassification(
                TrajectoryBehavior.DIVERGENT,
                reason=f"the run ended early at t = {result.end_time} ({result.status})")
        envelope = self.envelope(t, v)
        if envelope.size < 2:
            raise ValueError("The trajectory is too short to be classified")
        period = self.estimate_period(t, v)
        first, last = envelope[0], envelope[-1]
        if max(first, last) < self.amplitude_floor:
            return TrajectoryClassification(TrajectoryBehavior.DECAYING, 0.0, envelope, period,
                                            reason="the response stays below the amplitude floor")
        ratio = last / first if first > 0 else np.inf
        if ratio > self.growth_tolerance:
            behavior = TrajectoryBehavior.DIVERGENT
            reason = f"the envelope grows by a factor of {ratio:.3g}"
        elif ratio < 1 / self.growth_tolerance:
            behavior = TrajectoryBehavior.DECAYING
            reason = f"the envelope shrinks by a factor of {ratio:.3g}"
        else:
            behavior = TrajectoryBehavior.BOUNDED_OSCILLATORY
            reason = f"the envelope changes by a factor of {ratio:.3g} only"
        return TrajectoryClassification(behavior, float(ratio), envelope, period, reason=reason)

    def envelope(self, t: np.ndarray, v: np.ndarray) -> np.ndarray:
        """peak-to-peak amplitude of the signal within equally long time windows"""
        if len(t) < 2:
            return np.zeros(0)
        edges = np.linspace(t[0], t[-1], self.nwindows + 1)
        envelope = []
        for i in range(self.nwindows):
            upper = t <= edges[i + 1] if i == self.nwindows - 1 else t < edges[i + 1]
            window = v[(t >= edges[i]) & upper]
            if window.size > 0:
                envelope.append(np.ptp(window))
        return np.array(envelope)

    def estimate_period(self, t: np.ndarray, v: np.ndarray) -> Optional[float]:
        """estimate the oscillation period from the spacing of the peaks"""
        if len(v) < 3:
            return None
        peaks, _ = find_peaks(v - np.mean(v))
        if len(peaks) < 3:
            return None
        return float(np.mean(np.diff(t[peaks])))

    def classify_eigenvalues(self, report: StabilityReport) -> TrajectoryClassification:
        """the expected behavior of small perturbations from the eigenvalues"""
        ev = report.eigenvalues
        if ev.size == 0:
            return TrajectoryClassification(TrajectoryBehavior.DECAYING, from_eigenvalues=True,
                                            reason="no dynamic states")
        leading = ev[np.argmax(ev.real)]
        period = 2 * np.pi / abs(leading.imag) if leading.imag != 0 else None
        if leading.real > self.zero_tolerance:
            behavior = TrajectoryBehavior.DIVERGENT
        elif leading.real < -self.zero_tolerance:
            behavior = TrajectoryBehavior.DECAYING
        else:
            behavior = TrajectoryBehavior.BOUNDED_OSCILLATORY
        return TrajectoryClassification(behavior, period=period, from_eigenvalues=True,
                                        reason=f"leading eigenvalue {leading:.4g}")


def classify(trajectory: Optional[Trajectory] = None, report: Optional[StabilityReport] = None,
             result: Optional[TransientResult] = None) -> TrajectoryClassification:
    """classify a trajectory with the default settings"""
    return TrajectoryClassifier().classify(trajectory, report, result)
