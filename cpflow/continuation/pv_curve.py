"""
This file describes the data structure for the PV curve that is traced by the
continuation power flow: an ordered sequence of (power, voltage, stability) samples.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, NamedTuple, Optional

import numpy as np

from cpflow.core.errors import BuildFailure, NonConvergence
if TYPE_CHECKING:
    from cpflow.analysis.small_signal import StabilityReport
    from cpflow.core.network import PowerSystem


class PVSample(NamedTuple):
    """A single point of the PV curve"""
    #: active power of the swept load (pu)
    power: float
    #: voltage magnitude of the monitored bus (pu)
    voltage: float
    #: small-signal stability, None if unknown
    stable: Optional[bool] = None


class PVCurve(Sequence):
    """
    The PV curve obtained from a continuation power flow. Samples are stored
    in sweep order and are never modified after they were added.
    """

    def __init__(self, load_name: str = "", monitored_bus: str = "", power_factor: float = 1.0) -> None:
        #: name of the swept load
        self.load_name = load_name
        #: name of the bus whose voltage is recorded
        self.monitored_bus = monitored_bus
        #: the fixed power factor of the load
        self.power_factor = power_factor
        #: the NonConvergence that terminated the sweep (the fold point), None if the sweep completed
        self.stop_reason: Optional[NonConvergence] = None
        #: the stability analysis failures, by sample index
        self.failures: dict[int, BuildFailure] = {}
        #: the stability reports, by sample index (only if requested)
        self.reports: dict[int, StabilityReport] = {}
        #: was the sweep cancelled by the caller?
        self.cancelled = False
        #: the system at the last converged point of the sweep
        self.system: Optional[PowerSystem] = None
        self._samples: list[PVSample] = []

    def __getitem__(self, index):
        return self._samples[index]

    def __len__(self) -> int:
        return len(self._samples)

    def __repr__(self) -> str:
        return f"PVCurve(load='{self.load_name}', bus='{self.monitored_bus}', samples={len(self)})"

    def append(self, sample: PVSample) -> None:
        """Add a sample to the end of the curve"""
        self._samples.append(PVSample(float(sample.power), float(sample.voltage), sample.stable))

    @property
    def completed(self) -> bool:
        """did the sweep reach the end of the parameter sequence?"""
        return self.stop_reason is None and not self.cancelled

    def parameter_vals(self) -> np.ndarray:
        """the load powers along the curve"""
        return np.array([s.power for s in self._samples])

    def voltage_vals(self) -> np.ndarray:
        """the voltage magnitudes along the curve"""
        return np.array([s.voltage for s in self._samples])

    def first_unstable(self) -> Optional[PVSample]:
        """the first sample that was found to be unstable"""
        for s in self._samples:
            if s.stable is False:
                return s
        return None

    def data(self, only=None) -> tuple[np.ndarray, np.ndarray]:
        """
        Returns the lists of powers and voltages of the curve
        optional argument only (str) may restrict the data to:
        - only="stable": stable parts only
        - only="unstable": unstable parts only
        - only="unknown": parts without stability information only
        """
        condition = False
        if only == "stable":
            condition = [s.stable is not True for s in self._samples]
        elif only == "unstable":
            condition = [s.stable is not False for s in self._samples]
        elif only == "unknown":
            condition = [s.stable is not None for s in self._samples]
        elif only is not None:
            raise ValueError(f"Unknown selection '{only}'")
        # mask lists where condition is met and return
        pvals = np.ma.masked_where(condition, self.parameter_vals())
        vvals = np.ma.masked_where(condition, self.voltage_vals())
        return (pvals, vvals)

    def save(self, filename: str) -> None:
        """Store the curve to the disk in a format that allows for restoring it later"""
        # stability flags are stored as 1.0 / 0.0 / nan
        stable = np.array([np.nan if s.stable is None else float(s.stable) for s in self._samples])
        # the termination of the sweep, nan if the sweep did not stop at a fold
        reason = self.stop_reason
        stop_parameter = np.nan if reason is None or reason.parameter is None else reason.parameter
        last_feasible = np.nan
        if reason is not None and reason.last_feasible_parameter is not None:
            last_feasible = reason.last_feasible_parameter
        np.savez(filename,
                 power=self.parameter_vals(),
                 voltage=self.voltage_vals(),
                 stable=stable,
                 load_name=self.load_name,
                 monitored_bus=self.monitored_bus,
                 power_factor=self.power_factor,
                 stopped=reason is not None,
                 stop_message=str(reason) if reason is not None else "",
                 stop_parameter=stop_parameter,
                 last_feasible_parameter=last_feasible,
                 cancelled=self.cancelled)

    @classmethod
    def load(cls, filename: str) -> PVCurve:
        """Restore a curve that was stored with save()"""
        with np.load(filename) as data:
            curve = cls(str(data["load_name"]), str(data["monitored_bus"]), float(data["power_factor"]))
            for p, v, s in zip(data["power"], data["voltage"], data["stable"]):
                curve.append(PVSample(p, v, None if np.isnan(s) else bool(s)))
            curve.cancelled = bool(data["cancelled"])
            if bool(data["stopped"]):
                # the operating point of the failure is not stored
                stop, last = float(data["stop_parameter"]), float(data["last_feasible_parameter"])
                curve.stop_reason = NonConvergence(
                    str(data["stop_message"]), parameter=None if np.isnan(stop) else stop,
                    last_feasible_parameter=None if np.isnan(last) else last,
                    component=curve.load_name)
        return curve
