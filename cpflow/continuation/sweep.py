"""
The continuation power flow: a natural parameter sweep of a load's power that
stops at the first point where the power flow has no solution (the fold point).
"""
from __future__ import annotations

from typing import Callable, Iterable, Optional

import numpy as np

from cpflow.analysis.small_signal import SmallSignalAnalyzer
from cpflow.core.errors import BuildFailure, NonConvergence
from cpflow.core.network import PowerLoad, PowerSystem
from cpflow.core.power_flow import PowerFlowSolver

from .pv_curve import PVCurve, PVSample


class SweepSettings():
    """
    A wrapper class that holds all the settings of a continuation power flow.
    """

    def __init__(self) -> None:
        #: Should the small-signal stability be analyzed at every converged point?
        self.analyze_stability = True
        #: Should the stability reports be kept in the curve? Otherwise only the verdict is stored
        self.keep_reports = False
        #: Should there be some extra output? useful for debugging
        self.verbose = False


class ContinuationPowerFlow:
    """
    Sweeps the active power of a single load at a fixed power factor, solving the
    power flow at every step with the previous solution as the initial guess.
    Every call to run() works on its own copy of the system, the original system is
    never modified. The copy at the last converged point is stored in the resulting curve.
    """

    def __init__(self, system: PowerSystem, load_name: str, monitored_bus: Optional[str] = None,
                 power_flow: Optional[PowerFlowSolver] = None,
                 analyzer: Optional[SmallSignalAnalyzer] = None) -> None:
        load = system.get_component(PowerLoad, load_name)
        #: the system to start from
        self.system = system
        #: the swept load
        self.load_name = load_name
        #: the bus whose voltage is recorded, defaults to the load's bus
        self.monitored_bus = monitored_bus if monitored_bus is not None else load.bus
        system.bus_index(self.monitored_bus)
        #: the power flow solver
        self.power_flow = power_flow if power_flow is not None else PowerFlowSolver()
        #: the small-signal stability analyzer
        self.analyzer = analyzer if analyzer is not None else SmallSignalAnalyzer()
        #: the settings of the sweep
        self.settings = SweepSettings()

    def log(self, *args, **kwargs) -> None:
        """
        print()-wrapper for log messages
        log messages are printed only if verbosity is switched on
        """
        if self.settings.verbose:
            print(*args, **kwargs)

    def run(self, parameter_values: Iterable[float], power_factor: float = 1.0,
            should_stop: Optional[Callable[[], bool]] = None) -> PVCurve:
        """
        Sweep the load's active power through the given ascending values and return the PV curve.
        The reactive power follows from the power factor: Q = P * tan(acos(pf)).
        The sweep ends at the first value where the power flow does not converge,
        or when should_stop() returns True.
        """
        if not 0 < power_factor <= 1:
            raise ValueError(f"The power factor must be in (0, 1], got {power_factor}")
        values = np.asarray(list(parameter_values), dtype=float)
        if values.size > 1 and np.any(np.diff(values) < 0):
            raise ValueError("The parameter values must be in ascending order")
        tan_phi = np.tan(np.arccos(power_factor))
        system = self.system.copy()
        load = system.get_component(PowerLoad, self.load_name)
        curve = PVCurve(self.load_name, self.monitored_bus, power_factor)
        curve.system = system
        last_feasible = None
        for p in values:
            if should_stop is not None and should_stop():
                self.log("Sweep cancelled at P =", p)
                curve.cancelled = True
                break
            previous = (load.active_power, load.reactive_power)
            system.set_active_power(self.load_name, p)
            system.set_reactive_power(self.load_name, p * tan_phi)
            result = self.power_flow.solve(system)
            if not result.converged:
                # the fold point: restore the last feasible setpoints and stop
                load.active_power, load.reactive_power = previous
                failure = result.failure
                curve.stop_reason = NonConvergence(
                    f"Power flow did not converge at P = {p}" +
                    ("" if failure is None else f": {failure}"),
                    parameter=float(p), last_feasible_parameter=last_feasible,
                    state=system.state, component=self.load_name,
                    iterations=result.iterations, residual=result.residual)
                self.log(f"Sweep stopped at P = {p}, last feasible P = {last_feasible}")
                break
            last_feasible = float(p)
            voltage = result.state[self.monitored_bus].magnitude
            stable = None
            if self.settings.analyze_stability:
                try:
                    report = self.analyzer.analyze(system)
                except BuildFailure as error:
                    curve.failures[len(curve)] = error
                    self.log(f"Stability analysis failed at P = {p}: {error}")
                else:
                    stable = report.stable
                    if self.settings.keep_reports:
                        curve.reports[len(curve)] = report
            curve.append(PVSample(p, voltage, stable))
            self.log(f"P = {p:.4f}, V = {voltage:.4f}, stable: {stable}")
        return curve


def run_sweep(system: PowerSystem, load_name: str, parameter_values: Iterable[float],
              power_factor: float = 1.0, monitored_bus: Optional[str] = None,
              analyze_stability: bool = True, should_stop: Optional[Callable[[], bool]] = None,
              verbose: bool = False) -> PVCurve:
    """trace the PV curve of a system by sweeping the active power of a load"""
    cpf = ContinuationPowerFlow(system, load_name, monitored_bus)
    cpf.settings.analyze_stability = analyze_stability
    cpf.settings.verbose = verbose
    return cpf.run(parameter_values, power_factor, should_stop)
