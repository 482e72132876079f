"""
Nonlinear transient simulation of a DynamicModel with an optional perturbation
of a single differential state.
"""
from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Callable, Iterator, NamedTuple, Optional, Union

import numpy as np
import scipy.integrate

from cpflow.core.errors import IntegrationFailure
from cpflow.core.network import PowerSystem
from cpflow.core.types import Array, StateName
from cpflow.dynamics.model import DynamicModel


class PerturbationSpec(NamedTuple):
    """Add `offset` to the differential state `state` at the time `time`"""
    time: float
    #: name of the perturbed state, e.g. ("generator-101-1", "eq_p")
    state: Union[StateName, str]
    offset: float


class Trajectory:
    """
    The time series of a single variable, sampled at the accepted integrator
    steps (or at the requested sample times). The arrays are read-only.
    """

    def __init__(self, name, t: Array, values: Array) -> None:
        self.name = name
        self.t = np.array(t, dtype=float)
        self.values = np.array(values, dtype=float)
        self.t.flags.writeable = False
        self.values.flags.writeable = False

    def __len__(self) -> int:
        return len(self.t)

    def __iter__(self) -> Iterator[tuple[float, float]]:
        return zip(self.t, self.values)

    def __repr__(self) -> str:
        return f"Trajectory({self.name!r}, samples={len(self)})"

    def window(self, t_start: float, t_end: float = np.inf) -> Trajectory:
        """the part of the trajectory within [t_start, t_end]"""
        mask = (self.t >= t_start) & (self.t <= t_end)
        return Trajectory(self.name, self.t[mask], self.values[mask])


class TransientResult(Mapping):
    """
    The outcome of a transient simulation: an ordered mapping from state name
    to Trajectory for every differential state of the model.
    The status is one of:
    - "completed": the horizon was reached
    - "collapsed": the network equations lost their solution (voltage collapse),
      the trajectories end at the collapse time
    - "cancelled": the run was aborted by the caller
    """

    def __init__(self, state_names: list[StateName], bus_names: list[str], t: Array, x: Array, y: Array,
                 horizon: float, perturbation: Optional[PerturbationSpec] = None,
                 status: str = "completed", message: str = "") -> None:
        self.state_names = list(state_names)
        self.bus_names = list(bus_names)
        #: the sample times
        self.t = np.array(t, dtype=float)
        #: the differential states, one row per sample
        self.x = np.array(x, dtype=float).reshape(len(self.t), len(self.state_names))
        #: the algebraic variables, one row per sample
        self.y = np.array(y, dtype=float).reshape(len(self.t), 2 * len(self.bus_names))
        #: the requested simulation horizon
        self.horizon = horizon
        #: the perturbation that was applied
        self.perturbation = perturbation
        self.status = status
        self.message = message

    def __getitem__(self, name) -> Trajectory:
        return Trajectory(name, self.t, self.x[:, self._index(name)])

    def __iter__(self) -> Iterator[StateName]:
        return iter(self.state_names)

    def __len__(self) -> int:
        return len(self.state_names)

    def __repr__(self) -> str:
        return f"TransientResult(status='{self.status}', t_end={self.end_time}, states={self.state_names})"

    def _index(self, name) -> int:
        if isinstance(name, str):
            matches = [i for i, (_, s) in enumerate(self.state_names) if s == name]
            if len(matches) == 1:
                return matches[0]
        elif tuple(name) in self.state_names:
            return self.state_names.index(tuple(name))
        raise KeyError(f"Unknown state {name!r}, available states: {self.state_names}")

    @property
    def end_time(self) -> float:
        return float(self.t[-1]) if len(self.t) > 0 else 0.0

    @property
    def ended_early(self) -> bool:
        """did the simulation stop before the horizon?"""
        return self.status != "completed"

    def state_series(self, name) -> tuple[Array, Array]:
        """time and values of a differential state"""
        trajectory = self[name]
        return trajectory.t, trajectory.values

    def voltage_magnitude(self, bus: str) -> Trajectory:
        """the voltage magnitude of a bus"""
        i = self.bus_names.index(bus)
        nb = len(self.bus_names)
        return Trajectory((bus, "Vm"), self.t, np.hypot(self.y[:, i], self.y[:, nb + i]))


class SimulationSettings():
    """
    A wrapper class that holds all the settings of a transient simulation.
    """

    def __init__(self) -> None:
        #: the implicit integration method of scipy.integrate ("BDF" or "Radau")
        self.method = "BDF"
        #: relative tolerance, see scipy.integrate.BDF
        self.rtol = 1e-6
        #: absolute tolerance, see scipy.integrate.BDF
        self.atol = 1e-8
        #: maximum time step size
        self.max_step = np.inf
        #: record samples at this fixed interval using the dense output instead of at every step
        self.sample_interval: Optional[float] = None
        #: maximum number of integrator steps, None for no limit
        self.max_steps: Optional[int] = None
        #: maximum wall clock time (s), None for no limit
        self.max_wall_time: Optional[float] = None
        #: a failed step is a voltage collapse only if the network equations lose their
        #: solution within this time along the flow from the last accepted state
        self.collapse_lookahead = 1e-3
        #: Should there be some extra output? useful for debugging
        self.verbose = False


class TransientSimulation:
    """
    Integrates the DAE of a DynamicModel in its state-space form: the network
    equations are solved for the algebraic variables whenever the right-hand side
    is evaluated. If they have no solution, the right-hand side is NaN, which makes
    the implicit integrator reduce its step size. A run whose step size collapses
    at such a point has reached a voltage collapse, if the network equations also
    have no solution shortly ahead along the flow. It ends normally with the
    status "collapsed". All other integrator failures raise an IntegrationFailure.
    """

    def __init__(self, model: DynamicModel, horizon: float,
                 perturbation: Optional[PerturbationSpec] = None,
                 settings: Optional[SimulationSettings] = None) -> None:
        if not horizon > 0:
            raise ValueError(f"The time horizon must be positive, got {horizon}")
        if perturbation is not None:
            if not 0 <= perturbation.time <= horizon:
                raise ValueError(
                    f"The perturbation time {perturbation.time} is outside of [0, {horizon}]")
            # fail early on unknown state names
            model.state_index(perturbation.state)
        self.model = model
        self.horizon = float(horizon)
        self.perturbation = perturbation
        self.settings = settings if settings is not None else SimulationSettings()
        # warm start for the network equations
        self._y = np.array(model.y0)
        # number of failed solutions of the network equations during the current step
        self._algebraic_failures = 0
        # the last finite state Jacobian
        self._last_jac: Optional[np.ndarray] = None
        # bookkeeping for the step and wall time limits
        self._started = 0.0
        self._nsteps = 0
        self._message = ""

    def log(self, *args, **kwargs) -> None:
        """
        print()-wrapper for log messages
        log messages are printed only if verbosity is switched on
        """
        if self.settings.verbose:
            print(*args, **kwargs)

    def rhs(self, t: float, x: Array) -> Array:
        """the state-space right-hand side dx/dt = f(x, y(x))"""
        try:
            y = self.model.solve_algebraic(x, self._y)
        except np.linalg.LinAlgError:
            self._algebraic_failures += 1
            return np.full(x.size, np.nan)
        self._y = y
        return self.model.f(x, y)

    def jacobian(self, t: float, x: Array) -> np.ndarray:
        """the state-space Jacobian, falls back to the last finite one"""
        try:
            y = self.model.solve_algebraic(x, self._y)
            J = self.model.state_jacobian(x, y)
        except np.linalg.LinAlgError:
            J = None
        if J is not None and np.all(np.isfinite(J)):
            self._last_jac = J
        elif self._last_jac is None:
            self._last_jac = self.model.state_jacobian(np.array(self.model.x0), np.array(self.model.y0))
        return self._last_jac

    def execute(self, should_stop: Optional[Callable[[], bool]] = None) -> TransientResult:
        """run the simulation over [0, horizon]"""
        model = self.model
        x = np.array(model.x0)
        self._y = np.array(model.y0)
        ts, xs, ys = [0.0], [x.copy()], [self._y.copy()]
        self._started = time.perf_counter()
        self._nsteps = 0

        def result(status="completed", message=""):
            return TransientResult(model.state_names, model.bus_names, ts, xs, ys,
                                   self.horizon, self.perturbation, status, message)

        # integration segments, the perturbation splits the horizon
        segments = [(0.0, self.horizon)]
        p = self.perturbation
        if p is not None:
            segments = [(0.0, p.time), (p.time, self.horizon)]
        for k, (t0, t1) in enumerate(segments):
            if k == 1:
                # apply the perturbation and restart from the perturbed state
                x = x.copy()
                x[model.state_index(p.state)] += p.offset
                self.log(f"t = {t0}: perturbing {p.state} by {p.offset}")
                try:
                    self._y = model.solve_algebraic(x, self._y)
                except np.linalg.LinAlgError:
                    message = f"The network equations have no solution after the perturbation at t = {t0}"
                    self.log(message)
                    return result("collapsed", message)
                ts.append(t0)
                xs.append(x.copy())
                ys.append(self._y.copy())
            if t1 <= t0:
                continue
            status, x = self._integrate(t0, t1, x, ts, xs, ys, should_stop, result)
            if status != "completed":
                return result(status, self._message)
        return result()

    def _integrate(self, t0, t1, x, ts, xs, ys, should_stop, result):
        settings = self.settings
        methods = {"BDF": scipy.integrate.BDF, "Radau": scipy.integrate.Radau}
        if settings.method not in methods:
            raise ValueError(f"Unknown integration method '{settings.method}', choose from {list(methods)}")
        self._last_jac = None
        solver = methods[settings.method](self.rhs, t0, x, t1, jac=self.jacobian,
                                          max_step=settings.max_step, rtol=settings.rtol,
                                          atol=settings.atol, vectorized=False)
        self._message = ""
        t_sample = t0
        while solver.status == "running":
            if should_stop is not None and should_stop():
                self._message = f"Cancelled at t = {solver.t}"
                self.log(self._message)
                return "cancelled", solver.y
            self._check_limits(solver, result)
            self._algebraic_failures = 0
            message = solver.step()
            if solver.status == "failed":
                if self._algebraic_failures > 0 and self._reached_collapse(solver.y):
                    self._message = f"Voltage collapse at t = {solver.t}: the network equations have no solution"
                    self.log(self._message)
                    return "collapsed", solver.y
                raise IntegrationFailure(f"Integration failed at t = {solver.t}: {message}",
                                         time=solver.t, state=solver.y.copy(),
                                         partial_result=result("failed", str(message)),
                                         solver_message=message)
            self._nsteps += 1
            try:
                y = self.model.solve_algebraic(solver.y, self._y)
            except np.linalg.LinAlgError:
                self._message = f"Voltage collapse at t = {solver.t}: the network equations have no solution"
                self.log(self._message)
                return "collapsed", solver.y
            self._y = y
            if settings.sample_interval is None:
                ts.append(solver.t)
                xs.append(solver.y.copy())
                ys.append(y.copy())
            else:
                # sample from the dense output at the fixed interval
                dense = solver.dense_output()
                while t_sample + settings.sample_interval <= solver.t + 1e-12:
                    t_sample += settings.sample_interval
                    xi = dense(t_sample)
                    try:
                        yi = self.model.solve_algebraic(xi, y)
                    except np.linalg.LinAlgError:
                        self._message = f"Voltage collapse at t = {t_sample}: the network equations have no solution"
                        self.log(self._message)
                        return "collapsed", solver.y
                    ts.append(t_sample)
                    xs.append(xi)
                    ys.append(yi)
        return "completed", solver.y

    def _reached_collapse(self, x: Array) -> bool:
        """
        Do the network equations lose their solution at x or a short time ahead
        along the flow dx/dt = f(x, y)?
        """
        try:
            y = self.model.solve_algebraic(x, self._y)
        except np.linalg.LinAlgError:
            return True
        x_ahead = x + self.settings.collapse_lookahead * self.model.f(x, y)
        try:
            self.model.solve_algebraic(x_ahead, y)
        except np.linalg.LinAlgError:
            return True
        return False

    def _check_limits(self, solver, result) -> None:
        # wall clock and step count limits are reported as integration failures
        settings = self.settings
        reason = None
        if settings.max_steps is not None and self._nsteps >= settings.max_steps:
            reason = f"maximum number of steps ({settings.max_steps}) exceeded"
        elapsed = time.perf_counter() - self._started
        if settings.max_wall_time is not None and elapsed > settings.max_wall_time:
            reason = f"maximum wall time ({settings.max_wall_time} s) exceeded"
        if reason is not None:
            raise IntegrationFailure(f"Integration stopped at t = {solver.t}: {reason}",
                                     time=solver.t, state=solver.y.copy(),
                                     partial_result=result("failed", reason), solver_message=reason)


def simulate(system: PowerSystem, horizon: float, perturbation: Optional[PerturbationSpec] = None,
             should_stop: Optional[Callable[[], bool]] = None, **settings) -> TransientResult:
    """
    Build the dynamic model at the current operating point of the system and
    run a transient simulation. Keyword arguments are passed to SimulationSettings.
    """
    sim = TransientSimulation(DynamicModel(system), horizon, perturbation)
    for key, value in settings.items():
        if not hasattr(sim.settings, key):
            raise TypeError(f"Unknown simulation setting: '{key}'")
        setattr(sim.settings, key, value)
    return sim.execute(should_stop)
