"""
Newton-Raphson power flow in polar coordinates. The solver never raises on
numerical failure, it reports non-convergence in its result instead.
"""
from typing import NamedTuple, Optional

import numpy as np

from .errors import NonConvergence
from .network import BusType, Generator, NetworkState, PowerSystem
from .solvers import AbstractNewtonSolver, MyNewtonSolver
from .types import Array


class PowerFlowResult(NamedTuple):
    """The outcome of a power flow solve"""
    #: did the solver find a solution?
    converged: bool
    #: the converged network state, or the unchanged input state on failure
    state: NetworkState
    #: number of Newton iterations taken
    iterations: Optional[int] = None
    #: max. absolute power mismatch of the returned state
    residual: Optional[float] = None
    #: the failure, if the solver did not converge
    failure: Optional[NonConvergence] = None


class PowerFlowSolver:
    """
    Solves the AC power flow equations S = V * conj(Y V) for the unknown voltage angles
    of all PV and PQ buses and the unknown voltage magnitudes of all PQ buses.
    The current bus voltages of the system are used as the initial guess, unless
    flat_start is set. On success, the bus voltages and the power of the slack and PV
    generators are written back to the system. On failure, the system is left untouched.
    """

    def __init__(self, newton_solver: Optional[AbstractNewtonSolver] = None) -> None:
        #: the Newton solver used for the mismatch equations
        self.newton_solver = newton_solver if newton_solver is not None else MyNewtonSolver()
        #: start from 1.0 pu / 0 rad at all non-slack buses instead of the current voltages?
        self.flat_start = False
        #: how verbose should the solving be? 0 = quiet, larger numbers = print more details
        self.verbosity = 0

    def solve(self, system: PowerSystem) -> PowerFlowResult:
        """solve the power flow of the given system"""
        types = [bus.bustype for bus in system.buses]
        slack = [i for i, t in enumerate(types) if t == BusType.SLACK]
        if len(slack) != 1:
            raise ValueError(
                f"The power flow requires exactly one slack bus, found {len(slack)}")
        pv = [i for i, t in enumerate(types) if t == BusType.PV]
        pq = [i for i, t in enumerate(types) if t == BusType.PQ]
        pvpq = pv + pq
        Y = system.admittance_matrix()
        Sbus = system.injections()
        # initial guess
        Vm = np.array([bus.magnitude for bus in system.buses], dtype=float)
        Va = np.array([bus.angle for bus in system.buses], dtype=float)
        if self.flat_start:
            Vm[pq] = 1.0
            Va[pvpq] = 0.0

        def unpack(u: Array) -> np.ndarray:
            # complex voltages from the vector of unknowns
            va, vm = Va.copy(), Vm.copy()
            va[pvpq] = u[:len(pvpq)]
            vm[pq] = u[len(pvpq):]
            return vm * np.exp(1j * va)

        def mismatch(u: Array) -> Array:
            V = unpack(u)
            mis = V * np.conj(Y @ V) - Sbus
            return np.concatenate((mis.real[pvpq], mis.imag[pq]))

        def jacobian(u: Array) -> np.ndarray:
            V = unpack(u)
            Ibus = Y @ V
            Vnorm = V / np.abs(V)
            dS_dVm = np.diag(V) @ np.conj(Y @ np.diag(Vnorm)) + np.diag(np.conj(Ibus) * Vnorm)
            dS_dVa = 1j * np.diag(V) @ np.conj(np.diag(Ibus) - Y @ np.diag(V))
            return np.block([
                [dS_dVa.real[np.ix_(pvpq, pvpq)], dS_dVm.real[np.ix_(pvpq, pq)]],
                [dS_dVa.imag[np.ix_(pq, pvpq)], dS_dVm.imag[np.ix_(pq, pq)]],
            ])

        u0 = np.concatenate((Va[pvpq], Vm[pq]))
        if not np.all(np.isfinite(u0)) or not np.all(np.isfinite(Sbus)):
            failure = NonConvergence("Non-finite initial guess or power injections")
            return PowerFlowResult(False, system.state, 0, None, failure)
        try:
            u = self.newton_solver.solve(mismatch, u0, jacobian)
        except NonConvergence as error:
            if self.verbosity > 0:
                print("Power flow did not converge:", error)
            return PowerFlowResult(False, system.state, error.iterations, error.residual, error)
        except np.linalg.LinAlgError as error:
            failure = NonConvergence(str(error), iterations=self.newton_solver.niterations)
            return PowerFlowResult(False, system.state, failure.iterations, None, failure)
        # write the solution back to the system
        V = unpack(u)
        for i, bus in enumerate(system.buses):
            bus.magnitude = float(np.abs(V[i]))
            bus.angle = float(np.angle(V[i]))
        self._update_generators(system, V * np.conj(Y @ V), slack + pv)
        if self.verbosity > 0:
            print("Power flow converged after",
                  self.newton_solver.niterations, "iterations")
        return PowerFlowResult(True, system.state, self.newton_solver.niterations,
                               self.newton_solver.residual)

    def _update_generators(self, system: PowerSystem, S: np.ndarray, buses: list[int]) -> None:
        # assign the free power injections of the slack and PV buses to their generators
        for i in buses:
            bus = system.buses[i]
            gens = [g for g in system.get_components(Generator) if g.bus == bus.name and g.available]
            if not gens:
                continue
            # power drawn by the loads at this bus
            load = sum(complex(ld.active_power, ld.reactive_power)
                       for ld in system.loads if ld.bus == bus.name and ld.available)
            Sgen = S[i] + load
            # any generators besides the first one keep their setpoints
            others = sum(complex(g.active_power, g.reactive_power) for g in gens[1:])
            Sgen -= others
            if bus.bustype == BusType.SLACK:
                gens[0].active_power = float(Sgen.real)
            gens[0].reactive_power = float(Sgen.imag)


def run_power_flow(system: PowerSystem, **kwargs) -> PowerFlowResult:
    """solve the power flow of the given system with a default PowerFlowSolver"""
    solver = PowerFlowSolver()
    for key, value in kwargs.items():
        if not hasattr(solver, key):
            raise TypeError(f"Unknown power flow option: '{key}'")
        setattr(solver, key, value)
    return solver.solve(system)
