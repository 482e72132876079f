"""
The differential-algebraic system of a power network with a dynamic generator:
    dx/dt = f(x, y),   0 = g(x, y)
with the differential states x of the devices and the algebraic variables y,
the real and imaginary parts of all bus voltages.
"""
from __future__ import annotations

import copy
from typing import Optional, Union

import numpy as np

from cpflow.core.errors import BuildFailure
from cpflow.core.network import Generator, PowerSystem
from cpflow.core.solvers import MyNewtonSolver
from cpflow.core.types import Array, StateName


class DynamicModel:
    """
    The DAE of a PowerSystem at a given operating point. The model is built
    from the converged power flow solution stored in the system and is
    initialized in equilibrium, i.e., f(x0, y0) = 0 and g(x0, y0) = 0.
    The network equations are the complex current balances
        (Y + Y_gen) V - Y_gen eq_p + I_load(V) = 0
    at every bus, with constant power loads I_load = conj(S / V).
    The phasors are expressed in the rotor frame of the (single) dynamic
    generator, so no reference angle state is needed.
    The device parameters are copied, the model does not share state with the system.
    """

    def __init__(self, system: PowerSystem) -> None:
        if len(system.dynamic_generators) != 1:
            raise BuildFailure(
                f"Exactly one dynamic generator is supported, found {len(system.dynamic_generators)}",
                reason="unsupported_topology")
        state = system.state
        if not state.is_finite():
            raise BuildFailure("The network state contains non-finite values",
                               reason="non_finite_state")
        #: names of the buses in order
        self.bus_names = [bus.name for bus in system.buses]
        nb = len(self.bus_names)
        # copy the device, its setpoints are adjusted during initialization
        device = copy.deepcopy(next(iter(system.dynamic_generators.values())))
        #: the dynamic generator
        self.device = device
        static = system.get_component(Generator, device.name)
        if not static.available:
            raise BuildFailure(f"Generator '{device.name}' is not available",
                               component=device.name, reason="unavailable")
        #: index of the generator bus
        self.gen_bus = system.bus_index(static.bus)
        # constant power drawn at every bus: loads and all generators without dynamic model
        self.S_load = np.zeros(nb, dtype=complex)
        for load in system.loads:
            if load.available:
                self.S_load[system.bus_index(load.bus)] += complex(load.active_power, load.reactive_power)
        for gen in system.generators:
            if gen.available and gen is not static:
                self.S_load[system.bus_index(gen.bus)] -= complex(gen.active_power, gen.reactive_power)
        # network admittance including the generator's internal admittance
        Y = system.admittance_matrix()
        Y[self.gen_bus, self.gen_bus] += device.internal_admittance
        self.Y = Y
        # real form of the admittance matrix: [[G, -B], [B, G]]
        self._Yreal = np.block([[Y.real, -Y.imag], [Y.imag, Y.real]])
        # initialize the device from the power flow solution
        V = state.voltages()
        S_gen = complex(static.active_power, static.reactive_power)
        #: rotor angle of the generator in the power flow frame (rad)
        self.delta = 0.0
        self.delta, x0 = device.initialize(V[self.gen_bus], S_gen)
        V = V * np.exp(-1j * self.delta)
        #: names of the differential states in order
        self.state_names: list[StateName] = [(device.name, s) for s in device.states]
        #: names of the algebraic variables in order
        self.algebraic_names: list[StateName] = [(b, "vr") for b in self.bus_names] + \
            [(b, "vi") for b in self.bus_names]
        self._x0 = x0
        self._y0 = np.concatenate((V.real, V.imag))
        self._x0.flags.writeable = False
        self._y0.flags.writeable = False
        #: the Newton solver for the network equations
        self.newton_solver = MyNewtonSolver()
        self.newton_solver.convergence_tolerance = 1e-10
        self.newton_solver.max_iterations = 20
        # check that the initialization is in equilibrium
        res_f = np.max(np.abs(self.f(self._x0, self._y0)))
        res_g = np.max(np.abs(self.g(self._x0, self._y0)))
        if not (res_f < 1e-6 and res_g < 1e-6):
            raise BuildFailure(
                f"The initial state is not in equilibrium, max. residuals f: {res_f:.2e}, g: {res_g:.2e}",
                component=device.name, reason="not_in_equilibrium")

    @property
    def nstates(self) -> int:
        return len(self.state_names)

    @property
    def nalgebraic(self) -> int:
        return len(self.algebraic_names)

    @property
    def x0(self) -> Array:
        """the equilibrium values of the differential states"""
        return self._x0

    @property
    def y0(self) -> Array:
        """the equilibrium values of the algebraic variables"""
        return self._y0

    def state_index(self, name: Union[StateName, str]) -> int:
        """
        Position of a differential state, addressed by (device, symbol) or by
        its symbol alone, if that is unique.
        """
        if isinstance(name, str):
            matches = [i for i, (_, s) in enumerate(self.state_names) if s == name]
            if len(matches) == 1:
                return matches[0]
            raise KeyError(f"State symbol '{name}' is unknown or ambiguous, "
                           f"available states: {self.state_names}")
        try:
            return self.state_names.index(tuple(name))
        except ValueError:
            raise KeyError(f"Unknown state {name}, available states: {self.state_names}") from None

    def voltages(self, y: Array) -> np.ndarray:
        """complex bus voltages from the algebraic variables"""
        nb = len(self.bus_names)
        return y[:nb] + 1j * y[nb:]

    def f(self, x: Array, y: Array) -> Array:
        """right-hand side of the differential equations"""
        V = self.voltages(y)
        return self.device.derivatives(x, V[self.gen_bus])

    def g(self, x: Array, y: Array) -> Array:
        """residuals of the network equations (real parts first, then imaginary parts)"""
        V = self.voltages(y)
        I = self.Y @ V + np.conj(self.S_load / V)
        I[self.gen_bus] -= self.device.internal_admittance * x[0]
        return np.concatenate((I.real, I.imag))

    def g_y(self, x: Array, y: Array) -> np.ndarray:
        """analytic Jacobian of the network equations with respect to the algebraic variables"""
        nb = len(self.bus_names)
        vr, vi = y[:nb], y[nb:]
        P, Q = self.S_load.real, self.S_load.imag
        m2 = (vr**2 + vi**2)**2
        # derivatives of the constant power load currents
        dIr_dvr = (P * (vi**2 - vr**2) - 2 * Q * vr * vi) / m2
        dIr_dvi = (Q * (vr**2 - vi**2) - 2 * P * vr * vi) / m2
        J = self._Yreal.copy()
        J[:nb, :nb] += np.diag(dIr_dvr)
        J[:nb, nb:] += np.diag(dIr_dvi)
        J[nb:, :nb] += np.diag(dIr_dvi)
        J[nb:, nb:] -= np.diag(dIr_dvr)
        return J

    def g_x(self, x: Array, y: Array) -> np.ndarray:
        """analytic Jacobian of the network equations with respect to the differential states"""
        nb = len(self.bus_names)
        J = np.zeros((2 * nb, self.nstates))
        y_int = self.device.internal_admittance
        J[self.gen_bus, 0] = -y_int.real
        J[nb + self.gen_bus, 0] = -y_int.imag
        return J

    def state_jacobian(self, x: Array, y: Array) -> np.ndarray:
        """
        Jacobian of the state-space form dx/dt = f(x, y(x)) for algebraic variables y
        that solve the network equations: A = f_x - f_y g_y^-1 g_x.
        f_x and f_y are approximated with forward differences, for the Jacobian
        updates of the implicit integrator. The stability verdict uses the
        numdifftools linearization of SmallSignalAnalyzer.state_matrix instead.
        """
        eps = 1e-7  # the relative finite perturbation size
        f0 = self.f(x, y)
        fx = np.zeros((self.nstates, x.size))
        fy = np.zeros((self.nstates, y.size))
        x1, y1 = np.array(x, dtype=float), np.array(y, dtype=float)
        for i in range(x.size):
            k = x1[i]
            h = eps * max(1.0, abs(k))
            x1[i] = k + h
            fx[:, i] = (self.f(x1, y) - f0) / h
            x1[i] = k
        for i in range(y.size):
            k = y1[i]
            h = eps * max(1.0, abs(k))
            y1[i] = k + h
            fy[:, i] = (self.f(x, y1) - f0) / h
            y1[i] = k
        return fx - fy @ np.linalg.solve(self.g_y(x, y), self.g_x(x, y))

    def solve_algebraic(self, x: Array, y_guess: Optional[Array] = None) -> Array:
        """
        Solve the network equations g(x, y) = 0 for y, starting from y_guess
        (or the equilibrium). Raises NonConvergence if there is no solution nearby.
        """
        y_guess = self._y0 if y_guess is None else y_guess
        return self.newton_solver.solve(lambda y: self.g(x, y), y_guess,
                                        lambda y: self.g_y(x, y))
