"""
Dynamic device models of a synchronous generator: the machine itself, the
excitation system and the turbine governor. All quantities are in per unit and
expressed in the machine's rotor frame, where the q-axis is the real axis and
the d-axis points along -j.
"""
from typing import Optional

import numpy as np

from cpflow.core.errors import BuildFailure
from cpflow.core.types import Array


class OneAxisMachine:
    """
    One-axis (flux decay) model of a synchronous machine with Xq = Xd'.
    The transient EMF eq_p drives the network through the internal impedance Ra + jXd'.
    States: eq_p (transient EMF), omega (rotor speed deviation)
    """

    states = ["eq_p", "omega"]

    def __init__(self, Xd: float = 1.8, Xd_p: float = 0.3, Td0_p: float = 5.0,
                 H: float = 3.0, D: float = 2.0, Ra: float = 0.0) -> None:
        #: d-axis synchronous reactance
        self.Xd = Xd
        #: d-axis transient reactance
        self.Xd_p = Xd_p
        #: d-axis open circuit transient time constant (s)
        self.Td0_p = Td0_p
        #: inertia constant (s)
        self.H = H
        #: damping coefficient
        self.D = D
        #: armature resistance
        self.Ra = Ra

    @property
    def internal_admittance(self) -> complex:
        return 1 / complex(self.Ra, self.Xd_p)

    def current(self, eq_p: float, V: complex) -> complex:
        """stator current injected into the network"""
        return (eq_p - V) * self.internal_admittance

    def electrical_power(self, eq_p: float, I: complex) -> float:
        return eq_p * I.real

    def derivatives(self, eq_p: float, omega: float, I: complex, Vf: float, Pm: float) -> tuple[float, float]:
        Id = -I.imag
        deq_p = (Vf - eq_p - (self.Xd - self.Xd_p) * Id) / self.Td0_p
        domega = (Pm - self.electrical_power(eq_p, I) - self.D * omega) / (2 * self.H)
        return deq_p, domega


class SEXS:
    """
    Simplified excitation system: a lead-lag block (Ta/Tb, Tb) on the voltage error,
    followed by a first order exciter with gain K, time constant Te and non-windup
    limits on the field voltage.
    States: Vr (lead-lag state), Vf (field voltage)
    """

    states = ["Vr", "Vf"]

    def __init__(self, Ta_Tb: float = 1.0, Tb: float = 10.0, K: float = 50.0, Te: float = 1.0,
                 Emin: float = 0.0, Emax: float = 5.0) -> None:
        self.Ta_Tb = Ta_Tb
        self.Tb = Tb
        self.K = K
        self.Te = Te
        #: lower field voltage limit
        self.Emin = Emin
        #: upper field voltage limit
        self.Emax = Emax
        #: voltage reference, set during initialization
        self.Vref = 1.0

    def derivatives(self, Vr: float, Vf: float, Vt: float) -> tuple[float, float]:
        u = self.Vref - Vt
        out = self.Ta_Tb * u + (1 - self.Ta_Tb) * Vr
        dVr = (u - Vr) / self.Tb
        dVf = (self.K * out - Vf) / self.Te
        # non-windup limits
        if (Vf >= self.Emax and dVf > 0) or (Vf <= self.Emin and dVf < 0):
            dVf = 0.0
        return dVr, dVf

    def initialize(self, Vf0: float, Vt0: float) -> tuple[float, float]:
        """set the voltage reference for the given field voltage, returns the initial states"""
        u0 = Vf0 / self.K
        self.Vref = Vt0 + u0
        return u0, Vf0


class DroopGovernor:
    """
    First order turbine governor with permanent droop R and time constant Tg.
    States: Pm (mechanical power)
    """

    states = ["Pm"]

    def __init__(self, R: float = 0.05, Tg: float = 0.5) -> None:
        self.R = R
        self.Tg = Tg
        #: power reference, set during initialization
        self.Pref = 0.0

    def derivatives(self, Pm: float, omega: float) -> float:
        return (self.Pref - omega / self.R - Pm) / self.Tg

    def initialize(self, Pm0: float) -> float:
        self.Pref = Pm0
        return Pm0


class DynamicGenerator:
    """
    A synchronous generator composed of a machine, an excitation system and
    (optionally) a governor. Without a governor, the mechanical power stays
    at its initial value.
    """

    def __init__(self, name: str, machine: OneAxisMachine, avr: SEXS,
                 governor: Optional[DroopGovernor] = None) -> None:
        #: name of the static generator this model belongs to
        self.name = name
        self.machine = machine
        self.avr = avr
        self.governor = governor
        # constant mechanical power without a governor
        self._Pm0 = 0.0

    @property
    def states(self) -> list[str]:
        """the symbols of all differential states in order"""
        states = self.machine.states + self.avr.states
        if self.governor is not None:
            states = states + self.governor.states
        return states

    @property
    def internal_admittance(self) -> complex:
        return self.machine.internal_admittance

    def current(self, x: Array, V: complex) -> complex:
        return self.machine.current(x[0], V)

    def derivatives(self, x: Array, V: complex) -> Array:
        """time derivatives of the local states x for the terminal voltage V"""
        eq_p, omega, Vr, Vf = x[:4]
        Pm = x[4] if self.governor is not None else self._Pm0
        I = self.current(x, V)
        dx = np.empty(len(x))
        dx[0], dx[1] = self.machine.derivatives(eq_p, omega, I, Vf, Pm)
        dx[2], dx[3] = self.avr.derivatives(Vr, Vf, abs(V))
        if self.governor is not None:
            dx[4] = self.governor.derivatives(Pm, omega)
        return dx

    def initialize(self, V: complex, S: complex) -> tuple[float, Array]:
        """
        Initialize the device from the terminal voltage V and the power S delivered
        to the network, as obtained from the power flow.
        Returns the rotor angle and the initial local states.
        """
        if V == 0 or not np.isfinite(V) or not np.isfinite(S):
            raise BuildFailure(f"Cannot initialize '{self.name}' from V={V}, S={S}",
                               component=self.name, reason="invalid_operating_point")
        m = self.machine
        I = np.conj(S / V)
        E = V + complex(m.Ra, m.Xd_p) * I
        delta = float(np.angle(E))
        eq_p0 = float(abs(E))
        # currents in the rotor frame
        I = I * np.exp(-1j * delta)
        Vf0 = eq_p0 + (m.Xd - m.Xd_p) * (-I.imag)
        if not self.avr.Emin <= Vf0 <= self.avr.Emax:
            raise BuildFailure(
                f"Initial field voltage {Vf0:.4f} of '{self.name}' violates the exciter limits "
                f"[{self.avr.Emin}, {self.avr.Emax}]", component=self.name, reason="field_voltage_limit")
        Vr0, Vf0 = self.avr.initialize(Vf0, abs(V))
        Pm0 = m.electrical_power(eq_p0, I)
        self._Pm0 = Pm0
        x0 = [eq_p0, 0.0, Vr0, Vf0]
        if self.governor is not None:
            x0.append(self.governor.initialize(Pm0))
        return delta, np.array(x0)
