"""
Small-signal stability analysis: linearization of the DAE at an operating point,
elimination of the algebraic variables and eigenvalue analysis of the reduced
state matrix.
"""
from __future__ import annotations

from typing import Iterable, NamedTuple, Optional

import numdifftools as nd
import numpy as np

from cpflow.core.errors import BuildFailure
from cpflow.core.network import PowerSystem
from cpflow.core.solvers import EigenSolver
from cpflow.core.types import Array, StateName
from cpflow.dynamics.model import DynamicModel


class EigenvalueInfo(NamedTuple):
    """reporting data of a single eigenvalue"""
    #: 1-based index in the order of the decomposition
    index: int
    real: float
    imag: float
    #: damping ratio -Re/|lambda| (1 for a vanishing eigenvalue)
    damping: float
    #: oscillation frequency in Hz
    frequency: float
    #: names of the states with the largest participation, largest first
    participating_states: tuple


class EigenSpectrum:
    """
    The eigenvalues of the reduced state matrix in the order produced by the
    eigen-decomposition, together with the right and left eigenvectors.
    Eigenvalue indices are 1-based.
    """

    def __init__(self, eigenvalues: np.ndarray, right: Optional[np.ndarray] = None,
                 left: Optional[np.ndarray] = None) -> None:
        self.eigenvalues = np.array(eigenvalues, dtype=complex)
        self.eigenvalues.flags.writeable = False
        #: right eigenvectors (as columns)
        self.right = right
        #: left eigenvectors (as columns)
        self.left = left

    def __len__(self) -> int:
        return len(self.eigenvalues)

    def __iter__(self):
        return iter(self.eigenvalues)

    def __getitem__(self, index: int) -> complex:
        """access eigenvalue by its 1-based index"""
        if not 1 <= index <= len(self):
            raise IndexError(f"Eigenvalue index {index} out of range 1..{len(self)}")
        return self.eigenvalues[index - 1]

    @property
    def indices(self) -> np.ndarray:
        return np.arange(1, len(self) + 1)

    def max_real_part(self) -> float:
        return float(np.max(self.eigenvalues.real)) if len(self) > 0 else -np.inf

    def participation_factors(self) -> np.ndarray:
        """
        Normalized participation factors p[k, i] of state k in mode i,
        computed from the left and right eigenvectors. Every column sums up to 1.
        """
        if self.left is None or self.right is None:
            raise ValueError("The spectrum was computed without eigenvectors")
        p = np.abs(np.conj(self.left) * self.right)
        total = p.sum(axis=0)
        total[total == 0] = 1
        return p / total

    def sorted(self) -> EigenSpectrum:
        """a copy sorted by descending real part"""
        idx = np.argsort(-self.eigenvalues.real, kind="stable")
        right = None if self.right is None else self.right[:, idx]
        left = None if self.left is None else self.left[:, idx]
        return EigenSpectrum(self.eigenvalues[idx], right, left)


def classify_spectrum(eigenvalues: Iterable[complex]) -> bool:
    """stable iff every eigenvalue has a strictly negative real part"""
    return all(np.real(ev) < 0 for ev in eigenvalues)


class StabilityReport:
    """
    The result of a small-signal analysis: the stability verdict and the
    eigenspectrum of the reduced state matrix.
    """

    def __init__(self, spectrum: EigenSpectrum, state_names: list[StateName],
                 A: Optional[np.ndarray] = None) -> None:
        #: the eigenspectrum in decomposition order
        self.spectrum = spectrum
        #: names of the differential states, in the order of the state matrix
        self.state_names = list(state_names)
        #: the reduced state matrix
        self.A = A
        #: is the operating point small-signal stable?
        self.stable = classify_spectrum(spectrum.eigenvalues)

    @property
    def eigenvalues(self) -> np.ndarray:
        return self.spectrum.eigenvalues

    def is_stable_excluding(self, ignore: Iterable[int] = ()) -> bool:
        """
        The stability verdict without the eigenvalues of the given (1-based) indices.
        For reporting only, the `stable` attribute always considers the full spectrum.
        """
        ignore = set(ignore)
        return classify_spectrum(ev for i, ev in zip(self.spectrum.indices, self.eigenvalues)
                                 if i not in ignore)

    def critical_eigenvalues(self) -> np.ndarray:
        """the eigenvalues with non-negative real part"""
        return self.eigenvalues[self.eigenvalues.real >= 0]

    def summary(self, ignore: Iterable[int] = (), nstates: int = 3) -> list[EigenvalueInfo]:
        """
        Reporting data for every eigenvalue: real and imaginary part, damping ratio,
        frequency and the `nstates` states with the largest participation.
        Eigenvalues with an index in `ignore` are left out.
        """
        ignore = set(ignore)
        try:
            pf = self.spectrum.participation_factors()
        except ValueError:
            pf = None
        rows = []
        for k, ev in zip(self.spectrum.indices, self.eigenvalues):
            if k in ignore:
                continue
            mag = abs(ev)
            damping = -ev.real / mag if mag > 0 else 1.0
            states: tuple = ()
            if pf is not None:
                order = np.argsort(-pf[:, k - 1], kind="stable")[:nstates]
                states = tuple(self.state_names[i] for i in order)
            rows.append(EigenvalueInfo(int(k), float(ev.real), float(ev.imag), float(damping),
                                       float(abs(ev.imag) / (2 * np.pi)), states))
        return rows

    def format_summary(self, ignore: Iterable[int] = ()) -> str:
        """the eigenvalue summary as a printable table"""
        lines = [f"{'#':>3} {'real':>12} {'imag':>12} {'damping':>9} {'f (Hz)':>8}  states"]
        for row in self.summary(ignore):
            states = ", ".join(s[1] for s in row.participating_states)
            lines.append(f"{row.index:>3} {row.real:>12.6f} {row.imag:>12.6f} "
                         f"{row.damping:>9.4f} {row.frequency:>8.4f}  {states}")
        verdict = "stable" if self.stable else "unstable"
        lines.append(f"The operating point is small-signal {verdict}.")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"StabilityReport(stable={self.stable}, eigenvalues={self.eigenvalues!r})"


class SmallSignalAnalyzer:
    """
    Linearizes a DynamicModel at its equilibrium (x0, y0),
        A = f_x - f_y g_y^-1 g_x,
    and classifies the stability from the eigenvalues of A.
    f_x and f_y are computed with numdifftools, g_x and g_y analytically.
    """

    def __init__(self) -> None:
        #: eigensolver for the reduced state matrix
        self.eigen_solver = EigenSolver()
        #: reciprocal condition number of g_y below which it is treated as singular
        self.singularity_tolerance = 1e-12

    def analyze(self, system: PowerSystem) -> StabilityReport:
        """build the dynamic model at the current operating point of the system and analyze it"""
        return self.analyze_model(DynamicModel(system))

    def analyze_model(self, model: DynamicModel) -> StabilityReport:
        A = self.state_matrix(model)
        eigenvalues, right, left = self.eigen_solver.solve(A)
        if not np.all(np.isfinite(eigenvalues)):
            raise BuildFailure("The eigenvalue decomposition produced non-finite eigenvalues",
                               reason="non_finite_spectrum")
        return StabilityReport(EigenSpectrum(eigenvalues, right, left), model.state_names, A)

    def state_matrix(self, model: DynamicModel) -> np.ndarray:
        """the reduced state matrix at the equilibrium of the model"""
        x0, y0 = np.array(model.x0), np.array(model.y0)
        n, m = model.nstates, model.nalgebraic
        if not np.all(np.isfinite(model.f(x0, y0))):
            raise BuildFailure("The right-hand side is not finite at the operating point",
                               reason="non_finite_jacobian")
        fx = self._jacobian(lambda x: model.f(x, y0), x0, n)
        fy = self._jacobian(lambda y: model.f(x0, y), y0, n)
        gx = model.g_x(x0, y0)
        gy = model.g_y(x0, y0)
        for name, J in (("f_x", fx), ("f_y", fy), ("g_x", gx), ("g_y", gy)):
            if not np.all(np.isfinite(J)):
                raise BuildFailure(f"The Jacobian {name} contains non-finite entries",
                                   reason="non_finite_jacobian")
        if m == 0:
            return fx
        if np.linalg.cond(gy) * self.singularity_tolerance > 1:
            raise BuildFailure("The algebraic Jacobian g_y is singular at the operating point",
                               reason="singular_gy")
        try:
            return fx - fy @ np.linalg.solve(gy, gx)
        except np.linalg.LinAlgError as error:
            raise BuildFailure(f"The algebraic Jacobian g_y is singular: {error}",
                               reason="singular_gy") from error

    @staticmethod
    def _jacobian(fun, u: Array, nout: int) -> np.ndarray:
        if u.size == 0:
            return np.zeros((nout, 0))
        return np.asarray(nd.Jacobian(fun)(u), dtype=float).reshape(nout, u.size)


def analyze(system: PowerSystem) -> StabilityReport:
    """small-signal analysis of the current operating point of a system"""
    return SmallSignalAnalyzer().analyze(system)
