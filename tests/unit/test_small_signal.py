"""Unit tests for the small-signal stability analysis."""

import numpy as np
import pytest

from cpflow.analysis.small_signal import (EigenSpectrum, SmallSignalAnalyzer, StabilityReport,
                                          analyze, classify_spectrum)
from cpflow.core.errors import BuildFailure
from cpflow.core.power_flow import run_power_flow
from cpflow.dynamics.model import DynamicModel
from cpflow.systems import omib_constant_power_load

GEN = "generator-101-1"


def solved_system(load: float):
    system = omib_constant_power_load(load=load)
    assert run_power_flow(system).converged
    return system


def eigenvalue_near(report: StabilityReport, target: complex) -> complex:
    return report.eigenvalues[np.argmin(np.abs(report.eigenvalues - target))]


def test_stable_operating_point() -> None:
    report = analyze(solved_system(0.8))

    assert report.stable
    assert len(report.spectrum) == 5
    # the exciter mode
    ev = eigenvalue_near(report, -0.41 + 3.55j)
    assert ev.real == pytest.approx(-0.4123, abs=1e-3)
    assert ev.imag == pytest.approx(3.5494, abs=1e-3)
    # the decoupled lead-lag state of the exciter
    assert eigenvalue_near(report, -0.1).real == pytest.approx(-0.1, abs=1e-8)


def test_critical_operating_point() -> None:
    """Just beyond the Hopf bifurcation, a complex pair has a small positive real part"""
    report = analyze(solved_system(1.168922))

    assert not report.stable
    critical = report.critical_eigenvalues()
    assert len(critical) == 2
    assert np.all(critical.real > 0)
    assert np.all(critical.real < 0.01)
    assert np.abs(critical.imag) == pytest.approx([4.383, 4.383], abs=1e-2)


def test_integrator_jacobian_matches_state_matrix() -> None:
    """The forward-difference Jacobian of the transient engine agrees with the linearization"""
    model = DynamicModel(solved_system(0.8))

    A = SmallSignalAnalyzer().state_matrix(model)
    J = model.state_jacobian(np.array(model.x0), np.array(model.y0))

    np.testing.assert_allclose(J, A, rtol=1e-5, atol=1e-5)


def test_idempotent() -> None:
    system = solved_system(1.0)
    analyzer = SmallSignalAnalyzer()

    first = analyzer.analyze(system)
    second = analyzer.analyze(system)

    np.testing.assert_array_equal(first.eigenvalues, second.eigenvalues)
    assert first.stable == second.stable


def test_verdict_independent_of_order() -> None:
    report = analyze(solved_system(1.168922))

    assert classify_spectrum(report.spectrum.sorted().eigenvalues) == report.stable
    assert classify_spectrum(report.eigenvalues[::-1]) == report.stable
    rng = np.random.default_rng(1)
    assert classify_spectrum(rng.permutation(report.eigenvalues)) == report.stable


def test_zero_eigenvalue_is_unstable() -> None:
    assert not classify_spectrum([-1.0, 0.0])
    assert not classify_spectrum([-1.0, 1j, -1j])
    assert classify_spectrum([-1.0, -1e-12 + 2j])
    assert classify_spectrum([])


def test_excluding_eigenvalues_is_reporting_only() -> None:
    report = analyze(solved_system(1.168922))
    indices = [i for i, ev in zip(report.spectrum.indices, report.eigenvalues) if ev.real >= 0]

    assert report.is_stable_excluding(indices)
    assert not report.stable
    rows = report.summary(ignore=indices)
    assert len(rows) == len(report.spectrum) - len(indices)
    assert all(row.index not in indices for row in rows)


def test_summary() -> None:
    report = analyze(solved_system(0.8))

    rows = report.summary()

    assert [row.index for row in rows] == [1, 2, 3, 4, 5]
    vr_mode = min(rows, key=lambda row: abs(complex(row.real, row.imag) + 0.1))
    assert vr_mode.participating_states[0] == (GEN, "Vr")
    assert vr_mode.frequency == 0.0
    assert vr_mode.damping == pytest.approx(1.0)
    exciter_mode = max(rows, key=lambda row: row.imag)
    assert exciter_mode.frequency == pytest.approx(3.5494 / (2 * np.pi), abs=1e-3)
    assert {s[1] for s in exciter_mode.participating_states[:2]} == {"eq_p", "Vf"}
    assert "stable" in report.format_summary()


def test_participation_factors() -> None:
    report = analyze(solved_system(0.8))

    pf = report.spectrum.participation_factors()

    assert pf.shape == (5, 5)
    np.testing.assert_allclose(pf.sum(axis=0), 1.0)


def test_spectrum_indices() -> None:
    spectrum = EigenSpectrum(np.array([-1.0, -2.0 + 1j, -2.0 - 1j]))

    assert spectrum[1] == -1.0
    assert spectrum[3] == -2.0 - 1j
    with pytest.raises(IndexError):
        spectrum[0]
    with pytest.raises(ValueError):
        spectrum.participation_factors()


def test_singular_algebraic_jacobian(monkeypatch) -> None:
    """A singular algebraic Jacobian is a build failure, never a classification"""
    model = DynamicModel(solved_system(0.8))
    monkeypatch.setattr(model, "g_y", lambda x, y: np.zeros((4, 4)))

    with pytest.raises(BuildFailure) as info:
        SmallSignalAnalyzer().analyze_model(model)

    assert info.value.reason == "singular_gy"


def test_non_finite_jacobian(monkeypatch) -> None:
    model = DynamicModel(solved_system(0.8))
    monkeypatch.setattr(model, "g_y", lambda x, y: np.full((4, 4), np.nan))

    with pytest.raises(BuildFailure) as info:
        SmallSignalAnalyzer().analyze_model(model)

    assert info.value.reason == "non_finite_jacobian"
