"""Unit tests for the solver classes."""

import numpy as np
import pytest

from cpflow.core.errors import NonConvergence
from cpflow.core.solvers import EigenSolver, MyNewtonSolver, NewtonSolver
from cpflow.core.types import Array, Matrix


def simple_quadratic(u: Array) -> Array:
    """f(u) = u^2 - 4. Root at u=2 and u=-2."""
    return u**2 - 4.0


def simple_quadratic_jacobian(u: Array) -> Matrix:
    """J(u) = 2u."""
    return np.diag(2 * u)


def system_2d(u: Array) -> Array:
    """
    Solve a 2D system of equations.

    f1 = x^2 + y^2 - 1 (circle radius 1)
    f2 = x - y (line x=y)
    Solutions: x=y=1/sqrt(2) approx 0.707.
    """
    x, y = u
    return np.array([x**2 + y**2 - 1, x - y])


def system_2d_jacobian(u: Array) -> Matrix:
    """Calculate the Jacobian of the 2D system."""
    x, y = u
    return np.array([[2 * x, 2 * y], [1, -1]])


def test_mynewtonsolver_scalar() -> None:
    """Test MyNewtonSolver with a scalar equation."""
    solver = MyNewtonSolver()
    u0 = np.array([1.0])

    sol = solver.solve(simple_quadratic, u0, simple_quadratic_jacobian)

    np.testing.assert_allclose(sol, [2.0], atol=1e-8)
    assert solver.niterations is not None and solver.niterations > 0
    assert solver.residual is not None and solver.residual < solver.convergence_tolerance


def test_mynewtonsolver_keeps_initial_guess() -> None:
    """The initial guess must not be modified by the solver."""
    solver = MyNewtonSolver()
    u0 = np.array([0.5, 0.5])

    solver.solve(system_2d, u0, system_2d_jacobian)

    np.testing.assert_array_equal(u0, [0.5, 0.5])


def test_mynewtonsolver_converged_guess() -> None:
    """A guess that already solves the system takes no iterations."""
    solver = MyNewtonSolver()
    u0 = np.array([2.0])

    sol = solver.solve(simple_quadratic, u0, simple_quadratic_jacobian)

    np.testing.assert_array_equal(sol, [2.0])
    assert solver.niterations == 0


def test_mynewtonsolver_system() -> None:
    """Test MyNewtonSolver with a 2D system."""
    solver = MyNewtonSolver()
    u0 = np.array([0.5, 0.5])

    sol = solver.solve(system_2d, u0, system_2d_jacobian)

    expected = np.array([1.0 / np.sqrt(2), 1.0 / np.sqrt(2)])
    np.testing.assert_allclose(sol, expected, atol=1e-8)


def test_newtonsolver_scipy_wrapper() -> None:
    """Test the wrapper around scipy.optimize.root."""
    solver = NewtonSolver()
    solver.method = "hybr"

    u0 = np.array([0.5, 0.5])

    sol = solver.solve(system_2d, u0, system_2d_jacobian)

    expected = np.array([1.0 / np.sqrt(2), 1.0 / np.sqrt(2)])
    np.testing.assert_allclose(sol, expected, atol=1e-8)
    assert solver.niterations is not None and solver.niterations > 0


def test_mynewtonsolver_no_convergence() -> None:
    """Test that it raises error if max iterations reached."""
    solver = MyNewtonSolver()
    solver.max_iterations = 2
    u0 = np.array([1000.0])

    with pytest.raises(np.linalg.LinAlgError) as info:
        solver.solve(simple_quadratic, u0, simple_quadratic_jacobian)

    assert isinstance(info.value, NonConvergence)
    assert info.value.iterations == 2
    assert info.value.residual > 1.0


def test_mynewtonsolver_no_real_root() -> None:
    """x^2 + 1 = 0 has no real root, the solver must report non-convergence."""
    solver = MyNewtonSolver()

    def f(u: Array) -> Array:
        return u**2 + 1.0

    with pytest.raises(NonConvergence):
        solver.solve(f, np.array([0.5]), simple_quadratic_jacobian)


def test_mynewtonsolver_singular_jacobian() -> None:
    """A singular Jacobian is reported as non-convergence."""
    solver = MyNewtonSolver()

    with pytest.raises(NonConvergence, match="singular"):
        solver.solve(simple_quadratic, np.array([0.0]), simple_quadratic_jacobian)


def test_eigensolver_left_and_right_vectors() -> None:
    """The eigensolver returns the eigenvalues with right and left eigenvectors."""
    A = np.array([[-1.0, 2.0], [0.0, -3.0]])
    solver = EigenSolver()

    ev, right, left = solver.solve(A)

    np.testing.assert_allclose(sorted(ev.real), [-3.0, -1.0])
    for i in range(2):
        np.testing.assert_allclose(A @ right[:, i], ev[i] * right[:, i], atol=1e-12)
        np.testing.assert_allclose(left[:, i].conj() @ A, ev[i] * left[:, i].conj(), atol=1e-12)


def test_eigensolver_sorting() -> None:
    """With sorting enabled, the eigenvalues come with descending real part."""
    A = np.diag([-5.0, 1.0, -2.0])
    solver = EigenSolver()
    solver.sort = True

    ev, _, _ = solver.solve(A)

    np.testing.assert_allclose(ev.real, [1.0, -2.0, -5.0])
