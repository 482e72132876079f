from typing import Optional

import numpy as np
import scipy.linalg
import scipy.optimize
import scipy.sparse as sp
import scipy.sparse.linalg

from .errors import NonConvergence
from .types import Array, Matrix


class AbstractNewtonSolver:
    """
    Abstract base class for all Newton solvers.
    Newton solvers find the root of a (possibly high-dimensional, nonlinear) function f(u) = 0
    using a stepping procedure. An initial guess u0 for the solution needs to be supplied.
    Giving the Jacobian J = df/du is required for the text book solver.
    """

    def __init__(self) -> None:
        #: maximum number of steps during solve
        self.max_iterations = 30
        #: absolute convergence tolerance for the max. norm of the residuals
        self.convergence_tolerance = 1e-9
        #: how verbose should the solving be? 0 = quiet, larger numbers = print more details
        self.verbosity = 0
        # internal storage for the number of iterations taken during last solve
        self._iteration_count: Optional[int] = None
        # internal storage for the residual norm after the last solve
        self._residual: Optional[float] = None

    def solve(self, f, u0: Array, jac) -> Array:
        """solve the system f(u) = 0 with the initial guess u0 and the Jacobian jac(u)"""
        raise NotImplementedError(
            "'AbstractNewtonSolver' is an abstract base class - do not use for actual solving!")

    @property
    def niterations(self) -> Optional[int]:
        """access to the number of iterations taken in the last Newton solve"""
        return self._iteration_count

    @property
    def residual(self) -> Optional[float]:
        """max. absolute residual after the last Newton solve"""
        return self._residual

    def norm(self, residuals: Array) -> float:
        """the norm used for checking the residuals for convergence"""
        return float(np.max(np.abs(residuals))) if np.size(residuals) > 0 else 0.0

    def throw_no_convergence_error(self, res: Optional[float] = None, reason: str = "") -> None:
        """throw an error when the solver failed to converge"""
        self._residual = res
        msg = type(self).__name__ + " did not converge"
        if self.niterations is not None:
            msg += f" after {self.niterations} iterations"
        msg += "!"
        if res is not None:
            msg += f" Max. residuals: {res:.2e}"
        if reason:
            msg += f" ({reason})"
        raise NonConvergence(msg, iterations=self.niterations, residual=res)


class MyNewtonSolver(AbstractNewtonSolver):
    """Reference implementation of a simple 'text book' Newton solver"""

    def solve(self, f, u0: Array, jac) -> Array:
        self._iteration_count = 0
        # work on a copy, the initial guess stays untouched
        u = np.array(u0, dtype=float, copy=True)
        res = f(u)
        err = self.norm(res)
        while not err < self.convergence_tolerance:
            if not np.isfinite(err):
                self.throw_no_convergence_error(err, "non-finite residuals")
            if self._iteration_count >= self.max_iterations:
                self.throw_no_convergence_error(err, "iteration limit exceeded")
            # do a classical Newton step
            J = jac(u)
            try:
                if sp.issparse(J):
                    du = scipy.sparse.linalg.spsolve(J.tocsc(), res)
                else:
                    du = np.linalg.solve(J, res)
            except np.linalg.LinAlgError:
                self.throw_no_convergence_error(err, "singular Jacobian")
            u -= du
            self._iteration_count += 1
            # calculate the norm of the residuals
            res = f(u)
            err = self.norm(res)
            # print some info on the step, if desired
            if self.verbosity > 1:
                print(
                    f"Newton step #{self._iteration_count}, max. residuals: {err:.2e}")
        self._residual = err
        if self.verbosity > 0:
            print("MyNewtonSolver converged after",
                  self._iteration_count, "iterations, error:", err)
        return u


class NewtonSolver(AbstractNewtonSolver):
    """
    A Newton solver that uses scipy.optimize.root for solving.
    The method (algorithm) to be used can be adjusted with the attribute 'method'.
    NOTE: does not work with sparse Jacobians, but converts it to a dense matrix instead!
    """

    def __init__(self) -> None:
        super().__init__()
        #: choose from the different methods of scipy.optimize.root
        self.method = "hybr"

    def solve(self, f, u0: Array, jac=None) -> Array:
        # methods that do not use the Jacobian, but use an approximation
        inexact_methods = ["krylov", "broyden1", "broyden2",
                           "diagbroyden", "anderson", "linearmixing", "excitingmixing"]

        def jac_wrapper(u):
            # sparse matrices are not supported by scipy's root method, convert to dense
            j = jac(u)
            if sp.issparse(j):
                return j.toarray()
            return j
        # check if Jacobian is required by the method
        if jac is None or self.method in inexact_methods:
            jac_wrapper = None
        opt_result = scipy.optimize.root(
            f, np.array(u0, dtype=float), jac=jac_wrapper, method=self.method, tol=self.convergence_tolerance)
        # fetch number of iterations, residuals and status
        err = self.norm(opt_result.fun)
        self._iteration_count = opt_result.nit if 'nit' in opt_result.keys() else opt_result.nfev
        if not opt_result.success or not err < self.convergence_tolerance:
            self.throw_no_convergence_error(err, str(opt_result.message))
        self._residual = err
        if self.verbosity > 0:
            print("NewtonSolver converged after",
                  self._iteration_count, "iterations, error:", err)
        return opt_result.x


class EigenSolver:
    """
    A wrapper to scipy's direct eigensolver, that finds all eigenvalues together with
    the right and left eigenvectors of a dense eigenproblem.
    """

    def __init__(self) -> None:
        #: sort the eigenvalues by their real part (largest first)? If False, the order
        #: produced by the decomposition is kept
        self.sort = False
        #: results of the latest eigenvalue computation
        self.latest_eigenvalues: Optional[np.ndarray] = None
        #: right eigenvectors of the latest computation (as columns)
        self.latest_eigenvectors: Optional[np.ndarray] = None
        #: left eigenvectors of the latest computation (as columns)
        self.latest_left_eigenvectors: Optional[np.ndarray] = None

    def solve(self, A: Matrix) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Solve the eigenproblem A*x = v*x for the eigenvalues v, the right eigenvectors x
        and the left eigenvectors w (w^H A = v w^H). Eigenvectors are returned as columns.
        """
        A = A.toarray() if sp.issparse(A) else np.asarray(A, dtype=float)
        if A.shape[0] == 0:
            empty = np.zeros((0, 0), dtype=complex)
            return (np.zeros(0, dtype=complex), empty, empty)
        eigenvalues, left, right = scipy.linalg.eig(A, left=True, right=True)
        if self.sort:
            idx = np.argsort(-eigenvalues.real, kind="stable")
            eigenvalues, left, right = eigenvalues[idx], left[:, idx], right[:, idx]
        # store and return
        self.latest_eigenvalues = eigenvalues
        self.latest_eigenvectors = right
        self.latest_left_eigenvectors = left
        return (eigenvalues, right, left)
