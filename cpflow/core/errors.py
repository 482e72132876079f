"""
Exceptions raised by the solvers, the stability analysis and the transient engine.
The power flow and linearization failures derive from numpy's LinAlgError, which
is what the Newton solvers raise when they fail.
"""
from typing import Any, Optional

import numpy as np


class NonConvergence(np.linalg.LinAlgError):
    """
    The power flow could not be solved at the given parameter value.
    Carries the context needed to resume a sweep from the last feasible point.
    """

    def __init__(self, message: str, parameter: Optional[float] = None,
                 last_feasible_parameter: Optional[float] = None,
                 state: Any = None, component: Optional[str] = None,
                 iterations: Optional[int] = None, residual: Optional[float] = None) -> None:
        super().__init__(message)
        #: parameter value at which the solver failed
        self.parameter = parameter
        #: the last parameter value with a converged solution
        self.last_feasible_parameter = last_feasible_parameter
        #: the last converged operating point (a NetworkState)
        self.state = state
        #: the component that was varied when the failure happened
        self.component = component
        #: number of Newton iterations taken before giving up
        self.iterations = iterations
        #: max. residual at the time of failure
        self.residual = residual


class BuildFailure(np.linalg.LinAlgError):
    """A dynamic model or its linearization could not be constructed"""

    def __init__(self, message: str, component: Optional[str] = None, reason: Optional[str] = None) -> None:
        super().__init__(message)
        #: name of the failing component, if known
        self.component = component
        #: short machine-readable reason, e.g. "singular_gy"
        self.reason = reason


class IntegrationFailure(RuntimeError):
    """
    A transient simulation could not be completed.
    The partial result up to the failure time is attached.
    """

    def __init__(self, message: str, time: Optional[float] = None, state: Any = None,
                 partial_result: Any = None, solver_message: Optional[str] = None) -> None:
        super().__init__(message)
        #: simulation time at which the integrator gave up
        self.time = time
        #: state vector at the time of failure
        self.state = state
        #: the TransientResult collected until the failure
        self.partial_result = partial_result
        #: the message reported by the integrator
        self.solver_message = solver_message
