"""
The 'core' package contains the network data structures, the solvers and the power flow.
"""

from .errors import BuildFailure, IntegrationFailure, NonConvergence
from .network import Bus, BusState, BusType, Generator, Line, NetworkState, PowerLoad, PowerSystem
from .power_flow import PowerFlowResult, PowerFlowSolver, run_power_flow
from .solvers import EigenSolver, MyNewtonSolver, NewtonSolver

__all__ = [
    'NonConvergence', 'BuildFailure', 'IntegrationFailure',
    'Bus', 'BusType', 'BusState', 'Line', 'PowerLoad', 'Generator', 'NetworkState', 'PowerSystem',
    'PowerFlowSolver', 'PowerFlowResult', 'run_power_flow',
    'MyNewtonSolver', 'NewtonSolver', 'EigenSolver'
]
