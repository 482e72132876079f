from .analysis import SmallSignalAnalyzer, StabilityReport, analyze
from .continuation import ContinuationPowerFlow, PVCurve, PVSample, run_sweep
from .core import (BuildFailure, IntegrationFailure, NonConvergence, PowerFlowSolver, PowerSystem,
                   run_power_flow)
from .dynamics import DynamicModel
from .transient import PerturbationSpec, TrajectoryBehavior, TransientSimulation, classify, simulate

__all__ = [
    'PowerSystem', 'PowerFlowSolver', 'run_power_flow',
    'NonConvergence', 'BuildFailure', 'IntegrationFailure',
    'DynamicModel', 'SmallSignalAnalyzer', 'StabilityReport', 'analyze',
    'ContinuationPowerFlow', 'PVCurve', 'PVSample', 'run_sweep',
    'PerturbationSpec', 'TransientSimulation', 'simulate', 'TrajectoryBehavior', 'classify'
]
