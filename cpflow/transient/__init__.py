from .classifier import TrajectoryBehavior, TrajectoryClassification, TrajectoryClassifier, classify
from .simulation import (PerturbationSpec, SimulationSettings, Trajectory, TransientResult,
                         TransientSimulation, simulate)

__all__ = [
    'PerturbationSpec', 'SimulationSettings', 'Trajectory', 'TransientResult',
    'TransientSimulation', 'simulate',
    'TrajectoryBehavior', 'TrajectoryClassification', 'TrajectoryClassifier', 'classify'
]
