from .pv_curve import PVCurve, PVSample
from .sweep import ContinuationPowerFlow, SweepSettings, run_sweep

__all__ = ['PVSample', 'PVCurve', 'ContinuationPowerFlow', 'SweepSettings', 'run_sweep']
