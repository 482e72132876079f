from .small_signal import EigenSpectrum, EigenvalueInfo, SmallSignalAnalyzer, StabilityReport, analyze

__all__ = ['EigenSpectrum', 'EigenvalueInfo', 'StabilityReport', 'SmallSignalAnalyzer', 'analyze']
