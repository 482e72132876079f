#!/usr/bin/python3
"""Integration test of the continuation, stability and perturbation workflow on the reference system."""

import unittest

import numpy as np

from cpflow import (PerturbationSpec, SmallSignalAnalyzer, TrajectoryBehavior, analyze, classify,
                    run_power_flow, run_sweep)
from cpflow.core.network import PowerLoad
from cpflow.dynamics import DynamicModel
from cpflow.systems import omib_constant_power_load
from cpflow.transient import TransientSimulation

#: the load at which the operating point has just lost its stability
P_CRITICAL = 1.168922
EQ_P = ("generator-101-1", "eq_p")


class TestOMIBHopf(unittest.TestCase):
    """
    One machine with an exciter feeding a constant power load.
    Tests if it is possible to:
    - trace the PV curve up to the fold point
    - detect the loss of small-signal stability along the curve
    - confirm the subcritical Hopf bifurcation with perturbed transient simulations
    """

    def critical_model(self) -> DynamicModel:
        system = omib_constant_power_load()
        system.set_active_power("load1021", P_CRITICAL)
        self.assertTrue(run_power_flow(system).converged)
        return DynamicModel(system)

    def simulate(self, offset: float, horizon: float):
        sim = TransientSimulation(self.critical_model(), horizon,
                                  PerturbationSpec(1.0, EQ_P, offset))
        sim.settings.rtol = 1e-8
        sim.settings.atol = 1e-8
        return sim.execute()

    def test_pv_curve_to_fold(self) -> None:
        """The sweep stops at the fold point without any error"""
        values = np.arange(0.0, 4.5, 0.01)
        curve = run_sweep(omib_constant_power_load(), "load1021", values,
                          monitored_bus="BUS 2", analyze_stability=False)
        fold = 1 / (2 * 0.241)
        self.assertLess(curve[-1].power, fold)
        self.assertGreater(curve[-1].power, fold - 0.03)
        self.assertEqual(curve.stop_reason.last_feasible_parameter, curve[-1].power)

    def test_sweep_to_critical_point(self) -> None:
        """Every point up to the critical load converges and the last one is unstable"""
        values = np.linspace(0.0, P_CRITICAL, 25)
        curve = run_sweep(omib_constant_power_load(), "load1021", values)
        self.assertEqual(len(curve), len(values))
        self.assertTrue(all(s.stable for s in curve[:-1]))
        self.assertFalse(curve[-1].stable)
        # analyzing the final operating point again gives the same verdict
        report = analyze(curve.system)
        self.assertFalse(report.stable)
        self.assertGreaterEqual(report.spectrum.max_real_part(), 0.0)
        load = curve.system.get_component(PowerLoad, "load1021")
        self.assertAlmostEqual(load.active_power, P_CRITICAL)

    def test_large_perturbation_diverges(self) -> None:
        """A positive perturbation of the transient EMF leads to a voltage collapse"""
        result = self.simulate(0.05, 10.0)
        self.assertEqual(result.status, "collapsed")
        self.assertLess(result.end_time, 10.0)
        classification = classify(result[EQ_P], result=result)
        self.assertEqual(classification.behavior, TrajectoryBehavior.DIVERGENT)

    def test_small_perturbation_is_bounded(self) -> None:
        """A small negative perturbation oscillates without growing or decaying noticeably"""
        result = self.simulate(-0.005, 100.0)
        self.assertEqual(result.status, "completed")
        classification = classify(result[EQ_P], result=result)
        self.assertEqual(classification.behavior, TrajectoryBehavior.BOUNDED_OSCILLATORY)
        # the oscillation has the frequency of the critical eigenvalues
        self.assertAlmostEqual(classification.period, 2 * np.pi / 4.383, delta=0.05)
        # the equilibrium is linearly unstable, the bounded response is nonlinear evidence
        report = SmallSignalAnalyzer().analyze_model(self.critical_model())
        classification = classify(result[EQ_P], report, result)
        self.assertEqual(classification.eigenvalue_behavior, TrajectoryBehavior.DIVERGENT)
        self.assertFalse(classification.agrees_with_eigenvalues)


# run the test if called directly
if __name__ == "__main__":
    unittest.main()
