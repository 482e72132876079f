#!/usr/bin/python3
"""
Continuation power flow of a single machine feeding a constant power load, with
small-signal stability along the PV curve and perturbed transient simulations at
the critical load to reveal the subcritical Hopf bifurcation.
"""
import os
import shutil

import matplotlib.pyplot as plt
import numpy as np

from cpflow import PerturbationSpec, analyze, classify, run_power_flow, run_sweep
from cpflow.dynamics import DynamicModel
from cpflow.systems import omib_constant_power_load
from cpflow.transient import TransientSimulation

# create output folder
shutil.rmtree("out", ignore_errors=True)
os.makedirs("out", exist_ok=True)

system = omib_constant_power_load()

# trace the PV curve until the power flow has no solution anymore
curve = run_sweep(system, "load1021", np.arange(0.0, 4.5, 0.01),
                  power_factor=1.0, monitored_bus="BUS 2", verbose=True)
print("Sweep stopped:", curve.stop_reason)
first_unstable = curve.first_unstable()
print("First unstable point:", first_unstable)
curve.save("out/pv_curve.npz")

fig, ax = plt.subplots(figsize=(8, 6))
ax.plot(*curve.data(only="stable"), color="tab:blue", label="stable")
ax.plot(*curve.data(only="unstable"), color="tab:red", label="unstable")
ax.plot(*curve.data(only="unknown"), color="gray", linestyle="--", label="unknown")
ax.set_xlabel("load active power (pu)")
ax.set_ylabel("voltage BUS 2 (pu)")
ax.legend()
fig.savefig("out/pv_curve.png")

# the operating point at the critical load
P_critical = 1.168922
system.set_active_power("load1021", P_critical)
run_power_flow(system)
report = analyze(system)
print(report.format_summary())

# perturb the transient EMF of the generator by different amounts
eq_p = ("generator-101-1", "eq_p")
vf = ("generator-101-1", "Vf")
runs = [(0.05, 10.0), (-0.01, 50.0), (-0.005, 100.0)]
fig, axes = plt.subplots(len(runs), 2, figsize=(14, 10))
for (offset, horizon), (ax_t, ax_phase) in zip(runs, axes):
    sim = TransientSimulation(DynamicModel(system), horizon, PerturbationSpec(1.0, eq_p, offset))
    sim.settings.rtol = 1e-9
    sim.settings.atol = 1e-9
    result = sim.execute()
    classification = classify(result[eq_p], report, result)
    print(f"offset {offset:+}: {result.status} at t = {result.end_time:.3f},",
          classification.behavior.value, "-", classification.reason)
    print("  eigenvalues suggest", classification.eigenvalue_behavior.value,
          "- agreement:", classification.agrees_with_eigenvalues)
    t, e = result.state_series(eq_p)
    _, f = result.state_series(vf)
    ax_t.plot(t, e)
    ax_t.set_xlabel("time (s)")
    ax_t.set_ylabel("eq_p (pu)")
    ax_t.set_title(f"perturbation {offset:+} pu: {classification.behavior.value}")
    ax_phase.plot(e, f)
    ax_phase.set_xlabel("eq_p (pu)")
    ax_phase.set_ylabel("Vf (pu)")
fig.tight_layout()
fig.savefig("out/transients.png")
