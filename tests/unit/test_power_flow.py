"""Unit tests for the Newton-Raphson power flow."""

import numpy as np
import pytest

from cpflow.core.errors import NonConvergence
from cpflow.core.network import Bus, BusType, Generator, Line, PowerLoad, PowerSystem
from cpflow.core.power_flow import PowerFlowSolver, run_power_flow
from cpflow.systems import omib_constant_power_load


def load_voltage(P: float, X: float = 0.241) -> float:
    """high voltage solution of a unity power factor load behind a reactance, fed from 1.0 pu"""
    return np.sqrt((1 + np.sqrt(1 - 4 * X**2 * P**2)) / 2)


def test_two_bus_solution() -> None:
    system = omib_constant_power_load(load=1.0)

    result = run_power_flow(system)

    assert result.converged
    assert result.failure is None
    assert result.state["BUS 2"].magnitude == pytest.approx(load_voltage(1.0), abs=1e-8)
    # the slack generator supplies the load and the reactive line losses
    gen = system.get_component(Generator, "generator-101-1")
    assert gen.active_power == pytest.approx(1.0, abs=1e-8)
    V2 = load_voltage(1.0)
    assert gen.reactive_power == pytest.approx(0.241 * (1.0 / V2)**2, abs=1e-7)


def test_solution_is_written_back() -> None:
    system = omib_constant_power_load(load=0.5)

    result = run_power_flow(system)

    bus = system.get_component(Bus, "BUS 2")
    assert bus.magnitude == result.state["BUS 2"].magnitude
    assert bus.angle == result.state["BUS 2"].angle
    assert bus.angle < 0


def test_idempotent() -> None:
    """Solving a converged system again gives the same state without iterations"""
    system = omib_constant_power_load(load=0.8)
    first = run_power_flow(system)

    second = run_power_flow(system)

    assert second.converged
    assert second.iterations == 0
    for bus in first.state:
        np.testing.assert_allclose(second.state[bus], first.state[bus], rtol=1e-12, atol=1e-12)


def test_no_solution_is_reported() -> None:
    """Beyond the fold, the solver reports non-convergence and leaves the system untouched"""
    system = omib_constant_power_load(load=1.0)
    run_power_flow(system)
    before = dict(system.state)
    system.set_active_power("load1021", 2.5)

    result = PowerFlowSolver().solve(system)

    assert not result.converged
    assert isinstance(result.failure, NonConvergence)
    assert system.get_component(Bus, "BUS 2").magnitude == before["BUS 2"].magnitude


def test_flat_start() -> None:
    system = omib_constant_power_load(load=1.0)
    system.set_voltage("BUS 2", 0.5, 0.7)

    result = run_power_flow(system, flat_start=True)

    assert result.converged
    assert result.state["BUS 2"].magnitude == pytest.approx(load_voltage(1.0), abs=1e-8)


def test_pv_bus() -> None:
    """A PV bus keeps its voltage magnitude, its generator gets the reactive power"""
    system = PowerSystem()
    system.add_component(Bus("A", 1, BusType.SLACK))
    system.add_component(Bus("B", 2, BusType.PV, magnitude=1.02))
    system.add_component(Bus("C", 3))
    system.add_component(Line("A-B", "A", "B", r=0.01, x=0.1))
    system.add_component(Line("B-C", "B", "C", r=0.01, x=0.1))
    system.add_component(Line("A-C", "A", "C", r=0.01, x=0.1))
    system.add_component(Generator("GA", "A"))
    system.add_component(Generator("GB", "B", active_power=0.5))
    system.add_component(PowerLoad("LC", "C", 1.0, 0.3))

    result = run_power_flow(system)

    assert result.converged
    assert result.state["B"].magnitude == pytest.approx(1.02)
    gb = system.get_component(Generator, "GB")
    assert gb.active_power == 0.5
    assert gb.reactive_power != 0.0
    # the power balance covers the losses
    ga = system.get_component(Generator, "GA")
    assert ga.active_power + gb.active_power > 1.0


def test_requires_single_slack() -> None:
    system = PowerSystem()
    system.add_component(Bus("A", 1))

    with pytest.raises(ValueError):
        run_power_flow(system)


def test_unknown_option() -> None:
    with pytest.raises(TypeError):
        run_power_flow(omib_constant_power_load(), tolerance=1.0)
