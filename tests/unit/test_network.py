"""Unit tests for the network data structures."""

import numpy as np
import pytest

from cpflow.core.network import Bus, BusType, Generator, Line, NetworkState, PowerLoad, PowerSystem
from cpflow.systems import omib_constant_power_load


def test_component_lookup() -> None:
    system = omib_constant_power_load()

    load = system.get_component(PowerLoad, "load1021")
    assert load.bus == "BUS 2"
    assert system.get_component(Bus, "BUS 1").bustype == BusType.SLACK
    assert system.bus_index("BUS 2") == 1
    with pytest.raises(KeyError):
        system.get_component(PowerLoad, "load9999")


def test_setters() -> None:
    system = omib_constant_power_load()

    system.set_active_power("load1021", 0.7)
    system.set_reactive_power("load1021", 0.2)
    system.set_voltage("BUS 2", 0.95, -0.1)

    load = system.get_component(PowerLoad, "load1021")
    assert (load.active_power, load.reactive_power) == (0.7, 0.2)
    bus = system.get_component(Bus, "BUS 2")
    assert bus.voltage == pytest.approx(0.95 * np.exp(-0.1j))


def test_components_need_existing_buses() -> None:
    system = PowerSystem()
    system.add_component(Bus("A", 1, BusType.SLACK))

    with pytest.raises(KeyError):
        system.add_component(PowerLoad("L", "B"))
    with pytest.raises(ValueError):
        system.add_component(Bus("A", 2))


def test_admittance_matrix() -> None:
    system = omib_constant_power_load()

    Y = system.admittance_matrix()

    y = 1 / 0.241j
    np.testing.assert_allclose(Y, [[y, -y], [-y, y]])


def test_network_state_snapshot() -> None:
    """The state has one entry per bus and holds the net injections"""
    system = omib_constant_power_load(load=0.5, power_factor=0.8)

    state = system.state

    assert isinstance(state, NetworkState)
    assert list(state) == ["BUS 1", "BUS 2"]
    assert state["BUS 2"].active_power == pytest.approx(-0.5)
    assert state["BUS 2"].reactive_power == pytest.approx(-0.375)
    # the snapshot does not follow later changes
    system.set_active_power("load1021", 1.0)
    assert state["BUS 2"].active_power == pytest.approx(-0.5)
    assert state.is_finite()


def test_copy_is_independent() -> None:
    system = omib_constant_power_load()

    other = system.copy()
    other.set_active_power("load1021", 1.0)
    other.dynamic_generators["generator-101-1"].avr.Emax = 1.0

    assert system.get_component(PowerLoad, "load1021").active_power == 0.0
    assert system.dynamic_generators["generator-101-1"].avr.Emax == 5.0


def test_save_and_load(tmp_path) -> None:
    system = PowerSystem("two bus")
    system.add_component(Bus("A", 1, BusType.SLACK, magnitude=1.02))
    system.add_component(Bus("B", 2))
    system.add_component(Line("A-B", "A", "B", r=0.01, x=0.1, b=0.02))
    system.add_component(PowerLoad("L", "B", 0.3, 0.1))
    system.add_component(Generator("G", "A"))
    filename = tmp_path / "system.json"

    system.save(filename)
    restored = PowerSystem.load(filename)

    assert restored.to_dict() == system.to_dict()
    assert restored.get_component(Bus, "A").bustype == BusType.SLACK
    np.testing.assert_allclose(restored.admittance_matrix(), system.admittance_matrix())
