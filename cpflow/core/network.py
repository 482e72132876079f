"""
This file describes the static network data structures: buses, lines, loads and
generators, the PowerSystem that aggregates them and the NetworkState snapshot
that the power flow produces.
"""
from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from enum import Enum
from typing import Any, Iterator, NamedTuple, Optional

import numpy as np

from .types import ComplexArray


class BusType(Enum):
    """The role of a bus in the power flow"""
    #: reference bus with fixed voltage magnitude and angle
    SLACK = "REF"
    #: bus with fixed active power injection and voltage magnitude
    PV = "PV"
    #: bus with fixed active and reactive power injection
    PQ = "PQ"


class Bus:
    """A node of the network"""

    def __init__(self, name: str, number: int, bustype: BusType = BusType.PQ,
                 magnitude: float = 1.0, angle: float = 0.0, base_voltage: float = 230.0) -> None:
        #: identifier of the bus, e.g. "BUS 1"
        self.name = name
        #: bus number
        self.number = number
        #: the type of the bus (slack, PV or PQ)
        self.bustype = bustype
        #: voltage magnitude (pu)
        self.magnitude = magnitude
        #: voltage angle (rad)
        self.angle = angle
        #: nominal voltage (kV), informational only
        self.base_voltage = base_voltage

    @property
    def voltage(self) -> complex:
        """the complex voltage phasor"""
        return self.magnitude * np.exp(1j * self.angle)


class Line:
    """A pi-model transmission line between two buses"""

    def __init__(self, name: str, from_bus: str, to_bus: str,
                 r: float = 0.0, x: float = 0.1, b: float = 0.0) -> None:
        self.name = name
        self.from_bus = from_bus
        self.to_bus = to_bus
        #: series resistance (pu)
        self.r = r
        #: series reactance (pu)
        self.x = x
        #: total shunt susceptance (pu)
        self.b = b

    @property
    def admittance(self) -> complex:
        """series admittance of the line"""
        return 1 / complex(self.r, self.x)


class PowerLoad:
    """A constant power load"""

    def __init__(self, name: str, bus: str, active_power: float = 0.0, reactive_power: float = 0.0,
                 available: bool = True) -> None:
        self.name = name
        self.bus = bus
        #: active power consumption (pu)
        self.active_power = active_power
        #: reactive power consumption (pu)
        self.reactive_power = reactive_power
        #: is the load connected?
        self.available = available


class Generator:
    """
    The static (power flow) view of a generator. At the slack bus the power
    injections are a result of the power flow, at PV buses the active power is a setpoint.
    """

    def __init__(self, name: str, bus: str, active_power: float = 0.0, reactive_power: float = 0.0,
                 available: bool = True) -> None:
        self.name = name
        self.bus = bus
        #: active power injection (pu)
        self.active_power = active_power
        #: reactive power injection (pu)
        self.reactive_power = reactive_power
        #: is the generator connected?
        self.available = available


class BusState(NamedTuple):
    """voltage and net power injection of a single bus"""
    magnitude: float
    angle: float
    active_power: float
    reactive_power: float

    @property
    def voltage(self) -> complex:
        return self.magnitude * np.exp(1j * self.angle)


class NetworkState(Mapping):
    """
    An immutable snapshot of the network's algebraic state, mapping every bus
    name to its BusState (voltage magnitude, angle, net active and reactive injection).
    """

    def __init__(self, buses: dict[str, BusState]) -> None:
        self._buses = dict(buses)

    @classmethod
    def from_system(cls, system: PowerSystem) -> NetworkState:
        """read the current bus voltages and net injections of a system"""
        S = system.injections()
        return cls({bus.name: BusState(bus.magnitude, bus.angle, S[i].real, S[i].imag)
                    for i, bus in enumerate(system.buses)})

    def __getitem__(self, name: str) -> BusState:
        return self._buses[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._buses)

    def __len__(self) -> int:
        return len(self._buses)

    def __repr__(self) -> str:
        return f"NetworkState({self._buses!r})"

    def voltages(self) -> ComplexArray:
        """the complex voltage phasors in bus order"""
        return np.array([b.voltage for b in self._buses.values()], dtype=complex)

    def is_finite(self) -> bool:
        """are all entries finite numbers?"""
        return bool(np.all(np.isfinite(np.array(list(self._buses.values()), dtype=float))))


class PowerSystem:
    """
    The network description: an aggregate of buses, lines, loads and generators,
    optionally with dynamic generator models attached. Components are looked up
    by their identifier. The PowerSystem is mutated in place by the setters and
    by the power flow.
    """

    def __init__(self, name: str = "", base_power: float = 100.0) -> None:
        self.name = name
        #: system base power (MVA), informational only
        self.base_power = base_power
        #: the buses in their fixed order
        self.buses: list[Bus] = []
        self.lines: list[Line] = []
        self.loads: list[PowerLoad] = []
        self.generators: list[Generator] = []
        #: dynamic models of the generators, by generator name
        self.dynamic_generators: dict[str, Any] = {}

    # Component management

    def add_component(self, component) -> None:
        """add a bus, line, load or generator to the system"""
        if isinstance(component, Bus):
            if any(b.name == component.name for b in self.buses):
                raise ValueError(f"A bus named '{component.name}' already exists")
            self.buses.append(component)
            return
        # all other components are connected to existing buses
        buses = [component.from_bus, component.to_bus] if isinstance(
            component, Line) else [component.bus]
        for bus in buses:
            self.bus_index(bus)
        if isinstance(component, Line):
            self.lines.append(component)
        elif isinstance(component, PowerLoad):
            self.loads.append(component)
        elif isinstance(component, Generator):
            self.generators.append(component)
        else:
            raise TypeError(f"Unknown component type: {type(component).__name__}")

    def add_dynamic_generator(self, device) -> None:
        """attach a dynamic model to the static generator of the same name"""
        self.get_component(Generator, device.name)
        self.dynamic_generators[device.name] = device

    def _components(self, kind) -> list:
        if kind is Bus:
            return self.buses
        if kind is Line:
            return self.lines
        if kind is PowerLoad:
            return self.loads
        if kind is Generator:
            return self.generators
        raise TypeError(f"Unknown component type: {kind}")

    def get_components(self, kind) -> list:
        """list all components of the given type"""
        return list(self._components(kind))

    def get_component(self, kind, name: str):
        """get the component of the given type by its identifier"""
        for c in self._components(kind):
            if c.name == name:
                return c
        raise KeyError(f"No {kind.__name__} named '{name}' in system '{self.name}'")

    def bus_index(self, name: str) -> int:
        """index of a bus in the bus order"""
        for i, bus in enumerate(self.buses):
            if bus.name == name:
                return i
        raise KeyError(f"No bus named '{name}' in system '{self.name}'")

    # Setters

    def set_active_power(self, load_name: str, value: float) -> None:
        self.get_component(PowerLoad, load_name).active_power = float(value)

    def set_reactive_power(self, load_name: str, value: float) -> None:
        self.get_component(PowerLoad, load_name).reactive_power = float(value)

    def set_voltage(self, bus_name: str, magnitude: float, angle: Optional[float] = None) -> None:
        bus = self.get_component(Bus, bus_name)
        bus.magnitude = float(magnitude)
        if angle is not None:
            bus.angle = float(angle)

    # Network equations

    @property
    def nbuses(self) -> int:
        return len(self.buses)

    def admittance_matrix(self) -> np.ndarray:
        """the (dense, complex) bus admittance matrix"""
        Y = np.zeros((self.nbuses, self.nbuses), dtype=complex)
        for line in self.lines:
            i = self.bus_index(line.from_bus)
            j = self.bus_index(line.to_bus)
            y = line.admittance
            Y[i, i] += y + 0.5j * line.b
            Y[j, j] += y + 0.5j * line.b
            Y[i, j] -= y
            Y[j, i] -= y
        return Y

    def voltages(self) -> ComplexArray:
        """the complex bus voltages in bus order"""
        return np.array([bus.voltage for bus in self.buses], dtype=complex)

    def injections(self) -> ComplexArray:
        """the specified net complex power injection at every bus (generation minus load)"""
        S = np.zeros(self.nbuses, dtype=complex)
        for gen in self.generators:
            if gen.available:
                S[self.bus_index(gen.bus)] += complex(gen.active_power, gen.reactive_power)
        for load in self.loads:
            if load.available:
                S[self.bus_index(load.bus)] -= complex(load.active_power, load.reactive_power)
        return S

    @property
    def state(self) -> NetworkState:
        """snapshot of the current network state"""
        return NetworkState.from_system(self)

    def copy(self) -> PowerSystem:
        """an independent deep copy of the system"""
        return copy.deepcopy(self)

    # Serialization

    def to_dict(self) -> dict:
        """export the static network data as a dictionary"""
        return {
            "name": self.name,
            "base_power": self.base_power,
            "buses": [{"name": b.name, "number": b.number, "bustype": b.bustype.value,
                       "magnitude": b.magnitude, "angle": b.angle, "base_voltage": b.base_voltage}
                      for b in self.buses],
            "lines": [{"name": ln.name, "from_bus": ln.from_bus, "to_bus": ln.to_bus,
                       "r": ln.r, "x": ln.x, "b": ln.b} for ln in self.lines],
            "loads": [{"name": ld.name, "bus": ld.bus, "active_power": ld.active_power,
                       "reactive_power": ld.reactive_power, "available": ld.available}
                      for ld in self.loads],
            "generators": [{"name": g.name, "bus": g.bus, "active_power": g.active_power,
                            "reactive_power": g.reactive_power, "available": g.available}
                           for g in self.generators],
        }

    @classmethod
    def from_dict(cls, data: dict) -> PowerSystem:
        """build a system from a dictionary as produced by to_dict()"""
        system = cls(name=data.get("name", ""), base_power=data.get("base_power", 100.0))
        for b in data.get("buses", []):
            b = dict(b)
            b["bustype"] = BusType(b.get("bustype", "PQ"))
            system.add_component(Bus(**b))
        for ln in data.get("lines", []):
            system.add_component(Line(**ln))
        for ld in data.get("loads", []):
            system.add_component(PowerLoad(**ld))
        for g in data.get("generators", []):
            system.add_component(Generator(**g))
        return system

    def save(self, filename: str) -> None:
        """store the static network data as JSON"""
        with open(filename, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filename: str) -> PowerSystem:
        """load the static network data from a JSON file"""
        with open(filename) as f:
            return cls.from_dict(json.load(f))
