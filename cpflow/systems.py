"""
Reference systems for examples and tests.
"""
from cpflow.core.network import Bus, BusType, Generator, Line, PowerLoad, PowerSystem
from cpflow.dynamics.devices import SEXS, DroopGovernor, DynamicGenerator, OneAxisMachine


def omib_constant_power_load(load: float = 0.0, power_factor: float = 1.0,
                             Emax: float = 5.0) -> PowerSystem:
    """
    One machine feeding a constant power load over a lossless line.
    "BUS 1" is the slack bus with the generator "generator-101-1" (one-axis machine,
    SEXS exciter, droop governor), "BUS 2" holds the load "load1021".
    With the default parameters, the operating point loses its small-signal stability
    in a Hopf bifurcation just below a load of 1.1689 pu (unity power factor)
    and the power flow has its fold at 1 / (2 * 0.241) = 2.0747 pu.
    """
    system = PowerSystem("omib")
    system.add_component(Bus("BUS 1", 101, BusType.SLACK, magnitude=1.0, angle=0.0))
    system.add_component(Bus("BUS 2", 102, BusType.PQ))
    system.add_component(Line("BUS 1-BUS 2-i_1", "BUS 1", "BUS 2", r=0.0, x=0.241))
    q = load * ((1 / power_factor**2 - 1) ** 0.5)
    system.add_component(PowerLoad("load1021", "BUS 2", active_power=load, reactive_power=q))
    system.add_component(Generator("generator-101-1", "BUS 1"))
    machine = OneAxisMachine(Xd=1.8, Xd_p=0.3, Td0_p=5.0, H=3.0, D=2.0, Ra=0.0)
    avr = SEXS(Ta_Tb=1.0, Tb=10.0, K=50.0, Te=1.0, Emin=0.0, Emax=Emax)
    governor = DroopGovernor(R=0.05, Tg=0.5)
    system.add_dynamic_generator(DynamicGenerator("generator-101-1", machine, avr, governor))
    return system
