from .devices import SEXS, DroopGovernor, DynamicGenerator, OneAxisMachine
from .model import DynamicModel

__all__ = ['OneAxisMachine', 'SEXS', 'DroopGovernor', 'DynamicGenerator', 'DynamicModel']
