"""Procedural planet terrain simulation package."""

from .config import DEFAULT_HEIGHT, DEFAULT_WIDTH, GeneratorConfig, WorldParams
from .errors import LakeTableFull, ParameterError, SimulationError
from .generator import PlanetResult, generate_planet

__all__ = [
    "DEFAULT_WIDTH",
    "DEFAULT_HEIGHT",
    "GeneratorConfig",
    "WorldParams",
    "PlanetResult",
    "generate_planet",
    "ParameterError",
    "SimulationError",
    "LakeTableFull",
]
