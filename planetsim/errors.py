"""Exception types raised by the simulation."""

from __future__ import annotations


class ParameterError(ValueError):
    """Raised when world parameters are out of range."""


class SimulationError(RuntimeError):
    """Raised when an internal simulation invariant is violated."""


class LakeTableFull(SimulationError):
    """Raised when more lakes are created than the table can hold."""
