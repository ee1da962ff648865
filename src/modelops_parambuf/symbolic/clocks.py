"""Clocks that trigger updates of discrete values.

Each discrete partition of a system is driven by one clock. The clock kind
only matters when recording discrete timeseries; the buffer layout itself
treats clocks as opaque group identifiers.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PeriodicClock:
    """Ticks every `dt` time units, offset by `phase`."""
    dt: float
    phase: float = 0.0

    def __post_init__(self):
        if not self.dt > 0:
            raise ValueError(f"PeriodicClock dt must be positive, got {self.dt}")


@dataclass(frozen=True)
class SolverStepClock:
    """Ticks on every accepted solver step."""


@dataclass(frozen=True)
class EventClock:
    """Ticks whenever an event callback fires."""
