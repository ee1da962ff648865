"""Timeseries of discrete parameter values.

Discrete parameters change only when their clock ticks. To record how they
evolve during a simulation, the buffers of one clock are snapshotted
(`get_saveable_values`) into a DiscreteTimeseries and can later be restored
into a store (`with_updated_parameter_timeseries_values`).
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import polars as pl

from ..errors import UnhandledClockError
from ..symbolic.clocks import EventClock, PeriodicClock, SolverStepClock
from .store import ParameterStore
from .templates import ParameterTimeseriesIndex

logger = logging.getLogger(__name__)


@dataclass
class NestedGetIndex:
    """Snapshot of one clock's buffers, indexed by (group, offset, *element)."""
    x: List[Any]

    def __getitem__(self, idx: Tuple[int, ...]) -> Any:
        group, offset, *element = idx
        value = self.x[group][offset]
        if element:
            return value[tuple(element)]
        return value


@dataclass
class DiscreteTimeseries:
    """Saved snapshots of one clock.

    Attributes:
        clock: Clock the snapshots belong to
        times: Time of each saved snapshot
        values: Saved snapshots, one per entry in `times`
        grid: Expected save times (periodic clocks), empty otherwise
    """
    clock: Any
    times: List[float] = field(default_factory=list)
    values: List[NestedGetIndex] = field(default_factory=list)
    grid: np.ndarray = field(default_factory=lambda: np.empty(0))

    def save(self, t: float, snapshot: NestedGetIndex) -> None:
        self.times.append(t)
        self.values.append(snapshot)

    def __len__(self) -> int:
        return len(self.values)

    def to_frame(self, index_cache, clock_id: int) -> pl.DataFrame:
        """Long-format table of the saved values: time, parameter, value.

        Only scalar parameters of the clock are exported.
        """
        members = []
        for sym, (clock, group, offset) in index_cache.discrete_idx.items():
            if clock == clock_id and not sym.is_array:
                members.append((sym.name, (group, offset)))
        rows = []
        for t, snapshot in zip(self.times, self.values):
            for name, idx in members:
                rows.append((float(t), name, float(snapshot[idx])))
        return pl.DataFrame(
            rows,
            schema={"time": pl.Float64, "parameter": pl.Utf8, "value": pl.Float64},
            orient="row",
        )


@dataclass
class ParameterTimeseriesCollection:
    """One DiscreteTimeseries per clock plus the initial store."""
    collections: Tuple[DiscreteTimeseries, ...]
    initial: ParameterStore

    def __getitem__(self, clock_id: int) -> DiscreteTimeseries:
        return self.collections[clock_id]

    def __len__(self) -> int:
        return len(self.collections)

    def value_at(self, pidx: ParameterTimeseriesIndex, i: int) -> Any:
        """Value of a discrete parameter in the i-th snapshot of its clock."""
        return self.collections[pidx.timeseries_idx].values[i][pidx.parameter_idx]


def create_parameter_timeseries_collection(
    system, store: ParameterStore, tspan: Sequence[float]
) -> Optional[ParameterTimeseriesCollection]:
    """Empty timeseries for every clock of a system.

    Periodic clocks get the grid `t0, t0 + dt, ...` up to `tspan[1]`;
    solver-step and event clocks start with an empty grid.

    Returns:
        The collection, or None if the system has no discrete values

    Raises:
        UnhandledClockError: If a clock kind has no timeseries support
    """
    clocks = system.clocks()
    if not clocks or not store.discrete:
        return None

    t0, t1 = float(tspan[0]), float(tspan[1])
    collections = []
    for clock in clocks[:len(store.discrete)]:
        if isinstance(clock, PeriodicClock):
            n = int(np.floor((t1 - t0) / clock.dt + 1e-9))
            grid = t0 + clock.dt * np.arange(n + 1)
        elif isinstance(clock, (SolverStepClock, EventClock)):
            grid = np.empty(0)
        else:
            raise UnhandledClockError(clock)
        collections.append(DiscreteTimeseries(clock=clock, grid=grid))

    logger.debug(f"Created timeseries for {len(collections)} clocks of {system.name}")
    return ParameterTimeseriesCollection(tuple(collections), store.copy())


def get_saveable_values(store: ParameterStore, timeseries_idx: int) -> NestedGetIndex:
    """Independent snapshot of one clock's buffers."""
    return NestedGetIndex(copy.deepcopy(store.discrete[timeseries_idx]))


def with_updated_parameter_timeseries_values(
    store: ParameterStore, *pairs: Tuple[int, NestedGetIndex]
) -> ParameterStore:
    """Restore snapshots into the store's discrete buffers, in place.

    Args:
        store: Store to update
        *pairs: (clock id, snapshot) pairs

    Returns:
        The updated store
    """
    for clock_id, snapshot in pairs:
        store.discrete[clock_id] = snapshot.x
    return store
