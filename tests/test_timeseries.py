"""Tests for discrete parameter timeseries.

Tests snapshotting and restoring discrete buffers:
- Collection creation per clock kind
- Snapshots are independent of the store
- Restoring snapshots into a store
- Long-format export with polars
"""

import numpy as np
import polars as pl
import pytest

from modelops_parambuf import (
    DiscretePartition,
    DiscreteTimeseries,
    NestedGetIndex,
    ParameterStore,
    SystemSpec,
    UnhandledClockError,
    Variable,
    create_parameter_timeseries_collection,
    get_saveable_values,
    with_updated_parameter_timeseries_values,
)


class TestCreateCollection:
    """Tests for create_parameter_timeseries_collection."""

    def test_one_timeseries_per_clock(self, mixed_system, mixed_store):
        collection = create_parameter_timeseries_collection(mixed_system, mixed_store, (0.0, 2.0))
        assert len(collection) == 3

    def test_periodic_grid(self, mixed_system, mixed_store):
        collection = create_parameter_timeseries_collection(mixed_system, mixed_store, (0.0, 2.0))
        np.testing.assert_allclose(collection[0].grid, [0.0, 0.5, 1.0, 1.5, 2.0])

    def test_solver_step_and_event_grids_empty(self, mixed_system, mixed_store):
        collection = create_parameter_timeseries_collection(mixed_system, mixed_store, (0.0, 2.0))
        assert collection[1].grid.size == 0
        assert collection[2].grid.size == 0

    def test_initial_store_is_copy(self, mixed_system, mixed_store, mixed_ic):
        collection = create_parameter_timeseries_collection(mixed_system, mixed_store, (0.0, 2.0))
        mixed_store[mixed_ic.parameter_index("x")] = 5.0
        assert collection.initial[mixed_ic.parameter_index("x")] == 0.0

    def test_no_discrete_values(self, array_system, array_var):
        store = ParameterStore.from_system(array_system, {array_var: [1.0, 2.0, 3.0]})
        assert create_parameter_timeseries_collection(array_system, store, (0.0, 1.0)) is None

    def test_unhandled_clock(self):
        x = Variable("x")
        system = SystemSpec(
            name="s",
            parameters=[x],
            discrete_partitions=[DiscretePartition("daily", inputs=[x])],
        )
        store = ParameterStore.from_system(system, {x: 1.0})
        with pytest.raises(UnhandledClockError, match="daily"):
            create_parameter_timeseries_collection(system, store, (0.0, 1.0))


class TestSnapshots:
    """Tests for get_saveable_values and restoring snapshots."""

    def test_snapshot_indexing(self, mixed_store):
        snapshot = get_saveable_values(mixed_store, 1)
        assert isinstance(snapshot, NestedGetIndex)
        assert snapshot[(1, 0)] == 3

    def test_snapshot_independent(self, mixed_store, mixed_ic):
        snapshot = get_saveable_values(mixed_store, 0)
        mixed_store[mixed_ic.parameter_index("x")] = 5.0
        assert snapshot[(0, 0)] == 0.0

    def test_restore(self, mixed_store, mixed_ic):
        snapshot = get_saveable_values(mixed_store, 0)
        mixed_store[mixed_ic.parameter_index("x")] = 5.0
        result = with_updated_parameter_timeseries_values(mixed_store, (0, snapshot))
        assert result is mixed_store
        assert mixed_store[mixed_ic.parameter_index("x")] == 0.0

    def test_restore_several_clocks(self, mixed_store, mixed_ic):
        first = get_saveable_values(mixed_store, 0)
        second = get_saveable_values(mixed_store, 2)
        mixed_store[mixed_ic.parameter_index("x")] = 5.0
        mixed_store[mixed_ic.parameter_index("e")] = 6.0
        with_updated_parameter_timeseries_values(mixed_store, (0, first), (2, second))
        assert mixed_store[mixed_ic.parameter_index("x")] == 0.0
        assert mixed_store[mixed_ic.parameter_index("e")] == 1.5

    def test_value_at(self, mixed_system, mixed_store, mixed_ic):
        collection = create_parameter_timeseries_collection(mixed_system, mixed_store, (0.0, 1.0))
        collection[0].save(0.0, get_saveable_values(mixed_store, 0))
        mixed_store[mixed_ic.parameter_index("x")] = 4.0
        collection[0].save(0.5, get_saveable_values(mixed_store, 0))
        tidx = mixed_ic.timeseries_parameter_index("x")
        assert len(collection[0]) == 2
        assert collection.value_at(tidx, 0) == 0.0
        assert collection.value_at(tidx, 1) == 4.0


class TestToFrame:
    """Tests for DiscreteTimeseries.to_frame."""

    def test_long_format(self, mixed_system, mixed_store, mixed_ic):
        ts = DiscreteTimeseries(clock=mixed_system.clocks()[0])
        ts.save(0.0, get_saveable_values(mixed_store, 0))
        mixed_store[mixed_ic.parameter_index("x")] = 2.0
        ts.save(0.5, get_saveable_values(mixed_store, 0))
        frame = ts.to_frame(mixed_ic, 0)
        assert isinstance(frame, pl.DataFrame)
        assert frame.columns == ["time", "parameter", "value"]
        assert frame["parameter"].to_list() == ["x", "x"]
        assert frame["value"].to_list() == [0.0, 2.0]

    def test_empty(self, mixed_system, mixed_ic):
        ts = DiscreteTimeseries(clock=mixed_system.clocks()[1])
        assert ts.to_frame(mixed_ic, 1).height == 0
