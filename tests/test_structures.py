"""Tests for the canonicalize/replace protocol.

Tests flat-vector exchange of store portions:
- canonicalize returns the tunable buffer itself, copies otherwise
- repack writes modified vectors back
- replace builds new stores sharing untouched portions
- replace_inplace validates length and element types
- flatten/replace idempotence for every portion
"""

import numpy as np
import pytest
from hypothesis import given, settings, HealthCheck, strategies as st

from modelops_parambuf import (
    ParameterSizeError,
    ParameterStore,
    ParameterTypeError,
    Portion,
    UnhandledPortionError,
    canonicalize,
    is_mutable_structure,
    is_structure,
    replace,
    replace_inplace,
)

ALL_PORTIONS = [Portion.TUNABLE, Portion.DISCRETE, Portion.CONSTANTS, Portion.NONNUMERIC]


def buffer_dtypes(store):
    """Element type of every buffer (or of each array slot), in linear order."""
    dtypes = []
    for buf in store:
        if isinstance(buf, np.ndarray):
            dtypes.append(buf.dtype)
        else:
            dtypes.append(tuple(getattr(v, "dtype", type(v)) for v in buf))
    return dtypes


class TestCanonicalize:
    """Tests for canonicalize."""

    def test_scenario_tunable(self, scenario_store):
        flat, _, aliases = canonicalize(Portion.TUNABLE, scenario_store)
        np.testing.assert_array_equal(flat, [2.0])
        assert aliases is True

    def test_tunable_is_buffer(self, mixed_store):
        flat, _, _ = canonicalize(Portion.TUNABLE, mixed_store)
        assert flat is mixed_store.tunable

    def test_discrete_flattened(self, mixed_store):
        flat, _, _ = canonicalize(Portion.DISCRETE, mixed_store)
        np.testing.assert_array_equal(flat, [0.0, 3.0, 1.5])

    def test_constants_flattened(self, mixed_store):
        flat, _, _ = canonicalize(Portion.CONSTANTS, mixed_store)
        np.testing.assert_array_equal(flat, [5.0, 1.0, 1.0])

    def test_nonnumeric_flattened(self, mixed_store):
        flat, _, _ = canonicalize(Portion.NONNUMERIC, mixed_store)
        assert flat == ["hi"]

    def test_non_tunable_is_copy(self, mixed_store, mixed_ic):
        flat, _, _ = canonicalize(Portion.CONSTANTS, mixed_store)
        flat[1] = 99.0
        assert mixed_store[mixed_ic.parameter_index("n")] == 1.0

    def test_unknown_portion(self, mixed_store):
        with pytest.raises(UnhandledPortionError):
            canonicalize("tunable", mixed_store)


class TestRepack:
    """Tests for the repack function returned by canonicalize."""

    def test_tunable_repack_of_same_buffer(self, mixed_store, mixed_ic):
        flat, repack, _ = canonicalize(Portion.TUNABLE, mixed_store)
        flat[0] = 8.0
        assert repack(flat) is mixed_store
        assert mixed_store[mixed_ic.parameter_index("k")] == 8.0

    def test_tunable_repack_of_new_vector(self, mixed_store, mixed_ic):
        _, repack, _ = canonicalize(Portion.TUNABLE, mixed_store)
        repack(np.array([9.0, 1.0, 2.0, 3.0]))
        assert mixed_store[mixed_ic.parameter_index("k")] == 9.0

    def test_constants_repack(self, mixed_store, mixed_ic):
        flat, repack, _ = canonicalize(Portion.CONSTANTS, mixed_store)
        flat[0] = 7
        repack(flat)
        assert mixed_store[mixed_ic.parameter_index("c")] == 7
        assert mixed_store.constant[0].dtype == np.int64

    def test_discrete_repack(self, mixed_store, mixed_ic):
        flat, repack, _ = canonicalize(Portion.DISCRETE, mixed_store)
        flat[2] = 2.5
        repack(flat)
        assert mixed_store[mixed_ic.parameter_index("e")] == 2.5

    def test_repack_wrong_length(self, mixed_store):
        _, repack, _ = canonicalize(Portion.CONSTANTS, mixed_store)
        with pytest.raises(ParameterSizeError):
            repack([1.0])


class TestReplace:
    """Tests for replace."""

    def test_tunable(self, mixed_store, mixed_ic):
        new = replace(Portion.TUNABLE, mixed_store, np.array([5.0, 6.0, 7.0, 8.0]))
        assert new[mixed_ic.parameter_index("k")] == 5.0
        assert mixed_store[mixed_ic.parameter_index("k")] == 2.0

    def test_untouched_portions_shared(self, mixed_store):
        new = replace(Portion.TUNABLE, mixed_store, np.array([5.0, 6.0, 7.0, 8.0]))
        assert new.constant[0] is mixed_store.constant[0]
        assert new.discrete[1][1] is mixed_store.discrete[1][1]
        assert new.nonnumeric[0] is mixed_store.nonnumeric[0]

    def test_tunable_element_type_may_change(self, mixed_store):
        duals = np.array([object()] * 4, dtype=object)
        new = replace(Portion.TUNABLE, mixed_store, duals)
        assert new.tunable.dtype == object

    def test_tunable_from_list(self, mixed_store):
        new = replace(Portion.TUNABLE, mixed_store, [1, 2, 3, 4])
        assert isinstance(new.tunable, np.ndarray)
        np.testing.assert_array_equal(new.tunable, [1.0, 2.0, 3.0, 4.0])

    def test_constants(self, mixed_store, mixed_ic):
        new = replace(Portion.CONSTANTS, mixed_store, [6, 2.0, 0])
        assert new[mixed_ic.parameter_index("c")] == 6
        assert new[mixed_ic.parameter_index("n")] == 2.0
        assert mixed_store[mixed_ic.parameter_index("c")] == 5

    def test_nonnumeric(self, mixed_store, mixed_ic):
        new = replace(Portion.NONNUMERIC, mixed_store, ["bye"])
        assert new[mixed_ic.parameter_index("label")] == "bye"
        assert mixed_store[mixed_ic.parameter_index("label")] == "hi"

    def test_wrong_length(self, mixed_store):
        with pytest.raises(ParameterSizeError):
            replace(Portion.TUNABLE, mixed_store, [1.0])
        with pytest.raises(ParameterSizeError):
            replace(Portion.DISCRETE, mixed_store, [1.0])

    @pytest.mark.parametrize("portion", ALL_PORTIONS)
    def test_idempotent(self, mixed_store, portion):
        """Test replacing a portion with its own flat vector changes nothing."""
        flat, _, _ = canonicalize(portion, mixed_store)
        assert replace(portion, mixed_store, flat) == mixed_store

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        c=st.integers(min_value=-2**63, max_value=2**63 - 1),
        n=st.floats(allow_nan=False, allow_infinity=False),
        x=st.floats(allow_nan=False, allow_infinity=False),
    )
    def test_idempotent_for_any_values(self, mixed_system, mixed_values, mixed_vars, c, n, x):
        v = mixed_vars
        values = dict(mixed_values)
        values.update({v["c"]: c, v["n"]: n, v["x"]: x})
        store = ParameterStore.from_system(mixed_system, values)
        for portion in ALL_PORTIONS:
            flat, _, _ = canonicalize(portion, store)
            new = replace(portion, store, flat)
            assert new == store
            assert buffer_dtypes(new) == buffer_dtypes(store)
        flat, _, _ = canonicalize(Portion.CONSTANTS, store)
        new = replace(Portion.CONSTANTS, store, flat)
        assert new[mixed_system.index_cache.parameter_index("c")] == c


class TestReplaceInplace:
    """Tests for replace_inplace."""

    def test_tunable(self, mixed_store):
        buffer = mixed_store.tunable
        replace_inplace(Portion.TUNABLE, mixed_store, [1, 2, 3, 4])
        assert mixed_store.tunable is buffer
        np.testing.assert_array_equal(buffer, [1.0, 2.0, 3.0, 4.0])

    def test_wrong_length(self, mixed_store):
        with pytest.raises(ParameterSizeError):
            replace_inplace(Portion.TUNABLE, mixed_store, [1.0])

    def test_inexact_integer(self, mixed_store):
        with pytest.raises(ParameterTypeError):
            replace_inplace(Portion.CONSTANTS, mixed_store, [1.5, 1.0, 1.0])

    def test_nonnumeric(self, mixed_store):
        replace_inplace(Portion.NONNUMERIC, mixed_store, ["bye"])
        assert mixed_store.nonnumeric == [["bye"]]


class TestArraySlots:
    """Tests for portions holding array-valued slots."""

    def test_constants_flattened_element_by_element(self, slotted_store):
        flat, _, _ = canonicalize(Portion.CONSTANTS, slotted_store)
        assert isinstance(flat, np.ndarray)
        np.testing.assert_array_equal(flat, [2.0, 3.0, 1.0, 1.0, 2.0, 3.0, 4.0])

    def test_discrete_flattened_element_by_element(self, slotted_store):
        flat, _, _ = canonicalize(Portion.DISCRETE, slotted_store)
        np.testing.assert_array_equal(flat, [0.5, 1.5, 7.0])

    def test_replace_constants(self, slotted_store, slotted_system):
        ic = slotted_system.index_cache
        new = replace(Portion.CONSTANTS, slotted_store, np.array([5.0, 6.0, 2.0, 4.0, 3.0, 2.0, 1.0]))
        np.testing.assert_array_equal(new[ic.parameter_index("a")], [5.0, 6.0])
        assert new[ic.parameter_index("c")] == 2
        np.testing.assert_array_equal(new[ic.parameter_index("m")], [[4, 3], [2, 1]])
        assert buffer_dtypes(new) == buffer_dtypes(slotted_store)
        np.testing.assert_array_equal(slotted_store[ic.parameter_index("a")], [2.0, 3.0])

    def test_repack_discrete_writes_slots_in_place(self, slotted_store, slotted_system):
        ic = slotted_system.index_cache
        x_values = slotted_store[ic.parameter_index("x")]
        _, repack, _ = canonicalize(Portion.DISCRETE, slotted_store)
        assert repack(np.array([7.0, 8.0, 9.0])) is slotted_store
        np.testing.assert_array_equal(x_values, [7.0, 8.0])
        assert slotted_store[ic.parameter_index("z")] == 9
        assert slotted_store.discrete[1][1].dtype == np.int64

    @pytest.mark.parametrize("portion", ALL_PORTIONS)
    def test_idempotent(self, slotted_store, portion):
        flat, _, _ = canonicalize(portion, slotted_store)
        new = replace(portion, slotted_store, flat)
        assert new == slotted_store
        assert buffer_dtypes(new) == buffer_dtypes(slotted_store)

    def test_slot_count_vector_rejected(self, slotted_store):
        """Test a vector with one value per slot is not accepted."""
        with pytest.raises(ParameterSizeError):
            replace(Portion.CONSTANTS, slotted_store, [1.0, 2.0, 3.0])

    def test_failed_update_leaves_buffers(self, slotted_store, slotted_system):
        ic = slotted_system.index_cache
        with pytest.raises(ParameterTypeError):
            replace_inplace(Portion.CONSTANTS, slotted_store, [5.0, 6.0, 2.0, 4.5, 3.0, 2.0, 1.0])
        np.testing.assert_array_equal(slotted_store[ic.parameter_index("a")], [2.0, 3.0])
        assert slotted_store[ic.parameter_index("c")] == 1


class TestExactExchange:
    """Tests that flat vectors keep every value and buffer type."""

    @pytest.fixture
    def big_store(self, mixed_system, mixed_values, mixed_vars):
        values = dict(mixed_values)
        values.update({mixed_vars["c"]: 2**53 + 1, mixed_vars["n"]: 0.5})
        return ParameterStore.from_system(mixed_system, values)

    def test_large_integer_survives_flattening(self, big_store):
        flat, _, _ = canonicalize(Portion.CONSTANTS, big_store)
        assert flat[0] == 2**53 + 1

    def test_large_integer_round_trip(self, big_store, mixed_ic):
        flat, _, _ = canonicalize(Portion.CONSTANTS, big_store)
        new = replace(Portion.CONSTANTS, big_store, flat)
        assert new[mixed_ic.parameter_index("c")] == 2**53 + 1
        assert [buf.dtype for buf in new.constant] == [np.int64, np.float64, np.bool_]

    def test_buffer_types_kept(self, mixed_store):
        new = replace(Portion.CONSTANTS, mixed_store, [6.0, 2.0, 0.0])
        assert [buf.dtype for buf in new.constant] == [np.int64, np.float64, np.bool_]

    def test_rounded_value_differs(self, big_store):
        rounded = replace(Portion.CONSTANTS, big_store, [2**53, 0.5, 1])
        assert rounded != big_store


class TestTraits:
    """Tests for the structure traits."""

    def test_store_is_structure(self, mixed_store):
        assert is_structure(mixed_store)
        assert is_mutable_structure(mixed_store)

    def test_other_values_are_not(self):
        assert not is_structure([1.0])
        assert not is_mutable_structure(np.zeros(2))
