"""Differentiation through the tunable buffer.

The tunable buffer is swapped for a dual-valued copy with `replace`, the
function is evaluated against that store, and the derivatives are read off
the result. The dual store is discarded afterwards; the other portions are
shared with the original store and never modified.
"""

from typing import Any, Callable, Sequence

import numpy as np

from .buffers.store import ParameterStore
from .buffers.structures import canonicalize, replace
from .buffers.templates import ParameterIndex, Portion, TunableRange
from .dual import Dual, partials_of, value_of


def as_duals(store: ParameterStore, n_partials: int = 0) -> ParameterStore:
    """Store whose tunable values are duals with zero partials.

    The returned store shares every non-tunable buffer with `store`.
    """
    tunable, _, _ = canonicalize(Portion.TUNABLE, store)
    duals = np.empty(len(tunable), dtype=object)
    for i, v in enumerate(tunable):
        duals[i] = Dual.constant(value_of(v), n_partials)
    return replace(Portion.TUNABLE, store, duals)


def tunable_has_duals(store: ParameterStore) -> bool:
    """Whether any tunable value carries partial derivatives."""
    return any(isinstance(v, Dual) for v in store.tunable)


def jacobian_wrt_vars(
    fn: Callable[[ParameterStore], Any],
    store: ParameterStore,
    input_idxs: Sequence[ParameterIndex],
) -> np.ndarray:
    """Jacobian of `fn(store)` with respect to selected tunable values.

    Args:
        fn: Function of a store returning a number or a sequence of numbers
        store: Point of evaluation
        input_idxs: Locators of scalar tunable values to differentiate by

    Returns:
        Array of shape (number of outputs, number of inputs)

    Raises:
        ValueError: If an input is not a scalar tunable value
    """
    for pidx in input_idxs:
        if pidx.portion is not Portion.TUNABLE or isinstance(pidx.idx, TunableRange):
            raise ValueError(f"Can only differentiate with respect to scalar tunable values, got {pidx}")

    n = len(input_idxs)
    store_big = as_duals(store, n)
    for i, pidx in enumerate(input_idxs):
        store_big._set_parameter_unchecked(Dual.seed(value_of(store[pidx]), i, n), pidx)

    out = fn(store_big)
    outputs = np.atleast_1d(np.asarray(out, dtype=object)).ravel()
    if outputs.size == 0:
        return np.zeros((0, n))
    return np.vstack([partials_of(o, n) for o in outputs])
