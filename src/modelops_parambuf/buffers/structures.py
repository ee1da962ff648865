"""Class-wide view/replace protocol over a ParameterStore.

Numeric code (optimizers, solvers, differentiation) exchanges one portion of
a store at a time as a flat vector, without knowing how the portion is
grouped into buffers:

- canonicalize: flat vector of the portion plus a repack function writing a
  modified vector back into the store
- replace: new store with the portion taken from a flat vector; the other
  portions are shared with the original store
- replace_inplace: write a flat vector into the existing buffers

The tunable portion is already one flat buffer, so its canonical vector is
the buffer itself. The other portions are flattened into fresh copies, with
array slots expanded element by element. Vectors written back are converted
to the element type of each buffer they land in.
"""

import dataclasses
from typing import Any, Callable, Sequence, Tuple

import numpy as np

from ..errors import ParameterSizeError, UnhandledPortionError
from .store import ParameterStore
from .templates import Portion
from .transcoding import (
    coerce_array,
    flatten_buffers,
    narrow_buffer_type,
    split_into_buffers,
    update_tuple_of_buffers,
)

# Store attribute, nesting depth and element-wise flattening of array slots
# for every non-tunable portion; nonnumeric payloads are exchanged whole
_NESTED_PORTIONS = {
    Portion.DISCRETE: ("discrete", 2, True),
    Portion.CONSTANTS: ("constant", 1, True),
    Portion.NONNUMERIC: ("nonnumeric", 1, False),
}

Repack = Callable[[Sequence[Any]], ParameterStore]


def _nested(portion: Portion) -> Tuple[str, int, bool]:
    if portion in _NESTED_PORTIONS:
        return _NESTED_PORTIONS[portion]
    raise UnhandledPortionError(portion)


def canonicalize(portion: Portion, store: ParameterStore) -> Tuple[Any, Repack, bool]:
    """Flat view of one portion of a store.

    Args:
        portion: Portion to expose
        store: Store to read

    Returns:
        (flat, repack, True). `flat` is the tunable buffer itself for the
        tunable portion and a fresh copy otherwise. `repack(new)` writes a
        flat sequence of the same length back into `store` and returns it.
    """
    if portion is Portion.TUNABLE:
        flat = store.tunable

        def repack(new_val):
            if new_val is not store.tunable:
                replace_inplace(Portion.TUNABLE, store, new_val)
            return store

        return flat, repack, True

    attr, depth, elementwise = _nested(portion)
    flat = flatten_buffers(getattr(store, attr), depth, elementwise)

    def repack(new_val):
        update_tuple_of_buffers(new_val, getattr(store, attr), depth, elementwise)
        return store

    return flat, repack, True


def replace(portion: Portion, store: ParameterStore, newvals: Sequence[Any]) -> ParameterStore:
    """New store whose `portion` holds `newvals`.

    The tunable buffer is taken as given when `newvals` is an ndarray, so
    its element type may change (for example to dual numbers). Untouched
    portions are shared with `store`, not copied. Buffers of the other
    portions keep their element types.

    Raises:
        ParameterSizeError: If the length of `newvals` differs from the portion
        ParameterTypeError: If a value cannot be stored in its buffer
    """
    if portion is Portion.TUNABLE:
        if len(newvals) != len(store.tunable):
            raise ParameterSizeError((len(store.tunable),), (len(newvals),))
        if isinstance(newvals, np.ndarray):
            tunable = newvals
        else:
            tunable = narrow_buffer_type(list(newvals), fallback=store.tunable.dtype)
        return dataclasses.replace(store, tunable=tunable)

    attr, depth, elementwise = _nested(portion)
    buffers = split_into_buffers(newvals, getattr(store, attr), depth, elementwise)
    return dataclasses.replace(store, **{attr: buffers})


def replace_inplace(portion: Portion, store: ParameterStore, newvals: Sequence[Any]) -> None:
    """Overwrite one portion of `store` in place.

    Raises:
        ParameterSizeError: If the length of `newvals` differs from the portion
        ParameterTypeError: If a value cannot be stored in its buffer
    """
    if portion is Portion.TUNABLE:
        if len(newvals) != len(store.tunable):
            raise ParameterSizeError((len(store.tunable),), (len(newvals),))
        store.tunable[:] = coerce_array(store.tunable.dtype, newvals)
        return

    attr, depth, elementwise = _nested(portion)
    update_tuple_of_buffers(newvals, getattr(store, attr), depth, elementwise)


def is_structure(obj: Any) -> bool:
    """Whether obj supports canonicalize and replace."""
    return isinstance(obj, ParameterStore)


def is_mutable_structure(obj: Any) -> bool:
    """Whether obj supports replace_inplace and repack."""
    return isinstance(obj, ParameterStore)
