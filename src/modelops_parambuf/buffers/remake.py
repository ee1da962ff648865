"""Partial rebuild of a ParameterStore from value overrides.

`remake_buffer` patches an existing store: every override is validated and
written into a fresh set of buffers, every other slot keeps its old value,
and each buffer is narrowed across old and new contents. Dependency
equations are not re-resolved.
"""

import logging
import numbers
from typing import Any, Dict, Mapping

import numpy as np

from ..errors import ParameterSizeError, ParameterTypeError, shape_of
from ..symbolic.variables import ArrayType, ElementRef, Real, Variable, is_real_type
from .store import ParameterStore
from .templates import ParameterIndex, Portion
from .transcoding import UNSET, copy_buffer, narrow_buffer_type_and_fallback_undefs, symconvert

logger = logging.getLogger(__name__)


def validate_parameter_type(ic, p: Any, index: ParameterIndex, val: Any) -> None:
    """Check an override against the declared type and shape of its parameter.

    Args:
        ic: IndexCache of the store
        p: Parameter or alias the override was given for
        index: Locator of the parameter
        val: Override value

    Raises:
        ParameterTypeError: If the value's type does not match
        ParameterSizeError: If an array value has the wrong shape
    """
    if isinstance(p, str):
        resolved = ic.lookup(p)
        if resolved is None:
            logger.warning(f"No matching variable found for {p!r}, skipping type validation.")
            return
        p = resolved

    dtype = p.dtype
    if index.portion is Portion.NONNUMERIC:
        if getattr(p, "is_array", False):
            if not isinstance(val, (np.ndarray, list, tuple)):
                raise ParameterTypeError(p, p.slot_type, val)
            return
        if isinstance(dtype, type) and dtype is not object and not isinstance(val, dtype):
            raise ParameterTypeError(p, dtype, val)
        return

    if getattr(p, "is_array", False):
        if not isinstance(val, (np.ndarray, list, tuple)):
            raise ParameterTypeError(p, p.slot_type, val)
        if p.has_known_shape and shape_of(val) != p.shape:
            raise ParameterSizeError(p.shape, shape_of(val), p)
        arr = np.asarray(val, dtype=object if _is_ragged(val) else None)
        if arr.dtype == object:
            ok = all(isinstance(v, numbers.Real) for v in arr.flat)
        else:
            ok = arr.dtype.kind in "biuf"
        if not ok:
            raise ParameterTypeError(p, ArrayType(Real, arr.ndim), val)
        return

    if isinstance(val, (np.ndarray, list, tuple)):
        raise ParameterTypeError(p, dtype, val)
    if is_real_type(dtype):
        if not isinstance(val, numbers.Real):
            raise ParameterTypeError(p, Real, val)
        return
    if isinstance(dtype, type) and not isinstance(val, dtype):
        raise ParameterTypeError(p, dtype, val)


def _is_ragged(val: Any) -> bool:
    try:
        np.asarray(val)
    except ValueError:
        return True
    return False


def _scatter_array_overrides(ic, vals: Dict[Any, Any]) -> None:
    """Split array overrides whose array has no slot into element overrides."""
    for sym in list(vals):
        if ic.is_parameter(sym):
            continue
        canonical = ic.lookup(sym)
        if not (isinstance(canonical, Variable) and canonical.is_array and canonical.has_known_shape):
            continue
        if ic.is_dependent(canonical):
            continue
        value = vals.pop(sym)
        if shape_of(value) != canonical.shape:
            raise ParameterSizeError(canonical.shape, shape_of(value), canonical)
        arr = np.asarray(value, dtype=object)
        for element in canonical.elements():
            vals[element] = arr[element.index]


def _prime_slot(newbuf: ParameterStore, oldbuf: ParameterStore, idx: ParameterIndex) -> None:
    """Copy an array slot from the old store before one of its elements is written."""
    if idx.portion is Portion.TUNABLE:
        return
    buf, offset, element = newbuf._slot(idx)
    if element and buf[offset] is UNSET:
        old, _, _ = oldbuf._slot(idx)
        buf[offset] = copy_buffer(old[offset])


def remake_buffer(ic, oldbuf: ParameterStore, vals: Mapping[Any, Any]) -> ParameterStore:
    """New store with `vals` overriding the contents of `oldbuf`.

    Args:
        ic: IndexCache the store was built with
        oldbuf: Store providing every value not overridden
        vals: Overrides keyed by parameter or alias

    Returns:
        A new store; `oldbuf` is not modified

    Raises:
        ParameterTypeError: On the first override whose type does not match
        ParameterSizeError: On the first array override of the wrong shape
    """
    newbuf = ParameterStore(
        tunable=[UNSET] * len(oldbuf.tunable),
        discrete=[[[UNSET] * len(buf) for buf in clock] for clock in oldbuf.discrete],
        constant=[[UNSET] * len(buf) for buf in oldbuf.constant],
        nonnumeric=[[UNSET] * len(buf) for buf in oldbuf.nonnumeric],
    )

    vals = dict(vals)
    _scatter_array_overrides(ic, vals)

    for p, val in vals.items():
        idx = ic.parameter_index(p)
        if idx is not None:
            validate_parameter_type(ic, p, idx, val)
            sym = ic.lookup(p)
            if idx.portion is not Portion.NONNUMERIC:
                val = symconvert(sym.dtype, val, sym)
            _prime_slot(newbuf, oldbuf, idx)
            newbuf._set_parameter_unchecked(val, idx)
            continue
        canonical = ic.lookup(p)
        if isinstance(canonical, Variable) and canonical.is_array and not canonical.has_known_shape:
            # Unknown-shape array stored element by element
            for j, element_val in enumerate(np.ravel(np.asarray(val, dtype=object))):
                element = ElementRef(canonical, (j,))
                element_idx = ic.parameter_index(element)
                if element_idx is None:
                    logger.debug(f"Skipping override for {element}: not a parameter")
                    continue
                validate_parameter_type(ic, element, element_idx, element_val)
                _prime_slot(newbuf, oldbuf, element_idx)
                newbuf._set_parameter_unchecked(symconvert(element.dtype, element_val, element), element_idx)
            continue
        logger.debug(f"Skipping override for {p!r}: not a stored parameter")

    newbuf.tunable = narrow_buffer_type_and_fallback_undefs(oldbuf.tunable, newbuf.tunable)
    newbuf.discrete = [
        [narrow_buffer_type_and_fallback_undefs(old, new) for old, new in zip(oldclock, newclock)]
        for oldclock, newclock in zip(oldbuf.discrete, newbuf.discrete)
    ]
    newbuf.constant = [
        narrow_buffer_type_and_fallback_undefs(old, new)
        for old, new in zip(oldbuf.constant, newbuf.constant)
    ]
    newbuf.nonnumeric = [
        narrow_buffer_type_and_fallback_undefs(old, new, narrow=False)
        for old, new in zip(oldbuf.nonnumeric, newbuf.nonnumeric)
    ]
    return newbuf
