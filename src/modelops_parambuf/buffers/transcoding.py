"""Buffer transcoding helpers.

Conversions between the nested buffers of a ParameterStore and the flat
sequences exchanged with numeric code, plus element-type narrowing:

- a scalar buffer is a 1-D ndarray
- a buffer of array slots is a list of ndarrays, one per slot
- a nonnumeric buffer is a plain list and is never narrowed

Buffers are populated as lists (with UNSET marking unassigned slots) and
narrowed to their final form once every value is written.
"""

import numbers
from typing import Any, List, Optional, Sequence

import numpy as np

from ..constants import DEFAULT_FLOAT_DTYPE
from ..errors import ParameterSizeError, ParameterTypeError
from ..symbolic.expressions import isequal
from ..symbolic.variables import Real, canonical_dtype, is_float_type, is_real_type
from .templates import BufferTemplate


class _Unset:
    """Marker for a slot that has not been assigned."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


def allocate_buffer(template: BufferTemplate) -> List[Any]:
    """Fresh, unassigned buffer for a template."""
    return [UNSET] * template.length


def is_unset(value: Any) -> bool:
    return value is UNSET


# ----------------------------------------------------------------------
# Scalar conversion
# ----------------------------------------------------------------------

def symconvert(dtype: Any, value: Any, sym: Any = None) -> Any:
    """Convert a resolved value to the declared type of its variable.

    Integers written to Real or float slots become floats. Real values
    written to other real types must convert exactly. Array values are
    copied into fresh ndarrays.

    Raises:
        ParameterTypeError: If the value cannot represent the declared type
    """
    if sym is not None and getattr(sym, "is_array", False):
        if isinstance(value, (np.ndarray, list, tuple)):
            return _convert_array(dtype, value, sym)
        if is_real_type(dtype):
            raise ParameterTypeError(sym, sym.slot_type, value)
        return value
    if not is_real_type(dtype):
        return _convert_nonnumeric(dtype, value, sym)
    if isinstance(value, (np.ndarray, list, tuple)) or not isinstance(value, numbers.Real):
        raise ParameterTypeError(sym, dtype, value)
    if dtype is Real:
        if isinstance(value, (bool, np.bool_, int, np.integer)):
            return float(value)
        return value
    if is_float_type(dtype):
        if isinstance(value, (int, float, np.integer, np.floating)):
            return dtype(value)
        return value
    if isinstance(value, dtype):
        return value
    converted = coerce_element(canonical_dtype(dtype), value, sym)
    return dtype(converted)


def _convert_array(dtype: Any, value: Any, sym: Any) -> Any:
    if not is_real_type(dtype):
        return value
    try:
        arr = np.array(value)
    except ValueError as e:
        raise ParameterTypeError(sym, dtype, value) from e
    if arr.dtype == object:
        if not all(isinstance(v, numbers.Real) for v in arr.flat):
            raise ParameterTypeError(sym, dtype, value)
        return arr
    if arr.dtype.kind not in "biuf":
        raise ParameterTypeError(sym, dtype, value)
    if is_float_type(dtype):
        if arr.dtype.kind in "biu":
            return arr.astype(canonical_dtype(dtype))
        return arr
    return coerce_array(canonical_dtype(dtype), arr, sym)


def _convert_nonnumeric(dtype: Any, value: Any, sym: Any) -> Any:
    if not isinstance(dtype, type) or dtype is object:
        return value
    if isinstance(value, dtype):
        return value
    if issubclass(dtype, numbers.Number) and isinstance(value, numbers.Number):
        return dtype(value)
    raise ParameterTypeError(sym, dtype, value)


def coerce_element(dtype: np.dtype, value: Any, sym: Any = None) -> Any:
    """Convert a scalar for storage in a buffer of `dtype`, exactly.

    Raises:
        ParameterTypeError: If the value is not exactly representable
    """
    dtype = np.dtype(dtype)
    if dtype == object:
        return value
    if isinstance(value, (str, bytes)) or not isinstance(value, (numbers.Number, np.bool_)):
        raise ParameterTypeError(sym, dtype.type, value)
    try:
        with np.errstate(invalid="ignore", over="ignore"):
            converted = dtype.type(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ParameterTypeError(sym, dtype.type, value) from e
    if not _same_number(converted, value):
        raise ParameterTypeError(sym, dtype.type, value)
    return converted


def _python_scalar(value: Any) -> Any:
    return value.item() if isinstance(value, np.generic) else value


def _same_number(converted: Any, value: Any) -> bool:
    # Python int/float comparisons are exact, numpy scalar ones promote
    a, b = _python_scalar(converted), _python_scalar(value)
    try:
        if a == b:
            return True
        return bool(np.isnan(a) and np.isnan(b))
    except (TypeError, ValueError):
        return False


# ----------------------------------------------------------------------
# Narrowing
# ----------------------------------------------------------------------

def scalar_dtype(value: Any) -> np.dtype:
    """numpy dtype able to hold one scalar exactly (object if none)."""
    if isinstance(value, np.generic):
        return value.dtype
    if isinstance(value, bool):
        return np.dtype(np.bool_)
    if isinstance(value, int):
        return np.dtype(np.int64) if -2**63 <= value < 2**63 else np.dtype(object)
    if isinstance(value, float):
        return np.dtype(np.float64)
    if isinstance(value, complex):
        return np.dtype(np.complex128)
    return np.dtype(object)


def promote_dtype(dtypes: Sequence[np.dtype]) -> np.dtype:
    """Tightest common dtype of a sequence of dtypes (object if none exists)."""
    result = None
    for dt in dtypes:
        if dt == object:
            return np.dtype(object)
        if result is None:
            result = dt
            continue
        try:
            result = np.promote_types(result, dt)
        except TypeError:
            return np.dtype(object)
    return np.dtype(np.float64) if result is None else result


def _object_array(values: Sequence[Any]) -> np.ndarray:
    out = np.empty(len(values), dtype=object)
    for i, v in enumerate(values):
        out[i] = v
    return out


def narrow_buffer_type(buffer: Sequence[Any], fallback: Optional[Any] = None) -> Any:
    """Tighten a populated buffer to the common type of its contents.

    Args:
        buffer: Assigned values (scalars, or arrays for array slots)
        fallback: Declared or previous element type used when the buffer
            is empty (numpy dtype or declared type; float64 if None)

    Returns:
        A 1-D ndarray for scalar contents, or a list of ndarrays sharing
        one element dtype for array contents
    """
    values = list(buffer)
    if not values:
        if fallback is None:
            return np.empty(0, dtype=DEFAULT_FLOAT_DTYPE)
        if isinstance(fallback, np.dtype):
            return np.empty(0, dtype=fallback)
        return np.empty(0, dtype=canonical_dtype(fallback))
    if any(isinstance(v, np.ndarray) for v in values):
        arrays = [np.asarray(v) for v in values]
        common = promote_dtype([a.dtype for a in arrays])
        return [a if a.dtype == common else a.astype(common) for a in arrays]
    common = promote_dtype([scalar_dtype(v) for v in values])
    if common == object:
        return _object_array(values)
    return np.array(values, dtype=common)


def narrow_buffer_type_and_fallback_undefs(oldbuf: Any, newbuf: Sequence[Any], narrow: bool = True) -> Any:
    """Merge a partially assigned buffer over an existing one.

    Slots left UNSET in `newbuf` keep the value from `oldbuf`. When nothing
    was assigned the old buffer is copied as is, keeping its element type.
    Otherwise the result is narrowed across old and new contents.

    Args:
        oldbuf: Existing buffer
        newbuf: Same-length list, UNSET where no override was given
        narrow: False for nonnumeric buffers, which stay plain lists
    """
    if len(oldbuf) != len(newbuf):
        raise ParameterSizeError((len(oldbuf),), (len(newbuf),))
    if all(is_unset(v) for v in newbuf):
        return copy_buffer(oldbuf)
    merged = [old if is_unset(new) else new for old, new in zip(oldbuf, newbuf)]
    if not narrow:
        return merged
    return narrow_buffer_type(merged, fallback=getattr(oldbuf, "dtype", None))


# ----------------------------------------------------------------------
# Flat <-> nested
# ----------------------------------------------------------------------

def _leaves(buffers: Sequence[Any], depth: int) -> List[Any]:
    if depth == 1:
        return list(buffers)
    return [leaf for group in buffers for leaf in _leaves(group, depth - 1)]


def _holds_arrays(buf: Any, elementwise: bool) -> bool:
    """Whether a buffer is a list of array slots exchanged element by element."""
    return (
        elementwise
        and isinstance(buf, list)
        and len(buf) > 0
        and all(isinstance(slot, np.ndarray) for slot in buf)
    )


def _leaf_size(buf: Any, elementwise: bool) -> int:
    if _holds_arrays(buf, elementwise):
        return sum(slot.size for slot in buf)
    return len(buf)


def _concatenate_exact(pieces: Sequence[np.ndarray]) -> np.ndarray:
    """Concatenate into the tightest dtype that holds every element exactly.

    Falls back to an object array of the original scalars when promotion
    would round some element (large int64 values next to float64 ones).
    """
    nonempty = [piece for piece in pieces if piece.size]
    if not nonempty:
        return np.empty(0, dtype=promote_dtype([piece.dtype for piece in pieces]))
    common = promote_dtype([piece.dtype for piece in nonempty])
    if common != object and all(_exactly_castable(piece, common) for piece in nonempty):
        return np.concatenate([piece.astype(common, copy=False) for piece in nonempty])
    return _object_array([v for piece in nonempty for v in piece])


def flatten_buffers(buffers: Sequence[Any], depth: int = 1, elementwise: bool = True) -> Any:
    """Concatenate nested buffers into one fresh flat sequence.

    Array slots are flattened element by element (row-major) unless
    `elementwise` is False. Numeric buffers concatenate into an ndarray
    whose dtype holds every element exactly; if any buffer is a plain list
    (nonnumeric payloads) the result is a list.

    Args:
        buffers: Nested buffers, `depth` levels deep
        depth: Nesting depth (2 for per-clock discrete buffers)
        elementwise: Flatten array slots into their elements
    """
    pieces = []
    for buf in _leaves(buffers, depth):
        if _holds_arrays(buf, elementwise):
            pieces.extend(np.ravel(slot) for slot in buf)
        else:
            pieces.append(buf)
    if all(isinstance(piece, np.ndarray) for piece in pieces):
        return _concatenate_exact(pieces)
    flat = []
    for piece in pieces:
        flat.extend(piece)
    return flat


def _chunks(raw: Sequence[Any], leaves: Sequence[Any], elementwise: bool):
    expected = sum(_leaf_size(buf, elementwise) for buf in leaves)
    if len(raw) != expected:
        raise ParameterSizeError((expected,), (len(raw),))
    start = 0
    for buf in leaves:
        stop = start + _leaf_size(buf, elementwise)
        yield buf, raw[start:stop]
        start = stop


def _convert_leaf(buf: Any, chunk: Sequence[Any], elementwise: bool) -> Any:
    """Chunk of a flat sequence converted to the layout and dtype of `buf`."""
    if _holds_arrays(buf, elementwise):
        slots = []
        start = 0
        for slot in buf:
            piece = chunk[start:start + slot.size]
            slots.append(coerce_array(slot.dtype, piece).reshape(slot.shape))
            start += slot.size
        return slots
    if isinstance(buf, np.ndarray):
        return coerce_array(buf.dtype, chunk)
    return list(chunk)


def _rebuild(structure: Sequence[Any], leaves: List[Any], depth: int) -> List[Any]:
    if depth == 1:
        return [leaves.pop(0) for _ in structure]
    return [_rebuild(group, leaves, depth - 1) for group in structure]


def split_into_buffers(
    raw: Sequence[Any], buffers: Sequence[Any], depth: int = 1, elementwise: bool = True
) -> List[Any]:
    """New nested buffers shaped like `buffers`, filled from a flat sequence.

    Every buffer keeps its element type; values must convert to it exactly.

    Raises:
        ParameterSizeError: If the flat length differs from the total
        ParameterTypeError: If a value cannot be stored in its buffer
    """
    new_leaves = [
        _convert_leaf(buf, chunk, elementwise)
        for buf, chunk in _chunks(raw, _leaves(buffers, depth), elementwise)
    ]
    return _rebuild(buffers, new_leaves, depth)


def update_tuple_of_buffers(
    raw: Sequence[Any], buffers: Sequence[Any], depth: int = 1, elementwise: bool = True
) -> None:
    """Write a flat sequence back into existing nested buffers in place.

    Every value is converted before any buffer is written, so a failed
    update leaves the buffers unchanged.

    Raises:
        ParameterSizeError: If the flat length differs from the total
        ParameterTypeError: If a value cannot be stored in its buffer
    """
    updates = [
        (buf, _convert_leaf(buf, chunk, elementwise))
        for buf, chunk in _chunks(raw, _leaves(buffers, depth), elementwise)
    ]
    for buf, new in updates:
        if _holds_arrays(buf, elementwise):
            for slot, values in zip(buf, new):
                slot[...] = values
        else:
            buf[:] = new


def coerce_array(dtype: np.dtype, values: Any, sym: Any = None) -> np.ndarray:
    """Convert a sequence for storage in a buffer of `dtype`, exactly.

    Always returns a fresh array.

    Raises:
        ParameterTypeError: If some value is not exactly representable
    """
    dtype = np.dtype(dtype)
    if dtype == object:
        if isinstance(values, np.ndarray):
            return values.astype(object)
        return _object_array(list(values))
    try:
        source = np.asarray(values)
    except ValueError as e:
        raise ParameterTypeError(sym, dtype.type, values) from e
    if source.dtype == object:
        converted = np.empty(source.shape, dtype=dtype)
        for index, value in np.ndenumerate(source):
            converted[index] = coerce_element(dtype, value, sym)
        return converted
    try:
        with np.errstate(invalid="ignore", over="ignore"):
            converted = source.astype(dtype)
    except (TypeError, ValueError, OverflowError) as e:
        raise ParameterTypeError(sym, dtype.type, values) from e
    if source.dtype.kind not in "biufc" or not _arrays_match(converted, source):
        raise ParameterTypeError(sym, dtype.type, values)
    return converted


def _arrays_match(converted: np.ndarray, source: np.ndarray) -> bool:
    """Whether `converted` casts back to `source` without change."""
    with np.errstate(invalid="ignore", over="ignore"):
        back = converted.astype(source.dtype)
    if source.dtype.kind in "fc":
        return bool(np.array_equal(back, source, equal_nan=True))
    return bool(np.array_equal(back, source))


def _exactly_castable(arr: np.ndarray, dtype: np.dtype) -> bool:
    if arr.dtype == dtype:
        return True
    with np.errstate(invalid="ignore", over="ignore"):
        converted = arr.astype(dtype)
    return _arrays_match(converted, arr)


# ----------------------------------------------------------------------
# Copy / compare
# ----------------------------------------------------------------------

def copy_buffer(buf: Any) -> Any:
    """Copy buffer storage (ndarrays and lists), sharing payload objects."""
    if isinstance(buf, np.ndarray):
        return buf.copy()
    if isinstance(buf, (list, tuple)):
        return [copy_buffer(v) if isinstance(v, (np.ndarray, list)) else v for v in buf]
    return buf


def values_equal(a: Any, b: Any) -> bool:
    """Exact elementwise equality of (nested) buffers and values.

    Numbers of different types compare by value, without rounding either
    side: int64 2**53 + 1 differs from float64 2**53.
    """
    a_seq = isinstance(a, (np.ndarray, list, tuple))
    b_seq = isinstance(b, (np.ndarray, list, tuple))
    if a_seq != b_seq:
        return False
    if not a_seq:
        return isequal(_python_scalar(a), _python_scalar(b))
    if isinstance(a, np.ndarray) and isinstance(b, np.ndarray):
        if a.shape != b.shape:
            return False
        if a.dtype != object and b.dtype != object:
            if a.dtype.kind == b.dtype.kind:
                return bool(np.array_equal(a, b))
            return a.tolist() == b.tolist()
    if len(a) != len(b):
        return False
    return all(values_equal(x, y) for x, y in zip(a, b))
