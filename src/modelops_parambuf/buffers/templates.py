"""Leaf value types of the buffer layout.

- Portion: the closed set of mutability classes
- BufferTemplate: element type and length of one homogeneous buffer
- TunableRange: contiguous run of the tunable buffer holding an array
- ParameterIndex: locator of a value (portion + offset path)
- ParameterTimeseriesIndex: locator of a discrete value within its clock

Locators are plain immutable values. They are independent of any store and
valid for every store built from the same IndexCache.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple, Union

import numpy as np

from ..errors import UnhandledPortionError
from ..symbolic.variables import ArrayType, normalize_index


class Portion(Enum):
    """Mutability class of a value."""
    TUNABLE = "tunable"
    DISCRETE = "discrete"
    CONSTANTS = "constants"
    NONNUMERIC = "nonnumeric"


@dataclass(frozen=True)
class BufferTemplate:
    """Element type and length of one buffer.

    Attributes:
        type: Scalar slot type, or ArrayType when every slot holds an array
        length: Number of slots
    """
    type: Any
    length: int

    def __post_init__(self):
        if self.length < 0:
            raise ValueError(f"BufferTemplate length must be non-negative, got {self.length}")

    @property
    def holds_arrays(self) -> bool:
        return isinstance(self.type, ArrayType)


@dataclass(frozen=True)
class TunableRange:
    """Run of the flat tunable buffer holding one array value (row-major)."""
    start: int
    shape: Tuple[int, ...]

    @property
    def size(self) -> int:
        return int(np.prod(self.shape, dtype=int))

    @property
    def stop(self) -> int:
        return self.start + self.size

    def as_slice(self) -> slice:
        return slice(self.start, self.stop)

    def offset_of(self, index: Tuple[int, ...]) -> int:
        """Flat buffer offset of one element of the array."""
        return self.start + int(np.ravel_multi_index(index, self.shape))


TunableIdx = Union[int, TunableRange]


@dataclass(frozen=True)
class ParameterIndex:
    """Locator of a stored value.

    Attributes:
        portion: Mutability class owning the value
        idx: Offset path. An int or TunableRange for tunables,
            (clock, group, offset, *element) for discrete values,
            (group, offset, *element) for constants and nonnumerics
        validate_size: Check the shape of written values against the slot
    """
    portion: Portion
    idx: Any
    validate_size: bool = False

    def __post_init__(self):
        if not isinstance(self.portion, Portion):
            raise UnhandledPortionError(self.portion)

    def element(self, index) -> "ParameterIndex":
        """Locator of one element of the array this index points at."""
        index = normalize_index(index)
        if self.portion is Portion.TUNABLE:
            if not isinstance(self.idx, TunableRange):
                raise IndexError(f"Tunable scalar at offset {self.idx} cannot be indexed")
            return ParameterIndex(self.portion, self.idx.offset_of(index))
        return ParameterIndex(self.portion, tuple(self.idx) + index)


@dataclass(frozen=True)
class ParameterTimeseriesIndex:
    """Locator of a discrete value as (clock id, (group, offset))."""
    timeseries_idx: int
    parameter_idx: Tuple[int, ...]
