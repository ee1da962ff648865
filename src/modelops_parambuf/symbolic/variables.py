"""Identities of the values laid out into parameter buffers.

- Variable: canonical identity of a parameter or unknown, with its
  declared element type, shape and tunability
- ElementRef: one element of an array Variable (`p[1]`)
- ArrayType: the slot type of an array-valued variable

Type predicates decide how a declared type is classified: `Real` (the
abstract real type, `numbers.Real`) and float-like types are eligible for
the tunable buffer, other real types are constants, everything else is
nonnumeric.
"""

import numbers
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

import numpy as np

from .expressions import Symbolic, element_of, is_symbolic

# Abstract "any real number" element type
Real = numbers.Real

_REFERENCE_PATTERN = re.compile(r"^(?P<name>.+)\[(?P<index>\s*-?\d+(\s*,\s*-?\d+)*\s*)\]$")


@dataclass(frozen=True)
class ArrayType:
    """Slot type of an array-valued variable.

    Attributes:
        eltype: Declared element type
        ndim: Number of dimensions, None when the shape is unknown
    """
    eltype: Any
    ndim: Optional[int] = 1

    @property
    def name(self) -> str:
        return f"Array[{type_name(self.eltype)}, {self.ndim}]"


@dataclass(frozen=True)
class Variable(Symbolic):
    """Canonical identity of a parameter or unknown.

    Attributes:
        name: Identifier, unique within a system
        dtype: Declared element type (defaults to Real)
        shape: () for scalars, a tuple for arrays, None for arrays of
            unknown shape
        tunable: Whether the value may be adjusted continuously
        term: Alternate canonical term the value is also known by
        doc: Human-readable description
    """
    name: str
    dtype: Any = Real
    shape: Optional[Tuple[int, ...]] = ()
    tunable: bool = True
    term: Optional[str] = None
    doc: str = field(default="", compare=False)

    # Defining __getitem__ would otherwise make variables iterable
    __iter__ = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Variable name cannot be empty")
        if isinstance(self.shape, int):
            object.__setattr__(self, "shape", (self.shape,))
        elif self.shape is not None:
            object.__setattr__(self, "shape", tuple(int(n) for n in self.shape))
            if any(n < 0 for n in self.shape):
                raise ValueError(f"Variable {self.name} has negative dimension in shape {self.shape}")

    @property
    def is_array(self) -> bool:
        return self.shape != ()

    @property
    def has_known_shape(self) -> bool:
        return self.shape is not None

    @property
    def size(self) -> Optional[int]:
        """Number of scalar elements, None if the shape is unknown."""
        if self.shape is None:
            return None
        return int(np.prod(self.shape, dtype=int))

    @property
    def slot_type(self) -> Any:
        """Type of one buffer slot holding this value."""
        if self.is_array:
            return ArrayType(self.dtype, None if self.shape is None else len(self.shape))
        return self.dtype

    def __getitem__(self, index) -> "ElementRef":
        if not self.is_array:
            raise TypeError(f"Scalar variable {self.name} cannot be indexed")
        index = normalize_index(index)
        if self.shape is not None:
            if len(index) != len(self.shape):
                raise IndexError(f"Variable {self.name} of shape {self.shape} indexed with {index}")
            for i, n in zip(index, self.shape):
                if not 0 <= i < n:
                    raise IndexError(f"Index {index} out of bounds for {self.name} of shape {self.shape}")
        return ElementRef(self, index)

    def elements(self) -> List["ElementRef"]:
        """All element references in row-major order."""
        if self.shape is None:
            raise ValueError(f"Variable {self.name} has unknown shape")
        return [ElementRef(self, tuple(int(i) for i in idx)) for idx in np.ndindex(*self.shape)]

    def _substitute(self, bindings):
        if self in bindings:
            return bindings[self]
        return self

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        if self.is_array:
            return f"Variable({self.name!r}, shape={self.shape})"
        return f"Variable({self.name!r})"


@dataclass(frozen=True)
class ElementRef(Symbolic):
    """A single element of an array Variable.

    Attributes:
        parent: The array variable
        index: Tuple index into the parent (row-major, 0-based)
    """
    parent: Variable
    index: Tuple[int, ...]

    __iter__ = None

    def __post_init__(self):
        object.__setattr__(self, "index", normalize_index(self.index))

    @property
    def name(self) -> str:
        return f"{self.parent.name}[{', '.join(str(i) for i in self.index)}]"

    @property
    def term(self) -> Optional[str]:
        if self.parent.term is None:
            return None
        return f"{self.parent.term}[{', '.join(str(i) for i in self.index)}]"

    @property
    def dtype(self) -> Any:
        return self.parent.dtype

    @property
    def tunable(self) -> bool:
        return self.parent.tunable

    shape = ()
    is_array = False
    has_known_shape = True
    size = 1

    @property
    def slot_type(self) -> Any:
        return self.parent.dtype

    def _substitute(self, bindings):
        if self in bindings:
            return bindings[self]
        if self.parent in bindings:
            parent_value = bindings[self.parent]
            if not is_symbolic(parent_value):
                return element_of(parent_value, self.index)
        return self

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"ElementRef({self.name!r})"


Sym = Union[Variable, ElementRef]


def normalize_index(index) -> Tuple[int, ...]:
    """Turn an int or sequence of ints into a tuple index."""
    if isinstance(index, (int, np.integer)):
        return (int(index),)
    return tuple(int(i) for i in index)


def parse_reference(text: str) -> Optional[Tuple[str, Tuple[int, ...]]]:
    """Split an element reference string like "p[1, 2]" into name and index.

    Returns:
        (name, index) or None if the text is not an element reference
    """
    match = _REFERENCE_PATTERN.match(text.strip())
    if match is None:
        return None
    index = tuple(int(part) for part in match.group("index").split(","))
    return match.group("name"), index


def is_real_type(t: Any) -> bool:
    """Whether a declared type (or an array type's eltype) is real-valued."""
    if isinstance(t, ArrayType):
        t = t.eltype
    if t is Real:
        return True
    return isinstance(t, type) and issubclass(t, numbers.Real)


def is_float_type(t: Any) -> bool:
    """Whether a declared type is the abstract Real or a floating type."""
    if isinstance(t, ArrayType):
        t = t.eltype
    if t is Real:
        return True
    return isinstance(t, type) and issubclass(t, (float, np.floating))


def canonical_dtype(t: Any) -> np.dtype:
    """numpy dtype used to allocate or fall back for a declared type."""
    if isinstance(t, ArrayType):
        t = t.eltype
    if t is Real:
        return np.dtype(np.float64)
    if isinstance(t, type) and issubclass(t, (numbers.Number, np.generic)):
        try:
            return np.dtype(t)
        except TypeError:
            return np.dtype(object)
    return np.dtype(object)


def type_name(t: Any) -> str:
    """Readable name of a declared type."""
    if isinstance(t, ArrayType):
        return t.name
    if t is Real:
        return "Real"
    return getattr(t, "__name__", str(t))
