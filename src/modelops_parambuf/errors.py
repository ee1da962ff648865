"""Exception types for parameter buffer layout and access.

Every error raised by the layout planner or the parameter store derives from
ParameterBufferError, and additionally from the builtin exception a caller
would naturally catch (ValueError, TypeError, IndexError).
"""

from typing import Any, Iterable, Sequence, Tuple

import numpy as np

from .constants import MISSING_PARAMETERS_MESSAGE


class ParameterBufferError(Exception):
    """Base class for all parameter buffer errors."""


class LayoutError(ParameterBufferError, ValueError):
    """The value universe cannot be laid out into buffers."""


class MissingParametersError(ParameterBufferError, ValueError):
    """One or more values could not be resolved.

    Attributes:
        missing: The unresolved values, in universe order
    """

    def __init__(self, missing: Iterable[Any]):
        self.missing = list(missing)
        names = ", ".join(str(m) for m in self.missing)
        super().__init__(f"{MISSING_PARAMETERS_MESSAGE}{names}")


class UnresolvedValueError(ParameterBufferError, ValueError):
    """A value expression still contains unbound symbols after substitution."""

    def __init__(self, sym: Any, value: Any):
        self.sym = sym
        self.value = value
        super().__init__(
            f"Could not evaluate value of parameter {sym}. "
            f"Missing values for variables in expression {value}."
        )


class ParameterTypeError(ParameterBufferError, TypeError):
    """A value is not compatible with the declared type of its slot."""

    def __init__(self, param: Any, expected: Any, value: Any):
        self.param = param
        self.expected = expected
        self.value = value
        expected_name = getattr(expected, "name", None) or getattr(expected, "__name__", str(expected))
        super().__init__(
            f"Parameter {param} expected a value of type {expected_name}, "
            f"got {value!r} of type {type(value).__name__}"
        )


class ParameterSizeError(ParameterBufferError, ValueError):
    """A value's shape disagrees with the shape of its slot.

    Attributes:
        expected: Shape of the slot
        actual: Shape of the supplied value
    """

    def __init__(self, expected: Sequence[int], actual: Sequence[int], param: Any = None):
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        self.param = param
        target = f"parameter {param}" if param is not None else "slot"
        super().__init__(
            f"For {target} expected value of size {self.expected}. "
            f"Received value of size {self.actual}."
        )


class InvalidLocatorError(ParameterBufferError, IndexError):
    """A locator or linear buffer index does not address this store."""


class UnhandledPortionError(ParameterBufferError, RuntimeError):
    """A portion tag was not recognised by an operation."""

    def __init__(self, portion: Any):
        self.portion = portion
        super().__init__(f"Unhandled portion {portion}")


class UnhandledClockError(ParameterBufferError, ValueError):
    """A discrete partition uses a clock kind with no timeseries support."""

    def __init__(self, clock: Any):
        self.clock = clock
        super().__init__(f"Unhandled clock {clock}")


def shape_of(value: Any) -> Tuple[int, ...]:
    """Shape of a value as reported in size errors."""
    return tuple(np.shape(value))


class SystemDescriptionError(ParameterBufferError, ValueError):
    """A system description file is malformed."""
