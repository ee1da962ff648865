"""Forward-mode dual numbers.

A Dual carries a value and its partial derivatives with respect to a fixed
set of seeded inputs. Arithmetic propagates the partials, so evaluating a
function on duals yields its value and directional derivatives in one pass.

Dual is registered as a `numbers.Real`, so dual-valued tunable buffers pass
the same type checks as float buffers.
"""

import math
import numbers
from typing import Sequence

import numpy as np


class Dual:
    """Number with value and partial derivatives."""

    __slots__ = ("value", "partials")

    def __init__(self, value, partials: Sequence[float] = ()):
        if isinstance(value, Dual):
            raise TypeError("Nested dual numbers are not supported")
        self.value = value
        self.partials = np.asarray(partials, dtype=np.float64)

    @classmethod
    def constant(cls, value, n_partials: int) -> "Dual":
        """Dual with all partials zero."""
        return cls(value, np.zeros(n_partials))

    @classmethod
    def seed(cls, value, i: int, n_partials: int) -> "Dual":
        """Dual with a unit partial in direction i."""
        partials = np.zeros(n_partials)
        partials[i] = 1.0
        return cls(value, partials)

    # Arithmetic
    def _lift(self, other) -> "Dual":
        if isinstance(other, Dual):
            return other
        if isinstance(other, numbers.Real):
            return Dual(other, np.zeros_like(self.partials))
        return NotImplemented

    def __add__(self, other):
        other = self._lift(other)
        if other is NotImplemented:
            return other
        return Dual(self.value + other.value, self.partials + other.partials)

    __radd__ = __add__

    def __sub__(self, other):
        other = self._lift(other)
        if other is NotImplemented:
            return other
        return Dual(self.value - other.value, self.partials - other.partials)

    def __rsub__(self, other):
        other = self._lift(other)
        if other is NotImplemented:
            return other
        return other - self

    def __mul__(self, other):
        other = self._lift(other)
        if other is NotImplemented:
            return other
        return Dual(
            self.value * other.value,
            self.partials * other.value + other.partials * self.value,
        )

    __rmul__ = __mul__

    def __truediv__(self, other):
        other = self._lift(other)
        if other is NotImplemented:
            return other
        value = self.value / other.value
        return Dual(value, (self.partials - value * other.partials) / other.value)

    def __rtruediv__(self, other):
        other = self._lift(other)
        if other is NotImplemented:
            return other
        return other / self

    def __pow__(self, other):
        if isinstance(other, Dual):
            # d(a^b) = a^b * (b' log a + b a'/a)
            value = self.value ** other.value
            partials = value * (other.partials * math.log(self.value)
                                + other.value * self.partials / self.value)
            return Dual(value, partials)
        if isinstance(other, numbers.Real):
            return Dual(self.value ** other, other * self.value ** (other - 1) * self.partials)
        return NotImplemented

    def __rpow__(self, other):
        if isinstance(other, numbers.Real):
            value = other ** self.value
            return Dual(value, value * math.log(other) * self.partials)
        return NotImplemented

    def __neg__(self):
        return Dual(-self.value, -self.partials)

    def __pos__(self):
        return self

    def __abs__(self):
        return -self if self.value < 0 else self

    # Elementary functions
    def exp(self) -> "Dual":
        value = math.exp(self.value)
        return Dual(value, value * self.partials)

    def log(self) -> "Dual":
        return Dual(math.log(self.value), self.partials / self.value)

    def sqrt(self) -> "Dual":
        value = math.sqrt(self.value)
        return Dual(value, self.partials / (2 * value))

    def sin(self) -> "Dual":
        return Dual(math.sin(self.value), math.cos(self.value) * self.partials)

    def cos(self) -> "Dual":
        return Dual(math.cos(self.value), -math.sin(self.value) * self.partials)

    # Comparisons look at the value only
    def _primal(self, other):
        return other.value if isinstance(other, Dual) else other

    def __eq__(self, other):
        if isinstance(other, Dual):
            return self.value == other.value and bool(np.array_equal(self.partials, other.partials))
        if isinstance(other, numbers.Real):
            return self.value == other and not np.any(self.partials)
        return NotImplemented

    def __hash__(self):
        return hash((self.value, tuple(self.partials)))

    def __lt__(self, other):
        return self.value < self._primal(other)

    def __le__(self, other):
        return self.value <= self._primal(other)

    def __gt__(self, other):
        return self.value > self._primal(other)

    def __ge__(self, other):
        return self.value >= self._primal(other)

    def __repr__(self) -> str:
        return f"Dual({self.value!r}, {self.partials.tolist()!r})"

    @property
    def n_partials(self) -> int:
        return len(self.partials)


numbers.Real.register(Dual)


def value_of(x):
    """Primal value of a dual (or the number itself)."""
    return x.value if isinstance(x, Dual) else x


def partials_of(x, n_partials: int) -> np.ndarray:
    """Partials of a dual, zeros for plain numbers."""
    if isinstance(x, Dual):
        return x.partials
    return np.zeros(n_partials)

