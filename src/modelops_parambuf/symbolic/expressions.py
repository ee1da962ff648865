"""Minimal expression nodes and the fixpoint substitution driver.

Parameter defaults and dependency equations may be expressions over other
values. This module provides just enough structure to represent them:

- Symbolic: base class of every symbolic node (variables, element
  references, operations), with arithmetic that builds Operation trees
- Operation: a function applied to arguments, evaluated once every
  argument is concrete
- substitute: the default evaluator, one substitution pass over a binding map
- fixpoint_sub: repeat an evaluator until the value is concrete or stops
  changing

The evaluator is injected wherever substitution happens, so richer
expression systems can replace `substitute` without touching the buffers.
"""

import operator
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple

import numpy as np

# evaluator(expr, bindings) -> value (possibly still symbolic)
Evaluator = Callable[[Any, Mapping[Any, Any]], Any]


class Symbolic:
    """Base class for symbolic nodes.

    Subclasses implement `_substitute(bindings)`. Arithmetic on a symbolic
    node never evaluates; it builds an Operation.
    """

    def _substitute(self, bindings: Mapping[Any, Any]) -> Any:
        raise NotImplementedError

    def __add__(self, other):
        return Operation(operator.add, (self, other))

    def __radd__(self, other):
        return Operation(operator.add, (other, self))

    def __sub__(self, other):
        return Operation(operator.sub, (self, other))

    def __rsub__(self, other):
        return Operation(operator.sub, (other, self))

    def __mul__(self, other):
        return Operation(operator.mul, (self, other))

    def __rmul__(self, other):
        return Operation(operator.mul, (other, self))

    def __truediv__(self, other):
        return Operation(operator.truediv, (self, other))

    def __rtruediv__(self, other):
        return Operation(operator.truediv, (other, self))

    def __pow__(self, other):
        return Operation(operator.pow, (self, other))

    def __rpow__(self, other):
        return Operation(operator.pow, (other, self))

    def __neg__(self):
        return Operation(operator.neg, (self,))


@dataclass(frozen=True, eq=False)
class Operation(Symbolic):
    """A function applied to (possibly symbolic) arguments.

    Attributes:
        op: Callable evaluated once all arguments are concrete
        args: Positional arguments
    """
    op: Callable[..., Any]
    args: Tuple[Any, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(self.args))

    def _substitute(self, bindings: Mapping[Any, Any]) -> Any:
        args = tuple(substitute(arg, bindings) for arg in self.args)
        if any(is_symbolic(arg) for arg in args):
            return Operation(self.op, args)
        return self.op(*args)

    # Operations compare structurally, never by evaluating
    def __eq__(self, other):
        if not isinstance(other, Operation):
            return NotImplemented
        return self.op == other.op and isequal(self.args, other.args)

    def __hash__(self):
        return hash((self.op, len(self.args)))

    def __repr__(self) -> str:
        name = getattr(self.op, "__name__", repr(self.op))
        return f"{name}({', '.join(repr(a) for a in self.args)})"


def is_symbolic(value: Any) -> bool:
    """True if value is, or contains, an unresolved symbolic node."""
    if isinstance(value, Symbolic):
        return True
    if isinstance(value, (list, tuple)):
        return any(is_symbolic(v) for v in value)
    if isinstance(value, np.ndarray) and value.dtype == object:
        return any(is_symbolic(v) for v in value.flat)
    return False


def isequal(a: Any, b: Any) -> bool:
    """Structural equality that never raises on array comparisons."""
    if a is b:
        return True
    if isinstance(a, Symbolic) or isinstance(b, Symbolic):
        return type(a) is type(b) and a == b
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(isequal(x, y) for x, y in zip(a, b))
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        a, b = np.asarray(a), np.asarray(b)
        if a.shape != b.shape:
            return False
        return all(isequal(x, y) for x, y in zip(a.flat, b.flat))
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return False


def element_of(value: Any, index: Tuple[int, ...]) -> Any:
    """Index an array-like value with a tuple index."""
    if isinstance(value, Symbolic):
        return Operation(element_of, (value, index))
    return np.asarray(value, dtype=object if is_symbolic(value) else None)[index]


def substitute(expr: Any, bindings: Mapping[Any, Any]) -> Any:
    """Default evaluator: substitute bound values once and fold operations.

    Args:
        expr: Literal value, symbolic node, or a list/tuple/array of them
        bindings: Mapping from symbolic nodes to values

    Returns:
        The expression with every bound node replaced; operations whose
        arguments all became concrete are evaluated.
    """
    if isinstance(expr, Symbolic):
        return expr._substitute(bindings)
    if isinstance(expr, (list, tuple)):
        items = [substitute(item, bindings) for item in expr]
        return type(expr)(items)
    if isinstance(expr, np.ndarray) and expr.dtype == object:
        items = [substitute(item, bindings) for item in expr.flat]
        out = np.empty(len(items), dtype=object)
        for i, item in enumerate(items):
            out[i] = item
        out = out.reshape(expr.shape)
        if not is_symbolic(out):
            return np.array(out.tolist())
        return out
    return expr


def fixpoint_sub(
    expr: Any,
    bindings: Mapping[Any, Any],
    evaluator: Evaluator = substitute,
    max_iterations: Optional[int] = None,
) -> Any:
    """Apply an evaluator repeatedly until the value is concrete.

    Stops as soon as the value contains no symbolic nodes, or when a pass
    makes no progress (the value is returned still symbolic; the caller
    decides whether that is an error).

    Args:
        expr: Value to resolve
        bindings: Mapping from symbolic nodes to values or expressions
        evaluator: One substitution pass, `evaluator(expr, bindings)`
        max_iterations: Upper bound on passes (default: len(bindings) + 1)

    Returns:
        The resolved value, or the last partially substituted expression
    """
    limit = max_iterations if max_iterations is not None else len(bindings) + 1
    current = expr
    for _ in range(limit):
        if not is_symbolic(current):
            return current
        updated = evaluator(current, bindings)
        if isequal(updated, current):
            return updated
        current = updated
    return current
