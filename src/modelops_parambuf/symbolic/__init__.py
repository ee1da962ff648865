"""Symbolic boundary of the buffer layer.

Identities, minimal expressions, clocks and the system description that the
layout planner consumes.
"""

from .expressions import (
    Symbolic,
    Operation,
    substitute,
    fixpoint_sub,
    is_symbolic,
    isequal,
)
from .variables import (
    Real,
    ArrayType,
    Variable,
    ElementRef,
    parse_reference,
    is_real_type,
    is_float_type,
    canonical_dtype,
    type_name,
)
from .clocks import PeriodicClock, SolverStepClock, EventClock
from .system import Equation, DiscretePartition, SystemSpec

__all__ = [
    # Expressions
    "Symbolic",
    "Operation",
    "substitute",
    "fixpoint_sub",
    "is_symbolic",
    "isequal",
    # Variables
    "Real",
    "ArrayType",
    "Variable",
    "ElementRef",
    "parse_reference",
    "is_real_type",
    "is_float_type",
    "canonical_dtype",
    "type_name",
    # Clocks
    "PeriodicClock",
    "SolverStepClock",
    "EventClock",
    # System
    "Equation",
    "DiscretePartition",
    "SystemSpec",
]
