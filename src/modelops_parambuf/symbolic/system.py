"""System description consumed by the layout planner.

A SystemSpec is the value universe of one model: its parameters and
unknowns, how discrete values are partitioned across clocks, which values
are derived from others through equations, and the default values.

The specification is immutable. Its IndexCache is built on first access
and reused by every ParameterStore created for the system.
"""

from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..constants import NAMESPACE_SEPARATOR
from .clocks import EventClock
from .variables import Variable


@dataclass(frozen=True)
class Equation:
    """`lhs ~ rhs`: the value of lhs is given by the expression rhs."""
    lhs: Any
    rhs: Any

    def __repr__(self) -> str:
        return f"{self.lhs} ~ {self.rhs!r}"


@dataclass(frozen=True)
class DiscretePartition:
    """Discrete values updated together on one clock.

    Attributes:
        clock: Clock driving the partition
        inputs: Parameters read by the partition
        unknowns: Parameters holding the partition's discrete state
    """
    clock: Any
    inputs: Tuple[Any, ...] = ()
    unknowns: Tuple[Any, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "unknowns", tuple(self.unknowns))

    @property
    def members(self) -> Tuple[Any, ...]:
        return self.inputs + self.unknowns


@dataclass(frozen=True, eq=False)
class SystemSpec:
    """Complete value universe of a model.

    Attributes:
        name: System name, used for namespaced aliases ("name.k")
        parameters: Every parameter (Variables or scalarized ElementRefs)
        unknowns: State variables, indexed separately from parameters
        discrete_partitions: Clock partitions; partition i has clock id i
        event_affected: Parameters modified by event callbacks; they share
            one extra clock id after the partitions
        parameter_dependencies: Equations defining parameters from others
        observed: Equations defining observed values (lowest-precedence
            bindings during construction)
        defaults: Default values or expressions, keyed by variable or alias
        independent_variable: The time variable, bound by `t0`
    """
    name: str
    parameters: Sequence[Any] = ()
    unknowns: Sequence[Any] = ()
    discrete_partitions: Sequence[DiscretePartition] = ()
    event_affected: Sequence[Any] = ()
    parameter_dependencies: Sequence[Equation] = ()
    observed: Sequence[Equation] = ()
    defaults: Mapping[Any, Any] = field(default_factory=dict)
    independent_variable: Optional[Variable] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("SystemSpec name cannot be empty")
        for attr in ("parameters", "unknowns", "discrete_partitions", "event_affected",
                     "parameter_dependencies", "observed"):
            object.__setattr__(self, attr, tuple(getattr(self, attr)))
        object.__setattr__(self, "defaults", MappingProxyType(dict(self.defaults)))

    @cached_property
    def index_cache(self):
        """Layout of this system's buffers, built once."""
        from ..buffers.index_cache import IndexCache
        return IndexCache.from_system(self)

    def clocks(self) -> List[Any]:
        """Clock of every discrete clock id, in id order."""
        clocks = [partition.clock for partition in self.discrete_partitions]
        if self.event_affected:
            clocks.append(EventClock())
        return clocks

    def namespaced(self, name: str) -> str:
        """Alias of a name inside this system's namespace."""
        return f"{self.name}{NAMESPACE_SEPARATOR}{name}"

    def __repr__(self) -> str:
        return (
            f"SystemSpec({self.name!r}, {len(self.parameters)} parameters, "
            f"{len(self.unknowns)} unknowns, {len(self.discrete_partitions)} partitions)"
        )
