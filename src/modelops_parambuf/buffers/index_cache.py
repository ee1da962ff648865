"""IndexCache: layout planning for parameter buffers.

The IndexCache is built once per system. It classifies every value of the
universe into a Portion, groups values into homogeneous buffers, assigns
offsets, and records a locator for every alias of every value:

- tunable values share one flat buffer
- discrete values are grouped by clock, then by element type; every clock
  carries one buffer per element type used by any clock (possibly empty)
- constants and nonnumeric values are grouped by element type

Values defined by parameter dependency equations get no slot; they are
resolved from the other values when read.

The cache is never mutated after construction and can be shared freely.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import polars as pl

from ..constants import NAMESPACE_SEPARATOR
from ..errors import InvalidLocatorError, LayoutError, UnhandledPortionError
from ..symbolic.expressions import Symbolic
from ..symbolic.variables import (
    ElementRef,
    Real,
    Variable,
    is_float_type,
    is_real_type,
    parse_reference,
    type_name,
)
from .templates import (
    BufferTemplate,
    ParameterIndex,
    ParameterTimeseriesIndex,
    Portion,
    TunableRange,
)

logger = logging.getLogger(__name__)

# Placeholder filling unused slots in reorder_parameters
DEFAULT_PLACEHOLDER = Variable("DEF")


def classify_parameter(sym) -> Portion:
    """Portion of a non-discrete parameter.

    Tunable if real-valued, marked tunable, of known shape and with a float
    (or abstract Real) element type; otherwise constant if real-valued;
    otherwise nonnumeric.
    """
    if is_real_type(sym.dtype):
        if sym.tunable and sym.has_known_shape and is_float_type(sym.dtype):
            return Portion.TUNABLE
        return Portion.CONSTANTS
    return Portion.NONNUMERIC


def alias_names(system_name: str, sym) -> List[str]:
    """Every string alias of a value: name, term, and their namespaced forms."""
    names = [sym.name]
    if sym.term is not None and sym.term != sym.name:
        names.append(sym.term)
    names.extend([f"{system_name}{NAMESPACE_SEPARATOR}{n}" for n in list(names)])
    return names


def _group_by_type(buffers: Dict[Any, List[Any]], sym) -> None:
    buffers.setdefault(sym.slot_type, []).append(sym)


def _sizes_and_idxs(buffers: Dict[Any, List[Any]]) -> Tuple[Dict[Any, Tuple[int, int]], Tuple[BufferTemplate, ...]]:
    idxs = {}
    sizes = []
    for i, (btype, members) in enumerate(buffers.items()):
        for j, sym in enumerate(members):
            idxs[sym] = (i, j)
        sizes.append(BufferTemplate(btype, len(members)))
    return idxs, tuple(sizes)


@dataclass(frozen=True, eq=False)
class IndexCache:
    """Static buffer layout and locator maps of one system.

    Attributes:
        system_name: Name used for namespaced aliases
        unknown_idx: Unknown -> int index, or ndarray of indices for arrays
        discrete_idx: Discrete parameter -> (clock, group, offset)
        tunable_idx: Tunable parameter -> int offset or TunableRange
        constant_idx: Constant parameter -> (group, offset)
        nonnumeric_idx: Nonnumeric parameter -> (group, offset)
        observed_syms: Left-hand sides of observed equations
        dependent_pars: Left-hand sides of parameter dependency equations
        discrete_buffer_sizes: Per clock, one template per discrete type
        tunable_buffer_size: Template of the flat tunable buffer
        constant_buffer_sizes: One template per constant type
        nonnumeric_buffer_sizes: One template per nonnumeric type
        symbol_to_variable: Alias string -> canonical value
    """
    system_name: str
    unknown_idx: Mapping[Any, Any]
    discrete_idx: Mapping[Any, Tuple[int, int, int]]
    tunable_idx: Mapping[Any, Any]
    constant_idx: Mapping[Any, Tuple[int, int]]
    nonnumeric_idx: Mapping[Any, Tuple[int, int]]
    observed_syms: FrozenSet[Any]
    dependent_pars: FrozenSet[Any]
    discrete_buffer_sizes: Tuple[Tuple[BufferTemplate, ...], ...]
    tunable_buffer_size: BufferTemplate
    constant_buffer_sizes: Tuple[BufferTemplate, ...]
    nonnumeric_buffer_sizes: Tuple[BufferTemplate, ...]
    symbol_to_variable: Mapping[str, Any]
    _linear_offsets: Mapping[Portion, int] = field(init=False, repr=False)

    def __post_init__(self):
        for attr in ("unknown_idx", "discrete_idx", "tunable_idx", "constant_idx",
                     "nonnumeric_idx", "symbol_to_variable"):
            object.__setattr__(self, attr, MappingProxyType(dict(getattr(self, attr))))
        object.__setattr__(self, "observed_syms", frozenset(self.observed_syms))
        object.__setattr__(self, "dependent_pars", frozenset(self.dependent_pars))

        # Linear buffer numbering: tunable (if non-empty), discrete clock by
        # clock, constants, nonnumerics
        offsets = {}
        position = 0
        offsets[Portion.TUNABLE] = position
        if self.tunable_buffer_size.length > 0:
            position += 1
        offsets[Portion.DISCRETE] = position
        position += self.discrete_types_per_clock * len(self.discrete_buffer_sizes)
        offsets[Portion.CONSTANTS] = position
        position += len(self.constant_buffer_sizes)
        offsets[Portion.NONNUMERIC] = position
        object.__setattr__(self, "_linear_offsets", MappingProxyType(offsets))

    @classmethod
    def from_system(cls, system) -> "IndexCache":
        """Plan the buffer layout of a system.

        Args:
            system: SystemSpec describing the value universe

        Returns:
            The immutable layout

        Raises:
            LayoutError: If the universe cannot be laid out (name clashes,
                discrete or derived values that are not parameters, values
                assigned to more than one clock)
        """
        params = list(system.parameters)
        param_set = set(params)
        if len(param_set) != len(params):
            duplicates = sorted({str(p) for p in params if params.count(p) > 1})
            raise LayoutError(f"Duplicate parameters: {duplicates}")

        symbol_to_variable: Dict[str, Any] = {}

        def register_names(sym) -> None:
            for alias in alias_names(system.name, sym):
                existing = symbol_to_variable.get(alias)
                if existing is not None and existing != sym:
                    raise LayoutError(f"Name {alias!r} refers to both {existing!r} and {sym!r}")
                symbol_to_variable[alias] = sym

        # Unknowns
        unknown_idx: Dict[Any, Any] = {}
        position = 0
        for sym in system.unknowns:
            if sym.is_array:
                if not sym.has_known_shape:
                    raise LayoutError(f"Unknown {sym} must have a known shape")
                idxs = np.arange(position, position + sym.size).reshape(sym.shape)
                idxs.setflags(write=False)
                unknown_idx[sym] = idxs
                position += sym.size
            else:
                unknown_idx[sym] = position
                position += 1
            register_names(sym)
        for sym in system.unknowns:
            if not isinstance(sym, ElementRef):
                continue
            parent = sym.parent
            if parent in unknown_idx or not parent.has_known_shape:
                continue
            elements = parent.elements()
            if not all(el in unknown_idx for el in elements):
                continue
            idxs = np.array([unknown_idx[el] for el in elements]).reshape(parent.shape)
            idxs.setflags(write=False)
            unknown_idx[parent] = idxs
            register_names(parent)

        observed_syms = set()
        for eq in system.observed:
            if isinstance(eq.lhs, Symbolic):
                observed_syms.add(eq.lhs)
                register_names(eq.lhs)

        dependent_pars = set()
        for eq in system.parameter_dependencies:
            if eq.lhs not in param_set:
                raise LayoutError(f"Dependent parameter {eq.lhs} is not a parameter of {system.name}")
            dependent_pars.add(eq.lhs)

        # Discrete partitions, then event-affected parameters on one extra clock
        disc_clocks: Dict[Any, int] = {}
        disc_buffers: Dict[int, Dict[Any, List[Any]]] = {}
        for clock, partition in enumerate(system.discrete_partitions):
            disc_buffers[clock] = {}
            for sym in partition.members:
                if sym not in param_set:
                    raise LayoutError(f"Discrete partition {clock} member {sym} is not a parameter")
                if sym in disc_clocks:
                    raise LayoutError(
                        f"Parameter {sym} belongs to clocks {disc_clocks[sym]} and {clock}"
                    )
                disc_clocks[sym] = clock
                _group_by_type(disc_buffers[clock], sym)
        if system.event_affected:
            event_clock = len(system.discrete_partitions)
            disc_buffers[event_clock] = {}
            for sym in system.event_affected:
                if sym not in param_set:
                    raise LayoutError(f"Event-affected value {sym} is not a parameter")
                if sym in disc_clocks:
                    logger.debug(f"{sym} already updated on clock {disc_clocks[sym]}; keeping it there")
                    continue
                disc_clocks[sym] = event_clock
                _group_by_type(disc_buffers[event_clock], sym)

        derived_discrete = sorted(str(p) for p in dependent_pars if p in disc_clocks)
        if derived_discrete:
            raise LayoutError(f"Dependent parameters cannot be discrete: {derived_discrete}")

        tunables: List[Any] = []
        constant_buffers: Dict[Any, List[Any]] = {}
        nonnumeric_buffers: Dict[Any, List[Any]] = {}
        for p in params:
            register_names(p)
            if p in disc_clocks or p in dependent_pars:
                continue
            portion = classify_parameter(p)
            if portion is Portion.TUNABLE:
                tunables.append(p)
            elif portion is Portion.CONSTANTS:
                _group_by_type(constant_buffers, p)
            else:
                _group_by_type(nonnumeric_buffers, p)

        # Union of types across all clocks, in first-seen order
        disc_types: List[Any] = []
        for clock in sorted(disc_buffers):
            for btype in disc_buffers[clock]:
                if btype not in disc_types:
                    disc_types.append(btype)
        discrete_idx: Dict[Any, Tuple[int, int, int]] = {}
        discrete_sizes = []
        for clock in sorted(disc_buffers):
            templates = []
            for group, btype in enumerate(disc_types):
                members = disc_buffers[clock].get(btype, [])
                templates.append(BufferTemplate(btype, len(members)))
                for offset, sym in enumerate(members):
                    discrete_idx[sym] = (clock, group, offset)
            discrete_sizes.append(tuple(templates))

        constant_idx, constant_sizes = _sizes_and_idxs(constant_buffers)
        nonnumeric_idx, nonnumeric_sizes = _sizes_and_idxs(nonnumeric_buffers)

        tunable_idx: Dict[Any, Any] = {}
        tunable_size = 0
        for p in tunables:
            if p.is_array:
                tunable_idx[p] = TunableRange(tunable_size, p.shape)
                tunable_size += p.size
            else:
                tunable_idx[p] = tunable_size
                tunable_size += 1

        if system.independent_variable is not None:
            register_names(system.independent_variable)

        logger.debug(
            f"Planned layout for {system.name}: {tunable_size} tunable slots, "
            f"{len(discrete_sizes)} clocks x {len(disc_types)} discrete types, "
            f"{len(constant_sizes)} constant and {len(nonnumeric_sizes)} nonnumeric buffers, "
            f"{len(dependent_pars)} dependent parameters"
        )

        return cls(
            system_name=system.name,
            unknown_idx=unknown_idx,
            discrete_idx=discrete_idx,
            tunable_idx=tunable_idx,
            constant_idx=constant_idx,
            nonnumeric_idx=nonnumeric_idx,
            observed_syms=observed_syms,
            dependent_pars=dependent_pars,
            discrete_buffer_sizes=tuple(discrete_sizes),
            tunable_buffer_size=BufferTemplate(Real, tunable_size),
            constant_buffer_sizes=constant_sizes,
            nonnumeric_buffer_sizes=nonnumeric_sizes,
            symbol_to_variable=symbol_to_variable,
        )

    # ------------------------------------------------------------------
    # Alias resolution
    # ------------------------------------------------------------------

    def lookup(self, sym) -> Optional[Any]:
        """Resolve any alias to the canonical Variable or ElementRef.

        Accepts the value itself, its name, its alternate term, their
        namespaced forms, element references and "name[i]" strings.

        Returns:
            The canonical value, or None if the alias is unknown
        """
        if isinstance(sym, str):
            found = self.symbol_to_variable.get(sym)
            if found is not None:
                return found
            reference = parse_reference(sym)
            if reference is None:
                return None
            name, index = reference
            parent = self.symbol_to_variable.get(name)
            if not isinstance(parent, Variable) or not parent.is_array:
                return None
            try:
                return parent[index]
            except IndexError:
                return None
        if isinstance(sym, Variable):
            return self.symbol_to_variable.get(sym.name, sym)
        if isinstance(sym, ElementRef):
            parent = self.lookup(sym.parent)
            if parent is sym.parent or not isinstance(parent, Variable):
                return sym
            return ElementRef(parent, sym.index)
        return sym

    def _check_index_map(self, idxmap: Mapping[Any, Any], sym) -> Optional[Any]:
        sym = self.lookup(sym)
        if sym is None:
            return None
        try:
            return idxmap.get(sym)
        except TypeError:
            return None

    # ------------------------------------------------------------------
    # Unknowns
    # ------------------------------------------------------------------

    def is_variable(self, sym) -> bool:
        return self.variable_index(sym) is not None

    def variable_index(self, sym) -> Optional[Any]:
        """Index of an unknown (int, or ndarray of ints for arrays)."""
        idx = self._check_index_map(self.unknown_idx, sym)
        if idx is not None:
            return idx
        sym = self.lookup(sym)
        if isinstance(sym, ElementRef):
            parent_idx = self._check_index_map(self.unknown_idx, sym.parent)
            if isinstance(parent_idx, np.ndarray):
                return int(parent_idx[sym.index])
        return None

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def is_parameter(self, sym) -> bool:
        return self.parameter_index(sym) is not None

    def parameter_index(self, sym) -> Optional[ParameterIndex]:
        """Locator of a stored parameter, or None.

        Element references of array parameters resolve to the element
        inside the array's slot.
        """
        sym = self.lookup(sym)
        if sym is None:
            return None
        validate_size = isinstance(sym, Variable) and sym.is_array and sym.has_known_shape
        for portion, idxmap in (
            (Portion.TUNABLE, self.tunable_idx),
            (Portion.DISCRETE, self.discrete_idx),
            (Portion.CONSTANTS, self.constant_idx),
            (Portion.NONNUMERIC, self.nonnumeric_idx),
        ):
            idx = self._check_index_map(idxmap, sym)
            if idx is not None:
                return ParameterIndex(portion, idx, validate_size)
        if isinstance(sym, ElementRef):
            parent_idx = self.parameter_index(sym.parent)
            if parent_idx is not None:
                return parent_idx.element(sym.index)
        return None

    def is_timeseries_parameter(self, sym) -> bool:
        return self._check_index_map(self.discrete_idx, sym) is not None

    def timeseries_parameter_index(self, sym) -> Optional[ParameterTimeseriesIndex]:
        """Locator of a discrete parameter within its clock's buffers."""
        idx = self._check_index_map(self.discrete_idx, sym)
        if idx is None:
            return None
        clock, *partition = idx
        return ParameterTimeseriesIndex(clock, tuple(partition))

    def is_observed(self, sym) -> bool:
        return self.lookup(sym) in self.observed_syms

    def is_dependent(self, sym) -> bool:
        return self.lookup(sym) in self.dependent_pars

    # ------------------------------------------------------------------
    # Buffer numbering
    # ------------------------------------------------------------------

    @property
    def discrete_types_per_clock(self) -> int:
        if not self.discrete_buffer_sizes:
            return 0
        return len(self.discrete_buffer_sizes[0])

    @property
    def buffer_count(self) -> int:
        """Number of buffers a store built from this layout iterates over."""
        return self._linear_offsets[Portion.NONNUMERIC] + len(self.nonnumeric_buffer_sizes)

    def iterated_buffer_index(self, pidx: ParameterIndex) -> int:
        """Position of the buffer holding `pidx` in the store's linear numbering."""
        portion = pidx.portion
        base = self._linear_offsets.get(portion)
        if portion is Portion.TUNABLE:
            return base
        if portion is Portion.DISCRETE:
            clock, group = pidx.idx[0], pidx.idx[1]
            return base + self.discrete_types_per_clock * clock + group
        if portion in (Portion.CONSTANTS, Portion.NONNUMERIC):
            return base + pidx.idx[0]
        raise UnhandledPortionError(portion)

    def reorder_parameters(self, ps: Iterable[Any], drop_missing: bool = False) -> Tuple[List[Any], ...]:
        """Arrange parameters in buffer order.

        Returns one list per buffer (in linear numbering order), with every
        given parameter at its slot and DEFAULT_PLACEHOLDER elsewhere.

        Args:
            ps: Parameters (or aliases) to place
            drop_missing: Remove placeholders from the result

        Raises:
            InvalidLocatorError: If a parameter has no slot in this layout
        """
        ps = list(ps)
        if not ps:
            return ()
        tunable_buf = (
            [[DEFAULT_PLACEHOLDER] * self.tunable_buffer_size.length]
            if self.tunable_buffer_size.length > 0 else []
        )
        disc_buf = [
            [DEFAULT_PLACEHOLDER] * temp.length
            for clock in self.discrete_buffer_sizes for temp in clock
        ]
        const_buf = [[DEFAULT_PLACEHOLDER] * temp.length for temp in self.constant_buffer_sizes]
        nonnumeric_buf = [[DEFAULT_PLACEHOLDER] * temp.length for temp in self.nonnumeric_buffer_sizes]

        for p in ps:
            sym = self.lookup(p)
            pidx = self.parameter_index(sym) if sym is not None else None
            if pidx is None:
                raise InvalidLocatorError(f"Invalid parameter {p}")
            if pidx.portion is Portion.TUNABLE:
                idx = pidx.idx
                if isinstance(idx, TunableRange):
                    tunable_buf[0][idx.as_slice()] = sym.elements()
                else:
                    tunable_buf[0][idx] = sym
            elif pidx.portion is Portion.DISCRETE:
                clock, group, offset = pidx.idx[:3]
                disc_buf[self.discrete_types_per_clock * clock + group][offset] = sym
            elif pidx.portion is Portion.CONSTANTS:
                group, offset = pidx.idx[:2]
                const_buf[group][offset] = sym
            elif pidx.portion is Portion.NONNUMERIC:
                group, offset = pidx.idx[:2]
                nonnumeric_buf[group][offset] = sym
            else:
                raise UnhandledPortionError(pidx.portion)

        result = tunable_buf + disc_buf + const_buf + nonnumeric_buf
        if drop_missing:
            result = [[s for s in buf if s is not DEFAULT_PLACEHOLDER] for buf in result]
        if all(len(buf) == 0 for buf in result):
            return ()
        return tuple(result)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def layout_frame(self) -> pl.DataFrame:
        """Layout table: one row per stored parameter.

        Columns: name, portion, clock, group, offset, length, type.
        """
        rows = []
        for sym, idx in self.tunable_idx.items():
            if isinstance(idx, TunableRange):
                rows.append((sym.name, Portion.TUNABLE.value, None, None, idx.start, idx.size,
                             type_name(sym.dtype)))
            else:
                rows.append((sym.name, Portion.TUNABLE.value, None, None, idx, 1, type_name(sym.dtype)))
        for sym, (clock, group, offset) in self.discrete_idx.items():
            rows.append((sym.name, Portion.DISCRETE.value, clock, group, offset, _slot_length(sym),
                         type_name(sym.slot_type)))
        for portion, idxmap in ((Portion.CONSTANTS, self.constant_idx),
                                (Portion.NONNUMERIC, self.nonnumeric_idx)):
            for sym, (group, offset) in idxmap.items():
                rows.append((sym.name, portion.value, None, group, offset, _slot_length(sym),
                             type_name(sym.slot_type)))
        return pl.DataFrame(
            rows,
            schema={
                "name": pl.Utf8,
                "portion": pl.Utf8,
                "clock": pl.Int64,
                "group": pl.Int64,
                "offset": pl.Int64,
                "length": pl.Int64,
                "type": pl.Utf8,
            },
            orient="row",
        )

    def __repr__(self) -> str:
        return (
            f"IndexCache({self.system_name!r}, tunable={self.tunable_buffer_size.length}, "
            f"clocks={len(self.discrete_buffer_sizes)}, constants={len(self.constant_buffer_sizes)}, "
            f"nonnumeric={len(self.nonnumeric_buffer_sizes)})"
        )


def _slot_length(sym) -> Optional[int]:
    return sym.size if sym.is_array else 1
