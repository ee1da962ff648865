"""ParameterStore: runtime container of typed parameter buffers.

A store owns the concrete values of one system, laid out by the system's
IndexCache:

- tunable: one flat 1-D ndarray
- discrete: one list per clock, each holding one buffer per discrete type
- constant: one buffer per constant type
- nonnumeric: one plain list per nonnumeric type

Values are addressed with ParameterIndex locators obtained from the
IndexCache. Locators are independent of the store and remain valid for every
store built from the same layout.

Construction validates everything (missing values, unresolved expressions,
declared types and shapes) before any buffer is allocated, so a failed
construction never produces a partially populated store.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Sequence

import numpy as np

from ..constants import DEFAULT_FLOAT_DTYPE
from ..errors import (
    InvalidLocatorError,
    MissingParametersError,
    ParameterSizeError,
    UnhandledPortionError,
    UnresolvedValueError,
    shape_of,
)
from ..symbolic.expressions import Evaluator, element_of, fixpoint_sub, is_symbolic, substitute
from ..symbolic.variables import ElementRef, Variable
from .templates import ParameterIndex, Portion, TunableRange
from .transcoding import (
    UNSET,
    allocate_buffer,
    coerce_array,
    coerce_element,
    copy_buffer,
    is_unset,
    narrow_buffer_type,
    symconvert,
    values_equal,
)

logger = logging.getLogger(__name__)


def _index_into(container: Any, element: Sequence[int]) -> Any:
    if isinstance(container, np.ndarray):
        return container[tuple(element)]
    for i in element:
        container = container[i]
    return container


def _assign_into(container: Any, element: Sequence[int], value: Any) -> None:
    if isinstance(container, np.ndarray):
        container[tuple(element)] = value
        return
    for i in element[:-1]:
        container = container[i]
    container[element[-1]] = value


def _canonical_map(ic, values: Mapping[Any, Any], source: str) -> Dict[Any, Any]:
    """Re-key a value map by canonical identities."""
    out = {}
    for key, value in values.items():
        canonical = ic.lookup(key)
        if canonical is None:
            logger.debug(f"Ignoring unknown {source} key {key!r}")
            continue
        out[canonical] = value
    return out


def _as_mapping(values: Any, universe: Sequence[Any], source: str) -> Mapping[Any, Any]:
    if values is None:
        return {}
    if isinstance(values, Mapping):
        return values
    values = list(values)
    if not values:
        return {}
    if len(values) != len(universe):
        raise ValueError(
            f"Expected {len(universe)} {source} values in declaration order, got {len(values)}"
        )
    return dict(zip(universe, values))


def _resolve(sym: Any, bindings: Mapping[Any, Any]) -> Any:
    """Value bound to sym directly, or through its parent array.

    Returns UNSET when nothing is bound; None is a valid nonnumeric payload.
    """
    if sym in bindings:
        return bindings[sym]
    if isinstance(sym, ElementRef):
        if sym.parent in bindings:
            return element_of(bindings[sym.parent], sym.index)
        return UNSET
    if isinstance(sym, Variable) and sym.is_array and sym.has_known_shape:
        elements = sym.elements()
        if elements and all(el in bindings for el in elements):
            values = [bindings[el] for el in elements]
            dtype = object if is_symbolic(values) else None
            return np.array(values, dtype=dtype).reshape(sym.shape)
    return UNSET


@dataclass(eq=False)
class ParameterStore:
    """Typed buffers holding the concrete values of one system.

    Attributes:
        tunable: Flat buffer of tunable values (float64 unless replaced)
        discrete: Per clock, one buffer per discrete type
        constant: One buffer per constant type
        nonnumeric: One list per nonnumeric type
    """
    tunable: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=DEFAULT_FLOAT_DTYPE))
    discrete: List[List[Any]] = field(default_factory=list)
    constant: List[Any] = field(default_factory=list)
    nonnumeric: List[Any] = field(default_factory=list)

    def __post_init__(self):
        self.discrete = [list(clock) for clock in self.discrete]
        self.constant = list(self.constant)
        self.nonnumeric = list(self.nonnumeric)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_system(
        cls,
        system,
        p: Any = None,
        u0: Any = None,
        t0: Any = None,
        evaluator: Evaluator = substitute,
    ) -> "ParameterStore":
        """Build a store from a system and value maps.

        Sources are merged with later ones winning: observed equations,
        system defaults, `u0`, `p`. `t0` binds the independent variable.
        Values may be expressions over other values; they are resolved with
        `fixpoint_sub` using `evaluator`.

        Args:
            system: SystemSpec whose IndexCache defines the layout
            p: Parameter values, as a mapping keyed by variables or aliases,
                or a sequence in the order of `system.parameters`
            u0: Unknown values, as a mapping or a sequence in the order of
                `system.unknowns`
            t0: Initial time
            evaluator: One substitution pass, `evaluator(expr, bindings)`

        Returns:
            A fully populated store

        Raises:
            MissingParametersError: If some stored value cannot be resolved
            UnresolvedValueError: If a value stays symbolic after substitution
            ParameterTypeError: If a value does not fit its declared type
            ParameterSizeError: If an array value has the wrong shape
        """
        ic = system.index_cache
        universe = list(system.parameters)

        bigdefs: Dict[Any, Any] = {}
        observed = {eq.lhs: eq.rhs for eq in system.observed}
        bigdefs.update(_canonical_map(ic, observed, "observed"))
        bigdefs.update(_canonical_map(ic, system.defaults, "default"))
        bigdefs.update(_canonical_map(ic, _as_mapping(u0, system.unknowns, "unknown"), "u0"))
        bigdefs.update(_canonical_map(ic, _as_mapping(p, universe, "parameter"), "parameter"))
        if t0 is not None and system.independent_variable is not None:
            bigdefs[system.independent_variable] = t0

        resolved: Dict[Any, Any] = {}
        missing: List[Any] = []
        for sym in universe:
            value = _resolve(sym, bigdefs)
            if is_unset(value):
                if sym not in ic.dependent_pars:
                    missing.append(sym)
                continue
            resolved[sym] = value

        for eq in system.parameter_dependencies:
            resolved[eq.lhs] = eq.rhs

        if missing:
            raise MissingParametersError(missing)

        bindings = dict(bigdefs)
        bindings.update(resolved)
        values: Dict[Any, Any] = {}
        for sym, value in resolved.items():
            value = fixpoint_sub(value, bindings, evaluator)
            if is_symbolic(value):
                raise UnresolvedValueError(sym, value)
            value = symconvert(sym.dtype, value, sym)
            if isinstance(sym, Variable) and sym.is_array and sym.has_known_shape:
                if shape_of(value) != sym.shape:
                    raise ParameterSizeError(sym.shape, shape_of(value), sym)
            values[sym] = value

        store = cls(
            tunable=allocate_buffer(ic.tunable_buffer_size),
            discrete=[[allocate_buffer(t) for t in clock] for clock in ic.discrete_buffer_sizes],
            constant=[allocate_buffer(t) for t in ic.constant_buffer_sizes],
            nonnumeric=[allocate_buffer(t) for t in ic.nonnumeric_buffer_sizes],
        )
        for sym, value in values.items():
            if sym in ic.dependent_pars:
                continue
            pidx = ic.parameter_index(sym)
            if pidx is not None:
                store._set_parameter_unchecked(value, pidx)
                continue
            # Array whose elements are stored individually
            if not (isinstance(sym, Variable) and sym.is_array):
                raise InvalidLocatorError(f"No slot for parameter {sym}")
            arr = np.asarray(value, dtype=object)
            for index in np.ndindex(*arr.shape):
                element_idx = ic.parameter_index(sym[index])
                if element_idx is None:
                    raise InvalidLocatorError(f"No slot for element {sym[index]}")
                store._set_parameter_unchecked(arr[index], element_idx)

        store.tunable = narrow_buffer_type(store.tunable, fallback=ic.tunable_buffer_size.type)
        store.discrete = [
            [narrow_buffer_type(buf, fallback=t.type) for buf, t in zip(clock, templates)]
            for clock, templates in zip(store.discrete, ic.discrete_buffer_sizes)
        ]
        store.constant = [
            narrow_buffer_type(buf, fallback=t.type)
            for buf, t in zip(store.constant, ic.constant_buffer_sizes)
        ]
        # Nonnumeric buffers keep their heterogeneous contents

        logger.debug(
            f"Built parameter store for {system.name}: {len(store.tunable)} tunable values, "
            f"{len(store)} buffers"
        )
        return store

    # ------------------------------------------------------------------
    # Locator access
    # ------------------------------------------------------------------

    def _slot(self, pidx: ParameterIndex):
        """(buffer, offset, element path) addressed by a non-tunable locator."""
        portion = pidx.portion
        try:
            if portion is Portion.DISCRETE:
                clock, group, offset, *element = pidx.idx
                return self.discrete[clock][group], offset, element
            if portion is Portion.CONSTANTS:
                group, offset, *element = pidx.idx
                return self.constant[group], offset, element
            if portion is Portion.NONNUMERIC:
                group, offset, *element = pidx.idx
                return self.nonnumeric[group], offset, element
        except (IndexError, TypeError, ValueError) as e:
            raise InvalidLocatorError(f"Locator {pidx} does not address this store") from e
        raise UnhandledPortionError(portion)

    def parameter_values(self, pidx: ParameterIndex) -> Any:
        """Value at a locator; array slices of the tunable buffer are views."""
        try:
            if pidx.portion is Portion.TUNABLE:
                idx = pidx.idx
                if isinstance(idx, TunableRange):
                    if idx.stop > len(self.tunable):
                        raise IndexError(idx.stop)
                    return self.tunable[idx.as_slice()].reshape(idx.shape)
                return self.tunable[idx]
            buf, offset, element = self._slot(pidx)
            if not element:
                return buf[offset]
            return _index_into(buf[offset], element)
        except (IndexError, TypeError, KeyError) as e:
            raise InvalidLocatorError(f"Locator {pidx} does not address this store") from e

    def set_parameter(self, value: Any, pidx: ParameterIndex) -> None:
        """Write a value at a locator.

        Numeric values must be exactly representable in the buffer's
        element type. With `pidx.validate_size`, array values must match the
        slot's shape.

        Raises:
            ParameterSizeError: If the shape of an array value is wrong
            ParameterTypeError: If the value does not fit the buffer
            InvalidLocatorError: If the locator does not address this store
        """
        if pidx.portion is Portion.TUNABLE:
            idx = pidx.idx
            if isinstance(idx, TunableRange):
                if pidx.validate_size and shape_of(value) != idx.shape:
                    raise ParameterSizeError(idx.shape, shape_of(value))
                if np.size(value) != idx.size:
                    raise ParameterSizeError(idx.shape, shape_of(value))
                self.tunable[idx.as_slice()] = coerce_array(self.tunable.dtype, np.ravel(value))
            else:
                if not 0 <= idx < len(self.tunable):
                    raise InvalidLocatorError(f"Locator {pidx} does not address this store")
                self.tunable[idx] = coerce_element(self.tunable.dtype, value)
            return

        buf, offset, element = self._slot(pidx)
        if not 0 <= offset < len(buf):
            raise InvalidLocatorError(f"Locator {pidx} does not address this store")
        if pidx.portion is Portion.NONNUMERIC:
            if element:
                _assign_into(buf[offset], element, value)
            else:
                buf[offset] = value
            return
        if isinstance(buf, np.ndarray):
            if element:
                raise InvalidLocatorError(f"Locator {pidx} indexes into a scalar slot")
            buf[offset] = coerce_element(buf.dtype, value)
            return
        # Array slot
        current = buf[offset]
        if element:
            current[tuple(element)] = coerce_element(current.dtype, value)
            return
        if pidx.validate_size and shape_of(value) != current.shape:
            raise ParameterSizeError(current.shape, shape_of(value))
        buf[offset] = coerce_array(current.dtype, value)

    def _set_parameter_unchecked(self, value: Any, pidx: ParameterIndex) -> None:
        """Write a value at a locator without shape or type validation."""
        if pidx.portion is Portion.TUNABLE:
            idx = pidx.idx
            if isinstance(idx, TunableRange):
                self.tunable[idx.as_slice()] = list(np.ravel(value))
            else:
                self.tunable[idx] = value
            return
        buf, offset, element = self._slot(pidx)
        if element:
            _assign_into(buf[offset], element, value)
        else:
            buf[offset] = value

    def __getitem__(self, key):
        if isinstance(key, ParameterIndex):
            return self.parameter_values(key)
        if isinstance(key, (int, np.integer)) and not isinstance(key, bool):
            buffers = self._buffers()
            if not 0 <= key < len(buffers):
                raise InvalidLocatorError(f"Buffer index {key} out of range for {len(buffers)} buffers")
            return buffers[key]
        raise InvalidLocatorError(f"Cannot index a parameter store with {key!r}")

    def __setitem__(self, key, value):
        if not isinstance(key, ParameterIndex):
            raise InvalidLocatorError(f"Cannot assign into a parameter store with {key!r}")
        self.set_parameter(value, key)

    # ------------------------------------------------------------------
    # Linear buffer numbering
    # ------------------------------------------------------------------

    def _buffers(self) -> List[Any]:
        buffers = []
        if len(self.tunable) > 0:
            buffers.append(self.tunable)
        for clock in self.discrete:
            buffers.extend(clock)
        buffers.extend(self.constant)
        buffers.extend(self.nonnumeric)
        return buffers

    def __len__(self) -> int:
        return len(self._buffers())

    def __iter__(self) -> Iterator[Any]:
        return iter(self._buffers())

    # ------------------------------------------------------------------
    # Copy / compare / rebuild
    # ------------------------------------------------------------------

    def copy(self) -> "ParameterStore":
        """Independent copy sharing no buffer storage."""
        return ParameterStore(
            tunable=copy_buffer(self.tunable),
            discrete=[[copy_buffer(buf) for buf in clock] for clock in self.discrete],
            constant=[copy_buffer(buf) for buf in self.constant],
            nonnumeric=[copy_buffer(buf) for buf in self.nonnumeric],
        )

    def __eq__(self, other):
        if not isinstance(other, ParameterStore):
            return NotImplemented
        return (
            values_equal(self.tunable, other.tunable)
            and values_equal(self.discrete, other.discrete)
            and values_equal(self.constant, other.constant)
            and values_equal(self.nonnumeric, other.nonnumeric)
        )

    __hash__ = None

    def remake(self, index_cache, vals: Mapping[Any, Any]) -> "ParameterStore":
        """New store with `vals` overriding values of this one."""
        from .remake import remake_buffer
        return remake_buffer(index_cache, self, vals)

    def __repr__(self) -> str:
        return (
            f"ParameterStore(tunable={self.tunable!r}, discrete={self.discrete!r}, "
            f"constant={self.constant!r}, nonnumeric={self.nonnumeric!r})"
        )


def parameter_values(store: ParameterStore, pidx: ParameterIndex) -> Any:
    return store.parameter_values(pidx)


def set_parameter(store: ParameterStore, value: Any, pidx: ParameterIndex) -> None:
    store.set_parameter(value, pidx)


def evaluate_dependent(system, store: ParameterStore, sym: Any, evaluator: Evaluator = substitute) -> Any:
    """Value of a dependency-derived parameter from the store's current contents.

    Args:
        system: SystemSpec the store was built for
        store: Store holding the current values
        sym: Dependent parameter (or alias)
        evaluator: One substitution pass, `evaluator(expr, bindings)`

    Raises:
        KeyError: If sym is not defined by a dependency equation
        UnresolvedValueError: If the equation cannot be fully evaluated
    """
    ic = system.index_cache
    target = ic.lookup(sym)
    equations = {eq.lhs: eq.rhs for eq in system.parameter_dependencies}
    if target not in equations:
        available = sorted(str(s) for s in equations)
        raise KeyError(f"Parameter {sym} is not dependent. Available: {available}")

    bindings: Dict[Any, Any] = {}
    for p in system.parameters:
        pidx = ic.parameter_index(p)
        if pidx is not None:
            bindings[p] = store[pidx]
    for lhs, rhs in equations.items():
        if lhs != target:
            bindings[lhs] = rhs

    value = fixpoint_sub(equations[target], bindings, evaluator)
    if is_symbolic(value):
        raise UnresolvedValueError(target, value)
    return value
