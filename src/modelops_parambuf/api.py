"""Public API for modelops-parambuf.

This module provides the complete public API: system descriptions, the
layout planner, the parameter store, the flat-vector exchange protocol,
partial rebuilds, discrete timeseries and differentiation support.
"""

# Symbolic boundary
from .symbolic import (
    Real,
    ArrayType,
    Variable,
    ElementRef,
    Symbolic,
    Operation,
    substitute,
    fixpoint_sub,
    is_symbolic,
    PeriodicClock,
    SolverStepClock,
    EventClock,
    Equation,
    DiscretePartition,
    SystemSpec,
)

# Layout and storage
from .buffers import (
    Portion,
    BufferTemplate,
    TunableRange,
    ParameterIndex,
    ParameterTimeseriesIndex,
    IndexCache,
    ParameterStore,
    parameter_values,
    set_parameter,
    evaluate_dependent,
    canonicalize,
    replace,
    replace_inplace,
    is_structure,
    is_mutable_structure,
    remake_buffer,
    validate_parameter_type,
    narrow_buffer_type,
    NestedGetIndex,
    DiscreteTimeseries,
    ParameterTimeseriesCollection,
    create_parameter_timeseries_collection,
    get_saveable_values,
    with_updated_parameter_timeseries_values,
)

# Differentiation
from .dual import Dual
from .differentiation import as_duals, jacobian_wrt_vars

# Errors
from .errors import (
    ParameterBufferError,
    LayoutError,
    MissingParametersError,
    UnresolvedValueError,
    ParameterTypeError,
    ParameterSizeError,
    InvalidLocatorError,
    UnhandledPortionError,
    UnhandledClockError,
    SystemDescriptionError,
)

# Loading
from .loader import load_system, build_system

# CLI utilities (for programmatic use)
from .cli.config import read_pyproject, write_config, validate_config

# Version
try:
    from importlib.metadata import version
    __version__ = version("modelops-parambuf")
except Exception:
    __version__ = "0.1.0"

# Public API Export List
__all__ = [
    # Symbolic
    "Real",
    "ArrayType",
    "Variable",
    "ElementRef",
    "Symbolic",
    "Operation",
    "substitute",
    "fixpoint_sub",
    "is_symbolic",
    "PeriodicClock",
    "SolverStepClock",
    "EventClock",
    "Equation",
    "DiscretePartition",
    "SystemSpec",

    # Layout and storage
    "Portion",
    "BufferTemplate",
    "TunableRange",
    "ParameterIndex",
    "ParameterTimeseriesIndex",
    "IndexCache",
    "ParameterStore",
    "parameter_values",
    "set_parameter",
    "evaluate_dependent",

    # Exchange protocol
    "canonicalize",
    "replace",
    "replace_inplace",
    "is_structure",
    "is_mutable_structure",

    # Rebuild
    "remake_buffer",
    "validate_parameter_type",
    "narrow_buffer_type",

    # Timeseries
    "NestedGetIndex",
    "DiscreteTimeseries",
    "ParameterTimeseriesCollection",
    "create_parameter_timeseries_collection",
    "get_saveable_values",
    "with_updated_parameter_timeseries_values",

    # Differentiation
    "Dual",
    "as_duals",
    "jacobian_wrt_vars",

    # Errors
    "ParameterBufferError",
    "LayoutError",
    "MissingParametersError",
    "UnresolvedValueError",
    "ParameterTypeError",
    "ParameterSizeError",
    "InvalidLocatorError",
    "UnhandledPortionError",
    "UnhandledClockError",
    "SystemDescriptionError",

    # Loading
    "load_system",
    "build_system",

    # CLI utilities
    "read_pyproject",
    "write_config",
    "validate_config",

    # Version
    "__version__",
]
