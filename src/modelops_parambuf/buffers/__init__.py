"""Parameter buffer layout, storage and exchange.

- IndexCache: plans the layout of a system's values into typed buffers
- ParameterStore: owns the buffers of one set of concrete values
- canonicalize / replace / replace_inplace: flat-vector exchange per portion
- remake_buffer: patch a store with value overrides
"""

from .templates import (
    Portion,
    BufferTemplate,
    TunableRange,
    ParameterIndex,
    ParameterTimeseriesIndex,
)
from .index_cache import IndexCache, DEFAULT_PLACEHOLDER, classify_parameter
from .transcoding import (
    UNSET,
    narrow_buffer_type,
    narrow_buffer_type_and_fallback_undefs,
    flatten_buffers,
    split_into_buffers,
    update_tuple_of_buffers,
    symconvert,
)
from .store import ParameterStore, parameter_values, set_parameter, evaluate_dependent
from .structures import (
    canonicalize,
    replace,
    replace_inplace,
    is_structure,
    is_mutable_structure,
)
from .remake import remake_buffer, validate_parameter_type
from .timeseries import (
    NestedGetIndex,
    DiscreteTimeseries,
    ParameterTimeseriesCollection,
    create_parameter_timeseries_collection,
    get_saveable_values,
    with_updated_parameter_timeseries_values,
)

__all__ = [
    # Layout
    "Portion",
    "BufferTemplate",
    "TunableRange",
    "ParameterIndex",
    "ParameterTimeseriesIndex",
    "IndexCache",
    "DEFAULT_PLACEHOLDER",
    "classify_parameter",
    # Transcoding
    "UNSET",
    "narrow_buffer_type",
    "narrow_buffer_type_and_fallback_undefs",
    "flatten_buffers",
    "split_into_buffers",
    "update_tuple_of_buffers",
    "symconvert",
    # Store
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
    # Timeseries
    "NestedGetIndex",
    "DiscreteTimeseries",
    "ParameterTimeseriesCollection",
    "create_parameter_timeseries_collection",
    "get_saveable_values",
    "with_updated_parameter_timeseries_values",
]
