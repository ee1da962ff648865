"""Global constants for modelops-parambuf.

This module centralizes constants shared by the layout planner, the
parameter store and the CLI.
"""

# Separator between a system name and a variable name in namespaced aliases
NAMESPACE_SEPARATOR: str = "."

# Header of the error raised when values cannot be resolved
MISSING_PARAMETERS_MESSAGE: str = (
    "Some parameters are missing from the variable map. "
    "Please provide a value or default for the following variables: "
)

# dtype used for empty numeric buffers and the tunable buffer when no
# tighter type can be inferred
DEFAULT_FLOAT_DTYPE: str = "float64"

# Name of the [tool.<name>] table read from pyproject.toml
CONFIG_TABLE: str = "parambuf"
