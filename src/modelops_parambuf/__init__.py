"""modelops-parambuf: typed parameter buffers for simulated and optimized systems.

This package plans how the parameters of a system are partitioned into
typed buffers (tunable, discrete, constant, nonnumeric), stores concrete
values in those buffers, and exposes locator-based access and flat-vector
exchange for solvers, optimizers and differentiation.
"""

# Export the public API
from .api import *  # noqa: F403, F401
from .api import __all__, __version__  # noqa: F401
