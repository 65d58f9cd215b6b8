from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _load_version

from .core import ops
from .core.backend import get_backend, register_backend
from .core.config import (
    BackendConfig,
    backend,
    compute_dtype,
    epsilon,
    floatx,
    get_config,
    image_data_format,
    load_config,
    set_backend,
    set_compute_dtype,
    set_config,
    set_epsilon,
    set_floatx,
)
from .core.exceptions import (
    BackendError,
    InvalidAggregationError,
    InvalidDtypeError,
    InvalidNameError,
    MissingShapeError,
    NestedScopeError,
    ScopeError,
    ShapeError,
    ShapeMismatchError,
    StrataError,
    UndefinedShapeError,
    UninitializedError,
)
from .core.scope import (
    AutocastScope,
    ScopeStack,
    current_path,
    device_scope,
    get_scope_stack,
    name_scope,
    reset_scope_stack,
)
from .core.stateless import StatelessScope, initialize_all_variables
from .core.symbolic import TensorSpec
from .core.variables import Variable, VariableRecord
from .saving import describe_file, load_variables, save_variables

try:
    __version__ = _load_version("strata-nn")
except PackageNotFoundError:
    __version__ = "0.0.0"

# ~/.strata/strata.json (or $STRATA_HOME), then STRATA_BACKEND / STRATA_FLOATX
load_config()

__all__ = [
    "Variable",
    "VariableRecord",
    "TensorSpec",
    "StatelessScope",
    "initialize_all_variables",
    "ScopeStack",
    "AutocastScope",
    "name_scope",
    "device_scope",
    "current_path",
    "get_scope_stack",
    "reset_scope_stack",
    "ops",
    "get_backend",
    "register_backend",
    "BackendConfig",
    "get_config",
    "set_config",
    "load_config",
    "backend",
    "set_backend",
    "floatx",
    "set_floatx",
    "compute_dtype",
    "set_compute_dtype",
    "epsilon",
    "set_epsilon",
    "image_data_format",
    "save_variables",
    "load_variables",
    "describe_file",
    "StrataError",
    "ShapeError",
    "MissingShapeError",
    "UndefinedShapeError",
    "ShapeMismatchError",
    "InvalidNameError",
    "InvalidAggregationError",
    "InvalidDtypeError",
    "UninitializedError",
    "ScopeError",
    "NestedScopeError",
    "BackendError",
]
