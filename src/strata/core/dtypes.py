"""Dtype names shared by every backend.

Dtypes travel through the core as plain strings (``"float32"``, ``"int64"``,
...). Backend-native dtype objects (NumPy, JAX, Torch) are standardized to
these names on entry.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

from .exceptions import InvalidDtypeError

FLOAT_TYPES = ("bfloat16", "float16", "float32", "float64")
INT_TYPES = (
    "uint8",
    "uint16",
    "uint32",
    "uint64",
    "int8",
    "int16",
    "int32",
    "int64",
)
ALLOWED_DTYPES = ("bool",) + INT_TYPES + FLOAT_TYPES

_ALIASES = {
    "float": "float32",
    "double": "float64",
    "half": "float16",
    "int": "int64",
    "long": "int64",
    "bool_": "bool",
}

# NumPy has no native bfloat16; it is stored as float32 on the NumPy backend.
_NUMPY_DTYPES = {
    "bool": np.bool_,
    "uint8": np.uint8,
    "uint16": np.uint16,
    "uint32": np.uint32,
    "uint64": np.uint64,
    "int8": np.int8,
    "int16": np.int16,
    "int32": np.int32,
    "int64": np.int64,
    "bfloat16": np.float32,
    "float16": np.float16,
    "float32": np.float32,
    "float64": np.float64,
}


def standardize_dtype(dtype: Any, default: Optional[str] = None) -> str:
    """Return the canonical dtype name for ``dtype``.

    ``None`` resolves to ``default`` (or the configured ``floatx``).
    """
    if dtype is None:
        if default is not None:
            return standardize_dtype(default)
        from .config import floatx

        return floatx()
    if isinstance(dtype, str):
        name = dtype
    elif dtype is bool:
        name = "bool"
    elif dtype is int:
        name = "int64"
    elif dtype is float:
        name = "float32"
    elif hasattr(dtype, "name") and isinstance(getattr(dtype, "name"), str):
        # numpy / jax dtypes, numpy scalar types via np.dtype below
        name = dtype.name
    else:
        try:
            name = np.dtype(dtype).name
        except TypeError:
            name = str(dtype)
    if name.startswith("torch."):
        name = name[len("torch.") :]
    name = _ALIASES.get(name, name)
    if name not in ALLOWED_DTYPES:
        raise InvalidDtypeError(
            f"Invalid dtype: {dtype!r}. Expected one of {', '.join(ALLOWED_DTYPES)}"
        )
    return name


def is_float_dtype(dtype: Any) -> bool:
    return standardize_dtype(dtype) in FLOAT_TYPES


def is_int_dtype(dtype: Any) -> bool:
    return standardize_dtype(dtype) in INT_TYPES


def to_numpy_dtype(dtype: Any) -> np.dtype:
    return np.dtype(_NUMPY_DTYPES[standardize_dtype(dtype)])


def dtype_of(value: Any) -> Optional[str]:
    """Best-effort dtype name of an array-like, ``None`` for Python scalars."""
    if isinstance(value, (bool, int, float)):
        return None
    dtype = getattr(value, "dtype", None)
    if dtype is None:
        return standardize_dtype(np.asarray(value).dtype)
    return standardize_dtype(dtype)


def result_type(*dtypes: Optional[str]) -> str:
    """Promote dtype names the way NumPy does.

    ``None`` entries stand for Python scalars and do not take part in the
    promotion. ``bfloat16`` stays ``bfloat16`` only against itself.
    """
    names = [standardize_dtype(d) for d in dtypes if d is not None]
    if not names:
        from .config import floatx

        return floatx()
    if all(name == "bfloat16" for name in names):
        return "bfloat16"
    promoted = np.result_type(*[to_numpy_dtype(name) for name in names])
    return standardize_dtype(promoted)
