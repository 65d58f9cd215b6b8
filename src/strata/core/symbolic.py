"""Symbolic tensors: shape and dtype without data.

Calling an operation on :class:`TensorSpec` inputs returns another
``TensorSpec`` with the inferred output shape and dtype. No numeric work
happens; this is static shape inference.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence, Tuple

import numpy as np

from .dtypes import standardize_dtype
from .exceptions import ShapeError

Dim = Optional[int]
Shape = Tuple[Dim, ...]


def standardize_shape(shape: Any) -> Shape:
    if shape is None:
        raise ShapeError("Undefined shapes are not supported")
    if isinstance(shape, (int, np.integer)) and not isinstance(shape, bool):
        shape = (shape,)
    if not isinstance(shape, Iterable) or isinstance(shape, str):
        raise ShapeError(f"Cannot interpret '{shape!r}' as a shape")
    dims = []
    for dim in shape:
        if dim is None:
            dims.append(None)
            continue
        if isinstance(dim, bool) or not isinstance(dim, (int, np.integer)):
            raise ShapeError(
                f"Shape dimensions must be integers or None, received {dim!r}",
                shape=tuple(shape),
            )
        if dim < 0:
            raise ShapeError(
                f"Negative dimensions are not allowed, received {int(dim)}",
                shape=tuple(shape),
            )
        dims.append(int(dim))
    return tuple(dims)


def is_fully_defined(shape: Sequence[Dim]) -> bool:
    return all(dim is not None for dim in shape)


def broadcast_shapes(a: Sequence[Dim], b: Sequence[Dim]) -> Shape:
    """NumPy broadcasting over shapes that may contain unknown dimensions."""
    rank = max(len(a), len(b))
    left = (1,) * (rank - len(a)) + tuple(a)
    right = (1,) * (rank - len(b)) + tuple(b)
    out = []
    for x, y in zip(left, right):
        if x == 1:
            out.append(y)
        elif y == 1:
            out.append(x)
        elif x is None:
            out.append(y)
        elif y is None:
            out.append(x)
        elif x == y:
            out.append(x)
        else:
            raise ShapeError(f"Cannot broadcast shapes {tuple(a)} and {tuple(b)}")
    return tuple(out)


@dataclass(frozen=True)
class TensorSpec:
    shape: Shape
    dtype: str = "float32"
    sparse: bool = False
    record_history: bool = True
    name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "shape", standardize_shape(self.shape))
        object.__setattr__(self, "dtype", standardize_dtype(self.dtype))
        object.__setattr__(self, "sparse", bool(self.sparse))
        object.__setattr__(self, "record_history", bool(self.record_history))

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def is_fully_defined(self) -> bool:
        return is_fully_defined(self.shape)

    def __repr__(self) -> str:
        name = f", name={self.name!r}" if self.name else ""
        sparse = ", sparse=True" if self.sparse else ""
        return f"<TensorSpec shape={self.shape}, dtype={self.dtype}{sparse}{name}>"


def is_symbolic(value: Any) -> bool:
    return isinstance(value, TensorSpec)


def any_symbolic(args: Any) -> bool:
    if isinstance(args, TensorSpec):
        return True
    if isinstance(args, (list, tuple)):
        return any(any_symbolic(item) for item in args)
    if isinstance(args, dict):
        return any(any_symbolic(item) for item in args.values())
    return False
