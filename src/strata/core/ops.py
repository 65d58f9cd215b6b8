"""Symbolic/eager dual-mode operations.

An :class:`Operation` called on concrete values (arrays, scalars, variables)
runs its kernel on the active backend. Called with any :class:`TensorSpec`
argument, it only infers the output shape and dtype.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from .backend import get_backend
from .config import floatx
from .dtypes import dtype_of, is_float_dtype, result_type, standardize_dtype
from .exceptions import ShapeError
from .scope import auto_name
from .symbolic import Shape, TensorSpec, any_symbolic, broadcast_shapes, standardize_shape
from .variables import Variable

logger = logging.getLogger(__name__)


def _as_spec(value: Any) -> Optional[TensorSpec]:
    """Descriptor for an operand; ``None`` for Python scalars."""
    if isinstance(value, TensorSpec):
        return value
    if isinstance(value, Variable):
        return TensorSpec(value.shape, value.dtype)
    if isinstance(value, (bool, int, float)):
        return None
    backend = get_backend()
    if backend.is_tensor(value):
        return TensorSpec(backend.shape(value), backend.dtype(value))
    array = np.asarray(value)
    return TensorSpec(standardize_shape(array.shape), dtype_of(array))


def _resolve(value: Any) -> Any:
    """Concrete operand for an eager kernel call."""
    if isinstance(value, Variable):
        return value.value
    if isinstance(value, (bool, int, float)):
        return value
    backend = get_backend()
    if backend.is_tensor(value):
        return value
    return backend.convert_to_tensor(value)


class Operation:
    def __init__(self, name: Optional[str] = None):
        self.name = name or auto_name(type(self).__name__)
        self.inbound_specs: Optional[Tuple[TensorSpec, ...]] = None
        self.outbound_spec: Optional[TensorSpec] = None

    def __call__(self, *args, **kwargs):
        if any_symbolic(args) or any_symbolic(kwargs):
            return self.symbolic_call(*args, **kwargs)
        args = tuple(_resolve(arg) for arg in args)
        return self.call(*args, **kwargs)

    def symbolic_call(self, *args, **kwargs) -> TensorSpec:
        output = self.compute_output_spec(*args, **kwargs)
        inputs = tuple(arg for arg in args if isinstance(arg, TensorSpec))
        record = all(spec.record_history for spec in inputs)
        if output.record_history != record:
            output = replace(output, record_history=record)
        if record:
            self.inbound_specs = inputs
            self.outbound_spec = output
        logger.debug("%s: symbolic call -> %s", self.name, output)
        return output

    def call(self, *args, **kwargs):
        raise NotImplementedError

    def compute_output_spec(self, *args, **kwargs) -> TensorSpec:
        raise NotImplementedError


class _ElementwiseBinary(Operation):
    kernel = ""

    def call(self, x, y):
        return getattr(get_backend(), self.kernel)(x, y)

    def _sparse(self, x: Optional[TensorSpec], y: Optional[TensorSpec]) -> bool:
        return bool(x and x.sparse) and bool(y and y.sparse)

    def _dtype(self, x: Optional[TensorSpec], y: Optional[TensorSpec]) -> str:
        return result_type(x.dtype if x else None, y.dtype if y else None)

    def compute_output_spec(self, x, y) -> TensorSpec:
        x_spec, y_spec = _as_spec(x), _as_spec(y)
        shape = broadcast_shapes(
            x_spec.shape if x_spec else (),
            y_spec.shape if y_spec else (),
        )
        return TensorSpec(shape, self._dtype(x_spec, y_spec), sparse=self._sparse(x_spec, y_spec))


class Add(_ElementwiseBinary):
    kernel = "add"


class Subtract(_ElementwiseBinary):
    kernel = "subtract"


class Multiply(_ElementwiseBinary):
    kernel = "multiply"

    def _sparse(self, x, y):
        # zeros of either operand survive the product
        return bool(x and x.sparse) or bool(y and y.sparse)


class Divide(_ElementwiseBinary):
    kernel = "divide"

    def _sparse(self, x, y):
        return False

    def _dtype(self, x, y):
        dtype = super()._dtype(x, y)
        return dtype if is_float_dtype(dtype) else floatx()

    def call(self, x, y):
        backend = get_backend()
        x_spec, y_spec = _as_spec(x), _as_spec(y)
        dtype = self._dtype(x_spec, y_spec)
        if x_spec is not None and x_spec.dtype != dtype:
            x = backend.cast(x, dtype)
        if y_spec is not None and y_spec.dtype != dtype:
            y = backend.cast(y, dtype)
        return backend.divide(x, y)


def _matmul_shape(a: Shape, b: Shape) -> Shape:
    if not a or not b:
        raise ShapeError(f"matmul operands must have rank >= 1, received {a} and {b}")
    a_vector = len(a) == 1
    b_vector = len(b) == 1
    left = (1,) + tuple(a) if a_vector else tuple(a)
    right = tuple(b) + (1,) if b_vector else tuple(b)
    inner_left, inner_right = left[-1], right[-2]
    if inner_left is not None and inner_right is not None and inner_left != inner_right:
        raise ShapeError(f"Incompatible matmul shapes {tuple(a)} and {tuple(b)}")
    out = broadcast_shapes(left[:-2], right[:-2]) + (left[-2], right[-1])
    if a_vector:
        out = out[:-2] + out[-1:]
    if b_vector:
        out = out[:-1]
    return out


class MatMul(Operation):
    def call(self, x, y):
        return get_backend().matmul(x, y)

    def compute_output_spec(self, x, y) -> TensorSpec:
        x_spec, y_spec = _as_spec(x), _as_spec(y)
        if x_spec is None or y_spec is None:
            raise ShapeError("matmul does not accept Python scalars")
        return TensorSpec(_matmul_shape(x_spec.shape, y_spec.shape), result_type(x_spec.dtype, y_spec.dtype))


class Cast(Operation):
    def __init__(self, dtype: Any, name: Optional[str] = None):
        super().__init__(name=name)
        self.dtype = standardize_dtype(dtype)

    def call(self, x):
        return get_backend().cast(x, self.dtype)

    def compute_output_spec(self, x) -> TensorSpec:
        spec = _as_spec(x) or TensorSpec((), self.dtype)
        return TensorSpec(spec.shape, self.dtype, sparse=spec.sparse)


def _reshape_shape(shape: Shape, new_shape: Sequence[int]) -> Shape:
    target = [int(dim) for dim in new_shape]
    if target.count(-1) > 1:
        raise ShapeError(f"Only one dimension may be -1, received {tuple(new_shape)}")
    if any(dim < -1 for dim in target):
        raise ShapeError(f"Invalid reshape target {tuple(new_shape)}")
    known = 1
    for dim in target:
        if dim != -1:
            known *= dim
    if None in shape:
        return tuple(None if dim == -1 else dim for dim in target)
    total = 1
    for dim in shape:
        total *= dim  # type: ignore[operator]
    if -1 in target:
        if known == 0 or total % known:
            raise ShapeError(f"Cannot reshape {tuple(shape)} into {tuple(new_shape)}")
        target[target.index(-1)] = total // known
    elif known != total:
        raise ShapeError(f"Cannot reshape {tuple(shape)} into {tuple(new_shape)}")
    return tuple(target)


class Reshape(Operation):
    def __init__(self, new_shape: Sequence[int], name: Optional[str] = None):
        super().__init__(name=name)
        self.new_shape = tuple(int(dim) for dim in new_shape)

    def call(self, x):
        return get_backend().reshape(x, self.new_shape)

    def compute_output_spec(self, x) -> TensorSpec:
        spec = _as_spec(x)
        if spec is None:
            spec = TensorSpec((), floatx())
        return TensorSpec(_reshape_shape(spec.shape, self.new_shape), spec.dtype)


def add(x, y):
    return Add()(x, y)


def subtract(x, y):
    return Subtract()(x, y)


def multiply(x, y):
    return Multiply()(x, y)


def divide(x, y):
    return Divide()(x, y)


def matmul(x, y):
    return MatMul()(x, y)


def cast(x, dtype):
    return Cast(dtype)(x)


def reshape(x, new_shape):
    return Reshape(new_shape)(x)
