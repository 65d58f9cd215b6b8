from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Tuple, Union

import numpy as np

from .backend import Backend, get_backend
from .config import backend as configured_backend
from .config import compute_dtype
from .dtypes import is_float_dtype, standardize_dtype
from .exceptions import (
    InvalidAggregationError,
    InvalidNameError,
    MissingShapeError,
    NestedScopeError,
    ShapeMismatchError,
    UndefinedShapeError,
    UninitializedError,
)
from .scope import ScopeStack, auto_name, get_scope_stack
from .symbolic import standardize_shape

logger = logging.getLogger(__name__)

AGGREGATIONS = ("mean", "sum", "only_first_replica")


@dataclass(frozen=True)
class ConcreteValue:
    value: Any


@dataclass(frozen=True)
class GeneratorFunction:
    fn: Callable[[Tuple[int, ...], str], Any]

    def __call__(self, shape: Tuple[int, ...], dtype: str) -> Any:
        return self.fn(shape, dtype)


Initializer = Union[ConcreteValue, GeneratorFunction]


def as_initializer(obj: Any) -> Initializer:
    if isinstance(obj, (ConcreteValue, GeneratorFunction)):
        return obj
    if isinstance(obj, Variable):
        return ConcreteValue(obj.value)
    if callable(obj):
        return GeneratorFunction(obj)
    return ConcreteValue(obj)


@dataclass(frozen=True)
class VariableRecord:
    path: str
    dtype: str
    shape: Tuple[int, ...]
    value: np.ndarray


class Serializable(Protocol):
    def describe(self) -> VariableRecord:
        """Return path, dtype, shape and the materialized value."""

    def restore(self, value: Any) -> Any:
        """Write a previously described value back."""


class Variable:
    """Container for mutable numeric state.

    A variable holds a backend array and can be updated with :meth:`assign`.
    Inside a :class:`~strata.core.stateless.StatelessScope` reads and writes
    are redirected to the scope, which is how a stateful computation is
    replayed as a pure function (e.g. under ``jax.jit``).

    Parameters
    ----------
    initializer:
        Initial value, or a callable ``fn(shape, dtype)`` producing it.
    shape:
        Required when ``initializer`` is callable. Must be fully defined.
    dtype:
        Storage dtype. Defaults to the configured ``floatx``.
    trainable:
        Whether optimizers should update this variable.
    autocast:
        Whether float reads may be presented in the compute dtype.
    aggregation:
        Cross-replica aggregation: ``"mean"``, ``"sum"`` or ``"only_first_replica"``.
    name:
        Name without ``/``. Generated (``variable``, ``variable_1``, ...) if omitted.
    stack:
        Scope stack to consult instead of the calling thread's.

    Examples
    --------
    >>> v = Variable(np.zeros((2, 2)), name="w")
    >>> v.assign(np.ones((2, 2)))
    >>> with StatelessScope([(v, np.full((2, 2), 3.0))]):
    ...     v.value  # 3.0 everywhere; storage still holds ones
    """

    def __init__(
        self,
        initializer: Any,
        shape: Optional[Any] = None,
        dtype: Optional[Any] = None,
        trainable: bool = True,
        autocast: bool = True,
        aggregation: str = "mean",
        name: Optional[str] = None,
        regularizer: Optional[Any] = None,
        constraint: Optional[Any] = None,
        *,
        stack: Optional[ScopeStack] = None,
    ):
        self._stack = stack
        if name is None:
            name = auto_name(type(self).__name__, stack)
        if not isinstance(name, str) or not name or "/" in name:
            raise InvalidNameError(
                "Argument `name` must be a non-empty string and cannot contain character `/`. "
                f"Received: name={name!r}"
            )
        if aggregation not in AGGREGATIONS:
            raise InvalidAggregationError(
                "Invalid value for argument `aggregation`. Expected one of "
                f"{set(AGGREGATIONS)}. Received: aggregation={aggregation!r}"
            )
        self.name = name
        parent = self.stack.current_path()
        self.path = f"{parent}/{name}" if parent else name
        self.trainable = bool(trainable)
        self.autocast = bool(autocast)
        self.aggregation = aggregation
        self.regularizer = regularizer
        self.constraint = constraint
        self.overwrite_with_gradient = False
        self.device = self.stack.current_device()
        self._backend_name = configured_backend()
        self._dtype = standardize_dtype(dtype)
        self._value: Any = None
        self._initializer: Optional[Initializer] = None

        init = as_initializer(initializer)
        if isinstance(init, GeneratorFunction):
            if shape is None:
                raise MissingShapeError(
                    "When creating a Variable from an initializer, the `shape` argument "
                    "should be specified.",
                    path=self.path,
                )
            self._shape = self._validate_shape(shape)
        else:
            tensor = self.backend.convert_to_tensor(init.value, dtype=self._dtype, device=self.device)
            value_shape = self.backend.shape(tensor)
            if shape is not None and self._validate_shape(shape) != value_shape:
                raise ShapeMismatchError(
                    "The initial value does not match the `shape` argument.",
                    expected=tuple(shape),
                    received=value_shape,
                    path=self.path,
                )
            self._shape = self._validate_shape(value_shape)
            init = ConcreteValue(self.backend.copy(tensor))
        self._initializer = init

        scope = self.stack.current_stateless_scope()
        if scope is not None:
            scope.register_uninitialized_variable(self)
        else:
            self._initialize(self._generate())

    # ------------------------------------------------------------------
    # Properties

    @property
    def stack(self) -> ScopeStack:
        return self._stack if self._stack is not None else get_scope_stack()

    @property
    def backend(self) -> Backend:
        return get_backend(self._backend_name)

    @property
    def dtype(self) -> str:
        return self._dtype

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._shape

    @property
    def ndim(self) -> int:
        return len(self._shape)

    @property
    def initialized(self) -> bool:
        return self._value is not None

    # ------------------------------------------------------------------
    # Initialization

    def _validate_shape(self, shape: Any) -> Tuple[int, ...]:
        standardized = standardize_shape(shape)
        if None in standardized:
            raise UndefinedShapeError(
                "Shapes used to initialize variables must be fully-defined "
                "(no `None` dimensions).",
                shape=standardized,
                path=self.path,
            )
        return standardized  # type: ignore[return-value]

    def _generate(self) -> Any:
        init = self._initializer
        if init is None:
            raise UninitializedError(f"Variable '{self.path}' has no value and no initializer")
        if isinstance(init, ConcreteValue):
            return init.value
        value = self.backend.convert_to_tensor(
            init(self._shape, self._dtype), dtype=self._dtype, device=self.device
        )
        received = self.backend.shape(value)
        if received != self._shape:
            raise ShapeMismatchError(
                "The initializer returned a value of the wrong shape.",
                expected=self._shape,
                received=received,
                path=self.path,
            )
        return value

    def _initialize(self, value: Any) -> None:
        self._value = self.backend.copy(value)
        self._initializer = None
        logger.debug("materialized %s shape=%s dtype=%s", self.path, self._shape, self._dtype)

    def initialize(self) -> None:
        """Materialize storage for a pending variable (eager mode only)."""
        if self._value is not None:
            return
        if self.stack.current_stateless_scope() is not None:
            raise NestedScopeError(
                f"Cannot materialize '{self.path}' while a stateless scope is active"
            )
        self._initialize(self._generate())

    # ------------------------------------------------------------------
    # Reads

    def _read(self) -> Any:
        scope = self.stack.current_stateless_scope()
        if scope is not None:
            current = scope.get_current_value(self)
            if current is not None:
                return current
            if self._value is None:
                pending = scope.pending_value(self)
                if pending is None:
                    pending = self._generate()
                    scope.register_uninitialized_variable(self)
                    scope.resolve_pending(self, pending)
                return pending
        if self._value is None:
            self._initialize(self._generate())
        return self._value

    @property
    def value(self) -> Any:
        return self._maybe_autocast(self._read())

    def read(self) -> Any:
        return self.value

    def _maybe_autocast(self, value: Any) -> Any:
        if not self.autocast or not is_float_dtype(self._dtype):
            return value
        frame = self.stack.current_autocast_frame()
        target = frame.dtype if frame is not None else compute_dtype()
        if target is None or target == self._dtype:
            return value
        return self.backend.cast(value, target)

    def numpy(self) -> np.ndarray:
        return self.backend.to_numpy(self.value)

    def __array__(self, dtype=None, copy=None):
        array = np.asarray(self.numpy())
        return array.astype(dtype) if dtype is not None else array

    # ------------------------------------------------------------------
    # Writes

    def _convert(self, value: Any) -> Any:
        if isinstance(value, Variable):
            value = value.value
        return self.backend.convert_to_tensor(value, dtype=self._dtype, device=self.device)

    def assign(self, value: Any) -> Any:
        value = self._convert(value)
        received = self.backend.shape(value)
        if received != self._shape:
            raise ShapeMismatchError(
                "The shape of the target variable and the shape of the target value in "
                "`variable.assign(value)` must match.",
                expected=self._shape,
                received=received,
                path=self.path,
            )
        scope = self.stack.current_stateless_scope()
        if scope is not None:
            scope.add_update(self, value)
        else:
            self._initialize(value)
        return value

    def assign_add(self, value: Any) -> Any:
        return self.assign(self.backend.add(self._read(), self._convert(value)))

    def assign_sub(self, value: Any) -> Any:
        return self.assign(self.backend.subtract(self._read(), self._convert(value)))

    # ------------------------------------------------------------------
    # Serialization

    def describe(self) -> VariableRecord:
        return VariableRecord(
            path=self.path,
            dtype=self._dtype,
            shape=self._shape,
            value=self.backend.to_numpy(self._read()),
        )

    def restore(self, value: Any) -> Any:
        return self.assign(value)

    # ------------------------------------------------------------------
    # Operator overloads act on the current value.

    def __add__(self, other):
        return self.value + _unwrap(other)

    def __radd__(self, other):
        return _unwrap(other) + self.value

    def __sub__(self, other):
        return self.value - _unwrap(other)

    def __rsub__(self, other):
        return _unwrap(other) - self.value

    def __mul__(self, other):
        return self.value * _unwrap(other)

    def __rmul__(self, other):
        return _unwrap(other) * self.value

    def __truediv__(self, other):
        return self.value / _unwrap(other)

    def __rtruediv__(self, other):
        return _unwrap(other) / self.value

    def __matmul__(self, other):
        return self.value @ _unwrap(other)

    def __rmatmul__(self, other):
        return _unwrap(other) @ self.value

    def __neg__(self):
        return -self.value

    def __repr__(self) -> str:
        if self._value is None:
            value = "<pending>"
        else:
            value = repr(self.backend.to_numpy(self._value))
        return (
            f"<Variable path={self.path}, shape={self._shape}, dtype={self._dtype}, "
            f"value={value}>"
        )


def _unwrap(value: Any) -> Any:
    return value.value if isinstance(value, Variable) else value
