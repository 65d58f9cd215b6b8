from __future__ import annotations

from typing import Any, Optional


class StrataError(Exception):
    """Base class for Strata-specific exceptions."""


class ShapeError(StrataError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        shape: Optional[Any] = None,
        path: Optional[str] = None,
    ):
        detail = _format_context(shape, path)
        super().__init__(f"{message}{detail}")
        self.shape = shape
        self.path = path


class MissingShapeError(ShapeError):
    pass


class UndefinedShapeError(ShapeError):
    pass


class ShapeMismatchError(ShapeError):
    def __init__(
        self,
        message: str,
        *,
        expected: Optional[Any] = None,
        received: Optional[Any] = None,
        path: Optional[str] = None,
    ):
        super().__init__(
            f"{message} Expected shape={expected}, received shape={received}",
            shape=received,
            path=path,
        )
        self.expected = expected
        self.received = received


class InvalidNameError(StrataError, ValueError):
    pass


class InvalidAggregationError(StrataError, ValueError):
    pass


class InvalidDtypeError(StrataError, ValueError):
    pass


class UninitializedError(StrataError, RuntimeError):
    pass


class ScopeError(StrataError, RuntimeError):
    pass


class NestedScopeError(ScopeError):
    pass


class BackendError(StrataError, RuntimeError):
    pass


def _format_context(shape: Optional[Any], path: Optional[str]) -> str:
    if shape is None and path is None:
        return ""
    parts = []
    if shape is not None:
        parts.append(f"shape={tuple(shape) if isinstance(shape, list) else shape}")
    if path is not None:
        parts.append(f"path='{path}'")
    return f" ({', '.join(parts)})"
