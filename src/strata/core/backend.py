from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence, Tuple, Type

import numpy as np

from .dtypes import standardize_dtype, to_numpy_dtype
from .exceptions import BackendError

try:  # pragma: no cover - jax optional
    import jax.numpy as jnp
except Exception:  # pragma: no cover - jax optional
    jnp = None

try:  # pragma: no cover - torch optional
    import torch
except Exception:  # pragma: no cover - torch optional
    torch = None

logger = logging.getLogger(__name__)


class Backend:
    """Thin array glue used by variables and operations.

    Each backend maps the core's dtype names onto its array library and
    forwards the handful of elementwise kernels operations need.
    """

    name = "abstract"

    def available(self) -> bool:
        return True

    def convert_to_tensor(self, value: Any, dtype: Optional[str] = None, device: Optional[str] = None) -> Any:
        raise NotImplementedError

    def is_tensor(self, value: Any) -> bool:
        raise NotImplementedError

    def to_numpy(self, value: Any) -> np.ndarray:
        return np.asarray(value)

    def shape(self, value: Any) -> Tuple[int, ...]:
        return tuple(int(dim) for dim in value.shape)

    def dtype(self, value: Any) -> str:
        return standardize_dtype(value.dtype)

    def cast(self, value: Any, dtype: str) -> Any:
        return self.convert_to_tensor(value, dtype=dtype)

    def copy(self, value: Any) -> Any:
        """Return storage that does not alias ``value``."""
        return value

    def zeros(self, shape: Sequence[int], dtype: str) -> Any:
        return self.convert_to_tensor(np.zeros(tuple(shape), dtype=to_numpy_dtype(dtype)), dtype=dtype)

    def ones(self, shape: Sequence[int], dtype: str) -> Any:
        return self.convert_to_tensor(np.ones(tuple(shape), dtype=to_numpy_dtype(dtype)), dtype=dtype)

    def add(self, x: Any, y: Any) -> Any:
        return x + y

    def subtract(self, x: Any, y: Any) -> Any:
        return x - y

    def multiply(self, x: Any, y: Any) -> Any:
        return x * y

    def divide(self, x: Any, y: Any) -> Any:
        return x / y

    def matmul(self, x: Any, y: Any) -> Any:
        return x @ y

    def reshape(self, x: Any, shape: Sequence[int]) -> Any:
        return x.reshape(tuple(shape))


class NumpyBackend(Backend):
    name = "numpy"

    def convert_to_tensor(self, value, dtype=None, device=None):
        if device not in (None, "cpu"):
            raise BackendError(f"NumPy backend only supports CPU placement; received device='{device}'")
        if dtype is None:
            return np.asarray(value)
        return np.asarray(value, dtype=to_numpy_dtype(dtype))

    def is_tensor(self, value):
        return isinstance(value, (np.ndarray, np.generic))

    def cast(self, value, dtype):
        return np.asarray(value).astype(to_numpy_dtype(dtype), copy=False)

    def copy(self, value):
        return np.array(value, copy=True)

    def matmul(self, x, y):
        return np.matmul(x, y)

    def reshape(self, x, shape):
        return np.reshape(x, tuple(shape))


class JaxBackend(Backend):
    name = "jax"

    def available(self) -> bool:
        return jnp is not None

    def convert_to_tensor(self, value, dtype=None, device=None):
        if dtype is None:
            return jnp.asarray(value)
        return jnp.asarray(value, dtype=standardize_dtype(dtype))

    def is_tensor(self, value):
        return isinstance(value, jnp.ndarray)

    def to_numpy(self, value):
        return np.asarray(value)

    def cast(self, value, dtype):
        return jnp.asarray(value).astype(standardize_dtype(dtype))

    def matmul(self, x, y):
        return jnp.matmul(x, y)

    def reshape(self, x, shape):
        return jnp.reshape(x, tuple(shape))


class TorchBackend(Backend):
    name = "torch"

    def available(self) -> bool:
        return torch is not None

    def _torch_dtype(self, dtype: str):
        return getattr(torch, standardize_dtype(dtype))

    def convert_to_tensor(self, value, dtype=None, device=None):
        torch_dtype = self._torch_dtype(dtype) if dtype is not None else None
        if isinstance(value, torch.Tensor):
            return value.to(dtype=torch_dtype, device=device) if (torch_dtype or device) else value
        if isinstance(value, np.ndarray) and not value.flags.writeable:
            value = value.copy()
        return torch.as_tensor(value, dtype=torch_dtype, device=device)

    def is_tensor(self, value):
        return isinstance(value, torch.Tensor)

    def to_numpy(self, value):
        if isinstance(value, torch.Tensor):
            tensor = value.detach().cpu()
            if tensor.dtype == torch.bfloat16:
                tensor = tensor.float()
            return tensor.numpy()
        return np.asarray(value)

    def shape(self, value):
        return tuple(int(dim) for dim in value.shape)

    def dtype(self, value):
        return standardize_dtype(str(value.dtype))

    def cast(self, value, dtype):
        return self.convert_to_tensor(value).to(self._torch_dtype(dtype))

    def copy(self, value):
        return value.detach().clone()

    def matmul(self, x, y):
        return torch.matmul(x, y)

    def reshape(self, x, shape):
        return torch.reshape(x, tuple(shape))


_BACKENDS: Dict[str, Backend] = {}


def register_backend(name: str, backend_cls: Type[Backend]) -> None:
    """Register a backend class under ``name``; later registrations win."""
    _BACKENDS[name] = backend_cls()
    logger.debug("registered backend %s -> %s", name, backend_cls.__name__)


def get_backend(name: Optional[str] = None) -> Backend:
    """Return the backend ``name`` (defaults to the configured backend)."""
    if name is None:
        from .config import backend as configured_backend

        name = configured_backend()
    try:
        instance = _BACKENDS[name]
    except KeyError as exc:
        raise BackendError(f"Unknown backend '{name}'. Registered: {sorted(_BACKENDS)}") from exc
    if not instance.available():
        raise BackendError(f"Backend '{name}' requires the '{name}' package to be installed")
    return instance


def registered_backends() -> Dict[str, Backend]:
    return dict(_BACKENDS)


register_backend("numpy", NumpyBackend)
register_backend("jax", JaxBackend)
register_backend("torch", TorchBackend)
