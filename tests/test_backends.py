import numpy as np
import pytest

from strata import (
    BackendError,
    ShapeMismatchError,
    StatelessScope,
    Variable,
    get_backend,
    register_backend,
    set_backend,
)
from strata.core import backend as backend_module
from strata.core.backend import NumpyBackend, registered_backends


def test_registry_contains_builtin_backends():
    assert {"numpy", "jax", "torch"} <= set(registered_backends())
    assert get_backend().name == "numpy"


def test_unknown_backend_raises():
    with pytest.raises(BackendError, match="Unknown backend"):
        get_backend("tensorflow")


def test_register_custom_backend(monkeypatch):
    monkeypatch.setattr(backend_module, "_BACKENDS", registered_backends())

    class LoggingBackend(NumpyBackend):
        name = "logging-numpy"
        calls = []

        def add(self, x, y):
            self.calls.append("add")
            return super().add(x, y)

    register_backend("logging-numpy", LoggingBackend)
    backend = get_backend("logging-numpy")
    np.testing.assert_array_equal(backend.add(np.ones(2), np.ones(2)), [2.0, 2.0])
    assert LoggingBackend.calls == ["add"]


def test_numpy_backend_rejects_accelerator_placement():
    from strata import device_scope

    with device_scope("gpu"):
        with pytest.raises(BackendError, match="CPU"):
            Variable(np.zeros(2), name="v")


def test_jax_backend_variables():
    pytest.importorskip("jax", reason="JAX backend not available")
    import jax.numpy as jnp

    set_backend("jax")
    v = Variable(np.ones((2, 2)), name="v")
    assert isinstance(v.value, jnp.ndarray)
    v.assign_add(np.ones((2, 2)))
    np.testing.assert_allclose(v.numpy(), np.full((2, 2), 2.0))
    with StatelessScope([(v, np.zeros((2, 2)))]) as scope:
        v.assign(np.full((2, 2), 7.0))
    np.testing.assert_allclose(v.numpy(), np.full((2, 2), 2.0))
    np.testing.assert_allclose(np.asarray(scope.updates()[v]), np.full((2, 2), 7.0))


def test_torch_backend_variables():
    torch = pytest.importorskip("torch", reason="Torch backend not available")

    set_backend("torch")
    v = Variable(np.arange(4.0).reshape(2, 2), name="v")
    assert isinstance(v.value, torch.Tensor)
    assert v.value.dtype == torch.float32
    v.assign_sub(np.ones((2, 2)))
    np.testing.assert_allclose(v.numpy(), np.arange(4.0).reshape(2, 2) - 1.0)
    with pytest.raises(ShapeMismatchError):
        v.assign(np.ones(3))
