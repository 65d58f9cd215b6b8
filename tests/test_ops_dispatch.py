import numpy as np
import pytest

from strata import ShapeError, TensorSpec, Variable, ops, set_floatx
from strata.core.ops import Add, MatMul, Operation


def test_symbolic_add_broadcasts_and_promotes():
    x = TensorSpec((None, 3), dtype="float32")
    y = TensorSpec((3,), dtype="float64")
    out = ops.add(x, y)
    assert isinstance(out, TensorSpec)
    assert out.shape == (None, 3)
    assert out.dtype == "float64"


def test_symbolic_call_mixes_specs_and_arrays():
    x = TensorSpec((2, 1), dtype="float32")
    out = ops.multiply(x, np.zeros((4,), dtype=np.float32))
    assert out.shape == (2, 4)
    assert out.dtype == "float32"


def test_python_scalars_do_not_promote():
    out = ops.add(TensorSpec((2,), dtype="float16"), 1.0)
    assert out.shape == (2,)
    assert out.dtype == "float16"


def test_symbolic_add_rejects_incompatible_shapes():
    with pytest.raises(ShapeError):
        ops.add(TensorSpec((2, 3)), TensorSpec((4, 3)))


def test_sparsity_propagation():
    dense = TensorSpec((2,))
    sparse = TensorSpec((2,), sparse=True)
    assert ops.add(sparse, sparse).sparse
    assert not ops.add(sparse, dense).sparse
    assert ops.multiply(sparse, dense).sparse
    assert not ops.divide(sparse, sparse).sparse


def test_integer_division_yields_floatx():
    ints = TensorSpec((3,), dtype="int32")
    assert ops.divide(ints, ints).dtype == "float32"
    set_floatx("float64")
    assert ops.divide(ints, ints).dtype == "float64"
    result = ops.divide(np.array([1, 2], dtype=np.int32), np.array([2, 2], dtype=np.int32))
    assert result.dtype == np.float64
    np.testing.assert_allclose(result, [0.5, 1.0])


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((2, 3), (3, 4), (2, 4)),
        ((None, 3), (3, 5), (None, 5)),
        ((7, 2, 3), (3, 4), (7, 2, 4)),
        ((3,), (3, 4), (4,)),
        ((2, 3), (3,), (2,)),
        ((2, None), (5, 4), (2, 4)),
    ],
)
def test_symbolic_matmul_shapes(a, b, expected):
    assert ops.matmul(TensorSpec(a), TensorSpec(b)).shape == expected


def test_symbolic_matmul_rejects_inner_mismatch():
    with pytest.raises(ShapeError, match="Incompatible matmul"):
        ops.matmul(TensorSpec((2, 3)), TensorSpec((4, 5)))
    with pytest.raises(ShapeError):
        ops.matmul(TensorSpec((2, 3)), 2.0)


def test_symbolic_reshape():
    assert ops.reshape(TensorSpec((2, 6)), (3, -1)).shape == (3, 4)
    assert ops.reshape(TensorSpec((None, 6)), (-1, 3)).shape == (None, 3)
    with pytest.raises(ShapeError):
        ops.reshape(TensorSpec((2, 6)), (5, -1))
    with pytest.raises(ShapeError):
        ops.reshape(TensorSpec((2, 6)), (-1, -1))


def test_symbolic_cast_keeps_shape():
    out = ops.cast(TensorSpec((2, None), dtype="float32", sparse=True), "int64")
    assert out.shape == (2, None)
    assert out.dtype == "int64"
    assert out.sparse


def test_eager_dispatch_runs_backend_kernels():
    a = np.array([[1.0, 2.0], [3.0, 4.0]], dtype=np.float32)
    np.testing.assert_array_equal(ops.add(a, 1.0), a + 1.0)
    np.testing.assert_array_equal(ops.subtract(a, a), np.zeros((2, 2)))
    np.testing.assert_array_equal(ops.matmul(a, np.eye(2, dtype=np.float32)), a)
    np.testing.assert_array_equal(ops.reshape(a, (-1,)), [1.0, 2.0, 3.0, 4.0])
    assert ops.cast(a, "int32").dtype == np.int32


def test_eager_dispatch_reads_variables():
    w = Variable(np.array([[1.0, 0.0], [0.0, 2.0]]), name="w")
    x = np.array([[1.0, 1.0]], dtype=np.float32)
    np.testing.assert_array_equal(ops.matmul(x, w), [[1.0, 2.0]])


def test_variables_participate_in_symbolic_calls():
    w = Variable(np.zeros((3, 4)), name="w")
    out = ops.matmul(TensorSpec((None, 3)), w)
    assert out.shape == (None, 4)
    assert out.dtype == "float32"


def test_record_history_tracks_inbound_specs():
    op = Add()
    x = TensorSpec((2,))
    y = TensorSpec((2,))
    out = op(x, y)
    assert out.record_history
    assert op.inbound_specs == (x, y)
    assert op.outbound_spec == out


def test_record_history_disabled_by_any_input():
    op = MatMul()
    x = TensorSpec((2, 3), record_history=False)
    out = op(x, TensorSpec((3, 1)))
    assert out.record_history is False
    assert op.inbound_specs is None
    assert op.outbound_spec is None


def test_operations_get_unique_names():
    assert Add().name == "add"
    assert Add().name == "add_1"
    assert MatMul(name="proj").name == "proj"


def test_custom_operation_subclass():
    class Square(Operation):
        def call(self, x):
            return x * x

        def compute_output_spec(self, x):
            return TensorSpec(x.shape, x.dtype)

    square = Square()
    np.testing.assert_array_equal(square(np.array([2.0, 3.0])), [4.0, 9.0])
    out = square(TensorSpec((5,), dtype="float16"))
    assert out.shape == (5,)
    assert out.dtype == "float16"


def test_eager_dispatch_converts_python_lists():
    summed = ops.add([1.0, 2.0], [3.0, 4.0])
    assert summed.shape == (2,)
    np.testing.assert_array_equal(summed, [4.0, 6.0])
    np.testing.assert_array_equal(ops.multiply([1, 2], 2), [2, 4])
    np.testing.assert_array_equal(ops.matmul([[1.0, 2.0]], [[3.0], [4.0]]), [[11.0]])
    assert ops.add([1.0, 2.0], [3.0, 4.0]).shape == ops.add(TensorSpec((2,)), [3.0, 4.0]).shape
