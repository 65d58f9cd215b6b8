"""Fit y = 3x + 1 with a pure training step.

``train_step`` never mutates variables: it receives the current weights
through a :class:`strata.StatelessScope` and returns the updated values,
which the caller writes back.
"""

import numpy as np

import strata
from strata import ops


def build():
    with strata.name_scope("linear"):
        kernel = strata.Variable(np.zeros((1, 1)), name="kernel")
        bias = strata.Variable(np.zeros((1,)), name="bias")
    return kernel, bias


def train_step(state, x, y, learning_rate=0.1):
    kernel, bias = state
    with strata.StatelessScope(state) as scope:
        pred = ops.add(ops.matmul(x, kernel), bias)
        error = ops.subtract(pred, y)
        grad_kernel = ops.divide(ops.matmul(x.T, error), len(x)) * 2.0
        grad_bias = np.mean(error, axis=0) * 2.0
        kernel.assign_sub(grad_kernel * learning_rate)
        bias.assign_sub(grad_bias * learning_rate)
    return scope.updates(), float(np.mean(error**2))


def main(steps=200):
    rng = np.random.default_rng(0)
    x = rng.uniform(-1.0, 1.0, size=(64, 1)).astype(np.float32)
    y = 3.0 * x + 1.0

    kernel, bias = build()
    # symbolic pass: check the output shape before touching data
    spec = ops.add(ops.matmul(strata.TensorSpec((None, 1)), kernel), bias)
    assert spec.shape == (None, 1)

    loss = None
    for _ in range(steps):
        state = {kernel: kernel.numpy(), bias: bias.numpy()}
        updates, loss = train_step(state, x, y)
        for variable, value in updates.items():
            variable.assign(value)
    print(f"kernel={kernel.numpy().ravel()} bias={bias.numpy()} loss={loss:.6f}")
    return kernel.numpy(), bias.numpy(), loss


if __name__ == "__main__":
    main()
