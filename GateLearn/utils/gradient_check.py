import numpy as np

import GateLearn.core.backend.backend as backend

xp = backend.xp


def relative_error(a, b, floor=1e-8):
    """Elementwise |a - b| / max(floor, |a| + |b|)."""
    a = xp.asarray(a, dtype=backend.DTYPE)
    b = xp.asarray(b, dtype=backend.DTYPE)
    return xp.abs(a - b) / xp.maximum(floor, xp.abs(a) + xp.abs(b))


def numerical_gradient(fn, x, epsilon=1e-5):
    """
    Central-difference gradient of the scalar function `fn` at `x`.

    `fn` receives a copy of `x` with one entry perturbed at a time.
    """
    x = xp.array(x, dtype=backend.DTYPE)
    grad = xp.zeros(x.shape, dtype=backend.DTYPE)
    flat_x = x.reshape(-1)
    flat_grad = grad.reshape(-1)

    for i in range(flat_x.size):
        old_val = flat_x[i].copy()

        flat_x[i] = old_val + epsilon
        f_plus = float(fn(x))

        flat_x[i] = old_val - epsilon
        f_minus = float(fn(x))

        flat_x[i] = old_val  # restore
        flat_grad[i] = (f_plus - f_minus) / (2 * epsilon)
    return grad


def numerical_jacobian(fn, x, epsilon=1e-5):
    """
    Central-difference Jacobian of the vector function `fn` at the vector `x`.

    Returns an array of shape (fn(x).size, x.size).
    """
    x = xp.asarray(x, dtype=backend.DTYPE)
    columns = []
    for j in range(x.size):
        step = xp.zeros_like(x)
        step[j] = epsilon
        f_plus = xp.asarray(fn(x + step), dtype=backend.DTYPE).ravel()
        f_minus = xp.asarray(fn(x - step), dtype=backend.DTYPE).ravel()
        columns.append((f_plus - f_minus) / (2 * epsilon))
    return xp.stack(columns, axis=1)


def gradient_check(network, inputs, targets, loss, epsilon=1e-5, tolerance=1e-2,
                   num_checks=None, display=None):
    """
    Compare the analytic error gradient of `network` with central differences.

    Args:
        network: Object exposing `get_parameters`, `set_parameters` and
            `calculate_error_gradient(inputs, targets, loss)` (a layer container).
        inputs: Input batch.
        targets: Target batch.
        loss: BaseLoss instance.
        epsilon (float): Finite-difference step.
        tolerance (float): Largest accepted relative error.
        num_checks (int, optional): Check only this many random parameters.
            Defaults to all of them.
        display (bool, optional): Print every checked parameter.

    Returns:
        bool: True if every checked parameter is within `tolerance`.
    """
    display = backend.DISPLAY if display is None else display

    error, analytic = network.calculate_error_gradient(inputs, targets, loss)
    parameters = network.get_parameters()

    if display:
        print(f"[GateLearn] Initial error: {error:.6f}")

    if num_checks is None:
        indices = range(parameters.size)
    else:
        indices = np.random.choice(parameters.size, size=min(num_checks, parameters.size), replace=False)

    passed = True
    for i in indices:
        old_val = float(parameters[i])

        parameters[i] = old_val + epsilon
        network.set_parameters(parameters)
        error_plus = loss(network.calculate_outputs(inputs), targets)

        parameters[i] = old_val - epsilon
        network.set_parameters(parameters)
        error_minus = loss(network.calculate_outputs(inputs), targets)

        parameters[i] = old_val  # restore
        network.set_parameters(parameters)

        g_num = (error_plus - error_minus) / (2 * epsilon)
        g_anal = float(analytic[i])
        rel_error = float(relative_error(g_num, g_anal))

        if display:
            print(f"[GateLearn] parameter {i}: anal={g_anal:.6e}, num={g_num:.6e}, err={rel_error:.2e}")

        # Both tiny: relative error is meaningless
        if rel_error > tolerance and abs(g_num - g_anal) > epsilon:
            passed = False

    if display:
        print("[GateLearn] Gradient check " + ("passed" if passed else "FAILED"))
    return passed
