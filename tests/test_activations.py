import unittest

import numpy as np

from GateLearn.core.exceptions import InvalidActivationName
from GateLearn.nn import activations
from GateLearn.utils.gradient_check import numerical_gradient


# Activations whose first derivative jumps at zero
KINKED_AT_ZERO = ("Threshold", "SymmetricThreshold", "RectifiedLinear", "ScaledExponentialLinear")

POINTS = np.array([-30., -8., -3.1, -0.7, 0.3, 1.9, 8., 30.])


def finite_difference(fn, z, epsilon=1e-5):
    return (fn(z + epsilon) - fn(z - epsilon)) / (2 * epsilon)


class TestActivationValues(unittest.TestCase):

    def test_reference_values(self):
        z = np.array([-1., 0., 2.])

        np.testing.assert_allclose(activations.calculate(z, "Threshold"), [0, 1, 1])
        np.testing.assert_allclose(activations.calculate(z, "SymmetricThreshold"), [-1, 1, 1])
        np.testing.assert_allclose(activations.calculate(z, "Logistic"), 1 / (1 + np.exp(-z)))
        np.testing.assert_allclose(activations.calculate(z, "HyperbolicTangent"), np.tanh(z))
        np.testing.assert_allclose(activations.calculate(z, "Linear"), z)
        np.testing.assert_allclose(activations.calculate(z, "RectifiedLinear"), [0, 0, 2])
        np.testing.assert_allclose(activations.calculate(z, "ExponentialLinear"), [np.exp(-1) - 1, 0, 2])
        np.testing.assert_allclose(activations.calculate(z, "SoftPlus"), np.log1p(np.exp(z)))
        np.testing.assert_allclose(activations.calculate(z, "SoftSign"), [-0.5, 0, 2 / 3.])
        np.testing.assert_allclose(activations.calculate(z, "HardSigmoid"), [0.3, 0.5, 0.9])

    def test_scaled_exponential_linear_constants(self):
        z = np.array([-1., 1.])
        a = activations.calculate(z, "ScaledExponentialLinear")

        self.assertAlmostEqual(a[1], 1.0507009873554805)
        self.assertAlmostEqual(a[0], 1.0507009873554805 * 1.6732632423543772 * (np.exp(-1) - 1))

    def test_hard_sigmoid_saturates(self):
        a, da = activations.calculate_derivatives(np.array([-3., -2.5, 2.5, 3.]), "HardSigmoid")

        np.testing.assert_allclose(a, [0, 0, 1, 1])
        np.testing.assert_allclose(da, [0, 0, 0, 0])

    def test_stable_for_large_inputs(self):
        z = np.array([-1000., 1000.])

        with np.errstate(over="raise"):
            np.testing.assert_allclose(activations.calculate(z, "Logistic"), [0, 1])
            np.testing.assert_allclose(activations.calculate(z, "SoftPlus"), [0, 1000])
            np.testing.assert_allclose(activations.calculate(z, "ExponentialLinear"), [-1, 1000])

    def test_shape_is_preserved(self):
        z = np.random.randn(2, 3, 4)
        for name in activations.ACTIVATIONS:
            a, da, d2a = activations.calculate_second_derivatives(z, name)
            self.assertEqual(a.shape, z.shape, name)
            self.assertEqual(da.shape, z.shape, name)
            self.assertEqual(d2a.shape, z.shape, name)


class TestActivationDerivatives(unittest.TestCase):

    def test_first_derivatives_match_finite_differences(self):
        for name in activations.ACTIVATIONS:
            points = POINTS if name in KINKED_AT_ZERO else np.append(POINTS, 0.)

            _, da = activations.calculate_derivatives(points, name)
            numeric = finite_difference(lambda z: activations.calculate(z, name), points)

            np.testing.assert_allclose(da, numeric, atol=1e-4, err_msg=name)

    def test_second_derivatives_match_finite_differences(self):
        for name in activations.ACTIVATIONS:
            _, _, d2a = activations.calculate_second_derivatives(POINTS, name)
            numeric = finite_difference(lambda z: activations.calculate_derivatives(z, name)[1], POINTS)

            np.testing.assert_allclose(d2a, numeric, atol=1e-4, err_msg=name)

    def test_numerical_gradient_helper_agrees(self):
        z = np.array([-0.4, 0.2, 1.3])
        numeric = numerical_gradient(lambda v: np.sum(activations.calculate(v, "HyperbolicTangent")), z)

        np.testing.assert_allclose(numeric, 1 - np.tanh(z) ** 2, atol=1e-8)


class TestActivationNames(unittest.TestCase):

    def test_aliases(self):
        self.assertEqual(activations.check_activation_name("tanh"), "HyperbolicTangent")
        self.assertEqual(activations.check_activation_name("sigmoid"), "Logistic")
        self.assertEqual(activations.check_activation_name("HardSigmoid"), "HardSigmoid")

    def test_invalid_name(self):
        with self.assertRaises(InvalidActivationName):
            activations.check_activation_name("Swish")
        with self.assertRaises(ValueError):
            activations.calculate(np.zeros(2), "hyperbolic")

    def test_expression_names(self):
        self.assertEqual(activations.write_activation_expression("Linear"), "")
        self.assertEqual(activations.write_activation_expression("HyperbolicTangent"), "tanh")
        self.assertEqual(activations.write_activation_expression("RectifiedLinear"), "ReLU")
        self.assertEqual(activations.write_activation_expression("HardSigmoid"), "hard_sigmoid")

    def test_eleven_kinds(self):
        self.assertEqual(len(activations.ACTIVATIONS), 11)


if __name__ == "__main__":
    unittest.main()
