import json
import os
import tempfile
import unittest

import numpy as np

import GateLearn.core.backend.backend as backend
from GateLearn.core.exceptions import CacheMismatch, DimensionMismatch, InvalidActivationName
from GateLearn.nn.layers import LongShortTermMemoryLayer, LSTMCell, gate_combination
from GateLearn.nn.optim import SGD
from GateLearn.utils.gradient_check import numerical_gradient


def random_layer(inputs_number=2, neurons_number=2, timesteps=3, **kwargs):
    layer = LongShortTermMemoryLayer(inputs_number, neurons_number, timesteps=timesteps,
                                     display=False, **kwargs)
    layer.set_parameters_random()
    return layer


class TestLSTMForward(unittest.TestCase):

    def setUp(self):
        backend.set_seed(0)

    def test_zero_parameters_give_zero_hidden_states(self):
        layer = random_layer(2, 3, timesteps=4)
        layer.set_parameters_constant(0.0)

        outputs = layer.calculate_outputs(np.random.randn(5, 4, 2))

        self.assertEqual(outputs.shape, (5, 4, 3))
        np.testing.assert_allclose(outputs, 0.0)

    def test_single_step_scenario(self):
        layer = LongShortTermMemoryLayer(1, 1, timesteps=1, activation="Linear",
                                         recurrent_activation="Logistic", display=False)
        layer.initialize_weights(1.0)
        layer.initialize_recurrent_weights(0.0)
        layer.initialize_biases(0.0)

        outputs = layer.calculate_outputs(np.array([[[2.0]]]))

        gate = 1 / (1 + np.exp(-2.0))
        self.assertAlmostEqual(gate, 0.8808, places=4)
        self.assertAlmostEqual(outputs[0, 0, 0], gate * gate * 2.0, places=10)
        self.assertAlmostEqual(outputs[0, 0, 0], 1.5521, delta=1e-3)

    def test_future_inputs_do_not_change_past_outputs(self):
        layer = random_layer(2, 3, timesteps=5)
        inputs = np.random.randn(3, 5, 2)
        outputs = layer.calculate_outputs(inputs)

        for t in range(5):
            altered = inputs.copy()
            altered[:, t + 1:, :] = np.random.randn(3, 4 - t, 2) * 10
            altered_outputs = layer.calculate_outputs(altered)

            np.testing.assert_array_equal(outputs[:, :t + 1], altered_outputs[:, :t + 1])

    def test_rows_layout_matches_sequences_layout(self):
        layer = random_layer(2, 3, timesteps=3)
        sequences = np.random.randn(4, 3, 2)

        rows_outputs = layer.calculate_outputs(sequences.reshape(12, 2))

        self.assertEqual(rows_outputs.shape, (12, 3))
        np.testing.assert_allclose(rows_outputs.reshape(4, 3, 3), layer.calculate_outputs(sequences))

    def test_each_sequence_starts_from_initial_states(self):
        layer = random_layer(2, 2, timesteps=2)
        sequence = np.random.randn(1, 2, 2)

        batch = np.concatenate([np.random.randn(1, 2, 2), sequence])

        np.testing.assert_allclose(layer.calculate_outputs(batch)[1], layer.calculate_outputs(sequence)[0])

    def test_initial_cell_states(self):
        layer = random_layer(1, 1, timesteps=1)
        layer.set_parameters_constant(0.0)
        layer.initialize_cell_states(1.0)

        outputs = layer.calculate_outputs(np.zeros((1, 1, 1)))

        # Hard sigmoid gates are 0.5, the state gate is tanh(0) = 0
        self.assertAlmostEqual(outputs[0, 0, 0], 0.5 * np.tanh(0.5))

    def test_dimension_mismatch(self):
        layer = random_layer(2, 3, timesteps=3)

        with self.assertRaises(DimensionMismatch):
            layer.forward(np.zeros((2, 3, 4)))
        with self.assertRaises(DimensionMismatch):
            layer.forward(np.zeros((2, 4, 2)))
        with self.assertRaises(DimensionMismatch):
            layer.forward(np.zeros((7, 2)))
        with self.assertRaises(DimensionMismatch):
            layer.forward(np.zeros(6))

    def test_gate_combination(self):
        x = np.random.randn(4, 2)
        h = np.random.randn(4, 3)
        w = np.random.randn(2, 3)
        u = np.random.randn(3, 3)
        b = np.random.randn(3)

        np.testing.assert_allclose(gate_combination(x, h, w, u, b), x @ w + h @ u + b)

    def test_cell_step(self):
        layer = random_layer(2, 2, timesteps=1, activation="HyperbolicTangent",
                             recurrent_activation="Logistic")
        cell = layer._cell()
        x, h_prev, c_prev = np.random.randn(3, 2), np.random.randn(3, 2), np.random.randn(3, 2)

        h, c, entry = cell.step(x, h_prev, c_prev)

        def sigmoid(z):
            return 1 / (1 + np.exp(-z))

        def combination(gate):
            return (x @ layer.get_weights(gate) + h_prev @ layer.get_recurrent_weights(gate)
                    + layer.get_biases(gate))

        f, i, o = (sigmoid(combination(g)) for g in ("forget", "input", "output"))
        s = np.tanh(combination("state"))
        np.testing.assert_allclose(c, f * c_prev + i * s)
        np.testing.assert_allclose(h, o * np.tanh(c))
        np.testing.assert_allclose(entry.previous_cell, c_prev)
        self.assertIsInstance(cell, LSTMCell)


class TestLSTMBackward(unittest.TestCase):

    def setUp(self):
        backend.set_seed(1)
        self.inputs = np.random.randn(2, 3, 2)
        self.outputs_weights = np.random.randn(2, 3, 2)

    def _check_gradients(self, layer):
        outputs, cache = layer.forward(self.inputs)
        inputs_delta, gradients = layer.backward(self.outputs_weights, cache)
        parameters = layer.get_parameters()

        def error(vector):
            layer.set_parameters(vector)
            return np.sum(layer.calculate_outputs(self.inputs) * self.outputs_weights)

        numeric = numerical_gradient(error, parameters)
        np.testing.assert_allclose(gradients.flatten(), numeric, rtol=1e-2, atol=1e-7)

        layer.set_parameters(parameters)
        numeric_inputs = numerical_gradient(
            lambda x: np.sum(layer.calculate_outputs(x) * self.outputs_weights), self.inputs
        )
        np.testing.assert_allclose(inputs_delta, numeric_inputs, rtol=1e-2, atol=1e-7)

    def test_gradients_match_numerical_gradients(self):
        self._check_gradients(random_layer(2, 2, timesteps=3))

    def test_gradients_with_logistic_gates(self):
        self._check_gradients(random_layer(2, 2, timesteps=3, recurrent_activation="Logistic"))

    def test_gradients_with_other_activations(self):
        self._check_gradients(random_layer(2, 2, timesteps=3, activation="SoftSign",
                                           recurrent_activation="Logistic"))

    def test_gradients_shapes(self):
        layer = random_layer(3, 2, timesteps=3)
        _, cache = layer.forward(np.random.randn(4, 3, 3))
        _, gradients = layer.backward(np.ones((4, 3, 2)), cache)

        self.assertEqual(len(gradients), 12)
        self.assertEqual(gradients["forget_weights"].shape, (3, 2))
        self.assertEqual(gradients.output_recurrent_weights.shape, (2, 2))
        self.assertEqual(gradients["state_biases"].shape, (2,))

    def test_rows_layout_backward(self):
        layer = random_layer(2, 2, timesteps=3)
        rows = self.inputs.reshape(6, 2)
        _, cache = layer.forward(rows)
        inputs_delta, gradients = layer.backward(self.outputs_weights.reshape(6, 2), cache)

        _, cache = layer.forward(self.inputs)
        expected_delta, expected = layer.backward(self.outputs_weights, cache)

        self.assertEqual(inputs_delta.shape, (6, 2))
        np.testing.assert_allclose(inputs_delta, expected_delta.reshape(6, 2))
        np.testing.assert_allclose(gradients.flatten(), expected.flatten())

    def test_error_gradient_does_not_consume_cache(self):
        layer = random_layer()
        _, cache = layer.forward(self.inputs)

        gradients = layer.calculate_error_gradient(self.outputs_weights, cache)
        _, backward_gradients = layer.backward(self.outputs_weights, cache)

        np.testing.assert_allclose(gradients.flatten(), backward_gradients.flatten())


class TestLSTMCacheMismatch(unittest.TestCase):

    def setUp(self):
        backend.set_seed(2)
        self.layer = random_layer()
        self.inputs = np.random.randn(2, 3, 2)
        self.delta = np.ones((2, 3, 2))

    def test_cache_consumed_once(self):
        _, cache = self.layer.forward(self.inputs)
        self.layer.backward(self.delta, cache)

        with self.assertRaises(CacheMismatch):
            self.layer.backward(self.delta, cache)

    def test_cache_from_another_layer(self):
        _, cache = random_layer().forward(self.inputs)

        with self.assertRaises(CacheMismatch):
            self.layer.backward(self.delta, cache)

    def test_delta_shape(self):
        _, cache = self.layer.forward(self.inputs)

        with self.assertRaises(CacheMismatch):
            self.layer.backward(np.ones((3, 3, 2)), cache)
        with self.assertRaises(CacheMismatch):
            self.layer.backward(np.ones((2, 2, 2)), cache)
        with self.assertRaises(CacheMismatch):
            self.layer.backward(np.ones((6, 2)), cache)

    def test_stale_after_setter(self):
        _, cache = self.layer.forward(self.inputs)
        self.layer.set_biases("forget", np.ones(2))

        with self.assertRaises(CacheMismatch):
            self.layer.backward(self.delta, cache)

    def test_stale_after_optimizer_step(self):
        _, cache = self.layer.forward(self.inputs)
        gradients = self.layer.calculate_error_gradient(self.delta, cache)
        SGD(0.1).step(self.layer.named_parameters(), gradients)

        with self.assertRaises(CacheMismatch):
            self.layer.backward(self.delta, cache)

    def test_stale_after_activation_change(self):
        _, cache = self.layer.forward(self.inputs)
        self.layer.set_activation_function("SoftSign")

        with self.assertRaises(CacheMismatch):
            self.layer.backward(self.delta, cache)

    def test_cache_mismatch_is_a_value_error(self):
        self.assertTrue(issubclass(CacheMismatch, ValueError))


class TestLSTMParameters(unittest.TestCase):

    def setUp(self):
        backend.set_seed(3)

    def test_defaults(self):
        layer = LongShortTermMemoryLayer(2, 3, display=False)

        self.assertEqual(layer.write_activation_function(), "HyperbolicTangent")
        self.assertEqual(layer.write_recurrent_activation_function(), "HardSigmoid")
        self.assertEqual(layer.get_timesteps(), 1)
        self.assertEqual(layer.layer_type, "LongShortTermMemory")

    def test_invalid_activation(self):
        with self.assertRaises(InvalidActivationName):
            LongShortTermMemoryLayer(2, 3, activation="Tangent", display=False)
        layer = LongShortTermMemoryLayer(2, 3, display=False)
        with self.assertRaises(InvalidActivationName):
            layer.set_recurrent_activation_function("Sigmoidal")

    def test_invalid_timesteps(self):
        with self.assertRaises(ValueError):
            LongShortTermMemoryLayer(2, 3, timesteps=0, display=False)

    def test_parameters_number_and_order(self):
        layer = random_layer(2, 3)
        self.assertEqual(layer.count_parameters(), 4 * 3 + 4 * 2 * 3 + 4 * 3 * 3)

        parameters = layer.get_parameters()
        np.testing.assert_allclose(parameters[:3], layer.get_biases("forget"))
        np.testing.assert_allclose(parameters[9:12], layer.get_biases("output"))
        np.testing.assert_allclose(parameters[12:18], layer.get_weights("forget").ravel())
        np.testing.assert_allclose(parameters[-9:], layer.get_recurrent_weights("output").ravel())

    def test_set_parameters_round_trip(self):
        layer = random_layer(2, 3)
        vector = np.arange(layer.count_parameters(), dtype=float)

        layer.set_parameters(vector)

        np.testing.assert_allclose(layer.get_parameters(), vector)
        with self.assertRaises(DimensionMismatch):
            layer.set_parameters(vector[:-1])

    def test_setter_shape_checked(self):
        layer = random_layer(2, 3)
        with self.assertRaises(DimensionMismatch):
            layer.set_weights("input", np.zeros((3, 2)))
        with self.assertRaises(ValueError):
            layer.set_weights("cell", np.zeros((2, 3)))

    def test_setters_bump_versions(self):
        layer = random_layer(2, 3)
        version = layer.state_version()
        parameter_version = layer.state_recurrent_weights.version

        layer.set_recurrent_weights("state", np.zeros((3, 3)))

        self.assertNotEqual(layer.state_version(), version)
        self.assertEqual(layer.state_recurrent_weights.version, parameter_version + 1)

    def test_state_dict_round_trip(self):
        layer = random_layer(2, 3, timesteps=4, activation="SoftSign", recurrent_activation="Logistic")
        document = json.loads(json.dumps(layer.state_dict()))

        self.assertEqual(document["_type"], "LongShortTermMemoryLayer")
        self.assertEqual(document["timesteps"], 4)
        self.assertEqual(len(document["forget_weights"]), 2)

        restored = LongShortTermMemoryLayer(display=False)
        restored.load_state_dict(document)

        self.assertEqual(restored.write_activation_function(), "SoftSign")
        self.assertEqual(restored.write_recurrent_activation_function(), "Logistic")
        self.assertEqual(restored.get_timesteps(), 4)
        np.testing.assert_array_equal(restored.get_parameters(), layer.get_parameters())

        inputs = np.random.randn(2, 4, 2)
        np.testing.assert_allclose(restored.calculate_outputs(inputs), layer.calculate_outputs(inputs))

    def test_from_config(self):
        layer = random_layer(2, 3, timesteps=4, activation="SoftSign", recurrent_activation="Logistic")
        layer.initialize_hidden_states(0.25)

        restored = LongShortTermMemoryLayer.from_config(json.loads(json.dumps(layer.get_config())))

        self.assertEqual(restored.get_config(), layer.get_config())
        self.assertEqual(restored.count_parameters(), layer.count_parameters())
        self.assertEqual(restored.calculate_outputs(np.zeros((1, 4, 2))).shape, (1, 4, 3))

    def test_input_derivatives_not_row_wise(self):
        layer = random_layer(2, 3, timesteps=2)

        with self.assertRaises(NotImplementedError):
            layer.calculate_input_derivatives(np.zeros((4, 2)))

    def test_save_and_load(self):
        layer = random_layer(2, 2, timesteps=2)
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "lstm.json")
            layer.save(path)
            restored = LongShortTermMemoryLayer(display=False).load(path)

        np.testing.assert_array_equal(restored.get_parameters(), layer.get_parameters())

    def test_write_expression(self):
        layer = random_layer(1, 1, timesteps=1)
        layer.initialize_weights(1.0)
        layer.initialize_recurrent_weights(0.5)
        layer.initialize_biases(0.0)

        expression = layer.write_expression(["x"], ["y"])

        self.assertIn("forget_gate_0 = hard_sigmoid(0 + (x*1) + (hidden_state_0*0.5));\n", expression)
        self.assertIn("state_gate_0 = tanh(0 + (x*1) + (hidden_state_0*0.5));\n", expression)
        self.assertIn("cell_state_0 = forget_gate_0*cell_state_0 + input_gate_0*state_gate_0;\n", expression)
        self.assertIn("hidden_state_0 = output_gate_0*tanh(cell_state_0);\n", expression)
        self.assertTrue(expression.endswith("y = hidden_state_0;\n"))


if __name__ == "__main__":
    unittest.main()
