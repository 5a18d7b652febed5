import os
import tempfile
import unittest

import numpy as np

import GateLearn.core.backend.backend as backend
from GateLearn.core import Parameter
from GateLearn.core.backend.config import (DEFAULTS, load_config, load_yaml_config, merge_configs,
                                           parse_cli_args)
from GateLearn.core.exceptions import (CacheMismatch, DimensionMismatch, GateLearnError,
                                       InvalidActivationName, InvalidScalingMethod)
from GateLearn.nn.initializations import Glorot, Orthogonal, get_initialization, initialize_weights
from GateLearn.nn.layers import LAYER_TYPES, register_delta_transform
from GateLearn.nn.layers.registry import DELTA_TRANSFORMS


class TestConfig(unittest.TestCase):

    def test_cli_overrides(self):
        cli = parse_cli_args(["--dtype", "float32", "--display", "false", "--seed", "5", "-x"])

        self.assertEqual(cli, {"dtype": "float32", "display": False, "seed": 5})

    def test_merge_prefers_cli(self):
        merged = merge_configs({"device": "cpu", "seed": 1}, {"seed": 2})

        self.assertEqual(merged, {"device": "cpu", "seed": 2})

    def test_yaml_config(self):
        self.assertEqual(load_yaml_config("does_not_exist.yaml"), {})

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "config.yaml")
            with open(path, "w") as f:
                f.write("device: cpu\nseed: 42\n")
            self.assertEqual(load_yaml_config(path), {"device": "cpu", "seed": 42})

    def test_missing_config_file_uses_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = load_config(["--config", os.path.join(tmp, "missing.yaml")])

        self.assertEqual(config, DEFAULTS)
        self.assertIs(config["display"], False)

    def test_partial_config_file_keeps_other_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "config.yaml")
            with open(path, "w") as f:
                f.write("seed: 3\n")
            config = load_config(["--config", path, "--display", "true"])

        self.assertEqual(config["seed"], 3)
        self.assertEqual(config["dtype"], "float64")
        self.assertIs(config["display"], True)

    def test_backend_defaults(self):
        self.assertEqual(backend.get_device(), "cpu")
        self.assertIs(backend.DTYPE, np.float64)
        with self.assertRaises(ValueError):
            backend.set_dtype("float16")


class TestExceptions(unittest.TestCase):

    def test_taxonomy(self):
        for error in (DimensionMismatch, CacheMismatch, InvalidActivationName, InvalidScalingMethod):
            self.assertTrue(issubclass(error, GateLearnError))
            self.assertTrue(issubclass(error, ValueError))


class TestParameter(unittest.TestCase):

    def test_assign_and_update_bump_version(self):
        p = Parameter(np.zeros((2, 2)), name="weights")

        p.assign(np.ones((2, 2)))
        p.update(np.full((2, 2), 0.5))

        self.assertEqual(p.version, 2)
        np.testing.assert_allclose(p.data, 1.5)

    def test_assign_is_a_copy(self):
        value = np.zeros(3)
        p = Parameter(np.ones(3))
        p.assign(value)
        value[0] = 7.0

        self.assertEqual(p.data[0], 0.0)

    def test_shape_checked(self):
        p = Parameter(np.zeros(3))
        with self.assertRaises(DimensionMismatch):
            p.assign(np.zeros(4))
        with self.assertRaises(DimensionMismatch):
            p.update(np.zeros((3, 1)))

    def test_frozen_update(self):
        p = Parameter(np.zeros(3))
        p.frozen = True
        p.update(np.ones(3))

        self.assertEqual(p.version, 0)
        np.testing.assert_allclose(p.data, 0.0)


class TestRegistry(unittest.TestCase):

    def test_every_layer_type_has_a_transform(self):
        for layer_type in LAYER_TYPES:
            self.assertIn(layer_type, DELTA_TRANSFORMS)

    def test_unknown_layer_type(self):
        with self.assertRaises(ValueError):
            register_delta_transform("Convolutional")


class TestInitializations(unittest.TestCase):

    def setUp(self):
        backend.set_seed(40)

    def test_glorot_limits(self):
        weights = Glorot((30, 20))
        limit = np.sqrt(6.0 / 50)

        self.assertEqual(weights.shape, (30, 20))
        self.assertTrue(np.all(np.abs(weights) <= limit))

    def test_orthogonal(self):
        q = Orthogonal((5, 5))
        np.testing.assert_allclose(q.T @ q, np.eye(5), atol=1e-10)

        wide = Orthogonal((3, 6))
        self.assertEqual(wide.shape, (3, 6))
        np.testing.assert_allclose(wide @ wide.T, np.eye(3), atol=1e-10)

    def test_auto_initialization(self):
        self.assertIs(get_initialization("auto", "RectifiedLinear"), get_initialization("he"))
        self.assertIs(get_initialization("auto", "tanh"), Glorot)
        self.assertEqual(initialize_weights((4, 2), "auto", "Logistic").shape, (4, 2))

    def test_invalid_initialization(self):
        with self.assertRaises(ValueError):
            get_initialization("zeros")
        with self.assertRaises(ValueError):
            get_initialization("auto")
        with self.assertRaises(TypeError):
            get_initialization(3)


if __name__ == "__main__":
    unittest.main()
