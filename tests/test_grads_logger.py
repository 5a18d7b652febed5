import csv
import json
import os
import tempfile
import unittest

import numpy as np

import GateLearn.core.backend.backend as backend
from GateLearn.nn.layers import PerceptronLayer
from GateLearn.utils.loggers import GradsLogger


class TestGradsLogger(unittest.TestCase):

    def setUp(self):
        backend.set_seed(50)
        self.layer = PerceptronLayer(3, 2, display=False)
        _, cache = self.layer.forward(np.random.randn(4, 3))
        _, self.gradients = self.layer.backward(np.ones((4, 2)), cache)

    def test_step_mode(self):
        logger = GradsLogger(grad_log_mode="step", grad_log_every=2)

        for step in range(4):
            logger.add(self.layer.named_parameters(), self.gradients, epoch=0, step=step, n_steps=4)

        records = logger.records["Epoch_0"]
        self.assertEqual(sorted(records), ["step_0", "step_2"])
        expected_norm = np.linalg.norm(self.gradients["synaptic_weights"])
        self.assertAlmostEqual(records["step_0"]["synaptic_weights_grad_norm"], expected_norm)
        self.assertIn("total_grad_norm", records["step_0"])

    def test_epoch_mode_averages(self):
        logger = GradsLogger(grad_log_mode="epoch", per_parameter=False)

        logger.add(self.layer.named_parameters(), self.gradients, epoch=0, step=0, n_steps=2)
        self.assertNotIn("Epoch_0", logger.records)
        logger.add(self.layer.named_parameters(), self.gradients, epoch=0, step=1, n_steps=2)

        total_norm = np.linalg.norm(self.gradients.flatten())
        self.assertAlmostEqual(logger.records["Epoch_0"]["total_grad_norm"], total_norm)
        self.assertNotIn("biases_grad_norm", logger.records["Epoch_0"])

    def test_autosave(self):
        with tempfile.TemporaryDirectory() as tmp:
            json_logger = GradsLogger(grad_log_mode="step", autosave="json", save_path=tmp)
            json_logger.add(self.layer.named_parameters(), self.gradients, epoch=0, step=0, n_steps=1)
            with open(os.path.join(tmp, "grads_logs.json")) as f:
                self.assertIn("Epoch_0", json.load(f))

            csv_logger = GradsLogger(grad_log_mode="step", autosave="csv", save_path=tmp)
            csv_logger.add(self.layer.named_parameters(), self.gradients, epoch=0, step=0, n_steps=1)
            with open(os.path.join(tmp, "grads_logs.csv"), newline="") as f:
                rows = list(csv.DictReader(f))
            self.assertEqual(rows[0]["step"], "step_0")

    def test_invalid_mode(self):
        with self.assertRaises(ValueError):
            GradsLogger(grad_log_mode="batch")


if __name__ == "__main__":
    unittest.main()
