import GateLearn.core.backend.backend as backend
from GateLearn.nn.loss.baseloss import BaseLoss

xp = backend.xp


class MeanSquaredError(BaseLoss):
    """
    Mean squared error.

    Sum of squared differences divided by the number of samples, where a
    sample is one row of the last axis (so a (batch, timesteps, outputs)
    array holds batch * timesteps samples).
    """
    @staticmethod
    def _samples_number(outputs):
        if outputs.ndim == 0 or outputs.shape[-1] == 0:
            return 1
        return max(outputs.size // outputs.shape[-1], 1)

    def forward(self, outputs, targets):
        outputs, targets = self._check(outputs, targets)
        errors = outputs - targets
        return float(xp.sum(errors * errors)) / self._samples_number(outputs)

    def gradient(self, outputs, targets):
        outputs, targets = self._check(outputs, targets)
        return 2 * (outputs - targets) / self._samples_number(outputs)
