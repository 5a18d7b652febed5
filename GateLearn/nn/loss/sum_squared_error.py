import GateLearn.core.backend.backend as backend
from GateLearn.nn.loss.baseloss import BaseLoss

xp = backend.xp


class SumSquaredError(BaseLoss):
    """Sum of squared differences between outputs and targets."""
    def forward(self, outputs, targets):
        outputs, targets = self._check(outputs, targets)
        errors = outputs - targets
        return float(xp.sum(errors * errors))

    def gradient(self, outputs, targets):
        outputs, targets = self._check(outputs, targets)
        return 2 * (outputs - targets)
