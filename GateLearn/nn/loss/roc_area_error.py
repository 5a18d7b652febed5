import GateLearn.core.backend.backend as backend
from GateLearn.nn.activations import logistic
from GateLearn.nn.loss.baseloss import BaseLoss

xp = backend.xp


class RocAreaError(BaseLoss):
    """
    One minus the area under the ROC curve of a binary classifier.

    The area is written as the Wilcoxon-Mann-Whitney statistic: the fraction
    of (positive, negative) pairs whose scores are ranked correctly. The step
    function of each comparison is replaced by `logistic(sharpness * (y_p - y_n))`
    so the error has a gradient; `calculate_roc_area` gives the exact area.

    Outputs and targets hold one score per sample, either as a flat vector or
    as a single column. Targets >= 0.5 are positives.

    Args:
        sharpness (float, optional): Slope of the smoothed comparison. Defaults to 20.
    """
    def __init__(self, sharpness=20.0):
        if sharpness <= 0:
            raise ValueError("sharpness must be positive")
        self.sharpness = sharpness

    def _split(self, outputs, targets):
        outputs, targets = self._check(outputs, targets)
        if outputs.ndim > 1 and outputs.shape[-1] != 1:
            raise ValueError(f"ROC area needs a single output column, got shape {tuple(outputs.shape)}")
        scores = outputs.ravel()
        positive = targets.ravel() >= 0.5
        if not xp.any(positive) or xp.all(positive):
            raise ValueError("ROC area needs at least one positive and one negative target")
        return outputs, scores, positive

    def calculate_roc_area(self, outputs, targets):
        """Exact area under the ROC curve; ties count one half."""
        _, scores, positive = self._split(outputs, targets)
        differences = scores[positive][:, None] - scores[~positive][None, :]
        wins = xp.sum(differences > 0) + 0.5 * xp.sum(differences == 0)
        return float(wins) / differences.size

    def forward(self, outputs, targets):
        _, scores, positive = self._split(outputs, targets)
        differences = scores[positive][:, None] - scores[~positive][None, :]
        area = xp.mean(logistic(self.sharpness * differences)[0])
        return 1.0 - float(area)

    def gradient(self, outputs, targets):
        outputs, scores, positive = self._split(outputs, targets)
        differences = scores[positive][:, None] - scores[~positive][None, :]
        _, slopes, _ = logistic(self.sharpness * differences)
        slopes = self.sharpness * slopes / differences.size

        delta = xp.zeros_like(scores)
        delta[positive] = -xp.sum(slopes, axis=1)
        delta[~positive] = xp.sum(slopes, axis=0)
        return delta.reshape(outputs.shape)
