import GateLearn.core.backend.backend as backend
from GateLearn.core.exceptions import DimensionMismatch

xp = backend.xp


class BaseLoss:
    """
    Error term of a network.

    `loss(outputs, targets)` returns the error as a float; `gradient(outputs,
    targets)` returns its derivative with respect to `outputs`, which is the
    outputs delta fed to the last layer's `backward`.
    """
    def __call__(self, *args, **kwargs):
        return self.forward(*args, **kwargs)

    def forward(self, outputs, targets):
        raise NotImplementedError

    def gradient(self, outputs, targets):
        raise NotImplementedError

    def calculate_error_and_delta(self, outputs, targets):
        return self.forward(outputs, targets), self.gradient(outputs, targets)

    @staticmethod
    def _check(outputs, targets):
        outputs = xp.asarray(outputs, dtype=backend.DTYPE)
        targets = xp.asarray(targets, dtype=backend.DTYPE)
        if outputs.shape != targets.shape:
            raise DimensionMismatch(
                f"Outputs shape {tuple(outputs.shape)} does not match targets shape {tuple(targets.shape)}"
            )
        return outputs, targets
