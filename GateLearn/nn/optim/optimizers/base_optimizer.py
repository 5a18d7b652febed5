import GateLearn.core.backend.backend as backend
from GateLearn.core import Stateful, Parameter

xp = backend.xp


class BaseOptimizer(Stateful):
    """
    Applies gradients to parameters.

    Parameters are never written directly: every change goes through
    `Parameter.update`, which bumps the parameter's version.
    """
    def __init__(self, learning_rate):
        if learning_rate <= 0:
            raise ValueError("learning_rate must be positive")
        self.learning_rate = float(learning_rate)
        self.t = 0

    def state_dict(self):
        return {"learning_rate": self.learning_rate, "t": self.t}

    def load_state_dict(self, state):
        if "learning_rate" in state:
            self.learning_rate = float(state["learning_rate"])
        if "t" in state:
            self.t = int(state["t"])

    def _iter_params(self, named_parameters, gradients):
        """
        Yield (param, grad) pairs for trainable parameters.

        `gradients` maps the names of `named_parameters` to arrays (a layer's
        Gradients, or a dict of them for a whole network).
        """
        for name, param in named_parameters:
            if not isinstance(param, Parameter):
                continue
            if getattr(param, "frozen", False):
                continue
            if name not in gradients:
                raise KeyError(f"No gradient for parameter '{name}'")
            yield param, gradients[name]

    def step(self, named_parameters, gradients):
        raise NotImplementedError
