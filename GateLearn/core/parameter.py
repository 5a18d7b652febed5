import GateLearn.core.backend.backend as backend
from GateLearn.core.exceptions import DimensionMismatch
from GateLearn.core.stateful import Stateful

xp = backend.xp


class Parameter(Stateful):
    """
    Trainable array owned by a single layer.

    The layer reads `data`; everything else writes through `assign` (setters
    and initializers) or `update` (optimizers). Both bump `version`, which
    forward caches record so that a backward pass can detect that the
    parameters changed underneath it.
    """
    def __init__(self, data, name=None):
        self.data = xp.array(data, dtype=backend.DTYPE)
        self.name = name
        self.version = 0
        self.frozen = False

    @property
    def shape(self):
        return self.data.shape

    @property
    def size(self):
        return self.data.size

    def __repr__(self):
        return f"Parameter(name={self.name}, shape={self.shape}, version={self.version})"

    def _check_shape(self, value):
        if value.shape != self.data.shape:
            raise DimensionMismatch(
                f"Parameter '{self.name}' has shape {self.data.shape}, got {value.shape}"
            )

    def assign(self, value):
        """Replace the values in place (shape must match)."""
        value = xp.asarray(value, dtype=backend.DTYPE)
        self._check_shape(value)
        self.data[...] = value
        self.version += 1

    def fill(self, value):
        self.data.fill(value)
        self.version += 1

    def update(self, delta):
        """Add `delta` to the values. Frozen parameters are left unchanged."""
        if self.frozen:
            return
        delta = xp.asarray(delta, dtype=backend.DTYPE)
        self._check_shape(delta)
        self.data += delta
        self.version += 1

    def state_dict(self):
        return backend.to_numpy(self.data).tolist()

    def load_state_dict(self, state):
        self.assign(state)
